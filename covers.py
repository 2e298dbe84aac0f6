import base64
import binascii
import logging
import os
import re
import secrets
import time
from typing import Optional

from config import Settings, settings as default_settings
from errors import BadRequestError, MissingFieldError, StorageError

logger = logging.getLogger(__name__)

UPLOADS_PREFIX = "/uploads/"
_DATA_URI_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,", re.IGNORECASE)


class CoverStore:
    """İstemcilerin yüklediği kapak görselleri, ortak bir klasörde tutulur.

    Dosyalar ``<epoch-ms>-<rastgele hex><uzantı>`` olarak adlandırılır; eşzamanlı
    yüklemeler çakışmaz. Genel yollar ``/uploads/<ad>`` biçimindedir.
    """

    def __init__(self, config: Optional[Settings] = None) -> None:
        config = config or default_settings
        self.upload_dir = config.upload_dir
        self.default_cover = config.default_cover
        self.max_upload_size = config.max_upload_size
        self.allowed_extensions = [ext.lower() for ext in config.allowed_image_extensions]

    def ensure_dir(self) -> None:
        os.makedirs(self.upload_dir, exist_ok=True)

    def save(self, filename: Optional[str], payload: Optional[str]) -> str:
        """base64 görseli çözüp diske yazar; genel yolu döndürür."""
        if not payload:
            raise MissingFieldError("Missing required field(s): base64")
        raw = "".join(_DATA_URI_PREFIX.sub("", payload.strip(), count=1).split())
        try:
            data = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise BadRequestError("Cover payload is not valid base64") from exc
        if not data:
            raise BadRequestError("Cover payload is empty")
        if len(data) > self.max_upload_size:
            raise BadRequestError(f"Cover exceeds {self.max_upload_size} bytes")

        ext = self._extension(filename)
        name = f"{int(time.time() * 1000)}-{secrets.token_hex(6)}{ext}"
        try:
            self.ensure_dir()
            with open(os.path.join(self.upload_dir, name), "wb") as f:
                f.write(data)
        except OSError as exc:
            logger.error(f"Writing cover {name} failed: {exc}")
            raise StorageError("Could not store cover image") from exc
        logger.info(f"Stored cover {name} ({len(data)} bytes)")
        return UPLOADS_PREFIX + name

    def _extension(self, filename: Optional[str]) -> str:
        ext = os.path.splitext(filename or "")[1].lower()
        if not ext:
            return ".jpg"
        if ext not in self.allowed_extensions:
            raise BadRequestError(f"Unsupported image type: {ext}")
        return ext

    def is_uploaded(self, cover: Optional[str]) -> bool:
        return bool(cover) and cover.startswith(UPLOADS_PREFIX) and cover != self.default_cover

    def resolve(self, cover: str) -> Optional[str]:
        """Genel ``/uploads/...`` yolunu yükleme klasöründeki dosyaya eşler."""
        if not cover.startswith(UPLOADS_PREFIX):
            return None
        name = os.path.basename(cover[len(UPLOADS_PREFIX):])
        if not name or name in (".", ".."):
            return None
        return os.path.join(self.upload_dir, name)

    def discard(self, cover: Optional[str]) -> bool:
        """Yüklenen kapak dosyasını siler. Hata fırlatmaz; hatalar günlüğe yazılır."""
        if not self.is_uploaded(cover):
            return False
        path = self.resolve(cover)
        if path is None or not os.path.exists(path):
            return False
        try:
            os.remove(path)
        except OSError as exc:
            logger.warning(f"Could not delete cover {path}: {exc}")
            return False
        logger.info(f"Deleted cover {path}")
        return True
