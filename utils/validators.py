import math
import re
from typing import Any, Dict, Optional

from errors import BadRequestError, MissingFieldError

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class ISBNValidator:
    """ISBN temizliği. Katalog ISBN saklar ama hatalı sağlama toplamını reddetmez."""

    @staticmethod
    def normalize_isbn(raw: Optional[str]) -> Optional[str]:
        if raw is None:
            return None
        s = re.sub(r"[^0-9Xx]", "", str(raw))
        return s.upper() or None


class FieldValidator:
    """Herhangi bir yazmadan önce istek verisine uygulanan kontroller ve dönüşümler."""

    @staticmethod
    def require(data: Dict[str, Any], *names: str) -> None:
        missing = [name for name in names if not FieldValidator._present(data.get(name))]
        if missing:
            raise MissingFieldError(f"Missing required field(s): {', '.join(missing)}")

    @staticmethod
    def _present(value: Any) -> bool:
        if value is None:
            return False
        if isinstance(value, str):
            return bool(value.strip())
        return True

    @staticmethod
    def normalize_email(raw: Optional[str]) -> str:
        return (raw or "").strip().lower()

    @staticmethod
    def coerce_year(raw: Any) -> Optional[int]:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return None
        if isinstance(raw, bool):
            raise BadRequestError("year must be an integer")
        if isinstance(raw, int):
            return raw
        if isinstance(raw, float) and raw.is_integer():
            return int(raw)
        if isinstance(raw, str) and re.fullmatch(r"\s*[+-]?\d+\s*", raw):
            return int(raw)
        raise BadRequestError("year must be an integer")

    @staticmethod
    def coerce_loan_days(raw: Any, default: int = 7, maximum: Optional[int] = None) -> int:
        """Ödünç süresini pozitif bir tam sayıya çevirir.

        Tam sayılar, ondalıklı sayılar (kırpılarak) ve başında tam sayı olan
        metinler ("10", "10 days") kabul edilir. Geri kalanı, sıfır ya da
        negatif değerler ``default`` olur. ``maximum`` üstü reddedilir.
        """
        days: Optional[int] = None
        if isinstance(raw, bool) or raw is None:
            days = None
        elif isinstance(raw, int):
            days = raw
        elif isinstance(raw, float):
            days = int(raw) if math.isfinite(raw) else None
        elif isinstance(raw, str):
            match = _LEADING_INT.match(raw)
            days = int(match.group(1)) if match else None
        if days is None or days <= 0:
            return default
        if maximum is not None and days > maximum:
            raise BadRequestError(f"days must be at most {maximum}")
        return days
