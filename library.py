import logging
from datetime import datetime
from typing import Callable, Optional

from auth import AuthService
from catalog import CatalogService
from circulation import CirculationService
from config import Settings, settings as default_settings
from covers import CoverStore
from database import Database
from members import MembershipService
from reports import ReportingService

logger = logging.getLogger(__name__)


class Library:
    """Veritabanı havuzunu ve onun üzerine kurulan servisleri bir arada tutar.

    HTTP uygulaması da CLI da bunu kullanır; böylece tüm servisler açık bir
    ``open()``/``close()`` yaşam döngüsüyle tek bir havuzu paylaşır.
    """

    def __init__(self, config: Optional[Settings] = None,
                 clock: Optional[Callable[[], datetime]] = None) -> None:
        self.config = config or default_settings
        self.db = Database(self.config.database_file, self.config.database_pool_size)
        self.covers = CoverStore(self.config)
        self.catalog = CatalogService(self.db, self.covers, self.config)
        self.members = MembershipService(self.db)
        self.auth = AuthService(self.db)
        self.circulation = CirculationService(self.db, self.config, clock=clock)
        self.reports = ReportingService(self.db, self.config)

    # ------------------------- Yaşam Döngüsü ------------------------- #
    def open(self) -> "Library":
        """Bağlanır ya da hata verir; yükleme klasörünün var olduğundan emin olur."""
        self.db.connect()
        self.covers.ensure_dir()
        logger.info(f"{self.config.app_name} opened (db={self.config.database_file})")
        return self

    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> "Library":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
