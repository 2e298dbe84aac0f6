import os
from dataclasses import dataclass, field
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API Ayarları
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "3000"))

    # Veritabanı Ayarları
    database_file: str = os.getenv("LIBRARY_DB_FILE", "library.db")
    database_pool_size: int = int(os.getenv("DATABASE_POOL_SIZE", "5"))

    # Statik Dosya ve Yükleme Ayarları
    frontend_dir: str = os.getenv("FRONTEND_DIR", "frontend")
    upload_dir: str = os.getenv("UPLOAD_DIR", "")
    default_cover: str = os.getenv("DEFAULT_COVER", "/uploads/default-book.jpg")
    max_upload_size: int = int(os.getenv("MAX_UPLOAD_SIZE", "10485760"))  # 10MB
    allowed_image_extensions: list = field(
        default_factory=lambda: [".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg"]
    )

    # Ödünç Verme Kuralları
    default_loan_days: int = int(os.getenv("DEFAULT_LOAN_DAYS", "7"))
    max_loan_days: int = int(os.getenv("MAX_LOAN_DAYS", "365"))
    fine_per_day: int = int(os.getenv("FINE_PER_DAY", "5"))
    report_limit: int = int(os.getenv("REPORT_LIMIT", "10"))

    # Güvenlik Ayarları
    require_auth: bool = _env_flag("REQUIRE_AUTH", "True")

    # Uygulama Ayarları
    app_name: str = os.getenv("APP_NAME", "Library Desk")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    debug: bool = _env_flag("DEBUG", "False")

    def __post_init__(self) -> None:
        # Ayrıca belirtilmediyse yüklemeler ön yüz klasörünün altında tutulur
        if not self.upload_dir:
            self.upload_dir = os.path.join(self.frontend_dir, "uploads")


settings = Settings()
