from decimal import Decimal
from pydantic_settings import BaseSettings
from typing import Optional
from pathlib import Path

# Find .env file - check chitfund/ directory first, then project root
BASE_DIR = Path(__file__).resolve().parent.parent.parent
APP_ENV = BASE_DIR / "chitfund" / ".env"
ROOT_ENV = BASE_DIR / ".env"

# Use chitfund/.env if it exists, otherwise try root .env
env_file = str(APP_ENV) if APP_ENV.exists() else (str(ROOT_ENV) if ROOT_ENV.exists() else ".env")


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str
    SQL_ECHO: bool = False

    # JWT
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Fund rules
    MONTHLY_CONTRIBUTION_AMOUNT: Decimal = Decimal("500.00")
    MONTHLY_DUES_AMOUNT: Decimal = Decimal("500.00")
    BULK_USER_EMAIL_DOMAIN: str = "withusfs.com"

    # Uploads
    UPLOADS_DIR: Optional[str] = None
    MAX_PROOF_UPLOAD_BYTES: int = 5 * 1024 * 1024
    PROOF_FILES_BASE_URL: str = "/api/proofs/files"

    # Scheduler
    ENABLE_SCHEDULER: bool = True
    NOTIFICATION_CRON_HOUR: int = 6
    ENABLE_SCHEDULED_MONTHLY_DUES: bool = False

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOGS_DIR: Optional[str] = None
    CORS_ORIGINS: str = "*"

    class Config:
        env_file = env_file
        case_sensitive = True


settings = Settings()

# Derived paths
UPLOADS_DIR = Path(settings.UPLOADS_DIR) if settings.UPLOADS_DIR else BASE_DIR / "uploads"
PAYMENT_PROOFS_DIR = UPLOADS_DIR / "payment_proofs"
LOGS_DIR = Path(settings.LOGS_DIR) if settings.LOGS_DIR else BASE_DIR / "logs"
