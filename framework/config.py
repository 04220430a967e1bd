from typing import Optional
from urllib.parse import quote_plus
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # --- Basic configuration ---
    APP_NAME: str = "Model Library"
    APP_DESCRIPTION: str = "Multi-tenant 3D model library with quota, retention and account deletion enforcement"
    APP_VERSION: str = "1.0.0"
    APP_ENV: str = "development"  # development, production, testing
    DEBUG: bool = True
    SECRET_KEY: str = "your-super-secret-key-change-it-in-production"
    WEB_URL: str = "http://localhost:3000"

    # --- Database (MySQL/SQLModel) ---
    DB_HOST: str = "localhost"
    DB_PORT: int = 3306
    DB_USER: str = "root"
    DB_PASSWORD: str = "root"
    DB_NAME: str = "model_library"

    @property
    def DATABASE_URL(self) -> str:
        # Build async MySQL connection URL
        safe_password = quote_plus(self.DB_PASSWORD)
        return f"mysql+aiomysql://{self.DB_USER}:{safe_password}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # --- Redis (sweep job locks) ---
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    @property
    def REDIS_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # --- Object storage (S3-compatible: R2, MinIO, S3) ---
    STORAGE_ENDPOINT: str = "localhost:9000"
    STORAGE_USE_SSL: bool = False
    STORAGE_REGION: str = "auto"
    STORAGE_ACCESS_KEY: str = "minioadmin"
    STORAGE_SECRET_KEY: str = "minioadmin"
    STORAGE_BUCKET_NAME: str = "models"
    STORAGE_TIMEOUT_SECONDS: float = 30.0
    STORAGE_DELETE_BATCH_SIZE: int = 1000  # S3 DeleteObjects accepts at most 1000 keys
    DOWNLOAD_URL_TTL_MINUTES: int = 60

    @property
    def STORAGE_ENDPOINT_URL(self) -> str:
        scheme = "https" if self.STORAGE_USE_SSL else "http"
        return f"{scheme}://{self.STORAGE_ENDPOINT}"

    # --- Billing provider ---
    BILLING_DRIVER: str = "mock"  # mock, stripe
    STRIPE_API_KEY: Optional[str] = None
    BILLING_TIMEOUT_SECONDS: float = 20.0

    # --- Grace period / retention / account deletion (days) ---
    GRACE_PERIOD_DAYS: int = 7
    RETENTION_PERIOD_DAYS: int = 30  # counted from the grace deadline
    ACCOUNT_DELETION_DELAY_DAYS: int = 30

    # --- Sweep sanity ceilings (disaster-recovery tooling may override) ---
    RETENTION_MAX_TENANTS_PER_RUN: int = 5000
    ACCOUNT_DELETION_MAX_USERS_PER_RUN: int = 500
    SWEEP_LOCK_TTL_SECONDS: int = 60 * 60

    # --- Notification service ---
    NOTIFICATION_DRIVER: str = "mock"  # mock, email
    NOTIFICATION_TIMEOUT_SECONDS: float = 15.0
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: Optional[int] = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None

    # --- Cookie ---
    ACCESS_TOKEN_COOKIE_NAME: str = "access_token"

    # --- Logging ---
    LOG_DIR: str = "logs"

    # --- API route prefixes (optional, overridable in private projects) ---
    API_V1_MODELS_PREFIX: str = "/api/v1/models"
    API_V1_BILLING_PREFIX: str = "/api/v1/billing"
    API_V1_ACCOUNT_PREFIX: str = "/api/v1/account"

    # --- Gunicorn process name (optional) ---
    GUNICORN_PROC_NAME: Optional[str] = None  # Fallback to APP_NAME when empty

    # --- Pydantic ---
    # Load env from project root .env; priority: env vars > .env > defaults
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )


# Singleton settings instance
settings = Settings()
