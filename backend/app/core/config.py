from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENVIRONMENT: str = "development"

    DATABASE_URL: str
    SECRET_KEY: str = "dev-insecure-key-change-in-production"
    SESSION_SECRET: str = ""
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    # Lifetime of the token handed out between password and second factor
    TWO_FACTOR_TOKEN_EXPIRE_MINUTES: int = 5

    # Password hashing cost factor
    BCRYPT_ROUNDS: int = 12

    # Account lockout
    MAX_LOGIN_ATTEMPTS: int = 5
    LOCKOUT_MINUTES: int = 60

    # Two-factor authentication
    TOTP_ISSUER: str = "Time Capsule"
    TOTP_VALID_WINDOW: int = 1
    BACKUP_CODE_COUNT: int = 10
    BACKUP_CODE_LENGTH: int = 10
    # Return the raw TOTP secret from /2fa/generate (ignored in production)
    EXPOSE_TOTP_SECRET: bool = False

    SESSION_MAX_AGE_SECONDS: int = 24 * 60 * 60

    # CORS origins, as a JSON list in the environment
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    FRONTEND_URL: str = "http://localhost:3000"

    # Redis / Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"
    DELIVERY_INTERVAL_MINUTES: int = 15

    # SMTP
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USE_TLS: bool = True
    SMTP_TIMEOUT_SECONDS: int = 10
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    EMAIL_FROM: str = "Time Capsule <no-reply@timecapsule.local>"
    NOTIFICATION_ENABLED: bool = False

    # Logging
    LOG_LEVEL: str = ""
    LOG_DIR: str = ""

    @model_validator(mode="after")
    def _fill_derived(self) -> "Settings":
        if not self.SESSION_SECRET:
            self.SESSION_SECRET = self.SECRET_KEY
        if not self.LOG_LEVEL:
            self.LOG_LEVEL = "INFO" if self.is_production else "DEBUG"
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def expose_totp_secret(self) -> bool:
        return self.EXPOSE_TOTP_SECRET and not self.is_production


settings = Settings()  # type: ignore[call-arg]
