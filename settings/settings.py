import logging

from pydantic import BaseModel, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings

from mailsync.environment import EnvironmentName
from settings.log import LoggingSettings


class DatabaseSettings(BaseSettings):
    host: str = Field(alias="DATABASE_HOST", default="postgresql://localhost:5432")
    name: str = Field(alias="DATABASE_NAME", default="mailsync")
    min_pool_size: int = Field(alias="DATABASE_MIN_POOL_SIZE", default=5)
    max_pool_size: int = Field(alias="DATABASE_MAX_POOL_SIZE", default=20)

    @property
    def async_host(self) -> str:
        """Return the host URL with async driver for SQLAlchemy async engine."""
        return self.host.replace("postgresql://", "postgresql+asyncpg://", 1)

    @property
    def url(self) -> str:
        return f"{self.async_host}/{self.name}"


class IMAPSettings(BaseSettings):
    timeout: int = Field(alias="IMAP_TIMEOUT", default=30)
    command_timeout: int = Field(alias="IMAP_COMMAND_TIMEOUT", default=60)
    default_port: int = Field(alias="IMAP_DEFAULT_PORT", default=993)
    connection_max_age: int = Field(alias="IMAP_CONNECTION_MAX_AGE", default=1800)


class IMAPErrorPatternSettings(BaseSettings):
    """Provider error signatures, matched case-insensitively against error text."""

    throttle: list[str] = Field(
        alias="IMAP_THROTTLE_PATTERNS",
        default=[
            "[THROTTLED]",
            "throttled",
            "rate limit",
            "too many requests",
            "quota exceeded",
            "temporary failure",
            "try again",
            "system error",
        ],
    )
    auth: list[str] = Field(
        alias="IMAP_AUTH_PATTERNS",
        default=[
            "not authenticated",
            "authenticationfailed",
            "authentication failed",
            "invalid credentials",
            "login failed",
            "[auth]",
        ],
    )
    not_found: list[str] = Field(
        alias="IMAP_NOT_FOUND_PATTERNS",
        default=["unknown mailbox", "nonexistent", "does not exist", "no such mailbox", "mailbox doesn't exist"],
    )
    connection: list[str] = Field(
        alias="IMAP_CONNECTION_PATTERNS",
        default=[
            "ended unexpectedly",
            "connection reset",
            "connection closed",
            "connection lost",
            "broken pipe",
            "econnreset",
        ],
    )


class RetrySettings(BaseModel):
    max_retries: int
    base_delay: float
    max_delay: float


class SyncSettings(BaseSettings):
    interval: int = Field(alias="SYNC_INTERVAL", default=600)
    batch_size: int = Field(alias="SYNC_BATCH_SIZE", default=50)
    batch_delay: float = Field(alias="SYNC_BATCH_DELAY", default=1.0)
    throttle_pause: float = Field(alias="SYNC_THROTTLE_PAUSE", default=5.0)
    default_folder: str = Field(alias="SYNC_DEFAULT_FOLDER", default="INBOX")
    open_folder_retry: RetrySettings = Field(
        alias="SYNC_OPEN_FOLDER_RETRY", default=RetrySettings(max_retries=3, base_delay=2.0, max_delay=30.0)
    )
    enumerate_retry: RetrySettings = Field(
        alias="SYNC_ENUMERATE_RETRY", default=RetrySettings(max_retries=5, base_delay=3.0, max_delay=60.0)
    )


class WebhookSettings(BaseSettings):
    url: str | None = Field(alias="WEBHOOK_URL", default=None)
    secret: str | None = Field(alias="WEBHOOK_SECRET", default=None)
    max_retries: int = Field(alias="WEBHOOK_MAX_RETRIES", default=3)
    timeout: int = Field(alias="WEBHOOK_TIMEOUT", default=10)


class SentrySettings(BaseSettings):
    dsn: str | None = Field(alias="SENTRY_DSN", default=None)

    @property
    def is_enabled(self) -> bool:
        return bool(self.dsn)


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "extra": "allow"}

    environment: EnvironmentName = Field(alias="ENVIRONMENT")
    password_encryption_key: str = Field(alias="PASSWORD_ENCRYPTION_KEY")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    imap: IMAPSettings = Field(default_factory=IMAPSettings)
    imap_errors: IMAPErrorPatternSettings = Field(default_factory=IMAPErrorPatternSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)

    @field_validator("environment", mode="before")
    def set_environment(cls, environment: str, info: ValidationInfo) -> EnvironmentName:
        try:
            return EnvironmentName(environment)
        except ValueError:
            logging.getLogger(__name__).warning(f"Invalid environment: {environment}")
            return EnvironmentName.DEVELOPMENT
