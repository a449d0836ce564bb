"""Application settings using Pydantic Settings for configuration management."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, SecretStr, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from inboxsync.domain.models import MailboxCredentials


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Application
    app_name: str = "inboxsync"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # Mailbox (sync is disabled while host/username/password are unset)
    imap_host: str | None = None
    imap_port: int = 993
    imap_username: str | None = None
    imap_password: SecretStr | None = None
    imap_encryption: str = "ssl"
    imap_mailbox: str = "INBOX"
    imap_spam_mailbox: str | None = None
    imap_since_days: int | None = Field(default=None, ge=0)
    imap_timeout_seconds: float = 30.0

    # Scheduling
    mail_sync_interval_minutes: int = Field(default=5, ge=1)
    mail_sync_max_messages: int = Field(default=100, ge=1)

    # Storage
    store_backend: Literal["sqlite", "postgres"] = "sqlite"
    sqlite_path: str = "/app/data/inboxsync.db"

    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "postgres"
    postgres_password: SecretStr = Field(default=SecretStr("postgres"))
    postgres_db: str = "crm"

    @computed_field
    @property
    def postgres_dsn(self) -> str:
        """Construct PostgreSQL connection string."""
        password = self.postgres_password.get_secret_value()
        return f"postgresql://{self.postgres_user}:{password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"

    def mailbox_credentials(self) -> Optional[MailboxCredentials]:
        """Credentials for the synced mailbox, or None when not configured."""
        if not (self.imap_host and self.imap_username and self.imap_password):
            return None
        return MailboxCredentials(
            host=self.imap_host,
            port=self.imap_port,
            username=self.imap_username,
            secret=self.imap_password,
            encryption=self.imap_encryption,
            mailbox=self.imap_mailbox,
            spam_mailbox=self.imap_spam_mailbox,
            since_days=self.imap_since_days,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class SettingsCredentialsProvider:
    """Reads mailbox credentials from Settings on every call."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def get_credentials(self) -> Optional[MailboxCredentials]:
        return self.settings.mailbox_credentials()


class StaticCredentialsProvider:
    """Fixed credentials, e.g. loaded from the CRM's tenant settings record."""

    def __init__(self, credentials: Optional[MailboxCredentials]):
        self.credentials = credentials

    def get_credentials(self) -> Optional[MailboxCredentials]:
        return self.credentials
