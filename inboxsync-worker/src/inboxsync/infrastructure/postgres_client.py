"""PostgreSQL client for the CRM message store, sync cursors and contacts."""

import psycopg
from loguru import logger

from inboxsync.infrastructure.settings import Settings, get_settings


class PostgresClientWrapper:
    """Wrapper for PostgreSQL connection handling and schema setup."""

    def __init__(self, settings: Settings | None = None):
        """Initialize PostgreSQL client wrapper."""
        self.settings = settings or get_settings()
        self._connection: psycopg.Connection | None = None

    def connect(self) -> psycopg.Connection:
        """Establish connection to PostgreSQL."""
        if self._connection is None or self._connection.closed:
            logger.info(f"Connecting to PostgreSQL at {self.settings.postgres_host}:{self.settings.postgres_port}")
            self._connection = psycopg.connect(self.settings.postgres_dsn)
            logger.info("PostgreSQL connection established")
        return self._connection

    def disconnect(self) -> None:
        """Close PostgreSQL connection."""
        if self._connection is not None and not self._connection.closed:
            self._connection.close()
            self._connection = None
            logger.info("PostgreSQL connection closed")

    @property
    def connection(self) -> psycopg.Connection:
        """Get or create PostgreSQL connection."""
        if self._connection is None or self._connection.closed:
            return self.connect()
        return self._connection

    def setup_schema(self) -> None:
        """Create the tables the sync engine reads and writes."""
        conn = self.connect()
        with conn.cursor() as cur:
            cur.execute("""
                CREATE TABLE IF NOT EXISTS sync_cursors (
                    mailbox_id VARCHAR(512) PRIMARY KEY,
                    last_position BIGINT NOT NULL CHECK (last_position >= 0),
                    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS customer_contacts (
                    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                    customer_id UUID,
                    email VARCHAR(320) NOT NULL,
                    name VARCHAR(255)
                );

                CREATE INDEX IF NOT EXISTS idx_customer_contacts_email ON customer_contacts(lower(email));

                CREATE TABLE IF NOT EXISTS customer_messages (
                    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                    external_id VARCHAR(998) NOT NULL UNIQUE,
                    direction VARCHAR(16) NOT NULL,
                    status VARCHAR(16) NOT NULL,
                    is_spam BOOLEAN NOT NULL DEFAULT FALSE,
                    mailbox VARCHAR(255) NOT NULL,
                    subject TEXT NOT NULL,
                    preview VARCHAR(200) NOT NULL,
                    body TEXT NOT NULL,
                    from_email VARCHAR(320),
                    to_email VARCHAR(320),
                    contact_id UUID,
                    customer_id UUID,
                    received_at TIMESTAMP WITH TIME ZONE NOT NULL,
                    sent_at TIMESTAMP WITH TIME ZONE NOT NULL,
                    attachments JSONB NOT NULL DEFAULT '[]'::jsonb,
                    created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
                );

                CREATE INDEX IF NOT EXISTS idx_customer_messages_customer
                    ON customer_messages(customer_id, received_at);
            """)
            conn.commit()
            logger.info("Database schema setup complete")
