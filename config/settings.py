"""
Centralized configuration using pydantic-settings.

How it works:
- Reads environment variables automatically (e.g., SMTP_HOST env var → Settings.SMTP_HOST)
- Falls back to defaults defined here if env vars are not set
- Can also read from a .env file in the project root

Every module imports `settings` from here instead of hardcoding values.
List-valued keys (DEFAULT_CC_ADDRESSES) are given as JSON in the environment:
    DEFAULT_CC_ADDRESSES='["ops@example.com", "sales@example.com"]'
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── PostgreSQL (segments, prospects, campaigns, tracking) ───
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "prospect_mailer"
    POSTGRES_PASSWORD: str = "prospect_mailer"
    POSTGRES_DB: str = "prospect_mailer"

    # ── SMTP transport ──────────────────────────────────────────
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587               # 465 → implicit TLS, anything else → STARTTLS
    SMTP_USER: str = ""
    SMTP_PASS: str = ""
    SMTP_TIMEOUT: float = 30.0         # seconds per SMTP conversation

    # ── Message defaults (spreadsheet uploads) ──────────────────
    DEFAULT_SENDER_EMAIL: str = ""
    DEFAULT_SUBJECT: str = "Following up on your interest"
    DEFAULT_CC_ADDRESSES: list[str] = []

    # ── Dispatch pacing ─────────────────────────────────────────
    BATCH_SIZE: int = 1                # recipients per batch
    BATCH_DELAY_MINUTES: float = 5.0   # pause between batches
    SEND_CONCURRENCY: int = 5          # max in-flight sends across all jobs

    # ── Job history ─────────────────────────────────────────────
    JOB_HISTORY_LIMIT: int = 20
    RECENT_EVENTS_LIMIT: int = 10
    HISTORY_FAILURES_LIMIT: int = 5

    # ── Result artifacts & tracking ─────────────────────────────
    RESULT_TIMEZONE: str = "Asia/Kolkata"
    TRACKING_BASE_URL: str = "http://localhost:8000"
    TRACKING_SECRET: str = "dev-tracking-secret"   # signs click redirects; set per deployment

    # ── App ─────────────────────────────────────────────────────
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    @property
    def database_url(self) -> str:
        """Async connection string (uses asyncpg driver)."""
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def smtp_configured(self) -> bool:
        """True when host and credentials are all present."""
        return bool(self.SMTP_HOST and self.SMTP_USER and self.SMTP_PASS)

    @property
    def batch_size(self) -> int:
        return max(1, self.BATCH_SIZE)

    @property
    def batch_delay_seconds(self) -> float:
        return max(0.0, self.BATCH_DELAY_MINUTES) * 60.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton, import this everywhere
settings = Settings()
