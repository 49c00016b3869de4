"""
Configuration Management for Field Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All process configuration is centralized here.
The persisted business settings record (labor rate, tax, invoice counter,
company profile) lives in the store; the defaults below only seed it on
first run.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """Durable store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIELDLEDGER_STORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    database_path: str = Field(
        default="fieldledger.db",
        description="SQLite database file, or ':memory:' for a private in-memory store"
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements to the log"
    )
    write_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for a unit of work that hits a busy database"
    )
    retry_wait_max_seconds: float = Field(
        default=2.0,
        ge=0.0,
        le=30.0,
        description="Upper bound on backoff between attempts"
    )

    @field_validator('database_path')
    @classmethod
    def validate_database_path(cls, v: str) -> str:
        """Warn if the parent directory doesn't exist (but don't fail - might be mounted later)."""
        if v != ":memory:" and not Path(v).expanduser().parent.exists():
            import warnings
            warnings.warn(
                f"Directory for database {v} does not exist. "
                "Make sure it exists before opening the ledger."
            )
        return v

    @property
    def is_memory(self) -> bool:
        return self.database_path == ":memory:"


class TrashSettings(BaseSettings):
    """Undo window for deleted jobs."""

    model_config = SettingsConfigDict(
        env_prefix="FIELDLEDGER_TRASH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    undo_window_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=3600.0,
        description="How long a deleted job can be restored"
    )


class DefaultsSettings(BaseSettings):
    """First-run business defaults and attachment limits."""

    model_config = SettingsConfigDict(
        env_prefix="FIELDLEDGER_DEFAULTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    labor_rate_cents: int = Field(
        default=8500,
        ge=0,
        description="Default hourly labor rate in cents"
    )
    tax_rate: float = Field(
        default=8.25,
        ge=0.0,
        le=100.0,
        description="Default tax rate as a percentage"
    )
    invoice_prefix: str = Field(
        default="INV-",
        max_length=20,
        description="Prefix for issued invoice numbers"
    )
    first_invoice_number: int = Field(
        default=1001,
        ge=1,
        description="Counter value for the first invoice issued"
    )
    invoice_number_width: int = Field(
        default=4,
        ge=1,
        le=12,
        description="Zero-pad width of the invoice counter"
    )
    invoice_due_days: int = Field(
        default=30,
        ge=0,
        le=365,
        description="Days between invoice date and due date"
    )
    company_name: str = Field(
        default="",
        max_length=200,
        description="Company name for a fresh ledger"
    )
    max_attachment_bytes: int = Field(
        default=5 * 1024 * 1024,
        ge=1,
        description="Largest attachment the ledger will reference"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access. Tests build one directly
    with explicit sub-settings instead of reading the environment.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    store_settings: StoreSettings | None = None
    trash_settings: TrashSettings | None = None
    defaults_settings: DefaultsSettings | None = None

    @property
    def store(self) -> StoreSettings:
        return self.store_settings or StoreSettings()

    @property
    def trash(self) -> TrashSettings:
        return self.trash_settings or TrashSettings()

    @property
    def defaults(self) -> DefaultsSettings:
        return self.defaults_settings or DefaultsSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("store", "trash", "defaults"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
