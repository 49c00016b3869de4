"""Tests for process configuration."""

import pytest
from pydantic import ValidationError

from fieldledger.config import (
    DefaultsSettings,
    Settings,
    StoreSettings,
    TrashSettings,
    get_settings,
    validate_all_settings,
)


class TestSettings:
    """Tests for pydantic-settings configuration."""

    def test_defaults(self):
        defaults = DefaultsSettings()
        assert defaults.labor_rate_cents == 8500
        assert defaults.tax_rate == 8.25
        assert defaults.first_invoice_number == 1001
        assert defaults.max_attachment_bytes == 5 * 1024 * 1024
        assert TrashSettings().undo_window_seconds == 30.0

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("FIELDLEDGER_TRASH_UNDO_WINDOW_SECONDS", "12")
        monkeypatch.setenv("FIELDLEDGER_STORE_DATABASE_PATH", ":memory:")
        assert TrashSettings().undo_window_seconds == 12.0
        assert StoreSettings().is_memory

    def test_explicit_sub_settings_win(self, tmp_path):
        store = StoreSettings(database_path=str(tmp_path / "x.db"))
        settings = Settings(store_settings=store)
        assert settings.store is store

    def test_invalid_values_rejected(self):
        with pytest.raises(ValidationError):
            TrashSettings(undo_window_seconds=0)
        with pytest.raises(ValidationError):
            StoreSettings(write_retry_attempts=0)

    def test_missing_database_directory_warns(self, tmp_path):
        with pytest.warns(UserWarning, match="does not exist"):
            StoreSettings(database_path=str(tmp_path / "nope" / "ledger.db"))

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
            assert validate_all_settings()["store"] is True
        finally:
            get_settings.cache_clear()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
