"""
Shared fixtures.

Every test gets its own SQLite file under tmp_path and an explicit
Settings object, so nothing depends on the environment or on test order.
Async scenarios are driven with asyncio.run.
"""

import asyncio

import pytest

from fieldledger.config import DefaultsSettings, Settings, StoreSettings, TrashSettings
from fieldledger.ledger import open_ledger


def make_settings(tmp_path, undo_window_seconds: float = 30.0) -> Settings:
    return Settings(
        store_settings=StoreSettings(
            database_path=str(tmp_path / "ledger.db"),
            retry_wait_max_seconds=0.1,
        ),
        trash_settings=TrashSettings(undo_window_seconds=undo_window_seconds),
        defaults_settings=DefaultsSettings(),
    )


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def run_ledger(settings):
    """
    Run `scenario(ledger)` against a freshly opened ledger.

    Usage:
        def test_something(self, run_ledger):
            async def scenario(ledger):
                ...
            run_ledger(scenario)
    """
    def run(scenario, ledger_settings=None):
        async def main():
            ledger = await open_ledger(ledger_settings or settings)
            try:
                return await scenario(ledger)
            finally:
                await ledger.shutdown()

        return asyncio.run(main())

    return run


@pytest.fixture
def short_undo_settings(tmp_path):
    """Settings whose undo window closes almost immediately."""
    return make_settings(tmp_path, undo_window_seconds=0.05)
