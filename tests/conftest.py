# tests/conftest.py

"""Shared pytest fixtures for all pricewatch tests."""

from pathlib import Path

import pytest

from pricewatch.config.settings import Settings


@pytest.fixture(autouse=True)
def isolated_paths(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Keep the default database and log files out of the repo."""
    monkeypatch.setattr(Settings, "PRICE_DB_PATH", tmp_path / "pricewatch.db")
    monkeypatch.setattr(Settings, "LOGS_DIR", tmp_path / "logs")
