"""Command-line entry points."""

from pathlib import Path

import pytest
from sqlalchemy import create_engine, inspect

from sheetchain.scripts import init_store, migrate


def test_init_store_memory_backend(capsys: pytest.CaptureFixture[str]) -> None:
    assert init_store.main(["--backend", "memory", "--skip-db"]) == 0
    assert "Balances, Transactions, Claims, Bridge" in capsys.readouterr().out


def test_init_store_reports_configuration_errors(mocker) -> None:
    mocker.patch.object(init_store.settings, "google_sheet_id", None)
    assert init_store.main(["--backend", "google", "--skip-db"]) == 1


def test_migrate_upgrades_to_head(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    url = f"sqlite:///{tmp_path / 'migrated.db'}"
    monkeypatch.setenv("ALEMBIC_URL", url)

    migrate.run_upgrade_head()

    engine = create_engine(url)
    tables = set(inspect(engine).get_table_names())
    engine.dispose()
    assert {"sheet_rows", "bridge_events", "alembic_version"} <= tables
