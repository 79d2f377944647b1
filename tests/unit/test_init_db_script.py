"""Tests for scripts/init_db.py: schema creation driven by the YAML configuration."""

import pytest
from sqlalchemy import inspect

from sales_kernel.db.engine import get_engine, reset_engine
from scripts.init_db import main

SALES_TABLES = {
    "sales",
    "sale_lines",
    "ledger_entries",
    "payments",
    "payment_applications",
    "sequence_counters",
}


@pytest.fixture
def _engine_cleanup():
    yield
    reset_engine()


def _config_file(tmp_path, db_path):
    path = tmp_path / "sales.yaml"
    path.write_text(f"database:\n  url: sqlite:///{db_path}\nlogging:\n  level: warning\n")
    return path


def test_creates_every_table(tmp_path, _engine_cleanup, capsys):
    db_path = tmp_path / "init.db"
    assert main(["--config", str(_config_file(tmp_path, db_path))]) == 0

    assert SALES_TABLES <= set(inspect(get_engine()).get_table_names())
    assert db_path.exists()
    assert "Done." in capsys.readouterr().out


def test_reset_recreates(tmp_path, _engine_cleanup):
    config = str(_config_file(tmp_path, tmp_path / "init.db"))
    assert main(["--config", config]) == 0
    assert main(["--config", config, "--reset"]) == 0
    assert SALES_TABLES <= set(inspect(get_engine()).get_table_names())


def test_db_url_overrides_config(tmp_path, _engine_cleanup):
    override = tmp_path / "override.db"
    config = str(_config_file(tmp_path, tmp_path / "unused.db"))
    assert main(["--config", config, "--db-url", f"sqlite:///{override}"]) == 0
    assert override.exists()
    assert not (tmp_path / "unused.db").exists()


def test_bad_config_reported(tmp_path, capsys):
    path = tmp_path / "sales.yaml"
    path.write_text("receivables:\n  default_credit_days: 0\n")
    assert main(["--config", str(path)]) == 1
    assert "ERROR" in capsys.readouterr().err
