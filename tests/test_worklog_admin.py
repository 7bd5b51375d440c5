"""End-to-end run of the admin script against a scratch SQLite file."""

import pytest

from scripts.worklog_admin import main
from worklog_kernel.db.engine import reset_engine


@pytest.fixture
def db_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'admin.db'}"
    assert main(["--db", url, "init-db"]) == 0
    yield url
    reset_engine()


def test_close_verify_and_chain(db_url, capsys):
    assert main(["--db", db_url, "close-week", "2024-03-08", "--actor", "T100"]) == 0
    assert "closed: Week 2024-03-08 closed" in capsys.readouterr().out

    assert main(["--db", db_url, "close-week", "2024-03-08"]) == 0
    assert capsys.readouterr().out.startswith("already_closed")

    assert main(["--db", db_url, "verify-report", "2024-03-08"]) == 0
    assert "Weekly Worklog Summary - Week 2024-03-08" in capsys.readouterr().out

    assert main(["--db", db_url, "adjusted-summary", "2024-03-08"]) == 0
    assert "0 adjustment(s)" in capsys.readouterr().out

    assert main(["--db", db_url, "check-audit-chain"]) == 0


def test_refused_operations_exit_nonzero(db_url, capsys):
    assert main(["--db", db_url, "close-week", "03/08/2024"]) == 1
    assert main(["--db", db_url, "verify-report", "2024-03-08"]) == 1
    assert "WEEK_NOT_CLOSED" in capsys.readouterr().err


def test_bad_config_path(tmp_path, capsys):
    assert main(["--config", str(tmp_path / "missing.yaml"), "show-config"]) == 2
    assert "Configuration error" in capsys.readouterr().err


def test_show_config(capsys):
    assert main(["show-config"]) == 0
    out = capsys.readouterr().out
    assert "Weekly Worklog Summary" in out
    assert "role paraprofessional:" in out
