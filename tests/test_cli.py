# tests/test_cli.py
import csv

import pytest

from conftest import portal_row
from src.cli import create_user, stage_report
from src.services.auth_service import verify_password

pytestmark = pytest.mark.unit


def test_create_user_then_reset(fake_tables, capsys):
    assert create_user.main(["--user-id", "meena", "--password", "pw1", "--pages", "Dashboard,Survey"]) == 0
    row = fake_tables.by("users", "user_id", "meena")
    assert row["role"] == "User"
    assert row["page_access"] == "Dashboard,Survey"
    assert "Created User" in capsys.readouterr().out

    fake_tables.by("users", "user_id", "meena")["status"] = "Inactive"
    assert create_user.main(["--user-id", "MEENA", "--password", "pw2"]) == 0
    row = fake_tables.by("users", "user_id", "meena")
    assert row["status"] == "Active"
    assert verify_password("pw2", row["password_hash"])
    assert row["page_access"] == "Dashboard,Survey"


def test_create_user_rejects_unknown_page(fake_tables):
    with pytest.raises(SystemExit):
        create_user.main(["--user-id", "x", "--password", "pw", "--pages", "Agents"])
    assert fake_tables.rows("users") == []


@pytest.fixture
def installs(fake_tables):
    fake_tables.seed("portal", [portal_row("R1"), portal_row("R2", district="Hardoi")])
    fake_tables.seed("installation", [
        {"id": 1, "reg_id": "R1", "planned_4": "2024-03-01", "actual_4": None},
        {"id": 2, "reg_id": "R2", "planned_4": "2024-03-01", "actual_4": None},
    ])
    return fake_tables


def test_stage_report_counts(installs, capsys):
    assert stage_report.main([]) == 0
    lines = capsys.readouterr().out.splitlines()
    install_line = next(line for line in lines if "installation" in line)
    assert install_line.split()[-2:] == ["2", "0"]


def test_stage_report_export(installs, tmp_path):
    out = tmp_path / "install.csv"
    stage_report.main(["--stage", "installation", "--filter", "district=Hardoi", "--out", str(out)])
    with out.open(encoding="utf-8") as fh:
        rows = list(csv.DictReader(fh))
    assert [r["reg_id"] for r in rows] == ["R2"]
    assert rows[0]["installation_status"] == ""


def test_stage_report_bad_filter(installs):
    with pytest.raises(SystemExit):
        stage_report.main(["--stage", "installation", "--filter", "district"])
