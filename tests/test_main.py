"""Tests for the command-line entry point"""

import json
import pytest

from residual_audit.main import main


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    monkeypatch.setenv("STATE_BACKEND", "memory")
    roster = tmp_path / "leads.csv"
    roster.write_text("Existing MID,Legal Name,DBA\n4445012345678,Blu Sushi LLC,BLU SUSHI\n")
    report = tmp_path / "trx_may.csv"
    report.write_text(
        "TRX Residual Report,,\n"
        "MID,DBA,Net\n"
        "4445012345678,BLU SUSHI,250.00\n"
        "9990001112223,UNKNOWN LLC,1500.00\n"
    )
    return tmp_path


def run(workspace, *args) -> int:
    return main(["--db", str(workspace / "residuals.db"), *args])


def test_cli_end_to_end(workspace, capsys):
    assert run(workspace, "roster", str(workspace / "leads.csv")) == 0
    assert json.loads(capsys.readouterr().out) == {'created': 1, 'updated': 0, 'skipped_rows': 0}

    assert run(workspace, "upload", str(workspace / "trx_may.csv"), "--processor", "TRX", "--month", "2025-05") == 0
    assert "Overall Status: PASSED" in capsys.readouterr().out

    assert run(workspace, "resolve", "--month", "2025-05") == 0
    assignments = json.loads(capsys.readouterr().out)
    assert {a['rule_id'] for a in assignments} == {'standard', 'partner_a'}

    assert run(workspace, "audit", "--month", "2025-05") == 0
    audit = json.loads(capsys.readouterr().out)
    assert audit['status'] == 'completed'
    assert audit['counts'] == {'split_error': 0, 'missing_assignment': 0, 'unmatched_mid': 1}

    assert run(workspace, "metrics", "--start", "2025-05", "--end", "2025-05", "--top", "1") == 0
    metrics = json.loads(capsys.readouterr().out)
    assert metrics['months'][0]['total_accounts'] == 2
    assert metrics['concentration']['risk_level'] == 'high'


def test_cli_rejected_upload_exit_code(workspace, capsys):
    bad = workspace / "clearent.csv"
    bad.write_text("MID,DBA,Net,Date\nABC,BAD,-1,2025-05-01\n")

    assert run(workspace, "upload", str(bad), "--processor", "Clearent", "--month", "2025-05") == 1
    assert "Overall Status: FAILED" in capsys.readouterr().out


def test_cli_resolve_unknown_issue(workspace):
    assert run(workspace, "resolve-issue", "missing-id") == 1


def test_cli_unopenable_database(tmp_path, monkeypatch):
    monkeypatch.setenv("STATE_BACKEND", "memory")
    db_path = tmp_path / "no-such-dir" / "residuals.db"

    assert main(["--db", str(db_path), "audit", "--month", "2025-05"]) == 1
