"""Tests for the SQLite store"""

import pytest
from datetime import date
from decimal import Decimal

from residual_audit.constants import IssueSeverity, IssueStatus, IssueType, RoleType, RuleId
from residual_audit.db.sqlite_store import SQLiteStore
from residual_audit.models import Assignment, AuditIssue, Merchant, ProcessorRecord
from residual_audit.orchestrator.pipeline import ResidualsPipeline
from residual_audit.utils.config_loader import load_config
from residual_audit.utils.errors import MasterDataUnavailableError

MONTH = "2025-05"


@pytest.fixture
def store():
    sqlite_store = SQLiteStore(":memory:")
    yield sqlite_store
    sqlite_store.close()


def count_rows(store: SQLiteStore, table: str) -> int:
    return store.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


def make_assignment(role_id: str, role_type: RoleType, percentage: str, amount: str = None) -> Assignment:
    return Assignment(
        merchant_id="M2",
        role_id=role_id,
        month=MONTH,
        percentage=Decimal(percentage),
        role_type=role_type,
        rule_id=RuleId.PARTNER_A,
        amount=Decimal(amount) if amount else None
    )


def test_assignment_upsert_is_idempotent(store):
    store.upsert_assignments([make_assignment("principal-agent", RoleType.AGENT, "20", "200.00")])
    store.upsert_assignments([make_assignment("principal-agent", RoleType.AGENT, "20", "250.00")])

    assert count_rows(store, "assignments") == 1
    (stored,) = store.list_assignments(MONTH)
    assert stored.amount == Decimal("250.00")
    assert stored.rule_id == RuleId.PARTNER_A


def test_same_role_in_two_capacities(store):
    store.upsert_assignments([
        make_assignment("principal-agent", RoleType.SALES_MANAGER, "30"),
        make_assignment("principal-agent", RoleType.AGENT, "20"),
    ])

    assert count_rows(store, "assignments") == 2
    assert {a.role_type for a in store.list_assignments(MONTH, merchant_ids=["M2"])} == {
        RoleType.SALES_MANAGER, RoleType.AGENT
    }
    assert store.list_assignments(MONTH, merchant_ids=[]) == []


def test_replace_assignments_keeps_manual_rows(store):
    manual = Assignment(merchant_id="M2", role_id="outside-referrer", month=MONTH,
                        percentage=Decimal("5"), role_type=RoleType.PARTNER)
    stale = Assignment(merchant_id="M2", role_id="sales-manager", month=MONTH, percentage=Decimal("20"),
                       role_type=RoleType.SALES_MANAGER, rule_id=RuleId.STANDARD)
    other_month = make_assignment("principal-agent", RoleType.AGENT, "20").model_copy(update={'month': "2025-04"})
    store.upsert_assignments([manual, stale, other_month])

    store.replace_assignments("M2", MONTH, [make_assignment("hbs-partner", RoleType.PARTNER, "40")])

    assert {(a.role_id, a.rule_id) for a in store.list_assignments(MONTH)} == {
        ("outside-referrer", None), ("hbs-partner", RuleId.PARTNER_A)
    }
    assert store.list_assignments("2025-04") == [other_month]


def test_processor_records_replaced_per_processor_and_month(store):
    def rec(mid, net, processor="TRX", row=1):
        return ProcessorRecord(merchant_id=mid, merchant_name="X", month=MONTH, net=Decimal(net),
                               processor_name=processor, source_row=row, group_code="HBS-1")

    store.replace_processor_records("TRX", MONTH, [rec("M1", "10.10"), rec("M2", "-3.50", row=2)])
    store.replace_processor_records("Shift4", MONTH, [rec("M9", "1", processor="Shift4")])
    store.replace_processor_records("TRX", MONTH, [rec("M1", "11.00")])

    records = store.list_processor_records(month=MONTH)
    assert [(r.processor_name, r.merchant_id, r.net) for r in records] == [
        ("Shift4", "M9", Decimal("1")),
        ("TRX", "M1", Decimal("11.00")),
    ]
    assert records[1].group_code == "HBS-1"
    assert store.list_processor_records(merchant_ids=["M9"])[0].processor_name == "Shift4"


def test_merchants_roundtrip_with_quotes(store):
    store.upsert_merchants([Merchant(merchant_id="M'1", legal_name="O'Brien's Pub")])
    store.upsert_merchants([Merchant(merchant_id="M'1", legal_name="O'Brien's Pub", dba="OBRIENS")])

    assert store.fetch_merchant_ids() == {"M'1"}
    assert store.get_merchants(["M'1"])["M'1"].dba == "OBRIENS"
    assert count_rows(store, "merchants") == 1


def test_issue_save_and_update(store):
    issue = AuditIssue(
        id="issue-1",
        run_id="run-1",
        merchant_id="M4",
        month=MONTH,
        type=IssueType.SPLIT_ERROR,
        severity=IssueSeverity.HIGH,
        description="Percentage splits total 95.00% (should be 100%)"
    )
    store.save_issues([issue])
    store.save_issues([issue])
    store.update_issue(issue.model_copy(update={'status': IssueStatus.RESOLVED, 'resolved_by': 'ops'}))

    stored = store.get_issue("issue-1")
    assert stored.status == IssueStatus.RESOLVED
    assert stored.resolved_by == "ops"
    assert count_rows(store, "audit_issues") == 1
    assert store.list_issues(month=MONTH, status=IssueStatus.OPEN) == []
    assert store.get_issue("missing") is None


def test_missing_master_table():
    uninitialized = SQLiteStore(":memory:", initialize=False)
    with pytest.raises(MasterDataUnavailableError):
        uninitialized.fetch_merchant_ids()
    uninitialized.close()


def test_pipeline_on_sqlite_is_idempotent(store):
    pipeline = ResidualsPipeline(store=store, config=load_config(), today=date(2025, 6, 15))
    pipeline.import_merchant_roster([{"Existing MID": "M2", "Legal Name": "Westside Auto LLC"}])
    pipeline.intake_upload("TRX", MONTH, [{"MID": "M2", "DBA": "WESTSIDE AUTO", "Net": "1000", "Group": "HBS-1"}])

    pipeline.resolve_assignments(MONTH)
    pipeline.resolve_assignments(MONTH)
    result = pipeline.run_audit(MONTH)

    assert count_rows(store, "assignments") == 4
    assert count_rows(store, "roles") == 6
    assert result.total_issues == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
