"""Tests for reconciliation checks"""

import pytest
from decimal import Decimal

from residual_audit.constants import IssueSeverity, IssueType, RoleType
from residual_audit.models import Assignment, ProcessorRecord
from residual_audit.tools.reconciliation_tools import (
    detect_split_errors,
    detect_missing_assignments,
    detect_unmatched_mids,
    issue_id,
    unmatched_severity
)

MONTH = "2025-05"
RUN_ID = "run-1"


def assignment(merchant_id: str, role_id: str, percentage: str, role_type=RoleType.AGENT, month=MONTH) -> Assignment:
    return Assignment(
        merchant_id=merchant_id,
        role_id=role_id,
        month=month,
        percentage=Decimal(percentage),
        role_type=role_type
    )


def record(merchant_id: str, net: str = "100", month: str = MONTH, processor: str = "TRX") -> ProcessorRecord:
    return ProcessorRecord(
        merchant_id=merchant_id,
        merchant_name=f"Merchant {merchant_id}",
        month=month,
        net=Decimal(net),
        processor_name=processor
    )


def test_split_error_reports_actual_sum():
    assignments = [
        assignment("M4", "principal-agent", "70"),
        assignment("M4", "sales-manager", "25", RoleType.SALES_MANAGER),
        assignment("M5", "principal-agent", "70"),
        assignment("M5", "sales-manager", "20", RoleType.SALES_MANAGER),
        assignment("M5", "cocard-association", "10", RoleType.ASSOCIATION),
    ]

    issues = detect_split_errors(assignments, MONTH, RUN_ID)

    assert len(issues) == 1
    issue = issues[0]
    assert issue.merchant_id == "M4"
    assert issue.type == IssueType.SPLIT_ERROR
    assert issue.severity == IssueSeverity.HIGH
    assert issue.description == "Percentage splits total 95.00% (should be 100%)"


def test_split_within_epsilon_is_not_an_error():
    assignments = [
        assignment("M6", "a", "33.335"),
        assignment("M6", "b", "33.335", RoleType.SALES_MANAGER),
        assignment("M6", "c", "33.335", RoleType.ASSOCIATION),
    ]
    assert detect_split_errors(assignments, MONTH, RUN_ID) == []


def test_split_check_ignores_other_months():
    assignments = [assignment("M4", "principal-agent", "50", month="2025-04")]
    assert detect_split_errors(assignments, MONTH, RUN_ID) == []


def test_missing_assignment_per_merchant():
    records = [record("M1"), record("M1"), record("M2"), record("M3", month="2025-04")]
    assignments = [assignment("M2", "principal-agent", "100")]

    issues = detect_missing_assignments(records, assignments, MONTH, RUN_ID)

    assert [(i.merchant_id, i.severity) for i in issues] == [("M1", IssueSeverity.MEDIUM)]


def test_unmatched_mid_once_per_merchant():
    records = [record("M1"), record("M3", "600"), record("M3", "500", processor="Clearent")]

    issues = detect_unmatched_mids(records, {"M1"}, MONTH, RUN_ID)

    assert len(issues) == 1
    assert issues[0].merchant_id == "M3"
    assert issues[0].type == IssueType.UNMATCHED_MID
    assert issues[0].severity == IssueSeverity.HIGH
    assert "Clearent, TRX" in issues[0].description


@pytest.mark.parametrize("net,expected", [
    ("1000", IssueSeverity.HIGH),
    ("999.99", IssueSeverity.MEDIUM),
    ("100", IssueSeverity.MEDIUM),
    ("99.99", IssueSeverity.LOW),
    ("-50", IssueSeverity.LOW),
])
def test_unmatched_severity_bands(net, expected):
    assert unmatched_severity(Decimal(net)) == expected


def test_checks_are_not_exclusive():
    """One merchant can be unmatched and have a split error at once"""
    records = [record("M7")]
    assignments = [assignment("M7", "principal-agent", "80")]

    split = detect_split_errors(assignments, MONTH, RUN_ID)
    unmatched = detect_unmatched_mids(records, set(), MONTH, RUN_ID)

    assert [i.merchant_id for i in split] == ["M7"]
    assert [i.merchant_id for i in unmatched] == ["M7"]
    assert split[0].id != unmatched[0].id


def test_issue_ids_are_deterministic_per_run():
    first = issue_id(RUN_ID, MONTH, "M1", IssueType.SPLIT_ERROR)
    assert first == issue_id(RUN_ID, MONTH, "M1", IssueType.SPLIT_ERROR)
    assert first != issue_id("run-2", MONTH, "M1", IssueType.SPLIT_ERROR)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
