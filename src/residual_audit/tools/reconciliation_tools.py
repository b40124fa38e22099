"""Reconciliation checks between processor records, assignments and the merchant master"""

import uuid
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Set

from residual_audit.constants import (
    IssueType,
    IssueSeverity,
    SPLIT_TOTAL,
    SPLIT_EPSILON,
    DEFAULT_UNMATCHED_HIGH_NET,
    DEFAULT_UNMATCHED_MEDIUM_NET
)
from residual_audit.models import Assignment, AuditIssue, ProcessorRecord
from residual_audit.utils.logging import get_logger

logger = get_logger(__name__)

ISSUE_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "residual-audit/issues")


def issue_id(run_id: str, month: str, merchant_id: str, issue_type: IssueType) -> str:
    """Deterministic issue id, stable when the same run is committed twice"""
    return str(uuid.uuid5(ISSUE_NAMESPACE, f"{run_id}:{month}:{merchant_id}:{issue_type.value}"))


def _issue(
    run_id: str,
    month: str,
    merchant_id: str,
    issue_type: IssueType,
    severity: IssueSeverity,
    description: str
) -> AuditIssue:
    return AuditIssue(
        id=issue_id(run_id, month, merchant_id, issue_type),
        run_id=run_id,
        merchant_id=merchant_id,
        month=month,
        type=issue_type,
        severity=severity,
        description=description
    )


def split_totals(assignments: Iterable[Assignment], month: str) -> Dict[str, Decimal]:
    """Sum of percentages per merchant for one month"""
    totals: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for assignment in assignments:
        if assignment.month == month:
            totals[assignment.merchant_id] += assignment.percentage
    return dict(totals)


def detect_split_errors(
    assignments: Iterable[Assignment],
    month: str,
    run_id: str,
    epsilon: Decimal = SPLIT_EPSILON
) -> List[AuditIssue]:
    """
    One high-severity issue per merchant whose split is not 100 within epsilon.

    Only merchants with at least one assignment are considered.
    """
    issues = []
    for merchant_id, total in sorted(split_totals(assignments, month).items()):
        if abs(total - SPLIT_TOTAL) > epsilon:
            issues.append(_issue(
                run_id, month, merchant_id,
                IssueType.SPLIT_ERROR,
                IssueSeverity.HIGH,
                f"Percentage splits total {total:.2f}% (should be 100%)"
            ))

    logger.info(f"Split check found {len(issues)} issues", month=month)
    return issues


def detect_missing_assignments(
    records: Iterable[ProcessorRecord],
    assignments: Iterable[Assignment],
    month: str,
    run_id: str
) -> List[AuditIssue]:
    """Medium-severity issue per merchant with revenue in the month but no assignments"""
    assigned: Set[str] = {a.merchant_id for a in assignments if a.month == month}
    reported = sorted({r.merchant_id for r in records if r.month == month})

    issues = [
        _issue(
            run_id, month, merchant_id,
            IssueType.MISSING_ASSIGNMENT,
            IssueSeverity.MEDIUM,
            f"Merchant {merchant_id} has processor records for {month} but no assignments"
        )
        for merchant_id in reported
        if merchant_id not in assigned
    ]

    logger.info(f"Missing-assignment check found {len(issues)} issues", month=month)
    return issues


def unmatched_severity(
    net: Decimal,
    high_net: Decimal = DEFAULT_UNMATCHED_HIGH_NET,
    medium_net: Decimal = DEFAULT_UNMATCHED_MEDIUM_NET
) -> IssueSeverity:
    """Severity band for an unmatched MID by its summed monthly net"""
    if net >= high_net:
        return IssueSeverity.HIGH
    if net >= medium_net:
        return IssueSeverity.MEDIUM
    return IssueSeverity.LOW


def detect_unmatched_mids(
    records: Iterable[ProcessorRecord],
    master_ids: Set[str],
    month: str,
    run_id: str,
    high_net: Decimal = DEFAULT_UNMATCHED_HIGH_NET,
    medium_net: Decimal = DEFAULT_UNMATCHED_MEDIUM_NET
) -> List[AuditIssue]:
    """One issue per reported MID missing from the merchant master"""
    net_by_mid: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    processors: Dict[str, Set[str]] = defaultdict(set)
    for record in records:
        if record.month == month and record.merchant_id not in master_ids:
            net_by_mid[record.merchant_id] += record.net
            processors[record.merchant_id].add(record.processor_name)

    issues = []
    for merchant_id in sorted(net_by_mid):
        net = net_by_mid[merchant_id]
        issues.append(_issue(
            run_id, month, merchant_id,
            IssueType.UNMATCHED_MID,
            unmatched_severity(net, high_net, medium_net),
            f"MID {merchant_id} from {', '.join(sorted(processors[merchant_id]))} "
            f"not found in merchant master (net {net:.2f})"
        ))

    logger.info(f"Unmatched-MID check found {len(issues)} issues", month=month)
    return issues
