"""Audit Engine - reconciliation runs and issue review workflow"""

import re
import time
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from residual_audit.constants import (
    AuditStatus,
    IssueStatus,
    IssueType,
    ISSUE_TRANSITIONS,
    MONTH_PATTERN,
    SPLIT_EPSILON,
    DEFAULT_UNMATCHED_HIGH_NET,
    DEFAULT_UNMATCHED_MEDIUM_NET
)
from residual_audit.db.store import ResidualsStore
from residual_audit.models import AuditIssue, AuditRunResult
from residual_audit.orchestrator.retry_handler import retry_with_exponential_backoff
from residual_audit.orchestrator.state_manager import (
    mark_run_started,
    mark_run_completed,
    mark_run_failed
)
from residual_audit.tools.reconciliation_tools import (
    detect_split_errors,
    detect_missing_assignments,
    detect_unmatched_mids
)
from residual_audit.utils.config_loader import load_config, get_section
from residual_audit.utils.errors import (
    AuditRunError,
    DatabaseError,
    InputFormatError,
    IssueNotFoundError,
    InvalidStatusTransitionError,
    StateManagerError
)
from residual_audit.utils.logging import get_logger
from residual_audit.utils.metrics import (
    audit_run_duration,
    audit_runs,
    audit_issues_created,
    audit_issues_resolved,
    open_audit_issues
)

logger = get_logger(__name__)


class AuditEngine:
    """
    Runs reconciliation audits for one month at a time.

    Each run moves running -> completed, or -> failed when it cannot
    finish. A run keeps its id and status local and reports them through
    AuditRunResult and the run-state store, so one engine can serve
    overlapping runs. A failed run commits no issues.
    """

    def __init__(self, store: ResidualsStore, config: Optional[Dict[str, Any]] = None):
        self.store = store
        self.config = config if config is not None else load_config()

        audit = get_section(self.config, 'audit')
        bands = audit.get('unmatched_mid_severity') or {}
        self.split_epsilon = Decimal(str(audit.get('split_epsilon', SPLIT_EPSILON)))
        self.unmatched_high_net = Decimal(str(bands.get('high_net', DEFAULT_UNMATCHED_HIGH_NET)))
        self.unmatched_medium_net = Decimal(str(bands.get('medium_net', DEFAULT_UNMATCHED_MEDIUM_NET)))
        self.retry_settings = get_section(get_section(self.config, 'pipeline'), 'store_retry')

    def run(self, month: str) -> AuditRunResult:
        """
        Execute one audit run over a month's records and assignments

        Args:
            month: Audited month (YYYY-MM)

        Returns:
            Completed AuditRunResult; zero issues is still a completed run

        Raises:
            InputFormatError: On malformed month
            AuditRunError: If the run failed (state recorded as failed)
        """
        if not isinstance(month, str) or not re.match(MONTH_PATTERN, month):
            raise InputFormatError(f"month must be YYYY-MM, got {month!r}")

        run_id = str(uuid.uuid4())
        started_at = datetime.now()
        start_time = time.time()
        logger.info(f"🚀 Starting audit run: {run_id}", month=month)

        try:
            mark_run_started(run_id, month)

            master_ids = self.store.fetch_merchant_ids()
            records = self.store.list_processor_records(month=month)
            assignments = self.store.list_assignments(month)
            logger.info(
                f"📊 Auditing {len(records)} records and {len(assignments)} assignments",
                run_id=run_id,
                month=month
            )

            issues = (
                detect_split_errors(assignments, month, run_id, self.split_epsilon)
                + detect_missing_assignments(records, assignments, month, run_id)
                + detect_unmatched_mids(
                    records, master_ids, month, run_id,
                    self.unmatched_high_net, self.unmatched_medium_net
                )
            )

            self._store_write(self.store.save_issues, issues)

        except Exception as e:
            logger.error(f"Audit failed: {e}", run_id=run_id, month=month)
            audit_runs.labels(status=AuditStatus.FAILED.value).inc()
            try:
                mark_run_failed(run_id, month, str(e))
            except StateManagerError as state_error:
                logger.error(f"Could not record failed state: {state_error}", run_id=run_id)
            raise AuditRunError(f"Audit {run_id} failed: {e}", run_id=run_id) from e

        counts = {issue_type: 0 for issue_type in IssueType}
        for issue in issues:
            counts[issue.type] += 1
            audit_issues_created.labels(issue_type=issue.type.value, severity=issue.severity.value).inc()

        duration = time.time() - start_time
        try:
            mark_run_completed(run_id, month, {t.value: c for t, c in counts.items()})
        except StateManagerError as e:
            logger.error(f"Could not record completed state: {e}", run_id=run_id)

        audit_run_duration.observe(duration)
        audit_runs.labels(status=AuditStatus.COMPLETED.value).inc()
        self._refresh_open_issues(month)

        logger.info(
            f"✅ Audit complete: {run_id} ({duration:.1f}s)",
            month=month,
            **{t.value: c for t, c in counts.items()}
        )
        return AuditRunResult(
            run_id=run_id,
            month=month,
            status=AuditStatus.COMPLETED,
            counts=counts,
            issues=issues,
            started_at=started_at,
            completed_at=datetime.now()
        )

    def update_issue_status(
        self,
        issue_id: str,
        status: IssueStatus = IssueStatus.RESOLVED,
        resolved_by: Optional[str] = None
    ) -> AuditIssue:
        """
        Move an issue through open -> investigating -> resolved.

        Setting the status an issue already has is a no-op, so resolving a
        resolved issue twice is safe.

        Raises:
            IssueNotFoundError: Unknown issue id
            InvalidStatusTransitionError: Unknown status or backwards move
        """
        try:
            target = IssueStatus(status)
        except ValueError:
            raise InvalidStatusTransitionError(f"Unknown issue status: {status}")

        issue = self.store.get_issue(issue_id)
        if issue is None:
            raise IssueNotFoundError(f"Audit issue not found: {issue_id}")

        if issue.status == target:
            logger.info(f"Issue already {target.value}", issue_id=issue_id)
            return issue

        if target not in ISSUE_TRANSITIONS[issue.status]:
            raise InvalidStatusTransitionError(
                f"Cannot move issue {issue_id} from {issue.status.value} to {target.value}"
            )

        update = {'status': target, 'updated_at': datetime.now()}
        if target == IssueStatus.RESOLVED:
            update['resolved_by'] = resolved_by
        updated = issue.model_copy(update=update)
        self._store_write(self.store.update_issue, updated)

        if target == IssueStatus.RESOLVED:
            audit_issues_resolved.inc()
        self._refresh_open_issues(issue.month)
        logger.info(
            f"Issue {issue_id} moved to {target.value}",
            previous=issue.status.value,
            resolved_by=resolved_by
        )
        return updated

    def _refresh_open_issues(self, month: str) -> None:
        """Set the open-issue gauge from what the store holds as open"""
        try:
            open_issues = self.store.list_issues(month=month, status=IssueStatus.OPEN)
        except DatabaseError as e:
            logger.warning(f"Could not refresh open issue gauge: {e}", month=month)
            return
        open_audit_issues.labels(month=month).set(len(open_issues))

    def _store_write(self, func, *args):
        return retry_with_exponential_backoff(
            func,
            self.retry_settings.get('max_retries', 3),
            self.retry_settings.get('base_delay', 1),
            self.retry_settings.get('max_delay', 8),
            *args
        )
