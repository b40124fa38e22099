"""Residuals pipeline - intake, resolution, audit and metrics on top of a store"""

from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from residual_audit.constants import IssueStatus, DEFAULT_CONCENTRATION_TOP_N
from residual_audit.db.store import InMemoryStore, ResidualsStore
from residual_audit.models import (
    Assignment,
    AuditIssue,
    AuditRunResult,
    ConcentrationReport,
    Merchant,
    MonthlyMetrics,
    ProcessorRecord,
    RosterImportResult,
    UploadResult
)
from residual_audit.orchestrator.audit_engine import AuditEngine
from residual_audit.orchestrator.retry_handler import retry_with_exponential_backoff
from residual_audit.tools.assignment_resolver import AssignmentResolver, RuleBook
from residual_audit.tools.monthly_metrics import compute_monthly_metrics, revenue_concentration
from residual_audit.tools.normalizer import normalize
from residual_audit.tools.roster import parse_roster
from residual_audit.tools.validator import RecordValidator, build_upload_report
from residual_audit.utils.config_loader import load_config, get_section
from residual_audit.utils.logging import get_logger
from residual_audit.utils.metrics import uploads_processed, rows_dropped, assignments_upserted

logger = get_logger(__name__)


class ResidualsPipeline:
    """
    Service facade for the residual revenue pipeline.

    The rule book is validated when the pipeline is built, so a broken split
    table stops startup instead of producing bad assignments.
    """

    def __init__(
        self,
        store: Optional[ResidualsStore] = None,
        config: Optional[Dict[str, Any]] = None,
        today: Optional[date] = None
    ):
        self.config = config if config is not None else load_config()
        self.store = store if store is not None else InMemoryStore()
        self.rule_book = RuleBook.from_config(self.config)
        self.resolver = AssignmentResolver(self.rule_book)
        self.validator = RecordValidator(self.config, today=today)
        self.audit_engine = AuditEngine(self.store, self.config)

        pipeline = get_section(self.config, 'pipeline')
        self.auto_register_merchants = bool(pipeline.get('auto_register_merchants', False))
        self.retry_settings = get_section(pipeline, 'store_retry')

    def _store_write(self, func, *args):
        return retry_with_exponential_backoff(
            func,
            self.retry_settings.get('max_retries', 3),
            self.retry_settings.get('base_delay', 1),
            self.retry_settings.get('max_delay', 8),
            *args
        )

    def intake_upload(
        self,
        processor_name: str,
        month: str,
        raw_rows: Sequence[Dict[str, Any]],
        force: bool = False
    ) -> UploadResult:
        """
        Normalize, validate and (if valid or forced) persist one processor upload

        Args:
            processor_name: Processor that produced the file
            month: Reporting month (YYYY-MM)
            raw_rows: Rows as header -> cell maps
            force: Persist even when validation reports errors

        Returns:
            UploadResult with the full validation report; records are
            persisted only when accepted, replacing any earlier upload for
            the same processor and month
        """
        normalization = normalize(raw_rows, processor_name, month)
        validation = self.validator.validate(normalization.records, processor_name)
        report = build_upload_report(normalization, validation)
        if normalization.errors:
            rows_dropped.labels(processor=processor_name).inc(len(normalization.errors))

        accepted = report.is_valid or force
        forced = accepted and not report.is_valid

        if accepted:
            self._store_write(
                self.store.replace_processor_records, processor_name, month, normalization.records
            )
            self._sync_merchants(normalization.records, processor_name)
            outcome = "forced" if forced else "accepted"
        else:
            outcome = "rejected"
            logger.warning(
                f"Upload for {processor_name} {month} rejected",
                errors=len(report.errors),
                error_rows=report.summary.error_rows
            )

        uploads_processed.labels(processor=processor_name, outcome=outcome).inc()
        logger.info(
            f"Upload {outcome}: {processor_name} {month}",
            records=len(normalization.records),
            dropped=len(normalization.errors)
        )
        return UploadResult(
            processor_name=processor_name,
            month=month,
            validation=report,
            records=normalization.records,
            accepted=accepted,
            forced=forced
        )

    def _sync_merchants(self, records: List[ProcessorRecord], processor_name: str) -> None:
        """Refresh name and processor of known merchants; optionally register new MIDs"""
        sightings: Dict[str, Merchant] = {}
        for record in records:
            sightings[record.merchant_id] = Merchant(
                merchant_id=record.merchant_id,
                dba=record.merchant_name or None,
                current_processor=processor_name
            )

        existing = self.store.get_merchants(list(sightings))
        updates = []
        registered = 0
        for merchant_id, sighting in sightings.items():
            if merchant_id in existing:
                updates.append(existing[merchant_id].merged_with(sighting))
            elif self.auto_register_merchants:
                updates.append(sighting)
                registered += 1

        if updates:
            self._store_write(self.store.upsert_merchants, updates)
        logger.info(
            "Merchant master synced",
            processor=processor_name,
            updated=len(updates) - registered,
            registered=registered
        )

    def import_merchant_roster(self, raw_rows: Sequence[Dict[str, Any]]) -> RosterImportResult:
        """Create or update master merchants from a lead sheet"""
        merchants, errors = parse_roster(raw_rows)
        existing = self.store.get_merchants([m.merchant_id for m in merchants])

        merged = [
            existing[m.merchant_id].merged_with(m) if m.merchant_id in existing else m
            for m in merchants
        ]
        if merged:
            self._store_write(self.store.upsert_merchants, merged)

        updated = sum(1 for m in merchants if m.merchant_id in existing)
        logger.info("Roster imported", created=len(merged) - updated, updated=updated, skipped=len(errors))
        return RosterImportResult(
            created=len(merged) - updated,
            updated=updated,
            merchants=merged,
            errors=errors
        )

    def resolve_assignments(self, month: str, merchant_ids: Optional[Sequence[str]] = None) -> List[Assignment]:
        """
        Resolve and upsert assignments for a month's merchants.

        Re-running with the same inputs rewrites the same natural keys and
        adds no rows. Rule-derived rows from an earlier resolution are
        replaced per merchant-month, so a changed rule leaves no stale
        shares behind; manually entered rows are kept.

        Args:
            month: Reporting month (YYYY-MM)
            merchant_ids: Restrict resolution to these MIDs

        Returns:
            Assignments upserted, grouped by merchant in record order
        """
        records = self.store.list_processor_records(month=month, merchant_ids=merchant_ids)

        by_merchant: Dict[str, List[ProcessorRecord]] = {}
        for record in records:
            by_merchant.setdefault(record.merchant_id, []).append(record)

        resolved = {
            merchant_id: self.resolver.resolve_merchant_month(merchant_records)
            for merchant_id, merchant_records in by_merchant.items()
        }

        assignments: List[Assignment] = []
        if resolved:
            self._store_write(self.store.upsert_roles, list(self.rule_book.roles.values()))
        for merchant_id, merchant_assignments in resolved.items():
            self._store_write(self.store.replace_assignments, merchant_id, month, merchant_assignments)
            for assignment in merchant_assignments:
                assignments_upserted.labels(rule=assignment.rule_id.value).inc()
            assignments.extend(merchant_assignments)

        logger.info(
            f"Resolved assignments for {month}",
            merchants=len(by_merchant),
            assignments=len(assignments)
        )
        return assignments

    def run_audit(self, month: str) -> AuditRunResult:
        return self.audit_engine.run(month)

    def resolve_issue(
        self,
        issue_id: str,
        status: IssueStatus = IssueStatus.RESOLVED,
        resolved_by: Optional[str] = None
    ) -> AuditIssue:
        return self.audit_engine.update_issue_status(issue_id, status, resolved_by)

    def query_metrics(
        self,
        start_month: str,
        end_month: str,
        processor: Optional[str] = None
    ) -> List[MonthlyMetrics]:
        """Monthly metrics over the full stored history, computed on demand"""
        return compute_monthly_metrics(
            self.store.list_processor_records(),
            start_month,
            end_month,
            processor=processor
        )

    def revenue_concentration(self, month: Optional[str] = None, top_n: Optional[int] = None) -> ConcentrationReport:
        if top_n is None:
            top_n = int(get_section(self.config, 'metrics').get('concentration_top_n', DEFAULT_CONCENTRATION_TOP_N))
        records = self.store.list_processor_records(month=month)
        return revenue_concentration(records, month=month, top_n=top_n)
