"""Per-processor schema validation and business sanity checks"""

import re
from collections import Counter
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Set

import pandas as pd

from residual_audit.constants import (
    ValidationSeverity,
    DEFAULT_MIN_NET,
    DEFAULT_MAX_NET,
    DEFAULT_MIN_MID_LENGTH,
    DEFAULT_MAX_RECORD_AGE_MONTHS
)
from residual_audit.models import (
    ProcessorRecord,
    NormalizationResult,
    ValidationError,
    ValidationResult,
    ValidationSummary
)
from residual_audit.utils.config_loader import load_config, get_processor_schema, get_section
from residual_audit.utils.logging import get_logger
from residual_audit.utils.metrics import validation_findings

logger = get_logger(__name__)


class RecordValidator:
    """Validates canonical records against processor schemas from configuration"""

    def __init__(self, config: Optional[Dict[str, Any]] = None, today: Optional[date] = None):
        self.config = config if config is not None else load_config()
        self.today = today
        limits = get_section(self.config, 'validation')
        self.min_net = Decimal(str(limits.get('min_net', DEFAULT_MIN_NET)))
        self.max_net = Decimal(str(limits.get('max_net', DEFAULT_MAX_NET)))
        self.min_mid_length = int(limits.get('min_mid_length', DEFAULT_MIN_MID_LENGTH))
        self.max_age_months = int(limits.get('max_record_age_months', DEFAULT_MAX_RECORD_AGE_MONTHS))

    def validate(self, records: Sequence[ProcessorRecord], processor_name: str) -> ValidationResult:
        """
        Validate records for one processor upload.

        Schema violations produce one error per violated field and never stop
        the remaining checks for the row. Business checks run on schema-valid
        rows only and emit warnings or info.

        Args:
            records: Normalized records
            processor_name: Processor whose schema applies

        Returns:
            ValidationResult (is_valid iff no error-severity findings)
        """
        schemas = self.config.get('processor_schemas', {})
        if processor_name not in schemas:
            logger.warning(f"No schema declared for {processor_name}, using default schema")
        schema = get_processor_schema(self.config, processor_name)

        today = self.today or date.today()
        mid_counts = Counter(r.merchant_id for r in records)
        findings: List[ValidationError] = []

        for record in records:
            schema_errors = self._check_schema(record, schema)
            findings.extend(schema_errors)
            if not schema_errors:
                findings.extend(self._check_business_rules(record, schema, today, mid_counts))

        result = ValidationResult(
            processor_name=processor_name,
            findings=findings,
            summary=summarize(findings, len(records))
        )
        _record_metrics(result)

        logger.info(
            f"Validation {'passed' if result.is_valid else 'failed'} for {processor_name}",
            errors=len(result.errors),
            warnings=len(result.warnings),
            infos=len(result.infos)
        )
        return result

    def _check_schema(self, record: ProcessorRecord, schema: Dict[str, Any]) -> List[ValidationError]:
        errors = []

        for field in schema.get('required') or []:
            value = getattr(record, field, None)
            if value is None or (isinstance(value, str) and not value.strip()):
                errors.append(_finding(
                    record, field, value,
                    f"Required field '{field}' is missing or empty",
                    ValidationSeverity.ERROR
                ))

        for field in schema.get('positive') or []:
            value = getattr(record, field, None)
            if value is not None and value <= 0:
                errors.append(_finding(
                    record, field, value,
                    f"'{field}' must be positive",
                    ValidationSeverity.ERROR
                ))

        mid_pattern = schema.get('mid_pattern')
        if mid_pattern and not re.fullmatch(mid_pattern, record.merchant_id):
            errors.append(_finding(
                record, 'merchant_id', record.merchant_id,
                f"MID does not match expected format {mid_pattern}",
                ValidationSeverity.ERROR
            ))

        date_format = schema.get('date_format')
        if date_format and record.record_date:
            try:
                datetime.strptime(record.record_date, date_format)
            except ValueError:
                errors.append(_finding(
                    record, 'record_date', record.record_date,
                    f"Date must be in {date_format} format",
                    ValidationSeverity.ERROR
                ))

        return errors

    def _check_business_rules(
        self,
        record: ProcessorRecord,
        schema: Dict[str, Any],
        today: date,
        mid_counts: Counter
    ) -> List[ValidationError]:
        findings = []

        if record.net > self.max_net:
            findings.append(_finding(
                record, 'net', record.net,
                "Unusually high amount - please verify",
                ValidationSeverity.WARNING
            ))
        elif record.net < self.min_net:
            findings.append(_finding(
                record, 'net', record.net,
                "Very low amount - may indicate data issue",
                ValidationSeverity.WARNING
            ))

        if len(record.merchant_id) < self.min_mid_length:
            findings.append(_finding(
                record, 'merchant_id', record.merchant_id,
                f"MID too short - typical MIDs are {self.min_mid_length}+ characters",
                ValidationSeverity.WARNING
            ))

        if mid_counts[record.merchant_id] > 1:
            findings.append(_finding(
                record, 'merchant_id', record.merchant_id,
                f"Duplicate MID found: {record.merchant_id}",
                ValidationSeverity.WARNING
            ))

        effective = self._effective_date(record, schema.get('date_format'))
        if effective is not None:
            oldest = (pd.Timestamp(today) - pd.DateOffset(months=self.max_age_months)).date()
            column = 'record_date' if record.record_date else 'month'
            value = record.record_date or record.month
            if effective > today:
                findings.append(_finding(
                    record, column, value,
                    "Future date detected - please verify",
                    ValidationSeverity.WARNING
                ))
            elif effective < oldest:
                findings.append(_finding(
                    record, column, value,
                    "Very old date - may be historical data",
                    ValidationSeverity.INFO
                ))

        return findings

    @staticmethod
    def _effective_date(record: ProcessorRecord, date_format: Optional[str]) -> Optional[date]:
        """Reported date when present, else the first day of the reporting month"""
        if record.record_date:
            if date_format:
                return datetime.strptime(record.record_date, date_format).date()
            parsed = pd.to_datetime(record.record_date, errors='coerce')
            if not pd.isna(parsed):
                return parsed.date()
        return datetime.strptime(f"{record.month}-01", "%Y-%m-%d").date()


def validate(
    records: Sequence[ProcessorRecord],
    processor_name: str,
    config: Optional[Dict[str, Any]] = None
) -> ValidationResult:
    """Validate records with a validator built from configuration"""
    return RecordValidator(config=config).validate(records, processor_name)


def build_upload_report(
    normalization: NormalizationResult,
    validation: ValidationResult
) -> ValidationResult:
    """
    Fold normalization drops into an upload's validation report.

    Every dropped row becomes an error finding so the caller sees it next
    to schema errors; row counts are recomputed over all raw rows.
    """
    drops = [
        ValidationError(
            row=err.row,
            column=err.field,
            value=err.value,
            message=err.reason,
            severity=ValidationSeverity.ERROR
        )
        for err in normalization.errors
    ]
    findings = sorted(drops + list(validation.findings), key=lambda f: f.row)
    return ValidationResult(
        processor_name=validation.processor_name,
        findings=findings,
        summary=summarize(findings, normalization.total_rows)
    )


def summarize(findings: Sequence[ValidationError], total_rows: int) -> ValidationSummary:
    """Row counts: a row is an error row if it has any error finding"""
    error_rows: Set[int] = {f.row for f in findings if f.severity == ValidationSeverity.ERROR}
    warning_rows: Set[int] = {f.row for f in findings if f.severity == ValidationSeverity.WARNING}
    return ValidationSummary(
        total_rows=total_rows,
        valid_rows=max(total_rows - len(error_rows), 0),
        error_rows=len(error_rows),
        warning_rows=len(warning_rows)
    )


def _finding(
    record: ProcessorRecord,
    column: str,
    value: Any,
    message: str,
    severity: ValidationSeverity
) -> ValidationError:
    return ValidationError(
        row=record.source_row,
        column=column,
        value=str(value) if value is not None else None,
        message=message,
        severity=severity
    )


def _record_metrics(result: ValidationResult) -> None:
    for finding in result.findings:
        validation_findings.labels(
            processor=result.processor_name,
            severity=finding.severity.value
        ).inc()
