"""Normalization and validation report models"""

from pydantic import BaseModel, Field, computed_field
from typing import Any, List, Optional
from residual_audit.constants import ValidationSeverity
from .processor_record import ProcessorRecord


class NormalizationError(BaseModel):
    """A raw row dropped by the normalizer"""

    row: int = Field(..., description="1-based row number in the upload")
    field: str = Field(..., description="Logical field that could not be resolved")
    value: Optional[Any] = Field(None, description="Offending raw value")
    reason: str = Field(..., description="Why the row was dropped")


class NormalizationResult(BaseModel):
    """Surviving records plus attributable drops"""

    records: List[ProcessorRecord] = Field(default_factory=list)
    errors: List[NormalizationError] = Field(default_factory=list)
    total_rows: int = Field(0, description="Raw rows received")


class ValidationError(BaseModel):
    """One validation finding"""

    row: int = Field(..., description="1-based row number (0 for upload-level findings)")
    column: str = Field(..., description="Field the finding refers to")
    value: Optional[Any] = Field(None, description="Offending value")
    message: str = Field(..., description="Human-readable finding")
    severity: ValidationSeverity = Field(..., description="error blocks, warning/info never do")


class ValidationSummary(BaseModel):
    """Row counts for a validation run"""

    total_rows: int = 0
    valid_rows: int = 0
    error_rows: int = 0
    warning_rows: int = 0


class ValidationResult(BaseModel):
    """Per-upload validation report"""

    processor_name: str = Field(..., description="Processor the schema was taken from")
    findings: List[ValidationError] = Field(default_factory=list)
    summary: ValidationSummary = Field(default_factory=ValidationSummary)

    @computed_field
    @property
    def is_valid(self) -> bool:
        return not any(f.severity == ValidationSeverity.ERROR for f in self.findings)

    def _by_severity(self, severity: ValidationSeverity) -> List[ValidationError]:
        return [f for f in self.findings if f.severity == severity]

    @property
    def errors(self) -> List[ValidationError]:
        return self._by_severity(ValidationSeverity.ERROR)

    @property
    def warnings(self) -> List[ValidationError]:
        return self._by_severity(ValidationSeverity.WARNING)

    @property
    def infos(self) -> List[ValidationError]:
        return self._by_severity(ValidationSeverity.INFO)

    def render_report(self) -> str:
        """Plain-text report for operators"""
        lines = [
            "Validation Summary:",
            f"  Processor: {self.processor_name}",
            f"  Total Rows: {self.summary.total_rows}",
            f"  Valid Rows: {self.summary.valid_rows}",
            f"  Error Rows: {self.summary.error_rows}",
            f"  Warning Rows: {self.summary.warning_rows}",
            f"  Overall Status: {'PASSED' if self.is_valid else 'FAILED'}",
        ]
        for title, entries in (("ERRORS", self.errors), ("WARNINGS", self.warnings), ("INFO", self.infos)):
            if entries:
                lines.append("")
                lines.append(f"{title}:")
                for entry in entries:
                    lines.append(
                        f"  Row {entry.row}, Column {entry.column}: {entry.message} (Value: {entry.value})"
                    )
        return "\n".join(lines)
