"""Data models for the residual audit system"""

from .merchant import Merchant
from .processor_record import ProcessorRecord
from .assignment import Role, Assignment
from .validation import (
    NormalizationError,
    NormalizationResult,
    ValidationError,
    ValidationSummary,
    ValidationResult
)
from .audit_issue import AuditIssue, AuditRunResult
from .metrics import MonthlyMetrics, ProcessorBreakdown, ConcentrationReport
from .results import UploadResult, RosterImportResult

__all__ = [
    "Merchant",
    "ProcessorRecord",
    "Role",
    "Assignment",
    "NormalizationError",
    "NormalizationResult",
    "ValidationError",
    "ValidationSummary",
    "ValidationResult",
    "AuditIssue",
    "AuditRunResult",
    "MonthlyMetrics",
    "ProcessorBreakdown",
    "ConcentrationReport",
    "UploadResult",
    "RosterImportResult"
]
