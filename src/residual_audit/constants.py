"""Constants and enums for the residual audit system"""

from decimal import Decimal
from enum import Enum


class ValidationSeverity(str, Enum):
    """Severity of a validation finding"""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class RoleType(str, Enum):
    """Payable party types"""
    AGENT = "agent"
    SALES_MANAGER = "sales_manager"
    PARTNER = "partner"
    ASSOCIATION = "association"
    COMPANY = "company"


class RuleId(str, Enum):
    """Assignment rules, listed in evaluation priority order"""
    PARTNER_A = "partner_a"
    PARTNER_B = "partner_b"
    STANDARD = "standard"


class IssueType(str, Enum):
    """Reconciliation anomaly types"""
    SPLIT_ERROR = "split_error"
    MISSING_ASSIGNMENT = "missing_assignment"
    UNMATCHED_MID = "unmatched_mid"


class IssueSeverity(str, Enum):
    """Audit issue priority"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class IssueStatus(str, Enum):
    """Human review status of an audit issue"""
    OPEN = "open"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"


class AuditStatus(str, Enum):
    """Audit run status"""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RiskLevel(str, Enum):
    """Revenue concentration risk bands"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Allowed issue status transitions (resolved is terminal)
ISSUE_TRANSITIONS = {
    IssueStatus.OPEN: {IssueStatus.INVESTIGATING, IssueStatus.RESOLVED},
    IssueStatus.INVESTIGATING: {IssueStatus.RESOLVED},
    IssueStatus.RESOLVED: set(),
}

# Split invariant
SPLIT_TOTAL = Decimal("100")
SPLIT_EPSILON = Decimal("0.01")

# Validation defaults
DEFAULT_MIN_NET = Decimal("1")
DEFAULT_MAX_NET = Decimal("10000")
DEFAULT_MIN_MID_LENGTH = 6
DEFAULT_MAX_RECORD_AGE_MONTHS = 24

# Unmatched MID severity bands (summed monthly net)
DEFAULT_UNMATCHED_HIGH_NET = Decimal("1000")
DEFAULT_UNMATCHED_MEDIUM_NET = Decimal("100")

# Revenue concentration bands (percent of total revenue held by top N)
CONCENTRATION_MEDIUM_PCT = 25.0
CONCENTRATION_HIGH_PCT = 40.0
DEFAULT_CONCENTRATION_TOP_N = 10

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"
