"""Utility modules"""

from .config_loader import load_config, get_processor_schema
from .errors import (
    ResidualAuditError,
    ConfigurationError,
    DatabaseError,
    MasterDataUnavailableError,
    StateManagerError,
    InputFormatError,
    AuditRunError,
    IssueNotFoundError,
    InvalidStatusTransitionError
)

__all__ = [
    "load_config",
    "get_processor_schema",
    "ResidualAuditError",
    "ConfigurationError",
    "DatabaseError",
    "MasterDataUnavailableError",
    "StateManagerError",
    "InputFormatError",
    "AuditRunError",
    "IssueNotFoundError",
    "InvalidStatusTransitionError"
]
