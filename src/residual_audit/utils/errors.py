"""Custom exceptions for the residual audit system"""


class ResidualAuditError(Exception):
    """Base exception for residual audit errors"""
    pass


class ConfigurationError(ResidualAuditError):
    """Configuration loading errors, including broken rule tables"""
    pass


class DatabaseError(ResidualAuditError):
    """Store operation errors"""
    pass


class MasterDataUnavailableError(DatabaseError):
    """Master merchant roster cannot be read"""
    pass


class StateManagerError(ResidualAuditError):
    """Audit run state errors"""
    pass


class InputFormatError(ResidualAuditError):
    """Malformed caller input (month strings, unreadable files)"""
    pass


class AuditRunError(ResidualAuditError):
    """Unrecoverable failure of an audit run"""

    def __init__(self, message: str, run_id: str = None):
        super().__init__(message)
        self.run_id = run_id


class IssueNotFoundError(ResidualAuditError):
    """Audit issue id does not exist"""
    pass


class InvalidStatusTransitionError(ResidualAuditError):
    """Audit issue status change not allowed"""
    pass
