"""Audit issue and audit run data models"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Dict, List, Optional
from residual_audit.constants import IssueType, IssueSeverity, IssueStatus, AuditStatus


class AuditIssue(BaseModel):
    """Reconciliation anomaly awaiting human review"""

    id: str = Field(..., description="Deterministic issue id (UUID5 of run, month, merchant, type)")
    run_id: str = Field(..., description="Audit run that created the issue")
    merchant_id: str = Field(..., description="Merchant the issue refers to")
    month: str = Field(..., description="Audited month (YYYY-MM)")
    type: IssueType = Field(..., description="Anomaly type")
    severity: IssueSeverity = Field(..., description="Review priority")
    description: str = Field(..., description="Human-readable explanation")
    status: IssueStatus = Field(default=IssueStatus.OPEN, description="Review status")
    resolved_by: Optional[str] = Field(None, description="Reviewer who resolved the issue")
    created_at: datetime = Field(default_factory=datetime.now, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=datetime.now, description="Last status change")

    class Config:
        json_schema_extra = {
            "example": {
                "id": "0f6f3c1e-6a0b-5e59-9d55-1e1f6f9b3c10",
                "run_id": "b3c0f7a2-5d1e-4d61-9f55-0c3b2a1e9d47",
                "merchant_id": "M4",
                "month": "2025-05",
                "type": "split_error",
                "severity": "high",
                "description": "Percentage splits total 95.00% (should be 100%)",
                "status": "open"
            }
        }


class AuditRunResult(BaseModel):
    """Outcome of one audit run"""

    run_id: str
    month: str
    status: AuditStatus
    counts: Dict[IssueType, int] = Field(default_factory=lambda: {t: 0 for t in IssueType})
    issues: List[AuditIssue] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def total_issues(self) -> int:
        return sum(self.counts.values())
