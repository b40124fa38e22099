"""Role and assignment data models"""

from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional, Tuple
from residual_audit.constants import RoleType, RuleId, MONTH_PATTERN


class Role(BaseModel):
    """A payable party"""

    id: str = Field(..., min_length=1, description="Stable role id")
    name: str = Field(..., description="Display name")
    type: RoleType = Field(..., description="Primary role type")

    class Config:
        frozen = True


class Assignment(BaseModel):
    """Share of a merchant-month residual assigned to one role"""

    merchant_id: str = Field(..., description="Processor MID")
    role_id: str = Field(..., description="Role receiving the share")
    month: str = Field(..., pattern=MONTH_PATTERN, description="Reporting month (YYYY-MM)")
    percentage: Decimal = Field(..., ge=0, le=100, description="Share of net, 0-100")
    role_type: RoleType = Field(..., description="Capacity the role is paid in")
    rule_id: Optional[RuleId] = Field(None, description="Rule that produced the share; None when entered manually")
    amount: Optional[Decimal] = Field(None, description="Payout for the share (net * percentage / 100)")

    @property
    def natural_key(self) -> Tuple[str, str, str, str]:
        return (self.merchant_id, self.role_id, self.month, self.role_type.value)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "merchant_id": "M2",
                "role_id": "hbs-partner",
                "month": "2025-03",
                "percentage": "40",
                "role_type": "partner",
                "rule_id": "partner_a",
                "amount": "400.00"
            }
        }
