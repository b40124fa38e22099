"""Derived monthly portfolio metrics (projections, never persisted)"""

from pydantic import BaseModel, Field
from typing import List, Optional
from residual_audit.constants import RiskLevel


class ProcessorBreakdown(BaseModel):
    """Revenue share of one processor within a month"""

    processor_name: str
    revenue: float
    accounts: int
    percent_of_total: float


class MonthlyMetrics(BaseModel):
    """Portfolio aggregate for one month"""

    month: str
    previous_month: Optional[str] = None
    total_revenue: float = 0.0
    total_volume: float = 0.0
    total_transactions: int = 0
    total_accounts: int = 0
    retained_accounts: int = 0
    lost_accounts: int = 0
    new_accounts: int = 0
    retention_rate: float = Field(100.0, description="Percent of previous month's merchants still present")
    attrition_rate: float = Field(0.0, description="Percent of previous month's merchants gone")
    revenue_per_account: float = 0.0
    mom_revenue_change: Optional[float] = None
    mom_revenue_change_percent: Optional[float] = None
    net_account_growth: int = 0
    processor_breakdown: List[ProcessorBreakdown] = Field(default_factory=list)


class ConcentrationReport(BaseModel):
    """Share of revenue held by the top-N merchants"""

    month: Optional[str] = None
    top_n: int
    top_revenue: float = 0.0
    total_revenue: float = 0.0
    concentration: float = Field(0.0, description="Top-N share of total revenue, percent")
    risk_level: RiskLevel = RiskLevel.LOW
