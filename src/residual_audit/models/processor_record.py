"""Canonical processor report row"""

from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from residual_audit.constants import MONTH_PATTERN


class ProcessorRecord(BaseModel):
    """One row of a monthly processor export after normalization"""

    merchant_id: str = Field(..., min_length=1, description="Processor MID")
    merchant_name: str = Field("", description="Merchant name as reported")
    month: str = Field(..., pattern=MONTH_PATTERN, description="Reporting month (YYYY-MM)")
    net: Decimal = Field(..., description="Net residual revenue, may be negative")
    sales_volume: Decimal = Field(Decimal("0"), description="Processed sales volume")
    transaction_count: int = Field(0, description="Number of transactions")
    processor_name: str = Field(..., description="Processor that produced the report")
    group_code: Optional[str] = Field(None, description="Partner group code")
    branch_id: Optional[str] = Field(None, description="Partner branch id")
    record_date: Optional[str] = Field(None, description="Row date exactly as reported")
    source_row: int = Field(0, ge=0, description="1-based row number in the upload")

    @property
    def has_partner_indicator(self) -> bool:
        return bool(self.group_code or self.branch_id)

    def to_raw_row(self) -> Dict[str, Any]:
        """Render as a raw row keyed by canonical field names"""
        row = {
            'merchant_id': self.merchant_id,
            'merchant_name': self.merchant_name,
            'month': self.month,
            'net': str(self.net),
            'sales_volume': str(self.sales_volume),
            'transaction_count': str(self.transaction_count),
            'source_row': str(self.source_row),
        }
        for optional in ('group_code', 'branch_id', 'record_date'):
            value = getattr(self, optional)
            if value is not None:
                row[optional] = value
        return row

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "merchant_id": "4445012345678",
                "merchant_name": "BMW of El Cajon",
                "month": "2025-03",
                "net": "2369.42",
                "sales_volume": "184220.10",
                "transaction_count": 912,
                "processor_name": "TRX",
                "group_code": "HBS-001",
                "source_row": 4
            }
        }
