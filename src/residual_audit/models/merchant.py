"""Merchant master record data model"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class Merchant(BaseModel):
    """Merchant-of-record master entry, keyed by processor MID"""

    merchant_id: str = Field(..., min_length=1, description="Processor-assigned MID")
    legal_name: Optional[str] = Field(None, description="Legal business name")
    dba: Optional[str] = Field(None, description="Doing-business-as name")
    current_processor: Optional[str] = Field(None, description="Processor currently handling the account")
    branch_number: Optional[str] = Field(None, description="Partner branch number from the roster")
    partner_name: Optional[str] = Field(None, description="Referring partner from the roster")
    status: Optional[str] = Field(None, description="Roster status")
    created_at: datetime = Field(default_factory=datetime.now, description="First sighting")
    updated_at: datetime = Field(default_factory=datetime.now, description="Last update")

    def merged_with(self, other: "Merchant") -> "Merchant":
        """Return a copy updated with the non-empty fields of a later sighting"""
        updates = {
            field: value
            for field, value in other.model_dump(
                exclude={'merchant_id', 'created_at', 'updated_at'}
            ).items()
            if value not in (None, '')
        }
        updates['updated_at'] = datetime.now()
        return self.model_copy(update=updates)

    class Config:
        json_schema_extra = {
            "example": {
                "merchant_id": "4445012345678",
                "legal_name": "Blu Sushi LLC",
                "dba": "BLU SUSHI",
                "current_processor": "Clearent",
                "branch_number": None,
                "partner_name": None,
                "status": "Active"
            }
        }
