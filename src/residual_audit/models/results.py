"""Pipeline operation results"""

from pydantic import BaseModel, Field
from typing import List
from .merchant import Merchant
from .processor_record import ProcessorRecord
from .validation import NormalizationError, ValidationResult


class UploadResult(BaseModel):
    """Outcome of a processor upload"""

    processor_name: str
    month: str
    validation: ValidationResult
    records: List[ProcessorRecord] = Field(default_factory=list, description="Normalized records")
    accepted: bool = Field(..., description="Records were persisted")
    forced: bool = Field(False, description="Persisted despite validation errors")


class RosterImportResult(BaseModel):
    """Outcome of a merchant roster import"""

    created: int = 0
    updated: int = 0
    merchants: List[Merchant] = Field(default_factory=list)
    errors: List[NormalizationError] = Field(default_factory=list)
