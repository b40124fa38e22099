"""Merchant roster (lead sheet) parsing"""

from typing import Any, Dict, List, Sequence, Tuple

from residual_audit.models import Merchant, NormalizationError
from residual_audit.tools.normalizer import clean_value
from residual_audit.utils.logging import get_logger

logger = get_logger(__name__)

# Ordered candidate headers per merchant field; first non-empty match wins
ROSTER_FIELDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("merchant_id", ("merchant_id", "Existing MID", "MID", "Merchant ID")),
    ("legal_name", ("legal_name", "Legal Name")),
    ("dba", ("dba", "DBA", "DBA Name")),
    ("branch_number", ("branch_number", "Partner Branch Number", "Branch Number")),
    ("status", ("status", "Status")),
    ("current_processor", ("current_processor", "Current Processor")),
    ("partner_name", ("partner_name", "Partner Name")),
)


def parse_roster(raw_rows: Sequence[Dict[str, Any]]) -> Tuple[List[Merchant], List[NormalizationError]]:
    """
    Turn lead sheet rows into merchant master entries.

    Rows without a MID are reported and skipped. Repeated MIDs are merged,
    later rows filling in fields the earlier ones left empty.
    """
    merchants: Dict[str, Merchant] = {}
    errors: List[NormalizationError] = []

    for index, row in enumerate(raw_rows):
        stripped = {str(k).strip(): v for k, v in row.items()}
        values = {}
        for field, candidates in ROSTER_FIELDS:
            for header in candidates:
                value = clean_value(stripped.get(header))
                if value:
                    values[field] = value
                    break

        merchant_id = values.pop("merchant_id", None)
        if not merchant_id:
            errors.append(NormalizationError(
                row=index + 1,
                field="merchant_id",
                reason="Roster row has no MID"
            ))
            continue

        merchant = Merchant(merchant_id=merchant_id, **values)
        if merchant_id in merchants:
            merchant = merchants[merchant_id].merged_with(merchant)
        merchants[merchant_id] = merchant

    logger.info(f"Parsed roster: {len(merchants)} merchants, {len(errors)} rows skipped")
    return list(merchants.values()), errors
