"""Normalize heterogeneous processor exports into canonical ProcessorRecords"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from residual_audit.constants import MONTH_PATTERN
from residual_audit.models import ProcessorRecord, NormalizationError, NormalizationResult
from residual_audit.utils.errors import InputFormatError
from residual_audit.utils.logging import get_logger

logger = get_logger(__name__)

# Ordered candidate headers per logical field; first non-empty match wins.
# Canonical names come first so canonical rows normalize to themselves.
FIELD_RESOLUTION: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("merchant_id", (
        "merchant_id", "Merchant ID", "MID", "Merchant_ID", "Merchant Number",
        "MID Number", "Existing MID", "Terminal ID",
    )),
    ("merchant_name", (
        "merchant_name", "Merchant", "Merchant Name", "DBA", "DBA Name",
        "Business Name", "Legal Name", "Name",
    )),
    ("net", (
        "net", "Net", "Net Revenue", "Net Income", "Net Amount", "Agent Net",
        "Residual", "Residual Amount", "Agent Residual", "Commission",
        "Payout Amount", "Amount",
    )),
    ("sales_volume", (
        "sales_volume", "Sales Amount", "Sales Volume", "Volume", "Monthly Volume",
        "Processing Volume", "Volume Amount", "Transaction Volume",
    )),
    ("transaction_count", (
        "transaction_count", "Transactions", "Transaction Count", "Trans Count",
        "Number of Transactions",
    )),
    ("group_code", ("group_code", "Group", "Group Code")),
    ("branch_id", (
        "branch_id", "Branch", "Branch ID", "Branch Code", "Branch Number",
        "Partner Branch Number",
    )),
    ("record_date", ("record_date", "Date", "Processing Date", "Statement Date")),
    ("month", ("month", "Month")),
    ("source_row", ("source_row",)),
)

FIELD_CANDIDATES: Dict[str, Tuple[str, ...]] = dict(FIELD_RESOLUTION)


def clean_value(value: Any) -> str:
    """Render a raw cell as a trimmed string ('' for blanks and NaN)"""
    if value is None:
        return ''
    if isinstance(value, float):
        if pd.isna(value):
            return ''
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def parse_decimal(value: Any) -> Optional[Decimal]:
    """
    Parse a currency cell.

    Strips $, commas and spaces; parentheses mean negative.

    Returns:
        Decimal, or None when blank or unparseable
    """
    s = clean_value(value)
    if not s or s.upper() == "NAN":
        return None
    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1]
    for ch in (",", "$", " "):
        s = s.replace(ch, "")
    try:
        result = Decimal(s)
    except InvalidOperation:
        return None
    if not result.is_finite():
        return None
    return -result if negative else result


def parse_count(value: Any) -> Optional[int]:
    """Parse a transaction count; None when blank or not a whole number"""
    number = parse_decimal(value)
    if number is None or number != number.to_integral_value():
        return None
    return int(number)


def resolve_field(row: Dict[str, Any], field: str) -> Tuple[Optional[str], str]:
    """
    Resolve a logical field against the row's headers.

    Returns:
        (header used, cleaned value); (None, '') when no candidate is populated
    """
    stripped = {str(k).strip(): v for k, v in row.items()}
    for header in FIELD_CANDIDATES[field]:
        if header in stripped:
            value = clean_value(stripped[header])
            if value:
                return header, value
    return None, ''


def month_from_date(raw_date: str) -> Optional[str]:
    """Derive YYYY-MM from a reported date string"""
    parsed = pd.to_datetime(raw_date, errors='coerce')
    if pd.isna(parsed):
        return None
    return parsed.strftime('%Y-%m')


def normalize(
    raw_rows: Sequence[Dict[str, Any]],
    processor_name: str,
    month: Optional[str] = None
) -> NormalizationResult:
    """
    Parse raw processor rows into canonical records.

    Rows without a merchant id, with an unparseable or missing net, or
    without a resolvable month are dropped and reported. Volume and
    transaction count default to 0. Input order is preserved.

    Args:
        raw_rows: Rows as string-keyed maps (header -> cell)
        processor_name: Processor that produced the export
        month: Reporting month (YYYY-MM); derived per row when omitted

    Returns:
        NormalizationResult with records and per-row drop reasons

    Raises:
        InputFormatError: If month is given but not YYYY-MM
    """
    if month is not None and not re.match(MONTH_PATTERN, month):
        raise InputFormatError(f"Month must be YYYY-MM, got '{month}'")

    records: List[ProcessorRecord] = []
    errors: List[NormalizationError] = []

    for index, row in enumerate(raw_rows):
        row_number = index + 1

        _, source_row = resolve_field(row, "source_row")
        if source_row.isdigit():
            row_number = int(source_row)

        _, merchant_id = resolve_field(row, "merchant_id")
        if not merchant_id:
            errors.append(NormalizationError(
                row=row_number,
                field="merchant_id",
                reason="No merchant identifier in any known column"
            ))
            continue

        _, net_raw = resolve_field(row, "net")
        net = parse_decimal(net_raw)
        if net is None:
            errors.append(NormalizationError(
                row=row_number,
                field="net",
                value=net_raw or None,
                reason="Net revenue missing" if not net_raw else f"Net revenue '{net_raw}' is not a number"
            ))
            continue

        _, record_date = resolve_field(row, "record_date")
        _, row_month = resolve_field(row, "month")
        record_month = month or row_month or (month_from_date(record_date) if record_date else None)
        if not record_month or not re.match(MONTH_PATTERN, record_month):
            errors.append(NormalizationError(
                row=row_number,
                field="month",
                value=record_month or record_date or None,
                reason="Reporting month could not be resolved"
            ))
            continue

        _, name = resolve_field(row, "merchant_name")
        _, volume_raw = resolve_field(row, "sales_volume")
        _, count_raw = resolve_field(row, "transaction_count")
        _, group_code = resolve_field(row, "group_code")
        _, branch_id = resolve_field(row, "branch_id")

        records.append(ProcessorRecord(
            merchant_id=merchant_id,
            merchant_name=name,
            month=record_month,
            net=net,
            sales_volume=parse_decimal(volume_raw) or Decimal("0"),
            transaction_count=parse_count(count_raw) or 0,
            processor_name=processor_name,
            group_code=group_code or None,
            branch_id=branch_id or None,
            record_date=record_date or None,
            source_row=row_number,
        ))

    if errors:
        logger.warning(
            f"Dropped {len(errors)} of {len(raw_rows)} rows during normalization",
            processor=processor_name
        )
    logger.info(f"Normalized {len(records)} records", processor=processor_name, month=month)

    return NormalizationResult(records=records, errors=errors, total_rows=len(raw_rows))
