"""Monthly portfolio metrics computed on demand from processor records"""

import re
from typing import List, Optional, Sequence

import pandas as pd

from residual_audit.constants import (
    MONTH_PATTERN,
    RiskLevel,
    CONCENTRATION_MEDIUM_PCT,
    CONCENTRATION_HIGH_PCT,
    DEFAULT_CONCENTRATION_TOP_N
)
from residual_audit.models import (
    ProcessorRecord,
    MonthlyMetrics,
    ProcessorBreakdown,
    ConcentrationReport
)
from residual_audit.utils.errors import InputFormatError
from residual_audit.utils.logging import get_logger

logger = get_logger(__name__)

RECORD_COLUMNS = ['month', 'merchant_id', 'processor_name', 'net', 'sales_volume', 'transaction_count']


def records_to_frame(records: Sequence[ProcessorRecord]) -> pd.DataFrame:
    """Flatten records into a DataFrame with float money columns"""
    if not records:
        return pd.DataFrame(columns=RECORD_COLUMNS)
    df = pd.DataFrame([
        {
            'month': r.month,
            'merchant_id': r.merchant_id,
            'processor_name': r.processor_name,
            'net': float(r.net),
            'sales_volume': float(r.sales_volume),
            'transaction_count': r.transaction_count,
        }
        for r in records
    ])
    return df[RECORD_COLUMNS]


def _check_month(month: str, label: str) -> None:
    if not isinstance(month, str) or not re.match(MONTH_PATTERN, month):
        raise InputFormatError(f"{label} must be YYYY-MM, got {month!r}")


def _rate(part: int, whole: int, empty_value: float) -> float:
    if whole == 0:
        return empty_value
    return round(part / whole * 100, 1)


def compute_monthly_metrics(
    records: Sequence[ProcessorRecord],
    start_month: str,
    end_month: str,
    processor: Optional[str] = None
) -> List[MonthlyMetrics]:
    """
    Compute portfolio metrics for every month with data in [start_month, end_month].

    The previous month of each month is the closest earlier month with data,
    which may lie before start_month.

    Args:
        records: Full record history
        start_month: First month (YYYY-MM, inclusive)
        end_month: Last month (YYYY-MM, inclusive)
        processor: Restrict every figure to one processor

    Returns:
        One MonthlyMetrics per month with data, ascending

    Raises:
        InputFormatError: On malformed months or start after end
    """
    _check_month(start_month, "start_month")
    _check_month(end_month, "end_month")
    if start_month > end_month:
        raise InputFormatError(f"start_month {start_month} is after end_month {end_month}")

    df = records_to_frame(records)
    if processor:
        df = df[df['processor_name'] == processor]
    if df.empty:
        logger.info("No records for metrics query", start_month=start_month, end_month=end_month)
        return []

    history = sorted(df['month'].unique())
    merchants_by_month = df.groupby('month')['merchant_id'].apply(set).to_dict()
    revenue_by_month = df.groupby('month')['net'].sum().to_dict()

    results = []
    for month in history:
        if month < start_month or month > end_month:
            continue
        month_df = df[df['month'] == month]
        current = merchants_by_month[month]
        position = history.index(month)
        previous_month = history[position - 1] if position > 0 else None
        previous = merchants_by_month.get(previous_month, set()) if previous_month else set()

        retained = len(current & previous)
        lost = len(previous - current)
        new = len(current - previous)

        total_revenue = float(month_df['net'].sum())
        accounts = len(current)

        mom_change = None
        mom_change_percent = None
        if previous_month is not None:
            previous_revenue = float(revenue_by_month[previous_month])
            mom_change = round(total_revenue - previous_revenue, 2)
            if previous_revenue != 0:
                mom_change_percent = round(mom_change / abs(previous_revenue) * 100, 1)

        results.append(MonthlyMetrics(
            month=month,
            previous_month=previous_month,
            total_revenue=round(total_revenue, 2),
            total_volume=round(float(month_df['sales_volume'].sum()), 2),
            total_transactions=int(month_df['transaction_count'].sum()),
            total_accounts=accounts,
            retained_accounts=retained,
            lost_accounts=lost,
            new_accounts=new,
            retention_rate=_rate(retained, len(previous), 100.0),
            attrition_rate=_rate(lost, len(previous), 0.0),
            revenue_per_account=round(total_revenue / accounts, 2) if accounts else 0.0,
            mom_revenue_change=mom_change,
            mom_revenue_change_percent=mom_change_percent,
            net_account_growth=new - lost,
            processor_breakdown=processor_breakdown(month_df, total_revenue)
        ))

    logger.info(
        f"Computed metrics for {len(results)} months",
        start_month=start_month,
        end_month=end_month,
        processor=processor
    )
    return results


def processor_breakdown(month_df: pd.DataFrame, total_revenue: float) -> List[ProcessorBreakdown]:
    """Revenue and account count per processor, largest first"""
    grouped = (
        month_df.groupby('processor_name')
        .agg(revenue=('net', 'sum'), accounts=('merchant_id', 'nunique'))
        .sort_values('revenue', ascending=False)
    )
    return [
        ProcessorBreakdown(
            processor_name=name,
            revenue=round(float(row['revenue']), 2),
            accounts=int(row['accounts']),
            percent_of_total=round(float(row['revenue']) / total_revenue * 100, 1) if total_revenue else 0.0
        )
        for name, row in grouped.iterrows()
    ]


def concentration_risk(concentration: float) -> RiskLevel:
    if concentration < CONCENTRATION_MEDIUM_PCT:
        return RiskLevel.LOW
    if concentration < CONCENTRATION_HIGH_PCT:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH


def revenue_concentration(
    records: Sequence[ProcessorRecord],
    month: Optional[str] = None,
    top_n: int = DEFAULT_CONCENTRATION_TOP_N
) -> ConcentrationReport:
    """
    Share of revenue held by the top-N merchants.

    Args:
        records: Record history
        month: Restrict to one month; all history when None
        top_n: Number of merchants counted as the top

    Returns:
        ConcentrationReport with risk band (<25% low, <40% medium, else high)
    """
    if top_n < 1:
        raise InputFormatError(f"top_n must be positive, got {top_n}")
    if month is not None:
        _check_month(month, "month")

    df = records_to_frame(records)
    if month is not None:
        df = df[df['month'] == month]

    by_merchant = df.groupby('merchant_id')['net'].sum().sort_values(ascending=False)
    total = float(by_merchant.sum()) if not by_merchant.empty else 0.0
    top = float(by_merchant.head(top_n).sum()) if not by_merchant.empty else 0.0
    concentration = round(top / total * 100, 1) if total > 0 else 0.0

    return ConcentrationReport(
        month=month,
        top_n=top_n,
        top_revenue=round(top, 2),
        total_revenue=round(total, 2),
        concentration=concentration,
        risk_level=concentration_risk(concentration)
    )
