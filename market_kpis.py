"""
Market KPI Aggregations
=======================
Month-bucketed revenue, occupancy, pricing and demand metrics computed from
the canonical fact table.

Every KPI is a projection of one shared aggregation, ``aggregate_monthly``,
grouped by calendar month and optionally by extra keys (city, host type,
listing). Ratios whose denominator is zero are NaN, never an error.

KPI Families
------------
Revenue : total_revenue, monthly_revenue, average_revenue_per_listing, city_revenue
Occupancy : occupancy_rate, average_length_of_stay
Pricing : average_nightly_rate
Demand : average_lead_time, booking_window
"""

import logging
from typing import Dict, List, Optional, Sequence

import pandas as pd

from market_schema import (
    CITY,
    HOST_TYPE,
    LEAD_TIME,
    LENGTH_STAY,
    MONTH,
    MONTH_FORMAT,
    OCCUPANCY,
    OPENNESS,
    REVENUE,
    SALES_DATE,
    UNIFIED_ID,
)

logger = logging.getLogger(__name__)

OCCUPIED_NIGHTS = 'occupied_nights'

# Upper bound (inclusive) of each booking window, in days
BOOKING_WINDOWS = [
    (7, '1-7 days'),
    (14, '8-14 days'),
    (21, '2-3 weeks'),
    (28, 'about 1 month'),
]
LONG_BOOKING_WINDOW = 'more than 1 month'


def add_sales_date(fact: pd.DataFrame) -> pd.DataFrame:
    """
    Return a copy of ``fact`` with a month-start ``sales_date`` column.

    Rows whose month is missing are dropped with a warning.

    Raises
    ------
    ValueError
        If a month value does not match ``YYYY-MM``
    """
    frame = fact.copy()
    frame[SALES_DATE] = pd.to_datetime(frame[MONTH], format=MONTH_FORMAT)
    undated = frame[SALES_DATE].isna()
    if undated.any():
        logger.warning(f"Dropping {int(undated.sum())} rows without a month")
        frame = frame[~undated]
    return frame


def _safe_ratio(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
    return numerator / denominator.where(denominator != 0)


def aggregate_monthly(fact: pd.DataFrame, group_keys: Sequence[str] = ()) -> pd.DataFrame:
    """
    Aggregate the fact table per calendar month (and per extra group keys).

    Parameters
    ----------
    fact : pd.DataFrame
        Canonical fact table
    group_keys : sequence of str, optional
        Additional grouping columns, e.g. ``['city']``

    Returns
    -------
    pd.DataFrame
        One row per group, ordered by ``sales_date`` then the group keys

    Columns Included
    ----------------
    - Sums: total_revenue, open_nights, occupied_nights, total_length_stay
    - Counts: listing_count (distinct listings), row_count
    - Ratios: avg_revenue, occupancy_rate, avg_length_stay, avg_revenue_per_night
    - Demand: avg_lead_time, booking_window
    """
    keys = [SALES_DATE] + list(group_keys)
    frame = add_sales_date(fact)
    frame[OCCUPIED_NIGHTS] = frame[OPENNESS] * frame[OCCUPANCY]

    summary = frame.groupby(keys, dropna=False, sort=True).agg(
        total_revenue=(REVENUE, 'sum'),
        listing_count=(UNIFIED_ID, 'nunique'),
        row_count=(UNIFIED_ID, 'size'),
        open_nights=(OPENNESS, 'sum'),
        occupied_nights=(OCCUPIED_NIGHTS, 'sum'),
        total_length_stay=(LENGTH_STAY, 'sum'),
        avg_lead_time=(LEAD_TIME, 'mean'),
    ).reset_index()

    summary['avg_revenue'] = _safe_ratio(summary['total_revenue'], summary['listing_count'])
    summary['occupancy_rate'] = (
        _safe_ratio(summary['occupied_nights'], summary['open_nights']) * 100
    ).round(2)
    summary['avg_length_stay'] = _safe_ratio(summary['total_length_stay'], summary['row_count'])
    summary['avg_revenue_per_night'] = _safe_ratio(summary['total_revenue'], summary['occupied_nights'])
    summary['booking_window'] = summary['avg_lead_time'].map(classify_booking_window).astype(object)

    logger.debug(f"Aggregated {len(frame)} rows into {len(summary)} groups on {keys}")
    return summary


def _project(summary: pd.DataFrame, columns: List[str],
             group_keys: Sequence[str] = ()) -> pd.DataFrame:
    return summary[[SALES_DATE] + list(group_keys) + columns].reset_index(drop=True)


def classify_booking_window(lead_time: Optional[float]) -> str:
    """
    Bucket an average lead time (days) into a booking window.

    Parameters
    ----------
    lead_time : float or None
        Average days between booking and check-in

    Returns
    -------
    str
        '1-7 days', '8-14 days', '2-3 weeks', 'about 1 month' or
        'more than 1 month'

    Notes
    -----
    Buckets are contiguous: (7, 14] is '8-14 days', so 14 is '8-14 days'.
    Lead times below 1 day and missing lead times fall through to
    'more than 1 month'.
    """
    if lead_time is None or pd.isna(lead_time) or lead_time < 1:
        return LONG_BOOKING_WINDOW
    for upper_bound, label in BOOKING_WINDOWS:
        if lead_time <= upper_bound:
            return label
    return LONG_BOOKING_WINDOW


# ============================================================================
# REVENUE METRICS
# ============================================================================

def total_revenue(fact: pd.DataFrame) -> float:
    """Sum of revenue across all rows."""
    return float(fact[REVENUE].sum())


def monthly_revenue(fact: pd.DataFrame, group_keys: Sequence[str] = ()) -> pd.DataFrame:
    """Total revenue per month."""
    return _project(aggregate_monthly(fact, group_keys), ['total_revenue'], group_keys)


def average_revenue_per_listing(fact: pd.DataFrame, group_keys: Sequence[str] = ()) -> pd.DataFrame:
    """Revenue per month divided by the number of distinct listings that month."""
    return _project(aggregate_monthly(fact, group_keys), ['avg_revenue'], group_keys)


def city_revenue(fact: pd.DataFrame) -> pd.DataFrame:
    """Revenue per month and city, ordered by month then city."""
    frame = monthly_revenue(fact, [CITY])
    return frame.rename(columns={'total_revenue': 'revenue'})


# ============================================================================
# OCCUPANCY METRICS
# ============================================================================

def occupancy_rate(fact: pd.DataFrame, group_keys: Sequence[str] = ()) -> pd.DataFrame:
    """
    Percentage of occupied nights out of available nights per month.

    ``sum(openness * occupancy) / sum(openness) * 100``, rounded to two
    decimals. NaN for months with no available nights.
    """
    return _project(aggregate_monthly(fact, group_keys), ['occupancy_rate'], group_keys)


def average_length_of_stay(fact: pd.DataFrame, group_keys: Sequence[str] = ()) -> pd.DataFrame:
    """Mean stay in nights: ``sum(length_stay) / count(rows)`` per month."""
    return _project(aggregate_monthly(fact, group_keys), ['avg_length_stay'], group_keys)


# ============================================================================
# PRICING METRICS
# ============================================================================

def average_nightly_rate(fact: pd.DataFrame, group_keys: Sequence[str] = ()) -> pd.DataFrame:
    """Revenue per occupied night; NaN when no nights were occupied."""
    return _project(aggregate_monthly(fact, group_keys), ['avg_revenue_per_night'], group_keys)


# ============================================================================
# DEMAND METRICS
# ============================================================================

def average_lead_time(fact: pd.DataFrame, group_keys: Sequence[str] = ()) -> pd.DataFrame:
    """Mean days between booking and check-in per month."""
    return _project(aggregate_monthly(fact, group_keys), ['avg_lead_time'], group_keys)


def booking_window(fact: pd.DataFrame, group_keys: Sequence[str] = ()) -> pd.DataFrame:
    """Booking window bucket of each month's average lead time."""
    return _project(aggregate_monthly(fact, group_keys), ['avg_lead_time', 'booking_window'], group_keys)


def compute_all_kpis(fact: pd.DataFrame) -> Dict[str, pd.DataFrame]:
    """
    Compute every monthly KPI table from the canonical fact table.

    The monthly and breakdown aggregations are each computed once and
    projected into the individual tables.

    Parameters
    ----------
    fact : pd.DataFrame
        Canonical fact table

    Returns
    -------
    dict
        KPI name to DataFrame, each ordered chronologically

    Example
    -------
    >>> kpis = compute_all_kpis(fact)
    >>> kpis['occupancy_rate'].head()
    """
    monthly = aggregate_monthly(fact)
    by_city = aggregate_monthly(fact, [CITY])
    by_host_type = aggregate_monthly(fact, [HOST_TYPE])

    kpis = {
        'monthly_revenue': _project(monthly, ['total_revenue']),
        'avg_revenue_per_listing': _project(monthly, ['avg_revenue']),
        'city_revenue': _project(by_city, ['total_revenue'], [CITY]).rename(
            columns={'total_revenue': 'revenue'}
        ),
        'host_type_revenue': _project(by_host_type, ['total_revenue', 'avg_revenue'], [HOST_TYPE]),
        'occupancy_rate': _project(monthly, ['occupancy_rate']),
        'avg_length_stay': _project(monthly, ['avg_length_stay']),
        'avg_nightly_rate': _project(monthly, ['avg_revenue_per_night']),
        'avg_lead_time': _project(monthly, ['avg_lead_time']),
        'booking_window': _project(monthly, ['avg_lead_time', 'booking_window']),
    }

    revenue = total_revenue(fact)
    logger.info(f"Total revenue: {revenue:,.2f} across {len(monthly)} months")
    if monthly['occupancy_rate'].notna().any():
        logger.info(f"Mean monthly occupancy rate: {monthly['occupancy_rate'].mean():.2f}%")
    return kpis
