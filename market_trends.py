"""
Period-over-Period Trends
=========================
Month-over-month growth rates derived from the monthly KPI tables.

Growth policy (applied to every metric):
- first period: NaN (no predecessor)
- previous value 0: 100 (growth from nothing)
- previous or current value missing: NaN
- otherwise: ``(current - previous) / previous * 100``, rounded to 2 decimals
"""

import logging
from typing import Iterable, List, Optional, Sequence

import pandas as pd

from market_schema import CITY, SALES_DATE

logger = logging.getLogger(__name__)

ZERO_PREVIOUS_GROWTH = 100.0


def growth_rate(values: Iterable[Optional[float]]) -> List[Optional[float]]:
    """
    Percentage change of each value relative to the one before it.

    Parameters
    ----------
    values : iterable of float or None
        Metric values in chronological order

    Returns
    -------
    list
        Growth rate per period; ``None`` for the first period

    Example
    -------
    >>> growth_rate([100, 200, 0, 50])
    [None, 100.0, -100.0, 100.0]
    """
    rates: List[Optional[float]] = []
    previous = None
    for index, current in enumerate(values):
        if index == 0 or pd.isna(previous) or pd.isna(current):
            rates.append(None)
        elif previous == 0:
            rates.append(ZERO_PREVIOUS_GROWTH)
        else:
            rates.append(round(float((current - previous) / previous * 100), 2))
        previous = current
    return rates


def add_growth_column(frame: pd.DataFrame, value_column: str, growth_column: str,
                      group_keys: Sequence[str] = ()) -> pd.DataFrame:
    """
    Add a growth-rate column computed over ``value_column``.

    Growth is computed in ``sales_date`` order, separately for each group
    when ``group_keys`` are given.

    Parameters
    ----------
    frame : pd.DataFrame
        Monthly KPI table with a ``sales_date`` column
    value_column : str
        Metric column to compare period to period
    growth_column : str
        Name of the new column
    group_keys : sequence of str, optional
        Columns identifying independent series, e.g. ``['city']``

    Returns
    -------
    pd.DataFrame
        New table ordered by ``sales_date`` then the group keys
    """
    keys = list(group_keys)
    result = frame.sort_values(keys + [SALES_DATE], kind='stable').copy()

    def _series_growth(series: pd.Series) -> pd.Series:
        return pd.Series(growth_rate(series.tolist()), index=series.index, dtype=float)

    if keys:
        result[growth_column] = result.groupby(keys, dropna=False, sort=False)[value_column].transform(_series_growth)
    else:
        result[growth_column] = _series_growth(result[value_column])

    logger.debug(f"Computed '{growth_column}' from '{value_column}' over {len(result)} rows")
    return result.sort_values([SALES_DATE] + keys, kind='stable').reset_index(drop=True)


def revenue_growth(monthly_revenue: pd.DataFrame) -> pd.DataFrame:
    """Month-over-month growth of total revenue (column ``growth``)."""
    return add_growth_column(monthly_revenue, 'total_revenue', 'growth')


def occupancy_growth(occupancy_rate: pd.DataFrame) -> pd.DataFrame:
    """Month-over-month growth of the occupancy rate (column ``growth_rate``)."""
    return add_growth_column(occupancy_rate, 'occupancy_rate', 'growth_rate')


def price_change(nightly_rate: pd.DataFrame) -> pd.DataFrame:
    """Month-over-month change of revenue per occupied night (column ``price_change``)."""
    return add_growth_column(nightly_rate, 'avg_revenue_per_night', 'price_change')


def city_revenue_growth(city_revenue: pd.DataFrame) -> pd.DataFrame:
    """Month-over-month revenue growth computed separately for each city."""
    return add_growth_column(city_revenue, 'revenue', 'growth', group_keys=[CITY])
