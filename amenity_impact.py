"""
Amenity Impact Analysis
=======================
Classifies listings by primary amenity (pool / hot tub) and measures each
amenity category's monthly revenue, rank and share of the market.

Classification
--------------
pool only      -> 'Pool'
hot tub only   -> 'Hot_tub'
anything else  -> 'No_Amenity' (or 'Both' for pool + hot tub when
                  ``split_both=True``)
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd

from market_kpis import add_sales_date
from market_schema import AMENITY, HOT_TUB, POOL, REVENUE, SALES_DATE, UNIFIED_ID

logger = logging.getLogger(__name__)

POOL_AMENITY = 'Pool'
HOT_TUB_AMENITY = 'Hot_tub'
BOTH_AMENITIES = 'Both'
NO_AMENITY = 'No_Amenity'


def _has_flag(value: Optional[float]) -> bool:
    return value is not None and not pd.isna(value) and value != 0


def classify_amenity(pool: Optional[float], hot_tub: Optional[float],
                     split_both: bool = False) -> str:
    """
    Classify a listing into exactly one primary amenity category.

    Parameters
    ----------
    pool : int or None
        Pool flag (1 = present)
    hot_tub : int or None
        Hot tub flag (1 = present)
    split_both : bool, default=False
        Report listings with both amenities as 'Both' instead of 'No_Amenity'

    Returns
    -------
    str
        'Pool', 'Hot_tub', 'No_Amenity' or 'Both'
    """
    has_pool = _has_flag(pool)
    has_hot_tub = _has_flag(hot_tub)

    if has_hot_tub and not has_pool:
        return HOT_TUB_AMENITY
    elif has_pool and not has_hot_tub:
        return POOL_AMENITY
    elif has_pool and has_hot_tub and split_both:
        return BOTH_AMENITIES
    else:
        return NO_AMENITY


def classify_amenities(amenities: pd.DataFrame, split_both: bool = False) -> pd.DataFrame:
    """
    Return a copy of the amenity table with an ``amenity`` category column.

    Vectorised form of ``classify_amenity``, which defines the rule; both
    give the same category for every row.
    """
    result = amenities.copy()
    pool = pd.to_numeric(result[POOL], errors='coerce').fillna(0).to_numpy() != 0
    hot_tub = pd.to_numeric(result[HOT_TUB], errors='coerce').fillna(0).to_numpy() != 0

    conditions = [hot_tub & ~pool, pool & ~hot_tub]
    choices = [HOT_TUB_AMENITY, POOL_AMENITY]
    if split_both:
        conditions.append(pool & hot_tub)
        choices.append(BOTH_AMENITIES)

    result[AMENITY] = np.select(conditions, choices, default=NO_AMENITY)
    result[AMENITY] = result[AMENITY].astype(object)
    return result


def amenity_revenue(fact: pd.DataFrame, amenities: pd.DataFrame,
                    split_both: bool = False) -> pd.DataFrame:
    """
    Revenue and listing count per month and amenity category.

    Listing-month rows are joined to the amenity table on ``unified_id``;
    rows without an amenity record are excluded.

    Parameters
    ----------
    fact : pd.DataFrame
        Canonical fact table
    amenities : pd.DataFrame
        Amenity flag table, one row per listing
    split_both : bool, default=False
        See ``classify_amenity``

    Returns
    -------
    pd.DataFrame
        Columns: sales_date, amenity, total_sum, num_amenity; ordered by
        month, then revenue descending

    Example
    -------
    >>> amen = amenity_revenue(fact, amenities)
    >>> amen[amen['sales_date'] == '2019-01-01']
    """
    classified = classify_amenities(amenities, split_both=split_both)[[UNIFIED_ID, AMENITY]]
    joined = add_sales_date(fact).merge(classified, on=UNIFIED_ID, how='inner')

    unmatched = fact[UNIFIED_ID].nunique() - joined[UNIFIED_ID].nunique()
    if unmatched:
        logger.info(f"{unmatched} listings have no amenity record and are excluded")

    summary = joined.groupby([SALES_DATE, AMENITY], sort=True).agg(
        total_sum=(REVENUE, 'sum'),
        num_amenity=(UNIFIED_ID, 'size'),
    ).reset_index()

    return summary.sort_values(
        [SALES_DATE, 'total_sum'], ascending=[True, False], kind='stable'
    ).reset_index(drop=True)


def rank_amenity_revenue(amenity_frame: pd.DataFrame) -> pd.DataFrame:
    """
    Rank amenity categories by revenue within each month.

    Uses a dense rank (equal revenue shares a rank); rows with equal rank keep
    their input order.
    """
    result = amenity_frame.copy()
    result['revenue_rank'] = (
        result.groupby(SALES_DATE)['total_sum']
        .rank(method='dense', ascending=False)
        .astype(int)
    )
    return result.sort_values([SALES_DATE, 'revenue_rank'], kind='stable').reset_index(drop=True)


def amenity_share(amenity_frame: pd.DataFrame) -> pd.DataFrame:
    """
    Percentage of each month's listings and revenue per amenity category.

    Adds ``total_num`` and ``total_revenue`` (month totals) and the shares
    ``p_num_amn`` and ``p_revenue_amn`` rounded to two decimals. A share is
    NaN when the month's total is zero.
    """
    result = amenity_frame.copy()
    by_month = result.groupby(SALES_DATE)
    result['total_num'] = by_month['num_amenity'].transform('sum')
    result['total_revenue'] = by_month['total_sum'].transform('sum')

    result['p_num_amn'] = (
        result['num_amenity'] / result['total_num'].where(result['total_num'] != 0) * 100
    ).round(2)
    result['p_revenue_amn'] = (
        result['total_sum'] / result['total_revenue'].where(result['total_revenue'] != 0) * 100
    ).round(2)
    return result
