"""
Market Table Transformations
============================
Ingestion normalization, deduplication and union of the by-year market
analysis tables into the canonical fact table.

Functions
---------
validate_columns : Fail fast when required columns are absent
report_missing_values : Count nulls in the nullable numeric fields
report_out_of_range : Count rows breaking the value-range invariants
normalize_market_table : Validate, report and fill a listing-month table
normalize_amenity_table : Validate and fill the amenity flag table
deduplicate : Keep one row per key (first in original row order)
unify_tables : Set union of column-aligned source tables
"""

import logging
from typing import Dict, Iterable, List, Sequence

import pandas as pd

from market_schema import (
    AMENITY_COLUMNS,
    HOT_TUB,
    LISTING_KEY,
    LISTING_MONTH_COLUMNS,
    MONTH,
    MONTH_FORMAT,
    MissingRequiredColumnError,
    NULLABLE_NUMERIC_COLUMNS,
    NUMERIC_COLUMNS,
    OCCUPANCY,
    OPENNESS,
    POOL,
    REVENUE,
    SchemaMismatchError,
    TEXT_COLUMNS,
    UNIFIED_ID,
)

logger = logging.getLogger(__name__)


def validate_columns(columns: Iterable[str], required: Iterable[str],
                     table_name: str) -> None:
    """
    Check that every required column is present.

    Parameters
    ----------
    columns : iterable of str
        Columns of the table being checked
    required : iterable of str
        Columns the table must contain
    table_name : str
        Name used in the error message

    Raises
    ------
    MissingRequiredColumnError
        If one or more required columns are absent
    """
    missing = sorted(set(required) - set(columns))
    if missing:
        logger.error(f"Table '{table_name}' is missing columns: {missing}")
        raise MissingRequiredColumnError(table_name, missing)


def report_missing_values(df: pd.DataFrame, table_name: str = 'market_analysis') -> Dict[str, int]:
    """
    Count missing values in the nullable numeric fields.

    Parameters
    ----------
    df : pd.DataFrame
        Listing-month table
    table_name : str, default='market_analysis'
        Name used in the log line

    Returns
    -------
    dict
        ``missing_lead_time``, ``missing_nightly_rate`` and
        ``missing_length_stay`` counts

    Example
    -------
    >>> report_missing_values(market_df)
    {'missing_lead_time': 3, 'missing_nightly_rate': 0, 'missing_length_stay': 3}
    """
    report = {
        f'missing_{column}': int(df[column].isna().sum())
        for column in NULLABLE_NUMERIC_COLUMNS
    }
    logger.info(f"Missing values in '{table_name}': {report}")
    return report


def report_out_of_range(df: pd.DataFrame, table_name: str = 'market_analysis') -> Dict[str, int]:
    """
    Count rows with negative revenue or openness, or occupancy outside [0, 1].

    Violations are logged as warnings; the rows are kept.
    """
    report = {
        'negative_revenue': int((df[REVENUE] < 0).sum()),
        'negative_openness': int((df[OPENNESS] < 0).sum()),
        'occupancy_out_of_range': int(((df[OCCUPANCY] < 0) | (df[OCCUPANCY] > 1)).sum()),
    }
    if any(report.values()):
        logger.warning(f"Out-of-range values in '{table_name}': {report}")
    return report


def _format_month(value):
    if pd.isna(value):
        return value
    if hasattr(value, 'strftime'):
        return value.strftime(MONTH_FORMAT)
    return str(value).strip()


def _format_text(value):
    if pd.isna(value):
        return value
    return str(value).strip()


def normalize_market_table(df: pd.DataFrame, fill_value: float = 0,
                           table_name: str = 'market_analysis') -> pd.DataFrame:
    """
    Validate and normalize a raw listing-month table.

    Steps:
    1. Check that all listing-month columns are present
    2. Coerce numeric fields and report missing values
    3. Replace nulls in numeric fields with ``fill_value``
    4. Restrict to the canonical column order

    Parameters
    ----------
    df : pd.DataFrame
        Raw source table
    fill_value : float, default=0
        Replacement for nulls in numeric fields
    table_name : str, default='market_analysis'
        Source table name for logs and errors

    Returns
    -------
    pd.DataFrame
        New normalized table; the input is not modified

    Raises
    ------
    MissingRequiredColumnError
        If a listing-month column is absent

    Notes
    -----
    A table with no rows and no columns is treated as an empty, valid table.
    """
    if df.empty and len(df.columns) == 0:
        logger.info(f"Table '{table_name}' is empty")
        df = pd.DataFrame(columns=LISTING_MONTH_COLUMNS)

    validate_columns(df.columns, LISTING_MONTH_COLUMNS, table_name)

    normalized = df[LISTING_MONTH_COLUMNS].copy()
    for column in NUMERIC_COLUMNS:
        normalized[column] = pd.to_numeric(normalized[column], errors='coerce').astype(float)

    report_missing_values(normalized, table_name)
    report_out_of_range(normalized, table_name)

    normalized[NUMERIC_COLUMNS] = normalized[NUMERIC_COLUMNS].fillna(fill_value)
    for column in TEXT_COLUMNS:
        formatter = _format_month if column == MONTH else _format_text
        normalized[column] = normalized[column].map(formatter).astype(object)

    logger.info(f"Normalized '{table_name}': {len(normalized)} rows")
    return normalized.reset_index(drop=True)


def normalize_amenity_table(df: pd.DataFrame, table_name: str = 'amenities') -> pd.DataFrame:
    """Validate the amenity table and coerce pool / hot tub flags to 0 or 1."""
    if df.empty and len(df.columns) == 0:
        df = pd.DataFrame(columns=AMENITY_COLUMNS)

    validate_columns(df.columns, AMENITY_COLUMNS, table_name)

    normalized = df[AMENITY_COLUMNS].copy()
    normalized[UNIFIED_ID] = normalized[UNIFIED_ID].map(_format_text).astype(object)
    for column in (POOL, HOT_TUB):
        flags = pd.to_numeric(normalized[column], errors='coerce').fillna(0)
        normalized[column] = (flags != 0).astype(int)

    logger.info(f"Normalized '{table_name}': {len(normalized)} rows")
    return normalized.reset_index(drop=True)


def deduplicate(df: pd.DataFrame, key_columns: Sequence[str] = LISTING_KEY) -> pd.DataFrame:
    """
    Keep exactly one row per key.

    When several rows share a key, the first one in original row order is
    kept. The result has a fresh ``RangeIndex``.

    With the default key no two rows share a listing identifier. Callers
    passing a wider key, such as ``['unified_id', 'month']``, only get
    uniqueness of that key.

    Parameters
    ----------
    df : pd.DataFrame
        Table to deduplicate
    key_columns : sequence of str, default=['unified_id']
        Columns forming the key

    Returns
    -------
    pd.DataFrame
        Deduplicated copy of ``df``

    Example
    -------
    >>> deduped = deduplicate(market_df, key_columns=['unified_id', 'month'])
    """
    deduped = df.drop_duplicates(subset=list(key_columns), keep='first').reset_index(drop=True)
    removed = len(df) - len(deduped)
    if removed:
        logger.info(f"Removed {removed} duplicate rows on key {list(key_columns)}")
    return deduped


def unify_tables(tables: Sequence[pd.DataFrame]) -> pd.DataFrame:
    """
    Union source tables into one table, eliminating duplicate rows.

    Columns are aligned to the first table's order. Rows that are identical
    across (or within) sources appear once, as with SQL ``UNION``.

    Parameters
    ----------
    tables : sequence of pd.DataFrame
        Source tables sharing the same column set

    Returns
    -------
    pd.DataFrame
        Canonical fact table

    Raises
    ------
    ValueError
        If no tables are given
    SchemaMismatchError
        If a table's column set differs from the first table's
    """
    tables: List[pd.DataFrame] = list(tables)
    if not tables:
        raise ValueError("At least one source table is required")

    reference = list(tables[0].columns)
    aligned = []
    for table in tables:
        if set(table.columns) != set(reference):
            logger.error(f"Cannot unify tables with columns {sorted(table.columns)} and {sorted(reference)}")
            raise SchemaMismatchError(reference, table.columns)
        aligned.append(table[reference])

    non_empty = [table for table in aligned if not table.empty] or aligned[:1]
    unified = pd.concat(non_empty, ignore_index=True)
    unified = unified.drop_duplicates(keep='first').reset_index(drop=True)
    logger.info(f"Unified {len(tables)} tables into {len(unified)} rows")
    return unified
