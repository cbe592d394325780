"""
Market Analysis Schema
======================
Column names, column groups and error types shared by every stage of the
Airbnb market analysis KPI pipeline.

Tables
------
Listing-month records (``market_analysis``, ``market_analysis_2019``, ...)
    One row per listing per calendar month.
Amenity flags (``amenities``)
    One row per listing with pool / hot tub indicators.
"""

import re
from typing import Iterable, List

# Listing-month record columns
UNIFIED_ID = 'unified_id'
MONTH = 'month'
CITY = 'city'
HOST_TYPE = 'host_type'
REVENUE = 'revenue'
OPENNESS = 'openness'
OCCUPANCY = 'occupancy'
NIGHTLY_RATE = 'nightly_rate'
LEAD_TIME = 'lead_time'
LENGTH_STAY = 'length_stay'

# Amenity flag columns
POOL = 'pool'
HOT_TUB = 'hot_tub'
AMENITY = 'amenity'

# Derived period column (month-start timestamp)
SALES_DATE = 'sales_date'
MONTH_FORMAT = '%Y-%m'

LISTING_MONTH_COLUMNS = [
    UNIFIED_ID, MONTH, CITY, HOST_TYPE, REVENUE, OPENNESS,
    OCCUPANCY, NIGHTLY_RATE, LEAD_TIME, LENGTH_STAY
]
TEXT_COLUMNS = [UNIFIED_ID, MONTH, CITY, HOST_TYPE]
NUMERIC_COLUMNS = [REVENUE, OPENNESS, OCCUPANCY, NIGHTLY_RATE, LEAD_TIME, LENGTH_STAY]
NULLABLE_NUMERIC_COLUMNS = [LEAD_TIME, NIGHTLY_RATE, LENGTH_STAY]

AMENITY_COLUMNS = [UNIFIED_ID, POOL, HOT_TUB]

LISTING_KEY = [UNIFIED_ID]
LISTING_MONTH_KEY = [UNIFIED_ID, MONTH]

# Unquoted SQL identifier (table and column names)
SQL_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class MarketAnalysisError(Exception):
    """Base class for pipeline errors."""


class SchemaMismatchError(MarketAnalysisError):
    """
    Raised when source tables cannot be unified because their columns differ.

    Parameters
    ----------
    expected : iterable of str
        Columns of the first table
    actual : iterable of str
        Columns of the offending table
    """

    def __init__(self, expected: Iterable[str], actual: Iterable[str]):
        self.expected = sorted(expected)
        self.actual = sorted(actual)
        missing = sorted(set(self.expected) - set(self.actual))
        extra = sorted(set(self.actual) - set(self.expected))
        super().__init__(
            f"Column sets differ (missing: {missing or 'none'}, unexpected: {extra or 'none'})"
        )


class MissingRequiredColumnError(MarketAnalysisError):
    """Raised when a source table lacks a required column."""

    def __init__(self, table_name: str, missing: List[str]):
        self.table_name = table_name
        self.missing = list(missing)
        super().__init__(
            f"Table '{table_name}' is missing required column(s): {', '.join(self.missing)}"
        )
