"""Pytest configuration for market analysis tests."""

import sys
from pathlib import Path

import pandas as pd
import pytest

# Add project root to path for imports
root_path = Path(__file__).parent.parent
sys.path.insert(0, str(root_path))

from market_schema import LISTING_MONTH_COLUMNS  # noqa: E402

ROW_DEFAULTS = {
    'unified_id': 'A',
    'month': '2019-01',
    'city': 'Big Bear',
    'host_type': 'Single Owner',
    'revenue': 0.0,
    'openness': 0.0,
    'occupancy': 0.0,
    'nightly_rate': 0.0,
    'lead_time': 0.0,
    'length_stay': 0.0,
}


def build_market_frame(rows):
    """Build a listing-month table, filling unspecified columns with defaults."""
    records = [{**ROW_DEFAULTS, **row} for row in rows]
    return pd.DataFrame(records, columns=LISTING_MONTH_COLUMNS)


@pytest.fixture
def make_market_frame():
    return build_market_frame


@pytest.fixture
def empty_market_frame():
    return pd.DataFrame(columns=LISTING_MONTH_COLUMNS)


@pytest.fixture
def market_fact():
    """Three months, two cities, three listings."""
    return build_market_frame([
        {'unified_id': 'A', 'month': '2019-01', 'city': 'Big Bear', 'revenue': 100,
         'openness': 30, 'occupancy': 0.5, 'lead_time': 5, 'length_stay': 3},
        {'unified_id': 'B', 'month': '2019-01', 'city': 'Joshua Tree', 'revenue': 300,
         'openness': 10, 'occupancy': 1.0, 'lead_time': 15, 'length_stay': 5},
        {'unified_id': 'A', 'month': '2019-02', 'city': 'Big Bear', 'revenue': 200,
         'openness': 20, 'occupancy': 0.5, 'lead_time': 10, 'length_stay': 2},
        {'unified_id': 'C', 'month': '2019-02', 'city': 'Joshua Tree', 'revenue': 200,
         'openness': 20, 'occupancy': 0.25, 'lead_time': 20, 'length_stay': 4,
         'host_type': 'Multi Owner'},
        {'unified_id': 'A', 'month': '2019-03', 'city': 'Big Bear', 'revenue': 0,
         'openness': 0, 'occupancy': 0, 'lead_time': 0, 'length_stay': 0},
    ])


@pytest.fixture
def amenity_flags():
    return pd.DataFrame({
        'unified_id': ['A', 'B', 'C'],
        'pool': [1, 0, 1],
        'hot_tub': [0, 1, 1],
    })
