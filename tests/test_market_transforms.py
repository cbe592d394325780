"""Tests for normalization, deduplication and union of the source tables."""

import numpy as np
import pandas as pd
import pytest

from market_schema import LISTING_MONTH_COLUMNS, MissingRequiredColumnError, SchemaMismatchError
from market_transforms import (
    deduplicate,
    normalize_amenity_table,
    normalize_market_table,
    report_missing_values,
    report_out_of_range,
    unify_tables,
)


class TestNormalizeMarketTable:
    """Tests for normalize_market_table."""

    def test_missing_values_reported_and_filled(self, make_market_frame):
        """Nulls in numeric fields are counted and replaced with zero."""
        raw = make_market_frame([
            {'unified_id': 'A', 'lead_time': None, 'length_stay': None},
            {'unified_id': 'B', 'nightly_rate': np.nan, 'lead_time': 4},
        ])

        report = report_missing_values(raw)
        normalized = normalize_market_table(raw)

        assert report == {
            'missing_lead_time': 1,
            'missing_nightly_rate': 1,
            'missing_length_stay': 1,
        }
        assert normalized['lead_time'].tolist() == [0.0, 4.0]
        assert normalized['nightly_rate'].tolist() == [0.0, 0.0]
        assert not normalized[LISTING_MONTH_COLUMNS].isna().any().any()

    def test_custom_fill_value(self, make_market_frame):
        """The fill value is configurable."""
        raw = make_market_frame([{'lead_time': None}])

        normalized = normalize_market_table(raw, fill_value=-1)

        assert normalized['lead_time'].iloc[0] == -1

    def test_input_not_modified(self, make_market_frame):
        """Normalization returns a new table."""
        raw = make_market_frame([{'lead_time': None}])

        normalize_market_table(raw)

        assert pd.isna(raw['lead_time'].iloc[0])

    def test_columns_reordered_and_extra_columns_dropped(self, make_market_frame):
        """Output has exactly the canonical columns in canonical order."""
        raw = make_market_frame([{'unified_id': 'A'}])
        raw['extra'] = 'x'
        raw = raw[list(reversed(raw.columns))]

        normalized = normalize_market_table(raw)

        assert list(normalized.columns) == LISTING_MONTH_COLUMNS

    def test_missing_column_fails_fast(self, make_market_frame):
        """A table without a required column raises MissingRequiredColumnError."""
        raw = make_market_frame([{'unified_id': 'A'}]).drop(columns=['occupancy', 'city'])

        with pytest.raises(MissingRequiredColumnError) as exc_info:
            normalize_market_table(raw, table_name='market_analysis_2019')

        assert exc_info.value.missing == ['city', 'occupancy']
        assert exc_info.value.table_name == 'market_analysis_2019'

    def test_empty_table_is_valid(self, empty_market_frame):
        """A table with zero rows normalizes to zero rows."""
        normalized = normalize_market_table(empty_market_frame)

        assert len(normalized) == 0
        assert list(normalized.columns) == LISTING_MONTH_COLUMNS

    def test_table_without_columns_is_valid(self):
        """A completely empty frame is treated as an empty table."""
        normalized = normalize_market_table(pd.DataFrame())

        assert len(normalized) == 0
        assert list(normalized.columns) == LISTING_MONTH_COLUMNS

    def test_numeric_strings_coerced(self, make_market_frame):
        """Numeric values read as text become numbers."""
        raw = make_market_frame([{'revenue': '150', 'occupancy': '0.4'}])

        normalized = normalize_market_table(raw)

        assert normalized['revenue'].iloc[0] == 150.0
        assert normalized['occupancy'].iloc[0] == pytest.approx(0.4)

    def test_month_timestamps_formatted(self, make_market_frame):
        """Month values loaded as dates are formatted as YYYY-MM."""
        raw = make_market_frame([{'month': pd.Timestamp('2019-03-01')}])

        normalized = normalize_market_table(raw)

        assert normalized['month'].iloc[0] == '2019-03'


class TestReportOutOfRange:
    """Tests for report_out_of_range."""

    def test_counts_violations(self, make_market_frame):
        """Negative revenue/openness and occupancy outside [0, 1] are counted."""
        frame = make_market_frame([
            {'revenue': -5, 'openness': 10, 'occupancy': 0.5},
            {'revenue': 5, 'openness': -1, 'occupancy': 1.5},
            {'revenue': 5, 'openness': 10, 'occupancy': 1.0},
        ])

        report = report_out_of_range(frame)

        assert report == {
            'negative_revenue': 1,
            'negative_openness': 1,
            'occupancy_out_of_range': 1,
        }


class TestNormalizeAmenityTable:
    """Tests for normalize_amenity_table."""

    def test_flags_coerced_to_int(self):
        """Null flags become 0 and truthy flags become 1."""
        raw = pd.DataFrame({
            'unified_id': ['A', 'B', 'C'],
            'pool': [1.0, None, 3],
            'hot_tub': [0, 2, None],
        })

        normalized = normalize_amenity_table(raw)

        assert normalized['pool'].tolist() == [1, 0, 1]
        assert normalized['hot_tub'].tolist() == [0, 1, 0]

    def test_missing_column_fails_fast(self):
        """An amenity table without hot_tub raises MissingRequiredColumnError."""
        raw = pd.DataFrame({'unified_id': ['A'], 'pool': [1]})

        with pytest.raises(MissingRequiredColumnError):
            normalize_amenity_table(raw)


class TestDeduplicate:
    """Tests for deduplicate."""

    def test_identical_rows_collapse_to_one(self, make_market_frame):
        """Two identical rows for the same listing leave exactly one row."""
        frame = make_market_frame([
            {'unified_id': 'A', 'revenue': 100},
            {'unified_id': 'A', 'revenue': 100},
        ])

        deduped = deduplicate(frame)

        assert len(deduped) == 1
        assert deduped['unified_id'].tolist() == ['A']

    def test_keeps_first_row_in_original_order(self, make_market_frame):
        """When rows differ, the first one encountered is kept."""
        frame = make_market_frame([
            {'unified_id': 'B', 'revenue': 10},
            {'unified_id': 'A', 'revenue': 20},
            {'unified_id': 'B', 'revenue': 30},
            {'unified_id': 'A', 'revenue': 40},
        ])

        deduped = deduplicate(frame)

        assert deduped['unified_id'].tolist() == ['B', 'A']
        assert deduped['revenue'].tolist() == [10, 20]
        assert list(deduped.index) == [0, 1]

    def test_no_two_rows_share_key(self, make_market_frame):
        """After deduplication every identifier is unique."""
        ids = ['A', 'B', 'A', 'C', 'B', 'A']
        frame = make_market_frame([{'unified_id': uid, 'revenue': i} for i, uid in enumerate(ids)])

        deduped = deduplicate(frame)

        assert not deduped['unified_id'].duplicated().any()
        assert set(deduped['unified_id']) == {'A', 'B', 'C'}

    def test_listing_month_key(self, make_market_frame):
        """With the listing-month key, one row per listing per month survives."""
        frame = make_market_frame([
            {'unified_id': 'A', 'month': '2019-01'},
            {'unified_id': 'A', 'month': '2019-02'},
            {'unified_id': 'A', 'month': '2019-01', 'revenue': 99},
        ])

        deduped = deduplicate(frame, key_columns=['unified_id', 'month'])

        assert deduped['month'].tolist() == ['2019-01', '2019-02']
        assert deduped['revenue'].tolist() == [0.0, 0.0]
        # A wider key leaves the listing identifier repeated across months
        assert deduped['unified_id'].duplicated().any()


class TestUnifyTables:
    """Tests for unify_tables."""

    def test_union_with_self_is_identity(self, market_fact):
        """Unifying a table with itself returns it unchanged."""
        unified = unify_tables([market_fact, market_fact])

        pd.testing.assert_frame_equal(unified, market_fact.reset_index(drop=True))

    def test_union_with_empty_table(self, make_market_frame, empty_market_frame):
        """One row plus an empty source yields exactly one row."""
        year_1 = normalize_market_table(make_market_frame([
            {'unified_id': 'A', 'month': '2019-01', 'revenue': 100, 'openness': 30, 'occupancy': 0.5},
        ]))
        year_2 = normalize_market_table(empty_market_frame)

        unified = unify_tables([year_1, year_2])

        assert len(unified) == 1
        assert unified['revenue'].sum() == 100

    def test_rows_identical_across_sources_counted_once(self, make_market_frame):
        """Union eliminates duplicates instead of appending them."""
        year_1 = make_market_frame([{'unified_id': 'A', 'revenue': 100}, {'unified_id': 'B', 'revenue': 50}])
        year_2 = make_market_frame([{'unified_id': 'A', 'revenue': 100}, {'unified_id': 'C', 'revenue': 70}])

        unified = unify_tables([year_1, year_2])

        assert unified['unified_id'].tolist() == ['A', 'B', 'C']
        assert unified['revenue'].sum() == 220

    def test_columns_aligned_to_first_table(self, make_market_frame):
        """Tables with the same columns in another order are aligned."""
        year_1 = make_market_frame([{'unified_id': 'A'}])
        year_2 = make_market_frame([{'unified_id': 'B'}])
        year_2 = year_2[list(reversed(year_2.columns))]

        unified = unify_tables([year_1, year_2])

        assert list(unified.columns) == list(year_1.columns)
        assert unified['unified_id'].tolist() == ['A', 'B']

    def test_schema_mismatch(self, make_market_frame):
        """Different column sets raise SchemaMismatchError."""
        year_1 = make_market_frame([{'unified_id': 'A'}])
        year_2 = make_market_frame([{'unified_id': 'B'}]).drop(columns=['lead_time'])

        with pytest.raises(SchemaMismatchError) as exc_info:
            unify_tables([year_1, year_2])

        assert 'lead_time' in str(exc_info.value)

    def test_no_tables(self):
        """At least one table is required."""
        with pytest.raises(ValueError):
            unify_tables([])
