"""Tests for amenity classification, ranking and shares."""

import pandas as pd
import pytest

from amenity_impact import (
    amenity_revenue,
    amenity_share,
    classify_amenities,
    classify_amenity,
    rank_amenity_revenue,
)


class TestClassifyAmenity:
    """Tests for classify_amenity."""

    @pytest.mark.parametrize('pool, hot_tub, expected', [
        (1, 0, 'Pool'),
        (0, 1, 'Hot_tub'),
        (1, 1, 'No_Amenity'),
        (0, 0, 'No_Amenity'),
        (None, 1, 'Hot_tub'),
        (None, None, 'No_Amenity'),
    ])
    def test_precedence(self, pool, hot_tub, expected):
        """Pool-only and hot-tub-only listings get their own category."""
        assert classify_amenity(pool, hot_tub) == expected

    def test_split_both(self):
        """With split_both, pool + hot tub is reported as 'Both'."""
        assert classify_amenity(1, 1, split_both=True) == 'Both'
        assert classify_amenity(0, 0, split_both=True) == 'No_Amenity'

    def test_vectorised_matches_scalar(self, amenity_flags):
        """classify_amenities agrees with classify_amenity row by row."""
        classified = classify_amenities(amenity_flags)

        expected = [classify_amenity(p, h) for p, h in zip(amenity_flags['pool'], amenity_flags['hot_tub'])]
        assert classified['amenity'].tolist() == expected == ['Pool', 'Hot_tub', 'No_Amenity']

    @pytest.mark.parametrize('split_both', [False, True])
    def test_vectorised_follows_scalar_rule_for_every_flag_pair(self, split_both):
        flags = pd.DataFrame({
            'unified_id': ['A', 'B', 'C', 'D', 'E', 'F'],
            'pool': [0, 1, 0, 1, None, 2],
            'hot_tub': [0, 0, 1, 1, 1, None],
        })

        classified = classify_amenities(flags, split_both=split_both)

        expected = [classify_amenity(p, h, split_both=split_both) for p, h in zip(flags['pool'], flags['hot_tub'])]
        assert classified['amenity'].tolist() == expected


class TestAmenityRevenue:
    """Tests for amenity_revenue."""

    def test_revenue_and_counts_per_month(self, market_fact, amenity_flags):
        """Revenue and row counts are summed per month and category."""
        result = amenity_revenue(market_fact, amenity_flags)

        january = result[result['sales_date'] == pd.Timestamp('2019-01-01')]
        assert january['amenity'].tolist() == ['Hot_tub', 'Pool']
        assert january['total_sum'].tolist() == [300, 100]
        assert january['num_amenity'].tolist() == [1, 1]

    def test_ordered_by_month_then_revenue(self, market_fact, amenity_flags):
        result = amenity_revenue(market_fact, amenity_flags)

        assert result['sales_date'].is_monotonic_increasing
        for _, month in result.groupby('sales_date'):
            assert month['total_sum'].is_monotonic_decreasing

    def test_listings_without_amenity_record_excluded(self, market_fact, amenity_flags):
        """Only listings present in the amenity table are counted."""
        result = amenity_revenue(market_fact, amenity_flags[amenity_flags['unified_id'] != 'B'])

        january = result[result['sales_date'] == pd.Timestamp('2019-01-01')]
        assert january['amenity'].tolist() == ['Pool']

    def test_split_both(self, market_fact, amenity_flags):
        result = amenity_revenue(market_fact, amenity_flags, split_both=True)

        assert 'Both' in result['amenity'].tolist()
        assert 'No_Amenity' not in result['amenity'].tolist()


class TestRankAmenityRevenue:
    """Tests for rank_amenity_revenue."""

    def test_dense_rank_within_month(self):
        """Equal revenue shares a rank and ranks stay consecutive."""
        frame = pd.DataFrame({
            'sales_date': pd.to_datetime(['2019-01-01'] * 3 + ['2019-02-01'] * 2),
            'amenity': ['Pool', 'Hot_tub', 'No_Amenity', 'Pool', 'No_Amenity'],
            'total_sum': [500, 500, 100, 50, 70],
            'num_amenity': [2, 3, 1, 1, 1],
        })

        result = rank_amenity_revenue(frame)

        january = result[result['sales_date'] == pd.Timestamp('2019-01-01')]
        february = result[result['sales_date'] == pd.Timestamp('2019-02-01')]
        assert january['revenue_rank'].tolist() == [1, 1, 2]
        assert january['amenity'].tolist() == ['Pool', 'Hot_tub', 'No_Amenity']
        assert february['amenity'].tolist() == ['No_Amenity', 'Pool']
        assert february['revenue_rank'].tolist() == [1, 2]


class TestAmenityShare:
    """Tests for amenity_share."""

    def test_shares_sum_to_100(self, make_market_frame):
        """Revenue and listing shares add up to 100 in every month."""
        fact = make_market_frame([
            {'unified_id': uid, 'month': month, 'revenue': revenue}
            for uid, month, revenue in [
                ('A', '2019-01', 123), ('B', '2019-01', 456), ('C', '2019-01', 789),
                ('A', '2019-02', 10), ('B', '2019-02', 20), ('C', '2019-02', 7),
            ]
        ])
        flags = pd.DataFrame({'unified_id': ['A', 'B', 'C'], 'pool': [1, 0, 0], 'hot_tub': [0, 1, 0]})

        result = amenity_share(amenity_revenue(fact, flags))

        totals = result.groupby('sales_date')[['p_revenue_amn', 'p_num_amn']].sum()
        assert ((totals - 100).abs() <= 0.05).all().all()

    def test_month_totals(self, market_fact, amenity_flags):
        result = amenity_share(amenity_revenue(market_fact, amenity_flags))

        january = result[result['sales_date'] == pd.Timestamp('2019-01-01')]
        assert january['total_revenue'].tolist() == [400, 400]
        assert january['total_num'].tolist() == [2, 2]
        assert january['p_revenue_amn'].tolist() == [75.0, 25.0]

    def test_zero_revenue_month_has_null_share(self, market_fact, amenity_flags):
        """A month whose total revenue is zero has undefined revenue shares."""
        result = amenity_share(amenity_revenue(market_fact, amenity_flags))

        march = result[result['sales_date'] == pd.Timestamp('2019-03-01')]
        assert march['p_revenue_amn'].isna().all()
        assert march['p_num_amn'].tolist() == [100.0]
