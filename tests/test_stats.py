"""Tests for median and trimmed median."""

import pytest

from dealscan.models.stats import median, trimmed_median


class TestMedian:
    def test_empty_is_zero(self):
        assert median([]) == 0

    def test_odd_count_takes_middle(self):
        assert median([5, 1, 3]) == 3

    def test_even_count_averages_middle_pair(self):
        assert median([4, 1, 3, 2]) == 2.5

    def test_does_not_mutate_input(self):
        values = [3, 1, 2]
        median(values)
        assert values == [3, 1, 2]


class TestTrimmedMedian:
    @pytest.mark.parametrize("values", [[], [7], [1, 9], [1, 2, 100], [10, 20, 30, 1000]])
    def test_small_samples_equal_plain_median(self, values):
        assert trimmed_median(values) == median(values)

    def test_trims_fifteen_percent_from_each_end(self):
        # n=10 → floor(1.5)=1 dropped per side: median of 2..9
        values = [1, 2, 3, 4, 5, 6, 7, 8, 9, 1_000_000]
        assert trimmed_median(values) == median(values[1:9])

    def test_single_extreme_outlier_is_discarded(self):
        base = [100, 110, 120, 130, 140, 150, 160]
        # n=8 trims one per side, so the outlier's magnitude never matters
        assert trimmed_median(base + [10_000]) == 135
        assert trimmed_median(base + [10_000_000_000]) == 135

    def test_luxury_tail_behaves_like_ordinary_high_values(self):
        base = [100, 110, 120, 130, 140, 150, 160, 170, 180, 190]
        skewed = base[:-2] + [5_000_000, 9_000_000]
        assert trimmed_median(skewed) == trimmed_median(base[:-2] + [200, 210])

    def test_five_samples_trim_nothing(self):
        # floor(0.75) == 0, so five samples behave like the plain median
        assert trimmed_median([1, 2, 3, 4, 500]) == 3
