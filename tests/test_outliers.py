import numpy as np
import pandas as pd
import pytest

from carmarket.config import RangeBound
from carmarket.data.outliers import outlier_mask, outlier_summary, trim_outliers


@pytest.fixture
def numeric_frame():
    return pd.DataFrame({
        "mileage": [0, 1, 1_000_000, 1_000_001, 50_000, np.nan, 20_000],
        "num_of_doors": [4, 4, 4, 4, 11, 4, 2],
        "seating_capacity": [5, 5, 5, 5, 5, 5, 21],
        "price_million": [1e6, 500, 500, 500, 500, 500, 500],
        "year": [1900, 2020, 2020, 2020, 2020, 2020, 2020],
    })


def test_mileage_window_is_open_at_zero(numeric_frame):
    kept = trim_outliers(numeric_frame, columns=["mileage"])
    assert kept["mileage"].tolist() == [1, 1_000_000, 50_000, 20_000]


def test_rows_are_excluded_not_clamped(numeric_frame):
    kept = trim_outliers(numeric_frame)
    assert kept.index.tolist() == [1, 2]
    assert kept["mileage"].max() == 1_000_000


def test_price_and_year_never_trimmed(numeric_frame):
    kept = trim_outliers(numeric_frame, columns=["price_million", "year", "num_of_doors"])
    assert 1e6 in kept["price_million"].tolist()
    assert 1900 in kept["year"].tolist()
    assert 11 not in kept["num_of_doors"].tolist()


def test_only_requested_fields_filter(numeric_frame):
    kept = trim_outliers(numeric_frame, columns=["seating_capacity"])
    assert len(kept) == len(numeric_frame) - 1


def test_trimming_is_idempotent(clean_listings):
    once = trim_outliers(clean_listings)
    twice = trim_outliers(once)
    pd.testing.assert_frame_equal(once, twice)


def test_trim_returns_new_frame(numeric_frame):
    before = numeric_frame.copy()
    trim_outliers(numeric_frame)
    pd.testing.assert_frame_equal(numeric_frame, before)


def test_custom_bounds(numeric_frame):
    bounds = {"num_of_doors": RangeBound(4, 4)}
    assert outlier_mask(numeric_frame, bounds=bounds).sum() == 5


def test_invalid_bound():
    with pytest.raises(ValueError):
        RangeBound(10, 2)


def test_outlier_summary(numeric_frame):
    summary = outlier_summary(numeric_frame).set_index("column")
    assert summary.loc["mileage", "below_range"] == 1
    assert summary.loc["mileage", "above_range"] == 1
    assert summary.loc["mileage", "missing"] == 1
    assert summary.loc["num_of_doors", "above_range"] == 1
    assert summary.loc["seating_capacity", "kept"] == 6
