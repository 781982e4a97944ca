import numpy as np
import pandas as pd
import pytest

from carmarket.config import PRICE_TIER_COL
from carmarket.exceptions import SchemaMismatchError
from carmarket.features.discretize import (
    build_transactions,
    discretize,
    equal_width_tiers,
    price_cut_points,
    price_tiers,
    rank_tiers,
)


def test_price_tiers_are_balanced():
    price = pd.Series(np.arange(1, 301, dtype=float))
    tiers = price_tiers(price)
    counts = tiers.value_counts()
    assert list(tiers.cat.categories) == ["Low", "Medium", "High"]
    assert tiers.notna().all()
    assert counts.max() - counts.min() <= 6


def test_price_cut_points_use_33_66_quantiles():
    price = pd.Series(np.arange(0, 101, dtype=float))
    assert price_cut_points(price) == pytest.approx([0, 33, 66, 100])


def test_collapsed_price_cut_points_raise():
    with pytest.raises(ValueError):
        price_cut_points(pd.Series([5.0] * 10 + [6.0]))


def test_tied_prices_fall_back_to_rank_tiers():
    price = pd.Series([150.0] * 40 + list(np.arange(200.0, 260.0)))
    tiers = price_tiers(price)
    counts = tiers.value_counts()
    assert tiers.notna().all()
    assert counts.to_dict() == {"Low": 33, "Medium": 33, "High": 34}
    assert tiers.iloc[-1] == "High"


def test_single_price_gets_a_tier():
    tiers = price_tiers(pd.Series([1638.0], index=[7], name="price_million"))
    assert tiers.tolist() == ["Low"]
    assert tiers.index.tolist() == [7]


def test_rank_tiers_keep_missing():
    tiers = rank_tiers(pd.Series([1.0, np.nan, 1.0, 1.0]))
    assert pd.isna(tiers.iloc[1])
    assert tiers.dropna().tolist() == ["Low", "Medium", "High"]


def test_equal_width_edges_keep_boundaries():
    s = pd.Series([0.0, 10.0, 20.0, 30.0])
    tiers = equal_width_tiers(s)
    assert tiers.tolist() == ["Low", "Low", "Medium", "High"]
    assert tiers.notna().all()


def test_equal_width_constant_column():
    tiers = equal_width_tiers(pd.Series([5.0, 5.0, 5.0]))
    assert tiers.notna().all()


def test_discretize_adds_tiers(clean_listings):
    out = discretize(clean_listings)
    assert PRICE_TIER_COL in out.columns
    assert set(out["year_tier"].dropna().unique()) <= {"Old", "Mid", "New"}
    assert out.loc[out["year"].idxmin(), "year_tier"] == "Old"
    assert out.loc[out["year"].idxmax(), "year_tier"] == "New"
    assert "year_tier" not in clean_listings.columns


def test_discretize_requires_price(clean_listings):
    with pytest.raises(SchemaMismatchError):
        discretize(clean_listings.drop(columns=["price_million"]))


def test_transactions_have_one_item_per_attribute():
    df = pd.DataFrame({
        "a": ["x", "y", "x", None],
        "b": ["p", "p", "q", "q"],
    })
    tx = build_transactions(df, ["a", "b"])
    assert len(tx) == 3
    assert (tx.sum(axis=1) == 2).all()
    assert set(tx.columns) == {"a=x", "a=y", "b=p", "b=q"}
    for attr in ["a", "b"]:
        cols = [c for c in tx.columns if c.startswith(f"{attr}=")]
        assert (tx[cols].sum(axis=1) == 1).all()


def test_transactions_empty_table():
    tx = build_transactions(pd.DataFrame({"a": [None]}), ["a"])
    assert tx.empty
