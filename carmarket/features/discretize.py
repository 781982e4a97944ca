import logging
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
from mlxtend.preprocessing import TransactionEncoder

from carmarket.config import (
    PRICE_COL,
    PRICE_QUANTILES,
    PRICE_TIER_COL,
    TIER_COLUMNS,
    TIER_LABELS,
    YEAR_TIER_LABELS,
)
from carmarket.data.preprocess import require_columns

logger = logging.getLogger(__name__)


def _quantile_edges(values: pd.Series, quantiles: Sequence[float]) -> List[float]:
    edges = [values.min(), *values.quantile(list(quantiles)).tolist(), values.max()]
    return [float(e) for e in edges]


def price_cut_points(price: pd.Series, quantiles: Sequence[float] = PRICE_QUANTILES) -> List[float]:
    """Min, 33rd/66th percentile and max edges; raises if any two coincide."""
    values = price.dropna()
    if values.empty:
        raise ValueError("Cannot compute price tiers: no non-missing prices")
    edges = _quantile_edges(values, quantiles)
    if np.any(np.diff(edges) <= 0):
        raise ValueError(f"Price cut points collapse: {edges}")
    return edges


def rank_tiers(price: pd.Series, quantiles: Sequence[float] = PRICE_QUANTILES,
               labels: Sequence[str] = TIER_LABELS) -> pd.Series:
    """
    Tiers by position in the price order, ties broken by row order, so the
    split stays near 33/66 even when many listings share a price.
    """
    rank = price.rank(method="first")
    position = (rank - 1) / rank.count()
    codes = np.searchsorted(np.asarray(quantiles), position.fillna(0).to_numpy(), side="right")
    codes = np.where(position.isna(), -1, codes)
    return pd.Series(pd.Categorical.from_codes(codes, categories=list(labels)),
                     index=price.index, name=price.name)


def price_tiers(price: pd.Series, quantiles: Sequence[float] = PRICE_QUANTILES,
                labels: Sequence[str] = TIER_LABELS) -> pd.Series:
    """Quantile tiers (33rd/66th percentile by default) of roughly equal size."""
    values = price.dropna()
    if values.empty:
        raise ValueError("Cannot compute price tiers: no non-missing prices")
    edges = _quantile_edges(values, quantiles)
    if np.any(np.diff(edges) <= 0):
        logger.info("Price cut points collapse %s, tiering by rank", edges)
        return rank_tiers(price, quantiles, labels)
    return pd.cut(price, bins=edges, labels=list(labels), include_lowest=True)


def equal_width_tiers(s: pd.Series, labels: Sequence[str] = TIER_LABELS) -> pd.Series:
    """
    Three equal-width intervals over the observed range. The lowest interval
    includes its left edge, so the minimum lands in the first tier.
    """
    return pd.cut(s, bins=len(labels), labels=list(labels), include_lowest=True)


def discretize(df: pd.DataFrame, tier_columns: Optional[Dict[str, str]] = None) -> pd.DataFrame:
    """Return a copy of ``df`` with a tier column added per binned numeric field."""
    tier_columns = TIER_COLUMNS if tier_columns is None else tier_columns
    require_columns(df, [PRICE_COL, *tier_columns], stage="discretize")

    df = df.copy()
    df[PRICE_TIER_COL] = price_tiers(df[PRICE_COL])
    for col, tier_col in tier_columns.items():
        labels = YEAR_TIER_LABELS if col == "year" else TIER_LABELS
        df[tier_col] = equal_width_tiers(df[col], labels=labels)
    return df


def build_transactions(df: pd.DataFrame, columns: Iterable[str]) -> pd.DataFrame:
    """
    One-hot transaction table with items named ``attribute=level``.

    Rows missing any of ``columns`` are dropped first, so each attribute
    contributes exactly one item to every transaction.
    """
    columns = list(columns)
    require_columns(df, columns, stage="build_transactions")
    complete = df[columns].dropna()
    if len(complete) < len(df):
        logger.info("Dropped %d rows with missing mining attributes", len(df) - len(complete))

    transactions = [
        [f"{col}={row[col]}" for col in columns]
        for _, row in complete.iterrows()
    ]
    if not transactions:
        return pd.DataFrame(index=complete.index)

    te = TransactionEncoder()
    encoded_arr = te.fit(transactions).transform(transactions)
    return pd.DataFrame(encoded_arr, columns=te.columns_, index=complete.index)
