import logging
from typing import Dict, Iterable, Optional

import pandas as pd

from carmarket.config import DEFAULT_BOUNDS, RangeBound
from carmarket.data.preprocess import require_columns

logger = logging.getLogger(__name__)


def within_bound(s: pd.Series, bound: RangeBound) -> pd.Series:
    """Boolean mask of values inside ``bound``; missing values are outside."""
    lower = s >= bound.low if bound.low_inclusive else s > bound.low
    upper = s <= bound.high if bound.high_inclusive else s < bound.high
    return (lower & upper).fillna(False).astype(bool)


def outlier_mask(
    df: pd.DataFrame,
    columns: Optional[Iterable[str]] = None,
    bounds: Optional[Dict[str, RangeBound]] = None,
) -> pd.Series:
    """True for rows that pass every active filter."""
    bounds = DEFAULT_BOUNDS if bounds is None else bounds
    columns = list(bounds) if columns is None else [c for c in columns if c in bounds]
    require_columns(df, columns, stage="outlier_mask")

    keep = pd.Series(True, index=df.index)
    for col in columns:
        keep &= within_bound(df[col], bounds[col])
    return keep


def trim_outliers(
    df: pd.DataFrame,
    columns: Optional[Iterable[str]] = None,
    bounds: Optional[Dict[str, RangeBound]] = None,
) -> pd.DataFrame:
    """
    Drop rows whose value in any active column lies outside its plausibility
    window. Values are never clamped. Columns without a declared bound
    (price, year) are ignored. Trimming twice removes nothing more.
    """
    keep = outlier_mask(df, columns=columns, bounds=bounds)
    n_dropped = int((~keep).sum())
    if n_dropped:
        logger.info("Outlier trimming dropped %d of %d rows", n_dropped, len(df))
    return df.loc[keep].copy()


def outlier_summary(df: pd.DataFrame, bounds: Optional[Dict[str, RangeBound]] = None) -> pd.DataFrame:
    bounds = DEFAULT_BOUNDS if bounds is None else bounds
    require_columns(df, bounds, stage="outlier_summary")
    rows = []
    for col, bound in bounds.items():
        s = df[col]
        below = s < bound.low if bound.low_inclusive else s <= bound.low
        above = s > bound.high if bound.high_inclusive else s >= bound.high
        rows.append({
            "column": col,
            "missing": int(s.isna().sum()),
            "below_range": int(below.sum()),
            "above_range": int(above.sum()),
            "kept": int(within_bound(s, bound).sum()),
        })
    return pd.DataFrame(rows)
