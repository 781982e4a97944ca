import logging
import numbers
import re
from typing import Callable, Iterable, List, NamedTuple, Optional

import numpy as np
import pandas as pd

from carmarket.config import (
    CATEGORICAL_COLUMNS,
    COUNT_COLUMNS,
    DROPPED_COLUMNS,
    PRICE_COL,
    RAW_COLUMNS,
)
from carmarket.exceptions import SchemaMismatchError

logger = logging.getLogger(__name__)

# Numeral with optional thousands separators and decimal part, e.g. "1,250.5"
NUM = r"(\d[\d,]*(?:\.\d+)?)"
# English and Vietnamese spellings of the two price units
BILLION = r"(?:billions?|tỷ|tỉ)"
MILLION = r"(?:millions?|triệu)"

NON_DIGIT_RE = re.compile(r"\D")
WHITESPACE_RE = re.compile(r"\s+")


def require_columns(df: pd.DataFrame, columns: Iterable[str], stage: str) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise SchemaMismatchError(stage, missing)


def _to_number(text: Optional[str]) -> float:
    if text is None:
        return 0.0
    return float(text.replace(",", ""))


class PriceShape(NamedTuple):
    name: str
    pattern: "re.Pattern"
    extract: Callable[["re.Match"], float]


# Evaluated top to bottom; the first full match wins.
PRICE_SHAPES: List[PriceShape] = [
    PriceShape(
        "implicit_one_billion",
        re.compile(rf"{BILLION}(?:\s*{NUM}\s*{MILLION})?"),
        lambda m: 1000 + _to_number(m.group(1)),
    ),
    PriceShape(
        "billion_and_million",
        re.compile(rf"{NUM}\s*{BILLION}\s*{NUM}\s*{MILLION}"),
        lambda m: _to_number(m.group(1)) * 1000 + _to_number(m.group(2)),
    ),
    PriceShape(
        "billion_only",
        re.compile(rf"{NUM}\s*{BILLION}"),
        lambda m: _to_number(m.group(1)) * 1000,
    ),
    PriceShape(
        "million_only",
        re.compile(rf"{NUM}\s*{MILLION}"),
        lambda m: _to_number(m.group(1)),
    ),
]


def normalize_text(value) -> str:
    return WHITESPACE_RE.sub(" ", str(value)).strip().lower()


def match_price_shape(text) -> Optional[str]:
    """Name of the first price shape matching ``text``, or None."""
    if pd.isna(text):
        return None
    s = normalize_text(text)
    for shape in PRICE_SHAPES:
        if shape.pattern.fullmatch(s):
            return shape.name
    return None


def parse_price(text) -> float:
    """
    Parse a free-text price into millions of the source currency.

    "Billion 200 Million" -> 1200.0, "2 billion" -> 2000.0,
    "500 million" -> 500.0. Text matching none of the shapes gives NaN.
    """
    if pd.isna(text):
        return np.nan
    s = normalize_text(text)
    for shape in PRICE_SHAPES:
        m = shape.pattern.fullmatch(s)
        if m:
            return shape.extract(m)
    return np.nan


def parse_count(value) -> float:
    """Keep only the digits of a mileage/door/seat field; no digits -> NaN."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return np.nan
    if isinstance(value, numbers.Number) and not isinstance(value, bool):
        return float(value)
    digits = NON_DIGIT_RE.sub("", str(value))
    return float(digits) if digits else np.nan


def clean_category(value):
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return np.nan
    s = WHITESPACE_RE.sub(" ", str(value)).strip()
    return s if s else np.nan


def preprocess_listings(df: pd.DataFrame) -> pd.DataFrame:
    """
    Turn raw listing rows into the cleaned table every analysis starts from.

    Returns a new frame: free-text price parsed into ``price_million``,
    count fields parsed to numbers, categorical text trimmed, identifier and
    free-text columns dropped, repeated scrapes of the same ``ad_id``
    removed. Unparseable values stay missing; distinct listings are never
    dropped here.
    """
    df = df.copy()
    df.columns = df.columns.str.strip()
    require_columns(df, RAW_COLUMNS, stage="preprocess_listings")

    df[PRICE_COL] = df["price"].map(parse_price)
    for col in COUNT_COLUMNS:
        df[col] = df[col].map(parse_count)
    df["year"] = pd.to_numeric(df["year"], errors="coerce")
    for col in CATEGORICAL_COLUMNS:
        df[col] = df[col].map(clean_category)

    n_unparsed = int(df[PRICE_COL].isna().sum() - df["price"].isna().sum())

    n_before = len(df)
    df = df.drop_duplicates(subset=["ad_id"]).reset_index(drop=True)
    df = df.drop(columns=DROPPED_COLUMNS)
    logger.info(
        "Preprocessed %d listings (%d duplicates dropped, %d unparseable prices)",
        len(df), n_before - len(df), n_unparsed,
    )
    return df
