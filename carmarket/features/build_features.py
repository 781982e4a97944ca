"""
Leakage-safe categorical encoding.

Level frequencies are counted once over the whole cleaned table, before any
train/test split exists. The resulting ``CategoryDomain`` is then applied to
every subset, so both partitions carry the same categorical dtype and a model
fitted on one can never meet an unseen level on the other.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import category_encoders as ce
import pandas as pd

from carmarket.config import DEFAULT_TOP_N, PASS_THROUGH_CATEGORICALS, other_label
from carmarket.data.preprocess import require_columns
from carmarket.exceptions import UnseenLevelError

logger = logging.getLogger(__name__)


def top_levels(s: pd.Series, n: int) -> List[str]:
    """The ``n`` most frequent levels, ties broken by level name."""
    counts = s.dropna().astype(str).value_counts()
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [level for level, _ in ranked[:n]]


@dataclass(frozen=True)
class CategoryDomain:
    levels: Dict[str, Tuple[str, ...]]
    kept: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    sentinels: Dict[str, str] = field(default_factory=dict)

    @property
    def columns(self) -> List[str]:
        return list(self.levels)

    def levels_for(self, column: str) -> Tuple[str, ...]:
        return self.levels[column]

    def n_levels(self, column: str) -> int:
        return len(self.levels[column])

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [(col, lvl) for col, lvls in self.levels.items() for lvl in lvls],
            columns=["attribute", "level"],
        )

    def apply(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Return a copy of ``df`` with rare levels remapped to their sentinel
        and every domain column cast to a categorical with the frozen levels.
        """
        require_columns(df, self.columns, stage="CategoryDomain.apply")
        df = df.copy()
        for col, levels in self.levels.items():
            s = df[col].where(df[col].isna(), df[col].astype(str))
            if col in self.kept:
                s = s.where(s.isin(self.kept[col]) | s.isna(), self.sentinels[col])
            unseen = set(s.dropna().unique()) - set(levels)
            if unseen:
                raise UnseenLevelError(col, unseen)
            df[col] = pd.Categorical(s, categories=list(levels))
        return df


def freeze_category_domain(
    df: pd.DataFrame,
    top_n: Optional[Dict[str, int]] = None,
    pass_through: Optional[Iterable[str]] = None,
) -> CategoryDomain:
    """
    Compute the fixed level set of every categorical feature over the
    complete table. Lumped attributes keep their top-N levels plus an
    ``Other_<Attribute>`` sentinel when anything was lumped; pass-through
    attributes keep every observed level.
    """
    top_n = DEFAULT_TOP_N if top_n is None else top_n
    pass_through = PASS_THROUGH_CATEGORICALS if pass_through is None else list(pass_through)
    require_columns(df, list(top_n) + list(pass_through), stage="freeze_category_domain")

    levels, kept, sentinels = {}, {}, {}
    for col, n in top_n.items():
        keep = top_levels(df[col], n)
        observed = set(df[col].dropna().astype(str))
        sentinel = other_label(col)
        kept[col] = tuple(keep)
        sentinels[col] = sentinel
        levels[col] = tuple(keep) + ((sentinel,) if observed - set(keep) else ())
        logger.info("%s: kept %d of %d levels", col, len(keep), len(observed))
    for col in pass_through:
        levels[col] = tuple(sorted(df[col].dropna().astype(str).unique()))

    return CategoryDomain(levels=levels, kept=kept, sentinels=sentinels)


# ---------- Design matrix ----------
def reference_dummies(domain: CategoryDomain, columns: Iterable[str]) -> List[str]:
    """Dummy columns of the first (reference) level of each attribute."""
    return [f"{col}_{domain.levels_for(col)[0]}" for col in columns]


def domain_frame(domain: CategoryDomain, columns: Iterable[str]) -> pd.DataFrame:
    """One row per level (shorter columns padded with their first level)."""
    columns = list(columns)
    n_rows = max(domain.n_levels(c) for c in columns)
    return pd.DataFrame({
        col: list(domain.levels_for(col)) + [domain.levels_for(col)[0]] * (n_rows - domain.n_levels(col))
        for col in columns
    })


def fit_encoder(domain: CategoryDomain, categorical_cols: Iterable[str]) -> ce.OneHotEncoder:
    """
    Fit a one-hot encoder on the frozen domain levels themselves, not on
    training rows, so a kept level that only the test partition contains
    still has its dummy column. No target or row values are involved.
    """
    categorical_cols = list(categorical_cols)
    ohe_enc = ce.OneHotEncoder(
        cols=categorical_cols,
        use_cat_names=True,
        handle_unknown="error",
        handle_missing="error",
    )
    ohe_enc.fit(domain_frame(domain, categorical_cols))
    return ohe_enc


def build_design_matrix(
    df: pd.DataFrame,
    ohe_enc: ce.OneHotEncoder,
    domain: CategoryDomain,
    numeric_cols: Iterable[str],
    categorical_cols: Iterable[str],
) -> pd.DataFrame:
    """Numeric features plus treatment-coded dummies (reference level dropped)."""
    numeric_cols = list(numeric_cols)
    categorical_cols = list(categorical_cols)
    require_columns(df, numeric_cols + categorical_cols, stage="build_design_matrix")

    df_ohe_only = ohe_enc.transform(df[categorical_cols].astype(object))
    df_ohe_only = df_ohe_only.drop(columns=reference_dummies(domain, categorical_cols), errors="ignore")

    X = pd.concat([df[numeric_cols].astype(float), df_ohe_only.astype(float)], axis=1)
    return X
