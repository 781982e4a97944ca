"""
Association rule mining over the discretized listing table.

Frequent itemsets come from level-wise Apriori growth; rules are derived
from them, redundant rules pruned, and the survivors ranked. A table with no
transactions, or none clearing minimum support, yields an empty rule set.
"""
import logging
from dataclasses import dataclass
from itertools import combinations
from typing import Dict, Optional, Tuple

import pandas as pd
from mlxtend.frequent_patterns import apriori, association_rules

from carmarket.config import (
    COUNT_COLUMNS,
    PRICE_COL,
    PRICE_TIER_COL,
    TIER_COLUMNS,
    MiningConfig,
    RangeBound,
)
from carmarket.data.outliers import trim_outliers
from carmarket.data.preprocess import require_columns
from carmarket.features.discretize import build_transactions, discretize

logger = logging.getLogger(__name__)

RULE_COLUMNS = ["antecedents", "consequents", "support", "confidence", "lift"]


def empty_rules() -> pd.DataFrame:
    return pd.DataFrame(columns=RULE_COLUMNS)


def rank_rules(rules: pd.DataFrame, by=("confidence", "lift", "support")) -> pd.DataFrame:
    return rules.sort_values(list(by), ascending=False, ignore_index=True)


def mine_rules(
    transactions: pd.DataFrame,
    min_support: float = 0.01,
    min_confidence: float = 0.60,
    min_length: int = 2,
    max_consequent_len: Optional[int] = None,
) -> pd.DataFrame:
    """Frequent itemsets -> rules meeting support, confidence and length bounds."""
    if transactions.empty or transactions.shape[1] == 0:
        logger.warning("Empty transaction table, no rules mined")
        return empty_rules()

    freq = apriori(transactions, min_support=min_support, use_colnames=True)
    if freq.empty:
        logger.warning("No itemset clears min_support=%s", min_support)
        return empty_rules()
    logger.info("%d frequent itemsets at min_support=%s", len(freq), min_support)

    rules = association_rules(
        freq,
        num_itemsets=len(transactions),
        metric="confidence",
        min_threshold=min_confidence,
    )
    if rules.empty:
        logger.warning("No rule clears min_confidence=%s", min_confidence)
        return empty_rules()

    length = rules["antecedents"].apply(len) + rules["consequents"].apply(len)
    rules = rules[length >= min_length]
    if max_consequent_len is not None:
        rules = rules[rules["consequents"].apply(len) <= max_consequent_len]
    return rank_rules(rules[RULE_COLUMNS].reset_index(drop=True))


def redundant_mask(rules: pd.DataFrame) -> pd.Series:
    """
    True where a more general rule exists: same consequent, an antecedent that
    is a strict subset, and support at least as high.
    """
    support_index: Dict[Tuple[frozenset, frozenset], float] = {
        (frozenset(a), frozenset(c)): s
        for a, c, s in zip(rules["antecedents"], rules["consequents"], rules["support"])
    }

    def is_redundant(antecedent, consequent, support) -> bool:
        consequent = frozenset(consequent)
        for size in range(1, len(antecedent)):
            for subset in combinations(antecedent, size):
                general = support_index.get((frozenset(subset), consequent))
                if general is not None and general >= support:
                    return True
        return False

    flags = [
        is_redundant(a, c, s)
        for a, c, s in zip(rules["antecedents"], rules["consequents"], rules["support"])
    ]
    return pd.Series(flags, index=rules.index, dtype=bool)


def prune_redundant(rules: pd.DataFrame) -> pd.DataFrame:
    if rules.empty:
        return rules
    mask = redundant_mask(rules)
    logger.info("Pruned %d redundant rules, %d remain", int(mask.sum()), int((~mask).sum()))
    return rules.loc[~mask].reset_index(drop=True)


def price_rules(rules: pd.DataFrame, tier_col: str = PRICE_TIER_COL) -> pd.DataFrame:
    """Rules whose consequent mentions the price tier, by confidence then lift."""
    if rules.empty:
        return empty_rules()
    prefix = f"{tier_col}="
    mask = rules["consequents"].apply(lambda items: any(str(i).startswith(prefix) for i in items))
    return rank_rules(rules[mask], by=("confidence", "lift")).reset_index(drop=True)


def format_itemset(items) -> str:
    return "{" + ",".join(sorted(map(str, items))) + "}"


def format_rules(rules: pd.DataFrame) -> pd.DataFrame:
    """Printable rule table: antecedent, consequent, support, confidence, lift."""
    out = pd.DataFrame({
        "antecedent": rules["antecedents"].apply(format_itemset),
        "consequent": rules["consequents"].apply(format_itemset),
    })
    for col in ["support", "confidence", "lift"]:
        out[col] = rules[col].astype(float)
    return out


@dataclass
class RuleMiningResult:
    rules: pd.DataFrame
    price_rules: pd.DataFrame
    n_transactions: int
    n_raw_rules: int


def run_rule_mining(
    df: pd.DataFrame,
    config: Optional[MiningConfig] = None,
    bounds: Optional[Dict[str, RangeBound]] = None,
) -> RuleMiningResult:
    """
    Cleaned listings -> trimmed -> discretized -> transactions -> pruned rules.
    """
    config = config or MiningConfig()
    numeric = [PRICE_COL, *TIER_COLUMNS]
    derived = {PRICE_TIER_COL, *TIER_COLUMNS.values()}
    categorical = [c for c in config.columns if c not in derived]
    require_columns(df, numeric + categorical, stage="run_rule_mining")

    working = trim_outliers(df, columns=COUNT_COLUMNS, bounds=bounds)
    working = working.dropna(subset=numeric + categorical)
    if working.empty:
        logger.warning("No complete rows left for rule mining")
        return RuleMiningResult(empty_rules(), empty_rules(), 0, 0)

    working = discretize(working)
    transactions = build_transactions(working, config.columns)
    rules = mine_rules(
        transactions,
        min_support=config.min_support,
        min_confidence=config.min_confidence,
        min_length=config.min_length,
        max_consequent_len=config.max_consequent_len,
    )
    pruned = prune_redundant(rules)
    return RuleMiningResult(
        rules=pruned,
        price_rules=price_rules(pruned),
        n_transactions=len(transactions),
        n_raw_rules=len(rules),
    )
