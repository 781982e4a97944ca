"""
Column schema and policy constants for the car listings pipeline.

Every stage reads its defaults from here, so thresholds chosen from the EDA
(plausibility windows, top-N cutoffs, mining thresholds, seeds) can be
changed in one place or overridden per call.
"""
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

RANDOM_STATE = 42

# ---------- Raw schema ----------
RAW_COLUMNS = [
    "ad_id", "url", "price", "brand", "grade", "car_name", "car_model",
    "engine", "transmission", "drive_type", "year", "mileage",
    "num_of_doors", "seating_capacity", "exterior_color", "interior_color",
    "condition", "origin", "fuel_system", "fuel_consumption", "describe",
]

# never reach the modelling stages
DROPPED_COLUMNS = ["ad_id", "url", "describe", "fuel_system", "fuel_consumption", "price"]

PRICE_COL = "price_million"
COUNT_COLUMNS = ["mileage", "num_of_doors", "seating_capacity"]
NUMERIC_COLUMNS = ["year", "mileage", "num_of_doors", "seating_capacity"]
CATEGORICAL_COLUMNS = [
    "brand", "grade", "car_name", "car_model", "engine", "transmission",
    "drive_type", "exterior_color", "interior_color", "condition", "origin",
]


# ---------- Outlier policy ----------
@dataclass(frozen=True)
class RangeBound:
    low: float
    high: float
    low_inclusive: bool = True
    high_inclusive: bool = True

    def __post_init__(self):
        if self.low > self.high:
            raise ValueError(f"Invalid bound: low={self.low} > high={self.high}")


DEFAULT_BOUNDS: Dict[str, RangeBound] = {
    "mileage": RangeBound(0, 1_000_000, low_inclusive=False),
    "num_of_doors": RangeBound(2, 10),
    "seating_capacity": RangeBound(2, 20),
}


# ---------- Categorical lumping ----------
DEFAULT_TOP_N: Dict[str, int] = {
    "engine": 20,
    "grade": 50,
    "brand": 25,
    "car_model": 10,
    "exterior_color": 10,
    "interior_color": 10,
}

# already small domains, kept as-is
PASS_THROUGH_CATEGORICALS = ["origin", "condition", "transmission", "drive_type"]

OTHER_LABELS: Dict[str, str] = {
    "engine": "Other_Engine",
    "grade": "Other_Grade",
    "brand": "Other_Brand",
    "car_model": "Other_Model",
    "exterior_color": "Other_ExtColor",
    "interior_color": "Other_IntColor",
}


def other_label(column: str) -> str:
    return OTHER_LABELS.get(column, f"Other_{column.replace('_', ' ').title().replace(' ', '')}")


# ---------- Discretizer ----------
TIER_LABELS = ("Low", "Medium", "High")
YEAR_TIER_LABELS = ("Old", "Mid", "New")
PRICE_QUANTILES = (0.33, 0.66)
PRICE_TIER_COL = "price_tier"

# numeric column -> tier column
TIER_COLUMNS: Dict[str, str] = {
    "mileage": "mileage_tier",
    "year": "year_tier",
    "num_of_doors": "doors_tier",
    "seating_capacity": "seats_tier",
}


@dataclass(frozen=True)
class MiningConfig:
    min_support: float = 0.01
    min_confidence: float = 0.60
    min_length: int = 2
    max_consequent_len: Optional[int] = None
    columns: Tuple[str, ...] = (
        PRICE_TIER_COL, "mileage_tier", "year_tier", "doors_tier", "seats_tier",
        "origin", "condition", "transmission", "drive_type",
    )


@dataclass(frozen=True)
class ClusterConfig:
    features: Tuple[str, ...] = ("year", "mileage", "num_of_doors", "seating_capacity", PRICE_COL)
    n_components: int = 3
    n_clusters: int = 4
    k_max: int = 10
    n_init: int = 10
    random_state: int = RANDOM_STATE
    n_jobs: Optional[int] = None
    silhouette_sample_size: Optional[int] = None


@dataclass(frozen=True)
class RegressionConfig:
    test_size: float = 0.2
    random_state: int = RANDOM_STATE
    numeric_features: Tuple[str, ...] = tuple(NUMERIC_COLUMNS)
    categorical_features: Tuple[str, ...] = tuple(DEFAULT_TOP_N) + tuple(PASS_THROUGH_CATEGORICALS)
    top_n: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_TOP_N))
