import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import category_encoders as ce
import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression
from sklearn.model_selection import train_test_split

from carmarket.config import COUNT_COLUMNS, PRICE_COL, RangeBound, RegressionConfig
from carmarket.data.outliers import trim_outliers
from carmarket.data.preprocess import require_columns
from carmarket.features.build_features import (
    CategoryDomain,
    build_design_matrix,
    fit_encoder,
    freeze_category_domain,
)
from carmarket.models.evaluate import evaluate_model

logger = logging.getLogger(__name__)

TARGET_COL = "log_price"


@dataclass(frozen=True)
class TrainTestSplit:
    train: pd.DataFrame
    test: pd.DataFrame


def split_train_test(df: pd.DataFrame, test_size: float = 0.2, random_state: int = 42) -> TrainTestSplit:
    """Disjoint train/test partitions whose union is ``df``, drawn once from a fixed seed."""
    train, test = train_test_split(df, test_size=test_size, random_state=random_state)
    return TrainTestSplit(train=train, test=test)


def prepare_regression_table(
    df: pd.DataFrame,
    config: Optional[RegressionConfig] = None,
    bounds: Optional[Dict[str, RangeBound]] = None,
) -> Tuple[pd.DataFrame, CategoryDomain]:
    """
    Filter the cleaned table to complete, plausible rows, then freeze the
    category domain over all of them and apply it. Must run before the split.

    Level counts come from this working set (after count-field trimming and
    the missing-value drop), not the raw cleaned table. It holds exactly the
    rows either partition can draw.
    """
    config = config or RegressionConfig()
    numeric = list(config.numeric_features)
    categorical = list(config.categorical_features)
    require_columns(df, [PRICE_COL] + numeric + categorical, stage="prepare_regression_table")

    working = trim_outliers(df, columns=[c for c in COUNT_COLUMNS if c in numeric], bounds=bounds)
    working = working.dropna(subset=[PRICE_COL] + numeric + categorical)

    top_n = {c: n for c, n in config.top_n.items() if c in categorical}
    pass_through = [c for c in categorical if c not in top_n]
    domain = freeze_category_domain(working, top_n=top_n, pass_through=pass_through)

    working = domain.apply(working)
    working[TARGET_COL] = np.log1p(working[PRICE_COL])
    logger.info("Regression table: %d rows", len(working))
    return working, domain


@dataclass(frozen=True)
class FittedPriceModel:
    regressor: LinearRegression
    encoder: ce.OneHotEncoder
    domain: CategoryDomain
    numeric_features: Tuple[str, ...]
    categorical_features: Tuple[str, ...]
    feature_names: Tuple[str, ...]

    def design_matrix(self, df: pd.DataFrame) -> pd.DataFrame:
        X = build_design_matrix(df, self.encoder, self.domain,
                                self.numeric_features, self.categorical_features)
        return X[list(self.feature_names)]

    def predict_log(self, df: pd.DataFrame) -> np.ndarray:
        return self.regressor.predict(self.design_matrix(df))

    def predict(self, df: pd.DataFrame) -> np.ndarray:
        return np.expm1(self.predict_log(df))

    def coefficients(self) -> pd.Series:
        coefs = pd.Series(self.regressor.coef_, index=list(self.feature_names))
        return pd.concat([pd.Series({"(Intercept)": self.regressor.intercept_}), coefs]).rename("coefficient")


def fit_price_model(train: pd.DataFrame, domain: CategoryDomain,
                    config: Optional[RegressionConfig] = None) -> FittedPriceModel:
    """Additive OLS of log1p(price) on numeric features and treatment-coded categoricals."""
    config = config or RegressionConfig()
    numeric = tuple(config.numeric_features)
    categorical = tuple(config.categorical_features)
    require_columns(train, [TARGET_COL, *numeric, *categorical], stage="fit_price_model")

    ohe_enc = fit_encoder(domain, categorical)
    X_train = build_design_matrix(train, ohe_enc, domain, numeric, categorical)

    regressor = LinearRegression()
    regressor.fit(X_train, train[TARGET_COL])
    logger.info("Fitted OLS on %d rows x %d terms", *X_train.shape)

    return FittedPriceModel(
        regressor=regressor,
        encoder=ohe_enc,
        domain=domain,
        numeric_features=numeric,
        categorical_features=categorical,
        feature_names=tuple(X_train.columns),
    )


@dataclass
class RegressionResult:
    model: FittedPriceModel
    split: TrainTestSplit
    domain: CategoryDomain
    metrics: Dict[str, float]

    def coefficients(self) -> pd.DataFrame:
        return self.model.coefficients().rename_axis("term").reset_index()


def run_regression(
    df: pd.DataFrame,
    config: Optional[RegressionConfig] = None,
    bounds: Optional[Dict[str, RangeBound]] = None,
) -> RegressionResult:
    config = config or RegressionConfig()
    table, domain = prepare_regression_table(df, config=config, bounds=bounds)
    split = split_train_test(table, test_size=config.test_size, random_state=config.random_state)
    model = fit_price_model(split.train, domain, config=config)
    metrics = evaluate_model(model, split.train, split.test, target_col=TARGET_COL, price_col=PRICE_COL)
    return RegressionResult(model=model, split=split, domain=domain, metrics=metrics)
