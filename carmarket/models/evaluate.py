"""
Evaluation of the log-price model.

The model predicts log1p(price). Held-out error is reported on that log
scale and, after expm1, on the original price scale against the untouched
test prices. The original-scale RMSE is expected to be far larger than the
log-scale one: exponentiating re-expands errors, and the few very expensive
listings dominate the squared error. That gap is a property of evaluating a
log-linear model in natural units, not a defect.
"""
import logging
from typing import Dict

import numpy as np
import pandas as pd
from sklearn.metrics import mean_squared_error, r2_score

logger = logging.getLogger(__name__)


def rmse(y_true, y_pred) -> float:
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def adjusted_r2(r2: float, n: int, p: int) -> float:
    """R² penalized for ``p`` predictors over ``n`` observations."""
    if n - p - 1 <= 0:
        return np.nan
    return 1 - (1 - r2) * (n - 1) / (n - p - 1)


def back_transformed_rmse(pred_log, actual_price) -> float:
    """RMSE after expm1 of log-scale predictions, against original-scale prices."""
    return rmse(np.asarray(actual_price, dtype=float), np.expm1(np.asarray(pred_log, dtype=float)))


def evaluate_model(model, train: pd.DataFrame, test: pd.DataFrame,
                   target_col: str = "log_price", price_col: str = "price_million") -> Dict[str, float]:
    X_train = model.design_matrix(train)
    train_pred = model.regressor.predict(X_train)
    train_r2 = r2_score(train[target_col], train_pred)

    test_pred = model.predict_log(test)
    metrics = {
        "train_r2": float(train_r2),
        "train_adj_r2": float(adjusted_r2(train_r2, n=len(train), p=X_train.shape[1])),
        "test_rmse_log": rmse(test[target_col], test_pred),
        "test_r2_log": float(r2_score(test[target_col], test_pred)),
        "test_rmse_original": back_transformed_rmse(test_pred, test[price_col]),
    }
    logger.info("Regression metrics: %s", metrics)
    return metrics


def print_evaluation_report(metrics: Dict[str, float]) -> None:
    print("\n Regression Evaluation Report:")
    print("-" * 40)
    print(f"Train R2:                       {metrics['train_r2']:.4f}")
    print(f"Train adjusted R2:              {metrics['train_adj_r2']:.4f}")
    print(f"Test RMSE (log scale):          {metrics['test_rmse_log']:.4f}")
    print(f"Test R2 (log scale):            {metrics['test_r2_log']:.4f}")
    print(f"Test RMSE (millions, original): {metrics['test_rmse_original']:,.2f}")
