"""
MLflow helpers: one run per pipeline invocation, parameters and scalar
metrics logged flat, output tables attached as artifacts.
"""
import math
import os
from pathlib import Path
from typing import Dict, Optional

import mlflow
import pandas as pd

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def setup_mlflow(experiment: str, tracking_uri: Optional[str] = None) -> str:
    # SQLite DB file in project root by default
    tracking_uri = tracking_uri or f"sqlite:///{PROJECT_ROOT / 'mlflow.db'}"
    mlflow.set_tracking_uri(tracking_uri)
    mlflow.set_experiment(experiment)
    return tracking_uri


def log_metrics(metrics: Dict[str, float]) -> None:
    # MLflow rejects NaN for some backends; skip undefined metrics instead
    finite = {k: float(v) for k, v in metrics.items() if v is not None and not math.isnan(float(v))}
    if finite:
        mlflow.log_metrics(finite)


def log_table(df: pd.DataFrame, path: str, index: bool = False) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    df.to_csv(path, index=index)
    mlflow.log_artifact(path)
