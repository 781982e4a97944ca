import math

import mlflow
import pandas as pd
import pytest

from carmarket.tracking import log_metrics, log_table, setup_mlflow


@pytest.fixture
def tracking_uri(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    uri = setup_mlflow("carmarket-test", tracking_uri=f"sqlite:///{tmp_path / 'mlflow.db'}")
    yield uri
    if mlflow.active_run() is not None:
        mlflow.end_run()


def test_log_metrics_skips_nan(tracking_uri):
    with mlflow.start_run() as run:
        log_metrics({"train_r2": 0.8, "cluster_silhouette": math.nan})
    logged = mlflow.get_run(run.info.run_id).data.metrics
    assert logged == {"train_r2": 0.8}


def test_log_table_writes_csv_and_artifact(tracking_uri, tmp_path):
    path = tmp_path / "out" / "rules.csv"
    df = pd.DataFrame({"antecedent": ["{a=1}"], "consequent": ["{b=1}"], "lift": [1.5]})
    with mlflow.start_run() as run:
        log_table(df, str(path))
    pd.testing.assert_frame_equal(pd.read_csv(path), df)
    artifacts = [a.path for a in mlflow.MlflowClient().list_artifacts(run.info.run_id)]
    assert "rules.csv" in artifacts
