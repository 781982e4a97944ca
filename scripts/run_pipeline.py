#!/usr/bin/env python3
"""
Runs the car listings analyses:
Load → Preprocess → (Rules | Clustering | Regression) → Write tables → Log to MLflow

Usage:
  # All three analyses
  python scripts/run_pipeline.py all --input data/raw/car_listings.csv --outdir outputs

  # One analysis, custom seed / thresholds
  python scripts/run_pipeline.py cluster --input data/raw/car_listings.csv --k 4 --seed 7
  python scripts/run_pipeline.py rules --input data/raw/car_listings.csv --min_support 0.02
  python scripts/run_pipeline.py regress --input data/raw/car_listings.csv --test_size 0.2

Notes:
- Category levels are frozen over the full cleaned table BEFORE the train/test split,
  so both partitions share one domain and no unseen level can reach the model.
- Each analysis re-applies only the outlier filters relevant to its own features.
"""

import argparse
import logging
import os
import sys

import mlflow
import pandas as pd

# === Fix import path for local modules ===
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from carmarket.config import ClusterConfig, MiningConfig, RegressionConfig
from carmarket.data.preprocess import preprocess_listings
from carmarket.models.clustering import run_clustering
from carmarket.models.evaluate import print_evaluation_report
from carmarket.models.rules import format_rules, run_rule_mining
from carmarket.models.train import run_regression
from carmarket.tracking import log_metrics, log_table, setup_mlflow


def load_listings(path: str, processed: bool = False) -> pd.DataFrame:
    print("🔄 Loading data...")
    df = pd.read_csv(path)
    print(f"✅ Loaded: {df.shape[0]} rows")
    if processed:
        return df
    print("🔧 Preprocessing...")
    return preprocess_listings(df)


# ---------- Analyses ----------
def run_rules_step(df: pd.DataFrame, args):
    config = MiningConfig(min_support=args.min_support, min_confidence=args.min_confidence)
    mlflow.log_params({"min_support": config.min_support, "min_confidence": config.min_confidence,
                       "min_length": config.min_length})

    print("🔍 Mining association rules...")
    result = run_rule_mining(df, config=config)
    log_metrics({"rules_transactions": result.n_transactions, "rules_raw": result.n_raw_rules,
                 "rules_pruned": len(result.rules), "rules_price": len(result.price_rules)})

    log_table(format_rules(result.rules), os.path.join(args.outdir, "rules.csv"))
    log_table(format_rules(result.price_rules), os.path.join(args.outdir, "price_rules.csv"))
    print(f"✅ {len(result.rules)} rules ({len(result.price_rules)} with a price-tier consequent)")
    if not result.price_rules.empty:
        print(format_rules(result.price_rules).head(10).to_string(index=False))


def run_cluster_step(df: pd.DataFrame, args):
    config = ClusterConfig(n_clusters=args.k, random_state=args.seed, n_jobs=args.n_jobs)
    mlflow.log_params({"n_clusters": config.n_clusters, "n_components": config.n_components,
                       "n_init": config.n_init, "seed": config.random_state})

    print("📊 Clustering (standardize → PCA → k-means)...")
    result = run_clustering(df, config=config)
    log_metrics(result.metrics())

    log_table(result.labels.to_frame(), os.path.join(args.outdir, "cluster_labels.csv"), index=True)
    log_table(result.contingency, os.path.join(args.outdir, "cluster_price_tiers.csv"), index=True)
    log_table(result.wss.to_frame(), os.path.join(args.outdir, "wss_by_k.csv"), index=True)
    log_table(result.profiles, os.path.join(args.outdir, "cluster_profiles.csv"), index=True)
    print(f"✅ k={args.k} (elbow suggests {result.suggested_k})  "
          f"pseudo-R2={result.pseudo_r2:.3f}  silhouette={result.silhouette:.3f}")
    print(result.contingency.to_string())


def run_regress_step(df: pd.DataFrame, args):
    config = RegressionConfig(test_size=args.test_size, random_state=args.seed)
    mlflow.log_params({"test_size": config.test_size, "seed": config.random_state,
                       **{f"top_n_{k}": v for k, v in config.top_n.items()}})

    print("🤖 Fitting log-price OLS (domain frozen before split)...")
    result = run_regression(df, config=config)
    log_metrics(result.metrics)

    log_table(result.coefficients(), os.path.join(args.outdir, "coefficients.csv"))
    log_table(result.domain.to_frame(), os.path.join(args.outdir, "category_domain.csv"))
    print(f"📊 Split: train={len(result.split.train)} test={len(result.split.test)}")
    print_evaluation_report(result.metrics)


STEPS = {
    "rules": [run_rules_step],
    "cluster": [run_cluster_step],
    "regress": [run_regress_step],
    "all": [run_rules_step, run_cluster_step, run_regress_step],
}


def run_pipeline(args):
    setup_mlflow(args.experiment, args.mlflow_uri)
    os.makedirs(args.outdir, exist_ok=True)

    df = load_listings(args.input, processed=args.processed)
    with mlflow.start_run():
        mlflow.log_param("analysis", args.command)
        mlflow.log_param("rows_clean", len(df))
        for step in STEPS[args.command]:
            step(df, args)
    print("✅ Pipeline complete.")


# ---------- CLI ----------
def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)-8s  %(name)s: %(message)s")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--input", type=str, required=True, help="Path to listings CSV")
    common.add_argument("--processed", action="store_true", help="Input is already cleaned")
    common.add_argument("--outdir", type=str, default="outputs", help="Directory for output tables")
    common.add_argument("--seed", type=int, default=42, help="Seed for k-means and the train/test split")
    common.add_argument("--experiment", type=str, default="Car Listings Analysis", help="MLflow experiment name")
    common.add_argument("--mlflow_uri", type=str, default=None, help="MLflow tracking URI")
    common.add_argument("--min_support", type=float, default=0.01, help="Minimum itemset support")
    common.add_argument("--min_confidence", type=float, default=0.60, help="Minimum rule confidence")
    common.add_argument("--k", type=int, default=4, help="Number of k-means clusters")
    common.add_argument("--n_jobs", type=int, default=None, help="Workers for the k=1..10 WSS sweep")
    common.add_argument("--test_size", type=float, default=0.2, help="Test split ratio")

    p = argparse.ArgumentParser(description="Car listings: rule mining, segmentation, price model")
    subparsers = p.add_subparsers(dest="command", required=True)
    subparsers.add_parser("rules", parents=[common], help="Association rule mining")
    subparsers.add_parser("cluster", parents=[common], help="PCA + k-means segmentation")
    subparsers.add_parser("regress", parents=[common], help="Log-price linear model")
    subparsers.add_parser("all", parents=[common], help="Run every analysis")

    args = p.parse_args()
    run_pipeline(args)


if __name__ == "__main__":
    main()
