"""
Standardize -> PCA -> k-means segmentation of the cleaned numeric features.

All evaluation (WSS, pseudo-R², silhouette) is computed on the same projected
coordinates the clustering runs on, never on the raw feature space.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.cluster import KMeans
from sklearn.decomposition import PCA
from sklearn.metrics import silhouette_score
from sklearn.preprocessing import StandardScaler

from carmarket.config import COUNT_COLUMNS, PRICE_COL, ClusterConfig, RangeBound
from carmarket.data.outliers import trim_outliers
from carmarket.data.preprocess import require_columns
from carmarket.features.discretize import price_tiers

logger = logging.getLogger(__name__)


@dataclass
class Projection:
    scaler: StandardScaler
    pca: PCA
    points: pd.DataFrame

    @property
    def explained_variance_ratio(self) -> np.ndarray:
        return self.pca.explained_variance_ratio_

    @property
    def cumulative_variance(self) -> np.ndarray:
        return np.cumsum(self.pca.explained_variance_ratio_)


def project_features(df: pd.DataFrame, features: Iterable[str], n_components: int = 3) -> Projection:
    """
    Standardize ``features`` and keep the first ``n_components`` principal
    components. The PCA is fitted with every component so the full explained
    variance profile stays available.
    """
    features = list(features)
    require_columns(df, features, stage="project_features")
    if n_components > len(features):
        raise ValueError(f"n_components={n_components} exceeds {len(features)} features")

    scaler = StandardScaler()
    X_scaled = scaler.fit_transform(df[features].astype(float))
    pca = PCA(n_components=len(features))
    scores = pca.fit_transform(X_scaled)[:, :n_components]
    points = pd.DataFrame(scores, index=df.index, columns=[f"PC{i + 1}" for i in range(n_components)])
    logger.info(
        "PCA: first %d components explain %.1f%% of variance",
        n_components, 100 * pca.explained_variance_ratio_[:n_components].sum(),
    )
    return Projection(scaler=scaler, pca=pca, points=points)


def total_ss(X: np.ndarray) -> float:
    X = np.asarray(X, dtype=float)
    return float(((X - X.mean(axis=0)) ** 2).sum())


def within_ss(X: np.ndarray, labels: np.ndarray) -> float:
    X = np.asarray(X, dtype=float)
    labels = np.asarray(labels)
    wss = 0.0
    for lbl in np.unique(labels):
        members = X[labels == lbl]
        wss += float(((members - members.mean(axis=0)) ** 2).sum())
    return wss


def pseudo_r2(X: np.ndarray, labels: np.ndarray) -> float:
    """Between-cluster SS over total SS."""
    tss = total_ss(X)
    if tss == 0:
        return np.nan
    return (tss - within_ss(X, labels)) / tss


def mean_silhouette(X: np.ndarray, labels: np.ndarray, sample_size: Optional[int] = None,
                    random_state: Optional[int] = None) -> float:
    n_labels = len(np.unique(labels))
    if n_labels < 2 or n_labels >= len(labels):
        return np.nan
    return float(silhouette_score(X, labels, sample_size=sample_size, random_state=random_state))


def fit_kmeans(X: np.ndarray, n_clusters: int, n_init: int = 10, random_state: int = 42) -> KMeans:
    """k-means keeping the lowest-WSS run among ``n_init`` seeded restarts."""
    if n_clusters > len(X):
        raise ValueError(f"n_clusters={n_clusters} exceeds the {len(X)} points to cluster")
    km = KMeans(n_clusters=n_clusters, n_init=n_init, random_state=random_state)
    return km.fit(X)


def _inertia(X, k, n_init, random_state):
    return k, fit_kmeans(X, k, n_init=n_init, random_state=random_state).inertia_


def wss_curve(X: np.ndarray, k_max: int = 10, n_init: int = 10, random_state: int = 42,
              n_jobs: Optional[int] = None) -> pd.Series:
    """Total within-cluster SS for k = 1..k_max (capped at the number of points)."""
    k_values = range(1, min(k_max, len(X)) + 1)
    results = Parallel(n_jobs=n_jobs)(
        delayed(_inertia)(X, k, n_init, random_state) for k in k_values
    )
    return pd.Series(dict(results), name="wss").rename_axis("k")


def suggest_k(wss: pd.Series) -> int:
    """Elbow of the WSS curve: the k with the largest second difference."""
    if len(wss) < 3:
        return int(wss.index[-1])
    values = wss.to_numpy()
    second_diff = values[:-2] - 2 * values[1:-1] + values[2:]
    return int(wss.index[1 + int(np.argmax(second_diff))])


def cluster_price_contingency(labels: pd.Series, price_tier: pd.Series) -> pd.DataFrame:
    return pd.crosstab(labels.rename("cluster"), price_tier.rename("price_tier"))


def cluster_profiles(df: pd.DataFrame, labels: pd.Series, features: Iterable[str]) -> pd.DataFrame:
    """Size and mean of each feature (original units) per cluster."""
    features = list(features)
    grouped = df[features].groupby(labels.rename("cluster"))
    profile = grouped.mean()
    profile.insert(0, "size", grouped.size())
    return profile


@dataclass
class ClusterResult:
    labels: pd.Series
    projection: Projection
    kmeans: KMeans
    wss: pd.Series
    suggested_k: int
    pseudo_r2: float
    silhouette: float
    contingency: pd.DataFrame
    profiles: pd.DataFrame

    def metrics(self) -> Dict[str, float]:
        return {
            "cluster_pseudo_r2": self.pseudo_r2,
            "cluster_silhouette": self.silhouette,
            "cluster_suggested_k": float(self.suggested_k),
        }


def run_clustering(
    df: pd.DataFrame,
    config: Optional[ClusterConfig] = None,
    bounds: Optional[Dict[str, RangeBound]] = None,
) -> ClusterResult:
    config = config or ClusterConfig()
    features = list(config.features)
    require_columns(df, features, stage="run_clustering")

    working = trim_outliers(df, columns=[c for c in COUNT_COLUMNS if c in features], bounds=bounds)
    working = working.dropna(subset=features)
    logger.info("Clustering %d listings on %s", len(working), features)

    projection = project_features(working, features, n_components=config.n_components)
    X = projection.points.to_numpy()

    wss = wss_curve(X, k_max=config.k_max, n_init=config.n_init,
                    random_state=config.random_state, n_jobs=config.n_jobs)
    suggested = suggest_k(wss)
    logger.info("Elbow suggests k=%d, using k=%d", suggested, config.n_clusters)

    km = fit_kmeans(X, config.n_clusters, n_init=config.n_init, random_state=config.random_state)
    labels = pd.Series(km.labels_, index=working.index, name="cluster")

    tiers = price_tiers(working[PRICE_COL]) if PRICE_COL in working.columns else None
    contingency = cluster_price_contingency(labels, tiers) if tiers is not None else pd.DataFrame()

    return ClusterResult(
        labels=labels,
        projection=projection,
        kmeans=km,
        wss=wss,
        suggested_k=suggested,
        pseudo_r2=pseudo_r2(X, km.labels_),
        silhouette=mean_silhouette(X, km.labels_, sample_size=config.silhouette_sample_size,
                                   random_state=config.random_state),
        contingency=contingency,
        profiles=cluster_profiles(working, labels, features),
    )
