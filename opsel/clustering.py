"""
Clustering of historical windows.

Rows of a window similarity matrix are treated as feature vectors, one per
window, and grouped with either k-means (`"kmnlog"`) or k-medoids over the
Euclidean distances between rows (`"kmdlog"`). The number of clusters is chosen
by the mean silhouette score and the clustering is repeated to keep only the
windows that share the latest window's cluster consistently.
"""

import logging
import math

import numpy as np
from kmedoids import KMedoids
from scipy.spatial.distance import pdist, squareform
from sklearn.cluster import KMeans
from sklearn.metrics import silhouette_score

from opsel.utils import find_variant

logger = logging.getLogger(__name__)

# Share of repetitions in which a window must co-cluster with the latest window
AGREEMENT = 0.8

KMEDOIDS_MAX_ITER = 300


def _kmeans(features, nclusters, seed):
    model = KMeans(n_clusters=nclusters, n_init=1, random_state=seed)
    return model.fit_predict(features)


def _kmedoids(features, nclusters, seed):
    # Alternating (Voronoi iteration) k-medoids on the Euclidean distance matrix
    dists = squareform(pdist(features, metric="euclidean"))
    model = KMedoids(
        n_clusters=nclusters,
        metric="precomputed",
        method="alternate",
        init="random",
        max_iter=KMEDOIDS_MAX_ITER,
        random_state=seed,
    )
    return model.fit(dists).labels_


_CLUSTERERS = {
    "kmnlog": _kmeans,
    "kmdlog": _kmedoids,
}


def find_clusterer(variant):
    return find_variant(variant, _CLUSTERERS, name="ClusLog variant")


def _distinct_points(features):
    return len(np.unique(np.round(features, 12), axis=0))


def optimal_nclusters(variant, features, max_clusters, seed=None):
    """
    Picks the number of clusters in `2..max_clusters` with the highest mean
    silhouette score. Cluster counts that cannot be scored (fewer than two
    labels, or one label per point) get a score of `-1`.

    **Returns:**

    - `int or None`: Number of clusters, or `None` when fewer than three distinct windows exist.
    """
    _, clusterer = find_clusterer(variant)
    n = len(features)
    upper = min(max_clusters, n - 1, _distinct_points(features))
    if upper < 2:
        return None
    scores = []
    for nclus in range(2, upper + 1):
        labels = clusterer(features, nclus, seed)
        nlabels = len(np.unique(labels))
        if 2 <= nlabels <= n - 1:
            scores.append(silhouette_score(features, labels, metric="euclidean"))
        else:
            scores.append(-1.0)
    return int(np.argmax(scores)) + 2


def co_clustered(variant, features, nclusters, nclustering, seed=None):
    """
    Indices of the rows that fall in the same cluster as the last row in at
    least `ceil(0.8 * nclustering)` of `nclustering` independent clusterings.

    Args:
        variant (*str*): `"kmnlog"` or `"kmdlog"`.
        features (*np.ndarray*): One row per window.
        nclusters (*int*): Number of clusters.
        nclustering (*int*): Number of repetitions.
        seed (*int or None, optional*): Seed of the generator drawing each repetition's initialization.

    **Returns:**

    - `np.ndarray`: Sorted indices, the last row included when it qualifies.
    """
    _, clusterer = find_clusterer(variant)
    rng = np.random.default_rng(seed)
    latest = len(features) - 1
    votes = np.zeros(len(features), dtype=int)
    for _ in range(nclustering):
        labels = clusterer(features, nclusters, int(rng.integers(0, 2**31 - 1)))
        votes += labels == labels[latest]
    threshold = math.ceil(AGREEMENT * nclustering)
    return np.flatnonzero(votes >= threshold)


def similar_windows(variant, similarity, nclusters, nclustering, seed=None):
    """
    Similar-window search on a window similarity matrix.

    Returns the windows (by start index) that consistently share the latest
    window's cluster, the latest window excluded. An empty result means no
    similar window was found, which includes matrices with undefined entries
    and matrices with too few distinct rows to cluster.
    """
    similarity = np.asarray(similarity, dtype=float)
    if not np.all(np.isfinite(similarity)):
        logger.debug("Window similarity matrix has undefined entries, skipping clustering")
        return np.array([], dtype=int)
    nclus = optimal_nclusters(variant, similarity, nclusters, seed=seed)
    if nclus is None:
        return np.array([], dtype=int)
    members = co_clustered(variant, similarity, nclus, nclustering, seed=seed)
    return members[members != len(similarity) - 1]
