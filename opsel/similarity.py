"""
Windowed similarity between historical market windows.

A window of length `L` starting at column `i` of a relative price matrix is the
`n_assets x L` slice `x[:, i:i+L]`. Only windows with a full length-`L` slice
are considered, so a history of `T` periods holds `T - L + 1` windows. Windows
are compared either by Pearson correlation of their flattened (column-major)
entries or by Euclidean distance between their centroids.

Matrices are rebuilt from scratch on every call. The set of candidate windows
grows by one every period, so callers simply ask again.
"""

import numpy as np
from scipy.spatial.distance import pdist, squareform

from opsel.errors import DataError


def _flattened_windows(rel_price, length):
    rel_price = np.asarray(rel_price, dtype=float)
    n_periods = rel_price.shape[1]
    if length < 1 or length > n_periods:
        raise DataError(f"Invalid window length. Expected 1 <= length <= {n_periods}, Got {length}")
    # Column-major flattening keeps each period's asset block contiguous
    return np.stack(
        [rel_price[:, i:i + length].ravel(order="F") for i in range(n_periods - length + 1)]
    )


def window_correlation(rel_price, length):
    """
    Pearson correlation between every pair of length-`length` windows.

    Windows with zero variance have an undefined correlation with any other
    window; those entries are `NaN`. The diagonal is always `1`.

    Args:
        rel_price (*np.ndarray*): Relative prices, `n_assets x n_periods`.
        length (*int*): Window length.

    **Returns:**

    - `np.ndarray`: Symmetric matrix of shape `n_windows x n_windows`.
    """
    windows = _flattened_windows(rel_price, length)
    centered = windows - windows.mean(axis=1, keepdims=True)
    norms = np.sqrt(np.einsum("ij,ij->i", centered, centered))
    with np.errstate(divide="ignore", invalid="ignore"):
        corr = (centered @ centered.T) / np.outer(norms, norms)
    corr = np.clip(corr, -1.0, 1.0)
    # Symmetrize against round-off, then pin the diagonal
    corr = (corr + corr.T) / 2
    np.fill_diagonal(corr, 1.0)
    return corr


def window_distance(rel_price, length):
    """
    Euclidean distance between the centroids (per-asset means) of every pair of
    length-`length` windows.
    """
    rel_price = np.asarray(rel_price, dtype=float)
    n_windows = rel_price.shape[1] - length + 1
    if length < 1 or n_windows < 1:
        raise DataError(f"Invalid window length. Expected 1 <= length <= {rel_price.shape[1]}, Got {length}")
    centroids = np.stack([rel_price[:, i:i + length].mean(axis=1) for i in range(n_windows)])
    if n_windows == 1:
        return np.zeros((1, 1))
    return squareform(pdist(centroids, metric="euclidean"))


def window_similarity(rel_price, length, metric="correlation"):
    measures = {
        "correlation": window_correlation,
        "distance": window_distance,
    }
    if metric not in measures:
        raise DataError(f"Unknown window similarity metric: {metric}")
    return measures[metric](rel_price, length)


def latest_correlations(rel_price, length):
    """
    Pearson correlation of every earlier length-`length` window with the most
    recent one, `rel_price[:, -length:]`.

    **Returns:**

    - `np.ndarray`: One entry per earlier window, by start index. `NaN` where either window has zero variance.
    """
    rel_price = np.asarray(rel_price, dtype=float)
    n_windows = rel_price.shape[1] - length + 1
    if n_windows < 2:
        return np.array([], dtype=float)
    windows = _flattened_windows(rel_price, length)
    centered = windows - windows.mean(axis=1, keepdims=True)
    norms = np.sqrt(np.einsum("ij,ij->i", centered, centered))
    with np.errstate(divide="ignore", invalid="ignore"):
        corr = (centered[:-1] @ centered[-1]) / (norms[:-1] * norms[-1])
    corr[(norms[:-1] == 0) | (norms[-1] == 0)] = np.nan
    return corr


def locate_similar(rel_price, length, rho):
    """
    Finds the historical windows correlated with the most recent one.

    The most recent window is `rel_price[:, -length:]`. Every earlier window
    whose correlation with it is at least `rho` is returned by its start index.
    The most recent window itself is never part of the result.

    Args:
        rel_price (*np.ndarray*): Relative prices, `n_assets x n_periods`.
        length (*int*): Window length.
        rho (*float*): Correlation threshold.

    **Returns:**

    - `np.ndarray`: Start indices (0-based) of similar windows, ascending.
    """
    corr = latest_correlations(rel_price, length)
    with np.errstate(invalid="ignore"):
        return np.flatnonzero(corr >= rho)


def mix_experts(expert_weights, performance, q=None):
    """
    Performance-weighted combination of expert portfolios.

    $$
    \\mathbf{b} = \\frac{\\sum_k q_k S_k \\mathbf{b}_k}{\\sum_k q_k S_k}
    $$

    Args:
        expert_weights (*np.ndarray*): Expert portfolios, `n_assets x n_experts`.
        performance (*np.ndarray*): Cumulative wealth `S_k` of each expert.
        q (*float, np.ndarray or None, optional*): Prior share of each expert. `None` gives every expert the same share.

    **Returns:**

    - `np.ndarray`: Mixed portfolio, renormalized to sum to one.
    """
    expert_weights = np.asarray(expert_weights, dtype=float)
    performance = np.asarray(performance, dtype=float).ravel()
    n_experts = expert_weights.shape[1]
    q = np.full(n_experts, 1.0 / n_experts) if q is None else np.broadcast_to(q, (n_experts,))
    qs = q * performance
    if qs.sum() <= 0:
        return np.ones(expert_weights.shape[0]) / expert_weights.shape[0]
    mixed = expert_weights @ qs / qs.sum()
    return mixed / mixed.sum()
