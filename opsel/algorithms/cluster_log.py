"""
Cluster-based log-utility strategies group historical market windows by the similarity of
their correlation profiles and invest in the portfolio maximizing the correlation-weighted
log-utility of the days that followed the windows sharing the current window's cluster.

Two variants are available, differing only in the clustering method:

| Variant  | Identifier | Clustering                                           |
| -------- | ---------- | ---------------------------------------------------- |
| KMNLOG   | `kmnlog`   | k-means on the rows of the window correlation matrix |
| KMDLOG   | `kmdlog`   | k-medoids on the Euclidean distances between rows    |

!!! note "Note:"
    Clustering is stochastic. Pass an integer `seed` to obtain reproducible weights.

---
"""

import logging

import numpy as np

from opsel.algorithms.base_optimizer import OnlineAlgorithm
from opsel.clustering import find_clusterer, similar_windows
from opsel.errors import DataError, PortfolioError
from opsel.similarity import window_correlation
from opsel.solvers import log_optimal
from opsel.utils import adjust_weights, check_integer, extract_matrix, initial_weights

logger = logging.getLogger(__name__)


class ClusLog(OnlineAlgorithm):
    """
    Clustering-based log-optimal portfolio selection (KMNLOG / KMDLOG).

    For every investment day, with windows of length `TW`:

    1. All length-`TW` windows of the history are correlated with each other.
    2. The number of clusters in `2..nclusters` is chosen by mean silhouette score.
    3. Clustering is repeated `nclustering` times; a window is similar to the current one
       when both share a cluster in at least 80% of the repetitions.
    4. The current window is dropped from its own similar set and the log-utility of the
       days after the similar windows, weighted by their correlation with the current window,
       is maximized within the weight `boundaries`.

    When no similar window survives, the day falls back to the previous day's portfolio
    drifted by the latest relative prices (the initial portfolio on the first day).
    """

    def __init__(self, horizon, TW=3, variant="kmnlog", nclusters=3, nclustering=10, boundaries=(0.0, 1.0), seed=None):
        """
        Args:
            horizon (*int*): Number of investment days, taken from the end of the history.
            TW (*int, optional*): Window length, at least 2. Defaults to `3`.
            variant (*str, optional*): `"kmnlog"` or `"kmdlog"`. Defaults to `"kmnlog"`.
            nclusters (*int, optional*): Maximum number of clusters. Defaults to `3`.
            nclustering (*int, optional*): Number of clustering repetitions. Defaults to `10`.
            boundaries (*tuple, optional*): Per-asset weight bounds `(lb, ub)`. Defaults to `(0, 1)`.
            seed (*int or None, optional*): Seed of the clustering initializations. Defaults to `None`.
        """
        self.identity = "cluslog"
        self.horizon = horizon
        self.TW = TW
        self.variant = variant
        self.nclusters = nclusters
        self.nclustering = nclustering
        self.boundaries = boundaries
        self.seed = seed

        self.tickers = None
        self.weights = None

    def _check_hyperparameters(self, n_assets, n_periods):
        check_integer("horizon", self.horizon, 0, inclusive=False)
        check_integer("TW", self.TW, 2)
        check_integer("nclusters", self.nclusters, 2)
        check_integer("nclustering", self.nclustering, 1)
        variant, _ = find_clusterer(self.variant)
        if len(tuple(self.boundaries)) != 2:
            raise PortfolioError(f"Invalid boundaries length. Expected 2, Got {len(tuple(self.boundaries))}")
        lb, ub = self.boundaries
        if lb >= ub:
            raise PortfolioError(f"Invalid boundaries. Lower bound must be less than upper bound, Got {self.boundaries}")
        if lb < 0:
            raise PortfolioError(f"Invalid lower bound. Expected lb >= 0, Got {lb}")
        if not 0 < ub <= 1:
            raise PortfolioError(f"Invalid upper bound. Must be bounded within (0,1], Got {ub}")
        if lb >= 1 / n_assets:
            raise PortfolioError(f"Invalid lower bound. Expected lb < 1/{n_assets}, Got {lb}")
        if self.seed is not None and not isinstance(self.seed, (int, np.integer)):
            raise PortfolioError(f"Invalid seed. Expected integer or None, Got {self.seed}")
        # Data sufficiency
        if n_periods <= self.horizon:
            raise DataError(f"Insufficient data. Expected more than {self.horizon} periods, Got {n_periods}")
        if self.TW >= n_periods - self.horizon + 1:
            raise DataError(
                f"Insufficient data. TW must be < {n_periods - self.horizon + 1}; provide more data, "
                f"decrease horizon or decrease TW. Got TW={self.TW}"
            )
        if self.nclusters > n_periods - self.horizon:
            raise DataError(f"Insufficient data. nclusters must be <= {n_periods - self.horizon}, Got {self.nclusters}")
        return variant

    def _window_portfolio(self, variant, history, tw, seed):
        # Portfolio proposed by one window length, or None when no similar window exists
        corr = window_correlation(history, tw)
        idx_similar = similar_windows(variant, corr, self.nclusters, self.nclustering, seed=seed)
        if len(idx_similar) == 0:
            return None
        days_after = idx_similar + tw
        return log_optimal(
            history[:, days_after],
            coefficients=corr[-1, idx_similar],
            bounds=tuple(self.boundaries),
        )

    def optimize(self, data=None, w=None):
        """
        Runs the ClusLog strategy.

        $$
        \\max_{\\mathbf{w}} \\ \\sum_{i \\in \\mathcal{S}} \\rho_i \\log \\left(\\mathbf{w}^\\top \\mathbf{x}_{i+tw}\\right)
        \\quad \\text{s.t.} \\quad lb \\le w_j \\le ub, \\ \\sum_j w_j = 1
        $$

        Args:
            data (*np.ndarray or pd.DataFrame*): Relative prices, `n_assets x n_periods` for arrays.
            w (*None or np.ndarray, optional*): Fallback portfolio of the first day. Defaults to the uniform portfolio.

        **Returns:**

        - `OPSAlgorithm`: Weights matrix of shape `n_assets x horizon`.

        Raises:
            PortfolioError: For any invalid hyperparameter.
            DataError: For malformed or insufficient data.
            OptimizationError: If a log-utility problem fails to solve.
        """
        tickers, rel_price = extract_matrix(data)
        n_assets, n_periods = rel_price.shape
        variant = self._check_hyperparameters(n_assets, n_periods)
        first = initial_weights(w, n_assets)
        name = variant.upper()
        logger.info(f"{name} RUN INITIATED")

        rng = np.random.default_rng(self.seed)
        b = np.zeros((n_assets, self.horizon))
        for day in range(self.horizon):
            history = rel_price[:, : n_periods - self.horizon + day + 1]
            if day == 0:
                fallback = first
            else:
                fallback = adjust_weights(b[:, day - 1], history[:, -1])
            seed = None if self.seed is None else int(rng.integers(0, 2**31 - 1))
            proposal = self._window_portfolio(variant, history, self.TW, seed)
            if proposal is None:
                logger.debug(f"{name} day {day}: no similar windows, falling back")
                proposal = fallback
            b[:, day] = proposal

        return self._finalize(b, name, tickers)
