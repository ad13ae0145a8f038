"""
Pattern matching strategies search the history for windows whose relative prices are
correlated with the most recent window and invest as if the days after those windows were
about to repeat.

---
"""

import logging

import numpy as np

from opsel.algorithms.base_optimizer import OnlineAlgorithm
from opsel.errors import DataError, PortfolioError
from opsel.similarity import latest_correlations, locate_similar, mix_experts
from opsel.solvers import log_optimal
from opsel.utils import check_integer, check_interval, extract_matrix, initial_weights, relative_prices

logger = logging.getLogger(__name__)


def _corn_expert(history, length, idx_similar):
    # Log-optimal portfolio over the days after the similar windows, uniform when there are none
    if len(idx_similar) == 0:
        return np.ones(history.shape[0]) / history.shape[0]
    return log_optimal(history[:, idx_similar + length])


class CORNU(OnlineAlgorithm):
    """
    Correlation-driven nonparametric learning, uniform combination (CORN-U).

    Introduced by Li, Hoi and Gopalkrishnan, CORN-U runs one expert per window length
    `1..window`. An expert locates the past windows whose Pearson correlation with the latest
    window is at least `rho` and holds the log-optimal portfolio over the days right after
    them, or the uniform portfolio when none qualifies. Experts are combined with equal prior
    shares in proportion to their accumulated wealth.
    """

    def __init__(self, horizon, window=5, rho=0.2):
        """
        Args:
            horizon (*int*): Number of investment periods, taken from the end of the history.
            window (*int, optional*): Maximum window length. Defaults to `5`.
            rho (*float, optional*): Correlation threshold, bounded within [-1,1]. Defaults to `0.2`.
        """
        self.identity = "cornu"
        self.horizon = horizon
        self.window = window
        self.rho = rho

        self.tickers = None
        self.weights = None

    def _expert(self, history, length):
        return _corn_expert(history, length, locate_similar(history, length, self.rho))

    def optimize(self, data=None, w=None):
        """
        Runs CORN-U.

        Args:
            data (*np.ndarray or pd.DataFrame*): Prices, `n_assets x n_periods` for arrays.
            w (*None or np.ndarray, optional*): Portfolio of the first investment period. Defaults to the uniform portfolio.

        **Returns:**

        - `OPSAlgorithm`: Weights matrix of shape `n_assets x horizon`.

        Raises:
            PortfolioError: For any invalid hyperparameter.
            DataError: For malformed or insufficient data.
            OptimizationError: If a log-optimal problem fails to solve.
        """
        check_integer("horizon", self.horizon, 0, inclusive=False)
        check_integer("window", self.window, 0, inclusive=False)
        check_interval("rho", self.rho, -1, 1)
        tickers, prices = extract_matrix(data)
        n_assets, n_periods = prices.shape
        first = initial_weights(w, n_assets)
        # The first investment period needs at least `window` relative prices of history
        if n_periods - self.horizon < self.window + 1:
            raise DataError(
                f"Insufficient data. Expected at least {self.horizon + self.window + 1} periods, Got {n_periods}"
            )
        logger.info("CORN-U RUN INITIATED")

        rel_price = relative_prices(prices)
        n_rel = rel_price.shape[1]
        h = self.horizon
        wealth = np.ones(self.window)
        b = np.empty((n_assets, h))
        b[:, 0] = first
        for t in range(h):
            history = rel_price[:, : n_rel - h + t]
            experts = np.column_stack(
                [self._expert(history, length) for length in range(1, self.window + 1)]
            )
            if t > 0:
                b[:, t] = mix_experts(experts, wealth)
            # Experts are judged on the period they were built for
            wealth *= rel_price[:, n_rel - h + t] @ experts

        return self._finalize(b, "CORN-U", tickers)


class CORNK(OnlineAlgorithm):
    """
    Correlation-driven nonparametric learning, top-K combination (CORN-K).

    CORN-K runs one CORN expert per pair of window length `1..window` and correlation threshold
    `rho_i = i / p` for `i = 0..p-1`. Each period only the `k` experts with the highest
    accumulated wealth are combined, with equal prior shares in proportion to their wealth.
    """

    def __init__(self, horizon, k=5, window=5, p=10):
        """
        Args:
            horizon (*int*): Number of investment periods, taken from the end of the history.
            k (*int, optional*): Number of best experts combined, at most `window * p`. Defaults to `5`.
            window (*int, optional*): Maximum window length. Defaults to `5`.
            p (*int, optional*): Number of correlation thresholds, at least 2. Defaults to `10`.
        """
        self.identity = "cornk"
        self.horizon = horizon
        self.k = k
        self.window = window
        self.p = p

        self.tickers = None
        self.weights = None

    def _check_hyperparameters(self):
        check_integer("horizon", self.horizon, 0, inclusive=False)
        check_integer("window", self.window, 0, inclusive=False)
        check_integer("p", self.p, 2)
        check_integer("k", self.k, 0, inclusive=False)
        if self.k > self.window * self.p:
            raise PortfolioError(
                f"Invalid k. Expected k <= window * p = {self.window * self.p}, Got {self.k}"
            )

    def _experts(self, history, thresholds):
        # Experts ordered by window length, then threshold
        columns = []
        for length in range(1, self.window + 1):
            corr = latest_correlations(history, length)
            solved = {}
            for rho in thresholds:
                with np.errstate(invalid="ignore"):
                    idx_similar = np.flatnonzero(corr >= rho)
                key = tuple(idx_similar)
                if key not in solved:
                    solved[key] = _corn_expert(history, length, idx_similar)
                columns.append(solved[key])
        return np.column_stack(columns)

    def optimize(self, data=None, w=None):
        """
        Runs CORN-K.

        Args:
            data (*np.ndarray or pd.DataFrame*): Prices, `n_assets x n_periods` for arrays.
            w (*None or np.ndarray, optional*): Portfolio of the first investment period. Defaults to the uniform portfolio.

        **Returns:**

        - `OPSAlgorithm`: Weights matrix of shape `n_assets x horizon`.

        Raises:
            PortfolioError: For any invalid hyperparameter.
            DataError: For malformed or insufficient data.
            OptimizationError: If a log-optimal problem fails to solve.
        """
        self._check_hyperparameters()
        tickers, prices = extract_matrix(data)
        n_assets, n_periods = prices.shape
        first = initial_weights(w, n_assets)
        if n_periods - self.horizon < self.window + 1:
            raise DataError(
                f"Insufficient data. Expected at least {self.horizon + self.window + 1} periods, Got {n_periods}"
            )
        logger.info("CORN-K RUN INITIATED")

        rel_price = relative_prices(prices)
        n_rel = rel_price.shape[1]
        h = self.horizon
        thresholds = np.arange(self.p) / self.p
        wealth = np.ones(self.window * self.p)
        b = np.empty((n_assets, h))
        b[:, 0] = first
        for t in range(h):
            experts = self._experts(rel_price[:, : n_rel - h + t], thresholds)
            if t > 0:
                # Stable sort keeps the earlier expert on ties
                top = np.argsort(-wealth, kind="stable")[: self.k]
                b[:, t] = mix_experts(experts[:, top], wealth[top])
            wealth *= rel_price[:, n_rel - h + t] @ experts

        return self._finalize(b, "CORN-K", tickers)
