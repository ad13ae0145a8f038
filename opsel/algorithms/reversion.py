"""
Reversion strategies bet that recent movements will partially undo themselves. Each period
they forecast the next relative prices from a short trailing window and shift the portfolio
toward the assets forecast to recover, either with a passive-aggressive step (RMR) or with a
transaction-cost aware shrinkage step (TCO).

!!! note "Note:"
    Both algorithms invest over the last `horizon` periods of the history. Everything
    earlier is used only to fill the estimation windows.

---
"""

import logging

import numpy as np

from opsel.algorithms.base_optimizer import OnlineAlgorithm
from opsel.errors import DataError
from opsel.predictors import last_relative, median_relative, sma_relative
from opsel.solvers import project_simplex
from opsel.utils import (
    check_integer,
    check_interval,
    extract_matrix,
    find_variant,
    initial_weights,
)

logger = logging.getLogger(__name__)

# Transaction rates above this are considered high
HIGH_TRANSACTION_RATE = 0.05


class RMR(OnlineAlgorithm):
    """
    Robust Median Reversion (RMR).

    Introduced by Huang et. al, RMR forecasts the next price of every asset by the L1-median
    of the last `window` price vectors, which is far less sensitive to outliers than the
    moving average used by OLMAR. The portfolio is then moved passively-aggressively toward
    the assets whose predicted relative price exceeds the average, whenever the predicted
    portfolio return falls short of the reversion threshold `epsilon`.
    """

    def __init__(self, horizon, window=5, epsilon=5.0, max_iter=200, tol=1e-6):
        """
        Args:
            horizon (*int*): Number of investment periods, taken from the end of the history.
            window (*int, optional*): Number of price vectors in the median window, at least 2. Defaults to `5`.
            epsilon (*float, optional*): Reversion threshold, must be positive. Defaults to `5.0`.
            max_iter (*int, optional*): Maximum number of median estimates. Defaults to `200`.
            tol (*float, optional*): Relative tolerance of the median iteration. Defaults to `1e-6`.
        """
        self.identity = "rmr"
        self.horizon = horizon
        self.window = window
        self.epsilon = epsilon
        self.max_iter = max_iter
        self.tol = tol

        self.tickers = None
        self.weights = None

    def _update(self, x_hat, b_t):
        x_bar = x_hat.mean()
        deviation = x_hat - x_bar
        spread = deviation @ deviation
        if spread == 0:
            return b_t.copy()
        alpha = min(0.0, (x_hat @ b_t - self.epsilon) / spread)
        return project_simplex(b_t - alpha * deviation)

    def optimize(self, data=None, w=None):
        """
        Runs RMR.

        $$
        \\hat{\\mathbf{x}}_{t+1} = \\frac{L_1\\text{-}\\mathrm{median}(\\mathbf{p}_{t-w+1}, \\ldots, \\mathbf{p}_t)}{\\mathbf{p}_t},
        \\quad \\alpha = \\min\\left(0, \\frac{\\hat{\\mathbf{x}}_{t+1}^\\top \\mathbf{b}_t - \\epsilon}{\\lVert \\hat{\\mathbf{x}}_{t+1} - \\bar{x}_{t+1} \\mathbf{1} \\rVert^2}\\right)
        $$

        and $\\mathbf{b}_{t+1} = \\Pi_\\Delta\\left(\\mathbf{b}_t - \\alpha (\\hat{\\mathbf{x}}_{t+1} - \\bar{x}_{t+1} \\mathbf{1})\\right)$.

        Args:
            data (*np.ndarray or pd.DataFrame*): Prices, `n_assets x n_periods` for arrays.
            w (*None or np.ndarray, optional*): Portfolio of the first investment period. Defaults to the uniform portfolio.

        **Returns:**

        - `OPSAlgorithm`: Weights matrix of shape `n_assets x horizon`.

        Raises:
            PortfolioError: For any invalid hyperparameter.
            DataError: For malformed or insufficient data.
            OptimizationError: If the simplex projection fails.
        """
        check_integer("horizon", self.horizon, 0, inclusive=False)
        check_integer("window", self.window, 1, inclusive=False)
        check_interval("epsilon", self.epsilon, 0, np.inf, closed=(False, False))
        check_integer("max_iter", self.max_iter, 0, inclusive=False)
        check_interval("tol", self.tol, 0, np.inf, closed=(False, False))
        tickers, prices = extract_matrix(data)
        n_assets, n_periods = prices.shape
        if n_periods < self.horizon + self.window - 1:
            raise DataError(
                f"Insufficient data. Expected at least {self.horizon + self.window - 1} periods, Got {n_periods}"
            )
        logger.info("RMR RUN INITIATED")

        h, win = self.horizon, self.window
        b = np.empty((n_assets, h))
        b[:, 0] = initial_weights(w, n_assets)
        for t in range(1, h):
            end = n_periods - h + t
            x_hat = median_relative(prices[:, end - win:end], self.max_iter, self.tol)
            b[:, t] = self._update(x_hat, b[:, t - 1])

        return self._finalize(b, "RMR", tickers)


_TCO_PREDICTORS = {
    "tco1": last_relative,
    "tco2": sma_relative,
}


class TCO(OnlineAlgorithm):
    """
    Transaction Cost Optimization (TCO).

    Introduced by Li et. al, TCO predicts the next relative prices (the last observed ones for
    TCO1, the moving-average implied ones for TCO2), scores every asset by its predicted return
    relative to the current portfolio, and moves the portfolio by the soft-thresholded score.
    The threshold `10 * gamma` grows with the transaction rate, so small signals do not cause
    trading.

    | Variant  | Identifier | Predicted relative price              |
    | -------- | ---------- | ------------------------------------- |
    | TCO1     | `tco1`     | Last observed relative price          |
    | TCO2     | `tco2`     | Simple moving average of the window   |
    """

    def __init__(self, horizon, window=5, gamma=0.01, eta=10, variant="tco1"):
        """
        Args:
            horizon (*int*): Number of investment periods, taken from the end of the history.
            window (*int, optional*): Window length, at least 2. Defaults to `5`.
            gamma (*float, optional*): Transaction rate, bounded within (0,1]. Defaults to `0.01`.
            eta (*float, optional*): Smoothing parameter, must be positive. Defaults to `10`.
            variant (*str, optional*): `"tco1"` or `"tco2"`. Defaults to `"tco1"`.
        """
        self.identity = "tco"
        self.horizon = horizon
        self.window = window
        self.gamma = gamma
        self.eta = eta
        self.variant = variant

        self.tickers = None
        self.weights = None

    def optimize(self, data=None, w=None):
        """
        Runs TCO.

        $$
        \\mathbf{v}_t = \\frac{\\hat{\\mathbf{x}}_{t+1}}{\\hat{\\mathbf{b}}_t^\\top \\hat{\\mathbf{x}}_{t+1}},
        \\quad \\tilde{\\mathbf{b}} = \\eta (\\mathbf{v}_t - \\bar{v}_t \\mathbf{1}),
        \\quad \\mathbf{b}_{t+1} = \\Pi_\\Delta\\left(\\hat{\\mathbf{b}}_t + \\operatorname{sign}(\\tilde{\\mathbf{b}}) \\max(\\lvert \\tilde{\\mathbf{b}} \\rvert - \\lambda, 0)\\right)
        $$

        with $\\lambda = 10 \\gamma$ and $\\hat{\\mathbf{b}}_t$ the previous portfolio after drifting with the market.

        Args:
            data (*np.ndarray or pd.DataFrame*): Relative prices, `n_assets x n_periods` for arrays.
            w (*None or np.ndarray, optional*): Portfolio of the first investment period. Defaults to the uniform portfolio.

        **Returns:**

        - `OPSAlgorithm`: Weights matrix of shape `n_assets x horizon`.

        Raises:
            PortfolioError: For any invalid hyperparameter.
            DataError: For malformed or insufficient data.
            OptimizationError: If the simplex projection fails.
        """
        check_integer("horizon", self.horizon, 0, inclusive=False)
        check_integer("window", self.window, 1, inclusive=False)
        check_interval("eta", self.eta, 0, np.inf, closed=(False, False))
        check_interval("gamma", self.gamma, 0, 1, closed=(False, True))
        variant, predictor = find_variant(self.variant, _TCO_PREDICTORS, name="TCO variant")
        tickers, rel_price = extract_matrix(data)
        n_assets, n_periods = rel_price.shape
        b_hat = initial_weights(w, n_assets)
        if n_periods - self.window < self.horizon:
            raise DataError(
                f"Insufficient data. n_periods - window must be >= horizon ({self.horizon}), Got {n_periods - self.window}"
            )
        name = variant.upper()
        if self.gamma > HIGH_TRANSACTION_RATE:
            logger.warning(
                f"The transaction rate ({self.gamma}) is considered high; TCO1 and TCO2 may behave identically. "
                f"Values lower than or equal to {HIGH_TRANSACTION_RATE} are recommended."
            )
        logger.info(f"{name} RUN INITIATED")

        h, win = self.horizon, self.window
        lam = 10 * self.gamma
        b = np.empty((n_assets, h))
        b[:, 0] = b_hat
        for t in range(1, h):
            end = n_periods - h + t
            x_hat = predictor(rel_price[:, end - win:end])
            v = x_hat / (b_hat @ x_hat)
            b_tilde = self.eta * (v - v.mean())
            step = np.sign(b_tilde) * np.maximum(np.abs(b_tilde) - lam, 0.0)
            b[:, t] = project_simplex(b_hat + step)
            # Portfolio drifts with the latest observed relative prices
            x_t = rel_price[:, end - 1]
            b_hat = x_t * b[:, t] / (x_t @ b[:, t])

        return self._finalize(b, name, tickers)
