"""
Trend following strategies forecast where prices are heading and track the forecast with a
kernel-weighted step. The forecast blends the recent peak price with a penalized regression
fit, trusting the peak more when the market keeps turning.

---
"""

import logging

import numpy as np

from opsel.algorithms.base_optimizer import OnlineAlgorithm
from opsel.errors import DataError, PortfolioError
from opsel.predictors import (
    blend_prediction,
    kernel_correction,
    peak_price,
    regression_price,
    trend_signal,
)
from opsel.solvers import project_simplex
from opsel.utils import check_integer, check_interval, extract_matrix, initial_weights

logger = logging.getLogger(__name__)


class KTPT(OnlineAlgorithm):
    """
    Kernel-based Trend Pattern Tracking (KTPT).

    Every period KTPT

    1. takes the peak price of each asset over the last `window` periods,
    2. blends it with the previous price forecast using `nu`,
    3. fits an elastic-net regression of that blend on the price window,
    4. measures the share of turning points over the last `2*window - 1` periods,
    5. forecasts the next price by mixing the peak and the regression fit according to that share,
    6. moves the portfolio by a diagonal exponential kernel step toward the forecast relative
       prices and projects it onto the simplex.

    The forecast of one period is the starting forecast of the next.
    """

    def __init__(self, horizon, window=5, q=6, eta=1000, nu=0.5, p_hat=None, alpha=0.01):
        """
        Args:
            horizon (*int*): Number of investment periods, taken from the end of the history.
            window (*int, optional*): Window length, at least 2. Defaults to `5`.
            q (*int, optional*): Order of the kernel, at least 2. Defaults to `6`.
            eta (*float, optional*): Step size of the kernel step, must be positive. Defaults to `1000`.
            nu (*float, optional*): Weight of the peak price in the regression target, bounded within [0,1]. Defaults to `0.5`.
            p_hat (*np.ndarray or None, optional*): Initial price forecast, one entry per asset. `None` uses the last
            price before the investment period. Defaults to `None`.
            alpha (*float, optional*): Elastic-net penalty strength. Defaults to `0.01`.
        """
        self.identity = "ktpt"
        self.horizon = horizon
        self.window = window
        self.q = q
        self.eta = eta
        self.nu = nu
        self.p_hat = p_hat
        self.alpha = alpha

        self.tickers = None
        self.weights = None

    def _check_hyperparameters(self, n_assets, n_periods):
        check_integer("horizon", self.horizon, 0, inclusive=False)
        check_integer("window", self.window, 1, inclusive=False)
        check_integer("q", self.q, 1, inclusive=False)
        check_interval("eta", self.eta, 0, np.inf, closed=(False, False))
        check_interval("nu", self.nu, 0, 1)
        check_interval("alpha", self.alpha, 0, np.inf, closed=(False, False))
        if self.p_hat is not None and len(np.ravel(self.p_hat)) != n_assets:
            raise PortfolioError(f"Invalid p_hat length. Expected {n_assets}, Got {len(np.ravel(self.p_hat))}")
        slack = n_periods - self.horizon + 1 - 2 * self.window
        if slack <= 0:
            raise DataError(
                f"Insufficient data. Provide more samples, decrease the horizon ({self.horizon}) or decrease "
                f"the window ({self.window}); n_periods - horizon + 1 - 2*window must be positive, Got {slack}"
            )

    def optimize(self, data=None, w=None):
        """
        Runs KTPT.

        $$
        \\mathbf{y}_{t+1} = \\nu \\tilde{\\mathbf{p}}_{t+1} + (1 - \\nu) \\hat{\\mathbf{p}}_t,
        \\quad \\hat{\\mathbf{p}}_{t+1} = \\boldsymbol{\\iota} \\odot \\tilde{\\mathbf{p}}_{t+1} + (1 - \\boldsymbol{\\iota}) \\odot \\hat{\\mathbf{y}}_{t+1},
        \\quad \\iota_i = \\min\\left(1, \\frac{\\lambda_{t+1}}{2 x_{t,i}}\\right)
        $$

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
        tickers, prices = extract_matrix(data)
        n_assets, n_periods = prices.shape
        self._check_hyperparameters(n_assets, n_periods)
        first = initial_weights(w, n_assets)
        logger.info("KTPT RUN INITIATED")

        h, win = self.horizon, self.window
        start = n_periods - h
        p_hat = prices[:, start - 1].copy() if self.p_hat is None else np.ravel(self.p_hat).astype(float)

        b = np.empty((n_assets, h))
        b[:, 0] = first
        for t in range(h - 1):
            # Column of the current day; windows are clipped to the available history
            now = start + t
            window_prices = prices[:, max(0, now - win + 1):now + 1]
            peak = peak_price(window_prices)
            target = self.nu * peak + (1 - self.nu) * p_hat
            fitted = regression_price(target, window_prices, alpha=self.alpha)
            signal = trend_signal(prices, now, win)
            rel_price = prices[:, now] / prices[:, now - 1]
            p_hat = blend_prediction(signal, rel_price, peak, fitted)
            x_hat = p_hat / prices[:, now]
            step = kernel_correction(b[:, t], x_hat, self.q, self.eta)
            b[:, t + 1] = project_simplex(step)

        return self._finalize(b, "KTPT", tickers)
