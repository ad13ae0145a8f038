"""
All OPSEL algorithm objects expose a common set of methods with a consistent interface.
Every algorithm is configured through its constructor and run with `optimize()`, which
returns an `OPSAlgorithm` holding the whole weight trajectory. The last portfolio of the
trajectory is also kept on the instance, so the diagnostic methods below apply to it.

---

"""

from abc import ABC, abstractmethod
import logging

import numpy as np

from opsel.errors import PortfolioError
from opsel.utils import repair

logger = logging.getLogger(__name__)


class OPSAlgorithm:
    """
    Result of an online portfolio selection run.

    Attributes:
        n_assets (*int*): Number of assets.
        b (*np.ndarray*): Weights matrix of shape `n_assets x horizon`. Every column is non-negative and sums to one.
        alg (*str*): Name of the algorithm that produced the weights.
        tickers (*list*): Asset labels, in row order.
    """

    def __init__(self, n_assets, b, alg, tickers=None):
        b = np.array(b, dtype=float)
        b.setflags(write=False)
        self.n_assets = n_assets
        self.b = b
        self.alg = alg
        self.tickers = tickers

    @property
    def weights(self):
        return self.b

    @property
    def horizon(self):
        return self.b.shape[1]

    def __repr__(self):
        return f"OPSAlgorithm(alg={self.alg!r}, n_assets={self.n_assets}, horizon={self.horizon})"


class OnlineAlgorithm(ABC):
    """
    Abstract base class for all online portfolio selection algorithms.

    Defines the standard interface for running an algorithm over a price history and
    generating portfolio concentration statistics for its latest portfolio.
    """
    def __init__(self):
        """
        Initializing `OnlineAlgorithm` sets `self.weights` and `self.tickers` to `None`.
        They are only updated after `optimize()` method is called.
        """
        self.weights = None
        self.tickers = None

    @abstractmethod
    def optimize(self, data, w=None):
        """
        Abstract method running the algorithm over the provided data. Hyperparameters are
        taken from the constructor and validated here, before any computation.

        **Args:**

        - `data` (*np.ndarray or pd.DataFrame*): Price or relative price history. Arrays are laid out as `n_assets x n_periods`;
        DataFrames as dates x tickers, for example:
            ```
            Ticker           TSLA      NVDA       GME        PFE       AAPL  ...
            Date
            2015-01-02  14.620667  0.483011  6.288958  18.688917  24.237551  ...
            2015-01-05  14.006000  0.474853  6.460137  18.587513  23.554741  ...
            2015-01-06  14.085333  0.460456  6.268492  18.742599  23.556952  ...
            ...
            ```
        - `w` (*None or np.ndarray, optional*): Initial portfolio. Must match the number of assets and sum to one.

        ---
        """
        pass

    def _finalize(self, b, name, tickers):
        # Simplex repair over the whole trajectory, then publish the result
        b = repair(b)
        self.tickers = tickers
        self.weights = np.array(b[:, -1], dtype=float)
        logger.info(f"{name} RUN FINISHED")
        return OPSAlgorithm(b.shape[0], b, name, tickers=tickers)

    def stats(self):
        """
        Calculates and returns portfolio concentration and diversification statistics of the
        latest portfolio of the last run.

        For the method to work, the `optimize()` method should have been called at least once
        for `self.weights` to be defined other than `None`.

        **Returns:**

        - A `dict` containing the following keys:
            - `'tickers'` (*list*): A list of tickers used for optimization.
            - `'weights'` (*np.ndarry): Latest portfolio weights.
            - `'portfolio_entropy'` (*float*): Shannon entropy computed on portfolio weights.
            - `'herfindahl_index'` (*float*): Herfindahl Index value, computed on portfolio weights.
            - `'gini_coefficient'` (*float*): Gini Coefficient value, computed on portfolio weights.
            - `'absolute_max_weight'` (*float*): Absolute maximum allocation for an asset.

        Raises:
            PortfolioError: If the algorithm has not been run.

        !!! example "Example:"
            ```python
            from opsel.algorithms import BK

            bk = BK(K=2, L=2, c=0.1)
            bk.optimize(relative_prices)

            for key, value in bk.stats().items():
                print(f"{key}: {value}")
            ```
        ---
        """
        if self.weights is None:
            raise PortfolioError("Weights not optimized")
        else:
            portfolio_entropy = -np.sum(
                np.abs(self.weights) * np.log(np.abs(self.weights) + 1e-12)
            )
            herfindahl_index = np.sum(self.weights**2)
            gini_coeff = np.mean(
                np.abs(self.weights[:, None] - self.weights[None, :])
            ) / (2 * np.mean(np.abs(self.weights)))
            max_weight = np.max(np.abs(self.weights))
            statistics = {
                "tickers": self.tickers,
                "weights": np.round(self.weights, 5),
                "portfolio_entropy": portfolio_entropy,
                "herfindahl_index": herfindahl_index,
                "gini_coefficient": gini_coeff,
                "absolute_max_weight": max_weight,
            }
            return statistics

    def clean_weights(self, threshold=1e-8):
        """
        Sets positions of the latest portfolio below `threshold` to zero and renormalizes.

        !!! warning "Warning:"
            This method modifies `self.weights` in place. The weight trajectory returned by
            `optimize()` is left untouched.

        Args:
            threshold (*float, optional*): Float specifying the minimum weight to retain. Defaults to `1e-8`.

        **Returns:**

        - `numpy.ndarray`: Cleaned and re-normalized portfolio weight vector.

        Raises:
            PortfolioError: If the algorithm has not been run.
        """
        if self.weights is None:
            raise PortfolioError("Weights not optimized")
        else:
            self.weights[np.abs(self.weights) < threshold] = 0
            self.weights /= np.abs(self.weights).sum()
            return self.weights
