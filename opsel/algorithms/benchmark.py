"""
Benchmark strategies give reference points for the learning algorithms. They do not adapt to
the market, so any online strategy worth running should be compared against them with
`opsel.metrics`.

---
"""

import logging

import numpy as np

from opsel.algorithms.base_optimizer import OnlineAlgorithm
from opsel.utils import extract_matrix, initial_weights

logger = logging.getLogger(__name__)


class CRP(OnlineAlgorithm):
    """
    Constant Rebalanced Portfolio (CRP).

    CRP rebalances to the same portfolio at the start of every period, selling the assets that
    rose and buying the ones that fell. With the uniform portfolio it is the online counterpart
    of the 1/N strategy and the usual baseline of the online portfolio selection literature.
    """

    def __init__(self):
        """
        The `CRP` algorithm does not require any parameters to initialize. The constant portfolio
        is passed to `optimize()`.
        """
        self.identity = "crp"

        self.tickers = None
        self.weights = None

    def optimize(self, data=None, w=None):
        """
        Holds the same portfolio in every period:

        $$
        \\mathbf{b}_t = \\mathbf{w} \\; \\forall \\ t=1, ..., T
        $$

        Args:
            data (*np.ndarray or pd.DataFrame*): Relative prices, `n_assets x n_periods` for arrays.
            w (*None or np.ndarray, optional*): Constant portfolio. Defaults to the uniform portfolio.

        **Returns:**

        - `OPSAlgorithm`: Weights matrix of shape `n_assets x n_periods`.

        Raises:
            PortfolioError: If `w` is not a valid portfolio.
            DataError: For malformed data.
        """
        tickers, rel_price = extract_matrix(data)
        n_assets, n_periods = rel_price.shape
        portfolio = initial_weights(w, n_assets)
        logger.info("CRP RUN INITIATED")

        b = np.tile(portfolio[:, None], (1, n_periods))
        return self._finalize(b, "CRP", tickers)


class BS(OnlineAlgorithm):
    """
    Best Stock (BS).

    A hindsight benchmark: the whole wealth is held in the single asset with the highest
    cumulative return over the full history. It cannot be traded online, since the best asset
    is only known at the end.
    """

    def __init__(self):
        """
        The `BS` algorithm does not require any parameters to initialize.
        """
        self.identity = "bs"

        self.tickers = None
        self.weights = None

    def optimize(self, data=None, w=None):
        """
        Invests everything in the asset with the highest cumulative return:

        $$
        i^* = \\arg\\max_i \\prod_{t=1}^{T} x_{i,t}
        $$

        Ties go to the first asset.

        Args:
            data (*np.ndarray or pd.DataFrame*): Relative prices, `n_assets x n_periods` for arrays.
            w (*None, optional*): Included for interface consistency and ignored.

        **Returns:**

        - `OPSAlgorithm`: Weights matrix of shape `n_assets x n_periods`.

        Raises:
            DataError: For malformed data.
        """
        tickers, rel_price = extract_matrix(data)
        n_assets, n_periods = rel_price.shape
        logger.info("BS RUN INITIATED")

        # Log-sum avoids overflow of long products
        best = int(np.argmax(np.log(rel_price).sum(axis=1)))
        b = np.zeros((n_assets, n_periods))
        b[best] = 1.0
        logger.debug(f"BS best asset: {tickers[best]}")
        return self._finalize(b, "BS", tickers)
