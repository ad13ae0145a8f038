"""
Kernel-based nonparametric strategies look for past market situations that resemble the
present one and invest in the portfolio that would have been log-optimal on the days that
followed them. No distributional assumption is made about returns; the history itself is
the model.

---
"""

import logging

import numpy as np

from opsel.algorithms.base_optimizer import OnlineAlgorithm
from opsel.solvers import log_optimal
from opsel.similarity import mix_experts
from opsel.utils import check_integer, check_interval, extract_matrix, initial_weights

logger = logging.getLogger(__name__)


class BK(OnlineAlgorithm):
    """
    Nonparametric kernel-based sequential investment strategy (B^K).

    Introduced by Györfi, Lugosi and Udina, B^K runs a grid of experts `(k, l)`. Expert `(k, l)`
    compares the last `k` relative price vectors with every earlier length-`k` stretch of the
    history, keeps the days that followed stretches within Frobenius distance `c / l`, and holds
    the log-optimal portfolio over those days. An unconditional expert `(0, 0)` uses the whole
    history. Experts are mixed in proportion to the wealth they have accumulated.
    """

    def __init__(self, K=2, L=2, c=0.1):
        """
        Args:
            K (*int, optional*): Maximum window length. Defaults to `2`.
            L (*int, optional*): Number of kernel radii per window length. Defaults to `2`.
            c (*float, optional*): Similarity threshold, bounded within (0,1]. Defaults to `0.1`.
        """
        self.identity = "bk"
        self.K = K
        self.L = L
        self.c = c

        self.tickers = None
        self.weights = None

    def _check_hyperparameters(self):
        check_interval("c", self.c, 0, 1, closed=(False, True))
        check_integer("K", self.K, 0, inclusive=False)
        check_integer("L", self.L, 0, inclusive=False)

    def _expert(self, data, k, l):
        # Portfolio of expert (k, l) given the observed relative prices
        n_assets, day = data.shape
        uniform = np.ones(n_assets) / n_assets
        if day <= k + 1:
            return uniform
        if k == 0 and l == 0:
            matched = data
        else:
            radius = self.c / l
            recent = data[:, day - k:]
            hits = [
                i for i in range(k, day)
                if np.linalg.norm(data[:, i - k:i] - recent) <= radius
            ]
            if not hits:
                return uniform
            matched = data[:, hits]
        return log_optimal(matched)

    def optimize(self, data=None, w=None):
        """
        Runs B^K over the whole relative price history.

        $$
        \\mathbf{b}_{t} = \\frac{\\sum_{k,l} S_{t-1}^{(k,l)} \\mathbf{h}_t^{(k,l)}}{\\sum_{k,l} S_{t-1}^{(k,l)}}
        $$

        Args:
            data (*np.ndarray or pd.DataFrame*): Relative prices, `n_assets x n_periods` for arrays.
            w (*None or np.ndarray, optional*): Portfolio of the first period. Defaults to the uniform portfolio.

        **Returns:**

        - `OPSAlgorithm`: Weights matrix of shape `n_assets x n_periods`.

        Raises:
            PortfolioError: For any invalid hyperparameter.
            DataError: For malformed data.
            OptimizationError: If an expert's log-optimal problem fails to solve.

        !!! example "Example:"
            ```python
            from opsel.algorithms import BK

            model = BK(K=2, L=2, c=0.1).optimize(rel_price)
            model.b.sum(axis=0)  # all ones
            ```
        """
        self._check_hyperparameters()
        tickers, rel_price = extract_matrix(data)
        n_assets, n_periods = rel_price.shape
        K, L = self.K, self.L
        logger.info("BK RUN INITIATED")

        b = np.empty((n_assets, n_periods))
        b[:, 0] = initial_weights(w, n_assets)

        # Expert (k, l) sits at column (k-1)*L + (l-1); the unconditional expert is last
        grid = [(k, l) for k in range(1, K + 1) for l in range(1, L + 1)] + [(0, 0)]
        experts = np.ones((n_assets, len(grid))) / n_assets
        wealth = np.ones(len(grid))

        for t in range(n_periods):
            if t > 0:
                history = rel_price[:, :t]
                experts = np.column_stack([self._expert(history, k, l) for k, l in grid])
                b[:, t] = mix_experts(experts, wealth)
                logger.debug(f"BK period {t}: expert wealth {np.round(wealth, 6)}")
            wealth *= rel_price[:, t] @ experts

        return self._finalize(b, "BK", tickers)
