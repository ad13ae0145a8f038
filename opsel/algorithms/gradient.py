"""
Gradient-based online portfolio selection represents the online learning view of
investing: after each period the strategy observes the realized relative prices, evaluates
a loss (or reward) on them, and moves its portfolio along the gradient before pulling it
back onto the simplex. These algorithms make no statistical assumptions about returns and
compete with the best fixed strategy in hindsight.

---
"""

import logging

import numpy as np

from opsel.algorithms.base_optimizer import OnlineAlgorithm
from opsel.errors import PortfolioError
from opsel.solvers import project_simplex
from opsel.utils import (
    check_integer,
    check_interval,
    extract_matrix,
    initial_weights,
    normalize,
    positify,
)

logger = logging.getLogger(__name__)

# Small epsilon value for numerical stability
EPSILON = 1e-8


class CWOGD(OnlineAlgorithm):
    """
    Combination of expert weights via online gradient descent (CW-OGD).

    Each expert holds a fixed opinion: a portfolio fully invested in one asset. The algorithm
    maintains a mixture over experts, evaluates each expert's regularized log-loss on the last
    relative prices, takes a gradient step of size `1/H` on the mixture, projects it onto the
    simplex and invests in the mixture of the experts' opinions.
    """

    def __init__(self, gamma=0.1, H=0.5, expert_opinions=None):
        """
        Args:
            gamma (*float, optional*): Regularization coefficient of the experts' loss, bounded within [0,1]. Defaults to `0.1`.
            H (*float, optional*): Step size constant, the step is `1/H`. Must be positive. Defaults to `0.5`.
            expert_opinions (*np.ndarray or None, optional*): Matrix of expert opinions, `n_assets x n_experts`, with exactly
            one entry equal to `1` per column. `None` uses the identity (one expert per asset). Defaults to `None`.
        """
        self.identity = "cwogd"
        self.gamma = gamma
        self.H = H
        self.expert_opinions = expert_opinions

        self.tickers = None
        self.weights = None

    def _check_opinions(self, n_assets):
        if self.expert_opinions is None:
            return np.eye(n_assets)
        opinions = np.array(self.expert_opinions, dtype=float)
        if opinions.ndim != 2 or opinions.shape[0] != n_assets:
            raise PortfolioError(f"Invalid expert opinions. Expected {n_assets} rows, Got shape {opinions.shape}")
        if not ((opinions > 0).sum(axis=0) == 1).all():
            raise PortfolioError("Invalid expert opinions. Each column must hold exactly one positive entry")
        if not np.allclose(opinions.sum(axis=0), 1.0):
            raise PortfolioError("Invalid expert opinions. Each column must sum to 1")
        return opinions

    def optimize(self, data=None, w=None):
        """
        Runs CW-OGD over the whole relative price history.

        $$
        \\ell_j = -\\log\\left(\\mathbf{x}_{t-1}^\\top \\mathbf{b}^{(j)}\\right) + \\gamma \\lVert \\mathbf{b}^{(j)} \\rVert^2,
        \\quad \\mathbf{v}_t = \\Pi_{\\Delta}\\left(\\mathbf{v}_{t-1} - \\tfrac{1}{H} \\boldsymbol{\\ell}\\right),
        \\quad \\mathbf{b}_t = \\mathbf{B} \\mathbf{v}_t
        $$

        Args:
            data (*np.ndarray or pd.DataFrame*): Relative prices, `n_assets x n_periods` for arrays.
            w (*None or np.ndarray, optional*): Portfolio of the first period. Defaults to the uniform portfolio.

        **Returns:**

        - `OPSAlgorithm`: Weights matrix of shape `n_assets x n_periods`.

        Raises:
            PortfolioError: For any invalid hyperparameter or expert opinion matrix.
            DataError: For malformed data.
            OptimizationError: If the simplex projection fails.
        """
        check_interval("gamma", self.gamma, 0, 1)
        check_interval("H", self.H, 0, np.inf, closed=(False, False))
        tickers, rel_price = extract_matrix(data)
        n_assets, n_periods = rel_price.shape
        opinions = self._check_opinions(n_assets)
        logger.info("CW-OGD RUN INITIATED")

        eta = 1 / self.H
        n_experts = opinions.shape[1]
        mixture = np.ones(n_experts) / n_experts
        penalty = self.gamma * np.sum(opinions**2, axis=0)

        b = np.empty((n_assets, n_periods))
        b[:, 0] = initial_weights(w, n_assets)
        for t in range(1, n_periods):
            losses = -np.log(rel_price[:, t - 1] @ opinions) + penalty
            mixture = project_simplex(mixture - eta * losses)
            b[:, t] = normalize(positify(opinions @ mixture))

        return self._finalize(b, "CW-OGD", tickers)


class ONS(OnlineAlgorithm):
    """
    Online Newton Step (ONS).

    Introduced by Agarwal, Hazan, Kale and Schapire, ONS applies a second order update to the
    log-wealth objective: the accumulated outer products of past gradients act as a Hessian
    estimate, and the Newton-like step is projected back onto the simplex in the norm that
    estimate induces.
    """

    def __init__(self, beta=1, delta=1 / 8, eta=0.0):
        """
        Args:
            beta (*int, optional*): Trade-off parameter, must be a positive integer. Defaults to `1`.
            delta (*float, optional*): Heuristic tuning parameter, bounded within (0,1]. Defaults to `1/8`.
            eta (*float, optional*): Mixing weight of the uniform portfolio, bounded within [0,1]. Defaults to `0`.
        """
        self.identity = "ons"
        self.beta = beta
        self.delta = delta
        self.eta = eta

        self.tickers = None
        self.weights = None

    def optimize(self, data=None, w=None):
        """
        Runs ONS over the whole relative price history.

        $$
        \\mathbf{A}_{t} = \\mathbf{I} + \\sum_{\\tau < t} \\nabla_\\tau \\nabla_\\tau^\\top,
        \\quad \\mathbf{b}_{t} = \\left(1 + \\tfrac{1}{\\beta}\\right) \\sum_{\\tau < t} \\nabla_\\tau,
        \\quad \\mathbf{p}_t = \\Pi^{\\mathbf{A}_t}_{\\Delta}\\left(\\delta \\mathbf{A}_t^{-1} \\mathbf{b}_t\\right)
        $$

        with $\\nabla_\\tau = \\mathbf{x}_\\tau / (\\mathbf{p}_\\tau^\\top \\mathbf{x}_\\tau)$. The invested portfolio is
        $(1 - \\eta) \\mathbf{p}_t + \\eta / n$.

        Args:
            data (*np.ndarray or pd.DataFrame*): Relative prices, `n_assets x n_periods` for arrays.
            w (*None or np.ndarray, optional*): Portfolio of the first period. Defaults to the uniform portfolio.

        **Returns:**

        - `OPSAlgorithm`: Weights matrix of shape `n_assets x n_periods`.

        Raises:
            PortfolioError: For any invalid hyperparameter.
            DataError: For malformed data.
            OptimizationError: If the projection fails.
        """
        check_integer("beta", self.beta, 0, inclusive=False)
        check_interval("delta", self.delta, 0, 1, closed=(False, True))
        check_interval("eta", self.eta, 0, 1)
        tickers, rel_price = extract_matrix(data)
        n_assets, n_periods = rel_price.shape
        logger.info("ONS RUN INITIATED")

        p = np.empty((n_assets, n_periods))
        p[:, 0] = initial_weights(w, n_assets)
        A = np.eye(n_assets)
        grad_sum = np.zeros(n_assets)
        for t in range(1, n_periods):
            x = rel_price[:, t - 1]
            grad = x / max(p[:, t - 1] @ x, EPSILON)
            A += np.outer(grad, grad)
            grad_sum += grad
            target = self.delta * np.linalg.solve(A, (1 + 1 / self.beta) * grad_sum)
            p_t = project_simplex(target, metric=A)
            p[:, t] = (1 - self.eta) * p_t + self.eta / n_assets

        return self._finalize(p, "ONS", tickers)


class ExponentialGradient(OnlineAlgorithm):
    """
    Exponential Gradient (EG) optimizer for online portfolio selection.

    The Exponential Gradient algorithm is a foundational online learning algorithm
    that updates portfolio weights using multiplicative updates proportional to exponential returns.
    Introduced by Helmbold et. al, it belongs to the family of online convex optimization algorithms
    and maintains weights that rise exponentially with cumulative performance.
    """

    def __init__(self, learning_rate=0.05):
        """
        Args:
            learning_rate (*float, optional*): Learning rate for the EG algorithm. Must be positive. Defaults to `0.05`.
        """
        self.identity = "expgrad"
        self.learning_rate = learning_rate

        self.tickers = None
        self.weights = None

    def optimize(self, data=None, w=None):
        """
        Performs the Exponential Gradient weight update rule over the whole relative price history.

        $$
        \\mathbf{w}_{i,t+1} = \\mathbf{w}_{i,t} \\cdot \\exp\\left(\\eta \\cdot \\frac{x_{i,t}}{\\mathbf{w}_t^\\top \\mathbf{x}_t}\\right)
        $$

        Args:
            data (*np.ndarray or pd.DataFrame*): Relative prices, `n_assets x n_periods` for arrays.
            w (*None or np.ndarray, optional*): Portfolio of the first period. Defaults to the uniform portfolio.

        **Returns:**

        - `OPSAlgorithm`: Weights matrix of shape `n_assets x n_periods`.

        Raises:
            PortfolioError: For any invalid hyperparameter.
            DataError: For malformed data.
        """
        check_interval("learning_rate", self.learning_rate, 0, np.inf, closed=(False, False))
        tickers, rel_price = extract_matrix(data)
        n_assets, n_periods = rel_price.shape
        logger.info("EXPONENTIAL GRADIENT RUN INITIATED")

        b = np.empty((n_assets, n_periods))
        b[:, 0] = initial_weights(w, n_assets)
        for t in range(1, n_periods):
            x = rel_price[:, t - 1]
            portfolio_return = max(b[:, t - 1] @ x, EPSILON)

            # We apply the log-sum-exp technique with subtracting the maximum to improve numerical stability
            # Weights are shift-invariant since they are exponentiated
            log_w = np.log(b[:, t - 1] + EPSILON) + self.learning_rate * x / portfolio_return
            log_w -= log_w.max()
            new_weights = np.exp(log_w)
            b[:, t] = new_weights / new_weights.sum()

        return self._finalize(b, "EG", tickers)
