"""
Price and relative price estimators used by the reversion and trend following
algorithms.

- Robust median reversion: the L1-median (geometric median) of a window of
  price vectors, computed with a modified Weiszfeld iteration.
- Transaction cost optimization: the last observed relative price, or the
  relative price implied by a simple moving average of prices.
- Kernel trend pursuit tracking: a peak price predictor, an elastic-net
  regression predictor, a turning point signal and the kernel correction of
  the portfolio.
"""

import numpy as np
from sklearn.linear_model import ElasticNet

from opsel.errors import DataError

# Small epsilon value for numerical stability
EPSILON = 1e-12


# ---------- ROBUST MEDIAN REVERSION ----------

def _weiszfeld_step(mu, points):
    # One step of the modified Weiszfeld iteration (Vardi & Zhang)
    # `points` holds one price vector per column
    diffs = points - mu[:, None]
    dists = np.linalg.norm(diffs, axis=0)
    others = dists > EPSILON
    if not others.any():
        return mu.copy()
    eta = 1.0 if (~others).any() else 0.0
    inv = 1.0 / dists[others]
    t_tilde = (points[:, others] @ inv) / inv.sum()
    r_tilde = diffs[:, others] @ inv
    gamma = np.linalg.norm(r_tilde)
    if gamma <= EPSILON:
        return mu.copy()
    return max(0.0, 1 - eta / gamma) * t_tilde + min(1.0, eta / gamma) * mu


def l1_median(points, max_iter, tol):
    """
    L1-median of the columns of `points`.

    Starts from the coordinate-wise median and iterates until the relative L1
    change falls below `tol` or `max_iter` estimates have been produced. When
    the estimate coincides with an observed point, the update is blended toward
    that point with weight `min(1, eta / gamma)`.
    """
    points = np.asarray(points, dtype=float)
    mu = np.median(points, axis=1)
    for _ in range(1, max_iter):
        new_mu = _weiszfeld_step(mu, points)
        converged = np.abs(mu - new_mu).sum() <= tol * np.abs(new_mu).sum()
        mu = new_mu
        if converged:
            break
    return mu


def median_relative(prices, max_iter, tol):
    # Predicted relative price: L1-median of the window over the last price
    prices = np.asarray(prices, dtype=float)
    return l1_median(prices, max_iter, tol) / prices[:, -1]


# ---------- TRANSACTION COST OPTIMIZATION ----------

def last_relative(rel_price):
    return np.asarray(rel_price, dtype=float)[:, -1].copy()


def sma_relative(rel_price):
    """
    Relative price implied by the simple moving average of prices over the
    window, expressed against the latest price.

    $$
    \\hat{\\mathbf{x}}_{t+1} = \\frac{1}{w} \\sum_{i=0}^{w-1} \\prod_{j=0}^{i-1} \\frac{1}{\\mathbf{x}_{t-j}}
    $$
    """
    rel_price = np.asarray(rel_price, dtype=float)
    w = rel_price.shape[1]
    # Price of each past day relative to today, newest first
    backwards = np.cumprod(1.0 / rel_price[:, ::-1], axis=1)
    history = np.hstack([np.ones((rel_price.shape[0], 1)), backwards[:, : w - 1]])
    return history.mean(axis=1)


# ---------- KERNEL TREND PURSUIT TRACKING ----------

def peak_price(prices):
    # Highest price of each asset over the window
    return np.asarray(prices, dtype=float).max(axis=1)


def regression_price(target, prices, alpha=0.01, l1_ratio=0.99):
    """
    Regresses `target` (one value per asset) on the price window (one regressor
    per period) with an elastic-net penalty and returns the fitted values.

    Args:
        target (*np.ndarray*): Target prices, one per asset.
        prices (*np.ndarray*): Price window, `n_assets x w`.
        alpha (*float, optional*): Penalty strength. Defaults to `0.01`.
        l1_ratio (*float, optional*): Share of the L1 penalty. Defaults to `0.99`.

    **Returns:**

    - `np.ndarray`: Fitted prices, one per asset.
    """
    prices = np.asarray(prices, dtype=float)
    model = ElasticNet(alpha=alpha, l1_ratio=l1_ratio, fit_intercept=False, max_iter=10000)
    model.fit(prices, np.asarray(target, dtype=float))
    return prices @ model.coef_


def trend_signal(prices, t, w):
    """
    Share of turning points among the last `2w - 1` periods up to column `t`.

    A turning point of asset `i` at period `j` is `(p_j - p_{j-1}) (p_{j-2} - p_{j-1}) > 0`,
    a local peak or trough. Near the start of the history the comparisons are
    clipped to the periods available.

    **Returns:**

    - `float`: Signal within `[0, 1]`.
    """
    prices = np.asarray(prices, dtype=float)
    first = max(2, t - 2 * w + 2)
    if t < first:
        raise DataError(f"Turning point signal needs at least 3 periods, Got {t + 1}")
    cols = np.arange(first, t + 1)
    turning = (prices[:, cols] - prices[:, cols - 1]) * (prices[:, cols - 2] - prices[:, cols - 1]) > 0
    return float(turning.mean())


def blend_prediction(signal, rel_price, peak, fitted):
    # Per-asset confidence in the peak predictor, capped at one
    confidence = np.minimum(signal / (2 * np.asarray(rel_price, dtype=float)), 1.0)
    return confidence * peak + (1 - confidence) * fitted


def kernel_correction(weights, rel_price_hat, q, eta):
    """
    Kernel step of KTPT before projection.

    $$
    \\mathbf{b} = \\hat{\\mathbf{b}}_t + \\eta \\, \\hat{\\mathbf{K}}_t \\tilde{\\mathbf{x}}_{t+1},
    \\quad \\hat{\\mathbf{K}}_t = \\operatorname{diag}\\left(e^{-\\lvert \\tilde{b}_i - \\tilde{x}_i \\rvert^{1/q}}\\right)
    $$

    where tildes denote the centered vectors. A flat prediction leaves the
    weights unchanged.
    """
    weights = np.asarray(weights, dtype=float)
    x_tilde = rel_price_hat - rel_price_hat.mean()
    if np.linalg.norm(x_tilde) == 0:
        return weights.copy()
    b_tilde = weights - weights.mean()
    kernel = np.exp(-np.abs(b_tilde - x_tilde) ** (1 / q))
    return weights + eta * kernel * x_tilde
