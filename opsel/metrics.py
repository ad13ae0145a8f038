"""
Performance of a weight trajectory against the relative prices it was invested in.

The weights matrix must satisfy the simplex invariant; every algorithm in
`opsel.algorithms` guarantees it on the matrices it returns.
"""

import numpy as np

from opsel.errors import DataError


def _check_inputs(weights, rel_price):
    weights = np.asarray(weights, dtype=float)
    rel_price = np.asarray(rel_price, dtype=float)
    if weights.ndim != 2 or rel_price.ndim != 2:
        raise DataError("Weights and relative prices must be 2-dimensional matrices")
    if weights.shape[0] != rel_price.shape[0]:
        raise DataError(f"Asset count mismatch. Weights have {weights.shape[0]}, relative prices have {rel_price.shape[0]}")
    if weights.shape[1] > rel_price.shape[1]:
        raise DataError(
            f"More weight columns ({weights.shape[1]}) than relative price periods ({rel_price.shape[1]})"
        )
    if (weights < -1e-9).any() or not np.allclose(weights.sum(axis=0), 1.0, atol=1e-6):
        raise DataError("Weights must be non-negative and every column must sum to 1")
    # The weights cover the last periods of the relative prices
    return weights, rel_price[:, rel_price.shape[1] - weights.shape[1]:]


def turnover(weights, rel_price):
    """
    Fraction of wealth traded at each period.

    Period `t` compares the new portfolio with the previous portfolio after it
    drifted with the market. The first period has no turnover.

    **Returns:**

    - `np.ndarray`: One value per period.
    """
    weights, rel_price = _check_inputs(weights, rel_price)
    traded = np.zeros(weights.shape[1])
    # Loop range is from 1 to horizon. Rebalancing happens from t=1
    for t in range(1, weights.shape[1]):
        w_realized = weights[:, t - 1] * rel_price[:, t - 1]
        w_realized /= w_realized.sum()
        traded[t] = np.sum(np.abs(weights[:, t] - w_realized))
    return traded


def metrics(weights, rel_price, rf=0.02, dpy=252, cost=None):
    """
    Computes performance metrics of a weight trajectory.

    Args:
        weights (*np.ndarray*): Weights matrix, `n_assets x horizon`.
        rel_price (*np.ndarray*): Relative prices, `n_assets x n_periods` with `n_periods >= horizon`. Only the last `horizon` periods are used.
        rf (*float, optional*): Annual risk-free rate. Defaults to `0.02`.
        dpy (*int, optional*): Trading periods per year. Defaults to `252`.
        cost (*float or None, optional*): Constant transaction cost in basis points, charged on turnover. Defaults to `None`.

    **Returns:**

    - A `dict` containing the following keys:
        - `'Sn'` (*np.ndarray*): Cumulative wealth after each period, starting from 1.
        - `'final_wealth'` (*float*): Wealth after the last period.
        - `'apy'` (*float*): Annual percentage yield.
        - `'ann_std'` (*float*): Annualized standard deviation of period returns.
        - `'ann_sharpe'` (*float*): Annualized Sharpe ratio.
        - `'mdd'` (*float*): Maximum drawdown.
        - `'calmar'` (*float*): Calmar ratio.

    Raises:
        DataError: For mismatched shapes or weights violating the simplex invariant.
    """
    weights, rel_price = _check_inputs(weights, rel_price)
    period_returns = np.einsum("ij,ij->j", weights, rel_price) - 1
    if cost is not None:
        period_returns -= turnover(weights, rel_price) * cost / 10000

    # Caching repeated values
    Sn = np.cumprod(1 + period_returns)
    T = len(period_returns)
    vol = period_returns.std()

    APY = Sn[-1] ** (dpy / T) - 1
    ANN_STD = vol * np.sqrt(dpy)
    SHARPE = (APY - rf) / ANN_STD if ANN_STD > 0 else np.nan
    MDD = np.max(1 - Sn / np.maximum.accumulate(np.maximum(Sn, 1.0)))
    CALMAR = APY / MDD if MDD > 0 else np.nan

    return {
        "Sn": Sn,
        "final_wealth": Sn[-1],
        "apy": APY,
        "ann_std": ANN_STD,
        "ann_sharpe": SHARPE,
        "mdd": MDD,
        "calmar": CALMAR,
    }
