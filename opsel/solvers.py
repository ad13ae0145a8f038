"""
Constrained solvers shared by the online algorithms.

Both entry points are stateless. The Euclidean projection is exact; every other
problem goes through `scipy.optimize.minimize` with the `SLSQP` method. Each call
only sees what the caller passes in, so they are safe to invoke for distinct
experts or windows independently.

- `project_simplex` finds the closest point of the probability simplex to a target
  vector, optionally in the norm induced by a positive definite matrix.
- `log_optimal` maximizes a weighted log-utility over a set of relative price
  observations subject to box bounds and the budget constraint.

A solver that fails to converge raises `OptimizationError`. Callers decide on
fallbacks before calling, never after.
"""

import logging

import numpy as np
from scipy.optimize import minimize

from opsel.errors import OptimizationError

logger = logging.getLogger(__name__)

# Small epsilon value for numerical stability
EPSILON = 1e-12

# SLSQP settings
SOLVER_TOLERANCE = 1e-9
SOLVER_MAX_ITER = 500

_BUDGET = {
    "type": "eq",
    "fun": lambda w: w.sum() - 1.0,
    "jac": lambda w: np.ones_like(w),
}


def _on_simplex(w, atol=1e-12):
    return (w >= 0).all() and abs(w.sum() - 1.0) <= atol


def _euclidean_projection(target):
    # Sort-based projection (Duchi et al., 2008)
    u = np.sort(target)[::-1]
    cssv = np.cumsum(u)
    rho = np.nonzero(u * np.arange(1, len(u) + 1) > (cssv - 1))[0][-1]
    theta = (cssv[rho] - 1) / (rho + 1.0)
    return np.maximum(target - theta, 0)


def project_simplex(target, metric=None):
    """
    Projects `target` onto `{w >= 0, sum(w) = 1}`.

    $$
    \\min_{\\mathbf{w}} \\ (\\mathbf{w} - \\mathbf{y})^\\top \\mathbf{A} (\\mathbf{w} - \\mathbf{y})
    $$

    The Euclidean case (`metric=None`) is solved exactly by sorting. A general
    norm is solved with `SLSQP`, started from the Euclidean projection.

    Args:
        target (*np.ndarray*): Vector to be projected.
        metric (*np.ndarray or None, optional*): Positive definite matrix `A` defining the norm. `None` means the identity (Euclidean projection).

    **Returns:**

    - `np.ndarray`: Projected vector.

    Raises:
        OptimizationError: If the target is not finite or `SLSQP` fails to converge.
    """
    target = np.asarray(target, dtype=float)
    if not np.all(np.isfinite(target)):
        logger.error("SIMPLEX PROJECTION FAILED")
        raise OptimizationError(f"Simplex projection failed: target is not finite, Got {target}")
    if metric is None:
        if _on_simplex(target):
            return target.copy()
        return _euclidean_projection(target)
    A = np.asarray(metric, dtype=float)

    def f(w):
        d = w - target
        return d @ A @ d

    def grad(w):
        return (A + A.T) @ (w - target)

    result = minimize(
        f,
        _euclidean_projection(target),
        jac=grad,
        method="SLSQP",
        bounds=[(0, 1)] * len(target),
        constraints=[_BUDGET],
        options={"ftol": SOLVER_TOLERANCE, "maxiter": SOLVER_MAX_ITER},
    )
    if result.success:
        return result.x
    logger.error("SIMPLEX PROJECTION FAILED")
    raise OptimizationError(f"Simplex projection failed: {result.message}")


def log_optimal(support, coefficients=None, bounds=(0, 1)):
    """
    Solves the weighted log-utility problem

    $$
    \\max_{\\mathbf{w}} \\ \\sum_i c_i \\log \\left(\\mathbf{w}^\\top \\mathbf{x}_i\\right)
    \\quad \\text{s.t.} \\quad lb \\le w_j \\le ub, \\ \\sum_j w_j = 1
    $$

    Args:
        support (*np.ndarray*): Relative prices of shape `n_assets x m`, one column per observation.
        coefficients (*np.ndarray or None, optional*): Weight of each observation. `None` weights every observation equally. Defaults to `None`.
        bounds (*tuple, optional*): Per-asset weight bounds `(lb, ub)`. Defaults to `(0, 1)`.

    **Returns:**

    - `np.ndarray`: Vector of optimal weights.

    Raises:
        OptimizationError: If `SLSQP` fails to converge.
    """
    support = np.asarray(support, dtype=float)
    n_assets, m = support.shape
    coefficients = np.ones(m) if coefficients is None else np.asarray(coefficients, dtype=float)
    lb, ub = bounds

    def f(w):
        growth = np.maximum(w @ support, EPSILON)
        return -coefficients @ np.log(growth)

    def grad(w):
        growth = np.maximum(w @ support, EPSILON)
        return -support @ (coefficients / growth)

    # Uniform start, pulled inside the box when the box excludes it
    w0 = np.clip(np.ones(n_assets) / n_assets, lb, ub)
    result = minimize(
        f,
        w0,
        jac=grad,
        method="SLSQP",
        bounds=[(lb, ub)] * n_assets,
        constraints=[_BUDGET],
        options={"ftol": SOLVER_TOLERANCE, "maxiter": SOLVER_MAX_ITER},
    )
    if result.success:
        return result.x
    logger.error("LOG-UTILITY OPTIMIZATION FAILED")
    raise OptimizationError(f"Log-utility optimization failed: {result.message}")
