import numpy as np
import pandas as pd

from opsel.errors import DataError, PortfolioError


def extract_matrix(data):
    # Returns (tickers, matrix) with the matrix laid out as n_assets x n_periods
    # DataFrames arrive as dates x tickers and are transposed
    if data is None:
        raise DataError("Data not specified")
    if isinstance(data, pd.DataFrame):
        tickers = [str(c) for c in data.columns]
        matrix = data.to_numpy(dtype=float).T
    else:
        matrix = np.array(data, dtype=float)
        if matrix.ndim != 2:
            raise DataError(f"Expected a 2-dimensional matrix, Got {matrix.ndim} dimension(s)")
        tickers = [f"asset_{i}" for i in range(matrix.shape[0])]
    if matrix.shape[0] == 0 or matrix.shape[1] == 0:
        raise DataError(f"Empty data matrix of shape {matrix.shape}")
    if not np.all(np.isfinite(matrix)):
        raise DataError("Data contains NaN or infinite values")
    if (matrix <= 0).any():
        raise DataError("Prices and relative prices must be strictly positive")
    return tickers, matrix


def relative_prices(prices):
    """
    Converts a price history into relative prices, `x_t = p_t / p_{t-1}`.

    DataFrames are returned as DataFrames (one row fewer), arrays laid out as
    `n_assets x n_periods` are returned as arrays with one column fewer.
    """
    if isinstance(prices, pd.DataFrame):
        return (prices.pct_change(fill_method=None) + 1).iloc[1:]
    _, matrix = extract_matrix(prices)
    if matrix.shape[1] < 2:
        raise DataError(f"At least 2 periods are needed for relative prices, Got {matrix.shape[1]}")
    return matrix[:, 1:] / matrix[:, :-1]


def initial_weights(w, n_assets):
    if w is None:
        return np.ones(n_assets) / n_assets
    w = np.array(w, dtype=float).ravel()
    if len(w) != n_assets:
        raise PortfolioError(f"Initial weight vector shape mismatch. Expected {n_assets}, Got {len(w)}")
    if (w < 0).any():
        raise PortfolioError(f"Initial weights must be non-negative, Got {w}")
    if not np.isclose(w.sum(), 1.0):
        raise PortfolioError(f"Initial weights must sum to 1, Got {w.sum()}")
    return w


def check_integer(name, value, lower, inclusive=True):
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise PortfolioError(f"Invalid {name}. Expected integer, Got {value!r}")
    if value < lower or (not inclusive and value == lower):
        bound = ">=" if inclusive else ">"
        raise PortfolioError(f"Invalid {name}. Expected {name} {bound} {lower}, Got {value}")


def check_interval(name, value, low, high, closed=(True, True)):
    # closed[0] and closed[1] mark whether the low and high ends are included
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise PortfolioError(f"Invalid {name}. Expected real number, Got {value!r}")
    low_ok = value >= low if closed[0] else value > low
    high_ok = value <= high if closed[1] else value < high
    if not (low_ok and high_ok):
        left = "[" if closed[0] else "("
        right = "]" if closed[1] else ")"
        raise PortfolioError(f"Invalid {name}. Must be bounded within {left}{low},{high}{right}, Got {value}")


def find_variant(variant, mapping, name="variant"):
    key = str(variant).lower() if variant is not None else variant
    if key in mapping:
        return key, mapping[key]
    raise PortfolioError(f"Unknown {name}: {variant}")


def positify(weights):
    weights = np.array(weights, dtype=float)
    weights[weights < 0] = 0.0
    return weights


def normalize(weights):
    """
    Divides every column by its sum. Columns summing to zero are replaced by
    the uniform column.
    """
    weights = np.array(weights, dtype=float)
    column = weights.ndim == 1
    if column:
        weights = weights[:, None]
    totals = weights.sum(axis=0)
    degenerate = totals <= 0
    weights[:, degenerate] = 1.0 / weights.shape[0]
    totals[degenerate] = 1.0
    weights = weights / totals
    return weights[:, 0] if column else weights


def repair(weights):
    """
    Restores the simplex invariant on a weights matrix (or a single column).

    Negative entries are zeroed and each column is renormalized. The pass is
    only taken when at least one entry is negative; otherwise the input is
    returned untouched.
    """
    weights = np.asarray(weights, dtype=float)
    if (weights < 0).any():
        return normalize(positify(weights))
    return weights


def adjust_weights(prev_weights, rel_price):
    # Drift of a portfolio after one period of relative prices
    drifted = prev_weights * rel_price
    return drifted / drifted.sum()
