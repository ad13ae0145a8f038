# This script tests the gradient, reversion, trend and pattern matching algorithms

# Importing modules
import logging
import pytest

import numpy as np

from opsel.algorithms import BS, CORNK, CORNU, CRP, CWOGD, KTPT, ONS, RMR, TCO, ExponentialGradient
from opsel.errors import DataError, PortfolioError
from opsel.utils import relative_prices


# Function to simulate prices of 4 assets over 41 periods
@pytest.fixture(scope="module")
def prices():
    rng = np.random.default_rng(2024)
    rel = 1 + 0.02 * rng.standard_normal((4, 40))
    return 50 * np.hstack([np.ones((4, 1)), np.cumprod(rel, axis=1)])


@pytest.fixture(scope="module")
def rel_price(prices):
    return relative_prices(prices)


# Function to assert the simplex invariant on every column
def assert_simplex(b):
    assert not np.isnan(b).any()
    assert (b >= -1e-9).all()
    np.testing.assert_allclose(b.sum(axis=0), 1.0)


# ---------- GRADIENT ----------

def test_cwogd_runs_over_every_period(rel_price):
    result = CWOGD(gamma=0.1, H=0.5).optimize(rel_price)
    assert result.b.shape == rel_price.shape
    assert_simplex(result.b)


def test_cwogd_identity_opinions_match_the_default(rel_price):
    default = CWOGD().optimize(rel_price)
    explicit = CWOGD(expert_opinions=np.eye(4)).optimize(rel_price)
    np.testing.assert_allclose(default.b, explicit.b)


def test_cwogd_follows_the_winning_expert():
    # Asset 0 doubles every period, so its expert takes over the mixture
    rel = np.vstack([np.full(10, 2.0), np.full(10, 0.5)])
    result = CWOGD(gamma=0.0, H=0.5).optimize(rel)
    assert result.b[0, -1] > 0.99


@pytest.mark.parametrize(
    "opinions",
    [np.eye(3), np.full((4, 2), 0.25), np.array([[1.0, 0.0], [0.0, 2.0], [0.0, 0.0], [0.0, 0.0]])],
)
def test_cwogd_rejects_malformed_opinions(opinions, rel_price):
    with pytest.raises(PortfolioError):
        CWOGD(expert_opinions=opinions).optimize(rel_price)


def test_ons_weights_lie_on_the_simplex(rel_price):
    result = ONS(beta=1, delta=0.125, eta=0.1).optimize(rel_price)
    assert result.b.shape == rel_price.shape
    assert_simplex(result.b)
    # Mixing with the uniform portfolio keeps every asset held
    assert (result.b[:, 1:] >= 0.1 / 4 - 1e-9).all()


def test_exponential_gradient_favours_the_rising_asset():
    rel = np.vstack([np.full(20, 1.05), np.full(20, 0.95)])
    result = ExponentialGradient(learning_rate=0.5).optimize(rel)
    assert_simplex(result.b)
    assert np.all(np.diff(result.b[0]) > 0)


@pytest.mark.parametrize(
    "alg",
    [
        CWOGD(gamma=1.5),
        CWOGD(H=0),
        ONS(beta=0),
        ONS(delta=0),
        ONS(eta=1.2),
        ExponentialGradient(learning_rate=-0.1),
    ],
)
def test_gradient_algorithms_reject_invalid_hyperparameters(alg, rel_price):
    with pytest.raises(PortfolioError):
        alg.optimize(rel_price)
    assert alg.weights is None


# ---------- REVERSION ----------

def test_rmr_weights_lie_on_the_simplex(prices):
    result = RMR(horizon=10, window=5).optimize(prices)
    assert result.b.shape == (4, 10)
    assert_simplex(result.b)


# Random walks regularly push the reversion step far outside the simplex
@pytest.mark.parametrize("seed", range(10))
def test_rmr_on_random_walks(seed):
    rng = np.random.default_rng(seed)
    walk = 50 * np.cumprod(1 + 0.02 * rng.standard_normal((4, 40)), axis=1)
    result = RMR(horizon=10, window=5).optimize(walk)
    assert_simplex(result.b)


def test_rmr_with_the_smallest_history(prices):
    # horizon + window - 1 periods are enough
    result = RMR(horizon=6, window=3).optimize(prices[:, :8])
    assert result.b.shape == (4, 6)
    with pytest.raises(DataError):
        RMR(horizon=6, window=3).optimize(prices[:, :7])


@pytest.mark.parametrize("variant", ["tco1", "tco2", "TCO2"])
def test_tco_weights_lie_on_the_simplex(variant, rel_price):
    result = TCO(horizon=10, window=5, variant=variant).optimize(rel_price)
    assert result.b.shape == (4, 10)
    assert result.alg == variant.upper()
    assert_simplex(result.b)


def test_tco_high_transaction_rate_does_not_trade(rel_price):
    # A threshold of 10 * gamma swallows any realistic signal
    result = TCO(horizon=5, gamma=1.0, eta=1).optimize(rel_price)
    b_hat = np.full(4, 0.25)
    end = rel_price.shape[1] - 5
    for t in range(1, 5):
        np.testing.assert_allclose(result.b[:, t], b_hat, atol=1e-6)
        x_t = rel_price[:, end + t - 1]
        b_hat = x_t * result.b[:, t] / (x_t @ result.b[:, t])


def test_tco_warns_on_high_transaction_rate(rel_price, caplog):
    with caplog.at_level(logging.WARNING, logger="opsel.algorithms.reversion"):
        TCO(horizon=3, gamma=0.1).optimize(rel_price)
    assert "considered high" in caplog.text


@pytest.mark.parametrize(
    "alg",
    [
        RMR(horizon=0),
        RMR(horizon=5, window=1),
        RMR(horizon=5, epsilon=0),
        TCO(horizon=5, window=1),
        TCO(horizon=5, gamma=0),
        TCO(horizon=5, eta=-1),
        TCO(horizon=5, variant="tco3"),
    ],
)
def test_reversion_algorithms_reject_invalid_hyperparameters(alg, prices):
    with pytest.raises(PortfolioError):
        alg.optimize(prices)
    assert alg.weights is None


def test_tco_rejects_insufficient_data(rel_price):
    with pytest.raises(DataError):
        TCO(horizon=36, window=5).optimize(rel_price)


# ---------- TREND ----------

def test_ktpt_weights_lie_on_the_simplex(prices):
    result = KTPT(horizon=10, window=5).optimize(prices)
    assert result.b.shape == (4, 10)
    assert_simplex(result.b)
    np.testing.assert_allclose(result.b[:, 0], np.full(4, 0.25))


def test_ktpt_accepts_an_initial_forecast(prices):
    result = KTPT(horizon=5, window=3, p_hat=prices[:, 30]).optimize(prices)
    assert_simplex(result.b)


# n_periods - horizon + 1 - 2 * window = 1 is the shortest admissible history
def test_ktpt_with_the_shortest_history(prices):
    result = KTPT(horizon=5, window=2).optimize(prices[:, :9])
    assert result.b.shape == (4, 5)
    assert_simplex(result.b)


@pytest.mark.parametrize(
    "params",
    [
        {"horizon": 5, "window": 1},
        {"horizon": 5, "q": 1},
        {"horizon": 5, "eta": 0},
        {"horizon": 5, "nu": 1.5},
        {"horizon": 5, "alpha": 0},
        {"horizon": 5, "p_hat": np.ones(3)},
    ],
)
def test_ktpt_rejects_invalid_hyperparameters(params, prices):
    alg = KTPT(**params)
    with pytest.raises(PortfolioError):
        alg.optimize(prices)
    assert alg.weights is None


def test_ktpt_rejects_insufficient_data(prices):
    with pytest.raises(DataError):
        KTPT(horizon=5, window=2).optimize(prices[:, :8])


# ---------- PATTERN MATCHING ----------

def test_cornu_weights_lie_on_the_simplex(prices):
    result = CORNU(horizon=8, window=3, rho=0.1).optimize(prices)
    assert result.b.shape == (4, 8)
    assert_simplex(result.b)


def test_cornu_without_matches_is_uniform(prices):
    # No correlation reaches one, so every expert holds the uniform portfolio
    result = CORNU(horizon=4, window=2, rho=1.0).optimize(prices)
    np.testing.assert_allclose(result.b, np.full((4, 4), 0.25), atol=1e-9)


@pytest.mark.parametrize("params", [{"horizon": 0}, {"horizon": 4, "window": 0}, {"horizon": 4, "rho": 1.5}])
def test_cornu_rejects_invalid_hyperparameters(params, prices):
    with pytest.raises(PortfolioError):
        CORNU(**params).optimize(prices)


def test_cornu_rejects_insufficient_data(prices):
    with pytest.raises(DataError):
        CORNU(horizon=38, window=3).optimize(prices)


def test_cornk_weights_lie_on_the_simplex(prices):
    result = CORNK(horizon=6, k=3, window=3, p=4).optimize(prices)
    assert result.b.shape == (4, 6)
    assert result.alg == "CORN-K"
    assert_simplex(result.b)


def test_cornk_starts_from_the_initial_portfolio(prices):
    w = np.array([0.4, 0.3, 0.2, 0.1])
    result = CORNK(horizon=4, k=2, window=2, p=2).optimize(prices, w=w)
    np.testing.assert_allclose(result.b[:, 0], w)
    assert_simplex(result.b)


# k may reach the full grid of window * p experts
def test_cornk_with_every_expert_combined(prices):
    result = CORNK(horizon=4, k=6, window=3, p=2).optimize(prices)
    assert_simplex(result.b)


@pytest.mark.parametrize(
    "params",
    [
        {"horizon": 0},
        {"horizon": 4, "window": 0},
        {"horizon": 4, "p": 1},
        {"horizon": 4, "k": 0},
        {"horizon": 4, "k": 11, "window": 2, "p": 5},
    ],
)
def test_cornk_rejects_invalid_hyperparameters(params, prices):
    alg = CORNK(**params)
    with pytest.raises(PortfolioError):
        alg.optimize(prices)
    assert alg.weights is None


def test_cornk_rejects_insufficient_data(prices):
    with pytest.raises(DataError):
        CORNK(horizon=38, window=3, p=2, k=2).optimize(prices)


# ---------- BENCHMARKS ----------

def test_crp_holds_the_same_portfolio(rel_price):
    w = np.array([0.1, 0.2, 0.3, 0.4])
    result = CRP().optimize(rel_price, w=w)
    assert result.b.shape == rel_price.shape
    np.testing.assert_allclose(result.b, np.tile(w[:, None], (1, rel_price.shape[1])))
    np.testing.assert_allclose(CRP().optimize(rel_price).b, 0.25)


def test_crp_rejects_invalid_portfolios(rel_price):
    alg = CRP()
    with pytest.raises(PortfolioError):
        alg.optimize(rel_price, w=[0.5, 0.5, 0.5, -0.5])
    assert alg.weights is None


def test_bs_picks_the_best_asset_in_hindsight():
    rel = np.array([[1.1, 0.9, 1.0], [1.0, 1.05, 1.02], [0.8, 1.3, 0.9]])
    result = BS().optimize(rel)
    np.testing.assert_array_equal(result.b, [[0, 0, 0], [1, 1, 1], [0, 0, 0]])
    assert result.alg == "BS"


def test_bs_is_the_best_constant_asset(rel_price):
    result = BS().optimize(rel_price)
    assert_simplex(result.b)
    best = np.prod(rel_price, axis=1).argmax()
    np.testing.assert_array_equal(result.b[best], 1.0)


# ---------- VALIDATION ORDER ----------

# Invalid hyperparameters are reported even when the data is also too short
@pytest.mark.parametrize(
    "alg",
    [
        KTPT(horizon=0),
        KTPT(horizon=3, window=1),
        RMR(horizon=3, window=1),
        TCO(horizon=0),
        CORNU(horizon=3, rho=-2),
    ],
)
def test_invalid_hyperparameters_win_over_insufficient_data(alg, prices):
    with pytest.raises(PortfolioError):
        alg.optimize(prices[:, :3])
    assert alg.weights is None
    assert alg.tickers is None
