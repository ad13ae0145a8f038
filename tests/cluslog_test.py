# This script tests the clustering-based log-optimal strategies KMNLOG and KMDLOG

# Importing modules
import pytest

import numpy as np

from opsel.algorithms import ClusLog
from opsel.errors import DataError, PortfolioError


# Function to simulate relative prices of 3 assets over 40 periods
@pytest.fixture(scope="module")
def rel_price():
    rng = np.random.default_rng(12)
    return 1 + 0.02 * rng.standard_normal((3, 40))


@pytest.mark.parametrize("variant", ["kmnlog", "kmdlog"])
def test_cluslog_weights_lie_on_the_simplex(variant, rel_price):
    result = ClusLog(horizon=3, TW=3, variant=variant, nclusters=3, nclustering=5, seed=1).optimize(rel_price)
    assert result.b.shape == (3, 3)
    assert result.alg == variant.upper()
    np.testing.assert_allclose(result.b.sum(axis=0), 1.0)
    assert (result.b >= -1e-9).all()


def test_cluslog_is_reproducible_with_a_seed(rel_price):
    first = ClusLog(horizon=2, nclustering=4, seed=99).optimize(rel_price)
    second = ClusLog(horizon=2, nclustering=4, seed=99).optimize(rel_price)
    np.testing.assert_allclose(first.b, second.b)


def test_cluslog_respects_weight_boundaries(rel_price):
    result = ClusLog(horizon=1, nclustering=4, boundaries=(0.1, 0.6), seed=3).optimize(rel_price)
    assert (result.b <= 0.6 + 1e-6).all()
    assert (result.b >= 0.1 - 1e-6).all()


# A constant market has no defined correlations, so every window falls back
def test_cluslog_constant_market_falls_back_to_uniform():
    result = ClusLog(horizon=3, TW=3, nclusters=3, nclustering=3, seed=0).optimize(np.ones((3, 20)))
    np.testing.assert_allclose(result.b, np.full((3, 3), 1 / 3))


def test_cluslog_fallback_carries_initial_weights():
    w = np.array([0.2, 0.3, 0.5])
    result = ClusLog(horizon=3, nclustering=3, seed=0).optimize(np.ones((3, 20)), w=w)
    np.testing.assert_allclose(result.b, np.column_stack([w, w, w]))


@pytest.mark.parametrize(
    "params",
    [
        {"horizon": 0},
        {"horizon": 2, "TW": 1},
        {"horizon": 2, "nclusters": 1},
        {"horizon": 2, "nclustering": 0},
        {"horizon": 2, "variant": "hierarchical"},
        {"horizon": 2, "boundaries": (0.6, 0.4)},
        {"horizon": 2, "boundaries": (0.4, 1.0)},
        {"horizon": 2, "boundaries": (0.0, 1.5)},
        {"horizon": 2, "seed": 1.5},
    ],
)
def test_cluslog_rejects_invalid_hyperparameters(params, rel_price):
    alg = ClusLog(**params)
    with pytest.raises(PortfolioError):
        alg.optimize(rel_price)
    assert alg.weights is None


@pytest.mark.parametrize(
    "params",
    [
        {"horizon": 40},
        {"horizon": 35, "TW": 6},
        {"horizon": 36, "nclusters": 5},
    ],
)
def test_cluslog_rejects_insufficient_data(params, rel_price):
    with pytest.raises(DataError):
        ClusLog(**params).optimize(rel_price)


def test_cluslog_validates_before_checking_data_size():
    alg = ClusLog(horizon=0)
    with pytest.raises(PortfolioError):
        alg.optimize(np.ones((3, 3)))
    assert alg.weights is None


# Function to replace the window search with fixed proposals per window length
def fixed_proposals(proposals):
    def window_portfolio(self, variant, history, tw, seed):
        return proposals.get(tw)
    return window_portfolio


def test_cluslog_invests_in_the_longest_window_proposal(monkeypatch, rel_price):
    monkeypatch.setattr(
        ClusLog,
        "_window_portfolio",
        fixed_proposals({2: np.array([1.0, 0.0, 0.0]), 3: np.array([0.0, 1.0, 0.0])}),
    )
    result = ClusLog(horizon=3, TW=3, seed=0).optimize(rel_price)
    np.testing.assert_allclose(result.b, np.tile([[0.0], [1.0], [0.0]], (1, 3)))


def test_cluslog_falls_back_when_the_longest_window_finds_nothing(monkeypatch, rel_price):
    monkeypatch.setattr(ClusLog, "_window_portfolio", fixed_proposals({2: np.array([1.0, 0.0, 0.0])}))
    w = np.array([0.2, 0.3, 0.5])
    result = ClusLog(horizon=2, TW=3, seed=0).optimize(rel_price, w=w)
    np.testing.assert_allclose(result.b[:, 0], w)
    drifted = w * rel_price[:, -1] / (w @ rel_price[:, -1])
    np.testing.assert_allclose(result.b[:, 1], drifted)
