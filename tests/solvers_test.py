# This script tests the constrained projection and log-utility solvers

# Importing modules
import pytest

import numpy as np

from opsel.errors import OptimizationError
from opsel.solvers import log_optimal, project_simplex


# ---------- PROJECTION ----------

@pytest.mark.parametrize(
    "target, expected",
    [
        ([0.5, 0.5, 0.5], [1 / 3, 1 / 3, 1 / 3]),
        ([2.0, 0.0, 0.0], [1.0, 0.0, 0.0]),
        ([0.8, 0.6, -1.0], [0.6, 0.4, 0.0]),
        ([-1.0, -1.0], [0.5, 0.5]),
    ],
)
def test_project_simplex_matches_known_projections(target, expected):
    projected = project_simplex(np.array(target))
    np.testing.assert_allclose(projected, expected, atol=1e-5)
    assert np.isclose(projected.sum(), 1.0)
    assert (projected >= -1e-10).all()


def test_project_simplex_returns_points_already_on_simplex():
    point = np.array([0.2, 0.3, 0.5])
    projected = project_simplex(point)
    np.testing.assert_array_equal(projected, point)
    assert projected is not point


def test_project_simplex_with_scaled_identity_metric():
    target = np.array([0.9, 0.4, 0.1])
    np.testing.assert_allclose(
        project_simplex(target, metric=2 * np.eye(3)),
        project_simplex(target),
        atol=1e-5,
    )


# ---------- LOG-UTILITY ----------

def test_log_optimal_picks_dominant_asset():
    support = np.array([[1.1, 1.2], [0.9, 0.95]])
    np.testing.assert_allclose(log_optimal(support), [1.0, 0.0], atol=1e-5)


def test_log_optimal_respects_bounds():
    support = np.array([[1.1, 1.2], [0.9, 0.95]])
    np.testing.assert_allclose(log_optimal(support, bounds=(0.2, 0.8)), [0.8, 0.2], atol=1e-5)


def test_log_optimal_symmetric_market_is_uniform():
    support = np.array([[1.1, 0.9], [0.9, 1.1]])
    np.testing.assert_allclose(log_optimal(support), [0.5, 0.5], atol=1e-5)


def test_log_optimal_coefficients_shift_the_optimum():
    support = np.array([[1.1, 0.9], [0.9, 1.1]])
    weighted = log_optimal(support, coefficients=np.array([1.0, 0.2]))
    assert weighted[0] > 0.5


def test_log_optimal_infeasible_bounds_raise():
    support = np.array([[1.1, 0.9], [0.9, 1.1], [1.0, 1.0]])
    with pytest.raises(OptimizationError):
        log_optimal(support, bounds=(0.6, 1.0))


# Passive-aggressive steps produce targets far outside the simplex
@pytest.mark.parametrize(
    "target, expected",
    [
        ([280.82, -193.09, 92.84, -179.57], [1.0, 0.0, 0.0, 0.0]),
        ([150.0, 150.5, -300.0], [0.25, 0.75, 0.0]),
        ([-1e3, -1e3 + 0.4, -1e3 + 0.2], [2 / 15, 8 / 15, 5 / 15]),
    ],
)
def test_project_simplex_of_large_targets(target, expected):
    np.testing.assert_allclose(project_simplex(np.array(target)), expected, atol=1e-9)


def test_project_simplex_rejects_non_finite_targets():
    with pytest.raises(OptimizationError):
        project_simplex(np.array([np.inf, 0.0]))


def test_project_simplex_in_a_general_norm_stays_on_the_simplex():
    A = np.array([[2.0, 0.5, 0.0], [0.5, 1.0, 0.2], [0.0, 0.2, 3.0]])
    projected = project_simplex(np.array([4.0, -2.5, 0.3]), metric=A)
    assert np.isclose(projected.sum(), 1.0)
    assert (projected >= -1e-10).all()
