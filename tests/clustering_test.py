# This script tests the clustering of historical windows

# Importing modules
import pytest

import numpy as np

from opsel.clustering import (
    co_clustered,
    find_clusterer,
    optimal_nclusters,
    similar_windows,
)
from opsel.errors import PortfolioError


# Function to build two tight, well separated groups of feature rows
# The last row belongs to the second group
@pytest.fixture(scope="module")
def two_groups():
    rng = np.random.default_rng(3)
    near = 0.01 * rng.standard_normal((6, 2))
    far = 10 + 0.01 * rng.standard_normal((6, 2))
    return np.vstack([near, far])


@pytest.mark.parametrize("variant", ["kmnlog", "kmdlog"])
def test_optimal_nclusters_finds_two_groups(variant, two_groups):
    assert optimal_nclusters(variant, two_groups, 4, seed=11) == 2


def test_optimal_nclusters_without_distinct_rows():
    assert optimal_nclusters("kmnlog", np.ones((5, 3)), 4, seed=0) is None


@pytest.mark.parametrize("variant", ["kmnlog", "kmdlog"])
def test_co_clustered_returns_the_latest_group(variant, two_groups):
    members = co_clustered(variant, two_groups, 2, 5, seed=5)
    np.testing.assert_array_equal(members, np.arange(6, 12))


def test_similar_windows_drops_the_latest_window(two_groups):
    members = similar_windows("kmnlog", two_groups, 4, 5, seed=5)
    np.testing.assert_array_equal(members, np.arange(6, 11))


def test_similar_windows_with_undefined_similarity(two_groups):
    features = two_groups.copy()
    features[0, 0] = np.nan
    assert len(similar_windows("kmnlog", features, 3, 5, seed=1)) == 0


def test_similar_windows_is_deterministic_with_a_seed():
    rng = np.random.default_rng(9)
    features = rng.standard_normal((15, 15))
    first = similar_windows("kmdlog", features, 3, 6, seed=21)
    second = similar_windows("kmdlog", features, 3, 6, seed=21)
    np.testing.assert_array_equal(first, second)


def test_unknown_clusterer_raises():
    with pytest.raises(PortfolioError):
        find_clusterer("dbscan")
