import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal
from scipy.spatial.distance import cdist
from sklearn.neighbors import KDTree

from stepumap import UMAP
from stepumap import distances as dist
from stepumap.random_source import SeededRandomSource, rng_state_from_source
from stepumap.rp_tree import make_tree, make_forest, rptree_leaf_array
from stepumap.utils import rejection_sample
from stepumap.umap_ import (
    nearest_neighbors,
    smooth_knn_dist,
)


# ===================================================
#  Nearest Neighbour Test cases
# ===================================================

# nearest_neighbours metric parameter validation
# -----------------------------------------------
def test_nn_bad_metric(nn_data):
    with pytest.raises(ValueError):
        nearest_neighbors(nn_data, 10, 42, {}, False, np.random)


def test_nn_unknown_metric_name(nn_data):
    with pytest.raises(ValueError):
        nearest_neighbors(nn_data, 10, "not_a_metric", {}, False, np.random)


def test_nn_too_few_samples():
    with pytest.raises(ValueError):
        nearest_neighbors(np.zeros((1, 3)), 1, "euclidean", {}, False, 42)


def test_nn_accepts_nested_lists(nn_data):
    data = nn_data[:100]
    from_list = nearest_neighbors(data.tolist(), 5, "euclidean", {}, False, 42)
    from_array = nearest_neighbors(
        data.astype(np.float32), 5, "euclidean", {}, False, 42
    )
    assert_array_equal(from_list[0], from_array[0])
    assert_array_equal(from_list[1], from_array[1])


def test_nn_rejects_non_finite(nn_data):
    data = nn_data[:100].copy()
    data[3, 1] = np.nan
    with pytest.raises(ValueError):
        nearest_neighbors(data, 5, "euclidean", {}, False, 42)


# -------------------------------------------------
#  Utility functions for Nearest Neighbour
# -------------------------------------------------


def knn(indices, nn_data):  # pragma: no cover
    n_neighbors = indices.shape[1]
    tree = KDTree(nn_data)
    true_indices = tree.query(nn_data, n_neighbors + 1, return_distance=False)
    num_correct = 0.0
    for i in range(nn_data.shape[0]):
        true_row = true_indices[i][true_indices[i] != i][:n_neighbors]
        num_correct += np.sum(np.isin(true_row, indices[i]))
    return num_correct / (nn_data.shape[0] * n_neighbors)


def smooth_knn(nn_data, local_connectivity=1.0):
    knn_indices, knn_dists = nearest_neighbors(
        nn_data, 10, "euclidean", {}, False, 42
    )
    sigmas, rhos = smooth_knn_dist(
        knn_dists, 10.0, local_connectivity=local_connectivity
    )
    shifted_dists = knn_dists - rhos[:, np.newaxis]
    shifted_dists[shifted_dists < 0.0] = 0.0
    vals = np.exp(-(shifted_dists / sigmas[:, np.newaxis]))
    norms = np.sum(vals, axis=1)
    return norms


def test_nn_descent_neighbor_accuracy(nn_data):
    knn_indices, knn_dists = nearest_neighbors(
        nn_data, 10, "euclidean", {}, False, 42
    )
    percent_correct = knn(knn_indices, nn_data)
    assert (
        percent_correct >= 0.85
    ), "NN-descent did not get 85% accuracy on nearest neighbors"


def test_nn_descent_table_structure(nn_data):
    knn_indices, knn_dists = nearest_neighbors(
        nn_data, 10, "euclidean", {}, False, 42
    )
    assert knn_indices.shape == (nn_data.shape[0], 10)
    assert knn_dists.shape == (nn_data.shape[0], 10)
    assert np.all(knn_indices >= 0)
    for i in range(nn_data.shape[0]):
        assert i not in knn_indices[i]
        assert np.unique(knn_indices[i]).shape[0] == 10
    assert np.all(np.diff(knn_dists, axis=1) >= 0.0)


def test_nn_distances_match_metric(nn_data):
    data = nn_data[:200]
    knn_indices, knn_dists = nearest_neighbors(
        data, 5, "manhattan", {}, False, 42
    )
    for i in range(0, data.shape[0], 17):
        expected = np.abs(data[i] - data[knn_indices[i]]).sum(axis=1)
        assert_allclose(knn_dists[i], expected, rtol=1e-5)


def test_nn_descent_is_reproducible(nn_data):
    data = nn_data[:300]
    first = nearest_neighbors(data, 8, "euclidean", {}, False, 7)
    second = nearest_neighbors(data, 8, "euclidean", {}, False, 7)
    assert_array_equal(first[0], second[0])
    assert_array_equal(first[1], second[1])


def test_nn_metric_kwds(nn_data):
    data = nn_data[:200]
    knn_indices, knn_dists = nearest_neighbors(
        data, 5, "minkowski", {"p": 3}, False, 42
    )
    expected = (np.abs(data[0] - data[knn_indices[0]]) ** 3).sum(axis=1) ** (1.0 / 3)
    assert_allclose(knn_dists[0], expected, rtol=1e-5)


def test_nn_angular_forest(nn_data):
    data = nn_data[:200]
    knn_indices, knn_dists = nearest_neighbors(data, 10, "cosine", {}, True, 42)
    assert knn_indices.shape == (200, 10)
    assert np.all(knn_dists >= -1e-6)
    assert np.all(knn_dists <= 2.0 + 1e-6)


def test_nn_progress_callback(nn_data):
    progress = []
    nearest_neighbors(
        nn_data[:300],
        10,
        "euclidean",
        {},
        False,
        42,
        progress_callback=progress.append,
    )
    assert progress[0] == 0.0
    assert progress[-1] == 1.0
    assert np.all(np.diff(progress) > 0.0)


def test_nn_should_continue_stops_early(nn_data):
    data = nn_data[:300]
    calls = []

    def should_continue():
        calls.append(True)
        return False

    knn_indices, knn_dists = nearest_neighbors(
        data, 10, "euclidean", {}, False, 42, should_continue=should_continue
    )
    assert len(calls) == 1
    assert knn_indices.shape == (300, 10)
    assert np.all(knn_indices >= 0)
    assert np.all(np.isfinite(knn_dists))
    for i in range(data.shape[0]):
        assert i not in knn_indices[i]


def test_nn_truncates_neighbors(spatial_data):
    knn_indices, knn_dists = nearest_neighbors(
        spatial_data, 20, "euclidean", {}, False, 42
    )
    n_samples = spatial_data.shape[0]
    assert knn_indices.shape == (n_samples, n_samples - 1)
    # with every other point as a neighbor the search is exact
    for i in range(n_samples):
        assert_array_equal(
            np.sort(knn_indices[i]), np.delete(np.arange(n_samples), i)
        )


def test_nn_duplicate_points(repetition_dense):
    data = repetition_dense.astype(np.float32)
    knn_indices, knn_dists = nearest_neighbors(data, 3, "euclidean", {}, False, 42)
    for i in range(6):
        assert i not in knn_indices[i]
        assert_array_equal(knn_dists[i], [0.0, 0.0, 0.0])


def test_estimator_nearest_neighbors(nn_data):
    knn_indices, knn_dists = UMAP(
        n_neighbors=10, random_state=42
    ).nearest_neighbors(nn_data[:300])
    assert knn_indices.shape == (300, 10)
    assert knn_dists.shape == (300, 10)


def test_smooth_knn_dist_l1norms(nn_data):
    norms = smooth_knn(nn_data)
    assert_allclose(
        norms,
        np.log2(10) * np.ones(norms.shape[0]),
        atol=1e-2,
        err_msg="Smooth knn-dists does not give expected norms",
    )


def test_smooth_knn_dist_l1norms_w_connectivity(nn_data):
    norms = smooth_knn(nn_data, local_connectivity=1.75)
    assert_allclose(
        norms,
        np.log2(10) * np.ones(norms.shape[0]),
        atol=1e-2,
        err_msg="Smooth knn-dists does not give expected norms for local_connectivity=1.75",
    )


# -------------------------------------------------
#  Random projection trees
# -------------------------------------------------


def test_rp_tree_leaves_partition_points(nn_data):
    rng_state = rng_state_from_source(SeededRandomSource(42))
    leaves = make_tree(nn_data, rng_state, leaf_size=10)
    assert all(leaf.shape[0] <= 10 for leaf in leaves)
    assert_array_equal(np.sort(np.concatenate(leaves)), np.arange(nn_data.shape[0]))


def test_angular_rp_tree_leaves_partition_points(nn_data):
    data = nn_data[:500]
    rng_state = rng_state_from_source(SeededRandomSource(42))
    leaves = make_tree(data, rng_state, leaf_size=15, angular=True)
    assert all(leaf.shape[0] <= 15 for leaf in leaves)
    assert_array_equal(np.sort(np.concatenate(leaves)), np.arange(data.shape[0]))


def test_rp_tree_identical_points():
    data = np.ones((64, 3))
    rng_state = rng_state_from_source(SeededRandomSource(42))
    leaves = make_tree(data, rng_state, leaf_size=10)
    assert all(leaf.shape[0] <= 10 for leaf in leaves)
    assert_array_equal(np.sort(np.concatenate(leaves)), np.arange(64))


def test_rptree_leaf_array(nn_data):
    rng_state = rng_state_from_source(SeededRandomSource(42))
    forest = make_forest(nn_data, 10, 3, rng_state)
    assert len(forest) == 3
    leaf_array = rptree_leaf_array(forest)
    assert leaf_array.shape[0] == sum(len(tree) for tree in forest)
    assert leaf_array.shape[1] <= 10
    # every tree covers every point once
    n_points = np.sum(leaf_array >= 0)
    assert n_points == 3 * nn_data.shape[0]


def test_rejection_sample_truncates():
    rng_state = rng_state_from_source(SeededRandomSource(42))
    sample = rejection_sample(10, 4, rng_state)
    assert_array_equal(np.sort(sample), [0, 1, 2, 3])


def test_rejection_sample_unique():
    rng_state = rng_state_from_source(SeededRandomSource(42))
    sample = rejection_sample(20, 100, rng_state)
    assert sample.shape[0] == 20
    assert np.unique(sample).shape[0] == 20
    assert np.all((sample >= 0) & (sample < 100))


def test_bind_metric_kwds():
    bound = dist.bind_metric("minkowski", {"p": 1})
    x = np.array([0.0, 0.0])
    y = np.array([1.0, 2.0])
    assert bound(x, y) == pytest.approx(3.0)
    assert dist.bind_metric("euclidean") is dist.euclidean


# -------------------------------------------------
#  Named metrics
# -------------------------------------------------

SCIPY_METRIC_NAMES = {"manhattan": "cityblock"}


def test_nn_named_metrics(nn_data, spatial_distances):
    data = nn_data[:100]
    for metric in spatial_distances:
        knn_indices, knn_dists = nearest_neighbors(
            data, 5, metric, {}, metric in dist.angular_distances, 42
        )
        assert knn_indices.shape == (100, 5)
        expected = cdist(
            data[:1], data[knn_indices[0]], SCIPY_METRIC_NAMES.get(metric, metric)
        )[0]
        assert_allclose(knn_dists[0], expected, rtol=1e-4, atol=1e-6, err_msg=metric)
