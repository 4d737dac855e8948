# Author: Leland McInnes <leland.mcinnes@gmail.com>
#
# License: BSD 3 clause
from warnings import warn

import numpy as np
import numba

from stepumap.utils import tau_rand_int, norm

# Used for a floating point "nearly zero" comparison
EPS = 1e-8


@numba.njit()
def assign_sides(indices, side, rng_state):
    """Split ``indices`` into two arrays according to ``side`` (0 is left).
    If every point landed on the same side the hyperplane was degenerate
    (duplicate points, for instance) and the points are instead assigned
    to a side at random."""
    n_left = 0
    n_right = 0
    for i in range(side.shape[0]):
        if side[i] == 0:
            n_left += 1
        else:
            n_right += 1

    if n_left == 0 or n_right == 0:
        n_left = 0
        n_right = 0
        for i in range(side.shape[0]):
            side[i] = abs(tau_rand_int(rng_state)) % 2
            if side[i] == 0:
                n_left += 1
            else:
                n_right += 1

    # Now that we have the counts allocate arrays
    indices_left = np.empty(n_left, dtype=np.int64)
    indices_right = np.empty(n_right, dtype=np.int64)

    # Populate the arrays with indices according to which side they fell on
    n_left = 0
    n_right = 0
    for i in range(side.shape[0]):
        if side[i] == 0:
            indices_left[n_left] = indices[i]
            n_left += 1
        else:
            indices_right[n_right] = indices[i]
            n_right += 1

    return indices_left, indices_right


@numba.njit()
def random_pair(indices, rng_state):
    """Two distinct members of ``indices`` chosen at random."""
    n = indices.shape[0]
    left_index = tau_rand_int(rng_state) % n
    right_index = (left_index + 1 + tau_rand_int(rng_state) % (n - 1)) % n
    return indices[left_index], indices[right_index]


@numba.njit(fastmath=True)
def hyperplane_sides(data, indices, hyperplane_vector, hyperplane_offset, rng_state):
    """Label each point 0 (positive margin) or 1 (negative margin) against
    the hyperplane, flipping a coin for points lying on it, and split
    ``indices`` accordingly."""
    side = np.empty(indices.shape[0], np.int8)
    for i in range(indices.shape[0]):
        margin = hyperplane_offset
        for d in range(data.shape[1]):
            margin += hyperplane_vector[d] * data[indices[i], d]

        if abs(margin) < EPS:
            side[i] = abs(tau_rand_int(rng_state)) % 2
        elif margin > 0:
            side[i] = 0
        else:
            side[i] = 1

    return assign_sides(indices, side, rng_state)


@numba.njit(fastmath=True)
def angular_random_projection_split(data, indices, rng_state):
    """Split ``indices`` by the hyperplane through the origin that bisects
    the angle between two randomly chosen points. This is the basis for a
    random projection tree, which simply uses this splitting recursively,
    and suits angular metrics such as cosine distance.

    Parameters
    ----------
    data: array of shape (n_samples, n_features)
        The original data to be split
    indices: array of shape (tree_node_size,)
        The indices of the elements in the ``data`` array that are to
        be split in the current operation.
    rng_state: array of int64, shape (3,)
        The internal state of the rng

    Returns
    -------
    indices_left, indices_right: arrays
        The elements of ``indices`` on each side of the hyperplane.
    """
    left, right = random_pair(indices, rng_state)

    left_norm = norm(data[left])
    right_norm = norm(data[right])
    if abs(left_norm) < EPS:
        left_norm = 1.0
    if abs(right_norm) < EPS:
        right_norm = 1.0

    hyperplane_vector = (data[left] / left_norm - data[right] / right_norm).astype(
        np.float32
    )
    hyperplane_norm = norm(hyperplane_vector)
    if abs(hyperplane_norm) < EPS:
        hyperplane_norm = 1.0
    hyperplane_vector = hyperplane_vector / np.float32(hyperplane_norm)

    return hyperplane_sides(data, indices, hyperplane_vector, 0.0, rng_state)


@numba.njit(fastmath=True, nogil=True)
def euclidean_random_projection_split(data, indices, rng_state):
    """Split ``indices`` by the perpendicular bisector of two randomly
    chosen points.

    Parameters
    ----------
    data: array of shape (n_samples, n_features)
    indices: array of shape (tree_node_size,)
    rng_state: array of int64, shape (3,)

    Returns
    -------
    indices_left, indices_right: arrays
    """
    left, right = random_pair(indices, rng_state)

    hyperplane_vector = (data[left] - data[right]).astype(np.float32)
    hyperplane_offset = 0.0
    for d in range(data.shape[1]):
        hyperplane_offset -= (
            hyperplane_vector[d] * (data[left, d] + data[right, d]) / 2.0
        )

    return hyperplane_sides(
        data, indices, hyperplane_vector, hyperplane_offset, rng_state
    )


def make_euclidean_tree(data, indices, rng_state, leaves, leaf_size=30):
    if indices.shape[0] > leaf_size:
        left_indices, right_indices = euclidean_random_projection_split(
            data, indices, rng_state
        )
        make_euclidean_tree(data, left_indices, rng_state, leaves, leaf_size)
        make_euclidean_tree(data, right_indices, rng_state, leaves, leaf_size)
    else:
        leaves.append(indices)


def make_angular_tree(data, indices, rng_state, leaves, leaf_size=30):
    if indices.shape[0] > leaf_size:
        left_indices, right_indices = angular_random_projection_split(
            data, indices, rng_state
        )
        make_angular_tree(data, left_indices, rng_state, leaves, leaf_size)
        make_angular_tree(data, right_indices, rng_state, leaves, leaf_size)
    else:
        leaves.append(indices)


def make_tree(data, rng_state, leaf_size=30, angular=False):
    """Construct a random projection tree based on ``data`` with leaves
    of size at most ``leaf_size``.

    Parameters
    ----------
    data: array of shape (n_samples, n_features)
        The original data to be split
    rng_state: array of int64, shape (3,)
        The internal state of the rng
    leaf_size: int (optional, default 30)
        The maximum size of any leaf node in the tree. Any node in the tree
        with more than ``leaf_size`` will be split further to create child
        nodes.
    angular: bool (optional, default False)
        Whether to use cosine/angular distance to create splits in the tree,
        or euclidean distance.

    Returns
    -------
    leaves: list of arrays
        The point indices in each leaf of the tree; together they partition
        ``range(n_samples)``.
    """
    indices = np.arange(data.shape[0])
    leaves = []

    # Make a tree recursively until we get below the leaf size
    if angular:
        make_angular_tree(data, indices, rng_state, leaves, leaf_size)
    else:
        make_euclidean_tree(data, indices, rng_state, leaves, leaf_size)

    return leaves


def make_forest(data, n_neighbors, n_trees, rng_state, angular=False):
    """Build a random projection forest with ``n_trees``.

    Parameters
    ----------
    data: array of shape (n_samples, n_features)
    n_neighbors: int
        Leaves hold at most ``max(10, n_neighbors)`` points.
    n_trees: int
    rng_state: array of int64, shape (3,)
    angular: bool (optional, default False)

    Returns
    -------
    forest: list
        A list of trees, each given as its list of leaves.
    """
    result = []
    leaf_size = max(10, n_neighbors)
    try:
        result = [
            make_tree(data, rng_state, leaf_size, angular) for i in range(n_trees)
        ]
    except (RuntimeError, RecursionError, SystemError):
        warn(
            "Random Projection forest initialisation failed due to recursion"
            "limit being reached. Something is a little strange with your "
            "data, and this may take longer than normal to compute."
        )
    return result


def rptree_leaf_array(rp_forest):
    """Generate an array of sets of candidate nearest neighbors from the
    leaves of a random projection forest. Any given tree has leaves that are
    a set of potential nearest neighbors. Given enough trees the set of all
    such leaves gives a good likelihood of getting a good set of nearest
    neighbors in composite.

    Parameters
    ----------
    rp_forest: list
        The output of ``make_forest``.

    Returns
    -------
    leaf_array: array of shape (n_leaves, max_leaf_size)
        Each row is a leaf, padded with -1.
    """
    leaves = [leaf for tree in rp_forest for leaf in tree]
    if len(leaves) == 0:
        return np.array([[-1]])

    width = max(leaf.shape[0] for leaf in leaves)
    leaf_array = -1 * np.ones((len(leaves), width), dtype=np.int64)
    for i, leaf in enumerate(leaves):
        leaf_array[i, : leaf.shape[0]] = leaf
    return leaf_array
