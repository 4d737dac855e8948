# Author: Leland McInnes <leland.mcinnes@gmail.com>
#
# License: BSD 3 clause
import numpy as np
import numba

from stepumap.utils import (
    make_heap,
    heap_push,
    heap_contains,
    rejection_sample,
    build_candidates,
    deheap_sort,
)
from stepumap.rp_tree import make_forest, rptree_leaf_array


@numba.njit(fastmath=True)
def init_current_graph(data, dist, n_neighbors, rng_state):
    current_graph = make_heap(data.shape[0], n_neighbors)
    for i in range(data.shape[0]):
        indices = rejection_sample(n_neighbors, data.shape[0], rng_state)
        for j in range(indices.shape[0]):
            if indices[j] == i:
                continue
            d = dist(data[i], data[indices[j]])
            heap_push(current_graph, i, d, indices[j], 1)
            heap_push(current_graph, indices[j], d, i, 1)
    return current_graph


@numba.njit(fastmath=True)
def init_rp_tree(data, dist, current_graph, leaf_array):
    for n in range(leaf_array.shape[0]):
        for i in range(leaf_array.shape[1]):
            p = leaf_array[n, i]
            if p < 0:
                break
            for j in range(i + 1, leaf_array.shape[1]):
                q = leaf_array[n, j]
                if q < 0:
                    break
                if p == q or heap_contains(current_graph, p, q):
                    continue
                d = dist(data[p], data[q])
                heap_push(current_graph, p, d, q, 1)
                heap_push(current_graph, q, d, p, 1)


@numba.njit(fastmath=True)
def try_candidate(data, dist, current_graph, i, q):
    if q < 0 or q == i or heap_contains(current_graph, i, q):
        return 0
    d = dist(data[i], data[q])
    return heap_push(current_graph, i, d, q, 1)


@numba.njit(parallel=True, fastmath=True)
def local_join(data, dist, current_graph, new_candidates, old_candidates):
    """One round of neighbor joining. Every point pulls the candidates of
    its own candidates (new against new and old, old against new) into its
    own heap. Each iteration of the outer loop writes only row ``i`` of
    ``current_graph`` and only reads the candidate snapshots, so rows are
    processed in parallel without locks.

    Returns
    -------
    n_updates: int
        The number of successful heap pushes in this round.
    """
    n_vertices = data.shape[0]
    max_candidates = new_candidates.shape[2]
    updates = np.zeros(n_vertices, dtype=np.int64)

    for i in numba.prange(n_vertices):
        c = 0
        for j in range(max_candidates):
            p = int(new_candidates[0, i, j])
            if p < 0:
                continue

            c += try_candidate(data, dist, current_graph, i, p)

            for k in range(max_candidates):
                q = int(new_candidates[0, p, k])
                c += try_candidate(data, dist, current_graph, i, q)

            for k in range(max_candidates):
                q = int(old_candidates[0, p, k])
                c += try_candidate(data, dist, current_graph, i, q)

        for j in range(max_candidates):
            p = int(old_candidates[0, i, j])
            if p < 0:
                continue

            for k in range(max_candidates):
                q = int(new_candidates[0, p, k])
                c += try_candidate(data, dist, current_graph, i, q)

        updates[i] = c

    return updates.sum()


@numba.njit(parallel=True, fastmath=True)
def fill_unfilled_rows(data, dist, current_graph):
    """Complete any heap that still holds empty slots by a brute force scan
    of its row. A heap with an empty slot has the empty slot at its root."""
    n_vertices = data.shape[0]
    for i in numba.prange(n_vertices):
        if current_graph[0, i, 0] >= 0:
            continue
        for j in range(n_vertices):
            if j == i:
                continue
            d = dist(data[i], data[j])
            heap_push(current_graph, i, d, j, 0)


def nn_descent(
    data,
    n_neighbors,
    rng_state,
    dist,
    n_trees=8,
    n_iters=10,
    max_candidates=60,
    delta=0.001,
    rho=0.5,
    angular=False,
    progress_callback=None,
    should_continue=None,
    verbose=False,
):
    """Approximate k-nearest neighbors by random projection forest seeding
    followed by nearest neighbor descent.

    Parameters
    ----------
    data: array of shape (n_samples, n_features)
        The data to find neighbors of.

    n_neighbors: int
        The number of neighbors per point, excluding the point itself. Must
        be less than ``n_samples``.

    rng_state: array of int64, shape (3,)
        The internal state of the rng.

    dist: numba jitted function
        The distance kernel.

    n_trees: int (optional, default 8)
        The number of random projection trees used to seed the search.

    n_iters: int (optional, default 10)
        The maximum number of refinement rounds.

    max_candidates: int (optional, default 60)
        The size of the sampled candidate lists.

    delta: float (optional, default 0.001)
        Stop early once a round makes at most ``delta * n_neighbors *
        n_samples`` updates.

    rho: float (optional, default 0.5)
        The sampling rate for candidate lists.

    angular: bool (optional, default False)
        Use angular random projection splits.

    progress_callback: callable or None
        Called with the fraction of the search completed, in [0, 1].

    should_continue: callable or None
        Polled before every refinement round; returning False stops the
        search and the current approximation is returned.

    verbose: bool (optional, default False)

    Returns
    -------
    knn_indices: array of shape (n_samples, n_neighbors)
    knn_dists: array of shape (n_samples, n_neighbors)
        Neighbors of each point sorted by increasing distance.
    """
    n_vertices = data.shape[0]

    def report(fraction):
        if progress_callback is not None:
            progress_callback(fraction)

    current_graph = init_current_graph(data, dist, n_neighbors, rng_state)
    if n_trees > 0:
        rp_forest = make_forest(data, n_neighbors, n_trees, rng_state, angular)
        if len(rp_forest) > 0:
            leaf_array = rptree_leaf_array(rp_forest)
            init_rp_tree(data, dist, current_graph, leaf_array)
    report(0.0)

    for n in range(n_iters):
        if should_continue is not None and not should_continue():
            if verbose:
                print("\tStopped after", n, "iterations")
            break

        if verbose:
            print("\t", n + 1, " / ", n_iters)

        new_candidates, old_candidates = build_candidates(
            current_graph, n_vertices, n_neighbors, max_candidates, rng_state, rho
        )
        c = local_join(data, dist, current_graph, new_candidates, old_candidates)
        report((n + 1) / (n_iters + 1))

        if c <= delta * n_neighbors * n_vertices:
            break

    fill_unfilled_rows(data, dist, current_graph)
    knn_indices, knn_dists = deheap_sort(current_graph)
    report(1.0)

    return knn_indices, knn_dists
