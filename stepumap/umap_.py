# Author: Leland McInnes <leland.mcinnes@gmail.com>
#
# License: BSD 3 clause
from contextlib import contextmanager
from warnings import warn

from sklearn.base import BaseEstimator
from sklearn.utils import check_array
from sklearn.utils.validation import check_is_fitted
from sklearn.decomposition import PCA

from scipy.optimize import curve_fit

import numpy as np
import numba
from tqdm.auto import tqdm

import stepumap.distances as dist

from stepumap.utils import ts
from stepumap.random_source import check_random_source, rng_state_from_source
from stepumap.sparse import SparseGraph
from stepumap.nndescent import nn_descent
from stepumap.spectral import spectral_layout, random_layout
from stepumap.layouts import EmbeddingOptimizer, make_epochs_per_sample

SMOOTH_K_TOLERANCE = 1e-5
MIN_K_DIST_SCALE = 1e-3
NPY_INFINITY = np.inf


@numba.njit(
    locals={
        "psum": numba.types.float32,
        "lo": numba.types.float32,
        "mid": numba.types.float32,
        "hi": numba.types.float32,
    },
    fastmath=True,
)  # benchmarking `parallel=True` shows it to *decrease* performance
def smooth_knn_dist(distances, k, n_iter=64, local_connectivity=1.0, bandwidth=1.0):
    """Compute a continuous version of the distance to the kth nearest
    neighbor. That is, this is similar to knn-distance but allows continuous
    k values rather than requiring an integral k. In essence we are simply
    computing the distance such that the cardinality of fuzzy set we generate
    is k.

    Parameters
    ----------
    distances: array of shape (n_samples, n_neighbors)
        Distances to nearest neighbors for each sample. Each row should be a
        sorted list of distances to a given samples nearest neighbors, not
        including the sample itself.

    k: float
        The number of nearest neighbors to approximate for.

    n_iter: int (optional, default 64)
        We need to binary search for the correct distance value. This is the
        max number of iterations to use in such a search.

    local_connectivity: int (optional, default 1)
        The local connectivity required -- i.e. the number of nearest
        neighbors that should be assumed to be connected at a local level.
        The higher this value the more connected the manifold becomes
        locally. In practice this should be not more than the local intrinsic
        dimension of the manifold.

    bandwidth: float (optional, default 1)
        The target bandwidth of the kernel, larger values will produce
        larger return values.

    Returns
    -------
    knn_dist: array of shape (n_samples,)
        The distance to kth nearest neighbor, as suitably approximated.

    nn_dist: array of shape (n_samples,)
        The distance to the 1st nearest neighbor for each point.
    """
    target = np.log2(k) * bandwidth
    rho = np.zeros(distances.shape[0], dtype=np.float32)
    result = np.zeros(distances.shape[0], dtype=np.float32)

    mean_distances = np.mean(distances)

    for i in range(distances.shape[0]):
        lo = 0.0
        hi = NPY_INFINITY
        mid = 1.0

        ith_distances = distances[i]
        non_zero_dists = ith_distances[ith_distances > 0.0]
        if non_zero_dists.shape[0] >= local_connectivity:
            index = int(np.floor(local_connectivity))
            interpolation = local_connectivity - index
            if index > 0:
                rho[i] = non_zero_dists[index - 1]
                if interpolation > SMOOTH_K_TOLERANCE:
                    rho[i] += interpolation * (
                        non_zero_dists[index] - non_zero_dists[index - 1]
                    )
            else:
                rho[i] = interpolation * non_zero_dists[0]
        elif non_zero_dists.shape[0] > 0:
            rho[i] = np.max(non_zero_dists)

        for n in range(n_iter):

            psum = 0.0
            for j in range(distances.shape[1]):
                d = distances[i, j] - rho[i]
                if d > 0:
                    psum += np.exp(-(d / mid))
                else:
                    psum += 1.0

            if np.fabs(psum - target) < SMOOTH_K_TOLERANCE:
                break

            if psum > target:
                hi = mid
                mid = (lo + hi) / 2.0
            else:
                lo = mid
                if hi == NPY_INFINITY:
                    mid *= 2
                else:
                    mid = (lo + hi) / 2.0

        result[i] = mid

        if rho[i] > 0.0:
            mean_ith_distances = np.mean(ith_distances)
            if result[i] < MIN_K_DIST_SCALE * mean_ith_distances:
                result[i] = MIN_K_DIST_SCALE * mean_ith_distances
        else:
            if result[i] < MIN_K_DIST_SCALE * mean_distances:
                result[i] = MIN_K_DIST_SCALE * mean_distances

    return result, rho


def nearest_neighbors(
    X,
    n_neighbors,
    metric,
    metric_kwds,
    angular,
    random_state,
    n_trees=None,
    n_iters=None,
    max_candidates=60,
    progress_callback=None,
    should_continue=None,
    verbose=False,
):
    """Compute the ``n_neighbors`` nearest points for each data point in ``X``
    under ``metric``. This is approximated via a random projection forest
    and nearest neighbor descent. A point is never its own neighbor.

    Parameters
    ----------
    X: array of shape (n_samples, n_features)
        The input data to compute the k-neighbor graph of.

    n_neighbors: int
        The number of nearest neighbors to compute for each sample in ``X``.
        Values of ``n_samples`` or more are reduced to ``n_samples - 1``.

    metric: string or callable
        The metric to use for the computation.

    metric_kwds: dict
        Any arguments to pass to the metric computation function.

    angular: bool
        Whether to use angular rp trees in NN approximation.

    random_state: None, int, numpy random generator or random source
        The randomness used for the search; see ``check_random_source``.

    n_trees: int or None (optional, default None)
        Size of the random projection forest; by default this grows slowly
        with the number of samples.

    n_iters: int or None (optional, default None)
        Maximum number of NN-descent rounds; by default ``log2(n_samples)``
        and at least 5.

    max_candidates: int (optional, default 60)
        The size of the candidate lists for each NN-descent round.

    progress_callback: callable or None (optional, default None)
        Called with the fraction of the search completed.

    should_continue: callable or None (optional, default None)
        Polled before every NN-descent round; returning False stops the
        search early with the current approximation.

    verbose: bool (optional, default False)
        Whether to print status data during the computation.

    Returns
    -------
    knn_indices: array of shape (n_samples, n_neighbors)
        The indices on the ``n_neighbors`` closest points in the dataset.

    knn_dists: array of shape (n_samples, n_neighbors)
        The distances to the ``n_neighbors`` closest points in the dataset.
    """
    X = check_array(X, dtype=np.float32, order="C")
    if X.shape[0] < 2:
        raise ValueError("At least two samples are needed to find neighbors")
    if n_neighbors < 1:
        raise ValueError("n_neighbors must be a positive integer")

    if verbose:
        print(ts(), "Finding Nearest Neighbors")

    n_neighbors = min(int(n_neighbors), X.shape[0] - 1)
    random_source = check_random_source(random_state)
    rng_state = rng_state_from_source(random_source)
    distance_func = dist.bind_metric(metric, metric_kwds)

    if n_trees is None:
        n_trees = min(64, 5 + int(round((X.shape[0]) ** 0.5 / 20.0)))
    if n_iters is None:
        n_iters = max(5, int(round(np.log2(X.shape[0]))))

    knn_indices, knn_dists = nn_descent(
        X,
        n_neighbors,
        rng_state,
        distance_func,
        n_trees=n_trees,
        n_iters=n_iters,
        max_candidates=max_candidates,
        angular=angular,
        progress_callback=progress_callback,
        should_continue=should_continue,
        verbose=verbose,
    )

    if verbose:
        print(ts(), "Finished Nearest Neighbor Search")
    return knn_indices, knn_dists


@numba.njit(
    locals={
        "knn_dists": numba.types.float32[:, ::1],
        "sigmas": numba.types.float32[::1],
        "rhos": numba.types.float32[::1],
        "val": numba.types.float32,
    },
    fastmath=True,
)
def compute_membership_strengths(knn_indices, knn_dists, sigmas, rhos):
    """Construct the membership strength data for the 1-skeleton of each local
    fuzzy simplicial set -- this is formed as a sparse matrix where each row is
    a local fuzzy simplicial set, with a membership strength for the
    1-simplex to each other data point.

    Parameters
    ----------
    knn_indices: array of shape (n_samples, n_neighbors)
        The indices on the ``n_neighbors`` closest points in the dataset.

    knn_dists: array of shape (n_samples, n_neighbors)
        The distances to the ``n_neighbors`` closest points in the dataset.

    sigmas: array of shape(n_samples)
        The normalization factor derived from the metric tensor approximation.

    rhos: array of shape(n_samples)
        The local connectivity adjustment.

    Returns
    -------
    rows: array of shape (n_samples * n_neighbors)
        Row data for the resulting sparse matrix (coo format)

    cols: array of shape (n_samples * n_neighbors)
        Column data for the resulting sparse matrix (coo format)

    vals: array of shape (n_samples * n_neighbors)
        Entries for the resulting sparse matrix (coo format)
    """
    n_samples = knn_indices.shape[0]
    n_neighbors = knn_indices.shape[1]

    rows = np.zeros(knn_indices.size, dtype=np.int32)
    cols = np.zeros(knn_indices.size, dtype=np.int32)
    vals = np.zeros(knn_indices.size, dtype=np.float32)

    for i in range(n_samples):
        for j in range(n_neighbors):
            if knn_indices[i, j] == -1:
                continue  # We didn't get the full knn for i
            if knn_indices[i, j] == i:
                val = 0.0
            elif knn_dists[i, j] - rhos[i] <= 0.0 or sigmas[i] == 0.0:
                val = 1.0
            else:
                val = np.exp(-((knn_dists[i, j] - rhos[i]) / (sigmas[i])))

            rows[i * n_neighbors + j] = i
            cols[i * n_neighbors + j] = knn_indices[i, j]
            vals[i * n_neighbors + j] = val

    return rows, cols, vals


def fuzzy_simplicial_set(
    X,
    n_neighbors,
    random_state,
    metric,
    metric_kwds=None,
    knn_indices=None,
    knn_dists=None,
    angular=False,
    set_op_mix_ratio=1.0,
    local_connectivity=1.0,
    verbose=False,
):
    """Given a set of data X, a neighborhood size, and a measure of distance
    compute the fuzzy simplicial set (here represented as a fuzzy graph in
    the form of a ``SparseGraph``) associated to the data. This is done by
    locally approximating geodesic distance at each point, creating a fuzzy
    simplicial set for each such point, and then combining all the local
    fuzzy simplicial sets into a global one via a fuzzy union.

    Parameters
    ----------
    X: array of shape (n_samples, n_features)
        The data to be modelled as a fuzzy simplicial set.

    n_neighbors: int
        The number of neighbors to use to approximate geodesic distance.
        Larger numbers induce more global estimates of the manifold that can
        miss finer detail, while smaller values will focus on fine manifold
        structure to the detriment of the larger picture.

    random_state: None, int, numpy random generator or random source
        Used for the neighbor search when ``knn_indices`` is not given.

    metric: string or function
        The metric to use to compute distances in high dimensional space.
        If a string is passed it must be a key of
        ``stepumap.distances.named_distances``. If a general metric is
        required a numba jit'd function that takes two 1d arrays and returns
        a float can be provided.

    metric_kwds: dict (optional, default None)
        Arguments to pass on to the metric, such as the ``p`` value for
        Minkowski distance. Values are passed positionally in the order
        given.

    knn_indices: array of shape (n_samples, n_neighbors) (optional)
        If the k-nearest neighbors of each point has already been calculated
        you can pass them in here to save computation time. Rows must not
        contain the point itself.

    knn_dists: array of shape (n_samples, n_neighbors) (optional)
        The matching distances, sorted ascending in each row.

    angular: bool (optional, default False)
        Whether to use angular/cosine distance for the random projection
        forest for seeding NN-descent to determine approximate nearest
        neighbors.

    set_op_mix_ratio: float (optional, default 1.0)
        Interpolate between (fuzzy) union and intersection as the set operation
        used to combine local fuzzy simplicial sets to obtain a global fuzzy
        simplicial sets. Both fuzzy set operations use the product t-norm.
        The value of this parameter should be between 0.0 and 1.0; a value of
        1.0 will use a pure fuzzy union, while 0.0 will use a pure fuzzy
        intersection.

    local_connectivity: int (optional, default 1)
        The local connectivity required -- i.e. the number of nearest
        neighbors that should be assumed to be connected at a local level.

    verbose: bool (optional, default False)
        Whether to report information on the current progress of the algorithm.

    Returns
    -------
    fuzzy_simplicial_set: SparseGraph
        A fuzzy simplicial set represented as a sparse graph. The (i,
        j) entry of the matrix represents the membership strength of the
        1-simplex between the ith and jth sample points.

    sigmas: array of shape (n_samples,)

    rhos: array of shape (n_samples,)
    """
    if knn_indices is None or knn_dists is None:
        knn_indices, knn_dists = nearest_neighbors(
            X,
            n_neighbors,
            metric,
            metric_kwds,
            angular,
            random_state,
            verbose=verbose,
        )

    knn_indices = np.ascontiguousarray(knn_indices, dtype=np.int64)
    knn_dists = np.ascontiguousarray(knn_dists, dtype=np.float32)

    sigmas, rhos = smooth_knn_dist(
        knn_dists,
        float(knn_dists.shape[1]),
        local_connectivity=float(local_connectivity),
    )

    rows, cols, vals = compute_membership_strengths(
        knn_indices, knn_dists, sigmas, rhos
    )

    result = SparseGraph(rows, cols, vals, (X.shape[0], X.shape[0]))
    result.eliminate_zeros()

    transpose = result.transpose()
    prod_matrix = result.pairwise_multiply(transpose)

    result = (result + transpose - prod_matrix).multiply_scalar(
        set_op_mix_ratio
    ) + prod_matrix.multiply_scalar(1.0 - set_op_mix_ratio)

    result.eliminate_zeros()

    return result, sigmas, rhos


def prune_graph(graph, n_epochs, default_epochs=500):
    """Drop edges too weak to be sampled at least once in ``n_epochs``
    epochs, that is edges below ``graph.max() / n_epochs``. Short runs of
    ten epochs or fewer prune against ``default_epochs`` instead."""
    matrix = graph.tocsr()
    if matrix.nnz > 0:
        if n_epochs > 10:
            threshold = matrix.data.max() / float(n_epochs)
        else:
            threshold = matrix.data.max() / float(default_epochs)
        matrix.data[matrix.data < threshold] = 0.0
        matrix.eliminate_zeros()
    return SparseGraph.from_coo(matrix)


# scale coords so that the largest coordinate is max_coords, then add uniform
# noise of amplitude noise
def noisy_scale_coords(coords, random_source, max_coord=10.0, noise=0.0001):
    expansion = max_coord / np.abs(coords).max()
    coords = (coords * expansion).astype(np.float32)
    jitter = np.empty(coords.size, dtype=np.float32)
    random_source.fill_floats(jitter)
    jitter = (2.0 * jitter - 1.0) * noise
    return coords + jitter.reshape(coords.shape).astype(np.float32)


def rescale_embedding(embedding, max_coord=10.0):
    """Affinely map each coordinate axis onto [0, max_coord]. Axes with no
    spread are moved to 0."""
    embedding = np.asarray(embedding, dtype=np.float64)
    low = np.min(embedding, 0)
    spread = np.max(embedding, 0) - low
    spread[spread == 0.0] = 1.0
    return (max_coord * (embedding - low) / spread).astype(np.float32, order="C")


def find_ab_params(spread, min_dist):
    """Fit a, b params for the differentiable curve used in lower
    dimensional fuzzy simplicial complex construction. We want the
    smooth curve (from a pre-defined family with simple gradient) that
    best matches an offset exponential decay.

    The least squares fit is Levenberg-Marquardt from ``(a, b) = (1, 1)``.
    Should that land on a non-positive parameter the fit is redone with
    both parameters bounded below by zero.

    Parameters
    ----------
    spread: float
        The effective scale of embedded points.

    min_dist: float
        The effective minimum distance between embedded points.

    Returns
    -------
    a, b: float
        Both strictly positive.
    """

    def curve(x, a, b):
        return 1.0 / (1.0 + a * x ** (2 * b))

    xv = np.linspace(0, spread * 3, 300)
    yv = np.zeros(xv.shape)
    yv[xv < min_dist] = 1.0
    yv[xv >= min_dist] = np.exp(-(xv[xv >= min_dist] - min_dist) / spread)
    params, covar = curve_fit(curve, xv, yv, p0=(1.0, 1.0), method="lm", maxfev=2000)
    if np.any(params <= 0.0):
        params, covar = curve_fit(
            curve, xv, yv, p0=(1.0, 1.0), bounds=(np.finfo(np.float64).eps, np.inf)
        )
    return float(params[0]), float(params[1])


class UMAP(BaseEstimator):
    """Uniform Manifold Approximation and Projection, run one epoch at a time.

    Finds a low dimensional embedding of the data that approximates
    an underlying manifold. ``fit`` runs the whole optimization;
    ``initialize_fit`` followed by repeated calls to ``step`` lets the
    caller observe (``get_embedding``) or stop the optimization between
    epochs.

    Parameters
    ----------
    n_neighbors: float (optional, default 15)
        The size of local neighborhood (in terms of number of neighboring
        sample points) used for manifold approximation. Larger values
        result in more global views of the manifold, while smaller
        values result in more local data being preserved. In general
        values should be in the range 2 to 100.

    n_components: int (optional, default 2)
        The dimension of the space to embed into.

    metric: string or function (optional, default 'euclidean')
        The metric to use to compute distances in high dimensional space.
        A key of ``stepumap.distances.named_distances`` or a numba jitted
        function of two 1d arrays.

    metric_kwds: dict (optional, default None)
        Arguments to pass on to the metric, such as the ``p`` value for
        Minkowski distance.

    n_epochs: int (optional, default None)
        The number of training epochs to be used in optimizing the
        low dimensional embedding. If None a value is selected based on the
        size of the input dataset (200 for large datasets, 500 for small).

    learning_rate: float (optional, default 1.0)
        The initial learning rate for the embedding optimization.

    init: string or array (optional, default 'random')
        How to initialize the low dimensional embedding. Options are:

            * 'random': assign initial embedding positions at random.
            * 'spectral': use a spectral embedding of the fuzzy 1-skeleton
            * 'pca': use the first n_components from PCA applied to the
              input data.
            * A numpy array of initial embedding positions.

    min_dist: float (optional, default 0.1)
        The effective minimum distance between embedded points.

    spread: float (optional, default 1.0)
        The effective scale of embedded points. In combination with
        ``min_dist`` this determines how clustered/clumped the embedded
        points are.

    set_op_mix_ratio: float (optional, default 1.0)
        Interpolate between (fuzzy) union and intersection as the set
        operation used to combine local fuzzy simplicial sets.

    local_connectivity: int (optional, default 1)
        The local connectivity required -- i.e. the number of nearest
        neighbors that should be assumed to be connected at a local level.

    repulsion_strength: float (optional, default 1.0)
        Weighting applied to negative samples in low dimensional embedding
        optimization.

    negative_sample_rate: int (optional, default 5)
        The number of negative samples to select per positive sample
        in the optimization process.

    a: float (optional, default None)
        More specific parameters controlling the embedding. If None these
        values are set automatically as determined by ``min_dist`` and
        ``spread``.
    b: float (optional, default None)
        More specific parameters controlling the embedding. If None these
        values are set automatically as determined by ``min_dist`` and
        ``spread``.

    random_state: int, numpy random generator, random source or None (optional, default None)
        An int gives a deterministic ``SeededRandomSource``: two fits of the
        same data give identical embeddings. Deterministic sources are not
        thread safe, so the optimization then runs on a single thread.

    angular_rp_forest: bool (optional, default False)
        Whether to use an angular random projection forest to initialise
        the approximate nearest neighbor search.

    n_trees: int (optional, default None)
        Number of random projection trees; chosen from the data size if None.

    n_iters: int (optional, default None)
        Maximum number of NN-descent rounds; chosen from the data size if
        None.

    max_candidates: int (optional, default 60)
        Size of the NN-descent candidate lists.

    n_jobs: int (optional, default -1)
        The number of threads to use. -1 uses every numba thread.

    verbose: bool (optional, default False)
        Controls verbosity of logging.

    tqdm_kwds: dict (optional, defaul None)
        Key word arguments to be used by the tqdm progress bar.
    """

    def __init__(
        self,
        n_neighbors=15,
        n_components=2,
        metric="euclidean",
        metric_kwds=None,
        n_epochs=None,
        learning_rate=1.0,
        init="random",
        min_dist=0.1,
        spread=1.0,
        set_op_mix_ratio=1.0,
        local_connectivity=1.0,
        repulsion_strength=1.0,
        negative_sample_rate=5,
        a=None,
        b=None,
        random_state=None,
        angular_rp_forest=False,
        n_trees=None,
        n_iters=None,
        max_candidates=60,
        n_jobs=-1,
        verbose=False,
        tqdm_kwds=None,
    ):
        self.n_neighbors = n_neighbors
        self.metric = metric
        self.metric_kwds = metric_kwds
        self.n_epochs = n_epochs
        self.init = init
        self.n_components = n_components
        self.repulsion_strength = repulsion_strength
        self.learning_rate = learning_rate

        self.spread = spread
        self.min_dist = min_dist
        self.set_op_mix_ratio = set_op_mix_ratio
        self.local_connectivity = local_connectivity
        self.negative_sample_rate = negative_sample_rate
        self.random_state = random_state
        self.angular_rp_forest = angular_rp_forest
        self.n_trees = n_trees
        self.n_iters = n_iters
        self.max_candidates = max_candidates
        self.verbose = verbose
        self.tqdm_kwds = tqdm_kwds

        self.n_jobs = n_jobs

        self.a = a
        self.b = b

    def _validate_parameters(self):
        if self.set_op_mix_ratio < 0.0 or self.set_op_mix_ratio > 1.0:
            raise ValueError("set_op_mix_ratio must be between 0.0 and 1.0")
        if self.repulsion_strength < 0.0:
            raise ValueError("repulsion_strength cannot be negative")
        if self.min_dist > self.spread:
            raise ValueError("min_dist must be less than or equal to spread")
        if self.min_dist < 0.0:
            raise ValueError("min_dist cannot be negative")
        if self.spread <= 0.0:
            raise ValueError("spread must be positive")
        if not isinstance(self.init, str) and not isinstance(self.init, np.ndarray):
            raise ValueError("init must be a string or ndarray")
        if isinstance(self.init, str) and self.init not in (
            "pca",
            "spectral",
            "random",
        ):
            raise ValueError(
                'string init values must be one of: "pca", "spectral" or "random"'
            )
        if (
            isinstance(self.init, np.ndarray)
            and self.init.shape[1] != self.n_components
        ):
            raise ValueError("init ndarray must match n_components value")
        if not isinstance(self.metric, str) and not callable(self.metric):
            raise ValueError("metric must be string or callable")
        if self.negative_sample_rate < 0:
            raise ValueError("negative sample rate must be positive")
        if self._initial_alpha < 0.0:
            raise ValueError("learning_rate must be positive")
        if self.n_neighbors < 2:
            raise ValueError("n_neighbors must be greater than 1")
        if not isinstance(self.n_components, int):
            if isinstance(self.n_components, str):
                raise ValueError("n_components must be an int")
            if self.n_components % 1 != 0:
                raise ValueError("n_components must be a whole number")
            try:
                # this will convert other types of int (eg. numpy int64)
                # to Python int
                self.n_components = int(self.n_components)
            except ValueError:
                raise ValueError("n_components must be an int")
        if self.n_components < 1:
            raise ValueError("n_components must be greater than 0")
        if self.n_epochs is not None and (
            not isinstance(self.n_epochs, (int, np.integer))
            or isinstance(self.n_epochs, bool)
            or self.n_epochs < 0
        ):
            raise ValueError("n_epochs must be a nonnegative integer")
        if self.n_trees is not None and self.n_trees < 0:
            raise ValueError("n_trees cannot be negative")
        if self.n_iters is not None and self.n_iters < 0:
            raise ValueError("n_iters cannot be negative")
        if self.max_candidates < 1:
            raise ValueError("max_candidates must be a positive integer")
        if self.metric_kwds is not None and not isinstance(self.metric_kwds, dict):
            raise ValueError("metric_kwds must be a dictionary")
        if self.metric_kwds is None:
            self._metric_kwds = {}
        else:
            self._metric_kwds = self.metric_kwds

        if callable(self.metric):
            self._angular_rp_forest = self.angular_rp_forest
        elif self.metric in dist.named_distances:
            # set angularity for NN search based on metric
            self._angular_rp_forest = (
                self.angular_rp_forest or self.metric in dist.angular_distances
            )
        else:
            raise ValueError("metric is neither callable nor a recognised string")

        if self.n_jobs < -1 or self.n_jobs == 0:
            raise ValueError("n_jobs must be a postive integer, or -1 (for all cores)")

        if self.tqdm_kwds is None:
            self._tqdm_kwds = {}
        else:
            if isinstance(self.tqdm_kwds, dict) is False:
                raise ValueError(
                    "tqdm_kwds must be a dictionary. Please provide valid tqdm "
                    "parameters as key value pairs. Valid tqdm parameters can be "
                    "found here: https://github.com/tqdm/tqdm#parameters"
                )
            self._tqdm_kwds = dict(self.tqdm_kwds)
        if "desc" not in self._tqdm_kwds:
            self._tqdm_kwds["desc"] = "Epochs completed"
        if "bar_format" not in self._tqdm_kwds:
            bar_f = "{desc}: {percentage:3.0f}%| {bar} {n_fmt}/{total_fmt} [{elapsed}]"
            self._tqdm_kwds["bar_format"] = bar_f
        if "disable" not in self._tqdm_kwds:
            self._tqdm_kwds["disable"] = not self.verbose

    def _check_input(self, X):
        X = check_array(X, dtype=np.float32, order="C")
        if X.shape[0] <= self.n_neighbors:
            raise ValueError(
                "n_neighbors ({}) must be smaller than the number of samples "
                "({})".format(self.n_neighbors, X.shape[0])
            )
        return X

    @contextmanager
    def _numba_threads(self):
        original_n_threads = numba.get_num_threads()
        if self.n_jobs > 0:
            numba.set_num_threads(min(self.n_jobs, numba.config.NUMBA_NUM_THREADS))
        try:
            yield
        finally:
            numba.set_num_threads(original_n_threads)

    def _nearest_neighbors(self, X, random_source, progress_callback, should_continue):
        with self._numba_threads():
            return nearest_neighbors(
                X,
                self.n_neighbors,
                self.metric,
                self._metric_kwds,
                self._angular_rp_forest,
                random_source,
                n_trees=self.n_trees,
                n_iters=self.n_iters,
                max_candidates=self.max_candidates,
                progress_callback=progress_callback,
                should_continue=should_continue,
                verbose=self.verbose,
            )

    def nearest_neighbors(self, X, progress_callback=None, should_continue=None):
        """Approximate the ``n_neighbors`` nearest neighbors of every point in
        ``X`` with this estimator's metric and search settings.

        Parameters
        ----------
        X : array, shape (n_samples, n_features)

        progress_callback : callable or None
            Called with the fraction of the search completed, increasing
            from 0.0 to 1.0.

        should_continue : callable or None
            Polled between refinement rounds; returning False returns the
            current approximation.

        Returns
        -------
        knn_indices, knn_dists : arrays of shape (n_samples, n_neighbors)
        """
        self._initial_alpha = self.learning_rate
        self._validate_parameters()
        X = self._check_input(X)
        random_source = check_random_source(self.random_state)
        return self._nearest_neighbors(
            X, random_source, progress_callback, should_continue
        )

    def _initial_embedding(self, X, graph, random_source):
        n_samples = X.shape[0]
        if isinstance(self.init, str) and self.init == "random":
            embedding = random_layout(n_samples, self.n_components, random_source)
        elif isinstance(self.init, str) and self.init == "pca":
            pca = PCA(n_components=self.n_components, svd_solver="full")
            embedding = pca.fit_transform(X).astype(np.float32)
            embedding = noisy_scale_coords(
                embedding, random_source, max_coord=10, noise=0.0001
            )
        elif isinstance(self.init, str) and self.init == "spectral":
            embedding = spectral_layout(graph, self.n_components, random_source)
            # We add a little noise to avoid local minima for optimization to come
            embedding = noisy_scale_coords(
                embedding, random_source, max_coord=10, noise=0.0001
            )
        else:
            embedding = check_array(self.init, dtype=np.float32)
            if embedding.shape != (n_samples, self.n_components):
                raise ValueError(
                    "init ndarray must have shape (n_samples, n_components); "
                    "got {}".format(embedding.shape)
                )
        return rescale_embedding(embedding)

    def initialize_fit(self, X, progress_callback=None, should_continue=None):
        """Build the fuzzy graph of ``X`` and prepare the embedding
        optimization without running any epochs.

        Parameters
        ----------
        X : array, shape (n_samples, n_features)
            Contains a sample per row.

        progress_callback : callable or None
            Receives the fraction of the nearest neighbor search completed.

        should_continue : callable or None
            Polled between nearest neighbor refinement rounds; returning
            False finishes the search early with the current approximation.

        Returns
        -------
        n_epochs : int
            The number of epochs ``step`` will run.
        """
        X = check_array(X, dtype=np.float32, order="C")
        self._raw_data = X

        self._initial_alpha = self.learning_rate

        self._validate_parameters()
        X = self._check_input(X)

        # Handle all the optional arguments, setting default
        if self.a is None or self.b is None:
            self._a, self._b = find_ab_params(self.spread, self.min_dist)
        else:
            self._a = self.a
            self._b = self.b

        if self.verbose:
            print(str(self))

        random_source = check_random_source(self.random_state)
        parallel = self.n_jobs != 1
        if parallel and not random_source.is_thread_safe():
            parallel = False
            warn(
                f"n_jobs value {self.n_jobs} overridden to 1 by setting "
                "random_state. Use no seed for parallelism."
            )
        self._random_source = random_source

        if self.verbose:
            print(ts(), "Construct fuzzy simplicial set")

        self._knn_indices, self._knn_dists = self._nearest_neighbors(
            X, random_source, progress_callback, should_continue
        )
        self.graph_, self._sigmas, self._rhos = fuzzy_simplicial_set(
            X,
            self.n_neighbors,
            random_source,
            self.metric,
            self._metric_kwds,
            self._knn_indices,
            self._knn_dists,
            self._angular_rp_forest,
            self.set_op_mix_ratio,
            self.local_connectivity,
            self.verbose,
        )

        # For smaller datasets we can use more epochs
        if X.shape[0] <= 10000:
            default_epochs = 500
        else:
            default_epochs = 200

        if self.n_epochs is None:
            n_epochs = default_epochs
        else:
            n_epochs = int(self.n_epochs)
        self._n_epochs = n_epochs

        if self.verbose:
            print(ts(), "Construct embedding")

        graph = prune_graph(self.graph_, n_epochs, default_epochs)
        embedding = self._initial_embedding(X, graph, random_source)

        self._optimizer = EmbeddingOptimizer(
            random_source,
            gamma=self.repulsion_strength,
            initial_alpha=self._initial_alpha,
            negative_sample_rate=self.negative_sample_rate,
            parallel=parallel,
            verbose=self.verbose,
        ).initialize(graph, self._a, self._b, n_epochs, embedding)

        return n_epochs

    def step(self):
        """Run one epoch of the embedding optimization. Once every epoch has
        run, further calls leave the embedding unchanged.

        Returns
        -------
        epoch : int
            The number of epochs completed.
        """
        check_is_fitted(self, "graph_")
        with self._numba_threads():
            return self._optimizer.step()

    def get_embedding(self):
        """A copy of the current embedding, of shape (n_samples, n_components)."""
        check_is_fitted(self, "graph_")
        return self._optimizer.embedding.copy()

    def fit(self, X, y=None):
        """Fit X into an embedded space.

        Parameters
        ----------
        X : array, shape (n_samples, n_features)
            Contains a sample per row.

        y : Ignored
        """
        n_epochs = self.initialize_fit(X)

        for n in tqdm(range(n_epochs), **self._tqdm_kwds):
            self.step()

        self.embedding_ = self.get_embedding()

        if self.verbose:
            print(ts() + " Finished embedding")

        return self

    def fit_transform(self, X, y=None):
        """Fit X into an embedded space and return that transformed
        output.

        Parameters
        ----------
        X : array, shape (n_samples, n_features)
            Contains a sample per row.

        y : Ignored

        Returns
        -------
        X_new : array, shape (n_samples, n_components)
            Embedding of the training data in low-dimensional space.
        """
        self.fit(X, y)
        return self.embedding_

    def __repr__(self):
        from sklearn.utils._pprint import _EstimatorPrettyPrinter
        import re

        pp = _EstimatorPrettyPrinter(
            compact=True,
            indent=1,
            indent_at_name=True,
            n_max_elements_to_show=50,
        )
        pp._changed_only = True
        repr_ = pp.pformat(self)
        repr_ = re.sub("tqdm_kwds={.*},", "", repr_, flags=re.S)
        # remove empty lines
        repr_ = re.sub("\n *\n", "\n", repr_, flags=re.S)
        # remove extra whitespaces after a comma
        repr_ = re.sub(", +", ", ", repr_)
        return repr_
