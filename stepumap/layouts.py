import numba
import numpy as np

from stepumap.utils import ts

OPTIMIZER_STATES = ("uninitialized", "ready", "running", "done")


@numba.njit(inline="always")
def clip(val):
    """Standard clamping of a value into a fixed range (in this case -4.0 to
    4.0)

    Parameters
    ----------
    val: float
        The value to be clamped.

    Returns
    -------
    The clamped value, now fixed to be in the range -4.0 to 4.0.
    """
    if val > 4.0:
        return 4.0
    elif val < -4.0:
        return -4.0
    else:
        return val


@numba.njit(
    "f4(f4[::1],f4[::1])",
    fastmath=True,
    cache=True,
    locals={
        "result": numba.types.float32,
        "diff": numba.types.float32,
        "dim": numba.types.intp,
        "i": numba.types.intp,
    },
)
def rdist(x, y):
    """Reduced Euclidean distance.

    Parameters
    ----------
    x: array of shape (embedding_dim,)
    y: array of shape (embedding_dim,)

    Returns
    -------
    The squared euclidean distance between x and y
    """
    result = 0.0
    dim = x.shape[0]
    for i in range(dim):
        diff = x[i] - y[i]
        result += diff * diff

    return result


def make_epochs_per_sample(weights, n_epochs):
    """Given a set of weights and number of epochs generate the number of
    epochs per sample for each weight.

    Parameters
    ----------
    weights: array of shape (n_1_simplices)
        The weights of how much we wish to sample each 1-simplex.

    n_epochs: int
        The total number of epochs we want to train for.

    Returns
    -------
    An array of number of epochs per sample, one for each 1-simplex. Edges
    of zero weight get -1 and are never sampled.
    """
    result = -1.0 * np.ones(weights.shape[0], dtype=np.float64)
    if weights.shape[0] == 0 or weights.max() <= 0.0:
        return result
    n_samples = n_epochs * (weights / weights.max())
    result[n_samples > 0] = float(n_epochs) / np.float64(n_samples[n_samples > 0])
    return result


@numba.njit(fastmath=True)
def _update_edge(
    embedding,
    j,
    k,
    n_neg_samples,
    neg_offset,
    neg_floats,
    n_vertices,
    a,
    b,
    gamma,
    dim,
    alpha,
    move_other,
):
    current = embedding[j]
    other = embedding[k]

    dist_squared = rdist(current, other)

    if dist_squared > 0.0:
        grad_coeff = -2.0 * a * b * pow(dist_squared, b - 1.0)
        grad_coeff /= a * pow(dist_squared, b) + 1.0
    else:
        grad_coeff = 0.0

    for d in range(dim):
        grad_d = clip(grad_coeff * (current[d] - other[d]))

        current[d] += grad_d * alpha
        if move_other:
            other[d] += -grad_d * alpha

    for p in range(n_neg_samples):
        k = int(neg_floats[neg_offset + p] * n_vertices)
        if k >= n_vertices:
            k = n_vertices - 1
        if j == k:
            continue

        other = embedding[k]

        dist_squared = rdist(current, other)

        if dist_squared > 0.0:
            grad_coeff = 2.0 * gamma * b
            grad_coeff /= (0.001 + dist_squared) * (a * pow(dist_squared, b) + 1)
        else:
            grad_coeff = 0.0

        if grad_coeff > 0.0:
            for d in range(dim):
                grad_d = clip(grad_coeff * (current[d] - other[d]))
                current[d] += grad_d * alpha


@numba.njit(fastmath=True)
def optimize_layout_euclidean_single_epoch(
    embedding,
    head,
    tail,
    due,
    n_neg_samples,
    neg_offsets,
    neg_floats,
    n_vertices,
    a,
    b,
    gamma,
    dim,
    alpha,
):
    """Run one epoch over the due edges in row-major order on a single
    thread. Both endpoints of an edge move under the attractive force."""
    for i in range(head.shape[0]):
        if due[i]:
            _update_edge(
                embedding,
                head[i],
                tail[i],
                n_neg_samples[i],
                neg_offsets[i],
                neg_floats,
                n_vertices,
                a,
                b,
                gamma,
                dim,
                alpha,
                True,
            )


@numba.njit(fastmath=True, parallel=True)
def optimize_layout_euclidean_single_epoch_partitioned(
    embedding,
    csr_indptr,
    csr_indices,
    due,
    n_neg_samples,
    neg_offsets,
    neg_floats,
    partition_bounds,
    n_vertices,
    a,
    b,
    gamma,
    dim,
    alpha,
):
    """Run one epoch with the vertices split into contiguous ranges, one
    range per worker. A worker visits only the edges whose head lies in its
    range and moves only the head, so no two workers write the same row.
    The reverse edge moves the tail when its own row is processed."""
    for w in numba.prange(partition_bounds.shape[0] - 1):
        for from_node in range(partition_bounds[w], partition_bounds[w + 1]):
            for raw_index in range(csr_indptr[from_node], csr_indptr[from_node + 1]):
                if due[raw_index]:
                    _update_edge(
                        embedding,
                        from_node,
                        csr_indices[raw_index],
                        n_neg_samples[raw_index],
                        neg_offsets[raw_index],
                        neg_floats,
                        n_vertices,
                        a,
                        b,
                        gamma,
                        dim,
                        alpha,
                        False,
                    )


class EmbeddingOptimizer(object):
    """Stepwise stochastic gradient descent of a low dimensional embedding
    against a fuzzy graph. Each call to ``step`` runs one epoch.

    The optimizer moves through the states ``"uninitialized"``,
    ``"ready"``, ``"running"`` and ``"done"``.

    Parameters
    ----------
    random_source: random source
        Supplies the negative samples (see ``stepumap.random_source``).

    gamma: float (optional, default 1.0)
        Weight to apply to negative samples.

    initial_alpha: float (optional, default 1.0)
        Initial learning rate for the SGD.

    negative_sample_rate: int (optional, default 5)
        Number of negative samples per positive sample.

    parallel: bool (optional, default False)
        Run epochs partitioned across numba threads. Only honoured when the
        random source is thread safe.

    verbose: bool (optional, default False)
    """

    def __init__(
        self,
        random_source,
        gamma=1.0,
        initial_alpha=1.0,
        negative_sample_rate=5,
        parallel=False,
        verbose=False,
    ):
        self.random_source = random_source
        self.gamma = gamma
        self.initial_alpha = initial_alpha
        self.negative_sample_rate = negative_sample_rate
        self.parallel = bool(parallel) and random_source.is_thread_safe()
        self.verbose = verbose

        self.state = "uninitialized"
        self.epoch = 0
        self.n_epochs = 0
        self.embedding = None

    @property
    def done(self):
        return self.state == "done"

    def initialize(self, graph, a, b, n_epochs, initial_embedding):
        """Prepare to optimize ``initial_embedding`` against ``graph``.

        Parameters
        ----------
        graph: SparseGraph
            The (pruned) fuzzy graph of shape (n_samples, n_samples).

        a, b: float
            Parameters of the low dimensional membership curve.

        n_epochs: int
            The number of epochs ``step`` will run.

        initial_embedding: array of shape (n_samples, n_components)
            Copied; the optimizer works on its own array.
        """
        embedding = np.array(initial_embedding, dtype=np.float32, order="C")
        n_vertices = embedding.shape[0]
        if graph.shape[0] != n_vertices:
            raise ValueError(
                "graph has {} rows but the embedding has {} points".format(
                    graph.shape[0], n_vertices
                )
            )
        n_epochs = int(n_epochs)
        if n_epochs < 0:
            raise ValueError("n_epochs must be a nonnegative integer")

        indices, values, indptr = graph.to_row_major()
        rows = graph.occupied_rows()
        counts = np.diff(np.append(indptr, indices.shape[0]))

        self._head = np.repeat(rows, counts).astype(np.int64)
        self._tail = indices.astype(np.int64)
        self._csr_indptr = np.searchsorted(
            self._head, np.arange(n_vertices + 1)
        ).astype(np.int64)

        self.embedding = embedding
        self._a = float(a)
        self._b = float(b)
        self.n_epochs = n_epochs
        self.epoch = 0

        self.epochs_per_sample = make_epochs_per_sample(values, n_epochs)
        if self.negative_sample_rate > 0:
            self.epochs_per_negative_sample = (
                self.epochs_per_sample / self.negative_sample_rate
            )
        else:
            self.epochs_per_negative_sample = np.full(
                self.epochs_per_sample.shape[0], np.inf
            )
        self.epoch_of_next_sample = self.epochs_per_sample.copy()
        self.epoch_of_next_negative_sample = self.epochs_per_negative_sample.copy()

        if self.parallel:
            n_partitions = max(1, min(numba.get_num_threads(), n_vertices))
            self._partition_bounds = np.linspace(
                0, n_vertices, n_partitions + 1
            ).astype(np.int64)

        if self.verbose:
            print(
                ts(),
                "Optimizing",
                self._head.shape[0],
                "edges for",
                n_epochs,
                "epochs",
                "(parallel)" if self.parallel else "",
            )

        self.state = "done" if n_epochs == 0 else "ready"
        return self

    @property
    def alpha(self):
        """The learning rate of the next epoch."""
        if self.n_epochs == 0:
            return 0.0
        return self.initial_alpha * (1.0 - (float(self.epoch) / float(self.n_epochs)))

    def _negative_samples(self, due, n):
        n_edges = due.shape[0]
        n_neg_samples = np.zeros(n_edges, dtype=np.int64)
        if self.negative_sample_rate > 0:
            n_neg_samples[due] = np.maximum(
                (
                    (n - self.epoch_of_next_negative_sample[due])
                    / self.epochs_per_negative_sample[due]
                ).astype(np.int64),
                0,
            )
        neg_offsets = np.zeros(n_edges, dtype=np.int64)
        if n_edges > 1:
            neg_offsets[1:] = np.cumsum(n_neg_samples)[:-1]
        neg_floats = np.empty(int(n_neg_samples.sum()), dtype=np.float32)
        if neg_floats.shape[0] > 0:
            self.random_source.fill_floats(neg_floats)
        return n_neg_samples, neg_offsets, neg_floats

    def step(self):
        """Run a single epoch. Does nothing once all epochs have run.

        Returns
        -------
        epoch: int
            The number of epochs completed so far.
        """
        if self.state == "uninitialized":
            raise ValueError("EmbeddingOptimizer.initialize must be called before step")
        if self.state == "done":
            return self.epoch

        self.state = "running"
        n = self.epoch
        alpha = self.alpha
        n_vertices, dim = self.embedding.shape

        due = (self.epoch_of_next_sample <= n) & (self.epochs_per_sample > 0)
        n_neg_samples, neg_offsets, neg_floats = self._negative_samples(due, n)

        if self.parallel:
            optimize_layout_euclidean_single_epoch_partitioned(
                self.embedding,
                self._csr_indptr,
                self._tail,
                due,
                n_neg_samples,
                neg_offsets,
                neg_floats,
                self._partition_bounds,
                n_vertices,
                self._a,
                self._b,
                self.gamma,
                dim,
                alpha,
            )
        else:
            optimize_layout_euclidean_single_epoch(
                self.embedding,
                self._head,
                self._tail,
                due,
                n_neg_samples,
                neg_offsets,
                neg_floats,
                n_vertices,
                self._a,
                self._b,
                self.gamma,
                dim,
                alpha,
            )

        self.epoch_of_next_sample[due] += self.epochs_per_sample[due]
        if self.negative_sample_rate > 0:
            self.epoch_of_next_negative_sample[due] += (
                n_neg_samples[due] * self.epochs_per_negative_sample[due]
            )

        self.epoch += 1
        if self.epoch >= self.n_epochs:
            self.state = "done"
        return self.epoch
