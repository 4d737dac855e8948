# A sparse (row, col) -> weight graph on top of scipy.sparse
#
# License: BSD 3 clause
import numpy as np
import scipy.sparse


def _check_bounds(rows, cols, shape):
    if __debug__:
        rows = np.asarray(rows)
        cols = np.asarray(cols)
        bad = (rows < 0) | (rows >= shape[0]) | (cols < 0) | (cols >= shape[1])
        if np.any(bad):
            first = np.flatnonzero(np.ravel(bad))[0]
            raise IndexError(
                "({}, {}) is out of bounds for a graph of shape {}".format(
                    np.ravel(rows)[first], np.ravel(cols)[first], shape
                )
            )


def _canonical_csr(matrix):
    # sorted column indices per row, no duplicates, explicit zeros kept
    matrix = scipy.sparse.csr_matrix(matrix, dtype=np.float64)
    matrix.sum_duplicates()
    return matrix


class SparseGraph(object):
    """A sparse mapping from ``(row, col)`` coordinates to float weights with
    a fixed shape. Cells that were never set are implicitly zero, but a cell
    that was explicitly set to zero is still stored (see ``eliminate_zeros``).

    The cells live in a canonical ``scipy.sparse.csr_matrix``, so iteration
    (``row``, ``col``, ``data``, ``items``, ``for_each``) runs in row-major
    order.

    Parameters
    ----------
    rows: array-like of int
        Row coordinate of each stored entry.

    cols: array-like of int
        Column coordinate of each stored entry.

    values: array-like of float
        Value of each stored entry. When a coordinate is repeated the last
        value wins.

    shape: tuple (n_rows, n_cols)
        The dense shape of the graph.
    """

    def __init__(self, rows, cols, values, shape):
        rows = np.asarray(rows, dtype=np.int64).ravel()
        cols = np.asarray(cols, dtype=np.int64).ravel()
        values = np.asarray(values, dtype=np.float64).ravel()
        if not (rows.shape[0] == cols.shape[0] == values.shape[0]):
            raise ValueError(
                "rows, cols and values must have the same length; got "
                "{}, {} and {}".format(rows.shape[0], cols.shape[0], values.shape[0])
            )
        if len(shape) != 2:
            raise ValueError("shape must be a pair (n_rows, n_cols)")
        shape = (int(shape[0]), int(shape[1]))
        _check_bounds(rows, cols, shape)

        if rows.shape[0] > 1:
            keys = rows * shape[1] + cols
            unique_keys, last = np.unique(keys[::-1], return_index=True)
            if unique_keys.shape[0] < keys.shape[0]:
                keep = keys.shape[0] - 1 - last
                rows, cols, values = rows[keep], cols[keep], values[keep]

        self._matrix = _canonical_csr(
            scipy.sparse.coo_matrix((values, (rows, cols)), shape=shape)
        )

    @classmethod
    def _from_matrix(cls, matrix):
        graph = cls.__new__(cls)
        graph._matrix = _canonical_csr(matrix)
        return graph

    def _check_shape(self, other):
        if self.shape != other.shape:
            raise ValueError(
                "shape mismatch: {} and {}".format(self.shape, other.shape)
            )

    def _find(self, row, col):
        start = self._matrix.indptr[row]
        end = self._matrix.indptr[row + 1]
        offset = np.searchsorted(self._matrix.indices[start:end], col)
        if start + offset < end and self._matrix.indices[start + offset] == col:
            return start + offset
        return -1

    @property
    def shape(self):
        return self._matrix.shape

    @property
    def nnz(self):
        return self._matrix.nnz

    def __len__(self):
        return self._matrix.nnz

    @property
    def row(self):
        return np.repeat(
            np.arange(self.shape[0], dtype=np.int64), np.diff(self._matrix.indptr)
        )

    @property
    def col(self):
        return self._matrix.indices.astype(np.int64)

    @property
    def data(self):
        return self._matrix.data.copy()

    def get(self, row, col, default=0.0):
        _check_bounds(row, col, self.shape)
        position = self._find(row, col)
        if position < 0:
            return default
        return float(self._matrix.data[position])

    def set(self, row, col, value):
        _check_bounds(row, col, self.shape)
        position = self._find(row, col)
        if position >= 0:
            self._matrix.data[position] = float(value)
            return
        coo = self._matrix.tocoo()
        self._matrix = _canonical_csr(
            scipy.sparse.coo_matrix(
                (
                    np.append(coo.data, float(value)),
                    (np.append(coo.row, int(row)), np.append(coo.col, int(col))),
                ),
                shape=self.shape,
            )
        )

    def items(self):
        """Iterate over ``((row, col), value)`` pairs in row-major order."""
        return zip(
            zip(self.row.tolist(), self.col.tolist()), self._matrix.data.tolist()
        )

    def map(self, fn, with_position=False):
        """Return a new graph with ``fn`` applied to every stored value.

        If ``with_position`` is True ``fn`` is called as
        ``fn(value, row, col)``, otherwise as ``fn(value)``.
        """
        if with_position:
            values = [
                fn(value, row, col)
                for (row, col), value in self.items()
            ]
        else:
            values = [fn(value) for value in self._matrix.data.tolist()]
        matrix = self._matrix.copy()
        matrix.data = np.asarray(values, dtype=np.float64).reshape(-1)
        return self._from_matrix(matrix)

    def for_each(self, fn):
        for (row, col), value in self.items():
            fn(value, row, col)

    def transpose(self):
        return self._from_matrix(self._matrix.transpose())

    @property
    def T(self):
        return self.transpose()

    def _union(self, other, sign):
        self._check_shape(other)
        left = self._matrix.tocoo()
        right = other._matrix.tocoo()
        # cells stored in both graphs are summed when the duplicates collapse
        stacked = scipy.sparse.coo_matrix(
            (
                np.concatenate((left.data, sign * right.data)),
                (
                    np.concatenate((left.row, right.row)),
                    np.concatenate((left.col, right.col)),
                ),
            ),
            shape=self.shape,
        )
        return self._from_matrix(stacked)

    def add(self, other):
        """Elementwise sum over the union of stored cells."""
        return self._union(other, 1.0)

    def subtract(self, other):
        """Elementwise difference over the union of stored cells."""
        return self._union(other, -1.0)

    def pairwise_multiply(self, other):
        """Elementwise product over the intersection of stored cells. Zero
        products are not stored."""
        self._check_shape(other)
        return self._from_matrix(self._matrix.multiply(other._matrix))

    def multiply_scalar(self, scalar):
        return self._from_matrix(self._matrix * float(scalar))

    def __add__(self, other):
        return self.add(other)

    def __sub__(self, other):
        return self.subtract(other)

    def eliminate_zeros(self):
        """Drop stored cells whose value is exactly zero, in place."""
        self._matrix.eliminate_zeros()
        return self

    def max(self):
        if self.nnz == 0:
            return 0.0
        return float(self._matrix.data.max())

    def to_row_major(self):
        """Export the graph in row-major order.

        Returns
        -------
        indices: array of int64
            Column of each stored entry, sorted by row then column.

        values: array of float64
            The matching values.

        indptr: array of int64
            One entry per distinct occupied row (in increasing row order)
            giving the offset where that row's entries start.
        """
        indptr = self._matrix.indptr.astype(np.int64)
        starts = indptr[:-1][np.diff(indptr) > 0]
        return self.col, self.data, starts

    def occupied_rows(self):
        """The distinct occupied rows, in the order used by ``to_row_major``."""
        return np.flatnonzero(np.diff(self._matrix.indptr)).astype(np.int64)

    @classmethod
    def from_row_major(cls, indices, values, indptr, shape, rows=None):
        """Rebuild a graph from the output of ``to_row_major``.

        ``rows`` names the row of each ``indptr`` entry and defaults to
        ``0, 1, ..., len(indptr) - 1``.
        """
        indices = np.asarray(indices, dtype=np.int64)
        indptr = np.asarray(indptr, dtype=np.int64)
        if rows is None:
            rows = np.arange(indptr.shape[0], dtype=np.int64)
        else:
            rows = np.asarray(rows, dtype=np.int64)
        if rows.shape[0] != indptr.shape[0]:
            raise ValueError("rows and indptr must have the same length")
        bounds = np.append(indptr, indices.shape[0])
        counts = np.diff(bounds)
        return cls(np.repeat(rows, counts), indices, values, shape)

    def toarray(self):
        return self._matrix.toarray()

    def tocoo(self):
        return self._matrix.tocoo(copy=True)

    def tocsr(self):
        return self._matrix.copy()

    @classmethod
    def from_coo(cls, matrix):
        """Build a graph from any scipy sparse matrix; duplicates are summed."""
        return cls._from_matrix(scipy.sparse.csr_matrix(matrix, copy=True))

    def __eq__(self, other):
        if not isinstance(other, SparseGraph):
            return NotImplemented
        return (
            self.shape == other.shape
            and np.array_equal(self._matrix.indptr, other._matrix.indptr)
            and np.array_equal(self._matrix.indices, other._matrix.indices)
            and np.array_equal(self._matrix.data, other._matrix.data)
        )

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    __hash__ = None

    def __repr__(self):
        return "SparseGraph(shape={}, nnz={})".format(self.shape, self.nnz)
