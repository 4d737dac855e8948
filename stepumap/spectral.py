from warnings import warn

import numpy as np

import scipy.sparse
import scipy.sparse.csgraph
import scipy.sparse.linalg


def random_layout(n_samples, dim, random_source):
    """Uniform random coordinates in [-10, 10) drawn from ``random_source``."""
    buffer = np.empty(n_samples * dim, dtype=np.float32)
    random_source.fill_floats(buffer)
    return (buffer.reshape((n_samples, dim)) * 20.0 - 10.0).astype(np.float32)


def spectral_layout(graph, dim, random_source, tol=0.0, maxiter=0):
    """
    Given a graph compute the spectral embedding of the graph. This is
    simply the eigenvectors of the laplacian of the graph. Here we use the
    normalized laplacian.

    If the graph is not connected, or the eigensolver fails, a warning is
    issued and a random layout is returned instead.

    Parameters
    ----------
    graph: SparseGraph or scipy sparse matrix
        The (weighted, symmetric) adjacency matrix of the graph.

    dim: int
        The dimension of the space into which to embed.

    random_source: random source
        Used only for the random fallback layout.

    tol: float, default chosen by implementation
        Stopping tolerance for the numerical algorithm computing the embedding.

    maxiter: int, default chosen by implementation
        Number of iterations the numerical algorithm will go through at most as it
        attempts to compute the embedding.

    Returns
    -------
    embedding: array of shape (n_vertices, dim)
        The spectral embedding of the graph.
    """
    graph = graph.tocsr()
    n_samples = graph.shape[0]
    k = dim + 1
    if k >= n_samples:
        warn(
            "Spectral initialisation needs more points than embedding "
            "dimensions plus one.\n\nFalling back to random initialisation!"
        )
        return random_layout(n_samples, dim, random_source)

    n_components, labels = scipy.sparse.csgraph.connected_components(graph)
    if n_components > 1:
        warn(
            "Spectral initialisation found {} connected components in the "
            "graph.\n\nFalling back to random initialisation!".format(n_components)
        )
        return random_layout(n_samples, dim, random_source)

    sqrt_deg = np.sqrt(np.asarray(graph.sum(axis=0)).squeeze())
    # Normalized Laplacian
    I = scipy.sparse.identity(graph.shape[0], dtype=np.float64)
    D = scipy.sparse.spdiags(1.0 / sqrt_deg, 0, graph.shape[0], graph.shape[0])
    L = I - D * graph * D

    num_lanczos_vectors = max(2 * k + 1, int(np.sqrt(graph.shape[0])))
    try:
        eigenvalues, eigenvectors = scipy.sparse.linalg.eigsh(
            L,
            k,
            which="SM",
            ncv=min(num_lanczos_vectors, n_samples),
            tol=tol or 1e-4,
            v0=np.ones(L.shape[0]),
            maxiter=maxiter or graph.shape[0] * 5,
        )
        order = np.argsort(eigenvalues)[1:k]
        return eigenvectors[:, order]
    except scipy.sparse.linalg.ArpackError:
        warn(
            "Spectral initialisation failed! The eigenvector solver\n"
            "failed. This is likely due to too small an eigengap. Consider\n"
            "adding some noise or jitter to your data.\n\n"
            "Falling back to random initialisation!"
        )
        return random_layout(n_samples, dim, random_source)
