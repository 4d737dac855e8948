from .umap_ import UMAP, find_ab_params
from .sparse import SparseGraph
from .layouts import EmbeddingOptimizer
from .random_source import (
    SeededRandomSource,
    DefaultRandomSource,
    check_random_source,
)

# Workaround: https://github.com/numba/numba/issues/3341
import numba

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("stepumap")
except PackageNotFoundError:
    __version__ = "0.1-dev"
