"""
Test Suite for stepumap to ensure things are working as expected.

The test suite comprises multiple testing modules,
including multiple test cases related to a specific
set of features under test.

Backend
-------
pytest is the reference backend for testing environment and execution.

Shared Testing code
-------------------
Whenever needed, each module includes a set of
_utility_ functions that specify shared (and repeated)
testing operations.

Fixtures
--------
All data dependency has been implemented
as test fixtures (preferred to shared global variables).
All the fixtures shared by multiple test cases
are defined in the `conftest.py` module.

Fixtures allow the execution of each test module in isolation, as well
as within the whole test suite.

Modules in Tests (to keep up to date)
-------------------------------------
- conftest: pytest fixtures
- test_random_source:
    Tests for the seeded and thread safe random sources
- test_sparse_graph:
    Tests for the SparseGraph container and its set operations
- test_umap_nn:
    Tests for NearestNeighbours, random projection trees and smooth knn
- test_fuzzy_graph:
    Tests for fuzzy simplicial set construction and graph pruning
- test_curve_fit:
    Tests for fitting the a, b membership curve parameters
- test_layouts:
    Tests for the stepwise EmbeddingOptimizer
- test_umap:
    Tests for the stepwise UMAP estimator
- test_umap_on_iris:
    Tests for UMAP on Iris Dataset
- test_umap_validation_params:
    Tests for fit parameters validation

"""
