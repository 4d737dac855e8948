from stepumap import UMAP
import numpy as np
from sklearn.cluster import KMeans
from sklearn.metrics import adjusted_rand_score
from sklearn.manifold import trustworthiness

# ===================================================
#  UMAP Test cases on IRIS Dataset
# ===================================================

# UMAP Trustworthiness on iris
# ----------------------------
def test_umap_trustworthiness_on_iris(iris, iris_model):
    embedding = iris_model.embedding_
    trust = trustworthiness(iris.data, embedding, n_neighbors=10)
    assert (
        trust >= 0.95
    ), "Insufficiently trustworthy embedding for" "iris dataset: {}".format(trust)


def test_initialized_umap_trustworthiness_on_iris(iris):
    data = iris.data
    embedding = UMAP(
        n_neighbors=10,
        min_dist=0.01,
        init=data[:, 2:],
        n_epochs=200,
        random_state=42,
    ).fit_transform(data)
    trust = trustworthiness(iris.data, embedding, n_neighbors=10)
    assert (
        trust >= 0.95
    ), "Insufficiently trustworthy embedding for" "iris dataset: {}".format(trust)


def test_spectral_umap_trustworthiness_on_iris(iris):
    data = iris.data
    embedding = UMAP(
        n_neighbors=10,
        min_dist=0.01,
        init="spectral",
        n_epochs=200,
        random_state=42,
    ).fit_transform(data)
    trust = trustworthiness(iris.data, embedding, n_neighbors=10)
    assert (
        trust >= 0.95
    ), "Insufficiently trustworthy embedding for" "iris dataset: {}".format(trust)


# UMAP Clusterability on Iris
# ---------------------------
def test_umap_clusterability_on_iris(iris, iris_model):
    embedding = iris_model.embedding_
    # setosa is far from the other two species
    labels = KMeans(n_clusters=2, n_init=10, random_state=42).fit_predict(embedding)
    setosa = iris.target == 0
    assert adjusted_rand_score(setosa.astype(int), labels) > 0.9


def test_iris_stepwise_snapshots(iris):
    u = UMAP(n_neighbors=10, n_epochs=100, random_state=42)
    u.initialize_fit(iris.data)
    snapshots = []
    for n in range(100):
        u.step()
        if n % 25 == 0:
            snapshots.append(u.get_embedding())
    assert len(snapshots) == 4
    assert all(snapshot.shape == (150, 2) for snapshot in snapshots)
    assert not np.array_equal(snapshots[0], snapshots[-1])
