"""
Watch an embedding of the iris dataset form, one epoch at a time.
"""
import numpy as np
from sklearn.datasets import load_iris
from sklearn.manifold import trustworthiness

import stepumap

iris = load_iris()
reducer = stepumap.UMAP(n_neighbors=10, min_dist=0.01, random_state=42)

n_epochs = reducer.initialize_fit(iris.data)
for epoch in range(n_epochs):
    reducer.step()
    if epoch % 50 == 0 or epoch == n_epochs - 1:
        embedding = reducer.get_embedding()
        centroids = np.array(
            [embedding[iris.target == label].mean(axis=0) for label in range(3)]
        )
        print(
            "epoch {:3d}  trustworthiness {:.3f}  setosa distance {:.2f}".format(
                epoch + 1,
                trustworthiness(iris.data, embedding, n_neighbors=10),
                np.linalg.norm(centroids[0] - centroids[1:].mean(axis=0)),
            )
        )
