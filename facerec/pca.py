# facerec/pca.py
import numpy as np
import config
from facerec.errors import EmptyDataset
from facerec.matrix import Matrix, covariance, eigh, product


class PCA:
    """
    Principal Component Analysis on a mean-centered image matrix.

    Images are the columns of X (d pixels x n images). When there are fewer
    images than pixels the n x n surrogate X^T X / (n - 1) is decomposed
    instead of the d x d covariance; both share their nonzero eigenvalues
    and the eigenfaces are recovered as X * v.

    The fitted object is the artifact consumed by LDA and ICA.
    """

    def __init__(self, n_components=-1):
        self.n_components = n_components
        self.W = None
        self.P = None
        self.eigenvalues = None
        self.explained_variance_ratio_ = None
        self.rank = None

    def fit(self, X):
        d, n = X.shape
        if n < 2:
            raise EmptyDataset(f"PCA needs at least two images, got {n}")

        if d <= n:
            C = covariance(X)
        else:
            C = product(X, X, True, False).scale(1.0 / (n - 1))

        eigenvalues, V = eigh(C)

        values = eigenvalues.data.ravel()
        self.rank = self._numerical_rank(values)
        if self.rank == 0:
            raise EmptyDataset("PCA found no variance in the training images")

        k = self.rank
        if self.n_components is not None and self.n_components > 0:
            k = min(self.n_components, self.rank)

        if d <= n:
            W = V.copy_columns(0, k)
        else:
            # map surrogate eigenvectors back to image space and normalize
            W = product(X, V.copy_columns(0, k))
            W.data /= np.linalg.norm(W.data, axis=0, keepdims=True)

        self.W = W
        self.eigenvalues = Matrix(k, 1, values[:k].reshape(-1, 1))

        total_variance = np.sum(np.clip(values, 0, None))
        self.explained_variance_ratio_ = values[:k] / total_variance

        self.P = self.transform(X)
        return self

    @staticmethod
    def _numerical_rank(values):
        if len(values) == 0 or values[0] <= 0:
            return 0
        tolerance = values[0] * config.EIGENVALUE_RANK_TOLERANCE
        return int(np.sum(values > tolerance))

    def transform(self, X):
        return product(self.W, X, True, False)

    def inverse_transform(self, P):
        return product(self.W, P)
