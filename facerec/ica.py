# facerec/ica.py
import numpy as np
import config
from facerec.errors import ConvergenceFailure
from facerec.matrix import Matrix, inverse, product, sqrtm, transpose


def symmetric_decorrelation(B):
    """Return B (B^T B)^-1/2, the closest matrix to B with orthonormal columns."""
    return product(B, inverse(sqrtm(product(B, B, True, False))))


class ICA:
    """
    Independent Component Analysis on PCA-whitened images.

    The whitened data Z = D^-1/2 W_pca^T X has identity covariance. A
    symmetric fixed-point iteration with the cubic (kurtosis) nonlinearity
    then estimates an orthogonal unmixing matrix B:

        B <- Z (Z^T B)^3 / n - 3 B
        B <- B (B^T B)^-1/2

    The iteration stops when 1 - min |diag(B^T B_old)| < epsilon. Reaching
    max_iterations first raises ConvergenceFailure.
    """

    def __init__(self, max_iterations=config.ICA_MAX_ITERATIONS, epsilon=config.ICA_EPSILON,
                 n_components=config.ICA_N_COMPONENTS, random_state=config.RANDOM_STATE):
        self.max_iterations = max_iterations
        self.epsilon = epsilon
        self.n_components = n_components
        self.random_state = random_state
        self.W = None
        self.P = None
        self.n_iterations = None

    def fit(self, pca, X):
        k = pca.W.cols
        if self.n_components is not None and self.n_components > 0:
            k = min(self.n_components, k)

        # whitening matrix V = D^-1/2 W_pca^T
        D = Matrix.diagonal(pca.eigenvalues.data[:k].ravel())
        V = product(inverse(sqrtm(D)), pca.W.copy_columns(0, k), False, True)
        Z = product(V, X)

        B = self._fixed_point(Z)

        self.W = product(V, B, True, False)
        self.P = product(self.W, X, True, False)
        return self

    def _fixed_point(self, Z):
        k, n = Z.shape
        rng = np.random.RandomState(self.random_state)
        B = symmetric_decorrelation(Matrix(k, k, rng.standard_normal((k, k))))

        delta = np.inf
        for iteration in range(1, self.max_iterations + 1):
            B_old = B

            Y = product(Z, B, True, False)
            Y.data **= 3
            B = product(Z, Y).scale(1.0 / n)
            B.subtract(B_old.copy().scale(3.0))
            B = symmetric_decorrelation(B)

            # converged when every column kept its direction (up to sign)
            overlap = np.abs(np.diag(product(B, B_old, True, False).data))
            delta = max(0.0, 1.0 - float(np.min(overlap)))

            if delta < self.epsilon:
                self.n_iterations = iteration
                return B

        raise ConvergenceFailure(
            f"ICA did not converge after {self.max_iterations} iterations "
            f"(delta={delta:g}, epsilon={self.epsilon:g})"
        )

    def transform(self, X):
        return product(transpose(self.W), X)
