"""
This module implements Linear Discriminant Analysis (Fisherfaces) on top of
a fitted PCA.

The training images are first reduced to the top n1 principal components,
where the within-class scatter matrix is invertible. There the Fisher
criterion is maximized by solving the generalized eigenproblem

    Sb v = lambda Sw v

through the equivalent symmetric problem on Sw^-1/2 Sb Sw^-1/2. The final
basis composes the PCA and LDA projections so that it maps raw image space
directly to the n2-dimensional discriminant space.
"""

from facerec.errors import EmptyDataset
from facerec.matrix import Matrix, eigh, inverse, product, sqrtm


class LDA:
    """
    Fisher Linear Discriminant Analysis.

    Attributes:
        n1: Number of PCA components entering LDA (-1: n - c)
        n2: Number of LDA components kept (-1: c - 1)
        W: d x n2 basis mapping centered images to LDA space
        P: n2 x n projected training images
        eigenvalues: n2 x 1 Fisher ratios of the kept directions
    """

    def __init__(self, n1=-1, n2=-1):
        self.n1 = n1
        self.n2 = n2
        self.W = None
        self.P = None
        self.eigenvalues = None

    def fit(self, pca, X, entries):
        """
        Fit LDA on mean-centered images.

        Args:
            pca: Fitted PCA whose basis is read but never modified
            X: d x n mean-centered image matrix
            entries: The n training entries, in column order

        Returns:
            LDA: self

        Raises:
            EmptyDataset: If fewer than two labels are present
            SingularMatrix: If the within-class scatter is singular
        """
        n = X.cols
        if len(entries) != n:
            raise ValueError(f"LDA got {len(entries)} entries for {n} images")

        # group columns by label
        classes = {}
        for j, entry in enumerate(entries):
            classes.setdefault(entry.label.id, []).append(j)

        c = len(classes)
        if c < 2:
            raise EmptyDataset(f"LDA needs at least two labels, got {c}")

        n1 = self.n1 if self.n1 > 0 else n - c
        n1 = max(1, min(n1, pca.W.cols))
        n2 = self.n2 if self.n2 > 0 else c - 1
        n2 = max(1, min(n2, n1))

        W_pca = pca.W.copy_columns(0, n1)
        X_pca = product(W_pca, X, True, False)

        Sw, Sb = self._scatter_matrices(X_pca, classes)

        # whiten the within-class scatter and solve the symmetric problem
        Sw_inv_sqrt = inverse(sqrtm(Sw))
        J = product(product(Sw_inv_sqrt, Sb), Sw_inv_sqrt)
        J = Matrix(n1, n1, (J.data + J.data.T) / 2)

        eigenvalues, U = eigh(J)
        V = product(Sw_inv_sqrt, U.copy_columns(0, n2))

        self.W = product(W_pca, V)
        self.eigenvalues = Matrix(n2, 1, eigenvalues.data[:n2])
        self.P = product(self.W, X, True, False)
        return self

    @staticmethod
    def _scatter_matrices(X, classes):
        mean_total = X.mean_column()
        Sw = Matrix.zeros(X.rows, X.rows)
        Sb = Matrix.zeros(X.rows, X.rows)

        for columns in classes.values():
            X_class = Matrix(X.rows, len(columns), X.data[:, columns])
            mean_class = X_class.mean_column()

            # within-class scatter
            X_class.subtract_columns(mean_class)
            Sw.add(product(X_class, X_class, False, True))

            # between-class scatter, weighted by class size
            mean_class.subtract(mean_total)
            Sb.add(product(mean_class, mean_class, False, True).scale(len(columns)))

        # symmetrize round-off
        Sw.data = (Sw.data + Sw.data.T) / 2
        Sb.data = (Sb.data + Sb.data.T) / 2
        return Sw, Sb

    def transform(self, X):
        return product(self.W, X, True, False)
