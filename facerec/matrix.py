"""
This module implements the dense matrix engine used by every subspace
algorithm.

A Matrix is a rectangular float64 container whose shape is fixed at
construction. Images are stored as columns, so most reductions work across
columns. Every operation checks dimensional compatibility before executing
and raises DimensionMismatch otherwise.

It provides:
- Constructors: zeros, identity, diagonal, copies and column ranges
- Column reductions: mean column and broadcast column subtraction
- In-place elementwise arithmetic
- Product, transpose, inverse, covariance
- Symmetric eigendecomposition (descending order) and matrix square root
- L1, L2 and cosine distances between columns
- Binary serialization through facerec.storage
"""

import numpy as np
import config
from facerec.errors import ConvergenceFailure, DimensionMismatch, EmptyDataset, SingularMatrix


class Matrix:
    """
    Dense two-dimensional matrix of float64 values.

    Attributes:
        data: numpy array of shape (rows, cols), owned by this matrix
    """

    def __init__(self, rows, cols, data=None):
        """
        Create a rows x cols matrix.

        Args:
            rows: Number of rows
            cols: Number of columns
            data: Optional array-like of shape (rows, cols); copied.
                  If omitted the matrix is filled with zeros.
        """
        if rows < 0 or cols < 0:
            raise DimensionMismatch(f"invalid matrix shape {rows} x {cols}")

        if data is None:
            self.data = np.zeros((rows, cols), dtype=np.float64)
        else:
            array = np.array(data, dtype=np.float64)
            if array.shape != (rows, cols):
                raise DimensionMismatch(
                    f"data of shape {array.shape} does not fit a {rows} x {cols} matrix"
                )
            self.data = array

    @classmethod
    def zeros(cls, rows, cols):
        return cls(rows, cols)

    @classmethod
    def identity(cls, n):
        return cls(n, n, np.eye(n))

    @classmethod
    def from_array(cls, values):
        """Build a matrix from nested sequences (row-major) or a 1-D/2-D array."""
        array = np.array(values, dtype=np.float64)
        if array.ndim == 1:
            array = array.reshape(-1, 1)
        if array.ndim != 2:
            raise DimensionMismatch(f"expected 1-D or 2-D data, got {array.ndim}-D")
        return cls(array.shape[0], array.shape[1], array)

    @classmethod
    def diagonal(cls, values):
        """Build a square matrix with the given values on its diagonal."""
        values = np.asarray(values, dtype=np.float64).ravel()
        return cls(len(values), len(values), np.diag(values))

    @property
    def rows(self):
        return self.data.shape[0]

    @property
    def cols(self):
        return self.data.shape[1]

    @property
    def shape(self):
        return self.data.shape

    def __getitem__(self, index):
        return self.data[index]

    def __setitem__(self, index, value):
        self.data[index] = value

    def __eq__(self, other):
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.shape == other.shape and np.array_equal(self.data, other.data)

    def __repr__(self):
        return f"Matrix({self.rows} x {self.cols})"

    def copy(self):
        return Matrix(self.rows, self.cols, self.data)

    def copy_columns(self, begin, end):
        """
        Copy the half-open column range [begin, end).

        Raises:
            DimensionMismatch: If the range does not lie inside the matrix
        """
        if not 0 <= begin <= end <= self.cols:
            raise DimensionMismatch(
                f"column range [{begin}, {end}) is outside a matrix with {self.cols} columns"
            )
        return Matrix(self.rows, end - begin, self.data[:, begin:end])

    def column(self, j):
        """Return column j as a 1-D read-only view."""
        view = self.data[:, j]
        view.flags.writeable = False
        return view

    # Column reductions

    def mean_column(self):
        """Return the rows x 1 average of all columns."""
        if self.cols == 0:
            raise EmptyDataset("cannot compute the mean column of a matrix with no columns")
        return Matrix(self.rows, 1, self.data.mean(axis=1, keepdims=True))

    def subtract_columns(self, a):
        """Subtract the rows x 1 vector a from every column, in place."""
        if a.shape != (self.rows, 1):
            raise DimensionMismatch(
                f"cannot subtract a {a.rows} x {a.cols} vector from the columns of a "
                f"{self.rows} x {self.cols} matrix"
            )
        self.data -= a.data
        return self

    # Elementwise arithmetic

    def scale(self, c):
        self.data *= c
        return self

    def add(self, other):
        _check_same_shape(self, other, "add")
        self.data += other.data
        return self

    def subtract(self, other):
        _check_same_shape(self, other, "subtract")
        self.data -= other.data
        return self

    def transpose(self):
        return transpose(self)

    # Serialization

    def write(self, writer):
        writer.write_int(self.rows)
        writer.write_int(self.cols)
        writer.write_array(self.data)

    @classmethod
    def read(cls, reader, what="matrix"):
        rows = reader.read_count(f"{what} rows")
        cols = reader.read_count(f"{what} cols")
        values = reader.read_array(rows * cols, f"{what} data")
        return cls(rows, cols, values.reshape(rows, cols))

    def to_string(self, precision=4):
        width = precision + 8
        lines = []
        for i in range(self.rows):
            lines.append(" ".join(f"{value:{width}.{precision}f}" for value in self.data[i]))
        return "\n".join(lines)


def _check_same_shape(A, B, operation):
    if A.shape != B.shape:
        raise DimensionMismatch(
            f"cannot {operation} a {B.rows} x {B.cols} matrix and a {A.rows} x {A.cols} matrix"
        )


def print_matrix(M, precision=4):
    print(M.to_string(precision))


def product(A, B, transpose_a=False, transpose_b=False):
    """
    Compute op(A) * op(B) where op optionally transposes its argument.

    Args:
        A: Left operand
        B: Right operand
        transpose_a: Use the transpose of A
        transpose_b: Use the transpose of B

    Returns:
        Matrix: New matrix of shape (op(A).rows, op(B).cols)

    Raises:
        DimensionMismatch: If op(A).cols != op(B).rows
    """
    left = A.data.T if transpose_a else A.data
    right = B.data.T if transpose_b else B.data

    if left.shape[1] != right.shape[0]:
        raise DimensionMismatch(
            f"cannot multiply a {left.shape[0]} x {left.shape[1]} matrix "
            f"by a {right.shape[0]} x {right.shape[1]} matrix"
        )

    result = left @ right
    return Matrix(result.shape[0], result.shape[1], result)


def transpose(M):
    return Matrix(M.cols, M.rows, M.data.T)


def inverse(M):
    """
    Compute the inverse of a square matrix.

    Singularity is decided from the numerical rank (singular values below
    max(s) * n * eps count as zero).

    Raises:
        DimensionMismatch: If M is not square
        SingularMatrix: If M is numerically singular
    """
    if M.rows != M.cols:
        raise DimensionMismatch(f"cannot invert a non-square {M.rows} x {M.cols} matrix")

    n = M.rows
    if n == 0:
        return Matrix(0, 0)

    rank = np.linalg.matrix_rank(M.data)
    if rank < n:
        raise SingularMatrix(f"{n} x {n} matrix is singular (rank {rank})")

    try:
        result = np.linalg.inv(M.data)
    except np.linalg.LinAlgError as e:
        raise SingularMatrix(f"{n} x {n} matrix is singular: {e}") from e

    return Matrix(n, n, result)


def covariance(M):
    """
    Compute the covariance matrix among the rows of M.

    Columns are observations and rows are variables. The unbiased estimator
    is used: the centered outer product is divided by (n - 1).

    Returns:
        Matrix: rows x rows covariance matrix

    Raises:
        EmptyDataset: If M has fewer than two columns
    """
    n = M.cols
    if n < 2:
        raise EmptyDataset(f"covariance needs at least two observations, got {n}")

    A = M.copy()
    A.subtract_columns(A.mean_column())

    C = product(A, A, False, True)
    return C.scale(1.0 / (n - 1))


def _is_symmetric(M):
    scale = max(1.0, np.max(np.abs(M.data))) if M.data.size else 1.0
    return np.allclose(M.data, M.data.T, rtol=0, atol=config.SYMMETRY_TOLERANCE * scale)


def eigh(M):
    """
    Compute the eigenvalues and eigenvectors of a symmetric matrix.

    Returns:
        tuple: (eigenvalues, eigenvectors) where eigenvalues is an n x 1
               matrix sorted in descending order and column j of the n x n
               eigenvectors matrix belongs to eigenvalue j

    Raises:
        DimensionMismatch: If M is not square
        ValueError: If M is not symmetric
        ConvergenceFailure: If the eigensolver does not converge
    """
    if M.rows != M.cols:
        raise DimensionMismatch(f"eigendecomposition needs a square matrix, got {M.rows} x {M.cols}")
    if not _is_symmetric(M):
        raise ValueError("eigh() requires a symmetric matrix")

    try:
        eigenvalues, eigenvectors = np.linalg.eigh(M.data)
    except np.linalg.LinAlgError as e:
        raise ConvergenceFailure(f"symmetric eigensolver did not converge: {e}") from e

    # numpy returns ascending order
    idx = np.argsort(-eigenvalues, kind='stable')
    eigenvalues = eigenvalues[idx]
    eigenvectors = eigenvectors[:, idx]

    n = M.rows
    return Matrix(n, 1, eigenvalues.reshape(-1, 1)), Matrix(n, n, eigenvectors)


def sqrtm(M):
    """
    Compute the principal square root of a diagonalizable matrix.

    Symmetric matrices use V * diag(sqrt(lambda)) * V^T; other matrices use
    V * diag(sqrt(lambda)) * V^-1. Eigenvalues must be non-negative; small
    negative round-off is clamped to zero.

    Raises:
        DimensionMismatch: If M is not square
        ValueError: If M has a negative or complex eigenvalue
        SingularMatrix: If the eigenvectors of a non-symmetric M are dependent
    """
    if M.rows != M.cols:
        raise DimensionMismatch(f"sqrtm needs a square matrix, got {M.rows} x {M.cols}")

    n = M.rows
    if n == 0:
        return Matrix(0, 0)

    tolerance = config.SQRTM_NEGATIVE_TOLERANCE * max(1.0, np.max(np.abs(M.data)))

    if _is_symmetric(M):
        eigenvalues, V = eigh(M)
        values = eigenvalues.data.ravel()
        if np.any(values < -tolerance):
            raise ValueError(f"sqrtm of a matrix with negative eigenvalue {values.min():g}")

        root = Matrix.diagonal(np.sqrt(np.clip(values, 0, None)))
        return product(product(V, root), V, False, True)

    try:
        values, vectors = np.linalg.eig(M.data)
    except np.linalg.LinAlgError as e:
        raise ConvergenceFailure(f"eigensolver did not converge: {e}") from e

    if np.any(np.abs(values.imag) > tolerance):
        raise ValueError("sqrtm of a matrix with complex eigenvalues")
    values = values.real
    if np.any(values < -tolerance):
        raise ValueError(f"sqrtm of a matrix with negative eigenvalue {values.min():g}")

    V = Matrix(n, n, vectors.real)
    root = Matrix.diagonal(np.sqrt(np.clip(values, 0, None)))
    return product(product(V, root), inverse(V))


# Distance functions between column i of A and column j of B.
# Smaller always means more similar.

def _columns(A, i, B, j):
    if A.rows != B.rows:
        raise DimensionMismatch(
            f"cannot compare a column of {A.rows} values with a column of {B.rows} values"
        )
    return A.column(i), B.column(j)


def dist_l1(A, i, B, j):
    a, b = _columns(A, i, B, j)
    return float(np.sum(np.abs(a - b)))


def dist_l2(A, i, B, j):
    a, b = _columns(A, i, B, j)
    return float(np.sqrt(np.sum((a - b) ** 2)))


def dist_cos(A, i, B, j):
    """Cosine distance, 1 - cos(angle): 0 for parallel vectors, 2 for opposite ones."""
    a, b = _columns(A, i, B, j)

    norm_a = np.sqrt(np.dot(a, a))
    norm_b = np.sqrt(np.dot(b, b))

    # Zero vectors have no direction
    if norm_a == 0 or norm_b == 0:
        return 0.0 if norm_a == norm_b else 1.0

    return float(1.0 - np.dot(a, b) / (norm_a * norm_b))


DISTANCES = {
    'L1': dist_l1,
    'L2': dist_l2,
    'COS': dist_cos
}


def get_distance(name):
    try:
        return DISTANCES[name.upper()]
    except KeyError:
        raise ValueError(f"Unknown distance metric '{name}', expected one of {sorted(DISTANCES)}") from None
