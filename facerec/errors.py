"""
Exception types raised by the face recognition package.

Every error derives from FaceRecognitionError so callers can catch the whole
family at once, and also from the closest builtin so generic handlers
(ValueError, IOError, ArithmeticError) keep working.
"""


class FaceRecognitionError(Exception):
    """Base class for all face recognition errors."""


class DimensionMismatch(FaceRecognitionError, ValueError):
    """Raised when two operands or images have incompatible shapes."""


class SingularMatrix(FaceRecognitionError, ValueError):
    """Raised when inverting a (numerically) singular matrix."""


class ConvergenceFailure(FaceRecognitionError, ArithmeticError):
    """Raised when an iterative solver stops before meeting its tolerance."""


class IOFailure(FaceRecognitionError, IOError):
    """Raised for missing, unreadable, truncated or corrupt files."""


class EmptyDataset(FaceRecognitionError, ValueError):
    """Raised when a dataset, label set or reference set has no elements."""
