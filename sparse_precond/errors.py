"""
Exception types raised by the preconditioner kernels.
"""


class PreconditionerError(Exception):
    """Base class for all errors raised by sparse_precond."""


class ShapeMismatchError(PreconditionerError, ValueError):
    """Matrix not square, or sizes of matrices/vectors/patterns do not agree."""


class InvalidStrengtheningError(PreconditionerError, ValueError):
    """Negative diagonal strengthening factor passed to the ILU."""

    def __init__(self, factor):
        self.factor = factor
        super().__init__(
            f"strengthen_diagonal must be non-negative, got {factor!r}"
        )


class PatternError(PreconditionerError, ValueError):
    """Malformed sparsity pattern, or access to an entry that has no slot."""


class ZeroPivotError(PreconditionerError, ZeroDivisionError):
    """Exact zero pivot met during the incomplete factorization."""

    def __init__(self, row: int):
        self.row = row
        super().__init__(
            f"Zero pivot in row {row}, cannot continue the incomplete "
            "factorization. Use diagonal strengthening or reorder the matrix."
        )


class NotDecomposedError(PreconditionerError, RuntimeError):
    """Factorization applied before a successful decompose()."""
