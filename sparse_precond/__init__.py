"""
In-place ILU and Vanka preconditioners on a fixed sparsity pattern

This package provides two preconditioners that work directly on the value
array of a sparse matrix with a precomputed, fixed sparsity pattern:

- SparseILU: incomplete LU decomposition without fill-in, optional diagonal
  strengthening, forward/backward triangular solves
- SparseVanka: block-local smoother inverting the dense sub-system induced
  by the coupling set of each selected row, with stored inverses or a single
  reused scratch buffer

Both can be wrapped as SciPy LinearOperators and used inside SciPy's
GMRES/BiCGStab through KrylovSolver/solve.
"""

from .errors import (
    PreconditionerError,
    ShapeMismatchError,
    InvalidStrengtheningError,
    PatternError,
    ZeroPivotError,
    NotDecomposedError,
)
from .pattern import SparsityPattern
from .matrix import PatternMatrix
from .ilu import SparseILU
from .vanka import SparseVanka
from .preconditioners import ilu_precond, vanka_precond, make_preconditioner
from .solver import solve, KrylovSolver, ConvergenceInfo
from .utils import poisson_2d, tridiagonal, pentadiagonal

__version__ = "0.1.0"
__all__ = [
    # Storage
    "SparsityPattern",
    "PatternMatrix",
    # Preconditioners
    "SparseILU",
    "SparseVanka",
    "ilu_precond",
    "vanka_precond",
    "make_preconditioner",
    # Solver
    "solve",
    "KrylovSolver",
    "ConvergenceInfo",
    # Errors
    "PreconditionerError",
    "ShapeMismatchError",
    "InvalidStrengtheningError",
    "PatternError",
    "ZeroPivotError",
    "NotDecomposedError",
    # Utilities
    "poisson_2d",
    "tridiagonal",
    "pentadiagonal",
]
