"""
SciPy LinearOperator adapters for the ILU and Vanka preconditioners.
"""

import numpy as np
import scipy.sparse as sp

from .ilu import SparseILU
from .matrix import PatternMatrix
from .pattern import SparsityPattern
from .vanka import SparseVanka


def ilu_precond(A: sp.spmatrix, strengthen_diagonal: float = 0.0, pattern=None):
    """
    Build an ILU preconditioner on the sparsity pattern of A as a SciPy
    LinearOperator.

    M ≈ A^{-1}, implemented as x -> (LU)^{-1} x.

    Parameters
    ----------
    A : scipy.sparse.spmatrix
        Sparse matrix
    strengthen_diagonal : float, optional
        Diagonal strengthening factor. Default is 0.0.
    pattern : SparsityPattern, optional
        Pattern of the factor. Default is the pattern of A (ILU(0)).

    Returns
    -------
    M : scipy.sparse.linalg.LinearOperator
        ILU preconditioner
    """
    if pattern is None:
        pattern = SparsityPattern.from_matrix(A)
    ilu = SparseILU(pattern)
    ilu.decompose(A, strengthen_diagonal=strengthen_diagonal)
    return ilu.as_linear_operator()


def vanka_precond(A: sp.spmatrix, selected=None, conserve_memory: bool = False):
    """
    Build a Vanka preconditioner as a SciPy LinearOperator.

    Each application is one sweep over the selected rows, starting from a
    zero vector.

    Parameters
    ----------
    A : scipy.sparse.spmatrix
        Sparse square matrix
    selected : array_like of bool, optional
        Rows that get a local block. Default is every row.
    conserve_memory : bool, optional
        Recompute local inverses on every application instead of storing
        them. Default is False.

    Returns
    -------
    M : scipy.sparse.linalg.LinearOperator
        Vanka preconditioner
    """
    matrix = PatternMatrix.from_scipy(A)
    if selected is None:
        selected = np.ones(matrix.m(), dtype=bool)
    vanka = SparseVanka(matrix, selected, conserve_memory=conserve_memory)
    return vanka.as_linear_operator()


def make_preconditioner(A: sp.spmatrix, kind: str = "none", **kwargs):
    """
    Create a preconditioner LinearOperator by name.

    Parameters
    ----------
    A : scipy.sparse.spmatrix
        System matrix
    kind : str
        One of "none", "ilu", "vanka"
    **kwargs
        Options for the chosen preconditioner

    Returns
    -------
    M : LinearOperator or None
    """
    if not sp.issparse(A):
        A = sp.csr_matrix(A)
    kind = kind.lower()
    if kind == "none":
        return None
    elif kind == "ilu":
        return ilu_precond(A, **kwargs)
    elif kind == "vanka":
        return vanka_precond(A, **kwargs)
    raise ValueError(f"Unknown preconditioner type: {kind}")
