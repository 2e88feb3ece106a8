"""
Incomplete LU decomposition on a fixed sparsity pattern.

The factors are stored in place of the matrix values: entries left of the
diagonal hold the multipliers of L (unit diagonal, not stored), entries right
of the diagonal hold U, and each diagonal slot holds the *reciprocal* of the
pivot of its row so that the backward sweep multiplies instead of divides.
No fill-in is created: updates whose target has no slot are dropped.
"""

import logging

import numpy as np
import scipy.sparse as sp
from scipy.sparse.linalg import LinearOperator

from .errors import (
    InvalidStrengtheningError,
    NotDecomposedError,
    ShapeMismatchError,
    ZeroPivotError,
)
from .matrix import PatternMatrix
from .pattern import SparsityPattern

logger = logging.getLogger(__name__)


def _source_entries(source):
    """Row, column and value arrays of all stored entries of ``source``."""
    if isinstance(source, PatternMatrix):
        rows, cols = source.pattern.entries()
        return rows, cols, source.values
    coo = sp.coo_matrix(source)
    coo.sum_duplicates()
    return coo.row, coo.col, coo.data


class SparseILU(PatternMatrix):
    """
    Incomplete LU factorization sharing the storage layout of a PatternMatrix.

    The pattern of the factor decides where entries may live. It has to
    contain every entry of the matrices later passed to :meth:`decompose`
    that should take part in the factorization; it may contain more, which
    then admits that much fill-in.

    Parameters
    ----------
    pattern : SparsityPattern
        Square sparsity pattern of the factor
    """

    def __init__(self, pattern: SparsityPattern, dtype=float):
        super().__init__(pattern, dtype=dtype)
        self.is_decomposed = False

    def reinit(self, pattern=None):
        super().reinit(pattern)
        self.is_decomposed = False

    def copy_from(self, source):
        """
        Zero the factor and copy the entries of ``source`` into it.

        Entries of ``source`` without a slot in this pattern are dropped.
        """
        rows, cols, vals = _source_entries(source)
        dtype = np.result_type(self.values.dtype, vals.dtype)
        if dtype != self.values.dtype:
            # complex source, keep the imaginary part
            self.values = np.zeros(self.values.size, dtype=dtype)
        self.values[:] = 0
        slots, present = self._pattern.slots_of(rows, cols)
        self.values[slots[present]] = vals[present]
        self.is_decomposed = False

        n_dropped = int(np.count_nonzero(~present))
        if n_dropped:
            logger.debug("Dropped %d source entries outside the ILU pattern", n_dropped)

    def add_diagonal_strengthening(self, factor: float):
        """
        Add ``factor`` times the sum of the absolute off-diagonal values of
        each row to that row's diagonal entry.
        """
        if factor < 0:
            raise InvalidStrengtheningError(factor)
        if factor == 0:
            return

        rows, cols = self._pattern.entries()
        off_diagonal = rows != cols
        rowsum = np.bincount(
            rows[off_diagonal],
            weights=np.abs(self.values[off_diagonal]),
            minlength=self.m(),
        )
        self.values[self._pattern.diagonal_slots] += factor * rowsum

    def _invert_pivot(self, row: int):
        slot = self._pattern.diagonal_slot(row)
        if self.values[slot] == 0:
            raise ZeroPivotError(row)
        self.values[slot] = 1.0 / self.values[slot]

    def decompose(self, matrix, strengthen_diagonal: float = 0.0):
        """
        Compute the incomplete LU decomposition of ``matrix`` in place.

        Parameters
        ----------
        matrix : PatternMatrix, scipy.sparse.spmatrix or array_like
            Square source matrix of the same size as the factor
        strengthen_diagonal : float, optional
            Non-negative factor for :meth:`add_diagonal_strengthening`.
            Default is 0.0.

        Raises
        ------
        ShapeMismatchError
            If the source or the factor is not square, or sizes differ
        InvalidStrengtheningError
            If ``strengthen_diagonal`` is negative
        ZeroPivotError
            If a pivot is exactly zero. The factor is left half-built.
        """
        n_rows, n_cols = matrix.shape
        if n_rows != n_cols:
            raise ShapeMismatchError(f"Source matrix is not square: {matrix.shape}")
        if not self._pattern.is_square:
            raise ShapeMismatchError(f"ILU pattern is not square: {self.shape}")
        if n_rows != self.m():
            raise ShapeMismatchError(
                f"Source matrix has {n_rows} rows, ILU pattern has {self.m()}"
            )
        if strengthen_diagonal < 0:
            raise InvalidStrengtheningError(strengthen_diagonal)

        self.copy_from(matrix)
        self.add_diagonal_strengthening(strengthen_diagonal)

        pattern = self._pattern
        values = self.values
        rowstart = pattern.rowstart
        columns = pattern.columns
        diagonal = pattern.diagonal_slots

        n = self.m()
        if n == 0:
            self.is_decomposed = True
            return

        # The diagonal of row k is left un-inverted until row k+1 begins.
        previous_row = 0
        for row in range(1, n):
            self._invert_pivot(previous_row)

            row_end = rowstart[row + 1]
            for ik in range(rowstart[row], diagonal[row]):
                k = columns[ik]
                values[ik] *= values[diagonal[k]]

                # remaining columns of this row, diagonal included, so that
                # a[i,i] -= a[i,k] * a[k,i] is part of the same update
                js = columns[ik + 1:row_end]
                kj, present = pattern.slots_of(np.full(js.shape, k), js)
                if not np.any(present):
                    continue
                ij = np.arange(ik + 1, row_end)[present]
                values[ij] -= values[ik] * values[kj[present]]

            previous_row = row
        self._invert_pivot(previous_row)

        self.is_decomposed = True
        logger.debug(
            "ILU decomposition of %d x %d matrix with %d slots done",
            n, n, pattern.n_nonzero_elements,
        )

    def apply_decomposition(self, dst: np.ndarray, src: np.ndarray):
        """
        Solve ``L U dst = src`` with one forward and one backward sweep.

        Parameters
        ----------
        dst : numpy.ndarray
            Output vector of size N, overwritten
        src : numpy.ndarray
            Right-hand side of size N
        """
        if not self.is_decomposed:
            raise NotDecomposedError("decompose() must succeed before applying the ILU")
        n = self.m()
        src = np.asarray(src)
        if dst.shape != src.shape:
            raise ShapeMismatchError(f"dst has shape {dst.shape}, src has shape {src.shape}")
        if dst.shape != (n,):
            raise ShapeMismatchError(f"Vectors of shape {dst.shape} for ILU of size {n}")

        pattern = self._pattern
        values = self.values
        rowstart = pattern.rowstart
        columns = pattern.columns
        # one ordered search per row splits it into L, the pivot and U
        upper = [pattern.first_after_diagonal(row) for row in range(n)]

        # L has unit diagonal: y_i = b_i - sum_{j<i} L_ij y_j
        dst[:] = src
        for row in range(n):
            start = rowstart[row]
            lower_end = upper[row] - 1
            if lower_end > start:
                dst[row] -= values[start:lower_end] @ dst[columns[start:lower_end]]

        for row in range(n - 1, -1, -1):
            upper_start = upper[row]
            end = rowstart[row + 1]
            if end > upper_start:
                dst[row] -= values[upper_start:end] @ dst[columns[upper_start:end]]
            # diagonal stored inverted
            dst[row] *= values[upper_start - 1]

    vmult = apply_decomposition

    def solve(self, src) -> np.ndarray:
        """Return the solution of ``L U x = src`` as a new array."""
        src = np.asarray(src).ravel()
        dst = np.empty(src.shape, dtype=np.result_type(self.values, src))
        self.apply_decomposition(dst, src)
        return dst

    def as_linear_operator(self) -> LinearOperator:
        """SciPy LinearOperator applying the approximate inverse (LU)^{-1}."""
        n = self.m()
        return LinearOperator((n, n), matvec=self.solve, dtype=self.values.dtype)
