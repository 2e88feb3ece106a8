"""
Sparse matrix with one stored value per slot of a fixed SparsityPattern.
"""

from typing import Optional

import numpy as np
import scipy.sparse as sp

from .errors import PatternError, ShapeMismatchError
from .pattern import SparsityPattern


class PatternMatrix:
    """
    Flat value array over a fixed :class:`SparsityPattern`.

    Values are addressed either by slot index ("global entry") or by
    (row, column) through the pattern lookup. Entries without a slot are
    implicitly zero and cannot be written.

    Parameters
    ----------
    pattern : SparsityPattern
        Sparsity pattern; not copied, must outlive the matrix
    values : array_like, optional
        Initial slot values. Zeros if omitted.
    dtype : data-type, optional
        Value type. Default is float.
    """

    def __init__(self,
                 pattern: SparsityPattern,
                 values=None,
                 dtype=float):
        self._pattern = pattern
        if values is None:
            self.values = np.zeros(pattern.n_nonzero_elements, dtype=dtype)
        else:
            values = np.array(values, dtype=dtype).ravel()
            if values.size != pattern.n_nonzero_elements:
                raise ShapeMismatchError(
                    f"Expected {pattern.n_nonzero_elements} values, got {values.size}"
                )
            self.values = values

    @classmethod
    def from_scipy(cls, A, pattern: Optional[SparsityPattern] = None, dtype=None):
        """
        Copy a SciPy sparse matrix or dense array into a pattern matrix.

        Parameters
        ----------
        A : scipy.sparse.spmatrix or array_like
            Source matrix
        pattern : SparsityPattern, optional
            Target pattern. Derived from ``A`` if omitted.
        dtype : data-type, optional
            Value type. Default is the dtype of ``A`` promoted to at least
            float64, so complex input stays complex.

        Raises
        ------
        PatternError
            If a stored non-zero of ``A`` has no slot in ``pattern``
        """
        if pattern is None:
            pattern = SparsityPattern.from_matrix(A)
        if tuple(A.shape) != pattern.shape:
            raise ShapeMismatchError(
                f"Matrix shape {tuple(A.shape)} does not match pattern shape {pattern.shape}"
            )
        coo = sp.coo_matrix(A)
        coo.sum_duplicates()
        if dtype is None:
            dtype = np.result_type(coo.dtype, np.float64)
        slots, present = pattern.slots_of(coo.row, coo.col)
        if np.any(~present & (coo.data != 0)):
            raise PatternError("Source matrix has non-zero entries outside the pattern")
        M = cls(pattern, dtype=dtype)
        M.values[slots[present]] = coo.data[present]
        return M

    # ------------------------------------------------------------------
    # sizes
    # ------------------------------------------------------------------

    @property
    def pattern(self) -> SparsityPattern:
        return self._pattern

    @property
    def shape(self):
        return self._pattern.shape

    @property
    def dtype(self):
        return self.values.dtype

    def m(self) -> int:
        return self._pattern.n_rows

    def n(self) -> int:
        return self._pattern.n_cols

    def value_count(self) -> int:
        """Number of stored slots."""
        return int(self.values.size)

    # ------------------------------------------------------------------
    # element access
    # ------------------------------------------------------------------

    def value_at(self, slot: int):
        return self.values[slot]

    global_entry = value_at

    def _require_slot(self, row: int, col: int) -> int:
        slot = self._pattern.slot_of(row, col)
        if slot is None:
            raise PatternError(f"Entry ({row}, {col}) is not part of the sparsity pattern")
        return slot

    def get(self, row: int, col: int):
        """Value at (row, col); zero if the entry is not stored."""
        slot = self._pattern.slot_of(row, col)
        if slot is None:
            return self.values.dtype.type(0)
        return self.values[slot]

    def __getitem__(self, index):
        row, col = index
        return self.get(row, col)

    def set(self, row: int, col: int, value):
        self.values[self._require_slot(row, col)] = value

    def add(self, row: int, col: int, value):
        self.values[self._require_slot(row, col)] += value

    def raw_entry(self, row: int, index: int):
        """Value of the ``index``-th stored entry of ``row``."""
        if not 0 <= index < self._pattern.row_length(row):
            raise IndexError(f"Entry {index} out of range for row {row}")
        return self.values[self._pattern.rowstart[row] + index]

    def row_values(self, row: int) -> np.ndarray:
        """Writable view of the stored values of ``row``."""
        rowstart = self._pattern.rowstart
        return self.values[rowstart[row]:rowstart[row + 1]]

    def diag_element(self, row: int):
        return self.values[self._pattern.diagonal_slot(row)]

    def clear(self):
        """Set all stored values to zero."""
        self.values[:] = 0

    def reinit(self, pattern: Optional[SparsityPattern] = None):
        """Zero the values, optionally switching to a new pattern."""
        if pattern is not None:
            self._pattern = pattern
            self.values = np.zeros(pattern.n_nonzero_elements, dtype=self.values.dtype)
        else:
            self.clear()

    # ------------------------------------------------------------------
    # products and conversion
    # ------------------------------------------------------------------

    def vmult(self, dst: np.ndarray, src: np.ndarray):
        """dst = A @ src"""
        if src.shape != (self.n(),) or dst.shape != (self.m(),):
            raise ShapeMismatchError(
                f"vmult with matrix {self.shape}: dst {dst.shape}, src {src.shape}"
            )
        dst[:] = self.to_scipy() @ src

    def __matmul__(self, x):
        x = np.asarray(x)
        if x.shape[0] != self.n():
            raise ShapeMismatchError(
                f"Cannot multiply matrix {self.shape} with operand {x.shape}"
            )
        return self.to_scipy() @ x

    def to_scipy(self) -> sp.csr_matrix:
        """CSR copy that keeps every slot, explicit zeros included."""
        p = self._pattern
        return sp.csr_matrix(
            (self.values.copy(), np.array(p.columns), np.array(p.rowstart)),
            shape=p.shape,
        )

    def to_dense(self) -> np.ndarray:
        return self.to_scipy().toarray()

    def __repr__(self):
        return (
            f"{type(self).__name__}(shape={self.shape}, "
            f"n_nonzero_elements={self._pattern.n_nonzero_elements})"
        )
