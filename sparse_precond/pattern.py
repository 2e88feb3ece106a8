"""
Fixed sparsity pattern shared by the ILU and Vanka preconditioners.

The pattern is stored in CSR layout: ``rowstart`` holds the row-start offsets
into the flat ``columns`` array, and columns are strictly ascending within each
row. Square patterns always store the diagonal. A storage position in
``columns`` is called a *slot*; matrices built on the pattern keep one value per
slot.
"""

from typing import Optional, Tuple

import numpy as np
import scipy.sparse as sp

from .errors import PatternError, ShapeMismatchError


class SparsityPattern:
    """
    Immutable set of (row, column) slots in CSR layout.

    Parameters
    ----------
    n_rows : int
        Number of rows
    n_cols : int
        Number of columns
    rowstart : array_like of int
        Row-start offsets, length ``n_rows + 1``
    columns : array_like of int
        Column numbers of all slots, ascending within each row
    """

    def __init__(self, n_rows: int, n_cols: int, rowstart, columns):
        n_rows = int(n_rows)
        n_cols = int(n_cols)
        if n_rows < 0 or n_cols < 0:
            raise PatternError("Pattern dimensions must be non-negative")

        rowstart = np.array(rowstart, dtype=np.int64)
        columns = np.array(columns, dtype=np.int64)

        if rowstart.shape != (n_rows + 1,):
            raise PatternError(
                f"rowstart must have length {n_rows + 1}, got {rowstart.shape}"
            )
        if rowstart[0] != 0 or rowstart[-1] != columns.size:
            raise PatternError("rowstart must start at 0 and end at len(columns)")
        if np.any(np.diff(rowstart) < 0):
            raise PatternError("rowstart must be non-decreasing")
        if columns.size and (columns.min() < 0 or columns.max() >= n_cols):
            raise PatternError("Column number out of range")

        row_of_slot = np.repeat(np.arange(n_rows, dtype=np.int64), np.diff(rowstart))
        # one key per slot; strictly ascending iff columns ascend inside rows
        keys = row_of_slot * max(n_cols, 1) + columns
        if np.any(np.diff(keys) <= 0):
            raise PatternError("Columns must be strictly ascending within each row")

        self._n_rows = n_rows
        self._n_cols = n_cols
        self._rowstart = rowstart
        self._columns = columns
        self._row_of_slot = row_of_slot
        self._keys = keys

        self._diagonal = None
        if n_rows == n_cols:
            diagonal, present = self.slots_of(np.arange(n_rows), np.arange(n_rows))
            if not np.all(present):
                missing = int(np.flatnonzero(~present)[0])
                raise PatternError(f"Square pattern lacks the diagonal of row {missing}")
            self._diagonal = diagonal
            self._diagonal.setflags(write=False)

        for arr in (self._rowstart, self._columns, self._row_of_slot, self._keys):
            arr.setflags(write=False)

    # ------------------------------------------------------------------
    # construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_entries(cls, n_rows: int, n_cols: int, rows, cols) -> "SparsityPattern":
        """
        Build a pattern from coordinate lists.

        Duplicate pairs are merged. Square patterns get their diagonal added.
        """
        rows = np.asarray(rows, dtype=np.int64).ravel()
        cols = np.asarray(cols, dtype=np.int64).ravel()
        if rows.shape != cols.shape:
            raise PatternError("rows and cols must have the same length")
        if rows.size and (rows.min() < 0 or rows.max() >= n_rows):
            raise PatternError("Row number out of range")
        if cols.size and (cols.min() < 0 or cols.max() >= n_cols):
            raise PatternError("Column number out of range")

        if n_rows == n_cols:
            diag = np.arange(n_rows, dtype=np.int64)
            rows = np.concatenate([rows, diag])
            cols = np.concatenate([cols, diag])

        keys = np.unique(rows * max(n_cols, 1) + cols)
        slot_rows = keys // max(n_cols, 1)
        columns = keys % max(n_cols, 1)
        rowstart = np.zeros(n_rows + 1, dtype=np.int64)
        np.cumsum(np.bincount(slot_rows, minlength=n_rows), out=rowstart[1:])
        return cls(n_rows, n_cols, rowstart, columns)

    @classmethod
    def from_matrix(cls, A) -> "SparsityPattern":
        """
        Pattern of a SciPy sparse matrix (its stored entries) or of a dense
        array (its non-zeros), plus the diagonal when square.
        """
        if sp.issparse(A):
            coo = sp.coo_matrix(A)
            return cls.from_entries(coo.shape[0], coo.shape[1], coo.row, coo.col)
        A = np.asarray(A)
        if A.ndim != 2:
            raise ShapeMismatchError("Dense input must be a 2D array")
        rows, cols = np.nonzero(A)
        return cls.from_entries(A.shape[0], A.shape[1], rows, cols)

    # ------------------------------------------------------------------
    # sizes
    # ------------------------------------------------------------------

    @property
    def n_rows(self) -> int:
        return self._n_rows

    @property
    def n_cols(self) -> int:
        return self._n_cols

    @property
    def shape(self) -> Tuple[int, int]:
        return (self._n_rows, self._n_cols)

    @property
    def is_square(self) -> bool:
        return self._n_rows == self._n_cols

    @property
    def n_nonzero_elements(self) -> int:
        """Total number of slots."""
        return int(self._columns.size)

    @property
    def max_entries_per_row(self) -> int:
        if self._n_rows == 0:
            return 0
        return int(np.diff(self._rowstart).max())

    @property
    def rowstart(self) -> np.ndarray:
        """Row-start offsets into the flat slot array (read-only)."""
        return self._rowstart

    @property
    def columns(self) -> np.ndarray:
        """Column number of every slot (read-only)."""
        return self._columns

    # ------------------------------------------------------------------
    # row queries
    # ------------------------------------------------------------------

    def row_length(self, row: int) -> int:
        return int(self._rowstart[row + 1] - self._rowstart[row])

    def column_number(self, row: int, index: int) -> int:
        """Column of the ``index``-th stored entry of ``row``."""
        if not 0 <= index < self.row_length(row):
            raise IndexError(
                f"Entry {index} out of range for row {row} of length {self.row_length(row)}"
            )
        return int(self._columns[self._rowstart[row] + index])

    def row_columns(self, row: int) -> np.ndarray:
        """Ascending column numbers of ``row`` (read-only view)."""
        return self._columns[self._rowstart[row]:self._rowstart[row + 1]]

    @property
    def diagonal_slots(self) -> np.ndarray:
        """Slot of the diagonal entry of every row (square patterns only)."""
        if self._diagonal is None:
            raise ShapeMismatchError("Diagonal slots only exist for square patterns")
        return self._diagonal

    def diagonal_slot(self, row: int) -> int:
        return int(self.diagonal_slots[row])

    def first_after_diagonal(self, row: int) -> int:
        """
        Slot of the first entry of ``row`` right of the diagonal.

        Entries ``rowstart[row] .. diagonal_slot(row)`` are the strictly lower
        part, entries from the returned slot to ``rowstart[row+1]`` the strictly
        upper part.
        """
        start = self._rowstart[row]
        end = self._rowstart[row + 1]
        return int(start + np.searchsorted(self._columns[start:end], row, side="right"))

    # ------------------------------------------------------------------
    # slot lookup
    # ------------------------------------------------------------------

    def slot_of(self, row: int, col: int) -> Optional[int]:
        """
        Storage slot of entry (row, col), or ``None`` if it is not in the
        pattern.
        """
        if not (0 <= row < self._n_rows and 0 <= col < self._n_cols):
            return None
        start = self._rowstart[row]
        end = self._rowstart[row + 1]
        pos = start + np.searchsorted(self._columns[start:end], col)
        if pos < end and self._columns[pos] == col:
            return int(pos)
        return None

    def slots_of(self, rows, cols) -> Tuple[np.ndarray, np.ndarray]:
        """
        Vectorised :meth:`slot_of`.

        Returns
        -------
        slots : numpy.ndarray of int
            Slot of each (row, col) pair; meaningless where ``present`` is False
        present : numpy.ndarray of bool
            Whether the pair is part of the pattern
        """
        rows = np.asarray(rows, dtype=np.int64)
        cols = np.asarray(cols, dtype=np.int64)
        keys = rows * max(self._n_cols, 1) + cols
        slots = np.searchsorted(self._keys, keys)
        clipped = np.minimum(slots, max(self._keys.size - 1, 0))
        present = (
            (slots < self._keys.size)
            & (rows >= 0) & (rows < self._n_rows)
            & (cols >= 0) & (cols < self._n_cols)
        )
        if self._keys.size:
            present &= self._keys[clipped] == keys
        return clipped, present

    def exists(self, row: int, col: int) -> bool:
        return self.slot_of(row, col) is not None

    def __contains__(self, entry) -> bool:
        row, col = entry
        return self.exists(row, col)

    def entries(self) -> Tuple[np.ndarray, np.ndarray]:
        """Row and column number of every slot, in slot order."""
        return self._row_of_slot, self._columns

    def __eq__(self, other):
        if not isinstance(other, SparsityPattern):
            return NotImplemented
        return (
            self.shape == other.shape
            and np.array_equal(self._rowstart, other._rowstart)
            and np.array_equal(self._columns, other._columns)
        )

    def __hash__(self):
        return hash((self.shape, self.n_nonzero_elements))

    def __repr__(self):
        return (
            f"SparsityPattern(shape={self.shape}, "
            f"n_nonzero_elements={self.n_nonzero_elements})"
        )
