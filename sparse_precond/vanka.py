"""
Point-block Vanka smoother on a PatternMatrix.

For every selected row r the columns of r form its coupling set S. The
smoother gathers the dense matrix A[S, S] (taking every entry of the rows in S
whose column also lies in S), inverts it and uses the inverse to update the
entries S of the output vector in one block Gauss-Seidel step. Couplings that
leave S are moved to the right-hand side with the output values computed so
far.

Inverses are either computed once and kept per row, or, with
``conserve_memory=True``, rebuilt for each row in a single scratch buffer
every time the smoother is applied.
"""

import logging
from contextlib import contextmanager

import numpy as np
import scipy.linalg as sla
from scipy.sparse.linalg import LinearOperator

from .errors import ShapeMismatchError
from .matrix import PatternMatrix

logger = logging.getLogger(__name__)


def _local_index(columns: np.ndarray, cols: np.ndarray):
    """
    Map global column numbers ``cols`` onto positions in the sorted coupling
    set ``columns``.

    Returns the positions and a mask telling which of ``cols`` belong to the
    coupling set at all.
    """
    pos = np.searchsorted(columns, cols)
    clipped = np.minimum(pos, columns.size - 1)
    inside = (pos < columns.size) & (columns[clipped] == cols)
    return clipped, inside


def _invert_in_place(local: np.ndarray):
    local[...] = sla.inv(local, check_finite=False)


class SparseVanka:
    """
    Vanka smoother for the rows marked in ``selected``.

    Parameters
    ----------
    matrix : PatternMatrix or scipy.sparse.spmatrix
        Square system matrix. Only referenced, must stay unchanged while the
        smoother is in use.
    selected : array_like of bool
        One flag per row; local blocks are built for flagged rows only
    conserve_memory : bool, optional
        If True, no inverses are stored and each local system is rebuilt and
        inverted during :meth:`apply`. Default is False.
    """

    def __init__(self, matrix, selected, conserve_memory: bool = False):
        if not isinstance(matrix, PatternMatrix):
            matrix = PatternMatrix.from_scipy(matrix)
        if matrix.m() != matrix.n():
            raise ShapeMismatchError(f"Matrix is not square: {matrix.shape}")

        selected = np.array(selected, dtype=bool).ravel()
        if selected.shape != (matrix.m(),):
            raise ShapeMismatchError(
                f"Selection mask has {selected.size} entries, matrix has {matrix.m()} rows"
            )

        self.matrix = matrix
        self.selected = selected
        self.conserve_memory = conserve_memory
        self._dtype = np.result_type(matrix.dtype, np.float64)
        self._inverses = [None] * matrix.m()

        self._scratch = None
        self._scratch_in_use = False
        if conserve_memory:
            size = matrix.pattern.max_entries_per_row
            self._scratch = np.empty(size * size, dtype=self._dtype)
        else:
            self.compute_inverses()

    @property
    def n_selected(self) -> int:
        return int(np.count_nonzero(self.selected))

    def local_matrix(self, row: int, out=None) -> np.ndarray:
        """
        Gather the local system of ``row``.

        Entry (i, j) is the matrix value at (S[i], S[j]) where S are the
        columns of ``row``; entries without a slot are zero.

        Parameters
        ----------
        row : int
            Row whose coupling set defines the local system
        out : numpy.ndarray, optional
            Square buffer of matching size to fill instead of allocating
        """
        columns = self.matrix.pattern.row_columns(row)
        size = columns.size
        if out is None:
            out = np.zeros((size, size), dtype=self._dtype)
        else:
            if out.shape != (size, size):
                raise ShapeMismatchError(
                    f"Buffer of shape {out.shape} for local system of size {size}"
                )
            out[...] = 0

        pattern = self.matrix.pattern
        for i, irow in enumerate(columns):
            pos, inside = _local_index(columns, pattern.row_columns(irow))
            out[i, pos[inside]] = self.matrix.row_values(irow)[inside]
        return out

    def compute_inverses(self):
        """Compute and keep the inverse of the local system of every selected row."""
        for row in np.flatnonzero(self.selected):
            local = self.local_matrix(row)
            _invert_in_place(local)
            self._inverses[row] = local
        logger.debug(
            "Vanka: stored %d local inverses (%d bytes)",
            self.n_selected, self.memory_consumption(),
        )

    def inverse(self, row: int):
        """Stored inverse of ``row``, or None if there is none."""
        return self._inverses[row]

    @contextmanager
    def _borrow_scratch(self, size: int):
        """Lend the scratch buffer as a zeroed (size x size) matrix."""
        if self._scratch_in_use:
            raise RuntimeError("Vanka scratch buffer is already in use")
        self._scratch_in_use = True
        try:
            local = self._scratch[:size * size].reshape(size, size)
            local[...] = 0
            yield local
        finally:
            self._scratch_in_use = False

    def _local_rhs(self, columns: np.ndarray, src: np.ndarray, dst: np.ndarray,
                   local=None) -> np.ndarray:
        """
        Right-hand side of the local system with coupling set ``columns``.

        Couplings leaving the set are subtracted using the current ``dst``.
        If ``local`` is given, the local matrix is gathered into it as well.
        """
        pattern = self.matrix.pattern
        b = np.empty(columns.size, dtype=np.result_type(self._dtype, src, dst))
        for i, irow in enumerate(columns):
            irow_columns = pattern.row_columns(irow)
            irow_values = self.matrix.row_values(irow)
            pos, inside = _local_index(columns, irow_columns)
            outside = ~inside
            b[i] = src[irow] - irow_values[outside] @ dst[irow_columns[outside]]
            if local is not None:
                local[i, pos[inside]] = irow_values[inside]
        return b

    def apply(self, dst: np.ndarray, src: np.ndarray):
        """
        One Vanka sweep: clear ``dst``, then update the coupling set of each
        selected row in ascending row order.

        Rows processed later read the values of ``dst`` written by earlier
        rows of the same sweep.
        """
        n = self.matrix.m()
        src = np.asarray(src)
        if src.shape != (n,) or dst.shape != (n,):
            raise ShapeMismatchError(
                f"Vectors of shape {dst.shape} and {src.shape} for matrix of size {n}"
            )

        dst[:] = 0
        pattern = self.matrix.pattern
        for row in np.flatnonzero(self.selected):
            columns = pattern.row_columns(row)
            if self.conserve_memory:
                with self._borrow_scratch(columns.size) as local:
                    b = self._local_rhs(columns, src, dst, local)
                    _invert_in_place(local)
                    x = local @ b
            else:
                b = self._local_rhs(columns, src, dst)
                x = self._inverses[row] @ b
            dst[columns] = x

    vmult = apply
    __call__ = apply

    def as_linear_operator(self) -> LinearOperator:
        """SciPy LinearOperator applying one Vanka sweep."""
        n = self.matrix.m()

        def matvec(x):
            x = np.asarray(x).ravel()
            dst = np.empty(n, dtype=np.result_type(self._dtype, x))
            self.apply(dst, x)
            return dst

        return LinearOperator((n, n), matvec=matvec, dtype=self._dtype)

    def memory_consumption(self) -> int:
        """Bytes held by stored inverses, the scratch buffer and the mask."""
        total = self.selected.nbytes
        if self._scratch is not None:
            total += self._scratch.nbytes
        for inverse in self._inverses:
            if inverse is not None:
                total += inverse.nbytes
        return total
