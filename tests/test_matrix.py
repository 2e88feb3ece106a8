import sys
import os
import numpy as np
import pytest

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, PROJECT_ROOT)

from sparse_precond import PatternMatrix, SparsityPattern, PatternError, ShapeMismatchError
from sparse_precond.utils import tridiagonal, poisson_2d


def test_from_scipy_round_trip():
    A = poisson_2d(3, 4)
    M = PatternMatrix.from_scipy(A)
    assert M.shape == A.shape
    assert M.value_count() == A.nnz
    assert np.array_equal(M.to_dense(), A.toarray())


def test_element_access():
    M = PatternMatrix.from_scipy(tridiagonal(4))
    assert M.get(1, 0) == -1.0
    assert M[2, 2] == 4.0
    assert M.get(0, 3) == 0.0
    assert M.diag_element(3) == 4.0
    assert M.raw_entry(1, 2) == -1.0
    M.set(1, 2, 3.0)
    M.add(1, 2, 0.5)
    assert M.get(1, 2) == 3.5
    slot = M.pattern.slot_of(1, 2)
    assert M.value_at(slot) == 3.5
    assert M.global_entry(slot) == 3.5


def test_absent_entries_cannot_be_written():
    M = PatternMatrix.from_scipy(tridiagonal(4))
    with pytest.raises(PatternError):
        M.set(0, 3, 1.0)
    with pytest.raises(PatternError):
        M.add(3, 0, 1.0)


def test_from_scipy_rejects_entries_outside_pattern():
    pattern = SparsityPattern.from_matrix(np.eye(3))
    with pytest.raises(PatternError):
        PatternMatrix.from_scipy(tridiagonal(3), pattern=pattern)


def test_values_size_checked():
    pattern = SparsityPattern.from_matrix(np.eye(3))
    with pytest.raises(ShapeMismatchError):
        PatternMatrix(pattern, values=[1.0, 2.0])


def test_vmult_and_matmul():
    A = poisson_2d(3, 3)
    M = PatternMatrix.from_scipy(A)
    x = np.arange(9, dtype=float)
    dst = np.empty(9)
    M.vmult(dst, x)
    assert np.allclose(dst, A @ x)
    assert np.allclose(M @ x, A @ x)
    with pytest.raises(ShapeMismatchError):
        M.vmult(np.empty(8), x)


def test_clear_keeps_pattern():
    M = PatternMatrix.from_scipy(tridiagonal(3))
    M.clear()
    assert M.value_count() == 7
    assert not np.any(M.values)


def test_from_scipy_keeps_complex_values():
    A = tridiagonal(4).astype(complex)
    A.setdiag(4.0 + 1.0j)
    M = PatternMatrix.from_scipy(A)
    assert np.iscomplexobj(M.values)
    assert M[2, 2] == 4.0 + 1.0j
    assert np.array_equal(M.to_dense(), A.toarray())


def test_from_scipy_promotes_integers_to_float():
    A = tridiagonal(3).astype(np.int32)
    M = PatternMatrix.from_scipy(A)
    assert M.dtype == np.float64
