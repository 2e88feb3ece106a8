import sys
import os
import numpy as np
import pytest

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, PROJECT_ROOT)

from sparse_precond import (
    SparseILU,
    SparsityPattern,
    PatternMatrix,
    ShapeMismatchError,
    InvalidStrengtheningError,
    ZeroPivotError,
    NotDecomposedError,
)
from sparse_precond.utils import tridiagonal, pentadiagonal, poisson_2d


def _ilu(A, strengthen_diagonal=0.0, pattern=None):
    if pattern is None:
        pattern = SparsityPattern.from_matrix(A)
    ilu = SparseILU(pattern)
    ilu.decompose(A, strengthen_diagonal=strengthen_diagonal)
    return ilu


def _dense_ilu0(A):
    """Textbook IKJ ILU(0) on a dense copy, restricted to the non-zeros of A."""
    a = A.toarray().astype(float)
    mask = a != 0
    n = a.shape[0]
    for i in range(1, n):
        for k in range(i):
            if not mask[i, k]:
                continue
            a[i, k] /= a[k, k]
            for j in range(k + 1, n):
                if mask[i, j]:
                    a[i, j] -= a[i, k] * a[k, j]
    return a, mask


def test_tridiagonal_4x4_matches_dense_solve():
    A = tridiagonal(4, diag=4.0, off=-1.0)
    ilu = _ilu(A)
    b = np.ones(4)
    x = np.empty(4)
    ilu.apply_decomposition(x, b)
    assert np.allclose(x, np.linalg.solve(A.toarray(), b), rtol=0.0, atol=1e-12)


def test_exact_for_pattern_without_missing_fill():
    A = tridiagonal(30, diag=3.0, off=-1.2)
    ilu = _ilu(A)
    rng = np.random.default_rng(1)
    x_true = rng.standard_normal(30)
    x = ilu.solve(A @ x_true)
    assert np.max(np.abs(x - x_true)) < 1e-12


def test_factors_match_dense_reference():
    A = poisson_2d(4, 3)
    ilu = _ilu(A)
    ref, mask = _dense_ilu0(A)
    got = ilu.to_dense()
    n = A.shape[0]
    off = mask & ~np.eye(n, dtype=bool)
    assert np.allclose(got[off], ref[off], rtol=1e-13, atol=1e-15)
    # diagonal slots hold reciprocal pivots
    assert np.allclose(np.diag(got), 1.0 / np.diag(ref), rtol=1e-13)


def test_no_fill_in():
    A = poisson_2d(4, 4)
    pattern = SparsityPattern.from_matrix(A)
    ilu = _ilu(A, pattern=pattern)
    assert ilu.pattern == pattern
    assert ilu.value_count() == A.nnz
    dense = ilu.to_dense()
    outside = A.toarray() == 0
    assert np.all(dense[outside] == 0.0)


def test_product_of_factors_matches_matrix_on_pattern():
    A = poisson_2d(6, 6)
    ilu = _ilu(A)
    n = A.shape[0]
    factor = ilu.to_dense()
    L = np.tril(factor, -1) + np.eye(n)
    U = np.triu(factor, 1) + np.diag(1.0 / np.diag(factor))
    LU = L @ U
    dense = A.toarray()
    on_pattern = dense != 0
    assert np.allclose(LU[on_pattern], dense[on_pattern], atol=1e-12)
    # the 5-point pattern misses fill-in, so LU differs from A elsewhere
    assert np.max(np.abs(LU[~on_pattern])) > 1e-3


def test_full_pattern_gives_exact_lu():
    A = poisson_2d(3, 3)
    n = A.shape[0]
    full = SparsityPattern.from_matrix(np.ones((n, n)))
    ilu = _ilu(A, pattern=full)
    b = np.arange(1.0, n + 1)
    assert np.allclose(ilu.solve(b), np.linalg.solve(A.toarray(), b), atol=1e-12)


def test_entries_outside_target_pattern_are_dropped():
    A = tridiagonal(5, diag=2.0, off=-1.0)
    diag_only = SparsityPattern.from_matrix(np.eye(5))
    ilu = _ilu(A, pattern=diag_only)
    b = np.arange(5.0)
    assert np.allclose(ilu.solve(b), b / 2.0)


def test_pattern_matrix_source():
    A = pentadiagonal(7)
    M = PatternMatrix.from_scipy(A)
    from_scipy = _ilu(A)
    from_pattern = SparseILU(M.pattern)
    from_pattern.decompose(M)
    assert np.array_equal(from_scipy.values, from_pattern.values)


def test_diagonal_strengthening_before_elimination():
    A = pentadiagonal(6, diag=6.0, off1=-1.0, off2=-0.5)
    ilu = SparseILU(SparsityPattern.from_matrix(A))
    ilu.copy_from(A)
    ilu.add_diagonal_strengthening(0.5)

    dense = A.toarray()
    offsum = np.abs(dense).sum(axis=1) - np.abs(np.diag(dense))
    got = ilu.to_dense()
    assert np.allclose(np.diag(got), np.diag(dense) + 0.5 * offsum)
    off = ~np.eye(6, dtype=bool)
    assert np.array_equal(got[off], dense[off])


def test_diagonal_strengthening_is_monotone():
    A = poisson_2d(3, 3)
    diagonals = []
    for factor in (0.0, 0.1, 1.0):
        ilu = SparseILU(SparsityPattern.from_matrix(A))
        ilu.copy_from(A)
        ilu.add_diagonal_strengthening(factor)
        diagonals.append(np.diag(ilu.to_dense()))
    assert np.all(diagonals[1] > diagonals[0])
    assert np.all(diagonals[2] > diagonals[1])


def test_strengthened_decompose_first_row():
    A = tridiagonal(4, diag=4.0, off=-1.0)
    ilu = _ilu(A, strengthen_diagonal=2.0)
    # row 0 is only inverted: 1 / (4 + 2 * 1)
    assert ilu.get(0, 0) == pytest.approx(1.0 / 6.0)
    assert ilu.get(0, 1) == -1.0


def test_single_row_matrix():
    A = np.array([[5.0]])
    ilu = _ilu(A)
    assert ilu.solve([10.0]) == pytest.approx([2.0])


def test_negative_strengthening_rejected():
    A = tridiagonal(3)
    ilu = SparseILU(SparsityPattern.from_matrix(A))
    with pytest.raises(InvalidStrengtheningError):
        ilu.decompose(A, strengthen_diagonal=-1.0)
    with pytest.raises(ValueError):
        ilu.add_diagonal_strengthening(-0.1)


def test_shape_mismatch():
    ilu = SparseILU(SparsityPattern.from_matrix(tridiagonal(3)))
    with pytest.raises(ShapeMismatchError):
        ilu.decompose(tridiagonal(4))
    with pytest.raises(ShapeMismatchError):
        ilu.decompose(np.ones((3, 2)))
    rect = SparseILU(SparsityPattern.from_entries(3, 4, [0], [0]))
    with pytest.raises(ShapeMismatchError):
        rect.decompose(np.eye(3))


def test_zero_pivot_first_row():
    A = np.array([[0.0, 1.0], [1.0, 0.0]])
    ilu = SparseILU(SparsityPattern.from_matrix(A))
    with pytest.raises(ZeroPivotError) as exc:
        ilu.decompose(A)
    assert exc.value.row == 0
    assert not ilu.is_decomposed


def test_zero_pivot_last_row():
    A = np.array([[1.0, 1.0], [1.0, 1.0]])
    ilu = SparseILU(SparsityPattern.from_matrix(A))
    with pytest.raises(ZeroPivotError) as exc:
        ilu.decompose(A)
    assert exc.value.row == 1


def test_zero_pivot_cured_by_strengthening():
    A = np.array([[1.0, 1.0], [1.0, 1.0]])
    ilu = SparseILU(SparsityPattern.from_matrix(A))
    ilu.decompose(A, strengthen_diagonal=1.0)
    assert ilu.is_decomposed


def test_apply_requires_decomposition():
    ilu = SparseILU(SparsityPattern.from_matrix(tridiagonal(3)))
    with pytest.raises(NotDecomposedError):
        ilu.apply_decomposition(np.empty(3), np.ones(3))


def test_apply_size_mismatch():
    ilu = _ilu(tridiagonal(3))
    with pytest.raises(ShapeMismatchError):
        ilu.apply_decomposition(np.empty(4), np.ones(4))
    with pytest.raises(ShapeMismatchError):
        ilu.apply_decomposition(np.empty(3), np.ones(4))


def test_reinit_discards_factor():
    ilu = _ilu(tridiagonal(3))
    ilu.reinit()
    assert not ilu.is_decomposed
    assert not np.any(ilu.values)


def test_linear_operator():
    A = tridiagonal(6)
    M = _ilu(A).as_linear_operator()
    b = np.ones(6)
    assert M.shape == (6, 6)
    assert np.allclose(A @ M.matvec(b), b, atol=1e-12)


def test_complex_tridiagonal_solve():
    A = tridiagonal(5).astype(complex)
    A.setdiag(np.array([4.0 + 1.0j, 4.0 - 2.0j, 3.0 + 0.5j, 4.0, 5.0 + 1.0j]))
    ilu = _ilu(A)
    assert np.iscomplexobj(ilu.values)

    b = np.array([1.0, 2.0j, -1.0, 0.5 + 0.5j, 3.0])
    # no fill-in on a tridiagonal pattern, so the factorization is exact
    assert np.allclose(ilu.solve(b), np.linalg.solve(A.toarray(), b), atol=1e-12)


def test_sweeps_with_diagonal_mid_row():
    # unsymmetric pattern: row 1 has two entries left of the diagonal, row 0
    # two entries right of it
    dense = np.array([
        [4.0, 0.0, 1.0, -1.0],
        [1.0, 5.0, 0.0, 0.0],
        [-1.0, 2.0, 6.0, 1.0],
        [0.0, 0.0, 1.0, 3.0],
    ])
    ilu = _ilu(dense, pattern=SparsityPattern.from_matrix(np.ones((4, 4))))
    b = np.array([1.0, -2.0, 0.5, 4.0])
    # full pattern: ILU is the exact LU
    assert np.allclose(ilu.solve(b), np.linalg.solve(dense, b), atol=1e-12)
