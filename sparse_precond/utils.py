"""
Utility functions for test-matrix generation.
"""

import numpy as np
import scipy.sparse as sp


def poisson_2d(nx: int, ny: int):
    """
    Build 2D Poisson matrix on a regular grid (nx * ny) with Dirichlet BC.
    Returns SciPy CSR matrix of size (nx*ny, nx*ny).

    Parameters
    ----------
    nx : int
        Number of grid points in x-direction
    ny : int
        Number of grid points in y-direction

    Returns
    -------
    A : scipy.sparse.csr_matrix
        The sparse Poisson matrix in CSR format
    """
    N = nx * ny
    main_diag = np.ones(N) * 4.0
    off_diag = np.ones(N - 1) * -1.0
    off_diag2 = np.ones(N - nx) * -1.0

    # Mask out connections across row boundaries
    for i in range(1, ny):
        off_diag[i * nx - 1] = 0.0

    diags = [main_diag, off_diag, off_diag, off_diag2, off_diag2]
    offsets = [0, -1, 1, -nx, nx]
    A = sp.diags(diags, offsets, shape=(N, N), format="csr")
    A.eliminate_zeros()
    return A


def banded(n: int, bands: dict):
    """
    Build a banded CSR matrix that stores every in-range slot of each band.

    Parameters
    ----------
    n : int
        Matrix size
    bands : dict
        Maps diagonal offset to its constant value

    Returns
    -------
    A : scipy.sparse.csr_matrix
    """
    offsets = [k for k in sorted(bands) if abs(k) < n]
    diags = [np.full(n - abs(k), float(bands[k])) for k in offsets]
    return sp.diags(diags, offsets, shape=(n, n), format="csr")


def tridiagonal(n: int, diag: float = 4.0, off: float = -1.0):
    """Tridiagonal matrix with constant diagonal ``diag`` and neighbours ``off``."""
    return banded(n, {-1: off, 0: diag, 1: off})


def pentadiagonal(n: int, diag: float = 6.0, off1: float = -1.0, off2: float = -0.5):
    """Pentadiagonal matrix with constant bands at offsets 0, ±1 and ±2."""
    return banded(n, {-2: off2, -1: off1, 0: diag, 1: off1, 2: off2})
