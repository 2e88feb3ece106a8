"""
Preconditioned Krylov solves using SciPy GMRES/BiCGStab.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .preconditioners import make_preconditioner

logger = logging.getLogger(__name__)

METHODS = ("gmres", "bicgstab")
PRECONDITIONERS = ("none", "ilu", "vanka")


@dataclass
class ConvergenceInfo:
    """
    Information about the convergence of a preconditioned Krylov solve.

    Attributes
    ----------
    converged : bool
        Whether the solver converged to the specified tolerance
    iterations : int
        Number of inner iterations performed. For restarted GMRES every
        Arnoldi step counts, not every restart cycle.
    residual_norm : float
        Final residual norm ||b - Ax||
    relative_residual : float
        Final relative residual norm ||b - Ax|| / ||b||
    solve_time : float
        Time taken for the solve (seconds)
    setup_time : float
        Time taken for preconditioner setup (seconds)
    reason : str
        Human-readable reason for termination
    raw_info : int
        Raw convergence info from the underlying solver
    method : str
        Krylov method used
    preconditioner : str
        Name of the preconditioner used
    residuals : list of float
        Relative residual after each iteration. GMRES reports the
        preconditioned residual estimate, BiCGStab the true residual.
    """
    converged: bool
    iterations: int
    residual_norm: float
    relative_residual: float
    solve_time: float
    setup_time: float = 0.0
    reason: str = ""
    raw_info: int = 0
    method: str = "gmres"
    preconditioner: str = "none"
    residuals: List[float] = field(default_factory=list)

    @property
    def reduction_rate(self) -> float:
        """Geometric mean of the per-iteration residual reduction."""
        if len(self.residuals) < 2 or self.residuals[0] <= 0:
            return float("nan")
        return (self.residuals[-1] / self.residuals[0]) ** (1.0 / (len(self.residuals) - 1))

    def __str__(self):
        status = "Converged" if self.converged else "Not converged"
        return (
            f"{status} in {self.iterations} iterations "
            f"({self.method}, {self.preconditioner})\n"
            f"  Residual norm: {self.residual_norm:.2e}\n"
            f"  Relative residual: {self.relative_residual:.2e}\n"
            f"  Setup time: {self.setup_time:.4f}s\n"
            f"  Solve time: {self.solve_time:.4f}s"
        )

    def to_dict(self):
        """Convert to a plain dictionary."""
        return {
            "converged": self.converged,
            "niter": self.iterations,
            "residual_norm": self.residual_norm,
            "relative_residual": self.relative_residual,
            "time": self.solve_time,
            "setup_time": self.setup_time,
            "reason": self.reason,
            "raw_info": self.raw_info,
            "method": self.method,
            "preconditioner": self.preconditioner,
            "residuals": list(self.residuals),
        }


def cpu_solve(A: sp.spmatrix,
              b: np.ndarray,
              method: str = "gmres",
              preconditioner: str = "none",
              tol: float = 1e-8,
              maxiter: int = 1000,
              restart: Optional[int] = 50,
              **preconditioner_kwargs):
    """
    Solve Ax = b with SciPy GMRES/BiCGStab and an optional ILU/Vanka
    preconditioner.

    Parameters
    ----------
    A : scipy.sparse.spmatrix
        Sparse matrix
    b : numpy.ndarray
        Right-hand side vector
    method : str, optional
        Solver method: "gmres" or "bicgstab". Default is "gmres".
    preconditioner : str, optional
        Preconditioner type: "none", "ilu", or "vanka". Default is "none".
    tol : float, optional
        Relative convergence tolerance. Default is 1e-8.
    maxiter : int, optional
        Maximum number of iterations. Default is 1000.
    restart : int or None, optional
        Restart parameter for GMRES. Default is 50.
    **preconditioner_kwargs
        Forwarded to the preconditioner, e.g. ``strengthen_diagonal`` for
        ILU or ``selected`` and ``conserve_memory`` for Vanka.

    Returns
    -------
    x : numpy.ndarray
        Solution vector
    info : ConvergenceInfo
        Convergence information
    """
    if method not in METHODS:
        raise ValueError("method must be 'gmres' or 'bicgstab'")

    t0_setup = time.perf_counter()
    M = make_preconditioner(A, preconditioner, **preconditioner_kwargs)
    setup_time = time.perf_counter() - t0_setup

    b_norm = np.linalg.norm(b)
    residuals = []

    def pr_norm_callback(pr_norm):
        # called once per inner GMRES iteration
        residuals.append(float(pr_norm))

    def x_callback(xk):
        # BiCGStab doesn't give the residual, we recompute it.
        r = np.linalg.norm(b - A @ xk)
        residuals.append(float(r / b_norm) if b_norm > 0 else float(r))

    t0 = time.perf_counter()
    if method == "gmres":
        x, info = spla.gmres(
            A, b, M=M, rtol=tol, atol=0.0, maxiter=maxiter, restart=restart,
            callback=pr_norm_callback, callback_type="pr_norm"
        )
    else:  # bicgstab
        x, info = spla.bicgstab(
            A, b, M=M, rtol=tol, atol=0.0, maxiter=maxiter,
            callback=x_callback
        )
    solve_time = time.perf_counter() - t0

    niter = len(residuals)
    res_norm = np.linalg.norm(b - A @ x)

    if info == 0:
        reason = "Converged"
    elif info > 0:
        reason = f"Did not converge in {info} iterations"
    else:
        reason = "Breakdown or error"

    conv_info = ConvergenceInfo(
        converged=(info == 0),
        iterations=niter,
        residual_norm=float(res_norm),
        relative_residual=float(res_norm / b_norm) if b_norm > 0 else float(res_norm),
        solve_time=solve_time,
        setup_time=setup_time,
        reason=reason,
        raw_info=int(info),
        method=method,
        preconditioner=preconditioner,
        residuals=residuals,
    )
    logger.debug(
        "%s/%s: %s after %d iterations (setup %.4fs, solve %.4fs)",
        method, preconditioner, reason, niter, setup_time, solve_time,
    )
    return x, conv_info


class KrylovSolver:
    """
    Krylov solver (GMRES, BiCGStab) preconditioned with the pattern-based
    ILU or Vanka preconditioners of this package.
    """

    def __init__(self,
                 method: str = "gmres",
                 preconditioner: str = "none",
                 tol: float = 1e-8,
                 maxiter: int = 1000,
                 restart: Optional[int] = 50,
                 **preconditioner_kwargs):
        """
        Initialize the Krylov solver.

        Parameters
        ----------
        method : str, optional
            Solver method: "gmres" or "bicgstab". Default is "gmres".
        preconditioner : str, optional
            Preconditioner type: "none", "ilu", or "vanka". Default is "none".
        tol : float, optional
            Relative convergence tolerance. Default is 1e-8.
        maxiter : int, optional
            Maximum number of iterations. Default is 1000.
        restart : int or None, optional
            Restart parameter for GMRES. Default is 50.
        **preconditioner_kwargs
            Preconditioner options (strengthen_diagonal, selected,
            conserve_memory).
        """
        method = method.lower()
        preconditioner = preconditioner.lower()

        if method not in METHODS:
            raise ValueError("method must be 'gmres' or 'bicgstab'")
        if preconditioner not in PRECONDITIONERS:
            raise ValueError("preconditioner must be 'none', 'ilu' or 'vanka'")
        if tol <= 0:
            raise ValueError("tol must be positive")
        if maxiter < 1:
            raise ValueError("maxiter must be at least 1")

        self.method = method
        self.preconditioner = preconditioner
        self.tol = tol
        self.maxiter = maxiter
        self.restart = restart
        self.preconditioner_kwargs = preconditioner_kwargs

    def solve(self, A: sp.spmatrix, b: np.ndarray):
        """
        Solve Ax = b using the configured method and preconditioner.

        Returns
        -------
        x : numpy.ndarray
            Solution vector
        info : ConvergenceInfo
            Convergence information
        """
        return cpu_solve(
            A, b,
            method=self.method,
            preconditioner=self.preconditioner,
            tol=self.tol,
            maxiter=self.maxiter,
            restart=self.restart,
            **self.preconditioner_kwargs,
        )


def solve(A: sp.spmatrix,
          b: np.ndarray,
          method: str = "gmres",
          preconditioner: str = "ilu",
          tol: float = 1e-8,
          maxiter: int = 1000,
          restart: Optional[int] = 50,
          **preconditioner_kwargs):
    """
    High-level solve function for sparse linear systems.

    Parameters
    ----------
    A : scipy.sparse.spmatrix
        Sparse matrix
    b : numpy.ndarray
        Right-hand side vector
    method : str, optional
        Solver method: "gmres" or "bicgstab". Default is "gmres".
    preconditioner : str, optional
        Preconditioner type: "none", "ilu", or "vanka". Default is "ilu".
    tol : float, optional
        Relative convergence tolerance. Default is 1e-8.
    maxiter : int, optional
        Maximum number of iterations. Default is 1000.
    restart : int or None, optional
        Restart parameter for GMRES. Default is 50.
    **preconditioner_kwargs
        Preconditioner options

    Returns
    -------
    x : numpy.ndarray
        Solution vector
    info : ConvergenceInfo
        Convergence information

    Examples
    --------
    >>> import numpy as np
    >>> from sparse_precond import solve, poisson_2d
    >>>
    >>> A = poisson_2d(20, 20)
    >>> b = np.ones(A.shape[0])
    >>> x, info = solve(A, b, method="bicgstab", preconditioner="vanka")
    >>> print(f"Converged: {info.converged}, Iterations: {info.iterations}")
    """
    solver = KrylovSolver(
        method=method,
        preconditioner=preconditioner,
        tol=tol,
        maxiter=maxiter,
        restart=restart,
        **preconditioner_kwargs,
    )
    return solver.solve(A, b)
