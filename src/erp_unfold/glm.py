"""
GLM Fitting Module

Solves the least-squares problem between the time-expanded design matrix and
the continuous signal, channel by channel, on the samples that are both
inside an event window and not excluded as artifacts.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy import linalg
from scipy.sparse.linalg import lsmr

from .errors import FitError
from .timeexpand import ExpandedDesign

# lsmr stop reasons that mean the solution cannot be trusted
LSMR_SINGULAR = 6
LSMR_MAXITER = 7


@dataclass
class GLMFit:
    """
    Fitted regression coefficients.

    Attributes:
        beta: Coefficients, shape (n_terms * n_lags, n_channels). Columns of
            the design matrix without any usable sample are NaN.
        n_samples_used: Number of samples entering the fit
        solver: Solver that produced the coefficients
    """

    beta: np.ndarray
    n_samples_used: int
    solver: str

    @property
    def n_unsupported(self) -> int:
        return int(np.sum(np.isnan(self.beta[:, 0]))) if self.beta.size else 0


def fit_glm(expanded: ExpandedDesign, data: np.ndarray, solver: str = 'lsmr',
            damp: float = 0.0, maxiter: Optional[int] = None,
            tol: float = 1e-8) -> GLMFit:
    """
    Fit the time-expanded design matrix to the continuous signal

    Parameters:
    -----------
    expanded : ExpandedDesign
        Time-expanded design matrix with its fit mask
    data : np.ndarray
        Continuous signal, shape (n_channels, n_samples)
    solver : str
        'lsmr' (sparse iterative, minimum-norm for collinear designs) or
        'lstsq' (dense, fails on rank-deficient designs)
    damp : float
        Ridge damping, ``min ||Xb - y||^2 + damp^2 ||b||^2``
    maxiter : int, optional
        lsmr iteration limit
    tol : float
        lsmr stopping tolerance (atol and btol)

    Returns:
    --------
    fit : GLMFit
        Coefficients for every column of the time-expanded matrix

    Raises:
    -------
    FitError
        If no sample is left to fit, the solver does not converge, the
        dense system is rank-deficient or the solution is not finite
    """
    X = expanded.matrix.tocsr()
    n_channels = data.shape[0]

    if data.shape[1] != X.shape[0]:
        raise FitError(
            f"Signal has {data.shape[1]} samples but the design matrix has "
            f"{X.shape[0]} rows"
        )

    touched = np.diff(X.indptr) > 0
    if expanded.n_events == 0 or not touched.any():
        raise FitError("No modeled events: the design matrix has no entries to fit")

    rows = np.flatnonzero(expanded.fit_mask & touched)
    if len(rows) == 0:
        raise FitError("No samples left to fit after artifact exclusion")

    X_fit = X[rows]
    Y_fit = np.asarray(data[:, rows], dtype=float).T

    support = np.flatnonzero(X_fit.getnnz(axis=0) > 0)
    X_fit = X_fit[:, support]

    beta = np.full((X.shape[1], n_channels), np.nan)

    if solver == 'lsmr':
        for ch in range(n_channels):
            result = lsmr(X_fit, Y_fit[:, ch], damp=damp, atol=tol, btol=tol,
                          maxiter=maxiter)
            coef, istop, itn = result[0], result[1], result[2]
            if istop == LSMR_MAXITER:
                raise FitError(f"lsmr did not converge within {itn} iterations "
                               f"(channel {ch})")
            if istop == LSMR_SINGULAR:
                raise FitError(f"Design matrix is numerically singular (channel {ch})")
            beta[support, ch] = coef

    elif solver == 'lstsq':
        A = X_fit.toarray()
        B = Y_fit
        if damp > 0:
            A = np.vstack([A, damp * np.eye(A.shape[1])])
            B = np.vstack([B, np.zeros((A.shape[1], n_channels))])
        coef, _, rank, _ = linalg.lstsq(A, B)
        if rank < A.shape[1]:
            raise FitError(
                f"Design matrix is rank-deficient (rank {rank} < {A.shape[1]} columns)"
            )
        beta[support, :] = coef

    else:
        raise ValueError(f"Unknown solver: {solver}")

    if not np.all(np.isfinite(beta[support])):
        raise FitError("Regression produced non-finite coefficients")

    n_missing = X.shape[1] - len(support)
    print(f"GLM fitted on {len(rows)} samples, {n_channels} channels "
          f"({n_missing} columns without data)")

    return GLMFit(beta=beta, n_samples_used=len(rows), solver=solver)
