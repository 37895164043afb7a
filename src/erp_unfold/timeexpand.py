"""
Time-Expansion Module

Expands the event-level design matrix over a peri-event lag window with
stick (one indicator per lag) functions. Each event writes its predictor
values into the samples ``latency + lag`` of its own lag columns; where the
windows of neighbouring events overlap, their contributions add up. Fitting
this matrix to the continuous signal separates the overlapping responses.
"""

from dataclasses import dataclass, field
from typing import List

import numpy as np
from scipy import sparse

from .design import DesignMatrix
from .errors import ConfigurationError


@dataclass
class ExpandedDesign:
    """
    Time-expanded design matrix over the whole recording.

    Column ``k * n_lags + j`` holds term ``k`` at lag ``j``. ``fit_mask``
    marks the rows used for fitting; artifact exclusion only edits the mask.
    """

    matrix: sparse.csr_matrix
    times: np.ndarray
    terms: List[str]
    sfreq: float
    n_events: int
    fit_mask: np.ndarray = field(default=None)

    def __post_init__(self):
        if self.fit_mask is None:
            self.fit_mask = np.ones(self.matrix.shape[0], dtype=bool)

    @property
    def n_lags(self) -> int:
        return len(self.times)

    @property
    def n_samples(self) -> int:
        return self.matrix.shape[0]

    @property
    def shape(self):
        return self.matrix.shape


def lag_samples(tmin: float, tmax: float, sfreq: float) -> np.ndarray:
    """
    Lag offsets in samples covering [tmin, tmax]

    The lag count is ``round((tmax - tmin) * sfreq) + 1``; rounding the
    window length once keeps the count right for windows off the sample grid.
    """
    if tmin >= tmax:
        raise ConfigurationError(f"Window start ({tmin}) must be < end ({tmax})")
    start = int(round(tmin * sfreq))
    n_lags = int(round((tmax - tmin) * sfreq)) + 1
    return np.arange(start, start + n_lags)


def time_expand(design: DesignMatrix, n_samples: int, sfreq: float,
                tmin: float, tmax: float, method: str = 'stick') -> ExpandedDesign:
    """
    Build the time-expanded design matrix

    Parameters:
    -----------
    design : DesignMatrix
        Event-level design matrix
    n_samples : int
        Number of samples in the continuous recording
    sfreq : float
        Sampling rate (Hz)
    tmin, tmax : float
        Peri-event window (seconds)
    method : str
        Temporal basis, only 'stick' is supported

    Returns:
    --------
    expanded : ExpandedDesign
        Sparse matrix of shape (n_samples, n_terms * n_lags) and its lag axis

    Notes:
    ------
    Event windows reaching outside the recording are clipped.
    """
    if method != 'stick':
        raise ConfigurationError(f"Unsupported time-expansion method: '{method}'")

    lags = lag_samples(tmin, tmax, sfreq)
    n_lags = len(lags)
    n_events, n_terms = design.matrix.shape

    # One candidate entry per (event, term, lag)
    rows = design.latencies[:, None, None] + lags[None, None, :]
    cols = np.arange(n_terms)[None, :, None] * n_lags + np.arange(n_lags)[None, None, :]
    values = design.matrix[:, :, None]

    rows, cols, values = np.broadcast_arrays(rows, cols, values)
    rows, cols, values = rows.ravel(), cols.ravel(), values.ravel()

    keep = (rows >= 0) & (rows < n_samples) & (values != 0)

    # Duplicate coordinates are summed on conversion
    matrix = sparse.coo_matrix(
        (values[keep].astype(float), (rows[keep], cols[keep])),
        shape=(n_samples, n_terms * n_lags),
    ).tocsr()

    return ExpandedDesign(
        matrix=matrix,
        times=lags / sfreq,
        terms=list(design.terms),
        sfreq=sfreq,
        n_events=n_events,
    )
