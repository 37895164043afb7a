"""
Result Condensing Module

Reshapes the fitted coefficients into a channels x lags x terms cube and
turns the selected stimulus into a baseline-corrected ERP.
"""

import re
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from .design import INTERCEPT
from .errors import ConfigurationError
from .glm import GLMFit
from .timeexpand import ExpandedDesign


@dataclass
class CondensedResult:
    """
    Per-term deconvolved responses.

    Attributes:
        beta: Coefficients, shape (n_channels, n_lags, n_terms)
        times: Lag-time axis (seconds)
        terms: Term names along the last axis
        ch_names: Channel names along the first axis
        sfreq: Sampling rate (Hz)
    """

    beta: np.ndarray
    times: np.ndarray
    terms: List[str]
    ch_names: List[str]
    sfreq: float

    def term_index(self, term: str) -> int:
        """
        Column of ``term`` in the cube

        Terms of a multi-formula model carry a '<n>_' prefix; ``term`` also
        matches them by their unprefixed name when that name is unique.
        """
        if term in self.terms:
            return self.terms.index(term)

        matches = [k for k, name in enumerate(self.terms) if base_term(name) == term]
        if len(matches) == 1:
            return matches[0]
        if matches:
            raise ConfigurationError(
                f"Term '{term}' appears in several formulas: "
                f"{[self.terms[k] for k in matches]}"
            )
        raise ConfigurationError(
            f"Term '{term}' is not in the model (terms: {self.terms})"
        )

    def conditions(self) -> np.ndarray:
        """Cube of the factor terms only, shape (n_channels, n_lags, n_factors)."""
        keep = [k for k, term in enumerate(self.terms) if base_term(term) != INTERCEPT]
        return self.beta[:, :, keep]


def base_term(name: str) -> str:
    """Term name without the '<n>_' formula prefix."""
    return re.sub(r'^\d+_', '', name)


def condense(fit: GLMFit, expanded: ExpandedDesign, ch_names: List[str]) -> CondensedResult:
    """
    Reshape flat coefficients into a channels x lags x terms cube

    Parameters:
    -----------
    fit : GLMFit
        Coefficients, shape (n_terms * n_lags, n_channels)
    expanded : ExpandedDesign
        Design the coefficients were fitted on
    ch_names : list of str
        Channel names in data order

    Returns:
    --------
    result : CondensedResult
    """
    n_terms = len(expanded.terms)
    n_lags = expanded.n_lags
    n_channels = fit.beta.shape[1]

    if fit.beta.shape[0] != n_terms * n_lags:
        raise ValueError(
            f"Expected {n_terms * n_lags} coefficients per channel, got {fit.beta.shape[0]}"
        )
    if len(ch_names) != n_channels:
        raise ValueError(f"Got {len(ch_names)} channel names for {n_channels} channels")

    cube = fit.beta.reshape(n_terms, n_lags, n_channels).transpose(2, 1, 0)

    return CondensedResult(
        beta=np.ascontiguousarray(cube),
        times=expanded.times.copy(),
        terms=list(expanded.terms),
        ch_names=list(ch_names),
        sfreq=expanded.sfreq,
    )


def extract_condition(result: CondensedResult, condition: int,
                      cutoff: float = -0.2) -> Tuple[np.ndarray, np.ndarray]:
    """
    Select one stimulus from the cube, from the cutoff onward

    Parameters:
    -----------
    result : CondensedResult
        Condensed model
    condition : int
        Stimulus number, selects the 'stim<condition>' term
    cutoff : float
        First time point kept (seconds)

    Returns:
    --------
    data : np.ndarray
        Response, shape (n_channels, n_times)
    times : np.ndarray
        Time axis of ``data`` (seconds)
    """
    index = result.term_index(f"stim{condition}")

    # Half a sample of tolerance instead of exact float equality
    start = int(np.searchsorted(result.times, cutoff - 0.5 / result.sfreq))

    return result.beta[:, start:, index].copy(), result.times[start:].copy()


def baseline_indices(times: np.ndarray, baseline: Tuple[float, float],
                     sfreq: float) -> np.ndarray:
    """Sample indices of ``times`` inside the baseline interval."""
    tol = 0.5 / sfreq
    return np.flatnonzero((times >= baseline[0] - tol) & (times <= baseline[1] + tol))


def apply_baseline_correction(data: np.ndarray, times: np.ndarray, sfreq: float,
                              baseline: Tuple[float, float] = (-0.2, 0.0)) -> np.ndarray:
    """
    Subtract the per-channel mean of the baseline interval

    Parameters:
    -----------
    data : np.ndarray
        Response, shape (n_channels, n_times)
    times : np.ndarray
        Time axis (seconds)
    sfreq : float
        Sampling rate (Hz)
    baseline : tuple
        Baseline interval (start, end) in seconds

    Returns:
    --------
    corrected : np.ndarray
    """
    indices = baseline_indices(times, baseline, sfreq)
    if len(indices) == 0:
        raise ConfigurationError(
            f"Baseline {baseline} does not overlap the time axis "
            f"[{times[0]:.3f}, {times[-1]:.3f}]"
        )

    mean = data[:, indices].mean(axis=1, keepdims=True)
    return data - mean


def has_invalid_values(data: np.ndarray) -> bool:
    """True when the condensed output contains NaN."""
    return bool(np.isnan(data).any())
