"""
Continuous Artifact Module

Finds amplitude artifacts in the continuous recording and masks them out of
the regression. Samples are never deleted: exclusion only flags rows of the
time-expanded design matrix as unused for fitting.
"""

from dataclasses import replace
from typing import List, Sequence, Tuple

import autoreject
import mne
import numpy as np

from .timeexpand import ExpandedDesign

Interval = Tuple[int, int]


def merge_intervals(intervals: Sequence[Interval]) -> List[Interval]:
    """
    Merge overlapping or touching intervals

    Parameters:
    -----------
    intervals : sequence of tuples
        Half-open (start, stop) sample intervals

    Returns:
    --------
    merged : list of tuples
        Sorted, non-overlapping intervals
    """
    if not intervals:
        return []

    ordered = sorted(intervals, key=lambda x: x[0])

    merged = [tuple(ordered[0])]

    for current in ordered[1:]:
        last = merged[-1]

        if current[0] <= last[1]:
            merged[-1] = (last[0], max(last[1], current[1]))
        else:
            merged.append(tuple(current))

    return merged


def detect_continuous_artifacts(data: np.ndarray, sfreq: float, threshold: float,
                                window: float = 2.0, step: float = 1.0,
                                method: str = 'absolute') -> List[Interval]:
    """
    Scan the continuous signal in fixed windows for amplitude artifacts

    Parameters:
    -----------
    data : np.ndarray
        Signal, shape (n_channels, n_samples), in the threshold's units
    sfreq : float
        Sampling rate (Hz)
    threshold : float
        Amplitude limit. With 'absolute' a window is bad when any channel
        leaves +-threshold, with 'peak_to_peak' when any channel's range
        exceeds it.
    window : float
        Window length (seconds)
    step : float
        Distance between window starts (seconds)
    method : str
        'absolute' or 'peak_to_peak'

    Returns:
    --------
    intervals : list of tuples
        Merged half-open (start, stop) sample intervals of bad windows
    """
    if method not in ('absolute', 'peak_to_peak'):
        raise ValueError(f"Unknown artifact detection method: {method}")

    n_samples = data.shape[1]
    win = max(int(round(window * sfreq)), 1)
    hop = max(int(round(step * sfreq)), 1)

    bad = []
    for start in range(0, n_samples, hop):
        stop = min(start + win, n_samples)
        segment = data[:, start:stop]

        if method == 'absolute':
            is_bad = np.any(np.abs(segment) > threshold)
        else:
            is_bad = np.any(np.ptp(segment, axis=1) > threshold)

        if is_bad:
            bad.append((start, stop))

        # Last window reaches the end of the recording
        if stop == n_samples:
            break

    return merge_intervals(bad)


def exclude_artifacts(expanded: ExpandedDesign,
                      intervals: Sequence[Interval]) -> ExpandedDesign:
    """
    Exclude artifact samples from the fit

    Parameters:
    -----------
    expanded : ExpandedDesign
        Time-expanded design matrix
    intervals : sequence of tuples
        Half-open (start, stop) sample intervals to exclude

    Returns:
    --------
    expanded : ExpandedDesign
        Copy sharing the same matrix with an updated fit mask
    """
    mask = expanded.fit_mask.copy()
    for start, stop in intervals:
        mask[max(start, 0):max(stop, 0)] = False

    n_excluded = int(np.sum(~mask))
    print(f"Excluded {n_excluded}/{len(mask)} samples "
          f"({100.0 * n_excluded / max(len(mask), 1):.1f}%) from the fit")

    return replace(expanded, fit_mask=mask)


def estimate_amplitude_threshold(raw: mne.io.BaseRaw, window: float = 2.0,
                                 step: float = 1.0) -> float:
    """
    Data-driven peak-to-peak threshold using autoreject

    Parameters:
    -----------
    raw : mne.io.BaseRaw
        Continuous EEG recording
    window : float
        Length of the fixed epochs used for estimation (seconds)
    step : float
        Distance between epoch starts (seconds)

    Returns:
    --------
    threshold : float
        Peak-to-peak threshold in microvolts
    """
    events = mne.make_fixed_length_events(
        raw, duration=window, overlap=max(window - step, 0.0)
    )
    epochs = mne.Epochs(
        raw, events, tmin=0, tmax=window - 1.0 / raw.info['sfreq'], baseline=None,
        picks='eeg', preload=True, verbose=False, reject_by_annotation=False
    )

    reject = autoreject.get_rejection_threshold(epochs, ch_types='eeg', verbose=False)
    threshold = reject['eeg'] * 1e6

    print(f"Estimated amplitude threshold: {threshold:.1f} uV (peak-to-peak)")
    return threshold
