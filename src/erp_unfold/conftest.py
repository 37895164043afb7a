"""
Shared fixtures: synthetic continuous recordings with stimulus annotations.
"""

import numpy as np
import mne
import pytest

from erp_unfold.config import BatchConfig


def response_shape(times: np.ndarray, latency: float, width: float, amplitude: float) -> np.ndarray:
    """Gaussian bump used as a synthetic evoked response (microvolts)."""
    return amplitude * np.exp(-0.5 * ((times - latency) / width) ** 2)


def make_raw(events, sfreq=1000.0, duration=10.0, ch_names=('Fz', 'Cz', 'Pz'),
             responses=None, offset_uv=0.0, noise_uv=0.0, seed=0):
    """
    Build a RawArray with annotated events

    Parameters:
    -----------
    events : list of (onset_seconds, description)
    responses : dict, optional
        description -> (latency, width, amplitude) of the response added after
        each event of that type, identical on every channel
    offset_uv : float
        Constant added to the whole signal (microvolts)
    noise_uv : float
        Standard deviation of white noise (microvolts)
    """
    n_samples = int(round(duration * sfreq))
    rng = np.random.default_rng(seed)
    data = np.full((len(ch_names), n_samples), float(offset_uv))
    if noise_uv:
        data += rng.normal(0.0, noise_uv, data.shape)

    times = np.arange(n_samples) / sfreq
    for onset, description in events:
        if responses and description in responses:
            latency, width, amplitude = responses[description]
            data += response_shape(times, onset + latency, width, amplitude)

    info = mne.create_info(list(ch_names), sfreq, ch_types='eeg')
    raw = mne.io.RawArray(data * 1e-6, info, verbose=False)

    if events:
        raw.set_annotations(mne.Annotations(
            onset=[onset for onset, _ in events],
            duration=[0.0] * len(events),
            description=[description for _, description in events],
        ))

    return raw


def scenario_events():
    """Five 'A' and five 'B' events, two seconds apart within each type."""
    a_events = [(0.5 + 2.0 * k, 'A') for k in range(5)]
    b_events = [(1.5 + 2.0 * k, 'B') for k in range(5)]
    return sorted(a_events + b_events)


SCENARIO_RESPONSES = {
    'A': (0.3, 0.05, 5.0),
    'B': (0.4, 0.08, -4.0),
}


@pytest.fixture
def scenario_raw():
    return make_raw(scenario_events(), responses=SCENARIO_RESPONSES, noise_uv=0.5)


@pytest.fixture
def batch_config():
    return BatchConfig(
        stim1_labels=('A',),
        stim2_labels=('B',),
        tmin=-0.2,
        tmax=0.8,
        amplitude_threshold=250.0,
        condition=1,
        l_freq=None,
        h_freq=None,
    )


@pytest.fixture
def save_raw(tmp_path):
    """Write a recording to a .fif file and return its path."""
    def _save(raw, name):
        path = tmp_path / 'raw' / f'{name}_raw.fif'
        path.parent.mkdir(exist_ok=True)
        raw.save(path, overwrite=True, verbose=False)
        return str(path)
    return _save


@pytest.fixture
def raw_factory():
    return make_raw
