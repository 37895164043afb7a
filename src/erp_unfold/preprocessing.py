"""
EEG Preprocessing Module

Standard steps applied to each recording before unfolding: channel removal,
channel locations, resampling and band-pass filtering. All of them are
delegated to MNE.
"""

import os
from typing import Optional, Sequence

import mne

from .config import BatchConfig


def preprocess_pipeline(raw: mne.io.BaseRaw, config: BatchConfig) -> mne.io.BaseRaw:
    """
    Main preprocessing chain

    Parameters:
    -----------
    raw : mne.io.BaseRaw
        Preloaded recording
    config : BatchConfig
        Batch settings

    Returns:
    --------
    raw : mne.io.BaseRaw
        Preprocessed recording (modified in place)
    """
    # 1. Channel removal
    raw = remove_channels(raw, config.drop_channels)

    # 2. Channel locations
    if config.montage:
        raw = setup_montage(raw, config.montage)

    # 3. Resampling
    if config.resample_freq and config.resample_freq != raw.info['sfreq']:
        raw.resample(config.resample_freq, npad="auto", verbose=False)
        print(f"  Resampled to {config.resample_freq} Hz")

    # 4. Filtering
    raw = apply_filtering(raw, config.l_freq, config.h_freq)

    return raw


def remove_channels(raw: mne.io.BaseRaw, channels: Sequence[str]) -> mne.io.BaseRaw:
    """
    Remove channels from the recording

    Parameters:
    -----------
    raw : mne.io.BaseRaw
        Recording
    channels : sequence of str
        Channel names to drop; names missing from the recording are ignored

    Returns:
    --------
    raw : mne.io.BaseRaw
    """
    existing = [ch for ch in channels if ch in raw.ch_names]

    if existing:
        raw.drop_channels(existing)
        print(f"  Removed channel(s) {{{', '.join(existing)}}} from EEG data")
    else:
        print("  No channels removed from EEG data")

    return raw


def setup_montage(raw: mne.io.BaseRaw, montage: str) -> mne.io.BaseRaw:
    """
    Set channel locations

    Parameters:
    -----------
    raw : mne.io.BaseRaw
        Recording
    montage : str
        Path to a channel location file (.bvef, .elc, .sfp, ...) or the name
        of a standard MNE montage such as 'standard_1020'

    Returns:
    --------
    raw : mne.io.BaseRaw
        Recording with montage set
    """
    if os.path.isfile(montage):
        positions = mne.channels.read_custom_montage(montage)
    else:
        positions = mne.channels.make_standard_montage(montage)

    raw.set_montage(positions, match_case=False, on_missing='warn', verbose=False)

    return raw


def apply_filtering(raw: mne.io.BaseRaw, l_freq: Optional[float],
                    h_freq: Optional[float]) -> mne.io.BaseRaw:
    """
    Apply a zero-phase FIR band-pass filter

    Either cutoff may be None; with both None the data are left unchanged.
    """
    if l_freq is None and h_freq is None:
        return raw

    raw.filter(
        l_freq=l_freq,
        h_freq=h_freq,
        method='fir',
        fir_design='firwin',
        phase='zero',
        verbose=False
    )
    print(f"  Filtered: {l_freq}-{h_freq} Hz")

    return raw
