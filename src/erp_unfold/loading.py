"""
EEG Data Loading Module

Finds and loads continuous recordings, either from a folder of files or from
a BIDS dataset through MNE-BIDS, and exposes their EEG signal in microvolts.
"""

import os
from pathlib import Path
from typing import List, Optional, Tuple

import mne
import numpy as np
from mne_bids import BIDSPath, read_raw_bids

RECORDING_EXTENSIONS = ('.vhdr', '.set', '.fif', '.edf', '.bdf')

VOLTS_TO_MICROVOLTS = 1e6


def list_recordings(folder: str) -> List[str]:
    """
    List loadable recordings in a folder

    Parameters:
    -----------
    folder : str
        Directory to search (not recursive)

    Returns:
    --------
    files : list of str
        Sorted paths of files with a supported extension
    """
    if not os.path.isdir(folder):
        raise FileNotFoundError(f"Input directory not found: {folder}")

    return sorted(
        str(path) for path in Path(folder).iterdir()
        if path.is_file() and path.suffix.lower() in RECORDING_EXTENSIONS
    )


def load_recording(filepath: str) -> mne.io.BaseRaw:
    """
    Load a continuous recording into memory

    Parameters:
    -----------
    filepath : str
        Path to a .vhdr, .set, .fif, .edf or .bdf file

    Returns:
    --------
    raw : mne.io.BaseRaw
        Preloaded recording
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Recording not found: {filepath}")

    ext = Path(filepath).suffix.lower()
    if ext == '.vhdr':
        return mne.io.read_raw_brainvision(filepath, preload=True, verbose=False)
    if ext == '.set':
        return mne.io.read_raw_eeglab(filepath, preload=True, verbose=False)
    if ext == '.fif':
        return mne.io.read_raw_fif(filepath, preload=True, verbose=False)
    if ext == '.edf':
        return mne.io.read_raw_edf(filepath, preload=True, verbose=False)
    if ext == '.bdf':
        return mne.io.read_raw_bdf(filepath, preload=True, verbose=False)

    raise ValueError(f"Unsupported recording format: {ext}")


def recording_basename(filepath: str) -> str:
    """File name without directory and extension."""
    return Path(filepath).stem


def get_eeg_data(raw: mne.io.BaseRaw) -> Tuple[np.ndarray, List[str]]:
    """
    EEG signal of a recording in microvolts

    Channels marked bad are left out.

    Returns:
    --------
    data : np.ndarray
        Signal, shape (n_channels, n_samples)
    ch_names : list of str
        Channel names in data order
    """
    picks = mne.pick_types(raw.info, eeg=True, exclude='bads')
    if len(picks) == 0:
        raise ValueError("Recording has no usable EEG channels")

    data = raw.get_data(picks=picks) * VOLTS_TO_MICROVOLTS
    ch_names = [raw.ch_names[i] for i in picks]
    return data, ch_names


def load_bids_recording(subject_id: str, bids_root: str, task: str,
                        session: Optional[str] = None) -> mne.io.BaseRaw:
    """
    Load a subject's EEG recording from a BIDS dataset

    Parameters:
    -----------
    subject_id : str
        Subject identifier, with or without the 'sub-' prefix
    bids_root : str
        Path to BIDS root directory
    task : str
        Task name
    session : str, optional
        Session label

    Returns:
    --------
    raw : mne.io.BaseRaw
        Preloaded recording
    """
    bids_path = BIDSPath(
        subject=subject_id.replace('sub-', ''),
        session=session,
        task=task,
        datatype='eeg',
        suffix='eeg',
        root=bids_root
    )

    try:
        raw = read_raw_bids(bids_path, verbose=False)
    except Exception as e:
        raise FileNotFoundError(f"Could not load data for {subject_id}: {e}")

    raw.load_data()
    return raw


def validate_bids_structure(bids_root: str) -> bool:
    """
    Validate BIDS directory structure

    Parameters:
    -----------
    bids_root : str
        Path to BIDS root directory

    Returns:
    --------
    valid : bool
        True if the root has a dataset description and subject folders
    """
    bids_path = Path(bids_root)

    if not (bids_path / 'dataset_description.json').exists():
        print("Missing required BIDS file: dataset_description.json")
        return False

    if not get_subject_list(bids_root):
        print("No subject directories found (should start with 'sub-')")
        return False

    return True


def get_subject_list(bids_root: str) -> List[str]:
    """
    Get list of all subjects in BIDS dataset

    Returns:
    --------
    subjects : list
        Sorted subject IDs ('sub-XX')
    """
    bids_path = Path(bids_root)
    subject_dirs = [d.name for d in bids_path.iterdir()
                    if d.is_dir() and d.name.startswith('sub-')]

    return sorted(subject_dirs)
