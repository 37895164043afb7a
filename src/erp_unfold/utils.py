"""
EEG Unfolding Utilities Module

ERP file naming and saving, the per-subject JSON processing log, the
batch error log and configuration files.
"""

import os
import json
from datetime import datetime
from typing import Any, Dict, List, Union

import mne
import numpy as np

from .errors import ConfigurationError
from .loading import VOLTS_TO_MICROVOLTS

ERROR_LOG_NAME = 'errorSubjects.txt'


def output_filename(basename: str, save_label: str = '') -> str:
    """
    File name of a subject's saved ERP

    The original base name, suffixed with the save label when one is given.
    """
    stem = f"{basename}_{save_label}" if save_label else basename
    return f"{stem}-ave.fif"


def create_erp(data: np.ndarray, times: np.ndarray, info: mne.Info,
               ch_names: List[str], n_events: int, comment: str = '') -> mne.EvokedArray:
    """
    Wrap a deconvolved ERP as an Evoked object

    Parameters:
    -----------
    data : np.ndarray
        ERP in microvolts, shape (n_channels, n_times)
    times : np.ndarray
        Time axis (seconds)
    info : mne.Info
        Info of the source recording; channel names, locations and sampling
        rate are carried over
    ch_names : list of str
        Channels of ``data``
    n_events : int
        Number of modeled events, stored as nave
    comment : str
        Condition comment

    Returns:
    --------
    evoked : mne.EvokedArray
    """
    selection = [info['ch_names'].index(ch) for ch in ch_names]
    erp_info = mne.pick_info(info, selection)

    return mne.EvokedArray(
        data / VOLTS_TO_MICROVOLTS,
        erp_info,
        tmin=float(times[0]),
        comment=comment,
        nave=max(int(n_events), 1),
        verbose=False
    )


def save_erp(evoked: mne.Evoked, output_dir: str, basename: str,
             save_label: str = '') -> str:
    """
    Save a subject's ERP

    Returns:
    --------
    filepath : str
        Path of the written file
    """
    os.makedirs(output_dir, exist_ok=True)
    filepath = os.path.join(output_dir, output_filename(basename, save_label))
    evoked.save(filepath, overwrite=True, verbose=False)
    print(f"Saved ERP: {filepath}")
    return filepath


def processing_log_path(output_dir: str, subject_id: str) -> str:
    """JSON processing log of a subject."""
    return os.path.join(output_dir, subject_id, 'eeg', 'logs',
                        f"{subject_id}_processing_log.json")


def _json_value(value):
    if isinstance(value, np.generic):
        return value.item()
    if value is None or isinstance(value, (str, int, float, bool, list, dict)):
        return value
    return str(value)


def log_processing_stage(subject_id: str, stage: str, output_dir: str,
                         **details) -> Dict[str, Any]:
    """
    Append a stage record to a subject's processing log

    Parameters:
    -----------
    subject_id : str
        Base name of the recording
    stage : str
        Stage reached ('pipeline_completed', 'pipeline_failed', ...)
    output_dir : str
        Batch output directory
    **details
        Extra fields of the record. numpy scalars are stored as plain
        numbers, other non-JSON values as strings.

    Returns:
    --------
    log_data : dict
        The whole log after the append
    """
    log_file = processing_log_path(output_dir, subject_id)
    os.makedirs(os.path.dirname(log_file), exist_ok=True)

    log_data = get_processing_log(subject_id, output_dir)
    log_data['stages'].append({
        'stage': stage,
        'time': datetime.now().isoformat(timespec='seconds'),
        **{key: _json_value(value) for key, value in details.items()}
    })

    with open(log_file, 'w') as f:
        json.dump(log_data, f, indent=2)

    return log_data


def get_processing_log(subject_id: str, output_dir: str) -> Dict[str, Any]:
    """Stage records of a subject, in order; empty before the first stage."""
    log_file = processing_log_path(output_dir, subject_id)
    if not os.path.exists(log_file):
        return {'subject_id': subject_id, 'stages': []}

    with open(log_file) as f:
        return json.load(f)


def error_log_path(output_dir: str) -> str:
    """Path of the batch error log inside the output directory."""
    return os.path.join(output_dir, ERROR_LOG_NAME)


def append_error_entry(output_dir: str, name: str, condition_label: str) -> None:
    """
    Append one failed subject to the error log

    Parameters:
    -----------
    output_dir : str
        Output directory holding the log
    name : str
        Base name of the failed recording
    condition_label : str
        Save label of the batch
    """
    os.makedirs(output_dir, exist_ok=True)
    with open(error_log_path(output_dir), 'a') as f:
        f.write(f'Error in "{name}" for condition "{condition_label}"\n')


def close_error_log(output_dir: str, n_failed: int, condition_label: str) -> str:
    """
    Finish the error log of a batch

    Writes an explicit line when no subject failed, so the log always exists.

    Returns:
    --------
    log_file : str
        Path to the error log
    """
    os.makedirs(output_dir, exist_ok=True)
    log_file = error_log_path(output_dir)

    with open(log_file, 'a') as f:
        if n_failed == 0:
            f.write(f'No errors found for condition "{condition_label}"\n')

    return log_file


def create_config_file(path: str, config: Union[Dict[str, Any], Any]) -> str:
    """
    Write a configuration to a JSON file

    Parameters:
    -----------
    path : str
        Target file; missing parent directories are created
    config : dict or BatchConfig
        Nested configuration sections, or a batch configuration to record
        the settings a run used

    Returns:
    --------
    path : str
    """
    if hasattr(config, 'to_dict'):
        config = config.to_dict()

    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(path, 'w') as f:
        json.dump(config, f, indent=2)

    print(f"Wrote configuration: {path}")
    return path


def load_config_file(path: str) -> Dict[str, Any]:
    """
    Read a JSON configuration file

    Raises:
    -------
    ConfigurationError
        If the file is not valid JSON or does not hold a JSON object
    """
    try:
        with open(path) as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid configuration file {path}: {e}")

    if not isinstance(config, dict):
        raise ConfigurationError(
            f"Configuration file {path} must hold an object, got {type(config).__name__}"
        )
    return config
