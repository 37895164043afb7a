"""
Result Collection Module

Gathers saved subject ERPs into an explicit group -> condition -> subjects
mapping and computes grand averages per cell. Group and condition names are
plain string keys; insertion order is kept.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

import mne
import numpy as np

ERPCollection = Dict[str, Dict[str, List['SubjectERP']]]


@dataclass
class SubjectERP:
    """One subject's saved ERP."""

    subject: str
    evoked: mne.Evoked
    path: str


def read_subject_erp(path: str) -> SubjectERP:
    """Read a saved ERP file."""
    evoked = mne.read_evokeds(path, condition=0, verbose=False)
    subject = Path(path).name
    for suffix in ('-ave.fif', '_ave.fif', '.fif'):
        if subject.endswith(suffix):
            subject = subject[:-len(suffix)]
            break
    return SubjectERP(subject=subject, evoked=evoked, path=str(path))


def build_erp_collection(entries: Iterable[Tuple[str, str, str]]) -> ERPCollection:
    """
    Load saved ERPs into a group -> condition -> subjects mapping

    Parameters:
    -----------
    entries : iterable of (group, condition, path)
        Saved ERP files and the cell they belong to

    Returns:
    --------
    collection : dict
        ``collection[group][condition]`` is the list of SubjectERP in the
        order the entries were given
    """
    collection: ERPCollection = {}

    for group, condition, path in entries:
        collection.setdefault(str(group), {}).setdefault(str(condition), []).append(
            read_subject_erp(path)
        )

    return collection


def collection_from_folders(folders: Dict[str, Dict[str, str]]) -> ERPCollection:
    """
    Build a collection from one folder of saved ERPs per cell

    Parameters:
    -----------
    folders : dict
        ``folders[group][condition]`` is a directory of '-ave.fif' files

    Returns:
    --------
    collection : dict
    """
    entries = []
    for group, conditions in folders.items():
        for condition, folder in conditions.items():
            for path in sorted(Path(folder).glob('*-ave.fif')):
                entries.append((group, condition, str(path)))

    return build_erp_collection(entries)


def grand_average(collection: ERPCollection) -> Dict[str, Dict[str, mne.Evoked]]:
    """
    Grand-average ERP of every group/condition cell

    Subjects are weighted equally. Cells without subjects are skipped.
    """
    averages: Dict[str, Dict[str, mne.Evoked]] = {}

    for group, conditions in collection.items():
        for condition, subjects in conditions.items():
            if not subjects:
                continue
            evoked = mne.grand_average([s.evoked for s in subjects],
                                       interpolate_bads=False, drop_bads=False)
            evoked.comment = f"{group}/{condition}"
            averages.setdefault(group, {})[condition] = evoked

    return averages


def cell_data(collection: ERPCollection, group: str, condition: str) -> np.ndarray:
    """
    Stack the subjects of one cell

    Returns:
    --------
    data : np.ndarray
        Shape (n_subjects, n_channels, n_times), in volts
    """
    subjects = collection[group][condition]
    return np.stack([s.evoked.data for s in subjects])
