"""
EEG Event Labeling Module

Maps raw event markers onto the two stimulus factors of the unfolding model.
Each event gets a ``stim1`` and ``stim2`` value (0 = not a member, otherwise
the 1-based position of its marker in the factor's label list) and matching
events are renamed to the two event types the design matrix selects on.
"""

import mne
import numpy as np
import pandas as pd
from typing import Dict, Sequence, Tuple

from .config import STIM1_TYPE, STIM2_TYPE
from .errors import ConfigurationError


def code_events(raw: mne.io.BaseRaw, stim1_labels: Sequence[str],
                stim2_labels: Sequence[str]) -> pd.DataFrame:
    """
    Read the events of a recording and assign stimulus factors

    Parameters:
    -----------
    raw : mne.io.BaseRaw
        Continuous EEG recording with annotations
    stim1_labels : sequence of str
        Markers belonging to stimulus 1
    stim2_labels : sequence of str
        Markers belonging to stimulus 2

    Returns:
    --------
    events : pd.DataFrame
        Event table with latency, type, label, stim1 and stim2 columns
    """
    events = events_from_raw(raw)
    return label_events(events, stim1_labels, stim2_labels)


def events_from_raw(raw: mne.io.BaseRaw) -> pd.DataFrame:
    """
    Build the event table from the annotations of a recording

    Latencies are sample indices counted from the first sample of the data
    array, so they index ``raw.get_data()`` directly.
    """
    # BAD_/EDGE segments are not events
    descriptions = sorted(
        desc for desc in set(raw.annotations.description)
        if not desc.upper().startswith(('BAD', 'EDGE'))
    )
    columns = ['latency', 'type']
    if not descriptions:
        return pd.DataFrame(columns=columns)

    event_id = {desc: code for code, desc in enumerate(descriptions, start=1)}
    events, _ = mne.events_from_annotations(raw, event_id=event_id,
                                          regexp=None, verbose=False)
    code_to_desc = {code: desc for desc, code in event_id.items()}

    table = pd.DataFrame({
        'latency': (events[:, 0] - raw.first_samp).astype(int),
        'type': [code_to_desc[code] for code in events[:, 2]],
    })
    return table.sort_values('latency', kind='stable').reset_index(drop=True)


def normalize_label(label: str) -> str:
    """Remove all whitespace from an event marker."""
    return ''.join(str(label).split())


def _match_index(label: str, lookup: Dict[str, int]) -> int:
    # BrainVision annotations read as 'Stimulus/S  1' also match on 'S1'
    if label in lookup:
        return lookup[label]
    if '/' in label:
        return lookup.get(label.rsplit('/', 1)[-1], 0)
    return 0


def label_events(events: pd.DataFrame, stim1_labels: Sequence[str],
                 stim2_labels: Sequence[str]) -> pd.DataFrame:
    """
    Assign stimulus factors and rewrite the event types

    Parameters:
    -----------
    events : pd.DataFrame
        Event table with at least 'latency' and 'type' columns
    stim1_labels : sequence of str
        Markers belonging to stimulus 1, in factor-index order
    stim2_labels : sequence of str
        Markers belonging to stimulus 2, in factor-index order

    Returns:
    --------
    labeled : pd.DataFrame
        Copy of ``events`` with 'label', 'stim1' and 'stim2' columns added.
        Stimulus 1 events are renamed to 'S 10' and stimulus 2 events to
        'S 20'; other events keep their type.

    Raises:
    -------
    ConfigurationError
        If an event matches both label lists
    """
    labeled = events.copy()
    lookup1 = _positions(stim1_labels)
    lookup2 = _positions(stim2_labels)

    labels = [normalize_label(t) for t in labeled['type']]
    stim1 = np.array([_match_index(label, lookup1) for label in labels], dtype=int)
    stim2 = np.array([_match_index(label, lookup2) for label in labels], dtype=int)

    both = (stim1 > 0) & (stim2 > 0)
    if np.any(both):
        first = labels[int(np.flatnonzero(both)[0])]
        raise ConfigurationError(
            f"Event marker '{first}' belongs to both stimulus label sets"
        )

    types = labeled['type'].astype(object).to_numpy(copy=True)
    types[stim1 > 0] = STIM1_TYPE
    types[stim2 > 0] = STIM2_TYPE

    labeled['label'] = labels
    labeled['type'] = types
    labeled['stim1'] = stim1
    labeled['stim2'] = stim2

    return labeled


def _positions(labels: Sequence[str]) -> Dict[str, int]:
    positions = {}
    for index, label in enumerate(labels, start=1):
        positions.setdefault(normalize_label(label), index)
    return positions


def count_stimulus_events(events: pd.DataFrame) -> Tuple[int, int]:
    """Number of events labeled as stimulus 1 and stimulus 2."""
    return int((events['stim1'] > 0).sum()), int((events['stim2'] > 0).sum())
