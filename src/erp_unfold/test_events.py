"""
Tests for stimulus factor labeling
"""

import pandas as pd
import pytest

from erp_unfold.config import STIM1_TYPE, STIM2_TYPE
from erp_unfold.errors import ConfigurationError
from erp_unfold.events import code_events, events_from_raw, label_events, normalize_label


def _events(types):
    return pd.DataFrame({'latency': range(0, 100 * len(types), 100), 'type': types})


def test_factor_index_follows_label_position():
    events = _events(['S 1', 'S 2', 'S 3', 'S 4', 'S 5'])
    labeled = label_events(events, ['S3', 'S1'], ['S5'])

    assert list(labeled['stim1']) == [2, 0, 1, 0, 0]
    assert list(labeled['stim2']) == [0, 0, 0, 0, 1]


def test_unmatched_events_keep_type_and_zero_factors():
    events = _events(['boundary', 'S 1', 'S 9'])
    labeled = label_events(events, ['S1'], ['S2'])

    assert list(labeled['type']) == ['boundary', STIM1_TYPE, 'S 9']
    assert labeled.loc[0, 'stim1'] == 0 and labeled.loc[0, 'stim2'] == 0
    assert labeled.loc[2, 'stim1'] == 0 and labeled.loc[2, 'stim2'] == 0


def test_types_are_rewritten_and_input_untouched():
    events = _events(['S 1', 'S 2'])
    labeled = label_events(events, ['S1'], ['S2'])

    assert list(labeled['type']) == [STIM1_TYPE, STIM2_TYPE]
    assert list(labeled['label']) == ['S1', 'S2']
    assert list(events['type']) == ['S 1', 'S 2']


def test_empty_label_sets_assign_nothing():
    labeled = label_events(_events(['S 1', 'S 2']), [], [])
    assert labeled['stim1'].sum() == 0
    assert labeled['stim2'].sum() == 0


def test_dual_membership_is_configuration_error():
    with pytest.raises(ConfigurationError):
        label_events(_events(['S 1']), ['S1'], ['S 1'])


def test_brainvision_descriptions_match_marker_part():
    labeled = label_events(_events(['Stimulus/S  1', 'Stimulus/S  2']), ['S1'], ['S2'])
    assert list(labeled['stim1']) == [1, 0]
    assert list(labeled['stim2']) == [0, 1]


def test_normalize_label_removes_all_whitespace():
    assert normalize_label(' S  1 ') == 'S1'


def test_events_from_raw_uses_sample_latencies(raw_factory):
    raw = raw_factory([(0.5, 'A'), (1.25, 'B'), (2.0, 'BAD_blink')], duration=3.0)
    events = events_from_raw(raw)

    assert list(events['latency']) == [500, 1250]
    assert list(events['type']) == ['A', 'B']


def test_events_from_raw_without_annotations(raw_factory):
    events = events_from_raw(raw_factory([], duration=1.0))
    assert len(events) == 0
    assert list(events.columns) == ['latency', 'type']


def test_code_events_on_scenario(scenario_raw):
    events = code_events(scenario_raw, ['A'], ['B'])

    assert (events['stim1'] == 1).sum() == 5
    assert (events['stim2'] == 1).sum() == 5
    assert set(events['type']) == {STIM1_TYPE, STIM2_TYPE}
