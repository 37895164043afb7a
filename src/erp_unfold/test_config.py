"""
Tests for the batch configuration
"""

import dataclasses
import os

import pytest

from erp_unfold.config import BatchConfig, create_default_config, parse_labels
from erp_unfold.errors import ConfigurationError
from erp_unfold.utils import create_config_file, load_config_file


def test_parse_labels_trims_and_splits():
    assert parse_labels('S 1, S2 ,, S  3') == ('S1', 'S2', 'S3')
    assert parse_labels(['A', ' B ']) == ('A', 'B')
    assert parse_labels('') == ()
    assert parse_labels(None) == ()


def test_default_config_is_valid():
    config = BatchConfig.from_dict(create_default_config())

    assert config.tmin == -0.2 and config.tmax == 0.8
    assert config.amplitude_threshold == 250.0
    assert config.formulas == ('y ~ 1 + stim1 + stim2',)
    assert config.event_types == ('S 10', 'S 20')


def test_config_is_immutable():
    config = BatchConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.tmin = 0.0


def test_from_dict_merges_partial_sections():
    config = BatchConfig.from_dict({
        'labels': {'stim1': 'S 1, S 2', 'stim2': 'S 3', 'save_label': 'target'},
        'extraction': {'condition': 1},
        'artifacts': {'amplitude_threshold': '150'},
    })

    assert config.stim1_labels == ('S1', 'S2')
    assert config.stim2_labels == ('S3',)
    assert config.save_label == 'target'
    assert config.condition == 1
    assert config.amplitude_threshold == 150.0
    assert config.baseline == (-0.2, 0.0)


def test_unknown_section():
    with pytest.raises(ConfigurationError):
        BatchConfig.from_dict({'plotting': {}})


@pytest.mark.parametrize('kwargs', [
    {'tmin': 0.5, 'tmax': 0.1},
    {'tmin': 0.0},
    {'tmax': -0.1},
    {'amplitude_threshold': -5.0},
    {'amplitude_threshold': 'sometimes'},
    {'condition': 3},
    {'stim1_labels': ('S1',), 'stim2_labels': ('S1',)},
    {'l_freq': 40.0, 'h_freq': 1.0},
    {'solver': 'qr'},
    {'artifact_method': 'zscore'},
    {'cutoff': -0.1},
])
def test_invalid_settings(kwargs):
    with pytest.raises(ConfigurationError):
        BatchConfig(**kwargs)


def test_auto_threshold_allowed():
    assert BatchConfig(amplitude_threshold='auto').amplitude_threshold == 'auto'


def test_config_file_round_trip(tmp_path):
    path = create_config_file(str(tmp_path / 'unfold_config.json'), create_default_config())

    assert os.path.exists(path)
    config = BatchConfig.from_dict(load_config_file(path))
    assert config == BatchConfig.from_dict(create_default_config())


def test_batch_config_is_written_flat(tmp_path):
    config = BatchConfig(stim1_labels=('S1',), stim2_labels=('S2',))
    path = create_config_file(str(tmp_path / 'runs' / 'batch_config.json'), config)

    written = load_config_file(path)
    assert written['stim1_labels'] == ['S1']
    assert written['condition'] == 2


@pytest.mark.parametrize('content', ['{"labels": ', '[1, 2, 3]'])
def test_unreadable_config_file(tmp_path, content):
    path = tmp_path / 'broken.json'
    path.write_text(content)

    with pytest.raises(ConfigurationError):
        load_config_file(str(path))
