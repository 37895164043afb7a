"""
Tests for group/condition collections of saved ERPs
"""

import mne
import numpy as np
import pytest

from erp_unfold.grouping import (build_erp_collection, cell_data, collection_from_folders,
                                 grand_average, read_subject_erp)
from erp_unfold.utils import save_erp


def _save_constant_erp(folder, name, value_uv, label=''):
    info = mne.create_info(['Fz', 'Cz'], 250.0, ch_types='eeg')
    data = np.full((2, 51), value_uv * 1e-6)
    evoked = mne.EvokedArray(data, info, tmin=-0.2, nave=10, verbose=False)
    return save_erp(evoked, str(folder), name, label)


def test_read_subject_erp_strips_suffix(tmp_path):
    path = _save_constant_erp(tmp_path, 'subj01', 2.0, 'targets')
    erp = read_subject_erp(path)

    assert erp.subject == 'subj01_targets'
    assert erp.evoked.data.shape == (2, 51)


def test_collection_keeps_insertion_order(tmp_path):
    entries = [
        ('patients', 'stim2', _save_constant_erp(tmp_path, 's03', 1.0)),
        ('controls', 'stim2', _save_constant_erp(tmp_path, 's01', 1.0)),
        ('controls', 'stim1', _save_constant_erp(tmp_path, 's02', 1.0, 'c1')),
        ('controls', 'stim2', _save_constant_erp(tmp_path, 's04', 1.0)),
    ]
    collection = build_erp_collection(entries)

    assert list(collection) == ['patients', 'controls']
    assert list(collection['controls']) == ['stim2', 'stim1']
    assert [s.subject for s in collection['controls']['stim2']] == ['s01', 's04']


def test_grand_average_per_cell(tmp_path):
    entries = [
        ('controls', 'stim2', _save_constant_erp(tmp_path, 's01', 1.0)),
        ('controls', 'stim2', _save_constant_erp(tmp_path, 's02', 3.0)),
        ('patients', 'stim2', _save_constant_erp(tmp_path, 's03', -2.0)),
    ]
    averages = grand_average(build_erp_collection(entries))

    np.testing.assert_allclose(averages['controls']['stim2'].data, 2e-6, rtol=1e-5)
    np.testing.assert_allclose(averages['patients']['stim2'].data, -2e-6, rtol=1e-5)
    assert averages['controls']['stim2'].comment == 'controls/stim2'


def test_empty_cells_are_skipped():
    assert grand_average({'controls': {'stim1': []}}) == {}


def test_collection_from_folders(tmp_path):
    for name, value in [('s01', 1.0), ('s02', 2.0)]:
        _save_constant_erp(tmp_path / 'young', name, value)
    _save_constant_erp(tmp_path / 'old', 's03', 5.0)

    collection = collection_from_folders({
        'young': {'stim1': str(tmp_path / 'young')},
        'old': {'stim1': str(tmp_path / 'old')},
    })
    data = cell_data(collection, 'young', 'stim1')

    assert data.shape == (2, 2, 51)
    np.testing.assert_allclose(data[:, 0, 0], [1e-6, 2e-6], rtol=1e-5)
    with pytest.raises(KeyError):
        cell_data(collection, 'old', 'stim2')
