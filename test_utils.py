import numpy as np
import pytest

from dynocc.utils import (read_inp, condense_history, expand_history,
                          naive_occupancy, season_view)

inp_text = """/* three seasons, two surveys */
010011 4;
000000 10;
110000 1; /* one site */
"""

def test_read_inp(tmp_path):
    path = tmp_path / 'sites.inp'
    path.write_text(inp_text)

    history, counts = read_inp(path)

    assert history.shape == (3, 6)
    assert np.array_equal(history[0], [0, 1, 0, 0, 1, 1])
    assert np.array_equal(counts, [4, 10, 1])

def test_read_inp_bad_symbol(tmp_path):
    path = tmp_path / 'sites.inp'
    path.write_text('01.011 4;\n')

    with pytest.raises(ValueError):
        read_inp(path)

def test_condense_history():
    history = np.array([[0, 1], [0, 0], [0, 1], [0, 1]])

    unique_history, counts = condense_history(history)

    assert np.array_equal(unique_history, [[0, 0], [0, 1]])
    assert np.array_equal(counts, [1, 3])

    expanded = expand_history(unique_history, counts)
    assert expanded.shape == history.shape

def test_naive_occupancy():
    history = np.array([[0, 1, 0, 0],
                        [0, 0, 1, 1],
                        [0, 0, 0, 0]])

    occupancy = naive_occupancy(history, survey_count=2)
    assert np.allclose(occupancy, [1 / 3, 1 / 3])

    weighted = naive_occupancy(history, survey_count=2,
                               history_counts=[1, 2, 1])
    assert np.allclose(weighted, [0.25, 0.5])

def test_season_view():
    history = np.arange(12).reshape(2, 6)

    view = season_view(history, survey_count=3)
    assert view.shape == (2, 2, 3)
    assert np.array_equal(view[1, 1], [9, 10, 11])

    with pytest.raises(ValueError):
        season_view(history, survey_count=4)

def test_read_inp_spaced_semicolon(tmp_path):
    path = tmp_path / 'sites.inp'
    path.write_text('010011 4 ;\n110000 2;\n000000;\n')

    history, counts = read_inp(path)

    assert history.shape == (3, 6)
    assert np.array_equal(counts, [4, 2, 1])

def test_read_inp_empty(tmp_path):
    path = tmp_path / 'sites.inp'
    path.write_text('/* no sites surveyed */\n')

    history, counts = read_inp(path)

    assert history.ndim == 2
    assert history.shape[0] == 0
    assert counts.size == 0
