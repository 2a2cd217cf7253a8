import logging

import pytest

from parameters import ConfigurationError, TemporalMemoryParameters, check_parameters


def test_defaults_are_valid():
    params = check_parameters(TemporalMemoryParameters())
    assert params.num_columns == 2048
    assert params.num_cells == 2048 * 32
    assert params.matching_threshold < params.active_threshold


@pytest.mark.parametrize("overrides", [
    {"num_columns": 0},
    {"cells_per_column": -1},
    {"segments_per_cell": 2.5},
    {"synapses_per_segment": True},
    {"initial_permanence": 1.2},
    {"connected_permanence": -0.1},
    {"permanence_increment": -0.05},
    {"punish_decrement": -0.01},
    {"max_new_synapses": -1},
    {"active_threshold": 0, "matching_threshold": 0},
    {"matching_threshold": -1},
    {"active_threshold": 5, "matching_threshold": 5},
    {"active_threshold": 5, "matching_threshold": 9},
])
def test_invalid_parameters_raise(overrides):
    with pytest.raises(ConfigurationError):
        check_parameters(TemporalMemoryParameters(**overrides))


def test_configuration_error_is_a_value_error():
    with pytest.raises(ValueError):
        check_parameters(TemporalMemoryParameters(matching_threshold=20))


def test_unreachable_active_threshold_warns(caplog):
    params = TemporalMemoryParameters(synapses_per_segment=4, active_threshold=6, matching_threshold=3)
    with caplog.at_level(logging.WARNING, logger="parameters"):
        check_parameters(params)
    assert "no segment can become active" in caplog.text


def test_from_dict():
    params = TemporalMemoryParameters.from_dict({"num_columns": 64, "cells_per_column": 4, "seed": 1})
    assert params.num_columns == 64
    assert params.cells_per_column == 4
    assert params.seed == 1


def test_from_dict_rejects_unknown_keys():
    with pytest.raises(ConfigurationError, match="columns_per_cell"):
        TemporalMemoryParameters.from_dict({"columns_per_cell": 4})


def test_from_dict_validates():
    with pytest.raises(ConfigurationError):
        TemporalMemoryParameters.from_dict({"active_threshold": 2, "matching_threshold": 2})
