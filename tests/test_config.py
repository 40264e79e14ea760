import dataclasses
import json

import pytest

from steadyflow import DEFAULT_SIMULATION_CONFIG, ConfigError, SimulationConfig, load_config
from steadyflow.config import save_config


def test_defaults():
    c = DEFAULT_SIMULATION_CONFIG
    assert c.relaxation_factor == 0.2
    assert c.pressure_impact == 0.1
    assert c.time_step == 0.1
    assert c.viscosity == 0.01
    assert c.iterations == 20


def test_config_is_immutable():
    with pytest.raises(dataclasses.FrozenInstanceError):
        DEFAULT_SIMULATION_CONFIG.viscosity = 0.5


def test_replace_returns_new_value():
    changed = DEFAULT_SIMULATION_CONFIG.replace(viscosity=0.05)
    assert changed.viscosity == 0.05
    assert DEFAULT_SIMULATION_CONFIG.viscosity == 0.01


def test_from_dict_accepts_both_spellings():
    c = SimulationConfig.from_dict({"relaxationFactor": 0.5, "time_step": 0.3, "iterations": "7"})
    assert c.relaxation_factor == 0.5
    assert c.time_step == 0.3
    assert c.iterations == 7
    assert c.pressure_impact == 0.1   # untouched default


def test_from_dict_rejects_unknown_keys():
    with pytest.raises(ConfigError):
        SimulationConfig.from_dict({"gravity": 9.81})


def test_from_dict_rejects_bad_values():
    with pytest.raises(ConfigError):
        SimulationConfig.from_dict({"viscosity": "thick"})


def test_load_and_save(tmp_path):
    path = tmp_path / "config.json"
    save_config(SimulationConfig(viscosity=0.02, iterations=50), path)
    assert load_config(path) == SimulationConfig(viscosity=0.02, iterations=50)


def test_load_camel_case_file(tmp_path):
    path = tmp_path / "ui.json"
    path.write_text(json.dumps({"pressureImpact": 0.4, "timeStep": 0.2}))
    c = load_config(path)
    assert c.pressure_impact == 0.4
    assert c.time_step == 0.2


@pytest.mark.parametrize("content", ["not json", "[1, 2]"])
def test_load_rejects_malformed_files(tmp_path, content):
    path = tmp_path / "bad.json"
    path.write_text(content)
    with pytest.raises(ConfigError):
        load_config(path)
