"""
Tests for configuration management module.
"""

import pytest
import tempfile
from pathlib import Path
import json

from plasmaeq.core.config import (
    UpdateConfig,
    load_config,
    save_config,
    validate_update_config,
)
from plasmaeq.core.errors import ConfigurationError


def test_load_config_yaml(temp_config_file):
    """Test loading YAML configuration."""
    config = load_config(temp_config_file)
    assert "update" in config
    assert config["update"]["ioniz_mode"] == 2


def test_load_config_json(sample_config_dict):
    """Test loading JSON configuration."""
    config_fd, config_path = tempfile.mkstemp(suffix=".json")

    try:
        with open(config_path, "w") as f:
            json.dump(sample_config_dict, f)

        config = load_config(config_path)
        assert config["update"]["partial_cells"] == "extend"
    finally:
        Path(config_path).unlink()


def test_load_config_not_found():
    """Test loading non-existent config file."""
    with pytest.raises(FileNotFoundError):
        load_config("nonexistent.yaml")


def test_load_config_invalid_format():
    """Test loading invalid file format."""
    config_fd, config_path = tempfile.mkstemp(suffix=".txt")

    try:
        with open(config_path, "w") as f:
            f.write("not yaml or json")

        with pytest.raises(ValueError, match="Unsupported config file format"):
            load_config(config_path)
    finally:
        Path(config_path).unlink()


def test_save_config_round_trip(tmp_path):
    """A saved configuration loads back to an equal UpdateConfig."""
    original = UpdateConfig(ioniz_mode=3, partial_cells="extend", seed=11)
    for suffix in (".yaml", ".json"):
        path = tmp_path / f"update{suffix}"
        save_config(original.to_dict(), path)
        assert path.exists()
        assert UpdateConfig.from_file(path) == original


def test_save_config_invalid_format(tmp_path):
    """Saving to an unknown suffix is refused."""
    with pytest.raises(ValueError, match="Unsupported config file format"):
        save_config({"update": {}}, tmp_path / "update.ini")


def test_validate_update_config_missing_section():
    """The 'update' section is required."""
    with pytest.raises(ConfigurationError, match="'update'"):
        validate_update_config({"plasma": {}})


def test_validate_update_config_unknown_key():
    """Misspelled settings are reported rather than ignored."""
    with pytest.raises(ConfigurationError, match="ioniz_mod"):
        validate_update_config({"update": {"ioniz_mod": 1}})


def test_update_config_defaults_are_valid():
    """The defaults pass validation."""
    config = UpdateConfig()
    assert config.validate()
    assert config.matrix_backend == "cpu"
    assert config.lte_departure_factor == 2.0
    assert config.lowest_superlevel_threshold == 5


def test_update_config_from_file(temp_config_file):
    """from_file loads and validates."""
    config = UpdateConfig.from_file(temp_config_file)
    assert config.ioniz_mode == 2
    assert config.partial_cells == "extend"
    assert config.flux_persist_scale == 0.25
    assert config.seed == 7


@pytest.mark.parametrize(
    "settings",
    [
        {"matrix_backend": "fpga"},
        {"ioniz_mode": 9},
        {"partial_cells": "drop"},
        {"lte_departure_factor": 1.0},
        {"lowest_superlevel_threshold": -1},
        {"flux_persist_scale": 1.5},
        {"max_repeated_warnings": 0},
        {"convergence_epsilon": 0.0},
    ],
)
def test_update_config_rejects_bad_values(settings):
    """Out-of-range settings raise ConfigurationError."""
    with pytest.raises(ConfigurationError):
        UpdateConfig(**settings).validate()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
