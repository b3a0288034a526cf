"""
Configuration management for plasmaeq.

Provides utilities for loading and validating YAML/JSON configuration files
for the statistical-equilibrium update: solver backend selection, nebular
mode, superlevel controls and the orchestrator's bookkeeping options.
"""

import json
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict, Any, Optional, Union
import logging

try:
    import yaml

    HAS_YAML = True
except ImportError:
    HAS_YAML = False

from plasmaeq.core.constants import (
    FLUX_PERSIST_SCALE,
    LOWEST_SUPERLEVEL_THRESHOLD,
    LTE_DEP_FRAC,
)
from plasmaeq.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

VALID_BACKENDS = ("cpu", "gpu")
VALID_PARTIAL_CELL_MODES = ("include", "extend")
VALID_IONIZ_MODES = (0, 1, 2, 3, 4)


def load_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Parameters
    ----------
    config_path : str or Path
        Path to configuration file (.yaml, .yml, or .json)

    Returns
    -------
    dict
        Configuration dictionary

    Raises
    ------
    FileNotFoundError
        If config file does not exist
    ValueError
        If file format is not supported
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    suffix = config_path.suffix.lower()

    with open(config_path, "r") as f:
        if suffix in [".yaml", ".yml"]:
            if not HAS_YAML:
                raise ImportError(
                    "PyYAML is required for YAML config files. " "Install with: pip install pyyaml"
                )
            config = yaml.safe_load(f)
        elif suffix == ".json":
            config = json.load(f)
        else:
            raise ValueError(
                f"Unsupported config file format: {suffix}. " "Use .yaml, .yml, or .json"
            )

    logger.info(f"Loaded configuration from {config_path}")
    return config


def save_config(config: Dict[str, Any], config_path: Union[str, Path]) -> None:
    """
    Save configuration to YAML or JSON file.

    Parameters
    ----------
    config : dict
        Configuration dictionary
    config_path : str or Path
        Path to output file
    """
    config_path = Path(config_path)
    suffix = config_path.suffix.lower()

    if suffix in [".yaml", ".yml"]:
        if not HAS_YAML:
            raise ImportError(
                "PyYAML is required for YAML config files. " "Install with: pip install pyyaml"
            )
        with open(config_path, "w") as f:
            yaml.dump(config, f, default_flow_style=False, sort_keys=False)
    elif suffix == ".json":
        with open(config_path, "w") as f:
            json.dump(config, f, indent=2)
    else:
        raise ValueError(f"Unsupported config file format: {suffix}. " "Use .yaml, .yml, or .json")

    logger.info(f"Saved configuration to {config_path}")


def validate_update_config(config: Dict[str, Any]) -> bool:
    """
    Validate the structure of a raw update configuration.

    Parameters
    ----------
    config : dict
        Configuration dictionary

    Returns
    -------
    bool
        True if valid

    Raises
    ------
    ConfigurationError
        If configuration is invalid
    """
    if "update" not in config:
        raise ConfigurationError("Configuration must contain 'update' section")

    update = config["update"]
    if not isinstance(update, dict):
        raise ConfigurationError("'update' section must be a mapping")

    known = set(UpdateConfig.__dataclass_fields__)
    unknown = set(update) - known
    if unknown:
        raise ConfigurationError(f"Unknown update settings: {sorted(unknown)}")

    return True


@dataclass
class UpdateConfig:
    """
    Settings for one statistical-equilibrium update of the wind.

    Attributes
    ----------
    matrix_backend : str
        Dense solver backend, 'cpu' or 'gpu'
    gpu_platform : str
        JAX platform the 'gpu' backend binds to
    ioniz_mode : int
        Nebular mode used for partition functions and level populations
    macro_ioniz_mode : bool
        If True, macro-atom level populations come from their own rate solve
        and the Boltzmann level calculation leaves them alone
    rt_mode_macro : bool
        Macro-atom radiative transfer is active
    macro_simple : bool
        Treat every ion as a simple atom
    lte_departure_factor : float
        Levels whose departure coefficient lies in [1/F, F] may join a superlevel
    lowest_superlevel_threshold : int
        Minimum distance in levels between the ground state and a superlevel
    partial_cells : str
        'include' updates partially-in-wind cells, 'extend' skips them
    flux_persist_scale : float
        Share of the latest flux estimate folded into the persistent flux
    min_photons_per_cell : int
        Cells with fewer photons than this are reported
    max_repeated_warnings : int
        Cap on repeated identical numerical warnings
    convergence_epsilon : float
        Fractional temperature change below which a cell counts as converged
    seed : int, optional
        Seed for the random number generator used in sampling
    """

    matrix_backend: str = "cpu"
    gpu_platform: str = "gpu"
    ioniz_mode: int = 1
    macro_ioniz_mode: bool = True
    rt_mode_macro: bool = False
    macro_simple: bool = False
    lte_departure_factor: float = LTE_DEP_FRAC
    lowest_superlevel_threshold: int = LOWEST_SUPERLEVEL_THRESHOLD
    partial_cells: str = "include"
    flux_persist_scale: float = FLUX_PERSIST_SCALE
    min_photons_per_cell: int = 100
    max_repeated_warnings: int = 100
    convergence_epsilon: float = 0.05
    seed: Optional[int] = None

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "UpdateConfig":
        """Build from a dictionary holding an 'update' section."""
        validate_update_config(config)
        return cls(**config["update"])

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> "UpdateConfig":
        """
        Load update configuration from a YAML or JSON file.

        Parameters
        ----------
        config_path : str or Path
            Path to configuration file

        Returns
        -------
        UpdateConfig
            Validated configuration instance
        """
        instance = cls.from_dict(load_config(config_path))
        instance.validate()
        return instance

    def to_dict(self) -> Dict[str, Any]:
        return {"update": asdict(self)}

    def validate(self) -> bool:
        """
        Validate configuration values.

        Returns
        -------
        bool
            True if valid

        Raises
        ------
        ConfigurationError
            If a setting is out of range
        """
        if self.matrix_backend not in VALID_BACKENDS:
            raise ConfigurationError(
                f"Invalid matrix backend: {self.matrix_backend}. Must be one of: {VALID_BACKENDS}"
            )

        if self.ioniz_mode not in VALID_IONIZ_MODES:
            raise ConfigurationError(f"Unknown ionization mode: {self.ioniz_mode}")

        if self.partial_cells not in VALID_PARTIAL_CELL_MODES:
            raise ConfigurationError(
                f"Invalid partial_cells mode: {self.partial_cells}. "
                f"Must be one of: {VALID_PARTIAL_CELL_MODES}"
            )

        if self.lte_departure_factor <= 1.0:
            raise ConfigurationError("lte_departure_factor must be > 1")

        if self.lowest_superlevel_threshold < 0:
            raise ConfigurationError("lowest_superlevel_threshold must be >= 0")

        if not 0.0 <= self.flux_persist_scale <= 1.0:
            raise ConfigurationError("flux_persist_scale must be in [0, 1]")

        if self.max_repeated_warnings < 1:
            raise ConfigurationError("max_repeated_warnings must be >= 1")

        if self.convergence_epsilon <= 0.0:
            raise ConfigurationError("convergence_epsilon must be positive")

        return True
