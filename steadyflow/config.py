"""
config.py - Solver Configuration
================================
One immutable value object carries every tuning knob of the solver.
Nothing in the package reads a global setting: each entry point takes a
SimulationConfig argument, and DEFAULT_SIMULATION_CONFIG is only the
constant callers may opt into.

  relaxation_factor : how hard divergence pushes on pressure each step
  pressure_impact   : how hard the pressure gradient pushes on velocity
  time_step         : backtrace length for advection (grid units per step)
  viscosity         : explicit diffusion coefficient (keep below 0.25)
  iterations        : step count for the fixed-iteration batch mode

Stability is NOT checked here. Large viscosity or time_step values will
happily produce Inf/NaN fields; keeping parameters sane is the caller's job.
"""

import json
import logging
from dataclasses import asdict, dataclass, fields, replace as _replace
from pathlib import Path

from .errors import ConfigError

logger = logging.getLogger(__name__)


# ── Session constants ─────────────────────────────────────────────────────────
MAX_SESSION_STEPS     = 5000     # hard ceiling for the interactive loop
CONVERGENCE_THRESHOLD = 1e-4     # max per-cell velocity change that counts as steady
DEFAULT_TARGET_WEIGHT = 0.1      # mixing weight when forces become targets

# camelCase names used by the browser front-end's settings panel
_CAMEL_CASE_KEYS = {
    "relaxationFactor": "relaxation_factor",
    "pressureImpact":   "pressure_impact",
    "timeStep":         "time_step",
    "viscosity":        "viscosity",
    "iterations":       "iterations",
}


@dataclass(frozen=True)
class SimulationConfig:
    relaxation_factor: float = 0.2
    pressure_impact: float = 0.1
    time_step: float = 0.1
    viscosity: float = 0.01
    iterations: int = 20

    @classmethod
    def from_dict(cls, data: dict) -> "SimulationConfig":
        """
        Build a config from a plain mapping (e.g. parsed JSON).

        Keys may be snake_case or the front-end's camelCase spelling.
        Missing keys keep their defaults; unknown keys raise ConfigError.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = _CAMEL_CASE_KEYS.get(key, key)
            if name not in known:
                raise ConfigError(f"Unknown config key: {key!r}")
            try:
                kwargs[name] = int(value) if name == "iterations" else float(value)
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"Bad value for {key!r}: {value!r}") from exc
        return cls(**kwargs)

    def to_dict(self) -> dict:
        return asdict(self)

    def replace(self, **changes) -> "SimulationConfig":
        """Return a copy with some fields changed."""
        return _replace(self, **changes)


DEFAULT_SIMULATION_CONFIG = SimulationConfig()


def load_config(path) -> SimulationConfig:
    """Read a SimulationConfig from a JSON file."""
    path = Path(path)
    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path} is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object")

    config = SimulationConfig.from_dict(data)
    logger.debug("Loaded config from %s: %s", path, config)
    return config


def save_config(config: SimulationConfig, path):
    """Write a SimulationConfig as JSON (snake_case keys)."""
    with open(path, "w") as f:
        json.dump(config.to_dict(), f, indent=2)
