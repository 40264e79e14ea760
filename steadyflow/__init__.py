"""
steadyflow/ - Steady-State 2D Obstacle Flow Solver
==================================================
Exports the interfaces the CLI, visualizer and exporter use.

Batch:       run_steady_state_simulation(grid, forces, targets, config)
Interactive: SimulationSession / SessionRunner / run_session_async
"""

import logging

from .config import (
    CONVERGENCE_THRESHOLD,
    DEFAULT_SIMULATION_CONFIG,
    DEFAULT_TARGET_WEIGHT,
    MAX_SESSION_STEPS,
    SimulationConfig,
    load_config,
)
from .errors import ConfigError, EmptyMask, FlowError, InvalidDimension
from .forces import (
    ForceVector,
    TargetVelocity,
    apply_forces,
    apply_target_velocities,
    convert_forces_to_targets,
)
from .grid import SimulationGrid, copy_grid, create_grid, create_grid_from_mask
from .session import (
    SessionResult,
    SessionRunner,
    SessionState,
    SimulationSession,
    StepReport,
    run_session_async,
)
from .simulation import FlowSimulation, run_step, run_steady_state_simulation

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "SimulationGrid", "create_grid", "create_grid_from_mask", "copy_grid",
    "ForceVector", "TargetVelocity", "apply_forces", "apply_target_velocities",
    "convert_forces_to_targets",
    "SimulationConfig", "DEFAULT_SIMULATION_CONFIG", "load_config",
    "MAX_SESSION_STEPS", "CONVERGENCE_THRESHOLD", "DEFAULT_TARGET_WEIGHT",
    "run_step", "run_steady_state_simulation", "FlowSimulation",
    "SimulationSession", "SessionRunner", "SessionState", "SessionResult",
    "StepReport", "run_session_async",
    "FlowError", "InvalidDimension", "EmptyMask", "ConfigError",
]
