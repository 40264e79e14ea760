"""
errors.py - Solver Exceptions
=============================
Construction problems raise immediately. Everything that happens per cell
while stepping (forces off the grid, forces on obstacles) is absorbed and
never surfaces here.
"""


class FlowError(Exception):
    """Base class for every error raised by steadyflow."""


class InvalidDimension(FlowError, ValueError):
    """Grid width or height is not a positive integer."""


class EmptyMask(FlowError, ValueError):
    """Obstacle mask has zero rows or zero columns."""


class ConfigError(FlowError, ValueError):
    """A configuration file or mapping could not be turned into a SimulationConfig."""
