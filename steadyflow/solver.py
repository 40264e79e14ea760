"""
solver.py - Pressure Relaxation and Boundary Enforcement
========================================================
Pushes the velocity field toward incompressibility:
  div(v) ≈ 0 everywhere

This is NOT a full Poisson solve. Each step does ONE relaxation sweep:
  1. Divergence at each interior fluid cell (central difference, spacing 1)
       div = u[y, x+1] - u[y, x-1] + v[y+1, x] - v[y-1, x]
  2. Nudge pressure against it:
       p -= relaxation_factor * div
  3. Nudge velocity down the pressure gradient:
       u -= pressure_impact * (p[y, x+1] - p[y, x-1])
       v -= pressure_impact * (p[y+1, x] - p[y-1, x])

Pressure is never reset between steps, so over many steps it accumulates
into the field that holds the flow near divergence-free. Exact
incompressibility is not promised.

The boundary pass pins obstacle cells and the outer ring of the grid to
zero velocity. It always runs last in a step.
"""

import numpy as np

from .grid import SimulationGrid


def _interior_fluid(grid: SimulationGrid) -> np.ndarray:
    """Mask of interior (not border) non-obstacle cells, shape (H-2, W-2)."""
    return ~grid.is_obstacle[1:-1, 1:-1]


def update_pressure(grid: SimulationGrid, relaxation_factor: float):
    """
    One relaxation sweep of the pressure field against velocity divergence.

    Divergence reads velocities only, so updating every cell at once gives
    the same result as a cell-by-cell Gauss-Seidel sweep.

    Modifies: grid.pressure (in-place)
    """
    if grid.width < 3 or grid.height < 3:
        return

    divergence = grid.compute_divergence()[1:-1, 1:-1]
    fluid = _interior_fluid(grid)

    grid.pressure[1:-1, 1:-1][fluid] -= relaxation_factor * divergence[fluid]


def update_velocity(grid: SimulationGrid, pressure_impact: float):
    """
    Subtract the scaled central-difference pressure gradient from velocity.

    Modifies: grid.u, grid.v (in-place)
    """
    if grid.width < 3 or grid.height < 3:
        return

    p = grid.pressure
    dpdx = p[1:-1, 2:] - p[1:-1, :-2]
    dpdy = p[2:, 1:-1] - p[:-2, 1:-1]
    fluid = _interior_fluid(grid)

    grid.u[1:-1, 1:-1][fluid] -= pressure_impact * dpdx[fluid]
    grid.v[1:-1, 1:-1][fluid] -= pressure_impact * dpdy[fluid]


def apply_boundary_conditions(grid: SimulationGrid):
    """
    Zero the velocity on every obstacle cell and on the outermost
    rows/columns. The only operator that touches the full grid.

    Modifies: grid.u, grid.v (in-place)
    """
    # ── Obstacles ──────────────────────────────────────────────────────
    grid.u[grid.is_obstacle] = 0.0
    grid.v[grid.is_obstacle] = 0.0

    # ── Outer ring ─────────────────────────────────────────────────────
    for field in (grid.u, grid.v):
        field[0,  :] = 0.0
        field[-1, :] = 0.0
        field[:,  0] = 0.0
        field[:, -1] = 0.0


def max_divergence(grid: SimulationGrid) -> float:
    """Largest absolute divergence over the grid (0 for grids with no interior)."""
    return float(np.abs(grid.compute_divergence()).max())
