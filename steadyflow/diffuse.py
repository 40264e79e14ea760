"""
diffuse.py - Viscous Diffusion
==============================
Viscosity makes neighboring cells share momentum.
  - High viscosity → thick fluid, velocity smooths out fast (honey)
  - Low viscosity  → thin fluid, sharp jets survive (air, water)

This solver uses the EXPLICIT update, one sweep per step:

  laplacian = u[y, x+1] + u[y, x-1] + u[y+1, x] + u[y-1, x] - 4 * u[y, x]
  u_new     = u + viscosity * laplacian

Explicit diffusion is only stable while viscosity <= 0.25 (cell spacing 1).
The steady-state loop runs thousands of small steps anyway, so a single
cheap sweep per step is enough; no Jacobi solve is needed.

The Laplacian is built entirely from the pre-step field (array slicing, no
Python loops) and committed afterwards, so the result does not depend on
sweep order.
"""

import numpy as np

from .grid import SimulationGrid

# Below this the update is skipped outright
VISCOSITY_EPSILON = 1e-6


def _laplacian(field: np.ndarray) -> np.ndarray:
    """5-point Laplacian on the interior, shape (H-2, W-2)."""
    return (
        field[1:-1, 2:]  +   # x+1 neighbor
        field[1:-1, :-2] +   # x-1 neighbor
        field[2:,  1:-1] +   # y+1 neighbor
        field[:-2, 1:-1] -   # y-1 neighbor
        4.0 * field[1:-1, 1:-1]
    )


def apply_viscosity(grid: SimulationGrid, viscosity: float):
    """
    Diffuse both velocity components by one explicit step.

    Obstacle cells and the border ring keep their values (the boundary pass
    zeroes them later). No-op when viscosity < VISCOSITY_EPSILON.

    Modifies: grid.u, grid.v (two-pass, via scratch buffers)
    """
    if viscosity < VISCOSITY_EPSILON:
        return  # Skip for (near) inviscid settings

    if grid.width < 3 or grid.height < 3:
        return

    fluid = ~grid.is_obstacle[1:-1, 1:-1]

    # Pass 1: scratch buffers from the old field
    u_new = grid.u[1:-1, 1:-1] + viscosity * _laplacian(grid.u)
    v_new = grid.v[1:-1, 1:-1] + viscosity * _laplacian(grid.v)

    # Pass 2: commit fluid cells only
    grid.u[1:-1, 1:-1][fluid] = u_new[fluid]
    grid.v[1:-1, 1:-1][fluid] = v_new[fluid]
