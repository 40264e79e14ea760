"""
advect.py - Semi-Lagrangian Advection
=====================================
Moves the velocity field along itself.

The algorithm (per interior fluid cell):
  1. Start at the cell center (x, y).
  2. Trace BACKWARD along the velocity by one timestep:
       src = (x - u * dt, y - v * dt)
     → "Where did the fluid in this cell come FROM?"
  3. Sample u and v at that fractional position with bilinear
     interpolation.
  4. Those samples become the cell's new velocity.

Every sample is read from the field as it was BEFORE this pass. Results go
into scratch buffers and are committed only after the whole sweep, so no
cell ever sees a neighbor's half-updated value.

Key reference: Jos Stam, "Stable Fluids" (SIGGRAPH 1999)
"""

import numpy as np

from .grid import SimulationGrid


def bilinear_interpolate(field: np.ndarray, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """
    Bilinear interpolation of a 2D field indexed [y, x].

    Query positions are clamped to [0.5, dim - 1.5] on each axis, which keeps
    the upper neighbor (x0 + 1, y0 + 1) inside the array without a second
    clamp. NaN positions produce NaN samples instead of an indexing error.

    Args:
        field : 2D array, shape (H, W)
        x, y  : Query positions (same shape, fractional)

    Returns:
        Interpolated values, same shape as x/y
    """
    H, W = field.shape

    nan_pos = np.isnan(x) | np.isnan(y)

    # Clamp positions to the valid neighbor range
    cx = np.clip(np.nan_to_num(x, nan=0.5), 0.5, W - 1.5)
    cy = np.clip(np.nan_to_num(y, nan=0.5), 0.5, H - 1.5)

    # Lower corner of the 4-cell square
    x0 = np.floor(cx).astype(np.intp)
    y0 = np.floor(cy).astype(np.intp)
    x1 = x0 + 1
    y1 = y0 + 1

    # Fractional part
    sx = cx - x0
    sy = cy - y0

    c00 = field[y0, x0]
    c10 = field[y0, x1]
    c01 = field[y1, x0]
    c11 = field[y1, x1]

    # Lerp in X, then Y
    c0 = c00 * (1 - sx) + c10 * sx
    c1 = c01 * (1 - sx) + c11 * sx
    result = c0 * (1 - sy) + c1 * sy

    if nan_pos.any():
        result = np.where(nan_pos, np.nan, result)
    return result


def apply_advection(grid: SimulationGrid, dt: float):
    """
    Self-advect u and v by one timestep `dt` (in grid units).

    Only interior, non-obstacle cells are updated; everything else keeps its
    current value.

    Modifies: grid.u, grid.v (two-pass, via scratch buffers)
    """
    W, H = grid.width, grid.height
    if W < 3 or H < 3:
        return  # no interior

    # Interior fluid cells
    fluid = np.zeros((H, W), dtype=bool)
    fluid[1:-1, 1:-1] = True
    fluid &= ~grid.is_obstacle
    ys, xs = np.nonzero(fluid)

    # Back-trace from each cell center
    src_x = xs - grid.u[ys, xs] * dt
    src_y = ys - grid.v[ys, xs] * dt

    # Pass 1: sample into scratch buffers (reads only the old field)
    u_new = bilinear_interpolate(grid.u, src_x, src_y)
    v_new = bilinear_interpolate(grid.v, src_x, src_y)

    # Pass 2: commit
    grid.u[ys, xs] = u_new
    grid.v[ys, xs] = v_new
