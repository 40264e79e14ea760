"""
forces.py - Force and Target-Velocity Injection
===============================================
Maps sparse control inputs from the UI onto grid cells.

Two kinds of input, both given in NORMALIZED [0, 1] units:

  ForceVector    : an additive impulse.  u += fx * width
  TargetVelocity : a soft constraint.    u  = (1 - w) * u + w * (tu * width)

Position (x, y) becomes cell (floor(x * width), floor(y * height)).
Multiplying by the grid extent converts a normalized magnitude into the
grid's internal unit (cells per step).

Injection is best effort: entries at non-finite positions, entries that land
outside the grid (or outside the interior, for targets) and entries on an
obstacle are skipped without error. Users draw forces freehand, and plenty
of them end up off the valid cells.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from .grid import SimulationGrid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForceVector:
    x: float
    y: float
    fx: float
    fy: float


@dataclass(frozen=True)
class TargetVelocity:
    x: float
    y: float
    u: float
    v: float
    weight: float   # 1.0 = hard set, 0.0 = no effect


def _to_cell(grid: SimulationGrid, x: float, y: float) -> Optional[tuple[int, int]]:
    """Grid cell under a normalized position, or None if it is not finite."""
    px, py = x * grid.width, y * grid.height
    if not (math.isfinite(px) and math.isfinite(py)):
        return None
    return math.floor(px), math.floor(py)


def apply_forces(grid: SimulationGrid, forces):
    """
    Add each force to the velocity of the cell it lands on.

    Forces sharing a cell accumulate. Off-grid and obstacle cells are skipped.

    Modifies: grid.u, grid.v (in-place)
    """
    W, H = grid.width, grid.height

    for force in forces:
        cell = _to_cell(grid, force.x, force.y)
        if cell is None:
            logger.debug("Skipping force at non-finite position (%s, %s)", force.x, force.y)
            continue
        gx, gy = cell

        if gx < 0 or gx >= W or gy < 0 or gy >= H or grid.is_obstacle[gy, gx]:
            logger.debug("Skipping force at (%s, %s): cell (%d, %d) unusable",
                         force.x, force.y, gx, gy)
            continue

        grid.u[gy, gx] += force.fx * W
        grid.v[gy, gx] += force.fy * H


def apply_target_velocities(grid: SimulationGrid, targets):
    """
    Blend each target cell's velocity toward the (scaled) target velocity.

    Only interior cells (1 <= gx < width-1, 1 <= gy < height-1) take part,
    since the border ring is pinned to zero anyway. Targets are applied in
    order, so two targets on the same cell compose.

    Modifies: grid.u, grid.v (in-place)
    """
    W, H = grid.width, grid.height

    for target in targets:
        cell = _to_cell(grid, target.x, target.y)
        if cell is None:
            continue
        gx, gy = cell

        if gx < 1 or gx >= W - 1 or gy < 1 or gy >= H - 1 or grid.is_obstacle[gy, gx]:
            continue

        w = target.weight
        grid.u[gy, gx] = (1.0 - w) * grid.u[gy, gx] + w * (target.u * W)
        grid.v[gy, gx] = (1.0 - w) * grid.v[gy, gx] + w * (target.v * H)


def convert_forces_to_targets(forces, weight: float = 0.1) -> list[TargetVelocity]:
    """
    Reinterpret force vectors as soft target velocities.

    Position is kept, (fx, fy) becomes (u, v) unchanged, and every entry
    gets the same mixing weight. Lets the force-drawing UI drive the
    interactive session, which only uses targets.
    """
    return [
        TargetVelocity(x=f.x, y=f.y, u=f.fx, v=f.fy, weight=weight)
        for f in forces
    ]


def parse_force(text: str) -> ForceVector:
    """
    Parse "x,y,fx,fy" (as typed on the command line) into a ForceVector.

    Raises:
        ValueError: not exactly four comma-separated numbers.
    """
    parts = [p.strip() for p in text.split(",")]
    if len(parts) != 4:
        raise ValueError(f"Expected 'x,y,fx,fy', got {text!r}")
    x, y, fx, fy = (float(p) for p in parts)
    return ForceVector(x, y, fx, fy)
