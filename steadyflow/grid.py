"""
grid.py - Collocated 2D Simulation Grid
=======================================
The foundation of the solver.

Unlike a staggered MAC grid, every quantity here lives at the CELL CENTER:
  - Pressure `pressure`      → shape (height, width)
  - Velocity `u` (x-comp.)   → shape (height, width)
  - Velocity `v` (y-comp.)   → shape (height, width)
  - Obstacle flags           → shape (height, width), bool

Arrays are indexed [y, x] and stored C-contiguous, so each one is a flat
row-major buffer addressed by y * width + x.

Velocities are in GRID UNITS PER STEP. Callers speak normalized [0, 1]
units; forces.py does the scaling on the way in, and the renderer undoes it
on the way out.

Every solver step works on a fresh copy (see copy_grid), so a snapshot
handed to a consumer is never touched again by the solver.
"""

import numpy as np

from .errors import EmptyMask, InvalidDimension


class SimulationGrid:
    """
    Mutable numerical state of one snapshot: pressure, velocity, obstacles.
    Build it with create_grid / create_grid_from_mask rather than directly.
    """

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height

        # ── Fields (cell-centered) ─────────────────────────────────────────
        self.pressure    = np.zeros((height, width), dtype=np.float64)
        self.u           = np.zeros((height, width), dtype=np.float64)
        self.v           = np.zeros((height, width), dtype=np.float64)

        # Fixed for the lifetime of a run once copied from the mask
        self.is_obstacle = np.zeros((height, width), dtype=bool)

    @property
    def shape(self) -> tuple[int, int]:
        return self.height, self.width

    def velocity_snapshot(self) -> dict:
        """
        Independent copies of the velocity components.
        This is what the rendering consumer receives.
        """
        return {"u": self.u.copy(), "v": self.v.copy()}

    def compute_divergence(self) -> np.ndarray:
        """
        Central-difference divergence at interior fluid cells:
          div = u[y, x+1] - u[y, x-1] + v[y+1, x] - v[y-1, x]

        Cell spacing is taken as 1, so this is NOT divided by 2*dx.
        Border and obstacle cells report 0.

        Returns: (height, width) array.
        """
        div = np.zeros((self.height, self.width), dtype=np.float64)
        if self.width < 3 or self.height < 3:
            return div

        u, v = self.u, self.v
        div[1:-1, 1:-1] = (
            u[1:-1, 2:] - u[1:-1, :-2] +
            v[2:, 1:-1] - v[:-2, 1:-1]
        )
        div[self.is_obstacle] = 0.0
        return div

    def max_speed(self) -> float:
        return float(np.sqrt(self.u ** 2 + self.v ** 2).max())

    def __repr__(self):
        max_div = np.abs(self.compute_divergence()).max()
        return (
            f"SimulationGrid(width={self.width}, height={self.height})\n"
            f"  obstacles : {int(self.is_obstacle.sum())} cells\n"
            f"  velocity  : max_magnitude={self.max_speed():.4f}\n"
            f"  pressure  : min={self.pressure.min():.4f}, max={self.pressure.max():.4f}\n"
            f"  divergence: max={max_div:.6f}"
        )


def create_grid(width: int, height: int) -> SimulationGrid:
    """
    New grid with all fields zero and no obstacles.

    Raises:
        InvalidDimension: width or height is <= 0 or not a whole number.
    """
    for value in (width, height):
        if isinstance(value, bool) or not float(value).is_integer() or value <= 0:
            raise InvalidDimension(
                f"Grid dimensions must be positive integers, got width={width}, height={height}"
            )
    return SimulationGrid(int(width), int(height))


def create_grid_from_mask(mask) -> SimulationGrid:
    """
    New grid whose obstacle flags are copied from `mask`.

    Args:
        mask : bool[height][width], nested lists or a 2D numpy array.
               True marks an obstacle cell.

    Raises:
        EmptyMask: the mask has no rows or no columns.
    """
    if len(mask) == 0 or len(mask[0]) == 0:
        raise EmptyMask("Obstacle mask cannot be empty")

    flags = np.array(mask, dtype=bool)
    if flags.ndim != 2:
        raise ValueError(f"Obstacle mask must be 2D, got shape {flags.shape}")

    height, width = flags.shape
    grid = create_grid(width, height)
    grid.is_obstacle[:] = flags
    return grid


def copy_grid(grid: SimulationGrid) -> SimulationGrid:
    """Deep copy: no array is shared between `grid` and the result."""
    new = SimulationGrid(grid.width, grid.height)
    np.copyto(new.pressure, grid.pressure)
    np.copyto(new.u, grid.u)
    np.copyto(new.v, grid.v)
    np.copyto(new.is_obstacle, grid.is_obstacle)
    return new
