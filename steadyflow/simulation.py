"""
simulation.py - Step Pipeline and Batch Mode
============================================
One call to `run_step()` produces the next snapshot from the current one.

Pipeline per step (order matters):
  1. Copy the grid            (the input snapshot is never modified)
  2. Apply forces             (additive impulses)
  3. Advect velocity          (semi-Lagrangian, dt = time_step)
  4. Viscous diffusion
  5. Pressure relaxation      (pressure -= relaxation_factor * div)
  6. Velocity from pressure   (velocity -= pressure_impact * grad p)
  7. Apply target velocities  (soft constraints)
  8. Boundary conditions      (obstacles + outer ring → zero velocity)

Forces go in first so transport and diffusion act on the new momentum;
pressure then cleans up the transported field; boundaries go last so no
stage can leave a nonzero velocity on a wall.

Two drivers live here:
  - run_steady_state_simulation(): fixed `config.iterations` steps,
    reapplying raw forces every step ("batch" mode).
  - FlowSimulation: stateful wrapper that steps one frame at a time and
    reports timing metrics (CLI headless/benchmark modes).
The cancellable, converging interactive loop lives in session.py.
"""

import logging
import time

import numpy as np

from .advect import apply_advection
from .config import DEFAULT_SIMULATION_CONFIG, SimulationConfig
from .convergence import max_velocity_delta
from .diffuse import apply_viscosity
from .forces import apply_forces, apply_target_velocities
from .grid import SimulationGrid, copy_grid, create_grid_from_mask
from .solver import apply_boundary_conditions, update_pressure, update_velocity

logger = logging.getLogger(__name__)


def run_step(grid: SimulationGrid, forces=(), targets=(),
             config: SimulationConfig = DEFAULT_SIMULATION_CONFIG,
             timings: dict = None) -> SimulationGrid:
    """
    Advance one step and return the NEW grid. `grid` is left untouched.

    Args:
        grid    : Current snapshot
        forces  : ForceVectors to add this step
        targets : TargetVelocities to blend in this step
        config  : Solver parameters
        timings : Optional dict; per-stage wall times (ms) are written into it
    """
    t_start = time.perf_counter()

    # ── Step 1: Copy ───────────────────────────────────────────────────
    g = copy_grid(grid)

    # ── Step 2: Forces ─────────────────────────────────────────────────
    t0 = time.perf_counter()
    apply_forces(g, forces)
    t_forces = (time.perf_counter() - t0) * 1000

    # ── Step 3: Advection ──────────────────────────────────────────────
    t0 = time.perf_counter()
    apply_advection(g, config.time_step)
    t_advect = (time.perf_counter() - t0) * 1000

    # ── Step 4: Viscosity ──────────────────────────────────────────────
    t0 = time.perf_counter()
    apply_viscosity(g, config.viscosity)
    t_viscosity = (time.perf_counter() - t0) * 1000

    # ── Step 5 + 6: Pressure relaxation, then velocity correction ──────
    t0 = time.perf_counter()
    update_pressure(g, config.relaxation_factor)
    update_velocity(g, config.pressure_impact)
    t_pressure = (time.perf_counter() - t0) * 1000

    # ── Step 7: Target velocities ──────────────────────────────────────
    t0 = time.perf_counter()
    apply_target_velocities(g, targets)
    t_targets = (time.perf_counter() - t0) * 1000

    # ── Step 8: Boundaries (always last) ───────────────────────────────
    apply_boundary_conditions(g)

    if timings is not None:
        timings.update({
            "forces_ms"    : t_forces,
            "advect_ms"    : t_advect,
            "viscosity_ms" : t_viscosity,
            "pressure_ms"  : t_pressure,
            "targets_ms"   : t_targets,
            "total_ms"     : (time.perf_counter() - t_start) * 1000,
        })

    return g


def run_steady_state_simulation(grid: SimulationGrid, forces=(), targets=(),
                                config: SimulationConfig = DEFAULT_SIMULATION_CONFIG
                                ) -> SimulationGrid:
    """
    Run exactly `config.iterations` steps with the same inputs each step.

    Raw forces are re-added on EVERY step here, unlike the interactive
    session, which converts them to targets once. No convergence check.
    """
    current = copy_grid(grid)
    for _ in range(config.iterations):
        current = run_step(current, forces, targets, config)
    logger.debug("Batch run finished after %d steps", config.iterations)
    return current


class FlowSimulation:
    """
    Stateful stepping wrapper around run_step().

    Usage:
        sim = FlowSimulation(mask, forces=[ForceVector(0.1, 0.5, 0.05, 0.0)])
        for frame in range(100):
            metrics = sim.step()
        u, v = sim.grid.u, sim.grid.v     # Hand to visualizer
    """

    def __init__(self, mask, forces=(), targets=(),
                 config: SimulationConfig = DEFAULT_SIMULATION_CONFIG):
        """
        Args:
            mask    : bool[height][width] obstacle mask
            forces  : ForceVectors re-added every step
            targets : TargetVelocities blended every step
            config  : Solver parameters
        """
        self.mask = mask
        self.forces = list(forces)
        self.targets = list(targets)
        self.config = config
        self.grid = create_grid_from_mask(mask)
        self.frame = 0
        self.perf_log = []   # metrics dict per frame

    def reset(self):
        """Start over from a zero field on the same mask."""
        self.grid = create_grid_from_mask(self.mask)
        self.frame = 0
        self.perf_log = []

    def step(self) -> dict:
        """
        Advance one step. Returns a metrics dict for benchmarking.
        """
        timings = {}
        previous = self.grid
        self.grid = run_step(previous, self.forces, self.targets, self.config,
                             timings=timings)
        self.frame += 1

        div = np.abs(self.grid.compute_divergence())
        total = timings["total_ms"]

        metrics = {
            "frame"           : self.frame,
            "fps"             : 1000.0 / total if total > 0 else 0,
            **timings,
            "delta"           : max_velocity_delta(self.grid.u, self.grid.v,
                                                   previous.u, previous.v),
            "max_speed"       : self.grid.max_speed(),
            "divergence_max"  : float(div.max()),
            "divergence_mean" : float(div.mean()),
        }
        self.perf_log.append(metrics)
        return metrics

    def get_snapshot(self) -> dict:
        """Current state as independent arrays, ready for np.save."""
        g = self.grid
        return {
            "frame"      : self.frame,
            "u"          : g.u.copy(),
            "v"          : g.v.copy(),
            "pressure"   : g.pressure.copy(),
            "divergence" : g.compute_divergence(),
            "obstacle"   : g.is_obstacle.copy(),
        }

    def print_status(self):
        """Pretty-print current simulation state."""
        g = self.grid
        div = g.compute_divergence()
        print(f"\n{'='*50}")
        print(f"  Frame: {self.frame}  |  Grid: {g.width}x{g.height}")
        print(f"  Velocity  : max_u={np.abs(g.u).max():.4f}, max_v={np.abs(g.v).max():.4f}")
        print(f"  Divergence: max={np.abs(div).max():.6f}, mean={np.abs(div).mean():.8f}")
        print(f"  Pressure  : max={g.pressure.max():.4f}, min={g.pressure.min():.4f}")
        if self.perf_log:
            last = self.perf_log[-1]
            print(f"  Perf      : {last['total_ms']:.2f}ms/step ({last['fps']:.1f} steps/s)")
        print(f"{'='*50}")
