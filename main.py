"""
main.py - Command-Line Entry Point
==================================
Runs the solver on an obstacle image (or a demo circle) and reports how the
flow settles.

Usage:
    python main.py                                # Session until steady (default)
    python main.py --mask wing.png --force 0.1,0.5,0.05,0
    python main.py --mode batch --iterations 200  # Fixed-count batch mode
    python main.py --mode benchmark               # Per-stage timings
    python main.py --mode live                    # Arrow plot window
    python main.py --mode export --output out/    # .npy + metadata.json
"""

import argparse
import logging

import numpy as np

from steadyflow import (
    DEFAULT_TARGET_WEIGHT,
    MAX_SESSION_STEPS,
    FlowSimulation,
    ForceVector,
    SessionRunner,
    SimulationConfig,
    SimulationSession,
    convert_forces_to_targets,
    create_grid_from_mask,
    load_config,
    run_steady_state_simulation,
)
from steadyflow.forces import parse_force
from steadyflow.logging_config import setup_logging
from steadyflow.mask import circle_mask, load_mask

DEFAULT_FORCES = [ForceVector(x=0.1, y=0.5, fx=0.05, fy=0.0)]


def build_mask(args) -> np.ndarray:
    if args.mask:
        return load_mask(args.mask, args.width, args.height)
    return circle_mask(args.width, args.height)


def run_session(mask, forces, weight: float, config: SimulationConfig, max_steps: int):
    """Run one session to a terminal state, printing progress."""
    print(f"\nSession | {mask.shape[1]}x{mask.shape[0]} | "
          f"{len(forces)} force(s) | weight={weight}")
    print(f"{'─'*60}")

    def report_progress(report):
        if report.step_index % 100 == 0 or report.step_index == 1:
            delta = "-" if report.delta is None else f"{report.delta:.6f}"
            print(f"  Step {report.step_index:04d} | delta={delta}")

    session = SimulationSession(create_grid_from_mask(mask), forces, weight, config,
                                max_steps=max_steps)
    result = session.run(observer=report_progress)

    print(f"{'─'*60}")
    print(f"  State     : {result.state.value}")
    print(f"  Steps     : {result.steps}")
    print(f"  Converged : {result.converged} (steps_to_converge={result.steps_to_converge})")
    print(f"  Max speed : {result.grid.max_speed():.6f} cells/step")
    return result


def run_batch(mask, forces, config: SimulationConfig):
    """Fixed-iteration mode: raw forces re-added on every step."""
    print(f"\nBatch | {config.iterations} iterations | {len(forces)} force(s)")
    grid = run_steady_state_simulation(create_grid_from_mask(mask), forces, (), config)
    print(grid)
    return grid


def run_benchmark(mask, forces, weight: float, config: SimulationConfig, steps: int = 200):
    """Per-stage timing breakdown of run_step()."""
    print(f"\n{'='*60}")
    print(f"  STEP BENCHMARK | {mask.shape[1]}x{mask.shape[0]} | {steps} steps")
    print(f"{'='*60}")

    sim = FlowSimulation(mask, targets=convert_forces_to_targets(forces, weight), config=config)

    # Warm up
    for _ in range(5):
        sim.step()

    logs = [sim.step() for _ in range(steps)]

    keys = ["forces_ms", "advect_ms", "viscosity_ms", "pressure_ms",
            "targets_ms", "total_ms"]

    print(f"\n{'Stage':<20} {'Mean':>8} {'Min':>8} {'Max':>8}")
    print(f"{'─'*50}")
    for k in keys:
        vals = [m[k] for m in logs]
        print(f"  {k:<18} {np.mean(vals):>6.3f}ms {np.min(vals):>6.3f}ms {np.max(vals):>6.3f}ms")

    total_vals = [m["total_ms"] for m in logs]
    print(f"\n{'─'*50}")
    print(f"  Steps/s: {1000/np.mean(total_vals):.1f}")
    print(f"  Worst case to {MAX_SESSION_STEPS} steps: "
          f"{np.mean(total_vals) * MAX_SESSION_STEPS / 1000:.1f}s")
    sim.print_status()


def run_live(mask, forces, weight: float, config: SimulationConfig, max_steps: int):
    from visualizer import FlowVisualizer

    print("Starting live session... Close the window to exit.\n")
    runner = SessionRunner()
    runner.start(mask, forces, weight, config, max_steps=max_steps)
    viz = FlowVisualizer(mask)
    viz.run_live(runner)
    runner.wait(timeout=2.0)


def run_export(mask, forces, weight: float, config: SimulationConfig, max_steps: int,
               output: str, save_every: int):
    from data_pipeline import SnapshotExporter

    print(f"\nExport | saving to {output}/")
    session = SimulationSession(create_grid_from_mask(mask), forces, weight, config,
                                max_steps=max_steps)
    exporter = SnapshotExporter(output)
    result = exporter.export_session(session, forces, save_every=save_every)
    print(f"  {result.state.value} after {result.steps} steps, "
          f"{len(exporter.saved_steps)} intermediate snapshot(s)")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Steady-state 2D obstacle flow")
    parser.add_argument(
        "--mode", choices=["session", "batch", "benchmark", "live", "export"],
        default="session",
        help="Run mode (default: session)"
    )
    parser.add_argument("--mask",   type=str, default=None, help="Obstacle image (alpha > 128 = obstacle)")
    parser.add_argument("--width",  type=int, default=64, help="Grid width (default: 64)")
    parser.add_argument("--height", type=int, default=64, help="Grid height (default: 64)")
    parser.add_argument("--force",  type=parse_force, action="append", default=None,
                        metavar="X,Y,FX,FY", help="Force vector in normalized units (repeatable)")
    parser.add_argument("--weight", type=float, default=DEFAULT_TARGET_WEIGHT,
                        help=f"Target mixing weight (default: {DEFAULT_TARGET_WEIGHT})")
    parser.add_argument("--config", type=str, default=None, help="JSON config file")
    parser.add_argument("--iterations", type=int, default=None, help="Batch-mode step count")
    parser.add_argument("--max-steps",  type=int, default=MAX_SESSION_STEPS, help="Session step ceiling")
    parser.add_argument("--output",     type=str, default="output", help="Export directory")
    parser.add_argument("--save-every", type=int, default=0, help="Export every Nth step (0 = final only)")
    parser.add_argument("--log-level",  type=str, default="WARNING", help="Logging level")
    parser.add_argument("--log-file",   type=str, default=None, help="Also log to this file")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_logging(getattr(logging, args.log_level.upper(), logging.WARNING), args.log_file)

    config = load_config(args.config) if args.config else SimulationConfig()
    if args.iterations is not None:
        config = config.replace(iterations=args.iterations)

    forces = args.force or DEFAULT_FORCES
    mask = build_mask(args)

    if args.mode == "session":
        run_session(mask, forces, args.weight, config, args.max_steps)
    elif args.mode == "batch":
        run_batch(mask, forces, config)
    elif args.mode == "benchmark":
        run_benchmark(mask, forces, args.weight, config)
    elif args.mode == "live":
        run_live(mask, forces, args.weight, config, args.max_steps)
    elif args.mode == "export":
        run_export(mask, forces, args.weight, config, args.max_steps,
                   args.output, args.save_every)


if __name__ == "__main__":
    main()
