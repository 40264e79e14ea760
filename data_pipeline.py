"""
data_pipeline.py - Session Result Exporter
==========================================
Saves what a session produced as .npy files plus a JSON summary.

Layout on disk:
  output/
    step_0001_u.npy           ← intermediate snapshots (every `save_every` steps)
    step_0001_v.npy
    ...
    final_u.npy               ← last completed step, grid units
    final_v.npy
    final_pressure.npy
    obstacle.npy              ← bool mask
    metadata.json             ← config, forces, weight, outcome

Load back with:
  u = np.load("output/final_u.npy")
"""

import json
import logging
from dataclasses import asdict
from pathlib import Path

import numpy as np

from steadyflow import SessionResult, SimulationSession, StepReport

logger = logging.getLogger("steadyflow.export")


class SnapshotExporter:
    """
    Writes session snapshots and the final state to a directory.

    Usage:
        exporter = SnapshotExporter("output")
        result = exporter.export_session(session, save_every=50)
    """

    def __init__(self, output_dir: str = "output"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.saved_steps = []

    def save_step(self, report: StepReport):
        prefix = self.output_dir / f"step_{report.step_index:04d}"
        np.save(f"{prefix}_u.npy", report.u)
        np.save(f"{prefix}_v.npy", report.v)
        self.saved_steps.append(report.step_index)

    def save_final(self, result: SessionResult, config=None, forces=(),
                   target_weight: float = None) -> dict:
        """Write the final fields and metadata.json. Returns the metadata."""
        g = result.grid
        np.save(self.output_dir / "final_u.npy", g.u)
        np.save(self.output_dir / "final_v.npy", g.v)
        np.save(self.output_dir / "final_pressure.npy", g.pressure)
        np.save(self.output_dir / "obstacle.npy", g.is_obstacle)

        metadata = {
            "width"             : g.width,
            "height"            : g.height,
            "state"             : result.state.value,
            "steps"             : result.steps,
            **result.telemetry(),
            "target_weight"     : target_weight,
            "config"            : config.to_dict() if config is not None else None,
            "forces"            : [asdict(f) for f in forces],
            "saved_steps"       : self.saved_steps,
        }

        meta_path = self.output_dir / "metadata.json"
        with open(meta_path, "w") as f:
            json.dump(metadata, f, indent=2)

        logger.info("Exported %s result (%d steps) to %s",
                    result.state.value, result.steps, self.output_dir)
        return metadata

    def export_session(self, session: SimulationSession, forces=(),
                       save_every: int = 0) -> SessionResult:
        """
        Run `session` to completion, saving every `save_every`-th step
        (0 = final state only).
        """
        for report in session.steps():
            if save_every and report.step_index % save_every == 0:
                self.save_step(report)

        result = session.result()
        self.save_final(result, session.config, forces, session.target_weight)
        return result
