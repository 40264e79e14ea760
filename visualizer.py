"""
visualizer.py - Velocity Arrow Viewer
=====================================
Renders the solver's output:
  - obstacle mask as a dark overlay
  - velocity as arrows, one every `display_grid_density` cells

The solver hands over velocities in grid units per step. Arrow direction
comes straight from (u, v); arrow length is the normalized magnitude
(u / width, v / height) times `vector_scale`, capped so that one arrow
never covers more than a few cells.

Uses matplotlib quiver, plus FuncAnimation for the live view.
"""

import numpy as np
import matplotlib.pyplot as plt
import matplotlib.animation as animation
from matplotlib.colors import ListedColormap

# Transparent for fluid, dark grey for obstacles
MASK_CMAP = ListedColormap([(0, 0, 0, 0), (0.1, 0.1, 0.1, 0.7)])
ARROW_COLOR = (0.0, 0.4, 1.0, 0.7)

MIN_ARROW_MAGNITUDE = 0.001   # grid units; smaller arrows are not drawn
MAX_ARROW_CELLS = 3.0         # longest arrow, in cells, before vector_scale


class FlowVisualizer:
    """
    Arrow plot of a velocity field over its obstacle mask.

    Usage (standalone):
        from steadyflow import SessionRunner
        from visualizer import FlowVisualizer

        runner = SessionRunner()
        runner.start(mask, forces, target_weight=0.1)
        viz = FlowVisualizer(mask)
        viz.run_live(runner)  # Opens live window
    """

    def __init__(self, mask, display_grid_density: int = 4, vector_scale: float = 1.0,
                 show_mask: bool = True):
        """
        Args:
            mask                 : bool[height][width] obstacle mask
            display_grid_density : Draw an arrow every N cells
            vector_scale         : Multiplier on arrow length
            show_mask            : Draw the obstacle overlay
        """
        self.mask = np.asarray(mask, dtype=bool)
        self.height, self.width = self.mask.shape
        self.display_grid_density = max(1, int(display_grid_density))
        self.vector_scale = vector_scale
        self.show_mask = show_mask

        self._setup_figure()

    def _setup_figure(self):
        self.fig, self.ax = plt.subplots(figsize=(7, 7 * self.height / self.width))
        self.ax.set_xlim(0, self.width)
        self.ax.set_ylim(self.height, 0)   # row 0 at the top, like the canvas
        self.ax.set_aspect('equal')
        self.ax.set_xticks([])
        self.ax.set_yticks([])

        if self.show_mask:
            self.ax.imshow(
                self.mask.astype(int), cmap=MASK_CMAP, vmin=0, vmax=1,
                extent=(0, self.width, self.height, 0),
                interpolation='nearest'
            )

        self.quiver = None
        self.title_text = self.ax.set_title(
            "Step 0 | delta=-", fontsize=10, fontfamily='monospace'
        )

    def arrow_components(self, u: np.ndarray, v: np.ndarray):
        """
        Arrow positions and display vectors for the sampled cells.

        Returns (x, y, dx, dy) arrays; cells whose magnitude is below
        MIN_ARROW_MAGNITUDE are left out.
        """
        step = self.display_grid_density
        ys, xs = np.mgrid[0:self.height:step, 0:self.width:step]
        us = u[ys, xs]
        vs = v[ys, xs]

        magnitude = np.sqrt(us ** 2 + vs ** 2)
        keep = magnitude >= MIN_ARROW_MAGNITUDE

        # Grid units → normalized units for length; direction is unchanged
        nu = us[keep] / self.width
        nv = vs[keep] / self.height
        norm = np.sqrt(nu ** 2 + nv ** 2)

        length = np.minimum(MAX_ARROW_CELLS, norm * 80 * self.width) * self.vector_scale
        dx = us[keep] / magnitude[keep] * length
        dy = vs[keep] / magnitude[keep] * length

        return xs[keep] + 0.5, ys[keep] + 0.5, dx, dy

    def draw(self, u: np.ndarray, v: np.ndarray, step_index: int = None, delta: float = None):
        """Replace the arrows with a new velocity field."""
        x, y, dx, dy = self.arrow_components(np.asarray(u), np.asarray(v))

        if self.quiver is not None:
            self.quiver.remove()
        self.quiver = self.ax.quiver(
            x, y, dx, dy, color=ARROW_COLOR,
            angles='xy', scale_units='xy', scale=1, width=0.003
        )

        if step_index is not None:
            delta_text = "-" if delta is None else f"{delta:.6f}"
            self.title_text.set_text(f"Step {step_index} | delta={delta_text}")

        return self.quiver

    def save_png(self, path: str = "flow.png"):
        self.fig.savefig(path, dpi=150, bbox_inches='tight')
        print(f"Saved: {path}")

    def run_live(self, runner, fps: int = 10):
        """
        Poll a running SessionRunner and redraw its latest report.
        The solver keeps its own thread; this window only reads.
        """
        def update(_frame):
            report = runner.latest_report()
            if report is not None:
                self.draw(report.u, report.v, report.step_index, report.delta)
            result = runner.result
            if result is not None:
                status = result.state.value.replace("_", " ")
                self.title_text.set_text(f"{self.title_text.get_text()} | {status}")
            return [self.title_text]

        self.anim = animation.FuncAnimation(
            self.fig, update, interval=1000 // fps, cache_frame_data=False
        )
        plt.show()
        runner.abort()
