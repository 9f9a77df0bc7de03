"""
visualizer.py — Two-Panel Flow Viewer
======================================
Renders the 2D channel as two side-by-side images:
  - Velocity magnitude (speed)            → |(u, v)| at cell centres
  - Vorticity (spin, signed, diverging)   → ω = ∂v/∂x - ∂u/∂y

Solid cells are drawn as a grey overlay on both panels. A few streamlines
traced from the inlet are drawn over the speed panel.

Uses matplotlib FuncAnimation for real-time updates.
"""

import logging

import numpy as np
import matplotlib.pyplot as plt
import matplotlib.animation as animation
from matplotlib.colors import LinearSegmentedColormap, ListedColormap

from flowsim import BoundaryType

log = logging.getLogger(__name__)

# Speed colormap: black → deep blue → cyan → white
SPEED_COLORS = ["#000000", "#0b1e5b", "#00c8ff", "#ffffff"]
speed_cmap = LinearSegmentedColormap.from_list("speed", SPEED_COLORS)

# Solid overlay: transparent for fluid, grey for walls and obstacles
solid_cmap = ListedColormap([(0, 0, 0, 0), (0.55, 0.55, 0.55, 1.0)])

STREAMLINE_COUNT = 8


class FlowVisualizer:
    """
    Real-time viewer of a FluidSimulator.

    Usage (standalone):
        from flowsim import FluidSimulator
        from visualizer import FlowVisualizer

        sim = FluidSimulator()
        sim.add_circular_obstacle(25, 25, 5)
        sim.start()
        viz = FlowVisualizer(sim)
        viz.run()  # Opens live window
    """

    def __init__(self, simulator, steps_per_frame: int = 5):
        """
        Args:
            simulator       : FluidSimulator instance
            steps_per_frame : Solver steps advanced between two redraws
        """
        self.sim = simulator
        self.steps_per_frame = steps_per_frame
        self.frame = 0
        self.streamlines = []

        self._setup_figure()

    def _setup_figure(self):
        """Initialize the matplotlib figure with 2 subplots."""
        data = self.sim.get_visualization_data()
        H, W = data.grid_height, data.grid_width
        extent = (0, W * data.cell_size, 0, H * data.cell_size)

        self.fig, self.axes = plt.subplots(2, 1, figsize=(10, 8))
        self.fig.patch.set_facecolor('#0a0a0a')

        titles = ["Velocity magnitude (m/s)", "Vorticity (1/s)"]
        dummy = np.zeros((H, W))
        solid = (data.boundary_mask == BoundaryType.SOLID).astype(float)

        self.imgs = []
        self.overlays = []
        for ax, title, cmap in zip(self.axes, titles, (speed_cmap, "RdBu_r")):
            ax.set_facecolor('#0a0a0a')
            ax.set_title(title, color='#aaaaaa', fontsize=9, fontfamily='monospace')
            ax.set_xticks([])
            ax.set_yticks([])
            for spine in ax.spines.values():
                spine.set_edgecolor('#333333')

            img = ax.imshow(
                dummy, cmap=cmap,
                interpolation='bilinear',
                origin='lower',
                extent=extent,
                aspect='equal'
            )
            overlay = ax.imshow(
                solid, cmap=solid_cmap, vmin=0, vmax=1,
                interpolation='nearest',
                origin='lower',
                extent=extent,
                aspect='equal'
            )
            self.imgs.append(img)
            self.overlays.append(overlay)

        self.title_text = self.fig.suptitle(
            "Flow Sim — t=0.000s | step 0",
            color='#cccccc', fontsize=10, fontfamily='monospace'
        )

        plt.tight_layout()

    def _draw_streamlines(self, data):
        for line in self.streamlines:
            line.remove()
        self.streamlines = []

        seeds = data.streamline_seeds
        inlet = [s for s in seeds if s[0] < data.cell_size]
        if not inlet:
            return
        picks = np.linspace(0, len(inlet) - 1, min(STREAMLINE_COUNT, len(inlet))).astype(int)
        for i in picks:
            points = np.array(self.sim.generate_streamline(inlet[i], steps=200, step_size=0.02))
            line, = self.axes[0].plot(points[:, 0], points[:, 1], color='#ffffff',
                                      linewidth=0.6, alpha=0.6)
            self.streamlines.append(line)

    def update(self, frame_num):
        """Called by FuncAnimation each frame. Steps sim and updates plots."""
        metrics = None
        for _ in range(self.steps_per_frame):
            step_metrics = self.sim.step()
            if step_metrics is not None:
                metrics = step_metrics
        self.frame += 1

        data = self.sim.get_visualization_data()
        solid = (data.boundary_mask == BoundaryType.SOLID).astype(float)

        speed_img, vort_img = self.imgs
        speed_img.set_data(data.velocity_magnitude)
        speed_img.set_clim(0.0, max(data.statistics["max_velocity"], 1e-6))

        w_max = max(data.statistics["max_vorticity"], 1e-6)
        vort_img.set_data(data.vorticity)
        vort_img.set_clim(-w_max, w_max)

        for overlay in self.overlays:
            overlay.set_data(solid)

        if self.frame % 10 == 1:
            self._draw_streamlines(data)

        state = self.sim.state
        status = "running" if state.is_running else "paused"
        div = metrics["divergence"] if metrics else state.avg_divergence
        self.title_text.set_text(
            f"Flow Sim — t={state.time:.3f}s | step {state.step_count} | {status} | "
            f"Re={state.reynolds_number:.0f} | div={div:.2e}"
        )

        return self.imgs + self.overlays + self.streamlines + [self.title_text]

    def run(self, fps: int = 20, frames: int = 500):
        """
        Start the live animation window.

        Args:
            fps    : Target animation frame rate
            frames : Total frames to render
        """
        interval_ms = 1000 // fps
        self.anim = animation.FuncAnimation(
            self.fig,
            self.update,
            frames=frames,
            interval=interval_ms,
            blit=False
        )
        plt.show()

    def save_gif(self, path: str = "flow_sim.gif", fps: int = 10, frames: int = 100):
        """Save animation as a GIF (for reports and demos)."""
        log.info(f"Rendering {frames} frames to {path}")
        self.anim = animation.FuncAnimation(
            self.fig, self.update, frames=frames, interval=100, blit=False
        )
        writer = animation.PillowWriter(fps=fps)
        self.anim.save(path, writer=writer)
        log.info(f"Saved: {path}")
