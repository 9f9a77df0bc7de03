"""
simulation.py — Master Simulation Loop
=======================================
This is the complete simulation step that ties everything together.
One call to `step()` advances the fluid by dt seconds.

Solver pipeline per step:
  1. Diffuse velocity + temperature (viscosity)
  2. Project velocity (enforce incompressibility)
  3. Advect velocity + temperature (self-advection)
  4. Project again (clean up after advection)
  5. Vorticity confinement (optional)
  6. Recompute vorticity (for stats and the visualizer)
  7. Apply gravity + buoyancy (seen by the next step's diffusion)
  8. Update statistics

The simulator owns exactly one field, one boundary map and the list of
obstacles. Everything it hands out (state, visualization data, probes) is
a copy; the only way to change the flow is through its commands.
"""

import logging
import math
import time
from collections import deque
from dataclasses import dataclass, field as dataclass_field
from typing import Optional, Sequence

import numpy as np

from .advect import advect
from .boundary import apply_boundary_conditions
from .config import InflowCondition, OutflowCondition, SimulationConfig
from .diffuse import diffuse
from .errors import ConfigurationError, SimulationDivergedError
from .forces import apply_external_forces, apply_vorticity_confinement, compute_vorticity
from .grid import (
    BoundaryType,
    CircleObstacle,
    RectangleObstacle,
    apply_obstacle,
    create_default_boundary,
    create_field,
    initialize_field,
)
from .solver import check_divergence_convergence, project

log = logging.getLogger(__name__)

HISTORY_LENGTH = 1000


# ── Read-only snapshots ───────────────────────────────────────────────────────


@dataclass
class SimulationState:
    """
    Counters and health metrics of a run.

    On the simulator's live state convergence_history is a deque bounded to
    HISTORY_LENGTH; copies from get_state() carry a plain list.
    """

    time: float = 0.0
    step_count: int = 0
    is_running: bool = False
    convergence_history: Sequence[float] = dataclass_field(
        default_factory=lambda: deque(maxlen=HISTORY_LENGTH)
    )
    avg_divergence: float = 0.0
    max_velocity: float = 0.0
    max_vorticity: float = 0.0
    reynolds_number: float = 0.0


@dataclass
class VisualizationData:
    """Everything a renderer needs for one frame."""

    grid_width: int
    grid_height: int
    cell_size: float
    u: np.ndarray
    v: np.ndarray
    velocity_magnitude: np.ndarray
    pressure: np.ndarray
    vorticity: np.ndarray
    temperature: np.ndarray
    boundary_mask: np.ndarray
    streamline_seeds: list
    statistics: dict


@dataclass
class ProbeData:
    position: tuple
    u: float = 0.0
    v: float = 0.0
    magnitude: float = 0.0
    pressure: float = 0.0
    vorticity: float = 0.0
    temperature: float = 0.0
    is_valid: bool = False


# ── Simulator ─────────────────────────────────────────────────────────────────


class FluidSimulator:
    """
    The complete 2D channel-flow simulation.

    Usage:
        sim = FluidSimulator(width=120, height=60)
        sim.add_circular_obstacle(30, 30, 6)     # Cylinder in the channel
        sim.start()
        for frame in range(100):
            sim.step()
            data = sim.get_visualization_data()  # Hand to visualizer
    """

    def __init__(self, config: Optional[SimulationConfig] = None, **overrides):
        """
        Args:
            config    : SimulationConfig; defaults to SimulationConfig()
            overrides : Individual options applied on top of `config`

        Raises:
            ConfigurationError: for degenerate grids or invalid parameters
        """
        config = config if config is not None else SimulationConfig()
        if overrides:
            config = config.replace(**overrides)
        self.config = config.validate()

        self._obstacles = []
        self.field = create_field(
            config.width, config.height,
            density=config.density, viscosity=config.viscosity,
            dx=config.dx, dt=config.time_step,
        )
        self.boundary = self._fresh_boundary()
        self.state = SimulationState(reynolds_number=self._reynolds_number())
        self.last_metrics = None
        self._next_output_time = config.output_interval

        self.reset()

    # ── Lifecycle ──────────────────────────────────────────────────────────

    def reset(self):
        """
        Back to t=0: stopped, uniform inflow state, obstacles re-applied.
        """
        cfg = self.config
        self.state.time = 0.0
        self.state.step_count = 0
        self.state.is_running = False
        self.state.convergence_history.clear()
        self.state.avg_divergence = 0.0
        self.state.max_velocity = 0.0
        self.state.max_vorticity = 0.0
        self.state.reynolds_number = self._reynolds_number()
        self._next_output_time = cfg.output_interval
        self.last_metrics = None

        initialize_field(self.field, cfg.inflow.velocity, cfg.inflow.temperature)
        self.field.divergence.fill(0.0)
        self.field.vorticity.fill(0.0)
        self._rebuild_boundary()
        log.info(f"Simulation reset ({cfg.width}x{cfg.height}, "
                 f"{len(self._obstacles)} obstacle(s), Re={self.state.reynolds_number:.1f})")

    def start(self):
        self.state.is_running = True
        log.info("Simulation started")

    def stop(self):
        self.state.is_running = False
        log.info("Simulation stopped")

    def toggle_pause(self):
        self.state.is_running = not self.state.is_running
        log.info(f"Simulation {'resumed' if self.state.is_running else 'paused'}")

    @property
    def is_running(self) -> bool:
        return self.state.is_running

    # ── Obstacles ──────────────────────────────────────────────────────────

    @property
    def obstacles(self) -> tuple:
        return tuple(self._obstacles)

    def add_circular_obstacle(self, cx: float, cy: float, radius: float):
        """Add a cylinder centred on cell (cx, cy) with radius in cells."""
        obstacle = CircleObstacle(cx, cy, radius)
        apply_obstacle(self.boundary, obstacle)
        self._obstacles.append(obstacle)
        apply_boundary_conditions(self.field, self.boundary)
        log.info(f"Added {obstacle}")

    def add_rectangular_obstacle(self, x1: int, y1: int, x2: int, y2: int):
        """Add a block covering cells [x1..x2] × [y1..y2] inclusive."""
        obstacle = RectangleObstacle(x1, y1, x2, y2)
        apply_obstacle(self.boundary, obstacle)
        self._obstacles.append(obstacle)
        apply_boundary_conditions(self.field, self.boundary)
        log.info(f"Added {obstacle}")

    def clear_obstacles(self):
        """Drop every obstacle and go back to the default channel boundary."""
        self._obstacles = []
        self.boundary = self._fresh_boundary()
        apply_boundary_conditions(self.field, self.boundary)
        log.info("Obstacles cleared")

    def _fresh_boundary(self):
        cfg = self.config
        return create_default_boundary(
            cfg.width, cfg.height,
            inflow=InflowCondition(cfg.inflow.velocity, cfg.inflow.temperature),
            outflow=OutflowCondition(cfg.outflow.pressure),
        )

    def _rebuild_boundary(self):
        self.boundary = self._fresh_boundary()
        for obstacle in self._obstacles:
            apply_obstacle(self.boundary, obstacle)
        apply_boundary_conditions(self.field, self.boundary)

    # ── Stepping ───────────────────────────────────────────────────────────

    def step(self) -> Optional[dict]:
        """
        Advance simulation by one timestep (dt seconds).

        Does nothing and returns None while the simulation is stopped.

        Returns:
            Performance and health metrics dict for this step.

        Raises:
            SimulationDivergedError: if the field stopped being finite or the
                divergence exceeds config.divergence_limit. The simulation is
                stopped before raising.
        """
        if not self.state.is_running:
            return None

        cfg = self.config
        f, b = self.field, self.boundary
        t_total_start = time.perf_counter()

        # ── Step 1: Diffuse (viscosity) ────────────────────────────────────
        t0 = time.perf_counter()
        diffuse(f, b, cfg.diffusion_iterations)
        t_diffuse = (time.perf_counter() - t0) * 1000

        # ── Step 2: Project (enforce incompressibility) ────────────────────
        proj1 = project(f, b, cfg.pressure_iterations)

        # ── Step 3: Advect ─────────────────────────────────────────────────
        t0 = time.perf_counter()
        advect(f, b)
        t_advect = (time.perf_counter() - t0) * 1000

        # ── Step 4: Project again (clean up post-advection divergence) ─────
        proj2 = project(f, b, cfg.pressure_iterations)

        # ── Step 5-7: Confinement, vorticity, body forces ──────────────────
        t0 = time.perf_counter()
        if cfg.enable_vorticity_confinement:
            apply_vorticity_confinement(f, b, cfg.vorticity_strength)
        compute_vorticity(f, b)
        apply_external_forces(f, b, cfg.gravity, cfg.buoyancy_factor, cfg.ambient_temperature)
        t_forces = (time.perf_counter() - t0) * 1000

        # ── Step 8: Statistics ─────────────────────────────────────────────
        self._update_state()
        t_total = (time.perf_counter() - t_total_start) * 1000

        metrics = {
            "step": self.state.step_count,
            "time": self.state.time,
            "total_ms": t_total,
            "diffuse_ms": t_diffuse,
            "project1_ms": proj1["time_ms"],
            "advect_ms": t_advect,
            "project2_ms": proj2["time_ms"],
            "forces_ms": t_forces,
            "divergence": self.state.avg_divergence,
            "max_velocity": self.state.max_velocity,
            "max_vorticity": self.state.max_vorticity,
        }
        self.last_metrics = metrics
        log.debug(f"Step {self.state.step_count}: {t_total:.1f}ms "
                  f"div={self.state.avg_divergence:.3e} vmax={self.state.max_velocity:.3f}")

        self._check_health()
        self._report_progress()

        if self.state.time >= cfg.max_simulation_time:
            self.state.is_running = False
            log.info(f"Reached max simulation time ({cfg.max_simulation_time}s)")

        return metrics

    def _update_state(self):
        s = self.state
        s.time += self.config.time_step
        s.step_count += 1

        s.avg_divergence = check_divergence_convergence(self.field, self.boundary)
        s.convergence_history.append(s.avg_divergence)

        fluid = ~self.boundary.solid
        if fluid.any():
            s.max_velocity = float(self.field.velocity_magnitude()[fluid].max())
            s.max_vorticity = float(np.abs(self.field.vorticity[fluid]).max())
        else:
            s.max_velocity = 0.0
            s.max_vorticity = 0.0
        s.reynolds_number = self._reynolds_number()

    def _check_health(self):
        s = self.state
        limit = self.config.divergence_limit
        diverged = not (math.isfinite(s.avg_divergence) and math.isfinite(s.max_velocity))
        if not diverged and limit is not None and s.avg_divergence > limit:
            diverged = True
        if diverged:
            s.is_running = False
            log.warning(f"Simulation diverged at step {s.step_count}: "
                        f"divergence={s.avg_divergence}, max_velocity={s.max_velocity}")
            raise SimulationDivergedError(
                f"Simulation diverged at step {s.step_count} "
                f"(RMS divergence={s.avg_divergence}); reduce time_step",
                step=s.step_count, divergence=s.avg_divergence,
            )

    def _report_progress(self):
        s = self.state
        if s.time + 1e-12 < self._next_output_time:
            return
        log.info(f"t={s.time:.3f}s step={s.step_count} div={s.avg_divergence:.3e} "
                 f"vmax={s.max_velocity:.3f} wmax={s.max_vorticity:.3f}")
        interval = self.config.output_interval
        while self._next_output_time <= s.time + 1e-12:
            self._next_output_time += interval

    def _reynolds_number(self) -> float:
        cfg = self.config
        characteristic_length = min(cfg.width, cfg.height) * cfg.dx
        characteristic_velocity = math.hypot(*cfg.inflow.velocity)
        kinematic_viscosity = cfg.viscosity / cfg.density
        if kinematic_viscosity == 0.0:
            return math.inf
        return characteristic_velocity * characteristic_length / kinematic_viscosity

    # ── Configuration ──────────────────────────────────────────────────────

    def get_config(self) -> SimulationConfig:
        return self.config.replace()

    def update_config(self, **changes):
        """
        Change parameters of a live simulation.

        Grid dimensions are fixed for the lifetime of the field; changing
        width or height raises ConfigurationError.
        """
        for name in ("width", "height"):
            if name in changes and changes[name] != getattr(self.config, name):
                raise ConfigurationError(
                    f"Cannot change {name} of an existing simulation; create a new one"
                )
        self.config = self.config.replace(**changes)
        cfg = self.config

        self.field.density = cfg.density
        self.field.viscosity = cfg.viscosity
        self.field.dt = cfg.time_step
        self.field.dx = cfg.dx
        self.boundary.inflow = InflowCondition(cfg.inflow.velocity, cfg.inflow.temperature)
        self.boundary.outflow = OutflowCondition(cfg.outflow.pressure)
        self.state.reynolds_number = self._reynolds_number()
        log.info(f"Configuration updated: {sorted(changes)}")

    # ── Queries ────────────────────────────────────────────────────────────

    def get_state(self) -> SimulationState:
        """Copy of the current state; convergence_history is a plain list."""
        s = self.state
        return SimulationState(
            time=s.time,
            step_count=s.step_count,
            is_running=s.is_running,
            convergence_history=list(s.convergence_history),
            avg_divergence=s.avg_divergence,
            max_velocity=s.max_velocity,
            max_vorticity=s.max_vorticity,
            reynolds_number=s.reynolds_number,
        )

    def get_visualization_data(self, seed_spacing: Optional[int] = None) -> VisualizationData:
        """
        Snapshot for renderers.

        Args:
            seed_spacing : Distance in cells between streamline seeds;
                           defaults to max(5, width // 20)

        Statistics are taken over non-solid cells only.
        """
        f, b = self.field, self.boundary
        magnitude = f.velocity_magnitude()
        fluid = ~b.solid

        if fluid.any():
            statistics = {
                "max_velocity": float(magnitude[fluid].max()),
                "min_pressure": float(f.pressure[fluid].min()),
                "max_pressure": float(f.pressure[fluid].max()),
                "max_vorticity": float(np.abs(f.vorticity[fluid]).max()),
                "average_divergence": self.state.avg_divergence,
            }
        else:
            statistics = {
                "max_velocity": 0.0,
                "min_pressure": 0.0,
                "max_pressure": 0.0,
                "max_vorticity": 0.0,
                "average_divergence": self.state.avg_divergence,
            }

        return VisualizationData(
            grid_width=f.width,
            grid_height=f.height,
            cell_size=f.dx,
            u=f.u.copy(),
            v=f.v.copy(),
            velocity_magnitude=magnitude,
            pressure=f.pressure.copy(),
            vorticity=f.vorticity.copy(),
            temperature=f.temperature.copy(),
            boundary_mask=b.types.copy(),
            streamline_seeds=self._streamline_seeds(seed_spacing),
            statistics=statistics,
        )

    def _streamline_seeds(self, spacing: Optional[int]) -> list:
        f, b = self.field, self.boundary
        if spacing is None:
            spacing = max(5, f.width // 20)
        spacing = max(1, int(spacing))

        seeds = []
        for y in range(spacing, f.height, spacing):
            for x in range(spacing, f.width, spacing):
                if not b.solid[y, x]:
                    seeds.append(((x + 0.5) * f.dx, (y + 0.5) * f.dx))
        # every inlet cell also releases a streamline
        for y, x in zip(*np.nonzero(b.types == BoundaryType.INFLOW)):
            seeds.append(((x + 0.5) * f.dx, (y + 0.5) * f.dx))
        return seeds

    def get_probe_data(self, x: float, y: float) -> ProbeData:
        """
        Sample the flow at physical position (x, y) in metres.

        Cell (i, j) spans [i·dx, (i+1)·dx) × [j·dx, (j+1)·dx). Outside the
        domain (NaN and infinite positions included), or inside a SOLID cell,
        the probe is invalid and reports zero velocity and vorticity.
        """
        f, b = self.field, self.boundary
        if not (math.isfinite(x) and math.isfinite(y)):
            return ProbeData(position=(x, y))
        gx, gy = x / f.dx, y / f.dx
        i, j = math.floor(gx), math.floor(gy)

        if not (0 <= i < f.width and 0 <= j < f.height):
            return ProbeData(position=(x, y))
        if b.solid[j, i]:
            return ProbeData(
                position=(x, y),
                pressure=float(f.pressure[j, i]),
                temperature=float(f.temperature[j, i]),
            )

        # u-faces sit at integer x, v-faces at integer y, centres at +0.5
        u = _sample(f.u, gx, gy - 0.5)
        v = _sample(f.v, gx - 0.5, gy)
        return ProbeData(
            position=(x, y),
            u=u,
            v=v,
            magnitude=math.hypot(u, v),
            pressure=_sample(f.pressure, gx - 0.5, gy - 0.5),
            vorticity=_sample(f.vorticity, gx - 0.5, gy - 0.5),
            temperature=_sample(f.temperature, gx - 0.5, gy - 0.5),
            is_valid=True,
        )

    def generate_streamline(self, seed: tuple, steps: int = 100,
                            step_size: float = 0.5) -> list:
        """
        Trace a streamline from `seed` (metres) with forward Euler.

        Args:
            seed      : (x, y) starting point
            steps     : Maximum number of integration steps
            step_size : Pseudo-time per step (s); displacement = velocity · step_size

        Stops early when the path leaves the domain or enters a SOLID cell.
        """
        x, y = seed
        points = [(x, y)]
        for _ in range(steps):
            probe = self.get_probe_data(x, y)
            if not probe.is_valid:
                break
            x += probe.u * step_size
            y += probe.v * step_size
            points.append((x, y))
        return points


def _sample(values: np.ndarray, x: float, y: float) -> float:
    """Bilinear sample of a 2D array at index-space (x, y), clamped to the array."""
    rows, cols = values.shape
    x = min(max(x, 0.0), cols - 1.0)
    y = min(max(y, 0.0), rows - 1.0)
    x0 = min(int(x), cols - 2)
    y0 = min(int(y), rows - 2)
    s = x - x0
    t = y - y0
    return float(
        (1 - s) * ((1 - t) * values[y0, x0] + t * values[y0 + 1, x0]) +
        s * ((1 - t) * values[y0, x0 + 1] + t * values[y0 + 1, x0 + 1])
    )
