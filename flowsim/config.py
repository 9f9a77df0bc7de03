"""
config.py — Simulation Configuration
=====================================
Every knob the orchestrator understands lives in one dataclass.

Grid         : width, height, dx
Physics      : density, viscosity, time_step, gravity, buoyancy
Solver       : diffusion_iterations, pressure_iterations, vorticity confinement
Boundaries   : inflow (velocity + temperature), outflow (pressure)
Run control  : max_simulation_time, output_interval, divergence_limit

The presets at the bottom reproduce the classic experiments
(Kármán vortex street, pipe flow, airfoil in air).
"""

from dataclasses import dataclass, field, fields, asdict
from typing import Optional

from .errors import ConfigurationError


# ── Boundary condition parameters ─────────────────────────────────────────────


@dataclass
class InflowCondition:
    """Velocity (m/s) and temperature (K) imposed on every INFLOW cell."""

    velocity: tuple = (1.0, 0.0)
    temperature: float = 298.0

    def __post_init__(self):
        self.velocity = (float(self.velocity[0]), float(self.velocity[1]))
        self.temperature = float(self.temperature)


@dataclass
class OutflowCondition:
    """Reference pressure (Pa) held fixed on every OUTFLOW cell."""

    pressure: float = 0.0

    def __post_init__(self):
        self.pressure = float(self.pressure)


def _coerce_inflow(value) -> InflowCondition:
    if isinstance(value, InflowCondition):
        return InflowCondition(value.velocity, value.temperature)
    if isinstance(value, dict):
        return InflowCondition(**value)
    # bare (u, v) pair
    return InflowCondition(velocity=tuple(value))


def _coerce_outflow(value) -> OutflowCondition:
    if isinstance(value, OutflowCondition):
        return OutflowCondition(value.pressure)
    if isinstance(value, dict):
        return OutflowCondition(**value)
    return OutflowCondition(pressure=value)


# ── Main configuration ────────────────────────────────────────────────────────


@dataclass
class SimulationConfig:
    """Full configuration for a FluidSimulator."""

    # Grid
    width: int = 100
    height: int = 50
    dx: float = 0.02

    # Physics
    density: float = 1.0
    viscosity: float = 0.001
    time_step: float = 0.001
    gravity: tuple = (0.0, -9.81)
    buoyancy_factor: float = 1e-4
    ambient_temperature: float = 298.0

    # Solver
    diffusion_iterations: int = 20
    pressure_iterations: int = 40
    enable_vorticity_confinement: bool = True
    vorticity_strength: float = 0.1

    # Boundaries
    inflow: InflowCondition = field(default_factory=InflowCondition)
    outflow: OutflowCondition = field(default_factory=OutflowCondition)

    # Run control
    max_simulation_time: float = 10.0
    output_interval: float = 0.1
    divergence_limit: Optional[float] = None

    def __post_init__(self):
        self.inflow = _coerce_inflow(self.inflow)
        self.outflow = _coerce_outflow(self.outflow)
        self.gravity = (float(self.gravity[0]), float(self.gravity[1]))

    def validate(self) -> "SimulationConfig":
        """
        Reject configurations the solver cannot run with.

        Grids narrower than 3 cells have no interior, and zero spacing or
        timestep turn every stencil into a division by zero.

        Returns:
            self, so calls can be chained.

        Raises:
            ConfigurationError: naming the first offending option.
        """
        if int(self.width) != self.width or self.width < 3:
            raise ConfigurationError(f"width must be an integer >= 3, got {self.width}")
        if int(self.height) != self.height or self.height < 3:
            raise ConfigurationError(f"height must be an integer >= 3, got {self.height}")
        if not self.dx > 0:
            raise ConfigurationError(f"dx must be positive, got {self.dx}")
        if not self.time_step > 0:
            raise ConfigurationError(f"time_step must be positive, got {self.time_step}")
        if not self.density > 0:
            raise ConfigurationError(f"density must be positive, got {self.density}")
        if not self.viscosity >= 0:
            raise ConfigurationError(f"viscosity must be non-negative, got {self.viscosity}")
        if self.diffusion_iterations < 0:
            raise ConfigurationError(
                f"diffusion_iterations must be non-negative, got {self.diffusion_iterations}"
            )
        if self.pressure_iterations < 0:
            raise ConfigurationError(
                f"pressure_iterations must be non-negative, got {self.pressure_iterations}"
            )
        if not self.output_interval > 0:
            raise ConfigurationError(
                f"output_interval must be positive, got {self.output_interval}"
            )
        if self.divergence_limit is not None and not self.divergence_limit > 0:
            raise ConfigurationError(
                f"divergence_limit must be positive when set, got {self.divergence_limit}"
            )
        return self

    def replace(self, **changes) -> "SimulationConfig":
        """Return a validated copy with `changes` applied."""
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration option(s): {sorted(unknown)}")
        merged = {name: getattr(self, name) for name in known}
        merged.update(changes)
        return SimulationConfig(**merged).validate()

    def to_dict(self) -> dict:
        return asdict(self)


# ── Presets ───────────────────────────────────────────────────────────────────


def default_config() -> SimulationConfig:
    """Water-like fluid, 100×50 channel, 2 cm cells, 1 m/s inflow."""
    return SimulationConfig()


def karman_vortex_config() -> SimulationConfig:
    """Wider channel and higher viscosity for a stable vortex street."""
    return SimulationConfig(
        width=120,
        height=60,
        inflow=InflowCondition(velocity=(1.2, 0.0)),
        viscosity=0.01,
        enable_vorticity_confinement=True,
        vorticity_strength=0.2,
    )


def pipe_flow_config() -> SimulationConfig:
    """Long narrow pipe, no confinement needed."""
    return SimulationConfig(
        width=80,
        height=20,
        inflow=InflowCondition(velocity=(0.8, 0.0)),
        viscosity=0.001,
        enable_vorticity_confinement=False,
    )


def airfoil_config() -> SimulationConfig:
    """Air at 20 m/s around a body."""
    return SimulationConfig(
        width=150,
        height=80,
        density=1.225,
        viscosity=0.0000181,
        inflow=InflowCondition(velocity=(20.0, 0.0)),
        enable_vorticity_confinement=True,
        vorticity_strength=0.15,
    )


PRESETS = {
    "default": default_config,
    "karman": karman_vortex_config,
    "pipe": pipe_flow_config,
    "airfoil": airfoil_config,
}
