"""
grid.py — MAC (Marker-and-Cell) Staggered Grid + Boundary Map
==============================================================
The foundation of the entire simulation.

Layout on a single cell (row index y grows upward, column index x to the right):
  - Pressure, divergence, vorticity, temperature live at CELL CENTERS → shape (H, W)
  - Velocity `u` lives on VERTICAL faces                             → shape (H, W+1)
  - Velocity `v` lives on HORIZONTAL faces                           → shape (H+1, W)

  u[y, x]   is the left face of cell (y, x), u[y, x+1] its right face.
  v[y, x]   is the bottom face of cell (y, x), v[y+1, x] its top face.

Why staggered? It prevents the "checkerboard" pressure instability
that appears on collocated grids.

Alongside the field sits the Boundary: one BoundaryType per cell. The
default channel is walls on top and bottom, an inlet on the left and an
outlet on the right. Obstacles can only ever turn cells SOLID.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum

import numpy as np

from .config import InflowCondition, OutflowCondition
from .errors import ConfigurationError

log = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 298.0   # K, room temperature


class BoundaryType(IntEnum):
    SOLID = 0
    FLUID = 1
    INFLOW = 2
    OUTFLOW = 3
    PERIODIC = 4


# ── Field ─────────────────────────────────────────────────────────────────────


class FluidField:
    """
    W×H MAC grid storing all simulation state.
    This is the single source of truth passed between all solver steps.
    """

    def __init__(self, width: int, height: int, density: float = 1.0,
                 viscosity: float = 0.01, dx: float = 0.1, dt: float = 0.01):
        """
        Args:
            width, height : Grid resolution in cells (both >= 3)
            density       : Fluid density (kg/m³)
            viscosity     : Dynamic viscosity; ν = viscosity / density
            dx            : Cell size (m), same in both directions
            dt            : Timestep (s)
        """
        _check_dimensions(width, height, dx, dt)
        width, height = int(width), int(height)

        self.width = width
        self.height = height
        self.density = float(density)
        self.viscosity = float(viscosity)
        self.dx = float(dx)
        self.dt = float(dt)

        # ── Scalar fields (cell-centered) ──────────────────────────────────
        self.pressure = np.zeros((height, width))
        self.divergence = np.zeros((height, width))
        self.vorticity = np.zeros((height, width))
        self.temperature = np.full((height, width), DEFAULT_TEMPERATURE)

        # ── Velocity fields (face-centered, staggered) ─────────────────────
        self.u = np.zeros((height, width + 1))
        self.v = np.zeros((height + 1, width))

        # Previous-step buffers (diffusion right-hand side, advection source)
        self.u_prev = np.zeros_like(self.u)
        self.v_prev = np.zeros_like(self.v)
        self.temperature_prev = np.zeros_like(self.temperature)

        # Index-space positions of every interior sample, per array.
        # Advection backtraces from these every step.
        self.sample_points = {
            "u": _interior_points(height, width + 1),
            "v": _interior_points(height + 1, width),
            "cell": _interior_points(height, width),
        }

    @property
    def shape(self) -> tuple:
        return (self.height, self.width)

    def velocity_at_center(self) -> tuple:
        """
        Interpolate staggered face velocities to cell centers.

        Returns (uc, vc) each of shape (H, W).
        """
        uc = 0.5 * (self.u[:, :-1] + self.u[:, 1:])
        vc = 0.5 * (self.v[:-1, :] + self.v[1:, :])
        return uc, vc

    def velocity_magnitude(self) -> np.ndarray:
        uc, vc = self.velocity_at_center()
        return np.sqrt(uc * uc + vc * vc)

    def __repr__(self):
        speed = self.velocity_magnitude()
        return (
            f"FluidField({self.width}x{self.height}, dx={self.dx}, dt={self.dt})\n"
            f"  velocity  : max_magnitude={speed.max():.4f}\n"
            f"  pressure  : min={self.pressure.min():.4f}, max={self.pressure.max():.4f}\n"
            f"  divergence: max={np.abs(self.divergence).max():.6f} (target: ~0)"
        )


def _check_dimensions(width, height, dx, dt):
    if width < 3 or height < 3:
        raise ConfigurationError(
            f"Grid must be at least 3x3 cells, got {width}x{height}"
        )
    if not dx > 0:
        raise ConfigurationError(f"dx must be positive, got {dx}")
    if not dt > 0:
        raise ConfigurationError(f"dt must be positive, got {dt}")


def _interior_points(rows: int, cols: int) -> tuple:
    ys, xs = np.meshgrid(
        np.arange(1, rows - 1, dtype=np.float64),
        np.arange(1, cols - 1, dtype=np.float64),
        indexing="ij",
    )
    return xs, ys


def create_field(width: int, height: int, density: float = 1.0,
                 viscosity: float = 0.01, dx: float = 0.1,
                 dt: float = 0.01) -> FluidField:
    """Zero-filled staggered field at room temperature."""
    return FluidField(width, height, density=density, viscosity=viscosity, dx=dx, dt=dt)


def initialize_field(field: FluidField, velocity: tuple = (0.0, 0.0),
                     temperature: float = DEFAULT_TEMPERATURE):
    """
    Fill the field with a uniform starting state.

    Args:
        field       : FluidField to overwrite in-place
        velocity    : (u, v) assigned to every face, including the prev buffers
        temperature : Assigned to every cell

    Pressure is zeroed; divergence and vorticity are left to the solver.
    """
    u0, v0 = velocity
    field.u.fill(u0)
    field.u_prev.fill(u0)
    field.v.fill(v0)
    field.v_prev.fill(v0)
    field.temperature.fill(temperature)
    field.temperature_prev.fill(temperature)
    field.pressure.fill(0.0)


# ── Boundary map ──────────────────────────────────────────────────────────────


class Boundary:
    """
    Per-cell boundary classification plus the inflow/outflow parameters.

    The masks the solver needs every sweep (solid cells, faces touching a
    solid, outflow cells, periodic rows/columns, adiabatic neighbour map)
    are derived from `types` once and cached. Anything that edits `types`
    must go through `mark()` or call `refresh()` afterwards.
    """

    def __init__(self, types: np.ndarray, inflow: InflowCondition = None,
                 outflow: OutflowCondition = None):
        self.types = np.asarray(types, dtype=np.int8)
        self.inflow = inflow if inflow is not None else InflowCondition()
        self.outflow = outflow if outflow is not None else OutflowCondition()
        self.refresh()

    @property
    def height(self) -> int:
        return self.types.shape[0]

    @property
    def width(self) -> int:
        return self.types.shape[1]

    def mark(self, where, kind: BoundaryType):
        """Set the cells selected by `where` (mask or index) to `kind`."""
        self.types[where] = kind
        self.refresh()

    def refresh(self):
        """Recompute every cached mask from `types`."""
        types = self.types
        height, width = types.shape

        self.solid = types == BoundaryType.SOLID
        self.inflow_mask = types == BoundaryType.INFLOW
        self.outflow_mask = types == BoundaryType.OUTFLOW

        # Faces with a SOLID cell on either side carry zero velocity.
        self.u_blocked = np.zeros((height, width + 1), dtype=np.bool_)
        self.u_blocked[:, :-1] |= self.solid
        self.u_blocked[:, 1:] |= self.solid
        self.v_blocked = np.zeros((height + 1, width), dtype=np.bool_)
        self.v_blocked[:-1, :] |= self.solid
        self.v_blocked[1:, :] |= self.solid

        # Outflow copies from whichever side has more interior cells.
        out_y, out_x = np.nonzero(types == BoundaryType.OUTFLOW)
        self.outflow_cells = [
            (int(y), int(x), bool(x >= width - 1 - x)) for y, x in zip(out_y, out_x)
        ]

        periodic = types == BoundaryType.PERIODIC
        self.periodic_rows = np.nonzero(periodic[:, 0] & periodic[:, -1])[0]
        self.periodic_cols = np.nonzero(periodic[0, :] & periodic[-1, :])[0]

        self._build_adiabatic_map()
        self._build_pressure_map()

    def _build_pressure_map(self):
        # SOLID pressure is the mean of its FLUID 4-neighbours; cells with
        # none fall back to INFLOW/OUTFLOW/PERIODIC neighbours. Flattened as
        # CSR: neighbours of cell i are pressure_neighbours[start[i]:start[i+1]].
        height, width = self.types.shape
        fluid = self.types == BoundaryType.FLUID
        cells, neighbours, start = [], [], [0]
        for y, x in zip(*np.nonzero(self.solid)):
            around = [(ny, nx) for ny, nx in ((y, x - 1), (y, x + 1), (y - 1, x), (y + 1, x))
                      if 0 <= ny < height and 0 <= nx < width and not self.solid[ny, nx]]
            preferred = [(ny, nx) for ny, nx in around if fluid[ny, nx]]
            chosen = preferred or around
            if not chosen:
                continue
            cells.append((y, x))
            neighbours.extend(chosen)
            start.append(len(neighbours))

        self.pressure_cells = _index_pair(cells)
        self.pressure_neighbours = _index_pair(neighbours)
        self.pressure_start = np.array(start, dtype=np.intp)

    def _build_adiabatic_map(self):
        # First non-solid neighbour in the order left, right, down, up.
        height, width = self.types.shape
        targets, sources = [], []
        for y, x in zip(*np.nonzero(self.solid)):
            for ny, nx in ((y, x - 1), (y, x + 1), (y - 1, x), (y + 1, x)):
                if 0 <= ny < height and 0 <= nx < width and not self.solid[ny, nx]:
                    targets.append((y, x))
                    sources.append((ny, nx))
                    break
        if targets:
            self.adiabatic_targets = tuple(np.array(targets).T)
            self.adiabatic_sources = tuple(np.array(sources).T)
        else:
            empty = np.zeros(0, dtype=np.intp)
            self.adiabatic_targets = (empty, empty)
            self.adiabatic_sources = (empty, empty)

    @property
    def has_periodic_x(self) -> bool:
        return self.periodic_rows.size > 0

    @property
    def has_periodic_y(self) -> bool:
        return self.periodic_cols.size > 0

    def copy(self) -> "Boundary":
        return Boundary(self.types.copy(), InflowCondition(self.inflow.velocity, self.inflow.temperature),
                        OutflowCondition(self.outflow.pressure))


def _index_pair(points: list) -> tuple:
    """(ys, xs) intp arrays from a list of (y, x) cells."""
    if not points:
        empty = np.zeros(0, dtype=np.intp)
        return empty, empty.copy()
    ys, xs = np.array(points, dtype=np.intp).T
    return np.ascontiguousarray(ys), np.ascontiguousarray(xs)


def create_default_boundary(width: int, height: int, inflow: InflowCondition = None,
                            outflow: OutflowCondition = None) -> Boundary:
    """
    Default channel: SOLID top and bottom walls, INFLOW left, OUTFLOW right.

    The columns are written after the rows, so the four corner cells end up
    INFLOW (left) and OUTFLOW (right).
    """
    _check_dimensions(width, height, 1.0, 1.0)
    types = np.full((int(height), int(width)), BoundaryType.FLUID, dtype=np.int8)
    types[0, :] = BoundaryType.SOLID
    types[-1, :] = BoundaryType.SOLID
    types[:, 0] = BoundaryType.INFLOW
    types[:, -1] = BoundaryType.OUTFLOW
    return Boundary(types, inflow, outflow)


# ── Obstacles ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CircleObstacle:
    cx: float
    cy: float
    radius: float


@dataclass(frozen=True)
class RectangleObstacle:
    x1: int
    y1: int
    x2: int
    y2: int


def add_circular_obstacle(boundary: Boundary, cx: float, cy: float, radius: float):
    """
    Turn every cell within `radius` of (cx, cy) SOLID.

    Coordinates are in cell units. Existing classification elsewhere is
    never touched, so repeated or overlapping obstacles simply union.
    """
    if radius < 0:
        raise ConfigurationError(f"Obstacle radius must be non-negative, got {radius}")
    ys, xs = np.ogrid[0:boundary.height, 0:boundary.width]
    inside = (xs - cx) ** 2 + (ys - cy) ** 2 <= radius * radius
    boundary.mark(inside, BoundaryType.SOLID)
    log.debug(f"Circular obstacle at ({cx}, {cy}) r={radius}: {int(inside.sum())} cells")


def add_rectangular_obstacle(boundary: Boundary, x1: int, y1: int, x2: int, y2: int):
    """Turn the inclusive cell rectangle [x1..x2] × [y1..y2] SOLID, clipped to the grid."""
    x_lo, x_hi = sorted((int(x1), int(x2)))
    y_lo, y_hi = sorted((int(y1), int(y2)))
    x_lo, y_lo = max(0, x_lo), max(0, y_lo)
    x_hi, y_hi = min(boundary.width - 1, x_hi), min(boundary.height - 1, y_hi)
    if x_lo > x_hi or y_lo > y_hi:
        return
    boundary.mark((slice(y_lo, y_hi + 1), slice(x_lo, x_hi + 1)), BoundaryType.SOLID)
    log.debug(f"Rectangular obstacle [{x_lo}..{x_hi}]x[{y_lo}..{y_hi}]")


def apply_obstacle(boundary: Boundary, obstacle):
    if isinstance(obstacle, CircleObstacle):
        add_circular_obstacle(boundary, obstacle.cx, obstacle.cy, obstacle.radius)
    elif isinstance(obstacle, RectangleObstacle):
        add_rectangular_obstacle(boundary, obstacle.x1, obstacle.y1, obstacle.x2, obstacle.y2)
    else:
        raise TypeError(f"Unknown obstacle type: {type(obstacle).__name__}")
