"""
advect.py — Semi-Lagrangian Advection
======================================
This is what makes the fluid look like it's *actually flowing*.

The algorithm (per interior sample):
  1. Look at the sample's position in index space.
  2. Trace BACKWARD along the velocity field by one timestep:
       pos_back = pos - (dt / dx) * velocity
     → "Where did the stuff at this sample come FROM?"
  3. Clamp pos_back into [0.5, dim - 1.5] so the 2×2 interpolation
     stencil never leaves the array.
  4. Bilinearly sample the PREVIOUS buffer there.

Staggering means each array needs the other component at its own
location:
  - a u-face needs v averaged from the 4 surrounding v-faces
  - a v-face needs u averaged from the 4 surrounding u-faces
  - a cell centre averages its two u-faces and two v-faces

All three quantities are backtraced through the same velocity snapshot
taken at the start of the step.

Key reference: Jos Stam, "Stable Fluids" (SIGGRAPH 1999)
"""

import numpy as np

from .boundary import apply_temperature_boundary, apply_velocity_boundary
from .grid import Boundary, FluidField


def _bilinear_interpolate(field: np.ndarray, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """
    Bilinear interpolation of a 2D array at fractional index positions.

    Args:
        field : 2D array indexed [row=y, col=x]
        x, y  : Query positions in index space, already clamped so that
                floor(pos) + 1 is still inside the array

    Returns:
        Interpolated values, same shape as x/y
    """
    x0 = np.floor(x).astype(np.intp)
    y0 = np.floor(y).astype(np.intp)
    x1 = x0 + 1
    y1 = y0 + 1

    s1 = x - x0
    s0 = 1.0 - s1
    t1 = y - y0
    t0 = 1.0 - t1

    return (
        s0 * (t0 * field[y0, x0] + t1 * field[y1, x0]) +
        s1 * (t0 * field[y0, x1] + t1 * field[y1, x1])
    )


def _backtrace(source: np.ndarray, points: tuple, vel_x: np.ndarray,
               vel_y: np.ndarray, dt_over_dx: float) -> np.ndarray:
    """Sample `source` at the upstream position of every interior point."""
    xs, ys = points
    rows, cols = source.shape
    # NaN departure points would index out of range; the NaN values in the
    # field still propagate and trip the simulator's health check
    x_back = np.clip(np.nan_to_num(xs - dt_over_dx * vel_x, nan=0.5), 0.5, cols - 1.5)
    y_back = np.clip(np.nan_to_num(ys - dt_over_dx * vel_y, nan=0.5), 0.5, rows - 1.5)
    return _bilinear_interpolate(source, x_back, y_back)


def advect_velocity(field: FluidField, boundary: Boundary):
    """
    Advect the velocity field through itself (self-advection).

    Expects field.u_prev / field.v_prev to hold the velocity snapshot.

    Modifies: field.u, field.v (in-place)
    """
    H, W = field.height, field.width
    u0, v0 = field.u_prev, field.v_prev
    c = field.dt / field.dx

    # ── Advect u (vertical faces, shape H × W+1) ─────────────────────────
    # interior: rows 1..H-2, cols 1..W-1
    v_at_u = 0.25 * (v0[1:H - 1, 0:W - 1] + v0[1:H - 1, 1:W] +
                     v0[2:H, 0:W - 1] + v0[2:H, 1:W])
    new_u = _backtrace(u0, field.sample_points["u"], u0[1:-1, 1:-1], v_at_u, c)
    new_u[boundary.u_blocked[1:-1, 1:-1]] = 0.0
    field.u[1:-1, 1:-1] = new_u
    apply_velocity_boundary(field, boundary)

    # ── Advect v (horizontal faces, shape H+1 × W) ───────────────────────
    # interior: rows 1..H-1, cols 1..W-2
    u_at_v = 0.25 * (u0[0:H - 1, 1:W - 1] + u0[1:H, 1:W - 1] +
                     u0[0:H - 1, 2:W] + u0[1:H, 2:W])
    new_v = _backtrace(v0, field.sample_points["v"], u_at_v, v0[1:-1, 1:-1], c)
    new_v[boundary.v_blocked[1:-1, 1:-1]] = 0.0
    field.v[1:-1, 1:-1] = new_v
    apply_velocity_boundary(field, boundary)


def advect_temperature(field: FluidField, boundary: Boundary):
    """
    Advect temperature through the snapshot velocity.

    SOLID cells keep their value; the adiabatic pass refreshes them.

    Modifies: field.temperature (in-place)
    """
    H, W = field.height, field.width
    u0, v0 = field.u_prev, field.v_prev
    c = field.dt / field.dx

    uc = 0.5 * (u0[1:H - 1, 1:W - 1] + u0[1:H - 1, 2:W])
    vc = 0.5 * (v0[1:H - 1, 1:W - 1] + v0[2:H, 1:W - 1])
    new_t = _backtrace(field.temperature_prev, field.sample_points["cell"], uc, vc, c)

    interior = field.temperature[1:-1, 1:-1]
    open_ = ~boundary.solid[1:-1, 1:-1]
    interior[open_] = new_t[open_]
    apply_temperature_boundary(field, boundary)


def advect(field: FluidField, boundary: Boundary):
    """
    Snapshot the current field, then advect u, v and temperature.

    Modifies: field.u, field.v, field.temperature and their prev buffers
    """
    np.copyto(field.u_prev, field.u)
    np.copyto(field.v_prev, field.v)
    np.copyto(field.temperature_prev, field.temperature)

    advect_velocity(field, boundary)
    advect_temperature(field, boundary)
