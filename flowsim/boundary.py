"""
boundary.py — Boundary Condition Policies
==========================================
Every operator (diffusion sweep, advection, projection, forces) leaves the
field slightly wrong at the edges of the flow. This module puts it back.

Policies per cell type:
  - INFLOW   : overwrite velocity + temperature with the configured profile
  - OUTFLOW  : zero-gradient outer faces from the interior; pressure fixed
  - SOLID    : zero velocity on all four faces (no-slip / no-penetration);
               pressure = average of the FLUID neighbours (else any non-solid)
  - PERIODIC : rows (columns) whose both ends are PERIODIC wrap around
  - Temperature in SOLID cells is adiabatic: copy the first non-solid
    neighbour (left, right, down, up)

The full pass is `apply_boundary_conditions`. The solver loops only need one
quantity at a time, so the per-quantity passes are exported as well.
"""

import numpy as np
from numba import njit

from .grid import Boundary, FluidField


# ── Full pass ─────────────────────────────────────────────────────────────────


def apply_boundary_conditions(field: FluidField, boundary: Boundary):
    """
    Apply every boundary policy, in order: inflow, outflow, solid,
    periodic, adiabatic temperature.

    Modifies: field.u, field.v, field.pressure, field.temperature (in-place)
    """
    _inflow_velocity(field, boundary)
    _inflow_temperature(field, boundary)

    _outflow_velocity(field, boundary)
    _outflow_temperature(field, boundary)
    field.pressure[boundary.outflow_mask] = boundary.outflow.pressure

    _no_slip(field, boundary)
    _solid_pressure(field, boundary)

    _periodic_velocity(field, boundary)
    _periodic_scalar(field.pressure, boundary)
    _periodic_scalar(field.temperature, boundary)

    _adiabatic_temperature(field, boundary)


# ── Per-quantity passes ───────────────────────────────────────────────────────


def apply_velocity_boundary(field: FluidField, boundary: Boundary):
    """Inflow profile, outflow zero-gradient, no-slip and periodic wrap for u and v."""
    _inflow_velocity(field, boundary)
    _outflow_velocity(field, boundary)
    _no_slip(field, boundary)
    _periodic_velocity(field, boundary)


def apply_temperature_boundary(field: FluidField, boundary: Boundary):
    """Inflow temperature, outflow zero-gradient, periodic wrap, adiabatic solids."""
    _inflow_temperature(field, boundary)
    _outflow_temperature(field, boundary)
    _periodic_scalar(field.temperature, boundary)
    _adiabatic_temperature(field, boundary)


def apply_pressure_boundary(field: FluidField, boundary: Boundary):
    """
    Pressure conditions re-applied after every Poisson iteration.

      - Outer border: zero-gradient (Neumann), rows first then columns
      - Periodic rows/columns: wrapped instead
      - OUTFLOW: fixed reference pressure (Dirichlet)
      - INFLOW: left as the border copy produced it
      - SOLID: average of the FLUID 4-neighbours, else any non-solid ones
    """
    p = field.pressure
    p[0, :] = p[1, :]
    p[-1, :] = p[-2, :]
    p[:, 0] = p[:, 1]
    p[:, -1] = p[:, -2]

    _periodic_scalar(p, boundary)
    p[boundary.outflow_mask] = boundary.outflow.pressure
    _solid_pressure(field, boundary)


def seed_solid_pressure(field: FluidField, boundary: Boundary):
    """Fill SOLID cells with their fluid neighbours' mean pressure (Poisson warm start)."""
    _solid_pressure(field, boundary)


# ── Policies ──────────────────────────────────────────────────────────────────


def _inflow_velocity(field: FluidField, boundary: Boundary):
    mask = boundary.inflow_mask
    if not mask.any():
        return
    u_in, v_in = boundary.inflow.velocity
    # Both faces of each inflow cell
    field.u[:, :-1][mask] = u_in
    field.u[:, 1:][mask] = u_in
    field.v[:-1, :][mask] = v_in
    field.v[1:, :][mask] = v_in


def _inflow_temperature(field: FluidField, boundary: Boundary):
    field.temperature[boundary.inflow_mask] = boundary.inflow.temperature


def _outflow_velocity(field: FluidField, boundary: Boundary):
    u, v = field.u, field.v
    width = field.width
    # The face shared with the interior keeps its projected value; only the
    # outer face and the v faces are extrapolated.
    for y, x, from_left in boundary.outflow_cells:
        if from_left and x > 0:
            u[y, x + 1] = u[y, x]
            v[y, x] = v[y, x - 1]
            v[y + 1, x] = v[y + 1, x - 1]
        elif x < width - 1:
            u[y, x] = u[y, x + 1]
            v[y, x] = v[y, x + 1]
            v[y + 1, x] = v[y + 1, x + 1]


def _outflow_temperature(field: FluidField, boundary: Boundary):
    t = field.temperature
    width = field.width
    for y, x, from_left in boundary.outflow_cells:
        if from_left and x > 0:
            t[y, x] = t[y, x - 1]
        elif x < width - 1:
            t[y, x] = t[y, x + 1]


def _no_slip(field: FluidField, boundary: Boundary):
    field.u[boundary.u_blocked] = 0.0
    field.v[boundary.v_blocked] = 0.0


@njit
def _average_neighbours(p, cells_y, cells_x, start, nbr_y, nbr_x):
    for i in range(cells_y.shape[0]):
        total = 0.0
        for k in range(start[i], start[i + 1]):
            total += p[nbr_y[k], nbr_x[k]]
        p[cells_y[i], cells_x[i]] = total / (start[i + 1] - start[i])


def _solid_pressure(field: FluidField, boundary: Boundary):
    cells_y, cells_x = boundary.pressure_cells
    if not cells_y.size:
        return
    nbr_y, nbr_x = boundary.pressure_neighbours
    _average_neighbours(field.pressure, cells_y, cells_x,
                        boundary.pressure_start, nbr_y, nbr_x)


def _periodic_velocity(field: FluidField, boundary: Boundary):
    rows = boundary.periodic_rows
    if rows.size:
        field.u[rows, 0] = field.u[rows, -1]
        field.v[rows, 0] = field.v[rows, -1]
    cols = boundary.periodic_cols
    if cols.size:
        field.u[0, cols] = field.u[-1, cols]
        field.v[0, cols] = field.v[-1, cols]


def _periodic_scalar(values: np.ndarray, boundary: Boundary):
    rows = boundary.periodic_rows
    if rows.size:
        values[rows, 0] = values[rows, -1]
    cols = boundary.periodic_cols
    if cols.size:
        values[0, cols] = values[-1, cols]


def _adiabatic_temperature(field: FluidField, boundary: Boundary):
    field.temperature[boundary.adiabatic_targets] = field.temperature[boundary.adiabatic_sources]
