"""
diffuse.py — Implicit Viscous Diffusion via Gauss-Seidel
=========================================================
Diffusion makes momentum (and heat) spread out over time.
  - High viscosity  → thick fluid (honey), shear is smoothed out fast
  - Low viscosity   → thin fluid (air, water)

The math: we solve the implicit heat equation per component

  (I - α·∇²) x_new = x_old,        α = dt · ν / dx²

Why implicit? Explicit diffusion is only stable for tiny dt. The implicit
form is unconditionally stable.

We relax it with Gauss-Seidel: each sample is updated IN PLACE, so the
left and lower neighbours it reads were already updated earlier in the
same sweep. That is a sequential dependency numpy slicing cannot express
(a sliced update is Jacobi), so the sweep is a small numba kernel.

Temperature diffuses with α·0.1: heat spreads ten times slower than
momentum in this model.

Boundary conditions are re-applied after EVERY sweep, not just at the end,
because the next sweep reads them.
"""

import numpy as np
from numba import njit

from .boundary import apply_temperature_boundary, apply_velocity_boundary
from .grid import Boundary, FluidField

TEMPERATURE_DIFFUSION_RATIO = 0.1


@njit
def _relax_faces(current, previous, blocked, alpha):
    """
    One Gauss-Seidel sweep over the interior of a face-velocity array.

    Faces touching a solid cell are pinned to zero as the sweep passes them,
    so their neighbours already see no-slip within the same sweep.
    """
    rows, cols = current.shape
    denom = 1.0 + 4.0 * alpha
    for y in range(1, rows - 1):
        for x in range(1, cols - 1):
            if blocked[y, x]:
                current[y, x] = 0.0
                continue
            current[y, x] = (previous[y, x] + alpha * (
                current[y, x - 1] + current[y, x + 1] +
                current[y - 1, x] + current[y + 1, x]
            )) / denom


@njit
def _relax_cells(current, previous, solid, alpha):
    """One Gauss-Seidel sweep over interior cell-centred samples, skipping solids."""
    rows, cols = current.shape
    denom = 1.0 + 4.0 * alpha
    for y in range(1, rows - 1):
        for x in range(1, cols - 1):
            if solid[y, x]:
                continue
            current[y, x] = (previous[y, x] + alpha * (
                current[y, x - 1] + current[y, x + 1] +
                current[y - 1, x] + current[y + 1, x]
            )) / denom


def diffuse_velocity(field: FluidField, boundary: Boundary, iterations: int = 20):
    """
    Apply viscous diffusion to both velocity components.

    Each component lives on its own staggered array and is relaxed
    independently against its own previous-step copy.

    Modifies: field.u, field.v, field.u_prev, field.v_prev (in-place)
    """
    alpha = field.dt * (field.viscosity / field.density) / (field.dx * field.dx)

    np.copyto(field.u_prev, field.u)
    for _ in range(iterations):
        _relax_faces(field.u, field.u_prev, boundary.u_blocked, alpha)
        apply_velocity_boundary(field, boundary)

    np.copyto(field.v_prev, field.v)
    for _ in range(iterations):
        _relax_faces(field.v, field.v_prev, boundary.v_blocked, alpha)
        apply_velocity_boundary(field, boundary)


def diffuse_temperature(field: FluidField, boundary: Boundary, iterations: int = 20):
    """
    Apply thermal diffusion to the temperature field.

    Modifies: field.temperature, field.temperature_prev (in-place)
    """
    alpha = field.dt * (field.viscosity / field.density) / (field.dx * field.dx)
    alpha *= TEMPERATURE_DIFFUSION_RATIO

    np.copyto(field.temperature_prev, field.temperature)
    for _ in range(iterations):
        _relax_cells(field.temperature, field.temperature_prev, boundary.solid, alpha)
        apply_temperature_boundary(field, boundary)


def diffuse(field: FluidField, boundary: Boundary, iterations: int = 20):
    """Diffuse u, v and temperature, in that order."""
    diffuse_velocity(field, boundary, iterations)
    diffuse_temperature(field, boundary, iterations)
