"""
forces.py — Vorticity, Confinement and Body Forces
===================================================
Vorticity ω = ∂v/∂x - ∂u/∂y measures local spin. We compute it for the
visualizer and for vorticity confinement.

Vorticity confinement fights numerical dissipation: semi-Lagrangian
advection smears small vortices out. The confinement force pushes fluid
around each vortex core, re-injecting the lost spin:

  N = ∇|ω| / |∇|ω||               (points toward the vortex core)
  F = ε · dx · ω · (N_y, -N_x)

Body forces are applied last in every step:

  F_gravity  = g                               (default (0, -9.81) m/s²)
  F_buoyancy = β · (T - T_ambient)             (hot fluid rises)

Both act on the face velocities whose two neighbouring cells are fluid.
"""

import numpy as np

from .boundary import apply_velocity_boundary
from .grid import Boundary, FluidField


# ── Defaults ──────────────────────────────────────────────────────────────────
GRAVITY = (0.0, -9.81)           # m/s²
BUOYANCY_FACTOR = 1e-4           # β: acceleration per kelvin above ambient
AMBIENT_TEMPERATURE = 298.0      # T_ambient (K)

# Below this |∇|ω|| the direction N is undefined; confinement skips the cell.
CONFINEMENT_GRADIENT_THRESHOLD = 1e-10


def compute_vorticity(field: FluidField, boundary: Boundary) -> np.ndarray:
    """
    Curl of the staggered velocity field at interior cell centres.

    Each derivative uses the 4 staggered samples around the centre:

      ∂u/∂y = (u[y+1,x] + u[y+1,x+1] - u[y-1,x] - u[y-1,x+1]) / (4·dx)
      ∂v/∂x = (v[y,x+1] + v[y+1,x+1] - v[y,x-1] - v[y+1,x-1]) / (4·dx)

    The outer border copies its interior neighbour; SOLID cells are zero.

    Modifies: field.vorticity (in-place)
    Returns: field.vorticity
    """
    H, W = field.height, field.width
    u, v = field.u, field.v
    w = field.vorticity
    scale = 0.25 / field.dx

    dudy = (u[2:H, 1:W - 1] + u[2:H, 2:W] - u[0:H - 2, 1:W - 1] - u[0:H - 2, 2:W]) * scale
    dvdx = (v[1:H - 1, 2:W] + v[2:H, 2:W] - v[1:H - 1, 0:W - 2] - v[2:H, 0:W - 2]) * scale
    w[1:-1, 1:-1] = dvdx - dudy

    w[0, :] = w[1, :]
    w[-1, :] = w[-2, :]
    w[:, 0] = w[:, 1]
    w[:, -1] = w[:, -2]
    w[boundary.solid] = 0.0
    return w


def apply_vorticity_confinement(field: FluidField, boundary: Boundary, epsilon: float = 0.1):
    """
    Add the vorticity confinement force to the velocity field.

    Args:
        field    : FluidField (vorticity is recomputed first)
        boundary : Cell classification
        epsilon  : Confinement strength ε

    The force of each interior fluid cell is added, scaled by dt, to both
    of its u-faces and both of its v-faces.

    Modifies: field.vorticity, field.u, field.v (in-place)
    """
    compute_vorticity(field, boundary)

    H, W = field.height, field.width
    dx, dt = field.dx, field.dt
    w = field.vorticity
    mag = np.abs(w)

    grad_x = (mag[1:-1, 2:] - mag[1:-1, :-2]) * 0.5 / dx
    grad_y = (mag[2:, 1:-1] - mag[:-2, 1:-1]) * 0.5 / dx
    length = np.sqrt(grad_x * grad_x + grad_y * grad_y)

    active = (length >= CONFINEMENT_GRADIENT_THRESHOLD) & ~boundary.solid[1:-1, 1:-1]
    safe_length = np.where(active, length, 1.0)
    nx = np.where(active, grad_x / safe_length, 0.0)
    ny = np.where(active, grad_y / safe_length, 0.0)

    core = w[1:-1, 1:-1]
    force_x = epsilon * dx * ny * core * dt
    force_y = -epsilon * dx * nx * core * dt

    field.u[1:H - 1, 1:W - 1] += force_x
    field.u[1:H - 1, 2:W] += force_x
    field.v[1:H - 1, 1:W - 1] += force_y
    field.v[2:H, 1:W - 1] += force_y

    apply_velocity_boundary(field, boundary)


def apply_external_forces(field: FluidField, boundary: Boundary,
                          gravity: tuple = GRAVITY,
                          buoyancy_factor: float = BUOYANCY_FACTOR,
                          ambient_temperature: float = AMBIENT_TEMPERATURE):
    """
    Apply gravity and temperature buoyancy to the interior faces.

    Buoyancy on a v-face uses the average temperature of the cell below
    and the cell above it. Faces touching a SOLID cell are left alone.

    Modifies: field.u, field.v (in-place)
    """
    gx, gy = gravity
    dt = field.dt
    t = field.temperature

    # v-faces between vertically adjacent cells
    face_temperature = 0.5 * (t[:-1, :] + t[1:, :])
    accel_y = gy + buoyancy_factor * (face_temperature - ambient_temperature)
    open_v = ~boundary.v_blocked[1:-1, :]
    field.v[1:-1, :][open_v] += accel_y[open_v] * dt

    if gx != 0.0:
        open_u = ~boundary.u_blocked[:, 1:-1]
        field.u[:, 1:-1][open_u] += gx * dt

    apply_velocity_boundary(field, boundary)
