"""
solver.py — Pressure Projection
================================
The pressure projection step enforces INCOMPRESSIBILITY:
  div(v) = 0 everywhere in the fluid

After diffusion or advection, the velocity field is generally NOT
divergence-free (fluid "piles up" in some cells). We fix this by:
  1. Computing divergence of the current velocity field
  2. Solving the Poisson equation for pressure: ∇²p = (ρ/dt)·div(v)
  3. Subtracting the pressure gradient from velocity: v -= (dt/ρ)·∇p

This is called "Helmholtz-Hodge decomposition" — any vector field
can be decomposed into a divergence-free part + a curl-free part (gradient).
We want the divergence-free part.

The Poisson solve is Gauss-Seidel (in-place, sequential), so its sweep is a
numba kernel. Everything else here is plain numpy slicing.

Two entry points:
  - project()                 : fixed iteration count (the per-step default)
  - adaptive_pressure_solve() : iterate until the residual drops below a
                                tolerance, checking only every N iterations
"""

import logging
import time

import numpy as np
from numba import njit

from .boundary import apply_pressure_boundary, apply_velocity_boundary, seed_solid_pressure
from .grid import Boundary, FluidField

log = logging.getLogger(__name__)

# Convergence is measured every this many Gauss-Seidel iterations in
# adaptive_pressure_solve(); measuring is about as costly as a sweep.
CONVERGENCE_CHECK_INTERVAL = 10


@njit
def _pressure_sweep(p, div, solid, source_scale):
    """
    One Gauss-Seidel sweep of the five-point Poisson stencil:

      p[y,x] = (pE + pW + pN + pS - dx²·(ρ/dt)·div[y,x]) / 4

    over interior non-solid cells.
    """
    rows, cols = p.shape
    for y in range(1, rows - 1):
        for x in range(1, cols - 1):
            if solid[y, x]:
                continue
            p[y, x] = (
                p[y, x + 1] + p[y, x - 1] +
                p[y + 1, x] + p[y - 1, x] -
                source_scale * div[y, x]
            ) * 0.25


def compute_divergence(field: FluidField, boundary: Boundary) -> np.ndarray:
    """
    div = du/dx + dv/dy per cell, from the staggered face differences.

    Zero inside SOLID cells; the outer border copies its interior neighbour.

    Modifies: field.divergence (in-place)
    Returns: field.divergence
    """
    div = field.divergence
    dx = field.dx
    div[:] = (field.u[:, 1:] - field.u[:, :-1]) / dx + (field.v[1:, :] - field.v[:-1, :]) / dx
    div[boundary.solid] = 0.0

    div[0, :] = div[1, :]
    div[-1, :] = div[-2, :]
    div[:, 0] = div[:, 1]
    div[:, -1] = div[:, -2]
    return div


def check_divergence_convergence(field: FluidField, boundary: Boundary) -> float:
    """
    RMS of the stored divergence over non-solid cells.

    This is the solver's health metric: ~0 for a well-projected field,
    growing or NaN when the simulation is going unstable.
    """
    values = field.divergence[~boundary.solid]
    if values.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(values * values)))


def initialize_pressure(field: FluidField, boundary: Boundary):
    """
    Seed SOLID cells with the mean pressure of their fluid neighbours.

    Fluid cells keep last step's pressure as the initial guess.
    """
    seed_solid_pressure(field, boundary)


def solve_pressure_poisson(field: FluidField, boundary: Boundary, iterations: int = 40):
    """
    Gauss-Seidel relaxation of the pressure Poisson equation.

    Pressure boundary conditions are re-applied after every iteration.

    Modifies: field.pressure (in-place)
    """
    source_scale = field.dx * field.dx * field.density / field.dt
    for _ in range(iterations):
        _pressure_sweep(field.pressure, field.divergence, boundary.solid, source_scale)
        apply_pressure_boundary(field, boundary)


def correct_velocity(field: FluidField, boundary: Boundary):
    """
    Subtract the pressure gradient from the interior faces.

      u -= (dt / (ρ·dx)) · (p[x] - p[x-1])
      v -= (dt / (ρ·dx)) · (p[y] - p[y-1])

    Faces touching a SOLID cell are set to zero instead: no-slip wins
    over the pressure gradient.

    Modifies: field.u, field.v (in-place)
    """
    factor = field.dt / (field.density * field.dx)
    p = field.pressure

    field.u[:, 1:-1] -= factor * (p[:, 1:] - p[:, :-1])
    field.v[1:-1, :] -= factor * (p[1:, :] - p[:-1, :])
    field.u[boundary.u_blocked] = 0.0
    field.v[boundary.v_blocked] = 0.0

    apply_velocity_boundary(field, boundary)


def project(field: FluidField, boundary: Boundary, iterations: int = 40) -> dict:
    """
    Pressure projection: make the velocity field divergence-free.

    This is the most expensive step in the simulation.

    Args:
        field      : The FluidField to modify in-place
        boundary   : Cell classification and boundary parameters
        iterations : Gauss-Seidel iterations (more = more accurate, slower)

    Returns:
        dict with timing and divergence metrics (for benchmarking)

    On return field.divergence holds the divergence of the corrected field,
    so check_divergence_convergence() reports the post-projection error.
    """
    t_start = time.perf_counter()

    compute_divergence(field, boundary)
    divergence_before = check_divergence_convergence(field, boundary)

    initialize_pressure(field, boundary)
    solve_pressure_poisson(field, boundary, iterations)
    correct_velocity(field, boundary)

    compute_divergence(field, boundary)
    divergence_after = check_divergence_convergence(field, boundary)

    return {
        "time_ms": (time.perf_counter() - t_start) * 1000,
        "iterations": iterations,
        "divergence_before": divergence_before,
        "divergence_after": divergence_after,
    }


def _poisson_residual(field: FluidField, boundary: Boundary) -> float:
    """
    RMS divergence the interior fluid cells would have if the velocity were
    corrected with the current pressure:

      div - (dt / (ρ·dx²)) · (pE + pW + pN + pS - 4p)
    """
    p = field.pressure
    laplacian = (p[1:-1, 2:] + p[1:-1, :-2] + p[2:, 1:-1] + p[:-2, 1:-1] - 4.0 * p[1:-1, 1:-1])
    scale = field.dt / (field.density * field.dx * field.dx)
    residual = field.divergence[1:-1, 1:-1] - scale * laplacian

    values = residual[~boundary.solid[1:-1, 1:-1]]
    if values.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(values * values)))


def adaptive_pressure_solve(field: FluidField, boundary: Boundary,
                            max_iterations: int = 100, tolerance: float = 1e-6,
                            check_interval: int = CONVERGENCE_CHECK_INTERVAL) -> dict:
    """
    Projection that iterates until converged instead of a fixed count.

    Args:
        max_iterations : Hard cap on Gauss-Seidel iterations
        tolerance      : Stop once the Poisson residual (as post-correction
                         RMS divergence) is at or below this
        check_interval : Measure the residual only on iterations where
                         iteration % check_interval == 0

    Returns:
        dict with iterations run, last measured residual, whether it
        converged, the divergence after correction and the elapsed time
    """
    if check_interval < 1:
        raise ValueError(f"check_interval must be >= 1, got {check_interval}")

    t_start = time.perf_counter()

    compute_divergence(field, boundary)
    initialize_pressure(field, boundary)

    source_scale = field.dx * field.dx * field.density / field.dt
    residual = float("inf")
    iteration = 0
    while iteration < max_iterations and residual > tolerance:
        _pressure_sweep(field.pressure, field.divergence, boundary.solid, source_scale)
        apply_pressure_boundary(field, boundary)

        if iteration % check_interval == 0:
            residual = _poisson_residual(field, boundary)

        iteration += 1

    correct_velocity(field, boundary)
    compute_divergence(field, boundary)
    divergence_after = check_divergence_convergence(field, boundary)

    converged = residual <= tolerance
    if not converged:
        log.debug(f"Adaptive pressure solve hit {max_iterations} iterations "
                  f"(residual={residual:.3e}, tol={tolerance:.1e})")

    return {
        "iterations": iteration,
        "residual": residual,
        "converged": converged,
        "divergence_after": divergence_after,
        "time_ms": (time.perf_counter() - t_start) * 1000,
    }
