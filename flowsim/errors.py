"""
errors.py — Solver Error Types
===============================
Two things can go wrong with a channel-flow simulation:

  - The grid it was asked to build is degenerate (too small, zero spacing,
    zero timestep). Every interior sweep assumes at least one interior
    cell, so we refuse these at construction.
  - The numbers blow up (NaN / runaway divergence). The solver itself
    cannot detect this mid-sweep, so the orchestrator checks its health
    metric after every step and raises instead of stepping NaNs forever.
"""


class FlowSimError(Exception):
    """Base class for every error raised by flowsim."""


class ConfigurationError(FlowSimError, ValueError):
    """Raised for grid sizes, spacings or parameters the solver cannot run with."""


class SimulationDivergedError(FlowSimError, RuntimeError):
    """Raised when the field stops being finite or divergence exceeds its limit."""

    def __init__(self, message: str, step: int = None, divergence: float = None):
        super().__init__(message)
        self.step = step
        self.divergence = divergence
