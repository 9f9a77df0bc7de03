"""
flowsim/ — 2D Incompressible Channel Flow
==========================================
Exports the interfaces the runner and the visualizer use.

main.py       imports: FluidSimulator, PRESETS
visualizer.py imports: FluidSimulator → get_visualization_data()
"""

from .config import PRESETS, InflowCondition, OutflowCondition, SimulationConfig
from .errors import ConfigurationError, FlowSimError, SimulationDivergedError
from .grid import Boundary, BoundaryType, FluidField
from .simulation import FluidSimulator, ProbeData, SimulationState, VisualizationData

__all__ = [
    "PRESETS",
    "Boundary",
    "BoundaryType",
    "ConfigurationError",
    "FlowSimError",
    "FluidField",
    "FluidSimulator",
    "InflowCondition",
    "OutflowCondition",
    "ProbeData",
    "SimulationConfig",
    "SimulationDivergedError",
    "SimulationState",
    "VisualizationData",
]
