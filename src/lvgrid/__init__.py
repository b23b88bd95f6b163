"""
LV Grid Calculator
==================

Steady-state calculation of radial low-voltage distribution networks:
- Voltage drops, currents and losses per cable
- Balanced and phase-distributed (unbalanced) load models
- MV/LV transformer and busbar coupling
- SRG2 voltage regulators and EQUI8 neutral compensators
- EN 50160 compliance classification

Architecture:
- topology/: Input model (nodes, cables, transformer, project tree)
- solver/: Radial load flow, busbar coupling, result aggregation
- equipment/: Voltage-regulation devices layered on a baseline
- api.py: Calculation entry points
- schema.py: JSON input validation
- cli.py: Command line tool
"""

from .api import calculate_all_scenarios, calculate_scenario, calculate_with_simulation

__version__ = "1.0.0"

__all__ = ["calculate_all_scenarios", "calculate_scenario", "calculate_with_simulation", "__version__"]
