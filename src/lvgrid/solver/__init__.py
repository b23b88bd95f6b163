"""
Solver Layer
============

Radial load-flow calculation:
- Balanced and phase-distributed voltage-drop models
- Transformer/busbar coupling
- Result aggregation and compliance classification
"""

from .busbar import BusbarCircuit, CircuitLoad, VirtualBusbar, busbar_voltage_offset, compute_busbar_effect
from .distribution import imbalance_shares, phase_shares
from .radial import (
    CableFlow,
    NetworkState,
    RadialSolver,
    calculate_current,
    calculate_voltage_drop,
    select_reference_voltage,
)
from .results import (
    CableResult,
    CablePowerFlow,
    CalculationResult,
    Compliance,
    NodeResult,
    aggregate,
    check_invariants,
    classify_compliance,
)

__all__ = [
    "BusbarCircuit", "CircuitLoad", "VirtualBusbar", "busbar_voltage_offset", "compute_busbar_effect",
    "imbalance_shares", "phase_shares", "CableFlow", "NetworkState", "RadialSolver",
    "calculate_current", "calculate_voltage_drop", "select_reference_voltage",
    "CableResult", "CablePowerFlow", "CalculationResult", "Compliance", "NodeResult",
    "aggregate", "check_invariants", "classify_compliance",
]
