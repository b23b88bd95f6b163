"""
Equipment Layer
===============

Voltage-regulation devices simulated on top of a baseline calculation:
- SRG2 discrete-step voltage regulator
- EQUI8 neutral compensator
"""

from .regulator import (
    RegulatorConfig,
    RegulatorMode,
    RegulatorResult,
    RegulatorType,
    SwitchState,
    apply_regulator,
    select_switch_state,
)
from .compensator import CompensatorConfig, CompensatorResult, apply_compensator, balance_phase_voltages
from .simulation import SimulationCalculator, SimulationEquipment, SimulationResult

__all__ = [
    "RegulatorConfig", "RegulatorMode", "RegulatorResult", "RegulatorType", "SwitchState",
    "apply_regulator", "select_switch_state", "CompensatorConfig", "CompensatorResult",
    "apply_compensator", "balance_phase_voltages", "SimulationCalculator",
    "SimulationEquipment", "SimulationResult",
]
