"""
Voltage Regulator (SRG2)
========================

Discrete-step LV line voltage regulator installed at a network node.

The regulator reads its entry voltage, selects a switch state from four
thresholds and scales its output voltage by the state's coefficient:

    V_out = V_in · (1 + c / 100)

States, from full buck to full boost: LO2, LO1, BYP, BO1, BO2.

Variants:
- SRG2-400: phase-neutral regulation on the 400V 3P+N system, each
  phase switched independently
- SRG2-230: phase-phase regulation on the 3x230V system, one common
  step chosen from the line voltage farthest from the set point
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple
import logging
import math

import numpy as np

from ..errors import EquipmentMisconfigurationError
from ..topology.network import PHASES
from ..topology.node import VoltageSystem
from ..solver.phasors import line_to_line

logger = logging.getLogger(__name__)


class SwitchState(Enum):
    """Regulator step positions."""
    LO2 = "LO2"  # full buck
    LO1 = "LO1"  # partial buck
    BYP = "BYP"  # bypass
    BO1 = "BO1"  # partial boost
    BO2 = "BO2"  # full boost


class RegulatorType(Enum):
    """Regulator variants."""
    SRG2_400 = "SRG2-400"  # phase-neutral, 400V 3P+N
    SRG2_230 = "SRG2-230"  # phase-phase, 3x230V

    @classmethod
    def for_system(cls, voltage_system: VoltageSystem) -> "RegulatorType":
        if voltage_system is VoltageSystem.TRIPHASE_230V:
            return cls.SRG2_230
        return cls.SRG2_400


class RegulatorMode(Enum):
    AUTO = "AUTO"
    MANUAL = "MANUEL"


# (LO2, LO1, BO1, BO2) thresholds in V and (LO2, LO1, BO1, BO2) coefficients in %
REGULATOR_DEFAULTS = {
    RegulatorType.SRG2_400: ((246.0, 238.0, 222.0, 214.0), (-7.0, -3.5, 3.5, 7.0)),
    RegulatorType.SRG2_230: ((244.0, 237.0, 223.0, 216.0), (-6.0, -3.0, 3.0, 6.0)),
}


@dataclass(frozen=True)
class RegulatorConfig:
    """
    SRG2 regulator attached to a node.

    Attributes:
        id: Equipment identifier
        node_id: Installation node
        regulator_type: Variant; derived from the voltage system when None
        mode: AUTO selects the state from thresholds, MANUAL uses manual_state
        thresholds_v: (LO2, LO1, BO1, BO2) switching voltages
        coefficients_percent: (LO2, LO1, BO1, BO2) voltage corrections
        set_point_v: Target entry voltage
        hysteresis_v: Band around the previous position's zone
        dwell_time_s: Switching delay (reported only)
        max_injection_kva: Downstream injection limit
        max_consumption_kva: Downstream consumption limit
        previous_state: Position before this calculation, enables hysteresis
        manual_state: Position used in MANUAL mode
        enabled: Disabled regulators are ignored
        name: Display name
    """
    id: str
    node_id: str
    regulator_type: Optional[RegulatorType] = None
    mode: RegulatorMode = RegulatorMode.AUTO
    thresholds_v: Optional[Tuple[float, float, float, float]] = None
    coefficients_percent: Optional[Tuple[float, float, float, float]] = None
    set_point_v: float = 230.0
    hysteresis_v: float = 2.0
    dwell_time_s: float = 7.0
    max_injection_kva: float = 85.0
    max_consumption_kva: float = 110.0
    previous_state: Optional[SwitchState] = None
    manual_state: SwitchState = SwitchState.BYP
    enabled: bool = True
    name: str = ""

    def __post_init__(self):
        """Validate threshold ordering and limits."""
        if self.thresholds_v is not None:
            lo2, lo1, bo1, bo2 = self.thresholds_v
            if not (lo2 > lo1 > bo1 > bo2):
                raise EquipmentMisconfigurationError(
                    "thresholds must satisfy LO2 > LO1 > BO1 > BO2", self.id
                )
        if self.coefficients_percent is not None and len(self.coefficients_percent) != 4:
            raise EquipmentMisconfigurationError("four coefficients are required", self.id)
        if self.hysteresis_v < 0:
            raise EquipmentMisconfigurationError("hysteresis_v must be non-negative", self.id)
        if self.max_injection_kva < 0 or self.max_consumption_kva < 0:
            raise EquipmentMisconfigurationError("power limits must be non-negative", self.id)

    def resolved_type(self, voltage_system: VoltageSystem) -> RegulatorType:
        return self.regulator_type or RegulatorType.for_system(voltage_system)

    def thresholds(self, voltage_system: VoltageSystem) -> Tuple[float, float, float, float]:
        return self.thresholds_v or REGULATOR_DEFAULTS[self.resolved_type(voltage_system)][0]

    def coefficients(self, voltage_system: VoltageSystem) -> Dict[SwitchState, float]:
        lo2, lo1, bo1, bo2 = (
            self.coefficients_percent or REGULATOR_DEFAULTS[self.resolved_type(voltage_system)][1]
        )
        return {
            SwitchState.LO2: lo2,
            SwitchState.LO1: lo1,
            SwitchState.BYP: 0.0,
            SwitchState.BO1: bo1,
            SwitchState.BO2: bo2,
        }


def _state_zone(state: SwitchState, thresholds) -> Tuple[float, float]:
    lo2, lo1, bo1, bo2 = thresholds
    return {
        SwitchState.LO2: (lo2, math.inf),
        SwitchState.LO1: (lo1, lo2),
        SwitchState.BYP: (bo1, lo1),
        SwitchState.BO1: (bo2, bo1),
        SwitchState.BO2: (-math.inf, bo2),
    }[state]


def select_switch_state(
    voltage_v: float,
    thresholds: Tuple[float, float, float, float],
    previous: Optional[SwitchState] = None,
    hysteresis_v: float = 0.0
) -> SwitchState:
    """
    Switch state for an entry voltage.

    Buck thresholds trigger at or above their value, boost thresholds at
    or below. With a previous state, the regulator keeps it while the
    voltage stays within that state's zone widened by the hysteresis.
    """
    if previous is not None:
        low, high = _state_zone(previous, thresholds)
        if low - hysteresis_v <= voltage_v <= high + hysteresis_v:
            return previous

    lo2, lo1, bo1, bo2 = thresholds
    if voltage_v >= lo2:
        return SwitchState.LO2
    if voltage_v >= lo1:
        return SwitchState.LO1
    if voltage_v <= bo2:
        return SwitchState.BO2
    if voltage_v <= bo1:
        return SwitchState.BO1
    return SwitchState.BYP


@dataclass
class RegulatorResult:
    """
    Regulator outcome.

    Attributes:
        regulator_id: Equipment identifier
        node_id: Installation node
        regulator_type: Variant used
        states: Switch state per phase
        coefficients_percent: Applied correction per phase
        input_voltages_v: Entry voltages (phase-neutral or phase-phase)
        output_voltages_v: Output voltages
        voltage_before_v: Node line voltage before regulation
        voltage_after_v: Node line voltage after regulation
        downstream_power_kva: Net power of the regulated subtree
        power_limit_reached: Downstream power above the injection/consumption limit
        dwell_time_s: Configured switching delay
    """
    regulator_id: str
    node_id: str
    regulator_type: RegulatorType
    states: Dict[str, SwitchState]
    coefficients_percent: Dict[str, float]
    input_voltages_v: Dict[str, float]
    output_voltages_v: Dict[str, float]
    voltage_before_v: float
    voltage_after_v: float
    downstream_power_kva: float
    power_limit_reached: bool = False
    dwell_time_s: float = 7.0
    notes: list = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return any(s is not SwitchState.BYP for s in self.states.values())

    def to_dict(self) -> dict:
        return {
            "regulator_id": self.regulator_id,
            "node_id": self.node_id,
            "regulator_type": self.regulator_type.value,
            "states": {k: v.value for k, v in self.states.items()},
            "coefficients_percent": dict(self.coefficients_percent),
            "input_voltages_v": dict(self.input_voltages_v),
            "output_voltages_v": dict(self.output_voltages_v),
            "voltage_before_v": self.voltage_before_v,
            "voltage_after_v": self.voltage_after_v,
            "downstream_power_kva": self.downstream_power_kva,
            "power_limit_reached": self.power_limit_reached,
            "is_active": self.is_active,
            "dwell_time_s": self.dwell_time_s,
            "notes": list(self.notes),
        }


def _entry_voltages(state, node_id: str, regulator_type: RegulatorType) -> np.ndarray:
    """Voltages seen by the regulator: phase-neutral (400) or phase-phase (230)."""
    if state.balanced:
        line = state.voltages[node_id]
        value = line / math.sqrt(3) if regulator_type is RegulatorType.SRG2_400 else line
        return np.full(3, value)
    phasors = state.phasors[node_id]
    if regulator_type is RegulatorType.SRG2_400:
        return np.abs(phasors)
    return np.abs(line_to_line(phasors))


def _node_line_voltage(state, node_id: str) -> float:
    if state.balanced:
        return float(state.voltages[node_id])
    return float(np.mean(np.abs(state.phasors[node_id])) * math.sqrt(3))


def apply_regulator(state, config: RegulatorConfig) -> RegulatorResult:
    """
    Regulate the voltage at the regulator node and re-derive its subtree.

    The state is modified in place.

    Raises:
        EquipmentMisconfigurationError: node missing, disconnected or source
    """
    tree = state.tree
    if config.node_id not in tree.nodes:
        raise EquipmentMisconfigurationError(
            f"Regulator node {config.node_id!r} not found in the connected network", config.id
        )
    if config.node_id == tree.root_id:
        raise EquipmentMisconfigurationError("Regulator cannot be installed on the source node", config.id)

    system = state.project.voltage_system
    regulator_type = config.resolved_type(system)
    thresholds = config.thresholds(system)
    coefficients = config.coefficients(system)
    notes = []

    downstream = float(np.sum(state.subtree_power[config.node_id]))
    limit_reached = (
        (downstream < 0 and -downstream > config.max_injection_kva)
        or (downstream > 0 and downstream > config.max_consumption_kva)
    )
    if limit_reached:
        notes.append(f"Downstream power {downstream:.1f}kVA exceeds the regulator limit")
        logger.warning("Regulator %s: downstream power %.1fkVA above limit", config.id, downstream)

    entry = _entry_voltages(state, config.node_id, regulator_type)
    before = _node_line_voltage(state, config.node_id)

    if config.mode is RegulatorMode.MANUAL:
        phase_states = [config.manual_state] * 3
    elif state.balanced or regulator_type is RegulatorType.SRG2_230:
        reference = entry[np.argmax(np.abs(entry - config.set_point_v))]
        common = select_switch_state(reference, thresholds, config.previous_state, config.hysteresis_v)
        phase_states = [common] * 3
    else:
        phase_states = [
            select_switch_state(v, thresholds, config.previous_state, config.hysteresis_v)
            for v in entry
        ]

    factors = np.array([1 + coefficients[s] / 100 for s in phase_states])
    if state.balanced:
        state.voltages[config.node_id] = state.voltages[config.node_id] * factors[0]
    else:
        state.phasors[config.node_id] = state.phasors[config.node_id] * factors
    state.propagate(config.node_id)
    after = _node_line_voltage(state, config.node_id)

    logger.info(
        "Regulator %s at %s: %s, %.2fV -> %.2fV",
        config.id, config.node_id, "/".join(s.value for s in phase_states), before, after
    )
    return RegulatorResult(
        regulator_id=config.id,
        node_id=config.node_id,
        regulator_type=regulator_type,
        states=dict(zip(PHASES, phase_states)),
        coefficients_percent={p: coefficients[s] for p, s in zip(PHASES, phase_states)},
        input_voltages_v={p: float(v) for p, v in zip(PHASES, entry)},
        output_voltages_v={p: float(v) for p, v in zip(PHASES, entry * factors)},
        voltage_before_v=before,
        voltage_after_v=after,
        downstream_power_kva=downstream,
        power_limit_reached=limit_reached,
        dwell_time_s=config.dwell_time_s,
        notes=notes,
    )
