"""
Calculation Results
===================

Result records produced by the solver and the equipment simulation,
and the aggregation step that turns a solved network state into them:

- per-cable current, drop, losses (and per-phase/neutral currents)
- per-node voltage, deviation from nominal, compliance class
- scenario totals, worst deviation and its circuit
- transformer/busbar summary

Aggregation also enforces the numeric invariants of a solution
(bounded voltages, non-negative losses).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional
import logging
import math

import numpy as np
import pandas as pd

from ..errors import CalculationInvariantError
from ..settings import DEFAULT_SETTINGS, SolverSettings
from ..topology.network import PHASES, Scenario
from .busbar import CircuitLoad, VirtualBusbar, compute_busbar_effect
from .phasors import line_to_line

if TYPE_CHECKING:
    from .radial import NetworkState

logger = logging.getLogger(__name__)

LINE_PAIRS = ("AB", "BC", "CA")


class Compliance(Enum):
    """Voltage quality class of a node or a scenario."""
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return {"normal": 0, "warning": 1, "critical": 2}[self.value]

    @classmethod
    def worst(cls, values) -> "Compliance":
        values = list(values)
        if not values:
            return cls.NORMAL
        return max(values, key=lambda c: c.rank)


def classify_compliance(deviation_percent: float, settings: SolverSettings = DEFAULT_SETTINGS) -> Compliance:
    """Compliance class for a deviation from nominal voltage (%)."""
    deviation = abs(deviation_percent)
    if deviation <= settings.normal_limit_percent:
        return Compliance.NORMAL
    if deviation <= settings.warning_limit_percent:
        return Compliance.WARNING
    return Compliance.CRITICAL


def _phase_dict(values) -> Dict[str, float]:
    return {p: float(v) for p, v in zip(PHASES, values)}


@dataclass(frozen=True)
class CableResult:
    """
    Computed state of one cable for a scenario.

    Attributes:
        cable_id: Cable identifier
        upstream_node_id: Node on the source side
        downstream_node_id: Node on the far side
        circuit: Departing circuit number (1-based)
        length_m: Electrical length
        s_kva: Net apparent power of the downstream subtree (negative = injection)
        current_a: Line current (largest phase current in the unbalanced model)
        voltage_drop_v: Signed drop; line or single-phase quantity in the balanced
            model, worst phase-neutral quantity in the unbalanced model
        voltage_drop_percent: Drop relative to the corresponding nominal voltage
        losses_kw: Joule losses
        phase_currents_a: Per-phase current magnitudes (unbalanced model)
        neutral_current_a: Neutral current magnitude (unbalanced model, 400V only)
    """
    cable_id: str
    upstream_node_id: str
    downstream_node_id: str
    circuit: int
    length_m: float
    s_kva: float
    current_a: float
    voltage_drop_v: float
    voltage_drop_percent: float
    losses_kw: float
    phase_currents_a: Optional[Dict[str, float]] = None
    neutral_current_a: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "cable_id": self.cable_id,
            "upstream_node_id": self.upstream_node_id,
            "downstream_node_id": self.downstream_node_id,
            "circuit": self.circuit,
            "length_m": self.length_m,
            "s_kva": self.s_kva,
            "current_a": self.current_a,
            "voltage_drop_v": self.voltage_drop_v,
            "voltage_drop_percent": self.voltage_drop_percent,
            "losses_kw": self.losses_kw,
            "phase_currents_a": dict(self.phase_currents_a) if self.phase_currents_a else None,
            "neutral_current_a": self.neutral_current_a,
        }


@dataclass(frozen=True)
class NodeResult:
    """
    Computed state of one node for a scenario.

    Attributes:
        node_id: Node identifier
        circuit: Departing circuit number, None for the source
        voltage_v: Line voltage (system scale)
        deviation_percent: Signed deviation from nominal (worst phase when unbalanced)
        cumulative_drop_v: Source voltage minus node voltage
        cumulative_drop_percent: Cumulative drop relative to nominal
        compliance: Voltage quality class
        net_power_kva: Net power connected at the node
        is_source: True for the busbar node
        phase_voltages_v: Phase-neutral magnitudes (unbalanced model)
        phase_angles_deg: Phase-neutral angles (unbalanced model)
        line_voltages_v: Phase-phase magnitudes (unbalanced model)
    """
    node_id: str
    circuit: Optional[int]
    voltage_v: float
    deviation_percent: float
    cumulative_drop_v: float
    cumulative_drop_percent: float
    compliance: Compliance
    net_power_kva: float = 0.0
    is_source: bool = False
    phase_voltages_v: Optional[Dict[str, float]] = None
    phase_angles_deg: Optional[Dict[str, float]] = None
    line_voltages_v: Optional[Dict[str, float]] = None

    def to_dict(self) -> dict:
        return {
            "node_id": self.node_id,
            "circuit": self.circuit,
            "voltage_v": self.voltage_v,
            "deviation_percent": self.deviation_percent,
            "cumulative_drop_v": self.cumulative_drop_v,
            "cumulative_drop_percent": self.cumulative_drop_percent,
            "compliance": self.compliance.value,
            "net_power_kva": self.net_power_kva,
            "is_source": self.is_source,
            "phase_voltages_v": dict(self.phase_voltages_v) if self.phase_voltages_v else None,
            "phase_angles_deg": dict(self.phase_angles_deg) if self.phase_angles_deg else None,
            "line_voltages_v": dict(self.line_voltages_v) if self.line_voltages_v else None,
        }


@dataclass(frozen=True)
class CablePowerFlow:
    """Active/reactive split of the power carried by a cable."""
    cable_id: str
    p_kw: float
    q_kvar: float
    s_kva: float
    power_factor: float

    @property
    def direction(self) -> str:
        return "consumption" if self.s_kva >= 0 else "injection"

    def to_dict(self) -> dict:
        return {
            "cable_id": self.cable_id,
            "p_kw": self.p_kw,
            "q_kvar": self.q_kvar,
            "s_kva": self.s_kva,
            "power_factor": self.power_factor,
            "direction": self.direction,
        }


@dataclass
class CalculationResult:
    """
    Outcome of one scenario.

    Attributes:
        scenario: Evaluated scenario
        nominal_voltage_v: Line voltage of the voltage system
        source_voltage_v: Busbar voltage used as the start of propagation
        cables: Per-cable results, source side first
        nodes: Per-node results, source first
        total_loads_kva: Loads included by the scenario (diversity applied)
        total_productions_kva: Productions included by the scenario (diversity applied)
        global_losses_kw: Sum of cable losses
        max_voltage_drop_percent: Largest |deviation| over all nodes
        max_drop_circuit: Circuit containing the worst node (None at the source)
        max_undervoltage_percent: Deepest undervoltage (>= 0)
        max_overvoltage_percent: Highest overvoltage (>= 0)
        compliance: Worst node class
        power_flows: P/Q split per cable
        virtual_busbar: Transformer/busbar summary, None without transformer
        disconnected_node_ids: Nodes excluded as unreachable from the source
        warnings: Non-fatal issues met during the calculation
        unbalanced: True when computed with the phase-distributed model
    """
    scenario: Scenario
    nominal_voltage_v: float
    source_voltage_v: float
    cables: List[CableResult]
    nodes: List[NodeResult]
    total_loads_kva: float
    total_productions_kva: float
    global_losses_kw: float
    max_voltage_drop_percent: float
    max_drop_circuit: Optional[int]
    max_undervoltage_percent: float
    max_overvoltage_percent: float
    compliance: Compliance
    power_flows: List[CablePowerFlow] = field(default_factory=list)
    virtual_busbar: Optional[VirtualBusbar] = None
    disconnected_node_ids: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    unbalanced: bool = False

    def node(self, node_id: str) -> NodeResult:
        for result in self.nodes:
            if result.node_id == node_id:
                return result
        raise KeyError(node_id)

    def cable(self, cable_id: str) -> CableResult:
        for result in self.cables:
            if result.cable_id == cable_id:
                return result
        raise KeyError(cable_id)

    @property
    def is_compliant(self) -> bool:
        return self.compliance is not Compliance.CRITICAL

    def to_dict(self) -> dict:
        """JSON-compatible representation."""
        return {
            "scenario": self.scenario.value,
            "nominal_voltage_v": self.nominal_voltage_v,
            "source_voltage_v": self.source_voltage_v,
            "unbalanced": self.unbalanced,
            "total_loads_kva": self.total_loads_kva,
            "total_productions_kva": self.total_productions_kva,
            "global_losses_kw": self.global_losses_kw,
            "max_voltage_drop_percent": self.max_voltage_drop_percent,
            "max_drop_circuit": self.max_drop_circuit,
            "max_undervoltage_percent": self.max_undervoltage_percent,
            "max_overvoltage_percent": self.max_overvoltage_percent,
            "compliance": self.compliance.value,
            "cables": [c.to_dict() for c in self.cables],
            "nodes": [n.to_dict() for n in self.nodes],
            "power_flows": [f.to_dict() for f in self.power_flows],
            "virtual_busbar": self.virtual_busbar.to_dict() if self.virtual_busbar else None,
            "disconnected_node_ids": list(self.disconnected_node_ids),
            "warnings": list(self.warnings),
        }

    def cables_frame(self) -> pd.DataFrame:
        """Cable results as a DataFrame indexed by cable id."""
        rows = []
        for cable in self.cables:
            row = cable.to_dict()
            phases = row.pop("phase_currents_a") or {}
            for phase in PHASES:
                row[f"current_{phase}_a"] = phases.get(phase, np.nan)
            rows.append(row)
        frame = pd.DataFrame(rows)
        if not frame.empty:
            frame = frame.set_index("cable_id")
        return frame

    def nodes_frame(self) -> pd.DataFrame:
        """Node results as a DataFrame indexed by node id."""
        rows = []
        for node in self.nodes:
            row = node.to_dict()
            phases = row.pop("phase_voltages_v") or {}
            row.pop("phase_angles_deg")
            lines = row.pop("line_voltages_v") or {}
            for phase in PHASES:
                row[f"voltage_{phase}_v"] = phases.get(phase, np.nan)
            for pair in LINE_PAIRS:
                row[f"voltage_{pair}_v"] = lines.get(pair, np.nan)
            rows.append(row)
        frame = pd.DataFrame(rows)
        if not frame.empty:
            frame = frame.set_index("node_id")
        return frame


def _node_results(state: "NetworkState", settings: SolverSettings) -> List[NodeResult]:
    u_nom = state.nominal_voltage_v
    u_src = state.source_voltage_v
    results = []
    for node_id in state.tree.order:
        node = state.tree.nodes[node_id]
        net = state.node_power[node_id]
        phase_voltages = angles = line_voltages = None
        if state.balanced:
            voltage = state.voltages[node_id]
            deviation = (voltage - u_nom) / u_nom * 100
        else:
            phasors = state.phasors[node_id]
            magnitudes = np.abs(phasors)
            lines = np.abs(line_to_line(phasors))
            voltage = float(np.mean(magnitudes) * math.sqrt(3))
            if state.project.voltage_system.has_neutral:
                deviations = (magnitudes - u_nom / math.sqrt(3)) / (u_nom / math.sqrt(3)) * 100
            else:
                deviations = (lines - u_nom) / u_nom * 100
            deviation = float(deviations[np.argmax(np.abs(deviations))])
            phase_voltages = _phase_dict(magnitudes)
            angles = _phase_dict(np.rad2deg(np.angle(phasors)))
            line_voltages = {pair: float(v) for pair, v in zip(LINE_PAIRS, lines)}
            net = float(np.sum(net))
        cumulative = u_src - voltage
        results.append(NodeResult(
            node_id=node_id,
            circuit=state.tree.circuit_of.get(node_id),
            voltage_v=float(voltage),
            deviation_percent=float(deviation),
            cumulative_drop_v=float(cumulative),
            cumulative_drop_percent=float(cumulative / u_nom * 100),
            compliance=classify_compliance(deviation, settings),
            net_power_kva=float(net),
            is_source=node.is_source,
            phase_voltages_v=phase_voltages,
            phase_angles_deg=angles,
            line_voltages_v=line_voltages,
        ))
    return results


def _cable_results(state: "NetworkState", settings: SolverSettings) -> List[CableResult]:
    results = []
    v_ph_nom = state.nominal_voltage_v / math.sqrt(3)
    for node_id in state.tree.order[1:]:
        flow = state.flows[node_id]
        phase_currents = neutral = None
        if state.balanced:
            drop_v = flow.drop_v
            drop_pct = flow.drop_percent
        else:
            upstream = state.phasors[flow.upstream_id]
            drops = np.abs(upstream) - np.abs(upstream - flow.phase_drops)
            drop_v = float(drops[np.argmax(np.abs(drops))])
            drop_pct = drop_v / v_ph_nom * 100
            phase_currents = _phase_dict(np.abs(flow.phase_currents))
            if flow.neutral_current is not None:
                neutral = abs(flow.neutral_current)
                if neutral < settings.neutral_current_floor_A:
                    neutral = 0.0
        results.append(CableResult(
            cable_id=flow.cable.id,
            upstream_node_id=flow.upstream_id,
            downstream_node_id=node_id,
            circuit=state.tree.circuit_of[node_id],
            length_m=flow.cable.length,
            s_kva=float(flow.s_kva),
            current_a=float(flow.current_a),
            voltage_drop_v=float(drop_v),
            voltage_drop_percent=float(drop_pct),
            losses_kw=float(flow.losses_kw),
            phase_currents_a=phase_currents,
            neutral_current_a=neutral,
        ))
    return results


def _busbar(state: "NetworkState", nodes: List[NodeResult]) -> Optional[VirtualBusbar]:
    transformer = state.project.transformer
    if transformer is None:
        return None
    voltage_by_node = {n.node_id: n.voltage_v for n in nodes}
    circuits = []
    for departure in state.tree.departures:
        members = state.tree.subtree(departure)
        voltages = [voltage_by_node[m] for m in members]
        circuits.append(CircuitLoad(
            circuit_id=state.flows[departure].cable.id,
            s_kva=float(np.sum(state.subtree_power[departure])),
            min_voltage_v=min(voltages),
            max_voltage_v=max(voltages),
            nodes_count=len(members),
        ))
    neutral = None
    if not state.balanced and state.project.voltage_system.has_neutral:
        neutral = abs(sum(
            (state.flows[d].neutral_current or 0j) for d in state.tree.departures
        ))
    return compute_busbar_effect(
        transformer,
        circuits,
        state.scenario,
        state.project.cos_phi,
        source_s_kva=float(np.sum(state.node_power[state.tree.root_id])),
        reference_voltage_v=state.reference_voltage_v,
        neutral_current_a=neutral,
        applied_offset_v=state.busbar_offset_v,
    )


def check_invariants(result: CalculationResult, settings: SolverSettings = DEFAULT_SETTINGS) -> None:
    """
    Reject numerically impossible solutions.

    Raises:
        CalculationInvariantError: voltage outside [0, factor x nominal],
            non-finite value or negative losses
    """
    upper = settings.voltage_bound_factor * result.nominal_voltage_v
    for node in result.nodes:
        if not math.isfinite(node.voltage_v) or not (0 <= node.voltage_v <= upper):
            raise CalculationInvariantError(
                f"Node voltage {node.voltage_v:.2f}V outside [0, {upper:.0f}]V", node.node_id
            )
        for value in (node.phase_voltages_v or {}).values():
            if not math.isfinite(value) or not (0 <= value <= upper / math.sqrt(3)):
                raise CalculationInvariantError(
                    f"Phase voltage {value:.2f}V outside bounds", node.node_id
                )
    for cable in result.cables:
        if not math.isfinite(cable.losses_kw) or cable.losses_kw < 0:
            raise CalculationInvariantError(f"Invalid losses {cable.losses_kw}kW", cable.cable_id)
        if not math.isfinite(cable.current_a):
            raise CalculationInvariantError("Non-finite current", cable.cable_id)


def aggregate(state: "NetworkState", settings: SolverSettings = DEFAULT_SETTINGS) -> CalculationResult:
    """
    Build the scenario result from a solved network state.

    Args:
        state: Solved (and possibly equipment-adjusted) network state
        settings: Compliance limits and invariant bounds

    Returns:
        CalculationResult
    """
    nodes = _node_results(state, settings)
    cables = _cable_results(state, settings)

    sin_phi = state.project.sin_phi
    cos_phi = state.project.cos_phi
    flows = [
        CablePowerFlow(
            cable_id=c.cable_id,
            p_kw=c.s_kva * cos_phi,
            q_kvar=c.s_kva * sin_phi,
            s_kva=c.s_kva,
            power_factor=cos_phi,
        )
        for c in cables
    ]

    worst = max(nodes, key=lambda n: abs(n.deviation_percent))
    deviations = [n.deviation_percent for n in nodes]

    result = CalculationResult(
        scenario=state.scenario,
        nominal_voltage_v=state.nominal_voltage_v,
        source_voltage_v=state.source_voltage_v,
        cables=cables,
        nodes=nodes,
        total_loads_kva=state.total_loads_kva,
        total_productions_kva=state.total_productions_kva,
        global_losses_kw=float(sum(c.losses_kw for c in cables)),
        max_voltage_drop_percent=abs(worst.deviation_percent),
        max_drop_circuit=worst.circuit,
        max_undervoltage_percent=max(0.0, -min(deviations)),
        max_overvoltage_percent=max(0.0, max(deviations)),
        compliance=Compliance.worst(n.compliance for n in nodes),
        power_flows=flows,
        virtual_busbar=_busbar(state, nodes),
        disconnected_node_ids=list(state.tree.disconnected),
        warnings=list(state.warnings),
        unbalanced=not state.balanced,
    )
    check_invariants(result, settings)
    logger.debug(
        "%s: %d nodes, max deviation %.2f%% (circuit %s), losses %.3fkW, %s",
        state.scenario.value, len(nodes), result.max_voltage_drop_percent,
        result.max_drop_circuit, result.global_losses_kw, result.compliance.value
    )
    return result
