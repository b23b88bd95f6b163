"""
Radial Solver
=============

Steady-state voltage-drop calculation of a radial LV network.

Balanced model (one equivalent phase):
    I  = |S| / (√3·U)        three-phase connection types
    I  = |S| / U             single-phase connection types
    ΔU = k · I · (R12·cosφ + X12·sinφ) · L,   k = √3 (three-phase) or 1

Phase-distributed model (per-phase phasors, numpy):
    I_p  = S_p / V_ph · e^{j(θ_p − φ)}
    I_0  = (I_A + I_B + I_C) / 3,   I_N = −3·I_0
    ΔV_p = Z12·I_p + (Z0 − Z12)·I_0

The zero-sequence term is the neutral-return penalty of unbalanced
loading; it vanishes on balanced circuits and on the 3-wire 230V system.

Every call builds a fresh NetworkState; inputs are never mutated.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple
import copy
import logging
import math

import numpy as np

from ..errors import InvalidInputError
from ..settings import DEFAULT_SETTINGS, SolverSettings
from ..topology.cable import Cable
from ..topology.network import NetworkTree, Project, Scenario
from ..topology.node import ConnectionType, LoadModel
from .busbar import busbar_voltage_offset
from .distribution import phase_shares
from .phasors import PHASE_ANGLES, balanced_set
from .results import CalculationResult, aggregate

logger = logging.getLogger(__name__)


def calculate_current(
    s_kva: float,
    connection_type: ConnectionType,
    voltage_v: Optional[float] = None
) -> float:
    """
    Line current for an apparent power.

    Args:
        s_kva: Apparent power (sign ignored)
        connection_type: Connection of the fed node
        voltage_v: Voltage to divide by; the connection type's base voltage
            is used when omitted, non-positive or non-finite

    Returns:
        Current magnitude (A)
    """
    if not isinstance(connection_type, ConnectionType):
        raise InvalidInputError(f"Unknown connection type: {connection_type!r}")
    if voltage_v is None or not math.isfinite(voltage_v) or voltage_v <= 0:
        voltage_v = connection_type.base_voltage
    s_va = abs(s_kva) * 1000
    if connection_type.is_three_phase:
        return s_va / (math.sqrt(3) * voltage_v)
    return s_va / voltage_v


def calculate_voltage_drop(
    current_a: float,
    r_ohm_per_km: float,
    x_ohm_per_km: float,
    length_km: float,
    cos_phi: float,
    three_phase: bool
) -> float:
    """Unsigned voltage drop of a section: k·I·(R·cosφ + X·sinφ)·L."""
    sin_phi = math.sqrt(max(0.0, 1 - cos_phi ** 2))
    k = math.sqrt(3) if three_phase else 1.0
    return k * current_a * (r_ohm_per_km * cos_phi + x_ohm_per_km * sin_phi) * length_km


def phase_current_phasors(s_phase_kva: np.ndarray, phase_voltage_v: float, cos_phi: float) -> np.ndarray:
    """Per-phase current phasors for signed per-phase powers (kVA)."""
    phi = math.acos(cos_phi)
    return np.asarray(s_phase_kva) * 1000 / phase_voltage_v * np.exp(1j * (PHASE_ANGLES - phi))


@dataclass
class CableFlow:
    """
    Electrical state of the cable feeding one node.

    Attributes:
        cable: Input cable
        upstream_id: Node on the source side
        length_km: Electrical length
        s_kva: Signed net power of the downstream subtree (sum over phases)
        current_a: Line current (largest phase current when unbalanced)
        losses_kw: Joule losses
        drop_v: Signed drop in the connection-type scale (balanced)
        drop_percent: drop_v relative to the connection-type base voltage (balanced)
        drop_system_v: drop_v expressed on the system line voltage (balanced)
        phase_currents: Current phasors A/B/C (unbalanced)
        phase_drops: Phase-neutral drop phasors A/B/C (unbalanced)
        neutral_current: Neutral current phasor (unbalanced, 400V only)
    """
    cable: Cable
    upstream_id: str
    length_km: float
    s_kva: float
    current_a: float
    losses_kw: float
    drop_v: float = 0.0
    drop_percent: float = 0.0
    drop_system_v: float = 0.0
    phase_currents: Optional[np.ndarray] = None
    phase_drops: Optional[np.ndarray] = None
    neutral_current: Optional[complex] = None


@dataclass
class NetworkState:
    """
    Solved network: powers, cable flows and node voltages.

    Balanced states carry scalar line voltages in `voltages`; unbalanced
    states carry phase-neutral phasors in `phasors`. Equipment models
    adjust a copy of the state and re-derive downstream voltages with
    `propagate`, reusing the cable drops.
    """
    project: Project
    tree: NetworkTree
    scenario: Scenario
    balanced: bool
    nominal_voltage_v: float
    reference_voltage_v: float
    source_voltage_v: float
    busbar_offset_v: float
    node_power: Dict[str, object]
    subtree_power: Dict[str, object]
    total_loads_kva: float
    total_productions_kva: float
    flows: Dict[str, CableFlow] = field(default_factory=dict)
    voltages: Dict[str, float] = field(default_factory=dict)
    phasors: Dict[str, np.ndarray] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @property
    def phase_voltage_v(self) -> float:
        return self.nominal_voltage_v / math.sqrt(3)

    def propagate(self, from_id: str) -> None:
        """Re-derive voltages below from_id from its current voltage."""
        for node_id in self.tree.subtree(from_id)[1:]:
            parent = self.tree.parent[node_id]
            flow = self.flows[node_id]
            if self.balanced:
                self.voltages[node_id] = self.voltages[parent] - flow.drop_system_v
            else:
                self.phasors[node_id] = self.phasors[parent] - flow.phase_drops

    def copy(self) -> "NetworkState":
        """Copy whose voltages, flows and warnings can be changed independently."""
        return replace(
            self,
            flows={k: replace(v) for k, v in self.flows.items()},
            voltages=dict(self.voltages),
            phasors={k: v.copy() for k, v in self.phasors.items()},
            warnings=list(self.warnings),
            node_power=copy.deepcopy(self.node_power),
            subtree_power=copy.deepcopy(self.subtree_power),
        )


def select_reference_voltage(project: Project, scenario: Scenario) -> Tuple[float, bool, List[str]]:
    """
    Voltage imposed at the busbar before the transformer offset.

    Priority: forced voltage (FORCED scenario), source target voltage,
    MV measurement scaled by the transformation ratio, transformer rated
    voltage, voltage-system base.

    Returns:
        (voltage_v, is_forced, warnings)
    """
    warnings = []

    def usable(value) -> bool:
        return value is not None and math.isfinite(value) and value > 0

    if scenario is Scenario.FORCED:
        if usable(project.forced_source_voltage_v):
            return float(project.forced_source_voltage_v), True, warnings
        warnings.append("FORCED scenario without a valid forced source voltage, using the reference voltage")

    source = project.source
    if source is not None and source.target_voltage_v is not None:
        if usable(source.target_voltage_v):
            return float(source.target_voltage_v), False, warnings
        warnings.append(f"Invalid source target voltage {source.target_voltage_v}V ignored")

    if project.ht_voltage is not None:
        derived = project.ht_voltage.source_voltage()
        if derived is not None:
            return derived, False, warnings
        warnings.append("Invalid HT voltage configuration ignored")

    if project.transformer is not None:
        return float(project.transformer.nominal_voltage_v), False, warnings

    return project.voltage_system.nominal_voltage, False, warnings


class RadialSolver:
    """
    Radial load-flow solver.

    Usage:
        solver = RadialSolver()
        result = solver.solve(project, Scenario.MIXED)
    """

    def __init__(self, settings: SolverSettings = DEFAULT_SETTINGS):
        self.settings = settings

    def solve(self, project: Project, scenario: Scenario) -> CalculationResult:
        """Calculate one scenario and aggregate it into a result."""
        return aggregate(self.solve_state(project, scenario), self.settings)

    def solve_state(self, project: Project, scenario: Scenario) -> NetworkState:
        """
        Calculate one scenario.

        Raises:
            InvalidTopologyError: the cables do not form a valid radial tree
            InvalidInputError: unknown connection type or invalid distribution
        """
        scenario = Scenario.parse(scenario)
        tree = NetworkTree.build(project.nodes, project.cables, project.cable_types)
        balanced = project.load_model is LoadModel.BALANCED
        u_nom = project.voltage_system.nominal_voltage

        warnings = []
        if tree.disconnected:
            warnings.append(
                f"{len(tree.disconnected)} node(s) not connected to the source excluded: "
                + ", ".join(tree.disconnected)
            )

        node_power, totals = self._node_powers(project, tree, scenario, balanced, warnings)
        subtree_power = self._subtree_powers(tree, node_power)

        reference, forced, ref_warnings = select_reference_voltage(project, scenario)
        warnings.extend(ref_warnings)
        offset = 0.0
        if project.transformer is not None and not forced:
            net_s = float(np.sum(subtree_power[tree.root_id]))
            offset, _ = busbar_voltage_offset(project.transformer, net_s, project.cos_phi)
            offset *= u_nom / project.transformer.nominal_voltage_v
        source_voltage = reference + offset

        state = NetworkState(
            project=project,
            tree=tree,
            scenario=scenario,
            balanced=balanced,
            nominal_voltage_v=u_nom,
            reference_voltage_v=reference,
            source_voltage_v=source_voltage,
            busbar_offset_v=offset,
            node_power=node_power,
            subtree_power=subtree_power,
            total_loads_kva=totals[0],
            total_productions_kva=totals[1],
            warnings=warnings,
        )
        for message in warnings:
            logger.warning(message)

        if balanced:
            self._balanced_flows(state)
            state.voltages[tree.root_id] = source_voltage
        else:
            self._unbalanced_flows(state)
            state.phasors[tree.root_id] = balanced_set(source_voltage / math.sqrt(3))
        state.propagate(tree.root_id)

        logger.debug(
            "%s %s: source %.2fV (reference %.2fV, busbar %+.2fV)",
            scenario.value, "balanced" if balanced else "unbalanced",
            source_voltage, reference, offset
        )
        return state

    def _node_powers(self, project, tree, scenario, balanced, warnings):
        """Own net power of each connected node, scalar or per phase."""
        div_loads = project.diversity_loads / 100
        div_prods = project.diversity_productions / 100
        if not balanced:
            load_shares, prod_shares = phase_shares(project.imbalance_percent, project.manual_distribution)

        node_power = {}
        total_loads = total_prods = 0.0
        for node_id in tree.order:
            node = tree.nodes[node_id]
            if node.has_invalid_power:
                warnings.append(f"Node {node_id}: non-finite power value treated as 0")
            loads = node.load_kva * div_loads if scenario.includes_loads else 0.0
            prods = node.production_kva * div_prods if scenario.includes_productions else 0.0
            total_loads += loads
            total_prods += prods
            if balanced:
                node_power[node_id] = loads - prods
            else:
                node_power[node_id] = loads * load_shares - prods * prod_shares
        return node_power, (total_loads, total_prods)

    @staticmethod
    def _subtree_powers(tree, node_power):
        """Bottom-up sum of net power over each subtree."""
        subtree = {}
        for node_id in reversed(tree.order):
            total = node_power[node_id]
            for child in tree.children[node_id]:
                total = total + subtree[child]
            subtree[node_id] = total
        return subtree

    def _balanced_flows(self, state: NetworkState) -> None:
        project = state.project
        tree = state.tree
        for node_id in tree.order[1:]:
            cable = tree.parent_cable[node_id]
            cable_type = tree.cable_type_of(cable)
            connection = tree.nodes[node_id].connection_type
            length_km = cable.length / 1000
            s_kva = state.subtree_power[node_id]

            current = calculate_current(s_kva, connection)
            drop = calculate_voltage_drop(
                current, cable_type.r12_ohm_per_km, cable_type.x12_ohm_per_km,
                length_km, project.cos_phi, connection.is_three_phase
            )
            drop = math.copysign(drop, s_kva) if s_kva != 0 else 0.0
            phases = 3 if connection.is_three_phase else 1
            losses = phases * current ** 2 * cable_type.r12_ohm_per_km * length_km / 1000

            u_type = connection.base_voltage
            state.flows[node_id] = CableFlow(
                cable=cable,
                upstream_id=tree.parent[node_id],
                length_km=length_km,
                s_kva=s_kva,
                current_a=current,
                losses_kw=losses,
                drop_v=drop,
                drop_percent=drop / u_type * 100,
                drop_system_v=drop * state.nominal_voltage_v / u_type,
            )
            logger.debug(
                "cable %s: S=%.2fkVA I=%.2fA dU=%.3fV losses=%.4fkW",
                cable.id, s_kva, current, drop, losses
            )

    def _unbalanced_flows(self, state: NetworkState) -> None:
        project = state.project
        tree = state.tree
        has_neutral = project.voltage_system.has_neutral
        for node_id in tree.order[1:]:
            cable = tree.parent_cable[node_id]
            cable_type = tree.cable_type_of(cable)
            length_km = cable.length / 1000
            s_phase = state.subtree_power[node_id]

            currents = phase_current_phasors(s_phase, state.phase_voltage_v, project.cos_phi)
            z12 = cable_type.z12(length_km)
            drops = z12 * currents
            neutral = None
            losses = float(np.sum(np.abs(currents) ** 2)) * z12.real
            if has_neutral:
                i0 = complex(np.sum(currents)) / 3
                drops = drops + (cable_type.z0(length_km) - z12) * i0
                neutral = -3 * i0
                r_neutral = max(0.0, (cable_type.r0_ohm_per_km - cable_type.r12_ohm_per_km) / 3) * length_km
                losses += abs(neutral) ** 2 * r_neutral

            state.flows[node_id] = CableFlow(
                cable=cable,
                upstream_id=tree.parent[node_id],
                length_km=length_km,
                s_kva=float(np.sum(s_phase)),
                current_a=float(np.max(np.abs(currents))),
                losses_kw=losses / 1000,
                phase_currents=currents,
                phase_drops=drops,
                neutral_current=neutral,
            )
            logger.debug(
                "cable %s: I=%s A, IN=%s A",
                cable.id, np.round(np.abs(currents), 2),
                "n/a" if neutral is None else round(abs(neutral), 2)
            )
