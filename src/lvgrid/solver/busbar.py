"""
Busbar Coupling
===============

Voltage offset at the transformer secondary (virtual busbar) caused by
the transformer series impedance and the net power of all departing
circuits.

    ΔU = √3 · I · (R·cosφ + X·sinφ),   I = |S_net| / (√3 · U)

Net consumption gives a drop (negative offset), net injection a rise.
The offset is a single scalar added to the source voltage; the per
circuit split is proportional to each circuit's share of net power and
is informational only.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
import math

from ..topology.network import Scenario
from ..topology.transformer import TransformerConfig


@dataclass(frozen=True)
class CircuitLoad:
    """Aggregated figures of one departing circuit."""
    circuit_id: str
    s_kva: float
    min_voltage_v: float = 0.0
    max_voltage_v: float = 0.0
    nodes_count: int = 0


@dataclass(frozen=True)
class BusbarCircuit:
    """Contribution of one departing circuit to the busbar offset."""
    circuit_id: str
    subtree_s_kva: float
    subtree_q_kvar: float
    direction: str  # "consumption" | "injection"
    current_a: float
    delta_u_v: float
    voltage_bus_v: float
    min_node_voltage_v: float
    max_node_voltage_v: float
    nodes_count: int

    def to_dict(self) -> dict:
        return {
            "circuit_id": self.circuit_id,
            "subtree_s_kva": self.subtree_s_kva,
            "subtree_q_kvar": self.subtree_q_kvar,
            "direction": self.direction,
            "current_a": self.current_a,
            "delta_u_v": self.delta_u_v,
            "voltage_bus_v": self.voltage_bus_v,
            "min_node_voltage_v": self.min_node_voltage_v,
            "max_node_voltage_v": self.max_node_voltage_v,
            "nodes_count": self.nodes_count,
        }


@dataclass(frozen=True)
class VirtualBusbar:
    """
    Busbar summary for one scenario.

    Attributes:
        scenario: Scenario the figures belong to
        voltage_v: Busbar line voltage after the offset
        current_a: Net line current through the transformer
        net_s_kva: Loads minus productions seen by the transformer
        delta_u_v: Offset applied to the busbar (negative = drop)
        delta_u_percent: Offset relative to the busbar voltage before the offset
        losses_kw: Transformer copper losses
        loading: Transformer loading summary
        neutral_current_a: Neutral current at the busbar (unbalanced 400V only)
        circuits: Per departing circuit split
    """
    scenario: Scenario
    voltage_v: float
    current_a: float
    net_s_kva: float
    delta_u_v: float
    delta_u_percent: float
    losses_kw: float
    loading: dict
    neutral_current_a: Optional[float] = None
    circuits: List[BusbarCircuit] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "scenario": self.scenario.value,
            "voltage_v": self.voltage_v,
            "current_a": self.current_a,
            "net_s_kva": self.net_s_kva,
            "delta_u_v": self.delta_u_v,
            "delta_u_percent": self.delta_u_percent,
            "losses_kw": self.losses_kw,
            "loading": dict(self.loading),
            "neutral_current_a": self.neutral_current_a,
            "circuits": [c.to_dict() for c in self.circuits],
        }


def busbar_voltage_offset(
    transformer: TransformerConfig,
    net_s_kva: float,
    cos_phi: float
) -> Tuple[float, float]:
    """
    Offset of the busbar voltage and net current.

    Args:
        transformer: Transformer providing the series impedance
        net_s_kva: Loads minus productions (positive = consumption)
        cos_phi: Power factor of the flow

    Returns:
        (delta_u_v, current_a); delta_u_v is negative for net consumption
    """
    if not math.isfinite(net_s_kva) or net_s_kva == 0:
        return 0.0, 0.0
    u_line = transformer.nominal_voltage_v
    sin_phi = math.sqrt(max(0.0, 1 - cos_phi ** 2))
    current = abs(net_s_kva) * 1000 / (math.sqrt(3) * u_line)
    delta_abs = math.sqrt(3) * current * (
        transformer.resistance_ohm * cos_phi + transformer.reactance_ohm * sin_phi
    )
    return (-delta_abs if net_s_kva > 0 else delta_abs), current


def compute_busbar_effect(
    transformer: TransformerConfig,
    circuits: Sequence[CircuitLoad],
    scenario: Scenario,
    cos_phi: float,
    source_s_kva: float = 0.0,
    reference_voltage_v: Optional[float] = None,
    neutral_current_a: Optional[float] = None,
    applied_offset_v: Optional[float] = None
) -> VirtualBusbar:
    """
    Virtual busbar summary.

    Args:
        transformer: MV/LV transformer
        circuits: Net power and voltage envelope of each departing circuit
        scenario: Scenario being evaluated
        cos_phi: Power factor of the flows
        source_s_kva: Net power connected directly at the source node
        reference_voltage_v: Busbar voltage before the offset
            (defaults to the transformer rated voltage)
        neutral_current_a: Neutral current at the busbar, when known
        applied_offset_v: Offset actually added to the reference voltage
            (system scale, zero when the busbar voltage is forced); computed
            from the transformer impedance when omitted

    Returns:
        VirtualBusbar with the offset and its per circuit split
    """
    net_s = source_s_kva + sum(c.s_kva for c in circuits)
    delta_u, current = busbar_voltage_offset(transformer, net_s, cos_phi)
    if applied_offset_v is not None:
        delta_u = applied_offset_v
    u_ref = reference_voltage_v if reference_voltage_v is not None else transformer.nominal_voltage_v
    u_bus = u_ref + delta_u
    sin_phi = math.sqrt(max(0.0, 1 - cos_phi ** 2))

    split = []
    for circuit in circuits:
        share = circuit.s_kva / net_s if net_s != 0 else 0.0
        split.append(BusbarCircuit(
            circuit_id=circuit.circuit_id,
            subtree_s_kva=circuit.s_kva,
            subtree_q_kvar=circuit.s_kva * sin_phi,
            direction="consumption" if circuit.s_kva >= 0 else "injection",
            current_a=abs(circuit.s_kva) * 1000 / (math.sqrt(3) * transformer.nominal_voltage_v),
            delta_u_v=delta_u * share,
            voltage_bus_v=u_bus,
            min_node_voltage_v=circuit.min_voltage_v,
            max_node_voltage_v=circuit.max_voltage_v,
            nodes_count=circuit.nodes_count,
        ))

    return VirtualBusbar(
        scenario=scenario,
        voltage_v=u_bus,
        current_a=current,
        net_s_kva=net_s,
        delta_u_v=delta_u,
        delta_u_percent=delta_u / u_ref * 100,
        losses_kw=transformer.get_copper_losses_kw(current),
        loading=transformer.get_loading(net_s),
        neutral_current_a=neutral_current_a,
        circuits=split,
    )
