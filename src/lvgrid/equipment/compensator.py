"""
Neutral Compensator (EQUI8)
===========================

Shunt device that absorbs the neutral current of an unbalanced 3P+N
subtree and re-balances the phase-neutral voltages at its node.

Model:
    S_required = V_ph · |I_N| / 1000
    f          = min(1, S_max / S_required)
    |I_N'|     = (1 − f) · |I_N|
    U_p'       = U_p + f · Zn / (Zph + Zn) · (U_mean − U_p)

Zph and Zn are the phase and neutral path impedances from the source to
the node. The subtree below the node shifts by the same per-phase
deltas, and upstream cables carry the reduced neutral current.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging

import numpy as np

from ..errors import EquipmentMisconfigurationError
from ..settings import DEFAULT_SETTINGS, SolverSettings
from ..topology.network import PHASES
from ..solver.phasors import spread

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompensatorConfig:
    """
    EQUI8 compensator attached to a node.

    Attributes:
        id: Equipment identifier
        node_id: Installation node
        max_power_kva: Compensation capacity
        tolerance_a: Neutral current below which the device stays idle
        enabled: Disabled compensators are ignored
        name: Display name
    """
    id: str
    node_id: str
    max_power_kva: float = 50.0
    tolerance_a: float = 5.0
    enabled: bool = True
    name: str = ""

    def __post_init__(self):
        if self.max_power_kva < 0:
            raise EquipmentMisconfigurationError("max_power_kva must be non-negative", self.id)
        if self.tolerance_a < 0:
            raise EquipmentMisconfigurationError("tolerance_a must be non-negative", self.id)


@dataclass
class CompensatorResult:
    """
    Compensator outcome.

    Attributes:
        compensator_id: Equipment identifier
        node_id: Installation node
        is_active: Neutral current above tolerance
        is_limited: Required power above capacity
        neutral_current_before_a: Neutral current of the feeding cable
        neutral_current_after_a: Residual neutral current
        compensation_current_a: Neutral current absorbed by the device
        required_power_kva: Power needed for full compensation
        applied_power_kva: Power actually used
        voltages_before_v: Phase-neutral magnitudes before compensation
        voltages_after_v: Phase-neutral magnitudes after compensation
        spread_before_v: Highest minus lowest phase voltage before
        spread_after_v: Highest minus lowest phase voltage after
        zph_ohm: Phase path impedance from the source
        zn_ohm: Neutral path impedance from the source
        warnings: Validity-domain notes
    """
    compensator_id: str
    node_id: str
    is_active: bool
    is_limited: bool
    neutral_current_before_a: float
    neutral_current_after_a: float
    compensation_current_a: float
    required_power_kva: float
    applied_power_kva: float
    voltages_before_v: Dict[str, float]
    voltages_after_v: Dict[str, float]
    spread_before_v: float
    spread_after_v: float
    zph_ohm: float
    zn_ohm: float
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "compensator_id": self.compensator_id,
            "node_id": self.node_id,
            "is_active": self.is_active,
            "is_limited": self.is_limited,
            "neutral_current_before_a": self.neutral_current_before_a,
            "neutral_current_after_a": self.neutral_current_after_a,
            "compensation_current_a": self.compensation_current_a,
            "required_power_kva": self.required_power_kva,
            "applied_power_kva": self.applied_power_kva,
            "voltages_before_v": dict(self.voltages_before_v),
            "voltages_after_v": dict(self.voltages_after_v),
            "spread_before_v": self.spread_before_v,
            "spread_after_v": self.spread_after_v,
            "zph_ohm": self.zph_ohm,
            "zn_ohm": self.zn_ohm,
            "warnings": list(self.warnings),
        }


def balance_phase_voltages(magnitudes: np.ndarray, zph_ohm: float, zn_ohm: float, fraction: float = 1.0) -> np.ndarray:
    """Phase magnitudes pulled toward their mean by fraction·Zn/(Zph + Zn)."""
    magnitudes = np.asarray(magnitudes, dtype=float)
    total = zph_ohm + zn_ohm
    if total <= 0:
        return magnitudes.copy()
    pull = fraction * zn_ohm / total
    return magnitudes + pull * (magnitudes.mean() - magnitudes)


def path_impedances(state, node_id: str):
    """Phase and neutral impedance magnitudes from the source to node_id."""
    zph = 0j
    zn = 0j
    for member in state.tree.path_from_root(node_id)[1:]:
        flow = state.flows[member]
        cable_type = state.tree.cable_type_of(flow.cable)
        z12 = cable_type.z12(flow.length_km)
        zph += z12
        zn += (cable_type.z0(flow.length_km) - z12) / 3
    return abs(zph), abs(zn)


def apply_compensator(
    state,
    config: CompensatorConfig,
    settings: SolverSettings = DEFAULT_SETTINGS
) -> CompensatorResult:
    """
    Compensate the neutral current at the compensator node.

    The state is modified in place.

    Raises:
        EquipmentMisconfigurationError: not a phase-distributed 400V state,
            node missing, disconnected or source
    """
    if state.balanced or not state.project.voltage_system.has_neutral:
        raise EquipmentMisconfigurationError(
            "Neutral compensation requires the phase-distributed model on the 400V system", config.id
        )
    tree = state.tree
    if config.node_id not in tree.nodes:
        raise EquipmentMisconfigurationError(
            f"Compensator node {config.node_id!r} not found in the connected network", config.id
        )
    if config.node_id == tree.root_id:
        raise EquipmentMisconfigurationError("Compensator cannot be installed on the source node", config.id)

    flow = state.flows[config.node_id]
    neutral = flow.neutral_current or 0j
    neutral_a = abs(neutral)
    phasors = state.phasors[config.node_id]
    before = np.abs(phasors)
    zph, zn = path_impedances(state, config.node_id)

    warnings = []
    floor = settings.compensator_min_impedance_ohm
    if zph < floor or zn < floor:
        warnings.append(
            f"Impedances Zph={zph:.3f} ohm / Zn={zn:.3f} ohm below {floor} ohm, outside the validity domain"
        )
        logger.warning("Compensator %s: %s", config.id, warnings[-1])

    required = float(before.mean()) * neutral_a / 1000
    if neutral_a <= config.tolerance_a:
        return CompensatorResult(
            compensator_id=config.id,
            node_id=config.node_id,
            is_active=False,
            is_limited=False,
            neutral_current_before_a=neutral_a,
            neutral_current_after_a=neutral_a,
            compensation_current_a=0.0,
            required_power_kva=required,
            applied_power_kva=0.0,
            voltages_before_v=dict(zip(PHASES, before.tolist())),
            voltages_after_v=dict(zip(PHASES, before.tolist())),
            spread_before_v=spread(before),
            spread_after_v=spread(before),
            zph_ohm=zph,
            zn_ohm=zn,
            warnings=warnings,
        )

    is_limited = required > config.max_power_kva
    fraction = config.max_power_kva / required if is_limited else 1.0
    after = balance_phase_voltages(before, zph, zn, fraction)

    delta = (after - before) * np.exp(1j * np.angle(phasors))
    for member in tree.subtree(config.node_id):
        state.phasors[member] = state.phasors[member] + delta

    compensated = fraction * neutral
    for member in tree.path_from_root(config.node_id)[1:]:
        upstream = state.flows[member]
        upstream.neutral_current = (upstream.neutral_current or 0j) - compensated

    logger.info(
        "Compensator %s at %s: IN %.2fA -> %.2fA%s",
        config.id, config.node_id, neutral_a, (1 - fraction) * neutral_a,
        " (limited)" if is_limited else ""
    )
    return CompensatorResult(
        compensator_id=config.id,
        node_id=config.node_id,
        is_active=True,
        is_limited=is_limited,
        neutral_current_before_a=neutral_a,
        neutral_current_after_a=(1 - fraction) * neutral_a,
        compensation_current_a=fraction * neutral_a,
        required_power_kva=required,
        applied_power_kva=min(required, config.max_power_kva),
        voltages_before_v=dict(zip(PHASES, before.tolist())),
        voltages_after_v=dict(zip(PHASES, after.tolist())),
        spread_before_v=spread(before),
        spread_after_v=spread(after),
        zph_ohm=zph,
        zn_ohm=zn,
        warnings=warnings,
    )
