"""
Node Model
==========

Network nodes (supports, cabinets, delivery points) with their
connected loads and generators.

A node's electrical connection type is one of four variants crossing
the two LV systems (3x230V, 400V 3P+N) with the single/poly-phase
choice.
"""

from dataclasses import dataclass, field
from enum import Enum
import math
from typing import Optional, Tuple

from ..errors import InvalidInputError


class VoltageSystem(Enum):
    """LV distribution systems."""
    TRIPHASE_230V = "TRIPHASE_230V"      # 3 wires, 230V between phases
    TETRAPHASE_400V = "TETRAPHASE_400V"  # 3 phases + neutral, 230/400V

    @property
    def nominal_voltage(self) -> float:
        """Line (phase-to-phase) voltage."""
        return 400.0 if self is VoltageSystem.TETRAPHASE_400V else 230.0

    @property
    def phase_voltage(self) -> float:
        """Phase-to-(virtual) neutral voltage."""
        return self.nominal_voltage / math.sqrt(3)

    @property
    def has_neutral(self) -> bool:
        return self is VoltageSystem.TETRAPHASE_400V


class LoadModel(Enum):
    """How loads and generators are spread over the phases."""
    BALANCED = "polyphase_equilibre"
    PHASE_DISTRIBUTED = "monophase_reparti"


class ConnectionType(Enum):
    """Electrical connection of a node."""
    MONO_230V_PP = "MONO_230V_PP"                # single-phase between 2 phases (230V system)
    TRI_230V_3F = "TRI_230V_3F"                  # three-phase, 3 wires (230V system)
    MONO_230V_PN = "MONO_230V_PN"                # single-phase phase-neutral (400V system)
    TETRA_3P_N_230_400V = "TETRA_3P+N_230_400V"  # 3P+N (400V system)

    @classmethod
    def parse(cls, value) -> "ConnectionType":
        """Resolve an enum member from its value, tolerating accented spellings."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().upper().replace("É", "E")
            for member in cls:
                if normalized in (member.value, member.name):
                    return member
        raise InvalidInputError(f"Unknown connection type: {value!r}")

    @property
    def base_voltage(self) -> float:
        """Voltage the current formula divides by."""
        return 400.0 if self is ConnectionType.TETRA_3P_N_230_400V else 230.0

    @property
    def is_three_phase(self) -> bool:
        return self in (ConnectionType.TRI_230V_3F, ConnectionType.TETRA_3P_N_230_400V)

    @property
    def voltage_system(self) -> VoltageSystem:
        if self in (ConnectionType.MONO_230V_PP, ConnectionType.TRI_230V_3F):
            return VoltageSystem.TRIPHASE_230V
        return VoltageSystem.TETRAPHASE_400V


def derive_connection_type(
    voltage_system: VoltageSystem,
    load_model: LoadModel = LoadModel.BALANCED,
    is_source: bool = False
) -> ConnectionType:
    """
    Connection type implied by the project configuration.

    Sources always take the poly-phase type of their system; other nodes
    are single-phase in the phase-distributed model.
    """
    poly = load_model is LoadModel.BALANCED or is_source
    if voltage_system is VoltageSystem.TRIPHASE_230V:
        return ConnectionType.TRI_230V_3F if poly else ConnectionType.MONO_230V_PP
    return ConnectionType.TETRA_3P_N_230_400V if poly else ConnectionType.MONO_230V_PN


@dataclass(frozen=True)
class Client:
    """A consumer connected to a node."""
    id: str
    s_kva: float
    label: str = ""


@dataclass(frozen=True)
class Production:
    """A generator (typically PV) connected to a node."""
    id: str
    s_kva: float
    label: str = ""


@dataclass(frozen=True)
class Node:
    """
    Network node.

    Attributes:
        id: Node identifier
        name: Display name
        lat: Latitude (degrees)
        lng: Longitude (degrees)
        connection_type: Electrical connection of the node
        clients: Loads connected at the node
        productions: Generators connected at the node
        is_source: True for the transformer/busbar node (exactly one)
        target_voltage_v: Optional imposed voltage (only used on the source)
    """
    id: str
    name: str = ""
    lat: float = 0.0
    lng: float = 0.0
    connection_type: ConnectionType = ConnectionType.TETRA_3P_N_230_400V
    clients: Tuple[Client, ...] = field(default_factory=tuple)
    productions: Tuple[Production, ...] = field(default_factory=tuple)
    is_source: bool = False
    target_voltage_v: Optional[float] = None

    def __post_init__(self):
        """Normalize collections and resolve the connection type."""
        object.__setattr__(self, "clients", tuple(self.clients))
        object.__setattr__(self, "productions", tuple(self.productions))
        object.__setattr__(self, "connection_type", ConnectionType.parse(self.connection_type))

    @property
    def load_kva(self) -> float:
        """Sum of client apparent power (non-finite entries excluded)."""
        return sum(c.s_kva for c in self.clients if math.isfinite(c.s_kva))

    @property
    def production_kva(self) -> float:
        """Sum of production apparent power (non-finite entries excluded)."""
        return sum(p.s_kva for p in self.productions if math.isfinite(p.s_kva))

    @property
    def has_invalid_power(self) -> bool:
        return any(not math.isfinite(x.s_kva) for x in (*self.clients, *self.productions))
