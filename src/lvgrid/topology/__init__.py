"""
Topology Layer
==============

Input model of an LV network:
- Nodes with loads, productions and connection type
- Cable types (R12/X12, R0/X0) and routed cables
- MV/LV transformer
- Project settings and the validated radial tree
"""

from .node import (
    Client,
    ConnectionType,
    LoadModel,
    Node,
    Production,
    VoltageSystem,
    derive_connection_type,
)
from .cable import Cable, CablePose, CableType, DEFAULT_CABLE_TYPES, Material
from .transformer import HTVoltageConfig, TransformerConfig, TransformerRating
from .network import NetworkTree, PhaseDistribution, Project, Scenario

__all__ = [
    "Client", "ConnectionType", "LoadModel", "Node", "Production", "VoltageSystem",
    "derive_connection_type", "Cable", "CablePose", "CableType", "DEFAULT_CABLE_TYPES",
    "Material", "HTVoltageConfig", "TransformerConfig", "TransformerRating",
    "NetworkTree", "PhaseDistribution", "Project", "Scenario",
]
