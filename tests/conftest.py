"""Pytest configuration and shared network builders."""

from __future__ import annotations

import os
import sys

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from lvgrid.topology import (  # noqa: E402
    Cable,
    CableType,
    Client,
    ConnectionType,
    DEFAULT_CABLE_TYPES,
    LoadModel,
    Node,
    Production,
    Project,
    VoltageSystem,
)

TEST_CABLE = CableType("test", r12_ohm_per_km=0.5, x12_ohm_per_km=0.0, r0_ohm_per_km=1.5, x0_ohm_per_km=0.0)


def chain_project(
    loads_kva,
    length_m: float = 100.0,
    cable_type: CableType = TEST_CABLE,
    connection_type: ConnectionType = ConnectionType.TETRA_3P_N_230_400V,
    productions_kva=None,
    voltage_system: VoltageSystem = VoltageSystem.TETRAPHASE_400V,
    load_model: LoadModel = LoadModel.BALANCED,
    source_kwargs=None,
    **project_kwargs,
) -> Project:
    """Source followed by a chain of nodes n1..nN, one load per node."""
    productions_kva = productions_kva or [0.0] * len(loads_kva)
    source_type = (
        ConnectionType.TRI_230V_3F
        if voltage_system is VoltageSystem.TRIPHASE_230V
        else ConnectionType.TETRA_3P_N_230_400V
    )
    nodes = [Node("src", name="Source", connection_type=source_type, is_source=True, **(source_kwargs or {}))]
    cables = []
    previous = "src"
    for i, (load, prod) in enumerate(zip(loads_kva, productions_kva), start=1):
        node_id = f"n{i}"
        nodes.append(Node(
            node_id,
            connection_type=connection_type,
            clients=(Client(f"c{i}", load),) if load else (),
            productions=(Production(f"p{i}", prod),) if prod else (),
        ))
        cables.append(Cable(f"k{i}", previous, node_id, cable_type.id, length_m=length_m))
        previous = node_id
    return Project(
        nodes=tuple(nodes),
        cables=tuple(cables),
        cable_types=(cable_type,),
        voltage_system=voltage_system,
        load_model=load_model,
        **project_kwargs,
    )


@pytest.fixture
def baxb95() -> CableType:
    return DEFAULT_CABLE_TYPES["baxb-95"]


@pytest.fixture
def branched_project(baxb95) -> Project:
    """Source with two departing circuits, the first one branching."""
    nodes = (
        Node("src", is_source=True),
        Node("a1", clients=(Client("ca1", 12.0),)),
        Node("a2", clients=(Client("ca2", 9.0),), productions=(Production("pa2", 6.0),)),
        Node("a3", clients=(Client("ca3", 15.0),)),
        Node("b1", clients=(Client("cb1", 20.0),), productions=(Production("pb1", 36.0),)),
    )
    cables = (
        Cable("ka1", "src", "a1", baxb95.id, length_m=120.0),
        Cable("ka2", "a1", "a2", baxb95.id, length_m=80.0),
        Cable("ka3", "a3", "a1", baxb95.id, length_m=150.0),
        Cable("kb1", "src", "b1", baxb95.id, length_m=200.0),
    )
    return Project(nodes=nodes, cables=cables, cable_types=(baxb95,), cos_phi=0.95)
