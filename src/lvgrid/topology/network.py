"""
Radial Network Topology
=======================

Assembles nodes, cables, cable types and the transformer into a
project, and validates it into a rooted tree:

    Transformer → Source node (busbar) → departing circuits → ... → leaves

The tree is rebuilt for every calculation; inputs are never mutated.
"""

from collections import deque
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import math

from ..errors import InvalidInputError, InvalidTopologyError
from .cable import Cable, CableType
from .node import ConnectionType, LoadModel, Node, VoltageSystem, derive_connection_type
from .transformer import HTVoltageConfig, TransformerConfig

logger = logging.getLogger(__name__)

PHASES = ("A", "B", "C")


class Scenario(Enum):
    """Load scenarios evaluated for a network."""
    CONSUMPTION = "CONSUMPTION"  # loads only
    MIXED = "MIXED"              # loads minus productions
    PRODUCTION = "PRODUCTION"    # productions only
    FORCED = "FORCED"            # mixed balance with a measured source voltage

    @classmethod
    def parse(cls, value) -> "Scenario":
        if isinstance(value, cls):
            return value
        aliases = {
            "PRELEVEMENT": cls.CONSUMPTION,
            "PRÉLÈVEMENT": cls.CONSUMPTION,
            "MIXTE": cls.MIXED,
            "FORCE": cls.FORCED,
            "FORCÉ": cls.FORCED,
        }
        key = str(value).strip().upper()
        if key in aliases:
            return aliases[key]
        try:
            return cls(key)
        except ValueError:
            raise InvalidInputError(f"Unknown scenario: {value!r}") from None

    @property
    def includes_loads(self) -> bool:
        return self is not Scenario.PRODUCTION

    @property
    def includes_productions(self) -> bool:
        return self is not Scenario.CONSUMPTION


@dataclass(frozen=True)
class PhaseDistribution:
    """
    Manual split of loads and productions over phases A/B/C (percent).

    Each group must sum to 100.
    """
    loads: Tuple[float, float, float] = (100 / 3, 100 / 3, 100 / 3)
    productions: Tuple[float, float, float] = (100 / 3, 100 / 3, 100 / 3)
    tolerance: float = 0.5

    def __post_init__(self):
        """Validate both groups."""
        for group, values in (("loads", self.loads), ("productions", self.productions)):
            if len(values) != 3:
                raise InvalidInputError(f"{group} distribution needs exactly 3 phases")
            if any(not math.isfinite(v) or v < 0 or v > 100 for v in values):
                raise InvalidInputError(f"{group} distribution values must be within 0-100%")
            if abs(sum(values) - 100) > self.tolerance:
                raise InvalidInputError(
                    f"{group} distribution must sum to 100%, got {sum(values):.2f}%"
                )
            object.__setattr__(self, group, tuple(float(v) for v in values))


@dataclass(frozen=True)
class Project:
    """
    Complete LV network project.

    Attributes:
        nodes: All nodes (exactly one source)
        cables: All cable sections
        cable_types: Cable catalogue used by the cables
        voltage_system: 3x230V or 400V 3P+N
        cos_phi: Global power factor
        diversity_loads: Diversity factor applied to loads (0-100%)
        diversity_productions: Diversity factor applied to productions (0-100%)
        load_model: Balanced or phase-distributed
        imbalance_percent: Phase A overweight in the phase-distributed model (0-100%)
        manual_distribution: Explicit phase split, overrides imbalance_percent
        transformer: MV/LV transformer (busbar coupling disabled when None)
        ht_voltage: Measured MV voltage used to derive the source voltage
        forced_source_voltage_v: Source voltage used by the FORCED scenario
        name: Project name
    """
    nodes: Tuple[Node, ...]
    cables: Tuple[Cable, ...]
    cable_types: Tuple[CableType, ...]
    voltage_system: VoltageSystem = VoltageSystem.TETRAPHASE_400V
    cos_phi: float = 0.95
    diversity_loads: float = 100.0
    diversity_productions: float = 100.0
    load_model: LoadModel = LoadModel.BALANCED
    imbalance_percent: float = 0.0
    manual_distribution: Optional[PhaseDistribution] = None
    transformer: Optional[TransformerConfig] = None
    ht_voltage: Optional[HTVoltageConfig] = None
    forced_source_voltage_v: Optional[float] = None
    name: str = "Project"

    def __post_init__(self):
        """Normalize collections and validate global settings."""
        object.__setattr__(self, "nodes", tuple(self.nodes))
        object.__setattr__(self, "cables", tuple(self.cables))
        object.__setattr__(self, "cable_types", tuple(self.cable_types))
        if not math.isfinite(self.cos_phi) or not (0 < self.cos_phi <= 1):
            raise InvalidInputError(f"cos_phi must be within (0, 1], got {self.cos_phi}")
        for label, value in (
            ("diversity_loads", self.diversity_loads),
            ("diversity_productions", self.diversity_productions),
            ("imbalance_percent", self.imbalance_percent),
        ):
            if not math.isfinite(value) or not (0 <= value <= 100):
                raise InvalidInputError(f"{label} must be within 0-100%, got {value}")

    @property
    def sin_phi(self) -> float:
        return math.sqrt(max(0.0, 1 - self.cos_phi ** 2))

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    @property
    def source(self) -> Optional[Node]:
        for node in self.nodes:
            if node.is_source:
                return node
        return None

    def with_derived_connection_types(self) -> "Project":
        """Copy whose node connection types follow the voltage system and load model."""
        nodes = tuple(
            replace(
                n,
                connection_type=derive_connection_type(self.voltage_system, self.load_model, n.is_source),
            )
            for n in self.nodes
        )
        return replace(self, nodes=nodes)


@dataclass
class NetworkTree:
    """
    Validated radial view of a project, rooted at the source node.

    Attributes:
        root_id: Source node id
        nodes: Connected nodes by id
        cable_types: Cable catalogue by id
        parent: Parent node id of each non-root node
        parent_cable: Cable feeding each non-root node
        children: Child node ids of each node
        order: Nodes in breadth-first order from the root
        circuit_of: 1-based number of the departing circuit containing each node
        disconnected: Nodes not reachable from the source
    """
    root_id: str
    nodes: Dict[str, Node]
    cable_types: Dict[str, CableType]
    parent: Dict[str, str] = field(default_factory=dict)
    parent_cable: Dict[str, Cable] = field(default_factory=dict)
    children: Dict[str, List[str]] = field(default_factory=dict)
    order: List[str] = field(default_factory=list)
    circuit_of: Dict[str, int] = field(default_factory=dict)
    disconnected: List[str] = field(default_factory=list)

    @property
    def root(self) -> Node:
        return self.nodes[self.root_id]

    @property
    def departures(self) -> List[str]:
        """Child nodes of the source, one per departing circuit."""
        return self.children.get(self.root_id, [])

    @property
    def cables(self) -> List[Cable]:
        """Cables in breadth-first order (parent side first)."""
        return [self.parent_cable[n] for n in self.order if n in self.parent_cable]

    def subtree(self, node_id: str) -> List[str]:
        """Node ids of the subtree rooted at node_id, breadth-first."""
        result = []
        queue = deque([node_id])
        while queue:
            current = queue.popleft()
            result.append(current)
            queue.extend(self.children.get(current, []))
        return result

    def path_from_root(self, node_id: str) -> List[str]:
        """Node ids from the root down to node_id (inclusive)."""
        path = [node_id]
        while path[-1] in self.parent:
            path.append(self.parent[path[-1]])
        return list(reversed(path))

    def depth(self, node_id: str) -> int:
        return len(self.path_from_root(node_id)) - 1

    def cable_type_of(self, cable: Cable) -> CableType:
        return self.cable_types[cable.type_id]

    @classmethod
    def build(
        cls,
        nodes: Sequence[Node],
        cables: Sequence[Cable],
        cable_types: Sequence[CableType]
    ) -> "NetworkTree":
        """
        Validate the topology and orient it from the source outward.

        Raises:
            InvalidTopologyError: no node, zero or several sources, duplicate ids,
                unknown node or cable type reference, self-loop or cycle
        """
        if not nodes:
            raise InvalidTopologyError("No node supplied for the calculation")

        node_map: Dict[str, Node] = {}
        for node in nodes:
            if node.id in node_map:
                raise InvalidTopologyError("Duplicate node id", node.id)
            node_map[node.id] = node

        sources = [n.id for n in nodes if n.is_source]
        if len(sources) != 1:
            raise InvalidTopologyError(
                f"Exactly one source node is required, found {len(sources)}"
                + (f": {', '.join(sources)}" if sources else "")
            )

        type_map = {ct.id: ct for ct in cable_types}
        adjacency: Dict[str, List[Cable]] = {nid: [] for nid in node_map}
        seen_cables = set()
        for cable in cables:
            if cable.id in seen_cables:
                raise InvalidTopologyError("Duplicate cable id", cable.id)
            seen_cables.add(cable.id)
            if cable.type_id not in type_map:
                raise InvalidTopologyError(f"Unknown cable type {cable.type_id!r}", cable.id)
            for end in (cable.node_a_id, cable.node_b_id):
                if end not in node_map:
                    raise InvalidTopologyError(f"Unknown node {end!r}", cable.id)
            if cable.node_a_id == cable.node_b_id:
                raise InvalidTopologyError("Cable connects a node to itself", cable.id)
            adjacency[cable.node_a_id].append(cable)
            adjacency[cable.node_b_id].append(cable)

        tree = cls(root_id=sources[0], nodes={}, cable_types=type_map)
        tree.nodes[tree.root_id] = node_map[tree.root_id]
        tree.children[tree.root_id] = []
        tree.order.append(tree.root_id)
        used_cables = set()

        queue = deque([tree.root_id])
        while queue:
            current = queue.popleft()
            for cable in adjacency[current]:
                if cable.id in used_cables:
                    continue
                used_cables.add(cable.id)
                neighbour = cable.other_end(current)
                if neighbour in tree.nodes:
                    raise InvalidTopologyError(
                        f"Cycle detected: node {neighbour!r} reached twice", cable.id
                    )
                tree.nodes[neighbour] = node_map[neighbour]
                tree.parent[neighbour] = current
                tree.parent_cable[neighbour] = cable
                tree.children[current].append(neighbour)
                tree.children[neighbour] = []
                tree.order.append(neighbour)
                if current == tree.root_id:
                    tree.circuit_of[neighbour] = len(tree.children[current])
                else:
                    tree.circuit_of[neighbour] = tree.circuit_of[current]
                queue.append(neighbour)

        tree.disconnected = [nid for nid in node_map if nid not in tree.nodes]
        _check_islands_acyclic([c for c in cables if c.id not in used_cables])
        if tree.disconnected:
            logger.warning(
                "%d node(s) not connected to the source are excluded: %s",
                len(tree.disconnected), ", ".join(tree.disconnected)
            )
        return tree


def _check_islands_acyclic(cables: Sequence[Cable]) -> None:
    """Reject cycles among cables that the source cannot reach."""
    group: Dict[str, str] = {}

    def find(node_id: str) -> str:
        group.setdefault(node_id, node_id)
        while group[node_id] != node_id:
            group[node_id] = group[group[node_id]]
            node_id = group[node_id]
        return node_id

    for cable in cables:
        a, b = find(cable.node_a_id), find(cable.node_b_id)
        if a == b:
            raise InvalidTopologyError("Cycle detected among nodes not connected to the source", cable.id)
        group[a] = b
