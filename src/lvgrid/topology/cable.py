"""
Cable Model
===========

LV cable types (impedance reference data) and routed cable sections.

Impedances are given per km for two loops:
- direct / positive sequence (R12, X12): phase conductors
- zero sequence (R0, X0): neutral return path
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple
import math


EARTH_RADIUS_M = 6371000.0


class Material(Enum):
    """Conductor material."""
    COPPER = "CUIVRE"
    ALUMINIUM = "ALUMINIUM"


class CablePose(Enum):
    """Installation method."""
    AERIAL = "AÉRIEN"
    UNDERGROUND = "SOUTERRAIN"


@dataclass(frozen=True)
class CableType:
    """
    Cable type reference data.

    Attributes:
        id: Catalogue identifier
        label: Display label (e.g. "BAXB 95")
        r12_ohm_per_km: Phase resistance, direct loop
        x12_ohm_per_km: Phase reactance, direct loop
        r0_ohm_per_km: Zero-sequence resistance (neutral return)
        x0_ohm_per_km: Zero-sequence reactance (neutral return)
        material: Conductor material
        allowed_poses: Installation methods the type supports
    """
    id: str
    r12_ohm_per_km: float
    x12_ohm_per_km: float
    r0_ohm_per_km: float
    x0_ohm_per_km: float
    label: str = ""
    material: Material = Material.ALUMINIUM
    allowed_poses: Tuple[CablePose, ...] = (CablePose.AERIAL, CablePose.UNDERGROUND)

    def __post_init__(self):
        """Validate impedances."""
        values = (self.r12_ohm_per_km, self.x12_ohm_per_km, self.r0_ohm_per_km, self.x0_ohm_per_km)
        if any(not math.isfinite(v) or v < 0 for v in values):
            raise ValueError(f"cable type {self.id}: impedances must be finite and non-negative")
        object.__setattr__(self, "allowed_poses", tuple(self.allowed_poses))

    def z12(self, length_km: float) -> complex:
        """Phase loop impedance of a section (ohm)."""
        return complex(self.r12_ohm_per_km, self.x12_ohm_per_km) * length_km

    def z0(self, length_km: float) -> complex:
        """Neutral return impedance of a section (ohm)."""
        return complex(self.r0_ohm_per_km, self.x0_ohm_per_km) * length_km


def geodesic_distance_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance between two WGS84 points (meters)."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def polyline_length_m(coordinates: List[Tuple[float, float]]) -> float:
    """Length of a routed polyline of (lat, lng) points."""
    if not coordinates or len(coordinates) < 2:
        return 0.0
    return sum(
        geodesic_distance_m(a[0], a[1], b[0], b[1])
        for a, b in zip(coordinates[:-1], coordinates[1:])
    )


@dataclass(frozen=True)
class Cable:
    """
    Cable section between two nodes.

    Attributes:
        id: Cable identifier
        node_a_id: First end
        node_b_id: Second end
        type_id: Referenced CableType id
        name: Display name
        pose: Installation method
        coordinates: Routed polyline as (lat, lng) pairs
        length_m: Explicit length, overrides the routed length when set
    """
    id: str
    node_a_id: str
    node_b_id: str
    type_id: str
    name: str = ""
    pose: CablePose = CablePose.AERIAL
    coordinates: Tuple[Tuple[float, float], ...] = field(default_factory=tuple)
    length_m: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "coordinates", tuple(tuple(p) for p in self.coordinates))
        if self.length_m is not None and (not math.isfinite(self.length_m) or self.length_m < 0):
            raise ValueError(f"cable {self.id}: length_m must be finite and non-negative")

    @property
    def length(self) -> float:
        """Electrical length (meters)."""
        if self.length_m is not None:
            return self.length_m
        return polyline_length_m(list(self.coordinates))

    def other_end(self, node_id: str) -> str:
        """Node at the opposite end from node_id."""
        return self.node_b_id if node_id == self.node_a_id else self.node_a_id


DEFAULT_CABLE_TYPES: Dict[str, CableType] = {
    ct.id: ct for ct in [
        CableType("cu-10", 1.83, 0.09, 5.49, 0.27, "Cuivre 10", Material.COPPER, (CablePose.AERIAL,)),
        CableType("cu-16", 1.15, 0.09, 3.45, 0.27, "Cuivre 16", Material.COPPER, (CablePose.AERIAL,)),
        CableType("cu-25", 0.727, 0.08, 2.18, 0.24, "Cuivre 25", Material.COPPER, (CablePose.AERIAL,)),
        CableType("cu-4x35", 0.524, 0.08, 1.57, 0.24, "Cuivre 4x35", Material.COPPER, (CablePose.AERIAL,)),
        CableType("cu-50", 0.387, 0.08, 1.16, 0.24, "Cuivre 50", Material.COPPER, (CablePose.AERIAL,)),
        CableType("cu-70", 0.268, 0.07, 0.80, 0.21, "Cuivre 70", Material.COPPER, (CablePose.AERIAL,)),
        CableType("baxb-70", 0.519, 0.11, 2.515, 0.257, "BAXB 70", Material.ALUMINIUM, (CablePose.AERIAL,)),
        CableType("baxb-95", 0.383, 0.104, 2.379, 0.263, "BAXB 95", Material.ALUMINIUM, (CablePose.AERIAL,)),
        CableType("baxb-150", 0.244, 0.098, 1.805, 0.258, "BAXB 150", Material.ALUMINIUM, (CablePose.AERIAL,)),
        CableType("eaxecwb-4x150", 0.242, 0.069, 0.972, 0.273, "EAXeCWB 4x150",
                  Material.ALUMINIUM, (CablePose.UNDERGROUND,)),
    ]
}
