from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, PositiveFloat, confloat, field_validator

from .equipment.compensator import CompensatorConfig
from .equipment.regulator import RegulatorConfig, RegulatorMode, RegulatorType, SwitchState
from .equipment.simulation import SimulationEquipment
from .topology.cable import DEFAULT_CABLE_TYPES, Cable, CablePose, CableType, Material
from .topology.network import PhaseDistribution, Project
from .topology.node import Client, ConnectionType, LoadModel, Node, Production, VoltageSystem
from .topology.transformer import HTVoltageConfig, TransformerConfig, TransformerRating


def _parse_enum(enum_cls, raw):
    """Enum member from its value or name (case-insensitive)."""
    if isinstance(raw, enum_cls):
        return raw
    key = str(raw).strip()
    for member in enum_cls:
        if key.upper() in (str(member.value).upper(), member.name.upper()):
            return member
    raise ValueError(f"unknown {enum_cls.__name__} {raw!r}")


class ClientSpec(BaseModel):
    id: str
    s_kva: float = Field(..., description="Apparent power (kVA).")
    label: str = ""


class NodeSpec(BaseModel):
    id: str
    name: str = ""
    lat: float = 0.0
    lng: float = 0.0
    connection_type: str = Field(
        ConnectionType.TETRA_3P_N_230_400V.value, description="MONO_230V_PP, TRI_230V_3F, MONO_230V_PN or TETRA_3P+N_230_400V."
    )
    clients: List[ClientSpec] = Field(default_factory=list)
    productions: List[ClientSpec] = Field(default_factory=list)
    is_source: bool = False
    target_voltage_v: Optional[float] = Field(None, description="Imposed source voltage (V).")

    @field_validator("connection_type")
    @classmethod
    def _known_connection(cls, v: str) -> str:
        return ConnectionType.parse(v).value

    def to_node(self) -> Node:
        return Node(
            id=self.id,
            name=self.name,
            lat=self.lat,
            lng=self.lng,
            connection_type=ConnectionType.parse(self.connection_type),
            clients=tuple(Client(c.id, c.s_kva, c.label) for c in self.clients),
            productions=tuple(Production(p.id, p.s_kva, p.label) for p in self.productions),
            is_source=self.is_source,
            target_voltage_v=self.target_voltage_v,
        )


class CableTypeSpec(BaseModel):
    id: str
    label: str = ""
    r12_ohm_per_km: confloat(ge=0)
    x12_ohm_per_km: confloat(ge=0)
    r0_ohm_per_km: confloat(ge=0)
    x0_ohm_per_km: confloat(ge=0)
    material: str = Material.ALUMINIUM.value
    allowed_poses: List[str] = Field(default_factory=lambda: [p.value for p in CablePose])

    def to_cable_type(self) -> CableType:
        return CableType(
            id=self.id,
            r12_ohm_per_km=self.r12_ohm_per_km,
            x12_ohm_per_km=self.x12_ohm_per_km,
            r0_ohm_per_km=self.r0_ohm_per_km,
            x0_ohm_per_km=self.x0_ohm_per_km,
            label=self.label,
            material=_parse_enum(Material, self.material),
            allowed_poses=tuple(_parse_enum(CablePose, p) for p in self.allowed_poses),
        )


class CableSpec(BaseModel):
    id: str
    node_a_id: str
    node_b_id: str
    type_id: str
    name: str = ""
    pose: str = CablePose.AERIAL.value
    coordinates: List[Tuple[float, float]] = Field(default_factory=list, description="Routed (lat, lng) points.")
    length_m: Optional[confloat(ge=0)] = Field(None, description="Explicit length, overrides the routed length.")

    def to_cable(self) -> Cable:
        return Cable(
            id=self.id,
            node_a_id=self.node_a_id,
            node_b_id=self.node_b_id,
            type_id=self.type_id,
            name=self.name,
            pose=_parse_enum(CablePose, self.pose),
            coordinates=tuple(self.coordinates),
            length_m=self.length_m,
        )


class TransformerSpec(BaseModel):
    nominal_power_kva: Optional[PositiveFloat] = Field(None, description="Rated power; taken from rating if omitted.")
    nominal_voltage_v: PositiveFloat = Field(400.0, description="Rated LV line voltage (V).")
    short_circuit_voltage_percent: confloat(ge=0) = Field(4.0, description="Ucc (%).")
    cos_phi: confloat(gt=0, le=1) = 0.95
    x_over_r: Optional[confloat(ge=0)] = Field(None, description="X/R ratio; purely reactive when omitted.")
    rating: Optional[str] = Field(None, description="160kVA, 250kVA, 400kVA or 630kVA.")

    def to_transformer(self) -> TransformerConfig:
        rating = _parse_enum(TransformerRating, self.rating) if self.rating else None
        power = self.nominal_power_kva or (rating.kva if rating else None)
        if power is None:
            raise ValueError("transformer needs nominal_power_kva or rating")
        return TransformerConfig(
            nominal_power_kva=power,
            nominal_voltage_v=self.nominal_voltage_v,
            short_circuit_voltage_percent=self.short_circuit_voltage_percent,
            cos_phi=self.cos_phi,
            x_over_r=self.x_over_r,
            rating=rating,
        )


class HTVoltageSpec(BaseModel):
    nominal_voltage_ht_v: float = 20000.0
    measured_voltage_ht_v: float = 20000.0
    nominal_voltage_bt_v: float = 400.0


class DistributionSpec(BaseModel):
    loads: Tuple[float, float, float] = (100 / 3, 100 / 3, 100 / 3)
    productions: Tuple[float, float, float] = (100 / 3, 100 / 3, 100 / 3)


class ProjectSpec(BaseModel):
    name: str = Field("Project", description="Project name.")
    voltage_system: str = Field(VoltageSystem.TETRAPHASE_400V.value, description="TRIPHASE_230V or TETRAPHASE_400V.")
    cos_phi: confloat(gt=0, le=1) = Field(0.95, description="Global power factor.")
    diversity_loads: confloat(ge=0, le=100) = Field(100.0, description="Load diversity factor (%).")
    diversity_productions: confloat(ge=0, le=100) = Field(100.0, description="Production diversity factor (%).")
    load_model: str = Field(LoadModel.BALANCED.value, description="Balanced or phase-distributed model.")
    imbalance_percent: confloat(ge=0, le=100) = Field(0.0, description="Phase A overweight (%).")
    manual_distribution: Optional[DistributionSpec] = None
    transformer: Optional[TransformerSpec] = None
    ht_voltage: Optional[HTVoltageSpec] = None
    forced_source_voltage_v: Optional[PositiveFloat] = None
    derive_connection_types: bool = Field(
        False, description="Replace node connection types by the ones implied by system and load model."
    )
    cable_types: List[CableTypeSpec] = Field(
        default_factory=list, description="Cable catalogue; merged over the default catalogue."
    )
    nodes: List[NodeSpec]
    cables: List[CableSpec] = Field(default_factory=list)

    @field_validator("voltage_system")
    @classmethod
    def _known_system(cls, v: str) -> str:
        return _parse_enum(VoltageSystem, v).value

    @field_validator("load_model")
    @classmethod
    def _known_model(cls, v: str) -> str:
        return _parse_enum(LoadModel, v).value

    def to_project(self) -> Project:
        catalogue: Dict[str, CableType] = dict(DEFAULT_CABLE_TYPES)
        catalogue.update({ct.id: ct.to_cable_type() for ct in self.cable_types})
        distribution = None
        if self.manual_distribution is not None:
            distribution = PhaseDistribution(
                loads=self.manual_distribution.loads,
                productions=self.manual_distribution.productions,
            )
        project = Project(
            nodes=tuple(n.to_node() for n in self.nodes),
            cables=tuple(c.to_cable() for c in self.cables),
            cable_types=tuple(catalogue.values()),
            voltage_system=_parse_enum(VoltageSystem, self.voltage_system),
            cos_phi=self.cos_phi,
            diversity_loads=self.diversity_loads,
            diversity_productions=self.diversity_productions,
            load_model=_parse_enum(LoadModel, self.load_model),
            imbalance_percent=self.imbalance_percent,
            manual_distribution=distribution,
            transformer=self.transformer.to_transformer() if self.transformer else None,
            ht_voltage=HTVoltageConfig(**self.ht_voltage.model_dump()) if self.ht_voltage else None,
            forced_source_voltage_v=self.forced_source_voltage_v,
            name=self.name,
        )
        if self.derive_connection_types:
            project = project.with_derived_connection_types()
        return project


class RegulatorSpec(BaseModel):
    id: str
    node_id: str
    name: str = ""
    enabled: bool = True
    regulator_type: Optional[str] = Field(None, description="SRG2-400 or SRG2-230; derived from the system if omitted.")
    mode: str = RegulatorMode.AUTO.value
    thresholds_v: Optional[Tuple[float, float, float, float]] = Field(None, description="LO2, LO1, BO1, BO2 (V).")
    coefficients_percent: Optional[Tuple[float, float, float, float]] = Field(None, description="LO2, LO1, BO1, BO2 (%).")
    set_point_v: PositiveFloat = 230.0
    hysteresis_v: confloat(ge=0) = 2.0
    dwell_time_s: confloat(ge=0) = 7.0
    max_injection_kva: confloat(ge=0) = 85.0
    max_consumption_kva: confloat(ge=0) = 110.0
    previous_state: Optional[str] = None
    manual_state: str = SwitchState.BYP.value

    def to_config(self) -> RegulatorConfig:
        return RegulatorConfig(
            id=self.id,
            node_id=self.node_id,
            regulator_type=_parse_enum(RegulatorType, self.regulator_type) if self.regulator_type else None,
            mode=_parse_enum(RegulatorMode, self.mode),
            thresholds_v=self.thresholds_v,
            coefficients_percent=self.coefficients_percent,
            set_point_v=self.set_point_v,
            hysteresis_v=self.hysteresis_v,
            dwell_time_s=self.dwell_time_s,
            max_injection_kva=self.max_injection_kva,
            max_consumption_kva=self.max_consumption_kva,
            previous_state=_parse_enum(SwitchState, self.previous_state) if self.previous_state else None,
            manual_state=_parse_enum(SwitchState, self.manual_state),
            enabled=self.enabled,
            name=self.name,
        )


class CompensatorSpec(BaseModel):
    id: str
    node_id: str
    name: str = ""
    enabled: bool = True
    max_power_kva: confloat(ge=0) = Field(50.0, description="Compensation capacity (kVA).")
    tolerance_a: confloat(ge=0) = Field(5.0, description="Idle below this neutral current (A).")

    def to_config(self) -> CompensatorConfig:
        return CompensatorConfig(
            id=self.id,
            node_id=self.node_id,
            max_power_kva=self.max_power_kva,
            tolerance_a=self.tolerance_a,
            enabled=self.enabled,
            name=self.name,
        )


class EquipmentSpec(BaseModel):
    regulators: List[RegulatorSpec] = Field(default_factory=list)
    compensators: List[CompensatorSpec] = Field(default_factory=list)

    def to_equipment(self) -> SimulationEquipment:
        return SimulationEquipment(
            regulators=tuple(r.to_config() for r in self.regulators),
            compensators=tuple(c.to_config() for c in self.compensators),
        )


def _read_json(path: str | Path) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Input JSON not found: {path}")
    return json.loads(p.read_text())


def load_project(path: str | Path) -> Project:
    return ProjectSpec.model_validate(_read_json(path)).to_project()


def load_equipment(path: str | Path) -> SimulationEquipment:
    return EquipmentSpec.model_validate(_read_json(path)).to_equipment()
