"""
Calculation Entry Points
========================

Functional front door of the library:
- calculate_scenario: one scenario from raw network collections
- calculate_with_simulation: one scenario with regulators/compensators
- calculate_all_scenarios: every scenario of a project
"""

from typing import Dict, Optional, Sequence
import logging

from .settings import DEFAULT_SETTINGS, SolverSettings
from .equipment.simulation import SimulationCalculator, SimulationEquipment, SimulationResult
from .solver.radial import RadialSolver
from .solver.results import CalculationResult
from .topology.cable import Cable, CableType
from .topology.network import PhaseDistribution, Project, Scenario
from .topology.node import LoadModel, Node, VoltageSystem
from .topology.transformer import HTVoltageConfig, TransformerConfig

logger = logging.getLogger(__name__)


def calculate_scenario(
    nodes: Sequence[Node],
    cables: Sequence[Cable],
    cable_types: Sequence[CableType],
    scenario: Scenario,
    diversity_loads: float = 100.0,
    diversity_productions: float = 100.0,
    transformer: Optional[TransformerConfig] = None,
    load_model: LoadModel = LoadModel.BALANCED,
    imbalance_percent: float = 0.0,
    manual_distribution: Optional[PhaseDistribution] = None,
    voltage_system: VoltageSystem = VoltageSystem.TETRAPHASE_400V,
    cos_phi: float = 0.95,
    ht_voltage: Optional[HTVoltageConfig] = None,
    forced_source_voltage_v: Optional[float] = None,
    settings: SolverSettings = DEFAULT_SETTINGS,
) -> CalculationResult:
    """
    Calculate one scenario of a radial network.

    Args:
        nodes: Network nodes, exactly one source
        cables: Cable sections forming a tree
        cable_types: Cable catalogue
        scenario: Scenario to evaluate
        diversity_loads: Load diversity factor (%)
        diversity_productions: Production diversity factor (%)
        transformer: Optional transformer for busbar coupling
        load_model: Balanced or phase-distributed
        imbalance_percent: Phase A overweight (phase-distributed model)
        manual_distribution: Explicit phase split (phase-distributed model)
        voltage_system: 3x230V or 400V 3P+N
        cos_phi: Power factor
        ht_voltage: MV measurement used to derive the source voltage
        forced_source_voltage_v: Source voltage of the FORCED scenario
        settings: Solver limits

    Returns:
        CalculationResult
    """
    project = Project(
        nodes=tuple(nodes),
        cables=tuple(cables),
        cable_types=tuple(cable_types),
        voltage_system=voltage_system,
        cos_phi=cos_phi,
        diversity_loads=diversity_loads,
        diversity_productions=diversity_productions,
        load_model=load_model,
        imbalance_percent=imbalance_percent,
        manual_distribution=manual_distribution,
        transformer=transformer,
        ht_voltage=ht_voltage,
        forced_source_voltage_v=forced_source_voltage_v,
    )
    return RadialSolver(settings).solve(project, Scenario.parse(scenario))


def calculate_with_simulation(
    project: Project,
    scenario: Scenario,
    equipment: SimulationEquipment,
    settings: SolverSettings = DEFAULT_SETTINGS,
) -> SimulationResult:
    """Calculate one scenario with voltage-regulation equipment."""
    return SimulationCalculator(settings).calculate_with_simulation(
        project, Scenario.parse(scenario), equipment
    )


def calculate_all_scenarios(
    project: Project,
    equipment: Optional[SimulationEquipment] = None,
    settings: SolverSettings = DEFAULT_SETTINGS,
) -> Dict[Scenario, CalculationResult]:
    """
    Calculate every scenario of a project.

    FORCED is only included when the project carries a forced source voltage.
    """
    scenarios = [Scenario.CONSUMPTION, Scenario.MIXED, Scenario.PRODUCTION]
    if project.forced_source_voltage_v is not None:
        scenarios.append(Scenario.FORCED)

    results = {}
    for scenario in scenarios:
        if equipment is not None and not equipment.is_empty:
            results[scenario] = calculate_with_simulation(project, scenario, equipment, settings)
        else:
            results[scenario] = RadialSolver(settings).solve(project, scenario)
        logger.info(
            "%s: max deviation %.2f%%, compliance %s",
            scenario.value, results[scenario].max_voltage_drop_percent, results[scenario].compliance.value
        )
    return results
