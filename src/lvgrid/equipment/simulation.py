"""
Equipment Simulation
====================

Layers voltage-regulation equipment on top of a baseline calculation:

    baseline → regulators (upstream first) → compensators (downstream first) → result

The baseline is solved once. Each device reads the current, already
adjusted network state. Misconfigured devices are skipped and reported
as warnings; with every device disabled the result equals the baseline.
"""

from dataclasses import dataclass, field, fields
from typing import List, Optional
import logging

from ..errors import EquipmentMisconfigurationError
from ..settings import DEFAULT_SETTINGS, SolverSettings
from ..solver.radial import RadialSolver
from ..solver.results import CalculationResult, aggregate
from ..topology.network import Project, Scenario
from .compensator import CompensatorConfig, CompensatorResult, apply_compensator
from .regulator import RegulatorConfig, RegulatorResult, apply_regulator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulationEquipment:
    """Equipment attached to the network for a simulation."""
    regulators: tuple = ()
    compensators: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "regulators", tuple(self.regulators))
        object.__setattr__(self, "compensators", tuple(self.compensators))

    @property
    def is_empty(self) -> bool:
        return not any(r.enabled for r in self.regulators) and not any(c.enabled for c in self.compensators)

    def to_dict(self) -> dict:
        return {
            "regulators": [
                {"id": r.id, "node_id": r.node_id, "enabled": r.enabled} for r in self.regulators
            ],
            "compensators": [
                {"id": c.id, "node_id": c.node_id, "enabled": c.enabled} for c in self.compensators
            ],
        }


@dataclass
class SimulationResult(CalculationResult):
    """
    Scenario result with equipment applied.

    Attributes:
        baseline_result: Same scenario without equipment
        is_simulation: Always True
        equipment: Equipment used
        regulator_results: One report per applied regulator
        compensator_results: One report per applied compensator
    """
    baseline_result: Optional[CalculationResult] = None
    is_simulation: bool = True
    equipment: Optional[SimulationEquipment] = None
    regulator_results: List[RegulatorResult] = field(default_factory=list)
    compensator_results: List[CompensatorResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "is_simulation": True,
            "equipment": self.equipment.to_dict() if self.equipment else None,
            "regulator_results": [r.to_dict() for r in self.regulator_results],
            "compensator_results": [c.to_dict() for c in self.compensator_results],
            "baseline_result": self.baseline_result.to_dict() if self.baseline_result else None,
        })
        return data


class SimulationCalculator:
    """
    Runs a scenario with regulators and compensators.

    Usage:
        calculator = SimulationCalculator()
        result = calculator.calculate_with_simulation(project, Scenario.MIXED, equipment)
    """

    def __init__(self, settings: SolverSettings = DEFAULT_SETTINGS):
        self.settings = settings
        self.solver = RadialSolver(settings)

    def calculate_with_simulation(
        self,
        project: Project,
        scenario: Scenario,
        equipment: SimulationEquipment
    ) -> SimulationResult:
        """
        Calculate a scenario with equipment.

        Args:
            project: Network project
            scenario: Scenario to evaluate
            equipment: Regulators and compensators

        Returns:
            SimulationResult embedding the baseline result
        """
        baseline_state = self.solver.solve_state(project, scenario)
        baseline = aggregate(baseline_state, self.settings)
        state = baseline_state.copy()

        regulator_results = []
        for config in self._upstream_first(state, [r for r in equipment.regulators if r.enabled]):
            try:
                regulator_results.append(apply_regulator(state, config))
            except EquipmentMisconfigurationError as exc:
                logger.warning("Regulator skipped: %s", exc)
                state.warnings.append(f"Regulator skipped: {exc}")

        compensator_results = []
        for config in self._downstream_first(state, [c for c in equipment.compensators if c.enabled]):
            try:
                result = apply_compensator(state, config, self.settings)
            except EquipmentMisconfigurationError as exc:
                logger.warning("Compensator skipped: %s", exc)
                state.warnings.append(f"Compensator skipped: {exc}")
                continue
            state.warnings.extend(f"Compensator {config.id}: {w}" for w in result.warnings)
            compensator_results.append(result)

        final = aggregate(state, self.settings)
        values = {f.name: getattr(final, f.name) for f in fields(CalculationResult)}
        return SimulationResult(
            **values,
            baseline_result=baseline,
            is_simulation=True,
            equipment=equipment,
            regulator_results=regulator_results,
            compensator_results=compensator_results,
        )

    @staticmethod
    def _upstream_first(state, configs):
        """Sort devices by depth of their node; unknown nodes last so they get reported."""
        def depth(config):
            if config.node_id in state.tree.nodes:
                return state.tree.depth(config.node_id)
            return float("inf")
        return sorted(configs, key=depth)

    @staticmethod
    def _downstream_first(state, configs):
        """Sort devices deepest node first; unknown nodes last so they get reported."""
        def key(config):
            if config.node_id in state.tree.nodes:
                return (0, -state.tree.depth(config.node_id))
            return (1, 0)
        return sorted(configs, key=key)
