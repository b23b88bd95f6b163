import pytest

from lvgrid.equipment import (
    CompensatorConfig,
    SimulationCalculator,
    SimulationEquipment,
    balance_phase_voltages,
)
from lvgrid.topology import LoadModel, PhaseDistribution, Scenario

from conftest import chain_project

EVEN = PhaseDistribution(loads=(33.3, 33.3, 33.4))


def _unbalanced(length_m=600.0, **kwargs):
    return chain_project([30.0], length_m=length_m, load_model=LoadModel.PHASE_DISTRIBUTED, **kwargs)


def _simulate(project, *compensators):
    equipment = SimulationEquipment(compensators=compensators)
    return SimulationCalculator().calculate_with_simulation(project, Scenario.CONSUMPTION, equipment)


def test_balance_phase_voltages_pulls_toward_mean():
    balanced = balance_phase_voltages([231.0, 229.0, 227.0], 0.2, 0.2)
    assert balanced == pytest.approx([230.0, 229.0, 228.0])
    assert balance_phase_voltages([230.0, 230.0, 230.0], 0.2, 0.2) == pytest.approx([230.0] * 3)
    assert balance_phase_voltages([231.0, 229.0, 227.0], 0.0, 0.0) == pytest.approx([231.0, 229.0, 227.0])


def test_full_compensation_cancels_neutral_current():
    project = _unbalanced(imbalance_percent=100)
    result = _simulate(project, CompensatorConfig("eq", "n1", max_power_kva=50.0))
    report = result.compensator_results[0]

    assert report.is_active
    assert not report.is_limited
    assert report.neutral_current_before_a == pytest.approx(0.5 * 30000 / (400 / 3 ** 0.5))
    assert report.neutral_current_after_a == pytest.approx(0.0)
    assert result.cable("k1").neutral_current_a == pytest.approx(0.0, abs=1e-6)
    assert result.baseline_result.cable("k1").neutral_current_a == pytest.approx(report.neutral_current_before_a)
    # Zph = 0.3 ohm, Zn = 0.2 ohm: the spread shrinks by Zn / (Zph + Zn)
    assert report.zph_ohm == pytest.approx(0.3)
    assert report.zn_ohm == pytest.approx(0.2)
    assert report.spread_after_v == pytest.approx(report.spread_before_v * 0.6)
    assert result.node("n1").phase_voltages_v == pytest.approx(report.voltages_after_v)
    assert report.warnings == []


def test_capacity_limit_leaves_residual_neutral_current():
    project = _unbalanced(imbalance_percent=100)
    report = _simulate(project, CompensatorConfig("eq", "n1", max_power_kva=5.0)).compensator_results[0]
    fraction = 5.0 / report.required_power_kva
    assert report.is_limited
    assert report.applied_power_kva == 5.0
    assert report.neutral_current_after_a == pytest.approx((1 - fraction) * report.neutral_current_before_a)
    assert report.spread_after_v == pytest.approx(report.spread_before_v * (1 - 0.4 * fraction))


def test_idle_below_tolerance():
    project = _unbalanced(manual_distribution=EVEN)
    result = _simulate(project, CompensatorConfig("eq", "n1", tolerance_a=5.0))
    report = result.compensator_results[0]
    assert not report.is_active
    assert report.voltages_after_v == report.voltages_before_v
    assert [n.voltage_v for n in result.nodes] == [n.voltage_v for n in result.baseline_result.nodes]


def test_low_impedance_is_reported():
    project = _unbalanced(length_m=100.0, imbalance_percent=100)
    result = _simulate(project, CompensatorConfig("eq", "n1"))
    assert result.compensator_results[0].warnings
    assert any("validity domain" in w for w in result.warnings)


def test_balanced_model_skips_compensator():
    project = chain_project([30.0])
    result = _simulate(project, CompensatorConfig("eq", "n1"))
    assert result.compensator_results == []
    assert any("Compensator skipped" in w for w in result.warnings)


def test_compensators_in_series_are_applied_downstream_first():
    project = chain_project([0.0, 30.0], length_m=600.0, load_model=LoadModel.PHASE_DISTRIBUTED, imbalance_percent=100)
    result = _simulate(project, CompensatorConfig("up", "n1"), CompensatorConfig("down", "n2"))
    down, up = result.compensator_results
    baseline_neutral = result.baseline_result.cable("k1").neutral_current_a

    assert (down.compensator_id, up.compensator_id) == ("down", "up")
    assert down.neutral_current_before_a == pytest.approx(baseline_neutral)
    assert down.neutral_current_after_a == pytest.approx(0.0)
    # the upstream unit only sees what is left after the downstream one
    assert up.neutral_current_before_a == pytest.approx(0.0, abs=1e-6)
    assert not up.is_active
    assert result.cable("k1").neutral_current_a == pytest.approx(0.0, abs=1e-6)
    assert result.cable("k2").neutral_current_a == pytest.approx(0.0, abs=1e-6)
    # the downstream node is pulled toward its mean only once
    assert result.node("n2").phase_voltages_v == pytest.approx(down.voltages_after_v)
