import pytest

from lvgrid.equipment import (
    RegulatorConfig,
    RegulatorMode,
    RegulatorType,
    SimulationCalculator,
    SimulationEquipment,
    SwitchState,
    select_switch_state,
)
from lvgrid.equipment.regulator import REGULATOR_DEFAULTS
from lvgrid.errors import EquipmentMisconfigurationError
from lvgrid.topology import ConnectionType, LoadModel, Scenario, VoltageSystem

from conftest import chain_project

THRESHOLDS_400 = REGULATOR_DEFAULTS[RegulatorType.SRG2_400][0]
HIGH_SOURCE = {"target_voltage_v": 440.0}


def _simulate(project, *regulators, scenario=Scenario.CONSUMPTION):
    equipment = SimulationEquipment(regulators=regulators)
    return SimulationCalculator().calculate_with_simulation(project, scenario, equipment)


@pytest.mark.parametrize(
    "voltage, expected",
    [
        (250.0, SwitchState.LO2),
        (246.0, SwitchState.LO2),
        (240.0, SwitchState.LO1),
        (238.0, SwitchState.LO1),
        (230.0, SwitchState.BYP),
        (222.0, SwitchState.BO1),
        (215.0, SwitchState.BO1),
        (214.0, SwitchState.BO2),
        (200.0, SwitchState.BO2),
    ],
)
def test_switch_state_thresholds(voltage, expected):
    assert select_switch_state(voltage, THRESHOLDS_400) is expected


def test_hysteresis_keeps_previous_state():
    assert select_switch_state(237.0, THRESHOLDS_400) is SwitchState.BYP
    assert select_switch_state(237.0, THRESHOLDS_400, SwitchState.LO1, 2.0) is SwitchState.LO1
    assert select_switch_state(245.0, THRESHOLDS_400, SwitchState.LO2, 2.0) is SwitchState.LO2
    assert select_switch_state(243.0, THRESHOLDS_400, SwitchState.LO2, 2.0) is SwitchState.LO1
    assert select_switch_state(223.5, THRESHOLDS_400, SwitchState.BO1, 2.0) is SwitchState.BO1
    assert select_switch_state(236.0, THRESHOLDS_400, SwitchState.BO1, 2.0) is SwitchState.BYP


def test_defaults_follow_voltage_system():
    config = RegulatorConfig("r", "n1")
    assert config.resolved_type(VoltageSystem.TRIPHASE_230V) is RegulatorType.SRG2_230
    assert config.thresholds(VoltageSystem.TRIPHASE_230V) == (244.0, 237.0, 223.0, 216.0)
    assert config.coefficients(VoltageSystem.TETRAPHASE_400V)[SwitchState.LO2] == -7.0
    assert config.max_consumption_kva == 110.0
    assert config.max_injection_kva == 85.0


def test_thresholds_must_be_ordered():
    with pytest.raises(EquipmentMisconfigurationError):
        RegulatorConfig("r", "n1", thresholds_v=(238.0, 246.0, 222.0, 214.0))


def test_high_voltage_switches_to_full_buck():
    project = chain_project([1.0, 1.0], length_m=50.0, source_kwargs=HIGH_SOURCE)
    result = _simulate(project, RegulatorConfig("r1", "n1"))
    baseline = result.baseline_result
    report = result.regulator_results[0]

    assert report.states == {"A": SwitchState.LO2, "B": SwitchState.LO2, "C": SwitchState.LO2}
    assert report.is_active
    before = baseline.node("n1").voltage_v
    assert result.node("n1").voltage_v == pytest.approx(before * 0.93)
    assert result.node("n2").voltage_v == pytest.approx(baseline.node("n2").voltage_v - before * 0.07)
    # upstream of the regulator nothing moves
    assert result.node("src").voltage_v == baseline.node("src").voltage_v
    assert report.input_voltages_v["A"] == pytest.approx(before / 3 ** 0.5)


def test_regulators_apply_upstream_first():
    project = chain_project([1.0, 1.0], length_m=50.0, source_kwargs=HIGH_SOURCE)
    result = _simulate(project, RegulatorConfig("down", "n2"), RegulatorConfig("up", "n1"))
    assert [r.regulator_id for r in result.regulator_results] == ["up", "down"]
    # the downstream unit sees the already bucked voltage
    assert result.regulator_results[1].states["A"] is SwitchState.BYP


def test_power_limit_is_flagged_but_regulation_applies():
    project = chain_project([0.0, 120.0], length_m=10.0, source_kwargs=HIGH_SOURCE)
    report = _simulate(project, RegulatorConfig("r1", "n1")).regulator_results[0]
    assert report.power_limit_reached
    assert report.downstream_power_kva == pytest.approx(120.0)
    assert report.states["A"] is SwitchState.LO2

    injecting = chain_project([0.0, 0.0], productions_kva=[0.0, 90.0], length_m=10.0, source_kwargs=HIGH_SOURCE)
    report = _simulate(injecting, RegulatorConfig("r1", "n1"), scenario=Scenario.PRODUCTION).regulator_results[0]
    assert report.power_limit_reached


def test_regulator_on_source_or_missing_node_is_skipped():
    project = chain_project([5.0], source_kwargs=HIGH_SOURCE)
    result = _simulate(project, RegulatorConfig("bad", "src"), RegulatorConfig("ghost", "nowhere"))
    assert result.regulator_results == []
    assert sum("Regulator skipped" in w for w in result.warnings) == 2
    assert [n.voltage_v for n in result.nodes] == [n.voltage_v for n in result.baseline_result.nodes]


def test_manual_mode_uses_configured_state():
    project = chain_project([1.0], length_m=50.0)
    config = RegulatorConfig("r1", "n1", mode=RegulatorMode.MANUAL, manual_state=SwitchState.BO1)
    result = _simulate(project, config)
    assert result.node("n1").voltage_v == pytest.approx(result.baseline_result.node("n1").voltage_v * 1.035)


def test_230v_regulator_uses_phase_to_phase_voltage():
    project = chain_project(
        [1.0],
        length_m=50.0,
        connection_type=ConnectionType.TRI_230V_3F,
        voltage_system=VoltageSystem.TRIPHASE_230V,
        source_kwargs={"target_voltage_v": 250.0},
    )
    result = _simulate(project, RegulatorConfig("r1", "n1"))
    report = result.regulator_results[0]
    assert report.regulator_type is RegulatorType.SRG2_230
    assert report.states["A"] is SwitchState.LO2
    assert result.node("n1").voltage_v == pytest.approx(result.baseline_result.node("n1").voltage_v * 0.94)


def test_phase_neutral_regulator_switches_phases_independently():
    project = chain_project([30.0], length_m=300.0, load_model=LoadModel.PHASE_DISTRIBUTED, imbalance_percent=100)
    result = _simulate(project, RegulatorConfig("r1", "n1"))
    report = result.regulator_results[0]
    assert report.states == {"A": SwitchState.BO2, "B": SwitchState.BYP, "C": SwitchState.BYP}
    before = result.baseline_result.node("n1").phase_voltages_v
    after = result.node("n1").phase_voltages_v
    assert after["A"] == pytest.approx(before["A"] * 1.07)
    assert after["B"] == pytest.approx(before["B"])
