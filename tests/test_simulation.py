import json

from lvgrid import calculate_all_scenarios, calculate_with_simulation
from lvgrid.equipment import CompensatorConfig, RegulatorConfig, SimulationEquipment
from lvgrid.topology import LoadModel, Scenario

from conftest import chain_project


def test_disabled_equipment_leaves_baseline_untouched():
    project = chain_project(
        [20.0, 10.0], length_m=200.0, load_model=LoadModel.PHASE_DISTRIBUTED, imbalance_percent=60,
        source_kwargs={"target_voltage_v": 440.0},
    )
    equipment = SimulationEquipment(
        regulators=(RegulatorConfig("r1", "n1", enabled=False),),
        compensators=(CompensatorConfig("eq", "n2", enabled=False),),
    )
    result = calculate_with_simulation(project, Scenario.MIXED, equipment)
    baseline = result.baseline_result

    assert result.is_simulation
    assert equipment.is_empty
    assert result.regulator_results == [] and result.compensator_results == []
    assert [n.to_dict() for n in result.nodes] == [n.to_dict() for n in baseline.nodes]
    assert [c.to_dict() for c in result.cables] == [c.to_dict() for c in baseline.cables]


def test_regulator_then_compensator():
    project = chain_project(
        [30.0, 0.0], length_m=300.0, load_model=LoadModel.PHASE_DISTRIBUTED, imbalance_percent=100,
    )
    equipment = SimulationEquipment(
        regulators=(RegulatorConfig("r1", "n1"),),
        compensators=(CompensatorConfig("eq", "n2", tolerance_a=1.0),),
    )
    result = calculate_with_simulation(project, Scenario.CONSUMPTION, equipment)
    # nothing flows below n1, so the compensator at n2 stays idle on regulated voltages
    report = result.compensator_results[0]
    assert not report.is_active
    assert report.voltages_before_v["A"] == result.node("n2").phase_voltages_v["A"]
    assert result.node("n2").phase_voltages_v["A"] > result.baseline_result.node("n2").phase_voltages_v["A"]


def test_all_scenarios(branched_project):
    results = calculate_all_scenarios(branched_project)
    assert set(results) == {Scenario.CONSUMPTION, Scenario.MIXED, Scenario.PRODUCTION}
    assert results[Scenario.CONSUMPTION].total_productions_kva == 0


def test_all_scenarios_with_forced_voltage():
    project = chain_project([10.0], forced_source_voltage_v=405.0)
    results = calculate_all_scenarios(project)
    assert Scenario.FORCED in results
    assert results[Scenario.FORCED].source_voltage_v == 405.0


def test_simulation_result_is_json_serializable():
    project = chain_project([1.0], length_m=50.0, source_kwargs={"target_voltage_v": 440.0})
    equipment = SimulationEquipment(regulators=(RegulatorConfig("r1", "n1"),))
    data = calculate_with_simulation(project, Scenario.CONSUMPTION, equipment).to_dict()
    text = json.dumps(data)
    assert '"is_simulation": true' in text
    assert data["regulator_results"][0]["states"]["A"] == "LO2"
    assert data["baseline_result"]["scenario"] == "CONSUMPTION"
