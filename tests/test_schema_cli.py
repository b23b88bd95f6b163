import json

import pytest
from pydantic import ValidationError

from lvgrid.cli import main
from lvgrid.schema import EquipmentSpec, ProjectSpec, load_project
from lvgrid.topology import ConnectionType, LoadModel, VoltageSystem


def _project_data(length_m=100.0, load_kva=10.0):
    return {
        "name": "Lotissement",
        "voltage_system": "TETRAPHASE_400V",
        "cos_phi": 0.95,
        "load_model": "polyphase_equilibre",
        "transformer": {"rating": "250kVA", "nominal_voltage_v": 400},
        "nodes": [
            {"id": "src", "is_source": True},
            {
                "id": "n1",
                "connection_type": "TÉTRA_3P+N_230_400V",
                "clients": [{"id": "c1", "s_kva": load_kva}],
                "productions": [{"id": "p1", "s_kva": 3.0}],
            },
        ],
        "cables": [
            {"id": "k1", "node_a_id": "src", "node_b_id": "n1", "type_id": "baxb-95", "length_m": length_m},
        ],
    }


def test_project_schema_builds_domain_project():
    project = ProjectSpec.model_validate(_project_data()).to_project()
    assert project.voltage_system is VoltageSystem.TETRAPHASE_400V
    assert project.load_model is LoadModel.BALANCED
    assert project.transformer.nominal_power_kva == 250
    assert project.get_node("n1").connection_type is ConnectionType.TETRA_3P_N_230_400V
    # default catalogue is available without declaring it
    assert "baxb-95" in {ct.id for ct in project.cable_types}


def test_derived_connection_types():
    data = _project_data()
    data.update(load_model="PHASE_DISTRIBUTED", derive_connection_types=True)
    project = ProjectSpec.model_validate(data).to_project()
    assert project.get_node("n1").connection_type is ConnectionType.MONO_230V_PN
    assert project.source.connection_type is ConnectionType.TETRA_3P_N_230_400V


def test_invalid_inputs_are_rejected():
    data = _project_data()
    data["nodes"][1]["connection_type"] = "QUADRI_500V"
    with pytest.raises(ValidationError):
        ProjectSpec.model_validate(data)
    data = _project_data()
    data["cos_phi"] = 1.5
    with pytest.raises(ValidationError):
        ProjectSpec.model_validate(data)


def test_equipment_schema():
    equipment = EquipmentSpec.model_validate({
        "regulators": [{"id": "r1", "node_id": "n1", "previous_state": "LO1", "mode": "MANUAL"}],
        "compensators": [{"id": "e1", "node_id": "n1", "max_power_kva": 30}],
    }).to_equipment()
    assert equipment.regulators[0].previous_state.value == "LO1"
    assert equipment.regulators[0].mode.value == "MANUEL"
    assert equipment.compensators[0].max_power_kva == 30


def test_load_project_from_file(tmp_path):
    path = tmp_path / "project.json"
    path.write_text(json.dumps(_project_data()))
    assert load_project(path).name == "Lotissement"


def test_cli_writes_results(tmp_path):
    project = tmp_path / "project.json"
    output = tmp_path / "results.json"
    project.write_text(json.dumps(_project_data()))

    code = main(["run", str(project), "--output", str(output)])
    assert code == 0
    payload = json.loads(output.read_text())
    assert set(payload["results"]) == {"CONSUMPTION", "MIXED", "PRODUCTION"}
    assert payload["results"]["MIXED"]["virtual_busbar"]["circuits"][0]["circuit_id"] == "k1"


def test_cli_single_scenario_with_equipment(tmp_path):
    project = tmp_path / "project.json"
    equipment = tmp_path / "equipment.json"
    output = tmp_path / "results.json"
    project.write_text(json.dumps(_project_data()))
    equipment.write_text(json.dumps({"regulators": [{"id": "r1", "node_id": "n1"}]}))

    code = main(["run", str(project), "-s", "mixte", "-e", str(equipment), "-o", str(output)])
    assert code == 0
    payload = json.loads(output.read_text())
    assert payload["results"]["MIXED"]["is_simulation"] is True


def test_cli_exit_codes(tmp_path):
    critical = tmp_path / "critical.json"
    critical.write_text(json.dumps(_project_data(length_m=1000.0, load_kva=63.0)))
    assert main(["run", str(critical), "--scenario", "CONSUMPTION"]) == 1

    assert main(["run", str(tmp_path / "missing.json")]) == 2

    broken = _project_data()
    broken["nodes"][0]["is_source"] = False
    invalid = tmp_path / "invalid.json"
    invalid.write_text(json.dumps(broken))
    assert main(["run", str(invalid)]) == 2
