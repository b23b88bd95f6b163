import math

import pytest

from lvgrid.solver import RadialSolver, imbalance_shares, phase_shares
from lvgrid.topology import LoadModel, PhaseDistribution, Scenario, VoltageSystem

from conftest import chain_project

EVEN = PhaseDistribution(loads=(33.3, 33.3, 33.4), productions=(33.3, 33.3, 33.4))
V_PH = 400 / math.sqrt(3)


def test_imbalance_shares():
    assert imbalance_shares(0) == pytest.approx([1 / 3, 1 / 3, 1 / 3])
    assert imbalance_shares(100) == pytest.approx([2 / 3, 1 / 6, 1 / 6])
    assert imbalance_shares(30).sum() == pytest.approx(1.0)


def test_manual_shares_take_precedence():
    loads, productions = phase_shares(80, PhaseDistribution(loads=(50, 25, 25), productions=(0, 0, 100)))
    assert loads == pytest.approx([0.5, 0.25, 0.25])
    assert productions == pytest.approx([0, 0, 1])


def test_balanced_distribution_has_negligible_neutral_current():
    project = chain_project(
        [10.0, 8.0, 12.0, 6.0, 9.0, 5.0],
        productions_kva=[0, 3.0, 0, 1.0, 0, 1.0],
        load_model=LoadModel.PHASE_DISTRIBUTED,
        manual_distribution=EVEN,
    )
    result = RadialSolver().solve(project, Scenario.MIXED)
    assert result.unbalanced
    for cable in result.cables:
        assert cable.neutral_current_a < 0.5


def test_models_agree_on_balanced_distribution(baxb95):
    kwargs = dict(length_m=150.0, cable_type=baxb95, cos_phi=0.95)
    balanced = RadialSolver().solve(chain_project([20.0, 20.0, 20.0], **kwargs), Scenario.CONSUMPTION)
    unbalanced = RadialSolver().solve(
        chain_project(
            [20.0, 20.0, 20.0],
            load_model=LoadModel.PHASE_DISTRIBUTED,
            manual_distribution=EVEN,
            **kwargs,
        ),
        Scenario.CONSUMPTION,
    )
    for b, u in zip(balanced.nodes, unbalanced.nodes):
        assert u.voltage_v == pytest.approx(b.voltage_v, abs=1.5)
    for b, u in zip(balanced.cables, unbalanced.cables):
        assert u.voltage_drop_percent == pytest.approx(b.voltage_drop_percent, abs=0.1)
        assert u.current_a == pytest.approx(b.current_a, rel=0.01)


def test_single_phase_load_sees_loop_impedance():
    project = chain_project(
        [10.0],
        cos_phi=1.0,
        load_model=LoadModel.PHASE_DISTRIBUTED,
        manual_distribution=PhaseDistribution(loads=(100, 0, 0)),
    )
    result = RadialSolver().solve(project, Scenario.CONSUMPTION)
    current = 10000 / V_PH
    node = result.node("n1")
    cable = result.cable("k1")

    # (2·R12 + R0) / 3 · L = (1.0 + 1.5) / 3 · 0.1
    assert node.phase_voltages_v["A"] == pytest.approx(V_PH - current * 0.25 / 3, abs=1e-6)
    assert node.phase_voltages_v["B"] > V_PH
    assert node.phase_voltages_v["C"] > V_PH
    assert cable.neutral_current_a == pytest.approx(current)
    assert cable.phase_currents_a["B"] == pytest.approx(0.0)
    assert cable.losses_kw == pytest.approx(current ** 2 * 0.25 / 3 / 1000)


def test_imbalance_drives_neutral_current():
    project = chain_project([30.0], load_model=LoadModel.PHASE_DISTRIBUTED, imbalance_percent=100)
    result = RadialSolver().solve(project, Scenario.CONSUMPTION)
    assert result.cable("k1").neutral_current_a == pytest.approx(0.5 * 30000 / V_PH)
    node = result.node("n1")
    assert node.phase_voltages_v["A"] < node.phase_voltages_v["B"]
    assert node.deviation_percent == pytest.approx((node.phase_voltages_v["A"] - V_PH) / V_PH * 100)


def test_phasors_start_from_symmetric_source():
    project = chain_project([5.0], load_model=LoadModel.PHASE_DISTRIBUTED)
    result = RadialSolver().solve(project, Scenario.CONSUMPTION)
    source = result.node("src")
    assert source.phase_angles_deg == pytest.approx({"A": 0.0, "B": -120.0, "C": 120.0})
    assert source.line_voltages_v["AB"] == pytest.approx(400.0)
    assert source.voltage_v == pytest.approx(400.0)


def test_three_wire_system_has_no_neutral():
    project = chain_project(
        [10.0],
        voltage_system=VoltageSystem.TRIPHASE_230V,
        load_model=LoadModel.PHASE_DISTRIBUTED,
        imbalance_percent=50,
    )
    result = RadialSolver().solve(project, Scenario.CONSUMPTION)
    cable = result.cable("k1")
    assert cable.neutral_current_a is None
    assert result.node("src").voltage_v == pytest.approx(230.0)
    assert result.node("n1").voltage_v < 230.0
