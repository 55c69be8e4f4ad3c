"""Tests for the scenario sweep controller and its reports."""

import json
import math
from dataclasses import replace

import pytest

from netplan.baseline import DEFAULT_TRANSPORT_BASELINE
from netplan.errors import ConfigurationError
from netplan.network.core import Destination, Facility, ForecastRow, Sku
from netplan.sweep import controller
from netplan.sweep.controller import (
    Scenario,
    ScenarioFailure,
    ScenarioKpis,
    build_capacity,
    choose_anchor,
    destination_shape,
    mandatory_names,
    node_counts,
    scale_baseline,
    select_best,
    select_candidates,
    sweep,
)
from netplan.sweep.report import scenario_dicts_to_frame, scenarios_to_frame, year_frame

SKUS = [Sku(sku="EDU-A", annual_volume=100.0, units_per_case=10, cases_per_pallet=10)]


def _sweep(
    config, resolver, min_nodes=1, max_nodes=3, forecast=None, step=1, criterion="total_cost", **kwargs
):
    return sweep(
        min_nodes,
        max_nodes,
        step,
        criterion,
        ["A", "B", "C"],
        ["X", "Y"],
        config,
        forecast or [ForecastRow(2025, 100.0)],
        SKUS,
        resolver=resolver,
        **kwargs,
    )


def _kpis(cost, service):
    return replace(ScenarioKpis.failed(), total_network_cost_all_years=cost, service_level=service)


def _scenario(nodes, cost, service):
    return Scenario(
        nodes=nodes,
        plan=None,
        warehouse=None,
        inventory=None,
        kpis=_kpis(cost, service),
        facilities_used=(),
    )


def test_node_counts():
    assert node_counts(1, 3, 1) == [1, 2, 3]
    assert node_counts(2, 7, 2) == [2, 4, 6]
    for bad in [(0, 3, 1), (3, 2, 1), (1, 3, 0), (1.5, 3, 1)]:
        with pytest.raises(ConfigurationError):
            node_counts(*bad)


def test_select_candidates_keeps_mandatory():
    candidates = ("A", "B", "C", "D", "E", "F")
    assert select_candidates(candidates, 1, (), 2) == ["A", "B", "C"]
    assert select_candidates(candidates, 1, ("F",), 2) == ["A", "B", "C", "F"]
    assert select_candidates(candidates, 5, ("Q",), 2) == list(candidates)


def test_capacity_map():
    subset = ["A", "B", "C"]
    assert choose_anchor(subset, ("C",)) == "C"
    assert choose_anchor(subset, ()) == "A"
    assert build_capacity(subset, "B", 1000.0, 0.8) == {"A": 800.0, "B": 1000.0, "C": 800.0}


def test_scale_baseline():
    forecast = [ForecastRow(2026, 1200.0), ForecastRow(2025, 1000.0)]
    assert scale_baseline(100.0, forecast) == pytest.approx(100.0 + 120.0)


def test_sweep_one_to_three_nodes(config, resolver):
    result = _sweep(config, resolver)

    assert [s.nodes for s in result.scenarios] == [1, 2, 3]
    assert all(isinstance(s, Scenario) for s in result.scenarios)
    for s in result.scenarios:
        assert s.kpis.facilities_opened == s.nodes
        assert "A" in s.facilities_used
        for year in s.plan.years:
            assert year.summary.facilities_opened == s.nodes
            assert "A" in year.open_facilities
            assert year.summary.total_demand_served == pytest.approx(100.0, rel=1e-6)

    assert result.summary.scenarios_run == 3
    assert result.summary.successful_scenarios == 3
    assert result.summary.failed_scenarios == 0
    assert result.best is not None
    assert result.summary.best_scenario_nodes == result.best.nodes
    low, high = result.summary.cost_range
    assert low == result.best.kpis.total_network_cost_all_years
    assert low <= high


def test_single_scenario_example(config, resolver):
    result = _sweep(config, resolver, 1, 1, forecast=[ForecastRow(2025, 1000.0)])

    assert len(result.scenarios) == 1
    scenario = result.scenarios[0]
    year = scenario.plan.years[0]
    assert sum(a.demand_served for a in year.allocations) == pytest.approx(1000.0, rel=1e-6)
    assert scenario.facilities_used == ("A",)


def test_kpis_combine_cost_sources(config, resolver):
    result = _sweep(config, resolver, 2, 2)
    s = result.scenarios[0]
    k = s.kpis

    assert k.total_network_cost_all_years == pytest.approx(
        k.total_transport_cost_all_years
        + k.total_warehouse_cost_all_years
        + k.total_inventory_cost_all_years
    )
    assert k.total_warehouse_cost_all_years == pytest.approx(result.warehouse.total_cost)
    assert k.transport_baseline_all_years == pytest.approx(DEFAULT_TRANSPORT_BASELINE)
    assert k.transport_savings == pytest.approx(
        k.transport_baseline_all_years - k.total_transport_cost_all_years
    )


def test_failed_scenario_does_not_abort_sweep(config, resolver):
    # Only three candidates exist, so four nodes cannot be opened
    result = _sweep(config, resolver, 2, 4)

    assert [s.nodes for s in result.scenarios] == [2, 3, 4]
    failure = result.scenarios[2]
    assert isinstance(failure, ScenarioFailure)
    assert failure.error_type == "InfeasibleError"
    assert math.isinf(failure.kpis.total_network_cost_all_years)
    assert failure.kpis.service_level == 0
    assert failure.kpis.facilities_opened == 0

    assert result.summary.failed_scenarios == 1
    assert result.best is not None and result.best.nodes in (2, 3)


def test_estimator_failure_fails_every_scenario(config, resolver):
    class BrokenEstimator:
        def estimate(self, config, forecast, skus):
            raise RuntimeError("estimator offline")

    result = _sweep(config, resolver, warehouse_estimator=BrokenEstimator())

    assert len(result.scenarios) == 3
    assert all(isinstance(s, ScenarioFailure) for s in result.scenarios)
    assert {s.error_type for s in result.scenarios} == {"UpstreamUnavailableError"}
    assert result.best is None
    assert result.summary.cost_range is None
    assert result.summary.best_scenario_nodes is None


def test_baseline_fallback_flagged(config, resolver):
    class DownProvider:
        def get(self):
            raise TimeoutError("no answer")

    result = _sweep(config, resolver, 1, 1, baseline_provider=DownProvider())
    assert result.baseline_fallback_used
    assert result.transport_baseline == DEFAULT_TRANSPORT_BASELINE
    assert result.summary.successful_scenarios == 1


def test_parallel_sweep_keeps_order(config, resolver):
    serial = _sweep(config, resolver)
    parallel = _sweep(config, resolver, max_workers=3)

    assert [s.nodes for s in parallel.scenarios] == [1, 2, 3]
    for a, b in zip(serial.scenarios, parallel.scenarios):
        assert a.kpis.total_network_cost_all_years == pytest.approx(
            b.kpis.total_network_cost_all_years
        )


@pytest.mark.parametrize(
    "kwargs",
    [
        {"criterion": "cheapest"},
        {"min_nodes": 3, "max_nodes": 2},
        {"step": 0},
        {"max_workers": 0},
    ],
)
def test_invalid_sweep_requests(config, resolver, kwargs):
    with pytest.raises(ConfigurationError):
        _sweep(config, resolver, **kwargs)


def test_selection_rule():
    cheap = _scenario(1, 100.0, 0.80)
    tie_better_service = _scenario(2, 100.0, 0.90)
    best_service = _scenario(3, 150.0, 0.99)
    failed = ScenarioFailure(nodes=4, error="x", error_type="InfeasibleError", kpis=ScenarioKpis.failed())
    scenarios = [cheap, tie_better_service, best_service, failed]

    assert select_best(scenarios, "total_cost") is tie_better_service
    assert select_best(scenarios, "service_then_cost") is best_service
    assert select_best([failed], "total_cost") is None


def test_selection_tie_prefers_fewer_nodes():
    a = _scenario(2, 100.0, 0.9)
    b = _scenario(3, 100.0, 0.9)
    assert select_best([b, a], "total_cost") is a


def test_scenario_frames(config, resolver):
    result = _sweep(config, resolver, 2, 4)
    frame = scenarios_to_frame(result.scenarios)

    assert list(frame.index) == [2, 3, 4]
    assert frame.loc[2, "ok"]
    assert not frame.loc[4, "ok"]
    assert frame.loc[4, "error"].startswith("InfeasibleError")

    from_json = scenario_dicts_to_frame([s.to_dict() for s in result.scenarios])
    assert list(from_json.index) == [2, 3, 4]
    assert from_json.loc[3, "policy"] == result.scenarios[1].plan.policy

    years = year_frame(result.scenarios[0])
    assert list(years.index) == [2025]
    assert years.loc[2025, "facilities_opened"] == 2


def test_failed_kpis_serialise_without_infinity():
    data = ScenarioKpis.failed().to_dict()
    assert data["total_network_cost_all_years"] is None
    assert data["facilities_opened"] == 0
    json.dumps(data, allow_nan=False)


def test_duplicate_forecast_years_rejected_before_solving(config, resolver):
    with pytest.raises(ConfigurationError):
        _sweep(config, resolver, forecast=[ForecastRow(2025, 100.0), ForecastRow(2025, 120.0)])


def test_unexpected_error_becomes_scenario_failure(config, resolver, monkeypatch):
    real_solve = controller.solve_horizon

    def flaky(params, matrix, forecast, context):
        if context.bounds.min_facilities == 3:
            raise RuntimeError("solver crashed")
        return real_solve(params, matrix, forecast, context)

    monkeypatch.setattr(controller, "solve_horizon", flaky)
    result = _sweep(config, resolver)

    assert [s.nodes for s in result.scenarios] == [1, 2, 3]
    failure = result.scenarios[2]
    assert isinstance(failure, ScenarioFailure)
    assert failure.error_type == "RuntimeError"
    assert result.summary.successful_scenarios == 2
    assert result.best is not None


def test_facility_entries_drive_mandatory_and_capacity(config, resolver):
    result = sweep(
        2,
        2,
        1,
        "total_cost",
        ["A", {"name": "B", "capacity": 1.0}, {"name": "C", "mandatory": True}],
        ["X", {"name": "Y", "demand": 5.0}],
        config,
        [ForecastRow(2025, 100.0)],
        SKUS,
        resolver=resolver,
    )
    scenario = result.scenarios[0]
    assert isinstance(scenario, Scenario)
    assert scenario.facilities_used == ("A", "C")


def test_mandatory_names_and_destination_shape():
    facilities = [Facility("A"), Facility("B", mandatory=True), Facility("C", mandatory=True)]
    assert mandatory_names(facilities, ["C"]) == ("C", "B")

    assert destination_shape([Destination("X"), Destination("Y")]) is None
    assert destination_shape([Destination("X", 3.0), Destination("Y")]) == {"X": 3.0, "Y": 0.0}
