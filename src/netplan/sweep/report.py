"""Tabular views of sweep output."""

from typing import Any

import pandas as pd

from netplan.sweep.controller import Scenario, ScenarioOutcome

KPI_COLUMNS = [
    "total_transport_cost_all_years",
    "total_warehouse_cost_all_years",
    "total_inventory_cost_all_years",
    "total_network_cost_all_years",
    "service_level",
    "facilities_opened",
    "avg_cost_per_unit",
    "transport_savings",
    "transport_savings_percent",
    "meets_service_requirement",
]


def scenarios_to_frame(scenarios: list[ScenarioOutcome] | tuple[ScenarioOutcome, ...]) -> pd.DataFrame:
    """One row per scenario, indexed by node count, failures included."""
    records = []
    for s in scenarios:
        record: dict[str, Any] = {"nodes": s.nodes, "ok": isinstance(s, Scenario)}
        record.update({col: getattr(s.kpis, col) for col in KPI_COLUMNS})
        if isinstance(s, Scenario):
            record["policy"] = s.plan.policy
            record["facilities_used"] = ", ".join(s.facilities_used)
            record["error"] = None
        else:
            record["policy"] = None
            record["facilities_used"] = ""
            record["error"] = f"{s.error_type}: {s.error}"
        records.append(record)
    return pd.DataFrame.from_records(records).set_index("nodes")


def scenario_dicts_to_frame(scenarios: list[dict[str, Any]]) -> pd.DataFrame:
    """Same view built from the JSON form of a saved batch response."""
    records = []
    for s in scenarios:
        kpis = s.get("kpis", {})
        record: dict[str, Any] = {"nodes": s["nodes"], "ok": bool(s.get("ok", "error" not in s))}
        record.update({col: kpis.get(col) for col in KPI_COLUMNS})
        record["policy"] = s.get("transport", {}).get("policy")
        record["facilities_used"] = ", ".join(s.get("facilities_used", []))
        record["error"] = s.get("error")
        records.append(record)
    return pd.DataFrame.from_records(records).set_index("nodes")


def year_frame(scenario: Scenario) -> pd.DataFrame:
    """Per-year transport results for one scenario."""
    rows = [
        {
            "year": y.year,
            "open_facilities": ", ".join(y.open_facilities),
            "facilities_opened": y.summary.facilities_opened,
            "demand_served": y.summary.total_demand_served,
            "routing_cost": y.summary.routing_cost,
            "fixed_cost": y.summary.fixed_cost,
            "total_cost": y.summary.total_cost,
            "service_level": y.metrics.weighted_service_level,
            "avg_distance_miles": y.metrics.weighted_avg_distance_miles,
        }
        for y in scenario.plan.years
    ]
    return pd.DataFrame(rows).set_index("year")
