"""Tests for default loading and validated config merging."""

import pytest

from netplan.config.loader import load_optimization_defaults, load_request_defaults
from netplan.config.settings import merge_config
from netplan.errors import ConfigurationError


def test_documented_defaults():
    config = merge_config()
    t = config.transportation

    assert t.fixed_cost_per_facility == 250000
    assert t.cost_per_mile == 2.85
    assert t.service_level_requirement == 0.95
    assert t.max_distance_miles == 800
    assert t.max_facilities == 10
    assert t.mandatory_facilities == ("Littleton, MA",)
    assert t.lease_years == 7
    assert t.switching_cost_per_facility == 0
    assert t.weights.cost == 0.6
    assert t.weights.service_level == 0.4
    assert config.warehouse.operating_days == 260
    assert config.optimization.time_limit_seconds == 60
    assert config.inventory.service_level == 0.95


def test_override_merges_field_by_field():
    config = merge_config(
        {
            "transportation": {"cost_per_mile": 3.1, "weights": {"cost": 0.9}},
            "warehouse": {"DOH": 21},
        }
    )
    assert config.transportation.cost_per_mile == 3.1
    assert config.transportation.weights.cost == 0.9
    # untouched sibling keeps its default
    assert config.transportation.weights.service_level == 0.4
    assert config.transportation.fixed_cost_per_facility == 250000
    assert config.warehouse.doh == 21


def test_overrides_do_not_leak_between_merges():
    merge_config({"transportation": {"mandatory_facilities": ["Chicago, IL"]}})
    assert merge_config().transportation.mandatory_facilities == ("Littleton, MA",)


@pytest.mark.parametrize(
    "overrides",
    [
        {"shipping": {}},
        {"transportation": {"cost_per_kilometre": 1.0}},
        {"transportation": {"weights": {"speed": 1.0}}},
        {"transportation": {"cost_per_mile": "cheap"}},
        {"transportation": {"cost_per_mile": -1}},
        {"transportation": {"enforce_service_level": 1}},
        {"transportation": {"mandatory_facilities": "Littleton, MA"}},
        {"transportation": {"service_scoring": "sigmoid"}},
        {"transportation": {"service_level_requirement": 1.5}},
        {"warehouse": {"operating_days": 260.5}},
        {"warehouse": {"max_utilization": 0}},
        {"optimization": {"solver": "GUROBI"}},
        {"optimization": {"weights": {"cost": 1.0}}},
        {"transportation": {"required_facilities": 5, "max_facilities": 3}},
        {"transportation": True},
    ],
)
def test_invalid_overrides_rejected(overrides):
    with pytest.raises(ConfigurationError):
        merge_config(overrides)


def test_error_names_the_offending_option():
    with pytest.raises(ConfigurationError, match="transportation.lease_years"):
        merge_config({"transportation": {"lease_years": 0}})


def test_with_transportation_rebuilds_from_overrides():
    base = merge_config({"transportation": {"cost_per_mile": 3.0}})
    changed = base.with_transportation(lease_years=2)
    assert changed.transportation.lease_years == 2
    assert changed.transportation.cost_per_mile == 3.0
    assert base.transportation.lease_years == 7


def test_to_dict_is_json_ready():
    data = merge_config().to_dict()
    assert data["transportation"]["mandatory_facilities"] == ["Littleton, MA"]
    assert data["optimization"]["solver"] == "PULP_CBC"
    assert data["transportation"]["weights"] == {"cost": 0.6, "service_level": 0.4}


def test_request_defaults():
    defaults = load_request_defaults()
    assert defaults["scenario"]["criterion"] == "total_cost"
    assert [row["year"] for row in defaults["forecast"]] == [2025, 2026, 2027, 2028, 2029]
    assert defaults["forecast"][0]["annual_units"] == 13_000_000
    assert len(defaults["skus"]) == 5


def test_loader_rejects_non_object(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("[1, 2]")
    with pytest.raises(TypeError):
        load_optimization_defaults(str(path))
