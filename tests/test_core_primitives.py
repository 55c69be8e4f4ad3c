import numpy as np
import pytest

from netplan.errors import ConfigurationError, MissingCostEntryError
from netplan.network.core import Bounds, CostMatrix, Destination, Facility, ForecastRow, Sku


def _matrix():
    return CostMatrix(
        facilities=("A", "B"),
        destinations=("X", "Y", "Z"),
        cost=np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]]),
        distance=np.array([[10.0, 20.0, 30.0], [40.0, 50.0, 60.0]]),
        baseline_reference=6_560_000.0,
    )


def test_facility_creation():
    facility = Facility(name="Littleton, MA", capacity=1_000_000, mandatory=True)
    assert facility.name == "Littleton, MA"
    assert facility.mandatory
    assert facility.fixed_cost is None

    default = Facility(name="Chicago, IL")
    assert default.capacity is None
    assert not default.mandatory

    with pytest.raises(ValueError):
        Facility(name="")


def test_destination_creation():
    dest = Destination(name="Boston, MA", demand=250.0)
    assert dest.demand == 250.0
    with pytest.raises(ValueError):
        Destination(name="")


def test_facility_parse():
    assert Facility.parse(" Chicago, IL ") == Facility("Chicago, IL")
    parsed = Facility.parse({"name": "Littleton, MA", "capacity": 500, "mandatory": True})
    assert parsed.capacity == 500.0
    assert parsed.mandatory
    assert parsed.fixed_cost is None

    for bad in ["", {"capacity": 5}, {"name": "A", "mandatory": "yes"},
                {"name": "A", "capacity": -1}, {"name": "A", "zone": 3}, 42]:
        with pytest.raises(ConfigurationError):
            Facility.parse(bad)


def test_destination_parse():
    assert Destination.parse("Boston, MA").demand == 0.0
    assert Destination.parse({"name": "Boston, MA", "demand": 40}).demand == 40.0
    with pytest.raises(ConfigurationError):
        Destination.parse({"name": "Boston, MA", "demand": "many"})


def test_bounds_validation():
    bounds = Bounds(min_facilities=1, max_facilities=3)
    assert bounds.max_facilities == 3
    assert Bounds.exactly(2) == Bounds(2, 2)

    with pytest.raises(ConfigurationError):
        Bounds(min_facilities=3, max_facilities=2)
    with pytest.raises(ConfigurationError):
        Bounds(min_facilities=0, max_facilities=2)


def test_forecast_row_from_dict():
    row = ForecastRow.from_dict({"year": "2026", "annual_units": 1500})
    assert row.year == 2026
    assert row.annual_units == 1500.0

    with pytest.raises(ConfigurationError):
        ForecastRow.from_dict({"year": 2026})
    with pytest.raises(ConfigurationError):
        ForecastRow.from_dict({"year": 2026, "annual_units": -5})


def test_sku_physics():
    sku = Sku.from_dict(
        {"sku": "EDU-A", "annual_volume": 5000, "units_per_case": 12, "cases_per_pallet": 40}
    )
    assert sku.units_per_pallet == 480

    with pytest.raises(ConfigurationError):
        Sku.from_dict({"sku": "EDU-B", "annual_volume": 1, "units_per_case": 0, "cases_per_pallet": 4})


def test_cost_matrix_lookup():
    m = _matrix()
    assert m.unit_cost("B", "Y") == 5.0
    assert m.miles("A", "Z") == 30.0
    assert m.has_facility("A")
    assert not m.has_facility("Q")

    with pytest.raises(MissingCostEntryError):
        m.unit_cost("Q", "X")
    with pytest.raises(MissingCostEntryError):
        m.miles("A", "Q")


def test_cost_matrix_is_read_only():
    m = _matrix()
    with pytest.raises(ValueError):
        m.cost[0, 0] = 99.0


def test_cost_matrix_shape_mismatch():
    with pytest.raises(ValueError):
        CostMatrix(
            facilities=("A",),
            destinations=("X", "Y"),
            cost=np.zeros((2, 2)),
            distance=np.zeros((1, 2)),
        )


def test_cost_matrix_subset_keeps_requested_order():
    m = _matrix()
    sub = m.subset(["B", "A"])
    assert sub.facilities == ("B", "A")
    assert np.array_equal(sub.cost, np.array([[4.0, 5.0, 6.0], [1.0, 2.0, 3.0]]))
    assert sub.baseline_reference == m.baseline_reference


def test_cost_matrix_to_dict():
    data = _matrix().to_dict()
    assert data["rows"] == ["A", "B"]
    assert data["cols"] == ["X", "Y", "Z"]
    assert data["cost"][1][2] == 6.0
