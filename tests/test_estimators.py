"""Tests for the default warehouse and inventory estimators and baseline lookup."""

import math

import pytest
from scipy.stats import norm

from netplan.baseline import DEFAULT_TRANSPORT_BASELINE, DefaultBaselineProvider, resolve_baseline
from netplan.config.settings import merge_config
from netplan.errors import ConfigurationError
from netplan.estimators import DefaultInventoryEstimator, DefaultWarehouseEstimator
from netplan.network.core import ForecastRow, Sku

# 100 units per pallet; 260,000 units/year is 10 pallets per operating day
SKUS = [Sku(sku="EDU-A", annual_volume=1000.0, units_per_case=10, cases_per_pallet=10)]
FORECAST = [ForecastRow(2025, 260_000.0)]

PALLET_SQFT = 48 * 40 / 144
# 10 pallets/day * 14 days, four rack levels, 35% aisles
STORAGE_AREA = 140 * PALLET_SQFT / 4 / 0.65
GROSS_AREA = (STORAGE_AREA + 14_000) / 0.85


def test_warehouse_fits_initial_facility():
    result = DefaultWarehouseEstimator().estimate(merge_config(), FORECAST, SKUS)
    year = result.years[0]

    assert year.annual_pallets == pytest.approx(2600.0)
    assert year.daily_pallets == pytest.approx(10.0)
    assert year.storage_area_sqft == pytest.approx(STORAGE_AREA)
    assert year.gross_area_sqft == pytest.approx(GROSS_AREA)
    assert year.facilities_added == 0
    assert year.thirdparty_area_sqft == 0.0
    assert result.total_cost == pytest.approx(352_000 * 8.5)


def test_warehouse_adds_facilities_for_growth():
    config = merge_config(
        {"warehouse": {"initial_facility_area": 10_000, "facility_design_area": 5_000}}
    )
    result = DefaultWarehouseEstimator().estimate(config, FORECAST, SKUS)

    expected_added = math.ceil((GROSS_AREA - 10_000) / 5_000)
    assert result.facilities_added == expected_added
    assert result.years[0].owned_area_sqft == pytest.approx(10_000 + expected_added * 5_000)
    assert result.years[0].thirdparty_area_sqft == 0.0


def test_warehouse_overflows_to_third_party():
    config = merge_config(
        {
            "warehouse": {
                "initial_facility_area": 10_000,
                "facility_design_area": 5_000,
                "max_facilities": 1,
            }
        }
    )
    result = DefaultWarehouseEstimator().estimate(config, FORECAST, SKUS)
    overflow = GROSS_AREA - 15_000

    assert result.facilities_added == 1
    assert result.years[0].thirdparty_area_sqft == pytest.approx(overflow)
    assert result.total_cost == pytest.approx(15_000 * 8.5 + overflow * 12.0)


def test_warehouse_never_gives_back_facilities():
    config = merge_config(
        {"warehouse": {"initial_facility_area": 10_000, "facility_design_area": 5_000}}
    )
    forecast = [ForecastRow(2025, 2_600_000.0), ForecastRow(2026, 260_000.0)]
    result = DefaultWarehouseEstimator().estimate(config, forecast, SKUS)
    assert result.years[1].facilities_added == result.years[0].facilities_added


def test_warehouse_requires_inputs():
    with pytest.raises(ConfigurationError):
        DefaultWarehouseEstimator().estimate(merge_config(), FORECAST, [])
    with pytest.raises(ConfigurationError):
        DefaultWarehouseEstimator().estimate(merge_config(), [], SKUS)


def test_inventory_safety_and_cycle_stock():
    result = DefaultInventoryEstimator().estimate(merge_config(), FORECAST, SKUS)
    year = result.years[0]

    daily = 1000.0
    sigma_lead = 0.25 * daily * math.sqrt(14)
    safety = norm.ppf(0.95) * sigma_lead
    cycle = daily * 7

    assert year.daily_mean_demand == pytest.approx(daily)
    assert year.safety_stock_units == pytest.approx(safety)
    assert year.cycle_stock_units == pytest.approx(cycle)
    assert year.annual_holding_cost == pytest.approx((safety + cycle) * 2.5)
    assert result.total_cost == pytest.approx((safety + cycle) * 2.5)


def test_inventory_service_level_raises_safety_stock():
    low = DefaultInventoryEstimator().estimate(
        merge_config({"inventory": {"service_level": 0.9}}), FORECAST, SKUS
    )
    high = DefaultInventoryEstimator().estimate(
        merge_config({"inventory": {"service_level": 0.99}}), FORECAST, SKUS
    )
    assert high.years[0].safety_stock_units > low.years[0].safety_stock_units
    assert high.total_cost > low.total_cost


def test_inventory_peak_and_average():
    forecast = [ForecastRow(2025, 260_000.0), ForecastRow(2026, 520_000.0)]
    result = DefaultInventoryEstimator().estimate(merge_config(), forecast, SKUS)
    assert result.peak_inventory_units == pytest.approx(result.years[1].avg_inventory_units)
    assert result.avg_inventory_units == pytest.approx(
        (result.years[0].avg_inventory_units + result.years[1].avg_inventory_units) / 2
    )


class _BrokenProvider:
    def get(self):
        raise ConnectionError("baseline service down")


class _ZeroProvider:
    def get(self):
        return 0


def test_resolve_baseline():
    assert resolve_baseline(None) == (DEFAULT_TRANSPORT_BASELINE, False)
    assert resolve_baseline(DefaultBaselineProvider(7_000_000.0)) == (7_000_000.0, False)
    assert resolve_baseline(_BrokenProvider()) == (DEFAULT_TRANSPORT_BASELINE, True)
    assert resolve_baseline(_ZeroProvider()) == (DEFAULT_TRANSPORT_BASELINE, True)
