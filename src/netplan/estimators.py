"""
Warehouse and inventory cost estimators.

The sweep consumes these through the WarehouseEstimator / InventoryEstimator
protocols. The defaults below are sizing estimates, not layout or
replenishment optimizers: they turn the forecast into annual space and
holding costs so that scenarios can be compared on total network cost.
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Protocol

import numpy as np
from scipy.stats import norm

from netplan.config.settings import OptimizationConfig
from netplan.errors import ConfigurationError
from netplan.network.core import ForecastRow, Sku

logger = logging.getLogger(__name__)

SQ_INCHES_PER_SQ_FOOT = 144.0


@dataclass(frozen=True)
class WarehouseYear:
    year: int
    annual_units: float
    annual_pallets: float
    daily_pallets: float
    storage_pallets: float
    storage_area_sqft: float
    gross_area_sqft: float
    facilities_added: int  # cumulative
    owned_area_sqft: float
    thirdparty_area_sqft: float
    total_cost_annual: float


@dataclass(frozen=True)
class WarehouseResult:
    years: tuple[WarehouseYear, ...]
    total_cost: float
    facilities_added: int
    peak_gross_area_sqft: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [asdict(y) for y in self.years],
            "optimization_summary": {
                "total_cost": self.total_cost,
                "total_facilities_added": self.facilities_added,
                "peak_gross_area_sqft": self.peak_gross_area_sqft,
            },
        }


@dataclass(frozen=True)
class InventoryYear:
    year: int
    daily_mean_demand: float
    lead_time_demand_std: float
    safety_stock_units: float
    cycle_stock_units: float
    avg_inventory_units: float
    annual_holding_cost: float


@dataclass(frozen=True)
class InventoryResult:
    years: tuple[InventoryYear, ...]
    total_cost: float
    avg_inventory_units: float
    peak_inventory_units: float
    service_level: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [asdict(y) for y in self.years],
            "total_cost": self.total_cost,
            "avg_inventory_units": self.avg_inventory_units,
            "peak_inventory_units": self.peak_inventory_units,
            "service_level": self.service_level,
        }


class WarehouseEstimator(Protocol):
    def estimate(
        self, config: OptimizationConfig, forecast: list[ForecastRow], skus: list[Sku]
    ) -> WarehouseResult: ...


class InventoryEstimator(Protocol):
    def estimate(
        self, config: OptimizationConfig, forecast: list[ForecastRow], skus: list[Sku]
    ) -> InventoryResult: ...


class DefaultWarehouseEstimator:
    """
    Space requirement and cost per forecast year.

    Forecast units are spread over the SKU mix in proportion to each SKU's
    annual volume, converted to pallets, held for `doh` days of supply, and
    racked at floor(ceiling / rack height) levels. Growth beyond the initial
    facility is met by adding design-size facilities (up to max_facilities);
    any remainder is leased from a third party.
    """

    def estimate(
        self, config: OptimizationConfig, forecast: list[ForecastRow], skus: list[Sku]
    ) -> WarehouseResult:
        if not forecast:
            raise ConfigurationError("Forecast must contain at least one year")
        if not skus:
            raise ConfigurationError("At least one SKU is required for warehouse sizing")
        p = config.warehouse

        volumes = np.array([s.annual_volume for s in skus], dtype=np.float64)
        units_per_pallet = np.array([s.units_per_pallet for s in skus], dtype=np.float64)
        base_units = float(volumes.sum())

        pallet_sqft = p.pallet_length_inches * p.pallet_width_inches / SQ_INCHES_PER_SQ_FOOT
        levels = max(1, math.floor(p.ceiling_height_inches / p.rack_height_inches))

        rows = []
        added = 0
        for f in sorted(forecast, key=lambda r: r.year):
            factor = f.annual_units / base_units if base_units > 0 else 1.0
            annual_pallets = float(np.sum(volumes * factor / units_per_pallet))
            daily_pallets = annual_pallets / p.operating_days
            storage_pallets = daily_pallets * p.doh
            storage_area = storage_pallets * pallet_sqft / levels / (1 - p.aisle_factor)
            gross_area = (storage_area + p.support_area) / p.max_utilization

            shortfall = max(0.0, gross_area - p.initial_facility_area)
            needed = math.ceil(shortfall / p.facility_design_area) if p.facility_design_area > 0 else 0
            # Added facilities are never given back within the horizon
            added = max(added, min(p.max_facilities, needed))
            owned_area = p.initial_facility_area + added * p.facility_design_area
            thirdparty_area = max(0.0, gross_area - owned_area)
            cost = owned_area * p.cost_per_sqft_annual + thirdparty_area * p.thirdparty_cost_per_sqft

            rows.append(
                WarehouseYear(
                    year=f.year,
                    annual_units=f.annual_units,
                    annual_pallets=annual_pallets,
                    daily_pallets=daily_pallets,
                    storage_pallets=storage_pallets,
                    storage_area_sqft=storage_area,
                    gross_area_sqft=gross_area,
                    facilities_added=added,
                    owned_area_sqft=owned_area,
                    thirdparty_area_sqft=thirdparty_area,
                    total_cost_annual=cost,
                )
            )

        result = WarehouseResult(
            years=tuple(rows),
            total_cost=sum(r.total_cost_annual for r in rows),
            facilities_added=added,
            peak_gross_area_sqft=max(r.gross_area_sqft for r in rows),
        )
        logger.info(
            "Warehouse estimate: %d facilities added, total cost $%s",
            result.facilities_added,
            f"{result.total_cost:,.0f}",
        )
        return result


class DefaultInventoryEstimator:
    """Safety stock at the configured service level plus half a lead time of cycle stock."""

    def estimate(
        self, config: OptimizationConfig, forecast: list[ForecastRow], skus: list[Sku]
    ) -> InventoryResult:
        if not forecast:
            raise ConfigurationError("Forecast must contain at least one year")
        p = config.inventory
        operating_days = config.warehouse.operating_days
        z = float(norm.ppf(p.service_level))

        rows_in = sorted(forecast, key=lambda r: r.year)
        annual = np.array([r.annual_units for r in rows_in], dtype=np.float64)
        daily = annual / operating_days
        sigma_lead = p.demand_cv * daily * math.sqrt(p.lead_time_days)
        safety = np.maximum(0.0, z * sigma_lead)
        cycle = daily * (p.lead_time_days / 2)
        avg_inventory = safety + cycle
        holding = avg_inventory * p.holding_cost_per_unit_per_year

        rows = tuple(
            InventoryYear(
                year=r.year,
                daily_mean_demand=float(daily[k]),
                lead_time_demand_std=float(sigma_lead[k]),
                safety_stock_units=float(safety[k]),
                cycle_stock_units=float(cycle[k]),
                avg_inventory_units=float(avg_inventory[k]),
                annual_holding_cost=float(holding[k]),
            )
            for k, r in enumerate(rows_in)
        )
        result = InventoryResult(
            years=rows,
            total_cost=float(holding.sum()),
            avg_inventory_units=float(avg_inventory.mean()),
            peak_inventory_units=float(avg_inventory.max()),
            service_level=p.service_level,
        )
        logger.info(
            "Inventory estimate: avg %s units, total holding cost $%s",
            f"{result.avg_inventory_units:,.0f}",
            f"{result.total_cost:,.0f}",
        )
        return result
