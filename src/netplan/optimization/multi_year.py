"""
Multi-Year Orchestrator.

Runs the single-year solver across a forecast horizon under one of two
leasing policies:

* fixed_lease (lease_years >= horizon length): one open set is chosen for the
  whole horizon and every year is routed through exactly that set.
* year_by_year (lease_years < horizon length): each year re-optimizes its own
  open set. Facility changes between consecutive years are counted and
  charged at switching_cost_per_facility (0 unless configured).
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from netplan.config.settings import OptimizationParams, TransportParams, Weights
from netplan.errors import ConfigurationError
from netplan.network.core import (
    Bounds,
    CapacityMap,
    CostMatrix,
    DemandMap,
    Facility,
    ForecastRow,
)
from netplan.optimization.demand import demand_for_year
from netplan.optimization.scoring import ServiceScorer
from netplan.optimization.transport import (
    YearResult,
    default_bounds,
    select_horizon_facilities,
    solve_year,
)

logger = logging.getLogger(__name__)

FIXED_LEASE = "fixed_lease"
YEAR_BY_YEAR = "year_by_year"


@dataclass(frozen=True)
class HorizonContext:
    bounds: Bounds | None = None  # defaults to [required_facilities, max_facilities]
    capacity: CapacityMap | None = None
    baseline_demand: DemandMap | None = None
    demand_by_year: dict[int, DemandMap] | None = None
    weights: Weights | None = None  # defaults to the transportation weights
    optimization: OptimizationParams | None = None
    scorer: ServiceScorer | None = None
    facilities: tuple[Facility, ...] | None = None


@dataclass(frozen=True)
class HorizonTotals:
    total_transportation_cost: float
    total_demand: float
    weighted_service_level: float
    avg_cost_per_unit: float
    facilities_opened_year1: int
    facility_changes: int
    switching_cost: float


@dataclass(frozen=True)
class NetworkPlan:
    policy: str
    lease_years: int
    years: tuple[YearResult, ...]
    totals: HorizonTotals
    fixed_open: tuple[str, ...] | None = None

    @property
    def facilities_opened_by_year(self) -> dict[int, tuple[str, ...]]:
        return {y.year: y.open_facilities for y in self.years}

    def to_dict(self) -> dict[str, Any]:
        return {
            "policy": self.policy,
            "lease_years": self.lease_years,
            "fixed_open": list(self.fixed_open) if self.fixed_open is not None else None,
            "perYear": [y.to_dict() for y in self.years],
            "totals": asdict(self.totals),
        }


def choose_policy(lease_years: int, horizon_length: int) -> str:
    return FIXED_LEASE if lease_years >= horizon_length else YEAR_BY_YEAR


def count_facility_changes(years: list[YearResult] | tuple[YearResult, ...]) -> int:
    """Facilities opened or closed between consecutive years."""
    changes = 0
    for prev, curr in zip(years, years[1:]):
        changes += len(set(prev.open_facilities) ^ set(curr.open_facilities))
    return changes


def ordered_forecast(forecast: list[ForecastRow]) -> list[ForecastRow]:
    if not forecast:
        raise ConfigurationError("Forecast must contain at least one year")
    years = [row.year for row in forecast]
    if len(set(years)) != len(years):
        raise ConfigurationError(f"Forecast years must be unique, got {years}")
    return sorted(forecast, key=lambda row: row.year)


def _totals(years: list[YearResult], switching_cost: float, changes: int) -> HorizonTotals:
    total_cost = sum(y.summary.total_cost for y in years) + switching_cost
    total_demand = sum(y.summary.total_demand_served for y in years)
    if total_demand > 0:
        service = (
            sum(y.metrics.weighted_service_level * y.summary.total_demand_served for y in years)
            / total_demand
        )
    else:
        service = 1.0
    return HorizonTotals(
        total_transportation_cost=total_cost,
        total_demand=total_demand,
        weighted_service_level=service,
        avg_cost_per_unit=total_cost / total_demand if total_demand > 0 else 0.0,
        facilities_opened_year1=years[0].summary.facilities_opened,
        facility_changes=changes,
        switching_cost=switching_cost,
    )


def solve_horizon(
    params: TransportParams,
    cost_matrix: CostMatrix,
    forecast: list[ForecastRow],
    context: HorizonContext,
) -> NetworkPlan:
    """
    Solve every forecast year and aggregate the plan.

    Any year's InfeasibleError or NoSolutionError propagates; no year is
    skipped.
    """
    rows = ordered_forecast(forecast)
    weights = context.weights or params.weights
    bounds = context.bounds or default_bounds(params)
    policy = choose_policy(params.lease_years, len(rows))

    demands = [
        demand_for_year(
            row.year,
            row.annual_units,
            cost_matrix.destinations,
            context.baseline_demand,
            context.demand_by_year,
        )
        for row in rows
    ]

    fixed_open: tuple[str, ...] | None = None
    if policy == FIXED_LEASE:
        fixed_open = select_horizon_facilities(
            cost_matrix,
            demands,
            context.capacity,
            bounds,
            weights,
            params,
            optimization=context.optimization,
            scorer=context.scorer,
            facilities=context.facilities,
        )

    years: list[YearResult] = []
    for row, demand in zip(rows, demands):
        years.append(
            solve_year(
                cost_matrix,
                demand,
                context.capacity,
                bounds,
                weights,
                params,
                optimization=context.optimization,
                scorer=context.scorer,
                facilities=context.facilities,
                fixed_open=list(fixed_open) if fixed_open is not None else None,
                year=row.year,
            )
        )

    changes = count_facility_changes(years) if policy == YEAR_BY_YEAR else 0
    switching_cost = changes * params.switching_cost_per_facility
    totals = _totals(years, switching_cost, changes)

    logger.debug(
        "%s plan over %d years: total cost %.2f, service %.3f, %d facility changes",
        policy,
        len(years),
        totals.total_transportation_cost,
        totals.weighted_service_level,
        changes,
    )
    return NetworkPlan(
        policy=policy,
        lease_years=params.lease_years,
        years=tuple(years),
        totals=totals,
        fixed_open=fixed_open,
    )
