"""
Scenario Sweep Controller.

Solves the multi-year network once per node count in [min_nodes, max_nodes]
(stepping by `step`), adds warehouse and inventory cost to each plan, and
picks the best scenario. A scenario that fails is recorded with sentinel
KPIs (infinite cost, zero service) and the sweep moves on.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from typing import Any

import pulp

from netplan.baseline import BaselineProvider, resolve_baseline
from netplan.config.settings import OptimizationConfig
from netplan.errors import (
    ConfigurationError,
    NetplanError,
    NoSolutionError,
    UpstreamUnavailableError,
)
from netplan.estimators import (
    DefaultInventoryEstimator,
    DefaultWarehouseEstimator,
    InventoryEstimator,
    InventoryResult,
    WarehouseEstimator,
    WarehouseResult,
)
from netplan.network.core import (
    Bounds,
    CapacityMap,
    CostMatrix,
    DemandMap,
    Destination,
    Facility,
    ForecastRow,
    Sku,
)
from netplan.network.cost_matrix import (
    build_cost_matrix,
    unique_destinations,
    unique_facilities,
)
from netplan.network.geo import LocationResolver
from netplan.optimization.demand import demand_for_year
from netplan.optimization.multi_year import (
    HorizonContext,
    NetworkPlan,
    ordered_forecast,
    solve_horizon,
)
from netplan.optimization.scoring import ServiceScorer, make_scorer

logger = logging.getLogger(__name__)

TOTAL_COST = "total_cost"
SERVICE_THEN_COST = "service_then_cost"
CRITERIA = (TOTAL_COST, SERVICE_THEN_COST)


@dataclass(frozen=True)
class ScenarioKpis:
    total_transport_cost_all_years: float
    total_warehouse_cost_all_years: float
    total_inventory_cost_all_years: float
    total_network_cost_all_years: float
    service_level: float
    facilities_opened: int
    avg_cost_per_unit: float
    transport_baseline_all_years: float
    transport_savings: float
    transport_savings_percent: float
    meets_service_requirement: bool

    @classmethod
    def failed(cls, transport_baseline_all_years: float = 0.0) -> ScenarioKpis:
        return cls(
            total_transport_cost_all_years=math.inf,
            total_warehouse_cost_all_years=math.inf,
            total_inventory_cost_all_years=math.inf,
            total_network_cost_all_years=math.inf,
            service_level=0.0,
            facilities_opened=0,
            avg_cost_per_unit=math.inf,
            transport_baseline_all_years=transport_baseline_all_years,
            transport_savings=0.0,
            transport_savings_percent=0.0,
            meets_service_requirement=False,
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON form; infinite sentinel costs become null."""
        return {
            key: None if isinstance(value, float) and math.isinf(value) else value
            for key, value in asdict(self).items()
        }


@dataclass(frozen=True)
class Scenario:
    nodes: int
    plan: NetworkPlan
    warehouse: WarehouseResult
    inventory: InventoryResult
    kpis: ScenarioKpis
    facilities_used: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": self.nodes,
            "ok": True,
            "transport": self.plan.to_dict(),
            "warehouse": self.warehouse.to_dict(),
            "inventory": self.inventory.to_dict(),
            "kpis": self.kpis.to_dict(),
            "facilities_used": list(self.facilities_used),
        }


@dataclass(frozen=True)
class ScenarioFailure:
    nodes: int
    error: str
    error_type: str
    kpis: ScenarioKpis

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": self.nodes,
            "ok": False,
            "error": self.error,
            "error_type": self.error_type,
            "kpis": self.kpis.to_dict(),
        }


ScenarioOutcome = Scenario | ScenarioFailure


@dataclass(frozen=True)
class SweepSummary:
    scenarios_run: int
    successful_scenarios: int
    failed_scenarios: int
    best_scenario_nodes: int | None
    best_scenario_cost: float | None
    cost_range: tuple[float, float] | None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.cost_range is not None:
            data["cost_range"] = {"min": self.cost_range[0], "max": self.cost_range[1]}
        return data


@dataclass(frozen=True)
class SweepResult:
    scenarios: tuple[ScenarioOutcome, ...]
    best: Scenario | None
    summary: SweepSummary
    criterion: str
    transport_baseline: float
    transport_baseline_all_years: float
    baseline_fallback_used: bool
    cost_matrix: CostMatrix
    warehouse: WarehouseResult | None
    inventory: InventoryResult | None


@dataclass(frozen=True)
class _SweepInputs:
    """Read-only state shared by every scenario of one sweep."""

    config: OptimizationConfig
    cost_matrix: CostMatrix
    facilities: tuple[Facility, ...]
    mandatory: tuple[str, ...]
    forecast: tuple[ForecastRow, ...]
    baseline_demand: DemandMap | None
    peak_demand: float
    scorer: ServiceScorer
    transport_baseline_all_years: float
    warehouse: WarehouseResult | None
    inventory: InventoryResult | None
    estimator_error: NetplanError | None


def node_counts(min_nodes: int, max_nodes: int, step: int) -> list[int]:
    for label, value in (("minNodes", min_nodes), ("maxNodes", max_nodes), ("step", step)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(f"{label} must be an integer, got {value!r}")
    if min_nodes < 1:
        raise ConfigurationError(f"minNodes must be >= 1, got {min_nodes}")
    if max_nodes < min_nodes:
        raise ConfigurationError(f"maxNodes ({max_nodes}) must be >= minNodes ({min_nodes})")
    if step < 1:
        raise ConfigurationError(f"step must be >= 1, got {step}")
    return list(range(min_nodes, max_nodes + 1, step))


def select_candidates(
    candidates: tuple[str, ...] | list[str],
    nodes: int,
    mandatory: tuple[str, ...] | list[str],
    headroom: int,
) -> list[str]:
    """First `nodes + headroom` candidates plus any mandatory ones, in candidate order."""
    chosen = set(candidates[: nodes + headroom])
    chosen.update(m for m in mandatory if m in candidates)
    return [c for c in candidates if c in chosen]


def choose_anchor(subset: list[str], mandatory: tuple[str, ...] | list[str]) -> str:
    for name in subset:
        if name in mandatory:
            return name
    return subset[0]


def build_capacity(
    subset: list[str],
    anchor: str,
    peak_demand: float,
    fraction: float,
    explicit: CapacityMap | None = None,
) -> CapacityMap:
    """
    The anchor can carry the whole peak year alone; every other site a fraction of it.

    Capacities given explicitly for a facility replace the derived value.
    """
    explicit = explicit or {}
    return {
        f: explicit.get(f, peak_demand if f == anchor else peak_demand * fraction)
        for f in subset
    }


def mandatory_names(facilities: Sequence[Facility], configured: Sequence[str]) -> tuple[str, ...]:
    """Configured mandatory sites followed by any flagged on the facilities themselves."""
    names = list(configured)
    names.extend(f.name for f in facilities if f.mandatory and f.name not in names)
    return tuple(names)


def destination_shape(destinations: Sequence[Destination]) -> DemandMap | None:
    """Baseline demand from destination volumes, or None when none carries one."""
    if not any(d.demand > 0 for d in destinations):
        return None
    return {d.name: d.demand for d in destinations}


def select_best(
    scenarios: list[ScenarioOutcome] | tuple[ScenarioOutcome, ...], criterion: str
) -> Scenario | None:
    successful = [s for s in scenarios if isinstance(s, Scenario)]
    if not successful:
        return None
    if criterion == SERVICE_THEN_COST:
        def key(s: Scenario) -> tuple:
            return (-s.kpis.service_level, s.kpis.total_network_cost_all_years, s.nodes)
    else:
        def key(s: Scenario) -> tuple:
            return (s.kpis.total_network_cost_all_years, -s.kpis.service_level, s.nodes)
    return min(successful, key=key)


def summarize(
    scenarios: list[ScenarioOutcome] | tuple[ScenarioOutcome, ...], best: Scenario | None
) -> SweepSummary:
    costs = [s.kpis.total_network_cost_all_years for s in scenarios if isinstance(s, Scenario)]
    return SweepSummary(
        scenarios_run=len(scenarios),
        successful_scenarios=len(costs),
        failed_scenarios=len(scenarios) - len(costs),
        best_scenario_nodes=best.nodes if best else None,
        best_scenario_cost=best.kpis.total_network_cost_all_years if best else None,
        cost_range=(min(costs), max(costs)) if costs else None,
    )


def scale_baseline(baseline: float, forecast: list[ForecastRow] | tuple[ForecastRow, ...]) -> float:
    """Baseline spend grown with volume: each year is baseline * units / first-year units."""
    rows = sorted(forecast, key=lambda r: r.year)
    first = rows[0].annual_units
    if first <= 0:
        return baseline * len(rows)
    return sum(baseline * r.annual_units / first for r in rows)


def _facilities_used(plan: NetworkPlan, order: tuple[str, ...]) -> tuple[str, ...]:
    used = {f for y in plan.years for f in y.open_facilities}
    return tuple(f for f in order if f in used)


def _scenario_kpis(
    plan: NetworkPlan,
    warehouse: WarehouseResult,
    inventory: InventoryResult,
    baseline_all_years: float,
    service_requirement: float,
) -> ScenarioKpis:
    transport = plan.totals.total_transportation_cost
    total = transport + warehouse.total_cost + inventory.total_cost
    savings = baseline_all_years - transport
    service = plan.totals.weighted_service_level
    return ScenarioKpis(
        total_transport_cost_all_years=transport,
        total_warehouse_cost_all_years=warehouse.total_cost,
        total_inventory_cost_all_years=inventory.total_cost,
        total_network_cost_all_years=total,
        service_level=service,
        facilities_opened=plan.totals.facilities_opened_year1,
        avg_cost_per_unit=plan.totals.avg_cost_per_unit,
        transport_baseline_all_years=baseline_all_years,
        transport_savings=savings,
        transport_savings_percent=(
            savings / baseline_all_years * 100 if baseline_all_years > 0 else 0.0
        ),
        meets_service_requirement=service >= service_requirement - 1e-9,
    )


def _failure(nodes: int, exc: Exception, inputs: _SweepInputs) -> ScenarioFailure:
    logger.warning("Scenario %d nodes failed: %s: %s", nodes, type(exc).__name__, exc)
    return ScenarioFailure(
        nodes=nodes,
        error=str(exc),
        error_type=type(exc).__name__,
        kpis=ScenarioKpis.failed(inputs.transport_baseline_all_years),
    )


def _solve_scenario(nodes: int, inputs: _SweepInputs) -> Scenario:
    params = inputs.config.transportation
    subset = select_candidates(
        inputs.cost_matrix.facilities, nodes, inputs.mandatory, params.candidate_headroom
    )
    anchor = choose_anchor(subset, inputs.mandatory)
    capacity = build_capacity(
        subset,
        anchor,
        inputs.peak_demand,
        params.non_anchor_capacity_fraction,
        explicit={f.name: f.capacity for f in inputs.facilities if f.capacity is not None},
    )
    context = HorizonContext(
        bounds=Bounds.exactly(nodes),
        capacity=capacity,
        baseline_demand=inputs.baseline_demand,
        weights=params.weights,
        optimization=inputs.config.optimization,
        scorer=inputs.scorer,
        facilities=tuple(f for f in inputs.facilities if f.name in subset),
    )
    plan = solve_horizon(
        params, inputs.cost_matrix.subset(subset), list(inputs.forecast), context
    )

    kpis = _scenario_kpis(
        plan,
        inputs.warehouse,
        inputs.inventory,
        inputs.transport_baseline_all_years,
        params.service_level_requirement,
    )
    logger.info(
        "Scenario %d nodes: %s, total cost $%s, service %.1f%%",
        nodes,
        plan.policy,
        f"{kpis.total_network_cost_all_years:,.0f}",
        kpis.service_level * 100,
    )
    return Scenario(
        nodes=nodes,
        plan=plan,
        warehouse=inputs.warehouse,
        inventory=inputs.inventory,
        kpis=kpis,
        facilities_used=_facilities_used(plan, inputs.cost_matrix.facilities),
    )


def run_scenario(nodes: int, inputs: _SweepInputs) -> ScenarioOutcome:
    """Solve one node count; any failure is returned as a ScenarioFailure."""
    if inputs.estimator_error is not None:
        return _failure(nodes, inputs.estimator_error, inputs)
    try:
        return _solve_scenario(nodes, inputs)
    except NetplanError as exc:
        return _failure(nodes, exc, inputs)
    except pulp.PulpSolverError as exc:
        return _failure(nodes, NoSolutionError(f"CBC failed: {exc}"), inputs)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected error in scenario %d nodes", nodes)
        return _failure(nodes, exc, inputs)


def _run_estimators(
    config: OptimizationConfig,
    forecast: list[ForecastRow],
    skus: list[Sku],
    warehouse_estimator: WarehouseEstimator,
    inventory_estimator: InventoryEstimator,
) -> tuple[WarehouseResult | None, InventoryResult | None, NetplanError | None]:
    try:
        warehouse = warehouse_estimator.estimate(config, forecast, skus)
        inventory = inventory_estimator.estimate(config, forecast, skus)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Cost estimator failed: %s: %s", type(exc).__name__, exc)
        return None, None, UpstreamUnavailableError(
            f"Cost estimator failed ({type(exc).__name__}): {exc}"
        )
    return warehouse, inventory, None


def sweep(
    min_nodes: int,
    max_nodes: int,
    step: int,
    criterion: str,
    candidate_facilities: Sequence[Facility | str],
    destinations: Sequence[Destination | str],
    config: OptimizationConfig,
    forecast: list[ForecastRow],
    skus: list[Sku],
    *,
    baseline_provider: BaselineProvider | None = None,
    resolver: LocationResolver | None = None,
    warehouse_estimator: WarehouseEstimator | None = None,
    inventory_estimator: InventoryEstimator | None = None,
    baseline_demand: DemandMap | None = None,
    max_workers: int = 1,
) -> SweepResult:
    """
    Run one scenario per node count and pick the best.

    Input validation (node range, criterion, empty lists, forecast years,
    unresolvable locations) raises ConfigurationError before anything is
    solved. After that, per-scenario failures are recorded in the result and
    never raised.

    Candidates may be Facility objects carrying their own capacity, fixed
    cost and mandatory flag. Destination volumes, when given, are the demand
    shape unless baseline_demand is passed.
    """
    counts = node_counts(min_nodes, max_nodes, step)
    if criterion not in CRITERIA:
        raise ConfigurationError(f"criterion must be one of {list(CRITERIA)}, got {criterion!r}")
    if not candidate_facilities:
        raise ConfigurationError("candidateFacilities must not be empty")
    if not destinations:
        raise ConfigurationError("destinations must not be empty")
    if max_workers < 1:
        raise ConfigurationError(f"max_workers must be >= 1, got {max_workers}")
    forecast = ordered_forecast(list(forecast))
    facilities = unique_facilities(candidate_facilities)
    dests = unique_destinations(destinations)

    params = config.transportation
    mandatory = mandatory_names(facilities, params.mandatory_facilities)
    if baseline_demand is None:
        baseline_demand = destination_shape(dests)
    baseline, fallback_used = resolve_baseline(baseline_provider)
    cost_matrix = build_cost_matrix(facilities, dests, baseline, params, resolver=resolver)

    warehouse, inventory, estimator_error = _run_estimators(
        config,
        forecast,
        skus,
        warehouse_estimator or DefaultWarehouseEstimator(),
        inventory_estimator or DefaultInventoryEstimator(),
    )

    peak_demand = max(
        sum(
            demand_for_year(
                row.year, row.annual_units, cost_matrix.destinations, baseline_demand
            ).values()
        )
        for row in forecast
    )
    inputs = _SweepInputs(
        config=config,
        cost_matrix=cost_matrix,
        facilities=tuple(facilities),
        mandatory=mandatory,
        forecast=tuple(forecast),
        baseline_demand=baseline_demand,
        peak_demand=peak_demand,
        scorer=make_scorer(params.service_scoring, params.max_distance_miles),
        transport_baseline_all_years=scale_baseline(baseline, forecast),
        warehouse=warehouse,
        inventory=inventory,
        estimator_error=estimator_error,
    )

    logger.info(
        "Sweeping %d scenarios (%s) over %d candidates and %d destinations",
        len(counts),
        counts,
        len(cost_matrix.facilities),
        len(cost_matrix.destinations),
    )
    if max_workers > 1 and len(counts) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            outcomes = list(pool.map(lambda n: run_scenario(n, inputs), counts))
    else:
        outcomes = [run_scenario(n, inputs) for n in counts]

    best = select_best(outcomes, criterion)
    summary = summarize(outcomes, best)
    logger.info(
        "Sweep complete: %d/%d successful, best %s",
        summary.successful_scenarios,
        summary.scenarios_run,
        f"{best.nodes} nodes" if best else "none",
    )
    return SweepResult(
        scenarios=tuple(outcomes),
        best=best,
        summary=summary,
        criterion=criterion,
        transport_baseline=baseline,
        transport_baseline_all_years=inputs.transport_baseline_all_years,
        baseline_fallback_used=fallback_used,
        cost_matrix=cost_matrix,
        warehouse=warehouse,
        inventory=inventory,
    )
