"""
Single-Year Network Solver.

Chooses which candidate facilities to open and how to split each
destination's demand across them, as a mixed-integer program solved with
CBC through PuLP. Decision variables are a binary open flag per facility and
the fraction of each destination's demand routed through each facility
(flow = share * demand), which keeps coefficients well scaled for large
annual volumes.

The same model is reused, with one share block per year and shared open
flags, to choose a single open set for a whole lease horizon.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass
from typing import Any

import pulp

from netplan.config.settings import OptimizationParams, TransportParams, Weights
from netplan.errors import ConfigurationError, InfeasibleError, NoSolutionError
from netplan.network.core import Bounds, CapacityMap, CostMatrix, DemandMap, Facility
from netplan.optimization.scoring import ServiceScorer, make_scorer

logger = logging.getLogger(__name__)

DEFAULT_SOLVER = "PULP_CBC"
DEFAULT_TIME_LIMIT_SECONDS = 60.0
DEFAULT_TIE_BREAK_EPSILON = 1e-6

# optimization.solver -> factory(time_limit_seconds)
SOLVERS: dict[str, Callable[[float], pulp.LpSolver]] = {
    "PULP_CBC": lambda time_limit: pulp.PULP_CBC_CMD(msg=False, timeLimit=time_limit),
}
# Relative tolerance used when checking solved flows against capacity
CAPACITY_TOLERANCE = 1e-6
MIN_REPORTED_UNITS = 1e-9


@dataclass(frozen=True)
class Assignment:
    facility: str
    destination: str
    units: float
    unit_cost: float
    distance_miles: float
    service_score: float

    @property
    def cost(self) -> float:
        return self.units * self.unit_cost


@dataclass(frozen=True)
class FacilityAllocation:
    facility: str
    demand_served: float
    destinations_served: tuple[str, ...]
    capacity: float
    utilization: float
    cost: float  # routing + fixed
    cost_per_unit: float


@dataclass(frozen=True)
class YearSummary:
    status: str
    objective_value: float
    solve_time_seconds: float
    facilities_opened: int
    total_demand_served: float
    routing_cost: float
    fixed_cost: float
    total_cost: float


@dataclass(frozen=True)
class YearMetrics:
    weighted_service_level: float
    avg_cost_per_unit: float
    weighted_avg_distance_miles: float
    avg_facility_utilization: float
    network_utilization: float
    demand_within_service_limit: float
    total_capacity_available: float
    meets_service_requirement: bool


@dataclass(frozen=True)
class YearResult:
    year: int
    open_facilities: tuple[str, ...]
    assignments: tuple[Assignment, ...]
    allocations: tuple[FacilityAllocation, ...]
    summary: YearSummary
    metrics: YearMetrics

    def served_by_destination(self) -> dict[str, float]:
        served: dict[str, float] = {}
        for a in self.assignments:
            served[a.destination] = served.get(a.destination, 0.0) + a.units
        return served

    def to_dict(self) -> dict[str, Any]:
        def _finite(value: float) -> float | None:
            return value if math.isfinite(value) else None

        return {
            "year": self.year,
            "open_facilities": list(self.open_facilities),
            "optimization_summary": asdict(self.summary),
            "network_metrics": asdict(self.metrics),
            "facility_allocation": [
                {
                    **asdict(alloc),
                    "destinations_served": list(alloc.destinations_served),
                    "capacity": _finite(alloc.capacity),
                }
                for alloc in self.allocations
            ],
            "route_details": [
                {
                    "origin": a.facility,
                    "destination": a.destination,
                    "demand": a.units,
                    "distance": a.distance_miles,
                    "unit_cost": a.unit_cost,
                    "cost": a.cost,
                    "service_score": a.service_score,
                }
                for a in self.assignments
            ],
        }


@dataclass
class _Model:
    problem: pulp.LpProblem
    open_vars: list[pulp.LpVariable]
    # one {(i, j): share} block per period
    share_vars: list[dict[tuple[int, int], pulp.LpVariable]]


@dataclass(frozen=True)
class _FacilityTerms:
    capacities: list[float]
    fixed_costs: list[float]
    mandatory: list[int]


def default_bounds(params: TransportParams) -> Bounds:
    """Facility-count limits used when a caller gives none."""
    return Bounds(params.required_facilities, params.max_facilities)


def _make_solver(name: str, time_limit: float) -> pulp.LpSolver:
    try:
        factory = SOLVERS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown solver {name!r}; expected one of {sorted(SOLVERS)}"
        ) from None
    return factory(time_limit)


def _demand_vector(cost_matrix: CostMatrix, demand: DemandMap) -> list[float]:
    vector = [0.0] * len(cost_matrix.destinations)
    for dest, units in demand.items():
        j = cost_matrix.destination_index(dest)
        if units < 0:
            raise ConfigurationError(f"Demand for '{dest}' cannot be negative ({units})")
        vector[j] += float(units)
    return vector


def _facility_terms(
    cost_matrix: CostMatrix,
    capacity: CapacityMap | None,
    params: TransportParams,
    facilities: Sequence[Facility] | None,
) -> _FacilityTerms:
    """
    Per-row capacity, annual fixed cost and mandatory flags.

    Capacity comes from the capacity map, then the Facility, then
    max_capacity_per_facility. Fixed cost comes from the Facility, then
    fixed_cost_per_facility. A row is mandatory when either the Facility or
    transportation.mandatory_facilities says so.
    """
    capacity = capacity or {}
    by_name = {f.name: f for f in facilities or ()}
    terms = _FacilityTerms(capacities=[], fixed_costs=[], mandatory=[])
    for i, name in enumerate(cost_matrix.facilities):
        facility = by_name.get(name) or Facility(name)

        if name in capacity:
            cap = float(capacity[name])
        elif facility.capacity is not None:
            cap = float(facility.capacity)
        else:
            cap = float(params.max_capacity_per_facility)
        if cap < 0:
            raise ConfigurationError(f"Capacity for '{name}' cannot be negative ({cap})")
        terms.capacities.append(cap)

        fixed = facility.fixed_cost
        terms.fixed_costs.append(params.fixed_cost_per_facility if fixed is None else fixed)

        if facility.mandatory or name in params.mandatory_facilities:
            terms.mandatory.append(i)
    return terms


def _score_matrix(cost_matrix: CostMatrix, scorer: ServiceScorer) -> list[list[float]]:
    return [
        [scorer(float(miles)) for miles in row]
        for row in cost_matrix.distance
    ]


def _precheck(
    cost_matrix: CostMatrix,
    demands: list[list[float]],
    capacities: list[float],
    bounds: Bounds,
    mandatory: list[int],
    fixed: list[int] | None,
) -> None:
    n_candidates = len(cost_matrix.facilities)
    if bounds.min_facilities > n_candidates:
        raise InfeasibleError(
            f"min_facilities ({bounds.min_facilities}) exceeds the "
            f"{n_candidates} candidate facilities"
        )
    if len(set(mandatory)) > bounds.max_facilities:
        raise InfeasibleError(
            f"{len(set(mandatory))} mandatory facilities exceed "
            f"max_facilities ({bounds.max_facilities})"
        )

    if fixed is not None:
        if not bounds.min_facilities <= len(fixed) <= bounds.max_facilities:
            raise InfeasibleError(
                f"Fixed open set of {len(fixed)} facilities is outside bounds "
                f"[{bounds.min_facilities}, {bounds.max_facilities}]"
            )
        closed_mandatory = [cost_matrix.facilities[i] for i in mandatory if i not in fixed]
        if closed_mandatory:
            raise InfeasibleError(
                f"Mandatory facilities missing from fixed open set: {closed_mandatory}"
            )
        reachable = sum(capacities[i] for i in fixed)
    else:
        largest = sorted(capacities, reverse=True)[: bounds.max_facilities]
        reachable = sum(largest)

    peak = max((sum(d) for d in demands), default=0.0)
    if reachable < peak * (1 - CAPACITY_TOLERANCE):
        raise InfeasibleError(
            f"Capacity of at most {bounds.max_facilities} facilities ({reachable:,.0f}) "
            f"cannot cover demand ({peak:,.0f})"
        )


def _build_model(
    name: str,
    cost_matrix: CostMatrix,
    demands: list[list[float]],
    terms: _FacilityTerms,
    bounds: Bounds,
    weights: Weights,
    params: TransportParams,
    scores: list[list[float]],
    epsilon: float,
    fixed: list[int] | None,
) -> _Model:
    n_fac = len(cost_matrix.facilities)
    n_dest = len(cost_matrix.destinations)
    cost = cost_matrix.cost
    capacities = terms.capacities
    penalty = float(cost.max()) if cost.size else 0.0

    prob = pulp.LpProblem(name, pulp.LpMinimize)
    open_vars = [pulp.LpVariable(f"open_{i}", cat="Binary") for i in range(n_fac)]

    share_vars: list[dict[tuple[int, int], pulp.LpVariable]] = []
    routing_terms = []
    service_terms = []
    for t, demand in enumerate(demands):
        shares = {
            (i, j): pulp.LpVariable(f"x_{t}_{i}_{j}", lowBound=0, upBound=1)
            for i in range(n_fac)
            for j in range(n_dest)
        }
        share_vars.append(shares)
        total = sum(demand)

        for j in range(n_dest):
            prob += pulp.lpSum(shares[i, j] for i in range(n_fac)) == 1, f"demand_{t}_{j}"
            for i in range(n_fac):
                prob += shares[i, j] <= open_vars[i], f"link_{t}_{i}_{j}"

        for i in range(n_fac):
            # Capacity at or above the year's total demand never binds
            if capacities[i] >= total:
                continue
            prob += (
                pulp.lpSum(demand[j] * shares[i, j] for j in range(n_dest) if demand[j] > 0)
                <= capacities[i] * open_vars[i],
                f"capacity_{t}_{i}",
            )

        if params.enforce_service_level and total > 0:
            prob += (
                pulp.lpSum(
                    scores[i][j] * demand[j] * shares[i, j]
                    for i in range(n_fac)
                    for j in range(n_dest)
                )
                >= params.service_level_requirement * total,
                f"service_floor_{t}",
            )

        routing_terms.append(
            pulp.lpSum(
                float(cost[i, j]) * demand[j] * shares[i, j]
                for i in range(n_fac)
                for j in range(n_dest)
                if demand[j] > 0
            )
        )
        service_terms.append(
            pulp.lpSum(
                (1.0 - scores[i][j]) * demand[j] * shares[i, j]
                for i in range(n_fac)
                for j in range(n_dest)
                if demand[j] > 0 and scores[i][j] < 1.0
            )
        )

    n_open = pulp.lpSum(open_vars)
    prob += n_open >= bounds.min_facilities, "min_facilities"
    prob += n_open <= bounds.max_facilities, "max_facilities"
    for i in terms.mandatory:
        prob += open_vars[i] == 1, f"mandatory_{i}"
    if fixed is not None:
        fixed_set = set(fixed)
        for i in range(n_fac):
            prob += open_vars[i] == (1 if i in fixed_set else 0), f"fixed_{i}"

    periods = len(demands)
    fixed_terms = pulp.lpSum(terms.fixed_costs[i] * open_vars[i] for i in range(n_fac))
    prob += (
        weights.cost * (pulp.lpSum(routing_terms) + periods * fixed_terms)
        + weights.service_level * penalty * pulp.lpSum(service_terms)
        + epsilon * pulp.lpSum((i + 1) * open_vars[i] for i in range(n_fac))
    )
    logger.debug(
        "Model %s: %d facilities x %d destinations x %d periods, %d variables",
        name,
        n_fac,
        n_dest,
        periods,
        len(prob.variables()),
    )
    return _Model(problem=prob, open_vars=open_vars, share_vars=share_vars)


def _solve(model: _Model, solver: pulp.LpSolver) -> tuple[str, float]:
    started = time.perf_counter()
    model.problem.solve(solver)
    elapsed = time.perf_counter() - started

    status = pulp.LpStatus[model.problem.status]
    if status == "Infeasible":
        raise InfeasibleError(f"Solver proved {model.problem.name} infeasible")
    if status != "Optimal":
        raise NoSolutionError(
            f"Solver returned status '{status}' for {model.problem.name} "
            f"after {elapsed:.1f}s"
        )
    solution = "optimal"
    if model.problem.sol_status == pulp.LpSolutionIntegerFeasible:
        # Time limit hit with an incumbent
        solution = "feasible"
    return solution, elapsed


def _resolve_fixed(cost_matrix: CostMatrix, fixed_open: list[str] | None) -> list[int] | None:
    if fixed_open is None:
        return None
    return sorted({cost_matrix.facility_index(f) for f in fixed_open})


def _run_settings(optimization: OptimizationParams | None) -> tuple[pulp.LpSolver, float]:
    if optimization is None:
        return _make_solver(DEFAULT_SOLVER, DEFAULT_TIME_LIMIT_SECONDS), DEFAULT_TIE_BREAK_EPSILON
    return (
        _make_solver(optimization.solver, optimization.time_limit_seconds),
        optimization.tie_break_epsilon,
    )


def solve_year(
    cost_matrix: CostMatrix,
    demand: DemandMap,
    capacity: CapacityMap | None,
    bounds: Bounds | None,
    weights: Weights | None,
    params: TransportParams,
    *,
    optimization: OptimizationParams | None = None,
    scorer: ServiceScorer | None = None,
    fixed_open: list[str] | None = None,
    facilities: Sequence[Facility] | None = None,
    year: int = 0,
) -> YearResult:
    """
    Solve the demand-to-facility assignment for one year.

    Opens between bounds.min_facilities and bounds.max_facilities of the
    matrix's facilities (exactly fixed_open when given), routes every unit of
    demand, and never exceeds a facility's capacity. Destinations in the
    matrix but absent from `demand` get zero demand.

    Without bounds the count is limited to [required_facilities,
    max_facilities]; without weights the transportation weights apply.
    `facilities` supplies per-site capacity, fixed cost and mandatory flags.

    Raises InfeasibleError when the bounds cannot cover demand and
    NoSolutionError when the solver stops without a solution.
    """
    bounds = bounds or default_bounds(params)
    weights = weights or params.weights
    solver, epsilon = _run_settings(optimization)
    if scorer is None:
        scorer = make_scorer(params.service_scoring, params.max_distance_miles)

    demand_vec = _demand_vector(cost_matrix, demand)
    terms = _facility_terms(cost_matrix, capacity, params, facilities)
    fixed = _resolve_fixed(cost_matrix, fixed_open)
    _precheck(cost_matrix, [demand_vec], terms.capacities, bounds, terms.mandatory, fixed)

    scores = _score_matrix(cost_matrix, scorer)
    model = _build_model(
        f"network_{year}",
        cost_matrix,
        [demand_vec],
        terms,
        bounds,
        weights,
        params,
        scores,
        epsilon,
        fixed,
    )
    status, elapsed = _solve(model, solver)
    result = _extract_year(
        year,
        model,
        cost_matrix,
        demand_vec,
        terms,
        scores,
        params,
        status,
        elapsed,
    )
    logger.debug(
        "Year %d: opened %s, total cost %.2f, service %.3f",
        year,
        list(result.open_facilities),
        result.summary.total_cost,
        result.metrics.weighted_service_level,
    )
    return result


def select_horizon_facilities(
    cost_matrix: CostMatrix,
    demands: list[DemandMap],
    capacity: CapacityMap | None,
    bounds: Bounds | None,
    weights: Weights | None,
    params: TransportParams,
    *,
    optimization: OptimizationParams | None = None,
    scorer: ServiceScorer | None = None,
    facilities: Sequence[Facility] | None = None,
) -> tuple[str, ...]:
    """
    Choose one open set that serves every year of a horizon.

    Open flags are shared across years; each year gets its own routing and
    capacity constraints. Returns facility names in candidate order.
    """
    if not demands:
        raise ConfigurationError("At least one year of demand is required")
    bounds = bounds or default_bounds(params)
    weights = weights or params.weights
    solver, epsilon = _run_settings(optimization)
    if scorer is None:
        scorer = make_scorer(params.service_scoring, params.max_distance_miles)

    demand_vecs = [_demand_vector(cost_matrix, d) for d in demands]
    terms = _facility_terms(cost_matrix, capacity, params, facilities)
    _precheck(cost_matrix, demand_vecs, terms.capacities, bounds, terms.mandatory, None)

    model = _build_model(
        "horizon_selection",
        cost_matrix,
        demand_vecs,
        terms,
        bounds,
        weights,
        params,
        _score_matrix(cost_matrix, scorer),
        epsilon,
        None,
    )
    _solve(model, solver)
    chosen = tuple(
        cost_matrix.facilities[i]
        for i, var in enumerate(model.open_vars)
        if (var.varValue or 0.0) > 0.5
    )
    logger.debug("Horizon selection over %d years: %s", len(demands), list(chosen))
    return chosen


def _extract_year(
    year: int,
    model: _Model,
    cost_matrix: CostMatrix,
    demand: list[float],
    terms: _FacilityTerms,
    scores: list[list[float]],
    params: TransportParams,
    status: str,
    elapsed: float,
) -> YearResult:
    shares = model.share_vars[0]
    open_idx = [i for i, var in enumerate(model.open_vars) if (var.varValue or 0.0) > 0.5]

    assignments: list[Assignment] = []
    served = {i: 0.0 for i in open_idx}
    routing = {i: 0.0 for i in open_idx}
    dests_served: dict[int, list[str]] = {i: [] for i in open_idx}
    for i in open_idx:
        for j, dest in enumerate(cost_matrix.destinations):
            share = min(max(shares[i, j].varValue or 0.0, 0.0), 1.0)
            units = share * demand[j]
            if units <= MIN_REPORTED_UNITS:
                continue
            unit_cost = float(cost_matrix.cost[i, j])
            assignments.append(
                Assignment(
                    facility=cost_matrix.facilities[i],
                    destination=dest,
                    units=units,
                    unit_cost=unit_cost,
                    distance_miles=float(cost_matrix.distance[i, j]),
                    service_score=scores[i][j],
                )
            )
            served[i] += units
            routing[i] += units * unit_cost
            dests_served[i].append(dest)

    allocations = []
    for i in open_idx:
        cap = terms.capacities[i]
        fac_cost = routing[i] + terms.fixed_costs[i]
        allocations.append(
            FacilityAllocation(
                facility=cost_matrix.facilities[i],
                demand_served=served[i],
                destinations_served=tuple(dests_served[i]),
                capacity=cap,
                utilization=served[i] / cap if 0 < cap < math.inf else 0.0,
                cost=fac_cost,
                cost_per_unit=fac_cost / served[i] if served[i] > 0 else 0.0,
            )
        )

    total_demand = sum(demand)
    total_served = sum(a.units for a in assignments)
    routing_cost = sum(a.cost for a in assignments)
    fixed_cost = sum(terms.fixed_costs[i] for i in open_idx)
    total_cost = routing_cost + fixed_cost

    if total_served > 0:
        service = sum(a.service_score * a.units for a in assignments) / total_served
        avg_distance = sum(a.distance_miles * a.units for a in assignments) / total_served
    else:
        service = 1.0
        avg_distance = 0.0
    within_limit = sum(
        a.units for a in assignments if a.distance_miles <= params.max_distance_miles
    )
    open_capacity = sum(terms.capacities[i] for i in open_idx)
    utilizations = [alloc.utilization for alloc in allocations]

    summary = YearSummary(
        status=status,
        objective_value=float(pulp.value(model.problem.objective) or 0.0),
        solve_time_seconds=elapsed,
        facilities_opened=len(open_idx),
        total_demand_served=total_served,
        routing_cost=routing_cost,
        fixed_cost=fixed_cost,
        total_cost=total_cost,
    )
    metrics = YearMetrics(
        weighted_service_level=service,
        avg_cost_per_unit=total_cost / total_demand if total_demand > 0 else 0.0,
        weighted_avg_distance_miles=avg_distance,
        avg_facility_utilization=sum(utilizations) / len(utilizations) if utilizations else 0.0,
        network_utilization=(
            total_served / open_capacity if 0 < open_capacity < math.inf else 0.0
        ),
        demand_within_service_limit=within_limit,
        total_capacity_available=open_capacity,
        meets_service_requirement=service >= params.service_level_requirement - 1e-9,
    )
    return YearResult(
        year=year,
        open_facilities=tuple(cost_matrix.facilities[i] for i in open_idx),
        assignments=tuple(assignments),
        allocations=tuple(allocations),
        summary=summary,
        metrics=metrics,
    )
