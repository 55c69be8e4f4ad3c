"""
Cost Matrix Builder.

Lane costs use zone-based per-mile pricing anchored to a historical baseline:
the configured cost_per_mile is the rate at the calibration baseline, and a
larger (or smaller) observed spend scales every lane proportionally.
"""

import functools
import logging
from collections.abc import Sequence

import numpy as np

from netplan.config.settings import TransportParams
from netplan.errors import ConfigurationError, UnresolvedLocationError
from netplan.network.core import CostMatrix, Destination, Facility
from netplan.network.geo import (
    Coordinates,
    LocationResolver,
    default_city_directory,
    haversine_miles,
)

logger = logging.getLogger(__name__)

# (upper bound in miles, multiplier); last band is open-ended
ZONE_BANDS: tuple[tuple[float, float], ...] = (
    (150.0, 0.85),
    (300.0, 0.95),
    (600.0, 1.10),
    (float("inf"), 1.25),
)


def zone_factor(miles: float) -> float:
    for upper, factor in ZONE_BANDS:
        if miles <= upper:
            return factor
    return ZONE_BANDS[-1][1]


def lane_unit_cost(miles: float, rate_per_mile: float, fuel_surcharge_per_mile: float) -> float:
    """Per-unit cost of one lane, rounded to cents."""
    cost = miles * rate_per_mile * zone_factor(miles) + miles * fuel_surcharge_per_mile
    return round(cost, 2)


@functools.lru_cache(maxsize=4096)
def _lane_miles(origin: Coordinates, destination: Coordinates) -> float:
    return haversine_miles(origin[0], origin[1], destination[0], destination[1])


def unique_facilities(items: Sequence[Facility | str | dict]) -> list[Facility]:
    """Parsed candidates with duplicate names dropped, first occurrence kept."""
    if not items:
        raise ConfigurationError("candidateFacilities list must not be empty")
    seen: dict[str, Facility] = {}
    for item in items:
        facility = Facility.parse(item)
        seen.setdefault(facility.name, facility)
    return list(seen.values())


def unique_destinations(items: Sequence[Destination | str | dict]) -> list[Destination]:
    if not items:
        raise ConfigurationError("destinations list must not be empty")
    seen: dict[str, Destination] = {}
    for item in items:
        destination = Destination.parse(item)
        seen.setdefault(destination.name, destination)
    return list(seen.values())


def _resolve_all(
    names: list[str], resolver: LocationResolver
) -> tuple[dict[str, Coordinates], list[str]]:
    resolved: dict[str, Coordinates] = {}
    missing: list[str] = []
    for name in names:
        coords = resolver.resolve(name)
        if coords is None:
            missing.append(name)
        else:
            resolved[name] = coords
    return resolved, missing


def build_cost_matrix(
    candidate_facilities: Sequence[Facility | str],
    destinations: Sequence[Destination | str],
    baseline_reference_cost: float,
    params: TransportParams,
    resolver: LocationResolver | None = None,
) -> CostMatrix:
    """
    Build the facility x destination cost matrix.

    Duplicate names are dropped keeping their first occurrence, so candidate
    order (the solver's tie-break order) is preserved. Every name must
    resolve to coordinates; otherwise UnresolvedLocationError lists all the
    names that did not.
    """
    facilities = [f.name for f in unique_facilities(candidate_facilities)]
    dests = [d.name for d in unique_destinations(destinations)]
    if baseline_reference_cost <= 0:
        raise ConfigurationError(
            f"Baseline reference cost must be positive, got {baseline_reference_cost}"
        )

    resolver = resolver if resolver is not None else default_city_directory()
    facility_coords, missing_facilities = _resolve_all(facilities, resolver)
    destination_coords, missing_destinations = _resolve_all(dests, resolver)
    if missing_facilities or missing_destinations:
        raise UnresolvedLocationError(missing_facilities, missing_destinations)

    rate = params.cost_per_mile * (baseline_reference_cost / params.calibration_baseline)

    distance = np.zeros((len(facilities), len(dests)), dtype=np.float64)
    cost = np.zeros_like(distance)
    for i, facility in enumerate(facilities):
        for j, dest in enumerate(dests):
            miles = _lane_miles(facility_coords[facility], destination_coords[dest])
            distance[i, j] = round(miles, 1)
            cost[i, j] = lane_unit_cost(miles, rate, params.fuel_surcharge_per_mile)

    logger.debug(
        "Built cost matrix %dx%d at %.4f $/mile (baseline %.0f)",
        len(facilities),
        len(dests),
        rate,
        baseline_reference_cost,
    )
    return CostMatrix(
        facilities=tuple(facilities),
        destinations=tuple(dests),
        cost=cost,
        distance=distance,
        baseline_reference=float(baseline_reference_cost),
        rate_per_mile=rate,
    )
