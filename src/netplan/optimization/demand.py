from netplan.network.core import DemandMap


def scale_demand(baseline: DemandMap, total_units: float) -> DemandMap:
    """
    Scale a demand shape so it sums to total_units.

    A shape that sums to zero (or less) falls back to an equal split over its
    destinations.
    """
    if not baseline:
        return {}
    base_sum = sum(max(v, 0.0) for v in baseline.values())
    if base_sum <= 0:
        share = total_units / len(baseline)
        return {dest: share for dest in baseline}
    return {dest: max(v, 0.0) / base_sum * total_units for dest, v in baseline.items()}


def demand_for_year(
    year: int,
    annual_units: float,
    destinations: tuple[str, ...],
    baseline_demand: DemandMap | None = None,
    demand_by_year: dict[int, DemandMap] | None = None,
) -> DemandMap:
    """Demand map for one forecast year: explicit map, then scaled shape, then equal split."""
    if demand_by_year and year in demand_by_year:
        return dict(demand_by_year[year])
    if baseline_demand:
        return scale_demand(baseline_demand, annual_units)
    return scale_demand({dest: 0.0 for dest in destinations}, annual_units)
