from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np

from netplan.errors import ConfigurationError, MissingCostEntryError

# destination -> units for one year
DemandMap = dict[str, float]
# facility -> maximum annual throughput
CapacityMap = dict[str, float]


def _optional_number(row: dict[str, Any], key: str) -> float | None:
    value = row.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{key} must be a number, got {value!r}")
    if value < 0:
        raise ConfigurationError(f"{key} cannot be negative, got {value}")
    return float(value)


@dataclass(frozen=True)
class Facility:
    """
    A candidate network node (warehouse) that can receive and ship demand.

    Unset capacity and fixed cost fall back to the sweep's capacity map and
    transportation.fixed_cost_per_facility.
    """

    name: str  # e.g., "Littleton, MA"
    capacity: float | None = None  # Units per year
    mandatory: bool = False
    fixed_cost: float | None = None  # Annual

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Facility name cannot be empty")

    @classmethod
    def parse(cls, item: Facility | str | dict[str, Any]) -> Facility:
        """A request entry: a bare name or {name, capacity, mandatory, fixed_cost}."""
        if isinstance(item, Facility):
            return item
        if isinstance(item, str):
            if not item.strip():
                raise ConfigurationError("Facility names must be non-empty strings")
            return cls(name=item.strip())
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            raise ConfigurationError(f"Invalid facility entry {item!r}")
        mandatory = item.get("mandatory", False)
        if not isinstance(mandatory, bool):
            raise ConfigurationError(f"mandatory must be a boolean, got {mandatory!r}")
        unknown = set(item) - {"name", "capacity", "mandatory", "fixed_cost"}
        if unknown:
            raise ConfigurationError(f"Unknown facility field(s): {sorted(unknown)}")
        if not item["name"].strip():
            raise ConfigurationError("Facility names must be non-empty strings")
        return cls(
            name=item["name"].strip(),
            capacity=_optional_number(item, "capacity"),
            mandatory=mandatory,
            fixed_cost=_optional_number(item, "fixed_cost"),
        )


@dataclass(frozen=True)
class Destination:
    """
    A demand point the network must serve.

    `demand` is a baseline annual volume. Forecast years rescale it, so only
    the proportions between destinations matter to the solve.
    """

    name: str
    demand: float = 0.0  # Units per year

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Destination name cannot be empty")

    @classmethod
    def parse(cls, item: Destination | str | dict[str, Any]) -> Destination:
        if isinstance(item, Destination):
            return item
        if isinstance(item, str):
            if not item.strip():
                raise ConfigurationError("Destination names must be non-empty strings")
            return cls(name=item.strip())
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            raise ConfigurationError(f"Invalid destination entry {item!r}")
        unknown = set(item) - {"name", "demand"}
        if unknown:
            raise ConfigurationError(f"Unknown destination field(s): {sorted(unknown)}")
        if not item["name"].strip():
            raise ConfigurationError("Destination names must be non-empty strings")
        return cls(name=item["name"].strip(), demand=_optional_number(item, "demand") or 0.0)


@dataclass(frozen=True)
class ForecastRow:
    year: int
    annual_units: float

    def __post_init__(self) -> None:
        if self.annual_units < 0:
            raise ValueError(f"annual_units for {self.year} cannot be negative")

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> ForecastRow:
        try:
            return cls(year=int(row["year"]), annual_units=float(row["annual_units"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid forecast row {row!r}: {exc}") from exc


@dataclass(frozen=True)
class Sku:
    sku: str
    annual_volume: float
    units_per_case: int
    cases_per_pallet: int

    @property
    def units_per_pallet(self) -> int:
        return self.units_per_case * self.cases_per_pallet

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> Sku:
        try:
            sku = cls(
                sku=str(row["sku"]),
                annual_volume=float(row["annual_volume"]),
                units_per_case=int(row["units_per_case"]),
                cases_per_pallet=int(row["cases_per_pallet"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid SKU row {row!r}: {exc}") from exc
        if sku.units_per_pallet <= 0:
            raise ConfigurationError(f"SKU {sku.sku} must have positive units per pallet")
        return sku


@dataclass(frozen=True)
class Bounds:
    """Hard limits on how many facilities a solved network may open."""

    min_facilities: int
    max_facilities: int

    def __post_init__(self) -> None:
        if self.min_facilities < 1 or self.max_facilities < 1:
            raise ConfigurationError("Facility bounds must both be >= 1")
        if self.min_facilities > self.max_facilities:
            raise ConfigurationError(
                f"min_facilities ({self.min_facilities}) exceeds "
                f"max_facilities ({self.max_facilities})"
            )

    @classmethod
    def exactly(cls, count: int) -> Bounds:
        return cls(min_facilities=count, max_facilities=count)


@dataclass(frozen=True, eq=False)
class CostMatrix:
    """
    Per-unit cost and distance for every (facility, destination) pair.

    Row order is the candidate order and doubles as the deterministic
    tie-break order for the solver. Arrays are read-only after construction
    so a matrix can be shared across years, scenarios and worker threads.
    """

    facilities: tuple[str, ...]
    destinations: tuple[str, ...]
    cost: np.ndarray  # [facilities, destinations] $/unit
    distance: np.ndarray  # [facilities, destinations] miles
    baseline_reference: float = 0.0
    rate_per_mile: float = 0.0
    _facility_idx: dict[str, int] = field(default_factory=dict, init=False, repr=False, compare=False)
    _destination_idx: dict[str, int] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        shape = (len(self.facilities), len(self.destinations))
        if self.cost.shape != shape or self.distance.shape != shape:
            raise ValueError(
                f"Cost/distance arrays must have shape {shape}, "
                f"got {self.cost.shape} and {self.distance.shape}"
            )
        self.cost.setflags(write=False)
        self.distance.setflags(write=False)
        self._facility_idx.update({f: i for i, f in enumerate(self.facilities)})
        self._destination_idx.update({d: j for j, d in enumerate(self.destinations)})

    def facility_index(self, facility: str) -> int:
        try:
            return self._facility_idx[facility]
        except KeyError:
            raise MissingCostEntryError(f"Facility '{facility}' is not in the cost matrix") from None

    def destination_index(self, destination: str) -> int:
        try:
            return self._destination_idx[destination]
        except KeyError:
            raise MissingCostEntryError(
                f"Destination '{destination}' is not in the cost matrix"
            ) from None

    def unit_cost(self, facility: str, destination: str) -> float:
        return float(self.cost[self.facility_index(facility), self.destination_index(destination)])

    def miles(self, facility: str, destination: str) -> float:
        return float(
            self.distance[self.facility_index(facility), self.destination_index(destination)]
        )

    def has_facility(self, facility: str) -> bool:
        return facility in self._facility_idx

    def subset(self, facilities: list[str]) -> CostMatrix:
        """Matrix restricted to the given facilities, in the given order."""
        rows = [self.facility_index(f) for f in facilities]
        return CostMatrix(
            facilities=tuple(facilities),
            destinations=self.destinations,
            cost=self.cost[rows, :].copy(),
            distance=self.distance[rows, :].copy(),
            baseline_reference=self.baseline_reference,
            rate_per_mile=self.rate_per_mile,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows": list(self.facilities),
            "cols": list(self.destinations),
            "cost": self.cost.tolist(),
            "distance": self.distance.tolist(),
            "baseline_reference": self.baseline_reference,
        }
