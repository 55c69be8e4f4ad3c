"""
Typed planning configuration.

Defaults come from optimization_defaults.json; request overrides are merged
field by field. Every overridden field is checked against the type of its
default and, where one is declared, a numeric range.
"""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field
from typing import Any

from netplan.config.loader import load_optimization_defaults
from netplan.errors import ConfigurationError

SECTIONS = ("optimization", "warehouse", "inventory", "transportation")

# (section, field) -> (min, max); None means unbounded on that side.
# Numeric fields not listed here must be >= 0.
FIELD_RANGES: dict[tuple[str, str], tuple[float | None, float | None]] = {
    ("optimization", "time_limit_seconds"): (1, None),
    ("warehouse", "operating_days"): (1, 366),
    ("warehouse", "aisle_factor"): (0, 0.99),
    ("warehouse", "max_utilization"): (0.01, 1),
    ("warehouse", "rack_height_inches"): (1, None),
    ("inventory", "service_level"): (0.5, 0.9999),
    ("transportation", "service_level_requirement"): (0, 1),
    ("transportation", "required_facilities"): (1, None),
    ("transportation", "max_facilities"): (1, None),
    ("transportation", "lease_years"): (1, None),
    ("transportation", "calibration_baseline"): (1, None),
    ("transportation", "non_anchor_capacity_fraction"): (0, 1),
}

FIELD_CHOICES: dict[tuple[str, str], tuple[str, ...]] = {
    ("optimization", "solver"): ("PULP_CBC",),
    ("transportation", "service_scoring"): ("threshold", "linear_decay"),
}

# Request spellings accepted for a field
FIELD_ALIASES: dict[tuple[str, str], str] = {
    ("warehouse", "DOH"): "doh",
}


@dataclass(frozen=True)
class Weights:
    cost: float = 0.6
    service_level: float = 0.4


@dataclass(frozen=True)
class OptimizationParams:
    solver: str
    time_limit_seconds: float
    tie_break_epsilon: float


@dataclass(frozen=True)
class WarehouseParams:
    operating_days: int
    doh: float
    pallet_length_inches: float
    pallet_width_inches: float
    ceiling_height_inches: float
    rack_height_inches: float
    aisle_factor: float
    max_utilization: float
    initial_facility_area: float
    facility_design_area: float
    cost_per_sqft_annual: float
    thirdparty_cost_per_sqft: float
    support_area: float
    max_facilities: int


@dataclass(frozen=True)
class InventoryParams:
    service_level: float
    lead_time_days: float
    holding_cost_per_unit_per_year: float
    demand_cv: float


@dataclass(frozen=True)
class TransportParams:
    fixed_cost_per_facility: float
    cost_per_mile: float
    fuel_surcharge_per_mile: float
    calibration_baseline: float
    service_level_requirement: float
    enforce_service_level: bool
    max_distance_miles: float
    required_facilities: int
    max_facilities: int
    max_capacity_per_facility: float
    mandatory_facilities: tuple[str, ...]
    weights: Weights
    lease_years: int
    switching_cost_per_facility: float
    candidate_headroom: int
    non_anchor_capacity_fraction: float
    service_scoring: str


@dataclass(frozen=True)
class OptimizationConfig:
    optimization: OptimizationParams
    warehouse: WarehouseParams
    inventory: InventoryParams
    transportation: TransportParams
    overrides: dict[str, Any] = field(default_factory=dict, compare=False)

    def with_transportation(self, **changes: Any) -> OptimizationConfig:
        """Copy of this config with selected transportation fields replaced."""
        overrides = copy.deepcopy(self.overrides)
        overrides.setdefault("transportation", {}).update(changes)
        return merge_config(overrides)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("overrides")
        data["transportation"]["mandatory_facilities"] = list(
            self.transportation.mandatory_facilities
        )
        return data


def _check_number(section: str, key: str, value: Any, default: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(
            f"{section}.{key} must be a number, got {type(value).__name__}"
        )
    if isinstance(default, int) and not isinstance(default, bool):
        if float(value) != int(value):
            raise ConfigurationError(f"{section}.{key} must be an integer, got {value}")
        value = int(value)

    low, high = FIELD_RANGES.get((section, key), (0, None))
    if low is not None and value < low:
        raise ConfigurationError(f"{section}.{key} must be >= {low}, got {value}")
    if high is not None and value > high:
        raise ConfigurationError(f"{section}.{key} must be <= {high}, got {value}")
    return value


def _merge_field(section: str, key: str, value: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ConfigurationError(f"{section}.{key} must be a boolean")
        return value

    if isinstance(default, (int, float)):
        return _check_number(section, key, value, default)

    if isinstance(default, str):
        if not isinstance(value, str):
            raise ConfigurationError(f"{section}.{key} must be a string")
        choices = FIELD_CHOICES.get((section, key))
        if choices and value not in choices:
            raise ConfigurationError(
                f"{section}.{key} must be one of {list(choices)}, got {value!r}"
            )
        return value

    if isinstance(default, list):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ConfigurationError(f"{section}.{key} must be a list of strings")
        return list(value)

    if isinstance(default, dict):
        if not isinstance(value, dict):
            raise ConfigurationError(f"{section}.{key} must be an object")
        merged = dict(default)
        for sub_key, sub_value in value.items():
            if sub_key not in default:
                raise ConfigurationError(f"Unknown option {section}.{key}.{sub_key}")
            merged[sub_key] = _check_number(
                section, f"{key}.{sub_key}", sub_value, default[sub_key]
            )
        return merged

    raise ConfigurationError(f"Unsupported option type for {section}.{key}")


def merge_config(
    overrides: dict[str, Any] | None = None,
    defaults: dict[str, Any] | None = None,
) -> OptimizationConfig:
    """
    Merge request overrides over the documented defaults.

    Unknown sections or fields, wrong types and out-of-range values raise
    ConfigurationError naming the offending option.
    """
    overrides = overrides or {}
    if not isinstance(overrides, dict):
        raise ConfigurationError("config must be an object")
    base = copy.deepcopy(defaults if defaults is not None else load_optimization_defaults())

    for section, section_overrides in overrides.items():
        if section not in SECTIONS:
            raise ConfigurationError(f"Unknown config section '{section}'")
        if section_overrides is None:
            continue
        if not isinstance(section_overrides, dict):
            raise ConfigurationError(f"config.{section} must be an object")
        for raw_key, value in section_overrides.items():
            key = FIELD_ALIASES.get((section, raw_key), raw_key)
            if key not in base[section]:
                raise ConfigurationError(f"Unknown option {section}.{raw_key}")
            base[section][key] = _merge_field(section, key, value, base[section][key])

    transport = base["transportation"]
    if transport["required_facilities"] > transport["max_facilities"]:
        raise ConfigurationError(
            "transportation.required_facilities cannot exceed transportation.max_facilities"
        )

    opt = base["optimization"]
    return OptimizationConfig(
        optimization=OptimizationParams(
            solver=opt["solver"],
            time_limit_seconds=opt["time_limit_seconds"],
            tie_break_epsilon=opt["tie_break_epsilon"],
        ),
        warehouse=WarehouseParams(**base["warehouse"]),
        inventory=InventoryParams(**base["inventory"]),
        transportation=TransportParams(
            **{
                **transport,
                "mandatory_facilities": tuple(transport["mandatory_facilities"]),
                "weights": Weights(**transport["weights"]),
            }
        ),
        overrides=copy.deepcopy(overrides),
    )
