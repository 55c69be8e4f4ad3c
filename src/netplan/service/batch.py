"""
Batch sweep request/response operation.

Takes the JSON body an HTTP layer receives and returns a status code plus a
JSON-ready payload. Request errors detected before solving produce a 500
payload; per-scenario failures are reported inside a 200 payload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from netplan.baseline import BaselineProvider
from netplan.config.loader import load_request_defaults
from netplan.config.settings import merge_config
from netplan.errors import ConfigurationError, NetplanError, UnresolvedLocationError
from netplan.estimators import InventoryEstimator, WarehouseEstimator
from netplan.network.core import ForecastRow, Sku
from netplan.network.geo import LocationResolver
from netplan.sweep.controller import SweepResult, sweep

logger = logging.getLogger(__name__)

SCENARIO_KEYS = ("minNodes", "maxNodes", "step", "criterion")


@dataclass(frozen=True)
class BatchResponse:
    status_code: int
    payload: dict[str, Any]


def _required_locations(body: dict[str, Any], key: str) -> list[Any]:
    value = body.get(key)
    if not isinstance(value, list) or not value:
        raise ConfigurationError(f"{key} is required and must be a non-empty list")
    if not all(isinstance(v, (str, dict)) for v in value):
        raise ConfigurationError(f"{key} entries must be names or objects with a name")
    return value


def _scenario_settings(body: dict[str, Any], defaults: dict[str, Any]) -> dict[str, Any]:
    requested = body.get("scenario") or {}
    if not isinstance(requested, dict):
        raise ConfigurationError("scenario must be an object")
    unknown = set(requested) - set(SCENARIO_KEYS)
    if unknown:
        raise ConfigurationError(f"Unknown scenario option(s): {sorted(unknown)}")
    return {**defaults["scenario"], **requested}


def _rows(body: dict[str, Any], key: str, defaults: dict[str, Any]) -> list[dict[str, Any]]:
    rows = body.get(key)
    if rows is None:
        return defaults[key]
    if not isinstance(rows, list) or not rows:
        raise ConfigurationError(f"{key} must be a non-empty list when provided")
    return rows


def _success_payload(result: SweepResult) -> dict[str, Any]:
    best = result.best
    return {
        "ok": True,
        "batch_summary": {**result.summary.to_dict(), "criterion": result.criterion},
        "wh": result.warehouse.to_dict() if result.warehouse else None,
        "inventory": result.inventory.to_dict() if result.inventory else None,
        "scenarios": [s.to_dict() for s in result.scenarios],
        "best": best.to_dict() if best else None,
        "baseline_integration": {
            "transport_baseline": result.transport_baseline,
            "transport_baseline_all_years": result.transport_baseline_all_years,
            "baseline_fallback_used": result.baseline_fallback_used,
            "best_transport_cost_all_years": (
                best.kpis.total_transport_cost_all_years if best else None
            ),
            "best_savings_percent": best.kpis.transport_savings_percent if best else None,
        },
    }


def _error_payload(exc: Exception) -> dict[str, Any]:
    details: dict[str, Any] = {"type": type(exc).__name__}
    if isinstance(exc, UnresolvedLocationError):
        details["unresolved_facilities"] = exc.facilities
        details["unresolved_destinations"] = exc.destinations
    return {"success": False, "error": str(exc), "details": details}


def run_batch(
    body: dict[str, Any],
    baseline_provider: BaselineProvider | None = None,
    resolver: LocationResolver | None = None,
    *,
    warehouse_estimator: WarehouseEstimator | None = None,
    inventory_estimator: InventoryEstimator | None = None,
    max_workers: int = 1,
) -> BatchResponse:
    """
    Run a batch sweep request.

    Returns 200 with the sweep payload (even when every scenario failed) or
    500 with {success, error, details} when the request itself is invalid.
    """
    try:
        if not isinstance(body, dict):
            raise ConfigurationError("Request body must be a JSON object")
        defaults = load_request_defaults()
        candidates = _required_locations(body, "candidateFacilities")
        destinations = _required_locations(body, "destinations")
        scenario = _scenario_settings(body, defaults)
        config = merge_config(body.get("config"))
        forecast = [ForecastRow.from_dict(r) for r in _rows(body, "forecast", defaults)]
        skus = [Sku.from_dict(r) for r in _rows(body, "skus", defaults)]

        result = sweep(
            scenario["minNodes"],
            scenario["maxNodes"],
            scenario["step"],
            scenario["criterion"],
            candidates,
            destinations,
            config,
            forecast,
            skus,
            baseline_provider=baseline_provider,
            resolver=resolver,
            warehouse_estimator=warehouse_estimator,
            inventory_estimator=inventory_estimator,
            max_workers=max_workers,
        )
    except NetplanError as exc:
        logger.error("Batch request rejected: %s", exc)
        return BatchResponse(status_code=500, payload=_error_payload(exc))
    except Exception as exc:  # noqa: BLE001
        logger.exception("Batch request failed")
        return BatchResponse(status_code=500, payload=_error_payload(exc))

    return BatchResponse(status_code=200, payload=_success_payload(result))
