import json
from pathlib import Path
from typing import Any


def _load_json_dict(final_path: Path) -> dict[str, Any]:
    with open(final_path, encoding="utf-8") as f:
        data = json.load(f)
        if not isinstance(data, dict):
            raise TypeError(f"Expected dict from {final_path}, got {type(data)}")
        return data


def load_optimization_defaults(config_path: str | None = None) -> dict[str, Any]:
    """
    Loads the documented optimization/warehouse/inventory/transportation defaults.
    If no path is provided, looks for optimization_defaults.json in the config directory.
    """
    if config_path is None:
        final_path = Path(__file__).parent / "optimization_defaults.json"
    else:
        final_path = Path(config_path)
    return _load_json_dict(final_path)


def load_request_defaults(config_path: str | None = None) -> dict[str, Any]:
    """
    Loads the default scenario range, forecast and SKU assortment used when a
    batch request omits them.
    """
    if config_path is None:
        final_path = Path(__file__).parent / "request_defaults.json"
    else:
        final_path = Path(config_path)
    return _load_json_dict(final_path)
