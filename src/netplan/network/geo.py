"""
Location resolution and great-circle distances.

The bundled city directory covers the largest cities of every US state and
Canadian province. Lookups accept "City, ST", case/period/spacing variants of
it, or a bare city name (largest population wins).
"""

from __future__ import annotations

import functools
import json
import math
import re
from pathlib import Path
from typing import Protocol

from netplan.errors import ConfigurationError

EARTH_RADIUS_MILES = 3959.0

Coordinates = tuple[float, float]


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two WGS84 points in miles."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_MILES * math.asin(math.sqrt(a))


def normalize_location_key(raw: str) -> str:
    """'St. Louis ,MO ' -> 'st louis, mo'"""
    key = str(raw).lower().replace(".", "")
    key = re.sub(r"\s+", " ", key)
    key = re.sub(r"\s*,\s*", ", ", key)
    return key.strip()


class LocationResolver(Protocol):
    def resolve(self, name: str) -> Coordinates | None:
        """Coordinates for a location name, or None when unknown."""
        ...


class StaticLocationResolver:
    """Resolves names from an explicit {name: (lat, lon)} table."""

    def __init__(self, coordinates: dict[str, Coordinates]) -> None:
        self._coordinates = {
            normalize_location_key(name): (float(lat), float(lon))
            for name, (lat, lon) in coordinates.items()
        }

    def resolve(self, name: str) -> Coordinates | None:
        return self._coordinates.get(normalize_location_key(name))


class CityDirectory:
    """North American city coordinates loaded from cities.json."""

    def __init__(self, cities: list[dict]) -> None:
        self._by_key: dict[str, Coordinates] = {}
        self._by_name: dict[str, tuple[int, Coordinates]] = {}

        for city in cities:
            coords = (float(city["lat"]), float(city["lon"]))
            full_key = normalize_location_key(f"{city['name']}, {city['region']}")
            self._by_key.setdefault(full_key, coords)

            name_key = normalize_location_key(city["name"])
            population = int(city.get("population", 0))
            current = self._by_name.get(name_key)
            if current is None or population > current[0]:
                self._by_name[name_key] = (population, coords)

    @classmethod
    def from_json(cls, path: str | Path | None = None) -> CityDirectory:
        final_path = Path(path) if path is not None else Path(__file__).parent / "cities.json"
        try:
            with open(final_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Cannot load city directory {final_path}: {exc}") from exc
        if not isinstance(data, list):
            raise ConfigurationError(f"Expected list from {final_path}, got {type(data).__name__}")
        try:
            return cls(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Malformed city entry in {final_path}: {exc}") from exc

    def __len__(self) -> int:
        return len(self._by_key)

    def resolve(self, name: str) -> Coordinates | None:
        if not name or not str(name).strip():
            return None
        key = normalize_location_key(name)

        if key in self._by_key:
            return self._by_key[key]

        parts = [p.strip() for p in key.split(",")]
        if len(parts) == 2:
            city, region = parts
            # 'New York, NY' is stored as 'New York City, NY'
            alias = self._by_key.get(f"{city} city, {region}")
            if alias is not None:
                return alias
            return None

        match = self._by_name.get(key) or self._by_name.get(f"{key} city")
        return match[1] if match else None


@functools.lru_cache(maxsize=1)
def default_city_directory() -> CityDirectory:
    """The bundled directory, loaded once per process."""
    return CityDirectory.from_json()
