"""Service scoring policies: per-lane service achievement in [0, 1] from distance."""

from typing import Callable

from netplan.errors import ConfigurationError

ServiceScorer = Callable[[float], float]


def threshold_scorer(max_distance_miles: float) -> ServiceScorer:
    """1.0 within the service radius, 0.0 beyond it."""

    def score(miles: float) -> float:
        return 1.0 if miles <= max_distance_miles else 0.0

    return score


def linear_decay_scorer(max_distance_miles: float) -> ServiceScorer:
    """Full score at the service radius, falling linearly to 0 at twice the radius."""

    def score(miles: float) -> float:
        if miles <= max_distance_miles:
            return 1.0
        if max_distance_miles <= 0:
            return 0.0
        return max(0.0, 1.0 - (miles - max_distance_miles) / max_distance_miles)

    return score


SCORERS: dict[str, Callable[[float], ServiceScorer]] = {
    "threshold": threshold_scorer,
    "linear_decay": linear_decay_scorer,
}


def make_scorer(name: str, max_distance_miles: float) -> ServiceScorer:
    try:
        factory = SCORERS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown service scoring policy {name!r}; expected one of {sorted(SCORERS)}"
        ) from None
    return factory(max_distance_miles)
