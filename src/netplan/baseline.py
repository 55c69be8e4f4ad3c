"""Historical transportation baseline lookup."""

import logging
import math
from typing import Protocol

logger = logging.getLogger(__name__)

# Annual transportation spend the network is benchmarked against when no
# better figure is available.
DEFAULT_TRANSPORT_BASELINE = 6_560_000.0


class BaselineProvider(Protocol):
    def get(self) -> float:
        """Reference annual transportation spend in dollars."""
        ...


class DefaultBaselineProvider:
    def __init__(self, value: float = DEFAULT_TRANSPORT_BASELINE) -> None:
        self.value = value

    def get(self) -> float:
        return self.value


def resolve_baseline(provider: BaselineProvider | None) -> tuple[float, bool]:
    """
    Returns (baseline, fallback_used).

    Any provider failure, or a non-positive / non-finite value, falls back to
    DEFAULT_TRANSPORT_BASELINE rather than failing the run.
    """
    if provider is None:
        return DEFAULT_TRANSPORT_BASELINE, False
    try:
        value = float(provider.get())
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "Baseline lookup failed (%s: %s); using default $%s",
            type(exc).__name__,
            exc,
            f"{DEFAULT_TRANSPORT_BASELINE:,.0f}",
        )
        return DEFAULT_TRANSPORT_BASELINE, True
    if not math.isfinite(value) or value <= 0:
        logger.warning("Baseline lookup returned %r; using default", value)
        return DEFAULT_TRANSPORT_BASELINE, True
    return value, False
