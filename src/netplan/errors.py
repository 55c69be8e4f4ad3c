"""Error taxonomy for the network planning pipeline."""


class NetplanError(Exception):
    """Base class for every error raised by netplan."""


class ConfigurationError(NetplanError):
    """Invalid or missing request inputs. Fatal for the whole request."""


class UnresolvedLocationError(ConfigurationError):
    """One or more locations could not be resolved to coordinates."""

    def __init__(self, facilities: list[str], destinations: list[str]) -> None:
        self.facilities = facilities
        self.destinations = destinations
        parts = []
        if facilities:
            parts.append(f"facilities: {', '.join(facilities)}")
        if destinations:
            parts.append(f"destinations: {', '.join(destinations)}")
        super().__init__(f"Unresolved locations ({'; '.join(parts)})")


class MissingCostEntryError(NetplanError):
    """A (facility, destination) pair has no entry in the cost matrix."""


class InfeasibleError(NetplanError):
    """The facility-count bounds cannot cover demand with the given capacities."""


class NoSolutionError(NetplanError):
    """The solver stopped without a valid assignment."""


class UpstreamUnavailableError(NetplanError):
    """An external collaborator (baseline lookup, estimator) failed."""
