import pytest

from netplan.config.settings import merge_config
from netplan.network.cost_matrix import build_cost_matrix
from netplan.network.geo import StaticLocationResolver

# Candidates A, B, C and destinations X, Y laid out along the 40th parallel.
# X sits next to A, Y next to C; B is in between.
TEST_COORDINATES = {
    "A": (40.0, -75.0),
    "B": (40.0, -80.0),
    "C": (40.0, -90.0),
    "X": (40.0, -76.0),
    "Y": (40.0, -89.0),
}


@pytest.fixture
def resolver():
    return StaticLocationResolver(TEST_COORDINATES)


@pytest.fixture
def config():
    return merge_config(
        {
            "optimization": {"time_limit_seconds": 20},
            "transportation": {
                "mandatory_facilities": ["A"],
                "fixed_cost_per_facility": 1000.0,
            },
        }
    )


@pytest.fixture
def params(config):
    return config.transportation


@pytest.fixture
def matrix(resolver, params):
    return build_cost_matrix(["A", "B", "C"], ["X", "Y"], 6_560_000.0, params, resolver=resolver)
