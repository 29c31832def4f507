"""Default benchmark table and the endpoint x scenario cross product."""

import json
from typing import Iterator, Sequence, Tuple

from apibench.models import Endpoint, Scenario

DEFAULT_ENDPOINTS = [
    Endpoint(name="Legacy Express", base_url="http://localhost:3000"),
    Endpoint(name="Modern Hono", base_url="http://localhost:3001"),
]

DEFAULT_SCENARIOS = [
    Scenario(name="GET /", method="GET", path="/"),
    Scenario(name="GET /api/items", method="GET", path="/api/items"),
    Scenario(
        name="POST /api/items",
        method="POST",
        path="/api/items",
        body=json.dumps({"name": "Test Item"}),
    ),
]


def cells(
    endpoints: Sequence[Endpoint], scenarios: Sequence[Scenario]
) -> Iterator[Tuple[Endpoint, Scenario]]:
    """Yield every (endpoint, scenario) pair, endpoints outermost."""
    for endpoint in endpoints:
        for scenario in scenarios:
            yield endpoint, scenario
