"""Root conftest: suite markers, ``.env`` opt-ins and shared fixtures.

Nothing here talks to the network: remote providers are replaced by
scripted adapters, and every memory store lives under ``tmp_path``.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from dotenv import load_dotenv

from contextpilot.observability import reset_latency_metrics
from tests.helpers.fakes import FakeClock

# Load repository-root .env for test opt-ins (existing env vars stay authoritative).
load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env", override=False)


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Attach suite markers from test path.

    - `tests/unit/*` -> `unit`
    - `tests/integration/*` -> `integration`
    """
    root = Path(__file__).resolve().parents[1]
    for item in items:
        item_path = Path(str(item.fspath)).resolve()
        try:
            rel = item_path.relative_to(root)
        except ValueError:
            continue

        parts = rel.parts
        if len(parts) < 2 or parts[0] != "tests":
            continue
        if parts[1] == "unit":
            item.add_marker(pytest.mark.unit)
        elif parts[1] == "integration":
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def clean_metrics():
    """Reset in-process latency aggregates between tests."""
    reset_latency_metrics()
    yield
    reset_latency_metrics()


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


MAIN_C = """#include <stdio.h>

int counter = 0;

int add(int a, int b) {
    return a + b;
}

int main() {
    int total = add(2, 3);
    printf("%d\\n", total);
    return 0;
}
"""


@pytest.fixture()
def main_c() -> str:
    return MAIN_C
