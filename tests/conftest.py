import os

# The API module starts the background refresh on import unless told not to
os.environ["SCHEDULER_ENABLED"] = "false"

from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402


class ManualClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock():
    return ManualClock()


def make_response(payload, status_code=200):
    """Stand-in for a requests.Response carrying ``payload`` as JSON."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp
