import time

import pytest
from loguru import logger


@pytest.fixture
def log_records():
    """Collect loguru records emitted while the test runs."""
    records = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)


@pytest.fixture
def wait_for():
    """Poll ``condition`` until it holds or ``timeout`` seconds pass."""

    def _wait_for(condition, timeout: float = 5.0, interval: float = 0.02) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if condition():
                return True
            time.sleep(interval)
        return condition()

    return _wait_for
