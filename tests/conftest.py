import pytest

from signalgate.core.adaptive import DEFAULT_GATE_CACHE
from signalgate.core.policy import DEFAULT_POLICY_CACHE
from signalgate.logging import sql_sink


@pytest.fixture(autouse=True)
def _reset_shared_state() -> None:
    DEFAULT_POLICY_CACHE.clear()
    DEFAULT_GATE_CACHE.clear()
    yield
    DEFAULT_POLICY_CACHE.clear()
    DEFAULT_GATE_CACHE.clear()
    sql_sink.dispose_engines()
