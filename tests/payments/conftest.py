"""Shared fixtures for the payment tests."""
import pytest

from application.services.terminal_janitor import TerminalQueueJanitor
from application.utils.retry import RetryPolicy
from infrastructure.cache.confirmation_cache import InMemoryConfirmationCache

from tests.payments.fakes import FakeGateway, RecordingSleep


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def cache() -> InMemoryConfirmationCache:
    return InMemoryConfirmationCache()


@pytest.fixture
def janitor(gateway: FakeGateway, sleep: RecordingSleep) -> TerminalQueueJanitor:
    return TerminalQueueJanitor(
        gateway,
        "dev-1",
        delete_policy=RetryPolicy(max_attempts=3, interval=0.5),
        clear_pause=0.2,
        sleep=sleep,
    )
