import pytest

from helpers import FakeActivities
from nexusflow.config import NexusflowConfig
from nexusflow.contracts import RetryPolicy
from nexusflow.credentials import InMemorySecretStore
from nexusflow.execute import WorkflowExecutor
from nexusflow.persistence import InMemoryRunRepository


@pytest.fixture
def fast_config() -> NexusflowConfig:
    return NexusflowConfig(
        retry=RetryPolicy(
            max_attempts=3, per_attempt_timeout=5.0, backoff_base=0, backoff_jitter=0
        )
    )


@pytest.fixture
def activities() -> FakeActivities:
    return FakeActivities()


@pytest.fixture
def make_executor(fast_config):
    def _make(activities, secrets=None, **kwargs) -> WorkflowExecutor:
        kwargs.setdefault("config", fast_config)
        kwargs.setdefault("repository", InMemoryRunRepository())
        return WorkflowExecutor(
            activities, InMemorySecretStore(secrets or {}), **kwargs
        )

    return _make
