"""Root test configuration."""

import asyncio
import logging
from typing import Any, Mapping

import pytest
import structlog

from stratum.backends.base import BackendHealth, VerifyResult
from stratum.backends.registry import BackendPool
from stratum.core.errors import PermanentBackendError
from stratum.domain.models import ResourceDescriptor, ResourceKind
from stratum.engine.executor import ExecutionEngine
from stratum.engine.retry import RetryPolicy
from stratum.engine.teardown import TeardownPlanner
from stratum.secrets import SecretMaterial
from stratum.state.memory import InMemoryStateStore
from stratum.verification.verifier import Verifier


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


NO_WAIT = RetryPolicy(max_attempts=3, multiplier=0, min_wait=0, max_wait=0)


class RecordingBackend:
    """Scriptable in-memory adapter that records every call.

    - ``create_errors[rid]``: exceptions raised by successive create calls
    - ``delete_errors[rid]``: same for delete
    - ``unhealthy``: ids that fail verification
    - ``gates[rid]``: create waits on this event before returning
    """

    name = "fake"

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.configs: dict[str, dict[str, Any]] = {}
        self.resources: set[str] = set()
        self.create_errors: dict[str, list[Exception]] = {}
        self.delete_errors: dict[str, list[Exception]] = {}
        self.unhealthy: set[str] = set()
        self.gates: dict[str, asyncio.Event] = {}
        self.entered: dict[str, asyncio.Event] = {}
        self.in_flight = 0
        self.max_in_flight = 0
        self.delay = 0.0

    def creates(self) -> list[str]:
        return [rid for op, rid in self.calls if op == "create"]

    def deletes(self) -> list[str]:
        return [rid for op, rid in self.calls if op == "delete"]

    def entered_event(self, resource_id: str) -> asyncio.Event:
        return self.entered.setdefault(resource_id, asyncio.Event())

    async def create(self, resource_id: str, kind: ResourceKind, config: Mapping[str, Any]) -> dict[str, Any]:
        self.calls.append(("create", resource_id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self.entered_event(resource_id).set()
            if resource_id in self.gates:
                await self.gates[resource_id].wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            errors = self.create_errors.get(resource_id)
            if errors:
                raise errors.pop(0)
            self.configs[resource_id] = dict(config)
            self.resources.add(resource_id)
            return {"endpoint": f"{resource_id}.fake", "kind": kind.value}
        finally:
            self.in_flight -= 1

    async def delete(self, resource_id: str, kind: ResourceKind, outputs: Mapping[str, Any]) -> None:
        self.calls.append(("delete", resource_id))
        errors = self.delete_errors.get(resource_id)
        if errors:
            raise errors.pop(0)
        self.resources.discard(resource_id)

    async def verify(self, resource_id: str, kind: ResourceKind, outputs: Mapping[str, Any]) -> VerifyResult:
        self.calls.append(("verify", resource_id))
        if resource_id in self.unhealthy:
            return VerifyResult(healthy=False, detail="probe failed")
        return VerifyResult(healthy=True, detail="ok")

    async def resolve_secret(self, handle: str) -> SecretMaterial:
        raise PermanentBackendError("no secrets here", details={"handle": handle})

    async def health_check(self) -> BackendHealth:
        return BackendHealth(status="healthy")

    async def aclose(self) -> None:
        return None


def descriptor(resource_id: str, kind: str = "Network", deps=(), **config) -> ResourceDescriptor:
    return ResourceDescriptor(id=resource_id, kind=kind, depends_on=frozenset(deps), config=config)


@pytest.fixture
def fake_backend():
    return RecordingBackend()


@pytest.fixture
def store():
    return InMemoryStateStore()


@pytest.fixture
def pool(fake_backend):
    return BackendPool(overrides={"local": fake_backend})


@pytest.fixture
def engine(store, pool):
    return ExecutionEngine(store, pool, verifier=Verifier(timeout=5), retry=NO_WAIT, max_workers=4)


@pytest.fixture
def teardown(store, pool):
    return TeardownPlanner(store, pool, retry=NO_WAIT, max_workers=4)
