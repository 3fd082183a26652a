"""Shared fakes for the publisher tests.

The etcd transport and the retry sleep are replaced so tests never touch the
network or wait on the wall clock for backoff.
"""

import asyncio
import random
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from dnsd.config import EtcdPeer
from dnsd.services.etcd import EtcdClient, EtcdKeyNotFoundError
from dnsd.services.publisher import PublishEngine

PEERS = [EtcdPeer(host="10.0.0.10"), EtcdPeer(host="10.0.0.11"), EtcdPeer(host="10.0.0.12")]


class FakeTransport:
    """In-memory etcd v2 keys endpoint with scripted failures per key."""

    def __init__(self, values: Optional[Dict[str, str]] = None) -> None:
        self.values: Dict[str, str] = dict(values or {})
        self.ttls: Dict[str, int] = {}
        self.calls: List[Dict[str, Any]] = []
        self._failures: Dict[str, List[Exception]] = {}
        self._always: Dict[str, Exception] = {}

    def fail(self, key: str, exc: Exception, times: Optional[int] = None) -> None:
        if times is None:
            self._always[key] = exc
        else:
            self._failures.setdefault(key, []).extend([exc] * times)

    def heal(self, key: str) -> None:
        self._always.pop(key, None)
        self._failures.pop(key, None)

    @property
    def set_calls(self) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["method"] == "PUT"]

    def __call__(
        self,
        connection,
        *,
        action: str,
        method: str,
        key: str,
        form: Optional[Dict[str, str]] = None,
        timeout_seconds: float = 5.0,
    ) -> Dict[str, Any]:
        self.calls.append({"peer": connection.peer, "method": method, "key": key, "form": form})
        if key in self._always:
            raise self._always[key]
        pending = self._failures.get(key)
        if pending:
            raise pending.pop(0)
        if method == "GET":
            if key not in self.values:
                raise EtcdKeyNotFoundError(action, f"{key} not found")
            return {"action": "get", "node": {"key": key, "value": self.values[key]}}
        assert form is not None
        self.values[key] = form["value"]
        self.ttls[key] = int(form["ttl"])
        return {"action": "set", "node": {"key": key, "value": form["value"], "ttl": int(form["ttl"])}}


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def client(transport: FakeTransport, sleeper: RecordingSleep) -> EtcdClient:
    return EtcdClient(PEERS, transport=transport, sleep=sleeper, rng=random.Random(7))


@pytest_asyncio.fixture
async def engine(client: EtcdClient):
    engine = PublishEngine(client, domain="docker", ttl=30, ttl_refresh=15)
    yield engine
    await engine.close()
