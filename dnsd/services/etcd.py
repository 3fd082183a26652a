from __future__ import annotations

import asyncio
import json
import random
from dataclasses import dataclass
from http.client import HTTPException
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence
from urllib import error, request
from urllib.parse import quote, urlencode, urljoin

from dnsd.config import EtcdPeer
from dnsd.logger import get_logger
from dnsd.metrics import record_etcd_operation

_logger = get_logger("services.etcd")
_REDIRECT_CODES = {307, 308}
_MAX_REDIRECTS = 3


class EtcdError(RuntimeError):
    def __init__(self, action: str, detail: str) -> None:
        super().__init__(f"{action}: {detail}")
        self.action = action
        self.detail = detail


class EtcdTransportError(EtcdError):
    """Network, timeout or server-side failure; worth retrying on another peer."""


class EtcdUnavailableError(EtcdError):
    def __init__(self, action: str, detail: str, *, attempts: int) -> None:
        super().__init__(action, detail)
        self.attempts = attempts


class EtcdKeyNotFoundError(EtcdError):
    pass


class EtcdRequestError(EtcdError):
    pass


class EtcdResponseError(EtcdError):
    pass


@dataclass(frozen=True)
class EtcdConnection:
    peer: EtcdPeer
    opener: request.OpenerDirector


Transport = Callable[..., Dict[str, Any]]
Sleep = Callable[[float], Awaitable[None]]


def v2_keys_request(
    connection: EtcdConnection,
    *,
    action: str,
    method: str,
    key: str,
    form: Optional[Dict[str, str]] = None,
    timeout_seconds: float = 5.0,
) -> Dict[str, Any]:
    url = f"{connection.peer.url}/v2/keys{quote(key, safe='/')}"
    headers = {"Accept": "application/json"}
    body: Optional[bytes] = None
    if form is not None:
        body = urlencode(form).encode("utf-8")
        headers["Content-Type"] = "application/x-www-form-urlencoded"

    # followers answer writes with a 307 to the leader; urllib only follows it for GET
    for _ in range(_MAX_REDIRECTS + 1):
        req = request.Request(url=url, method=method, data=body, headers=headers)
        try:
            with connection.opener.open(req, timeout=timeout_seconds) as response:
                data = response.read()
            break
        except error.HTTPError as exc:
            location = exc.headers.get("Location") if exc.headers is not None else None
            if exc.code in _REDIRECT_CODES and location:
                url = urljoin(url, location)
                continue
            detail = f"http_{exc.code} from {connection.peer}: {exc.read().decode('utf-8', 'replace').strip()}"
            if exc.code >= 500 or 300 <= exc.code < 400:
                raise EtcdTransportError(action, detail) from exc
            if exc.code == 404:
                raise EtcdKeyNotFoundError(action, f"{key} not found") from exc
            raise EtcdRequestError(action, detail) from exc
        except (error.URLError, HTTPException, OSError) as exc:
            raise EtcdTransportError(action, f"{type(exc).__name__} from {connection.peer}: {exc}") from exc
    else:
        raise EtcdTransportError(action, f"more than {_MAX_REDIRECTS} redirects from {connection.peer}")

    if not data:
        return {}
    try:
        parsed = json.loads(data.decode("utf-8"))
    except UnicodeDecodeError as exc:
        raise EtcdResponseError(action, f"invalid UTF-8 from {connection.peer}") from exc
    except json.JSONDecodeError as exc:
        raise EtcdResponseError(action, f"invalid JSON from {connection.peer}") from exc
    if not isinstance(parsed, dict):
        raise EtcdResponseError(action, f"unexpected payload from {connection.peer}")
    return parsed


class EtcdClient:
    """etcd v2 keys client bound to one randomly chosen peer at a time.

    Transport failures tear down the connection and retry against a fresh
    random peer after ``retry_delay_seconds``; after ``retry_limit`` retries
    the last failure surfaces as :class:`EtcdUnavailableError`. The client is
    not safe for concurrent use; callers serialise access.
    """

    def __init__(
        self,
        peers: Sequence[EtcdPeer],
        *,
        retry_limit: int = 3,
        retry_delay_seconds: float = 1.0,
        timeout_seconds: float = 5.0,
        transport: Optional[Transport] = None,
        sleep: Optional[Sleep] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        if not peers:
            raise ValueError("at least one etcd peer is required")
        self._peers = tuple(peers)
        self._retry_limit = retry_limit
        self._retry_delay_seconds = retry_delay_seconds
        self._timeout_seconds = timeout_seconds
        self._transport = transport or v2_keys_request
        self._sleep = sleep or asyncio.sleep
        self._random = rng or random.Random()
        self._connection: Optional[EtcdConnection] = None

    @property
    def peers(self) -> tuple[EtcdPeer, ...]:
        return self._peers

    @property
    def connection(self) -> Optional[EtcdConnection]:
        return self._connection

    def reconnect(self) -> EtcdConnection:
        peer = self._random.choice(self._peers)
        self._connection = EtcdConnection(peer=peer, opener=request.build_opener())
        _logger.debug("etcd.connect", "Connected to etcd peer", peer=str(peer))
        return self._connection

    def disconnect(self) -> None:
        self._connection = None

    async def get(self, key: str) -> str:
        payload = await self._execute("kv.get", method="GET", key=key)
        node = payload.get("node")
        if not isinstance(node, dict) or node.get("dir"):
            raise EtcdResponseError("kv.get", f"{key} does not hold a value")
        value = node.get("value")
        if not isinstance(value, str):
            raise EtcdResponseError("kv.get", f"{key} does not hold a value")
        return value

    async def set(self, key: str, value: str, ttl: int) -> None:
        await self._execute(
            "kv.set",
            method="PUT",
            key=key,
            form={"value": value, "ttl": str(ttl)},
        )

    async def _execute(
        self,
        action: str,
        *,
        method: str,
        key: str,
        form: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        if not key:
            raise EtcdRequestError(action, "key is required")
        retries = 0
        while True:
            connection = self._connection or self.reconnect()
            try:
                payload = await asyncio.to_thread(
                    self._transport,
                    connection,
                    action=action,
                    method=method,
                    key=key,
                    form=form,
                    timeout_seconds=self._timeout_seconds,
                )
            except EtcdTransportError as exc:
                record_etcd_operation(action=action, ok=False)
                self.disconnect()
                if retries >= self._retry_limit:
                    _logger.error(
                        "etcd.unavailable",
                        "etcd operation failed on every attempt",
                        action=action,
                        key=key,
                        attempts=retries + 1,
                        error=exc.detail,
                    )
                    raise EtcdUnavailableError(
                        action,
                        f"gave up after {retries + 1} attempts: {exc.detail}",
                        attempts=retries + 1,
                    ) from exc
                retries += 1
                _logger.warning(
                    "etcd.retry",
                    "etcd operation failed; reconnecting",
                    action=action,
                    key=key,
                    peer=str(connection.peer),
                    retry=retries,
                    error=exc.detail,
                )
                await self._sleep(self._retry_delay_seconds)
                self.reconnect()
                continue
            except EtcdError:
                record_etcd_operation(action=action, ok=False)
                raise
            record_etcd_operation(action=action, ok=True)
            return payload
