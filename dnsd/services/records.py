from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Protocol

from dnsd.logger import get_logger
from dnsd.metrics import record_refresh_cycle, set_published_records
from dnsd.services.paths import skydns_path

_logger = get_logger("services.records")


class RecordWriter(Protocol):
    async def set(self, key: str, value: str, ttl: int) -> None: ...


@dataclass(frozen=True)
class Record:
    hostname: str
    value: str
    ttl: int

    @property
    def key(self) -> str:
        return skydns_path(self.hostname)


class RecordStore:
    """The record set owned by this process and the lock that guards it.

    ``replace``, ``publish``, ``refresh`` and the scheduler's start/stop are
    only valid while ``lock`` is held.
    """

    def __init__(self, writer: RecordWriter, *, ttl: int) -> None:
        self.lock = asyncio.Lock()
        self._writer = writer
        self._ttl = ttl
        self._records: Dict[str, Record] = {}

    @property
    def ttl(self) -> int:
        return self._ttl

    def records(self) -> Dict[str, Record]:
        return dict(self._records)

    def require_lock(self) -> None:
        if not self.lock.locked():
            raise RuntimeError("record store lock must be held")

    def replace(self, values: Mapping[str, str]) -> None:
        self.require_lock()
        self._records = {
            hostname: Record(hostname=hostname, value=value, ttl=self._ttl)
            for hostname, value in values.items()
        }
        set_published_records(len(self._records))

    async def publish(self) -> None:
        await self._write_all("publish", "Setting")

    async def refresh(self) -> None:
        await self._write_all("refresh", "Refreshing")

    async def _write_all(self, event: str, verb: str) -> None:
        self.require_lock()
        for record in list(self._records.values()):
            _logger.info(
                f"records.{event}",
                f"{verb} {record.hostname}",
                key=record.key,
                value=record.value,
                ttl=record.ttl,
            )
            await self._writer.set(record.key, record.value, record.ttl)


class RefreshScheduler:
    """Single background task re-writing the store every ``interval_seconds``."""

    def __init__(self, store: RecordStore, *, interval_seconds: float) -> None:
        self._store = store
        self._interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task[None]] = None
        self._stop: Optional[asyncio.Event] = None
        self.starts = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self._store.require_lock()
        if self.running:
            return
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._run(self._stop), name="dnsd-refresh")
        self.starts += 1
        _logger.debug(
            "refresh.start",
            "Started refresh loop",
            interval_seconds=self._interval_seconds,
        )

    async def stop(self) -> None:
        self._store.require_lock()
        task, stop = self._task, self._stop
        self._task = None
        self._stop = None
        if task is None:
            return
        if stop is not None:
            stop.set()
        # The caller holds the lock, so the task is either sleeping or
        # waiting for the lock and can be cancelled at that point.
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        _logger.debug("refresh.stop", "Stopped refresh loop")

    async def _run(self, stop: asyncio.Event) -> None:
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._interval_seconds)
            except TimeoutError:
                pass
            if stop.is_set():
                return
            async with self._store.lock:
                if stop.is_set():
                    return
                try:
                    await self._store.refresh()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:  # noqa: BLE001
                    record_refresh_cycle(ok=False)
                    _logger.exception(
                        "refresh.error",
                        "Refresh cycle failed; retrying on next tick",
                        error_type=type(exc).__name__,
                    )
                else:
                    record_refresh_cycle(ok=True)
