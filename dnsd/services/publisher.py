from __future__ import annotations

from typing import Dict, Optional, Protocol, Sequence

from dnsd.logger import get_logger
from dnsd.metrics import record_update
from dnsd.services.etcd import EtcdError
from dnsd.services.paths import short_name, skydns_path
from dnsd.services.records import Record, RecordStore, RefreshScheduler

_logger = get_logger("services.publisher")


class KeyValueClient(Protocol):
    async def get(self, key: str) -> str: ...

    async def set(self, key: str, value: str, ttl: int) -> None: ...


class ResolutionFailure(RuntimeError):
    def __init__(self, hostname: str, detail: str) -> None:
        super().__init__(f"unable to resolve {hostname or '<empty>'}: {detail}")
        self.hostname = hostname
        self.detail = detail


class PublishEngine:
    def __init__(
        self,
        client: KeyValueClient,
        *,
        domain: str,
        ttl: int,
        ttl_refresh: float,
    ) -> None:
        self._client = client
        self._domain = domain.strip().strip(".")
        self.store = RecordStore(client, ttl=ttl)
        self.scheduler = RefreshScheduler(self.store, interval_seconds=ttl_refresh)

    @property
    def domain(self) -> str:
        return self._domain

    def records(self) -> Dict[str, Record]:
        return self.store.records()

    async def start(self) -> None:
        async with self.store.lock:
            self.scheduler.start()

    async def close(self) -> None:
        async with self.store.lock:
            await self.scheduler.stop()

    async def resolve(self, master: Optional[str], slaves: Sequence[str]) -> Dict[str, str]:
        """Look up every host's address and name it as it will be published.

        Raises :class:`ResolutionFailure` on the first host that cannot be
        resolved; nothing is returned partially.
        """
        if not master:
            raise ResolutionFailure("", "master hostname is required")
        records = {f"master.{self._domain}": await self._lookup(master)}
        for slave in slaves:
            if not slave:
                raise ResolutionFailure("", "slave hostname must not be empty")
            records[f"{short_name(slave)}.slaves.{self._domain}"] = await self._lookup(slave)
        return records

    async def update(self, master: Optional[str], slaves: Sequence[str]) -> Dict[str, str]:
        async with _logger.operation(
            "publisher.update",
            "Publishing cluster topology",
            master=master,
            slaves=len(slaves),
        ) as op:
            try:
                records = await self.resolve(master, slaves)
            except ResolutionFailure:
                record_update(result="unresolved")
                raise
            op.step("resolve", "Resolved topology", records=len(records))

            async with self.store.lock:
                await self.scheduler.stop()
                # names missing from the new set expire through their ttl
                self.store.replace(records)
                try:
                    await self.store.publish()
                except Exception:
                    record_update(result="error")
                    raise
                finally:
                    self.scheduler.start()
            op.step("publish", "Published records", records=len(records))
            record_update(result="ok")
            return records

    async def _lookup(self, hostname: str) -> str:
        key = skydns_path(hostname)
        _logger.debug("publisher.lookup", f"Getting {key}", hostname=hostname)
        try:
            return await self._client.get(key)
        except EtcdError as exc:
            raise ResolutionFailure(hostname, str(exc)) from exc
