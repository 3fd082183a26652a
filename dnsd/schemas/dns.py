from __future__ import annotations

from pydantic import BaseModel, Field


class HostIn(BaseModel):
    address: str = Field(min_length=1)


class TopologyIn(BaseModel):
    master: HostIn
    slaves: list[HostIn]


class RecordOut(BaseModel):
    hostname: str
    key: str
    value: str
    ttl: int


class RecordsOut(BaseModel):
    domain: str
    refreshing: bool
    records: list[RecordOut]
