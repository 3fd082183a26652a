from __future__ import annotations

from fastapi import HTTPException, Request

from dnsd.config import Settings
from dnsd.services.etcd import EtcdClient
from dnsd.services.publisher import PublishEngine


def build_publish_engine(settings: Settings) -> PublishEngine:
    client = EtcdClient(
        settings.peer_list(),
        retry_limit=settings.etcd_retry_limit,
        retry_delay_seconds=settings.etcd_retry_delay_seconds,
        timeout_seconds=settings.etcd_timeout_seconds,
    )
    return PublishEngine(
        client,
        domain=settings.domain,
        ttl=settings.ttl,
        ttl_refresh=settings.ttl_refresh,
    )


def get_publish_engine(request: Request) -> PublishEngine:
    engine = getattr(request.app.state, "publish_engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Publisher is not running.")
    return engine
