from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from dnsd.dependencies import get_publish_engine
from dnsd.logger import get_logger
from dnsd.schemas.dns import RecordOut, RecordsOut, TopologyIn
from dnsd.services.publisher import PublishEngine, ResolutionFailure

router = APIRouter(prefix="/dns", tags=["dns"])
_logger = get_logger("api.dns")


def _error_response(exc: Exception, status_code: int) -> PlainTextResponse:
    return PlainTextResponse(f"{type(exc).__name__}: {exc}\n", status_code=status_code)


@router.put("", response_class=PlainTextResponse)
async def update_topology(
    request: Request,
    engine: PublishEngine = Depends(get_publish_engine),
) -> PlainTextResponse:
    try:
        topology = TopologyIn.model_validate_json(await request.body())
    except ValidationError as exc:
        _logger.warning("dns.update.invalid", "Rejected malformed topology", error_count=exc.error_count())
        return _error_response(exc, 400)

    master = topology.master.address
    slaves = [slave.address for slave in topology.slaves]
    try:
        await engine.update(master, slaves)
    except ResolutionFailure as exc:
        _logger.warning(
            "dns.update.unresolved",
            "Topology could not be resolved",
            hostname=exc.hostname,
            error=exc.detail,
        )
        return _error_response(exc, 400)
    except Exception as exc:  # noqa: BLE001
        _logger.exception(
            "dns.update.error",
            "Topology update failed",
            master=master,
            error_type=type(exc).__name__,
        )
        return _error_response(exc, 500)
    return PlainTextResponse("OK\n")


@router.get("/records", response_model=RecordsOut)
async def list_records(engine: PublishEngine = Depends(get_publish_engine)) -> RecordsOut:
    records = sorted(engine.records().values(), key=lambda item: item.hostname)
    return RecordsOut(
        domain=engine.domain,
        refreshing=engine.scheduler.running,
        records=[
            RecordOut(hostname=item.hostname, key=item.key, value=item.value, ttl=item.ttl)
            for item in records
        ],
    )
