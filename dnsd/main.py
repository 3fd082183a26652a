from __future__ import annotations

from contextlib import asynccontextmanager
from time import perf_counter
from typing import AsyncIterator, Awaitable, Callable, Optional
from uuid import uuid4

from fastapi import FastAPI, Request, Response

from dnsd.config import get_settings
from dnsd.dependencies import build_publish_engine
from dnsd.logger import configure_logging, get_logger
from dnsd.metrics import observe_http_request
from dnsd.routes import dns, system

settings = get_settings()
configure_logging(settings.log_level, settings.log_file)
logger = get_logger("api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    engine = build_publish_engine(settings)
    logger.info(
        "app.startup",
        "Starting app",
        env=settings.app_env,
        version=settings.app_version,
        domain=engine.domain,
        peers=",".join(str(peer) for peer in settings.peer_list()),
        ttl=settings.ttl,
        ttl_refresh=settings.ttl_refresh,
    )
    await engine.start()
    app.state.publish_engine = engine
    try:
        yield
    finally:
        await engine.close()
        app.state.publish_engine = None
        logger.info("app.shutdown", "Shutting down app")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)


@app.middleware("http")
async def request_logging(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    request_id = request.headers.get("x-request-id") or str(uuid4())
    client: Optional[str] = None
    if request.client:
        client = request.client.host

    start = perf_counter()
    with logger.context(request_id=request_id):
        logger.info(
            "request.start",
            "Started",
            method=request.method,
            path=request.url.path,
            client=client,
        )
        try:
            response = await call_next(request)
        except Exception as exc:
            duration = perf_counter() - start
            logger.exception(
                "request.error",
                "Failed",
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration * 1000, 1),
                error_type=type(exc).__name__,
            )
            observe_http_request(
                method=request.method,
                path=request.url.path,
                status=500,
                duration_seconds=duration,
            )
            raise

        duration = perf_counter() - start
        logger.info(
            "request.complete",
            "Completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 1),
        )
        observe_http_request(
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_seconds=duration,
        )

    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(system.router)
app.include_router(dns.router)
