"""HTTP front end for SQL Gateway.

``POST /query`` takes ``{"sql": ..., "params": [...]}`` and streams the
result document back as ``application/json``. Acquisition and execution
happen before the response starts, so their errors produce a regular JSON
error response. An encoding failure after streaming began can only cut
the response short; the body is then truncated, invalid JSON.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from sql_gateway.__about__ import __version__
from sql_gateway.core.exceptions import (
    ConfigurationError,
    ConnectionError,
    EncodingError,
    GatewayError,
    QueryError,
    TimeoutError,
)
from sql_gateway.core.gateway import QueryGateway
from sql_gateway.core.logging import get_logger
from sql_gateway.core.models import QueryRequest

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

    from sql_gateway.core.config import ResolvedConfig

# Most specific first: TimeoutError is a QueryError.
_STATUS_CODES: list[tuple[type[GatewayError], int]] = [
    (TimeoutError, 504),
    (QueryError, 400),
    (ConnectionError, 503),
    (ConfigurationError, 500),
    (EncodingError, 500),
]

router = APIRouter()


def get_gateway(request: Request) -> QueryGateway:
    return request.app.state.gateway


Gateway = Annotated[QueryGateway, Depends(get_gateway)]


def status_for(exc: GatewayError) -> int:
    for exc_class, status in _STATUS_CODES:
        if isinstance(exc, exc_class):
            return status
    return 500


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    get_logger(__name__).error(
        "request failed", path=request.url.path, error=exc.message
    )
    return JSONResponse(
        status_code=status_for(exc),
        content={"error": exc.message, "code": getattr(exc, "code", None)},
    )


def _logged(chunks: Iterator[bytes]) -> Iterator[bytes]:
    try:
        yield from chunks
    except GatewayError as e:
        get_logger(__name__).error("response truncated", error=e.message)
        raise


# Plain def: FastAPI runs it in the threadpool, so a slow pool or engine
# blocks only this request.
@router.post("/query")
def run_query(payload: QueryRequest, gateway: Gateway) -> StreamingResponse:
    log = get_logger(__name__)
    log.info("got query", sql=" ".join(payload.sql.split())[:200])
    chunks = gateway.stream(payload.sql, payload.params)
    return StreamingResponse(_logged(chunks), media_type="application/json")


@router.get("/health")
def health(gateway: Gateway) -> dict[str, str]:
    return {
        "status": "ok",
        "engine": gateway.provisioner.descriptor.engine,
        "version": __version__,
    }


def create_app(
    config: ResolvedConfig | None = None, gateway: QueryGateway | None = None
) -> FastAPI:
    """Build the app for one data source.

    The gateway (and its pool) is created at startup from ``config``
    unless one is passed in; a ConfigurationError aborts startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if gateway is not None:
            active = gateway
        elif config is not None:
            active = QueryGateway.from_config(config)
        else:
            raise ConfigurationError("No gateway configuration supplied")
        active.provisioner.open()
        app.state.gateway = active
        try:
            yield
        finally:
            active.close()

    app = FastAPI(title="SQL Gateway", version=__version__, lifespan=lifespan)
    app.include_router(router)
    app.add_exception_handler(GatewayError, gateway_error_handler)
    return app
