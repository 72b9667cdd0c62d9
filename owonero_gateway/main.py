"""FastAPI application entry-point."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from owonero_gateway import __version__
from owonero_gateway.config import settings
from owonero_gateway.models.responses import ErrorResponse
from owonero_gateway.routers import health, tcp
from owonero_gateway.utils.logging import get_logger, setup_logging

log = get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown hooks."""
    setup_logging(settings.log_level, json_output=settings.log_json)
    log.info("gateway.started", port=settings.port, version=__version__)
    yield


app = FastAPI(
    title="Owonero Gateway",
    description="HTTP/JSON to line-oriented TCP gateway for the Owonero daemon",
    version=__version__,
    lifespan=lifespan,
)


@app.middleware("http")
async def cors(request: Request, call_next):
    """Answer every preflight with 204 and tag routed responses for the browser."""
    if request.method == "OPTIONS":
        return Response(status_code=204, headers=CORS_HEADERS)
    response = await call_next(request)
    if response.status_code != 404:
        response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Unknown paths and wrong methods look the same to the dashboard.
    if exc.status_code in (404, 405):
        return JSONResponse(
            status_code=404,
            content=ErrorResponse(error="not found").model_dump(),
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail)).model_dump(),
    )


app.include_router(health.router)
app.include_router(tcp.router)
