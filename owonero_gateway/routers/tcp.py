"""Daemon command proxy endpoint."""

from __future__ import annotations

import json

from fastapi import APIRouter, Request
from pydantic import ValidationError

from owonero_gateway.config import Settings
from owonero_gateway.models.commands import CommandRequest, GatewayOutcome, OutcomeStatus
from owonero_gateway.models.responses import TcpProxyRequest, TcpProxyResponse
from owonero_gateway.services.gateway import gateway
from owonero_gateway.utils.logging import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["tcp"])

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _parse_body(body: bytes, cfg: Settings) -> CommandRequest:
    data = json.loads(body) if body.strip() else {}
    req = TcpProxyRequest.model_validate(data)
    return CommandRequest(
        host=req.host or cfg.owo_default_host,
        port=req.port or cfg.owo_default_port,
        command=req.command or cfg.owo_default_command,
        payload=req.payload,
    )


def _is_verbose(request: Request) -> bool:
    # Read leniently: an odd flag value must not turn into a 422.
    return request.query_params.get("verbose", "").strip().lower() in _TRUE_VALUES


@router.post("/tcp", response_model=TcpProxyResponse, response_model_exclude_none=True)
async def proxy_tcp_command(request: Request) -> TcpProxyResponse:
    """Run one command against a daemon and return the adjusted value.

    Always answers 200: unreachable daemons, timeouts and malformed bodies
    all come back as ``adjusted: "no response"``.  ``?verbose=true`` adds the
    raw reply and the failure kind.
    """
    body = await request.body()
    try:
        cmd = _parse_body(body, gateway.settings)
    except (ValueError, ValidationError) as exc:
        log.warning("api.bad_request", error=str(exc))
        outcome = GatewayOutcome(status=OutcomeStatus.bad_request, error=str(exc))
    else:
        try:
            outcome = await gateway.execute(cmd)
        except Exception as exc:
            log.exception("api.gateway_failed", host=cmd.host, port=cmd.port)
            outcome = GatewayOutcome(status=OutcomeStatus.connection_error, error=str(exc))

    resp = TcpProxyResponse(ok=True, adjusted=outcome.adjusted)
    if _is_verbose(request):
        if outcome.result is not None:
            resp.raw = outcome.result.original
            resp.cleaned = outcome.result.cleaned
        if not outcome.ok:
            resp.error = outcome.status.value
    return resp
