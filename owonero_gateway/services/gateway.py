"""Command gateway: one daemon session in, one adjusted value out."""

from __future__ import annotations

import time

from owonero_gateway.config import Settings, settings
from owonero_gateway.models.commands import (
    CommandRequest,
    CommandResult,
    GatewayOutcome,
    OutcomeStatus,
)
from owonero_gateway.services.tcp_session import (
    DaemonConnectionError,
    DaemonSession,
    DaemonTimeoutError,
)
from owonero_gateway.utils.daemon_parser import extract_adjusted, strip_empty_lines
from owonero_gateway.utils.logging import get_logger

log = get_logger(__name__)


def build_result(command: str, original: str, elapsed_time: float = 0.0) -> CommandResult:
    """Shape a raw daemon reply into original / cleaned / adjusted."""
    cleaned = strip_empty_lines(original)
    adjusted = extract_adjusted(command, original, cleaned)
    return CommandResult(
        command=command,
        original=original,
        cleaned=cleaned,
        adjusted=adjusted,
        elapsed_time=elapsed_time,
    )


class CommandGateway:
    """Runs daemon commands with the process-wide settings it was built with."""

    def __init__(self, cfg: Settings | None = None) -> None:
        self._cfg = cfg or settings

    @property
    def settings(self) -> Settings:
        return self._cfg

    async def run_command(self, request: CommandRequest) -> CommandResult:
        """Run *request* and return the shaped result.

        Transport failures propagate as DaemonSessionError subclasses.
        """
        started = time.monotonic()
        original = await DaemonSession(request, self._cfg).run()
        result = build_result(request.command, original, time.monotonic() - started)
        log.info(
            "gateway.result",
            command=request.command,
            host=request.host,
            port=request.port,
            adjusted=result.adjusted,
            elapsed=round(result.elapsed_time, 3),
        )
        return result

    async def execute(self, request: CommandRequest) -> GatewayOutcome:
        """Like run_command, but never raises for daemon-communication failures."""
        try:
            result = await self.run_command(request)
        except DaemonConnectionError as exc:
            log.warning("gateway.connection_failed", host=request.host, port=request.port)
            return GatewayOutcome(status=OutcomeStatus.connection_error, error=str(exc))
        except DaemonTimeoutError as exc:
            log.warning("gateway.timeout", host=request.host, port=request.port)
            return GatewayOutcome(status=OutcomeStatus.timeout, error=str(exc))
        return GatewayOutcome(status=OutcomeStatus.ok, result=result)


# ── Singleton instance ────────────────────────────────────────────────────

gateway = CommandGateway()
