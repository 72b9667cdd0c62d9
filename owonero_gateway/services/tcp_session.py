"""Transient TCP sessions against an Owonero daemon.

The daemon speaks plaintext lines with no framing, so a reply is considered
complete once the socket has been quiet for the idle window, or when the
remote closes.  A hard ceiling bounds the whole session.
"""

from __future__ import annotations

import asyncio
import json
import time
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from owonero_gateway.config import Settings, settings
from owonero_gateway.models.commands import CommandRequest
from owonero_gateway.utils.logging import get_logger

log = get_logger(__name__)


class DaemonSessionError(Exception):
    """Base class for transport-level failures."""


class DaemonConnectionError(DaemonSessionError):
    """Endpoint unreachable, refused, or the socket broke mid-reply."""


class DaemonTimeoutError(DaemonSessionError):
    """No completion signal within the overall ceiling."""


# ── completion state machine ─────────────────────────────────────────────

class CollectorState(str, Enum):
    idle = "idle"
    receiving = "receiving"
    idle_expired = "idle_expired"
    remote_closed = "remote_closed"
    timed_out = "timed_out"
    failed = "failed"


FINAL_STATES = frozenset({
    CollectorState.idle_expired,
    CollectorState.remote_closed,
    CollectorState.timed_out,
    CollectorState.failed,
})


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


class ResponseCollector:
    """Accumulates one reply and decides when it is finished.

    ``schedule`` has the signature of ``loop.call_later``; tests pass a fake
    one to drive the idle timer by hand.  Once a final state is reached all
    further input is ignored.
    """

    def __init__(
        self,
        idle_timeout: float,
        schedule: Scheduler,
        on_finalized: Optional[Callable[["ResponseCollector"], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.idle_timeout = idle_timeout
        self.state = CollectorState.idle
        self.error: Optional[BaseException] = None
        self.last_activity: Optional[float] = None
        self._schedule = schedule
        self._on_finalized = on_finalized
        self._clock = clock
        self._chunks: list[bytes] = []
        self._idle_handle: Optional[TimerHandle] = None

    @property
    def finalized(self) -> bool:
        return self.state in FINAL_STATES

    @property
    def data(self) -> bytes:
        return b"".join(self._chunks)

    @property
    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")

    def feed(self, chunk: bytes) -> None:
        if self.finalized or not chunk:
            return
        self._chunks.append(chunk)
        self.state = CollectorState.receiving
        self.last_activity = self._clock()
        self._rearm()

    def remote_closed(self) -> None:
        self._finalize(CollectorState.remote_closed)

    def expire(self) -> None:
        """Overall ceiling hit."""
        self._finalize(CollectorState.timed_out)

    def fail(self, exc: BaseException) -> None:
        if not self.finalized:
            self.error = exc
        self._finalize(CollectorState.failed)

    def _rearm(self) -> None:
        if self._idle_handle is not None:
            self._idle_handle.cancel()
        self._idle_handle = self._schedule(self.idle_timeout, self._idle_expired)

    def _idle_expired(self) -> None:
        self._idle_handle = None
        self._finalize(CollectorState.idle_expired)

    def _finalize(self, state: CollectorState) -> None:
        if self.finalized:
            return
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None
        self.state = state
        if self._on_finalized is not None:
            self._on_finalized(self)


# ── session ──────────────────────────────────────────────────────────────

def encode_payload(payload: Any) -> Optional[str]:
    """JSON text for the payload line, or None when it cannot be serialized.

    An unserializable payload is dropped and the command still goes out on
    its own.
    """
    if payload is None:
        return None
    try:
        return json.dumps(payload)
    except (TypeError, ValueError) as exc:
        log.debug("tcp.payload_unserializable", error=str(exc))
        return None


class DaemonSession:
    """One connection, one command, one reply."""

    def __init__(
        self,
        request: CommandRequest,
        cfg: Settings | None = None,
        schedule: Optional[Scheduler] = None,
    ) -> None:
        self.request = request
        self._cfg = cfg or settings
        self._schedule = schedule
        self.collector: Optional[ResponseCollector] = None

    async def run(self) -> str:
        """Send the command and return the decoded reply text.

        Raises DaemonConnectionError or DaemonTimeoutError.
        """
        try:
            return await asyncio.wait_for(self._exchange(), self._cfg.tcp_timeout)
        except asyncio.TimeoutError:
            if self.collector is not None:
                self.collector.expire()
            log.warning(
                "tcp.timeout",
                host=self.request.host,
                port=self.request.port,
                timeout_ms=self._cfg.owo_tcp_timeout_ms,
            )
            raise DaemonTimeoutError("TCP timeout") from None

    async def _exchange(self) -> str:
        req = self.request
        log.debug("tcp.connecting", host=req.host, port=req.port)
        try:
            reader, writer = await asyncio.open_connection(req.host, req.port)
        except (OSError, ValueError) as exc:
            # Unencodable hosts (NUL, over-long IDNA label) raise ValueError.
            log.warning("tcp.connect_failed", host=req.host, port=req.port, error=str(exc))
            raise DaemonConnectionError("TCP connection failed") from exc
        log.debug("tcp.connected", host=req.host, port=req.port)

        loop = asyncio.get_running_loop()
        done: asyncio.Future[ResponseCollector] = loop.create_future()

        def _resolve(collector: ResponseCollector) -> None:
            if not done.done():
                done.set_result(collector)

        self.collector = ResponseCollector(
            self._cfg.idle_timeout,
            self._schedule or loop.call_later,
            on_finalized=_resolve,
        )
        pump = asyncio.create_task(self._pump(reader, self.collector))
        try:
            self._send(writer)
            await writer.drain()
            collector = await done
        except OSError as exc:
            raise DaemonConnectionError("TCP connection failed") from exc
        finally:
            pump.cancel()
            writer.transport.abort()

        if collector.state is CollectorState.failed:
            raise DaemonConnectionError("TCP connection failed") from collector.error
        log.debug("tcp.complete", state=collector.state.value, bytes=len(collector.data))
        return collector.text

    def _send(self, writer: asyncio.StreamWriter) -> None:
        eol = self._cfg.owo_eol
        # Two separate writes; the socket stays open for the reply.
        writer.write((self.request.command + eol).encode("utf-8"))
        payload = encode_payload(self.request.payload)
        if payload is not None:
            writer.write((payload + eol).encode("utf-8"))

    async def _pump(self, reader: asyncio.StreamReader, collector: ResponseCollector) -> None:
        size = self._cfg.owo_read_chunk_size
        try:
            while not collector.finalized:
                chunk = await reader.read(size)
                if not chunk:
                    log.debug("tcp.remote_closed")
                    collector.remote_closed()
                    return
                collector.feed(chunk)
                log.debug("tcp.received", total_bytes=len(collector.data))
        except OSError as exc:
            log.warning("tcp.read_failed", error=str(exc))
            collector.fail(exc)
