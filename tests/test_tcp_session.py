"""Tests for the daemon TCP session and its completion state machine."""

from __future__ import annotations

import pytest

from owonero_gateway.config import Settings
from owonero_gateway.models.commands import CommandRequest
from owonero_gateway.services.tcp_session import (
    CollectorState,
    DaemonConnectionError,
    DaemonSession,
    DaemonTimeoutError,
    ResponseCollector,
    encode_payload,
)
from tests.mock_daemon import (
    GETHEIGHT_ECHO,
    FakeScheduler,
    free_port,
    reply,
)


def _request(port: int, command: str = "getheight", payload=None) -> CommandRequest:
    return CommandRequest(host="127.0.0.1", port=port, command=command, payload=payload)


# ---------------------------------------------------------------------------
# ResponseCollector (fake clock)
# ---------------------------------------------------------------------------


class TestResponseCollector:
    def _collector(self, **kwargs):
        sched = FakeScheduler()
        finalized: list[ResponseCollector] = []
        col = ResponseCollector(
            Settings().idle_timeout, sched, on_finalized=finalized.append, **kwargs,
        )
        return col, sched, finalized

    def test_idle_threshold_is_250ms(self):
        assert Settings().owo_idle_timeout_ms == 250
        col, sched, _ = self._collector()
        col.feed(b"x")
        assert sched.active[0].delay == pytest.approx(0.25)

    def test_starts_idle_without_timer(self):
        col, sched, _ = self._collector()
        assert col.state is CollectorState.idle
        assert not col.finalized
        assert sched.timers == []

    def test_each_chunk_rearms_timer(self):
        col, sched, finalized = self._collector()
        col.feed(b"getheight\r\n")
        col.feed(b"height=1\r\n")
        assert col.state is CollectorState.receiving
        assert len(sched.timers) == 2
        assert sched.timers[0].cancelled
        assert len(sched.active) == 1
        assert finalized == []

    def test_idle_expiry_finalizes_once(self):
        col, sched, finalized = self._collector()
        col.feed(b"a\r\n")
        col.feed(b"b\r\n")
        sched.fire()
        assert col.state is CollectorState.idle_expired
        assert finalized == [col]
        assert col.text == "a\r\nb\r\n"

    def test_data_after_finalization_is_ignored(self):
        col, sched, finalized = self._collector()
        col.feed(b"first")
        sched.fire()
        col.feed(b"second")
        assert col.data == b"first"
        assert sched.active == []
        assert len(finalized) == 1

    def test_remote_close_wins_over_idle_timer(self):
        col, sched, finalized = self._collector()
        col.feed(b"partial")
        col.remote_closed()
        assert col.state is CollectorState.remote_closed
        assert sched.active == []
        sched.fire()
        assert col.state is CollectorState.remote_closed
        assert len(finalized) == 1

    def test_remote_close_without_data(self):
        col, _, finalized = self._collector()
        col.remote_closed()
        assert col.finalized
        assert col.text == ""
        assert finalized == [col]

    def test_overall_timeout(self):
        col, sched, _ = self._collector()
        col.feed(b"slow")
        col.expire()
        assert col.state is CollectorState.timed_out
        assert sched.active == []

    def test_fail_keeps_error(self):
        col, _, _ = self._collector()
        err = ConnectionResetError("reset")
        col.fail(err)
        assert col.state is CollectorState.failed
        assert col.error is err

    def test_last_activity_tracks_clock(self):
        ticks = iter([10.0, 10.1])
        col, _, _ = self._collector(clock=lambda: next(ticks))
        col.feed(b"a")
        col.feed(b"b")
        assert col.last_activity == 10.1

    def test_undecodable_bytes_replaced(self):
        col, _, _ = self._collector()
        col.feed(b"ok\xff\r\n")
        assert col.text == "ok\ufffd\r\n"


class TestEncodePayload:
    def test_none_means_no_line(self):
        assert encode_payload(None) is None

    def test_json(self):
        assert encode_payload({"addr": "OWO1"}) == '{"addr": "OWO1"}'

    def test_unserializable_is_dropped(self):
        assert encode_payload({"bad": object()}) is None


# ---------------------------------------------------------------------------
# DaemonSession (real sockets against the fake daemon)
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_single_reply(fake_daemon, test_settings):
    daemon = await fake_daemon(reply(GETHEIGHT_ECHO))
    session = DaemonSession(_request(daemon.port), test_settings)
    text = await session.run()
    assert text == GETHEIGHT_ECHO.decode()
    assert session.collector.state is CollectorState.idle_expired
    assert daemon.received == b"getheight\r\n"
    assert daemon.connections == 1


@pytest.mark.asyncio
async def test_chunks_within_idle_window_are_one_reply(fake_daemon, test_settings):
    daemon = await fake_daemon(((0.0, b"getheight\r\n"), (0.1, b"height=7\r\n")))
    text = await DaemonSession(_request(daemon.port), test_settings).run()
    assert text == "getheight\r\nheight=7\r\n"


@pytest.mark.asyncio
async def test_chunk_after_idle_window_is_not_part_of_reply(fake_daemon, test_settings):
    daemon = await fake_daemon(((0.0, b"getheight\r\n"), (0.6, b"height=7\r\n")))
    text = await DaemonSession(_request(daemon.port), test_settings).run()
    assert text == "getheight\r\n"


@pytest.mark.asyncio
async def test_remote_close_finalizes(fake_daemon, test_settings):
    daemon = await fake_daemon(reply(b"bye\r\n"), close=True)
    session = DaemonSession(_request(daemon.port, "quit"), test_settings)
    assert await session.run() == "bye\r\n"
    assert session.collector.state is CollectorState.remote_closed


@pytest.mark.asyncio
async def test_remote_close_without_reply(fake_daemon, test_settings):
    daemon = await fake_daemon(close=True)
    assert await DaemonSession(_request(daemon.port), test_settings).run() == ""


@pytest.mark.asyncio
async def test_payload_sent_as_second_line(fake_daemon, test_settings):
    daemon = await fake_daemon(reply(b"ok\r\n"), expect_lines=2)
    req = _request(daemon.port, "submit", payload={"n": 1})
    await DaemonSession(req, test_settings).run()
    assert daemon.received == b'submit\r\n{"n": 1}\r\n'


@pytest.mark.asyncio
async def test_unserializable_payload_still_sends_command(fake_daemon, test_settings):
    daemon = await fake_daemon(reply(b"ok\r\n"))
    req = _request(daemon.port, "submit", payload={"bad": object()})
    assert await DaemonSession(req, test_settings).run() == "ok\r\n"
    await daemon.finished.wait()
    assert daemon.received == b"submit\r\n"


@pytest.mark.asyncio
async def test_custom_eol(fake_daemon):
    cfg = Settings(owo_eol="\\n", owo_tcp_timeout_ms=1000)
    daemon = await fake_daemon(reply(b"ok\n"))
    await DaemonSession(_request(daemon.port), cfg).run()
    assert daemon.received == b"getheight\n"


@pytest.mark.asyncio
async def test_connection_refused(test_settings):
    with pytest.raises(DaemonConnectionError):
        await DaemonSession(_request(free_port()), test_settings).run()


@pytest.mark.asyncio
@pytest.mark.parametrize("host", ["local\x00host", "a" * 70 + ".example"])
async def test_unresolvable_host_is_connection_error(test_settings, host):
    req = CommandRequest(host=host, port=6969, command="getheight")
    with pytest.raises(DaemonConnectionError):
        await DaemonSession(req, test_settings).run()


@pytest.mark.asyncio
async def test_silent_daemon_times_out(fake_daemon):
    cfg = Settings(owo_tcp_timeout_ms=300)
    daemon = await fake_daemon()
    session = DaemonSession(_request(daemon.port), cfg)
    with pytest.raises(DaemonTimeoutError):
        await session.run()
    assert session.collector.state is CollectorState.timed_out
    await daemon.finished.wait()


@pytest.mark.asyncio
async def test_trickling_daemon_hits_overall_ceiling(fake_daemon):
    cfg = Settings(owo_tcp_timeout_ms=500)
    script = tuple((0.1, b"tick\r\n") for _ in range(20))
    daemon = await fake_daemon(script)
    with pytest.raises(DaemonTimeoutError):
        await DaemonSession(_request(daemon.port), cfg).run()
