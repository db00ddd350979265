"""Tests for LifecycleController: startup, serving, signals and shutdown."""

from __future__ import annotations

import asyncio
import json
import os
import signal
import sys
from typing import Any, List
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from mcp import types as mcp_types

from mcp_sse_bridge.config.schema import BridgeConfig
from mcp_sse_bridge.constants import EXIT_FAILURE, EXIT_OK
from mcp_sse_bridge.errors import InvalidEndpointError, RemoteConnectionError
from mcp_sse_bridge.runtime.models import SessionState
from mcp_sse_bridge.server.lifecycle import LifecycleController

_LISTENER = "mcp_sse_bridge.server.lifecycle.LocalListener"


def _cfg(**overrides: Any) -> BridgeConfig:
    values = {"server_name": "Test Bridge", "sse_url": "https://example.com/sse"}
    values.update(overrides)
    return BridgeConfig(**values)


class _FakeConnection:
    def __init__(self, events: List[str] | None = None, close_error: Exception | None = None) -> None:
        self.events = events if events is not None else []
        self.close_error = close_error
        self.close_calls = 0
        self.closed = False

    async def forward(self, request: Any) -> Any:
        return {"tools": []}

    async def close(self) -> None:
        self.close_calls += 1
        self.events.append("remote")
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class _FakeListener:
    """Serves until closed; ``mode`` selects how the serve task ends on its own."""

    instances: List["_FakeListener"] = []
    mode = "forever"
    events: List[str] = []

    def __init__(self, mcp_server: Any, stdin: Any = None, stdout: Any = None) -> None:
        self.mcp_server = mcp_server
        self.serve_task: asyncio.Task | None = None
        self.close_calls = 0
        _FakeListener.instances.append(self)

    async def _serve(self) -> None:
        if self.mode == "eof":
            return
        if self.mode == "crash":
            raise OSError("stdout closed")
        await asyncio.Event().wait()

    async def start(self) -> asyncio.Task:
        if self.mode == "start-fails":
            raise OSError("stdin unavailable")
        self.serve_task = asyncio.create_task(self._serve())
        return self.serve_task

    async def close(self) -> None:
        self.close_calls += 1
        self.events.append("local")
        if self.serve_task is not None and not self.serve_task.done():
            self.serve_task.cancel()
            await asyncio.wait({self.serve_task})


@pytest.fixture(autouse=True)
def _reset_listener():
    _FakeListener.instances = []
    _FakeListener.mode = "forever"
    _FakeListener.events = []
    yield


def _manager(conn: Any = None, error: Exception | None = None) -> MagicMock:
    mgr = MagicMock()
    mgr.connect = AsyncMock(return_value=conn, side_effect=error)
    return mgr


async def _signal_when_connected(ctrl: LifecycleController, *signums: int) -> None:
    while ctrl.state is SessionState.INITIALIZING:
        await asyncio.sleep(0)
    for signum in signums:
        ctrl.request_shutdown(signum)


def _run_with_signals(ctrl: LifecycleController, *signums: int) -> int:
    async def _scenario() -> int:
        sender = asyncio.create_task(_signal_when_connected(ctrl, *signums))
        code = await ctrl.run()
        await sender
        return code

    return asyncio.run(_scenario())


class TestStartup:
    def test_connects_registers_and_serves(self) -> None:
        conn = _FakeConnection()
        mgr = _manager(conn)
        ctrl = LifecycleController(_cfg(api_key="sk-123"), connection_manager=mgr)
        with patch(_LISTENER, _FakeListener):
            code = _run_with_signals(ctrl, signal.SIGTERM)

        assert code == EXIT_OK
        endpoint = mgr.connect.await_args.args[0]
        assert endpoint.address == "https://example.com/sse"
        assert endpoint.credential == "sk-123"

        server = _FakeListener.instances[0].mcp_server
        assert server.name == "Test Bridge"
        assert mcp_types.CallToolRequest in server.request_handlers
        assert mcp_types.ListResourceTemplatesRequest in server.request_handlers

    def test_connection_failure_exits_1(self) -> None:
        mgr = _manager(error=RemoteConnectionError("refused"))
        ctrl = LifecycleController(_cfg(), connection_manager=mgr)
        with patch(_LISTENER, _FakeListener):
            code = asyncio.run(ctrl.run())
        assert code == EXIT_FAILURE
        assert _FakeListener.instances == []
        assert ctrl.state is SessionState.CLOSED

    def test_malformed_address_exits_1(self) -> None:
        mgr = _manager(error=InvalidEndpointError("example.com", "missing URI scheme"))
        ctrl = LifecycleController(_cfg(sse_url="example.com"), connection_manager=mgr)
        with patch(_LISTENER, _FakeListener):
            assert asyncio.run(ctrl.run()) == EXIT_FAILURE

    def test_listener_failure_closes_remote(self) -> None:
        conn = _FakeConnection()
        _FakeListener.mode = "start-fails"
        ctrl = LifecycleController(_cfg(), connection_manager=_manager(conn))
        with patch(_LISTENER, _FakeListener):
            code = asyncio.run(ctrl.run())
        assert code == EXIT_FAILURE
        assert conn.close_calls == 1
        assert ctrl.state is SessionState.CLOSED

    def test_signal_interrupts_hanging_handshake(self) -> None:
        mgr = MagicMock()
        ctrl = LifecycleController(_cfg(), connection_manager=mgr)

        async def _scenario() -> int:
            entered = asyncio.Event()

            async def _connect(endpoint: Any) -> None:
                entered.set()
                await asyncio.Event().wait()

            mgr.connect = _connect
            run_task = asyncio.create_task(ctrl.run())
            await entered.wait()
            ctrl.request_shutdown(signal.SIGTERM)
            done, _ = await asyncio.wait({run_task}, timeout=2)
            assert run_task in done, "bridge still starting after SIGTERM"
            return run_task.result()

        with patch(_LISTENER, _FakeListener):
            code = asyncio.run(_scenario())
        assert code == EXIT_OK
        assert _FakeListener.instances == []
        assert ctrl.state is SessionState.CLOSED

    def test_repeated_signal_during_hanging_handshake(self) -> None:
        mgr = MagicMock()
        ctrl = LifecycleController(_cfg(), connection_manager=mgr)

        async def _scenario() -> int:
            entered = asyncio.Event()

            async def _connect(endpoint: Any) -> None:
                entered.set()
                await asyncio.Event().wait()

            mgr.connect = _connect
            run_task = asyncio.create_task(ctrl.run())
            await entered.wait()
            ctrl.request_shutdown(signal.SIGINT)
            ctrl.request_shutdown(signal.SIGINT)
            return await asyncio.wait_for(run_task, timeout=2)

        with patch(_LISTENER, _FakeListener):
            assert asyncio.run(_scenario()) == EXIT_OK
        assert ctrl.state is SessionState.CLOSED

    def test_stop_requested_by_startup_code_applies_after_startup(self) -> None:
        conn = _FakeConnection()
        mgr = MagicMock()
        ctrl = LifecycleController(_cfg(), connection_manager=mgr)

        async def _connect(endpoint: Any) -> _FakeConnection:
            ctrl.request_shutdown(signal.SIGINT)
            return conn

        mgr.connect = _connect
        with patch(_LISTENER, _FakeListener):
            code = asyncio.run(ctrl.run())
        assert code == EXIT_OK
        assert conn.close_calls == 1
        assert _FakeListener.instances[0].close_calls == 1


class TestShutdown:
    def test_two_signals_close_each_handle_once(self) -> None:
        conn = _FakeConnection()
        ctrl = LifecycleController(_cfg(), connection_manager=_manager(conn))
        with patch(_LISTENER, _FakeListener):
            code = _run_with_signals(ctrl, signal.SIGINT, signal.SIGTERM)

        assert code == EXIT_OK
        assert conn.close_calls == 1
        assert _FakeListener.instances[0].close_calls == 1
        assert ctrl.state is SessionState.CLOSED

    def test_remote_closed_before_local(self) -> None:
        events: List[str] = []
        _FakeListener.events = events
        ctrl = LifecycleController(_cfg(), connection_manager=_manager(_FakeConnection(events)))
        with patch(_LISTENER, _FakeListener):
            _run_with_signals(ctrl, signal.SIGTERM)
        assert events == ["remote", "local"]

    def test_remote_close_error_does_not_block_local(self) -> None:
        conn = _FakeConnection(close_error=RuntimeError("already gone"))
        ctrl = LifecycleController(_cfg(), connection_manager=_manager(conn))
        with patch(_LISTENER, _FakeListener):
            code = _run_with_signals(ctrl, signal.SIGINT)
        assert code == EXIT_OK
        assert _FakeListener.instances[0].close_calls == 1
        assert ctrl.state is SessionState.CLOSED

    def test_shutdown_is_idempotent(self) -> None:
        conn = _FakeConnection()
        ctrl = LifecycleController(_cfg(), connection_manager=_manager(conn))

        async def _scenario() -> None:
            with patch(_LISTENER, _FakeListener):
                sender = asyncio.create_task(_signal_when_connected(ctrl, signal.SIGTERM))
                await ctrl.run()
                await sender
            await ctrl.shutdown()

        asyncio.run(_scenario())
        assert conn.close_calls == 1

    def test_local_eof_is_graceful(self) -> None:
        _FakeListener.mode = "eof"
        conn = _FakeConnection()
        ctrl = LifecycleController(_cfg(), connection_manager=_manager(conn))
        with patch(_LISTENER, _FakeListener):
            assert asyncio.run(ctrl.run()) == EXIT_OK
        assert conn.close_calls == 1

    def test_local_transport_failure_exits_1(self) -> None:
        _FakeListener.mode = "crash"
        conn = _FakeConnection()
        ctrl = LifecycleController(_cfg(), connection_manager=_manager(conn))
        with patch(_LISTENER, _FakeListener):
            assert asyncio.run(ctrl.run()) == EXIT_FAILURE
        assert conn.close_calls == 1

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
    def test_real_sigterm_triggers_shutdown(self) -> None:
        conn = _FakeConnection()
        ctrl = LifecycleController(_cfg(), connection_manager=_manager(conn))

        async def _scenario() -> int:
            async def _kill() -> None:
                while ctrl.state is SessionState.INITIALIZING:
                    await asyncio.sleep(0)
                os.kill(os.getpid(), signal.SIGTERM)

            sender = asyncio.create_task(_kill())
            code = await ctrl.run()
            await sender
            return code

        with patch(_LISTENER, _FakeListener):
            assert asyncio.run(_scenario()) == EXIT_OK
        assert conn.close_calls == 1


class _CollectingStdout:
    def __init__(self) -> None:
        self.lines: List[str] = []

    async def write(self, data: str) -> None:
        self.lines.append(data)

    async def flush(self) -> None:
        pass


class TestStdioEndToEnd:
    def test_initialize_then_eof(self) -> None:
        stdout = _CollectingStdout()
        conn = _FakeConnection()

        async def _scenario() -> int:
            stdin = asyncio.StreamReader()
            init = {
                "jsonrpc": "2.0",
                "id": 1,
                "method": "initialize",
                "params": {
                    "protocolVersion": mcp_types.LATEST_PROTOCOL_VERSION,
                    "capabilities": {},
                    "clientInfo": {"name": "test-client", "version": "0.1"},
                },
            }
            stdin.feed_data((json.dumps(init) + "\n").encode())
            stdin.feed_eof()
            ctrl = LifecycleController(
                _cfg(server_name="E2E Bridge"),
                connection_manager=_manager(conn),
                stdin=stdin,
                stdout=stdout,
            )
            return await ctrl.run()

        assert asyncio.run(_scenario()) == EXIT_OK
        replies = [json.loads(line) for line in stdout.lines]
        assert replies[0]["id"] == 1
        assert replies[0]["result"]["serverInfo"]["name"] == "E2E Bridge"
        assert "tools" in replies[0]["result"]["capabilities"]
        assert conn.close_calls == 1
