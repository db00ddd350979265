"""Local stdio transport and the listener serving the local client.

Messages are newline-delimited JSON-RPC: one message per line on stdin,
one reply per line on stdout. Nothing else is ever written to stdout.

stdin is read through an asyncio pipe reader when possible, so a pending
read is cancelled promptly at shutdown instead of pinning a worker thread.
"""

import asyncio
import logging
import sys
from contextlib import AsyncExitStack, asynccontextmanager
from io import TextIOWrapper
from typing import Any, AsyncIterator, Optional, Tuple

import anyio
import anyio.lowlevel
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp import types as mcp_types
from mcp.server.lowlevel import Server as McpServer
from mcp.shared.message import SessionMessage

logger = logging.getLogger(__name__)


async def _open_stdin_reader() -> Optional[asyncio.StreamReader]:
    """Attach an asyncio reader to the process stdin, if stdin is a pipe or tty."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=2**24)
    protocol = asyncio.StreamReaderProtocol(reader)
    try:
        await loop.connect_read_pipe(lambda: protocol, sys.stdin.buffer)
    except (ValueError, OSError, NotImplementedError) as e_pipe:
        logger.debug("stdin is not pollable (%s); falling back to threaded reads.", e_pipe)
        return None
    return reader


async def _iter_lines(stdin: Optional[asyncio.StreamReader]) -> AsyncIterator[str]:
    if stdin is None:
        stdin = await _open_stdin_reader()

    if stdin is not None:
        while True:
            line_bytes = await stdin.readline()
            if not line_bytes:
                logger.debug("Local stdin reached EOF.")
                return
            yield line_bytes.decode("utf-8", errors="replace")
    else:
        wrapped = anyio.wrap_file(TextIOWrapper(sys.stdin.buffer, encoding="utf-8", errors="replace"))
        async for line in wrapped:
            yield line
        logger.debug("Local stdin reached EOF.")


@asynccontextmanager
async def stdio_listener(
    stdin: Optional[asyncio.StreamReader] = None,
    stdout: Optional[Any] = None,
) -> AsyncIterator[
    Tuple[
        MemoryObjectReceiveStream[Any],
        MemoryObjectSendStream[SessionMessage],
    ]
]:
    """Yield ``(read_stream, write_stream)`` bound to stdin/stdout.

    *stdin* and *stdout* may be supplied (an ``asyncio.StreamReader`` and an
    ``anyio.AsyncFile``-like text writer) instead of the process handles.
    """
    if stdout is None:
        stdout = anyio.wrap_file(TextIOWrapper(sys.stdout.buffer, encoding="utf-8"))

    read_stream_writer, read_stream = anyio.create_memory_object_stream(0)
    write_stream, write_stream_reader = anyio.create_memory_object_stream(0)

    async def stdin_reader() -> None:
        try:
            async with read_stream_writer:
                async for line in _iter_lines(stdin):
                    if not line.strip():
                        continue
                    try:
                        message = mcp_types.JSONRPCMessage.model_validate_json(line)
                    except Exception as exc:
                        logger.warning("Discarding malformed message from local client: %s", exc)
                        await read_stream_writer.send(exc)
                        continue
                    await read_stream_writer.send(SessionMessage(message))
        except anyio.ClosedResourceError:
            await anyio.lowlevel.checkpoint()

    async def stdout_writer() -> None:
        try:
            async with write_stream_reader:
                async for session_message in write_stream_reader:
                    payload = session_message.message.model_dump_json(by_alias=True, exclude_none=True)
                    await stdout.write(payload + "\n")
                    await stdout.flush()
        except anyio.ClosedResourceError:
            await anyio.lowlevel.checkpoint()

    async with anyio.create_task_group() as tg:
        tg.start_soon(stdin_reader)
        tg.start_soon(stdout_writer)
        try:
            yield read_stream, write_stream
        finally:
            tg.cancel_scope.cancel()


class LocalListener:
    """Runs the local MCP server over the stdio transport.

    :meth:`start` must be awaited from the same task that later awaits
    :meth:`close`, since the transport's task group is bound to it.
    """

    def __init__(
        self,
        mcp_server: McpServer,
        stdin: Optional[asyncio.StreamReader] = None,
        stdout: Optional[Any] = None,
    ) -> None:
        self._mcp_server = mcp_server
        self._stdin = stdin
        self._stdout = stdout
        self._exit_stack = AsyncExitStack()
        self._serve_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def serve_task(self) -> Optional[asyncio.Task]:
        return self._serve_task

    async def start(self) -> asyncio.Task:
        """Open the transport and start answering local requests."""
        if self._serve_task is not None:
            raise RuntimeError("Local listener already started.")
        read_stream, write_stream = await self._exit_stack.enter_async_context(
            stdio_listener(self._stdin, self._stdout)
        )
        init_opts = self._mcp_server.create_initialization_options()
        logger.debug("Local server initialization options: %s", init_opts)
        self._serve_task = asyncio.create_task(
            self._mcp_server.run(read_stream, write_stream, init_opts),
            name="local-stdio-listener",
        )
        logger.info("Local stdio listener accepting requests as '%s'.", self._mcp_server.name)
        return self._serve_task

    async def close(self) -> None:
        """Stop serving and release stdin/stdout. Idempotent."""
        if self._closed:
            logger.debug("Local listener already closed; nothing to do.")
            return
        self._closed = True
        logger.info("Closing local stdio listener...")

        task = self._serve_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
        await self._exit_stack.aclose()
        logger.info("Local stdio listener closed.")
