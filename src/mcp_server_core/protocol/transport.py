"""
Transport layer for MCP protocol communication.

Implements the newline-delimited JSON stdio transport. The transport
only frames and moves payloads; decoding and dispatch are done by the
message handler it is given.
"""

import asyncio
import json
import sys
import threading
from typing import Any, AsyncIterator, Callable, Dict, Optional, TextIO

import structlog

logger = structlog.get_logger(__name__)

# Takes one raw JSON line and returns the serialized reply, if any
RawMessageHandler = Callable[[str], Optional[str]]


class TransportError(Exception):
    """Base exception for transport errors."""

    pass


class StdioTransport:
    """
    Stdio transport for MCP communication.

    Reads one JSON-RPC payload per line from stdin and writes replies
    and server-originated notifications to stdout, one per line.
    """

    def __init__(self, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None):
        self._stdin = stdin
        self._stdout = stdout
        self._running = False
        self._message_handler: Optional[RawMessageHandler] = None
        self._write_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    def set_message_handler(self, handler: RawMessageHandler) -> None:
        """Set the handler that processes each incoming line."""
        self._message_handler = handler

    async def start(self) -> None:
        """Start the stdio transport loop; returns on EOF or ``stop``."""
        if self._running:
            raise TransportError("Transport is already running")

        if not self._message_handler:
            raise TransportError("Message handler not set")

        self._running = True
        logger.info("Starting stdio transport")

        try:
            await self._run_transport_loop()
        except Exception as e:
            logger.error("Transport loop error", error=str(e), exc_info=True)
            raise
        finally:
            self._running = False
            logger.info("Stdio transport stopped")

    async def stop(self) -> None:
        """Stop the stdio transport."""
        self._running = False

    def write_message(self, message: Dict[str, Any]) -> None:
        """
        Serialize and write a message to stdout.

        Safe to call from any thread, e.g. from a registry listener.
        """
        self._write_line(json.dumps(message, separators=(",", ":")))

    async def send_message(self, message: Dict[str, Any]) -> None:
        """
        Send a message via stdout.

        Args:
            message: JSON-RPC envelope to send
        """
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.write_message, message)
            logger.debug("Sent message", method=message.get("method"), request_id=message.get("id"))
        except Exception as e:
            logger.error("Failed to send message", error=str(e), exc_info=True)
            raise TransportError(f"Failed to send message: {e}") from e

    def _write_line(self, line: str) -> None:
        stdout = self._stdout or sys.stdout
        with self._write_lock:
            stdout.write(line + "\n")
            stdout.flush()

    async def _run_transport_loop(self) -> None:
        """Main transport loop for processing stdin messages."""
        logger.debug("Starting transport loop")

        async for line in self._read_stdin_lines():
            if not self._running:
                break

            try:
                await self._process_line(line)
            except Exception as e:
                logger.error("Error processing line", error=str(e), line=line[:100])
                # Continue processing other messages

    async def _read_stdin_lines(self) -> AsyncIterator[str]:
        """Async generator for reading lines from stdin."""
        loop = asyncio.get_running_loop()
        stdin = self._stdin or sys.stdin

        while self._running:
            line = await loop.run_in_executor(None, stdin.readline)

            if not line:  # EOF
                logger.info("Received EOF on stdin")
                break

            line = line.strip()
            if line:
                yield line

    async def _process_line(self, line: str) -> None:
        """
        Process a single line from stdin.

        Args:
            line: JSON line to process
        """
        loop = asyncio.get_running_loop()
        reply = await loop.run_in_executor(None, self._message_handler, line)

        if reply is not None:
            await loop.run_in_executor(None, self._write_line, reply)
