"""
MCP server composition.

Wires the JSON-RPC engine, capability negotiator, component registry,
request router and stdio transport together.
"""

import asyncio
import signal
import sys
from typing import Any, Dict, Optional, Union

import structlog

from .components.registry import ComponentRegistry
from .config.settings import Config
from .protocol.capabilities import CapabilityNegotiator
from .protocol.jsonrpc import JsonRpcEngine
from .protocol.processor import MessageProcessor, Reply
from .protocol.router import RequestRouter
from .protocol.schemas import ServerInfo
from .protocol.transport import StdioTransport

logger = structlog.get_logger(__name__)


class MCPServer:
    """
    MCP server built from configuration and a component registry.

    ``handle_message`` serves in-process callers; ``run_stdio`` serves a
    host over stdin/stdout.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        registry: Optional[ComponentRegistry] = None,
        transport: Optional[StdioTransport] = None,
    ):
        """
        Initialize the MCP server.

        Args:
            config: Server configuration
            registry: Components to serve; a new empty registry if omitted
            transport: Stdio transport to serve on
        """
        self.config = config or Config()
        self.registry = registry if registry is not None else ComponentRegistry()
        self.transport = transport or StdioTransport()
        self._running = False

        self.engine = JsonRpcEngine(debug=self.config.server.debug)
        self.negotiator = CapabilityNegotiator()
        self.router = RequestRouter(
            self.engine,
            self.registry,
            negotiator=self.negotiator,
            server_info=ServerInfo(**self.config.server_info.model_dump()),
            server_capabilities=self.config.capabilities,
            protocol_version=self.config.protocol.protocol_version,
            supported_versions=self.config.protocol.supported_versions,
            strict_initialization=self.config.protocol.strict_initialization,
            page_size=self.config.protocol.page_size,
            notification_sender=self.transport.write_message,
        )
        self.processor = MessageProcessor(self.engine)

    @property
    def running(self) -> bool:
        """Check if server is running."""
        return self._running

    def handle_message(self, message: Any) -> Reply:
        """Process a decoded message or batch and return the reply, if any."""
        return self.processor.handle(message)

    def handle_raw(self, payload: Union[str, bytes]) -> Optional[str]:
        """Process a raw JSON payload and return the serialized reply, if any."""
        return self.processor.handle_raw(payload)

    async def start(self) -> None:
        """Start the MCP server."""
        if self._running:
            return

        self.transport.set_message_handler(self.processor.handle_raw)
        self._running = True

        logger.info(
            "Server started",
            server_name=self.config.server_info.name,
            version=self.config.server_info.version,
            debug=self.engine.debug,
            strict_initialization=self.router.strict_initialization,
            **self.registry.get_stats(),
        )

    async def stop(self) -> None:
        """Stop the MCP server."""
        if not self._running:
            return

        logger.info("Stopping MCP server")

        self._running = False
        await self.transport.stop()
        self.router.close()

        logger.info("Server stopped")

    async def run_stdio(self) -> None:
        """Run the server over stdio until EOF or a termination signal."""
        await self.start()
        self._setup_signal_handlers()

        try:
            await self.transport.start()
        except Exception as e:
            logger.error("Server error", error=str(e), exc_info=True)
            raise
        finally:
            await self.stop()

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        if sys.platform == "win32":
            return

        loop = asyncio.get_running_loop()

        def signal_handler(signum: int) -> None:
            logger.info("Received signal, initiating shutdown", signal=signum)
            if self._running:
                loop.create_task(self.stop())

        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, signal_handler, signum)

    def get_status(self) -> Dict[str, Any]:
        """Summarize server and session state."""
        return {
            "server_running": self._running,
            "session_state": self.router.state.value,
            "protocol_version": self.router.session_protocol_version,
            "client_info": self.router.client_info,
            "components": self.registry.get_stats(),
            "request_methods": self.engine.get_request_methods(),
        }
