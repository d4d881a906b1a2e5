"""Local TCP listener forwarding accepted connections over a session."""

import asyncio
import errno

from ..common.exceptions import PortConflictError, SessionError
from ..common.logging import get_logger
from ..common.utils import validate_port
from ..service.interfaces import Session

logger = get_logger(__name__)

CHUNK_SIZE = 64 * 1024


class LocalListener:
    """Binds a loopback port and relays each connection through ``session``."""

    def __init__(self, session: Session, port: int = 0, host: str = "127.0.0.1"):
        """Initialize the listener.

        Args:
            session: Session providing one stream per accepted connection
            port: Local port; 0 lets the OS pick a free ephemeral port
            host: Interface to bind
        """
        validate_port(port, "Local port", allow_zero=True)
        self.session = session
        self.host = host
        self._requested_port = port
        self._server: asyncio.Server | None = None
        self._connections: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def port(self) -> int | None:
        """Bound port, or None before start."""
        if self._server is None or not self._server.sockets:
            return None
        return int(self._server.sockets[0].getsockname()[1])

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def start(self) -> int:
        """Bind and start accepting connections.

        Returns:
            The bound port

        Raises:
            PortConflictError: If the requested port is already bound
        """
        try:
            self._server = await asyncio.start_server(
                self._on_connect, self.host, self._requested_port
            )
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                raise PortConflictError(self._requested_port) from e
            raise

        port = self.port
        logger.info("Local listener started", host=self.host, port=port)
        return port or self._requested_port

    async def _on_connect(
        self, client_reader: asyncio.StreamReader, client_writer: asyncio.StreamWriter
    ) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._connections.add(task)
        try:
            await self._relay(client_reader, client_writer)
        finally:
            if task is not None:
                self._connections.discard(task)

    async def _relay(
        self, client_reader: asyncio.StreamReader, client_writer: asyncio.StreamWriter
    ) -> None:
        peer = client_writer.get_extra_info("peername")
        try:
            remote_reader, remote_writer = await self.session.open_stream()
        except Exception as e:
            logger.warning("Cannot open session stream", peer=str(peer), error=str(e))
            await _close_writer(client_writer)
            return

        logger.debug("Relaying connection", peer=str(peer), port=self.port)
        try:
            await asyncio.gather(
                _pipe(client_reader, remote_writer),
                _pipe(remote_reader, client_writer),
            )
        finally:
            await _close_writer(remote_writer)
            await _close_writer(client_writer)

    async def close(self) -> None:
        """Stop accepting and drop open connections. Idempotent."""
        if self._closed:
            return
        self._closed = True

        port = self.port
        server, self._server = self._server, None
        if server is not None:
            server.close()

        connections = list(self._connections)
        for task in connections:
            task.cancel()
        if connections:
            await asyncio.gather(*connections, return_exceptions=True)

        if server is not None:
            await server.wait_closed()
        logger.info("Local listener closed", port=port)


async def _pipe(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    try:
        while True:
            data = await reader.read(CHUNK_SIZE)
            if not data:
                break
            writer.write(data)
            await writer.drain()
    except (ConnectionError, SessionError) as e:
        logger.debug("Relay stream ended", error=str(e))
    finally:
        if writer.can_write_eof():
            try:
                writer.write_eof()
            except (OSError, RuntimeError):
                pass


async def _close_writer(writer: asyncio.StreamWriter) -> None:
    if writer.is_closing():
        return
    writer.close()
    try:
        await writer.wait_closed()
    except (ConnectionError, OSError):
        pass
