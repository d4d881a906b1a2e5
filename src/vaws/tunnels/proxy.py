"""Direct session for endpoints reachable from the public internet."""

import asyncio
import ssl

from ..common.exceptions import SessionError
from ..common.logging import get_logger
from .models import TunnelTarget

logger = get_logger(__name__)


class DirectProxySession:
    """Opens a fresh upstream connection for every local connection.

    No handshake happens up front, so "establishing" a public tunnel only
    costs the local bind. With ``use_tls`` the local side speaks plaintext
    and the upstream leg is wrapped in TLS.
    """

    def __init__(
        self,
        host: str,
        port: int,
        use_tls: bool = False,
        connect_timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.use_tls = use_tls
        self.connect_timeout = connect_timeout
        self._closed = False
        self._streams: set[asyncio.StreamWriter] = set()

    @classmethod
    def for_target(cls, target: TunnelTarget, connect_timeout: float = 30.0) -> "DirectProxySession":
        return cls(target.host, target.remote_port, target.use_tls, connect_timeout)

    @property
    def is_alive(self) -> bool:
        return not self._closed

    async def open_stream(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        """Connect to the upstream endpoint.

        Raises:
            SessionError: If the session is closed or the connection fails
        """
        if self._closed:
            raise SessionError(f"Proxy session to {self.host}:{self.port} is closed")

        ssl_context = ssl.create_default_context() if self.use_tls else None
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(
                    self.host,
                    self.port,
                    ssl=ssl_context,
                    server_hostname=self.host if ssl_context else None,
                ),
                timeout=self.connect_timeout,
            )
        except (OSError, TimeoutError) as e:
            raise SessionError(
                f"Cannot connect to {self.host}:{self.port}: {e}"
            ) from e

        self._streams = {w for w in self._streams if not w.is_closing()}
        self._streams.add(writer)
        return reader, writer

    async def close(self) -> None:
        """Close every upstream connection. Idempotent."""
        if self._closed:
            return
        self._closed = True

        streams, self._streams = list(self._streams), set()
        for writer in streams:
            if not writer.is_closing():
                writer.close()
        logger.debug(
            "Proxy session closed", host=self.host, port=self.port, streams=len(streams)
        )
