"""Protocol interfaces for the remote resource service."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..tunnels.models import TunnelTarget
    from .models import (
        JumpHostCandidate,
        PrivateEndpoint,
        ResourceDetail,
        ResourcePage,
    )


@runtime_checkable
class Session(Protocol):
    """An established path to a remote endpoint.

    Each local connection gets its own stream over the session.
    """

    @property
    def is_alive(self) -> bool: ...

    async def open_stream(
        self,
    ) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]: ...

    async def close(self) -> None:
        """Terminate the session; must tolerate an already-dead remote."""
        ...


class ResourceService(Protocol):
    """Capabilities the dashboard needs from the cloud API."""

    async def list_page(
        self, resource_type: str, token: str | None, page_size: int
    ) -> ResourcePage:
        """List one page of resources."""
        ...

    async def describe_one(self, resource_type: str, resource_id: str) -> ResourceDetail:
        """Fetch full attributes of one resource."""
        ...

    async def list_children(self, parent_id: str, resource_type: str) -> list[str]:
        """List ids of resources of one type belonging to a parent container."""
        ...

    async def list_jump_host_candidates(self) -> list[JumpHostCandidate]:
        """List instances that accept remote-exec sessions."""
        ...

    async def find_private_endpoint(self, network_id: str) -> PrivateEndpoint | None:
        """Find the private endpoint of the target service inside a network."""
        ...

    async def open_session(
        self,
        target: TunnelTarget,
        jump_host: JumpHostCandidate | None = None,
        endpoint: PrivateEndpoint | None = None,
    ) -> Session:
        """Open a forwarding session to ``target``, relayed by ``jump_host``."""
        ...
