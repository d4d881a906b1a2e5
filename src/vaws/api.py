"""High-level API for the dashboard.

The UI talks to a single Dashboard: it loads resource lists incrementally and
starts or stops tunnels, without knowing about limiters, registries or jump
hosts.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from .common.logging import get_logger
from .config import DashboardConfig, load_config
from .loader import BatchCallback, BatchStream, ResourceLoader
from .service.interfaces import ResourceService
from .service.models import JumpHostCandidate, ResourceDetail
from .tunnels import (
    PendingTunnelRequest,
    TransitionCallback,
    Tunnel,
    TunnelOrchestrator,
    TunnelTarget,
)

logger = get_logger(__name__)


class Dashboard:
    """Facade over the resource loader and the tunnel orchestrator.

    Example:
        >>> async with managed_dashboard(service, profile="prod") as dashboard:
        ...     await dashboard.load("queues", render)
        ...     tunnel = await dashboard.start_tunnel(target)
        ...     print(tunnel.local_address)
    """

    def __init__(
        self,
        service: ResourceService,
        config: DashboardConfig | None = None,
        profile: str | None = None,
        on_transition: TransitionCallback | None = None,
    ):
        """Initialize the dashboard.

        Args:
            service: Adapter for the remote API
            config: Dashboard configuration (defaults if None)
            profile: Active profile name
            on_transition: Called with every tunnel state change
        """
        self.service = service
        self.config = config or DashboardConfig()
        self.profile = profile
        self.loader = ResourceLoader(service, self.config)
        self.tunnels = TunnelOrchestrator(
            service, self.config, profile=profile, on_transition=on_transition
        )

    # Resource loading

    async def load(
        self, resource_type: str, on_batch: BatchCallback, page_size: int | None = None
    ) -> int:
        return await self.loader.load(resource_type, on_batch, page_size)

    def stream(
        self, resource_type: str, page_size: int | None = None
    ) -> BatchStream[ResourceDetail]:
        return self.loader.stream(resource_type, page_size)

    async def load_scoped(
        self, resource_type: str, parent_id: str, on_batch: BatchCallback
    ) -> int:
        return await self.loader.load_scoped(resource_type, parent_id, on_batch)

    async def collect(
        self, resource_type: str, page_size: int | None = None
    ) -> list[ResourceDetail]:
        return await self.loader.collect(resource_type, page_size)

    # Tunnels

    async def start_tunnel(
        self, target: TunnelTarget, local_port: int | None = None
    ) -> Tunnel:
        """Start a tunnel, resolving a jump host automatically for private targets."""
        return await self.tunnels.start_tunnel(target, local_port)

    async def stop_tunnel(self, tunnel_id: str) -> Tunnel | None:
        return await self.tunnels.stop_tunnel(tunnel_id)

    def list_active_tunnels(self) -> tuple[Tunnel, ...]:
        return self.tunnels.list_active_tunnels()

    @property
    def active_tunnel_count(self) -> int:
        return len(self.tunnels.list_active_tunnels())

    def request_private_tunnel(
        self,
        target: TunnelTarget,
        local_port: int | None = None,
        stage_config: dict[str, Any] | None = None,
        replace: bool = False,
    ) -> PendingTunnelRequest:
        """Park a private tunnel until the operator picks a jump host."""
        return self.tunnels.request_private_tunnel(
            target, local_port, stage_config, replace=replace
        )

    @property
    def pending_request(self) -> PendingTunnelRequest | None:
        return self.tunnels.pending_request

    async def list_jump_host_candidates(self) -> list[JumpHostCandidate]:
        return await self.tunnels.list_jump_host_candidates()

    async def select_jump_host(self, jump_host: JumpHostCandidate) -> Tunnel:
        """Start the pending private tunnel through ``jump_host``."""
        return await self.tunnels.complete_pending(jump_host)

    def cancel_pending_tunnel(self) -> PendingTunnelRequest | None:
        return self.tunnels.cancel_pending()

    async def reap_dead_tunnels(self) -> list[str]:
        return await self.tunnels.reap_dead_tunnels()

    async def shutdown(self) -> int:
        """Stop every tunnel. Returns the number stopped."""
        stopped = await self.tunnels.shutdown_all()
        logger.info("Dashboard shut down", tunnels_stopped=stopped)
        return stopped


@asynccontextmanager
async def managed_dashboard(
    service: ResourceService,
    config: DashboardConfig | None = None,
    *,
    profile: str | None = None,
    config_path: str | Path | None = None,
    on_transition: TransitionCallback | None = None,
) -> AsyncIterator[Dashboard]:
    """Create a dashboard whose tunnels are all stopped on exit.

    Tunnels live for the lifetime of the process; this context manager is
    that lifetime. Cleanup runs even if the body raises.

    Args:
        service: Adapter for the remote API
        config: Dashboard configuration; takes precedence over ``config_path``
        profile: Active profile name
        config_path: TOML file to load when ``config`` is not given
        on_transition: Called with every tunnel state change

    Yields:
        Dashboard: Ready to load resources and start tunnels
    """
    if config is None:
        config = load_config(config_path)

    dashboard = Dashboard(service, config, profile=profile, on_transition=on_transition)
    logger.info("Dashboard started", profile=profile)
    try:
        yield dashboard
    finally:
        await dashboard.shutdown()
