"""Tunnel orchestration: jump host discovery, session setup, local listeners.

Public targets are proxied directly. Private targets go through a single
pending-request slot while a jump host is resolved (automatically, or by the
operator picking one), then a session is opened through that host.
"""

import asyncio
import re
import threading
import uuid
from collections.abc import Awaitable, Callable

from ..common.context import deadline
from ..common.exceptions import (
    PendingRequestError,
    PortConflictError,
    SessionError,
    TunnelStateError,
    VawsError,
)
from ..common.logging import get_logger
from ..config import DashboardConfig
from ..service.interfaces import ResourceService, Session
from ..service.models import JumpHostCandidate
from .jump_host import JumpHostResolution, JumpHostResolver, JumpHostRules
from .listener import LocalListener
from .models import PendingTunnelRequest, Tunnel, TunnelState, TunnelTarget
from .proxy import DirectProxySession
from .registry import TunnelRegistry

logger = get_logger(__name__)

TransitionCallback = Callable[[Tunnel], None]


def _tunnel_id(target: TunnelTarget) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", target.name.lower()).strip("-") or "tunnel"
    return f"{slug[:40]}-{uuid.uuid4().hex[:8]}"


class TunnelOrchestrator:
    """Starts, tracks and stops tunnels."""

    def __init__(
        self,
        service: ResourceService,
        config: DashboardConfig | None = None,
        profile: str | None = None,
        registry: TunnelRegistry | None = None,
        resolver: JumpHostResolver | None = None,
        on_transition: TransitionCallback | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            service: Adapter for the remote API
            config: Dashboard configuration (defaults if None)
            profile: Active profile, selects jump host overrides
            registry: Registry to record active tunnels in
            resolver: Jump host resolver (built from service if None)
            on_transition: Called with the new record on every state change
        """
        self.service = service
        self.config = config or DashboardConfig()
        self.profile = profile
        self.registry = registry or TunnelRegistry(max_tunnels=self.config.max_tunnels)
        self.resolver = resolver or JumpHostResolver(service, self.config.call_timeout)
        self.on_transition = on_transition

        self._lock = threading.Lock()
        self._pending: PendingTunnelRequest | None = None
        self._resolving = False
        self._starting: dict[str, Tunnel] = {}
        self._aborted: set[str] = set()

    @property
    def rules(self) -> JumpHostRules:
        return JumpHostRules.from_config(self.config, self.profile)

    # -- public path and automatic private path -------------------------------

    async def start_tunnel(
        self, target: TunnelTarget, local_port: int | None = None
    ) -> Tunnel:
        """Start a tunnel to ``target``.

        Public targets skip jump host discovery entirely. Private targets take
        the pending slot, resolve a jump host automatically and release the
        slot whether or not resolution succeeds.

        Args:
            target: Remote endpoint
            local_port: Local port to bind; None picks a free one

        Returns:
            The ACTIVE tunnel record

        Raises:
            PendingRequestError: If another private request holds the slot
            ResolutionError: If no jump host qualifies
            PortConflictError: If ``local_port`` is already bound
            OperationTimeoutError: If discovery or establishment times out
            SessionError: If the session cannot be opened
        """
        if target.is_private:
            self.request_private_tunnel(target, local_port)
            return await self.resolve_pending()

        tunnel = self._begin(target, local_port)
        try:
            self._check_port(local_port)
            return await self._establish(tunnel, None)
        except BaseException as e:
            self._fail(tunnel.id, e)
            raise

    # -- manual / pending private path -----------------------------------------

    @property
    def pending_request(self) -> PendingTunnelRequest | None:
        with self._lock:
            return self._pending

    def request_private_tunnel(
        self,
        target: TunnelTarget,
        local_port: int | None = None,
        stage_config: dict | None = None,
        replace: bool = False,
    ) -> PendingTunnelRequest:
        """Hold a private tunnel request until a jump host is chosen.

        Raises:
            PendingRequestError: If a request is outstanding and ``replace`` is
                False, or if the outstanding request is already resolving
        """
        request = PendingTunnelRequest(
            target=target,
            stage_config=stage_config or {},
            desired_local_port=local_port,
        )
        with self._lock:
            if self._pending is not None:
                if self._resolving or not replace:
                    raise PendingRequestError(
                        f"A tunnel request for '{self._pending.target.name}' is already pending"
                    )
                logger.info(
                    "Replacing pending tunnel request",
                    previous=self._pending.target.name,
                    target=target.name,
                )
            self._pending = request
        logger.info("Private tunnel requested", target=target.name, local_port=local_port)
        return request

    def cancel_pending(self) -> PendingTunnelRequest | None:
        """Drop the pending request, if it is not already resolving."""
        with self._lock:
            if self._resolving:
                return None
            request, self._pending = self._pending, None
        if request is not None:
            logger.info("Cancelled pending tunnel request", target=request.target.name)
        return request

    async def list_jump_host_candidates(self) -> list[JumpHostCandidate]:
        """Candidates for the operator to choose from (reachable ones only)."""
        async with deadline(self.config.jump_host_timeout, "jump host discovery"):
            candidates = await self.resolver.list_candidates()
        return [candidate for candidate in candidates if candidate.reachable]

    async def resolve_pending(self) -> Tunnel:
        """Resolve a jump host for the pending request and start its tunnel.

        Raises:
            TunnelStateError: If no request is pending
            ResolutionError: If no jump host qualifies
        """

        async def resolve(request: PendingTunnelRequest) -> JumpHostResolution:
            async with deadline(
                self.config.jump_host_timeout,
                f"jump host discovery for {request.target.name}",
            ):
                return await self.resolver.resolve(self.rules, request.target.network_id)

        return await self._start_pending(resolve)

    async def complete_pending(self, jump_host: JumpHostCandidate) -> Tunnel:
        """Start the pending tunnel through an operator-chosen jump host.

        Raises:
            TunnelStateError: If no request is pending
        """

        async def resolve(request: PendingTunnelRequest) -> JumpHostResolution:
            async with deadline(
                self.config.jump_host_timeout,
                f"private endpoint lookup for {request.target.name}",
            ):
                return await self.resolver.with_endpoint(
                    jump_host, self.rules, reason="operator"
                )

        return await self._start_pending(resolve)

    async def _start_pending(
        self,
        resolve: Callable[[PendingTunnelRequest], Awaitable[JumpHostResolution]],
    ) -> Tunnel:
        request = self._take_pending()
        tunnel: Tunnel | None = None
        try:
            try:
                tunnel = self._begin(request.target, request.desired_local_port)
                self._check_port(request.desired_local_port)
                tunnel = self._transition(tunnel, TunnelState.RESOLVING_JUMP_HOST)
                resolution = await resolve(request)
            finally:
                self._release_pending(request)
            return await self._establish(tunnel, resolution)
        except BaseException as e:
            if tunnel is not None:
                self._fail(tunnel.id, e)
            raise

    def _take_pending(self) -> PendingTunnelRequest:
        with self._lock:
            if self._pending is None:
                raise TunnelStateError("No private tunnel request is pending")
            if self._resolving:
                raise PendingRequestError(
                    f"Jump host for '{self._pending.target.name}' is already being resolved"
                )
            self._resolving = True
            return self._pending

    def _release_pending(self, request: PendingTunnelRequest) -> None:
        with self._lock:
            if self._pending is request:
                self._pending = None
            self._resolving = False

    # -- establishment ----------------------------------------------------------

    async def _establish(
        self, tunnel: Tunnel, resolution: JumpHostResolution | None
    ) -> Tunnel:
        target = tunnel.target
        jump_host_id = resolution.jump_host.instance_id if resolution else None
        tunnel = self._transition(
            tunnel, TunnelState.ESTABLISHING_SESSION, jump_host_id=jump_host_id
        )

        session: Session | None = None
        listener: LocalListener | None = None
        try:
            async with deadline(
                self.config.session_timeout, f"session establishment for {target.name}"
            ):
                session = await self._open_session(target, resolution)
                listener = LocalListener(session, port=tunnel.local_port or 0)
                port = await listener.start()

            active = tunnel.with_state(TunnelState.ACTIVE, local_port=port)
            with self._lock:
                if active.id in self._aborted:
                    raise TunnelStateError(
                        f"Tunnel {active.id} was aborted by shutdown while starting"
                    )
                self.registry.add(active, listener, session)
                self._starting.pop(active.id, None)
        except BaseException:
            await self._discard(listener, session)
            raise

        self._notify(active)
        logger.info(
            "Tunnel active",
            tunnel_id=active.id,
            target=target.name,
            local_port=port,
            jump_host=jump_host_id,
        )
        return active

    async def _open_session(
        self, target: TunnelTarget, resolution: JumpHostResolution | None
    ) -> Session:
        if resolution is None:
            return DirectProxySession.for_target(target, self.config.call_timeout)

        if resolution.endpoint is None:
            logger.info(
                "No private endpoint, routing through jump host network",
                target=target.name,
                jump_host=resolution.jump_host.instance_id,
            )
        try:
            return await self.service.open_session(
                target, resolution.jump_host, resolution.endpoint
            )
        except VawsError:
            raise
        except Exception as e:
            raise SessionError(f"Failed to open session to {target.name}: {e}") from e

    async def _discard(self, listener: LocalListener | None, session: Session | None) -> None:
        if listener is not None:
            await listener.close()
        if session is not None:
            try:
                await session.close()
            except Exception as e:
                logger.warning("Error closing abandoned session", error=str(e))

    def _check_port(self, local_port: int | None) -> None:
        holder = self.registry.port_holder(local_port)
        if holder is not None:
            raise PortConflictError(local_port or 0, holder)

    # -- state bookkeeping ------------------------------------------------------

    def _begin(self, target: TunnelTarget, local_port: int | None) -> Tunnel:
        tunnel = Tunnel(id=_tunnel_id(target), target=target, local_port=local_port)
        with self._lock:
            self._starting[tunnel.id] = tunnel
        self._notify(tunnel)
        return tunnel

    def _transition(self, tunnel: Tunnel, state: TunnelState, **changes) -> Tunnel:
        updated = tunnel.with_state(state, **changes)
        with self._lock:
            self._starting[updated.id] = updated
        logger.debug("Tunnel transition", tunnel_id=updated.id, state=state.value)
        self._notify(updated)
        return updated

    def _fail(self, tunnel_id: str, error: BaseException) -> None:
        with self._lock:
            self._aborted.discard(tunnel_id)
            tunnel = self._starting.pop(tunnel_id, None)
        if tunnel is None:
            return
        reason = str(error) or type(error).__name__
        failed = tunnel.with_state(TunnelState.FAILED, error=reason)
        logger.error(
            "Tunnel failed",
            tunnel_id=tunnel_id,
            target=tunnel.target.name,
            during=tunnel.state.value,
            error=reason,
        )
        self._notify(failed)

    def _notify(self, tunnel: Tunnel) -> None:
        if self.on_transition is None:
            return
        try:
            self.on_transition(tunnel)
        except Exception as e:
            logger.error("Transition observer failed", tunnel_id=tunnel.id, error=str(e))

    # -- queries and teardown ---------------------------------------------------

    def get_tunnel(self, tunnel_id: str) -> Tunnel | None:
        return self.registry.get(tunnel_id)

    def list_active_tunnels(self) -> tuple[Tunnel, ...]:
        """Point-in-time snapshot of ACTIVE tunnels."""
        return self.registry.list(TunnelState.ACTIVE)

    def list_starting_tunnels(self) -> tuple[Tunnel, ...]:
        """Tunnels still resolving or establishing."""
        with self._lock:
            return tuple(self._starting.values())

    async def stop_tunnel(self, tunnel_id: str) -> Tunnel | None:
        """Stop a tunnel: close its listener, end its session, unregister it.

        Idempotent: stopping an unknown, already stopped, or concurrently
        stopping tunnel is a no-op returning None. Teardown errors (e.g. a
        session that died out of band) are logged; the registry entry is
        removed regardless.

        Returns:
            The CLOSED record, or None if there was nothing to stop
        """
        entry = self.registry.mark_stopping(tunnel_id)
        if entry is None:
            logger.debug("Tunnel already stopped", tunnel_id=tunnel_id)
            return None

        self._notify(entry.tunnel)
        try:
            try:
                await entry.listener.close()
            except Exception as e:
                logger.warning("Error closing listener", tunnel_id=tunnel_id, error=str(e))
            try:
                async with deadline(self.config.session_timeout, "session teardown"):
                    await entry.session.close()
            except Exception as e:
                logger.warning(
                    "Error terminating session", tunnel_id=tunnel_id, error=str(e)
                )
        finally:
            self.registry.remove(tunnel_id)

        closed = entry.tunnel.with_state(TunnelState.CLOSED)
        self._notify(closed)
        logger.info("Tunnel stopped", tunnel_id=tunnel_id)
        return closed

    async def reap_dead_tunnels(self) -> list[str]:
        """Stop every tunnel whose session died out of band."""
        dead = [
            tunnel.id
            for tunnel in self.registry.list(TunnelState.ACTIVE)
            if (entry := self.registry.entry(tunnel.id)) is not None
            and not entry.session.is_alive
        ]
        for tunnel_id in dead:
            logger.warning("Session died, stopping tunnel", tunnel_id=tunnel_id)
            await self.stop_tunnel(tunnel_id)
        return dead

    async def shutdown_all(self) -> int:
        """Stop every tunnel and drop any pending request.

        Tunnels still resolving or establishing are aborted: when their setup
        finishes they are torn down and reported FAILED instead of going
        ACTIVE.

        Returns:
            Number of tunnels stopped
        """
        self.cancel_pending()
        with self._lock:
            self._aborted.update(self._starting)
            aborted = len(self._starting)
        if aborted:
            logger.info("Aborting tunnels still starting", count=aborted)
        ids = [tunnel.id for tunnel in self.registry.list()]
        results = await asyncio.gather(*(self.stop_tunnel(tunnel_id) for tunnel_id in ids))
        stopped = sum(1 for result in results if result is not None)
        logger.info("Shutdown all tunnels", stopped=stopped)
        return stopped
