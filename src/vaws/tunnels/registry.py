"""Tunnel registry for managing active tunnels."""

import threading
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from ..common.exceptions import PortConflictError, TunnelRegistryError
from ..common.logging import get_logger
from ..service.interfaces import Session
from .models import Tunnel, TunnelState

logger = get_logger(__name__)


@dataclass(frozen=True)
class TunnelEntry:
    """A registered tunnel together with the handles it owns."""

    tunnel: Tunnel
    listener: Any
    session: Session


class TunnelRegistry(BaseModel):
    """Thread-safe in-memory store for active tunnels.

    Readers (the render loop) get point-in-time tuples of immutable records;
    writers hold the lock for the whole check-and-mutate.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    entries: dict[str, TunnelEntry] = Field(
        default_factory=dict, description="Active tunnels by ID"
    )
    max_tunnels: int = Field(
        default=20, ge=1, le=100, description="Maximum number of tunnels"
    )

    _lock: threading.RLock = PrivateAttr(default_factory=threading.RLock)

    def add(self, tunnel: Tunnel, listener: Any, session: Session) -> None:
        """Add tunnel to registry with validation.

        Args:
            tunnel: Active tunnel record
            listener: Bound local listener owned by the tunnel
            session: Session the listener forwards to

        Raises:
            TunnelRegistryError: If the ID already exists or the registry is full
            PortConflictError: If another tunnel holds the same local port
        """
        with self._lock:
            if tunnel.id in self.entries:
                raise TunnelRegistryError(f"Tunnel with ID '{tunnel.id}' already exists")

            if len(self.entries) >= self.max_tunnels:
                raise TunnelRegistryError(
                    f"Maximum tunnel limit ({self.max_tunnels}) reached"
                )

            holder = self.port_holder(tunnel.local_port)
            if holder is not None:
                raise PortConflictError(tunnel.local_port or 0, holder)

            self.entries[tunnel.id] = TunnelEntry(tunnel, listener, session)
        logger.info("Added tunnel to registry", tunnel_id=tunnel.id, port=tunnel.local_port)

    def remove(self, tunnel_id: str) -> TunnelEntry | None:
        """Remove a tunnel; unknown IDs return None."""
        with self._lock:
            entry = self.entries.pop(tunnel_id, None)
        if entry is not None:
            logger.info("Removed tunnel from registry", tunnel_id=tunnel_id)
        return entry

    def get(self, tunnel_id: str) -> Tunnel | None:
        """Get tunnel by ID."""
        with self._lock:
            entry = self.entries.get(tunnel_id)
        return entry.tunnel if entry else None

    def entry(self, tunnel_id: str) -> TunnelEntry | None:
        """Get the tunnel together with its listener and session."""
        with self._lock:
            return self.entries.get(tunnel_id)

    def update_state(self, tunnel_id: str, state: TunnelState) -> Tunnel:
        """Replace a tunnel's record with one in ``state``.

        Raises:
            TunnelRegistryError: If tunnel not found
        """
        with self._lock:
            entry = self.entries.get(tunnel_id)
            if entry is None:
                raise TunnelRegistryError(f"Tunnel '{tunnel_id}' not found")
            updated = entry.tunnel.with_state(state)
            self.entries[tunnel_id] = TunnelEntry(updated, entry.listener, entry.session)
        logger.debug("Updated tunnel state", tunnel_id=tunnel_id, state=state.value)
        return updated

    def mark_stopping(self, tunnel_id: str) -> TunnelEntry | None:
        """Move an ACTIVE tunnel to STOPPING and return its entry.

        Returns None when the tunnel is gone or another caller is already
        stopping it, so only one caller ever tears a tunnel down.
        """
        with self._lock:
            entry = self.entries.get(tunnel_id)
            if entry is None or entry.tunnel.state != TunnelState.ACTIVE:
                return None
            stopping = TunnelEntry(
                entry.tunnel.with_state(TunnelState.STOPPING), entry.listener, entry.session
            )
            self.entries[tunnel_id] = stopping
        return stopping

    def is_port_in_use(self, port: int | None) -> bool:
        return self.port_holder(port) is not None

    def port_holder(self, port: int | None) -> str | None:
        """ID of the tunnel bound to ``port``, if any."""
        if not port:
            return None
        with self._lock:
            for entry in self.entries.values():
                if entry.tunnel.local_port == port:
                    return entry.tunnel.id
        return None

    def clear(self) -> list[TunnelEntry]:
        """Remove every tunnel, returning the removed entries."""
        with self._lock:
            removed = list(self.entries.values())
            self.entries.clear()
        logger.info("Cleared all tunnels from registry", count=len(removed))
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self.entries)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the tunnel records (handles excluded) for display."""
        return {
            "tunnels": [tunnel.model_dump(mode="json") for tunnel in self.list()],
            "max_tunnels": self.max_tunnels,
        }

    def list(self, state: TunnelState | None = None) -> tuple[Tunnel, ...]:
        """Snapshot of registered tunnels, oldest first.

        Args:
            state: Filter by state
        """
        with self._lock:
            tunnels = tuple(entry.tunnel for entry in self.entries.values())

        if state is not None:
            tunnels = tuple(t for t in tunnels if t.state == state)
        return tunnels
