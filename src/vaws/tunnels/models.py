"""Tunnel models.

Tunnel records are immutable: every state change produces a new record,
so a snapshot handed to the UI can never change under it.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TunnelState(str, Enum):
    """Tunnel lifecycle state."""

    IDLE = "idle"
    RESOLVING_JUMP_HOST = "resolving_jump_host"
    ESTABLISHING_SESSION = "establishing_session"
    ACTIVE = "active"
    STOPPING = "stopping"
    CLOSED = "closed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TunnelState.CLOSED, TunnelState.FAILED)


ALLOWED_TRANSITIONS: dict[TunnelState, frozenset[TunnelState]] = {
    TunnelState.IDLE: frozenset(
        {TunnelState.RESOLVING_JUMP_HOST, TunnelState.ESTABLISHING_SESSION}
    ),
    TunnelState.RESOLVING_JUMP_HOST: frozenset({TunnelState.ESTABLISHING_SESSION}),
    TunnelState.ESTABLISHING_SESSION: frozenset({TunnelState.ACTIVE}),
    TunnelState.ACTIVE: frozenset({TunnelState.STOPPING}),
    TunnelState.STOPPING: frozenset({TunnelState.CLOSED}),
    TunnelState.CLOSED: frozenset(),
    TunnelState.FAILED: frozenset(),
}


class TunnelTarget(BaseModel):
    """Remote endpoint a tunnel forwards to."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: str = Field(min_length=1, description="Display name, e.g. API and stage")
    host: str = Field(min_length=1, description="Remote host name")
    remote_port: int = Field(default=443, ge=1, le=65535)
    is_private: bool = Field(
        default=False, description="Only reachable from inside its network"
    )
    network_id: str | None = Field(default=None, description="Network of the target")
    resource_id: str | None = Field(default=None, description="Backing resource id")
    use_tls: bool = Field(
        default=False, description="Wrap the upstream connection in TLS"
    )


class Tunnel(BaseModel):
    """A local listener forwarding to a remote endpoint."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Unique tunnel identifier")
    target: TunnelTarget
    local_port: int | None = Field(
        default=None, ge=0, le=65535, description="Bound local port (None until bound)"
    )
    state: TunnelState = Field(default=TunnelState.IDLE)
    jump_host_id: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.now)
    connected_at: datetime | None = Field(default=None)
    error: str | None = Field(default=None, description="Failure reason, if FAILED")

    @property
    def remote_port(self) -> int:
        return self.target.remote_port

    @property
    def local_address(self) -> str | None:
        if self.state != TunnelState.ACTIVE or not self.local_port:
            return None
        return f"127.0.0.1:{self.local_port}"

    def with_state(self, state: TunnelState, **changes: Any) -> "Tunnel":
        """Create new tunnel record with updated state (immutable pattern).

        Moving to FAILED is allowed from any non-terminal state; other moves
        must follow ALLOWED_TRANSITIONS.

        Raises:
            ValueError: If the transition is not allowed
        """
        allowed = state == TunnelState.FAILED and not self.state.is_terminal
        if not allowed and state not in ALLOWED_TRANSITIONS[self.state]:
            raise ValueError(f"Invalid tunnel transition {self.state.value} -> {state.value}")

        update_data: dict[str, Any] = {"state": state, **changes}
        if state == TunnelState.ACTIVE and self.connected_at is None:
            update_data["connected_at"] = datetime.now()

        return self.model_copy(update=update_data)


class PendingTunnelRequest(BaseModel):
    """A private tunnel waiting for its jump host."""

    model_config = ConfigDict(frozen=True)

    target: TunnelTarget
    stage_config: dict[str, Any] = Field(
        default_factory=dict, description="Opaque UI context, e.g. the selected stage"
    )
    desired_local_port: int | None = Field(default=None, ge=0, le=65535)
    requested_at: datetime = Field(default_factory=datetime.now)

    @field_validator("target")
    @classmethod
    def validate_private(cls, v: TunnelTarget) -> TunnelTarget:
        if not v.is_private:
            raise ValueError("Only private targets need a jump host")
        return v
