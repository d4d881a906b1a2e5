"""Tunnel orchestration: models, registry, jump hosts and local listeners."""

from .jump_host import (
    JumpHostResolution,
    JumpHostResolver,
    JumpHostRules,
    rank_candidates,
)
from .listener import LocalListener
from .models import (
    ALLOWED_TRANSITIONS,
    PendingTunnelRequest,
    Tunnel,
    TunnelState,
    TunnelTarget,
)
from .orchestrator import TransitionCallback, TunnelOrchestrator
from .proxy import DirectProxySession
from .registry import TunnelEntry, TunnelRegistry

__all__ = [
    # Models
    "ALLOWED_TRANSITIONS",
    "PendingTunnelRequest",
    "Tunnel",
    "TunnelState",
    "TunnelTarget",
    # Registry
    "TunnelEntry",
    "TunnelRegistry",
    # Jump hosts
    "JumpHostResolution",
    "JumpHostResolver",
    "JumpHostRules",
    "rank_candidates",
    # Sessions and listeners
    "DirectProxySession",
    "LocalListener",
    # Orchestration
    "TransitionCallback",
    "TunnelOrchestrator",
]
