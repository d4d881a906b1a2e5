"""vaws - terminal cloud dashboard core: resource loading and tunnels."""

# High-level API
from .api import Dashboard, managed_dashboard

# Common utilities
from .common.exceptions import (
    ConfigurationError,
    OperationTimeoutError,
    PendingRequestError,
    PortConflictError,
    ResolutionError,
    SessionError,
    TransportError,
    TunnelError,
    TunnelStateError,
    VawsError,
)
from .common.logging import get_logger, setup_logging

# Configuration
from .config import DashboardConfig, JumpHostDefaults, ProfileConfig, load_config

# Resource loading
from .loader import BatchStream, ConcurrencyLimiter, ResourceLoader
from .service import (
    Batch,
    JumpHostCandidate,
    PrivateEndpoint,
    ResourceDetail,
    ResourcePage,
    ResourceService,
    ResourceSummary,
    Session,
)

# Tunnels
from .tunnels import (
    JumpHostResolver,
    JumpHostRules,
    Tunnel,
    TunnelOrchestrator,
    TunnelRegistry,
    TunnelState,
    TunnelTarget,
)

# Setup logging on package initialization
setup_logging(level="INFO")

# Package level logger
logger = get_logger(__name__)

__version__ = "0.1.0"


__all__ = [
    # High-level API
    "Dashboard",
    "managed_dashboard",
    # Configuration
    "DashboardConfig",
    "JumpHostDefaults",
    "ProfileConfig",
    "load_config",
    # Resource loading
    "Batch",
    "BatchStream",
    "ConcurrencyLimiter",
    "ResourceLoader",
    "ResourceService",
    "ResourceSummary",
    "ResourcePage",
    "ResourceDetail",
    "Session",
    # Tunnels
    "JumpHostCandidate",
    "JumpHostResolver",
    "JumpHostRules",
    "PrivateEndpoint",
    "Tunnel",
    "TunnelOrchestrator",
    "TunnelRegistry",
    "TunnelState",
    "TunnelTarget",
    # Exceptions
    "VawsError",
    "ConfigurationError",
    "TransportError",
    "OperationTimeoutError",
    "ResolutionError",
    "TunnelError",
    "PortConflictError",
    "PendingRequestError",
    "SessionError",
    "TunnelStateError",
    # Utilities
    "get_logger",
    "setup_logging",
]
