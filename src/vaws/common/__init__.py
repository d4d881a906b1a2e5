"""Common utilities and shared functionality."""

from .context import deadline
from .exceptions import (
    ConfigurationError,
    OperationTimeoutError,
    PartialItemError,
    PendingRequestError,
    PortConflictError,
    ResolutionError,
    SessionError,
    TransportError,
    TunnelError,
    TunnelRegistryError,
    TunnelStateError,
    VawsError,
)
from .logging import get_logger, setup_logging
from .utils import (
    MAX_PORT,
    MIN_PORT,
    name_from_url,
    parse_tag_filter,
    sort_by_name,
    validate_non_empty_string,
    validate_port,
)

__all__ = [
    # Exceptions
    "VawsError",
    "ConfigurationError",
    "TransportError",
    "OperationTimeoutError",
    "PartialItemError",
    "ResolutionError",
    "TunnelError",
    "TunnelRegistryError",
    "PortConflictError",
    "PendingRequestError",
    "SessionError",
    "TunnelStateError",
    # Logging
    "get_logger",
    "setup_logging",
    # Context
    "deadline",
    # Utils
    "validate_port",
    "validate_non_empty_string",
    "sort_by_name",
    "name_from_url",
    "parse_tag_filter",
    "MIN_PORT",
    "MAX_PORT",
]
