"""Custom exceptions for the vaws dashboard core."""


class VawsError(Exception):
    """Base exception for all vaws errors."""

    pass


class ConfigurationError(VawsError):
    """Raised when configuration is invalid."""

    pass


class TransportError(VawsError):
    """Raised when a remote call fails (throttling, refused connection, ...)."""

    pass


class OperationTimeoutError(TransportError):
    """Raised when a remote operation exceeds its deadline."""

    def __init__(self, operation: str, timeout: float):
        super().__init__(f"{operation} timed out after {timeout:g}s")
        self.operation = operation
        self.timeout = timeout


class PartialItemError(VawsError):
    """A single item's detail fetch failed during a fan-out.

    The loader logs and drops these; they never escape a load.
    """

    def __init__(self, resource_type: str, resource_id: str, cause: BaseException):
        super().__init__(
            f"Failed to describe {resource_type} '{resource_id}': {cause}"
        )
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.cause = cause


class ResolutionError(VawsError):
    """Raised when no usable jump host can be found for a private target."""

    pass


class TunnelError(VawsError):
    """Base exception for tunnel failures."""

    pass


class TunnelRegistryError(TunnelError):
    """Raised for invalid tunnel registry operations."""

    pass


class PortConflictError(TunnelRegistryError):
    """Raised when a requested local port is already bound."""

    def __init__(self, port: int, holder: str | None = None):
        detail = f" by tunnel '{holder}'" if holder else ""
        super().__init__(f"Local port {port} is already in use{detail}")
        self.port = port
        self.holder = holder


class PendingRequestError(TunnelError):
    """Raised when a private tunnel request is already waiting for a jump host."""

    pass


class SessionError(TunnelError):
    """Raised when a session to the remote endpoint cannot be opened or used."""

    pass


class TunnelStateError(TunnelError):
    """Raised for operations against a tunnel in an incompatible state."""

    pass
