"""Exception classes for the argoqc core module."""


class QCError(Exception):
    """Base exception for all quality-control errors."""


class ContainerNotFoundError(QCError):
    """Raised when a local folder or remote dataset does not exist."""

    def __init__(self, container: str | None = None) -> None:
        msg = f"Container not found: {container}" if container else "Container not found"
        super().__init__(msg)
        self.container = container


class ListingError(QCError):
    """Raised when work items or their markers cannot be listed.

    Listing is all-or-nothing: a single failing item aborts the whole call.
    """

    def __init__(self, container: str | None = None, reason: str | None = None) -> None:
        msg = f"Cannot list items of {container}" if container else "Cannot list items"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.container = container
        self.reason = reason


class BackendError(QCError):
    """Raised by repository adapters when a remote call fails."""

    def __init__(self, operation: str | None = None, target: str | None = None) -> None:
        if operation and target:
            msg = f"Backend call failed: {operation} on {target}"
        elif operation:
            msg = f"Backend call failed: {operation}"
        else:
            msg = "Backend call failed"
        super().__init__(msg)
        self.operation = operation
        self.target = target


class AnalyzerError(QCError):
    """Raised when an analyzer cannot be loaded or returns malformed results."""
