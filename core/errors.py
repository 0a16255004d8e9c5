# ============================================================================
# ERROR TAXONOMY
# ============================================================================
# STATUS: Foundation - Exception hierarchy
# PURPOSE: Typed errors surfaced by validation, leasing and remote execution
# CREATED: 14 OCT 2026
# ============================================================================
"""
Error Taxonomy

- ConfigurationError: dependency count/cycle/missing-field violations.
  Raised before any computation starts; carries every violation found.
- RemoteExecutionError: a remote worker reported a failure.
- UnsupportedOperationError: operation not available on a node/backend.
- LeaseTimeoutError: waiting for another process's lease timed out.
- NodeNotFoundError: no node matches an id or name.
"""

from typing import List, Optional, Sequence


class DataflowError(Exception):
    """Base exception for the dataflow engine."""
    pass


class ConfigurationError(DataflowError):
    """
    Raised when a node's configuration is invalid for computation.

    Collects all violations instead of stopping at the first one.
    """

    def __init__(self, errors: Sequence[str], node_name: Optional[str] = None):
        self.errors: List[str] = list(errors)
        self.node_name = node_name
        prefix = f"Invalid configuration for '{node_name}'" if node_name else "Invalid configuration"
        super().__init__(f"{prefix}: {'; '.join(self.errors)}")


class RemoteExecutionError(DataflowError):
    """Wraps an error message and backtrace reported by a remote worker."""

    def __init__(self, message: str, backtrace: Optional[Sequence[str]] = None):
        self.remote_message = message
        self.backtrace: List[str] = list(backtrace or [])
        super().__init__(message)

    def __str__(self) -> str:
        if not self.backtrace:
            return self.remote_message
        return self.remote_message + "\nRemote backtrace:\n" + "\n".join(self.backtrace)


class UnsupportedOperationError(DataflowError):
    """Raised for read-only or unimplemented operations."""
    pass


class LeaseTimeoutError(DataflowError, TimeoutError):
    """Raised when awaiting another process's computing lease times out."""

    def __init__(self, node_name: str, waited_seconds: float):
        self.node_name = node_name
        self.waited_seconds = waited_seconds
        super().__init__(
            f"Awaiting computing on {node_name} reached timeout "
            f"after {waited_seconds:.0f}s"
        )


class NodeNotFoundError(DataflowError, LookupError):
    """Raised when a node lookup by id or name fails."""

    def __init__(self, key: str, kind: Optional[str] = None):
        self.key = key
        self.kind = kind
        label = f"{kind} node" if kind else "node"
        super().__init__(f"No {label} found for '{key}'")


__all__ = [
    "DataflowError",
    "ConfigurationError",
    "RemoteExecutionError",
    "UnsupportedOperationError",
    "LeaseTimeoutError",
    "NodeNotFoundError",
]
