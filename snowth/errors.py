"""
Error types for the snowth client

Errors are split by how the dispatcher treats them: transient errors are
retried against another node, everything else is surfaced immediately.
"""

from typing import Optional


class SnowthError(Exception):
    """Base exception for all snowth client errors"""

    def __init__(self, message: str = ""):
        self.message = message
        super().__init__(message)


class ConfigurationError(SnowthError, ValueError):
    """Raised when a client configuration value is invalid"""


# Routing errors

class EmptyRingError(SnowthError):
    """Raised when a ring lookup is attempted with no virtual nodes loaded"""

    def __init__(self, message: str = "Topology ring has no virtual nodes"):
        super().__init__(message)


class NoActiveNodeError(SnowthError):
    """Raised when a request needs an active node and none is available"""

    def __init__(self, message: str = "No active node available"):
        super().__init__(message)


# Transient errors (eligible for failover)

class TransientError(SnowthError):
    """A failure that may succeed on another node or a later attempt"""

    def __init__(self, node_id: Optional[str], reason: str = ""):
        self.node_id = node_id
        self.reason = reason
        msg = f"Request to node {node_id} failed"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class RequestTimeoutError(TransientError):
    """Raised when a request to a node does not complete in time"""

    def __init__(self, node_id: Optional[str], timeout: Optional[float] = None):
        self.timeout = timeout
        reason = "timed out"
        if timeout is not None:
            reason = f"timed out after {timeout:.2f}s"
        super().__init__(node_id, reason)


class NodeConnectionError(TransientError):
    """Raised when a node cannot be reached"""

    def __init__(self, node_id: Optional[str], reason: str = ""):
        super().__init__(node_id, reason or "connection refused or unreachable")


class ServerError(TransientError):
    """Raised when a node answers with a 5xx status"""

    def __init__(self, node_id: Optional[str], status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(node_id, f"server error {status_code}")


# Permanent errors (never retried)

class PermanentError(SnowthError):
    """A failure that retrying against another node will not fix"""


class DecodeError(PermanentError):
    """Raised when a response body cannot be decoded into the expected shape"""


class MalformedDocumentError(DecodeError):
    """Raised when a topology or ring document is malformed"""


class ClientRequestError(PermanentError):
    """Raised when a node rejects a request with a 4xx status"""

    def __init__(self, node_id: Optional[str], status_code: Optional[int], body: str = ""):
        self.node_id = node_id
        self.status_code = status_code
        self.body = body
        msg = f"Request to node {node_id} rejected"
        if status_code is not None:
            msg += f" with status {status_code}"
        if body:
            msg += f": {body}"
        super().__init__(msg)


class ExplicitNodeError(PermanentError):
    """Raised when a request pinned to one node fails on that node"""

    def __init__(self, node_id: str, cause: Exception):
        self.node_id = node_id
        self.cause = cause
        super().__init__(f"Request to explicit node {node_id} failed: {cause}")


class RequestCancelledError(SnowthError):
    """Raised when the caller cancels a request's context"""

    def __init__(self, message: str = "Request cancelled by caller"):
        super().__init__(message)
