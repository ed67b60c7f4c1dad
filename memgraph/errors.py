"""
Shared error types for the graph engine.
"""


class ValidationIssue(ValueError):
    def __init__(
        self,
        message: str,
        field: str = "unknown",
        error_type: str = "invalid",
        error_code: str | None = None,
        data: dict | None = None,
    ):
        super().__init__(message)
        self.field = field
        self.error_type = error_type
        self.error_code = error_code
        self.data = data


class EmbeddingUnavailable(RuntimeError):
    """Raised when the embedding provider is unreachable, disabled, or timed out."""


class StorageUnavailable(RuntimeError):
    """Raised when a write needs the store and there is none (or it failed)."""

    def __init__(self, message: str = "graph store unavailable", retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class StorageTimeout(StorageUnavailable):
    def __init__(self, message: str = "graph store call timed out", retryable: bool = True):
        super().__init__(message, retryable=retryable)


class ActivationTimeout(StorageTimeout):
    def __init__(self, message: str = "activation timed out"):
        super().__init__(message)


class NotFound(LookupError):
    def __init__(self, kind: str, ident):
        super().__init__(f"{kind} {ident} not found")
        self.kind = kind
        self.ident = ident


class NodeNotFound(NotFound):
    def __init__(self, node_id):
        super().__init__("node", node_id)


class EdgeNotFound(NotFound):
    def __init__(self, edge_id):
        super().__init__("edge", edge_id)
