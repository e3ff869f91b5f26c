"""Exception hierarchy for the RAG pipeline."""


class RagPipelineError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(RagPipelineError, ValueError):
    """Invalid configuration (chunk sizes, dimensions, capacities).

    Fatal at startup and never retried.
    """


class VectorIndexError(RagPipelineError):
    """Base class for recoverable vector index errors."""


class DimensionMismatchError(VectorIndexError, ValueError):
    """A vector's length does not match the index dimension."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Vector dimension mismatch: expected {expected}, got {actual}"
        )


class CapacityExceededError(VectorIndexError, ValueError):
    """A namespace is full and the id being inserted is new."""

    def __init__(self, namespace: str, max_elements: int):
        self.namespace = namespace
        self.max_elements = max_elements
        super().__init__(
            f"Namespace '{namespace}' is at capacity ({max_elements} elements)"
        )


class UnknownNamespaceError(VectorIndexError, KeyError):
    """Search against a namespace that was never populated."""

    def __init__(self, namespace: str):
        self.namespace = namespace
        super().__init__(namespace)

    def __str__(self) -> str:
        return f"Unknown namespace: '{self.namespace}'"


class ExternalServiceError(RagPipelineError):
    """An embedding/generation call failed after exhausting its retries."""

    def __init__(self, operation: str, attempts: int, message: str):
        self.operation = operation
        self.attempts = attempts
        super().__init__(f"{operation} failed after {attempts} attempt(s): {message}")
