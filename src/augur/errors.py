"""Custom exceptions and error codes for the Augur engine."""

from enum import StrEnum


class ErrorCode(StrEnum):
    """Machine-readable codes attached to user-visible failures."""

    OUT_OF_SCOPE = "OUT_OF_SCOPE"
    RETRIEVAL_FAILED = "RETRIEVAL_FAILED"
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    TOOL_EXECUTION_FAILED = "TOOL_EXECUTION_FAILED"
    INVALID_TOOL_ARGUMENTS = "INVALID_TOOL_ARGUMENTS"
    MODEL_INVOCATION_FAILED = "MODEL_INVOCATION_FAILED"
    MAX_ITERATIONS_REACHED = "MAX_ITERATIONS_REACHED"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AugurError(Exception):
    """Base exception for all Augur errors."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, *, details: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class RetrievalError(AugurError):
    """Raised when the embedding API or vector store cannot serve a request."""

    code = ErrorCode.RETRIEVAL_FAILED


class EmbeddingError(RetrievalError):
    """Raised when an embedding batch fails."""


class VectorStoreError(RetrievalError):
    """Raised when a vector store upsert, query or delete fails."""


class ModelInvocationError(AugurError):
    """Raised when the chat model call fails or times out."""

    code = ErrorCode.MODEL_INVOCATION_FAILED


class PersistenceError(AugurError):
    """Raised when the relational store rejects a write."""

    code = ErrorCode.PERSISTENCE_FAILED


class ToolNotFoundError(AugurError):
    """Raised when the model names a tool that is not in the bound catalog."""

    code = ErrorCode.TOOL_NOT_FOUND

    def __init__(self, tool_name: str) -> None:
        super().__init__(
            f'Tool "{tool_name}" not found',
            details={"tool_name": tool_name},
        )


class ActionValidationError(AugurError):
    """Raised when tool arguments do not match the action's parameter model."""

    code = ErrorCode.INVALID_TOOL_ARGUMENTS

    def __init__(self, action: str, errors: list[str]) -> None:
        super().__init__(
            f"Invalid arguments for {action}: {'; '.join(errors)}",
            details={"action": action, "errors": errors},
        )


class ToolExecutionError(AugurError):
    """Raised when a backend service call fails or is unreachable."""

    code = ErrorCode.TOOL_EXECUTION_FAILED
