"""Error taxonomy shared by the orchestration graph, services and API.

Every error raised on purpose by the agent derives from :class:`AgentError`
and carries a stable ``code`` that is surfaced to streaming clients.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class AgentError(Exception):
    """Base class for all agent errors."""

    code: str = "GRAPH_ERROR"

    def __init__(self, message: str, *, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class TransientExternalError(AgentError):
    """A dependency failed in a way that is worth retrying (network, 429, 5xx)."""

    code = "TRANSIENT_EXTERNAL"

    def __init__(self, message: str, *, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class CircuitOpenError(AgentError):
    """Raised when a call is attempted while the circuit is open."""

    code = "CIRCUIT_BREAKER_OPEN"

    def __init__(self, circuit_name: str):
        super().__init__(f"Circuit breaker '{circuit_name}' is open", context={"circuit_name": circuit_name})
        self.circuit_name = circuit_name


class OperationTimeoutError(AgentError, TimeoutError):
    """A call, run or stream exceeded its deadline."""

    code = "GRAPH_TIMEOUT"

    def __init__(self, operation_name: str, timeout_ms: float):
        super().__init__(
            f"Operation '{operation_name}' timed out after {round(timeout_ms)}ms",
            context={"operation_name": operation_name, "timeout_ms": timeout_ms},
        )
        self.operation_name = operation_name
        self.timeout_ms = timeout_ms


class MalformedModelOutputError(AgentError, ValueError):
    """Structured model output could not be parsed."""

    code = "MALFORMED_MODEL_OUTPUT"


class GraphCompileError(AgentError):
    """The graph wiring is invalid."""

    code = "GRAPH_COMPILE_ERROR"


class GraphDivergedError(AgentError):
    """The step limit was reached without a terminal transition."""

    code = "GRAPH_DIVERGED"


class NodeExecutionError(AgentError):
    """A node raised an unexpected exception; the run is aborted."""

    code = "GRAPH_ERROR"

    def __init__(self, node_id: str, cause: BaseException):
        super().__init__(f"Node '{node_id}' failed: {cause}", context={"node_id": node_id})
        self.node_id = node_id
        self.__cause__ = cause


def error_code(error: BaseException) -> str:
    """Map any exception to the code reported on the client stream."""
    if isinstance(error, OperationTimeoutError):
        return OperationTimeoutError.code
    if isinstance(error, AgentError):
        return error.code
    if isinstance(error, TimeoutError):
        return OperationTimeoutError.code
    return "GRAPH_ERROR"
