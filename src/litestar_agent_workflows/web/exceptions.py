"""Exception handling for agent workflow web endpoints.

This module maps the library's exceptions to HTTP responses.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from litestar import Response
from litestar.status_codes import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_429_TOO_MANY_REQUESTS,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from litestar_agent_workflows.exceptions import (
    AgentWorkflowsError,
    AllProvidersFailedError,
    InvalidStateError,
    NotFoundError,
    NotInitializedError,
    ProviderError,
    RateLimitError,
    ValidationError,
)

if TYPE_CHECKING:  # pragma: no cover
    from litestar import Request

__all__ = [
    "agent_workflows_exception_handler",
    "status_code_for",
]

_STATUS_CODES: tuple[tuple[type[AgentWorkflowsError], int, str], ...] = (
    (ValidationError, HTTP_400_BAD_REQUEST, "validation_error"),
    (NotFoundError, HTTP_404_NOT_FOUND, "not_found"),
    (InvalidStateError, HTTP_409_CONFLICT, "invalid_state"),
    (RateLimitError, HTTP_429_TOO_MANY_REQUESTS, "rate_limited"),
    (AllProvidersFailedError, HTTP_502_BAD_GATEWAY, "providers_unavailable"),
    (ProviderError, HTTP_502_BAD_GATEWAY, "provider_error"),
    (NotInitializedError, HTTP_503_SERVICE_UNAVAILABLE, "not_initialized"),
)


def status_code_for(exc: AgentWorkflowsError) -> tuple[int, str]:
    """Return the HTTP status code and error code of an exception."""
    for exc_type, status_code, code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code, code
    return HTTP_500_INTERNAL_SERVER_ERROR, "workflow_error"


def agent_workflows_exception_handler(
    _request: Request,
    exc: AgentWorkflowsError,
) -> Response:
    """Exception handler for every ``AgentWorkflowsError``.

    Args:
        request: The Litestar request object.
        exc: The raised exception.

    Returns:
        JSON response with an error code, the message and exception details.
    """
    status_code, code = status_code_for(exc)
    content: dict[str, Any] = {"error": code, "message": str(exc)}
    if isinstance(exc, ValidationError):
        content["errors"] = exc.errors
    elif isinstance(exc, RateLimitError):
        content.update(reason=exc.reason, current=exc.current, limit=exc.limit)
    elif isinstance(exc, AllProvidersFailedError):
        content["failures"] = exc.failures
    return Response(content=content, status_code=status_code, media_type="application/json")
