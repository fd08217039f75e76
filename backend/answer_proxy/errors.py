"""
Error taxonomy for the gateway.

Every error raised inside a request is a GatewayError subclass carrying the
HTTP status it maps to, a short user-facing message and optional extra JSON
fields / headers. The exception handler in main.py renders them; nothing else
about the failure (stack traces, upstream bodies, secrets) reaches the client.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

UPSTREAM_DETAIL_CHARS = 400
RECIPE_DETAIL_CHARS = 200


def truncate_detail(text: Any, limit: int) -> str:
    return str(text)[:limit]


class GatewayError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 500
    message = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message or self.message
        self.extra = extra or {}
        self.headers = headers or {}
        super().__init__(self.message)

    def to_content(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


class AuthError(GatewayError):
    """Install token missing or rejected. Only the reason code is exposed."""

    status_code = 401
    message = "Unauthorized"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(extra={"reason": reason})


class ValidationFailed(GatewayError):
    status_code = 400
    message = "Invalid request"


class UnsupportedFile(ValidationFailed):
    message = "Unsupported file type"


class PromptTooLarge(GatewayError):
    status_code = 413
    message = "Prompt too large"


class FileTooLarge(GatewayError):
    status_code = 413
    message = "File too large"


class RateLimitExceeded(GatewayError):
    status_code = 429
    message = "Too many requests"


class UpstreamError(GatewayError):
    """Model backend returned an error or no answer."""

    status_code = 502
    message = "Upstream error"

    def __init__(self, message: Optional[str] = None, *, status: Optional[int] = None, details: str = ""):
        extra: Dict[str, Any] = {}
        if status is not None:
            extra["status"] = status
        if details:
            extra["details"] = truncate_detail(details, UPSTREAM_DETAIL_CHARS)
        super().__init__(message, extra=extra)


class UpstreamTimeout(GatewayError):
    status_code = 504
    message = "Upstream timeout"


class RecipeError(GatewayError):
    """The configured prompt recipe raised or returned something unusable."""

    status_code = 500
    message = "Recipe error"

    def __init__(self, details: Any = ""):
        super().__init__(extra={"details": truncate_detail(details, RECIPE_DETAIL_CHARS)})


class ServerMisconfigured(GatewayError):
    status_code = 500
    message = "Server misconfigured"


class DocumentError(GatewayError):
    status_code = 500
    message = "Failed to process CV file"
