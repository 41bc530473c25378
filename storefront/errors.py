"""Error types raised by services and rendered as ``{"error": message}`` JSON."""
from __future__ import annotations

from typing import Any, Dict, Optional


class StorefrontError(Exception):
    """Base error. Unclassified failures surface as a generic 500."""

    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, **extra: Any) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        body.update(self.extra)
        return body


class ValidationError(StorefrontError):
    status_code = 400
    public_message = "Invalid request"


class AuthenticationError(StorefrontError):
    status_code = 401
    public_message = "Unauthorized"


class NotFoundError(StorefrontError):
    status_code = 404
    public_message = "Not found"


class ConflictError(StorefrontError):
    status_code = 409
    public_message = "Conflict"


class ServiceUnavailableError(StorefrontError):
    status_code = 503
    public_message = "Service unavailable"


class GatewayError(StorefrontError):
    """An external collaborator (storage, payments, identity) failed."""

    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, *, service: str = "external", status: Optional[int] = None) -> None:
        super().__init__(message)
        self.service = service
        self.upstream_status = status

    def to_dict(self) -> Dict[str, Any]:
        # Upstream details are logged, never returned to the caller
        return {"error": self.public_message}


class WebhookSignatureError(StorefrontError):
    status_code = 400
    public_message = "Webhook signature verification failed"
