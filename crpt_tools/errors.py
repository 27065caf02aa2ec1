"""
Errors raised by the CRPT submission gateway.

Every failure of submit() surfaces as one of these. Nothing is retried or
swallowed inside the gateway; to_dict() renders one as a result dict.
"""
from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base class for gateway failures."""

    code = "GATEWAY_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.code,
            "reason": self.message,
            **self.details,
        }


class Interrupted(GatewayError):
    """Caller was cancelled while waiting for admission."""

    code = "interrupted"

    def __init__(self, message: str = "Cancelled while waiting for admission"):
        super().__init__(message)


class LimitExceeded(GatewayError):
    """More admissions than the request limit were counted in one window."""

    code = "limit_exceeded"

    def __init__(self, admitted: int, limit: int):
        super().__init__(
            f"Request limit exceeded: {admitted} admissions in this window (limit {limit})",
            {"admitted": admitted, "limit": limit},
        )


class EncodingError(GatewayError):
    """Document could not be serialized to JSON."""

    code = "encoding_error"


class TransportError(GatewayError):
    """Network failure or a non-200 response from the service."""

    code = "transport_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message, {"status_code": status_code})


class Stopped(GatewayError):
    """submit() called after shutdown()."""

    code = "stopped"

    def __init__(self, message: str = "Gateway has been shut down"):
        super().__init__(message)
