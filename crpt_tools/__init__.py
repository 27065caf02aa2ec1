"""
CRPT Submission Gateway: rate-limited document registration.

All document-create calls go through CrptApi. It enforces:
1. At most N submissions per time unit, with waiting callers served in order
2. Fixed endpoint, JSON body and a detached Signature header
3. Errors surfaced to the caller, never retried
"""
from crpt_tools.document import Description, Document, Product, encode_document
from crpt_tools.errors import (
    EncodingError,
    GatewayError,
    Interrupted,
    LimitExceeded,
    Stopped,
    TransportError,
)
from crpt_tools.gateway import CrptApi, GateState
from crpt_tools.ratelimit import TimeUnit

__version__ = "1.0.0"

__all__ = [
    "CrptApi",
    "GateState",
    "TimeUnit",
    "Document",
    "Description",
    "Product",
    "encode_document",
    "GatewayError",
    "Interrupted",
    "LimitExceeded",
    "EncodingError",
    "TransportError",
    "Stopped",
]
