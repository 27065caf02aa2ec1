"""
CRPT Submission Gateway: the single entry point for document-create calls.

Callers are admitted at most `request_limit` times per time unit. Excess
callers wait, in arrival order, for the next window. Admitted callers have
their document serialized and POSTed with its signature.
"""
import logging
import threading
import time
from enum import Enum
from typing import Any, Dict, Optional, Union

from crpt_tools.document import Document, encode_document
from crpt_tools.errors import GatewayError, LimitExceeded, Stopped
from crpt_tools.ratelimit import FairTokenBucket, Timekeeper, TimeUnit
from crpt_tools.transport import HttpTransport

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT_SECONDS = 1.0


class GateState(Enum):
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class CrptApi:
    """
    Rate-limited client for the document-create endpoint.

    Args:
        time_unit: Window length, a TimeUnit or its name ("seconds", "minutes", ...)
        request_limit: Maximum admissions per window (>= 1)
        transport: Object with post(body, signature); defaults to HttpTransport

    The timekeeper thread starts here and runs until shutdown().
    """

    def __init__(
        self,
        time_unit: Union[TimeUnit, str],
        request_limit: int,
        transport=None,
    ):
        self.time_unit = TimeUnit.parse(time_unit)
        if isinstance(request_limit, bool) or not isinstance(request_limit, int):
            raise TypeError(f"request_limit must be an int, got {type(request_limit).__name__}")
        if request_limit < 1:
            raise ValueError(f"request_limit must be >= 1, got {request_limit}")

        self.request_limit = request_limit
        self.transport = transport if transport is not None else HttpTransport()

        self._bucket = FairTokenBucket(request_limit)
        self._timekeeper = Timekeeper(self.time_unit.seconds, self._bucket.refill)
        self._state = GateState.RUNNING
        self._state_lock = threading.Lock()
        self._timekeeper.start()

        logger.info(
            "Gateway started: %d requests per %s",
            request_limit, self.time_unit.name.lower(),
        )

    @property
    def state(self) -> GateState:
        return self._state

    def __enter__(self) -> "CrptApi":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def submit(
        self,
        document: Document,
        signature: str,
        cancel: Optional[threading.Event] = None,
    ) -> Dict[str, Any]:
        """
        Submit a document through the gateway.

        Blocks until admitted (up to about one window), then POSTs.

        Args:
            document: The document to register
            signature: Detached signature, forwarded verbatim
            cancel: Optional event; setting it abandons the wait for admission

        Returns:
            {"success": True, "doc_id": "...", "status_code": 200}

        Raises:
            Stopped, Interrupted, LimitExceeded, EncodingError, TransportError
        """
        if self._state is not GateState.RUNNING:
            raise Stopped()

        doc_id = getattr(document, "doc_id", None)

        try:
            self._bucket.acquire(cancel)
        except LimitExceeded as e:
            logger.warning("Rejected document %s: %s", doc_id, e.message)
            raise

        started = time.monotonic()
        try:
            body = encode_document(document)
            status_code = self.transport.post(body, signature)
        except GatewayError as e:
            elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.warning("Submission of document %s failed after %d ms: %s", doc_id, elapsed_ms, e.message)
            raise

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info("Submitted document %s (%d ms)", doc_id, elapsed_ms)
        return {"success": True, "doc_id": doc_id, "status_code": status_code}

    def shutdown(self) -> None:
        """
        Stop the timekeeper and refuse further admissions.

        Waiting callers are woken with Stopped; submissions already admitted
        run to completion. Returns once the state is STOPPED. Idempotent.
        """
        with self._state_lock:
            if self._state is GateState.STOPPED:
                return
            self._state = GateState.STOPPING
            self._bucket.close()
            if not self._timekeeper.stop(timeout=SHUTDOWN_TIMEOUT_SECONDS):
                logger.warning(
                    "Timekeeper did not stop within %.1fs, abandoning it",
                    SHUTDOWN_TIMEOUT_SECONDS,
                )
            self._state = GateState.STOPPED
        logger.info("Gateway stopped")

    def status(self) -> Dict[str, Any]:
        """Snapshot of the gate: state, capacity and window progress."""
        window_started = self._timekeeper.window_started
        return {
            "state": self._state.value,
            "time_unit": self.time_unit.name.lower(),
            "window_seconds": self.time_unit.seconds,
            "request_limit": self.request_limit,
            "available": self._bucket.available,
            "admitted_this_window": self._bucket.admitted,
            "waiting": self._bucket.waiting,
            "ticks": self._timekeeper.ticks,
            "window_age_seconds": (
                round(time.monotonic() - window_started, 3)
                if window_started is not None else None
            ),
        }
