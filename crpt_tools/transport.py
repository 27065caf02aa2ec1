"""
HTTP transport for the document-create endpoint.
"""
import logging

import requests

from crpt_tools.errors import TransportError

logger = logging.getLogger(__name__)

CREATE_DOCUMENT_URL = "https://ismp.crpt.ru/api/v3/lk/documents/create"


class HttpTransport:
    """POSTs a serialized document with its detached signature."""

    def __init__(self, timeout: float = 30, url: str = CREATE_DOCUMENT_URL):
        self.url = url
        self.timeout = timeout

    def post(self, body: bytes, signature: str) -> int:
        """
        Send one document.

        Args:
            body: UTF-8 JSON bytes
            signature: Opaque signature, sent verbatim in the Signature header

        Returns:
            The HTTP status code (always 200)

        Raises:
            TransportError: network failure or any status other than 200
        """
        headers = {
            "Content-Type": "application/json",
            "Signature": signature,
        }
        try:
            response = requests.post(self.url, data=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"API request failed: {e}") from e

        status_code = response.status_code
        response.close()

        if status_code != 200:
            raise TransportError(
                f"Failed to create document, response code: {status_code}",
                status_code=status_code,
            )
        logger.debug("POST %s -> %d", self.url, status_code)
        return status_code
