"""
HTTP transport for the UniFi controller.

Executes single requests with ``requests`` in the default executor so the
event loop stays free while a request is in flight. Raw ``requests``
exceptions are raised unchanged; UniFiClient classifies them.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import requests
import urllib3

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


@dataclass
class TransportResponse:
    """
    Response from a single HTTP exchange.

    Attributes:
        status: HTTP status code
        headers: Response headers
        body: Parsed JSON, raw text, or None for an empty body
    """
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None

    @property
    def ok(self) -> bool:
        return self.status < 400


class Transport:
    """
    Thin async wrapper over a ``requests.Session``.

    Attributes:
        verify_ssl: Whether TLS certificates are verified
    """

    def __init__(self, verify_ssl: bool = False, session: Optional[requests.Session] = None) -> None:
        self.verify_ssl = verify_ssl
        self._session = session or requests.Session()
        self._session.verify = verify_ssl
        if not verify_ssl:
            # Controllers ship self-signed certificates
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        timeout: float = 30.0,
    ) -> TransportResponse:
        """
        Execute one request.

        Args:
            method: HTTP method
            url: Absolute URL
            headers: Request headers (merged over the JSON defaults)
            body: JSON-serializable body
            params: Query parameters
            timeout: Timeout in seconds

        Returns:
            TransportResponse for any HTTP status

        Raises:
            requests.RequestException: On network, timeout or TLS failures
        """
        loop = asyncio.get_running_loop()
        call = functools.partial(
            self._send_sync,
            method.upper(),
            url,
            {**DEFAULT_HEADERS, **dict(headers or {})},
            body,
            dict(params) if params else None,
            timeout,
        )
        return await loop.run_in_executor(None, call)

    def _send_sync(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Any,
        params: Optional[Dict[str, Any]],
        timeout: float,
    ) -> TransportResponse:
        """Sync implementation of send."""
        response = self._session.request(
            method,
            url,
            headers=headers,
            json=body,
            params=params,
            timeout=timeout,
            verify=self.verify_ssl,
        )
        return TransportResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=_decode_body(response),
        )

    def close(self) -> None:
        self._session.close()


def _decode_body(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
