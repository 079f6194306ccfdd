"""
Resilient client for the UniFi controller API.

Owns the single logical connection to one controller and executes
authenticated requests with:
- Transparent (re)connection before each request
- Token-bucket rate limiting shared across concurrent callers
- Per-request timeouts
- Exponential-backoff retry for retryable failures
- Normalization of response envelopes into ``{meta: {rc, msg}, data: [...]}``

Usage:
    config = ClientConfig(gateway="192.168.1.1", api_key="...")

    async with UniFiClient(config) as client:
        devices = await client.get("/proxy/network/api/s/{site}/stat/device")
        print(devices["data"])
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import replace
from typing import Any, Callable, Dict, Mapping, Optional

from unifi_mcp._core.ratelimit import TokenBucket, Clock, Sleep
from unifi_mcp._core.retry import retry_call
from unifi_mcp._core.transport import Transport
from unifi_mcp.config import ClientConfig
from unifi_mcp.errors import (
    AuthenticationFailure,
    ConnectionFailure,
    TlsFailure,
    UniFiMCPError,
    classify_http_status,
    classify_transport_error,
)
from unifi_mcp.types import (
    ConnectionState,
    ErrorKind,
    HealthReport,
    HealthStatus,
    RemoteInfo,
    SystemInfo,
    utcnow,
)

logger = logging.getLogger(__name__)

STATUS_PATH = "/status"
SYSTEM_INFO_PATH = "/api/system"
STATUS_CHECK_TIMEOUT = 5.0

SUCCESS_META = {"rc": "ok", "msg": "success"}

# Kinds connect() may fail with; anything else is reported as ConnectionFailure
CONNECT_ERRORS = (ConnectionFailure, AuthenticationFailure, TlsFailure)


def normalize_envelope(payload: Any) -> Dict[str, Any]:
    """
    Reconcile controller response shapes into the canonical envelope.

    Network Application endpoints answer ``{meta: {rc, msg}, data: [...]}``
    and are passed through. Gateway proxy endpoints answer the bare
    payload, which is wrapped with a synthetic success marker: lists
    become ``data`` as-is, anything else becomes a single-element list.

    Args:
        payload: Decoded response body

    Returns:
        Envelope dict with ``meta`` and ``data`` keys
    """
    if (
        isinstance(payload, Mapping)
        and isinstance(payload.get("meta"), Mapping)
        and isinstance(payload.get("data"), list)
    ):
        return dict(payload)

    if payload is None:
        data: list = []
    elif isinstance(payload, list):
        data = list(payload)
    else:
        data = [payload]
    return {"meta": dict(SUCCESS_META), "data": data}


def parse_system_info(payload: Any) -> SystemInfo:
    """
    Build SystemInfo from either system-info response shape.

    Raises:
        UniFiMCPError: If the canonical envelope reports an error or holds no record
    """
    failure = UniFiMCPError("Failed to retrieve system information", kind=ErrorKind.EXECUTION_ERROR)

    if isinstance(payload, Mapping) and "meta" not in payload:
        # Direct object, returned by gateway consoles
        hardware = payload.get("hardware") if isinstance(payload.get("hardware"), Mapping) else {}
        return SystemInfo(
            version=str(payload.get("version") or payload.get("name") or "Unknown"),
            hardware_model=str(
                hardware.get("shortname")
                or payload.get("model")
                or payload.get("hardwareModel")
                or "Unknown"
            ),
            hostname=str(payload.get("hostname") or payload.get("name") or ""),
            build=str(payload.get("build") or ""),
            raw=dict(payload),
        )

    if not isinstance(payload, Mapping):
        raise failure

    meta = payload.get("meta") or {}
    data = payload.get("data") or []
    if not isinstance(meta, Mapping) or meta.get("rc") != "ok" or not isinstance(data, list) or not data:
        raise failure

    record = data[0] if isinstance(data[0], Mapping) else {}
    return SystemInfo(
        version=str(record.get("version") or "Unknown"),
        hardware_model=str(
            record.get("hardware_model")
            or record.get("hardwareModel")
            or record.get("model")
            or "Unknown"
        ),
        hostname=str(record.get("hostname") or record.get("name") or ""),
        build=str(record.get("build") or record.get("buildNumber") or ""),
        raw=dict(record),
    )


def as_connect_error(error: UniFiMCPError) -> UniFiMCPError:
    """
    Map a failure during connect() onto the kinds connect() may raise.

    Connection, authentication and TLS failures pass through unchanged.
    Anything else (a 5xx or 404 from the system-info call, an error
    envelope) becomes a non-retryable ConnectionFailure that keeps the
    original kind in its details.
    """
    if isinstance(error, CONNECT_ERRORS):
        return error
    return ConnectionFailure(
        f"UniFi controller did not return system information: {error.detail}",
        details={**error.details, "original_error": error.detail, "original_kind": error.kind.value},
        retryable=False,
        status_code=error.status_code,
    )


class UniFiClient:
    """
    Async client owning one controller session.

    Safe for concurrent use from many tasks: connection establishment is
    serialized by a lock, and all requests draw from one token bucket.

    Attributes:
        config: Active ClientConfig (replace with update_config)
    """

    def __init__(
        self,
        config: ClientConfig,
        transport: Optional[Transport] = None,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None,
        rand: Optional[Callable[[], float]] = None,
    ) -> None:
        self.config = config
        self._transport = transport or Transport(verify_ssl=config.verify_ssl)
        self._owns_transport = transport is None
        self._sleep = sleep or asyncio.sleep
        self._rand = rand or random.random
        self._bucket = TokenBucket(
            config.rate_limit.requests_per_minute,
            config.rate_limit.window_seconds,
            clock=clock,
            sleep=self._sleep,
        )
        self._state = ConnectionState()
        self._retry_count = 0
        self._connect_lock: Optional[asyncio.Lock] = None

    def _get_lock(self) -> asyncio.Lock:
        if self._connect_lock is None:
            self._connect_lock = asyncio.Lock()
        return self._connect_lock

    # =========================================================================
    # Connection Management
    # =========================================================================

    async def connect(self, config: Optional[ClientConfig] = None) -> None:
        """
        Establish and verify the controller session.

        Runs an unauthenticated reachability check, then fetches system
        info with the API key to confirm it is accepted.

        Args:
            config: Optional new configuration to apply before connecting

        Raises:
            ConnectionFailure: Controller unreachable, refused, answering 5xx,
                or not returning system information
            AuthenticationFailure: API key rejected
            TlsFailure: Certificate verification failed
        """
        async with self._get_lock():
            if config is not None:
                self.update_config(config)
            await self._connect_locked()

    async def _ensure_connected(self) -> None:
        if self._state.is_active:
            return
        async with self._get_lock():
            # Another task may have connected while we waited
            if self._state.is_active:
                return
            logger.info("Re-establishing connection to UniFi controller")
            await self._connect_locked()

    async def _connect_locked(self) -> None:
        self._state.attempt_count += 1
        logger.info(
            f"Connecting to UniFi controller at {self.config.gateway} "
            f"(site={self.config.site_id}, attempt={self._state.attempt_count})"
        )

        try:
            await self._check_reachability()
            system_info = await self._fetch_system_info()
        except UniFiMCPError as e:
            error = as_connect_error(e)
            self._state.connected = False
            self._state.authenticated = False
            self._state.last_error = error.detail
            logger.warning(f"Connection to {self.config.gateway} failed: {error.detail}")
            if error is e:
                raise
            raise error from e

        self._state = ConnectionState(
            connected=True,
            authenticated=True,
            last_connected_at=utcnow(),
            last_error=None,
            attempt_count=self._state.attempt_count,
            remote_info=RemoteInfo(
                address=self.config.gateway,
                version=system_info.version,
                model=system_info.hardware_model,
                site_id=self.config.site_id,
            ),
        )
        logger.info(
            f"Connected to UniFi controller {system_info.hardware_model} "
            f"version {system_info.version}"
        )

    async def _check_reachability(self) -> None:
        """Unauthenticated check; any status below 500 counts as reachable."""
        try:
            response = await self._transport.send(
                "GET",
                self._url(STATUS_PATH),
                timeout=STATUS_CHECK_TIMEOUT,
            )
        except Exception as e:
            raise classify_transport_error(e, timeout=STATUS_CHECK_TIMEOUT) from e

        if response.status >= 500:
            raise ConnectionFailure(
                f"UniFi controller is not reachable (status {response.status})",
                status_code=response.status,
            )

    async def disconnect(self) -> None:
        """
        Drop the session. Safe to call when already disconnected.

        Keeps the lifetime attempt counter and resets the rate-limit window.
        """
        if self._state.connected:
            logger.info(f"Disconnected from UniFi controller at {self.config.gateway}")
        self._state = ConnectionState(attempt_count=self._state.attempt_count)
        self._bucket.reset()

    def update_config(self, config: ClientConfig) -> None:
        """
        Replace the configuration and reset the session.

        The transport is rebuilt when TLS verification changes.
        """
        rebuild = config.verify_ssl != self.config.verify_ssl
        self.config = config
        if rebuild and self._owns_transport:
            self._transport.close()
            self._transport = Transport(verify_ssl=config.verify_ssl)
        elif rebuild:
            self._transport.verify_ssl = config.verify_ssl
        self._bucket.capacity = config.rate_limit.requests_per_minute
        self._bucket.window_seconds = config.rate_limit.window_seconds
        self._bucket.reset()
        self._state = ConnectionState(attempt_count=self._state.attempt_count)

    async def close(self) -> None:
        """Disconnect and release the HTTP session."""
        await self.disconnect()
        if self._owns_transport:
            self._transport.close()

    # =========================================================================
    # Requests
    # =========================================================================

    def _url(self, path: str) -> str:
        path = path.replace("{site}", self.config.site_id)
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.config.base_url}{path}"

    def _auth_headers(self) -> Dict[str, str]:
        return {"X-API-KEY": self.config.api_key}

    async def _send_once(
        self,
        method: str,
        path: str,
        body: Any,
        query: Optional[Mapping[str, Any]],
        timeout: float,
    ) -> Any:
        """One rate-limited attempt; returns the decoded body or raises a typed error."""
        await self._bucket.acquire()
        try:
            response = await self._transport.send(
                method,
                self._url(path),
                headers=self._auth_headers(),
                body=body,
                params=query,
                timeout=timeout,
            )
        except Exception as e:
            raise classify_transport_error(e, timeout=timeout) from e

        if not response.ok:
            raise classify_http_status(response.status, response.body, response.headers)
        return response.body

    def _on_retry(self, attempt: int, error: UniFiMCPError, delay: float) -> None:
        self._retry_count += 1

    async def _execute(
        self,
        method: str,
        path: str,
        body: Any = None,
        query: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        effective_timeout = timeout if timeout is not None else self.config.timeout
        return await retry_call(
            lambda: self._send_once(method, path, body, query, effective_timeout),
            self.config.retry,
            sleep=self._sleep,
            rand=self._rand,
            on_retry=self._on_retry,
        )

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        query: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Execute an authenticated request.

        Args:
            method: HTTP method
            path: Path relative to the controller; ``{site}`` is substituted
            body: JSON body
            query: Query parameters
            timeout: Per-request timeout, defaults to config.timeout

        Returns:
            Canonical envelope ``{meta: {rc, msg}, data: [...]}``

        Raises:
            UniFiMCPError: Typed failure after retries are exhausted
        """
        await self._ensure_connected()
        payload = await self._execute(method, path, body, query, timeout)
        return normalize_envelope(payload)

    async def get(self, path: str, query: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Dict[str, Any]:
        return await self.request("GET", path, query=query, **kwargs)

    async def post(self, path: str, body: Any = None, query: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Dict[str, Any]:
        return await self.request("POST", path, body=body, query=query, **kwargs)

    async def put(self, path: str, body: Any = None, query: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Dict[str, Any]:
        return await self.request("PUT", path, body=body, query=query, **kwargs)

    async def delete(self, path: str, query: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Dict[str, Any]:
        return await self.request("DELETE", path, query=query, **kwargs)

    # =========================================================================
    # System Information / Health
    # =========================================================================

    async def _fetch_system_info(self) -> SystemInfo:
        payload = await self._execute("GET", SYSTEM_INFO_PATH)
        return parse_system_info(payload)

    async def get_system_info(self) -> SystemInfo:
        """
        Fetch controller system information.

        Accepts both the canonical envelope and the direct-object shape.

        Raises:
            UniFiMCPError: If the request fails or the response carries no record
        """
        await self._ensure_connected()
        return await self._fetch_system_info()

    async def health_check(self) -> HealthReport:
        """
        Check connectivity and authentication, measuring round-trip latency.

        Never raises; failures are reported as an unhealthy report carrying
        the most recent error.
        """
        started = time.perf_counter()
        try:
            if not self._state.connected:
                await self._ensure_connected()
            system_info = await self._fetch_system_info()
        except UniFiMCPError as e:
            self._state.last_error = e.detail
            logger.warning(f"Health check failed: {e.detail}")
            return HealthReport(
                status=HealthStatus.UNHEALTHY,
                connected=False,
                authenticated=False,
                last_connected_at=self._state.last_connected_at,
                last_error=e.detail,
            )

        latency_ms = (time.perf_counter() - started) * 1000
        return HealthReport(
            status=HealthStatus.HEALTHY,
            connected=True,
            authenticated=True,
            latency_ms=latency_ms,
            version=system_info.version,
            last_connected_at=self._state.last_connected_at,
        )

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def connection_state(self) -> ConnectionState:
        """Copy of the current connection state."""
        return replace(self._state)

    @property
    def is_connected(self) -> bool:
        """True only if connected and authenticated."""
        return self._state.is_active

    def statistics(self) -> Dict[str, Any]:
        return {
            "connection_attempts": self._state.attempt_count,
            "retry_count": self._retry_count,
            "rate_limit_tokens": self._bucket.available,
            "queued_requests": self._bucket.waiting,
            "last_connected_at": (
                self._state.last_connected_at.isoformat() if self._state.last_connected_at else None
            ),
        }

    def redacted_config(self) -> Dict[str, Any]:
        """Configuration without the API key."""
        return self.config.redacted()

    async def __aenter__(self) -> "UniFiClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
