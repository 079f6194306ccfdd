"""
Exception types for unifi-mcp.

Provides typed exceptions for:
- Transport and session failures (connection, auth, TLS, rate limiting)
- Capability gating (feature and hardware checks)
- Tool dispatch (lookup, preconditions, handler execution)

Raw transport exceptions are converted to these types inside the client
by classify_transport_error() and classify_http_status(), so callers
never inspect ``requests`` exceptions directly.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional

import requests

from unifi_mcp.types import ErrorKind


class UniFiMCPError(Exception):
    """
    Base exception for all unifi-mcp errors.

    Attributes:
        kind: Machine-readable failure kind
        detail: Human-readable explanation
        details: Structured context for the result payload
        retryable: Whether the client's retry loop may re-attempt
        status_code: HTTP status that produced the error, if any
    """

    kind: ErrorKind = ErrorKind.EXECUTION_ERROR
    default_retryable: bool = False

    def __init__(
        self,
        detail: str,
        kind: Optional[ErrorKind] = None,
        details: Optional[Dict[str, Any]] = None,
        retryable: Optional[bool] = None,
        status_code: Optional[int] = None,
    ):
        if kind is not None:
            self.kind = kind
        self.detail = detail
        self.details = details or {}
        self.retryable = self.default_retryable if retryable is None else retryable
        self.status_code = status_code
        super().__init__(detail)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.kind.value,
            "message": self.detail,
            "details": self.details or None,
            "retryable": self.retryable,
            "status_code": self.status_code,
        }

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value!r}, detail={self.detail!r}, "
            f"retryable={self.retryable!r})"
        )


# =============================================================================
# Transport / Session Errors
# =============================================================================


class ConnectionFailure(UniFiMCPError):
    """
    Raised when the controller cannot be reached.

    This includes:
    - Connection refused or reset
    - Host not found (not retryable)
    - Reachability check answered with a 5xx status
    """
    kind = ErrorKind.CONNECTION_FAILURE
    default_retryable = True


class RequestTimeout(ConnectionFailure):
    """Raised when a request exceeds its timeout."""
    kind = ErrorKind.REQUEST_TIMEOUT

    def __init__(self, detail: str = "Network request timed out", timeout: Optional[float] = None, **kwargs: Any):
        details = kwargs.pop("details", None) or {}
        if timeout is not None:
            details["timeout"] = timeout
        super().__init__(detail, details=details, **kwargs)


class AuthenticationFailure(UniFiMCPError):
    """Raised when the API key is rejected by the controller."""
    kind = ErrorKind.AUTHENTICATION_FAILURE


class TlsFailure(UniFiMCPError):
    """
    Raised when certificate validation fails.

    Only occurs with verify_ssl enabled against an untrusted certificate.
    """
    kind = ErrorKind.TLS_FAILURE


class RateLimited(UniFiMCPError):
    """
    Raised when the controller answers 429.

    retry_after, when present, replaces the computed backoff delay.
    """
    kind = ErrorKind.RATE_LIMITED
    default_retryable = True

    def __init__(self, detail: str = "API rate limit exceeded", retry_after: Optional[float] = None, **kwargs: Any):
        self.retry_after = retry_after
        details = kwargs.pop("details", None) or {}
        details["retry_after"] = retry_after
        super().__init__(detail, details=details, **kwargs)


class RemoteServerError(UniFiMCPError):
    """Raised on 5xx responses from the controller."""
    kind = ErrorKind.REMOTE_SERVER_ERROR
    default_retryable = True


class ResourceNotFound(UniFiMCPError):
    """Raised on 404 responses from the controller."""
    kind = ErrorKind.RESOURCE_NOT_FOUND


# =============================================================================
# Capability Errors
# =============================================================================


class FeatureNotSupported(UniFiMCPError):
    """Raised when the controller version does not provide a feature."""
    kind = ErrorKind.FEATURE_NOT_SUPPORTED

    def __init__(
        self,
        feature: str,
        required_version: Optional[str] = None,
        current_version: Optional[str] = None,
    ):
        self.feature = feature
        self.required_version = required_version
        self.current_version = current_version

        message = f"Feature '{feature}' is not supported"
        if required_version:
            message += f" (requires version {required_version}"
            if current_version:
                message += f", current: {current_version}"
            message += ")"

        super().__init__(
            message,
            details={
                "feature": feature,
                "required_version": required_version,
                "current_version": current_version,
            },
        )


class HardwareIncompatible(UniFiMCPError):
    """Raised when the controller hardware is outside a feature's compatible set."""
    kind = ErrorKind.HARDWARE_INCOMPATIBLE

    def __init__(self, feature: str, hardware_model: str, compatible_models: Optional[List[str]] = None):
        self.feature = feature
        self.hardware_model = hardware_model
        self.compatible_models = list(compatible_models or [])

        message = f"Feature '{feature}' is not compatible with hardware model '{hardware_model}'"
        if self.compatible_models:
            message += f" (supported: {', '.join(self.compatible_models)})"

        super().__init__(
            message,
            details={
                "feature": feature,
                "hardware_model": hardware_model,
                "compatible_models": self.compatible_models,
            },
        )


class CapabilityDetectionFailure(UniFiMCPError):
    """Raised when the system-info request behind capability detection fails."""
    kind = ErrorKind.CAPABILITY_DETECTION_FAILURE


# =============================================================================
# Dispatch Errors
# =============================================================================


class ValidationError(UniFiMCPError):
    """Raised when arguments or inputs fail validation."""
    kind = ErrorKind.VALIDATION_ERROR

    def __init__(self, detail: str, field: Optional[str] = None, constraints: Optional[List[str]] = None, **kwargs: Any):
        self.field = field
        self.constraints = list(constraints or [])
        details = kwargs.pop("details", None) or {}
        details.update({"field": field, "constraints": self.constraints})
        super().__init__(detail, details=details, **kwargs)


class OperationNotFound(UniFiMCPError):
    kind = ErrorKind.OPERATION_NOT_FOUND


class OperationDisabled(UniFiMCPError):
    kind = ErrorKind.OPERATION_DISABLED


class ConnectionRequired(UniFiMCPError):
    kind = ErrorKind.CONNECTION_REQUIRED


class FeatureUnavailable(UniFiMCPError):
    """Wraps a FeatureNotSupported / HardwareIncompatible at dispatch time."""
    kind = ErrorKind.FEATURE_UNAVAILABLE


class ExecutionError(UniFiMCPError):
    """Any handler failure that is not already a UniFiMCPError."""
    kind = ErrorKind.EXECUTION_ERROR


class ConfigurationError(UniFiMCPError):
    """Raised when configuration values are invalid."""
    kind = ErrorKind.CONFIGURATION_ERROR

    def __init__(self, detail: str, config_field: Optional[str] = None):
        self.config_field = config_field
        super().__init__(detail, details={"config_field": config_field})


# =============================================================================
# Classification
# =============================================================================


_NAME_RESOLUTION_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "no address associated",
    "name resolution",
)


def _is_name_resolution_failure(exc: BaseException) -> bool:
    """Walk the cause chain looking for a DNS lookup failure."""
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        text = str(current).lower()
        if any(marker in text for marker in _NAME_RESOLUTION_MARKERS):
            return True
        current = current.__cause__ or current.__context__
    return False


def classify_transport_error(exc: BaseException, timeout: Optional[float] = None) -> UniFiMCPError:
    """
    Map a raw ``requests`` exception to exactly one error kind.

    Args:
        exc: Exception raised by the transport
        timeout: Timeout in effect for the request (for error details)

    Returns:
        Typed UniFiMCPError (not raised)
    """
    if isinstance(exc, UniFiMCPError):
        return exc

    # SSLError subclasses ConnectionError, so it must be checked first
    if isinstance(exc, requests.exceptions.SSLError):
        return TlsFailure(
            "SSL certificate verification failed",
            details={
                "original_error": str(exc),
                "suggestion": "Set verify_ssl to false for self-signed certificates",
            },
        )

    # ConnectTimeout subclasses both ConnectionError and Timeout
    if isinstance(exc, requests.exceptions.Timeout):
        return RequestTimeout(timeout=timeout, details={"original_error": str(exc)})

    if isinstance(exc, requests.exceptions.ConnectionError):
        if _is_name_resolution_failure(exc):
            return ConnectionFailure(
                "Host not found - check gateway address",
                details={"reason": "host_not_found", "original_error": str(exc)},
                retryable=False,
            )
        return ConnectionFailure(
            "Connection refused - check if the controller is running",
            details={"reason": "connection_refused", "original_error": str(exc)},
        )

    if isinstance(exc, requests.exceptions.RequestException):
        return ConnectionFailure(
            str(exc) or "Network error occurred",
            details={"original_error": type(exc).__name__},
        )

    return ExecutionError(str(exc) or type(exc).__name__, details={"error_type": type(exc).__name__})


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds."""
    if value is None:
        return None
    try:
        seconds = float(str(value).strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def _message_from_body(body: Any, fallback: str) -> str:
    if isinstance(body, Mapping):
        meta = body.get("meta")
        if isinstance(meta, Mapping) and meta.get("msg"):
            return str(meta["msg"])
        for key in ("message", "error", "msg"):
            if body.get(key):
                return str(body[key])
    if isinstance(body, str) and body.strip():
        return re.sub(r"\s+", " ", body.strip())[:200]
    return fallback


def classify_http_status(
    status: int,
    body: Any = None,
    headers: Optional[Mapping[str, str]] = None,
) -> UniFiMCPError:
    """
    Map an HTTP error status from the controller to an error kind.

    Args:
        status: HTTP status code (>= 400)
        body: Parsed response body, used for the message
        headers: Response headers (Retry-After for 429)

    Returns:
        Typed UniFiMCPError (not raised)
    """
    message = _message_from_body(body, f"Request failed with status {status}")
    details = {"body": body} if isinstance(body, Mapping) else {}

    if status in (400, 422):
        return ValidationError(message, status_code=status, details=details)
    if status in (401, 403):
        return AuthenticationFailure(
            message if status == 403 else "Invalid API key or insufficient permissions",
            status_code=status,
            details=details,
        )
    if status == 404:
        return ResourceNotFound(message, status_code=status, details=details)
    if status == 408:
        return RequestTimeout(message, status_code=status)
    if status == 429:
        retry_after = None
        if headers:
            lowered = {k.lower(): v for k, v in headers.items()}
            retry_after = parse_retry_after(lowered.get("retry-after"))
        return RateLimited(message, retry_after=retry_after, status_code=status)
    if status >= 500:
        return RemoteServerError(message, status_code=status, details=details)
    return UniFiMCPError(message, status_code=status, details=details)
