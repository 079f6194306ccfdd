"""
Configuration for unifi-mcp.

Configuration objects are constructed once (directly or from the
environment) and passed into UniFiClient, CapabilityDetector and
ToolRegistry constructors. Values are validated on creation.

Environment variables:
    UNIFI_GATEWAY_IP            Controller address (required for from_env)
    UNIFI_API_KEY               API key (required for from_env)
    UNIFI_SITE_ID               Site identifier (default: "default")
    UNIFI_PORT                  Port override
    UNIFI_USE_HTTPS             Use https (default: true)
    UNIFI_VERIFY_SSL            Verify certificates (default: false)
    UNIFI_TIMEOUT               Request timeout in seconds (default: 30)
    UNIFI_MAX_RETRIES           Retry attempt ceiling (default: 3)
    UNIFI_RATE_LIMIT_PER_MINUTE Requests per 60s window (default: 60)
    UNIFI_HEALTH_CHECK_INTERVAL Seconds between health checks, 0 disables
    UNIFI_ENABLE_ZBF_TOOLS      Register zone-based firewall tools
    UNIFI_ENABLE_LEGACY_FIREWALL Register legacy firewall tools
    UNIFI_ENABLE_MONITORING     Register monitoring tools
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, asdict, replace
from typing import Any, Dict, Mapping, Optional

from unifi_mcp.errors import ConfigurationError

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_bool(name: str, value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}", config_field=name)


def _parse_number(name: str, value: Optional[str], default: Optional[float]) -> Optional[float]:
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}", config_field=name) from None


@dataclass
class RetryConfig:
    """
    Retry policy for the resilient client.

    Attributes:
        max_attempts: Total attempts including the first (1-10)
        base_delay: Delay before the second attempt, in seconds
        max_delay: Cap for the exponential part of the delay, in seconds
        jitter: Upper bound of the random jitter added to each delay, in seconds
        enabled: When False, every request is attempted exactly once
    """
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    jitter: float = 1.0
    enabled: bool = True

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not 1 <= self.max_attempts <= 10:
            raise ConfigurationError(
                f"max_attempts must be 1-10, got {self.max_attempts}", config_field="max_attempts"
            )
        if self.base_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ConfigurationError("retry delays must be non-negative", config_field="base_delay")
        if self.max_delay < self.base_delay:
            raise ConfigurationError(
                f"max_delay ({self.max_delay}) must be >= base_delay ({self.base_delay})",
                config_field="max_delay",
            )


@dataclass
class RateLimitConfig:
    """
    Token-bucket settings.

    Attributes:
        requests_per_minute: Bucket capacity, refilled once per window
        window_seconds: Window length
    """
    requests_per_minute: int = 60
    window_seconds: float = 60.0

    def __post_init__(self) -> None:
        if not 1 <= self.requests_per_minute <= 1000:
            raise ConfigurationError(
                f"requests_per_minute must be 1-1000, got {self.requests_per_minute}",
                config_field="requests_per_minute",
            )
        if self.window_seconds <= 0:
            raise ConfigurationError("window_seconds must be positive", config_field="window_seconds")


@dataclass
class ClientConfig:
    """
    Connection settings for a UniFi controller.

    Attributes:
        gateway: Controller IP address or hostname
        api_key: API key sent as X-API-KEY
        site_id: Site identifier substituted for {site} in paths
        port: Optional port override
        use_https: Use https scheme
        verify_ssl: Verify the controller certificate
        timeout: Default per-request timeout in seconds
        retry: Retry policy
        rate_limit: Token-bucket settings
    """
    gateway: str
    api_key: str
    site_id: str = "default"
    port: Optional[int] = None
    use_https: bool = True
    verify_ssl: bool = False
    timeout: float = 30.0
    retry: RetryConfig = field(default_factory=RetryConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if not self.gateway or not self.gateway.strip():
            raise ConfigurationError("gateway is required", config_field="gateway")
        if "://" in self.gateway or "/" in self.gateway:
            raise ConfigurationError(
                f"gateway must be a host or IP address, got {self.gateway!r}", config_field="gateway"
            )
        if not self.api_key:
            raise ConfigurationError("api_key is required", config_field="api_key")
        if not self.site_id:
            raise ConfigurationError("site_id must not be empty", config_field="site_id")
        if self.port is not None and not 1 <= self.port <= 65535:
            raise ConfigurationError(f"port must be 1-65535, got {self.port}", config_field="port")
        if not 1.0 <= self.timeout <= 300.0:
            raise ConfigurationError(f"timeout must be 1-300 seconds, got {self.timeout}", config_field="timeout")

    @property
    def base_url(self) -> str:
        scheme = "https" if self.use_https else "http"
        port = f":{self.port}" if self.port else ""
        return f"{scheme}://{self.gateway}{port}"

    def with_overrides(self, **changes: Any) -> "ClientConfig":
        """Return a validated copy with the given fields replaced."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def redacted(self) -> Dict[str, Any]:
        """Configuration as a dict with the API key removed."""
        data = asdict(self)
        data.pop("api_key", None)
        return data

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        """
        Build configuration from environment variables.

        Raises:
            ConfigurationError: If a required variable is missing or invalid
        """
        env = os.environ if environ is None else environ

        gateway = env.get("UNIFI_GATEWAY_IP")
        if not gateway:
            raise ConfigurationError("UNIFI_GATEWAY_IP is not set", config_field="UNIFI_GATEWAY_IP")
        api_key = env.get("UNIFI_API_KEY")
        if not api_key:
            raise ConfigurationError("UNIFI_API_KEY is not set", config_field="UNIFI_API_KEY")

        port = _parse_number("UNIFI_PORT", env.get("UNIFI_PORT"), None)
        max_retries = _parse_number("UNIFI_MAX_RETRIES", env.get("UNIFI_MAX_RETRIES"), 3)
        per_minute = _parse_number("UNIFI_RATE_LIMIT_PER_MINUTE", env.get("UNIFI_RATE_LIMIT_PER_MINUTE"), 60)

        return cls(
            gateway=gateway,
            api_key=api_key,
            site_id=env.get("UNIFI_SITE_ID") or "default",
            port=int(port) if port is not None else None,
            use_https=_parse_bool("UNIFI_USE_HTTPS", env.get("UNIFI_USE_HTTPS"), True),
            verify_ssl=_parse_bool("UNIFI_VERIFY_SSL", env.get("UNIFI_VERIFY_SSL"), False),
            timeout=_parse_number("UNIFI_TIMEOUT", env.get("UNIFI_TIMEOUT"), 30.0),
            retry=RetryConfig(max_attempts=int(max_retries)),
            rate_limit=RateLimitConfig(requests_per_minute=int(per_minute)),
        )


@dataclass
class ServerConfig:
    """
    Settings for the protocol-facing server.

    Attributes:
        name: Server name shown to MCP clients
        version: Server version string
        health_check_interval: Seconds between background health checks (0 disables)
        enable_zbf_tools: Register zone-based firewall tools
        enable_legacy_firewall: Register legacy firewall tools
        enable_monitoring: Register monitoring tools
        enable_automation: Register scheduled-block tools
    """
    name: str = "UniFi Network MCP Server"
    version: str = "0.1.0"
    health_check_interval: float = 30.0
    enable_zbf_tools: bool = True
    enable_legacy_firewall: bool = True
    enable_monitoring: bool = True
    enable_automation: bool = True

    def __post_init__(self) -> None:
        if self.health_check_interval < 0:
            raise ConfigurationError(
                "health_check_interval must be >= 0", config_field="health_check_interval"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        env = os.environ if environ is None else environ
        return cls(
            health_check_interval=_parse_number(
                "UNIFI_HEALTH_CHECK_INTERVAL", env.get("UNIFI_HEALTH_CHECK_INTERVAL"), 30.0
            ),
            enable_zbf_tools=_parse_bool("UNIFI_ENABLE_ZBF_TOOLS", env.get("UNIFI_ENABLE_ZBF_TOOLS"), True),
            enable_legacy_firewall=_parse_bool(
                "UNIFI_ENABLE_LEGACY_FIREWALL", env.get("UNIFI_ENABLE_LEGACY_FIREWALL"), True
            ),
            enable_monitoring=_parse_bool("UNIFI_ENABLE_MONITORING", env.get("UNIFI_ENABLE_MONITORING"), True),
            enable_automation=_parse_bool("UNIFI_ENABLE_AUTOMATION", env.get("UNIFI_ENABLE_AUTOMATION"), True),
        )
