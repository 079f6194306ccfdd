"""
UniFi controller endpoint paths.

``{site}`` is substituted by UniFiClient with the configured site id;
``{id}`` is substituted by the handlers.
"""

# Devices
DEVICES = "/proxy/network/api/s/{site}/stat/device"
DEVICE_DETAILS = "/proxy/network/api/s/{site}/stat/device/{id}"
DEVICE_STATS = "/proxy/network/api/s/{site}/stat/device-stats/{id}"
DEVICE_RESTART = "/proxy/network/api/s/{site}/cmd/devmgr/restart"
DEVICE_ADOPT = "/proxy/network/api/s/{site}/cmd/devmgr/adopt"
DEVICE_UPGRADE = "/proxy/network/api/s/{site}/cmd/devmgr/upgrade"

# Clients
CLIENTS = "/proxy/network/api/s/{site}/stat/sta"
CLIENT_DETAILS = "/proxy/network/api/s/{site}/stat/user/{id}"
CLIENT_STATS = "/proxy/network/api/s/{site}/stat/user-stats/{id}"
CLIENT_BLOCK = "/proxy/network/api/s/{site}/cmd/stamgr/block-sta"
CLIENT_UNBLOCK = "/proxy/network/api/s/{site}/cmd/stamgr/unblock-sta"
CLIENT_KICK = "/proxy/network/api/s/{site}/cmd/stamgr/kick-sta"

# Legacy firewall (deprecated from 9.0)
FIREWALL_RULES = "/proxy/network/api/s/{site}/rest/firewallrule"
FIREWALL_RULE_DETAILS = "/proxy/network/api/s/{site}/rest/firewallrule/{id}"

# Zone-based firewall (9.0+)
FIREWALL_ZONES = "/proxy/network/api/s/{site}/rest/firewallzone"
FIREWALL_ZONE_POLICIES = "/proxy/network/api/s/{site}/rest/firewallzonepolicy"

# Networks
NETWORKS = "/proxy/network/api/s/{site}/rest/networkconf"

# Monitoring
HEALTH = "/proxy/network/api/s/{site}/stat/health"
EVENTS = "/proxy/network/api/s/{site}/stat/event"


def with_id(path: str, identifier: str) -> str:
    return path.replace("{id}", identifier)
