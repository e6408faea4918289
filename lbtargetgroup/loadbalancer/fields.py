"""Target group field catalogue: enums, defaults, normalization and custom validators.

Range, enum and pattern checks live in the JSON Schema (lbtargetgroup/schema/);
the validators here cover rules whose messages the schema cannot phrase well.
"""

from __future__ import annotations

import copy
from typing import Any

from pulumi.runtime.rpc import UNKNOWN

PROTOCOL_HTTP = "HTTP"
PROTOCOL_HTTPS = "HTTPS"
PROTOCOL_TCP = "TCP"
PROTOCOL_TLS = "TLS"
PROTOCOL_UDP = "UDP"
PROTOCOL_TCP_UDP = "TCP_UDP"

PROTOCOLS = [PROTOCOL_HTTP, PROTOCOL_HTTPS, PROTOCOL_TCP, PROTOCOL_TLS, PROTOCOL_UDP, PROTOCOL_TCP_UDP]
HEALTH_CHECK_PROTOCOLS = [PROTOCOL_HTTP, PROTOCOL_HTTPS, PROTOCOL_TCP]
# Network Load Balancer protocols: no cookies, no custom health check timing.
NETWORK_PROTOCOLS = [PROTOCOL_TCP, PROTOCOL_UDP, PROTOCOL_TCP_UDP, PROTOCOL_TLS]

TARGET_TYPE_INSTANCE = "instance"
TARGET_TYPE_IP = "ip"
TARGET_TYPE_LAMBDA = "lambda"
TARGET_TYPES = [TARGET_TYPE_INSTANCE, TARGET_TYPE_IP, TARGET_TYPE_LAMBDA]

LOAD_BALANCING_ALGORITHMS = ["round_robin", "least_outstanding_requests"]
STICKINESS_TYPES = ["lb_cookie", "source_ip"]

TRAFFIC_PORT = "traffic-port"

DEFAULTS: dict[str, Any] = {
    "deregistration_delay": 300,
    "slow_start": 0,
    "proxy_protocol_v2": False,
    "lambda_multi_value_headers_enabled": False,
    "target_type": TARGET_TYPE_INSTANCE,
}

STICKINESS_DEFAULTS: dict[str, Any] = {
    "enabled": True,
    "cookie_duration": 86400,
}

HEALTH_CHECK_DEFAULTS: dict[str, Any] = {
    "enabled": True,
    "interval": 30,
    "port": TRAFFIC_PORT,
    "protocol": PROTOCOL_HTTP,
    "healthy_threshold": 3,
    "unhealthy_threshold": 3,
}

# Changing any of these replaces the target group.
IMMUTABLE_FIELDS = ["name", "name_prefix", "port", "protocol", "vpc_id", "target_type"]

# Optional fields the API fills in when unset; an unset input never diffs.
COMPUTED_FIELDS = ["name", "load_balancing_algorithm_type", "stickiness", "health_check"]
COMPUTED_HEALTH_CHECK_FIELDS = ["path", "timeout", "matcher"]

INPUT_FIELDS = [
    "name",
    "name_prefix",
    "port",
    "protocol",
    "vpc_id",
    "target_type",
    "deregistration_delay",
    "slow_start",
    "proxy_protocol_v2",
    "lambda_multi_value_headers_enabled",
    "load_balancing_algorithm_type",
    "stickiness",
    "health_check",
    "tags",
]

OUTPUT_FIELDS = ["arn", "arn_suffix"]


def is_unknown(value: Any) -> bool:
    """True for a value the engine has not resolved yet (preview of a dependent output)."""
    return isinstance(value, str) and value == UNKNOWN


def strip_unknowns(value: Any) -> Any:
    """Drop unresolved values so validators only see what is known."""
    if isinstance(value, dict):
        return {k: strip_unknowns(v) for k, v in value.items() if not is_unknown(v)}
    return value


def _upper(value: Any) -> Any:
    if isinstance(value, str) and not is_unknown(value):
        return value.upper()
    return value


def normalize_inputs(props: dict[str, Any]) -> dict[str, Any]:
    """Apply defaults and fold protocol case. Returns a new dict; props is untouched."""
    out = {k: copy.deepcopy(props.get(k)) for k in INPUT_FIELDS}
    for key, default in DEFAULTS.items():
        if out.get(key) is None:
            out[key] = default
    out["protocol"] = _upper(out.get("protocol"))
    if not is_unknown(out.get("tags")):
        out["tags"] = dict(out.get("tags") or {})

    stickiness = out.get("stickiness")
    if isinstance(stickiness, dict) and stickiness:
        for key, default in STICKINESS_DEFAULTS.items():
            if stickiness.get(key) is None:
                stickiness[key] = default

    health_check = out.get("health_check")
    if isinstance(health_check, dict):
        for key, default in HEALTH_CHECK_DEFAULTS.items():
            if health_check.get(key) is None:
                health_check[key] = default
        for key in COMPUTED_HEALTH_CHECK_FIELDS:
            health_check.setdefault(key, None)
        health_check["protocol"] = _upper(health_check["protocol"])
        if isinstance(health_check["port"], int):
            health_check["port"] = str(health_check["port"])
    return out


def validate_slow_start(value: int, key: str = "slow_start") -> list[str]:
    """Slow start is 0 (disabled) or 30-900 seconds."""
    if value != 0 and not 30 <= value <= 900:
        return [
            f'"{key}" contains an invalid Slow Start Duration "{value}". '
            "Valid intervals are 30-900 or 0 to disable."
        ]
    return []


def validate_health_check_path(value: str, key: str = "health_check.path") -> list[str]:
    errors = []
    if len(value) > 1024:
        errors.append(f'"{key}" cannot be longer than 1024 characters: "{value}"')
    if value and not value.startswith("/"):
        errors.append(f"\"{key}\" must begin with a '/' character: \"{value}\"")
    return errors


def validate_health_check_port(value: str, key: str = "health_check.port") -> list[str]:
    """Health check port is "traffic-port" or a port number."""
    if value == TRAFFIC_PORT:
        return []
    message = f'"{key}" must be a valid port number (1-65536) or "{TRAFFIC_PORT}"'
    try:
        port = int(value)
    except (TypeError, ValueError):
        return [message]
    if port < 1 or port > 65536:
        return [message]
    return []


def field_errors(props: dict[str, Any]) -> list[tuple[str, str]]:
    """Run the custom single-field validators over normalized inputs."""
    errors: list[tuple[str, str]] = []
    slow_start = props.get("slow_start")
    if isinstance(slow_start, int) and not isinstance(slow_start, bool):
        errors += [("slow_start", e) for e in validate_slow_start(slow_start)]
    health_check = props.get("health_check")
    health_check = strip_unknowns(health_check) if isinstance(health_check, dict) else {}
    if isinstance(health_check.get("path"), str):
        errors += [("health_check.path", e) for e in validate_health_check_path(health_check["path"])]
    if health_check.get("port") is not None:
        errors += [("health_check.port", e) for e in validate_health_check_port(health_check["port"])]
    return errors
