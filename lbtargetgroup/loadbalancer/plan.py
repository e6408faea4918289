"""Plan a target group change: validate inputs, compute changed keys, detect replacement.

Inputs reaching these functions are normalized (fields.normalize_inputs);
olds are the previous outputs, i.e. the flattened observed state.
"""

from __future__ import annotations

from typing import Any

import pulumi

from lbtargetgroup.loadbalancer import fields
from lbtargetgroup.spec.validator import target_group_errors

# Previous state of a target group that does not exist yet.
ZERO_STATE: dict[str, Any] = {
    "deregistration_delay": 0,
    "slow_start": 0,
    "proxy_protocol_v2": False,
    "lambda_multi_value_headers_enabled": False,
    "tags": {},
}

_HEALTH_CHECK_KEYS = [
    "enabled",
    "interval",
    "path",
    "port",
    "protocol",
    "timeout",
    "healthy_threshold",
    "matcher",
    "unhealthy_threshold",
]
_STICKINESS_KEYS = ["enabled", "type", "cookie_duration"]
_LAMBDA_SUPPRESSED_HEALTH_CHECK_KEYS = ["port", "protocol"]
_REQUIRED_UNLESS_LAMBDA = ["port", "protocol", "vpc_id"]


def check_inputs(olds: dict[str, Any], news: dict[str, Any]) -> list[tuple[str, str]]:
    """All validation failures for normalized inputs, as (property, reason) pairs.

    olds is empty when the target group is about to be created.
    """
    known = fields.strip_unknowns(news)
    failures = target_group_errors(known)
    failures += fields.field_errors(known)

    if known.get("name") and known.get("name_prefix"):
        failures.append(("name", '"name": conflicts with name_prefix'))

    target_type = known.get("target_type")
    if target_type != fields.TARGET_TYPE_LAMBDA:
        for key in _REQUIRED_UNLESS_LAMBDA:
            if news.get(key) is None:
                failures.append((key, f"{key} should be set when target type is {target_type}"))

    failures += _health_check_failures(not olds, known)
    return failures


def _health_check_failures(creating: bool, props: dict[str, Any]) -> list[tuple[str, str]]:
    health_check = props.get("health_check")
    if not isinstance(health_check, dict):
        return []
    protocol = props.get("protocol") or ""
    name = props.get("name") or ""
    failures = []

    # Network Load Balancer health checks.
    if health_check.get("protocol") == fields.PROTOCOL_TCP:
        if health_check.get("matcher"):
            failures.append((
                "health_check.matcher",
                f"{name}: health_check.matcher is not supported for target_groups with TCP protocol",
            ))
        if health_check.get("path"):
            failures.append((
                "health_check.path",
                f"{name}: health_check.path is not supported for target_groups with TCP protocol",
            ))
        # timeout always has a value once the group exists, only refuse it up front.
        if health_check.get("timeout") and creating:
            failures.append((
                "health_check.timeout",
                f"{name}: health_check.timeout is not supported for target_groups with TCP protocol",
            ))
        healthy = health_check.get("healthy_threshold")
        unhealthy = health_check.get("unhealthy_threshold")
        if healthy != unhealthy:
            failures.append((
                "health_check.healthy_threshold",
                f"{name}: health_check.healthy_threshold {healthy} and "
                f"health_check.unhealthy_threshold {unhealthy} must be the same "
                "for target_groups with TCP protocol",
            ))

    if fields.PROTOCOL_HTTP in protocol and str(health_check.get("protocol", "")).lower() == "tcp":
        failures.append(("health_check.protocol", "HTTP Target Groups cannot use TCP health checks"))
    return failures


def _stickiness_changes(
    old: dict[str, Any] | None,
    new: dict[str, Any] | None,
    protocol: str | None,
) -> list[str]:
    if new is None:
        return []
    old = old or {}
    if not new:
        # Explicitly empty block: stickiness off.
        return ["stickiness.enabled"] if old.get("enabled") else []

    network = protocol in fields.NETWORK_PROTOCOLS
    changes = []
    for key in _STICKINESS_KEYS:
        if network and key == "cookie_duration":
            continue
        if network and key == "type" and new.get("type") == "lb_cookie" and not new.get("enabled"):
            if old.get(key) != new.get(key):
                pulumi.log.warn(
                    "invalid configuration, this will fail in a future version: "
                    f"stickiness enabled {new.get('enabled')}, protocol {protocol}, type {new.get('type')}"
                )
            continue
        if old.get(key) != new.get(key):
            changes.append(f"stickiness.{key}")
    return changes


def _health_check_changes(
    old: dict[str, Any] | None,
    new: dict[str, Any] | None,
    target_type: str | None,
) -> list[str]:
    if new is None:
        return []
    old = old or {}
    changes = []
    for key in _HEALTH_CHECK_KEYS:
        if key in fields.COMPUTED_HEALTH_CHECK_FIELDS and new.get(key) is None:
            continue
        if target_type == fields.TARGET_TYPE_LAMBDA and key in _LAMBDA_SUPPRESSED_HEALTH_CHECK_KEYS:
            continue
        if old.get(key) != new.get(key):
            changes.append(f"health_check.{key}")
    return changes


def changed_keys(olds: dict[str, Any], news: dict[str, Any]) -> list[str]:
    """Keys whose desired value differs from the previous state.

    Nested changes are reported as "health_check.<key>" / "stickiness.<key>".
    """
    changes = []
    for key in fields.INPUT_FIELDS:
        if key in ("stickiness", "health_check"):
            continue
        new = news.get(key)
        if key in fields.COMPUTED_FIELDS and new is None:
            continue
        old = olds.get(key)
        if key == "tags":
            if fields.is_unknown(new):
                changes.append(key)
                continue
            old, new = old or {}, new or {}
        if old != new:
            changes.append(key)
    changes += _stickiness_changes(olds.get("stickiness"), news.get("stickiness"), news.get("protocol"))
    changes += _health_check_changes(olds.get("health_check"), news.get("health_check"), news.get("target_type"))
    return changes


def replacement_keys(olds: dict[str, Any], news: dict[str, Any], changes: list[str]) -> list[str]:
    """Top-level properties whose change forces a new target group."""
    changed = {c.split(".", 1)[0] for c in changes}
    replaces = [key for key in fields.IMMUTABLE_FIELDS if key in changed]

    # Network Load Balancers cannot modify health check timing in place.
    if olds and news.get("protocol") == fields.PROTOCOL_TCP:
        immutable = ("health_check.interval", "health_check.protocol", "health_check.timeout")
        if any(c in changes for c in immutable):
            replaces.append("health_check")
    return replaces


def resolve(olds: dict[str, Any], news: dict[str, Any]) -> dict[str, Any]:
    """Desired state with unset computed fields taken from the previous state."""
    resolved = dict(news)
    for key in fields.COMPUTED_FIELDS:
        if resolved.get(key) is None:
            resolved[key] = olds.get(key)
    health_check = news.get("health_check")
    if isinstance(health_check, dict):
        old_health_check = olds.get("health_check") or {}
        resolved["health_check"] = {
            k: old_health_check.get(k) if k in fields.COMPUTED_HEALTH_CHECK_FIELDS and v is None else v
            for k, v in health_check.items()
        }
    return resolved
