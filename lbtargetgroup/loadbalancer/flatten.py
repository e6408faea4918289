"""Flatten DescribeTargetGroups / DescribeTargetGroupAttributes output into resource fields."""

from __future__ import annotations

import copy
from typing import Any

from lbtargetgroup.loadbalancer import fields
from lbtargetgroup.loadbalancer.errors import TargetGroupApiError
from lbtargetgroup.loadbalancer.naming import arn_suffix

_TRUE = ("1", "t", "T", "TRUE", "true", "True")
_FALSE = ("0", "f", "F", "FALSE", "false", "False")


def _parse_bool(key: str, value: str) -> bool:
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise TargetGroupApiError(f"Error converting {key} to bool: {value}")


def _parse_int(key: str, value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise TargetGroupApiError(f"Error converting {key} to int: {value}") from e


def flatten_health_check(target_group: dict[str, Any]) -> dict[str, Any]:
    health_check = {
        "enabled": bool(target_group.get("HealthCheckEnabled", False)),
        "interval": target_group.get("HealthCheckIntervalSeconds", 0),
        "port": target_group.get("HealthCheckPort", ""),
        "protocol": target_group.get("HealthCheckProtocol", ""),
        "timeout": target_group.get("HealthCheckTimeoutSeconds", 0),
        "healthy_threshold": target_group.get("HealthyThresholdCount", 0),
        "unhealthy_threshold": target_group.get("UnhealthyThresholdCount", 0),
        "path": None,
        "matcher": None,
    }
    if target_group.get("HealthCheckPath") is not None:
        health_check["path"] = target_group["HealthCheckPath"]
    matcher = target_group.get("Matcher") or {}
    if matcher.get("HttpCode") is not None:
        health_check["matcher"] = matcher["HttpCode"]
    return health_check


def flatten_attributes(attributes: list[dict[str, str]], state: dict[str, Any]) -> None:
    """Copy known attributes into state; stickiness becomes {} when none is reported."""
    stickiness: dict[str, Any] = {}
    for attr in attributes:
        key = attr.get("Key", "")
        value = attr.get("Value", "")
        if key == "lambda.multi_value_headers.enabled":
            state["lambda_multi_value_headers_enabled"] = _parse_bool(key, value)
        elif key == "proxy_protocol_v2.enabled":
            state["proxy_protocol_v2"] = _parse_bool(key, value)
        elif key == "slow_start.duration_seconds":
            state["slow_start"] = _parse_int(key, value)
        elif key == "load_balancing.algorithm.type":
            state["load_balancing_algorithm_type"] = value
        elif key == "deregistration_delay.timeout_seconds":
            state["deregistration_delay"] = _parse_int(key, value)
        elif key == "stickiness.enabled":
            stickiness["enabled"] = _parse_bool(key, value)
        elif key == "stickiness.type":
            stickiness["type"] = value
        elif key == "stickiness.lb_cookie.duration_seconds":
            stickiness["cookie_duration"] = _parse_int(key, value)
    state["stickiness"] = stickiness


def flatten_target_group(
    target_group: dict[str, Any],
    attributes: list[dict[str, str]],
    tags: dict[str, str],
    base: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Observed state of one target group.

    Fields the API does not report for this target type (e.g. deregistration
    delay on a lambda group) keep their value from base.
    """
    base = base or {}
    state = {k: copy.deepcopy(base.get(k)) for k in fields.INPUT_FIELDS + fields.OUTPUT_FIELDS}

    arn = target_group.get("TargetGroupArn")
    state["arn"] = arn
    state["arn_suffix"] = arn_suffix(arn)
    state["name"] = target_group.get("TargetGroupName")
    state["target_type"] = target_group.get("TargetType")
    state["health_check"] = flatten_health_check(target_group)

    if state["target_type"] != fields.TARGET_TYPE_LAMBDA:
        state["vpc_id"] = target_group.get("VpcId")
        state["port"] = target_group.get("Port")
        state["protocol"] = target_group.get("Protocol")

    flatten_attributes(attributes, state)
    state["tags"] = dict(tags)
    return state
