"""ELBv2 request shapes for CreateTargetGroup, ModifyTargetGroup and attribute updates."""

from __future__ import annotations

from typing import Any

import pulumi

from lbtargetgroup.loadbalancer import fields
from lbtargetgroup.loadbalancer.errors import TargetGroupValidationError
from lbtargetgroup.loadbalancer.tags import to_aws_tags

_HTTP_PROTOCOLS = (fields.PROTOCOL_HTTP, fields.PROTOCOL_HTTPS)


def _bool(value: bool) -> str:
    return "true" if value else "false"


def build_create_request(props: dict[str, Any], name: str) -> dict[str, Any]:
    """CreateTargetGroup parameters for normalized inputs."""
    target_type = props["target_type"]
    params: dict[str, Any] = {
        "Name": name,
        "TargetType": target_type,
    }

    if target_type != fields.TARGET_TYPE_LAMBDA:
        for key in ("port", "protocol", "vpc_id"):
            if props.get(key) is None:
                raise TargetGroupValidationError(key, f"{key} should be set when target type is {target_type}")
        params["Port"] = props["port"]
        params["Protocol"] = props["protocol"]
        params["VpcId"] = props["vpc_id"]

    health_check = props.get("health_check")
    if health_check:
        params["HealthCheckEnabled"] = health_check["enabled"]
        params["HealthCheckIntervalSeconds"] = health_check["interval"]
        params["HealthyThresholdCount"] = health_check["healthy_threshold"]
        params["UnhealthyThresholdCount"] = health_check["unhealthy_threshold"]
        if health_check.get("timeout"):
            params["HealthCheckTimeoutSeconds"] = health_check["timeout"]

        protocol = health_check["protocol"]
        if protocol != fields.PROTOCOL_TCP:
            if health_check.get("path"):
                params["HealthCheckPath"] = health_check["path"]
            if health_check.get("matcher"):
                params["Matcher"] = {"HttpCode": health_check["matcher"]}
        if target_type != fields.TARGET_TYPE_LAMBDA:
            params["HealthCheckPort"] = health_check["port"]
            params["HealthCheckProtocol"] = protocol

    if props.get("tags"):
        params["Tags"] = to_aws_tags(props["tags"])
    return params


def build_modify_request(arn: str, props: dict[str, Any]) -> dict[str, Any] | None:
    """ModifyTargetGroup parameters for the health check, or None without a health check block."""
    health_check = props.get("health_check")
    if not health_check:
        return None

    params: dict[str, Any] = {
        "TargetGroupArn": arn,
        "HealthCheckEnabled": health_check["enabled"],
        "HealthyThresholdCount": health_check["healthy_threshold"],
        "UnhealthyThresholdCount": health_check["unhealthy_threshold"],
    }
    if health_check.get("timeout"):
        params["HealthCheckTimeoutSeconds"] = health_check["timeout"]

    protocol = health_check["protocol"]
    if protocol != fields.PROTOCOL_TCP:
        if health_check.get("matcher") is not None:
            params["Matcher"] = {"HttpCode": health_check["matcher"]}
        if health_check.get("path") is not None:
            params["HealthCheckPath"] = health_check["path"]
        params["HealthCheckIntervalSeconds"] = health_check["interval"]
    if props["target_type"] != fields.TARGET_TYPE_LAMBDA:
        params["HealthCheckPort"] = health_check["port"]
        params["HealthCheckProtocol"] = protocol
    return params


def _stickiness_attributes(props: dict[str, Any]) -> list[dict[str, str]]:
    stickiness = props.get("stickiness")
    protocol = props.get("protocol")
    if stickiness is None:
        return []
    if not stickiness:
        return [{"Key": "stickiness.enabled", "Value": "false"}]

    enabled = stickiness["enabled"]
    sticky_type = stickiness["type"]
    if not enabled and sticky_type == "lb_cookie" and protocol not in _HTTP_PROTOCOLS:
        pulumi.log.warn(
            "invalid configuration, this will fail in a future version: "
            f"stickiness enabled {enabled}, protocol {protocol}, type {sticky_type}"
        )
        return []

    attrs = [
        {"Key": "stickiness.enabled", "Value": _bool(enabled)},
        {"Key": "stickiness.type", "Value": sticky_type},
    ]
    if protocol in _HTTP_PROTOCOLS:
        attrs.append({
            "Key": "stickiness.lb_cookie.duration_seconds",
            "Value": str(stickiness["cookie_duration"]),
        })
    return attrs


def build_attributes(props: dict[str, Any], changes: list[str]) -> list[dict[str, str]]:
    """Target group attributes to write for the changed keys, by target type."""
    changed = {c.split(".", 1)[0] for c in changes}
    attrs: list[dict[str, str]] = []
    target_type = props["target_type"]

    if target_type in (fields.TARGET_TYPE_INSTANCE, fields.TARGET_TYPE_IP):
        if "deregistration_delay" in changed:
            attrs.append({
                "Key": "deregistration_delay.timeout_seconds",
                "Value": str(props["deregistration_delay"]),
            })
        if "slow_start" in changed:
            attrs.append({"Key": "slow_start.duration_seconds", "Value": str(props["slow_start"])})
        if "proxy_protocol_v2" in changed:
            attrs.append({"Key": "proxy_protocol_v2.enabled", "Value": _bool(props["proxy_protocol_v2"])})
        if "stickiness" in changed:
            attrs += _stickiness_attributes(props)
        if "load_balancing_algorithm_type" in changed:
            attrs.append({
                "Key": "load_balancing.algorithm.type",
                "Value": props["load_balancing_algorithm_type"],
            })
    elif target_type == fields.TARGET_TYPE_LAMBDA:
        if "lambda_multi_value_headers_enabled" in changed:
            attrs.append({
                "Key": "lambda.multi_value_headers.enabled",
                "Value": _bool(props["lambda_multi_value_headers_enabled"]),
            })
    return attrs
