"""ALB/NLB target group (Pulumi dynamic resource wrapping boto3 elbv2)."""

from __future__ import annotations

from typing import Any

import pulumi
import pulumi.dynamic
from botocore.exceptions import ClientError
from tenacity import RetryError, Retrying, retry_if_exception, stop_after_delay, wait_fixed

from lbtargetgroup.config import ProviderSettings, TargetGroupConfig
from lbtargetgroup.loadbalancer import fields, plan
from lbtargetgroup.loadbalancer.errors import TargetGroupApiError, is_aws_error
from lbtargetgroup.loadbalancer.flatten import flatten_target_group
from lbtargetgroup.loadbalancer.naming import resolve_name
from lbtargetgroup.loadbalancer.requests import build_attributes, build_create_request, build_modify_request
from lbtargetgroup.loadbalancer.tags import list_tags, update_tags

IN_USE_CODE = "ResourceInUse"
IN_USE_MESSAGE = "is currently in use by a listener or a rule"
NOT_FOUND_CODE = "TargetGroupNotFoundException"


def _in_use(err: BaseException) -> bool:
    return is_aws_error(err, IN_USE_CODE, IN_USE_MESSAGE)


class _TargetGroupProvider(pulumi.dynamic.ResourceProvider):
    """Dynamic provider for ELBv2 target groups using boto3."""

    def __init__(self, settings: ProviderSettings) -> None:
        super().__init__()
        self._settings = settings

    def _client(self):
        import boto3
        return boto3.client("elbv2", region_name=self._settings.region)

    def check(self, old_props: dict[str, Any], new_props: dict[str, Any]) -> pulumi.dynamic.CheckResult:
        inputs = fields.normalize_inputs(new_props)
        failures = [
            pulumi.dynamic.CheckFailure(prop, reason)
            for prop, reason in plan.check_inputs(old_props or {}, inputs)
        ]
        return pulumi.dynamic.CheckResult(inputs, failures)

    def diff(self, id_: str, old_props: dict[str, Any], new_props: dict[str, Any]) -> pulumi.dynamic.DiffResult:
        news = fields.normalize_inputs(new_props)
        changes = plan.changed_keys(old_props, news)
        replaces = plan.replacement_keys(old_props, news, changes)
        return pulumi.dynamic.DiffResult(
            changes=bool(changes),
            replaces=replaces,
            # A fixed name cannot exist twice in a region.
            delete_before_replace=bool(replaces) and bool(news.get("name")),
        )

    def create(self, props: dict[str, Any]) -> pulumi.dynamic.CreateResult:
        client = self._client()
        props = fields.normalize_inputs(props)
        name = resolve_name(props)
        params = build_create_request(props, name)

        pulumi.log.info(f"Creating LB Target Group {name}")
        try:
            resp = client.create_target_group(**params)
        except ClientError as e:
            raise TargetGroupApiError(f"Error creating LB Target Group: {e}") from e

        groups = resp.get("TargetGroups") or []
        if not groups:
            raise TargetGroupApiError("Error creating LB Target Group: no groups returned in response")
        arn = groups[0]["TargetGroupArn"]

        changes = plan.changed_keys(plan.ZERO_STATE, props)
        self._modify_attributes(client, arn, build_attributes(props, changes))

        outs = self._observe(client, arn, props)
        return pulumi.dynamic.CreateResult(id_=arn, outs=outs)

    def read(self, id_: str, props: dict[str, Any]) -> pulumi.dynamic.ReadResult:
        client = self._client()
        try:
            outs = self._observe(client, id_, props or {})
        except TargetGroupApiError as e:
            if is_aws_error(e.__cause__, NOT_FOUND_CODE):
                pulumi.log.debug(f"DescribeTargetGroups - removing {id_} from state")
                return pulumi.dynamic.ReadResult(id_="", outs={})
            raise
        return pulumi.dynamic.ReadResult(id_=id_, outs=outs)

    def update(
        self, id_: str, old_props: dict[str, Any], new_props: dict[str, Any]
    ) -> pulumi.dynamic.UpdateResult:
        client = self._client()
        news = fields.normalize_inputs(new_props)
        changes = plan.changed_keys(old_props, news)
        desired = plan.resolve(old_props, news)

        if "tags" in changes:
            try:
                update_tags(client, id_, old_props.get("tags"), desired.get("tags"))
            except ClientError as e:
                raise TargetGroupApiError(f"error updating LB Target Group ({id_}) tags: {e}") from e

        if any(c.startswith("health_check.") for c in changes):
            params = build_modify_request(id_, desired)
            if params is not None:
                try:
                    client.modify_target_group(**params)
                except ClientError as e:
                    raise TargetGroupApiError(f"Error modifying Target Group: {e}") from e

        self._modify_attributes(client, id_, build_attributes(desired, changes))

        outs = self._observe(client, id_, {**old_props, **news})
        return pulumi.dynamic.UpdateResult(outs=outs)

    def delete(self, id_: str, props: dict[str, Any]) -> None:
        client = self._client()
        pulumi.log.debug(f"Deleting Target Group ({id_})")
        retrying = Retrying(
            retry=retry_if_exception(_in_use),
            stop=stop_after_delay(self._settings.delete_timeout),
            wait=wait_fixed(self._settings.delete_retry_interval),
        )
        try:
            try:
                for attempt in retrying:
                    with attempt:
                        client.delete_target_group(TargetGroupArn=id_)
            except RetryError:
                # Timed out while still in use; one last attempt reports the real error.
                client.delete_target_group(TargetGroupArn=id_)
        except ClientError as e:
            if is_aws_error(e, NOT_FOUND_CODE):
                pulumi.log.info(f"Target Group {id_} does not exist.")
                return
            raise TargetGroupApiError(f"Error deleting Target Group: {e}") from e

    def _modify_attributes(self, client, arn: str, attrs: list[dict[str, str]]) -> None:
        if not attrs:
            return
        try:
            client.modify_target_group_attributes(TargetGroupArn=arn, Attributes=attrs)
        except ClientError as e:
            raise TargetGroupApiError(f"Error modifying Target Group Attributes: {e}") from e

    def _observe(self, client, arn: str, base: dict[str, Any]) -> dict[str, Any]:
        """Describe the target group, its attributes and tags; return flattened state."""
        try:
            resp = client.describe_target_groups(TargetGroupArns=[arn])
        except ClientError as e:
            raise TargetGroupApiError(f"Error retrieving Target Group: {e}") from e
        groups = resp.get("TargetGroups") or []
        if len(groups) != 1:
            raise TargetGroupApiError(f'Error retrieving Target Group "{arn}"')

        try:
            attr_resp = client.describe_target_group_attributes(TargetGroupArn=arn)
        except ClientError as e:
            raise TargetGroupApiError(f"Error retrieving Target Group Attributes: {e}") from e

        try:
            tags = list_tags(
                client,
                arn,
                self._settings.ignore_tag_keys,
                self._settings.ignore_tag_key_prefixes,
            )
        except ClientError as e:
            raise TargetGroupApiError(f"error listing tags for LB Target Group ({arn}): {e}") from e

        return flatten_target_group(groups[0], attr_resp.get("Attributes") or [], tags, base)


class TargetGroup(pulumi.dynamic.Resource):
    """ELBv2 target group for an Application or Network Load Balancer."""

    arn: pulumi.Output[str]
    arn_suffix: pulumi.Output[str]
    name: pulumi.Output[str]
    port: pulumi.Output[int]
    protocol: pulumi.Output[str]
    vpc_id: pulumi.Output[str]
    target_type: pulumi.Output[str]
    deregistration_delay: pulumi.Output[int]
    slow_start: pulumi.Output[int]
    proxy_protocol_v2: pulumi.Output[bool]
    lambda_multi_value_headers_enabled: pulumi.Output[bool]
    load_balancing_algorithm_type: pulumi.Output[str]
    stickiness: pulumi.Output[dict]
    health_check: pulumi.Output[dict]
    tags: pulumi.Output[dict]

    def __init__(
        self,
        resource_name: str,
        settings: ProviderSettings,
        name: pulumi.Input[str] | None = None,
        name_prefix: str | None = None,
        port: pulumi.Input[int] | None = None,
        protocol: pulumi.Input[str] | None = None,
        vpc_id: pulumi.Input[str] | None = None,
        target_type: str | None = None,
        deregistration_delay: int | None = None,
        slow_start: int | None = None,
        proxy_protocol_v2: bool | None = None,
        lambda_multi_value_headers_enabled: bool | None = None,
        load_balancing_algorithm_type: str | None = None,
        stickiness: dict[str, Any] | None = None,
        health_check: dict[str, Any] | None = None,
        tags: pulumi.Input[dict[str, str]] | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ) -> None:
        super().__init__(
            _TargetGroupProvider(settings),
            resource_name,
            {
                "name": name,
                "name_prefix": name_prefix,
                "port": port,
                "protocol": protocol,
                "vpc_id": vpc_id,
                "target_type": target_type,
                "deregistration_delay": deregistration_delay,
                "slow_start": slow_start,
                "proxy_protocol_v2": proxy_protocol_v2,
                "lambda_multi_value_headers_enabled": lambda_multi_value_headers_enabled,
                "load_balancing_algorithm_type": load_balancing_algorithm_type,
                "stickiness": stickiness,
                "health_check": health_check,
                "tags": tags or {},
                "arn": None,
                "arn_suffix": None,
            },
            opts,
        )


def create_target_group(
    config: TargetGroupConfig,
    settings: ProviderSettings,
    vpc_id: pulumi.Input[str] | None = None,
    opts: pulumi.ResourceOptions | None = None,
) -> TargetGroup:
    """Create a target group from its declaration; vpc_id fills in a missing config.vpc_id."""
    props = config.to_props()
    if props["vpc_id"] is None and config.target_type != fields.TARGET_TYPE_LAMBDA:
        props["vpc_id"] = vpc_id
    return TargetGroup(
        f"{config.key}_tg",
        settings=settings,
        opts=opts,
        **props,
    )
