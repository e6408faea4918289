"""Tests for the target group dynamic provider (boto3 elbv2 mocked)."""

from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError
from pulumi.runtime.rpc import UNKNOWN
import pytest

from lbtargetgroup.config import ProviderSettings, TargetGroupConfig
from lbtargetgroup.loadbalancer.errors import TargetGroupApiError
from lbtargetgroup.loadbalancer.target_group import _TargetGroupProvider, create_target_group

ARN = "arn:aws:elasticloadbalancing:us-west-2:123456789012:targetgroup/web/73e2d6bc24d8a067"


def _client_error(code: str, message: str = "", operation: str = "DescribeTargetGroups") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def _settings(**overrides) -> ProviderSettings:
    settings = ProviderSettings(region="us-west-2", delete_timeout=0, delete_retry_interval=0)
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


def _described(**overrides) -> dict:
    tg = {
        "TargetGroupArn": ARN,
        "TargetGroupName": "web",
        "Protocol": "HTTP",
        "Port": 80,
        "VpcId": "vpc-1",
        "TargetType": "instance",
        "HealthCheckEnabled": True,
        "HealthCheckIntervalSeconds": 30,
        "HealthCheckPort": "traffic-port",
        "HealthCheckProtocol": "HTTP",
        "HealthCheckTimeoutSeconds": 5,
        "HealthyThresholdCount": 3,
        "UnhealthyThresholdCount": 3,
        "HealthCheckPath": "/",
        "Matcher": {"HttpCode": "200"},
    }
    tg.update(overrides)
    return tg


def _mock_client(**described) -> MagicMock:
    client = MagicMock()
    client.create_target_group.return_value = {"TargetGroups": [{"TargetGroupArn": ARN}]}
    client.describe_target_groups.return_value = {"TargetGroups": [_described(**described)]}
    client.describe_target_group_attributes.return_value = {
        "Attributes": [
            {"Key": "deregistration_delay.timeout_seconds", "Value": "300"},
            {"Key": "slow_start.duration_seconds", "Value": "0"},
            {"Key": "proxy_protocol_v2.enabled", "Value": "false"},
            {"Key": "load_balancing.algorithm.type", "Value": "round_robin"},
            {"Key": "stickiness.enabled", "Value": "false"},
            {"Key": "stickiness.type", "Value": "lb_cookie"},
            {"Key": "stickiness.lb_cookie.duration_seconds", "Value": "86400"},
        ]
    }
    client.describe_tags.return_value = {
        "TagDescriptions": [{"ResourceArn": ARN, "Tags": [{"Key": "env", "Value": "dev"}]}]
    }
    return client


def _provider(client: MagicMock, **settings) -> _TargetGroupProvider:
    provider = _TargetGroupProvider(_settings(**settings))
    provider._client = MagicMock(return_value=client)
    return provider


def _http_props(**overrides) -> dict:
    props = {"name": "web", "port": 80, "protocol": "http", "vpc_id": "vpc-1", "tags": {"env": "dev"}}
    props.update(overrides)
    return props


def test_check_normalizes_and_reports() -> None:
    """check returns normalized inputs and per-property failures."""
    provider = _provider(MagicMock())
    result = provider.check({}, _http_props(name_prefix="we", slow_start=5))
    assert result.inputs["protocol"] == "HTTP"
    props = {f.property for f in result.failures}
    assert props == {"name", "slow_start"}


def test_diff_no_change() -> None:
    """Observed state matching the inputs is no change."""
    client = _mock_client()
    provider = _provider(client)
    outs = provider.create(_http_props()).outs
    result = provider.diff(ARN, outs, _http_props())
    assert result.changes is False
    assert result.replaces == []


def test_diff_replace_with_name() -> None:
    """Replacing a named group deletes the old one first."""
    client = _mock_client()
    provider = _provider(client)
    outs = provider.create(_http_props()).outs
    result = provider.diff(ARN, outs, _http_props(port=8080))
    assert result.changes is True
    assert result.replaces == ["port"]
    assert result.delete_before_replace is True


def test_diff_replace_generated_name() -> None:
    """Groups with generated names are created before the old one is deleted."""
    client = _mock_client()
    provider = _provider(client)
    outs = provider.create(_http_props(name=None)).outs
    result = provider.diff(ARN, outs, _http_props(name=None, vpc_id="vpc-2"))
    assert result.replaces == ["vpc_id"]
    assert result.delete_before_replace is False


@patch("lbtargetgroup.loadbalancer.target_group.pulumi.log")
def test_create(mock_log: MagicMock) -> None:
    """create calls CreateTargetGroup, writes attributes and returns observed state."""
    client = _mock_client()
    provider = _provider(client)
    result = provider.create(_http_props(deregistration_delay=30))

    assert result.id == ARN
    params = client.create_target_group.call_args[1]
    assert params["Name"] == "web"
    assert params["Protocol"] == "HTTP"
    assert params["Tags"] == [{"Key": "env", "Value": "dev"}]
    client.modify_target_group_attributes.assert_called_once_with(
        TargetGroupArn=ARN,
        Attributes=[{"Key": "deregistration_delay.timeout_seconds", "Value": "30"}],
    )
    assert result.outs["arn"] == ARN
    assert result.outs["arn_suffix"] == "targetgroup/web/73e2d6bc24d8a067"
    assert result.outs["tags"] == {"env": "dev"}
    mock_log.info.assert_called_once()


def test_create_generated_name() -> None:
    """Without name or name_prefix a tf- name is generated."""
    client = _mock_client()
    provider = _provider(client)
    provider.create(_http_props(name=None))
    assert client.create_target_group.call_args[1]["Name"].startswith("tf-")


def test_create_error() -> None:
    """CreateTargetGroup failures are wrapped with the operation name."""
    client = _mock_client()
    client.create_target_group.side_effect = _client_error("DuplicateTargetGroupName", "exists", "CreateTargetGroup")
    provider = _provider(client)
    with pytest.raises(TargetGroupApiError, match="Error creating LB Target Group"):
        provider.create(_http_props())


def test_create_empty_response() -> None:
    """An empty CreateTargetGroup response is an error."""
    client = _mock_client()
    client.create_target_group.return_value = {"TargetGroups": []}
    provider = _provider(client)
    with pytest.raises(TargetGroupApiError, match="no groups returned"):
        provider.create(_http_props())


def test_read() -> None:
    """read refreshes the state from AWS."""
    client = _mock_client(Port=81)
    provider = _provider(client)
    result = provider.read(ARN, {"name_prefix": None})
    assert result.id == ARN
    assert result.outs["port"] == 81


def test_read_not_found() -> None:
    """A target group deleted outside the engine is dropped from state."""
    client = _mock_client()
    client.describe_target_groups.side_effect = _client_error("TargetGroupNotFoundException")
    provider = _provider(client)
    result = provider.read(ARN, {})
    assert result.id == ""
    assert result.outs == {}


def test_read_other_error() -> None:
    """Other describe errors propagate."""
    client = _mock_client()
    client.describe_target_groups.side_effect = _client_error("AccessDenied")
    provider = _provider(client)
    with pytest.raises(TargetGroupApiError, match="Error retrieving Target Group"):
        provider.read(ARN, {})


def test_read_unexpected_count() -> None:
    """Anything but exactly one described group is an error."""
    client = _mock_client()
    client.describe_target_groups.return_value = {"TargetGroups": []}
    provider = _provider(client)
    with pytest.raises(TargetGroupApiError, match=f'Error retrieving Target Group "{ARN}"'):
        provider.read(ARN, {})


def test_update_tags_and_attributes() -> None:
    """Tag and attribute changes update in place without touching the health check."""
    client = _mock_client()
    provider = _provider(client)
    olds = provider.create(_http_props()).outs
    client.reset_mock()

    provider.update(ARN, olds, _http_props(tags={"env": "prod"}, slow_start=60))

    client.add_tags.assert_called_once_with(ResourceArns=[ARN], Tags=[{"Key": "env", "Value": "prod"}])
    client.remove_tags.assert_not_called()
    client.modify_target_group.assert_not_called()
    client.modify_target_group_attributes.assert_called_once_with(
        TargetGroupArn=ARN,
        Attributes=[{"Key": "slow_start.duration_seconds", "Value": "60"}],
    )


def test_update_health_check() -> None:
    """Health check changes call ModifyTargetGroup with observed computed values."""
    client = _mock_client()
    provider = _provider(client)
    olds = provider.create(_http_props()).outs
    client.reset_mock()

    provider.update(ARN, olds, _http_props(health_check={"interval": 15}))

    params = client.modify_target_group.call_args[1]
    assert params["TargetGroupArn"] == ARN
    assert params["HealthCheckIntervalSeconds"] == 15
    assert params["HealthCheckTimeoutSeconds"] == 5
    assert params["HealthCheckPath"] == "/"
    assert params["Matcher"] == {"HttpCode": "200"}
    client.modify_target_group_attributes.assert_not_called()


def test_update_modify_error() -> None:
    """ModifyTargetGroup failures are wrapped."""
    client = _mock_client()
    provider = _provider(client)
    olds = provider.create(_http_props()).outs
    client.modify_target_group.side_effect = _client_error("InvalidConfigurationRequest", "", "ModifyTargetGroup")
    with pytest.raises(TargetGroupApiError, match="Error modifying Target Group"):
        provider.update(ARN, olds, _http_props(health_check={"interval": 15}))


def test_delete() -> None:
    """delete calls DeleteTargetGroup once when the group is free."""
    client = _mock_client()
    provider = _provider(client)
    provider.delete(ARN, {})
    client.delete_target_group.assert_called_once_with(TargetGroupArn=ARN)


def test_delete_retries_while_in_use() -> None:
    """ResourceInUse from a listener is retried until the group is free."""
    client = _mock_client()
    in_use = _client_error(
        "ResourceInUse",
        f"Target group '{ARN}' is currently in use by a listener or a rule",
        "DeleteTargetGroup",
    )
    client.delete_target_group.side_effect = [in_use, in_use, None]
    provider = _provider(client, delete_timeout=30)
    provider.delete(ARN, {})
    assert client.delete_target_group.call_count == 3


def test_delete_in_use_timeout() -> None:
    """Still in use after the timeout: one final attempt, then the error surfaces."""
    client = _mock_client()
    client.delete_target_group.side_effect = _client_error(
        "ResourceInUse",
        "is currently in use by a listener or a rule",
        "DeleteTargetGroup",
    )
    provider = _provider(client)
    with pytest.raises(TargetGroupApiError, match="Error deleting Target Group"):
        provider.delete(ARN, {})
    assert client.delete_target_group.call_count == 2


def test_delete_other_in_use_message_not_retried() -> None:
    """ResourceInUse for another reason fails immediately."""
    client = _mock_client()
    client.delete_target_group.side_effect = _client_error("ResourceInUse", "something else", "DeleteTargetGroup")
    provider = _provider(client, delete_timeout=30)
    with pytest.raises(TargetGroupApiError, match="Error deleting Target Group"):
        provider.delete(ARN, {})
    client.delete_target_group.assert_called_once()


@patch("lbtargetgroup.loadbalancer.target_group.pulumi.log")
def test_delete_not_found(mock_log: MagicMock) -> None:
    """Deleting a group that is already gone succeeds."""
    client = _mock_client()
    client.delete_target_group.side_effect = _client_error("TargetGroupNotFoundException", "", "DeleteTargetGroup")
    provider = _provider(client)
    provider.delete(ARN, {})
    mock_log.info.assert_called_once()


@patch("lbtargetgroup.loadbalancer.target_group.TargetGroup")
def test_create_target_group_fills_vpc(mock_tg: MagicMock) -> None:
    """Declarations without vpc_id use the looked up VPC."""
    config = TargetGroupConfig(key="app", port=80, protocol="HTTP")
    settings = _settings()
    create_target_group(config, settings, vpc_id="vpc-9")
    args, kwargs = mock_tg.call_args
    assert args == ("app_tg",)
    assert kwargs["vpc_id"] == "vpc-9"
    assert kwargs["settings"] is settings


@patch("lbtargetgroup.loadbalancer.target_group.TargetGroup")
def test_create_target_group_lambda_no_vpc(mock_tg: MagicMock) -> None:
    """Lambda declarations never get a VPC."""
    config = TargetGroupConfig(key="fn", target_type="lambda")
    create_target_group(config, _settings(), vpc_id="vpc-9")
    assert mock_tg.call_args[1]["vpc_id"] is None


def test_check_unknown_tags() -> None:
    """Tags that are still an unresolved output pass check untouched."""
    provider = _provider(MagicMock())
    result = provider.check({}, _http_props(tags=UNKNOWN))
    assert result.inputs["tags"] == UNKNOWN
    assert result.failures == []


def test_diff_unknown_tags() -> None:
    """Unresolved tags show up as an in-place change."""
    client = _mock_client()
    provider = _provider(client)
    outs = provider.create(_http_props()).outs
    result = provider.diff(ARN, outs, _http_props(tags=UNKNOWN))
    assert result.changes is True
    assert result.replaces == []


def test_read_import_by_arn() -> None:
    """Reading with no previous props yields the full observed state."""
    client = _mock_client()
    provider = _provider(client)
    result = provider.read(ARN, {})
    outs = result.outs
    assert result.id == ARN
    assert outs["arn"] == ARN
    assert outs["arn_suffix"] == "targetgroup/web/73e2d6bc24d8a067"
    assert outs["name"] == "web"
    assert outs["name_prefix"] is None
    assert outs["port"] == 80
    assert outs["protocol"] == "HTTP"
    assert outs["vpc_id"] == "vpc-1"
    assert outs["target_type"] == "instance"
    assert outs["deregistration_delay"] == 300
    assert outs["load_balancing_algorithm_type"] == "round_robin"
    assert outs["health_check"] == {
        "enabled": True,
        "interval": 30,
        "port": "traffic-port",
        "protocol": "HTTP",
        "timeout": 5,
        "healthy_threshold": 3,
        "unhealthy_threshold": 3,
        "path": "/",
        "matcher": "200",
    }
    assert outs["stickiness"] == {"enabled": False, "type": "lb_cookie", "cookie_duration": 86400}
    assert outs["tags"] == {"env": "dev"}


def test_read_import_lambda() -> None:
    """Lambda groups report no port, VPC, delay or slow start."""
    client = _mock_client(TargetType="lambda", Port=None, Protocol=None, VpcId=None, HealthCheckPort=None,
                          HealthCheckProtocol=None)
    client.describe_target_group_attributes.return_value = {
        "Attributes": [{"Key": "lambda.multi_value_headers.enabled", "Value": "true"}]
    }
    provider = _provider(client)
    outs = provider.read(ARN, {}).outs
    assert outs["target_type"] == "lambda"
    assert outs["port"] is None
    assert outs["vpc_id"] is None
    assert outs["deregistration_delay"] is None
    assert outs["slow_start"] is None
    assert outs["lambda_multi_value_headers_enabled"] is True
    assert outs["stickiness"] == {}
