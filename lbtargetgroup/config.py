"""target-groups.yaml loading and validation; provider settings from Pulumi config."""

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any

import jsonschema
import pulumi
import yaml

from lbtargetgroup.spec.validator import validate_declarations

CONFIG_NAMESPACE = "lbtargetgroup"
TAG_MANAGED_BY = "managed-by"
MANAGED_BY = "lbtargetgroup"
TAG_SET = "target-group-set"
DEFAULT_DELETE_TIMEOUT = 120
DEFAULT_DELETE_RETRY_INTERVAL = 10


@dataclass
class ProviderSettings:
    """Settings the dynamic provider needs at run time (pickled with the provider)."""

    region: str
    delete_timeout: int = DEFAULT_DELETE_TIMEOUT
    delete_retry_interval: int = DEFAULT_DELETE_RETRY_INTERVAL
    ignore_tag_keys: list[str] = field(default_factory=list)
    ignore_tag_key_prefixes: list[str] = field(default_factory=list)

    @classmethod
    def from_pulumi_config(cls) -> "ProviderSettings":
        """Read aws:region (required) and the lbtargetgroup:* settings of the current stack."""
        aws_config = pulumi.Config("aws")
        config = pulumi.Config(CONFIG_NAMESPACE)
        delete_timeout = config.get_int("deleteTimeout")
        return cls(
            region=aws_config.require("region"),
            delete_timeout=DEFAULT_DELETE_TIMEOUT if delete_timeout is None else delete_timeout,
            ignore_tag_keys=config.get_object("ignoreTagKeys") or [],
            ignore_tag_key_prefixes=config.get_object("ignoreTagKeyPrefixes") or [],
        )


@dataclass
class StickinessConfig:
    type: str
    enabled: bool = True
    cookie_duration: int = 86400


@dataclass
class HealthCheckConfig:
    enabled: bool = True
    interval: int = 30
    path: str | None = None
    port: str = "traffic-port"
    protocol: str = "HTTP"
    timeout: int | None = None
    healthy_threshold: int = 3
    unhealthy_threshold: int = 3
    matcher: str | None = None


@dataclass
class TargetGroupConfig:
    """One entry of spec.targetGroups; key is the Pulumi logical name."""

    key: str
    name: str | None = None
    name_prefix: str | None = None
    port: int | None = None
    protocol: str | None = None
    vpc_id: str | None = None
    target_type: str = "instance"
    deregistration_delay: int = 300
    slow_start: int = 0
    proxy_protocol_v2: bool = False
    lambda_multi_value_headers_enabled: bool = False
    load_balancing_algorithm_type: str | None = None
    # {} disables stickiness; None leaves whatever AWS reports.
    stickiness: StickinessConfig | dict | None = None
    health_check: HealthCheckConfig | None = None
    tags: dict[str, str] = field(default_factory=dict)

    def to_props(self) -> dict[str, Any]:
        """Resource inputs for TargetGroup."""
        stickiness: dict[str, Any] | None
        if isinstance(self.stickiness, StickinessConfig):
            stickiness = dict(vars(self.stickiness))
        else:
            stickiness = self.stickiness
        return {
            "name": self.name,
            "name_prefix": self.name_prefix,
            "port": self.port,
            "protocol": self.protocol,
            "vpc_id": self.vpc_id,
            "target_type": self.target_type,
            "deregistration_delay": self.deregistration_delay,
            "slow_start": self.slow_start,
            "proxy_protocol_v2": self.proxy_protocol_v2,
            "lambda_multi_value_headers_enabled": self.lambda_multi_value_headers_enabled,
            "load_balancing_algorithm_type": self.load_balancing_algorithm_type,
            "stickiness": stickiness,
            "health_check": dict(vars(self.health_check)) if self.health_check else None,
            "tags": dict(self.tags),
        }


@dataclass
class VpcLookupConfig:
    id: str | None = None
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class TargetGroupSetConfig:
    """Parsed and validated target-groups.yaml."""

    name: str
    raw_spec: dict[str, Any]
    target_groups: list[TargetGroupConfig] = field(default_factory=list)
    vpc: VpcLookupConfig | None = None
    tags: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TargetGroupSetConfig":
        """Build from an already validated document."""
        metadata = data["metadata"]
        spec = data["spec"]
        common_tags = {
            TAG_MANAGED_BY: MANAGED_BY,
            TAG_SET: metadata["name"],
            **(spec.get("tags") or {}),
        }

        vpc = None
        if spec.get("vpc") is not None:
            v = spec["vpc"]
            vpc = VpcLookupConfig(id=v.get("id"), tags=v.get("tags") or {})

        target_groups = []
        for key, tg in spec["targetGroups"].items():
            st = tg.get("stickiness")
            stickiness: StickinessConfig | dict | None = None
            if st == {}:
                stickiness = {}
            elif st is not None:
                stickiness = StickinessConfig(
                    type=st["type"],
                    enabled=st.get("enabled", True),
                    cookie_duration=st.get("cookie_duration", 86400),
                )

            health_check = None
            if tg.get("health_check") is not None:
                hc = tg["health_check"]
                health_check = HealthCheckConfig(
                    enabled=hc.get("enabled", True),
                    interval=hc.get("interval", 30),
                    path=hc.get("path"),
                    port=str(hc.get("port", "traffic-port")),
                    protocol=hc.get("protocol", "HTTP").upper(),
                    timeout=hc.get("timeout"),
                    healthy_threshold=hc.get("healthy_threshold", 3),
                    unhealthy_threshold=hc.get("unhealthy_threshold", 3),
                    matcher=hc.get("matcher"),
                )

            target_groups.append(TargetGroupConfig(
                key=key,
                name=tg.get("name"),
                name_prefix=tg.get("name_prefix"),
                port=tg.get("port"),
                protocol=tg["protocol"].upper() if tg.get("protocol") else None,
                vpc_id=tg.get("vpc_id"),
                target_type=tg.get("target_type", "instance"),
                deregistration_delay=tg.get("deregistration_delay", 300),
                slow_start=tg.get("slow_start", 0),
                proxy_protocol_v2=tg.get("proxy_protocol_v2", False),
                lambda_multi_value_headers_enabled=tg.get("lambda_multi_value_headers_enabled", False),
                load_balancing_algorithm_type=tg.get("load_balancing_algorithm_type"),
                stickiness=stickiness,
                health_check=health_check,
                tags={**common_tags, **(tg.get("tags") or {})},
            ))

        return cls(
            name=metadata["name"],
            raw_spec=spec,
            target_groups=target_groups,
            vpc=vpc,
            tags=common_tags,
        )

    @classmethod
    def from_file(cls, path: str) -> "TargetGroupSetConfig":
        """Load and validate target-groups.yaml from file path."""
        if not Path(path).exists():
            raise SystemExit(f"target-groups.yaml not found: {path}")

        with open(path, encoding="utf-8") as f:
            data: dict[str, Any] = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise SystemExit(f"target-groups.yaml must contain a mapping: {path}")

        try:
            validate_declarations(data)
        except jsonschema.ValidationError as e:
            raise SystemExit(str(e)) from e
        return cls.from_dict(data)


def load_target_group_set() -> TargetGroupSetConfig:
    """Load target-groups.yaml from TARGET_GROUPS_YAML_PATH environment variable."""
    path = os.environ.get("TARGET_GROUPS_YAML_PATH")
    if not path:
        raise SystemExit("TARGET_GROUPS_YAML_PATH environment variable required")
    if not Path(path).exists():
        raise SystemExit("TARGET_GROUPS_YAML_PATH must point to target-groups.yaml")
    return TargetGroupSetConfig.from_file(path)
