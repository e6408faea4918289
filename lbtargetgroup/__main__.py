"""
Target group engine: provisions every target group declared in target-groups.yaml.
Target groups without vpc_id are placed in the VPC resolved from spec.vpc.
"""
import pulumi

from lbtargetgroup.config import ProviderSettings, load_target_group_set
from lbtargetgroup.loadbalancer.target_group import create_target_group
from lbtargetgroup.shared.lookups import create_aws_provider, lookup_vpc

declarations = load_target_group_set()
settings = ProviderSettings.from_pulumi_config()

vpc_id = None
if declarations.vpc is not None:
    aws_provider = create_aws_provider(declarations.name, settings.region)
    vpc_id = lookup_vpc(declarations.vpc, aws_provider).vpc_id

for config in declarations.target_groups:
    target_group = create_target_group(config, settings, vpc_id=vpc_id)
    pulumi.export(f"{config.key}_arn", target_group.arn)
    pulumi.export(f"{config.key}_arn_suffix", target_group.arn_suffix)
    pulumi.export(f"{config.key}_name", target_group.name)
