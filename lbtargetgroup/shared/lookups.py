"""Lookup the VPC target groups are placed in (spec.vpc of target-groups.yaml)."""

from dataclasses import dataclass

import pulumi
import pulumi_aws

from lbtargetgroup.config import VpcLookupConfig


@dataclass
class SharedVpc:
    """VPC shared by every declared target group without its own vpc_id."""

    vpc_id: str


def create_aws_provider(set_name: str, region: str) -> pulumi_aws.Provider:
    """AWS provider for lookups in the declared region."""
    return pulumi_aws.Provider(f"{set_name}-aws", region=region)


def lookup_vpc(vpc: VpcLookupConfig, aws_provider: pulumi_aws.Provider) -> SharedVpc:
    """Resolve spec.vpc by id or by tags. Does not create any resources."""
    if not vpc.id and not vpc.tags:
        raise SystemExit("spec.vpc needs an id or tags")
    found = pulumi_aws.ec2.get_vpc(
        id=vpc.id,
        tags=vpc.tags or None,
        opts=pulumi.InvokeOptions(provider=aws_provider),
    )
    if not found.id:
        raise SystemExit(f"No VPC found for spec.vpc (id={vpc.id!r}, tags={vpc.tags!r})")
    return SharedVpc(vpc_id=found.id)
