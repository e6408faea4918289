"""Load balancer resources: the ELBv2 target group dynamic resource and its helpers."""

from lbtargetgroup.loadbalancer.target_group import TargetGroup, create_target_group

__all__ = ["TargetGroup", "create_target_group"]
