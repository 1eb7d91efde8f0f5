"""
ALB DNS Record Stack
====================
`alb.{env}.{domain}` alias records in each delegated zone, pointing at the
environment's ALB. CloudFront origins resolve these names through the NS
delegation. Depends on both the ALB and the subdomain zone stacks.
"""
from typing import Mapping

from aws_cdk import aws_elasticloadbalancingv2 as elbv2
from aws_cdk import aws_route53 as route53
from aws_cdk import aws_route53_targets as targets
from constructs import Construct

from stackwright.naming import pascal_case
from stackwright.stacks.base_stack import BaseStack


class AlbDnsRecordStack(BaseStack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        alb: elbv2.IApplicationLoadBalancer,
        subdomain_zones: Mapping[str, route53.IHostedZone],
        **kwargs,
    ):
        super().__init__(scope, id, **kwargs)

        self.records: dict[str, route53.ARecord] = {}
        target = route53.RecordTarget.from_alias(targets.LoadBalancerTarget(alb))

        for domain, zone in subdomain_zones.items():
            self.records[domain] = route53.ARecord(
                self, f"{pascal_case(domain)}AlbRecord",
                zone=zone,
                record_name=f"alb.{self.naming.environment}.{domain}",
                target=target,
            )
