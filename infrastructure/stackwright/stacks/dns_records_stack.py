"""
DNS Records Stack
=================
Alias A records from each edge hostname (and its aliases) to its CloudFront
distribution. Lives in the edge region next to the distributions so the
distribution reference stays in-region; hosted zones are global and are
looked up by name when the root domain stack sits in another region.
"""
from typing import Mapping, Sequence

from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_route53 as route53
from aws_cdk import aws_route53_targets as targets
from constructs import Construct

from stackwright.naming import pascal_case
from stackwright.stacks.base_stack import BaseStack
from stackwright.topology import EdgeHost


class DnsRecordsStack(BaseStack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        hosts: Sequence[EdgeHost],
        distributions: Mapping[str, cloudfront.CfnDistribution],
        zones: Mapping[str, route53.IHostedZone] | None = None,
        **kwargs,
    ):
        super().__init__(scope, id, **kwargs)

        self.records: dict[str, route53.ARecord] = {}
        looked_up: dict[str, route53.IHostedZone] = {}

        for host in hosts:
            source = distributions.get(host.fqdn)
            if source is None:
                raise ValueError(f"No distribution for {host.fqdn}")

            zone = (zones or {}).get(host.domain) or looked_up.get(host.domain)
            if zone is None:
                zone = route53.HostedZone.from_lookup(
                    self, f"{pascal_case(host.domain)}Zone", domain_name=host.domain,
                )
                looked_up[host.domain] = zone

            distribution = cloudfront.Distribution.from_distribution_attributes(
                self, f"{pascal_case(host.fqdn)}Distribution",
                domain_name=source.attr_domain_name,
                distribution_id=source.attr_id,
            )
            target = route53.RecordTarget.from_alias(targets.CloudFrontTarget(distribution))

            for name in (host.fqdn, *host.aliases):
                self.records[name] = route53.ARecord(
                    self, f"{pascal_case(name)}Record",
                    zone=zone,
                    record_name=name,
                    target=target,
                )
