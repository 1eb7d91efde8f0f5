"""
Root Domain Stack
=================
Public hosted zones for every registered/edge domain in the management
account, plus the Route53 delegation roles the workload accounts assume to
write `{env}.{domain}` NS records into these zones.
"""
from typing import Sequence

import aws_cdk as cdk
from aws_cdk import aws_iam as iam
from aws_cdk import aws_route53 as route53
from constructs import Construct

from stackwright.manifest import RegisteredDomain
from stackwright.naming import pascal_case
from stackwright.stacks.base_stack import BaseStack
from stackwright.topology import delegation_role_name


class RootDomainStack(BaseStack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        domains: list[RegisteredDomain],
        delegation_domains: Sequence[str] = (),
        workload_account_ids: Sequence[str] = (),
        **kwargs,
    ):
        super().__init__(scope, id, **kwargs)

        if not domains:
            raise ValueError("No domains found: declare saasEdge or domains.registeredDomains")

        self.hosted_zones: dict[str, route53.IHostedZone] = {}
        self.delegation_roles: dict[str, iam.Role] = {}

        for domain in domains:
            label = pascal_case(domain.name)
            if domain.hosted_zone_id:
                zone = route53.HostedZone.from_hosted_zone_attributes(
                    self, f"{label}Zone",
                    hosted_zone_id=domain.hosted_zone_id,
                    zone_name=domain.name,
                )
            else:
                zone = route53.PublicHostedZone(
                    self, f"{label}Zone",
                    zone_name=domain.name,
                    comment=f"Hosted zone for {domain.name} - managed by {self.naming.project}",
                )
                self.output(
                    f"{label}NameServers",
                    cdk.Fn.join(",", zone.hosted_zone_name_servers or []),
                )
            self.hosted_zones[domain.name] = zone
            self.output(f"{label}HostedZoneId", zone.hosted_zone_id, export=True)

        if delegation_domains and workload_account_ids:
            principals = [iam.AccountPrincipal(a) for a in dict.fromkeys(workload_account_ids)]
            for name in delegation_domains:
                zone = self.hosted_zones.get(name)
                if zone is None:
                    raise ValueError(f"Delegated domain '{name}' has no hosted zone")
                role = iam.Role(
                    self, f"{pascal_case(name)}DelegationRole",
                    role_name=delegation_role_name(name),
                    assumed_by=iam.CompositePrincipal(*principals),
                )
                role.add_to_policy(iam.PolicyStatement(
                    actions=["route53:ChangeResourceRecordSets"],
                    resources=[zone.hosted_zone_arn],
                ))
                role.add_to_policy(iam.PolicyStatement(
                    actions=["route53:ListHostedZonesByName"],
                    resources=["*"],
                ))
                self.delegation_roles[name] = role
