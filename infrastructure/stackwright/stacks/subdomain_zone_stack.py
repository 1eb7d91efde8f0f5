"""
Subdomain Zone Stack
====================
Delegated `{env}.{domain}` zones in the workload account, NS-delegated from
the management account's root zone through the Route53 delegation role, and
the ALB certificates for `alb.{env}.{domain}` validated inside them.

Never references the ALB: the HTTPS listener and the alias records are
built by separate stacks that depend on both.
"""
from typing import Sequence

from aws_cdk import aws_certificatemanager as acm
from aws_cdk import aws_iam as iam
from aws_cdk import aws_route53 as route53
from constructs import Construct

from stackwright.naming import pascal_case
from stackwright.stacks.base_stack import BaseStack
from stackwright.topology import delegation_role_arn


class SubdomainZoneStack(BaseStack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        domains: Sequence[str],
        management_account_id: str,
        **kwargs,
    ):
        super().__init__(scope, id, **kwargs)

        if not domains:
            raise ValueError("No delegated domains for subdomain zones")

        env = self.naming.environment
        self.subdomain_zones: dict[str, route53.PublicHostedZone] = {}
        self.certificates: dict[str, acm.Certificate] = {}

        for domain in domains:
            label = pascal_case(domain)
            zone = route53.PublicHostedZone(
                self, f"{label}SubdomainZone",
                zone_name=f"{env}.{domain}",
                comment=f"Delegated {env} zone for {domain}",
            )
            route53.CrossAccountZoneDelegationRecord(
                self, f"{label}Delegation",
                delegated_zone=zone,
                parent_hosted_zone_name=domain,
                delegation_role=iam.Role.from_role_arn(
                    self, f"{label}DelegationRole",
                    delegation_role_arn(management_account_id, domain),
                ),
            )
            self.subdomain_zones[domain] = zone

            self.certificates[domain] = acm.Certificate(
                self, f"{label}AlbCertificate",
                domain_name=f"alb.{env}.{domain}",
                validation=acm.CertificateValidation.from_dns(zone),
            )
            self.publish("dns", "zone-id", zone.hosted_zone_id, brand=domain)
