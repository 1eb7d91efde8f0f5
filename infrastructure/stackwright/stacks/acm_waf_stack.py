"""
ACM & WAF Stack
===============
CloudFront only accepts certificates and web ACLs from us-east-1, so this
stack is pinned there regardless of the management region.

  - One certificate per domain covering the apex and `*.{domain}`,
    DNS-validated in the root zone.
  - prod web ACL: open.
  - nprd web ACL: default block (HTTP 499 + an HTML body), allow only the
    CIDRs in `domains.nprdAllowedCidrsWaf`.

Zones arrive directly when the root domain stack shares this region;
otherwise they are looked up by name at synth time.
"""
from typing import Mapping, Sequence

from aws_cdk import aws_certificatemanager as acm
from aws_cdk import aws_route53 as route53
from aws_cdk import aws_wafv2 as wafv2
from constructs import Construct

from stackwright.manifest import RegisteredDomain
from stackwright.naming import pascal_case
from stackwright.stacks.base_stack import BaseStack

EDGE_REGION = "us-east-1"
NPRD_BLOCK_STATUS = 499
NPRD_BLOCK_BODY_KEY = "nprd-access-denied"
NPRD_BLOCK_BODY = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>Access Denied</title></head>
<body>
  <h1>Access Denied</h1>
  <p>This environment is restricted to authorized IP addresses.</p>
  <p><code>Error: NPRD-WAF-BLOCK</code></p>
</body>
</html>"""


def _visibility(metric: str) -> wafv2.CfnWebACL.VisibilityConfigProperty:
    return wafv2.CfnWebACL.VisibilityConfigProperty(
        cloud_watch_metrics_enabled=True,
        metric_name=metric,
        sampled_requests_enabled=True,
    )


class AcmWafStack(BaseStack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        domains: Sequence[RegisteredDomain],
        zones: Mapping[str, route53.IHostedZone] | None = None,
        nprd_allowed_cidrs: Sequence[str] = (),
        **kwargs,
    ):
        super().__init__(scope, id, **kwargs)

        if self.naming.region != EDGE_REGION:
            raise ValueError(f"AcmWafStack must be deployed in {EDGE_REGION} for CloudFront")
        if not domains:
            raise ValueError("No domains to certify")

        self.certificates: dict[str, acm.ICertificate] = {}

        for domain in domains:
            label = pascal_case(domain.name)
            zone = (zones or {}).get(domain.name) or self._zone(domain, label)
            cert = acm.Certificate(
                self, f"{label}Certificate",
                domain_name=domain.name,
                subject_alternative_names=[f"*.{domain.name}"],
                validation=acm.CertificateValidation.from_dns(zone),
            )
            self.certificates[domain.name] = cert
            self.output(f"{label}CertificateArn", cert.certificate_arn, export=True)

        prod_acl = wafv2.CfnWebACL(
            self, "ProdWebAcl",
            scope="CLOUDFRONT",
            default_action=wafv2.CfnWebACL.DefaultActionProperty(allow={}),
            visibility_config=_visibility("prod-web-acl"),
            rules=[],
        )

        ip_set = wafv2.CfnIPSet(
            self, "NprdAllowedIps",
            name=self.naming.resource_name("nprd-allowed-ips"),
            scope="CLOUDFRONT",
            ip_address_version="IPV4",
            addresses=list(nprd_allowed_cidrs),
        )

        nprd_acl = wafv2.CfnWebACL(
            self, "NprdWebAcl",
            scope="CLOUDFRONT",
            default_action=wafv2.CfnWebACL.DefaultActionProperty(
                block=wafv2.CfnWebACL.BlockActionProperty(
                    custom_response=wafv2.CfnWebACL.CustomResponseProperty(
                        response_code=NPRD_BLOCK_STATUS,
                        custom_response_body_key=NPRD_BLOCK_BODY_KEY,
                    ),
                ),
            ),
            custom_response_bodies={
                NPRD_BLOCK_BODY_KEY: wafv2.CfnWebACL.CustomResponseBodyProperty(
                    content_type="TEXT_HTML",
                    content=NPRD_BLOCK_BODY,
                ),
            },
            visibility_config=_visibility("nprd-web-acl"),
            rules=[
                wafv2.CfnWebACL.RuleProperty(
                    name="AllowAllowedCidrs",
                    priority=1,
                    action=wafv2.CfnWebACL.RuleActionProperty(allow={}),
                    statement=wafv2.CfnWebACL.StatementProperty(
                        ip_set_reference_statement=wafv2.CfnWebACL.IPSetReferenceStatementProperty(
                            arn=ip_set.attr_arn,
                        ),
                    ),
                    visibility_config=_visibility("nprd-allowed-cidrs"),
                ),
            ],
        )

        self.prod_web_acl_arn = prod_acl.attr_arn
        self.nprd_web_acl_arn = nprd_acl.attr_arn
        self.output("ProdWebAclArn", self.prod_web_acl_arn, export=True)
        self.output("NprdWebAclArn", self.nprd_web_acl_arn, export=True)

    def _zone(self, domain: RegisteredDomain, label: str) -> route53.IHostedZone:
        if domain.hosted_zone_id:
            return route53.HostedZone.from_hosted_zone_attributes(
                self, f"{label}Zone",
                hosted_zone_id=domain.hosted_zone_id,
                zone_name=domain.name,
            )
        return route53.HostedZone.from_lookup(self, f"{label}Zone", domain_name=domain.name)
