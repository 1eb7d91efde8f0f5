"""
Edge Distribution Stack
=======================
One CloudFront distribution per edge host (brand x distribution type x
environment), in us-east-1 next to the certificates and web ACLs.

Origins:
  webapp/api  https to `alb.{env}.{domain}`. That name resolves through the
              NS delegation into the workload account zone, so no identifier
              from the workload account is needed here. The ALB routes on the
              X-Forwarded-Brand / X-Forwarded-Service headers.
  marketing   the brand's static bucket in the workload account, via OAC.

Each distribution id is published to SSM for cache invalidation from CI.
"""
from typing import Mapping, Sequence

from aws_cdk import aws_certificatemanager as acm
from aws_cdk import aws_cloudfront as cloudfront
from constructs import Construct

from stackwright.naming import NamingContext, pascal_case
from stackwright.stacks.base_stack import BaseStack
from stackwright.topology import EdgeHost

# AWS managed policy ids
CACHING_DISABLED = "4135ea2d-6df8-44a3-9df3-4b5a84be39ad"
CACHING_OPTIMIZED = "658327ea-f89d-4fab-a63d-7e88639e58f6"
ALL_VIEWER = "216adef6-5c7f-47e4-b989-5492eafa07d3"
CORS_S3_ORIGIN = "88a5eaf4-2fd4-4709-b370-b4c650ea3fcf"

STATIC_ASSET_PATTERNS = (
    "/assets/*", "/_next/*", "/static/*",
    "*.png", "*.jpg", "*.svg", "*.ico", "*.webp", "*.woff", "*.woff2",
)


class EdgeDistributionStack(BaseStack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        hosts: Sequence[EdgeHost],
        certificates: Mapping[str, acm.ICertificate],
        prod_web_acl_arn: str,
        nprd_web_acl_arn: str,
        origin_namings: Mapping[str, NamingContext],
        **kwargs,
    ):
        """
        `origin_namings` maps environment name to the naming context of the
        workload account, used to derive the marketing bucket names.
        """
        super().__init__(scope, id, **kwargs)

        if not hosts:
            raise ValueError("No edge hosts to serve")

        self.distributions: dict[str, cloudfront.CfnDistribution] = {}
        self._oac = cloudfront.CfnOriginAccessControl(
            self, "S3Oac",
            origin_access_control_config=cloudfront.CfnOriginAccessControl.OriginAccessControlConfigProperty(
                name=self.naming.resource_name("s3-oac"),
                origin_access_control_origin_type="s3",
                signing_behavior="always",
                signing_protocol="sigv4",
            ),
        )

        for host in hosts:
            certificate = certificates.get(host.domain)
            if certificate is None:
                raise ValueError(f"No certificate for {host.domain}")
            origin_naming = origin_namings.get(host.environment)
            if origin_naming is None:
                raise ValueError(f"No workload environment '{host.environment}' for {host.fqdn}")
            self._distribution(
                host,
                certificate.certificate_arn,
                prod_web_acl_arn if host.production else nprd_web_acl_arn,
                origin_naming,
            )

    def _distribution(
        self,
        host: EdgeHost,
        certificate_arn: str,
        web_acl_arn: str,
        origin_naming: NamingContext,
    ) -> None:
        origin_id = f"origin-{host.brand}-{host.type}"
        if host.origin_is_bucket:
            bucket = origin_naming.resource_name("static", host.brand)
            origin = cloudfront.CfnDistribution.OriginProperty(
                id=origin_id,
                domain_name=f"{bucket}.s3.{origin_naming.region}.amazonaws.com",
                s3_origin_config=cloudfront.CfnDistribution.S3OriginConfigProperty(
                    origin_access_identity="",
                ),
                origin_access_control_id=self._oac.attr_id,
            )
        else:
            origin = cloudfront.CfnDistribution.OriginProperty(
                id=origin_id,
                domain_name=host.origin_domain,
                custom_origin_config=cloudfront.CfnDistribution.CustomOriginConfigProperty(
                    origin_protocol_policy="https-only",
                    origin_ssl_protocols=["TLSv1.2"],
                    origin_read_timeout=30,
                    origin_keepalive_timeout=5,
                ),
                origin_custom_headers=[
                    cloudfront.CfnDistribution.OriginCustomHeaderProperty(
                        header_name="X-Forwarded-Brand", header_value=host.brand,
                    ),
                    cloudfront.CfnDistribution.OriginCustomHeaderProperty(
                        header_name="X-Forwarded-Service", header_value=host.type,
                    ),
                ],
            )

        static = host.origin_is_bucket
        distribution = cloudfront.CfnDistribution(
            self, pascal_case(host.fqdn),
            distribution_config=cloudfront.CfnDistribution.DistributionConfigProperty(
                enabled=True,
                comment=f"{host.fqdn} ({'s3' if static else 'alb'})",
                aliases=[host.fqdn, *host.aliases],
                origins=[origin],
                default_cache_behavior=cloudfront.CfnDistribution.DefaultCacheBehaviorProperty(
                    target_origin_id=origin_id,
                    viewer_protocol_policy="redirect-to-https",
                    cache_policy_id=CACHING_DISABLED,
                    origin_request_policy_id=CORS_S3_ORIGIN if static else ALL_VIEWER,
                    compress=True,
                    allowed_methods=(
                        ["GET", "HEAD", "OPTIONS"] if static
                        else ["DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT"]
                    ),
                    cached_methods=["GET", "HEAD"],
                ),
                cache_behaviors=[
                    cloudfront.CfnDistribution.CacheBehaviorProperty(
                        path_pattern=pattern,
                        target_origin_id=origin_id,
                        viewer_protocol_policy="redirect-to-https",
                        cache_policy_id=CACHING_OPTIMIZED,
                        origin_request_policy_id=CORS_S3_ORIGIN,
                        compress=True,
                    )
                    for pattern in STATIC_ASSET_PATTERNS
                ] if static else None,
                custom_error_responses=[
                    cloudfront.CfnDistribution.CustomErrorResponseProperty(
                        error_code=code, response_code=200, response_page_path="/index.html",
                    )
                    for code in (403, 404)
                ] if static else None,
                default_root_object="index.html" if static else None,
                viewer_certificate=cloudfront.CfnDistribution.ViewerCertificateProperty(
                    acm_certificate_arn=certificate_arn,
                    ssl_support_method="sni-only",
                    minimum_protocol_version="TLSv1.2_2021",
                ),
                http_version="http2and3",
                ipv6_enabled=True,
                price_class="PriceClass_100",
                web_acl_id=web_acl_arn,
            ),
        )
        self.distributions[host.fqdn] = distribution

        env_naming = self.naming.for_environment(
            host.environment, self.naming.region, self.naming.account_id,
        )
        self.publish(
            "cloudfront", "distribution-id", distribution.attr_id,
            description=f"CloudFront distribution id for {host.fqdn}",
            brand=f"{host.brand}-{host.type}",
            naming=env_naming,
        )
