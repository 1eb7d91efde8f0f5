"""
Static Hosting Stack
====================
Private S3 buckets for brand marketing sites, one per brand, in the
workload account. CloudFront in the management account reads them through
origin access control; the bucket policy trusts the CloudFront service
principal only for requests signed on behalf of the management account.

Bucket names match what EdgeDistributionStack derives for its S3 origins:
resource_name("static", brand).
"""
from typing import Sequence

import aws_cdk as cdk
from aws_cdk import aws_iam as iam
from aws_cdk import aws_s3 as s3
from constructs import Construct

from stackwright.naming import pascal_case
from stackwright.stacks.base_stack import BaseStack


class StaticHostingStack(BaseStack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        brands: Sequence[str],
        management_account_id: str,
        versioned: bool = True,
        **kwargs,
    ):
        super().__init__(scope, id, **kwargs)

        if not brands:
            raise ValueError("No brands with a static site")

        self.buckets: dict[str, s3.Bucket] = {}
        for brand in brands:
            label = pascal_case(brand)
            bucket = s3.Bucket(
                self, f"{label}Bucket",
                bucket_name=self.naming.resource_name("static", brand),
                versioned=versioned,
                encryption=s3.BucketEncryption.S3_MANAGED,
                block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
                enforce_ssl=True,
                removal_policy=cdk.RemovalPolicy.RETAIN,
            )
            bucket.add_to_resource_policy(iam.PolicyStatement(
                sid="AllowCloudFrontOAC",
                principals=[iam.ServicePrincipal("cloudfront.amazonaws.com")],
                actions=["s3:GetObject"],
                resources=[bucket.arn_for_objects("*")],
                conditions={"StringEquals": {"AWS:SourceAccount": management_account_id}},
            ))
            self.buckets[brand] = bucket

            self.publish("static", "bucket-name", bucket.bucket_name, f"Static site bucket for {brand}", brand=brand)
            self.publish(
                "static", "bucket-domain", bucket.bucket_regional_domain_name,
                f"Static site bucket regional domain for {brand}", brand=brand,
            )
            self.output(f"{label}BucketName", bucket.bucket_name)
