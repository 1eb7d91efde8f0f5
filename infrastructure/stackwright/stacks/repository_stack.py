"""
ECR Stack
=========
One image repository per brand and service type: `{project}-{env}-{brand}-webapp`
and `{project}-{env}-{brand}-api`. Repository names are published per brand
so CI can push without knowing the naming rules.
"""
from typing import Sequence

import aws_cdk as cdk
from aws_cdk import aws_ecr as ecr
from constructs import Construct

from stackwright.naming import pascal_case
from stackwright.stacks.base_stack import BaseStack

MAX_IMAGE_COUNT = 10


class RepositoryStack(BaseStack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        webapp_brands: Sequence[str] = (),
        api_brands: Sequence[str] = (),
        **kwargs,
    ):
        super().__init__(scope, id, **kwargs)

        if not webapp_brands and not api_brands:
            raise ValueError("No webapp or API brands need an image repository")

        self.webapp_repositories = {b: self._repository(b, "webapp") for b in webapp_brands}
        self.api_repositories = {b: self._repository(b, "api") for b in api_brands}

    def _repository(self, brand: str, service: str) -> ecr.Repository:
        construct_id = f"{pascal_case(brand)}{pascal_case(service)}Repository"
        name = self.naming.resource_name(brand, service)
        repository = ecr.Repository(
            self, construct_id,
            repository_name=name,
            image_scan_on_push=True,
            image_tag_mutability=ecr.TagMutability.MUTABLE,
            removal_policy=cdk.RemovalPolicy.RETAIN,
            lifecycle_rules=[
                ecr.LifecycleRule(
                    description=f"Keep last {MAX_IMAGE_COUNT} images",
                    max_image_count=MAX_IMAGE_COUNT,
                    rule_priority=1,
                ),
            ],
        )
        self.publish("ecr", f"{service}-repository-name", name, brand=brand)
        return repository
