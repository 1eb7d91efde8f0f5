"""
GitHub OIDC Stack
=================
Lets GitHub Actions workflows assume a deployment role in one target
account without long-lived keys.

IAM allows a single provider per URL per account, so when several targets
share an account only the first one creates it; the rest import it by ARN.
"""
from typing import Sequence

import aws_cdk as cdk
from aws_cdk import aws_iam as iam
from constructs import Construct

from stackwright.manifest import OidcRepository
from stackwright.naming import slugify
from stackwright.stacks.base_stack import BaseStack

GITHUB_OIDC_HOST = "token.actions.githubusercontent.com"
GITHUB_OIDC_THUMBPRINT = "6938fd4d98bab03faadb97b34396831e3780aea1"


def allowed_subjects(repositories: Sequence[OidcRepository]) -> list[str]:
    """`sub` claim patterns: the branch (or an explicit ref), plus v* tags when allowed."""
    subjects: list[str] = []
    for repo in repositories:
        base = f"repo:{repo.owner}/{repo.repo}"
        if repo.branch.startswith("refs/"):
            subjects.append(f"{base}:{repo.branch}")
        else:
            subjects.append(f"{base}:ref:refs/heads/{repo.branch}")
        if repo.allow_tags:
            subjects.append(f"{base}:ref:refs/tags/v*")
    return subjects


class GithubOidcStack(BaseStack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        repositories: Sequence[OidcRepository],
        create_provider: bool = True,
        ecr_repository_prefix: str | None = None,
        s3_bucket_prefix: str | None = None,
        ecs_cluster_prefix: str | None = None,
        **kwargs,
    ):
        # A rejected target must not leave an empty stack in the app
        environment = kwargs["naming"].environment
        repositories = [r for r in repositories if not r.environments or environment in r.environments]
        if not repositories:
            raise ValueError(f"No repositories are allowed to deploy to {environment}")

        super().__init__(scope, id, **kwargs)

        account = self.naming.account_id
        region = self.naming.region
        default_prefix = slugify(f"{self.naming.project}-{self.naming.environment}")

        if create_provider:
            self.provider = iam.OpenIdConnectProvider(
                self, "GitHubOidcProvider",
                url=f"https://{GITHUB_OIDC_HOST}",
                client_ids=["sts.amazonaws.com"],
                thumbprints=[GITHUB_OIDC_THUMBPRINT],
            )
        else:
            self.provider = iam.OpenIdConnectProvider.from_open_id_connect_provider_arn(
                self, "GitHubOidcProvider",
                f"arn:aws:iam::{account}:oidc-provider/{GITHUB_OIDC_HOST}",
            )

        self.role = iam.Role(
            self, "GitHubActionsRole",
            role_name=self.naming.resource_name("github-actions"),
            description="GitHub Actions deployments via OIDC",
            max_session_duration=cdk.Duration.hours(1),
            assumed_by=iam.FederatedPrincipal(
                self.provider.open_id_connect_provider_arn,
                {
                    "StringEquals": {f"{GITHUB_OIDC_HOST}:aud": "sts.amazonaws.com"},
                    "StringLike": {f"{GITHUB_OIDC_HOST}:sub": allowed_subjects(repositories)},
                },
                "sts:AssumeRoleWithWebIdentity",
            ),
        )

        ecr_prefix = ecr_repository_prefix or default_prefix
        cluster_prefix = ecs_cluster_prefix or default_prefix
        bucket_prefix = s3_bucket_prefix or default_prefix

        self.role.add_to_policy(iam.PolicyStatement(
            actions=["ecr:GetAuthorizationToken", "s3:ListAllMyBuckets"],
            resources=["*"],
        ))
        self.role.add_to_policy(iam.PolicyStatement(
            actions=[
                "ecr:BatchCheckLayerAvailability",
                "ecr:GetDownloadUrlForLayer",
                "ecr:BatchGetImage",
                "ecr:PutImage",
                "ecr:InitiateLayerUpload",
                "ecr:UploadLayerPart",
                "ecr:CompleteLayerUpload",
                "ecr:DescribeImages",
                "ecr:DescribeRepositories",
                "ecr:ListImages",
            ],
            resources=[f"arn:aws:ecr:{region}:{account}:repository/{ecr_prefix}-*"],
        ))
        self.role.add_to_policy(iam.PolicyStatement(
            actions=[
                "ecs:UpdateService",
                "ecs:DescribeServices",
                "ecs:DescribeTasks",
                "ecs:DescribeTaskDefinition",
                "ecs:ListTasks",
                "ecs:DescribeClusters",
            ],
            resources=[
                f"arn:aws:ecs:{region}:{account}:cluster/{cluster_prefix}-*",
                f"arn:aws:ecs:{region}:{account}:service/{cluster_prefix}-*/*",
                f"arn:aws:ecs:{region}:{account}:task/{cluster_prefix}-*/*",
                f"arn:aws:ecs:{region}:{account}:task-definition/*:*",
            ],
        ))
        self.role.add_to_policy(iam.PolicyStatement(
            actions=[
                "s3:PutObject",
                "s3:GetObject",
                "s3:DeleteObject",
                "s3:ListBucket",
                "s3:GetBucketLocation",
            ],
            resources=[f"arn:aws:s3:::{bucket_prefix}-*", f"arn:aws:s3:::{bucket_prefix}-*/*"],
        ))
        self.role.add_to_policy(iam.PolicyStatement(
            actions=["ssm:GetParameter", "ssm:GetParameters", "ssm:GetParametersByPath"],
            resources=[f"arn:aws:ssm:*:{account}:parameter/{slugify(self.naming.company)}/*"],
        ))

        self.publish("github", "actions-role-arn", self.role.role_arn, "GitHub Actions deployment role")
        self.output("GitHubActionsRoleArn", self.role.role_arn)
