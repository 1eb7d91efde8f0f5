"""
Secrets Stack
=============
Secrets Manager entries for one workload environment, named
`{project}/{env}/{key}` and, for per-brand items, `{project}/{env}/{key}/{brand}`.

Only `generated` items get a real value; everything else is created with a
placeholder and filled in after deploy:

  aws secretsmanager put-secret-value --secret-id saas/nprd/database-url-core \
    --secret-string "postgresql://..."

`secrets` is keyed flat (`database-url-acme`, `google-oauth-acme`) so
group_secrets_by_brand() can re-key it per brand for the services.
"""
from typing import Sequence

import aws_cdk as cdk
from aws_cdk import aws_iam as iam
from aws_cdk import aws_secretsmanager as secretsmanager
from constructs import Construct

from stackwright.naming import pascal_case, slugify
from stackwright.stacks.base_stack import BaseStack
from stackwright.topology import SecretItem

PLACEHOLDER = "PLACEHOLDER_UPDATE_ME"
GENERATED_LENGTH = 32


class SecretsStack(BaseStack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        items: Sequence[SecretItem],
        brands: Sequence[str] = (),
        **kwargs,
    ):
        super().__init__(scope, id, **kwargs)

        self.secrets: dict[str, secretsmanager.ISecret] = {}
        prefix = f"{slugify(self.naming.project)}/{self.naming.environment}"

        for item in items:
            if not item.per_brand:
                self.secrets[item.key] = self._secret(item, item.key, f"{prefix}/{item.key}")
                continue
            if not brands:
                raise ValueError(f"Secret '{item.key}' is per brand but no service brands are defined")
            for brand in brands:
                self.secrets[f"{item.key}-{brand}"] = self._secret(
                    item, f"{item.key}-{brand}", f"{prefix}/{item.key}/{brand}",
                )

        if not self.secrets:
            raise ValueError("No secret items for this environment")

        self.read_policy = iam.ManagedPolicy(
            self, "SecretsReadPolicy",
            managed_policy_name=self.naming.resource_name("secrets-read-policy"),
            description=f"Read access to {self.naming.environment} workload secrets",
            statements=[
                iam.PolicyStatement(
                    actions=["secretsmanager:GetSecretValue", "secretsmanager:DescribeSecret"],
                    resources=[s.secret_arn for s in self.secrets.values()],
                ),
            ],
        )

    def _secret(self, item: SecretItem, key: str, secret_name: str) -> secretsmanager.Secret:
        construct_id = f"{pascal_case(key)}Secret"
        common = dict(
            secret_name=secret_name,
            description=f"{item.description} ({self.naming.environment})",
            removal_policy=cdk.RemovalPolicy.RETAIN,
        )
        if item.generated:
            secret = secretsmanager.Secret(
                self, construct_id,
                generate_secret_string=secretsmanager.SecretStringGenerator(
                    exclude_punctuation=True,
                    password_length=GENERATED_LENGTH,
                ),
                **common,
            )
        elif item.json_fields:
            secret = secretsmanager.Secret(
                self, construct_id,
                secret_object_value={
                    name: cdk.SecretValue.unsafe_plain_text(PLACEHOLDER) for name in item.json_fields
                },
                **common,
            )
        else:
            secret = secretsmanager.Secret(
                self, construct_id,
                secret_string_value=cdk.SecretValue.unsafe_plain_text(PLACEHOLDER),
                **common,
            )
        self.output(f"{pascal_case(key)}SecretArn", secret.secret_arn)
        return secret
