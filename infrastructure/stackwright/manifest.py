"""
Manifest Schema
===============
The manifest is a YAML document with camelCase keys. It is parsed once into
the frozen pydantic models below and never mutated afterwards.

Presence implies enabled: a component section that is absent (None) is
disabled. There are no `enabled: true` flags.

  naming:
    company: acme
    project: saas
  environments:
    mgmt: {accountId: "111111111111", region: us-east-1}
    nprd: {accountId: "222222222222", region: us-east-1}
  saasWorkload:
    - name: globex
      lambdaApi: true
"""
from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal, Union

import yaml
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from stackwright.errors import ConfigurationError

MANAGEMENT_ENVIRONMENT = "mgmt"


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


def _as_str(value: Any) -> Any:
    # YAML reads unquoted account ids as ints
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


AccountId = Annotated[str, BeforeValidator(_as_str)]


# ---------------------------------------------------------------------------
# Required sections
# ---------------------------------------------------------------------------

class NamingConfig(_Model):
    company: str
    project: str
    owner: str | None = None
    skip_environment_name: bool = False


class EnvironmentTarget(_Model):
    account_id: AccountId
    region: str = "us-east-1"


# ---------------------------------------------------------------------------
# Single-account components
# ---------------------------------------------------------------------------

class OrganizationAccount(_Model):
    key: str
    name: str
    email: str | None = None
    account_id: AccountId | None = None


class OrganizationalUnit(_Model):
    key: str
    name: str
    accounts: list[OrganizationAccount] = Field(default_factory=list)


class OrganizationConfig(_Model):
    root_id: str
    organizational_units: list[OrganizationalUnit] = Field(default_factory=list)


class PermissionSetConfig(_Model):
    name: str
    description: str | None = None
    session_duration: str = "PT8H"
    managed_policies: list[str] = Field(default_factory=list)


class AssignmentConfig(_Model):
    principal_id: str
    principal_type: Literal["GROUP", "USER"] = "GROUP"
    permission_set: str
    account_keys: list[str] = Field(default_factory=list)


class IdentityCenterConfig(_Model):
    instance_arn: str
    permission_sets: list[PermissionSetConfig] = Field(default_factory=list)
    assignments: list[AssignmentConfig] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Domains / edge
# ---------------------------------------------------------------------------

class RegisteredDomain(_Model):
    name: str
    hosted_zone_id: str | None = None
    create_delegation_role: bool = False


class DomainsConfig(_Model):
    registered_domains: list[RegisteredDomain] = Field(default_factory=list)
    nprd_allowed_cidrs_waf: list[str] = Field(default_factory=list)


class EdgeDistributionConfig(_Model):
    type: Literal["marketing", "webapp", "api"]


class SaasEdgeApp(_Model):
    domain: str
    name: str | None = None
    distributions: list[EdgeDistributionConfig] = Field(default_factory=list)

    @property
    def brand(self) -> str:
        return self.name or self.domain.split(".")[0]


# ---------------------------------------------------------------------------
# Infrastructure (per workload environment)
# ---------------------------------------------------------------------------

class VpcSettings(_Model):
    cidr: str = "10.0.0.0/16"
    max_azs: int = Field(default=2, ge=1, le=6)
    nat_gateways: int = Field(default=1, ge=0)
    enable_flow_logs: bool = True
    flow_logs_retention_days: int = 30


class AlbSettings(_Model):
    internal: bool = True


class CommonParamsConfig(_Model):
    account_ids: bool = False


class InfrastructureConfig(_Model):
    target_environments: list[str] = Field(default_factory=list)
    vpc: VpcSettings = Field(default_factory=VpcSettings)
    alb: AlbSettings = Field(default_factory=AlbSettings)
    common_params: CommonParamsConfig = Field(default_factory=CommonParamsConfig)


# ---------------------------------------------------------------------------
# SaaS workload (compact, flag-based brand entries)
# ---------------------------------------------------------------------------

class StripePrices(_Model):
    model_config = ConfigDict(extra="forbid")

    price_id_monthly: str | None = None
    price_id_annual: str | None = None


class WorkloadService(_Model):
    type: Literal["api", "webapp", "worker"]
    name: str | None = None


class SaasWorkloadApp(_Model):
    name: str
    services: list[WorkloadService] = Field(default_factory=list)
    lambda_api: bool = False
    webapp: bool = False
    marketing: bool = False
    # Either flat prices or a map of environment name -> prices
    stripe: Union[StripePrices, dict[str, StripePrices], None] = None

    @property
    def has_api(self) -> bool:
        return self.lambda_api or any(s.type == "api" for s in self.services)

    @property
    def has_webapp(self) -> bool:
        return self.webapp or any(s.type == "webapp" for s in self.services)

    @property
    def has_services(self) -> bool:
        return self.has_api or self.has_webapp or bool(self.services)


class ServiceSettings(_Model):
    desired_count: int = Field(default=1, ge=0)
    cpu: int = 256
    memory_mib: int = Field(default=512, alias="memoryMiB")


class EcsDefaults(_Model):
    webapp: ServiceSettings = Field(default_factory=lambda: ServiceSettings(cpu=256, memory_mib=512))
    api: ServiceSettings = Field(default_factory=lambda: ServiceSettings(cpu=512, memory_mib=1024))


class AuroraSettings(_Model):
    engine_version: str = "16.4"
    min_capacity: float = Field(default=0.5, ge=0)
    max_capacity: float = Field(default=2, gt=0)
    backup_retention_days: int = 7
    deletion_protection: bool = True


class WorkloadDefaults(_Model):
    ecs: EcsDefaults = Field(default_factory=EcsDefaults)
    aurora: AuroraSettings = Field(default_factory=AuroraSettings)


class StaticHostingConfig(_Model):
    management_account_id: AccountId | None = None
    enable_versioning: bool = True


# ---------------------------------------------------------------------------
# GitHub OIDC (CI/CD trust roles)
# ---------------------------------------------------------------------------

class OidcRepository(_Model):
    owner: str
    repo: str
    branch: str = "main"
    allow_tags: bool = True
    environments: list[str] = Field(default_factory=list)


class OidcTarget(_Model):
    project_name: str
    target_environments: list[str] = Field(default_factory=list)
    repositories: list[OidcRepository] = Field(default_factory=list)
    ecr_repository_prefix: str | None = None
    s3_bucket_prefix: str | None = None
    ecs_cluster_prefix: str | None = None


class GithubOidcConfig(_Model):
    targets: list[OidcTarget] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

class Manifest(_Model):
    naming: NamingConfig
    environments: dict[str, EnvironmentTarget] = Field(default_factory=dict)

    organization: OrganizationConfig | None = None
    identity_center: IdentityCenterConfig | None = None
    domains: DomainsConfig | None = None
    saas_edge: list[SaasEdgeApp] | None = None
    infrastructure: InfrastructureConfig | None = None
    saas_workload: list[SaasWorkloadApp] | None = None
    static_hosting: StaticHostingConfig | None = None
    github_oidc: GithubOidcConfig | None = None
    defaults: WorkloadDefaults = Field(default_factory=WorkloadDefaults)

    @property
    def owner(self) -> str:
        return self.naming.owner or self.naming.company


def parse_manifest(data: Any) -> Manifest:
    """Validate an already-parsed document (dict) into a Manifest."""
    if not isinstance(data, dict):
        raise ConfigurationError("Manifest must be a mapping at the top level")
    try:
        return Manifest.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Invalid manifest: {problems}") from e


def load_manifest(path: str | Path) -> Manifest:
    """Read a YAML manifest from disk."""
    path = Path(path)
    try:
        text = path.read_text()
    except FileNotFoundError as e:
        raise ConfigurationError(f"Manifest not found: {path}") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    return parse_manifest(data)
