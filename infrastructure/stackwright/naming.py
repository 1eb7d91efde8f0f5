"""
Naming & Tagging Context
========================
Every name Stackwright emits (stack names, resource names, SSM parameter
paths, CloudFormation export names, tags) is derived here from five inputs:
company, project, environment, region, account id.

The context is an immutable value threaded into each stack builder. Names
are pure functions of the inputs, so re-running resolution against the same
manifest never renames an existing stack.

  stack_name("Vpc")                 -> "Saas-NonProd-Vpc-Stack"
  resource_name("alb")              -> "saas-nprd-alb"
  parameter_path("alb", "dns-name") -> "/acme/saas/nprd/alb/dns-name"
  export_name("alb-arn")            -> "Saas-NonProd-alb-arn"
"""
from __future__ import annotations

import re
from dataclasses import dataclass, replace

from stackwright.errors import ConfigurationError

ENVIRONMENT_DISPLAY_NAMES = {
    "mgmt": "Management",
    "nprd": "NonProd",
    "pprod": "PreProd",
    "prod": "Prod",
    "shared": "Shared",
}

_SLUG_INVALID = re.compile(r"[^a-z0-9-]+")
_DASHES = re.compile(r"-{2,}")


def slugify(value: str) -> str:
    """Lowercase, replace anything outside [a-z0-9-] with '-', collapse runs."""
    slug = _SLUG_INVALID.sub("-", value.strip().lower())
    return _DASHES.sub("-", slug).strip("-")


def pascal_case(value: str) -> str:
    """'admin-portal' -> 'AdminPortal', 'savvue.com' -> 'SavvueCom'."""
    parts = re.split(r"[-_.\s]+", value.strip())
    return "".join(p[:1].upper() + p[1:] for p in parts if p)


def environment_display_name(environment: str) -> str:
    return ENVIRONMENT_DISPLAY_NAMES.get(environment, pascal_case(environment))


@dataclass(frozen=True)
class NamingContext:
    company: str
    project: str
    environment: str
    region: str
    account_id: str
    owner: str | None = None

    def __post_init__(self):
        for field_name in ("company", "project", "environment", "region", "account_id"):
            value = getattr(self, field_name)
            if not isinstance(value, str) or not value.strip():
                raise ConfigurationError(f"Naming field '{field_name}' is required and cannot be blank")

    # ------------------------------------------------------------------
    # Derived contexts
    # ------------------------------------------------------------------

    def for_environment(self, environment: str, region: str, account_id: str) -> "NamingContext":
        return replace(self, environment=environment, region=region, account_id=account_id)

    def for_region(self, region: str) -> "NamingContext":
        return replace(self, region=region)

    def for_project(self, project: str) -> "NamingContext":
        return replace(self, project=project)

    # ------------------------------------------------------------------
    # Names
    # ------------------------------------------------------------------

    @property
    def environment_display(self) -> str:
        return environment_display_name(self.environment)

    def stack_name(self, component: str, skip_environment: bool = False) -> str:
        project = pascal_case(self.project)
        if skip_environment:
            return f"{project}-{pascal_case(component)}-Stack"
        return f"{project}-{self.environment_display}-{pascal_case(component)}-Stack"

    def resource_name(self, kind: str, suffix: str | None = None) -> str:
        parts = [self.project, self.environment, kind]
        if suffix:
            parts.append(suffix)
        return slugify("-".join(parts))

    def parameter_path(self, namespace: str, key: str, brand: str | None = None) -> str:
        """
        SSM path shared by producer and consumer of an indirect reference:
        /{company}/{project}/{environment}/{namespace}[/{brand}]/{key}
        """
        if not namespace or not namespace.strip():
            raise ConfigurationError("Parameter namespace cannot be blank")
        if not key or not key.strip():
            raise ConfigurationError("Parameter key cannot be blank")
        segments = [self.company, self.project, self.environment, namespace]
        if brand:
            segments.append(brand)
        segments.append(key)
        return "/" + "/".join(slugify(s) for s in segments)

    def export_name(self, key: str) -> str:
        return f"{pascal_case(self.project)}-{self.environment_display}-{slugify(key)}"

    def standard_tags(self, component: str) -> dict[str, str]:
        return {
            "Company": self.company,
            "Project": self.project,
            "Environment": self.environment,
            "Owner": self.owner or self.company,
            "Component": component,
            "ManagedBy": "stackwright",
        }
