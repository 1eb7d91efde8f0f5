"""
Component Presence
==================
Each manifest section maps to exactly one Component. Presence of the section
enables it; absence disables it. WORKLOAD_PARAMS is the one component enabled
by a nested flag (`infrastructure.commonParams.accountIds`) rather than a
top-level section.

The presence table below is total over Component. A new enum member without
a row fails at import, not halfway through a synth.
"""
from __future__ import annotations

from enum import Enum
from typing import Callable

from stackwright.manifest import Manifest


class DeploymentScope(Enum):
    SINGLE_ACCOUNT = "single-account"          # once, on the primary target
    MULTI_ENVIRONMENT = "multi-environment"    # once per workload environment
    CROSS_ACCOUNT = "cross-account"            # management account + lookups from workloads


class Component(Enum):
    ORGANIZATION = "organization"
    IDENTITY_CENTER = "identityCenter"
    DOMAINS = "domains"
    INFRASTRUCTURE = "infrastructure"
    WORKLOAD_PARAMS = "workloadParams"
    SAAS_WORKLOAD = "saasWorkload"
    STATIC_HOSTING = "staticHosting"
    GITHUB_OIDC = "githubOidc"

    @property
    def scope(self) -> DeploymentScope:
        return _SCOPES[self]

    @property
    def excludes_management(self) -> bool:
        """Workloads never run in the management account."""
        return self in (Component.SAAS_WORKLOAD, Component.STATIC_HOSTING)


_SCOPES: dict[Component, DeploymentScope] = {
    Component.ORGANIZATION: DeploymentScope.SINGLE_ACCOUNT,
    Component.IDENTITY_CENTER: DeploymentScope.SINGLE_ACCOUNT,
    Component.DOMAINS: DeploymentScope.CROSS_ACCOUNT,
    Component.INFRASTRUCTURE: DeploymentScope.MULTI_ENVIRONMENT,
    Component.WORKLOAD_PARAMS: DeploymentScope.MULTI_ENVIRONMENT,
    Component.SAAS_WORKLOAD: DeploymentScope.MULTI_ENVIRONMENT,
    Component.STATIC_HOSTING: DeploymentScope.MULTI_ENVIRONMENT,
    Component.GITHUB_OIDC: DeploymentScope.CROSS_ACCOUNT,
}

_PRESENCE: dict[Component, Callable[[Manifest], bool]] = {
    Component.ORGANIZATION: lambda m: m.organization is not None,
    Component.IDENTITY_CENTER: lambda m: m.identity_center is not None,
    # Edge delivery needs both the registered zones and at least one app
    Component.DOMAINS: lambda m: m.domains is not None or bool(m.saas_edge),
    Component.INFRASTRUCTURE: lambda m: m.infrastructure is not None,
    Component.WORKLOAD_PARAMS: lambda m: (
        m.infrastructure is not None and m.infrastructure.common_params.account_ids
    ),
    Component.SAAS_WORKLOAD: lambda m: bool(m.saas_workload),
    Component.STATIC_HOSTING: lambda m: m.static_hosting is not None,
    Component.GITHUB_OIDC: lambda m: m.github_oidc is not None and bool(m.github_oidc.targets),
}

for _table_name, _table in (("scope", _SCOPES), ("presence", _PRESENCE)):
    _missing = set(Component) - set(_table)
    if _missing:
        raise RuntimeError(
            f"Component {_table_name} table is missing: {sorted(c.name for c in _missing)}"
        )


def is_enabled(manifest: Manifest, component: Component) -> bool:
    return bool(_PRESENCE[component](manifest))


def enabled_components(manifest: Manifest) -> list[Component]:
    """Enabled components in declaration order."""
    return [c for c in Component if is_enabled(manifest, c)]
