"""
Topology Deriver
================
Expands the compact, flag-based brand entries of a manifest into the sets the
orchestrator needs. Nothing here touches CDK; every function is a pure read
of the manifest and is recomputed on each resolution.

Brand capability rules (saasWorkload[]):
  - API set:        brands with `lambdaApi` or an `api` service, plus `core`
                    whenever any brand needs an API or runs any service.
  - Database set:   same as the API set; each API brand owns a database.
  - Web hosting:    brands with `webapp` or `marketing`, independent of API.
  - Service brands: brands running at least one service (not marketing-only).

Deployment targets:
  - single-account components  -> [primary] (`mgmt` if declared, else first)
  - multi-environment          -> declared environments in manifest order,
                                  minus `mgmt` for workloads,
                                  restricted to `targetEnvironments` for infra
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, TypeVar

from stackwright.components import Component, DeploymentScope
from stackwright.errors import ConfigurationError, TopologyError
from stackwright.manifest import (
    MANAGEMENT_ENVIRONMENT,
    Manifest,
    RegisteredDomain,
    SaasEdgeApp,
    StripePrices,
)

CORE_BRAND = "core"

T = TypeVar("T")


def normalize_brand(name: str) -> str:
    return name.strip().lower().replace("_", "-")


# ---------------------------------------------------------------------------
# Deployment targets
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DeploymentTarget:
    name: str
    account_id: str
    region: str

    @property
    def account(self) -> str:
        return self.account_id

    @property
    def is_management(self) -> bool:
        return self.name == MANAGEMENT_ENVIRONMENT


def _target(manifest: Manifest, name: str) -> DeploymentTarget:
    env = manifest.environments[name]
    return DeploymentTarget(name=name, account_id=env.account_id, region=env.region)


def primary_target(manifest: Manifest) -> DeploymentTarget:
    """The `mgmt` entry if present, otherwise the first declared environment."""
    if not manifest.environments:
        raise ConfigurationError("At least one environment must be defined in the manifest")
    if MANAGEMENT_ENVIRONMENT in manifest.environments:
        return _target(manifest, MANAGEMENT_ENVIRONMENT)
    return _target(manifest, next(iter(manifest.environments)))


def management_target(manifest: Manifest, component: Component) -> DeploymentTarget:
    """Components that delegate DNS back to the management account need it declared."""
    if MANAGEMENT_ENVIRONMENT not in manifest.environments:
        raise TopologyError(
            f"A '{MANAGEMENT_ENVIRONMENT}' environment with an accountId is required",
            component=component.value,
        )
    return _target(manifest, MANAGEMENT_ENVIRONMENT)


def environment_target(manifest: Manifest, name: str, component: Component) -> DeploymentTarget:
    if name not in manifest.environments:
        raise TopologyError(
            f"Environment '{name}' not found in environments section",
            component=component.value,
        )
    return _target(manifest, name)


def _referenced_environments(manifest: Manifest, component: Component) -> list[str]:
    """Every environment name the component's manifest section mentions."""
    if component in (Component.INFRASTRUCTURE, Component.WORKLOAD_PARAMS):
        return list(manifest.infrastructure.target_environments) if manifest.infrastructure else []
    if component is Component.GITHUB_OIDC:
        if not manifest.github_oidc:
            return []
        names: list[str] = []
        for target in manifest.github_oidc.targets:
            names.extend(n for n in target.target_environments if n not in names)
        return names
    if component is Component.SAAS_WORKLOAD:
        names = []
        for app in manifest.saas_workload or []:
            if isinstance(app.stripe, dict):
                names.extend(n for n in app.stripe if n not in names)
        return names
    return []


def resolve_targets(
    manifest: Manifest,
    component: Component,
    only: str | None = None,
) -> list[DeploymentTarget]:
    """
    Deployment targets for one component, in manifest order.

    `only` is the environment filter (`-c targetEnv=nprd`). It narrows
    per-environment components; single-account and edge components always
    deploy to the primary target.
    """
    primary = primary_target(manifest)

    if only is not None and only not in manifest.environments:
        raise ConfigurationError(f"Unknown target environment '{only}'")

    referenced = _referenced_environments(manifest, component)
    for name in referenced:
        environment_target(manifest, name, component)

    if component.scope is DeploymentScope.SINGLE_ACCOUNT or component is Component.DOMAINS:
        return [primary]

    if component is Component.GITHUB_OIDC:
        names = referenced
    elif component in (Component.INFRASTRUCTURE, Component.WORKLOAD_PARAMS) and referenced:
        names = referenced
    else:
        names = list(manifest.environments)
        if component.excludes_management:
            names = [n for n in names if n != MANAGEMENT_ENVIRONMENT]

    if only is not None:
        names = [n for n in names if n == only]

    return [_target(manifest, n) for n in names]


# ---------------------------------------------------------------------------
# Derived topology
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SecretItem:
    key: str
    description: str
    generated: bool = False
    # Expanded into one secret per service brand: `{key}-{brand}`
    per_brand: bool = False
    json_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class StripePriceIds:
    monthly: dict[str, str] = field(default_factory=dict)
    annual: dict[str, str] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.monthly or self.annual)


@dataclass(frozen=True)
class DerivedTopology:
    api_brands: tuple[str, ...] = ()
    database_brands: tuple[str, ...] = ()
    webapp_brands: tuple[str, ...] = ()
    marketing_brands: tuple[str, ...] = ()
    web_hosting_brands: tuple[str, ...] = ()
    service_brands: tuple[str, ...] = ()
    edge_domains: tuple[str, ...] = ()
    delegated_domains: tuple[str, ...] = ()
    secret_items: tuple[SecretItem, ...] = ()
    stripe_prices: StripePriceIds = field(default_factory=StripePriceIds)

    @property
    def needs_compute(self) -> bool:
        return bool(self.api_brands or self.webapp_brands)

    def needs_database(self, brand: str) -> bool:
        return brand in self.database_brands

    def needs_api_compute(self, brand: str) -> bool:
        return brand in self.api_brands

    def needs_web_hosting(self, brand: str) -> bool:
        return brand in self.web_hosting_brands


def _unique(names: Iterable[str], component: Component) -> list[str]:
    seen: dict[str, str] = {}
    for raw in names:
        normalized = normalize_brand(raw)
        if normalized in seen:
            raise TopologyError(
                f"Brand '{raw}' collides with '{seen[normalized]}' after normalization",
                component=component.value,
            )
        seen[normalized] = raw
    return list(seen)


def edge_apps(manifest: Manifest) -> list[SaasEdgeApp]:
    """saasEdge entries, with brand collisions rejected."""
    apps = list(manifest.saas_edge or [])
    _unique((a.brand for a in apps), Component.DOMAINS)
    return apps


def zone_domains(manifest: Manifest) -> list[RegisteredDomain]:
    """Registered domains plus any edge domain not listed among them."""
    registered = list(manifest.domains.registered_domains) if manifest.domains else []
    names = {d.name for d in registered}
    for app in manifest.saas_edge or []:
        if app.domain not in names:
            registered.append(RegisteredDomain(name=app.domain))
            names.add(app.domain)
    return registered


def edge_environments(manifest: Manifest) -> list[str]:
    """Workload environments the edge serves: infrastructure targets, else every non-mgmt one."""
    if manifest.infrastructure and manifest.infrastructure.target_environments:
        return list(manifest.infrastructure.target_environments)
    return [n for n in manifest.environments if n != MANAGEMENT_ENVIRONMENT]


@dataclass(frozen=True)
class EdgeHost:
    """One viewer-facing hostname served by a CloudFront distribution."""

    fqdn: str
    type: str                 # marketing | webapp | api
    brand: str
    domain: str
    environment: str
    aliases: tuple[str, ...] = ()

    @property
    def origin_is_bucket(self) -> bool:
        return self.type == "marketing"

    @property
    def origin_domain(self) -> str:
        """ALB host inside the delegated `{env}.{domain}` zone of the workload account."""
        return f"alb.{self.environment}.{self.domain}"

    @property
    def production(self) -> bool:
        return self.environment == "prod"


def edge_hosts(manifest: Manifest) -> list[EdgeHost]:
    """
    marketing: `www-{env}.{domain}`, prod gets the apex plus `www`
    webapp:    `{env}-app.{domain}`, prod gets `app.{domain}`
    api:       `{env}-api.{domain}`, prod gets `api.{domain}`

    `{env}.{domain}` itself is never used; it is delegated to the workload account.
    """
    hosts: list[EdgeHost] = []
    environments = edge_environments(manifest)
    for app in edge_apps(manifest):
        for distribution in app.distributions:
            for env in environments:
                prod = env == "prod"
                if distribution.type == "marketing":
                    fqdn = app.domain if prod else f"www-{env}.{app.domain}"
                    aliases = (f"www.{app.domain}",) if prod else ()
                else:
                    sub = "app" if distribution.type == "webapp" else "api"
                    fqdn = f"{sub}.{app.domain}" if prod else f"{env}-{sub}.{app.domain}"
                    aliases = ()
                hosts.append(EdgeHost(
                    fqdn=fqdn,
                    type=distribution.type,
                    brand=normalize_brand(app.brand),
                    domain=app.domain,
                    environment=env,
                    aliases=aliases,
                ))
    return hosts


def static_hosting_brands(manifest: Manifest) -> list[str]:
    """Brands whose marketing site is served from a bucket in the workload account."""
    if manifest.saas_edge:
        return [
            normalize_brand(a.brand) for a in edge_apps(manifest)
            if any(d.type == "marketing" for d in a.distributions)
        ]
    return list(derive_topology(manifest).web_hosting_brands)


def secret_items(service_brands: Iterable[str], database_brands: Iterable[str]) -> list[SecretItem]:
    service_brands = list(service_brands)
    items = [
        SecretItem(f"database-url-{brand}", f"{brand} database connection URL")
        for brand in database_brands
    ]
    if service_brands:
        items.append(SecretItem("auth-secret", "Auth.js secret", generated=True))
    for brand in service_brands:
        items.extend([
            SecretItem(f"stripe-secret-key-{brand}", f"Stripe secret key for {brand}"),
            SecretItem(f"stripe-webhook-secret-{brand}", f"Stripe webhook secret for {brand}"),
            SecretItem(f"stripe-publishable-key-{brand}", f"Stripe publishable key for {brand}"),
        ])
    if service_brands:
        items.append(SecretItem(
            "google-oauth",
            "Google OAuth client credentials",
            per_brand=True,
            json_fields=("clientId", "clientSecret"),
        ))
    return items


def stripe_prices(manifest: Manifest, environment: str | None) -> StripePriceIds:
    """Price ids per brand, per-environment overrides first, then flat ones."""
    monthly: dict[str, str] = {}
    annual: dict[str, str] = {}
    for app in manifest.saas_workload or []:
        prices = app.stripe
        if isinstance(prices, dict):
            prices = prices.get(environment) if environment else None
        if not isinstance(prices, StripePrices):
            continue
        brand = normalize_brand(app.name)
        if prices.price_id_monthly:
            monthly[brand] = prices.price_id_monthly
        if prices.price_id_annual:
            annual[brand] = prices.price_id_annual
    return StripePriceIds(monthly=monthly, annual=annual)


def derive_topology(manifest: Manifest, environment: str | None = None) -> DerivedTopology:
    apps = manifest.saas_workload or []
    brands = _unique((a.name for a in apps), Component.SAAS_WORKLOAD)
    flagged = list(zip(brands, apps))

    service_brands = [b for b, a in flagged if a.has_services]
    api_specific = [b for b, a in flagged if a.has_api and b != CORE_BRAND]
    api_brands = [CORE_BRAND, *api_specific] if (api_specific or service_brands) else []

    edge = edge_apps(manifest)
    delegated = [
        a.domain for a in edge
        if any(d.type in ("webapp", "api") for d in a.distributions)
    ]

    return DerivedTopology(
        api_brands=tuple(api_brands),
        database_brands=tuple(api_brands),
        webapp_brands=tuple(b for b, a in flagged if a.has_webapp),
        marketing_brands=tuple(b for b, a in flagged if a.marketing),
        web_hosting_brands=tuple(b for b, a in flagged if a.has_webapp or a.marketing),
        service_brands=tuple(service_brands),
        edge_domains=tuple(a.domain for a in edge),
        delegated_domains=tuple(delegated),
        secret_items=tuple(secret_items(service_brands, api_brands)),
        stripe_prices=stripe_prices(manifest, environment),
    )


def group_secrets_by_brand(
    secrets: Mapping[str, T],
    brands: Iterable[str],
) -> dict[str, dict[str, T]]:
    """
    Re-key flat secret names into {prefix: {brand: reference}}.

    `database-url-acme` -> {"database-url": {"acme": ref}} when `acme` is a
    known brand. Anything without a known brand suffix is scoped to `core`:
    `auth-secret` -> {"auth-secret": {"core": ref}}.
    """
    known = sorted({CORE_BRAND, *brands}, key=len, reverse=True)
    grouped: dict[str, dict[str, T]] = {}
    for key, ref in secrets.items():
        prefix, brand = key, CORE_BRAND
        for candidate in known:
            suffix = f"-{candidate}"
            if key.endswith(suffix) and len(key) > len(suffix):
                prefix, brand = key[: -len(suffix)], candidate
                break
        grouped.setdefault(prefix, {})[brand] = ref
    return grouped


def delegation_domains(manifest: Manifest) -> list[str]:
    """Zones the workload accounts write NS delegation records into."""
    names = [d.name for d in zone_domains(manifest) if d.create_delegation_role]
    for app in edge_apps(manifest):
        if app.domain not in names and any(d.type in ("webapp", "api") for d in app.distributions):
            names.append(app.domain)
    return names


def delegation_role_name(domain: str) -> str:
    return f"Route53-Delegation-{domain.replace('.', '-')}"


def delegation_role_arn(management_account_id: str, domain: str) -> str:
    return f"arn:aws:iam::{management_account_id}:role/{delegation_role_name(domain)}"
