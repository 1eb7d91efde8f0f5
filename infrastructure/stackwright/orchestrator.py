"""
Component Orchestrator
======================
Composition root. Walks the manifest once per resolution and creates every
deployable unit through the UnitRegistry:

  1. primary target (ConfigurationError here aborts before any unit exists)
  2. single-account components: Organizations, IdentityCenter
  3. per environment, in manifest order:
       infrastructure   Vpc, SubdomainZone, Alb, AlbHttpsListener, AlbDnsRecord
       workloadParams   WorkloadParams
       saasWorkload     ECSCluster, Secrets, Aurora, ECR, Webapp, Api
       staticHosting    StaticHosting
  4. cross-account families: edge (RootDomain, AcmAndWaf, CloudFront,
     DnsRecords) and GitHubOIDC per target environment

Each (component, environment) branch runs inside its own error boundary:
a TopologyError or builder failure is logged, collected and ends that
branch only. Units created before the failure stay in the App.

Producers created earlier in the same pass are handed to consumers directly
when account and region match; otherwise the consumer builds its own lookup
against the producer's parameter path.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Sequence

import aws_cdk as cdk

from stackwright.components import Component, DeploymentScope, enabled_components
from stackwright.config import Settings
from stackwright.errors import (
    ConfigurationError,
    OrchestrationError,
    StackwrightError,
    TopologyError,
)
from stackwright.linkage import Linkage, LinkageLedger, classify
from stackwright.logger import get_logger
from stackwright.manifest import Manifest
from stackwright.naming import NamingContext
from stackwright.stacks.acm_waf_stack import AcmWafStack
from stackwright.stacks.alb_dns_record_stack import AlbDnsRecordStack
from stackwright.stacks.alb_https_listener_stack import AlbHttpsListenerStack
from stackwright.stacks.alb_stack import AlbStack
from stackwright.stacks.cluster_stack import ClusterStack
from stackwright.stacks.database_stack import DatabaseStack
from stackwright.stacks.dns_records_stack import DnsRecordsStack
from stackwright.stacks.edge_distribution_stack import EdgeDistributionStack
from stackwright.stacks.github_oidc_stack import GithubOidcStack
from stackwright.stacks.identity_center_stack import IdentityCenterStack
from stackwright.stacks.organizations_stack import OrganizationsStack
from stackwright.stacks.repository_stack import RepositoryStack
from stackwright.stacks.root_domain_stack import RootDomainStack
from stackwright.stacks.secrets_stack import SecretsStack
from stackwright.stacks.service_stack import ServiceStack
from stackwright.stacks.static_hosting_stack import StaticHostingStack
from stackwright.stacks.subdomain_zone_stack import SubdomainZoneStack
from stackwright.stacks.vpc_stack import VpcStack
from stackwright.stacks.workload_params_stack import WorkloadParamsStack
from stackwright.topology import (
    DeploymentTarget,
    delegation_domains,
    derive_topology,
    edge_apps,
    edge_environments,
    edge_hosts,
    environment_target,
    management_target,
    primary_target,
    resolve_targets,
    static_hosting_brands,
    zone_domains,
)
from stackwright.units import DeployableUnit, UnitRegistry

logger = get_logger(__name__)

PER_ENVIRONMENT = (
    Component.INFRASTRUCTURE,
    Component.WORKLOAD_PARAMS,
    Component.SAAS_WORKLOAD,
    Component.STATIC_HOSTING,
)


@dataclass
class ResolutionResult:
    units: list[DeployableUnit]
    failures: list[StackwrightError]
    ledger: LinkageLedger

    def unit_names(self) -> list[str]:
        return [u.name for u in self.units]

    def raise_for_failures(self) -> None:
        if not self.failures:
            return
        if len(self.failures) == 1:
            raise self.failures[0]
        components = sorted({getattr(f, "component", None) or "unknown" for f in self.failures})
        raise OrchestrationError(
            f"{len(self.failures)} component branches failed",
            component=", ".join(components),
            cause=self.failures[0],
        )

    def plan(self) -> list[dict]:
        return [u.to_dict() for u in self.units]


@dataclass
class _Network:
    """Infrastructure units of one environment created in the current pass."""

    vpc: DeployableUnit
    listener: DeployableUnit | None = None


@dataclass
class _Pass:
    app: cdk.App
    registry: UnitRegistry
    only: str | None
    failures: list[StackwrightError] = field(default_factory=list)
    networks: dict[str, _Network] = field(default_factory=dict)
    units_by_component: dict[Component, list[DeployableUnit]] = field(default_factory=dict)
    oidc_providers: dict[str, DeployableUnit] = field(default_factory=dict)


class ComponentOrchestrator:
    def __init__(self, manifest: Manifest, settings: Settings | None = None):
        self.manifest = manifest
        self.settings = settings or Settings()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def resolve(self, app: cdk.App, target_env: str | None = None) -> ResolutionResult:
        manifest = self.manifest
        only = target_env if target_env is not None else self.settings.target_env

        primary = primary_target(manifest)
        if only is not None and only not in manifest.environments:
            raise ConfigurationError(f"Unknown target environment '{only}'")

        run = _Pass(app=app, registry=UnitRegistry(app), only=only)
        enabled = enabled_components(manifest)
        logger.info(
            "Resolution started",
            extra={
                "primary": primary.name,
                "targetEnv": only,
                "components": [c.value for c in enabled],
            },
        )
        for component in Component:
            if component not in enabled:
                logger.info("Component skipped", extra={"component": component.value, "reason": "absent"})

        # Single-account components
        if Component.ORGANIZATION in enabled:
            self._attempt(run, Component.ORGANIZATION, primary.name, lambda: self._organization(run, primary))
        if Component.IDENTITY_CENTER in enabled:
            self._attempt(run, Component.IDENTITY_CENTER, primary.name, lambda: self._identity_center(run, primary))

        # Multi-environment components, environment by environment
        targets: dict[Component, list[DeploymentTarget]] = {}

        def collect(component: Component) -> None:
            targets[component] = resolve_targets(manifest, component, only)

        for component in PER_ENVIRONMENT:
            if component in enabled:
                self._attempt(run, component, None, lambda c=component: collect(c))

        builders: dict[Component, Callable[[_Pass, DeploymentTarget], None]] = {
            Component.INFRASTRUCTURE: self._infrastructure,
            Component.WORKLOAD_PARAMS: self._workload_params,
            Component.SAAS_WORKLOAD: self._saas_workload,
            Component.STATIC_HOSTING: self._static_hosting,
        }
        for env_name in manifest.environments:
            for component in PER_ENVIRONMENT:
                for target in targets.get(component, []):
                    if target.name == env_name:
                        self._attempt(
                            run, component, env_name,
                            lambda c=component, t=target: builders[c](run, t),
                        )

        # Cross-account families
        if Component.DOMAINS in enabled:
            self._attempt(run, Component.DOMAINS, primary.name, lambda: self._edge(run))
        if Component.GITHUB_OIDC in enabled:
            self._attempt(run, Component.GITHUB_OIDC, None, lambda: self._github_oidc(run))

        result = ResolutionResult(
            units=run.registry.units,
            failures=list(run.failures),
            ledger=run.registry.ledger,
        )
        logger.info(
            "Resolution finished",
            extra={
                "units": len(result.units),
                "failures": len(result.failures),
                "danglingLookups": result.ledger.dangling(),
            },
        )
        return result

    # ------------------------------------------------------------------
    # Error boundary
    # ------------------------------------------------------------------

    def _attempt(self, run: _Pass, component: Component, environment: str | None, step: Callable[[], None]) -> None:
        log_extra = {"component": component.value, "environment": environment}
        try:
            step()
        except ConfigurationError:
            raise
        except (TopologyError, OrchestrationError) as e:
            logger.error("Component failed", extra={**log_extra, "error": str(e)})
            run.failures.append(e)
        except Exception as e:
            error = OrchestrationError(
                "Stack builder failed", component=component.value, cause=e, environment=environment,
            )
            logger.error("Component failed", extra={**log_extra, "error": str(error)})
            run.failures.append(error)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _naming(self, target: DeploymentTarget, region: str | None = None) -> NamingContext:
        naming = self.manifest.naming
        return NamingContext(
            company=naming.company,
            project=naming.project,
            environment=target.name,
            region=region or target.region,
            account_id=target.account_id,
            owner=self.manifest.owner,
        )

    def _stack_name(self, naming: NamingContext, component: Component, name: str) -> str:
        skip = self.manifest.naming.skip_environment_name and (
            component.scope is DeploymentScope.SINGLE_ACCOUNT or component is Component.DOMAINS
        )
        return naming.stack_name(name, skip_environment=skip)

    def _add(
        self,
        run: _Pass,
        component: Component,
        target: DeploymentTarget,
        name: str,
        stack_class: type,
        depends_on: Sequence[DeployableUnit | None] = (),
        region: str | None = None,
        naming: NamingContext | None = None,
        **props,
    ) -> DeployableUnit:
        naming = naming or self._naming(target, region)
        stack_name = self._stack_name(naming, component, name)
        registry = run.registry

        unit = registry.add(
            stack_name,
            component,
            target,
            lambda: stack_class(
                run.app, stack_name,
                naming=naming,
                component=component,
                ledger=registry.ledger,
                **props,
            ),
            depends_on=[u for u in depends_on if u is not None],
            region=naming.region,
        )
        run.units_by_component.setdefault(component, []).append(unit)
        return unit

    @staticmethod
    def _direct(producer: DeployableUnit | None, consumer: DeploymentTarget) -> DeployableUnit | None:
        """The producer unit when it can be referenced in-process, else None."""
        if producer is not None and classify(producer, consumer) is Linkage.DIRECT:
            return producer
        return None

    # ------------------------------------------------------------------
    # Single-account components
    # ------------------------------------------------------------------

    def _organization(self, run: _Pass, primary: DeploymentTarget) -> None:
        self._add(
            run, Component.ORGANIZATION, primary, "Organizations", OrganizationsStack,
            config=self.manifest.organization,
        )

    def _identity_center(self, run: _Pass, primary: DeploymentTarget) -> None:
        account_ids = {name: env.account_id for name, env in self.manifest.environments.items()}
        organizations = run.units_by_component.get(Component.ORGANIZATION, [])
        upstream = organizations[0] if organizations else None
        if upstream is not None:
            account_ids.update(upstream.handle.account_ids)

        self._add(
            run, Component.IDENTITY_CENTER, primary, "IdentityCenter", IdentityCenterStack,
            depends_on=[upstream],
            config=self.manifest.identity_center,
            account_ids=account_ids,
        )

    # ------------------------------------------------------------------
    # Infrastructure family
    # ------------------------------------------------------------------

    def _infrastructure(self, run: _Pass, target: DeploymentTarget) -> None:
        infra = self.manifest.infrastructure
        component = Component.INFRASTRUCTURE
        domains = delegation_domains(self.manifest)
        management = management_target(self.manifest, component) if domains else None

        vpc = self._add(run, component, target, "Vpc", VpcStack, settings=infra.vpc)
        alb = self._add(
            run, component, target, "Alb", AlbStack,
            depends_on=[vpc],
            vpc=vpc.handle.vpc,
            security_group=vpc.handle.alb_security_group,
            settings=infra.alb,
        )
        network = _Network(vpc=vpc)
        run.networks[target.name] = network

        if management is None:
            logger.info(
                "No delegated domains, skipping subdomain zones and HTTPS listener",
                extra={"component": component.value, "environment": target.name},
            )
            return

        zones = self._add(
            run, component, target, "SubdomainZone", SubdomainZoneStack,
            domains=domains,
            management_account_id=management.account_id,
        )
        network.listener = self._add(
            run, component, target, "AlbHttpsListener", AlbHttpsListenerStack,
            depends_on=[alb, zones],
            alb=alb.handle.alb,
            certificates=zones.handle.certificates,
        )
        self._add(
            run, component, target, "AlbDnsRecord", AlbDnsRecordStack,
            depends_on=[alb, zones],
            alb=alb.handle.alb,
            subdomain_zones=zones.handle.subdomain_zones,
        )

    def _workload_params(self, run: _Pass, target: DeploymentTarget) -> None:
        component = Component.WORKLOAD_PARAMS
        management = management_target(self.manifest, component)
        network = run.networks.get(target.name)
        self._add(
            run, component, target, "WorkloadParams", WorkloadParamsStack,
            depends_on=[network.vpc if network else None],
            management_account_id=management.account_id,
            delegation_domains=delegation_domains(self.manifest),
        )

    # ------------------------------------------------------------------
    # Compute family
    # ------------------------------------------------------------------

    def _saas_workload(self, run: _Pass, target: DeploymentTarget) -> None:
        component = Component.SAAS_WORKLOAD
        topology = derive_topology(self.manifest, target.name)
        log_extra = {"component": component.value, "environment": target.name}

        if not topology.needs_compute:
            logger.info("No brand needs compute, skipping workload units", extra=log_extra)
            return

        network = run.networks.get(target.name)
        vpc = self._direct(network.vpc if network else None, target)
        listener = self._direct(network.listener if network else None, target)
        workload_vpc = vpc.handle.vpc if vpc else None
        security_group = vpc.handle.ecs_security_group if vpc else None
        defaults = self.manifest.defaults

        cluster = self._add(
            run, component, target, "ECSCluster", ClusterStack,
            depends_on=[vpc],
            vpc=workload_vpc,
        )

        secrets = None
        if topology.secret_items:
            secrets = self._add(
                run, component, target, "Secrets", SecretsStack,
                items=topology.secret_items,
                brands=topology.service_brands,
            )

        aurora = None
        if topology.database_brands:
            aurora = self._add(
                run, component, target, "Aurora", DatabaseStack,
                depends_on=[vpc],
                databases=topology.database_brands,
                settings=defaults.aurora,
                ecs_security_group=security_group,
                vpc=workload_vpc,
            )
        else:
            logger.info("No database brands, skipping Aurora", extra=log_extra)

        ecr = self._add(
            run, component, target, "ECR", RepositoryStack,
            webapp_brands=topology.webapp_brands,
            api_brands=topology.api_brands,
        )

        service_props = {
            "cluster": cluster.handle.cluster,
            "secrets": secrets.handle.secrets if secrets else None,
            "stripe_prices": topology.stripe_prices,
            "listener": listener.handle.listener if listener else None,
            "ecs_security_group": security_group,
            "known_brands": [*topology.service_brands, *topology.api_brands],
        }
        if topology.webapp_brands:
            self._add(
                run, component, target, "Webapp", ServiceStack,
                depends_on=[cluster, ecr, secrets, listener],
                service_type="webapp",
                brands=topology.webapp_brands,
                repositories=ecr.handle.webapp_repositories,
                settings=defaults.ecs.webapp,
                **service_props,
            )
        if topology.api_brands:
            self._add(
                run, component, target, "Api", ServiceStack,
                depends_on=[cluster, ecr, secrets, aurora, listener],
                service_type="api",
                brands=topology.api_brands,
                repositories=ecr.handle.api_repositories,
                settings=defaults.ecs.api,
                **service_props,
            )

    def _static_hosting(self, run: _Pass, target: DeploymentTarget) -> None:
        component = Component.STATIC_HOSTING
        brands = static_hosting_brands(self.manifest)
        if not brands:
            logger.info(
                "No brands with a static site, skipping",
                extra={"component": component.value, "environment": target.name},
            )
            return
        config = self.manifest.static_hosting
        management_account_id = config.management_account_id or primary_target(self.manifest).account_id
        self._add(
            run, component, target, "StaticHosting", StaticHostingStack,
            brands=brands,
            management_account_id=management_account_id,
            versioned=config.enable_versioning,
        )

    # ------------------------------------------------------------------
    # Edge family (management account)
    # ------------------------------------------------------------------

    def _edge(self, run: _Pass) -> None:
        manifest = self.manifest
        component = Component.DOMAINS
        primary = resolve_targets(manifest, component)[0]
        edge_region = self.settings.edge_region
        edge_target = DeploymentTarget(primary.name, primary.account_id, edge_region)

        domains = zone_domains(manifest)
        apps = edge_apps(manifest)
        workload_accounts = [
            environment_target(manifest, name, component).account_id
            for name in edge_environments(manifest)
        ]

        root = self._add(
            run, component, primary, "RootDomain", RootDomainStack,
            domains=domains,
            delegation_domains=delegation_domains(manifest),
            workload_account_ids=workload_accounts,
        )
        if not apps:
            return

        # Root zones are only handed over when the edge region is the primary region
        direct_root = self._direct(root, edge_target)
        zones = direct_root.handle.hosted_zones if direct_root else None
        edge_domains = {a.domain for a in apps}

        acm_waf = self._add(
            run, component, edge_target, "AcmAndWaf", AcmWafStack,
            depends_on=[root],
            domains=[d for d in domains if d.name in edge_domains],
            zones=zones,
            nprd_allowed_cidrs=manifest.domains.nprd_allowed_cidrs_waf if manifest.domains else (),
        )

        hosts = edge_hosts(manifest)
        if not hosts:
            return

        naming = self._naming(primary)
        origin_namings = {}
        for name in {h.environment for h in hosts}:
            env = environment_target(manifest, name, component)
            origin_namings[name] = naming.for_environment(name, env.region, env.account_id)

        cloudfront = self._add(
            run, component, edge_target, "CloudFront", EdgeDistributionStack,
            depends_on=[acm_waf],
            hosts=hosts,
            certificates=acm_waf.handle.certificates,
            prod_web_acl_arn=acm_waf.handle.prod_web_acl_arn,
            nprd_web_acl_arn=acm_waf.handle.nprd_web_acl_arn,
            origin_namings=origin_namings,
        )
        self._add(
            run, component, edge_target, "DnsRecords", DnsRecordsStack,
            depends_on=[cloudfront, root],
            hosts=hosts,
            distributions=cloudfront.handle.distributions,
            zones=zones,
        )

    # ------------------------------------------------------------------
    # GitHub OIDC (one role per target project and environment)
    # ------------------------------------------------------------------

    def _github_oidc(self, run: _Pass) -> None:
        component = Component.GITHUB_OIDC
        allowed = {t.name for t in resolve_targets(self.manifest, component, run.only)}

        for oidc in self.manifest.github_oidc.targets:
            for env_name in oidc.target_environments:
                if env_name not in allowed:
                    continue
                target = environment_target(self.manifest, env_name, component)
                self._attempt(
                    run, component, env_name,
                    lambda o=oidc, t=target: self._github_oidc_target(run, o, t),
                )

    def _github_oidc_target(self, run: _Pass, oidc, target: DeploymentTarget) -> None:
        component = Component.GITHUB_OIDC
        naming = self._naming(target).for_project(oidc.project_name)
        # One provider per account; later targets import it and deploy after its creator
        creator = run.oidc_providers.get(target.account_id)
        unit = self._add(
            run, component, target, "GitHubOIDC", GithubOidcStack,
            depends_on=[creator],
            naming=naming,
            repositories=oidc.repositories,
            create_provider=creator is None,
            ecr_repository_prefix=oidc.ecr_repository_prefix,
            s3_bucket_prefix=oidc.s3_bucket_prefix,
            ecs_cluster_prefix=oidc.ecs_cluster_prefix,
        )
        if creator is None:
            run.oidc_providers[target.account_id] = unit
