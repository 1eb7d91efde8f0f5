"""
Service Stack
=============
Fargate services for one service type (webapp or api), one per brand, all
on the environment's shared cluster behind the shared HTTPS listener.

Routing: CloudFront sets X-Forwarded-Brand / X-Forwarded-Service on every
origin request and each brand gets a listener rule matching on them. The
core API matches on the service header only, so it also catches brands
without their own API. Rules are created here, in the consumer stack, so
the listener stack never needs to know which services exist.

Priorities: webapp rules start at 1, api rules at 101, in brand order with
the core API rule last.
"""
from typing import Literal, Mapping, Sequence

import aws_cdk as cdk
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_ecr as ecr
from aws_cdk import aws_ecs as ecs
from aws_cdk import aws_elasticloadbalancingv2 as elbv2
from aws_cdk import aws_iam as iam
from aws_cdk import aws_logs as logs
from aws_cdk import aws_secretsmanager as secretsmanager
from constructs import Construct

from stackwright.manifest import ServiceSettings
from stackwright.naming import pascal_case
from stackwright.stacks.base_stack import BaseStack
from stackwright.topology import CORE_BRAND, StripePriceIds, group_secrets_by_brand

ServiceType = Literal["webapp", "api"]

WEBAPP_PORT = 3000
CORE_API_PORT = 3000
BRAND_API_PORT = 3003

HEALTH_CHECK_PATHS = {"webapp": "/api/health", "api": "/health"}
PRIORITY_OFFSETS = {"webapp": 0, "api": 100}


def container_port(service_type: ServiceType, brand: str) -> int:
    if service_type == "webapp":
        return WEBAPP_PORT
    return CORE_API_PORT if brand == CORE_BRAND else BRAND_API_PORT


def _env_suffix(brand: str) -> str:
    return brand.upper().replace("-", "_")


class ServiceStack(BaseStack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        service_type: ServiceType,
        brands: Sequence[str],
        cluster: ecs.ICluster,
        repositories: Mapping[str, ecr.IRepository],
        settings: ServiceSettings,
        secrets: Mapping[str, secretsmanager.ISecret] | None = None,
        stripe_prices: StripePriceIds | None = None,
        listener: elbv2.IApplicationListener | None = None,
        ecs_security_group: ec2.ISecurityGroup | None = None,
        known_brands: Sequence[str] = (),
        **kwargs,
    ):
        """
        `known_brands` are every brand that may own a secret, so keys like
        `database-url-acme` are scoped to `acme` even when `acme` runs no
        service of this type.
        """
        super().__init__(scope, id, **kwargs)

        if not brands:
            raise ValueError(f"No brands for the {service_type} service")
        missing = [b for b in brands if b not in repositories]
        if missing:
            raise ValueError(f"No image repository for {service_type} brands: {', '.join(missing)}")

        self.service_type = service_type
        self.brands = list(brands)
        self.services: dict[str, ecs.FargateService] = {}
        self.listener_rules: dict[str, elbv2.ApplicationListenerRule] = {}

        self._grouped = group_secrets_by_brand(secrets or {}, [*self.brands, *known_brands])
        self._prices = stripe_prices or StripePriceIds()
        self._security_group = self.resolve_ecs_security_group(ecs_security_group)
        self._listener = listener or self._imported_listener()

        self._execution_role = iam.Role(
            self, "TaskExecutionRole",
            role_name=self.naming.resource_name(service_type, "task-exec"),
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name("service-role/AmazonECSTaskExecutionRolePolicy"),
            ],
        )
        self._task_role = iam.Role(
            self, "TaskRole",
            role_name=self.naming.resource_name(service_type, "task"),
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
        )

        # The core API rule matches on the service header alone, so it must be evaluated last
        ordered = sorted(self.brands, key=lambda b: b == CORE_BRAND)
        for index, brand in enumerate(ordered):
            self._brand_service(brand, cluster, repositories[brand], settings, index)

    def _imported_listener(self) -> elbv2.IApplicationListener:
        alb_security_group = ec2.SecurityGroup.from_security_group_id(
            self, "AlbSecurityGroup", self.lookup("alb", "security-group-id"),
        )
        return elbv2.ApplicationListener.from_application_listener_attributes(
            self, "HttpsListener",
            listener_arn=self.lookup("alb", "https-listener-arn"),
            security_group=alb_security_group,
        )

    def _brand_service(
        self,
        brand: str,
        cluster: ecs.ICluster,
        repository: ecr.IRepository,
        settings: ServiceSettings,
        index: int,
    ) -> None:
        label = pascal_case(brand)
        port = container_port(self.service_type, brand)
        name = self.naming.resource_name(self.service_type, brand)

        log_group = logs.LogGroup(
            self, f"{label}LogGroup",
            log_group_name=f"/ecs/{name}",
            retention=logs.RetentionDays.ONE_MONTH,
            removal_policy=cdk.RemovalPolicy.DESTROY,
        )
        task_definition = ecs.FargateTaskDefinition(
            self, f"{label}TaskDef",
            family=name,
            cpu=settings.cpu,
            memory_limit_mib=settings.memory_mib,
            execution_role=self._execution_role,
            task_role=self._task_role,
        )
        container_secrets = self._container_secrets(brand)
        task_definition.add_container(
            f"{label}Container",
            container_name=brand,
            image=ecs.ContainerImage.from_ecr_repository(repository, "latest"),
            port_mappings=[ecs.PortMapping(container_port=port)],
            logging=ecs.LogDrivers.aws_logs(stream_prefix=brand, log_group=log_group),
            environment=self._container_environment(brand),
            secrets=container_secrets or None,
        )

        service = ecs.FargateService(
            self, f"{label}Service",
            service_name=name,
            cluster=cluster,
            task_definition=task_definition,
            desired_count=settings.desired_count,
            security_groups=[self._security_group],
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
            assign_public_ip=False,
            circuit_breaker=ecs.DeploymentCircuitBreaker(enable=True, rollback=False),
        )
        self.services[brand] = service

        target_group = elbv2.ApplicationTargetGroup(
            self, f"{label}TargetGroup",
            target_group_name=self.naming.resource_name(f"{self.service_type}-tg", brand)[:32].rstrip("-"),
            vpc=cluster.vpc,
            port=port,
            protocol=elbv2.ApplicationProtocol.HTTP,
            target_type=elbv2.TargetType.IP,
            health_check=elbv2.HealthCheck(
                path=HEALTH_CHECK_PATHS[self.service_type],
                healthy_threshold_count=2,
                unhealthy_threshold_count=3,
                interval=cdk.Duration.seconds(30),
                timeout=cdk.Duration.seconds(5),
            ),
            targets=[service],
        )

        self.listener_rules[brand] = elbv2.ApplicationListenerRule(
            self, f"{label}ListenerRule",
            listener=self._listener,
            priority=PRIORITY_OFFSETS[self.service_type] + index + 1,
            conditions=self._conditions(brand),
            action=elbv2.ListenerAction.forward([target_group]),
        )

    def _conditions(self, brand: str) -> list[elbv2.ListenerCondition]:
        service = elbv2.ListenerCondition.http_header("X-Forwarded-Service", [self.service_type])
        if self.service_type == "api" and brand == CORE_BRAND:
            return [service]
        return [elbv2.ListenerCondition.http_header("X-Forwarded-Brand", [brand]), service]

    def _container_environment(self, brand: str) -> dict[str, str]:
        env = self.naming.environment
        environment = {
            "BRAND": brand,
            "SERVICE": self.service_type,
            "APP_ENV": env,
            "NODE_ENV": "production" if env == "prod" else "development",
        }
        # The core API bills for every brand
        price_brands = self._shared_brands(brand, list(self._prices.monthly) + list(self._prices.annual))
        for price_brand in price_brands:
            suffix = _env_suffix(price_brand)
            if price_brand in self._prices.monthly:
                environment[f"STRIPE_PRICE_ID_MONTHLY_{suffix}"] = self._prices.monthly[price_brand]
            if price_brand in self._prices.annual:
                environment[f"STRIPE_PRICE_ID_ANNUAL_{suffix}"] = self._prices.annual[price_brand]
        return environment

    def _shared_brands(self, brand: str, candidates: Sequence[str]) -> list[str]:
        """Brands whose credentials this brand's container receives."""
        if self.service_type == "api" and brand == CORE_BRAND:
            return list(dict.fromkeys(candidates))
        return [brand] if brand in candidates else []

    def _container_secrets(self, brand: str) -> dict[str, ecs.Secret]:
        grouped = self._grouped
        secrets: dict[str, ecs.Secret] = {}

        database_urls = grouped.get("database-url", {})
        if self.service_type == "api":
            if CORE_BRAND in database_urls:
                secrets["DATABASE_URL_CORE"] = ecs.Secret.from_secrets_manager(database_urls[CORE_BRAND])
            if brand != CORE_BRAND and brand in database_urls:
                secrets[f"DATABASE_URL_{_env_suffix(brand)}"] = ecs.Secret.from_secrets_manager(
                    database_urls[brand],
                )
        else:
            database_url = database_urls.get(brand) or database_urls.get(CORE_BRAND)
            if database_url is not None:
                secrets["DATABASE_URL"] = ecs.Secret.from_secrets_manager(database_url)

        auth = grouped.get("auth-secret", {}).get(CORE_BRAND)
        if auth is not None:
            secrets["AUTH_SECRET"] = ecs.Secret.from_secrets_manager(auth)

        for prefix, variable in (
            ("stripe-secret-key", "STRIPE_SECRET_KEY"),
            ("stripe-webhook-secret", "STRIPE_WEBHOOK_SECRET"),
            ("stripe-publishable-key", "STRIPE_PUBLISHABLE_KEY"),
        ):
            by_brand = grouped.get(prefix, {})
            for owner in self._shared_brands(brand, list(by_brand)):
                secrets[f"{variable}_{_env_suffix(owner)}"] = ecs.Secret.from_secrets_manager(by_brand[owner])

        google = grouped.get("google-oauth", {})
        for owner in self._shared_brands(brand, list(google)):
            suffix = _env_suffix(owner)
            secrets[f"AUTH_GOOGLE_ID_{suffix}"] = ecs.Secret.from_secrets_manager(google[owner], "clientId")
            secrets[f"AUTH_GOOGLE_SECRET_{suffix}"] = ecs.Secret.from_secrets_manager(google[owner], "clientSecret")

        return secrets
