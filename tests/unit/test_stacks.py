"""
Stack builder tests.

Each builder is synthesized into a fresh App and inspected with
aws_cdk.assertions. Producers a builder needs (VPC, listener, repositories)
are real stacks in the same account/region, wired directly the way the
orchestrator wires them.
"""
import aws_cdk as cdk
import pytest
from aws_cdk import aws_certificatemanager as acm
from aws_cdk.assertions import Match, Template

from stackwright.components import Component
from stackwright.manifest import AlbSettings, OidcRepository, ServiceSettings, VpcSettings
from stackwright.naming import NamingContext
from stackwright.stacks.alb_https_listener_stack import AlbHttpsListenerStack
from stackwright.stacks.alb_stack import AlbStack
from stackwright.stacks.cluster_stack import ClusterStack
from stackwright.stacks.github_oidc_stack import GithubOidcStack, allowed_subjects
from stackwright.stacks.repository_stack import RepositoryStack
from stackwright.stacks.secrets_stack import SecretsStack
from stackwright.stacks.service_stack import ServiceStack, container_port
from stackwright.stacks.static_hosting_stack import StaticHostingStack
from stackwright.stacks.vpc_stack import VpcStack
from stackwright.topology import SecretItem, StripePriceIds, secret_items

MGMT = "111111111111"
NPRD = "222222222222"
CERT_ARN = f"arn:aws:acm:us-east-1:{NPRD}:certificate/00000000-0000-0000-0000-000000000000"

NAMING = NamingContext("acme", "saas", "nprd", "us-east-1", NPRD)


def _stack(app, stack_class, name, component=Component.SAAS_WORKLOAD, naming=NAMING, **props):
    return stack_class(app, f"Saas-NonProd-{name}-Stack", naming=naming, component=component, **props)


def _ssm_names(template):
    return {
        r["Properties"]["Name"]
        for r in template.find_resources("AWS::SSM::Parameter").values()
    }


# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------

def test_vpc_stack_subnets_and_parameters():
    app = cdk.App()
    stack = _stack(app, VpcStack, "Vpc", Component.INFRASTRUCTURE, settings=VpcSettings(max_azs=2))
    template = Template.from_stack(stack)

    template.resource_count_is("AWS::EC2::Subnet", 6)
    template.resource_count_is("AWS::EC2::FlowLog", 1)
    template.has_resource_properties("AWS::EC2::VPC", {"CidrBlock": "10.0.0.0/16"})
    assert {
        "/acme/saas/nprd/vpc/id",
        "/acme/saas/nprd/vpc/ecs-security-group-id",
        "/acme/saas/nprd/alb/security-group-id",
    } <= _ssm_names(template)


def test_vpc_stack_carries_standard_tags():
    app = cdk.App()
    stack = _stack(app, VpcStack, "Vpc", Component.INFRASTRUCTURE, settings=VpcSettings(enable_flow_logs=False))
    template = Template.from_stack(stack)

    template.resource_count_is("AWS::EC2::FlowLog", 0)
    template.has_resource_properties("AWS::EC2::VPC", {
        "Tags": Match.array_with([
            {"Key": "Component", "Value": "infrastructure"},
            {"Key": "ManagedBy", "Value": "stackwright"},
        ]),
    })


def _network(app):
    vpc = _stack(app, VpcStack, "Vpc", Component.INFRASTRUCTURE, settings=VpcSettings())
    alb = _stack(
        app, AlbStack, "Alb", Component.INFRASTRUCTURE,
        vpc=vpc.vpc, security_group=vpc.alb_security_group, settings=AlbSettings(),
    )
    certificate = acm.Certificate.from_certificate_arn(vpc, "ImportedCertificate", CERT_ARN)
    listener = _stack(
        app, AlbHttpsListenerStack, "AlbHttpsListener", Component.INFRASTRUCTURE,
        alb=alb.alb, certificates={"globex.com": certificate},
    )
    return vpc, alb, listener


def test_https_listener():
    app = cdk.App()
    _, _, listener = _network(app)
    template = Template.from_stack(listener)

    template.has_resource_properties("AWS::ElasticLoadBalancingV2::Listener", {
        "Port": 443,
        "Protocol": "HTTPS",
        "Certificates": [{"CertificateArn": CERT_ARN}],
        "DefaultActions": [Match.object_like({
            "Type": "fixed-response",
            "FixedResponseConfig": Match.object_like({"StatusCode": "404"}),
        })],
    })
    assert "/acme/saas/nprd/alb/https-listener-arn" in _ssm_names(template)


def test_https_listener_needs_certificates():
    app = cdk.App()
    vpc = _stack(app, VpcStack, "Vpc", Component.INFRASTRUCTURE, settings=VpcSettings())
    alb = _stack(
        app, AlbStack, "Alb", Component.INFRASTRUCTURE,
        vpc=vpc.vpc, security_group=vpc.alb_security_group, settings=AlbSettings(),
    )
    with pytest.raises(ValueError, match="certificate"):
        _stack(app, AlbHttpsListenerStack, "AlbHttpsListener", Component.INFRASTRUCTURE, alb=alb.alb, certificates={})


# ---------------------------------------------------------------------------
# Compute
# ---------------------------------------------------------------------------

@pytest.fixture
def api_stack():
    app = cdk.App()
    vpc, _, listener = _network(app)
    cluster = _stack(app, ClusterStack, "ECSCluster", vpc=vpc.vpc)
    brands = ["core", "acme"]
    secrets = _stack(app, SecretsStack, "Secrets", items=secret_items(["acme"], brands), brands=["acme"])
    ecr = _stack(app, RepositoryStack, "ECR", api_brands=brands)
    api = _stack(
        app, ServiceStack, "Api",
        service_type="api",
        brands=brands,
        cluster=cluster.cluster,
        repositories=ecr.api_repositories,
        settings=ServiceSettings(cpu=512, memory_mib=1024),
        secrets=secrets.secrets,
        stripe_prices=StripePriceIds(monthly={"acme": "price_m"}),
        listener=listener.listener,
        ecs_security_group=vpc.ecs_security_group,
        known_brands=["acme", *brands],
    )
    return api


def _containers(template):
    containers = {}
    for task in template.find_resources("AWS::ECS::TaskDefinition").values():
        for container in task["Properties"]["ContainerDefinitions"]:
            containers[container["Name"]] = container
    return containers


def test_api_listener_rules_put_core_last(api_stack):
    template = Template.from_stack(api_stack)

    template.resource_count_is("AWS::ElasticLoadBalancingV2::ListenerRule", 2)
    template.has_resource_properties("AWS::ElasticLoadBalancingV2::ListenerRule", {
        "Priority": 101,
        "Conditions": [
            {"Field": "http-header", "HttpHeaderConfig": {"HttpHeaderName": "X-Forwarded-Brand", "Values": ["acme"]}},
            {"Field": "http-header", "HttpHeaderConfig": {"HttpHeaderName": "X-Forwarded-Service", "Values": ["api"]}},
        ],
    })
    template.has_resource_properties("AWS::ElasticLoadBalancingV2::ListenerRule", {
        "Priority": 102,
        "Conditions": [
            {"Field": "http-header", "HttpHeaderConfig": {"HttpHeaderName": "X-Forwarded-Service", "Values": ["api"]}},
        ],
    })


def test_api_target_groups(api_stack):
    template = Template.from_stack(api_stack)

    template.resource_count_is("AWS::ECS::Service", 2)
    template.has_resource_properties("AWS::ElasticLoadBalancingV2::TargetGroup", {
        "Port": 3003,
        "TargetType": "ip",
        "HealthCheckPath": "/health",
    })
    template.has_resource_properties("AWS::ElasticLoadBalancingV2::TargetGroup", {
        "Port": 3000,
        "TargetType": "ip",
    })


def test_api_container_secrets_and_environment(api_stack):
    containers = _containers(Template.from_stack(api_stack))
    core_secrets = {s["Name"] for s in containers["core"]["Secrets"]}
    acme_secrets = {s["Name"] for s in containers["acme"]["Secrets"]}

    assert {"DATABASE_URL_CORE", "AUTH_SECRET", "STRIPE_SECRET_KEY_ACME", "AUTH_GOOGLE_ID_ACME"} <= core_secrets
    assert "DATABASE_URL_ACME" not in core_secrets
    assert {"DATABASE_URL_CORE", "DATABASE_URL_ACME", "STRIPE_WEBHOOK_SECRET_ACME"} <= acme_secrets

    acme_env = {e["Name"]: e["Value"] for e in containers["acme"]["Environment"]}
    assert acme_env["BRAND"] == "acme"
    assert acme_env["SERVICE"] == "api"
    assert acme_env["NODE_ENV"] == "development"
    assert acme_env["STRIPE_PRICE_ID_MONTHLY_ACME"] == "price_m"
    assert containers["acme"]["PortMappings"][0]["ContainerPort"] == 3003


def test_container_ports():
    assert container_port("webapp", "acme") == 3000
    assert container_port("api", "core") == 3000
    assert container_port("api", "acme") == 3003


def test_service_stack_requires_repositories():
    app = cdk.App()
    vpc, _, listener = _network(app)
    cluster = _stack(app, ClusterStack, "ECSCluster", vpc=vpc.vpc)
    with pytest.raises(ValueError, match="acme"):
        _stack(
            app, ServiceStack, "Webapp",
            service_type="webapp", brands=["acme"], cluster=cluster.cluster, repositories={},
            settings=ServiceSettings(), listener=listener.listener, ecs_security_group=vpc.ecs_security_group,
        )


def test_repository_stack():
    app = cdk.App()
    stack = _stack(app, RepositoryStack, "ECR", webapp_brands=["acme"], api_brands=["core", "acme"])
    template = Template.from_stack(stack)

    template.resource_count_is("AWS::ECR::Repository", 3)
    template.has_resource_properties("AWS::ECR::Repository", {"RepositoryName": "saas-nprd-acme-webapp"})
    assert "/acme/saas/nprd/ecr/acme/api-repository-name" in _ssm_names(template)


def test_cluster_stack_looks_up_vpc_when_not_given():
    app = cdk.App()
    stack = _stack(app, ClusterStack, "ECSCluster")
    template = Template.from_stack(stack)

    template.has_resource_properties("AWS::ECS::Cluster", {"ClusterName": "saas-nprd-cluster"})
    assert stack.consumed_paths == ["/acme/saas/nprd/vpc/id"]


# ---------------------------------------------------------------------------
# Secrets
# ---------------------------------------------------------------------------

def test_secrets_stack_names():
    app = cdk.App()
    stack = _stack(app, SecretsStack, "Secrets", items=secret_items(["acme"], ["core", "acme"]), brands=["acme"])
    template = Template.from_stack(stack)
    names = {r["Properties"]["Name"] for r in template.find_resources("AWS::SecretsManager::Secret").values()}

    assert names == {
        "saas/nprd/database-url-core",
        "saas/nprd/database-url-acme",
        "saas/nprd/auth-secret",
        "saas/nprd/stripe-secret-key-acme",
        "saas/nprd/stripe-webhook-secret-acme",
        "saas/nprd/stripe-publishable-key-acme",
        "saas/nprd/google-oauth/acme",
    }
    assert set(stack.secrets) >= {"google-oauth-acme", "auth-secret"}
    template.has_resource_properties("AWS::SecretsManager::Secret", {
        "Name": "saas/nprd/auth-secret",
        "GenerateSecretString": Match.object_like({"PasswordLength": 32, "ExcludePunctuation": True}),
    })
    template.has_resource("AWS::SecretsManager::Secret", {"DeletionPolicy": "Retain"})
    template.resource_count_is("AWS::IAM::ManagedPolicy", 1)


def test_secrets_stack_rejects_per_brand_without_brands():
    app = cdk.App()
    item = SecretItem("google-oauth", "Google OAuth", per_brand=True, json_fields=("clientId",))
    with pytest.raises(ValueError, match="per brand"):
        _stack(app, SecretsStack, "Secrets", items=[item])


def test_secrets_stack_rejects_empty():
    with pytest.raises(ValueError):
        _stack(cdk.App(), SecretsStack, "Secrets", items=[])


# ---------------------------------------------------------------------------
# Static hosting
# ---------------------------------------------------------------------------

def test_static_hosting_bucket_trusts_management_cloudfront():
    app = cdk.App()
    stack = _stack(
        app, StaticHostingStack, "StaticHosting", Component.STATIC_HOSTING,
        brands=["globex"], management_account_id=MGMT,
    )
    template = Template.from_stack(stack)

    template.has_resource_properties("AWS::S3::Bucket", {
        "BucketName": "saas-nprd-static-globex",
        "VersioningConfiguration": {"Status": "Enabled"},
    })
    template.has_resource_properties("AWS::S3::BucketPolicy", {
        "PolicyDocument": {
            "Statement": Match.array_with([Match.object_like({
                "Sid": "AllowCloudFrontOAC",
                "Principal": {"Service": "cloudfront.amazonaws.com"},
                "Condition": {"StringEquals": {"AWS:SourceAccount": MGMT}},
            })]),
        },
    })
    assert {
        "/acme/saas/nprd/static/globex/bucket-name",
        "/acme/saas/nprd/static/globex/bucket-domain",
    } <= _ssm_names(template)


def test_static_hosting_needs_brands():
    with pytest.raises(ValueError):
        _stack(cdk.App(), StaticHostingStack, "StaticHosting", Component.STATIC_HOSTING,
               brands=[], management_account_id=MGMT)


# ---------------------------------------------------------------------------
# GitHub OIDC
# ---------------------------------------------------------------------------

def test_allowed_subjects():
    repos = [
        OidcRepository(owner="acme", repo="app"),
        OidcRepository(owner="acme", repo="infra", branch="refs/heads/release/*", allow_tags=False),
    ]
    assert allowed_subjects(repos) == [
        "repo:acme/app:ref:refs/heads/main",
        "repo:acme/app:ref:refs/tags/v*",
        "repo:acme/infra:refs/heads/release/*",
    ]


def test_github_oidc_creates_provider_and_role():
    app = cdk.App()
    stack = _stack(
        app, GithubOidcStack, "GitHubOIDC", Component.GITHUB_OIDC,
        repositories=[OidcRepository(owner="acme", repo="app")],
    )
    template = Template.from_stack(stack)

    template.resource_count_is("Custom::AWSCDKOpenIdConnectProvider", 1)
    template.has_resource_properties("AWS::IAM::Role", {
        "RoleName": "saas-nprd-github-actions",
        "AssumeRolePolicyDocument": {
            "Statement": [Match.object_like({
                "Action": "sts:AssumeRoleWithWebIdentity",
                "Condition": {
                    "StringEquals": {"token.actions.githubusercontent.com:aud": "sts.amazonaws.com"},
                    "StringLike": {"token.actions.githubusercontent.com:sub": [
                        "repo:acme/app:ref:refs/heads/main",
                        "repo:acme/app:ref:refs/tags/v*",
                    ]},
                },
            })],
        },
    })
    assert "/acme/saas/nprd/github/actions-role-arn" in _ssm_names(template)


def test_github_oidc_imports_existing_provider():
    app = cdk.App()
    stack = _stack(
        app, GithubOidcStack, "GitHubOIDC", Component.GITHUB_OIDC,
        repositories=[OidcRepository(owner="acme", repo="app")],
        create_provider=False,
    )
    template = Template.from_stack(stack)
    template.resource_count_is("Custom::AWSCDKOpenIdConnectProvider", 0)


def test_github_oidc_filters_repositories_by_environment():
    with pytest.raises(ValueError, match="nprd"):
        _stack(
            cdk.App(), GithubOidcStack, "GitHubOIDC", Component.GITHUB_OIDC,
            repositories=[OidcRepository(owner="acme", repo="app", environments=["prod"])],
        )
