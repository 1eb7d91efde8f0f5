"""
Unit tests for the topology deriver.

Covers deployment-target resolution and the expansion of compact brand
flags into API/database/web-hosting sets, secret items and edge hosts.
"""
import pytest

from stackwright.components import Component
from stackwright.errors import ConfigurationError, TopologyError
from stackwright.manifest import parse_manifest
from stackwright.topology import (
    CORE_BRAND,
    delegation_domains,
    delegation_role_arn,
    derive_topology,
    edge_hosts,
    group_secrets_by_brand,
    normalize_brand,
    primary_target,
    resolve_targets,
    static_hosting_brands,
    stripe_prices,
    zone_domains,
)


# ---------------------------------------------------------------------------
# Deployment targets
# ---------------------------------------------------------------------------

def test_primary_target_prefers_mgmt(make_manifest):
    target = primary_target(make_manifest())
    assert (target.name, target.account_id, target.region) == ("mgmt", "111111111111", "us-east-1")
    assert target.is_management


def test_primary_target_falls_back_to_first_environment():
    manifest = parse_manifest({
        "naming": {"company": "acme", "project": "saas"},
        "environments": {
            "nprd": {"accountId": "222222222222", "region": "eu-west-1"},
            "prod": {"accountId": "333333333333"},
        },
    })
    assert primary_target(manifest).name == "nprd"
    assert resolve_targets(manifest, Component.ORGANIZATION)[0].region == "eu-west-1"


def test_empty_environments_is_configuration_error(make_manifest):
    manifest = make_manifest(environments={})
    with pytest.raises(ConfigurationError):
        primary_target(manifest)
    with pytest.raises(ConfigurationError):
        resolve_targets(manifest, Component.ORGANIZATION)


@pytest.mark.parametrize("component", [Component.ORGANIZATION, Component.IDENTITY_CENTER, Component.DOMAINS])
def test_single_account_components_target_primary_only(make_manifest, component):
    targets = resolve_targets(make_manifest(), component)
    assert [t.name for t in targets] == ["mgmt"]


def test_multi_environment_component_targets_every_environment(make_manifest):
    targets = resolve_targets(make_manifest(infrastructure={}), Component.INFRASTRUCTURE)
    assert [(t.name, t.account_id, t.region) for t in targets] == [
        ("mgmt", "111111111111", "us-east-1"),
        ("nprd", "222222222222", "us-east-1"),
    ]


def test_workloads_exclude_mgmt(make_manifest):
    manifest = make_manifest(saasWorkload=[{"name": "acme", "lambdaApi": True}], staticHosting={})
    assert [t.name for t in resolve_targets(manifest, Component.SAAS_WORKLOAD)] == ["nprd"]
    assert [t.name for t in resolve_targets(manifest, Component.STATIC_HOSTING)] == ["nprd"]


def test_infrastructure_target_environments_restrict_targets(make_manifest):
    manifest = make_manifest(infrastructure={"targetEnvironments": ["nprd"]})
    assert [t.name for t in resolve_targets(manifest, Component.INFRASTRUCTURE)] == ["nprd"]


def test_only_filter_narrows_multi_environment_components(make_manifest):
    manifest = make_manifest(infrastructure={})
    assert [t.name for t in resolve_targets(manifest, Component.INFRASTRUCTURE, only="nprd")] == ["nprd"]
    # single-account components ignore the filter
    assert [t.name for t in resolve_targets(manifest, Component.ORGANIZATION, only="nprd")] == ["mgmt"]


def test_unknown_only_filter_is_configuration_error(make_manifest):
    with pytest.raises(ConfigurationError, match="staging"):
        resolve_targets(make_manifest(infrastructure={}), Component.INFRASTRUCTURE, only="staging")


def test_unknown_referenced_environment_names_component(make_manifest):
    manifest = make_manifest(infrastructure={"targetEnvironments": ["nprd", "staging"]})
    with pytest.raises(TopologyError) as excinfo:
        resolve_targets(manifest, Component.INFRASTRUCTURE)
    assert excinfo.value.component == "infrastructure"
    assert "staging" in str(excinfo.value)


def test_github_oidc_targets_follow_target_environments(make_manifest):
    manifest = make_manifest(githubOidc={"targets": [
        {"projectName": "a", "targetEnvironments": ["nprd"], "repositories": []},
        {"projectName": "b", "targetEnvironments": ["mgmt", "nprd"], "repositories": []},
    ]})
    assert [t.name for t in resolve_targets(manifest, Component.GITHUB_OIDC)] == ["nprd", "mgmt"]


# ---------------------------------------------------------------------------
# Derived topology
# ---------------------------------------------------------------------------

def test_single_api_brand_gets_core(make_manifest):
    topology = derive_topology(make_manifest(saasWorkload=[{"name": "acme", "lambdaApi": True}]))
    assert set(topology.api_brands) == {"core", "acme"}
    assert set(topology.database_brands) == {"core", "acme"}
    assert topology.web_hosting_brands == ()
    assert topology.needs_api_compute("acme")
    assert topology.needs_database(CORE_BRAND)
    assert not topology.needs_web_hosting("acme")


def test_core_is_not_duplicated(make_manifest):
    topology = derive_topology(make_manifest(saasWorkload=[
        {"name": "core", "lambdaApi": True},
        {"name": "acme", "services": [{"type": "api"}]},
    ]))
    assert topology.api_brands == ("core", "acme")


def test_webapp_brand_still_gets_core_api(make_manifest):
    topology = derive_topology(make_manifest(saasWorkload=[{"name": "acme", "webapp": True}]))
    assert topology.api_brands == ("core",)
    assert topology.webapp_brands == ("acme",)
    assert topology.web_hosting_brands == ("acme",)
    assert topology.needs_compute


def test_marketing_only_brand_needs_no_compute(make_manifest):
    topology = derive_topology(make_manifest(saasWorkload=[{"name": "acme", "marketing": True}]))
    assert topology.api_brands == ()
    assert topology.database_brands == ()
    assert topology.marketing_brands == ("acme",)
    assert topology.web_hosting_brands == ("acme",)
    assert topology.secret_items == ()
    assert not topology.needs_compute


def test_brand_collision_after_normalization(make_manifest):
    manifest = make_manifest(saasWorkload=[{"name": "Acme_Co", "webapp": True}, {"name": "acme-co"}])
    with pytest.raises(TopologyError, match="collides"):
        derive_topology(manifest)


def test_normalize_brand():
    assert normalize_brand("  Acme_Co ") == "acme-co"


def test_secret_items(make_manifest):
    topology = derive_topology(make_manifest(saasWorkload=[{"name": "acme", "lambdaApi": True}]))
    keys = [item.key for item in topology.secret_items]
    assert keys == [
        "database-url-core",
        "database-url-acme",
        "auth-secret",
        "stripe-secret-key-acme",
        "stripe-webhook-secret-acme",
        "stripe-publishable-key-acme",
        "google-oauth",
    ]
    google = topology.secret_items[-1]
    assert google.per_brand and google.json_fields == ("clientId", "clientSecret")
    assert topology.secret_items[2].generated


def test_group_secrets_by_brand():
    grouped = group_secrets_by_brand(
        {"database-url-acme": "a", "database-url-globex": "g", "auth-secret": "s"},
        ["acme", "globex"],
    )
    assert grouped == {
        "database-url": {"acme": "a", "globex": "g"},
        "auth-secret": {"core": "s"},
    }


def test_group_secrets_prefers_longest_brand():
    grouped = group_secrets_by_brand({"database-url-co-op": "x"}, ["op", "co-op"])
    assert grouped == {"database-url": {"co-op": "x"}}


def test_stripe_prices_per_environment_and_flat(make_manifest):
    manifest = make_manifest(saasWorkload=[
        {"name": "acme", "stripe": {"nprd": {"priceIdMonthly": "m-nprd"}, "prod": {"priceIdMonthly": "m-prod"}}},
        {"name": "globex", "stripe": {"priceIdMonthly": "m-flat", "priceIdAnnual": "a-flat"}},
    ])
    nprd = stripe_prices(manifest, "nprd")
    assert nprd.monthly == {"acme": "m-nprd", "globex": "m-flat"}
    assert nprd.annual == {"globex": "a-flat"}
    assert stripe_prices(manifest, "prod").monthly["acme"] == "m-prod"
    assert stripe_prices(manifest, None).monthly == {"globex": "m-flat"}


def test_stripe_environment_must_exist(make_manifest):
    manifest = make_manifest(saasWorkload=[{"name": "acme", "stripe": {"staging": {"priceIdMonthly": "m"}}}])
    with pytest.raises(TopologyError):
        resolve_targets(manifest, Component.SAAS_WORKLOAD)


# ---------------------------------------------------------------------------
# Edge
# ---------------------------------------------------------------------------

def _edge_manifest(make_manifest, **extra):
    return make_manifest(
        environments={
            "mgmt": {"accountId": "111111111111"},
            "nprd": {"accountId": "222222222222"},
            "prod": {"accountId": "333333333333"},
        },
        saasEdge=[{"domain": "globex.com", "distributions": [{"type": "marketing"}, {"type": "api"}]}],
        **extra,
    )


def test_edge_hosts(make_manifest):
    hosts = {(h.environment, h.type): h for h in edge_hosts(_edge_manifest(make_manifest))}

    assert hosts[("nprd", "marketing")].fqdn == "www-nprd.globex.com"
    assert hosts[("prod", "marketing")].fqdn == "globex.com"
    assert hosts[("prod", "marketing")].aliases == ("www.globex.com",)
    assert hosts[("nprd", "api")].fqdn == "nprd-api.globex.com"
    assert hosts[("prod", "api")].fqdn == "api.globex.com"
    assert hosts[("nprd", "api")].origin_domain == "alb.nprd.globex.com"
    assert hosts[("prod", "api")].production
    assert hosts[("nprd", "marketing")].origin_is_bucket


def test_zone_and_delegation_domains(make_manifest):
    manifest = _edge_manifest(
        make_manifest,
        domains={"registeredDomains": [{"name": "initech.io", "createDelegationRole": True}]},
    )
    assert [d.name for d in zone_domains(manifest)] == ["initech.io", "globex.com"]
    assert delegation_domains(manifest) == ["initech.io", "globex.com"]
    assert delegation_role_arn("111111111111", "globex.com") == (
        "arn:aws:iam::111111111111:role/Route53-Delegation-globex-com"
    )


def test_static_hosting_brands_come_from_edge_marketing(make_manifest):
    assert static_hosting_brands(_edge_manifest(make_manifest)) == ["globex"]
    manifest = make_manifest(saasWorkload=[{"name": "acme", "marketing": True}, {"name": "beta", "lambdaApi": True}])
    assert static_hosting_brands(manifest) == ["acme"]
