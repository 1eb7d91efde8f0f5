"""
Pytest configuration and shared fixtures.
Unit tests build stacks into an in-memory cdk.App and use moto for SSM.
Integration tests synthesize a full cloud assembly (needs node for jsii).
"""
import copy

import aws_cdk as cdk
import pytest

from stackwright.manifest import parse_manifest

MGMT_ACCOUNT = "111111111111"
NPRD_ACCOUNT = "222222222222"
PROD_ACCOUNT = "333333333333"


@pytest.fixture(autouse=True)
def aws_env(monkeypatch):
    """Set fake AWS credentials so boto3 doesn't error in tests."""
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "test")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "test")
    monkeypatch.delenv("STACKWRIGHT_TARGET_ENV", raising=False)
    monkeypatch.delenv("STACKWRIGHT_EDGE_REGION", raising=False)


BASE_MANIFEST = {
    "naming": {"company": "acme", "project": "saas"},
    "environments": {
        "mgmt": {"accountId": MGMT_ACCOUNT, "region": "us-east-1"},
        "nprd": {"accountId": NPRD_ACCOUNT, "region": "us-east-1"},
    },
}


def build_manifest(**sections):
    """BASE_MANIFEST plus the given top-level sections (camelCase keys)."""
    data = copy.deepcopy(BASE_MANIFEST)
    data.update(sections)
    return parse_manifest(data)


@pytest.fixture
def make_manifest():
    return build_manifest


@pytest.fixture
def app():
    return cdk.App()


@pytest.fixture(scope="session")
def full_manifest_data():
    """Every component enabled, two workload environments. Copy before mutating."""
    data = copy.deepcopy(BASE_MANIFEST)
    data["environments"]["prod"] = {"accountId": PROD_ACCOUNT, "region": "us-east-1"}
    data.update({
        "organization": {
            "rootId": "r-abcd",
            "organizationalUnits": [
                {"key": "workloads", "name": "Workloads", "accounts": [
                    {"key": "nprd", "name": "saas-nprd", "accountId": NPRD_ACCOUNT},
                ]},
            ],
        },
        "identityCenter": {
            "instanceArn": "arn:aws:sso:::instance/ssoins-0123456789abcdef",
            "permissionSets": [{"name": "Admin", "managedPolicies": ["arn:aws:iam::aws:policy/AdministratorAccess"]}],
            "assignments": [{"principalId": "group-12345678", "permissionSet": "Admin", "accountKeys": ["nprd"]}],
        },
        "domains": {"registeredDomains": [{"name": "globex.com"}]},
        "saasEdge": [
            {"domain": "globex.com", "distributions": [{"type": "marketing"}, {"type": "webapp"}, {"type": "api"}]},
        ],
        "infrastructure": {
            "targetEnvironments": ["nprd", "prod"],
            "commonParams": {"accountIds": True},
        },
        "saasWorkload": [
            {"name": "globex", "lambdaApi": True, "webapp": True, "marketing": True},
        ],
        "staticHosting": {},
        "githubOidc": {
            "targets": [{
                "projectName": "saas",
                "targetEnvironments": ["nprd", "prod"],
                "repositories": [{"owner": "acme", "repo": "saas-app"}],
            }],
        },
    })
    return data


@pytest.fixture(scope="session")
def full_manifest(full_manifest_data):
    return parse_manifest(full_manifest_data)
