"""
Integration tests: synthesize the example manifest end to end.

Every stack is built and the cloud assembly written to disk, so
cross-stack references, dependency ordering and context lookups all go
through the real CDK toolchain (node + jsii).

Run: pytest tests/integration/ -m integration
"""
import json
from pathlib import Path

import aws_cdk as cdk
import pytest

from stackwright.config import Settings
from stackwright.manifest import load_manifest
from stackwright.orchestrator import ComponentOrchestrator

pytestmark = pytest.mark.integration

EXAMPLE_MANIFEST = Path(__file__).resolve().parents[2] / "manifest.example.yaml"


@pytest.fixture(scope="module")
def assembly(tmp_path_factory):
    outdir = tmp_path_factory.mktemp("cdk.out")
    app = cdk.App(outdir=str(outdir))
    result = ComponentOrchestrator(load_manifest(EXAMPLE_MANIFEST), Settings()).resolve(app)
    result.raise_for_failures()
    return result, app.synth()


def test_every_unit_has_a_template(assembly):
    result, cloud_assembly = assembly
    synthesized = {stack.stack_name for stack in cloud_assembly.stacks}
    assert set(result.unit_names()) <= synthesized


def test_assembly_records_dependencies(assembly):
    _, cloud_assembly = assembly
    listener = cloud_assembly.get_stack_by_name("Saas-NonProd-AlbHttpsListener-Stack")
    depends_on = {d.id for d in listener.dependencies}
    assert {"Saas-NonProd-Alb-Stack", "Saas-NonProd-SubdomainZone-Stack"} <= depends_on


def test_stacks_are_bound_to_their_accounts(assembly):
    _, cloud_assembly = assembly
    manifest = json.loads((Path(cloud_assembly.directory) / "manifest.json").read_text())
    environments = {
        name: artifact["environment"]
        for name, artifact in manifest["artifacts"].items()
        if artifact["type"] == "aws:cloudformation:stack"
    }
    assert environments["Saas-Management-RootDomain-Stack"] == "aws://111111111111/us-east-1"
    assert environments["Saas-NonProd-Vpc-Stack"] == "aws://222222222222/us-east-1"
    assert environments["Saas-Prod-Api-Stack"] == "aws://333333333333/us-east-1"
