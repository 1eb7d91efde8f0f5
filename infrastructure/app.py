#!/usr/bin/env python3
"""
Stackwright CDK App
===================
Entry point for the CDK toolkit. Reads the manifest path and the optional
environment filter from CDK context, resolves the manifest into stacks and
synthesizes them.

  cdk synth -c manifest=manifest.yaml
  cdk deploy --all -c manifest=manifest.yaml -c targetEnv=nprd

Any component failure aborts before synthesis, so a partial assembly is
never deployed by accident.
"""
import aws_cdk as cdk

from stackwright.config import Settings
from stackwright.logger import set_level
from stackwright.manifest import load_manifest
from stackwright.orchestrator import ComponentOrchestrator

app = cdk.App()

settings = Settings.from_env({
    "manifest": app.node.try_get_context("manifest"),
    "targetEnv": app.node.try_get_context("targetEnv"),
})
set_level(settings.log_level)
manifest = load_manifest(settings.manifest_path)

result = ComponentOrchestrator(manifest, settings).resolve(app)
result.raise_for_failures()

app.synth()
