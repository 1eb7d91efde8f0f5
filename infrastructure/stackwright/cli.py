"""
Command-line entry point.

  stackwright plan manifest.yaml --env nprd    # unit plan as JSON on stdout
  stackwright synth manifest.yaml --outdir cdk.out

`cdk synth` goes through infrastructure/app.py instead; both share the
orchestrator, so a plan lists exactly the stacks a synth emits.
"""
from __future__ import annotations

import argparse
import json
import sys

import aws_cdk as cdk

from stackwright.config import Settings
from stackwright.errors import StackwrightError
from stackwright.logger import get_logger, set_level
from stackwright.manifest import load_manifest
from stackwright.orchestrator import ComponentOrchestrator, ResolutionResult

logger = get_logger(__name__)


def _resolve(args: argparse.Namespace, app: cdk.App) -> ResolutionResult:
    settings = Settings.from_env({"manifest": args.manifest, "targetEnv": args.env})
    set_level(settings.log_level)
    manifest = load_manifest(settings.manifest_path)
    return ComponentOrchestrator(manifest, settings).resolve(app)


def plan(args: argparse.Namespace) -> int:
    result = _resolve(args, cdk.App())
    document = {
        "units": result.plan(),
        "failures": [str(f) for f in result.failures],
        "danglingLookups": result.ledger.dangling(),
    }
    json.dump(document, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 1 if result.failures else 0


def synth(args: argparse.Namespace) -> int:
    app = cdk.App(outdir=args.outdir)
    result = _resolve(args, app)
    result.raise_for_failures()
    assembly = app.synth()
    logger.info("Cloud assembly written", extra={"outdir": assembly.directory, "units": len(result.units)})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stackwright", description="Manifest-driven CDK stack orchestrator")
    commands = parser.add_subparsers(dest="command", required=True)

    for name, handler, help_text in (
        ("plan", plan, "Print the deployable units as JSON"),
        ("synth", synth, "Synthesize the cloud assembly"),
    ):
        command = commands.add_parser(name, help=help_text)
        command.add_argument("manifest", help="Path to the YAML manifest")
        command.add_argument("--env", default=None, help="Only resolve this environment")
        command.set_defaults(handler=handler)
        if name == "synth":
            command.add_argument("--outdir", default="cdk.out", help="Cloud assembly directory")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.handler(args)
    except StackwrightError as e:
        logger.error("Resolution failed", extra={"command": args.command, "error": str(e)})
        return 1


if __name__ == "__main__":
    sys.exit(main())
