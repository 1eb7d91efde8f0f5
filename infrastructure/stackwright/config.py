"""
Runtime settings.

Values come from CDK context first (`cdk synth -c targetEnv=nprd`), then from
environment variables, then defaults. Read once per process and passed down
explicitly; nothing below the entry points reads os.environ.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping

DEFAULT_MANIFEST = "manifest.yaml"
DEFAULT_EDGE_REGION = "us-east-1"  # CloudFront certificates and WAF must live here


@dataclass(frozen=True)
class Settings:
    manifest_path: str = DEFAULT_MANIFEST
    target_env: str | None = None
    edge_region: str = DEFAULT_EDGE_REGION
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, context: Mapping[str, Any] | None = None) -> "Settings":
        context = context or {}
        return cls(
            manifest_path=(
                context.get("manifest")
                or os.environ.get("STACKWRIGHT_MANIFEST")
                or DEFAULT_MANIFEST
            ),
            target_env=context.get("targetEnv") or os.environ.get("STACKWRIGHT_TARGET_ENV") or None,
            edge_region=os.environ.get("STACKWRIGHT_EDGE_REGION", DEFAULT_EDGE_REGION),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )
