"""
Deployable Units
================
A unit is one CDK stack bound to an account/region. The registry is the only
place stacks get created: it checks for name collisions, reuses a stack that
an earlier pass over the same App already built for the same component, and
turns `depends_on` into `Stack.add_dependency` so `cdk deploy` orders them.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable

import aws_cdk as cdk

from stackwright.components import Component
from stackwright.errors import DuplicateUnitError
from stackwright.linkage import LinkageLedger
from stackwright.logger import get_logger
from stackwright.topology import DeploymentTarget

logger = get_logger(__name__)


@dataclass
class DeployableUnit:
    name: str
    component: Component
    environment: str
    account: str
    region: str
    handle: cdk.Stack
    depends_on: list[str] = field(default_factory=list)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.account, self.region, self.name)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "component": self.component.value,
            "environment": self.environment,
            "account": self.account,
            "region": self.region,
            "dependsOn": list(self.depends_on),
        }


class UnitRegistry:
    def __init__(self, app: cdk.App, ledger: LinkageLedger | None = None):
        self.app = app
        self.ledger = ledger if ledger is not None else LinkageLedger()
        self._units: dict[str, DeployableUnit] = {}

    @property
    def units(self) -> list[DeployableUnit]:
        return list(self._units.values())

    def get(self, name: str) -> DeployableUnit | None:
        return self._units.get(name)

    def add(
        self,
        name: str,
        component: Component,
        target: DeploymentTarget,
        build: Callable[[], cdk.Stack],
        depends_on: Iterable[DeployableUnit] = (),
        region: str | None = None,
    ) -> DeployableUnit:
        """
        Create (or reuse) the stack `name` for `component` at `target`.

        `region` overrides the target region for units pinned elsewhere
        (edge certificates and WAF live in us-east-1).
        """
        region = region or target.region
        depends_on = list(depends_on)
        log_extra = {"component": component.value, "environment": target.name, "unit": name}

        if name in self._units:
            unit = self._units[name]
            raise DuplicateUnitError(
                f"Unit '{name}' was already created in this pass by component '{unit.component.value}'"
                f" for environment '{unit.environment}'",
                component=component.value,
                environment=target.name,
            )

        existing = self.app.node.try_find_child(name)
        if existing is not None:
            owner = getattr(existing, "component", None)
            account = getattr(existing, "account", None)
            existing_region = getattr(existing, "region", None)
            self._check_same(existing, owner, account, existing_region, component, target, region)
            handle = existing
            self._replay_linkage(handle)
            logger.info("Unit reused", extra=log_extra)
        else:
            handle = build()
            logger.info("Unit created", extra={**log_extra, "account": target.account_id, "region": region})

        for upstream in depends_on:
            handle.add_dependency(upstream.handle)

        unit = DeployableUnit(
            name=name,
            component=component,
            environment=target.name,
            account=target.account_id,
            region=region,
            handle=handle,
            depends_on=[u.name for u in depends_on],
        )
        self._units[name] = unit
        return unit

    def _check_same(self, handle, owner, account, region, component, target, wanted_region) -> None:
        if owner == component and account == target.account_id and region == wanted_region:
            return
        owner_name = owner.value if isinstance(owner, Component) else str(owner)
        raise DuplicateUnitError(
            f"Unit '{handle.node.id}' already exists for component '{owner_name}' in {account}/{region}",
            component=component.value,
            environment=target.name,
        )

    def _replay_linkage(self, handle) -> None:
        # A reused stack does not run its builder again; carry its paths over
        for path in getattr(handle, "published_paths", []):
            self.ledger.record_publish(path, handle.stack_name)
        for path in getattr(handle, "consumed_paths", []):
            self.ledger.record_lookup(path, handle.stack_name)

    def unit_names(self) -> list[str]:
        return list(self._units)
