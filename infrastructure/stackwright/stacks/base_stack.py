"""
Base Stack
==========
Every Stackwright stack is bound to exactly one account/region, carries the
standard tags, and goes through the same helpers for SSM publish/lookup so
the linkage ledger sees every indirect reference.
"""
from __future__ import annotations

import aws_cdk as cdk
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_ssm as ssm
from constructs import Construct

from stackwright import linkage
from stackwright.components import Component
from stackwright.linkage import LinkageLedger, ParameterPath
from stackwright.naming import NamingContext


class BaseStack(cdk.Stack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        naming: NamingContext,
        component: Component,
        ledger: LinkageLedger | None = None,
        **kwargs,
    ):
        kwargs.setdefault("env", cdk.Environment(account=naming.account_id, region=naming.region))
        kwargs.setdefault("stack_name", id)
        super().__init__(scope, id, **kwargs)

        self.naming = naming
        self.component = component
        self.ledger = ledger
        self.published_paths: list[str] = []
        self.consumed_paths: list[str] = []

        for key, value in naming.standard_tags(component.value).items():
            cdk.Tags.of(self).add(key, value)

    # ------------------------------------------------------------------
    # Indirect linkage
    # ------------------------------------------------------------------

    def parameter(
        self,
        namespace: str,
        key: str,
        brand: str | None = None,
        naming: NamingContext | None = None,
    ) -> ParameterPath:
        return ParameterPath.build(naming or self.naming, namespace, key, brand=brand)

    def publish(
        self,
        namespace: str,
        key: str,
        value: str,
        description: str | None = None,
        brand: str | None = None,
        naming: NamingContext | None = None,
    ) -> ssm.StringParameter:
        path = self.parameter(namespace, key, brand, naming)
        self.published_paths.append(str(path))
        return linkage.publish(self, path, value, description=description, ledger=self.ledger)

    def lookup(
        self, namespace: str, key: str, brand: str | None = None, naming: NamingContext | None = None,
    ) -> str:
        path = self.parameter(namespace, key, brand, naming)
        self.consumed_paths.append(str(path))
        return linkage.lookup(self, path, ledger=self.ledger)

    def lookup_now(
        self, namespace: str, key: str, brand: str | None = None, naming: NamingContext | None = None,
    ) -> str:
        path = self.parameter(namespace, key, brand, naming)
        self.consumed_paths.append(str(path))
        return linkage.lookup_now(self, path, ledger=self.ledger)

    # ------------------------------------------------------------------
    # Shared network, handed over directly or looked up
    # ------------------------------------------------------------------

    def resolve_vpc(self, vpc: ec2.IVpc | None) -> ec2.IVpc:
        if vpc is not None:
            return vpc
        return ec2.Vpc.from_lookup(self, "WorkloadVpc", vpc_id=self.lookup_now("vpc", "id"))

    def resolve_ecs_security_group(self, security_group: ec2.ISecurityGroup | None) -> ec2.ISecurityGroup:
        if security_group is not None:
            return security_group
        return ec2.SecurityGroup.from_security_group_id(
            self, "EcsSecurityGroup", self.lookup("vpc", "ecs-security-group-id"),
        )

    def output(self, id: str, value: str, export: bool = False) -> cdk.CfnOutput:
        return cdk.CfnOutput(
            self, id,
            value=value,
            export_name=self.naming.export_name(id) if export else None,
        )
