"""
Aurora Stack
============
Aurora Serverless v2 PostgreSQL cluster for one workload environment.

Each API brand owns a database inside the cluster (`core` first, so it is
the default database). Only ECS tasks can reach port 5432.
"""
from typing import Sequence

import aws_cdk as cdk
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_rds as rds
from constructs import Construct

from stackwright.manifest import AuroraSettings
from stackwright.naming import slugify
from stackwright.stacks.base_stack import BaseStack

POSTGRES_PORT = 5432

_ENGINE_VERSIONS = {
    "16.4": rds.AuroraPostgresEngineVersion.VER_16_4,
    "16.6": rds.AuroraPostgresEngineVersion.VER_16_6,
}


def _engine_version(version: str) -> rds.AuroraPostgresEngineVersion:
    version = version.strip()
    if version in _ENGINE_VERSIONS:
        return _ENGINE_VERSIONS[version]
    return rds.AuroraPostgresEngineVersion.of(version, version.split(".")[0])


class DatabaseStack(BaseStack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        databases: Sequence[str],
        settings: AuroraSettings,
        vpc: ec2.IVpc | None = None,
        ecs_security_group: ec2.ISecurityGroup | None = None,
        **kwargs,
    ):
        super().__init__(scope, id, **kwargs)

        if not databases:
            raise ValueError("Aurora needs at least one database")
        if settings.min_capacity > settings.max_capacity:
            raise ValueError(
                f"Aurora minCapacity {settings.min_capacity} exceeds maxCapacity {settings.max_capacity}"
            )

        self.databases = list(databases)
        vpc = self.resolve_vpc(vpc)

        self.security_group = ec2.SecurityGroup(
            self, "AuroraSecurityGroup",
            vpc=vpc,
            security_group_name=self.naming.resource_name("aurora-sg"),
            description="Aurora PostgreSQL access from ECS tasks",
            allow_all_outbound=True,
        )
        self.security_group.add_ingress_rule(
            self.resolve_ecs_security_group(ecs_security_group),
            ec2.Port.tcp(POSTGRES_PORT),
            "ECS tasks",
        )

        self.cluster = rds.DatabaseCluster(
            self, "AuroraCluster",
            cluster_identifier=self.naming.resource_name("aurora"),
            engine=rds.DatabaseClusterEngine.aurora_postgres(version=_engine_version(settings.engine_version)),
            writer=rds.ClusterInstance.serverless_v2("Writer", publicly_accessible=False),
            serverless_v2_min_capacity=settings.min_capacity,
            serverless_v2_max_capacity=settings.max_capacity,
            default_database_name=self.databases[0],
            credentials=rds.Credentials.from_generated_secret(
                "postgres",
                secret_name=f"{slugify(self.naming.project)}/{self.naming.environment}/aurora-admin",
            ),
            storage_encrypted=True,
            deletion_protection=settings.deletion_protection,
            backup=rds.BackupProps(retention=cdk.Duration.days(settings.backup_retention_days)),
            cloudwatch_logs_exports=["postgresql"],
            copy_tags_to_snapshot=True,
            vpc=vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS),
            security_groups=[self.security_group],
            removal_policy=cdk.RemovalPolicy.SNAPSHOT,
        )

        self.publish("aurora", "endpoint", self.cluster.cluster_endpoint.hostname, "Aurora writer endpoint")
        self.publish("aurora", "secret-arn", self.cluster.secret.secret_arn, "Aurora admin credentials")
        self.publish("aurora", "databases", ",".join(self.databases))
        self.output("AuroraEndpoint", self.cluster.cluster_endpoint.hostname, export=True)
