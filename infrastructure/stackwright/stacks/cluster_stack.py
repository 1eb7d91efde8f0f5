"""
ECS Cluster Stack
=================
One Fargate cluster per workload environment, shared by the webapp and API
services. The VPC comes from the infrastructure run when it is in the same
pass, otherwise from /vpc/id.
"""
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_ecs as ecs
from constructs import Construct

from stackwright.stacks.base_stack import BaseStack


class ClusterStack(BaseStack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        vpc: ec2.IVpc | None = None,
        container_insights: bool = True,
        **kwargs,
    ):
        super().__init__(scope, id, **kwargs)

        self.vpc = self.resolve_vpc(vpc)
        self.cluster = ecs.Cluster(
            self, "Cluster",
            cluster_name=self.naming.resource_name("cluster"),
            vpc=self.vpc,
            container_insights_v2=(
                ecs.ContainerInsights.ENHANCED if container_insights else ecs.ContainerInsights.DISABLED
            ),
        )

        self.publish("ecs", "cluster-name", self.cluster.cluster_name)
        self.publish("ecs", "cluster-arn", self.cluster.cluster_arn)
        self.output("ClusterArn", self.cluster.cluster_arn, export=True)
