"""
VPC Stack
=========
Per-environment network in the workload account: public / private / isolated
subnets, optional flow logs, and the two security groups every workload
shares (ALB and ECS tasks).

Identifiers are published under /{company}/{project}/{env}/vpc/* and
/alb/security-group-id so workload stacks synthesized in a separate run can
find them.
"""
import aws_cdk as cdk
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_iam as iam
from aws_cdk import aws_logs as logs
from constructs import Construct

from stackwright.manifest import VpcSettings
from stackwright.stacks.base_stack import BaseStack

# Core API / webapp listen on 3000, brand APIs on 3003
CONTAINER_PORTS = ec2.Port.tcp_range(3000, 3003)


class VpcStack(BaseStack):
    def __init__(self, scope: Construct, id: str, *, settings: VpcSettings, **kwargs):
        super().__init__(scope, id, **kwargs)

        self.vpc = ec2.Vpc(
            self, "Vpc",
            vpc_name=self.naming.resource_name("vpc"),
            ip_addresses=ec2.IpAddresses.cidr(settings.cidr),
            max_azs=settings.max_azs,
            nat_gateways=settings.nat_gateways,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name="Public", subnet_type=ec2.SubnetType.PUBLIC, cidr_mask=24,
                    map_public_ip_on_launch=False,
                ),
                ec2.SubnetConfiguration(
                    name="Private", subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS, cidr_mask=24,
                ),
                ec2.SubnetConfiguration(
                    name="Isolated", subnet_type=ec2.SubnetType.PRIVATE_ISOLATED, cidr_mask=24,
                ),
            ],
        )

        if settings.enable_flow_logs:
            log_group = logs.LogGroup(
                self, "FlowLogsLogGroup",
                log_group_name=f"/aws/vpc/{self.naming.resource_name('vpc')}/flow-logs",
                retention=_retention(settings.flow_logs_retention_days),
                removal_policy=cdk.RemovalPolicy.DESTROY,
            )
            role = iam.Role(
                self, "FlowLogsRole",
                assumed_by=iam.ServicePrincipal("vpc-flow-logs.amazonaws.com"),
            )
            log_group.grant_write(role)
            ec2.FlowLog(
                self, "FlowLog",
                resource_type=ec2.FlowLogResourceType.from_vpc(self.vpc),
                destination=ec2.FlowLogDestination.to_cloud_watch_logs(log_group, role),
                traffic_type=ec2.FlowLogTrafficType.ALL,
            )

        self.alb_security_group = ec2.SecurityGroup(
            self, "AlbSecurityGroup",
            vpc=self.vpc,
            security_group_name=self.naming.resource_name("alb-sg"),
            description="Application load balancer",
            allow_all_outbound=True,
        )
        self.alb_security_group.add_ingress_rule(ec2.Peer.any_ipv4(), ec2.Port.tcp(443), "HTTPS from CloudFront")
        self.alb_security_group.add_ingress_rule(ec2.Peer.any_ipv4(), ec2.Port.tcp(80), "HTTP health checks")

        self.ecs_security_group = ec2.SecurityGroup(
            self, "EcsSecurityGroup",
            vpc=self.vpc,
            security_group_name=self.naming.resource_name("ecs-sg"),
            description="ECS Fargate tasks",
            allow_all_outbound=True,
        )
        self.ecs_security_group.add_ingress_rule(self.alb_security_group, CONTAINER_PORTS, "Traffic from ALB")

        env = self.naming.environment
        self.publish("vpc", "id", self.vpc.vpc_id, f"VPC id for {env}")
        self.publish(
            "vpc", "private-subnet-ids",
            cdk.Fn.join(",", [s.subnet_id for s in self.vpc.private_subnets]),
            f"Private subnet ids for {env}",
        )
        self.publish(
            "vpc", "public-subnet-ids",
            cdk.Fn.join(",", [s.subnet_id for s in self.vpc.public_subnets]),
            f"Public subnet ids for {env}",
        )
        self.publish(
            "vpc", "isolated-subnet-ids",
            cdk.Fn.join(",", [s.subnet_id for s in self.vpc.isolated_subnets]),
            f"Isolated subnet ids for {env}",
        )
        self.publish("vpc", "ecs-security-group-id", self.ecs_security_group.security_group_id)
        self.publish("alb", "security-group-id", self.alb_security_group.security_group_id)


_RETENTION = {
    1: logs.RetentionDays.ONE_DAY,
    3: logs.RetentionDays.THREE_DAYS,
    5: logs.RetentionDays.FIVE_DAYS,
    7: logs.RetentionDays.ONE_WEEK,
    14: logs.RetentionDays.TWO_WEEKS,
    30: logs.RetentionDays.ONE_MONTH,
    60: logs.RetentionDays.TWO_MONTHS,
    90: logs.RetentionDays.THREE_MONTHS,
    180: logs.RetentionDays.SIX_MONTHS,
    365: logs.RetentionDays.ONE_YEAR,
    731: logs.RetentionDays.TWO_YEARS,
    1827: logs.RetentionDays.FIVE_YEARS,
    3653: logs.RetentionDays.TEN_YEARS,
}


def _retention(days: int) -> logs.RetentionDays:
    """Round up to the nearest retention CloudWatch Logs accepts."""
    for limit, retention in _RETENTION.items():
        if days <= limit:
            return retention
    return logs.RetentionDays.TEN_YEARS
