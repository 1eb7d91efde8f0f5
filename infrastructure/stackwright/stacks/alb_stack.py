"""
ALB Stack
=========
The environment's application load balancer with an HTTP listener that
redirects to HTTPS. Certificates and the HTTPS listener belong to
AlbHttpsListenerStack, so this stack never depends on the subdomain zones.
"""
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_elasticloadbalancingv2 as elbv2
from constructs import Construct

from stackwright.manifest import AlbSettings
from stackwright.stacks.base_stack import BaseStack


class AlbStack(BaseStack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        vpc: ec2.IVpc,
        security_group: ec2.ISecurityGroup,
        settings: AlbSettings,
        **kwargs,
    ):
        super().__init__(scope, id, **kwargs)

        self.alb = elbv2.ApplicationLoadBalancer(
            self, "Alb",
            load_balancer_name=self.naming.resource_name("alb"),
            vpc=vpc,
            internet_facing=not settings.internal,
            security_group=security_group,
            vpc_subnets=ec2.SubnetSelection(
                subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS if settings.internal else ec2.SubnetType.PUBLIC,
            ),
        )

        self.alb.add_listener(
            "HttpListener",
            port=80,
            default_action=elbv2.ListenerAction.redirect(protocol="HTTPS", port="443", permanent=True),
        )

        self.publish("alb", "arn", self.alb.load_balancer_arn)
        self.publish("alb", "dns-name", self.alb.load_balancer_dns_name)
        self.publish("alb", "canonical-hosted-zone-id", self.alb.load_balancer_canonical_hosted_zone_id)
