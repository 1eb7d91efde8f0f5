"""
ALB HTTPS Listener Stack
========================
Intermediate unit between the ALB and the subdomain zones: it is the only
stack that holds both the load balancer and the certificates. Requests
that match no service rule get a fixed 404.
"""
from typing import Mapping

from aws_cdk import aws_certificatemanager as acm
from aws_cdk import aws_elasticloadbalancingv2 as elbv2
from constructs import Construct

from stackwright.stacks.base_stack import BaseStack


class AlbHttpsListenerStack(BaseStack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        alb: elbv2.IApplicationLoadBalancer,
        certificates: Mapping[str, acm.ICertificate],
        **kwargs,
    ):
        super().__init__(scope, id, **kwargs)

        if not certificates:
            raise ValueError("HTTPS listener needs at least one certificate")

        self.listener = elbv2.ApplicationListener(
            self, "HttpsListener",
            load_balancer=alb,
            port=443,
            protocol=elbv2.ApplicationProtocol.HTTPS,
            certificates=[
                elbv2.ListenerCertificate.from_certificate_manager(cert)
                for cert in certificates.values()
            ],
            ssl_policy=elbv2.SslPolicy.RECOMMENDED_TLS,
            # ALB security group already admits 443
            open=False,
            default_action=elbv2.ListenerAction.fixed_response(
                404, content_type="text/plain", message_body="Not Found",
            ),
        )

        self.publish("alb", "https-listener-arn", self.listener.listener_arn)
