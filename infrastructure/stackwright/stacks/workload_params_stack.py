"""
Workload Params Stack
=====================
Shared identifiers every workload deployment in an environment reads:
its own account id, the management account id, and the Route53 delegation
role for each delegated domain.
"""
from typing import Sequence

from constructs import Construct

from stackwright.stacks.base_stack import BaseStack
from stackwright.topology import delegation_role_arn


class WorkloadParamsStack(BaseStack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        management_account_id: str,
        delegation_domains: Sequence[str] = (),
        **kwargs,
    ):
        super().__init__(scope, id, **kwargs)

        env = self.naming.environment
        self.publish("account", "id", self.naming.account_id, f"Workload account id for {env}")
        self.publish(
            "account", "management-id", management_account_id,
            "Management account id (root zones, delegation roles)",
        )
        for domain in delegation_domains:
            self.publish(
                "dns", "delegation-role-arn",
                delegation_role_arn(management_account_id, domain),
                f"Route53 delegation role for {domain}",
                brand=domain,
            )
