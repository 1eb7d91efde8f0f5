"""
Identity Center Stack
=====================
Permission sets and account assignments for the SSO instance.
Assignments name accounts by key; keys resolve through the account ids
collected from the Organizations stack (or from the manifest).
"""
from aws_cdk import aws_sso as sso
from constructs import Construct

from stackwright.manifest import IdentityCenterConfig
from stackwright.naming import pascal_case
from stackwright.stacks.base_stack import BaseStack


class IdentityCenterStack(BaseStack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        config: IdentityCenterConfig,
        account_ids: dict[str, str],
        **kwargs,
    ):
        super().__init__(scope, id, **kwargs)

        self.permission_sets: dict[str, sso.CfnPermissionSet] = {}
        self.assignments: list[sso.CfnAssignment] = []

        for ps in config.permission_sets:
            self.permission_sets[ps.name] = sso.CfnPermissionSet(
                self, f"PermissionSet{pascal_case(ps.name)}",
                instance_arn=config.instance_arn,
                name=ps.name,
                description=ps.description,
                session_duration=ps.session_duration,
                managed_policies=list(ps.managed_policies) or None,
            )

        for assignment in config.assignments:
            permission_set = self.permission_sets.get(assignment.permission_set)
            if permission_set is None:
                raise ValueError(f"Unknown permission set '{assignment.permission_set}'")
            for account_key in assignment.account_keys:
                if account_key not in account_ids:
                    raise ValueError(f"Unknown account key '{account_key}' in assignment")
                self.assignments.append(sso.CfnAssignment(
                    self,
                    f"Assign{pascal_case(assignment.permission_set)}{pascal_case(account_key)}"
                    f"{assignment.principal_id[-8:]}",
                    instance_arn=config.instance_arn,
                    permission_set_arn=permission_set.attr_permission_set_arn,
                    principal_id=assignment.principal_id,
                    principal_type=assignment.principal_type,
                    target_id=account_ids[account_key],
                    target_type="AWS_ACCOUNT",
                ))

        self.output("InstanceArn", config.instance_arn)
