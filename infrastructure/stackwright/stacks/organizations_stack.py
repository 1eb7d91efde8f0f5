"""
Organizations Stack
===================
Organizational units under the organization root and their member accounts.

Accounts declared with an `accountId` already exist and are only recorded;
accounts declared with an `email` are created. `account_ids` maps account
keys to ids (literal or token) for the Identity Center assignments.
"""
from aws_cdk import aws_organizations as orgs
from constructs import Construct

from stackwright.manifest import OrganizationConfig
from stackwright.naming import pascal_case
from stackwright.stacks.base_stack import BaseStack


class OrganizationsStack(BaseStack):
    def __init__(self, scope: Construct, id: str, *, config: OrganizationConfig, **kwargs):
        super().__init__(scope, id, **kwargs)

        self.organizational_units: dict[str, orgs.CfnOrganizationalUnit] = {}
        self.account_ids: dict[str, str] = {}

        for ou in config.organizational_units:
            unit = orgs.CfnOrganizationalUnit(
                self, f"OU{pascal_case(ou.key)}",
                name=ou.name,
                parent_id=config.root_id,
            )
            self.organizational_units[ou.key] = unit

            for account in ou.accounts:
                if account.account_id:
                    self.account_ids[account.key] = account.account_id
                    continue
                if not account.email:
                    raise ValueError(
                        f"Account '{account.key}' needs either an accountId or an email"
                    )
                created = orgs.CfnAccount(
                    self, f"Account{pascal_case(account.key)}",
                    account_name=account.name,
                    email=account.email,
                    parent_ids=[unit.attr_id],
                )
                self.account_ids[account.key] = created.attr_account_id
                self.output(f"{pascal_case(account.key)}AccountId", created.attr_account_id)
