from __future__ import annotations

from typing import TYPE_CHECKING

from botocore.exceptions import ClientError

import config
import errors
from entities.aws import Account

if TYPE_CHECKING:
    from mypy_boto3_organizations import OrganizationsClient, type_defs

logger = config.get_logger(service="organizations")


def parse_account(td: type_defs.AccountTypeDef) -> Account:
    return Account.model_validate({"id": td.get("Id", ""), "name": td.get("Name", ""), "email": td.get("Email", "")})


def is_access_denied(e: ClientError) -> bool:
    return errors.error_code(e).startswith("AccessDenied") or "accessdenied" in str(e).lower()


@errors.translate_client_errors
def list_accounts(client: OrganizationsClient) -> list[Account]:
    """List every account of the organization.

    Raises:
        errors.OrganizationsAccessDenied: the caller may not read the organization,
            typically because the profile lives in a member account
    """
    accounts = []
    paginator = client.get_paginator("list_accounts")
    try:
        for page in paginator.paginate():
            accounts.extend(page["Accounts"])
    except ClientError as e:
        if is_access_denied(e):
            logger.info("Organizations access denied", extra={"error": str(e)})
            raise errors.OrganizationsAccessDenied(str(e)) from e
        raise
    return [parse_account(account) for account in accounts]
