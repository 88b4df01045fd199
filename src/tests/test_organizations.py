import pytest

import errors
import organizations
from entities.aws import Account

from . import utils


def test_list_accounts_concatenates_pages(org_client):
    org_client.get_paginator.return_value = utils.paginator(
        [
            {"Accounts": [{"Id": "111111111111", "Name": "prod", "Email": "prod@example.com"}]},
            {"Accounts": [{"Id": "222222222222", "Name": "dev"}]},
        ]
    )

    assert organizations.list_accounts(org_client) == [
        Account(id="111111111111", name="prod", email="prod@example.com"),
        Account(id="222222222222", name="dev"),
    ]


@pytest.mark.parametrize(
    "error",
    [
        utils.client_error("AccessDeniedException", "You don't have permissions to access this resource."),
        utils.client_error("AWSOrganizationsNotInUseException", "AccessDenied: not a management account"),
    ],
)
def test_access_denied_is_a_policy_outcome(org_client, error):
    org_client.get_paginator.return_value = utils.paginator([], fail_at=0, error=error)

    with pytest.raises(errors.OrganizationsAccessDenied):
        organizations.list_accounts(org_client)


def test_other_errors_are_api_errors(org_client):
    org_client.get_paginator.return_value = utils.paginator([{"Accounts": []}], fail_at=1)

    with pytest.raises(errors.ApiError) as exc:
        organizations.list_accounts(org_client)

    assert not isinstance(exc.value, errors.OrganizationsAccessDenied)
