from __future__ import annotations

import subprocess
import threading
from typing import TYPE_CHECKING, Callable, Optional

import boto3

import config
import errors
import identity_store
import organizations
import sso

if TYPE_CHECKING:
    from mypy_boto3_identitystore import IdentityStoreClient
    from mypy_boto3_organizations import OrganizationsClient
    from mypy_boto3_sso_admin import SSOAdminClient

    from entities.aws import Account, Assignment, Group, GroupUser, Instance, PermissionSet, User

logger = config.get_logger(service="gateway")


def run_sso_login(profile: str) -> None:
    """Run `aws sso login` for the profile and wait for it to finish."""
    logger.info("Starting aws sso login", extra={"profile": profile})
    try:
        result = subprocess.run(
            ["aws", "sso", "login", "--profile", profile],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as e:
        raise errors.LoginFailed(f"aws sso login failed: {e}") from e
    if result.returncode != 0:
        output = (result.stdout + result.stderr).strip()
        raise errors.LoginFailed(f"aws sso login failed (exit {result.returncode}): {output}")


class Gateway:
    """Typed operations against Identity Center, the identity store and Organizations.

    Clients are built by ensure_session and only read afterwards, so one gateway can be
    shared by concurrently dispatched commands.
    """

    def __init__(
        self,
        profile: str,
        region: str,
        session_factory: Callable[..., boto3.Session] = boto3.Session,
        login: Callable[[str], None] = run_sso_login,
        poll_interval_seconds: float = 2,
        membership_lookup_concurrency: int = 8,
    ) -> None:
        self.profile = profile
        self.region = region
        self.poll_interval_seconds = poll_interval_seconds
        self.membership_lookup_concurrency = membership_lookup_concurrency
        self._session_factory = session_factory
        self._login = login

        self.instance: Optional[Instance] = None
        self.identity_store_client: Optional[IdentityStoreClient] = None
        self.sso_client: Optional[SSOAdminClient] = None
        self.org_client: Optional[OrganizationsClient] = None

    @classmethod
    def from_config(cls, profile: str, region: str, cfg: config.Config) -> Gateway:
        return cls(
            profile,
            region,
            poll_interval_seconds=cfg.poll_interval_seconds,
            membership_lookup_concurrency=cfg.membership_lookup_concurrency,
        )

    @errors.translate_client_errors
    def load_clients(self) -> None:
        session = self._session_factory(profile_name=self.profile, region_name=self.region)
        self.identity_store_client = session.client("identitystore")
        self.sso_client = session.client("sso-admin")
        self.org_client = session.client("organizations")

    def ensure_session(self) -> list[Instance]:
        """Build the clients and list Identity Center instances.

        An expired SSO session triggers one interactive login, a client reload and a
        single retry. Any other failure, or a failure of the retry, propagates unchanged.
        """
        self.load_clients()
        try:
            return sso.list_sso_instances(self.sso_client)
        except errors.ApiError as e:
            if not errors.is_sso_auth_error(e):
                raise
            logger.info("SSO session expired, logging in again", extra={"profile": self.profile, "error": str(e)})

        self._login(self.profile)
        self.load_clients()
        return sso.list_sso_instances(self.sso_client)

    def set_instance(self, instance: Instance) -> None:
        self.instance = instance
        logger.info("Bound Identity Center instance", extra={"instance": instance})

    @property
    def identity_store_id(self) -> str:
        if self.instance is None:
            raise errors.NotConfigured("no Identity Center instance selected")
        return self.instance.identity_store_id

    @property
    def instance_arn(self) -> str:
        if self.instance is None:
            raise errors.NotConfigured("no Identity Center instance selected")
        return self.instance.arn

    # Identity store

    def list_groups(self) -> list[Group]:
        return identity_store.list_groups(self.identity_store_id, self.identity_store_client)

    def create_group(self, display_name: str) -> None:
        identity_store.create_group(self.identity_store_id, display_name, self.identity_store_client)

    def delete_group(self, group_id: str) -> None:
        identity_store.delete_group(self.identity_store_id, group_id, self.identity_store_client)

    def count_group_memberships(self, group_id: str) -> int:
        return identity_store.count_group_memberships(self.identity_store_id, group_id, self.identity_store_client)

    def list_group_users(self, group_id: str) -> list[GroupUser]:
        return identity_store.list_group_users(
            self.identity_store_id,
            group_id,
            self.identity_store_client,
            max_workers=self.membership_lookup_concurrency,
        )

    def list_users(self) -> list[User]:
        return identity_store.list_users(self.identity_store_id, self.identity_store_client)

    def add_user_to_group(self, group_id: str, user_id: str) -> None:
        identity_store.add_user_to_a_group(group_id, user_id, self.identity_store_id, self.identity_store_client)

    def remove_user_from_group(self, membership_id: str) -> None:
        identity_store.remove_user_from_group(self.identity_store_id, membership_id, self.identity_store_client)

    # Accounts and assignments

    def list_accounts(self) -> list[Account]:
        return organizations.list_accounts(self.org_client)

    def list_permission_sets(self) -> list[PermissionSet]:
        return sso.list_permission_sets(self.sso_client, self.instance_arn)

    def discover_assignments(
        self,
        group_id: str,
        accounts: list[Account],
        permission_sets: list[PermissionSet],
        cancel: threading.Event,
    ) -> list[Assignment]:
        return sso.discover_group_assignments(self.sso_client, self.instance_arn, group_id, accounts, permission_sets, cancel)

    def _assignment(self, group_id: str, account_id: str, permission_set_arn: str) -> sso.GroupAccountAssignment:
        return sso.GroupAccountAssignment(
            instance_arn=self.instance_arn,
            account_id=account_id,
            permission_set_arn=permission_set_arn,
            group_id=group_id,
        )

    def create_assignment(self, group_id: str, account_id: str, permission_set_arn: str, cancel: threading.Event) -> None:
        sso.create_account_assignment_and_wait_for_result(
            self.sso_client,
            self._assignment(group_id, account_id, permission_set_arn),
            cancel,
            retry_period_seconds=self.poll_interval_seconds,
        )

    def delete_assignment(self, group_id: str, account_id: str, permission_set_arn: str, cancel: threading.Event) -> None:
        sso.delete_account_assignment_and_wait_for_result(
            self.sso_client,
            self._assignment(group_id, account_id, permission_set_arn),
            cancel,
            retry_period_seconds=self.poll_interval_seconds,
        )
