"""Units of remote work and the completion messages they produce.

Every command runs off the UI thread and yields exactly one message, which is
delivered back to the session. Commands never touch session state.
"""

from __future__ import annotations

import concurrent.futures
import threading
from dataclasses import dataclass, field
from typing import Callable, ClassVar, Optional

import config
import errors
import profiles
from entities.aws import Account, Assignment, Group, GroupUser, Instance, PermissionSet, User
from gateway import Gateway

logger = config.get_logger(service="commands")


# Messages


@dataclass(frozen=True)
class Message:
    error: Optional[Exception] = None


@dataclass(frozen=True)
class ProfilesLoaded(Message):
    profiles: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SessionEstablished(Message):
    gateway: Optional[Gateway] = None
    instances: list[Instance] = field(default_factory=list)


@dataclass(frozen=True)
class GroupsLoaded(Message):
    groups: list[Group] = field(default_factory=list)


@dataclass(frozen=True)
class GroupCountLoaded(Message):
    group_id: str = ""
    count: int = 0


@dataclass(frozen=True)
class GroupUsersLoaded(Message):
    group_id: str = ""
    users: list[GroupUser] = field(default_factory=list)


@dataclass(frozen=True)
class AllUsersLoaded(Message):
    users: list[User] = field(default_factory=list)


@dataclass(frozen=True)
class AssignmentsDiscovered(Message):
    token: int = 0
    group_id: str = ""
    # None means the inventory was not fetched by this discovery.
    accounts: Optional[list[Account]] = None
    permission_sets: Optional[list[PermissionSet]] = None
    organizations_denied: bool = False
    assignments: list[Assignment] = field(default_factory=list)
    canceled: bool = False


@dataclass(frozen=True)
class MutationFinished(Message):
    operation: str = ""


# Commands


@dataclass(frozen=True)
class Command:
    # Background commands do not hold the busy gate.
    background: ClassVar[bool] = False

    def run(self) -> Message:
        raise NotImplementedError

    def failed(self, error: Exception) -> Message:
        raise NotImplementedError


@dataclass(frozen=True)
class LoadProfiles(Command):
    def run(self) -> ProfilesLoaded:
        return ProfilesLoaded(profiles=profiles.load_profiles())

    def failed(self, error: Exception) -> ProfilesLoaded:
        return ProfilesLoaded(error=error)


@dataclass(frozen=True)
class EstablishSession(Command):
    profile: str
    region: str
    gateway_factory: Optional[Callable[[str, str], Gateway]] = field(default=None, compare=False, repr=False)

    def _gateway(self) -> Gateway:
        if self.gateway_factory is not None:
            return self.gateway_factory(self.profile, self.region)
        return Gateway.from_config(self.profile, self.region, config.get_config())

    def run(self) -> SessionEstablished:
        gateway = self._gateway()
        instances = gateway.ensure_session()
        return SessionEstablished(gateway=gateway, instances=instances)

    def failed(self, error: Exception) -> SessionEstablished:
        return SessionEstablished(error=error)


@dataclass(frozen=True)
class LoadGroups(Command):
    gateway: Gateway

    def run(self) -> GroupsLoaded:
        return GroupsLoaded(groups=self.gateway.list_groups())

    def failed(self, error: Exception) -> GroupsLoaded:
        return GroupsLoaded(error=error)


@dataclass(frozen=True)
class LoadGroupCount(Command):
    background: ClassVar[bool] = True

    gateway: Gateway
    group_id: str

    def run(self) -> GroupCountLoaded:
        return GroupCountLoaded(group_id=self.group_id, count=self.gateway.count_group_memberships(self.group_id))

    def failed(self, error: Exception) -> GroupCountLoaded:
        return GroupCountLoaded(group_id=self.group_id, error=error)


@dataclass(frozen=True)
class LoadGroupUsers(Command):
    gateway: Gateway
    group_id: str

    def run(self) -> GroupUsersLoaded:
        return GroupUsersLoaded(group_id=self.group_id, users=self.gateway.list_group_users(self.group_id))

    def failed(self, error: Exception) -> GroupUsersLoaded:
        return GroupUsersLoaded(group_id=self.group_id, error=error)


@dataclass(frozen=True)
class LoadAllUsers(Command):
    gateway: Gateway

    def run(self) -> AllUsersLoaded:
        return AllUsersLoaded(users=self.gateway.list_users())

    def failed(self, error: Exception) -> AllUsersLoaded:
        return AllUsersLoaded(error=error)


@dataclass(frozen=True)
class DiscoverAssignments(Command):
    """List the inventory it is not given, then scan accounts x permission sets."""

    gateway: Gateway
    group_id: str
    token: int
    cancel: threading.Event = field(compare=False)
    accounts: Optional[list[Account]] = None
    permission_sets: Optional[list[PermissionSet]] = None
    organizations_denied: bool = False

    def run(self) -> AssignmentsDiscovered:
        accounts = self.accounts
        permission_sets = self.permission_sets
        denied = self.organizations_denied
        fetched_accounts: Optional[list[Account]] = None
        fetched_permission_sets: Optional[list[PermissionSet]] = None

        def result(**kwargs) -> AssignmentsDiscovered:  # noqa: ANN003
            return AssignmentsDiscovered(
                token=self.token,
                group_id=self.group_id,
                accounts=fetched_accounts,
                permission_sets=fetched_permission_sets,
                organizations_denied=denied,
                **kwargs,
            )

        try:
            if accounts is None and not denied:
                try:
                    accounts = fetched_accounts = self.gateway.list_accounts()
                except errors.OrganizationsAccessDenied:
                    denied = True
            if denied:
                accounts = []
            if self.cancel.is_set():
                raise errors.Canceled("assignment discovery canceled")
            if permission_sets is None:
                permission_sets = fetched_permission_sets = self.gateway.list_permission_sets()
            assignments = self.gateway.discover_assignments(self.group_id, accounts, permission_sets, self.cancel)
        except errors.Canceled:
            # Partial matches are never surfaced.
            return result(canceled=True)
        except Exception as e:
            logger.warning("Assignment discovery failed", extra={"group_id": self.group_id, "error": str(e)})
            return result(error=e)
        return result(assignments=assignments)

    def failed(self, error: Exception) -> AssignmentsDiscovered:
        return AssignmentsDiscovered(token=self.token, group_id=self.group_id, error=error)


@dataclass(frozen=True)
class CreateGroup(Command):
    gateway: Gateway
    display_name: str

    def run(self) -> MutationFinished:
        self.gateway.create_group(self.display_name)
        return MutationFinished(operation="Create group")

    def failed(self, error: Exception) -> MutationFinished:
        return MutationFinished(operation="Create group", error=error)


@dataclass(frozen=True)
class DeleteGroup(Command):
    gateway: Gateway
    group_id: str

    def run(self) -> MutationFinished:
        self.gateway.delete_group(self.group_id)
        return MutationFinished(operation="Delete group")

    def failed(self, error: Exception) -> MutationFinished:
        return MutationFinished(operation="Delete group", error=error)


@dataclass(frozen=True)
class AddUser(Command):
    gateway: Gateway
    group_id: str
    user_id: str

    def run(self) -> MutationFinished:
        self.gateway.add_user_to_group(self.group_id, self.user_id)
        return MutationFinished(operation="Add user")

    def failed(self, error: Exception) -> MutationFinished:
        return MutationFinished(operation="Add user", error=error)


@dataclass(frozen=True)
class RemoveUser(Command):
    gateway: Gateway
    membership_id: str

    def run(self) -> MutationFinished:
        self.gateway.remove_user_from_group(self.membership_id)
        return MutationFinished(operation="Remove user")

    def failed(self, error: Exception) -> MutationFinished:
        return MutationFinished(operation="Remove user", error=error)


@dataclass(frozen=True)
class CreateAssignment(Command):
    gateway: Gateway
    group_id: str
    account_id: str
    permission_set_arn: str
    cancel: threading.Event = field(compare=False)

    def run(self) -> MutationFinished:
        self.gateway.create_assignment(self.group_id, self.account_id, self.permission_set_arn, self.cancel)
        return MutationFinished(operation="Create assignment")

    def failed(self, error: Exception) -> MutationFinished:
        return MutationFinished(operation="Create assignment", error=error)


@dataclass(frozen=True)
class DeleteAssignment(Command):
    gateway: Gateway
    group_id: str
    account_id: str
    permission_set_arn: str
    cancel: threading.Event = field(compare=False)

    def run(self) -> MutationFinished:
        self.gateway.delete_assignment(self.group_id, self.account_id, self.permission_set_arn, self.cancel)
        return MutationFinished(operation="Delete assignment")

    def failed(self, error: Exception) -> MutationFinished:
        return MutationFinished(operation="Delete assignment", error=error)


def execute(command: Command) -> Message:
    """Run a command and return its one completion message, even when it raises."""
    name = type(command).__name__
    logger.debug("Running command", extra={"command": name})
    try:
        message = command.run()
    except errors.GatewayError as e:
        logger.warning("Command failed", extra={"command": name, "error": str(e)})
        message = command.failed(e)
    except Exception as e:
        logger.exception("Command crashed", extra={"command": name})
        message = command.failed(e)
    logger.debug("Command finished", extra={"command": name, "error": str(message.error) if message.error else None})
    return message


class Dispatcher:
    """Runs commands on worker threads and hands each completion message to deliver."""

    def __init__(self, deliver: Callable[[Message], None], max_workers: int = 4) -> None:
        self._deliver = deliver
        self._executor = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="command")

    def submit(self, command: Command) -> concurrent.futures.Future:
        future = self._executor.submit(execute, command)
        future.add_done_callback(self._on_done)
        return future

    def _on_done(self, future: concurrent.futures.Future) -> None:
        if future.cancelled():
            return
        self._deliver(future.result())

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=True)
