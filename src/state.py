"""
Session state machine: pure Python, no Textual imports.

The UI feeds operator inputs and command completion messages into
``Session.handle``, which mutates the session and returns the commands to
dispatch. It is the only writer of session data and runs on one thread.
"""

from __future__ import annotations

import string
import threading
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Optional, Union

import commands
import config
import errors
from entities.aws import Account, Assignment, Group, GroupUser, Instance, PermissionSet, User
from gateway import Gateway

logger = config.get_logger(service="state")


class Screen(Enum):
    SELECT_REGION = auto()
    SELECT_PROFILE = auto()
    ESTABLISH_SESSION = auto()
    SELECT_INSTANCE = auto()
    GROUPS = auto()
    GROUP_DETAIL = auto()


class Tab(Enum):
    USERS = auto()
    ACCOUNTS = auto()


class StatusLevel(Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


@dataclass
class Status:
    level: StatusLevel
    text: str


def is_account_id(value: str) -> bool:
    return len(value) == 12 and all(c in string.digits for c in value)


# ---------------------------------------------------------------------------
# Modals. At most one is active; None means no modal.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HelpModal:
    pass


@dataclass(frozen=True)
class ErrorDetailsModal:
    pass


@dataclass(frozen=True)
class BlockingErrorModal:
    title: str
    message: str
    next_step: str


@dataclass(frozen=True)
class GroupCreateInput:
    pass


@dataclass(frozen=True)
class GroupDeleteConfirm:
    group: Group


@dataclass(frozen=True)
class UserPicker:
    users: list[User]


@dataclass(frozen=True)
class UserRemoveConfirm:
    user: GroupUser


@dataclass(frozen=True)
class AssignmentRemoveConfirm:
    assignment: Assignment


@dataclass(frozen=True)
class AccountPicker:
    accounts: list[Account]


@dataclass(frozen=True)
class ManualAccountInput:
    pass


@dataclass(frozen=True)
class PermissionSetPicker:
    permission_sets: list[PermissionSet]


@dataclass(frozen=True)
class AssignmentCreateConfirm:
    account_id: str
    permission_set: PermissionSet


Modal = Union[
    HelpModal,
    ErrorDetailsModal,
    BlockingErrorModal,
    GroupCreateInput,
    GroupDeleteConfirm,
    UserPicker,
    UserRemoveConfirm,
    AssignmentRemoveConfirm,
    AccountPicker,
    ManualAccountInput,
    PermissionSetPicker,
    AssignmentCreateConfirm,
]

LIST_MODALS = (UserPicker, AccountPicker, PermissionSetPicker)
INPUT_MODALS = (GroupCreateInput, ManualAccountInput)
ASSIGNMENT_WIZARD_MODALS = (AccountPicker, ManualAccountInput, PermissionSetPicker, AssignmentCreateConfirm)


# ---------------------------------------------------------------------------
# Operator inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MoveCursor:
    index: int


@dataclass(frozen=True)
class EditInput:
    text: str


@dataclass(frozen=True)
class EditFilter:
    text: str


@dataclass(frozen=True)
class Confirm:
    pass


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class SwitchTab:
    pass


@dataclass(frozen=True)
class Refresh:
    pass


@dataclass(frozen=True)
class ToggleSearch:
    pass


@dataclass(frozen=True)
class ShowHelp:
    pass


@dataclass(frozen=True)
class ShowErrorDetails:
    pass


@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class CreateGroup:
    pass


@dataclass(frozen=True)
class DeleteGroup:
    pass


@dataclass(frozen=True)
class Add:
    pass


@dataclass(frozen=True)
class Remove:
    pass


Input = Union[
    MoveCursor,
    EditInput,
    EditFilter,
    Confirm,
    Back,
    SwitchTab,
    Refresh,
    ToggleSearch,
    ShowHelp,
    ShowErrorDetails,
    Quit,
    CreateGroup,
    DeleteGroup,
    Add,
    Remove,
]


@dataclass
class PendingSelection:
    manual_account_id: str = ""
    account: Optional[Account] = None
    permission_set: Optional[PermissionSet] = None

    @property
    def account_id(self) -> str:
        if self.manual_account_id:
            return self.manual_account_id
        return self.account.id if self.account else ""


@dataclass
class Session:
    profile: str = ""
    region: str = ""
    regions: list[str] = field(default_factory=lambda: list(config.AWS_REGIONS))
    gateway_factory: Optional[Callable[[str, str], Gateway]] = None

    screen: Screen = Screen.SELECT_REGION
    tab: Tab = Tab.USERS
    modal: Optional[Modal] = None

    busy: bool = False
    quitting: bool = False
    status: Status = field(default_factory=lambda: Status(StatusLevel.INFO, "Ready"))
    last_error: Optional[Exception] = None
    last_error_details: str = ""

    filter_enabled: bool = True
    filter_text: str = ""
    cursor: int = 0
    groups_cursor: int = 0
    modal_cursor: int = 0
    input_text: str = ""

    gateway: Optional[Gateway] = None
    profiles: list[str] = field(default_factory=list)
    instances: list[Instance] = field(default_factory=list)
    instance: Optional[Instance] = None

    groups: list[Group] = field(default_factory=list)
    group_counts: dict[str, int] = field(default_factory=dict)
    counts_in_flight: set[str] = field(default_factory=set)
    group: Optional[Group] = None
    users: list[GroupUser] = field(default_factory=list)

    accounts: list[Account] = field(default_factory=list)
    permission_sets: list[PermissionSet] = field(default_factory=list)
    accounts_loaded: bool = False
    permission_sets_loaded: bool = False
    organizations_denied: bool = False
    assignments: list[Assignment] = field(default_factory=list)
    pending: PendingSelection = field(default_factory=PendingSelection)

    discovery_cancel: Optional[threading.Event] = None
    discovery_token: int = 0
    poll_cancel: Optional[threading.Event] = None

    @classmethod
    def start(
        cls,
        profile: str = "",
        region: str = "",
        gateway_factory: Optional[Callable[[str, str], Gateway]] = None,
    ) -> tuple[Session, list[commands.Command]]:
        """Create the session and the commands its initial screen needs."""
        session = cls(profile=profile, region=region, gateway_factory=gateway_factory)
        if not region:
            session.screen = Screen.SELECT_REGION
            session.status = Status(StatusLevel.INFO, "Select an AWS region")
            return session, []
        if not profile:
            session.screen = Screen.SELECT_PROFILE
            return session, session._start(commands.LoadProfiles())
        return session, session._establish()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def handle(self, event: Union[Input, commands.Message]) -> list[commands.Command]:
        location = (self.screen, self.tab)
        if isinstance(event, commands.Message):
            to_run = self._on_message(event)
        elif isinstance(event, Quit):
            to_run = self._quit()
        elif self.modal is not None:
            to_run = self._on_modal_input(event)
        else:
            to_run = self._on_input(event)
        # A filter only applies to the list it was typed into.
        if (self.screen, self.tab) != location:
            self.filter_text = ""
        return to_run

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _start(self, command: commands.Command) -> list[commands.Command]:
        if not command.background:
            self.busy = True
        return [command]

    def _establish(self) -> list[commands.Command]:
        self.screen = Screen.ESTABLISH_SESSION
        self.status = Status(StatusLevel.INFO, "Checking SSO session")
        return self._start(commands.EstablishSession(self.profile, self.region, gateway_factory=self.gateway_factory))

    def _clamp_cursor(self, size: int) -> None:
        if self.cursor < 0 or self.cursor >= size:
            self.cursor = 0

    def set_status_error(self, prefix: str, error: Exception) -> None:
        self.last_error = error
        instance = self.instance.arn if self.instance else ""
        self.last_error_details = (
            f"{prefix}\nerror: {error}\nprofile: {self.profile}\nregion: {self.region}\ninstance: {instance}"
        )
        self.status = Status(StatusLevel.ERROR, f"{prefix}: {error}")
        logger.warning(prefix, extra={"error": str(error)})

    def set_blocking_error(self, title: str, error: Exception, next_step: str) -> None:
        self.last_error = error
        self.last_error_details = f"{title}\nerror: {error}\nprofile: {self.profile}\nregion: {self.region}"
        self.modal = BlockingErrorModal(title=title, message=str(error), next_step=next_step)
        self.status = Status(StatusLevel.ERROR, title)
        self.busy = False
        logger.error(title, extra={"error": str(error)})

    def visible_keys(self) -> list[int]:
        """Indexes of the rows the main list shows after filtering."""
        import view  # view imports this module

        return [item.key for item in view.main_items(self)]

    def _cursor_visible(self) -> bool:
        return self.cursor in self.visible_keys()

    def discovery_in_flight(self) -> bool:
        return self.discovery_cancel is not None

    def _cancel_discovery(self) -> None:
        if self.discovery_cancel is not None:
            self.discovery_cancel.set()
            self.discovery_cancel = None

    def _discover(self, refresh_inventory: bool = False) -> list[commands.Command]:
        assert self.gateway is not None and self.group is not None
        self.discovery_token += 1
        self.discovery_cancel = threading.Event()
        reuse_accounts = self.accounts_loaded and not refresh_inventory
        reuse_permission_sets = self.permission_sets_loaded and not refresh_inventory
        self.status = Status(StatusLevel.INFO, "Discovering account assignments")
        return self._start(
            commands.DiscoverAssignments(
                gateway=self.gateway,
                group_id=self.group.id,
                token=self.discovery_token,
                cancel=self.discovery_cancel,
                accounts=list(self.accounts) if reuse_accounts else None,
                permission_sets=list(self.permission_sets) if reuse_permission_sets else None,
                organizations_denied=self.organizations_denied,
            )
        )

    def _load_group_count(self, group_id: str) -> list[commands.Command]:
        if self.gateway is None or group_id in self.group_counts or group_id in self.counts_in_flight:
            return []
        self.counts_in_flight.add(group_id)
        return self._start(commands.LoadGroupCount(self.gateway, group_id))

    def _load_groups(self) -> list[commands.Command]:
        assert self.gateway is not None
        self.status = Status(StatusLevel.INFO, "Loading groups")
        return self._start(commands.LoadGroups(self.gateway))

    def _load_group_users(self) -> list[commands.Command]:
        assert self.gateway is not None and self.group is not None
        self.status = Status(StatusLevel.INFO, "Loading group users")
        return self._start(commands.LoadGroupUsers(self.gateway, self.group.id))

    def _reload_current(self) -> list[commands.Command]:
        if self.screen == Screen.GROUPS:
            return self._load_groups()
        if self.screen == Screen.GROUP_DETAIL:
            if self.tab == Tab.USERS:
                return self._load_group_users()
            return self._discover()
        return []

    def _enter_groups(self) -> list[commands.Command]:
        self.screen = Screen.GROUPS
        self.cursor = 0
        self.groups_cursor = 0
        return self._load_groups()

    def _close_modal(self) -> None:
        if isinstance(self.modal, ASSIGNMENT_WIZARD_MODALS):
            self.pending = PendingSelection()
        self.modal = None
        self.modal_cursor = 0
        self.input_text = ""

    def _open_modal(self, modal: Modal) -> None:
        self.modal = modal
        self.modal_cursor = 0
        self.input_text = ""

    def _quit(self) -> list[commands.Command]:
        self._cancel_discovery()
        if self.poll_cancel is not None:
            self.poll_cancel.set()
        self.quitting = True
        logger.info("Session ending")
        return []

    # ------------------------------------------------------------------
    # Inputs without a modal
    # ------------------------------------------------------------------

    def _on_input(self, event: Input) -> list[commands.Command]:  # noqa: PLR0911
        if isinstance(event, MoveCursor):
            return self._move_cursor(event.index)
        if isinstance(event, EditFilter):
            self.filter_text = event.text
            visible = self.visible_keys()
            if visible and self.cursor not in visible:
                return self._move_cursor(visible[0])
            return []
        if isinstance(event, ShowHelp):
            self._open_modal(HelpModal())
            return []
        if isinstance(event, ShowErrorDetails):
            if self.last_error is not None:
                self._open_modal(ErrorDetailsModal())
            return []
        if isinstance(event, ToggleSearch):
            self.filter_enabled = not self.filter_enabled
            self.filter_text = ""
            self.status = Status(StatusLevel.INFO, "Toggled search/filter")
            return []
        if isinstance(event, Refresh):
            return self._refresh()
        if isinstance(event, Confirm):
            return self._confirm()
        if isinstance(event, Back):
            return self._back()
        if isinstance(event, SwitchTab):
            return self._switch_tab()
        if isinstance(event, CreateGroup):
            if self.screen == Screen.GROUPS and not self.busy:
                self._open_modal(GroupCreateInput())
            return []
        if isinstance(event, DeleteGroup):
            if self.screen == Screen.GROUPS and not self.busy and self._cursor_visible():
                self._open_modal(GroupDeleteConfirm(self.groups[self.cursor]))
            return []
        if isinstance(event, Add):
            return self._add()
        if isinstance(event, Remove):
            return self._remove()
        return []

    def _move_cursor(self, index: int) -> list[commands.Command]:
        self.cursor = index
        if self.screen != Screen.GROUPS or not 0 <= index < len(self.groups):
            return []
        self.groups_cursor = index
        self.group = self.groups[index]
        return self._load_group_count(self.group.id)

    def _confirm(self) -> list[commands.Command]:  # noqa: PLR0911
        if self.busy or not self._cursor_visible():
            return []
        if self.screen == Screen.SELECT_REGION:
            if not 0 <= self.cursor < len(self.regions):
                return []
            self.region = self.regions[self.cursor]
            if not self.profile:
                self.screen = Screen.SELECT_PROFILE
                self.cursor = 0
                self.status = Status(StatusLevel.INFO, "Loading profiles")
                return self._start(commands.LoadProfiles())
            return self._establish()
        if self.screen == Screen.SELECT_PROFILE:
            if not 0 <= self.cursor < len(self.profiles):
                return []
            self.profile = self.profiles[self.cursor]
            return self._establish()
        if self.screen == Screen.SELECT_INSTANCE:
            if not 0 <= self.cursor < len(self.instances):
                return []
            self._bind_instance(self.instances[self.cursor])
            return self._enter_groups()
        if self.screen == Screen.GROUPS:
            if not 0 <= self.cursor < len(self.groups):
                return []
            self.groups_cursor = self.cursor
            self.group = self.groups[self.cursor]
            self.screen = Screen.GROUP_DETAIL
            self.tab = Tab.USERS
            self.cursor = 0
            self.users = []
            self.assignments = []
            return self._load_group_users()
        return []

    def _bind_instance(self, instance: Instance) -> None:
        assert self.gateway is not None
        self.instance = instance
        self.gateway.set_instance(instance)

    def _back(self) -> list[commands.Command]:
        if self.screen == Screen.GROUP_DETAIL:
            if self.discovery_in_flight():
                self._cancel_discovery()
                self.busy = False
                self.status = Status(StatusLevel.WARN, "Assignment discovery canceled")
                return []
            # Results still in flight are matched against the group id on arrival.
            self.screen = Screen.GROUPS
            self.tab = Tab.USERS
            self.cursor = self.groups_cursor
            return []
        if self.busy:
            return []
        if self.screen == Screen.SELECT_PROFILE:
            self.screen = Screen.SELECT_REGION
            self.cursor = self.regions.index(self.region) if self.region in self.regions else 0
            return []
        if self.screen in (Screen.ESTABLISH_SESSION, Screen.SELECT_INSTANCE):
            self.screen = Screen.SELECT_PROFILE
            self.gateway = None
            self.instance = None
            self.cursor = self.profiles.index(self.profile) if self.profile in self.profiles else 0
            if not self.profiles:
                return self._start(commands.LoadProfiles())
            return []
        if self.screen == Screen.GROUPS and len(self.instances) > 1:
            self.screen = Screen.SELECT_INSTANCE
            self.cursor = self.instances.index(self.instance) if self.instance in self.instances else 0
            return []
        return []

    def _switch_tab(self) -> list[commands.Command]:
        if self.screen != Screen.GROUP_DETAIL:
            return []
        self.cursor = 0
        if self.tab == Tab.USERS:
            self.tab = Tab.ACCOUNTS
            if not self.busy:
                return self._discover()
            return []
        self.tab = Tab.USERS
        return []

    def _refresh(self) -> list[commands.Command]:
        if self.busy:
            return []
        if self.screen == Screen.SELECT_PROFILE:
            return self._start(commands.LoadProfiles())
        if self.screen == Screen.ESTABLISH_SESSION:
            return self._establish()
        if self.screen == Screen.GROUP_DETAIL and self.tab == Tab.ACCOUNTS:
            return self._discover(refresh_inventory=True)
        return self._reload_current()

    def _add(self) -> list[commands.Command]:
        if self.screen != Screen.GROUP_DETAIL or self.busy or self.gateway is None:
            return []
        if self.tab == Tab.USERS:
            self.status = Status(StatusLevel.INFO, "Loading directory users")
            return self._start(commands.LoadAllUsers(self.gateway))
        if not self.permission_sets:
            self.set_status_error("Cannot add assignment", errors.NotConfigured("permission sets are not loaded"))
            return []
        self.pending = PendingSelection()
        if self.organizations_denied:
            self._open_modal(ManualAccountInput())
        else:
            self._open_modal(AccountPicker(list(self.accounts)))
        return []

    def _remove(self) -> list[commands.Command]:
        if self.screen != Screen.GROUP_DETAIL or self.busy or not self._cursor_visible():
            return []
        if self.tab == Tab.USERS:
            if 0 <= self.cursor < len(self.users):
                self._open_modal(UserRemoveConfirm(self.users[self.cursor]))
        elif 0 <= self.cursor < len(self.assignments):
            self._open_modal(AssignmentRemoveConfirm(self.assignments[self.cursor]))
        return []

    # ------------------------------------------------------------------
    # Inputs while a modal is active
    # ------------------------------------------------------------------

    def _on_modal_input(self, event: Input) -> list[commands.Command]:
        if isinstance(event, Back):
            if not isinstance(self.modal, BlockingErrorModal):
                self._close_modal()
            return []
        if isinstance(event, MoveCursor):
            if isinstance(self.modal, LIST_MODALS):
                self.modal_cursor = event.index
            return []
        if isinstance(event, EditInput):
            if isinstance(self.modal, INPUT_MODALS):
                self.input_text = event.text
            return []
        if isinstance(event, Confirm):
            return self._confirm_modal()
        return []

    def _confirm_modal(self) -> list[commands.Command]:  # noqa: PLR0911, PLR0912
        modal = self.modal
        if isinstance(modal, (HelpModal, ErrorDetailsModal, BlockingErrorModal)):
            self._close_modal()
            return []
        assert self.gateway is not None

        if isinstance(modal, GroupCreateInput):
            name = self.input_text.strip()
            if not name:
                self.status = Status(StatusLevel.WARN, "Group name cannot be empty")
                return []
            self._close_modal()
            self.status = Status(StatusLevel.INFO, f"Creating group {name}")
            return self._start(commands.CreateGroup(self.gateway, name))

        if isinstance(modal, GroupDeleteConfirm):
            self._close_modal()
            self.status = Status(StatusLevel.INFO, f"Deleting group {modal.group.display_name}")
            return self._start(commands.DeleteGroup(self.gateway, modal.group.id))

        if isinstance(modal, UserRemoveConfirm):
            self._close_modal()
            self.status = Status(StatusLevel.INFO, f"Removing {modal.user.display_name}")
            return self._start(commands.RemoveUser(self.gateway, modal.user.membership_id))

        if isinstance(modal, UserPicker):
            if not 0 <= self.modal_cursor < len(modal.users) or self.group is None:
                return []
            user = modal.users[self.modal_cursor]
            self._close_modal()
            self.status = Status(StatusLevel.INFO, f"Adding {user.display_name}")
            return self._start(commands.AddUser(self.gateway, self.group.id, user.id))

        if isinstance(modal, AccountPicker):
            if not 0 <= self.modal_cursor < len(modal.accounts):
                return []
            self.pending.account = modal.accounts[self.modal_cursor]
            self._open_modal(PermissionSetPicker(list(self.permission_sets)))
            return []

        if isinstance(modal, ManualAccountInput):
            value = self.input_text.strip()
            if not is_account_id(value):
                self.status = Status(StatusLevel.WARN, "Account ID must be 12 digits")
                return []
            self.pending.manual_account_id = value
            self._open_modal(PermissionSetPicker(list(self.permission_sets)))
            return []

        if isinstance(modal, PermissionSetPicker):
            if not 0 <= self.modal_cursor < len(modal.permission_sets):
                return []
            self.pending.permission_set = modal.permission_sets[self.modal_cursor]
            if not self.pending.account_id:
                self.status = Status(StatusLevel.WARN, "Select account first")
                return []
            self._open_modal(AssignmentCreateConfirm(self.pending.account_id, self.pending.permission_set))
            return []

        if isinstance(modal, AssignmentCreateConfirm):
            if self.group is None:
                return []
            self._close_modal()
            self.poll_cancel = threading.Event()
            self.status = Status(StatusLevel.INFO, "Creating assignment")
            return self._start(
                commands.CreateAssignment(
                    self.gateway, self.group.id, modal.account_id, modal.permission_set.arn, cancel=self.poll_cancel
                )
            )

        if isinstance(modal, AssignmentRemoveConfirm):
            if self.group is None:
                return []
            self._close_modal()
            self.poll_cancel = threading.Event()
            self.status = Status(StatusLevel.INFO, "Deleting assignment")
            assignment = modal.assignment
            return self._start(
                commands.DeleteAssignment(
                    self.gateway,
                    self.group.id,
                    assignment.account_id,
                    assignment.permission_set_arn,
                    cancel=self.poll_cancel,
                )
            )
        return []

    # ------------------------------------------------------------------
    # Completion messages
    # ------------------------------------------------------------------

    def _on_message(self, msg: commands.Message) -> list[commands.Command]:  # noqa: PLR0911
        if isinstance(msg, commands.ProfilesLoaded):
            return self._on_profiles(msg)
        if isinstance(msg, commands.SessionEstablished):
            return self._on_session(msg)
        if isinstance(msg, commands.GroupsLoaded):
            return self._on_groups(msg)
        if isinstance(msg, commands.GroupCountLoaded):
            return self._on_group_count(msg)
        if isinstance(msg, commands.GroupUsersLoaded):
            return self._on_group_users(msg)
        if isinstance(msg, commands.AllUsersLoaded):
            return self._on_all_users(msg)
        if isinstance(msg, commands.AssignmentsDiscovered):
            return self._on_assignments(msg)
        if isinstance(msg, commands.MutationFinished):
            return self._on_mutation(msg)
        logger.warning("Unhandled message", extra={"message": type(msg).__name__})
        return []

    def _on_profiles(self, msg: commands.ProfilesLoaded) -> list[commands.Command]:
        self.busy = False
        if msg.error is not None:
            self.set_blocking_error("Failed loading profiles", msg.error, "Check ~/.aws/config and ~/.aws/credentials")
            return []
        self.profiles = msg.profiles
        self._clamp_cursor(len(self.profiles))
        self.status = Status(StatusLevel.INFO, "Select an AWS profile")
        return []

    def _on_session(self, msg: commands.SessionEstablished) -> list[commands.Command]:
        self.busy = False
        if msg.error is not None:
            self.set_blocking_error(
                "Unable to establish SSO session", msg.error, f"Run `aws sso login --profile {self.profile}` and retry"
            )
            return []
        self.gateway = msg.gateway
        self.instances = msg.instances
        if not self.instances:
            self.set_blocking_error(
                "No Identity Center instances found",
                errors.NotConfigured("ListInstances returned zero instances"),
                "Verify account/region and IAM Identity Center setup",
            )
            return []
        if len(self.instances) == 1:
            self._bind_instance(self.instances[0])
            self.status = Status(StatusLevel.INFO, "Loaded Identity Center instance")
            return self._enter_groups()
        self.screen = Screen.SELECT_INSTANCE
        self.cursor = 0
        self.status = Status(StatusLevel.INFO, "Select an instance")
        return []

    def _on_groups(self, msg: commands.GroupsLoaded) -> list[commands.Command]:
        self.busy = False
        if msg.error is not None:
            self.set_status_error("Failed to load groups", msg.error)
            return []
        self.groups = msg.groups
        self.group_counts = {}
        self.counts_in_flight = set()
        self.status = Status(StatusLevel.INFO, f"Loaded {len(self.groups)} groups")
        if self.screen != Screen.GROUPS:
            return []
        self._clamp_cursor(len(self.groups))
        self.groups_cursor = self.cursor
        if not self.groups:
            self.group = None
            return []
        self.group = self.groups[self.cursor]
        return self._load_group_count(self.group.id)

    def _on_group_count(self, msg: commands.GroupCountLoaded) -> list[commands.Command]:
        if msg.group_id not in self.counts_in_flight:
            return []
        self.counts_in_flight.discard(msg.group_id)
        if msg.error is not None:
            self.set_status_error("Failed loading group user count", msg.error)
            return []
        self.group_counts[msg.group_id] = msg.count
        return []

    def _on_group_users(self, msg: commands.GroupUsersLoaded) -> list[commands.Command]:
        self.busy = False
        if msg.error is not None:
            self.set_status_error("Failed to load group users", msg.error)
            return []
        if self.group is None or msg.group_id != self.group.id:
            return []
        self.users = msg.users
        self.group_counts[msg.group_id] = len(msg.users)
        if self.screen == Screen.GROUP_DETAIL and self.tab == Tab.USERS:
            self._clamp_cursor(len(self.users))
        self.status = Status(StatusLevel.INFO, f"Loaded {len(msg.users)} users")
        return []

    def _on_all_users(self, msg: commands.AllUsersLoaded) -> list[commands.Command]:
        self.busy = False
        if msg.error is not None:
            self.set_status_error("Failed to load users", msg.error)
            return []
        if self.screen != Screen.GROUP_DETAIL or self.tab != Tab.USERS:
            self.status = Status(StatusLevel.WARN, "Add user canceled: users tab was left")
            return []
        if self.modal is not None:
            self.status = Status(StatusLevel.WARN, "Add user canceled: close the open dialog and retry")
            return []
        self._open_modal(UserPicker(msg.users))
        self.status = Status(StatusLevel.INFO, "Choose a user and press Enter")
        return []

    def _on_assignments(self, msg: commands.AssignmentsDiscovered) -> list[commands.Command]:
        if msg.accounts is not None:
            self.accounts = msg.accounts
            self.accounts_loaded = True
        if msg.permission_sets is not None:
            self.permission_sets = msg.permission_sets
            self.permission_sets_loaded = True
        if msg.organizations_denied:
            self.organizations_denied = True
            self.accounts = []

        if msg.token != self.discovery_token or self.discovery_cancel is None:
            logger.debug("Ignoring stale discovery result", extra={"token": msg.token})
            return []

        self.discovery_cancel = None
        self.busy = False
        if msg.error is not None:
            self.set_status_error("Failed to load accounts/assignments", msg.error)
            return []
        if msg.canceled:
            self.status = Status(StatusLevel.WARN, "Assignment discovery canceled")
            return []
        if self.group is None or msg.group_id != self.group.id:
            return []
        self.assignments = msg.assignments
        if self.screen == Screen.GROUP_DETAIL and self.tab == Tab.ACCOUNTS:
            self._clamp_cursor(len(self.assignments))
        if self.organizations_denied:
            self.status = Status(
                StatusLevel.INFO, "Organizations access denied; use manual account ID for new assignments"
            )
        else:
            self.status = Status(StatusLevel.INFO, f"Loaded {len(msg.assignments)} assignments")
        return []

    def _on_mutation(self, msg: commands.MutationFinished) -> list[commands.Command]:
        self.busy = False
        self.poll_cancel = None
        if msg.error is not None:
            if isinstance(msg.error, errors.Canceled):
                self.status = Status(StatusLevel.WARN, f"{msg.operation} canceled")
            else:
                self.set_status_error(f"{msg.operation} failed", msg.error)
            return []
        # The mutation's own dialog closed on dispatch; any open modal was opened since.
        to_run = self._reload_current()
        self.status = Status(StatusLevel.INFO, f"{msg.operation} complete")
        return to_run
