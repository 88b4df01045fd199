from unittest.mock import MagicMock

import pytest
from hypothesis import given, settings

import commands
import errors
import state
from entities.aws import Account, Assignment, Group, GroupUser, Instance, PermissionSet, User
from state import Screen, StatusLevel, Tab

from . import strategies

INSTANCE = Instance(arn="arn:aws:sso:::instance/ssoins-1", identity_store_id="d-1", display_name="main")
OTHER_INSTANCE = Instance(arn="arn:aws:sso:::instance/ssoins-2", identity_store_id="d-2", display_name="other")
GROUPS = [
    Group(id="g-1", display_name="admins"),
    Group(id="g-2", display_name="devs"),
    Group(id="g-3", display_name="ops"),
]
MEMBERS = [
    GroupUser(membership_id="m-1", user_id="u-1", display_name="John Doe"),
    GroupUser(membership_id="m-2", user_id="u-2", display_name="Jane Roe"),
]
ACCOUNTS = [Account(id="111111111111", name="prod"), Account(id="222222222222", name="dev")]
PERMISSION_SETS = [PermissionSet(arn="arn:ps-1", name="Admin"), PermissionSet(arn="arn:ps-2", name="ReadOnly")]
ASSIGNMENT = Assignment(
    account_id="111111111111", account_name="prod", permission_set_arn="arn:ps-1", permission_set_name="Admin"
)


def at_groups(instances=None):  # noqa: ANN001, ANN201
    """Session on the groups screen with GROUPS loaded and the first group selected."""
    session, _ = state.Session.start("dev", "eu-west-1")
    session.handle(commands.SessionEstablished(gateway=MagicMock(), instances=instances or [INSTANCE]))
    if session.screen == Screen.SELECT_INSTANCE:
        session.handle(state.Confirm())
    session.handle(commands.GroupsLoaded(groups=list(GROUPS)))
    return session


def at_detail(index: int = 0):  # noqa: ANN201
    session = at_groups()
    session.handle(state.MoveCursor(index))
    session.handle(state.Confirm())
    session.handle(commands.GroupUsersLoaded(group_id=GROUPS[index].id, users=list(MEMBERS)))
    return session


def discovered(session, **kwargs):  # noqa: ANN001, ANN003, ANN201
    values = {
        "token": session.discovery_token,
        "group_id": session.group.id,
        "accounts": list(ACCOUNTS),
        "permission_sets": list(PERMISSION_SETS),
        "assignments": [ASSIGNMENT],
    }
    values.update(kwargs)
    return session.handle(commands.AssignmentsDiscovered(**values))


def at_accounts(**kwargs):  # noqa: ANN003, ANN201
    session = at_detail()
    session.handle(state.SwitchTab())
    discovered(session, **kwargs)
    return session


class TestInitialScreen:
    def test_missing_region(self):
        session, to_run = state.Session.start("dev", "")

        assert session.screen == Screen.SELECT_REGION
        assert to_run == []
        assert not session.busy

    def test_missing_profile_loads_profiles(self):
        session, to_run = state.Session.start("", "eu-west-1")

        assert session.screen == Screen.SELECT_PROFILE
        assert to_run == [commands.LoadProfiles()]
        assert session.busy

    def test_both_known_establishes_session(self):
        session, to_run = state.Session.start("dev", "eu-west-1")

        assert session.screen == Screen.ESTABLISH_SESSION
        assert to_run == [commands.EstablishSession("dev", "eu-west-1")]
        assert session.busy

    def test_region_then_profile(self):
        session, _ = state.Session.start("", "")

        session.handle(state.MoveCursor(session.regions.index("eu-west-1")))
        to_run = session.handle(state.Confirm())
        assert session.region == "eu-west-1"
        assert session.screen == Screen.SELECT_PROFILE
        assert to_run == [commands.LoadProfiles()]

        session.handle(commands.ProfilesLoaded(profiles=["default", "dev"]))
        session.handle(state.MoveCursor(1))
        to_run = session.handle(state.Confirm())

        assert session.profile == "dev"
        assert session.screen == Screen.ESTABLISH_SESSION
        assert to_run == [commands.EstablishSession("dev", "eu-west-1")]

    def test_confirm_ignored_while_busy(self):
        session, _ = state.Session.start("", "eu-west-1")

        assert session.handle(state.Confirm()) == []
        assert session.screen == Screen.SELECT_PROFILE

    def test_back_from_profiles_to_regions(self):
        session, _ = state.Session.start("", "eu-west-1")
        session.handle(commands.ProfilesLoaded(profiles=["dev"]))

        session.handle(state.Back())

        assert session.screen == Screen.SELECT_REGION
        assert session.regions[session.cursor] == "eu-west-1"


class TestSessionEstablishment:
    def test_failure_is_blocking(self):
        session, _ = state.Session.start("dev", "eu-west-1")

        session.handle(commands.SessionEstablished(error=errors.LoginFailed("aws sso login failed (exit 1)")))

        assert isinstance(session.modal, state.BlockingErrorModal)
        assert session.modal.title == "Unable to establish SSO session"
        assert "aws sso login --profile dev" in session.modal.next_step
        assert not session.busy

    def test_blocking_modal_only_closes_on_confirm(self):
        session, _ = state.Session.start("dev", "eu-west-1")
        session.handle(commands.SessionEstablished(error=errors.ApiError("boom")))

        session.handle(state.Back())
        assert session.modal is not None

        session.handle(state.Confirm())
        assert session.modal is None

    def test_refresh_retries(self):
        session, _ = state.Session.start("dev", "eu-west-1")
        session.handle(commands.SessionEstablished(error=errors.ApiError("boom")))
        session.handle(state.Confirm())

        assert session.handle(state.Refresh()) == [commands.EstablishSession("dev", "eu-west-1")]
        assert session.busy

    def test_zero_instances(self):
        session, _ = state.Session.start("dev", "eu-west-1")

        session.handle(commands.SessionEstablished(gateway=MagicMock(), instances=[]))

        assert isinstance(session.modal, state.BlockingErrorModal)
        assert session.modal.title == "No Identity Center instances found"
        assert isinstance(session.last_error, errors.NotConfigured)

    def test_single_instance_is_selected(self):
        session, _ = state.Session.start("dev", "eu-west-1")
        gw = MagicMock()

        to_run = session.handle(commands.SessionEstablished(gateway=gw, instances=[INSTANCE]))

        assert session.screen == Screen.GROUPS
        assert session.instance == INSTANCE
        gw.set_instance.assert_called_once_with(INSTANCE)
        assert to_run == [commands.LoadGroups(gw)]

    def test_several_instances_are_offered(self):
        session, _ = state.Session.start("dev", "eu-west-1")
        gw = MagicMock()

        assert session.handle(commands.SessionEstablished(gateway=gw, instances=[INSTANCE, OTHER_INSTANCE])) == []
        assert session.screen == Screen.SELECT_INSTANCE

        session.handle(state.MoveCursor(1))
        to_run = session.handle(state.Confirm())

        gw.set_instance.assert_called_once_with(OTHER_INSTANCE)
        assert session.screen == Screen.GROUPS
        assert to_run == [commands.LoadGroups(gw)]

    def test_back_from_groups_to_instances(self):
        session = at_groups(instances=[INSTANCE, OTHER_INSTANCE])

        session.handle(state.Back())

        assert session.screen == Screen.SELECT_INSTANCE


class TestGroupCounts:
    def test_groups_load_fetches_selected_count(self):
        session, _ = state.Session.start("dev", "eu-west-1")
        session.handle(commands.SessionEstablished(gateway=MagicMock(), instances=[INSTANCE]))

        to_run = session.handle(commands.GroupsLoaded(groups=list(GROUPS)))

        assert to_run == [commands.LoadGroupCount(session.gateway, "g-1")]
        assert session.counts_in_flight == {"g-1"}
        assert not session.busy
        assert session.status.text == "Loaded 3 groups"

    def test_reselecting_does_not_refetch(self):
        session = at_groups()
        session.handle(commands.GroupCountLoaded(group_id="g-1", count=3))

        assert session.handle(state.MoveCursor(1)) == [commands.LoadGroupCount(session.gateway, "g-2")]
        assert session.handle(state.MoveCursor(1)) == []
        session.handle(commands.GroupCountLoaded(group_id="g-2", count=0))
        assert session.handle(state.MoveCursor(0)) == []
        assert session.handle(state.MoveCursor(1)) == []
        assert session.group_counts == {"g-1": 3, "g-2": 0}

    def test_reload_resets_counts_and_fetches_selected_only(self):
        session = at_groups()
        session.handle(commands.GroupCountLoaded(group_id="g-1", count=3))
        session.handle(state.MoveCursor(1))
        session.handle(commands.GroupCountLoaded(group_id="g-2", count=5))

        assert session.handle(state.Refresh()) == [commands.LoadGroups(session.gateway)]
        to_run = session.handle(commands.GroupsLoaded(groups=list(GROUPS)))

        assert session.group_counts == {}
        assert to_run == [commands.LoadGroupCount(session.gateway, "g-2")]

    def test_count_fetch_does_not_set_busy(self):
        session = at_groups()

        session.handle(state.MoveCursor(2))

        assert not session.busy
        assert session.handle(state.Confirm()) == [commands.LoadGroupUsers(session.gateway, "g-3")]

    def test_count_failure_reports_error(self):
        session = at_groups()

        session.handle(commands.GroupCountLoaded(group_id="g-1", error=errors.ApiError("Rate exceeded")))

        assert session.status.level == StatusLevel.ERROR
        assert "g-1" not in session.group_counts
        assert session.handle(state.MoveCursor(0)) == [commands.LoadGroupCount(session.gateway, "g-1")]

    def test_users_load_records_count(self):
        session = at_detail(1)

        assert session.group_counts["g-2"] == 2


class TestGroupDetail:
    def test_confirm_opens_users_tab(self):
        session = at_groups()
        session.handle(state.MoveCursor(1))

        to_run = session.handle(state.Confirm())

        assert session.screen == Screen.GROUP_DETAIL
        assert session.tab == Tab.USERS
        assert session.group == GROUPS[1]
        assert to_run == [commands.LoadGroupUsers(session.gateway, "g-2")]

    def test_users_of_other_group_are_ignored(self):
        session = at_detail(0)

        session.handle(commands.GroupUsersLoaded(group_id="g-2", users=[MEMBERS[0]]))

        assert session.users == MEMBERS

    def test_back_returns_to_groups_with_selection(self):
        session = at_detail(2)
        session.handle(commands.GroupCountLoaded(group_id="g-1", count=1))

        assert session.handle(state.Back()) == []

        assert session.screen == Screen.GROUPS
        assert session.cursor == 2
        assert session.groups == GROUPS
        assert session.group_counts["g-3"] == 2

    def test_back_while_users_load_returns_to_groups(self):
        session = at_detail(1)
        assert session.handle(state.Refresh()) == [commands.LoadGroupUsers(session.gateway, "g-2")]

        session.handle(state.Back())

        assert session.screen == Screen.GROUPS
        assert session.cursor == 1
        session.handle(commands.GroupUsersLoaded(group_id="g-2", users=[MEMBERS[0]]))
        assert not session.busy
        assert session.screen == Screen.GROUPS

    def test_switch_tab_starts_discovery(self):
        session = at_detail()

        to_run = session.handle(state.SwitchTab())

        assert session.tab == Tab.ACCOUNTS
        assert len(to_run) == 1
        assert isinstance(to_run[0], commands.DiscoverAssignments)
        assert to_run[0].accounts is None
        assert session.busy

    def test_back_during_discovery_cancels_and_stays(self):
        session = at_detail()
        (discover,) = session.handle(state.SwitchTab())

        session.handle(state.Back())

        assert discover.cancel.is_set()
        assert session.screen == Screen.GROUP_DETAIL
        assert session.tab == Tab.ACCOUNTS
        assert session.status.level == StatusLevel.WARN
        assert session.status.text == "Assignment discovery canceled"
        assert not session.busy

    def test_late_discovery_result_only_updates_caches(self):
        session = at_detail()
        (discover,) = session.handle(state.SwitchTab())
        session.handle(state.Back())

        session.handle(
            commands.AssignmentsDiscovered(
                token=discover.token,
                group_id="g-1",
                accounts=list(ACCOUNTS),
                permission_sets=list(PERMISSION_SETS),
                assignments=[ASSIGNMENT],
            )
        )

        assert session.assignments == []
        assert session.accounts == ACCOUNTS
        assert session.status.text == "Assignment discovery canceled"

    def test_superseded_discovery_is_ignored(self):
        session = at_detail()
        (first,) = session.handle(state.SwitchTab())
        session.handle(state.Back())
        (second,) = session.handle(state.Refresh())

        assert second.token != first.token
        session.handle(commands.AssignmentsDiscovered(token=first.token, group_id="g-1", assignments=[ASSIGNMENT]))
        assert session.assignments == []
        assert session.busy

        session.handle(commands.AssignmentsDiscovered(token=second.token, group_id="g-1", assignments=[ASSIGNMENT]))
        assert session.assignments == [ASSIGNMENT]
        assert session.status.text == "Loaded 1 assignments"
        assert not session.busy

    def test_inventory_is_reused_and_refreshed(self):
        session = at_accounts()
        session.handle(state.SwitchTab())

        (again,) = session.handle(state.SwitchTab())
        assert again.accounts == ACCOUNTS
        assert again.permission_sets == PERMISSION_SETS
        discovered(session, accounts=None, permission_sets=None)

        (refreshed,) = session.handle(state.Refresh())
        assert refreshed.accounts is None
        assert refreshed.permission_sets is None

    def test_organizations_denied_status(self):
        session = at_accounts(accounts=None, organizations_denied=True, assignments=[])

        assert session.organizations_denied
        assert session.accounts == []
        assert session.status.level == StatusLevel.INFO
        assert "Organizations access denied" in session.status.text

        (refreshed,) = session.handle(state.Refresh())
        assert refreshed.organizations_denied

    def test_discovery_error(self):
        session = at_detail()
        session.handle(state.SwitchTab())

        discovered(session, error=errors.ApiError("Rate exceeded"), assignments=[])

        assert session.status.level == StatusLevel.ERROR
        assert not session.busy
        assert session.last_error is not None


class TestAssignmentWizard:
    def test_requires_permission_sets(self):
        session = at_accounts(permission_sets=[])

        session.handle(state.Add())

        assert session.modal is None
        assert session.status.level == StatusLevel.ERROR
        assert session.status.text == "Cannot add assignment: permission sets are not loaded"

    def test_account_picker_flow(self):
        session = at_accounts()

        session.handle(state.Add())
        assert session.modal == state.AccountPicker(ACCOUNTS)
        session.handle(state.MoveCursor(1))
        session.handle(state.Confirm())
        assert session.modal == state.PermissionSetPicker(PERMISSION_SETS)
        session.handle(state.Confirm())
        assert session.modal == state.AssignmentCreateConfirm("222222222222", PERMISSION_SETS[0])

        to_run = session.handle(state.Confirm())

        assert to_run == [
            commands.CreateAssignment(session.gateway, "g-1", "222222222222", "arn:ps-1", cancel=session.poll_cancel)
        ]
        assert session.modal is None
        assert session.busy

    def test_cancel_clears_pending_selection(self):
        session = at_accounts()
        session.handle(state.Add())
        session.handle(state.Confirm())

        session.handle(state.Back())

        assert session.modal is None
        assert session.pending == state.PendingSelection()

    @pytest.mark.parametrize("value", ["12345", "12345678901a", "", "1234567890123"])
    def test_manual_account_id_rejected(self, value):
        session = at_accounts(accounts=None, organizations_denied=True, assignments=[])
        session.handle(state.Add())
        assert isinstance(session.modal, state.ManualAccountInput)

        session.handle(state.EditInput(value))
        session.handle(state.Confirm())

        assert isinstance(session.modal, state.ManualAccountInput)
        assert session.status == state.Status(StatusLevel.WARN, "Account ID must be 12 digits")

    def test_manual_account_id_accepted(self):
        session = at_accounts(accounts=None, organizations_denied=True, assignments=[])
        session.handle(state.Add())

        session.handle(state.EditInput(" 123456789012 "))
        session.handle(state.Confirm())
        session.handle(state.MoveCursor(1))
        session.handle(state.Confirm())

        assert session.modal == state.AssignmentCreateConfirm("123456789012", PERMISSION_SETS[1])

    @settings(max_examples=100)
    @given(value=strategies.aws_account_id)
    def test_is_account_id(self, value):
        assert state.is_account_id(value)

    @settings(max_examples=100)
    @given(value=strategies.not_aws_account_id)
    def test_is_not_account_id(self, value):
        assert not state.is_account_id(value)

    def test_remove_assignment(self):
        session = at_accounts()

        session.handle(state.Remove())
        assert session.modal == state.AssignmentRemoveConfirm(ASSIGNMENT)
        to_run = session.handle(state.Confirm())

        expected = commands.DeleteAssignment(session.gateway, "g-1", "111111111111", "arn:ps-1", cancel=session.poll_cancel)
        assert to_run == [expected]

    def test_completion_reloads_assignments_with_cached_inventory(self):
        session = at_accounts()
        session.handle(state.Remove())
        session.handle(state.Confirm())

        to_run = session.handle(commands.MutationFinished(operation="Delete assignment"))

        assert session.status.text == "Delete assignment complete"
        assert len(to_run) == 1
        assert isinstance(to_run[0], commands.DiscoverAssignments)
        assert to_run[0].accounts == ACCOUNTS


class TestGroupMutations:
    def test_create_group(self):
        session = at_groups()

        session.handle(state.CreateGroup())
        assert session.modal == state.GroupCreateInput()
        session.handle(state.EditInput("   "))
        assert session.handle(state.Confirm()) == []
        assert session.status == state.Status(StatusLevel.WARN, "Group name cannot be empty")

        session.handle(state.EditInput("  platform  "))
        assert session.handle(state.Confirm()) == [commands.CreateGroup(session.gateway, "platform")]
        assert session.modal is None
        assert session.busy

        to_run = session.handle(commands.MutationFinished(operation="Create group"))
        assert to_run == [commands.LoadGroups(session.gateway)]
        assert session.status.text == "Create group complete"

    def test_delete_group(self):
        session = at_groups()
        session.handle(state.MoveCursor(1))

        session.handle(state.DeleteGroup())
        assert session.modal == state.GroupDeleteConfirm(GROUPS[1])

        assert session.handle(state.Confirm()) == [commands.DeleteGroup(session.gateway, "g-2")]

    def test_completion_keeps_a_later_modal_open(self):
        session = at_groups()
        session.handle(state.DeleteGroup())
        session.handle(state.Confirm())
        session.handle(state.ShowHelp())

        to_run = session.handle(commands.MutationFinished(operation="Delete group"))

        assert session.modal == state.HelpModal()
        assert to_run == [commands.LoadGroups(session.gateway)]
        assert session.status.text == "Delete group complete"

    def test_failure_keeps_state_and_offers_details(self):
        session = at_groups()
        session.handle(state.DeleteGroup())
        session.handle(state.Confirm())

        assert session.handle(commands.MutationFinished(operation="Delete group", error=errors.ApiError("conflict"))) == []

        assert session.status.level == StatusLevel.ERROR
        assert "conflict" in session.last_error_details
        assert "profile: dev" in session.last_error_details
        session.handle(state.ShowErrorDetails())
        assert session.modal == state.ErrorDetailsModal()

    def test_triggers_only_on_their_screen(self):
        session = at_detail()

        session.handle(state.CreateGroup())
        session.handle(state.DeleteGroup())

        assert session.modal is None

    def test_triggers_ignored_while_busy(self):
        session = at_groups()
        session.handle(state.Refresh())

        session.handle(state.CreateGroup())

        assert session.modal is None


class TestMembership:
    def test_add_user(self):
        session = at_detail()

        assert session.handle(state.Add()) == [commands.LoadAllUsers(session.gateway)]
        users = [User(id="u-1", display_name="John Doe"), User(id="u-3", display_name="Max Poe")]
        session.handle(commands.AllUsersLoaded(users=users))
        assert session.modal == state.UserPicker(users)

        session.handle(state.MoveCursor(1))
        assert session.handle(state.Confirm()) == [commands.AddUser(session.gateway, "g-1", "u-3")]

        to_run = session.handle(commands.MutationFinished(operation="Add user"))
        assert to_run == [commands.LoadGroupUsers(session.gateway, "g-1")]

    def test_user_picker_not_opened_after_leaving(self):
        session = at_detail()
        session.handle(state.Add())
        session.handle(state.Back())

        session.handle(commands.AllUsersLoaded(users=[User(id="u-1", display_name="John Doe")]))

        assert session.modal is None
        assert session.status.level == StatusLevel.WARN

    def test_user_picker_skipped_while_dialog_open(self):
        session = at_detail()
        session.handle(state.Add())
        session.handle(state.ShowHelp())

        session.handle(commands.AllUsersLoaded(users=[User(id="u-1", display_name="John Doe")]))

        assert session.modal == state.HelpModal()
        assert session.status.level == StatusLevel.WARN
        assert not session.busy

    def test_remove_user(self):
        session = at_detail()
        session.handle(state.MoveCursor(1))

        session.handle(state.Remove())
        assert session.modal == state.UserRemoveConfirm(MEMBERS[1])

        assert session.handle(state.Confirm()) == [commands.RemoveUser(session.gateway, "m-2")]


class TestFilter:
    def test_filter_moves_cursor_to_first_match(self):
        session = at_groups()

        to_run = session.handle(state.EditFilter("OPS"))

        assert session.cursor == 2
        assert session.group == GROUPS[2]
        assert to_run == [commands.LoadGroupCount(session.gateway, "g-3")]

    def test_hidden_groups_cannot_be_opened_or_deleted(self):
        session = at_groups()
        session.handle(state.EditFilter("zzz"))

        assert session.visible_keys() == []
        assert session.handle(state.Confirm()) == []
        session.handle(state.DeleteGroup())

        assert session.screen == Screen.GROUPS
        assert session.modal is None

    def test_hidden_users_cannot_be_removed(self):
        session = at_detail()
        session.handle(state.EditFilter("nobody"))

        session.handle(state.Remove())

        assert session.modal is None

    def test_filter_is_cleared_when_the_list_changes(self):
        session = at_groups()
        session.handle(state.EditFilter("admins"))

        session.handle(state.Confirm())
        session.handle(commands.GroupUsersLoaded(group_id="g-1", users=list(MEMBERS)))

        assert session.filter_text == ""
        assert session.visible_keys() == [0, 1]

        session.handle(state.EditFilter("jane"))
        session.handle(state.SwitchTab())

        assert session.filter_text == ""


class TestModals:
    def test_help_returns_to_prior_state(self):
        session = at_detail()

        session.handle(state.ShowHelp())
        assert session.modal == state.HelpModal()
        session.handle(state.SwitchTab())
        session.handle(state.Back())

        assert session.modal is None
        assert session.screen == Screen.GROUP_DETAIL
        assert session.tab == Tab.USERS

    def test_error_details_require_an_error(self):
        session = at_groups()

        session.handle(state.ShowErrorDetails())

        assert session.modal is None

    def test_toggle_search_clears_filter(self):
        session = at_groups()
        session.handle(state.EditFilter("dev"))

        session.handle(state.ToggleSearch())

        assert not session.filter_enabled
        assert session.filter_text == ""


class TestQuit:
    def test_quit_cancels_in_flight_work(self):
        session = at_accounts()
        session.handle(state.Remove())
        (delete,) = session.handle(state.Confirm())
        session.busy = False
        (discover,) = session.handle(state.Refresh())

        assert session.handle(state.Quit()) == []

        assert session.quitting
        assert discover.cancel.is_set()
        assert delete.cancel.is_set()

    def test_quit_works_with_modal_open(self):
        session = at_groups()
        session.handle(state.ShowHelp())

        session.handle(state.Quit())

        assert session.quitting
