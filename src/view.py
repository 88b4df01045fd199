"""Render-ready data derived from a Session. No Textual imports."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import sso
from state import (
    AccountPicker,
    AssignmentCreateConfirm,
    AssignmentRemoveConfirm,
    BlockingErrorModal,
    ErrorDetailsModal,
    GroupCreateInput,
    GroupDeleteConfirm,
    HelpModal,
    ManualAccountInput,
    PermissionSetPicker,
    Screen,
    Session,
    Tab,
    UserPicker,
    UserRemoveConfirm,
)

HELP_TEXT = (
    "Navigation: arrows, Enter, Esc, Tab/Shift+Tab\n"
    "Search: Ctrl+F toggles the list filter\n"
    "Actions: Ctrl-only shortcuts shown in footer"
)


@dataclass(frozen=True)
class Item:
    # Index into the session list the item was built from.
    key: int
    title: str
    description: str = ""

    def matches(self, text: str) -> bool:
        needle = text.lower()
        return needle in self.title.lower() or needle in self.description.lower()


@dataclass(frozen=True)
class ModalView:
    title: str
    body: str = ""
    items: list[Item] = field(default_factory=list)
    placeholder: Optional[str] = None
    hint: str = "Enter confirm | Esc cancel"

    @property
    def has_input(self) -> bool:
        return self.placeholder is not None


def group_count_text(session: Session, group_id: str) -> str:
    if group_id in session.group_counts:
        return f"Users: {session.group_counts[group_id]}"
    if group_id in session.counts_in_flight:
        return "Users: loading..."
    return "Users: -"


def _all_main_items(session: Session) -> list[Item]:  # noqa: PLR0911
    if session.screen == Screen.SELECT_REGION:
        return [Item(i, region, "AWS region") for i, region in enumerate(session.regions)]
    if session.screen == Screen.SELECT_PROFILE:
        return [Item(i, profile, "AWS profile") for i, profile in enumerate(session.profiles)]
    if session.screen == Screen.SELECT_INSTANCE:
        return [
            Item(i, instance.display_name or sso.short_arn(instance.arn), instance.identity_store_id)
            for i, instance in enumerate(session.instances)
        ]
    if session.screen == Screen.GROUPS:
        return [Item(i, group.display_name, group_count_text(session, group.id)) for i, group in enumerate(session.groups)]
    if session.screen == Screen.GROUP_DETAIL and session.tab == Tab.USERS:
        return [Item(i, user.display_name, user.email or user.user_id) for i, user in enumerate(session.users)]
    if session.screen == Screen.GROUP_DETAIL:
        return [
            Item(i, f"{a.account_name or a.account_id} ({a.account_id})", a.permission_set_name)
            for i, a in enumerate(session.assignments)
        ]
    return []


def main_items(session: Session) -> list[Item]:
    """Items of the main list, narrowed by the filter when search is enabled."""
    items = _all_main_items(session)
    if session.filter_enabled and session.filter_text:
        items = [item for item in items if item.matches(session.filter_text)]
    return items


def list_title(session: Session) -> str:
    titles = {
        Screen.SELECT_REGION: "Select AWS region",
        Screen.SELECT_PROFILE: "Select AWS profile",
        Screen.ESTABLISH_SESSION: "Establishing SSO session",
        Screen.SELECT_INSTANCE: "Select Identity Center instance",
        Screen.GROUPS: "Groups",
    }
    if session.screen == Screen.GROUP_DETAIL:
        name = session.group.display_name if session.group else ""
        return f"{name} - {'Users' if session.tab == Tab.USERS else 'Accounts'}"
    return titles[session.screen]


def header_text(session: Session) -> str:
    instance = sso.short_arn(session.instance.arn) if session.instance else "-"
    return (
        f"aws-groups-manager | profile: {session.profile or '-'} | region: {session.region or '-'} | instance: {instance}"
    )


def tabs_text(session: Session) -> str:
    if session.screen != Screen.GROUP_DETAIL:
        return ""
    if session.tab == Tab.USERS:
        return "[Users]  Accounts"
    return " Users  [Accounts]"


def status_text(session: Session) -> str:
    if session.busy:
        return f"... {session.status.text}"
    return session.status.text


def footer_text(session: Session) -> str:
    items = ["^G Help", "^R Refresh", "^F Search"]
    if session.screen == Screen.GROUPS:
        items += ["^N Create Group", "^D Delete Group"]
    if session.screen == Screen.GROUP_DETAIL:
        if session.tab == Tab.USERS:
            items += ["^A Add User", "^X Remove User"]
        else:
            items += ["^A Add Assignment", "^X Remove Assignment"]
    items += ["Enter Select", "Esc Back", "^C Quit"]
    if session.last_error is not None:
        items.insert(0, "^E Error")
    return "  ".join(items)


def modal_view(session: Session) -> Optional[ModalView]:  # noqa: PLR0911
    modal = session.modal
    if modal is None:
        return None
    if isinstance(modal, HelpModal):
        return ModalView("Help", HELP_TEXT, hint="Enter/Esc to close")
    if isinstance(modal, ErrorDetailsModal):
        return ModalView("Error Details", session.last_error_details, hint="Enter/Esc to close")
    if isinstance(modal, BlockingErrorModal):
        return ModalView(modal.title, f"{modal.message}\n\nNext step: {modal.next_step}", hint="Press Enter")
    if isinstance(modal, GroupCreateInput):
        return ModalView("Create Group", placeholder="Group display name", hint="Enter create | Esc cancel")
    if isinstance(modal, GroupDeleteConfirm):
        return ModalView("Delete Group", f'Delete group "{modal.group.display_name}"?')
    if isinstance(modal, UserRemoveConfirm):
        return ModalView("Remove User", f'Remove "{modal.user.display_name}" from this group?')
    if isinstance(modal, AssignmentRemoveConfirm):
        a = modal.assignment
        return ModalView("Remove Assignment", f"Remove {a.permission_set_name} on {a.account_id}?")
    if isinstance(modal, UserPicker):
        items = [Item(i, u.display_name, u.email or u.user_name) for i, u in enumerate(modal.users)]
        return ModalView("Select user", items=items, hint="Enter select | Esc cancel")
    if isinstance(modal, AccountPicker):
        items = [Item(i, a.name, a.id) for i, a in enumerate(modal.accounts)]
        return ModalView("Select account", items=items, hint="Enter select | Esc cancel")
    if isinstance(modal, ManualAccountInput):
        return ModalView(
            "Manual Account ID",
            "Organizations access is unavailable. Enter account ID directly.",
            placeholder="12-digit account ID",
            hint="Enter continue | Esc cancel",
        )
    if isinstance(modal, PermissionSetPicker):
        items = [Item(i, p.name, p.arn) for i, p in enumerate(modal.permission_sets)]
        return ModalView("Select permission set", items=items, hint="Enter select | Esc cancel")
    if isinstance(modal, AssignmentCreateConfirm):
        return ModalView(
            "Create Assignment",
            f"Assign {modal.permission_set.name} on {modal.account_id} to this group?",
        )
    raise ValueError(f"Unknown modal: {modal!r}")
