"""
Textual shell around the session state machine.

Keys become state inputs, completion messages arrive from dispatcher threads
through post_message, and after every event the widgets are redrawn from
the session.
"""

from __future__ import annotations

from typing import Callable, Optional

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Vertical
from textual.message import Message
from textual.widgets import Input, OptionList, Static
from textual.widgets.option_list import Option

import commands
import config
import state
import view
from gateway import Gateway

logger = config.get_logger(service="app")


class CommandCompleted(Message, bubble=False):
    """Completion message handed over from a dispatcher thread."""

    def __init__(self, message: commands.Message) -> None:
        self.message = message
        super().__init__()


class GroupsManagerApp(App):  # type: ignore[type-arg]
    TITLE = "aws-groups-manager"

    CSS = """
    Screen {
        layers: base overlay;
    }
    #header {
        background: $primary;
        color: $text;
        padding: 0 1;
    }
    #title {
        text-style: bold;
        padding: 0 1;
    }
    #tabs {
        padding: 0 1;
        color: $accent;
    }
    #filter {
        margin: 0 1;
    }
    #main {
        height: 1fr;
        margin: 0 1;
    }
    #status {
        padding: 0 1;
    }
    #status.warn {
        color: $warning;
    }
    #status.error {
        color: $error;
    }
    #footer {
        padding: 0 1;
        color: $text-muted;
    }
    #modal-layer {
        layer: overlay;
        width: 100%;
        height: 100%;
        align: center middle;
        display: none;
    }
    #modal {
        width: 70%;
        height: auto;
        max-height: 80%;
        border: round $accent;
        background: $panel;
        padding: 1 2;
    }
    #modal-title {
        text-style: bold;
    }
    #modal-list {
        height: auto;
        max-height: 20;
    }
    #modal-hint {
        color: $text-muted;
        margin-top: 1;
    }
    """

    BINDINGS = [
        Binding("ctrl+c", "quit_session", "Quit", show=False, priority=True),
        Binding("enter", "send('Confirm')", show=False, priority=True),
        Binding("escape", "send('Back')", show=False, priority=True),
        Binding("tab", "send('SwitchTab')", show=False, priority=True),
        Binding("shift+tab", "send('SwitchTab')", show=False, priority=True),
        Binding("ctrl+f", "send('ToggleSearch')", show=False, priority=True),
        Binding("ctrl+r", "send('Refresh')", show=False, priority=True),
        Binding("ctrl+g", "send('ShowHelp')", show=False, priority=True),
        Binding("ctrl+e", "send('ShowErrorDetails')", show=False, priority=True),
        Binding("ctrl+n", "send('CreateGroup')", show=False, priority=True),
        Binding("ctrl+d", "send('DeleteGroup')", show=False, priority=True),
        Binding("ctrl+a", "send('Add')", show=False, priority=True),
        Binding("ctrl+x", "send('Remove')", show=False, priority=True),
        Binding("up", "move('cursor_up')", show=False, priority=True),
        Binding("down", "move('cursor_down')", show=False, priority=True),
        Binding("pageup", "move('page_up')", show=False, priority=True),
        Binding("pagedown", "move('page_down')", show=False, priority=True),
    ]

    INPUTS = {
        "Confirm": state.Confirm,
        "Back": state.Back,
        "SwitchTab": state.SwitchTab,
        "ToggleSearch": state.ToggleSearch,
        "Refresh": state.Refresh,
        "ShowHelp": state.ShowHelp,
        "ShowErrorDetails": state.ShowErrorDetails,
        "CreateGroup": state.CreateGroup,
        "DeleteGroup": state.DeleteGroup,
        "Add": state.Add,
        "Remove": state.Remove,
    }

    def __init__(
        self,
        profile: str = "",
        region: str = "",
        cfg: Optional[config.Config] = None,
        gateway_factory: Optional[Callable[[str, str], Gateway]] = None,
    ) -> None:
        super().__init__()
        self.cfg = cfg or config.get_config()
        self.session, self._initial = state.Session.start(profile, region, gateway_factory=gateway_factory)
        self.dispatcher = commands.Dispatcher(self._deliver, max_workers=self.cfg.dispatcher_workers)
        self._rendered_items: Optional[list[view.Item]] = None
        self._rendered_modal: Optional[view.ModalView] = None

    def compose(self) -> ComposeResult:
        yield Static(id="header")
        yield Static(id="title")
        yield Static(id="tabs")
        yield Input(placeholder="Filter", id="filter")
        yield OptionList(id="main")
        yield Static(id="status")
        yield Static(id="footer")
        with Container(id="modal-layer"), Vertical(id="modal"):
            yield Static(id="modal-title")
            yield Static(id="modal-body")
            yield OptionList(id="modal-list")
            yield Input(id="modal-input")
            yield Static(id="modal-hint")

    def on_mount(self) -> None:
        logger.info("Session started", extra={"profile": self.session.profile, "region": self.session.region})
        self._dispatch(self._initial)
        self.render_session()

    # Plumbing

    def _deliver(self, message: commands.Message) -> None:
        # Called on a dispatcher thread.
        self.post_message(CommandCompleted(message))

    def _dispatch(self, to_run: list[commands.Command]) -> None:
        for command in to_run:
            self.dispatcher.submit(command)

    def handle_input(self, event: state.Input) -> None:
        self._dispatch(self.session.handle(event))
        self.render_session()

    def on_command_completed(self, event: CommandCompleted) -> None:
        if self.session.quitting:
            return
        self._dispatch(self.session.handle(event.message))
        self.render_session()

    # Actions

    def action_send(self, name: str) -> None:
        self.handle_input(self.INPUTS[name]())

    def action_move(self, direction: str) -> None:
        target = self.query_one("#modal-list" if self.session.modal is not None else "#main", OptionList)
        getattr(target, f"action_{direction}")()

    def action_quit_session(self) -> None:
        self.session.handle(state.Quit())
        self.dispatcher.shutdown(wait=False)
        self.exit()

    # Widget events

    def on_option_list_option_highlighted(self, event: OptionList.OptionHighlighted) -> None:
        if event.option.id is None:
            return
        in_modal = self.session.modal is not None
        if (event.option_list.id == "modal-list") != in_modal:
            return
        self.handle_input(state.MoveCursor(int(event.option.id)))

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "filter":
            self.handle_input(state.EditFilter(event.value))
        elif event.input.id == "modal-input":
            self.handle_input(state.EditInput(event.value))

    # Rendering

    def render_session(self) -> None:
        session = self.session
        self.query_one("#header", Static).update(view.header_text(session))
        self.query_one("#title", Static).update(view.list_title(session))
        tabs = self.query_one("#tabs", Static)
        tabs.update(view.tabs_text(session))
        tabs.display = bool(view.tabs_text(session))

        status = self.query_one("#status", Static)
        status.update(view.status_text(session))
        status.set_classes(session.status.level.value)
        self.query_one("#footer", Static).update(view.footer_text(session))

        with self.prevent(OptionList.OptionHighlighted, Input.Changed):
            self._render_filter()
            self._render_main()
            self._render_modal()

    def _render_filter(self) -> None:
        search = self.query_one("#filter", Input)
        search.display = self.session.filter_enabled
        if search.value != self.session.filter_text:
            search.value = self.session.filter_text

    def _render_main(self) -> None:
        main = self.query_one("#main", OptionList)
        items = view.main_items(self.session)
        if items != self._rendered_items:
            main.clear_options()
            main.add_options([Option(_prompt(item), id=str(item.key)) for item in items])
            self._rendered_items = items
        for position, item in enumerate(items):
            if item.key == self.session.cursor:
                if main.highlighted != position:
                    main.highlighted = position
                break

    def _render_modal(self) -> None:
        layer = self.query_one("#modal-layer", Container)
        modal = view.modal_view(self.session)
        layer.display = modal is not None
        if modal is None:
            self._rendered_modal = None
            self._focus_main()
            return

        modal_list = self.query_one("#modal-list", OptionList)
        modal_input = self.query_one("#modal-input", Input)
        if modal != self._rendered_modal:
            self.query_one("#modal-title", Static).update(modal.title)
            body = self.query_one("#modal-body", Static)
            body.update(modal.body)
            body.display = bool(modal.body)
            self.query_one("#modal-hint", Static).update(modal.hint)
            modal_list.clear_options()
            modal_list.add_options([Option(_prompt(item), id=str(item.key)) for item in modal.items])
            modal_list.display = bool(modal.items)
            modal_input.display = modal.has_input
            modal_input.placeholder = modal.placeholder or ""
            self._rendered_modal = modal
        if modal_input.value != self.session.input_text:
            modal_input.value = self.session.input_text
        if modal.items and modal_list.highlighted != self.session.modal_cursor:
            modal_list.highlighted = self.session.modal_cursor

        if modal.has_input:
            modal_input.focus()
        elif modal.items:
            modal_list.focus()
        else:
            self.set_focus(None)

    def _focus_main(self) -> None:
        if self.session.filter_enabled:
            self.query_one("#filter", Input).focus()
        else:
            self.query_one("#main", OptionList).focus()


def _prompt(item: view.Item) -> Text:
    if not item.description:
        return Text(item.title)
    return Text.assemble(item.title, "\n", (item.description, "dim"))


def run(profile: str = "", region: str = "") -> None:
    """Entry point called from the CLI."""
    GroupsManagerApp(profile=profile, region=region).run()
