from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Callable, Optional

from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.containers import Vertical
from textual.logging import TextualHandler
from textual.screen import ModalScreen
from textual.widgets import DataTable, Header, Static

from .aws import (
    CATEGORY_EC2,
    CATEGORY_LAMBDA,
    CATEGORY_RDS,
    CATEGORY_S3,
    ResourceProvider,
    resolve_provider,
)
from .cache import FetchState, ResourceCache, ResourceFetcher
from .config import Settings, load_settings
from .errors import ConfigurationError, UnimplementedCapability
from .navigation import (
    Command,
    ConfirmationPrompt,
    KeyDispatcher,
    NavigationController,
    classify_key,
)

logger = logging.getLogger(__name__)

SERVICES = [
    ("EC2", "Elastic Compute Cloud", CATEGORY_EC2),
    ("S3", "Simple Storage Service", CATEGORY_S3),
    ("Lambda", "Function as a Service", CATEGORY_LAMBDA),
    ("RDS", "Relational Database Service", CATEGORY_RDS),
]

RESOURCE_TITLES = {
    CATEGORY_EC2: "EC2 Instances",
    CATEGORY_S3: "S3 Buckets",
    CATEGORY_LAMBDA: "Lambda Functions",
    CATEGORY_RDS: "RDS Instances",
}

EC2_COLUMNS = [
    ("id", "Instance ID"),
    ("name", "Name"),
    ("state", "State"),
    ("type", "Type"),
    ("public_ip", "Public IP"),
    ("private_ip", "Private IP"),
    ("availability_zone", "AZ"),
]

CLEAR_CACHE_MESSAGE = "Clear all cached resources?"


def format_age(seconds: Optional[float]) -> str:
    if seconds is None:
        return ""
    total = max(0, int(seconds))
    if total < 60:
        return f"{total}s"
    minutes, secs = divmod(total, 60)
    if minutes < 60:
        return f"{minutes}m {secs}s" if secs else f"{minutes}m"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"


def fetch_status(state: FetchState) -> str:
    if state.loading:
        return "Loading..."
    if state.error and not isinstance(state.exception, UnimplementedCapability):
        return f"Error: {state.error} (press r to retry)"
    if state.from_cache:
        return f"Cached {format_age(state.age)} ago"
    if state.age is not None:
        return "Fresh"
    return ""


def status_text(
    settings: Settings,
    region: Optional[str] = None,
    state: Optional[FetchState] = None,
) -> str:
    items = [f"Backend: {settings.backend.label}"]
    if settings.profile:
        items.append(f"Profile: {settings.profile}")
    if region:
        items.append(f"Region: {region}")
    if state is not None:
        detail = fetch_status(state)
        if detail:
            items.append(detail)
    return " | ".join(items)


def cell_value(record: object, attribute: str) -> str:
    value = getattr(record, attribute, None)
    if value is None:
        return ""
    return str(value)


class ServiceMenu(Static):
    def __init__(
        self,
        dispatcher: KeyDispatcher,
        on_choose: Callable[[str], None],
        on_quit: Callable[[], None],
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.choose_handler = on_choose
        self.navigation = NavigationController(
            len(SERVICES),
            on_select=self._select,
            on_quit=on_quit,
            dispatcher=dispatcher,
        )

    def on_mount(self) -> None:
        self.sync()

    def _select(self, index: int) -> None:
        if 0 <= index < len(SERVICES):
            self.choose_handler(SERVICES[index][2])

    def render_menu(self) -> Text:
        text = Text()
        text.append("AWS Resource Browser\n\n", style="bold blue")
        for index, (name, description, _category) in enumerate(SERVICES):
            selected = index == self.navigation.selected_index
            marker = "> " if selected else "  "
            text.append(f"{marker}{name}", style="green" if selected else "grey62")
            text.append(f"  - {description}\n", style="grey50")
        text.append("\n↑↓ Navigate • Enter Select • q Quit", style="grey50")
        return text

    def sync(self) -> None:
        self.update(self.render_menu())

    def activate(self) -> None:
        self.display = True
        self.navigation.set_active(True)
        self.sync()

    def deactivate(self) -> None:
        self.display = False
        self.navigation.set_active(False)


class ResourceTable(DataTable, can_focus=False):
    pass


class ResourceListView(Vertical):
    """Listing for one category; mounted for the app's lifetime."""

    def __init__(
        self,
        dispatcher: KeyDispatcher,
        cache: ResourceCache,
        provider: ResourceProvider,
        on_back: Callable[[], None],
        on_quit: Callable[[], None],
        on_clear_request: Callable[[], None],
        on_state: Optional[Callable[[FetchState], None]] = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.category: Optional[str] = None
        self.back_handler = on_back
        self.clear_handler = on_clear_request
        self.state_handler = on_state
        self.fetcher = ResourceFetcher(cache, provider, on_change=self._apply_state)
        self.navigation = NavigationController(
            0,
            on_select=self._select,
            on_quit=on_quit,
            active=False,
            dispatcher=dispatcher,
        )
        self.listener = dispatcher.register(
            self._handle_command,
            active=False,
            claims={Command.BACK, Command.REFRESH, Command.CLEAR_CACHE},
        )

    def compose(self) -> ComposeResult:
        yield Static("", id="resource-title")
        yield ResourceTable(id="resource-table")
        yield Static("", id="resource-message")
        yield Static(
            "↑↓ Navigate • Enter Select • ← Back • r Refresh • c Clear cache • q Quit",
            id="resource-hint",
        )

    def on_mount(self) -> None:
        self.title_widget = self.query_one("#resource-title", Static)
        self.table = self.query_one("#resource-table", DataTable)
        self.message_widget = self.query_one("#resource-message", Static)
        self.table.cursor_type = "row"
        self.table.zebra_stripes = True
        self.table.add_columns(*(header for _attr, header in EC2_COLUMNS))

    @property
    def records(self) -> list:
        return self.fetcher.state.data

    def open_category(self, category: str) -> None:
        self.category = category
        self.display = True
        self.navigation.set_active(True)
        self.listener.active = True
        self.title_widget.update(
            Text(RESOURCE_TITLES.get(category, f"{category} Resources"), style="bold blue")
        )
        self.app.run_worker(self.fetcher.get_or_fetch(category), group="fetch")

    def close_category(self) -> None:
        self.display = False
        self.navigation.set_active(False)
        self.listener.active = False

    def reload(self) -> None:
        if self.category is None:
            return
        self.app.run_worker(self.fetcher.refresh(self.category), group="fetch")

    def clear_cache(self) -> None:
        self.fetcher.clear_all()
        self.reload()

    def _handle_command(self, command: Command) -> None:
        if command is Command.BACK:
            self.back_handler()
        elif command is Command.REFRESH:
            self.reload()
        elif command is Command.CLEAR_CACHE:
            self.clear_handler()

    def _select(self, index: int) -> None:
        records = self.records
        if not 0 <= index < len(records):
            return
        record = records[index]
        label = cell_value(record, "name") or cell_value(record, "id")
        self.app.notify(f"Selected {label}", severity="information")

    def _apply_state(self, state: FetchState) -> None:
        self.navigation.set_item_count(len(state.data))
        self._render_rows(state)
        # a fetch that lands after the view was closed only fills the table
        if self.state_handler is not None and self.listener.active:
            self.state_handler(state)

    def _render_rows(self, state: FetchState) -> None:
        self.table.clear()
        for record in state.data:
            self.table.add_row(*(cell_value(record, attr) for attr, _header in EC2_COLUMNS))
        if state.loading:
            self.message_widget.update("Loading...")
        elif state.error and not isinstance(state.exception, UnimplementedCapability):
            self.message_widget.update(
                Text(f"Error: {state.error}\nPress r to retry", style="red")
            )
        elif not state.data:
            self.message_widget.update(Text("No data available", style="grey50"))
        else:
            self.message_widget.update("")
        self.sync()

    def sync(self) -> None:
        if self.records:
            self.table.move_cursor(row=self.navigation.selected_index, animate=False)


class StatusBar(Static):
    pass


class ConfirmDialog(ModalScreen[bool]):
    CSS = """
    ConfirmDialog {
        align: center middle;
    }

    #confirm-dialog {
        width: auto;
        min-width: 30;
        height: auto;
        padding: 1 2;
        border: round $panel;
        background: $panel;
        color: $text;
    }
    """

    def __init__(self, message: str) -> None:
        super().__init__()
        self.prompt = ConfirmationPrompt(
            message,
            on_confirm=lambda: self.dismiss(True),
            on_cancel=lambda: self.dismiss(False),
        )

    def compose(self) -> ComposeResult:
        yield Static(self.prompt.prompt, id="confirm-dialog")

    def on_key(self, event: events.Key) -> None:
        event.stop()
        self.prompt.handle(event.key, event.character)


class ResourceBrowser(App):
    TITLE = "a3s"
    SUB_TITLE = "AWS Resource Browser"

    CSS = """
    #menu {
        height: 1fr;
        padding: 1;
    }

    #resources {
        height: 1fr;
        padding: 1;
        display: none;
    }

    #resource-title {
        height: 1;
        margin-bottom: 1;
    }

    #resource-table {
        height: 1fr;
        border: round $panel;
    }

    #resource-message {
        height: auto;
    }

    #resource-hint {
        height: 1;
        color: $text-muted;
    }

    #status {
        height: 1;
        padding: 0 1;
        background: $surface;
        color: $text-muted;
    }
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        provider: Optional[ResourceProvider] = None,
        cache: Optional[ResourceCache] = None,
    ) -> None:
        super().__init__()
        self.settings = settings or Settings()
        self.provider = provider or resolve_provider(self.settings.backend, self.settings)
        self.cache = cache or ResourceCache()
        self.dispatcher = KeyDispatcher()
        self.region: Optional[str] = self.settings.region
        self.status_line = ""

    def compose(self) -> ComposeResult:
        yield Header()
        yield ServiceMenu(
            self.dispatcher,
            on_choose=self.show_category,
            on_quit=self.exit,
            id="menu",
        )
        yield ResourceListView(
            self.dispatcher,
            self.cache,
            self.provider,
            on_back=self.show_menu,
            on_quit=self.exit,
            on_clear_request=self.request_clear_cache,
            on_state=self._update_status,
            id="resources",
        )
        yield StatusBar("", id="status")

    def on_mount(self) -> None:
        self.menu = self.query_one("#menu", ServiceMenu)
        self.resources = self.query_one("#resources", ResourceListView)
        self.status_bar = self.query_one("#status", StatusBar)
        self._update_status(None)
        self.run_worker(self._resolve_region(), group="region")

    async def _resolve_region(self) -> None:
        # ApiProvider reads the profile config files to find its region
        region = await asyncio.to_thread(getattr, self.provider, "region", None)
        if not region:
            return
        self.region = region
        if self.resources.listener.active:
            self._update_status(self.resources.fetcher.state)
        else:
            self._update_status(None)

    def _update_status(self, state: Optional[FetchState]) -> None:
        self.status_line = status_text(self.settings, self.region, state)
        self.status_bar.update(self.status_line)

    def show_category(self, category: str) -> None:
        logger.debug("Opening %s", category)
        self.menu.deactivate()
        self.resources.open_category(category)

    def show_menu(self) -> None:
        self.resources.close_category()
        self.menu.activate()
        self._update_status(None)

    def request_clear_cache(self) -> None:
        def handle_result(confirmed: Optional[bool]) -> None:
            if confirmed:
                logger.debug("Clearing resource cache")
                self.resources.clear_cache()

        self.push_screen(ConfirmDialog(CLEAR_CACHE_MESSAGE), handle_result)

    def on_key(self, event: events.Key) -> None:
        if isinstance(self.screen, ConfirmDialog):
            return
        command = classify_key(event.key, event.character)
        if not self.dispatcher.dispatch(command):
            return
        event.stop()
        self.menu.sync()
        self.resources.sync()


def configure_logging(debug: bool) -> None:
    package_logger = logging.getLogger("a3s")
    if not debug:
        package_logger.setLevel(logging.WARNING)
        return
    package_logger.setLevel(logging.DEBUG)
    if not any(isinstance(handler, TextualHandler) for handler in package_logger.handlers):
        package_logger.addHandler(TextualHandler())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="a3s", description="Terminal browser for AWS resources"
    )
    parser.add_argument(
        "--backend",
        help="Backend to use: api (sdk), shell (cli) or auto (default: auto)",
    )
    parser.add_argument(
        "--profile",
        help="AWS profile to use",
    )
    return parser


def _run_browser(settings: Settings, provider: ResourceProvider) -> int:
    app = ResourceBrowser(settings=settings, provider=provider)
    app.run()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(args)
        provider = resolve_provider(settings.backend, settings)
    except ConfigurationError as exc:
        print(f"a3s: {exc}", file=sys.stderr)
        if exc.hint:
            print(exc.hint, file=sys.stderr)
        return 2
    configure_logging(settings.debug)
    return _run_browser(settings, provider)


if __name__ == "__main__":
    raise SystemExit(main())
