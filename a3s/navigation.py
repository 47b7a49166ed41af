"""Keyboard navigation and key routing.

Every mounted view registers its listener once and keeps it registered for
its whole lifetime; visibility only flips the listener's ``active`` flag.
The dispatcher decides which active listener receives a command, so two
views mounted at the same time never both act on one keystroke.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional

logger = logging.getLogger(__name__)


class Command(Enum):
    UP = "up"
    DOWN = "down"
    CONFIRM = "confirm"
    BACK = "back"
    QUIT = "quit"
    REFRESH = "refresh"
    CLEAR_CACHE = "clear_cache"


_KEY_COMMANDS = {
    "up": Command.UP,
    "k": Command.UP,
    "down": Command.DOWN,
    "j": Command.DOWN,
    "enter": Command.CONFIRM,
    "left": Command.BACK,
    "escape": Command.BACK,
    "q": Command.QUIT,
    "r": Command.REFRESH,
    "c": Command.CLEAR_CACHE,
    "C": Command.CLEAR_CACHE,
}


def classify_key(key: str, character: Optional[str] = None) -> Optional[Command]:
    command = _KEY_COMMANDS.get(key)
    if command is None and character:
        command = _KEY_COMMANDS.get(character)
    return command


@dataclass(eq=False)
class InputListener:
    handler: Callable[[Command], None]
    active: bool = True
    claims: frozenset = field(default_factory=frozenset)


class KeyDispatcher:
    """Routes each command to exactly one active listener.

    A listener that claims a command gets it; when several active listeners
    claim it, the most recently registered one wins. Unclaimed commands fall
    back to registration order: BACK goes to the latest active listener,
    everything else to the earliest.
    """

    def __init__(self) -> None:
        self._listeners: list[InputListener] = []

    @property
    def listeners(self) -> list[InputListener]:
        return list(self._listeners)

    def register(
        self,
        handler: Callable[[Command], None],
        active: bool = True,
        claims: Optional[Iterable[Command]] = None,
    ) -> InputListener:
        listener = InputListener(
            handler=handler,
            active=active,
            claims=frozenset(claims or ()),
        )
        self._listeners.append(listener)
        return listener

    def unregister(self, listener: InputListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def target_for(self, command: Command) -> Optional[InputListener]:
        eligible = [listener for listener in self._listeners if listener.active]
        if not eligible:
            return None
        claimants = [listener for listener in eligible if command in listener.claims]
        if claimants:
            return claimants[-1]
        if command is Command.BACK:
            return eligible[-1]
        return eligible[0]

    def dispatch(self, command: Optional[Command]) -> bool:
        if command is None:
            return False
        listener = self.target_for(command)
        if listener is None:
            logger.debug("No active listener for %s", command.value)
            return False
        logger.debug(
            "Dispatching %s to listener %d",
            command.value,
            self._listeners.index(listener),
        )
        listener.handler(command)
        return True


class NavigationController:
    def __init__(
        self,
        item_count: int = 0,
        on_select: Optional[Callable[[int], None]] = None,
        on_quit: Optional[Callable[[], None]] = None,
        active: bool = True,
        dispatcher: Optional[KeyDispatcher] = None,
        claims: Optional[Iterable[Command]] = None,
    ) -> None:
        self.selected_index = 0
        self.item_count = max(0, item_count)
        self.active = active
        self.on_select = on_select
        self.on_quit = on_quit
        self.listener: Optional[InputListener] = None
        if dispatcher is not None:
            self.listener = dispatcher.register(self.handle, active=active, claims=claims)

    def move_next(self) -> None:
        if self.item_count <= 0:
            return
        self.selected_index = (self.selected_index + 1) % self.item_count

    def move_previous(self) -> None:
        if self.item_count <= 0:
            return
        if self.selected_index == 0:
            self.selected_index = self.item_count - 1
        else:
            self.selected_index -= 1

    def confirm_selection(self) -> None:
        if self.on_select is not None:
            self.on_select(self.selected_index)

    def request_quit(self) -> None:
        if self.on_quit is not None:
            self.on_quit()

    def set_item_count(self, item_count: int) -> None:
        self.item_count = max(0, item_count)
        if self.selected_index >= self.item_count:
            self.selected_index = 0

    def set_active(self, active: bool) -> None:
        if active and not self.active:
            self.selected_index = 0
        self.active = active
        if self.listener is not None:
            self.listener.active = active

    def handle(self, command: Command) -> None:
        if command is Command.UP:
            self.move_previous()
        elif command is Command.DOWN:
            self.move_next()
        elif command is Command.CONFIRM:
            self.confirm_selection()
        elif command is Command.QUIT:
            self.request_quit()


class ConfirmationPrompt:
    """Yes/no prompt; only y/Y confirms and it never times out."""

    def __init__(
        self,
        message: str,
        on_confirm: Callable[[], None],
        on_cancel: Callable[[], None],
    ) -> None:
        self.message = message
        self.on_confirm = on_confirm
        self.on_cancel = on_cancel

    @property
    def prompt(self) -> str:
        return f"{self.message} (y/N)"

    def handle(self, key: str, character: Optional[str] = None) -> bool:
        text = character or (key if len(key) == 1 else "")
        if text in ("y", "Y"):
            self.on_confirm()
            return True
        if text in ("n", "N") or key in ("escape", "enter"):
            self.on_cancel()
            return True
        return False
