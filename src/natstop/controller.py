"""Keyboard state machine: option prompts and the help view."""

import logging
from dataclasses import dataclass
from enum import Enum

from natstop.errors import UnknownSortKeyError
from natstop.models import DashboardConfig

logger = logging.getLogger(__name__)

QUIT_KEYS = frozenset({"q", "ctrl+c"})
COMMIT_KEYS = frozenset({"enter"})
BACKSPACE_KEYS = frozenset({"backspace", "ctrl+h"})
CANCEL_KEYS = frozenset({"escape"})
HELP_CHARS = frozenset({"h", "?"})

# Seconds an "invalid order" message stays on the status line.
ERROR_DWELL = 1.0


class InputMode(Enum):
    """Whether keystrokes are commands or are being captured into a prompt."""

    NORMAL = "normal"
    AWAITING_SORT_KEY = "awaiting_sort_key"
    AWAITING_LIMIT = "awaiting_limit"


class ViewMode(Enum):
    """Which full-screen view is displayed."""

    DASHBOARD = "dashboard"
    HELP = "help"


@dataclass(slots=True, frozen=True)
class KeyOutcome:
    """What the render loop has to do after a key was handled."""

    redraw: bool = False
    quit: bool = False
    dwell: bool = False  # Schedule clear_error() after ERROR_DWELL


IGNORED = KeyOutcome()
REDRAW = KeyOutcome(redraw=True)
QUIT = KeyOutcome(quit=True)


class InputController:
    """
    Turns key events into DashboardConfig changes and view switches.

    Holds a single ``mode`` so the two prompts can never be active at the
    same time. The prompt buffer is cleared whenever a prompt is entered,
    committed or cancelled. All methods must be called from the UI event
    loop; nothing here is thread-safe.
    """

    def __init__(self, config: DashboardConfig) -> None:
        self.config = config
        self.mode = InputMode.NORMAL
        self.view = ViewMode.DASHBOARD
        self.buffer = ""
        self._error: str | None = None
        self._error_generation = 0

    @property
    def error_generation(self) -> int:
        """Incremented each time a new error message is posted."""
        return self._error_generation

    @property
    def status_line(self) -> str:
        """Text of the one-line prompt area."""
        if self.mode is InputMode.AWAITING_SORT_KEY:
            return f"sort by [{self.config.sort_key.token}]: {self.buffer}"
        if self.mode is InputMode.AWAITING_LIMIT:
            return f"limit   [{self.config.sample_limit}]: {self.buffer}"
        return self._error or ""

    def clear_error(self, generation: int | None = None) -> bool:
        """
        Drop the error message once its dwell time is over.

        A stale ``generation`` (an older error replaced by a newer one) is
        ignored. Returns True when the status line changed.
        """
        if self._error is None:
            return False
        if generation is not None and generation != self._error_generation:
            return False
        self._error = None
        return True

    def handle_key(self, key: str, character: str | None = None) -> KeyOutcome:
        """
        Feed one key event through the state machine.

        Args:
            key: Normalized key name ("enter", "backspace", "o", ...).
            character: The printable character for the key, if any.
        """
        if key in QUIT_KEYS:
            return QUIT

        if self.mode is not InputMode.NORMAL:
            return self._handle_prompt_key(key, character)

        if self.view is ViewMode.HELP:
            if character in HELP_CHARS:
                return IGNORED
            self.view = ViewMode.DASHBOARD
            return REDRAW

        if character == "o":
            return self._enter(InputMode.AWAITING_SORT_KEY)
        if character == "n":
            return self._enter(InputMode.AWAITING_LIMIT)
        if character == "s":
            self.config.display_subs = not self.config.display_subs
            logger.info("Subscriptions column %s", "on" if self.config.display_subs else "off")
            return REDRAW
        if character in HELP_CHARS:
            self._reset()
            self._error = None
            self.view = ViewMode.HELP
            return REDRAW
        return IGNORED

    def _enter(self, mode: InputMode) -> KeyOutcome:
        self.mode = mode
        self.buffer = ""
        self._error = None
        return REDRAW

    def _reset(self) -> None:
        self.mode = InputMode.NORMAL
        self.buffer = ""

    def _handle_prompt_key(self, key: str, character: str | None) -> KeyOutcome:
        if key in COMMIT_KEYS:
            return self._commit()
        if key in CANCEL_KEYS:
            self._reset()
            return REDRAW
        if key in BACKSPACE_KEYS:
            self.buffer = self.buffer[:-1]
            return REDRAW
        if character is not None and len(character) == 1 and character.isprintable():
            self.buffer += character
            return REDRAW
        return IGNORED

    def _commit(self) -> KeyOutcome:
        value = self.buffer.strip()
        mode = self.mode
        self._reset()

        if mode is InputMode.AWAITING_SORT_KEY:
            try:
                sort_key = self.config.set_sort_token(value)
            except UnknownSortKeyError:
                logger.info("Rejected sort option %r", value)
                self._error = f"invalid order: {value}"
                self._error_generation += 1
                return KeyOutcome(redraw=True, dwell=True)
            logger.info("Sorting connections by %s", sort_key.token)
            return REDRAW

        # ASCII digits only: no sign, no "_" separators, no other scripts
        if not (value.isascii() and value.isdigit()):
            logger.debug("Ignoring connection limit %r", value)
        else:
            self.config.sample_limit = int(value)
            logger.info("Connection sample limit set to %d", self.config.sample_limit)
        return REDRAW
