"""natstop - Main Textual application."""

import logging

from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.css.query import NoMatches
from textual.widgets import Static

from natstop.controller import ERROR_DWELL, InputController, ViewMode
from natstop.formatting import format_dashboard, format_help
from natstop.models import DashboardConfig, Snapshot
from natstop.monitor import (
    MetricsSource,
    PollFailure,
    RequestParams,
    SnapshotChannel,
    StatsMonitor,
)

logger = logging.getLogger(__name__)

# How often the event loop looks for a new poll result (seconds).
CHANNEL_CHECK_INTERVAL = 0.1


class TextPanel(Static):
    """Borderless block of preformatted text, cropped to the terminal width."""

    DEFAULT_CSS = """
    TextPanel {
        width: 1fr;
        overflow: hidden;
    }
    """

    def set_text(self, text: str) -> None:
        self.update(Text(text, no_wrap=True, overflow="crop"))


class NatsTopApp(App):
    """Main natstop application."""

    TITLE = "natstop"
    SUB_TITLE = "NATS Server Monitor"
    ENABLE_COMMAND_PALETTE = False

    CSS = """
    Screen {
        layout: vertical;
    }

    #notice {
        height: auto;
        color: $warning;
    }

    #status {
        height: 1;
    }

    #dashboard {
        height: 1fr;
    }

    #help {
        height: 1fr;
        display: none;
    }
    """

    # Priority bindings run before on_key, so quitting wins over any prompt.
    BINDINGS = [
        Binding("q", "quit", "Quit", priority=True, show=False),
        Binding("ctrl+c", "quit", "Quit", priority=True, show=False),
    ]

    def __init__(
        self,
        config: DashboardConfig | None = None,
        source: MetricsSource | None = None,
        stale_after: int = 3,
    ) -> None:
        """
        Initialize the NatsTopApp.

        Args:
            config: Initial display and request settings.
            source: Where snapshots come from. Without one nothing is
                polled and results must be published to ``channel``.
            stale_after: Consecutive failed polls before the displayed
                data is flagged as stale; 0 never flags it.
        """
        super().__init__()
        self.config = config or DashboardConfig()
        self.channel = SnapshotChannel()
        self.controller = InputController(self.config)
        self.stale_after = stale_after
        self._snapshot = Snapshot.empty()
        self._text = format_dashboard(self._snapshot, self.config)
        self._notice = ""
        self._polling_stopped = False
        self._monitor: StatsMonitor | None = None
        if source is not None:
            self._monitor = StatsMonitor(
                source,
                self.channel,
                self._request_params,
                poll_rate=self.config.refresh_interval,
            )

    @property
    def text(self) -> str:
        """The current dashboard text."""
        return self._text

    @property
    def notice(self) -> str:
        return self._notice

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield TextPanel(id="notice")
        yield TextPanel(id="status")
        yield TextPanel(id="dashboard")
        yield TextPanel(Text(format_help(), no_wrap=True), id="help")

    def on_mount(self) -> None:
        """Paint the empty dashboard and start polling."""
        self._redraw()
        if self._monitor is not None:
            self._monitor.start()
        self.set_interval(CHANNEL_CHECK_INTERVAL, self.check_for_updates)

    def on_unmount(self) -> None:
        self.stop_polling()

    def _request_params(self) -> RequestParams:
        # Called from the monitor thread; only reads the config.
        config = self.config
        return RequestParams(
            limit=config.sample_limit,
            sort_key=config.sort_key,
            subs=config.display_subs,
        )

    def check_for_updates(self) -> None:
        """Take the latest poll result, if any, and refresh the UI."""
        result = self.channel.take()
        if result is None:
            return

        if isinstance(result, PollFailure):
            if self.stale_after and result.consecutive >= self.stale_after:
                self._notice = (
                    f"stale data: {result.consecutive} polls failed, last error: {result.message}"
                )
                self._redraw()
            return

        self._snapshot = result
        self._notice = ""
        self._render_text()
        self._redraw()

    def _render_text(self) -> None:
        self._text = format_dashboard(self._snapshot, self.config)

    def _redraw(self) -> None:
        """Push the current text, prompt and view to the widgets."""
        show_help = self.controller.view is ViewMode.HELP
        try:
            self.query_one("#notice", TextPanel).set_text(self._notice)
            self.query_one("#status", TextPanel).set_text(self.controller.status_line)
            dashboard = self.query_one("#dashboard", TextPanel)
            dashboard.set_text(self._text)
            dashboard.display = not show_help
            self.query_one("#help", TextPanel).display = show_help
        except NoMatches:
            pass  # Widgets not mounted yet

    def on_key(self, event: events.Key) -> None:
        """Route every non-binding key through the input controller."""
        event.stop()
        outcome = self.controller.handle_key(event.key, event.character)
        if outcome.quit:
            self.action_quit()
            return
        if outcome.dwell:
            generation = self.controller.error_generation
            self.set_timer(ERROR_DWELL, lambda: self._end_dwell(generation))
        if outcome.redraw:
            self._render_text()
            self._redraw()

    def _end_dwell(self, generation: int) -> None:
        if self.controller.clear_error(generation):
            self._redraw()

    def on_resize(self, event: events.Resize) -> None:
        self._redraw()

    def stop_polling(self) -> None:
        """Stop polling. Safe to call more than once."""
        if self._polling_stopped:
            return
        self._polling_stopped = True
        if self._monitor is not None:
            self._monitor.stop(timeout=0)

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self.stop_polling()
        self.exit()
