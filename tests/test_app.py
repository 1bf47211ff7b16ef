"""Tests for natstop application."""

import httpx
import pytest

from natstop.app import NatsTopApp, TextPanel
from natstop.controller import InputMode, ViewMode
from natstop.models import ConnectionRecord, DashboardConfig, Snapshot
from natstop.monitor import MetricsEndpoint, MetricsSource, PollFailure
from natstop.sorting import SortKey


def make_snapshot() -> Snapshot:
    return Snapshot(
        num_connections=2,
        connections=(
            ConnectionRecord(cid=1, ip="10.0.0.1", port=1, name="small", pending_bytes=500),
            ConnectionRecord(
                cid=2,
                ip="10.0.0.2",
                port=2,
                name="big",
                pending_bytes=1500,
                subscriptions=("updates",),
            ),
        ),
    )


def row_names(text: str) -> list[str]:
    return [line.split()[2] for line in text.splitlines() if line.startswith("  10.0.0.")]


@pytest.mark.asyncio
async def test_app_creation():
    """Test NatsTopApp can be instantiated."""
    app = NatsTopApp()
    assert app.title == "natstop"
    assert app.config.sort_key is SortKey.CID


@pytest.mark.asyncio
async def test_app_compose():
    """Test NatsTopApp composes correctly."""
    app = NatsTopApp()
    async with app.run_test() as pilot:
        assert pilot.app.query_one("#dashboard", TextPanel) is not None
        assert pilot.app.query_one("#status", TextPanel) is not None
        assert pilot.app.query_one("#help", TextPanel).display is False


@pytest.mark.asyncio
async def test_first_paint_uses_empty_snapshot():
    app = NatsTopApp()
    async with app.run_test():
        assert "Connections: 0" in app.text
        assert "HOST" in app.text


@pytest.mark.asyncio
async def test_snapshot_updates_text():
    app = NatsTopApp(DashboardConfig(sort_key=SortKey.PENDING))
    async with app.run_test() as pilot:
        app.channel.publish(make_snapshot())
        app.check_for_updates()
        await pilot.pause()

        assert "Connections: 2" in app.text
        assert row_names(app.text) == ["big", "small"]


@pytest.mark.asyncio
@pytest.mark.parametrize("key", ["q", "ctrl+c"])
async def test_quit_bindings(key):
    """Test that 'q' and ctrl+c quit."""
    app = NatsTopApp()
    async with app.run_test() as pilot:
        await pilot.press(key)
        assert app._polling_stopped


@pytest.mark.asyncio
async def test_quit_while_prompting():
    app = NatsTopApp()
    async with app.run_test() as pilot:
        await pilot.press("n", "4")
        assert app.controller.mode is InputMode.AWAITING_LIMIT

        await pilot.press("q")
        assert app._polling_stopped
        assert app.config.sample_limit == 1024


@pytest.mark.asyncio
async def test_shutdown_runs_once():
    source = MetricsSource(
        MetricsEndpoint(uri="http://nats.test:8222"),
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )
    app = NatsTopApp(source=source)
    calls = []
    original_stop = app._monitor.stop

    def counting_stop(*args, **kwargs):
        calls.append(1)
        original_stop(*args, **kwargs)

    app._monitor.stop = counting_stop
    async with app.run_test() as pilot:
        await pilot.press("q")
    app.stop_polling()

    assert calls == [1]


@pytest.mark.asyncio
async def test_sort_prompt():
    app = NatsTopApp()
    async with app.run_test() as pilot:
        app.channel.publish(make_snapshot())
        app.check_for_updates()

        await pilot.press("o")
        assert app.controller.status_line == "sort by [cid]: "

        await pilot.press("p", "e", "n", "d", "i", "n", "g")
        assert app.controller.status_line == "sort by [cid]: pending"

        await pilot.press("enter")
        await pilot.pause()

        assert app.config.sort_key is SortKey.PENDING
        assert app.controller.mode is InputMode.NORMAL
        assert row_names(app.text) == ["big", "small"]


@pytest.mark.asyncio
async def test_invalid_sort_option_dwell():
    app = NatsTopApp()
    async with app.run_test() as pilot:
        await pilot.press("o", "x", "enter")

        assert app.controller.status_line == "invalid order: x"
        assert app.controller.mode is InputMode.NORMAL
        assert app.config.sort_key is SortKey.CID

        await pilot.pause(1.5)
        assert app.controller.status_line == ""


@pytest.mark.asyncio
async def test_limit_prompt():
    app = NatsTopApp()
    async with app.run_test() as pilot:
        await pilot.press("n", "5", "enter")

        assert app.config.sample_limit == 5
        assert app._request_params().limit == 5


@pytest.mark.asyncio
async def test_toggle_subscriptions():
    app = NatsTopApp()
    async with app.run_test() as pilot:
        app.channel.publish(make_snapshot())
        app.check_for_updates()
        assert "SUBSCRIPTIONS" not in app.text

        await pilot.press("s")
        assert app.config.display_subs
        assert "SUBSCRIPTIONS" in app.text
        assert "updates" in app.text
        assert app._request_params().subs


@pytest.mark.asyncio
async def test_help_view():
    app = NatsTopApp()
    async with app.run_test() as pilot:
        await pilot.press("h")
        await pilot.pause()
        assert app.controller.view is ViewMode.HELP
        assert app.query_one("#help", TextPanel).display
        assert not app.query_one("#dashboard", TextPanel).display

        await pilot.press("x")
        await pilot.pause()
        assert app.controller.view is ViewMode.DASHBOARD
        assert app.query_one("#dashboard", TextPanel).display
        assert not app.query_one("#help", TextPanel).display


@pytest.mark.asyncio
async def test_failed_polls_mark_data_stale():
    app = NatsTopApp(stale_after=3)
    async with app.run_test():
        app.channel.publish(make_snapshot())
        app.check_for_updates()

        app.channel.publish(PollFailure(message="boom", consecutive=2))
        app.check_for_updates()
        assert app.notice == ""

        app.channel.publish(PollFailure(message="boom", consecutive=3))
        app.check_for_updates()
        assert "stale data" in app.notice
        assert "boom" in app.notice
        # Last good data stays on screen
        assert "Connections: 2" in app.text

        app.channel.publish(make_snapshot())
        app.check_for_updates()
        assert app.notice == ""


@pytest.mark.asyncio
async def test_stale_marker_disabled():
    app = NatsTopApp(stale_after=0)
    async with app.run_test():
        app.channel.publish(PollFailure(message="boom", consecutive=10))
        app.check_for_updates()
        assert app.notice == ""


def test_refresh_interval_has_a_floor():
    source = MetricsSource(
        MetricsEndpoint(uri="http://nats.test:8222"),
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )
    app = NatsTopApp(DashboardConfig(refresh_interval=0.001), source)

    assert app._monitor.poll_rate == 0.1
    app.stop_polling()


@pytest.mark.asyncio
async def test_resize_keeps_help_view():
    app = NatsTopApp()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.press("h")
        await pilot.pause()

        await pilot.resize_terminal(80, 24)
        await pilot.pause()

        assert app.size.width == 80
        assert app.controller.view is ViewMode.HELP
        assert app.query_one("#help", TextPanel).display
        assert not app.query_one("#dashboard", TextPanel).display


@pytest.mark.asyncio
async def test_resize_keeps_open_prompt():
    app = NatsTopApp()
    async with app.run_test(size=(120, 40)) as pilot:
        await pilot.press("o", "s", "u")
        await pilot.pause()

        await pilot.resize_terminal(100, 30)
        await pilot.pause()

        assert app.size.width == 100
        assert app.controller.view is ViewMode.DASHBOARD
        assert app.controller.mode is InputMode.AWAITING_SORT_KEY
        assert app.controller.status_line == "sort by [cid]: su"
        assert app.query_one("#dashboard", TextPanel).display
        assert not app.query_one("#help", TextPanel).display
