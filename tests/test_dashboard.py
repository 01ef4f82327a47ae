"""Tests for the Textual dashboard shell in packages/dashboard.

Covers argument parsing, startup wiring in main(), and an end-to-end run of
the app against the demo fetcher using Textual's headless test driver.
"""

import asyncio
from unittest.mock import patch

import pytest
from textual.widgets import Static

from beadview.config import GraphConfig
from beadview.fetcher import DemoFetcher
from packages.dashboard.__main__ import main, parse_args
from packages.dashboard.app import BeadviewDashboard
from packages.dashboard.widgets.bead_detail import BeadDetailModal
from packages.dashboard.widgets.graph_pane import GraphPane


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------


class TestParseArgs:
    """Tests for parse_args()."""

    def test_defaults(self):
        args = parse_args([])
        assert args.epic is None
        assert args.density is None
        assert args.refresh is None
        assert not args.demo

    def test_flags(self):
        args = parse_args(["--epic", "bd-1", "--density", "compact", "--source", "jsonl", "--refresh", "2.5"])
        assert args.epic == "bd-1"
        assert args.density == "compact"
        assert args.source == "jsonl"
        assert args.refresh == 2.5

    def test_bad_density_exits(self):
        with pytest.raises(SystemExit):
            parse_args(["--density", "huge"])


class TestMain:
    """Tests for main() wiring with the app mocked out."""

    @pytest.fixture(autouse=True)
    def beadview_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BEADVIEW_DIR", str(tmp_path))
        return tmp_path

    def test_flags_override_config(self, beadview_dir):
        (beadview_dir / "config.yaml").write_text("graph:\n  density: detailed\n  layout: vertical\n")
        with patch("packages.dashboard.__main__.BeadviewDashboard") as mock_app:
            main(["--demo", "--epic", "bd-1", "--density", "compact", "--refresh", "0"])

        graph_config, fetcher = mock_app.call_args[0]
        assert isinstance(fetcher, DemoFetcher)
        assert graph_config.epic == "bd-1"
        assert graph_config.density == "compact"
        assert graph_config.auto_refresh_interval == 0
        assert mock_app.call_args[1]["layout"] == "vertical"
        mock_app.return_value.run.assert_called_once()

    def test_bad_source_exits(self, beadview_dir):
        (beadview_dir / "config.yaml").write_text("source:\n  type: carrier-pigeon\n")
        with patch("packages.dashboard.__main__.BeadviewDashboard") as mock_app:
            with pytest.raises(SystemExit, match="Unknown source type"):
                main([])
        mock_app.assert_not_called()

    def test_crash_is_logged_and_reraised(self, beadview_dir, caplog):
        with patch("packages.dashboard.__main__.BeadviewDashboard") as mock_app:
            mock_app.return_value.run.side_effect = RuntimeError("boom")
            with pytest.raises(RuntimeError):
                main(["--demo"])
        assert "Dashboard crashed" in caplog.text


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------


def _app() -> BeadviewDashboard:
    return BeadviewDashboard(GraphConfig(auto_refresh_interval=0), DemoFetcher())


async def _settle(app, pilot) -> None:
    await app.workers.wait_for_complete()
    await pilot.pause()


class TestDashboardApp:
    """Drive the app headlessly against demo data."""

    def test_loads_and_navigates(self):
        async def scenario():
            app = _app()
            async with app.run_test(size=(100, 30)) as pilot:
                await _settle(app, pilot)
                pane = app.query_one(GraphPane)
                assert pane.graph.node_count() == 8
                assert pane.graph.get_selected_id() == "bd-1"

                await pilot.press("j")
                assert pane.graph.get_selected_id() == "bd-2"
                await pilot.press("h")
                assert pane.graph.get_selected_id() == "bd-1"
                await pilot.press("c")
                assert pane.graph.is_collapsed("bd-1")
                await pilot.press("d")
                assert pane.graph.get_density().value == "detailed"

        asyncio.run(scenario())

    def test_view_cycle_refetches(self):
        async def scenario():
            app = _app()
            async with app.run_test(size=(100, 30)) as pilot:
                await _settle(app, pilot)
                await pilot.press("a")
                await _settle(app, pilot)
                pane = app.query_one(GraphPane)
                ids = {row.id for row in pane.graph.get_layout().list_order}
                assert ids == {"bd-8", "bd-9"}
                assert pane.coordinator.status_line().startswith("backlog")

        asyncio.run(scenario())

    def test_detail_then_full_screen(self):
        async def scenario():
            app = _app()
            async with app.run_test(size=(100, 30)) as pilot:
                await _settle(app, pilot)
                pane = app.query_one(GraphPane)

                await pilot.press("enter")
                await _settle(app, pilot)
                assert pane.coordinator.detail_visible
                assert pane.coordinator.detail_bead.id == "bd-1"

                await pilot.press("enter")
                await pilot.pause()
                assert isinstance(app.screen, BeadDetailModal)

                await pilot.press("escape")
                await pilot.pause()
                assert not isinstance(app.screen, BeadDetailModal)

                await pilot.press("escape")
                assert not pane.coordinator.detail_visible

        asyncio.run(scenario())

    def test_disabled_graph_pane(self):
        async def scenario():
            app = BeadviewDashboard(GraphConfig(enabled=False, auto_refresh_interval=0), DemoFetcher())
            async with app.run_test(size=(100, 30)) as pilot:
                await pilot.pause()
                assert len(app.query(GraphPane)) == 0
                assert app.query_one("#graph-disabled", Static)
                app.refresh_graph()

        asyncio.run(scenario())
