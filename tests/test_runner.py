# tests/test_runner.py

"""Tests for the argument parser and the headless command runner."""

import unittest
from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

from main import _build_parser
from src.cli import runner
from src.models.errors import FetchError, ItemNotFoundError, StorageError
from src.models.product import ProductSnapshot, SearchHit
from src.models.tracked_item import TrackedItem
from src.services.notifier import ConsoleNotifier, DiscordNotifier

URL = "https://www.empik.com/minecraft,p1234,ksiazka-p"


class TestParser(unittest.TestCase):
    """Command-line parsing."""

    def test_check_joins_query_words(self) -> None:
        args = _build_parser().parse_args(["check", "minecraft", "story"])
        self.assertEqual(args.command, "check")
        self.assertEqual(args.query, ["minecraft", "story"])

    def test_track_with_channel(self) -> None:
        args = _build_parser().parse_args(
            ["--owner", "u7", "track", URL, "59.99", "--channel", "c9"]
        )
        self.assertEqual(
            (args.owner, args.url, args.target, args.channel),
            ("u7", URL, "59.99", "c9"),
        )

    def test_deals_limit(self) -> None:
        args = _build_parser().parse_args(["deals", "-n", "3"])
        self.assertEqual(args.limit, 3)

    def test_run_flags(self) -> None:
        args = _build_parser().parse_args(["run", "--once", "--console"])
        self.assertTrue(args.once)
        self.assertTrue(args.console)

    def test_command_required(self) -> None:
        with self.assertRaises(SystemExit):
            _build_parser().parse_args([])


class TestRunnerCommands(unittest.IsolatedAsyncioTestCase):
    """Exit codes of the runner commands."""

    def setUp(self) -> None:
        self.service = MagicMock()

    async def test_check_snapshot(self) -> None:
        self.service.check_or_search = AsyncMock(return_value=ProductSnapshot(
            title="Minecraft", price=Decimal("49.99"), url=URL,
        ))
        self.assertEqual(await runner.cli_check(self.service, URL), 0)

    async def test_check_search_hits(self) -> None:
        self.service.check_or_search = AsyncMock(return_value=[
            SearchHit(title="Minecraft", price_text="49,99 zł", url=URL),
        ])
        self.assertEqual(await runner.cli_check(self.service, "minecraft"), 0)

    async def test_check_no_results(self) -> None:
        self.service.check_or_search = AsyncMock(return_value=[])
        self.assertEqual(await runner.cli_check(self.service, "zzz"), 1)

    async def test_check_fetch_error(self) -> None:
        self.service.check_or_search = AsyncMock(
            side_effect=FetchError("down"),
        )
        self.assertEqual(await runner.cli_check(self.service, URL), 1)

    async def test_track_ok(self) -> None:
        self.service.subscribe = AsyncMock(return_value=TrackedItem(
            owner_id="u1",
            destination_id="console",
            item_id=URL,
            target_price=Decimal("60"),
            created_at=datetime(2026, 3, 1, tzinfo=UTC),
        ))
        code = await runner.cli_track(self.service, "u1", "console", URL, "60")
        self.assertEqual(code, 0)

    async def test_track_invalid(self) -> None:
        self.service.subscribe = AsyncMock(side_effect=ValueError("bad url"))
        code = await runner.cli_track(self.service, "u1", "c", "nope", "60")
        self.assertEqual(code, 1)

    async def test_track_storage_failure(self) -> None:
        self.service.subscribe = AsyncMock(side_effect=StorageError("locked"))
        code = await runner.cli_track(self.service, "u1", "c", URL, "60")
        self.assertEqual(code, 1)

    async def test_stats_unknown(self) -> None:
        self.service.get_stats = AsyncMock(
            side_effect=ItemNotFoundError("no history"),
        )
        self.assertEqual(await runner.cli_stats(self.service, URL), 1)

    async def test_deals_empty(self) -> None:
        self.service.list_deals = AsyncMock(return_value=[])
        self.assertEqual(await runner.cli_deals(self.service, 5), 0)
        self.service.list_deals.assert_awaited_once_with(5)


class TestBuildNotifier(unittest.TestCase):
    """Notifier selection."""

    def test_console_flag(self) -> None:
        self.assertIsInstance(runner.build_notifier(True), ConsoleNotifier)

    def test_console_without_token(self) -> None:
        with patch.object(runner.Settings, "DISCORD_TOKEN", ""):
            self.assertIsInstance(
                runner.build_notifier(False), ConsoleNotifier,
            )

    @patch("src.services.notifier.curl_requests.Session")
    def test_discord_with_token(self, _session: MagicMock) -> None:
        with patch.object(runner.Settings, "DISCORD_TOKEN", "tok"):
            self.assertIsInstance(
                runner.build_notifier(False), DiscordNotifier,
            )


if __name__ == "__main__":
    unittest.main()
