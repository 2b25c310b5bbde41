# src/services/notifier.py

"""Alert delivery: Discord channel messages or the local console."""

import logging
from datetime import UTC, datetime
from typing import Any, Protocol

from curl_cffi import requests as curl_requests
from rich.console import Console
from rich.panel import Panel

from src.config.settings import Settings
from src.models.errors import NotifyError
from src.models.tracked_item import AlertPayload

logger = logging.getLogger("price_tracker.notifier")

_ALERT_COLOR = 0x2ECC71


class Notifier(Protocol):
    """Delivers a target-price alert.  Raises NotifyError on failure."""

    def notify(
        self,
        destination_id: str,
        mention_id: str,
        payload: AlertPayload,
    ) -> None: ...


def build_alert_embed(payload: AlertPayload) -> dict[str, Any]:
    """Discord embed describing a reached target price."""
    return {
        "title": "🚨 Price Alert!",
        "description": (
            f"**{payload.title}** has dropped to "
            f"**{payload.price} {payload.currency}**!"
        ),
        "color": _ALERT_COLOR,
        "fields": [
            {
                "name": "Target Price",
                "value": f"{payload.target_price} {payload.currency}",
                "inline": True,
            },
            {
                "name": "Current Price",
                "value": f"{payload.price} {payload.currency}",
                "inline": True,
            },
            {
                "name": "Link",
                "value": f"[Buy Now]({payload.item_id})",
                "inline": False,
            },
        ],
        "timestamp": datetime.now(UTC).isoformat(),
    }


class DiscordNotifier:
    """Posts alerts to a Discord channel through the bot REST API."""

    def __init__(
        self,
        token: str | None = None,
        api_base: str | None = None,
    ) -> None:
        self.settings = Settings()
        self._token = token if token is not None else self.settings.DISCORD_TOKEN
        self._api_base = (api_base or self.settings.DISCORD_API_BASE).rstrip("/")
        self.session = curl_requests.Session()

    def notify(
        self,
        destination_id: str,
        mention_id: str,
        payload: AlertPayload,
    ) -> None:
        """Send the alert; only returns once Discord acknowledged it."""
        if not self._token:
            raise NotifyError("DISCORD_TOKEN is not configured")
        url = f"{self._api_base}/channels/{destination_id}/messages"
        body = {
            "content": f"<@{mention_id}>",
            "embeds": [build_alert_embed(payload)],
            "allowed_mentions": {"users": [mention_id]},
        }
        try:
            resp = self.session.post(
                url,
                json=body,
                headers={
                    "Authorization": f"Bot {self._token}",
                    "Content-Type": "application/json",
                },
                timeout=self.settings.NOTIFY_HTTP_TIMEOUT,
            )
        except Exception as exc:
            raise NotifyError(
                f"Discord request to channel {destination_id} failed: {exc}"
            ) from exc
        if not 200 <= resp.status_code < 300:
            raise NotifyError(
                f"Discord rejected alert for channel {destination_id}: "
                f"HTTP {resp.status_code}"
            )
        logger.info(
            "Alert for %s delivered to channel %s",
            payload.item_id,
            destination_id,
        )


class ConsoleNotifier:
    """Renders alerts on the terminal for local, token-less runs."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)

    def notify(
        self,
        destination_id: str,
        mention_id: str,
        payload: AlertPayload,
    ) -> None:
        body = (
            f"[bold]{payload.title}[/bold] dropped to "
            f"[green]{payload.price} {payload.currency}[/green] "
            f"(target {payload.target_price} {payload.currency})\n"
            f"[dim]{payload.item_id}[/dim]"
        )
        self.console.print(Panel(
            body,
            title=f"🚨 Price Alert for {mention_id}",
            subtitle=destination_id,
            border_style="green",
        ))
        logger.info("Alert for %s shown on console", payload.item_id)
