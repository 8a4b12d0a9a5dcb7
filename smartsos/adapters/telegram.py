"""
Telegram Bot API messaging relay.

Single attempt, no retry, no queue. The bot token is the credential and the
chat id is the target; neither is ever written to the log.
"""

import asyncio

import requests
import structlog

logger = structlog.get_logger(__name__)


class TelegramRelay:
    """Sends caregiver messages through a Telegram bot."""

    def __init__(
        self,
        api_base: str = "https://api.telegram.org",
        session: requests.Session | None = None,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.session = session or requests.Session()
        self.logger = logger.bind(component="telegram_relay")

    async def send(self, credential: str, target: str, text: str) -> bool:
        """Post `text` to chat `target`. Blocking I/O runs off the event loop."""
        return await asyncio.to_thread(self._post, credential, target, text)

    def _post(self, credential: str, target: str, text: str) -> bool:
        url = f"{self.api_base}/bot{credential}/sendMessage"
        try:
            response = self.session.post(
                url,
                json={"chat_id": target, "text": text, "parse_mode": "Markdown"},
            )
            payload = response.json()
        except requests.RequestException as e:
            self.logger.warning("relay_send_failed", error=type(e).__name__)
            return False
        except ValueError:
            self.logger.warning("relay_response_unreadable", status_code=response.status_code)
            return False

        delivered = response.ok and bool(payload.get("ok"))
        if delivered:
            self.logger.info("relay_message_sent")
        else:
            self.logger.warning(
                "relay_message_rejected",
                status_code=response.status_code,
                description=payload.get("description"),
            )
        return delivered
