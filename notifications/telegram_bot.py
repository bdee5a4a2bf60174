"""Telegram Bot API client for PowerWatch alerts.

Uses raw HTTP POST via requests, no bot SDK needed.
"""
import logging
import requests

logger = logging.getLogger("powerwatch.telegram")

TELEGRAM_API = "https://api.telegram.org/bot{token}"


class TelegramBot:
    """Thin wrapper around Telegram Bot API."""

    def __init__(self, bot_token: str, chat_id: str, timeout: int = 10):
        self.bot_token = bot_token
        self.chat_id = str(chat_id)
        self.timeout = timeout
        self.base_url = TELEGRAM_API.format(token=bot_token)

    def send_message(self, text: str, chat_id: str = None,
                     parse_mode: str = "Markdown") -> dict:
        """Send a text message. Returns Telegram API response dict."""
        url = f"{self.base_url}/sendMessage"
        payload = {
            "chat_id": chat_id or self.chat_id,
            "text": text,
            "parse_mode": parse_mode,
        }
        try:
            resp = requests.post(url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
            if not data.get("ok"):
                logger.warning("Telegram API error: %s", data.get("description"))
            return data
        except requests.RequestException as e:
            logger.error("Telegram send failed: %s", e)
            raise

    def send_alert(self, event) -> dict:
        return self.send_message(self.format_alert(event))

    @staticmethod
    def format_alert(event) -> str:
        lines = [
            f"⚠️ *Power Alert: {event.alert_name}*",
            f"{event.metric} = {event.actual_value:.2f} ({event.condition} {event.threshold})",
        ]
        if event.message:
            lines.append(event.message)
        return "\n".join(lines)
