"""Alert actions: one class per action kind, looked up through a type registry."""
import json
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

import requests

from models.alerts import ActionResult
from models.enums import ActionType
from utils.timeutil import to_iso

logger = logging.getLogger("powerwatch.alerts.actions")

_REGISTRY = {}


@runtime_checkable
class AlertAction(Protocol):
    type: str

    def execute(self, event) -> ActionResult: ...


def register_action(action_type):
    """Class decorator adding an action kind to the registry."""
    action_type = getattr(action_type, "value", action_type)

    def decorator(cls):
        cls.type = action_type
        _REGISTRY[action_type] = cls
        return cls
    return decorator


def registered_types():
    return sorted(_REGISTRY)


def build_action(spec, config=None):
    """Instantiate the action for a spec, or None for an unknown type."""
    cls = _REGISTRY.get(spec.type)
    if cls is None:
        return None
    action = cls(spec.params, config or {})
    if not isinstance(action, AlertAction):
        raise TypeError(f"{cls.__name__} does not implement execute(event)")
    return action


def describe(event):
    return (f"{event.alert_name}: {event.metric} {event.condition} {event.threshold} "
            f"(current: {event.actual_value})")


@register_action(ActionType.LOG)
class LogAction:
    def __init__(self, params, config):
        self.params = params

    def execute(self, event):
        logger.warning(f"[ALERT] {describe(event)}")
        return ActionResult(self.type, True, "logged")


@register_action(ActionType.FILE)
class FileAction:
    """Append the event to a JSON lines file."""

    def __init__(self, params, config):
        default = config.get("actions", {}).get("file_path", "data/alerts.jsonl")
        self.log_path = params.get("path", default)

    def execute(self, event):
        entry = {
            "timestamp": to_iso(event.triggered_at),
            "alert_id": event.alert_id,
            "alert_name": event.alert_name,
            "metric": event.metric,
            "condition": event.condition,
            "threshold": event.threshold,
            "actual_value": event.actual_value,
            "message": event.message,
        }
        Path(self.log_path).parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_path, "a") as f:
            f.write(json.dumps(entry) + "\n")
        return ActionResult(self.type, True, self.log_path)


@register_action(ActionType.WEBHOOK)
class WebhookAction:
    """POST the alert as JSON to an external endpoint."""

    def __init__(self, params, config):
        self.url = params.get("url")
        self.timeout = params.get("timeout", config.get("actions", {}).get("webhook_timeout_seconds", 5))
        self.headers = {"Content-Type": "application/json", "User-Agent": "PowerWatch/1.0"}
        self.headers.update(params.get("headers", {}))

    @staticmethod
    def payload(event):
        return {
            "alertName": event.alert_name,
            "metric": event.metric,
            "condition": event.condition,
            "threshold": event.threshold,
            "actualValue": event.actual_value,
            "message": event.message,
            "timestamp": to_iso(event.triggered_at),
        }

    def execute(self, event):
        if not self.url:
            logger.warning(f"Webhook action for {event.alert_name} has no url")
            return ActionResult(self.type, False, "missing url")
        try:
            resp = requests.post(self.url, json=self.payload(event),
                                 headers=self.headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Webhook to {self.url} failed: {e}")
            return ActionResult(self.type, False, str(e))
        if not 200 <= resp.status_code < 300:
            logger.warning(f"Webhook to {self.url} returned HTTP {resp.status_code}")
            return ActionResult(self.type, False, f"HTTP {resp.status_code}")
        logger.info(f"Webhook sent for alert: {event.alert_name}")
        return ActionResult(self.type, True, f"HTTP {resp.status_code}")


@register_action(ActionType.EMAIL)
class EmailAction:
    def __init__(self, params, config):
        from notifications.email_sender import EmailSender
        self.sender = EmailSender(config)
        if params.get("recipient"):
            self.sender.to_address = params["recipient"]

    def execute(self, event):
        if not self.sender.is_configured():
            logger.warning("Email action skipped: SMTP not configured")
            return ActionResult(self.type, False, "not configured")
        sent = self.sender.send_alert(
            alert_name=event.alert_name,
            message=event.message or describe(event),
            metric=event.metric,
            actual_value=event.actual_value,
            threshold=event.threshold,
        )
        return ActionResult(self.type, sent, self.sender.to_address)


@register_action(ActionType.TELEGRAM)
class TelegramAction:
    def __init__(self, params, config):
        tg = config.get("telegram", {})
        self.bot_token = params.get("bot_token", tg.get("bot_token"))
        self.chat_id = params.get("chat_id", tg.get("chat_id"))

    def execute(self, event):
        if not self.bot_token or not self.chat_id:
            logger.warning("Telegram action skipped: bot_token/chat_id not configured")
            return ActionResult(self.type, False, "not configured")
        from notifications.telegram_bot import TelegramBot
        bot = TelegramBot(self.bot_token, self.chat_id)
        data = bot.send_alert(event)
        return ActionResult(self.type, bool(data.get("ok")), data.get("description", ""))


@register_action(ActionType.SMS)
class SmsAction:
    """No SMS provider is bundled; the text is logged for an operator to wire up."""

    def __init__(self, params, config):
        self.to = params.get("to", "")

    def execute(self, event):
        logger.info(f"SMS alert triggered for {self.to or 'unset recipient'}: {describe(event)}")
        return ActionResult(self.type, True, "no provider configured")
