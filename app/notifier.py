"""
Status-stream notifiers.

Both sinks are callables taking an engine StatusUpdate, so they can be passed straight to
ScrobbleEngine.add_status_listener(). Updates below the configured minimum level are ignored.

- WebhookNotifier: POSTs a JSON body to NOTIFY_WEBHOOK_URL (Slack/Discord-style webhooks work).
- GotifyNotifier: POSTs to GOTIFY_URL/message with the app token GOTIFY_TOKEN.

Sending is best-effort: failures are logged at DEBUG and never reach the engine.
"""

from __future__ import annotations
import os
from abc import ABC, abstractmethod
import logging
import requests

log = logging.getLogger("notifier")

_LEVELS = {
    "DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50
}
_DEFAULT_TAG = "BluOS→Last.fm"


class _Notifier(ABC):
    def __init__(self, min_level: str, app_tag: str):
        self.min_level = _LEVELS.get(min_level.upper(), 30)
        self.app_tag = app_tag

    def wants(self, level: str) -> bool:
        return _LEVELS.get(level.upper(), 30) >= self.min_level

    def __call__(self, update) -> None:
        self.send(update.level, "Status", update.message)

    @abstractmethod
    def send(self, level: str, title: str, message: str, extra: dict | None = None): ...


class WebhookNotifier(_Notifier):
    def __init__(self, webhook_url: str | None, min_level: str = "WARNING", app_tag: str = _DEFAULT_TAG):
        super().__init__(min_level, app_tag)
        self.webhook_url = webhook_url.strip() if webhook_url else None

    def send(self, level: str, title: str, message: str, extra: dict | None = None):
        if not self.webhook_url or not self.wants(level):
            return
        payload = {
            "level": level.upper(),
            "title": f"{self.app_tag}: {title}",
            "message": message,
            "extra": extra or {},
        }
        try:
            requests.post(self.webhook_url, json=payload, timeout=5)
        except requests.RequestException as e:
            log.debug("Notification send failed: %s", e)


class GotifyNotifier(_Notifier):
    def __init__(self, url: str | None, token: str | None, min_level: str = "WARNING",
                 default_priority: int = 5, app_tag: str = _DEFAULT_TAG):
        super().__init__(min_level, app_tag)
        self.url = url.rstrip("/") if url else None
        self.token = token.strip() if token else None
        self.default_priority = default_priority

    def send(self, level: str, title: str, message: str, extra: dict | None = None,
             priority: int | None = None):
        if not self.url or not self.token or not self.wants(level):
            return
        body = {
            "title": f"{self.app_tag}: {title}",
            "message": message if not extra else f"{message}\n\n{extra}",
            "priority": priority if priority is not None else self.default_priority,
        }
        headers = {"X-Gotify-Key": self.token}
        try:
            requests.post(f"{self.url}/message", json=body, headers=headers, timeout=5)
        except requests.RequestException as e:
            log.debug("Gotify send failed: %s", e)


def from_env() -> list[_Notifier]:
    """Notifiers configured in the environment; unconfigured ones are left out."""
    app_tag = os.getenv("APP_TAG", _DEFAULT_TAG)
    notifiers: list[_Notifier] = []

    webhook_url = os.getenv("NOTIFY_WEBHOOK_URL")
    if webhook_url:
        notifiers.append(WebhookNotifier(
            webhook_url, min_level=os.getenv("NOTIFY_MIN_LEVEL", "WARNING"), app_tag=app_tag,
        ))

    gotify_url = os.getenv("GOTIFY_URL")
    gotify_token = os.getenv("GOTIFY_TOKEN")
    if gotify_url and gotify_token:
        notifiers.append(GotifyNotifier(
            gotify_url, gotify_token,
            min_level=os.getenv("GOTIFY_MIN_LEVEL", "WARNING"),
            default_priority=int(os.getenv("GOTIFY_PRIORITY", "5")),
            app_tag=app_tag,
        ))
    return notifiers
