# fleetdesk/services/notifications.py
from __future__ import annotations

import requests
from flask import current_app

from ..errors import DependencyError
from ..settings import NotificationSettings

EXTENSION_KEY = "fleetdesk.notifications"


def notification_settings() -> NotificationSettings:
    """Settings built once in create_app."""
    settings = current_app.extensions.get(EXTENSION_KEY)
    if settings is None:
        settings = NotificationSettings.from_config(current_app.config)
        current_app.extensions[EXTENSION_KEY] = settings
    return settings


def _post(url: str, payload: dict, timeout: float, headers: dict | None = None) -> None:
    resp = requests.post(url, json=payload, headers=headers or {}, timeout=timeout)
    resp.raise_for_status()


def dispatch_invoice_reminder(payload: dict, settings: NotificationSettings) -> str:
    """
    Webhook first, then the backend function. First success wins.
    Returns the channel used; raises DependencyError when every configured
    channel failed or none is configured.
    """
    failures: list[str] = []

    if settings.webhook_url:
        try:
            _post(settings.webhook_url, payload, settings.timeout)
            return "webhook"
        except requests.RequestException as exc:
            current_app.logger.warning("Reminder webhook failed: %s", exc)
            failures.append(f"webhook: {exc}")

    function_url = settings.function_url
    if function_url:
        headers = {}
        if settings.function_token:
            headers["Authorization"] = f"Bearer {settings.function_token}"
        try:
            _post(function_url, payload, settings.timeout, headers=headers)
            return "function"
        except requests.RequestException as exc:
            current_app.logger.warning("Reminder function %s failed: %s", settings.function_name, exc)
            failures.append(f"function: {exc}")

    if not failures:
        raise DependencyError("Invoice reminders are not configured")
    raise DependencyError("Failed to send invoice reminder", details="; ".join(failures))
