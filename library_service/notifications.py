import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import requests
from flask import current_app

logger = logging.getLogger(__name__)


def run_post_commit_hooks(hooks, event):
    """
    Call every hook with ``event``. A failing hook is logged and skipped;
    it never reaches the caller, whose transaction has already committed.
    """
    for hook in hooks:
        try:
            hook(event)
        except Exception:
            logger.exception("Post-commit hook %r failed for %s event", hook, event.get("type"))


class Notifier:
    """
    Best-effort delivery of library events to the notification service.

    Calling the notifier only schedules the HTTP request; delivery failures
    are logged and dropped.
    """

    def __init__(self, base_url=None, api_key=None, timeout=3, executor=None):
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="notifier"
        )

    def __call__(self, event):
        if not self.base_url:
            logger.info("Notification (no endpoint configured): %s", event)
            return
        self._executor.submit(self.deliver, event)

    def deliver(self, event):
        payload = dict(event)
        payload.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        url = f"{self.base_url.rstrip('/')}/api/notifications"

        try:
            resp = requests.post(
                url,
                json=payload,
                headers={"X-API-Key": self.api_key},
                timeout=self.timeout,
            )
            if not resp.ok:
                raise RuntimeError(f"Notification service returned {resp.status_code}")
            logger.info("Delivered %s notification -> %s", payload.get("type"), resp.status_code)
            return True
        except (requests.RequestException, RuntimeError) as e:
            logger.warning("Failed to deliver %s notification: %s", payload.get("type"), e)
            return False


def get_notifier():
    return current_app.extensions["notifier"]
