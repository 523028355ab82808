"""Cron relay for match alerts.

An external scheduler calls `/api/cron/match-alerts` every few hours; this
module checks its bearer token and forwards the call to the notification
endpoint, returning whatever that endpoint answered.
"""

from __future__ import annotations

import hmac
from datetime import datetime, timezone
from typing import Any

import httpx

from .config import Settings


def cron_authorized(authorization: str | None, settings: Settings) -> bool:
    """Bearer check; only enforced in production.

    In production a missing CRON_SECRET rejects every call.
    """
    if not settings.is_production:
        return True
    if not settings.cron_secret:
        return False
    expected = f"Bearer {settings.cron_secret}"
    return hmac.compare_digest((authorization or "").encode("utf-8"), expected.encode("utf-8"))


def trigger_match_alerts(settings: Settings, *, client: httpx.Client | None = None) -> dict[str, Any]:
    """Call the notify endpoint and wrap its JSON answer.

    Raises httpx.HTTPError on transport failure and ValueError when the
    endpoint does not answer with JSON.
    """
    url = f"{settings.app_url}{settings.notify_path}"
    headers = {"Content-Type": "application/json"}
    if client is not None:
        resp = client.get(url, headers=headers)
    else:
        with httpx.Client(timeout=settings.notify_timeout_s) as c:
            resp = c.get(url, headers=headers)

    result = resp.json()
    return {
        "success": True,
        "triggeredAt": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "source": "cron",
        "result": result,
    }
