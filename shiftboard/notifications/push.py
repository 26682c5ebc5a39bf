"""Best-effort web push through the push gateway.

The gateway wraps the actual web-push protocol: it takes one subscription
and one payload per request and relays the push service's status code.
A 404 or 410 from the gateway means the endpoint is gone and the
subscription is pruned locally.
"""

import logging
import os
import sqlite3
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse, urlunparse

import httpx

from shiftboard.models.notification import NotificationCreate, create_notification, record_outcome
from shiftboard.models.profile import get_profile, list_push_admin_ids
from shiftboard.models.push_subscription import (
    PushSubscription,
    delete_subscription,
    list_subscriptions,
)

log = logging.getLogger("shiftboard.push")

DEFAULT_URL = "/?view=notifications"
ICON = "/pwa-192.png"
GONE_STATUSES = (404, 410)


@dataclass
class PushResult:
    sent: int = 0
    failed: int = 0
    skipped: bool = False


def _gateway_url(raw: Optional[str], default_url: str = "http://localhost:3000") -> str:
    """Normalize an env-provided gateway URL into a base URL without trailing slash."""
    value = (raw or "").strip().strip('"').strip("'")
    if not value:
        return default_url

    if "://" not in value:
        value = f"http://{value}"

    parsed = urlparse(value)
    if not parsed.hostname:
        return default_url

    return urlunparse((parsed.scheme or "http", parsed.netloc, parsed.path.rstrip("/"), "", "", ""))


def _deliver(
    db: sqlite3.Connection,
    subscriptions: list[PushSubscription],
    title: str,
    body: str,
    url: str,
) -> PushResult:
    endpoint = f"{_gateway_url(os.getenv('PUSH_GATEWAY_URL'))}/send"
    payload = {"title": title, "body": body, "url": url, "icon": ICON, "badge": ICON}
    result = PushResult()

    for sub in subscriptions:
        try:
            response = httpx.post(
                endpoint,
                json={
                    "subscription": {
                        "endpoint": sub.endpoint,
                        "keys": {"p256dh": sub.p256dh, "auth": sub.auth},
                    },
                    "payload": payload,
                },
                timeout=30,
            )
            response.raise_for_status()
            result.sent += 1
        except httpx.HTTPStatusError as e:
            result.failed += 1
            if e.response.status_code in GONE_STATUSES:
                log.info("pruning stale push endpoint for user %s", sub.user_id)
                delete_subscription(db, sub.user_id, sub.endpoint)
            else:
                log.warning("push delivery failed for user %s: %s", sub.user_id, e)
        except httpx.RequestError as e:
            result.failed += 1
            log.warning("push gateway unreachable for user %s: %s", sub.user_id, e)

    return result


def send_push(
    db: sqlite3.Connection,
    user_id: int,
    title: str,
    body: str,
    url: str = DEFAULT_URL,
    notification_type: str = "push",
    shift_instance_id: Optional[int] = None,
) -> PushResult:
    """Push a message to every device of one user.

    Users who have not opted into push (notification_pref != push_and_email)
    are skipped.  The attempt is always recorded in the notifications log.
    """
    notification = create_notification(
        db,
        NotificationCreate(
            user_id=user_id,
            type=notification_type,
            title=title,
            body=body,
            shift_instance_id=shift_instance_id,
        ),
    )

    profile = get_profile(db, user_id)
    if profile is None or profile.notification_pref != "push_and_email":
        record_outcome(db, notification.id, 0, 0, skipped=True)
        return PushResult(skipped=True)

    result = _deliver(db, list_subscriptions(db, [user_id]), title, body, url)
    record_outcome(db, notification.id, result.sent, result.failed)
    return result


def send_admin_push(
    db: sqlite3.Connection, title: str, body: str, url: str = DEFAULT_URL
) -> PushResult:
    """Broadcast a message to every Admin who opted into push."""
    notification = create_notification(
        db, NotificationCreate(user_id=None, type="admin_push", title=title, body=body)
    )
    admin_ids = list_push_admin_ids(db)
    result = _deliver(db, list_subscriptions(db, admin_ids), title, body, url)
    record_outcome(db, notification.id, result.sent, result.failed)
    return result


def push_warning(result: PushResult) -> Optional[str]:
    """Explain why a volunteer push did not land, or None if it did."""
    if result.skipped:
        return "Volunteer has not enabled push notifications."
    if result.sent <= 0:
        return "Push notification was not delivered."
    return None
