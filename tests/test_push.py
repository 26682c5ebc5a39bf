from unittest.mock import MagicMock, patch

import httpx

from shiftboard.models.notification import list_notifications_by_user
from shiftboard.models.profile import ProfileCreate, Role, create_profile
from shiftboard.models.push_subscription import (
    PushSubscriptionCreate,
    list_subscriptions,
    upsert_subscription,
)
from shiftboard.notifications.push import (
    PushResult,
    _gateway_url,
    push_warning,
    send_admin_push,
    send_push,
)


def _subscribed(db, name="Alice", role=Role.REGULAR, endpoints=("https://push.example/abc",)):
    profile = create_profile(
        db, ProfileCreate(full_name=name, role=role, notification_pref="push_and_email")
    )
    for endpoint in endpoints:
        upsert_subscription(
            db, profile.id, PushSubscriptionCreate(endpoint=endpoint, p256dh="key", auth="secret")
        )
    return profile


def _status_error(status_code):
    request = httpx.Request("POST", "http://localhost:3000/send")
    return httpx.HTTPStatusError(
        "push failed", request=request, response=httpx.Response(status_code, request=request)
    )


class TestSendPush:
    """Test the push fan-out through the gateway."""

    @patch("shiftboard.notifications.push.httpx.post")
    def test_skipped_without_opt_in(self, mock_post, db):
        profile = create_profile(db, ProfileCreate(full_name="Quiet"))

        result = send_push(db, profile.id, "Shift approved", "Your request was approved.")

        assert result == PushResult(sent=0, failed=0, skipped=True)
        mock_post.assert_not_called()
        logged = list_notifications_by_user(db, profile.id)
        assert len(logged) == 1
        assert logged[0].skipped is True

    @patch("shiftboard.notifications.push.httpx.post")
    def test_success_posts_each_subscription(self, mock_post, db):
        profile = _subscribed(db, endpoints=("https://push.example/a", "https://push.example/b"))
        mock_post.return_value = MagicMock(status_code=201)

        result = send_push(db, profile.id, "Shift added", "You are on Monday.")

        assert result == PushResult(sent=2, failed=0, skipped=False)
        assert mock_post.call_count == 2
        args, kwargs = mock_post.call_args
        assert args[0] == "http://localhost:3000/send"
        assert kwargs["json"]["subscription"]["keys"] == {"p256dh": "key", "auth": "secret"}
        assert kwargs["json"]["payload"]["title"] == "Shift added"
        assert kwargs["json"]["payload"]["url"] == "/?view=notifications"
        logged = list_notifications_by_user(db, profile.id)[0]
        assert (logged.sent_count, logged.failed_count) == (2, 0)

    @patch("shiftboard.notifications.push.httpx.post")
    def test_gone_endpoint_is_pruned(self, mock_post, db):
        profile = _subscribed(db)
        mock_post.return_value.raise_for_status.side_effect = _status_error(410)

        result = send_push(db, profile.id, "Shift removed", "Bye.")

        assert result == PushResult(sent=0, failed=1, skipped=False)
        assert list_subscriptions(db, [profile.id]) == []

    @patch("shiftboard.notifications.push.httpx.post")
    def test_server_error_keeps_subscription(self, mock_post, db):
        profile = _subscribed(db)
        mock_post.return_value.raise_for_status.side_effect = _status_error(500)

        result = send_push(db, profile.id, "Shift removed", "Bye.")

        assert result.failed == 1
        assert len(list_subscriptions(db, [profile.id])) == 1

    @patch("shiftboard.notifications.push.httpx.post")
    def test_unreachable_gateway_counts_failure(self, mock_post, db):
        profile = _subscribed(db)
        mock_post.side_effect = httpx.ConnectError("Connection refused")

        result = send_push(db, profile.id, "Shift added", "Hi.")

        assert result == PushResult(sent=0, failed=1, skipped=False)
        assert len(list_subscriptions(db, [profile.id])) == 1

    @patch("shiftboard.notifications.push.httpx.post")
    def test_gateway_url_from_env(self, mock_post, db, monkeypatch):
        monkeypatch.setenv("PUSH_GATEWAY_URL", "push-gateway:9000/")
        profile = _subscribed(db)
        mock_post.return_value = MagicMock(status_code=200)

        send_push(db, profile.id, "Shift added", "Hi.")

        assert mock_post.call_args[0][0] == "http://push-gateway:9000/send"


class TestSendAdminPush:
    @patch("shiftboard.notifications.push.httpx.post")
    def test_only_opted_in_admins(self, mock_post, db):
        _subscribed(db, "Ada", Role.ADMIN, endpoints=("https://push.example/ada",))
        _subscribed(db, "Bea", Role.ADMIN, endpoints=("https://push.example/bea",))
        _subscribed(db, "Reg", Role.REGULAR, endpoints=("https://push.example/reg",))
        create_profile(db, ProfileCreate(full_name="Quiet Admin", role=Role.ADMIN))
        mock_post.return_value = MagicMock(status_code=200)

        result = send_admin_push(db, "Shift request", "Alice requested to join a shift.")

        assert result.sent == 2
        endpoints = {c[1]["json"]["subscription"]["endpoint"] for c in mock_post.call_args_list}
        assert endpoints == {"https://push.example/ada", "https://push.example/bea"}

    @patch("shiftboard.notifications.push.httpx.post")
    def test_no_admins_sends_nothing(self, mock_post, db):
        result = send_admin_push(db, "Shift dropped", "Alice dropped a shift.")
        assert result.sent == 0
        mock_post.assert_not_called()


class TestHelpers:
    def test_gateway_url_normalization(self):
        assert _gateway_url(None) == "http://localhost:3000"
        assert _gateway_url("  ") == "http://localhost:3000"
        assert _gateway_url("gateway:3000/") == "http://gateway:3000"
        assert _gateway_url('"https://push.example.org/"') == "https://push.example.org"

    def test_push_warning(self):
        assert push_warning(PushResult(skipped=True)) == "Volunteer has not enabled push notifications."
        assert push_warning(PushResult(sent=0, failed=1)) == "Push notification was not delivered."
        assert push_warning(PushResult(sent=1)) is None
