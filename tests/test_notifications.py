"""Tests for push decoding and notification dispatch."""

from __future__ import annotations

import pytest

from reqcache.exceptions import MalformedPushPayload
from reqcache.models import NotificationDefaults
from reqcache.notifications import ConsoleHost, NotificationDispatcher, decode_payload


@pytest.fixture
def host() -> ConsoleHost:
    return ConsoleHost()


@pytest.fixture
def dispatcher(host: ConsoleHost) -> NotificationDispatcher:
    return NotificationDispatcher(host=host)


class TestDecodePayload:
    def test_json_text(self) -> None:
        payload = decode_payload('{"title": "Hi", "body": "Test", "url": "/x"}')
        assert (payload.title, payload.body, payload.url) == ("Hi", "Test", "/x")

    def test_bytes(self) -> None:
        assert decode_payload(b'{"title": "Hi"}').title == "Hi"

    def test_dict(self) -> None:
        assert decode_payload({"url": "/y"}).url == "/y"

    @pytest.mark.parametrize("raw", [None, "", "   ", b""])
    def test_empty_is_default_payload(self, raw) -> None:
        payload = decode_payload(raw)
        assert payload.title is None and payload.body is None and payload.url is None

    def test_unknown_fields_ignored(self) -> None:
        assert decode_payload('{"title": "Hi", "badge": 3}').title == "Hi"

    def test_actions(self) -> None:
        payload = decode_payload('{"actions": [{"action": "reply", "title": "Reply"}]}')
        assert payload.actions is not None
        assert [(a.action, a.title) for a in payload.actions] == [("reply", "Reply")]

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[1, 2]",
            '"just a string"',
            '{"title": ["not", "a", "string"]}',
            '{"actions": "reply"}',
            b"\xff\xfe",
        ],
    )
    def test_malformed(self, raw) -> None:
        with pytest.raises(MalformedPushPayload):
            decode_payload(raw)


class TestDispatch:
    @pytest.mark.asyncio
    async def test_full_payload(self, dispatcher: NotificationDispatcher, host: ConsoleHost) -> None:
        notification = await dispatcher.dispatch('{"title":"Hi","body":"Test","url":"/x"}')

        assert notification is not None
        assert notification.title == "Hi"
        assert notification.body == "Test"
        assert notification.url == "/x"
        assert notification.data == {"url": "/x"}
        assert [a.action for a in notification.actions] == ["open", "close"]
        assert host.shown == [notification]

    @pytest.mark.asyncio
    async def test_empty_object_uses_defaults(self, dispatcher: NotificationDispatcher) -> None:
        notification = await dispatcher.dispatch("{}")

        assert notification is not None
        assert notification.title == "KNOWER LIFE"
        assert notification.body == "You have a new notification"
        assert notification.url == "/"
        assert notification.icon == "/icon-192.png"

    @pytest.mark.asyncio
    async def test_empty_strings_use_defaults(self, dispatcher: NotificationDispatcher) -> None:
        notification = await dispatcher.dispatch({"title": "", "url": ""})
        assert notification is not None
        assert notification.title == "KNOWER LIFE"
        assert notification.url == "/"

    @pytest.mark.asyncio
    async def test_custom_defaults(self, host: ConsoleHost) -> None:
        dispatcher = NotificationDispatcher(
            NotificationDefaults(title="App", body="Ping", url="/inbox", icon="/i.png"), host
        )
        notification = await dispatcher.dispatch(None)
        assert notification is not None
        assert (notification.title, notification.url, notification.icon) == ("App", "/inbox", "/i.png")

    @pytest.mark.asyncio
    async def test_payload_actions_follow_open_and_close(
        self, dispatcher: NotificationDispatcher
    ) -> None:
        notification = await dispatcher.dispatch(
            {
                "title": "Hi",
                "actions": [
                    {"action": "reply", "title": "Reply"},
                    {"action": "open", "title": "Show"},
                    {"action": "archive", "title": "Archive"},
                ],
            }
        )

        assert notification is not None
        assert [(a.action, a.title) for a in notification.actions] == [
            ("open", "Open"),
            ("close", "Close"),
            ("reply", "Reply"),
            ("archive", "Archive"),
        ]

    @pytest.mark.asyncio
    async def test_malformed_payload_is_dropped(
        self, dispatcher: NotificationDispatcher, host: ConsoleHost
    ) -> None:
        assert await dispatcher.dispatch("{broken") is None
        assert host.shown == []


class TestHandleAction:
    @pytest.mark.asyncio
    async def test_open_navigates_to_payload_url(
        self, dispatcher: NotificationDispatcher, host: ConsoleHost
    ) -> None:
        notification = await dispatcher.dispatch('{"title":"Hi","body":"Test","url":"/x"}')
        assert notification is not None

        navigation = await dispatcher.handle_action(notification, "open")

        assert navigation is not None and navigation.url == "/x"
        assert host.navigations == [navigation]

    @pytest.mark.asyncio
    async def test_body_click_navigates(self, dispatcher: NotificationDispatcher) -> None:
        notification = await dispatcher.dispatch("{}")
        assert notification is not None
        navigation = await dispatcher.handle_action(notification)
        assert navigation is not None and navigation.url == "/"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", ["close", "snooze"])
    async def test_other_actions_do_nothing(
        self, dispatcher: NotificationDispatcher, host: ConsoleHost, action: str
    ) -> None:
        notification = await dispatcher.dispatch("{}")
        assert notification is not None
        assert await dispatcher.handle_action(notification, action) is None
        assert host.navigations == []
