import pytest

from transcript_relay.conversation.tools import IntegrationSettings, parse_meeting_link
from transcript_relay.events import EventEmitter


def test_subscription_cancel_removes_only_that_handler() -> None:
    emitter = EventEmitter(("ping",))
    seen: list[str] = []
    first = emitter.subscribe("ping", lambda: seen.append("first"))
    emitter.subscribe("ping", lambda: seen.append("second"))

    first.cancel()
    first.cancel()
    emitter.emit("ping")

    assert seen == ["second"]
    assert first.active is False


def test_unknown_event_is_rejected() -> None:
    emitter = EventEmitter(("ping",))
    with pytest.raises(ValueError):
        emitter.subscribe("pong", lambda: None)


def test_failing_handler_does_not_block_others() -> None:
    emitter = EventEmitter(("ping",))
    seen: list[int] = []

    def broken() -> None:
        raise RuntimeError("handler bug")

    emitter.subscribe("ping", broken)
    emitter.subscribe("ping", lambda: seen.append(1))
    emitter.emit("ping")

    assert seen == [1]


def test_parse_meeting_link() -> None:
    assert parse_meeting_link("https://us02web.zoom.us/j/85512345678?pwd=AbC123#success") == ("85512345678", "AbC123")
    assert parse_meeting_link("https://zoom.us/wc/123456789/join") == ("123456789", "")
    assert parse_meeting_link("not a link") == ("", "")


def test_update_meeting_from_join_url_keeps_other_fields() -> None:
    integration = IntegrationSettings()
    meeting = integration.update_meeting(join_url="https://zoom.us/j/111222333?pwd=secret", user_name="")

    assert meeting.meeting_id == "111222333"
    assert meeting.passcode == "secret"
    assert meeting.user_name == "AI Assistant"
    assert integration.media_mode == "youtube"
