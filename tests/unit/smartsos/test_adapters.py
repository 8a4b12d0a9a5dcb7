"""
Tests for the external collaborator adapters.

HTTP adapters get a fake requests session, so no network traffic is made.
"""

from __future__ import annotations

from typing import Any

import pytest
import requests
from pydantic import ValidationError

from smartsos.adapters import (
    InMemoryProfileStore,
    LoggedSpeechOutput,
    NominatimGeocoder,
    TelegramRelay,
    demo_profile,
)


class _FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload

    def raise_for_status(self) -> None:
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} Error")


class _FakeSession:
    """Records calls and replays one response or raises one error."""

    def __init__(self, response: _FakeResponse | None = None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def _reply(self, method: str, url: str, **kwargs: Any) -> _FakeResponse:
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        assert self.response is not None
        return self.response

    def post(self, url: str, **kwargs: Any) -> _FakeResponse:
        return self._reply("POST", url, **kwargs)

    def get(self, url: str, **kwargs: Any) -> _FakeResponse:
        return self._reply("GET", url, **kwargs)


class TestTelegramRelay:
    async def test_send_posts_markdown_message(self):
        session = _FakeSession(_FakeResponse({"ok": True}))
        relay = TelegramRelay("https://api.telegram.org/", session=session)  # type: ignore[arg-type]

        assert await relay.send("123:ABC", "42", "*hello*") is True

        method, url, kwargs = session.calls[0]
        assert method == "POST"
        assert url == "https://api.telegram.org/bot123:ABC/sendMessage"
        assert kwargs["json"] == {"chat_id": "42", "text": "*hello*", "parse_mode": "Markdown"}

    async def test_rejected_by_api(self):
        session = _FakeSession(
            _FakeResponse({"ok": False, "description": "Unauthorized"}, status_code=401)
        )
        relay = TelegramRelay(session=session)  # type: ignore[arg-type]

        assert await relay.send("bad", "42", "hi") is False

    async def test_network_error(self):
        session = _FakeSession(error=requests.ConnectionError("down"))
        relay = TelegramRelay(session=session)  # type: ignore[arg-type]

        assert await relay.send("123:ABC", "42", "hi") is False

    async def test_unreadable_response(self):
        session = _FakeSession(_FakeResponse(None, status_code=502))
        relay = TelegramRelay(session=session)  # type: ignore[arg-type]

        assert await relay.send("123:ABC", "42", "hi") is False


class TestNominatimGeocoder:
    async def test_street_and_city(self):
        payload = {
            "display_name": "Main Street, Downtown, Springfield, USA",
            "address": {"city": "Springfield"},
        }
        session = _FakeSession(_FakeResponse(payload))
        geocoder = NominatimGeocoder(user_agent="test-agent", session=session)  # type: ignore[arg-type]

        result = await geocoder.reverse(34.05, -118.24)

        assert result.unwrap() == "Main Street, Springfield"
        _, _, kwargs = session.calls[0]
        assert kwargs["params"] == {"format": "json", "lat": 34.05, "lon": -118.24}
        assert kwargs["headers"] == {"User-Agent": "test-agent"}

    async def test_town_fallback_and_street_only(self):
        town = _FakeSession(
            _FakeResponse({"display_name": "Elm Road, Smallville", "address": {"town": "Smallville"}})
        )
        assert (await NominatimGeocoder(session=town).reverse(1, 2)).unwrap() == (  # type: ignore[arg-type]
            "Elm Road, Smallville"
        )

        bare = _FakeSession(_FakeResponse({"display_name": "Ocean View Point"}))
        assert (await NominatimGeocoder(session=bare).reverse(1, 2)).unwrap() == (  # type: ignore[arg-type]
            "Ocean View Point"
        )

    @pytest.mark.parametrize(
        "session",
        [
            _FakeSession(error=requests.Timeout("slow")),
            _FakeSession(_FakeResponse({"error": "Unable to geocode"})),
            _FakeSession(_FakeResponse(None, status_code=500)),
        ],
    )
    async def test_failures_are_results(self, session: _FakeSession):
        result = await NominatimGeocoder(session=session).reverse(0, 0)  # type: ignore[arg-type]
        assert result.is_err()


class TestProfileStore:
    def test_demo_user_signed_in(self):
        store = InMemoryProfileStore.with_demo_user()
        user = store.current_user()

        assert user is not None
        assert user.name == "Margaret Thompson"
        assert [m.scheduled_time for m in user.medications] == ["08:00", "12:00", "21:00"]

    def test_update_user_is_copy_on_write(self):
        store = InMemoryProfileStore.with_demo_user()
        before = store.current_user()

        updated = store.update_user("user_demo_1", {"telegram_chat_id": "42"})

        assert updated.telegram_chat_id == "42"
        assert store.current_user() is updated
        assert before.telegram_chat_id == ""

    def test_update_user_validates(self):
        store = InMemoryProfileStore.with_demo_user()

        with pytest.raises(ValidationError):
            store.update_user("user_demo_1", {"age": -5})
        assert store.current_user().age == 72

    def test_update_unknown_user(self):
        with pytest.raises(KeyError):
            InMemoryProfileStore([demo_profile()]).update_user("nobody", {"name": "x"})

    def test_logout(self):
        store = InMemoryProfileStore.with_demo_user()
        store.logout()
        assert store.current_user() is None


class TestLoggedSpeechOutput:
    def test_speak_replaces_current(self):
        speech = LoggedSpeechOutput(history_size=2)
        speech.speak("one")
        speech.speak("two")
        speech.speak("three")

        assert speech.current == "three"
        assert list(speech.spoken) == ["two", "three"]

        speech.cancel()
        assert speech.current is None
