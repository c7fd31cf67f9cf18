from datetime import datetime

import httpx
import pytest

from souschef_voice.config.settings import Settings
from souschef_voice.services.api import SousChefAPI
from souschef_voice.services.schemas import StartedTimer
from souschef_voice.state.app_state import AppState, ChatMessage, to_epoch_seconds


def test_started_at_formats() -> None:
    expected = datetime(2024, 5, 1, 18, 30, 0).timestamp()
    assert to_epoch_seconds(1_714_584_600_000) == 1_714_584_600.0
    assert to_epoch_seconds([2024, 5, 1, 18, 30, 0, 500_000_000]) == expected + 0.5
    assert to_epoch_seconds("2024-05-01 18:30:00") == expected
    assert to_epoch_seconds("2024-05-01T18:30:00") == expected
    assert to_epoch_seconds("garbage", default=42.0) == 42.0
    assert to_epoch_seconds(None, default=7.0) == 7.0


def test_find_message() -> None:
    state = AppState()
    entry = state.add_message(ChatMessage(role="assistant", content="Hi"))
    state.system("note")
    assert state.find_message(entry.id) is entry
    assert state.find_message("missing") is None


@pytest.mark.asyncio
async def test_refresh_merges_local_timers_with_backend_list() -> None:
    sessions: list[dict] = [{"sessionId": 3, "recipe": "Pasta", "activeTimers": []}]
    api = SousChefAPI(
        Settings(base_url="http://test"),
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json=sessions)),
    )
    state = AppState()
    state.add_timer(StartedTimer(id="local-boil", label="boil", duration_seconds=600, started_at=0.0, session_id=3))
    state.add_timer(StartedTimer(id="egg", label="egg", duration_seconds=60, started_at=0.0))

    assert await state.refresh_sessions(api)
    assert [t.id for t in state.timers] == ["local-boil", "egg"]

    sessions[0]["activeTimers"] = [{"id": 9, "label": "boil", "durationSeconds": 600, "startedAt": 1_000}]
    await state.refresh_sessions(api)
    assert [t.id for t in state.timers] == ["egg", "9"]

    sessions[0]["activeTimers"] = []
    await state.refresh_sessions(api)
    assert [t.id for t in state.timers] == ["egg"]
    await api.close()
