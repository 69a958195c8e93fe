"""Tests for ChatSession."""
import asyncio
from unittest.mock import AsyncMock

import pytest

from clipcoach.errors import ChatBusyError, ChatPreconditionError, ServiceError
from clipcoach.models import AnalysisRecord, AnalysisStatus, ChatMessage, ChatRole
from clipcoach.orchestrator.chat import ChatSession
from clipcoach.orchestrator.store import AnalysisStore
from clipcoach.utils.events import CHAT_FAILED, CHAT_MESSAGE, EventEmitter

ANALYSIS = {"hook": {"score": 6, "notes": "Slow open"}}


def _record(analysis_data=ANALYSIS, history=()) -> AnalysisRecord:
    return AnalysisRecord(
        id="rec-1",
        file_name="clip.mp4",
        file_size=100,
        status=AnalysisStatus.COMPLETED,
        analysis_data=analysis_data,
        chat_history=tuple(history),
    )


def _build(record=None):
    backend = AsyncMock()
    backend.send_chat_turn.return_value = "At 0:03."
    store = AnalysisStore(record if record is not None else _record())
    events = EventEmitter()
    recorded = {CHAT_MESSAGE: [], CHAT_FAILED: []}
    for name, bucket in recorded.items():
        events.on(name, bucket.append)
    return ChatSession(backend, store, events), backend, store, recorded


@pytest.mark.asyncio
async def test_successful_turn_appends_and_persists():
    session, backend, store, recorded = _build()

    result = await session.send("  Where is the hook?  ")

    assert result.success is True
    assert result.reply == "At 0:03."
    history = store.record.chat_history
    assert [(m.role, m.message) for m in history] == [
        (ChatRole.USER, "Where is the hook?"),
        (ChatRole.ASSISTANT, "At 0:03."),
    ]
    backend.persist_history.assert_awaited_once_with("rec-1", history)
    assert [m.message for m in recorded[CHAT_MESSAGE]] == ["Where is the hook?", "At 0:03."]
    assert recorded[CHAT_FAILED] == []
    assert session.is_loading is False


@pytest.mark.asyncio
async def test_user_message_visible_before_dispatch():
    session, backend, store, _ = _build()
    seen = []

    async def reply(record_id, message, analysis_data, history):
        seen.append([m.message for m in store.record.chat_history])
        return "At 0:03."

    backend.send_chat_turn.side_effect = reply

    await session.send("Where is the hook?")

    assert seen == [["Where is the hook?"]]
    _, _, _, history = backend.send_chat_turn.await_args.args
    assert history == [store.record.chat_history[0].to_dict()]


@pytest.mark.asyncio
async def test_failed_turn_keeps_user_message_only():
    session, backend, store, recorded = _build()
    backend.send_chat_turn.side_effect = ServiceError("Rate limited")

    result = await session.send("Where is the hook?")

    assert result.success is False
    assert result.error == "Rate limited"
    assert [m.role for m in store.record.chat_history] == [ChatRole.USER]
    backend.persist_history.assert_not_awaited()
    assert len(recorded[CHAT_FAILED]) == 1
    assert recorded[CHAT_FAILED][0].destructive is True


@pytest.mark.asyncio
async def test_failed_turn_without_message_uses_generic_text():
    session, backend, _, _ = _build()
    backend.send_chat_turn.side_effect = RuntimeError()

    result = await session.send("hi")

    assert result.error == "Failed to send message"


@pytest.mark.asyncio
async def test_next_turn_persists_full_local_history():
    session, backend, store, _ = _build()
    backend.send_chat_turn.side_effect = [ServiceError("boom"), "Try a question."]

    await session.send("first")
    result = await session.send("second")

    assert result.success is True
    record_id, persisted = backend.persist_history.await_args.args
    assert [m.message for m in persisted] == ["first", "second", "Try a question."]


@pytest.mark.asyncio
async def test_save_failure_after_reply_is_still_a_successful_turn():
    session, backend, store, recorded = _build()
    backend.persist_history.side_effect = [ServiceError("PATCH failed"), None]

    result = await session.send("Where is the hook?")

    assert result.success is True
    assert result.reply == "At 0:03."
    assert result.error == "PATCH failed"
    assert len(store.record.chat_history) == 2
    assert recorded[CHAT_FAILED] == []

    await session.send("And the ending?")

    _, persisted = backend.persist_history.await_args.args
    assert len(persisted) == 4


@pytest.mark.asyncio
async def test_empty_message_rejected():
    session, backend, store, _ = _build()

    with pytest.raises(ValueError):
        await session.send("   ")

    assert store.record.chat_history == ()
    backend.send_chat_turn.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("record", [None, _record(analysis_data=None)])
async def test_requires_loaded_analysis(record):
    backend = AsyncMock()
    session = ChatSession(backend, AnalysisStore(record))

    with pytest.raises(ChatPreconditionError):
        await session.send("hi")

    backend.send_chat_turn.assert_not_awaited()


@pytest.mark.asyncio
async def test_second_send_while_in_flight_is_rejected():
    session, backend, store, _ = _build()
    release = asyncio.Event()

    async def slow_reply(*args):
        await release.wait()
        return "done"

    backend.send_chat_turn.side_effect = slow_reply

    first = asyncio.create_task(session.send("one"))
    while not session.is_loading:
        await asyncio.sleep(0)

    with pytest.raises(ChatBusyError):
        await session.send("two")

    release.set()
    result = await first

    assert result.success is True
    assert [m.message for m in store.record.chat_history] == ["one", "done"]
    assert backend.send_chat_turn.await_count == 1


@pytest.mark.asyncio
async def test_analysis_payload_is_passed_through_untouched():
    session, backend, _, _ = _build()

    await session.send("hi")

    _, _, analysis_data, _ = backend.send_chat_turn.await_args.args
    assert analysis_data == {"hook": {"score": 6, "notes": "Slow open"}}
    assert ANALYSIS == {"hook": {"score": 6, "notes": "Slow open"}}


@pytest.mark.asyncio
async def test_history_property_reflects_store():
    earlier = ChatMessage(role=ChatRole.USER, message="old", timestamp="t0")
    session, _, _, _ = _build(_record(history=[earlier]))

    assert session.history == (earlier,)
