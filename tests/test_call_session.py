from __future__ import annotations

import asyncio
import json

from calls.session import CallSession, SessionState
from fakes import FakeChannel, FakeLLMClient, response_frames, spoken_text
from llm.stream import APOLOGY_TEXT, EMPTY_RESPONSE_TEXT, StreamAdapter

TRANSCRIPT = [
    {"role": "agent", "content": "Hi, this is the front desk."},
    {"role": "user", "content": "Can I book a table for two?"},
]

DELTAS = ["Hello there, ", "how are you ", "doing today? ", "I hope **well**."]


def _frame(interaction_type: str, **extra) -> str:
    return json.dumps({"interaction_type": interaction_type, **extra})


def _session(client: FakeLLMClient, channel: FakeChannel, **kwargs) -> CallSession:
    adapter = StreamAdapter(client, system_prompt="SYS")
    return CallSession("call-1", channel, adapter, **kwargs)


def _play(session: CallSession, *frames: str) -> None:
    async def scenario():
        await session.start()
        for frame in frames:
            await session.handle_frame(frame)
        await session.drain()

    asyncio.run(scenario())


def test_ping_is_echoed_with_timestamp():
    channel = FakeChannel()
    session = _session(FakeLLMClient(), channel)

    _play(session, _frame("ping_pong", response_id=42), _frame("ping_pong"))

    assert channel.frames == [
        {"response_type": "pong", "timestamp": 42},
        {"response_type": "pong"},
    ]
    assert session.state is SessionState.AWAITING_MESSAGE


def test_update_only_syncs_without_sending():
    channel = FakeChannel()
    session = _session(FakeLLMClient(), channel)

    _play(session, _frame("update_only", transcript=TRANSCRIPT))

    assert channel.sent == []
    assert session.metadata().message_count == 2


def test_replaying_a_snapshot_leaves_log_unchanged():
    channel = FakeChannel()
    session = _session(FakeLLMClient(), channel)

    _play(session, _frame("update_only", transcript=TRANSCRIPT))
    first = [message.model_dump() for message in session.conversation.messages()]
    _play(session, _frame("update_only", transcript=TRANSCRIPT))

    assert [message.model_dump() for message in session.conversation.messages()] == first


def test_response_required_streams_correlated_chunks():
    channel = FakeChannel()
    client = FakeLLMClient(DELTAS)
    session = _session(client, channel)

    _play(session, _frame("response_required", transcript=TRANSCRIPT, response_id=7))

    frames = response_frames(channel)
    assert {frame["response_id"] for frame in frames} == {1}
    assert [frame["content_complete"] for frame in frames].count(True) == 1
    assert frames[-1] == {
        "response_id": 1,
        "content": "",
        "content_complete": True,
        "end_call": False,
    }
    assert not any(frame["end_call"] for frame in frames)
    assert len(frames) > 2
    assert spoken_text(frames) == "Hello there, how are you doing today? I hope well."

    # The LLM saw the synced transcript in chronological order.
    messages, system_prompt = client.requests[0]
    assert system_prompt == "SYS"
    assert messages == [
        {"role": "assistant", "content": "Hi, this is the front desk."},
        {"role": "user", "content": "Can I book a table for two?"},
    ]

    history = session.conversation.llm_messages()
    assert history[-1] == {"role": "assistant", "content": "".join(DELTAS)}
    assert session.response_counter == 1
    assert session.state is SessionState.AWAITING_MESSAGE


def test_chunks_wait_for_threshold():
    channel = FakeChannel()
    session = _session(FakeLLMClient(["a" * 5] * 8), channel, chunk_size=20)

    _play(session, _frame("response_required", transcript=TRANSCRIPT))

    contents = [frame["content"] for frame in response_frames(channel)]
    assert contents == ["a" * 20, "a" * 20, ""]


def test_remaining_buffer_is_flushed_before_terminal():
    channel = FakeChannel()
    session = _session(FakeLLMClient(["Short reply."]), channel)

    _play(session, _frame("reminder_required", transcript=TRANSCRIPT))

    assert response_frames(channel) == [
        {"response_id": 1, "content": "Short reply.", "content_complete": False, "end_call": False},
        {"response_id": 1, "content": "", "content_complete": True, "end_call": False},
    ]


def test_upstream_failure_sends_single_apology_frame():
    channel = FakeChannel()
    session = _session(FakeLLMClient([], fail_after=0), channel)

    _play(session, _frame("response_required", transcript=TRANSCRIPT))

    assert response_frames(channel) == [
        {"response_id": 1, "content": APOLOGY_TEXT, "content_complete": True, "end_call": False}
    ]
    assert session.conversation.llm_messages()[-1] == {"role": "assistant", "content": APOLOGY_TEXT}


def test_unspeakable_reply_is_replaced_with_fallback():
    channel = FakeChannel()
    session = _session(FakeLLMClient(["```python\nprint('hi')\n```"]), channel)

    _play(session, _frame("response_required", transcript=TRANSCRIPT))

    assert response_frames(channel) == [
        {
            "response_id": 1,
            "content": EMPTY_RESPONSE_TEXT,
            "content_complete": True,
            "end_call": False,
        }
    ]
    assert session.conversation.llm_messages()[-1] == {
        "role": "assistant",
        "content": EMPTY_RESPONSE_TEXT,
    }


def test_response_ids_increase_per_generation():
    channel = FakeChannel()
    session = _session(FakeLLMClient(DELTAS), channel)

    _play(
        session,
        _frame("response_required", transcript=TRANSCRIPT),
        _frame("response_required", transcript=TRANSCRIPT),
    )

    ids = [frame["response_id"] for frame in response_frames(channel)]
    assert ids == sorted(ids)
    assert set(ids) == {1, 2}
    for response_id in (1, 2):
        frames = response_frames(channel, response_id)
        assert [frame["content_complete"] for frame in frames].count(True) == 1
        assert frames[-1]["content_complete"] is True


def test_ping_during_generation_is_answered_immediately():
    channel = FakeChannel()
    session = _session(FakeLLMClient(DELTAS), channel)

    _play(
        session,
        _frame("response_required", transcript=TRANSCRIPT),
        _frame("ping_pong", response_id=3),
    )

    assert channel.frames[0] == {"response_type": "pong", "timestamp": 3}
    assert response_frames(channel)[-1]["content_complete"] is True


def test_malformed_frames_are_dropped():
    channel = FakeChannel()
    session = _session(FakeLLMClient(DELTAS), channel)

    _play(session, "not json", json.dumps({"transcript": []}), _frame("call_details"))

    assert channel.sent == []
    assert session.state is SessionState.AWAITING_MESSAGE


def test_send_failures_do_not_raise():
    channel = FakeChannel(fail=True)
    session = _session(FakeLLMClient(DELTAS), channel)

    _play(
        session,
        _frame("ping_pong", response_id=1),
        _frame("response_required", transcript=TRANSCRIPT),
    )

    assert session.state is SessionState.AWAITING_MESSAGE
    assert session.conversation.llm_messages()[-1]["role"] == "assistant"


def test_end_call_reuses_last_response_id():
    channel = FakeChannel()
    session = _session(FakeLLMClient(DELTAS), channel, farewell_message="Bye now!")

    _play(session, _frame("response_required", transcript=TRANSCRIPT))
    asyncio.run(session.end_call())

    assert channel.frames[-1] == {
        "response_id": 1,
        "content": "Bye now!",
        "content_complete": True,
        "end_call": True,
    }
    assert session.state is SessionState.CLOSED

    before = len(channel.sent)
    _play(session, _frame("ping_pong", response_id=9))
    assert len(channel.sent) == before


def test_begin_message_is_sent_on_start():
    channel = FakeChannel()
    session = _session(FakeLLMClient(), channel, begin_message="Hi! How can I **help**?")

    _play(session)

    assert channel.frames == [
        {"response_id": 0, "content": "Hi! How can I help?", "content_complete": True, "end_call": False}
    ]
    assert session.conversation.llm_messages() == [
        {"role": "assistant", "content": "Hi! How can I **help**?"}
    ]


def test_aclose_releases_client():
    client = FakeLLMClient()
    session = _session(client, FakeChannel())

    asyncio.run(session.aclose())

    assert session.state is SessionState.CLOSED
    assert client.closed
