"""RelaySession behaviour against a fake provider, client and store."""
import asyncio
from contextlib import asynccontextmanager

import pytest

from app.config.settings import settings
from app.models.translation_session import SessionStatus
from app.services.exceptions import PersistenceFailure
from app.services.session import RelaySession
from app.services.translation import TranslationBridge

from tests.helpers import FakeClientChannel, FakeConnector, FakeWebSocket, wait_until


@pytest.fixture
def make_relay(store, manager, translation_logger, chunk_recorder, bridge_factory):
    def _make(channel, **kwargs):
        kwargs.setdefault("bridge_factory", bridge_factory)
        return RelaySession(
            channel,
            store=store,
            manager=manager,
            translation_logger=translation_logger,
            chunk_recorder=chunk_recorder,
            **kwargs,
        )
    return _make


@asynccontextmanager
async def running(relay):
    task = asyncio.create_task(relay.run())
    try:
        yield task
    finally:
        relay.channel.disconnect()
        await asyncio.wait_for(task, 2)


async def initialize(channel, session_id="S1"):
    channel.feed({"type": "initialize", "sessionId": session_id})
    await channel.wait_for("ai_connected")


def audio(seq, payload="AAAA"):
    return {"type": "audio_chunk", "audioData": payload, "sequenceNumber": seq}


async def test_initialize_scenario(store, connector, channel, make_relay):
    store.add("S1", source_language="en", target_language="es")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)

        assert channel.types()[:3] == ["connected", "initialized", "ai_connected"]
        assert channel.events("initialized")[0] == {
            "type": "initialized",
            "sessionId": "S1",
            "status": "connecting",
        }
        session = store.sessions["S1"]
        assert session.status == "active"
        assert session.audio_processing_active is True
        assert session.started_at is not None
        assert session.error_message is None

    assert store.status_updates("S1") == ["connecting", "active", "disconnected"]
    assert connector.latest.closed


async def test_handshake_uses_session_configuration(store, connector, channel, make_relay):
    store.add("S1", source_language="en", target_language="fr", voice_id="verse")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)

    url, headers = connector.calls[0]
    assert url == settings.realtime_endpoint
    assert headers["Authorization"] == "Bearer test-key"
    assert headers["OpenAI-Beta"] == "realtime=v1"

    handshake = connector.latest.sent[0]
    assert handshake["type"] == "session.update"
    config = handshake["session"]
    assert config["voice"] == "verse"
    assert config["modalities"] == ["text", "audio"]
    assert config["input_audio_format"] == "pcm16"
    assert config["output_audio_format"] == "pcm16"
    assert config["input_audio_transcription"] == {"model": "whisper-1"}
    assert config["turn_detection"]["type"] == "server_vad"
    assert config["turn_detection"]["threshold"] == 0.5
    assert config["turn_detection"]["prefix_padding_ms"] == 300
    assert config["turn_detection"]["silence_duration_ms"] == 1000
    assert "from English to French" in config["instructions"]


async def test_audio_before_initialize_is_rejected(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        channel.feed(audio(1))
        error = await channel.wait_for("error")

    assert error["code"] == "not_initialized"
    assert connector.calls == []
    assert len(relay.queue) == 0


async def test_frames_forwarded_in_order_exactly_once(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        for seq in range(20):
            channel.feed(audio(seq, payload=f"frame-{seq}"))

        upstream = connector.latest
        await wait_until(lambda: len(upstream.sent_of_type("input_audio_buffer.append")) == 20)
        await asyncio.sleep(0.05)

    appended = upstream.sent_of_type("input_audio_buffer.append")
    assert [event["audio"] for event in appended] == [f"frame-{seq}" for seq in range(20)]
    assert "error" not in channel.types()


async def test_missing_sequence_numbers_are_assigned(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        channel.feed({"type": "audio_chunk", "audioData": "AAAA"})
        channel.feed({"type": "audio_chunk", "audioData": "BBBB"})
        upstream = connector.latest
        await wait_until(lambda: len(upstream.sent_of_type("input_audio_buffer.append")) == 2)

    appended = upstream.sent_of_type("input_audio_buffer.append")
    assert [event["audio"] for event in appended] == ["AAAA", "BBBB"]
    assert "error" not in channel.types()


async def test_out_of_order_frame_is_rejected(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        channel.feed(audio(5))
        channel.feed(audio(3))
        error = await channel.wait_for("error")

    assert error["code"] == "out_of_order"


async def test_repeated_frame_is_forwarded_once(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        channel.feed(audio(1, payload="first"))
        channel.feed(audio(1, payload="resent"))
        error = await channel.wait_for("error")
        upstream = connector.latest
        await wait_until(lambda: len(upstream.sent_of_type("input_audio_buffer.append")) == 1)
        await asyncio.sleep(0.05)

    assert error["code"] == "out_of_order"
    appended = upstream.sent_of_type("input_audio_buffer.append")
    assert [event["audio"] for event in appended] == ["first"]


async def test_forwarded_frames_are_stored(store, connector, channel, make_relay, chunk_recorder):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        channel.feed({"type": "audio_chunk", "audioData": "AAAA", "sequenceNumber": 0, "durationMs": 20})
        channel.feed(audio(1, payload="BBBB"))
        await wait_until(lambda: len(store.chunks) == 2)

    await chunk_recorder.flush()
    assert [(c.chunk_sequence, c.audio_data) for c in store.chunks] == [(0, "AAAA"), (1, "BBBB")]
    assert store.chunks[0].duration_ms == 20
    assert all(c.session_id == "S1" for c in store.chunks)


async def test_chunk_storage_failure_is_silent(store, connector, channel, make_relay):
    store.add("S1")
    store.fail_chunks = True
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        channel.feed(audio(0))
        upstream = connector.latest
        await wait_until(lambda: len(upstream.sent_of_type("input_audio_buffer.append")) == 1)
        await asyncio.sleep(0.02)

    assert "error" not in channel.types()


async def test_translated_audio_is_relayed_verbatim(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        connector.latest.push({"type": "response.audio.delta", "delta": "QUJD"})
        event = await channel.wait_for("translated_audio_delta")

    assert event == {"type": "translated_audio_delta", "audio": "QUJD"}


async def test_unknown_upstream_event_is_relayed_as_ai_event(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)
    raw = {"type": "rate_limits.updated", "rate_limits": [{"name": "tokens", "remaining": 10}]}

    async with running(relay):
        await initialize(channel)
        connector.latest.push(raw)
        event = await channel.wait_for("ai_event")

    assert event == {"type": "ai_event", "event": raw}
    assert store.sessions["S1"].status == "disconnected"


async def test_upstream_error_marks_session_error(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        upstream = connector.latest
        upstream.push({"type": "error", "error": {"type": "rate_limit_error", "message": "rate limited"}})
        event = await channel.wait_for("translation_error")

        assert event == {"type": "translation_error", "error": "rate limited"}
        session = store.sessions["S1"]
        assert session.status == "error"
        assert session.error_message == "rate limited"
        assert session.audio_processing_active is False
        await wait_until(lambda: upstream.closed)

    # Cleanup keeps the terminal error status
    session = store.sessions["S1"]
    assert session.status == "error"
    assert session.ended_at is not None


async def test_error_without_message_uses_default_text(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        connector.latest.push({"type": "error"})
        event = await channel.wait_for("translation_error")

    assert event["error"] == "Translation error"


async def test_unexpected_upstream_close_is_fatal(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        connector.latest.drop()
        event = await channel.wait_for("translation_error")

    assert event["error"] == "Upstream connection closed"
    assert store.sessions["S1"].status == "error"


async def test_audio_after_upstream_failure_is_rejected(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        connector.latest.push({"type": "error", "error": {"message": "rate limited"}})
        await channel.wait_for("translation_error")
        await wait_until(lambda: relay.status == SessionStatus.ERROR)

        channel.feed(audio(5))
        error = await channel.wait_for("error")

        assert error["code"] == "upstream_unavailable"
        assert len(relay.queue) == 0


async def test_store_failure_while_marking_error_keeps_connection(store, connector, channel, make_relay, monkeypatch):
    store.add("S1")
    relay = make_relay(channel)
    update = store.update

    async def failing_update(session_id, **fields):
        if fields.get("status") == SessionStatus.ERROR:
            raise PersistenceFailure("Failed to update session: database is locked")
        return await update(session_id, **fields)

    monkeypatch.setattr(store, "update", failing_update)

    async with running(relay) as task:
        await initialize(channel)
        connector.latest.drop()
        await channel.wait_for("translation_error")
        await wait_until(lambda: relay.status == SessionStatus.ERROR)

        # The ingest socket is still served
        channel.feed(audio(1))
        error = await channel.wait_for("error")

        assert not task.done()
        assert error["code"] == "upstream_unavailable"
        assert connector.latest.closed


async def test_dial_failure(store, channel, make_relay):
    store.add("S1")
    connector = FakeConnector(fail_with=OSError("connection refused"))

    def factory(session_id, config, sink):
        return TranslationBridge(session_id, config, sink, connector=connector, api_key="test-key")

    relay = make_relay(channel, bridge_factory=factory)

    async with running(relay):
        channel.feed({"type": "initialize", "sessionId": "S1"})
        event = await channel.wait_for("translation_error")

    assert "connection refused" in event["error"]
    assert "initialized" not in channel.types()
    session = store.sessions["S1"]
    assert session.status == "error"
    assert "connection refused" in session.error_message


async def test_missing_api_key(store, channel, make_relay):
    store.add("S1")
    connector = FakeConnector()

    def factory(session_id, config, sink):
        return TranslationBridge(session_id, config, sink, connector=connector, api_key="")

    relay = make_relay(channel, bridge_factory=factory)

    async with running(relay):
        channel.feed({"type": "initialize", "sessionId": "S1"})
        event = await channel.wait_for("translation_error")

    assert event["error"] == "OpenAI API key not configured"
    assert connector.calls == []


async def test_restart_after_error(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        first = connector.latest
        first.push({"type": "error", "error": {"message": "rate limited"}})
        await channel.wait_for("translation_error")
        assert store.sessions["S1"].status == "error"

        channel.feed({"type": "restart"})
        restarted = await channel.wait_for("session_restarted")
        await channel.wait_for("ai_connected", count=2)

        assert restarted == {"type": "session_restarted", "sessionId": "S1", "status": "connecting"}
        session = store.sessions["S1"]
        assert session.status == "active"
        assert session.error_message is None
        assert session.ended_at is None
        assert len(connector.upstreams) == 2
        assert first.closed
        assert relay.bridge is not None and relay.bridge.is_open

    assert store.status_updates("S1") == [
        "connecting", "active", "error", "connecting", "active", "disconnected",
    ]


async def test_restart_without_session_is_rejected(store, channel, make_relay):
    relay = make_relay(channel)

    async with running(relay):
        channel.feed({"type": "restart"})
        error = await channel.wait_for("error")

    assert error["code"] == "not_initialized"


async def test_stop_is_idempotent(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        channel.feed({"type": "stop"})
        await channel.wait_for("session_stopped")
        channel.feed({"type": "stop"})
        stopped = await channel.wait_for("session_stopped", count=2)

        assert stopped == {"type": "session_stopped", "message": "Translation session ended"}
        assert connector.latest.close_count == 1

    # The ingest close after the stops must not write again
    assert store.status_updates("S1").count("disconnected") == 1
    ended_writes = [
        fields for sid, fields in store.updates
        if sid == "S1" and fields.get("ended_at") is not None
    ]
    assert len(ended_writes) == 1
    session = store.sessions["S1"]
    assert session.audio_processing_active is False


async def test_audio_after_stop_needs_initialize(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        assert relay.is_initialized
        channel.feed({"type": "stop"})
        await channel.wait_for("session_stopped")
        assert not relay.is_initialized
        channel.feed(audio(1))
        error = await channel.wait_for("error")

    assert error["code"] == "not_initialized"


async def test_update_languages_while_active(store, connector, channel, make_relay):
    store.add("S1", source_language="en", target_language="es")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        channel.feed({"type": "update_languages", "sourceLanguage": "en", "targetLanguage": "fr"})
        event = await channel.wait_for("languages_updated")

    assert event == {"type": "languages_updated", "sourceLanguage": "en", "targetLanguage": "fr"}
    session = store.sessions["S1"]
    assert (session.source_language, session.target_language) == ("en", "fr")

    updates = connector.latest.sent_of_type("session.update")
    assert len(updates) == 2
    assert "from English to French" in updates[-1]["session"]["instructions"]
    assert len(connector.calls) == 1


async def test_update_languages_while_connecting_only_updates_store(store, channel, make_relay):
    store.add("S1", source_language="en", target_language="es")
    connector = FakeConnector(auto_session_created=False)

    def factory(session_id, config, sink):
        return TranslationBridge(session_id, config, sink, connector=connector, api_key="test-key")

    relay = make_relay(channel, bridge_factory=factory)

    async with running(relay):
        channel.feed({"type": "initialize", "sessionId": "S1"})
        await channel.wait_for("initialized")
        channel.feed({"type": "update_languages", "sourceLanguage": "de", "targetLanguage": "it"})
        await channel.wait_for("languages_updated")

        assert store.sessions["S1"].status == "connecting"

    assert len(connector.latest.sent_of_type("session.update")) == 1
    session = store.sessions["S1"]
    assert (session.source_language, session.target_language) == ("de", "it")


async def test_update_voice_while_active(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        channel.feed({"type": "update_voice", "voiceId": "shimmer"})
        event = await channel.wait_for("voice_updated")

    assert event == {"type": "voice_updated", "voiceId": "shimmer"}
    assert store.sessions["S1"].voice_id == "shimmer"
    assert connector.latest.sent_of_type("session.update")[-1] == {
        "type": "session.update",
        "session": {"voice": "shimmer"},
    }


async def test_text_message_sends_a_turn(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        channel.feed({"type": "text_message", "text": "Good morning everyone"})
        upstream = connector.latest
        await wait_until(lambda: len(upstream.sent_of_type("response.create")) == 1)

    item = upstream.sent_of_type("conversation.item.create")[0]["item"]
    assert item["role"] == "user"
    assert item["content"] == [{"type": "input_text", "text": "Good morning everyone"}]
    assert [event["type"] for event in upstream.sent[-2:]] == ["conversation.item.create", "response.create"]


async def test_text_message_before_initialize(store, channel, make_relay):
    relay = make_relay(channel)

    async with running(relay):
        channel.feed({"type": "text_message", "text": "hello"})
        error = await channel.wait_for("error")

    assert error["code"] == "not_initialized"


async def test_malformed_messages_keep_connection_open(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        channel.feed("not json")
        channel.feed({"type": "dance"})
        channel.feed({"type": "audio_chunk"})
        await channel.wait_for("error", count=3)
        await initialize(channel)

    messages = [event["message"] for event in channel.events("error")]
    assert messages[0] == "Invalid JSON message"
    assert messages[1] == "Unknown message type: dance"
    assert messages[2].startswith("Invalid audio_chunk message")
    assert all(event["code"] == "malformed_message" for event in channel.events("error"))


async def test_unknown_session(store, connector, channel, make_relay):
    relay = make_relay(channel)

    async with running(relay):
        channel.feed({"type": "initialize", "sessionId": "missing"})
        error = await channel.wait_for("error")

    assert error["code"] == "session_not_found"
    assert connector.calls == []


async def test_bot_session_id_alias(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        channel.feed({"type": "initialize", "botSessionId": "S1"})
        await channel.wait_for("ai_connected")

    assert relay.session_id == "S1"


async def test_second_initialize_is_rejected(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        channel.feed({"type": "initialize", "sessionId": "S1"})
        error = await channel.wait_for("error")

    assert error["code"] == "session_busy"
    assert len(connector.calls) == 1


async def test_one_relay_per_session(store, connector, manager, make_relay):
    store.add("S1")
    first_channel = FakeClientChannel()
    second_channel = FakeClientChannel()
    first = make_relay(first_channel)
    second = make_relay(second_channel)

    async with running(first), running(second):
        await initialize(first_channel)
        second_channel.feed({"type": "initialize", "sessionId": "S1"})
        error = await second_channel.wait_for("error")

        assert error["code"] == "session_busy"
        assert manager.get_relay("S1") is first
        assert len(connector.calls) == 1

    assert manager.get_relay("S1") is None


async def test_completed_utterance_is_logged(store, connector, channel, make_relay, translation_logger):
    store.add("S1", source_language="en", target_language="es")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        upstream = connector.latest
        for event in (
            {"type": "input_audio_buffer.speech_started"},
            {"type": "input_audio_buffer.speech_stopped"},
            {"type": "conversation.item.input_audio_transcription.completed", "transcript": "Good morning"},
            {"type": "response.audio_transcript.delta", "delta": "Buenos "},
            {"type": "response.audio_transcript.delta", "delta": "días"},
            {"type": "response.audio_transcript.done", "transcript": "Buenos días"},
            {"type": "response.audio.done"},
        ):
            upstream.push(event)
        await channel.wait_for("translation_complete")
        await translation_logger.flush()

    assert [event["text"] for event in channel.events("transcript_delta")] == ["Buenos ", "días"]
    assert len(store.logs) == 1
    log = store.logs[0]
    assert log.session_id == "S1"
    assert log.source_text == "Good morning"
    assert log.translated_text == "Buenos días"
    assert (log.source_language, log.target_language) == ("en", "es")
    assert log.confidence_score == 0.95
    assert log.model_used == settings.OPENAI_REALTIME_MODEL


async def test_stale_bridge_events_are_ignored(store, connector, channel, make_relay):
    store.add("S1")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        old_bridge = relay.bridge
        channel.feed({"type": "restart"})
        await channel.wait_for("ai_connected", count=2)

        await relay.on_upstream_error(old_bridge, "late failure")
        await relay.on_relay_event(old_bridge, None)

        assert store.sessions["S1"].status == "active"
        assert "translation_error" not in channel.types()


async def test_events_fan_out_to_listeners(store, connector, channel, manager, make_relay):
    store.add("S1")
    listener_socket = FakeWebSocket()
    await manager.connect_listener(listener_socket, "S1")
    relay = make_relay(channel)

    async with running(relay):
        await initialize(channel)
        connector.latest.push({"type": "response.audio.delta", "delta": "QUJD"})
        await channel.wait_for("translated_audio_delta")

    listener_types = [event["type"] for event in listener_socket.sent]
    assert "connected" not in listener_types
    assert "initialized" not in listener_types
    assert listener_types[:2] == ["ai_connected", "translated_audio_delta"]
    assert listener_socket.sent[1] == {"type": "translated_audio_delta", "audio": "QUJD"}
