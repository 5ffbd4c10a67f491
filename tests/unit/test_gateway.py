# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from pathlib import Path

import pytest

from audio.wav import has_wav_header
from config import AppConfig
from conftest import FakeClock, FakeTransport, StubReplier, StubSynthesizer, StubTranscriber
from session.connection_status import ConnectionStatus
from session.gateway import SessionGateway
from session.pipeline import ReplyPipeline


def _gateway(pipeline: ReplyPipeline, transport: FakeTransport, **config) -> SessionGateway:
    return SessionGateway(
        config=AppConfig(**config),
        pipeline=pipeline,
        transport=transport,
        sleep=transport.clock.sleep,
        clock=transport.clock,
    )


def _json_texts(transport: FakeTransport) -> list[dict]:
    return [json.loads(t) for t in transport.texts if t.startswith("{")]


@pytest.mark.asyncio
async def test_end_to_end_reply_flow(stubs):
    """3 x 2048-byte chunks -> "hello" -> "hi there" -> 10000-byte WAV in 5 chunks."""
    transcriber, replier, synthesizer = stubs
    transport = FakeTransport(FakeClock())
    gateway = _gateway(ReplyPipeline(*stubs), transport)

    await gateway.on_ws_connect()
    for i in range(3):
        await gateway.on_binary_message(bytes([i]) * 2048)
    await gateway.on_text_message("done")
    await gateway.on_text_message("ready")
    await gateway.wait_idle()

    assert len(transcriber.calls[0]) == 44 + 6144
    assert replier.calls == ["hello"]
    assert synthesizer.calls == [("hi there", "alloy")]

    assert _json_texts(transport) == [
        {"type": "transcript", "text": "hello"},
        {"type": "reply", "text": "hi there"},
        {"type": "done"},
    ]
    assert [len(b) for b in transport.binary] == [2048, 2048, 2048, 2048, 1808]
    assert has_wav_header(transport.binary[0])
    # marker is the very last frame
    assert transport.sent[-1] == ("text", '{"type": "done"}', transport.sent[-1][2])

    report = gateway.last_delivery
    assert report is not None
    assert report.burst_chunks == 4
    assert report.handshake_ready is True


@pytest.mark.asyncio
async def test_empty_utterance_sends_no_audio_without_collaborators(stubs):
    transcriber, replier, synthesizer = stubs
    transport = FakeTransport()
    gateway = _gateway(ReplyPipeline(*stubs), transport)

    await gateway.on_ws_connect()
    await gateway.on_text_message("done")
    await gateway.wait_idle()

    assert _json_texts(transport) == [{"type": "no_audio"}]
    assert transcriber.calls == replier.calls == synthesizer.calls == []
    assert transport.binary == []


@pytest.mark.asyncio
async def test_second_done_is_ignored(stubs):
    transcriber, _, _ = stubs
    transport = FakeTransport()
    gateway = _gateway(ReplyPipeline(*stubs), transport, wait_for_ready=False)

    await gateway.on_ws_connect()
    await gateway.on_binary_message(b"\x01\x00" * 100)
    assert await gateway.finalize(reason="client_done") is True
    assert await gateway.finalize(reason="client_done") is False
    await gateway.on_binary_message(b"late")
    await gateway.wait_idle()

    assert len(transcriber.calls) == 1
    assert gateway.session is not None
    assert gateway.session.rejected_chunks == 1


@pytest.mark.asyncio
async def test_json_done_is_accepted(pipeline):
    transport = FakeTransport()
    gateway = _gateway(pipeline, transport, wait_for_ready=False)

    await gateway.on_ws_connect()
    await gateway.on_binary_message(b"\x01\x00" * 100)
    await gateway.on_text_message('{"type": "done"}')
    await gateway.wait_idle()

    assert _json_texts(transport)[-1] == {"type": "done"}


@pytest.mark.asyncio
async def test_unknown_text_is_echoed(pipeline):
    transport = FakeTransport()
    gateway = _gateway(pipeline, transport)

    await gateway.on_ws_connect()
    await gateway.on_text_message("ping")

    assert transport.texts == ["Echo: ping"]
    assert gateway.session is not None
    assert not gateway.session.finalized


@pytest.mark.asyncio
async def test_collaborator_failure_becomes_error_message():
    transport = FakeTransport()
    pipeline = ReplyPipeline(
        StubTranscriber(), StubReplier(error=RuntimeError("rate limited")), StubSynthesizer()
    )
    gateway = _gateway(pipeline, transport)

    await gateway.on_ws_connect()
    await gateway.on_binary_message(b"\x01\x00" * 100)
    await gateway.on_text_message("done")
    await gateway.wait_idle()

    messages = _json_texts(transport)
    assert messages == [{
        "type": "error",
        "stage": "reply",
        "reason": "RuntimeError: rate limited",
    }]
    assert transport.binary == []


@pytest.mark.asyncio
async def test_close_before_done_still_runs_pipeline_but_sends_nothing(stubs):
    transcriber, _, synthesizer = stubs
    transport = FakeTransport()
    gateway = _gateway(ReplyPipeline(*stubs), transport)

    await gateway.on_ws_connect()
    await gateway.on_binary_message(b"\x01\x00" * 100)
    await gateway.on_ws_disconnect(reason="client_disconnect")

    assert len(transcriber.calls) == 1
    assert len(synthesizer.calls) == 1
    assert transport.sent == []
    assert gateway.session is not None
    assert gateway.session.finalize_reason == "transport_closed"
    assert gateway.session.connection_status == ConnectionStatus.DOWN


@pytest.mark.asyncio
async def test_disconnect_after_done_does_not_finalize_twice(stubs):
    transcriber, _, _ = stubs
    transport = FakeTransport()
    gateway = _gateway(ReplyPipeline(*stubs), transport, wait_for_ready=False)

    await gateway.on_ws_connect()
    await gateway.on_binary_message(b"\x01\x00" * 100)
    await gateway.on_text_message("done")
    await gateway.on_ws_disconnect(reason="client_disconnect")

    assert len(transcriber.calls) == 1


@pytest.mark.asyncio
async def test_delivery_aborts_when_client_leaves_mid_reply(stubs):
    transport = FakeTransport(close_after=2)
    gateway = _gateway(ReplyPipeline(*stubs), transport, wait_for_ready=False)

    await gateway.on_ws_connect()
    await gateway.on_binary_message(b"\x01\x00" * 100)
    await gateway.on_text_message("done")
    await gateway.wait_idle()

    assert len(transport.binary) == 2
    assert {"type": "done"} not in _json_texts(transport)
    assert gateway.last_delivery is not None
    assert not gateway.last_delivery.completed


@pytest.mark.asyncio
async def test_inbound_audio_archived(tmp_path: Path, pipeline):
    transport = FakeTransport()
    gateway = _gateway(pipeline, transport, archive_dir=str(tmp_path), wait_for_ready=False)

    session = await gateway.on_ws_connect()
    await gateway.on_binary_message(b"\x01\x00" * 100)
    await gateway.on_text_message("done")
    await gateway.wait_idle()

    files = list(tmp_path.iterdir())
    assert len(files) == 1
    assert files[0].name.startswith(session.session_id)
    assert files[0].read_bytes()[44:] == b"\x01\x00" * 100


@pytest.mark.asyncio
async def test_sessions_are_independent(stubs):
    pipeline = ReplyPipeline(*stubs)
    t1, t2 = FakeTransport(), FakeTransport()
    g1 = _gateway(pipeline, t1, wait_for_ready=False)
    g2 = _gateway(pipeline, t2, wait_for_ready=False)

    await g1.on_ws_connect()
    await g2.on_ws_connect()
    await g1.on_binary_message(b"\x01\x00" * 100)
    await g1.on_text_message("done")
    await g2.on_text_message("done")
    await g1.wait_idle()

    assert _json_texts(t2) == [{"type": "no_audio"}]
    assert _json_texts(t1)[-1] == {"type": "done"}
    assert t2.binary == []
