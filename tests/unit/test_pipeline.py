# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from adapters.tts.base import SynthesizedAudio
from audio.wav import WavFormat, has_wav_header, parse_wav_header, wrap_pcm_as_wav
from conftest import StubReplier, StubSynthesizer, StubTranscriber
from session.pipeline import ReplyError, ReplyPipeline, ReplyStage


@pytest.mark.asyncio
async def test_happy_path_produces_headered_reply(stubs):
    transcriber, replier, synthesizer = stubs
    pipeline = ReplyPipeline(transcriber, replier, synthesizer, voice="alloy")

    result = await pipeline.run(b"\x01\x00" * 3072, session_id="s1")

    assert result.transcript == "hello"
    assert result.reply_text == "hi there"
    assert len(result.wav_bytes) == 10_000
    assert parse_wav_header(result.wav_bytes) == result.fmt
    assert replier.calls == ["hello"]
    assert synthesizer.calls == [("hi there", "alloy")]


@pytest.mark.asyncio
async def test_raw_input_is_wrapped_before_transcription(stubs):
    transcriber, replier, synthesizer = stubs
    pcm = b"\x01\x00" * 100

    await ReplyPipeline(transcriber, replier, synthesizer, sample_rate_hz=16_000).run(pcm)

    sent = transcriber.calls[0]
    assert has_wav_header(sent)
    assert sent[44:] == pcm
    assert parse_wav_header(sent).sample_rate_hz == 16_000


@pytest.mark.asyncio
async def test_headered_input_passed_through(stubs):
    transcriber, replier, synthesizer = stubs
    wav = wrap_pcm_as_wav(b"\x01\x00" * 100)

    await ReplyPipeline(transcriber, replier, synthesizer).run(wav)

    assert transcriber.calls == [wav]


@pytest.mark.asyncio
async def test_pre_headered_synthesis_not_double_wrapped():
    wav = wrap_pcm_as_wav(b"\x02\x00" * 50, WavFormat(22_050, 1, 16))

    class WavSynth(StubSynthesizer):
        async def synthesize(self, *, text: str, voice: str) -> SynthesizedAudio:
            return SynthesizedAudio(audio_bytes=wav, has_header=True)

    result = await ReplyPipeline(StubTranscriber(), StubReplier(), WavSynth()).run(b"\x00\x00")

    assert result.wav_bytes == wav
    assert result.fmt.sample_rate_hz == 22_050


@pytest.mark.asyncio
async def test_transcription_failure_reports_stage():
    pipeline = ReplyPipeline(
        StubTranscriber(error=RuntimeError("quota")), StubReplier(), StubSynthesizer()
    )

    with pytest.raises(ReplyError) as info:
        await pipeline.run(b"\x00\x00")

    assert info.value.stage == ReplyStage.TRANSCRIPTION
    assert "quota" in info.value.reason


@pytest.mark.asyncio
async def test_empty_transcript_is_an_error():
    replier = StubReplier()
    pipeline = ReplyPipeline(StubTranscriber(text="   "), replier, StubSynthesizer())

    with pytest.raises(ReplyError) as info:
        await pipeline.run(b"\x00\x00")

    assert info.value.stage == ReplyStage.TRANSCRIPTION
    assert replier.calls == []


@pytest.mark.asyncio
async def test_reply_failure_skips_synthesis():
    synthesizer = StubSynthesizer()
    pipeline = ReplyPipeline(
        StubTranscriber(), StubReplier(error=TimeoutError()), synthesizer
    )

    with pytest.raises(ReplyError) as info:
        await pipeline.run(b"\x00\x00")

    assert info.value.stage == ReplyStage.REPLY
    assert info.value.reason == "TimeoutError"
    assert synthesizer.calls == []


@pytest.mark.asyncio
async def test_empty_audio_is_a_synthesis_error():
    pipeline = ReplyPipeline(StubTranscriber(), StubReplier(), StubSynthesizer(wav_len=0))

    with pytest.raises(ReplyError) as info:
        await pipeline.run(b"\x00\x00")

    assert info.value.stage == ReplyStage.SYNTHESIS


@pytest.mark.asyncio
async def test_each_stage_is_timed(captured_logs, pipeline):
    await pipeline.run(b"\x00\x00", session_id="s1")

    metrics = [e["metric"] for e in captured_logs if e["event_type"] == "METRIC_TIMER"]
    assert metrics == ["transcription", "reply_generation", "synthesis"]


@pytest.mark.asyncio
async def test_empty_input_rejected(pipeline):
    with pytest.raises(ValueError):
        await pipeline.run(b"")
