# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json

import pytest

from audio.ring_buffer import RingBuffer
from audio.wav import WavFormat, wrap_pcm_as_wav
from config import AppConfig
from conftest import FakeClock, FakeTransport
from delivery.plan import DeliveryPlan, compute_burst_chunks, compute_chunk_interval_ms
from delivery.scheduler import DeliveryOutcome, PacedDeliveryScheduler
from device.playback import PlaybackScheduler

# 10000-byte WAV: 44-byte header + 9956 bytes of PCM
REPLY_WAV = wrap_pcm_as_wav(b"\x05\x00" * 4978)


def _scheduler(transport: FakeTransport, **kwargs) -> PacedDeliveryScheduler:
    params = {
        "chunk_bytes": 2048,
        "burst_fraction": 0.8,
        "wait_for_ready": False,
        "sleep": transport.clock.sleep,
        "clock": transport.clock,
    }
    params.update(kwargs)
    return PacedDeliveryScheduler(transport, **params)


# -------------------------
# Plan
# -------------------------

def test_interval_is_chunk_playback_time():
    # 2048 bytes @ 24kHz mono 16-bit = 42.67ms
    assert compute_chunk_interval_ms(2048, WavFormat(24_000, 1, 16)) == 43
    assert compute_chunk_interval_ms(3200, WavFormat(16_000, 1, 16)) == 100


def test_burst_chunk_rules():
    assert compute_burst_chunks(5, 0.8) == 4
    assert compute_burst_chunks(1, 0.8) == 1
    assert compute_burst_chunks(10, 1.0) == 10
    assert compute_burst_chunks(0, 0.8) == 0


def test_plan_for_worked_example():
    plan = DeliveryPlan.from_payload(REPLY_WAV, chunk_bytes=2048, burst_fraction=0.8)

    assert plan.total_bytes == 10_000
    assert plan.total_chunks == 5
    assert plan.burst_chunks == 4
    assert plan.chunk_interval_ms == 43
    assert plan.header_parsed


def test_plan_cursor_yields_whole_payload():
    plan = DeliveryPlan.from_payload(REPLY_WAV, chunk_bytes=2048, burst_fraction=0.8)

    chunks = []
    while not plan.exhausted:
        chunks.append(plan.next_chunk())

    assert [len(c) for c in chunks] == [2048, 2048, 2048, 2048, 1808]
    assert b"".join(chunks) == REPLY_WAV
    assert plan.next_chunk() == b""


def test_headerless_payload_uses_default_format():
    plan = DeliveryPlan.from_payload(
        b"\x00" * 100,
        chunk_bytes=2048,
        burst_fraction=0.8,
        default_fmt=WavFormat(16_000, 1, 16),
    )
    assert not plan.header_parsed
    assert plan.fmt.sample_rate_hz == 16_000


def test_plan_rejects_bad_parameters():
    with pytest.raises(ValueError):
        DeliveryPlan.from_payload(REPLY_WAV, chunk_bytes=0, burst_fraction=0.8)
    with pytest.raises(ValueError):
        DeliveryPlan.from_payload(REPLY_WAV, chunk_bytes=2048, burst_fraction=0.0)


# -------------------------
# Scheduler
# -------------------------

@pytest.mark.asyncio
async def test_worked_example_burst_then_paced_then_marker():
    transport = FakeTransport()

    report = await _scheduler(transport).deliver(REPLY_WAV)

    assert report.outcome == DeliveryOutcome.COMPLETED
    assert report.chunks_sent == 5
    assert report.burst_chunks == 4
    assert b"".join(transport.binary) == REPLY_WAV
    # burst back-to-back, fifth chunk one interval later
    assert transport.binary_times == [0.0, 0.0, 0.0, 0.0, pytest.approx(0.043)]
    # no sleep after the final chunk
    assert transport.clock.sleeps == [pytest.approx(0.043)]
    assert [json.loads(t) for t in transport.texts] == [{"type": "done"}]
    assert transport.sent[-1][0] == "text"


@pytest.mark.asyncio
async def test_paced_gaps_account_for_send_time():
    clock = FakeClock()
    transport = FakeTransport(clock, send_cost_s=0.010)
    payload = b"\x00" * (2048 * 10)

    await _scheduler(transport, burst_fraction=0.5).deliver(payload)

    times = transport.binary_times
    paced_starts = times[4:]
    gaps = [b - a for a, b in zip(paced_starts, paced_starts[1:])]
    assert gaps == [pytest.approx(0.043)] * 5
    assert clock.sleeps[0] == pytest.approx(0.033)


@pytest.mark.asyncio
async def test_slow_send_never_sleeps_negative():
    transport = FakeTransport(send_cost_s=0.5)

    await _scheduler(transport, burst_fraction=0.2).deliver(b"\x00" * (2048 * 5))

    assert transport.clock.sleeps == [0.0] * 4


@pytest.mark.asyncio
async def test_aborts_when_transport_closes_mid_delivery():
    transport = FakeTransport(close_after=2)

    report = await _scheduler(transport).deliver(REPLY_WAV)

    assert report.outcome == DeliveryOutcome.ABORTED
    assert report.chunks_sent == 2
    assert not report.completion_sent
    assert transport.texts == []


@pytest.mark.asyncio
async def test_aborts_on_send_failure_without_retry():
    transport = FakeTransport(fail_on=3)

    report = await _scheduler(transport).deliver(REPLY_WAV)

    assert not report.completed
    assert len(transport.binary) == 2
    assert transport.texts == []


@pytest.mark.asyncio
async def test_closed_transport_sends_nothing():
    transport = FakeTransport()
    transport.mark_closed()

    report = await _scheduler(transport).deliver(REPLY_WAV)

    assert report.chunks_sent == 0
    assert transport.sent == []


@pytest.mark.asyncio
async def test_single_chunk_reply_is_all_burst():
    transport = FakeTransport()

    report = await _scheduler(transport).deliver(wrap_pcm_as_wav(b"\x00" * 100))

    assert report.burst_chunks == 1
    assert transport.clock.sleeps == []
    assert report.completion_sent


@pytest.mark.asyncio
async def test_handshake_timeout_proceeds(captured_logs):
    transport = FakeTransport()
    ready = asyncio.Event()

    report = await _scheduler(
        transport, wait_for_ready=True, handshake_timeout_s=0.01
    ).deliver(REPLY_WAV, ready=ready)

    assert report.handshake_ready is False
    assert report.completed
    assert any(e["event_type"] == "READY_HANDSHAKE_TIMEOUT" for e in captured_logs)


@pytest.mark.asyncio
async def test_handshake_already_ready():
    transport = FakeTransport()
    ready = asyncio.Event()
    ready.set()

    report = await _scheduler(transport, wait_for_ready=True).deliver(REPLY_WAV, ready=ready)

    assert report.handshake_ready is True


@pytest.mark.asyncio
async def test_handshake_released_by_late_ready():
    transport = FakeTransport()
    ready = asyncio.Event()
    scheduler = _scheduler(transport, wait_for_ready=True, handshake_timeout_s=2.0)

    task = asyncio.create_task(scheduler.deliver(REPLY_WAV, ready=ready))
    await asyncio.sleep(0)
    assert transport.sent == []

    ready.set()
    report = await task

    assert report.handshake_ready is True
    assert report.completed


@pytest.mark.asyncio
async def test_delivery_emits_timer_metric(captured_logs):
    await _scheduler(FakeTransport()).deliver(REPLY_WAV)

    timers = [e for e in captured_logs if e["event_type"] == "METRIC_TIMER"]
    assert len(timers) == 1
    assert timers[0]["metric"] == "paced_delivery"
    assert timers[0]["outcome"] == "ok"


# -------------------------
# Default configuration into the device ring
# -------------------------

class RingTransport(FakeTransport):
    """Feeds every binary frame into a device ring, as the receive loop does."""

    def __init__(self, ring: RingBuffer) -> None:
        super().__init__()
        self.ring = ring

    async def send_bytes(self, data: bytes) -> None:
        await super().send_bytes(data)
        self.ring.write(data)


class CountingSink:
    def __init__(self) -> None:
        self.bytes_written = 0

    def write(self, pcm_bytes: bytes) -> None:
        self.bytes_written += len(pcm_bytes)

    def close(self) -> None:
        return None


def _reply_wav(seconds: float) -> bytes:
    return wrap_pcm_as_wav(b"\x10\x00" * int(24_000 * seconds))


@pytest.mark.asyncio
@pytest.mark.parametrize("seconds", [3.0, 10.0])
async def test_default_config_reply_reaches_playback_intact(seconds):
    config = AppConfig()
    wav = _reply_wav(seconds)
    ring = RingBuffer(config.ring_capacity_bytes)
    sink = CountingSink()
    playback = PlaybackScheduler(
        ring,
        sink,
        start_threshold=config.start_threshold_bytes,
        chunk_bytes=config.chunk_bytes,
        sleep=lambda _s: None,
        poll_interval_s=0.005,
    )
    playback.start()
    transport = RingTransport(ring)

    report = await _scheduler(
        transport,
        chunk_bytes=config.chunk_bytes,
        burst_fraction=config.burst_fraction,
    ).deliver(wav)
    ring.finish()

    assert await asyncio.to_thread(playback.wait, 5.0)
    assert report.completed
    assert ring.dropped_bytes == 0
    assert sink.bytes_written == len(wav) - 44


def test_default_ring_holds_the_burst_of_the_longest_reply():
    config = AppConfig()
    wav = _reply_wav(config.vad_max_record_ms / 1000)
    plan = DeliveryPlan.from_payload(
        wav, chunk_bytes=config.chunk_bytes, burst_fraction=config.burst_fraction
    )

    assert plan.burst_chunks * config.chunk_bytes <= config.ring_capacity_bytes
    assert config.burst_fits_ring
    assert config.lossless_reply_ms >= config.vad_max_record_ms


@pytest.mark.asyncio
async def test_undersized_ring_truncates_burst():
    ring = RingBuffer(32 * 1024)
    wav = _reply_wav(3.0)

    await _scheduler(RingTransport(ring)).deliver(wav)

    assert ring.dropped_bytes == len(wav) - 32 * 1024
    assert not AppConfig(ring_capacity_bytes=32 * 1024).burst_fits_ring
