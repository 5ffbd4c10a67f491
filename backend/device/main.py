"""
Device entry point.

    python -m device.main                 (from backend/)
    voice-relay-device --turns 3
    voice-relay-device --output reply.wav (write replies to a file)

Microphone and speaker go through sounddevice (install the `device`
extra); configuration comes from the environment / .env.
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import replace

from dotenv import load_dotenv

from config import AppConfig
from device.client import DeviceClient
from device.sinks import AudioSink, SoundDeviceMicrophone, SoundDeviceSink, WaveFileSink
from observability.logger import configure_logging, log_event


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Voice relay device client")
    parser.add_argument("--url", default=None, help="server WebSocket URL")
    parser.add_argument("--turns", type=int, default=0, help="0 = run until interrupted")
    parser.add_argument("--output", default=None, help="write reply audio to this WAV file")
    parser.add_argument("--gain", type=float, default=None)
    return parser.parse_args(argv)


async def _run(client: DeviceClient, turns: int) -> None:
    done = 0
    while turns <= 0 or done < turns:
        result = await client.run_turn()
        done += 1
        final = result.final_message
        log_event({
            "event_type": "DEVICE_TURN_COMPLETE",
            "turn": done,
            "connected": result.connected,
            "sent_bytes": result.sent_bytes,
            "received_audio_bytes": result.received_audio_bytes,
            "dropped_bytes": result.dropped_bytes,
            "final_message": final.msg_type if final else None,
        })


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    args = _parse_args(argv)

    config = AppConfig.load_from_env()
    overrides: dict[str, object] = {}
    if args.url:
        overrides["device_server_url"] = args.url
    if args.gain is not None:
        overrides["playback_gain"] = args.gain
    if overrides:
        config = replace(config, **overrides)

    configure_logging(level=config.log_level, json_lines=config.enable_json_logs)

    def sink_factory() -> AudioSink:
        if args.output:
            return WaveFileSink(args.output, sample_rate_hz=config.sample_rate_hz)
        return SoundDeviceSink(sample_rate_hz=config.sample_rate_hz)

    microphone = SoundDeviceMicrophone(sample_rate_hz=config.sample_rate_hz)
    client = DeviceClient(config=config, microphone=microphone, sink_factory=sink_factory)

    try:
        asyncio.run(_run(client, args.turns))
    except KeyboardInterrupt:
        log_event({"event_type": "DEVICE_INTERRUPTED"})
    finally:
        microphone.close()


if __name__ == "__main__":
    main()
