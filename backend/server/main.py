"""
Server entry point.

Runs the ASGI app under uvicorn:

    python -m server.main            (from backend/)
    voice-relay-server               (console script)
"""

from __future__ import annotations

import argparse

import uvicorn


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Voice relay WebSocket server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="dev mode only")
    args = parser.parse_args(argv)

    uvicorn.run(
        "server.asgi:app",
        host=args.host,
        port=args.port,
        log_level="info",
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
