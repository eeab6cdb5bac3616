"""Run the relay service: ``python -m chat_relay``."""

from __future__ import annotations

import argparse

import uvicorn

from chat_relay.app import create_app
from chat_relay.config import get_settings
from chat_relay.logging_config import configure_logging


def main(argv: list[str] | None = None) -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(prog="chat-relay", description="Chat relay HTTP service")
    parser.add_argument("--host", default=settings.host)
    parser.add_argument("--port", type=int, default=settings.port)
    parser.add_argument("--log-level", default=settings.log_level)
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    uvicorn.run(create_app(settings), host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
