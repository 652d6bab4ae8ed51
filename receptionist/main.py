"""CLI entry point for the Gym Receptionist agent.

A terminal chat against a local engine, for trying rules, flows and AI
settings without WhatsApp.  For the HTTP test chat, use
``receptionist/server.py``.

Usage:
    python -m receptionist.main            # normal mode (quiet)
    python -m receptionist.main --debug    # debug mode (shows API calls)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import uuid

from dotenv import load_dotenv

from receptionist.agent import create_receptionist_engine
from receptionist.core.agent_engine import AgentEngine
from receptionist.models import Session

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("receptionist").setLevel(logging.DEBUG if debug else logging.INFO)


def _new_session() -> Session:
    session = Session(session_id=str(uuid.uuid4()))
    logger.info("Started new session: %s", session.session_id)
    return session


async def chat_loop(engine: AgentEngine) -> None:
    session = _new_session()

    while True:
        try:
            user_input = (await asyncio.to_thread(input, "You: ")).strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye! See you at the gym!")
            break

        if user_input.lower() == "new":
            session = _new_session()
            print(f"\n>> New session started: {session.session_id[:8]}...\n")
            continue

        result = await engine.process_message(user_input, session)
        print(f"\nReceptionist: {result.message}")
        if result.metadata:
            print(f"     {result.metadata}")
        print()


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Gym Receptionist Agent CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    print("\n" + "=" * 60)
    print("  Gym Receptionist Agent - CLI Chat")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' for a new session.")
    print("=" * 60 + "\n")

    async def _run() -> None:
        engine = await create_receptionist_engine()
        try:
            await chat_loop(engine)
        finally:
            await engine.aclose()

    asyncio.run(_run())


if __name__ == "__main__":
    main()
