"""
Interactive terminal client.

Commands: exit / quit / q to leave, clear to start a new thread, help.
"""

import argparse
import asyncio

from payassist import config
from payassist.logging_config import setup_logging
from payassist.runtime import build_orchestrator
from payassist.services.errors import PaymentsError

HELP_TEXT = """Try things like:
  - show my accounts
  - pay my water bill
  - send $50 to Sarah
  - move $100 to my savings
Commands: clear (new conversation), help, exit"""


async def chat_loop(token: str) -> None:
    orchestrator = await build_orchestrator()
    try:
        thread_id, user = await orchestrator.start_session(token)
    except PaymentsError as exc:
        print(f"Could not start a session: {exc.message}")
        await orchestrator.services.close()
        return

    print(f"PayAssist - signed in as {user.name}. Type 'help' for examples, 'exit' to quit.")
    try:
        while True:
            try:
                text = (await asyncio.to_thread(input, "\nYou: ")).strip()
            except EOFError:
                break
            if not text:
                continue
            command = text.lower()
            if command in ("exit", "quit", "q"):
                break
            if command == "help":
                print(HELP_TEXT)
                continue
            if command == "clear":
                thread_id = orchestrator.reset_thread(thread_id)
                print(f"Started a new conversation ({thread_id}).")
                continue

            print("Assistant: ", end="", flush=True)
            streamed = False
            async for event in orchestrator.stream_turn(thread_id, text):
                if event.type == "token":
                    streamed = True
                    print(event.content, end="", flush=True)
                elif event.type == "tool_start":
                    print(f"\n  [{event.content}]", end="", flush=True)
                elif event.type == "final":
                    if not streamed:
                        print(event.content, end="")
                    print()
                elif event.type == "error":
                    print(f"\n{event.content}")
    finally:
        await orchestrator.services.close()
    print("Goodbye!")


def main() -> None:
    parser = argparse.ArgumentParser(description="PayAssist terminal chat")
    parser.add_argument("--token", default=config.PAYASSIST_TOKEN, help="session token (default: PAYASSIST_TOKEN)")
    args = parser.parse_args()
    setup_logging()
    try:
        asyncio.run(chat_loop(args.token))
    except KeyboardInterrupt:
        print("\nGoodbye!")


if __name__ == "__main__":
    main()
