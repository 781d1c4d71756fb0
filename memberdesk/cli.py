"""Console chat against a locally configured agent.

Usage:
    python -m memberdesk.cli --room demo-room
    python -m memberdesk.cli --room demo-room --status

Lines starting with "/" are local commands:
    /status    show this room's verification status (redacted)
    /tenants   list supported cooperatives
    /quit      exit
"""

import argparse
import asyncio
import logging
import sys

from memberdesk.agent import MemberAgent, build_agent
from memberdesk.config import settings
from memberdesk.providers import auth_status_summary, cooperatives_listing
from memberdesk.tenants import TenantResolver


async def _run_command(agent: MemberAgent, room_id: str, command: str) -> bool:
    """Handle a local /command. Returns False when the loop should stop."""
    if command in ("/quit", "/exit"):
        return False
    if command == "/status":
        print(await auth_status_summary(agent.store, room_id))
    elif command == "/tenants":
        print(cooperatives_listing(TenantResolver()))
    else:
        print(f"Unknown command: {command}")
    return True


async def chat(agent: MemberAgent, room_id: str) -> None:
    print(f"Chatting in room {room_id}. Type /quit to leave.")
    loop = asyncio.get_running_loop()

    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            break
        text = line.strip()
        if not text:
            continue
        if text.startswith("/"):
            if not await _run_command(agent, room_id, text):
                break
            continue

        result = await agent.handle_message(room_id, text)
        if not result.handled and not result.replies:
            print("(no capability claimed that message)")
        for reply in result.replies:
            print(f"> {reply.text}")


def main():
    parser = argparse.ArgumentParser(
        description="Chat with the member desk from the terminal",
    )
    parser.add_argument("--room", default="console", help="Room id to use (default: console)")
    parser.add_argument(
        "--status",
        action="store_true",
        help="Print the room's verification status and exit",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)-28s %(levelname)-7s %(message)s",
    )

    for warning in settings.validate_startup():
        print(f"warning: {warning}", file=sys.stderr)
    agent = build_agent(settings)

    if args.status:
        print(asyncio.run(auth_status_summary(agent.store, args.room)))
        return
    asyncio.run(chat(agent, args.room))


if __name__ == "__main__":
    main()
