# src/mentorlink/scripts/inbox.py
"""
Inspect a viewer's mentorship requests from the command line.

Commands:
  inbox <received|sent|all>   List one inbox view with decrypted counterparts
  relationship <user_id>      Show the resolved relationship with one user
  metrics                     Print aggregate request counters
  health                      Check API reachability and circuit breaker state

Typical usage:
  MENTORLINK_API_BASE_URL=http://127.0.0.1:3000 MENTORLINK_API_TOKEN=... \
    python -m mentorlink.scripts.inbox inbox received --viewer-id u-123
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from mentorlink.core.logging_config import configure_logging
from mentorlink.services.api_client import ApiError
from mentorlink.services.inbox import InboxView, describe_request
from mentorlink.services.session import MentorshipSession
from mentorlink.utils.formatting import time_ago


def say(msg: str) -> None:
    print(f"[mentorlink] {msg}")


def fail(msg: str) -> None:
    print(f"[mentorlink][FAIL] {msg}", file=sys.stderr)


async def show_inbox(session: MentorshipSession, view: InboxView) -> int:
    """Print every item of one inbox view.

    Args:
        session: Active session for the viewer
        view: View to load
    """
    items = await session.inbox.load(view)
    error = session.inbox.load_errors[view]
    if error is not None:
        fail(f"Could not load {view.value} requests: {error}")
        return 1

    say(f"{len(items)} {view.value} request(s)")
    for item in items:
        profile = item.profile
        name = profile.display_name if profile else "?"
        company = profile.company if profile else ""
        marker = " " if item.read_by_viewer else "*"
        print(
            f"{marker} {item.id}  {item.request.status.value:<9}  {name} ({company})  "
            f"{describe_request(item.request, view, session.viewer_id)}  "
            f"{time_ago(item.request.created_at)}"
        )
    return 0


async def show_relationship(session: MentorshipSession, counterpart_id: str) -> int:
    check = await session.connections.check(counterpart_id)
    status = check.status
    if check.probe_failed:
        fail("Relationship probe failed; showing neutral status")

    say(
        f"sent={status.has_sent} received={status.has_received} "
        f"pending={status.has_pending} active={status.has_active} "
        f"direction={status.direction.value} "
        f"latest_status={status.latest_status.value if status.latest_status else None}"
    )
    say(f"can send new request: {check.can_send}")

    notice = check.notice(counterpart_id)
    if notice is not None:
        say(f"{notice.title}: {notice.message}")
    return 0


async def show_metrics(session: MentorshipSession) -> int:
    try:
        metrics = await session.client.fetch_request_metrics()
    except ApiError as exc:
        fail(f"Could not fetch metrics: {exc}")
        return 1
    print(json.dumps(metrics.model_dump(mode="json"), indent=2))
    return 0


async def show_health(session: MentorshipSession) -> int:
    health = await session.client.health_check()
    print(json.dumps(health, indent=2, default=str))
    return 0 if health.get("status") == "healthy" else 1


async def run(args: argparse.Namespace) -> int:
    async with MentorshipSession(viewer_id=args.viewer_id) as session:
        if args.command == "inbox":
            return await show_inbox(session, InboxView(args.view))
        if args.command == "relationship":
            return await show_relationship(session, args.counterpart_id)
        if args.command == "metrics":
            return await show_metrics(session)
        return await show_health(session)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect mentorship requests")
    parser.add_argument("--viewer-id", default=None, help="ID of the viewing user")
    parser.add_argument("--log-level", default=None, help="Override MENTORLINK_LOG_LEVEL")

    commands = parser.add_subparsers(dest="command", required=True)

    inbox = commands.add_parser("inbox", help="List one inbox view")
    inbox.add_argument("view", choices=[view.value for view in InboxView])

    relationship = commands.add_parser("relationship", help="Resolve the relationship with a user")
    relationship.add_argument("counterpart_id")

    commands.add_parser("metrics", help="Print request counters")
    commands.add_parser("health", help="Check API health")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
