#!/usr/bin/env python3
# =============================================================================
# CLI Tool for the Blog Event Runtime
# =============================================================================
# Developer/admin tooling for local testing.
# Uses the same normalize/dispatch/envelope pipeline as the Lambda handlers.
#
# Usage:
#   python tools/cli.py posts_get_all --limit 5
#   python tools/cli.py post_get --id 7d3c...
#   python tools/cli.py newsletter_subscribe --email a@b.com
#   python tools/cli.py --json '{"type": "get_media", "prefix": "posts/"}'
#   python tools/cli.py --bridge post_get --id 7d3c...
#   python tools/cli.py list_types
# =============================================================================

import argparse
import json
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.app.direct_handler import direct_handler
from src.runtime.bridge import invoke
from src.runtime.deps import create_deps
from src.runtime.errors import BridgeTransportError
from src.runtime.event import EventType


def build_payload(args) -> dict:
    if args.file:
        with open(args.file, "r") as f:
            return json.load(f)
    if args.json:
        return json.loads(args.json)

    payload = {"type": args.type}
    for name in ("id", "email", "password", "name", "description", "prefix", "lastSyncDate"):
        value = getattr(args, name)
        if value is not None:
            payload[name] = value
    if args.tags:
        payload["tags"] = [t.strip() for t in args.tags.split(",") if t.strip()]
    if args.page:
        payload["page"] = args.page
    if args.limit:
        payload["limit"] = args.limit
    if args.published is not None:
        payload["published"] = args.published == "true"
    if args.stream:
        payload["stream"] = True
    return payload


def main():
    parser = argparse.ArgumentParser(
        description="Blog Event Runtime CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s list_types
  %(prog)s posts_get_all --page 2 --limit 5
  %(prog)s posts_get_filtered --tags news,python --published true
  %(prog)s admin_connect --email admin@example.com --password secret
  %(prog)s --bridge --json '{"type": "post_get", "id": "abc"}'
  %(prog)s --file request.json --pretty
        """
    )

    parser.add_argument("type", nargs="?", help="Event type to execute, or list_types")
    parser.add_argument("--json", "-j", help="JSON payload (overrides type)")
    parser.add_argument("--file", "-f", help="JSON file to load payload from")
    parser.add_argument("--pretty", "-p", action="store_true", help="Pretty print output")
    parser.add_argument("--bridge", "-b", action="store_true", help="Run through a worker process")
    parser.add_argument("--memory", "-m", action="store_true", help="Use in-memory storage")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log to stderr")

    # Common parameters
    parser.add_argument("--id", help="Post or media id")
    parser.add_argument("--email", help="Email address")
    parser.add_argument("--password", help="Admin password")
    parser.add_argument("--name", help="Post or subscriber name")
    parser.add_argument("--description", help="Post description")
    parser.add_argument("--tags", help="Comma separated tags")
    parser.add_argument("--published", choices=["true", "false"], help="Published filter/flag")
    parser.add_argument("--page", type=int, help="Page number")
    parser.add_argument("--limit", type=int, help="Result limit")
    parser.add_argument("--prefix", help="Media key prefix")
    parser.add_argument("--lastSyncDate", help="ISO timestamp for posts_get_delta")
    parser.add_argument("--stream", action="store_true", help="Return media content")

    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, stream=sys.stderr)

    if args.type == "list_types":
        for event_type in EventType:
            print(event_type.value)
        return

    if not (args.type or args.json or args.file):
        parser.print_help()
        sys.exit(1)

    if args.memory:
        os.environ["STORAGE_BACKEND"] = "memory"

    payload = build_payload(args)

    if args.bridge:
        try:
            result = invoke(payload)
        except BridgeTransportError as e:
            print(f"Bridge failure (exit code {e.exit_code}): {e}", file=sys.stderr)
            sys.exit(2)
    else:
        result = direct_handler(payload, deps=create_deps())

    # Output
    body = json.loads(result.get("body") or "null")
    if args.pretty:
        print(json.dumps({**result, "body": body}, indent=2, ensure_ascii=False, default=str))
    else:
        print(json.dumps(result, ensure_ascii=False, default=str))

    # Exit with appropriate code
    if result.get("statusCode", 200) >= 400:
        sys.exit(1)


if __name__ == "__main__":
    main()
