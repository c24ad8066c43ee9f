#!/usr/bin/env python3
"""Script to exercise a running gateway: send a message or replay a provider webhook."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx

from src.core.config import settings


async def send_message(base_url: str, args: argparse.Namespace) -> int:
    """POST a send request to /messages/send."""
    body = {
        "workspaceId": args.workspace_id,
        "to": args.to,
        "context": {"instance": args.instance},
    }
    if args.text:
        body["text"] = args.text
    if args.media_url:
        body["mediaUrl"] = args.media_url
        body["mediaType"] = args.media_type

    async with httpx.AsyncClient(base_url=base_url, timeout=30.0) as client:
        response = await client.post("/messages/send", json=body)

    print(f"HTTP {response.status_code}")
    print(json.dumps(response.json(), indent=2))
    return 0 if response.is_success else 1


async def replay_webhook(base_url: str, args: argparse.Namespace) -> int:
    """POST a saved provider payload to /webhooks/{provider}."""
    path = Path(args.payload)
    if not path.exists():
        print(f"Error: Payload file does not exist: {path}")
        return 1

    payload = json.loads(path.read_text(encoding="utf-8"))

    async with httpx.AsyncClient(base_url=base_url, timeout=30.0) as client:
        response = await client.post(f"/webhooks/{args.provider}", json=payload)

    print(f"HTTP {response.status_code}")
    print(json.dumps(response.json(), indent=2))
    return 0 if response.is_success else 1


async def main():
    parser = argparse.ArgumentParser(description="Exercise a running WhatsApp gateway")
    parser.add_argument(
        "--url",
        default=f"http://localhost:{settings.app_port}",
        help="Gateway base URL",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    send = subparsers.add_parser("send", help="Send a message through /messages/send")
    send.add_argument("workspace_id", help="Workspace ID")
    send.add_argument("to", help="Destination phone number")
    send.add_argument("--text", help="Message text")
    send.add_argument("--instance", default=None, help="Connection instance name or id")
    send.add_argument("--media-url", default=None, help="Media URL to send")
    send.add_argument(
        "--media-type",
        default="image",
        choices=["image", "video", "audio", "document"],
        help="Media type when --media-url is set",
    )

    webhook = subparsers.add_parser("webhook", help="Replay a provider webhook payload")
    webhook.add_argument("provider", choices=["zapi", "evolution"], help="Provider family")
    webhook.add_argument("payload", help="Path to a JSON payload file")

    args = parser.parse_args()

    if args.command == "send":
        if not args.text and not args.media_url:
            print("Error: --text or --media-url is required")
            sys.exit(1)
        code = await send_message(args.url, args)
    else:
        code = await replay_webhook(args.url, args)

    sys.exit(code)


if __name__ == "__main__":
    asyncio.run(main())
