#!/usr/bin/env python3
"""
Dev helper: send a signed Slack-style request to the local eml-to-text-bot.

Builds one of the payloads Slack would deliver, signs it with
SLACK_SIGNING_SECRET exactly the way Slack does, and POST-s it.

Usage
-----
# url_verification handshake (no signature needed, but one is sent anyway)
python scripts/send_test_event.py handshake

# message/file_share event for a file already uploaded to Slack
python scripts/send_test_event.py file-share --file-id F0123 --name report.eml \\
    --channel C0123 --ts 1700000000.000100 --download-url https://files.slack.com/...

# standalone file_shared event (the bot resolves the thread via files.info)
python scripts/send_test_event.py file-shared --file-id F0123 --channel C0123

# Convert a local .eml through /slack/preview (needs DEBUG_PREVIEW_ENABLED=true)
python scripts/send_test_event.py preview --file path/to/mail.eml

# Print the request instead of sending it
python scripts/send_test_event.py preview --file mail.eml --dry-run

Environment / .env
------------------
SLACK_SIGNING_SECRET   Signing secret (required unless --dry-run).
"""

import argparse
import base64
import json
import os
import sys
import textwrap
import time
from pathlib import Path

import httpx
from dotenv import load_dotenv

from emlbot.auth import SIGNATURE_HEADER, TIMESTAMP_HEADER, compute_signature


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def _build_handshake(args) -> tuple[str, dict]:
    return "/slack/events", {
        "type": "url_verification",
        "token": "dev",
        "challenge": f"dev-challenge-{int(time.time())}",
    }


def _build_file_share(args) -> tuple[str, dict]:
    file_obj = {"id": args.file_id, "name": args.name, "mimetype": args.mimetype}
    if args.download_url:
        file_obj["url_private_download"] = args.download_url
    return "/slack/events", {
        "type": "event_callback",
        "event_id": f"EvDev{int(time.time())}",
        "event": {
            "type": "message",
            "subtype": "file_share",
            "channel": args.channel,
            "user": args.user,
            "ts": args.ts,
            "files": [file_obj],
        },
    }


def _build_file_shared(args) -> tuple[str, dict]:
    return "/slack/events", {
        "type": "event_callback",
        "event_id": f"EvDev{int(time.time())}",
        "event": {
            "type": "file_shared",
            "file_id": args.file_id,
            "channel_id": args.channel,
            "user_id": args.user,
            "file": {"id": args.file_id},
        },
    }


def _build_preview(args) -> tuple[str, dict]:
    if not args.file:
        raise SystemExit("ERROR: preview needs --file")
    path = Path(args.file)
    if not path.exists():
        raise SystemExit(f"ERROR: File not found: {path}")
    return "/slack/preview", {
        "eml_base64": base64.b64encode(path.read_bytes()).decode(),
        "filename": path.name,
    }


_BUILDERS = {
    "handshake": _build_handshake,
    "file-share": _build_file_share,
    "file-shared": _build_file_shared,
    "preview": _build_preview,
}


# ---------------------------------------------------------------------------
# Pretty printer
# ---------------------------------------------------------------------------

def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if status == 200 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        print(json.dumps(response.json(), indent=2, ensure_ascii=False))
    except ValueError:
        print(response.text)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> int:
    # scripts/ lives one level below the project root
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="send_test_event.py",
        description=textwrap.dedent("""\
            Send a signed test request to the eml-to-text-bot backend.

            Reads SLACK_SIGNING_SECRET from the environment or a .env file in
            the project root.
        """),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("kind", choices=list(_BUILDERS), help="Which request to send")
    parser.add_argument("--url", default="http://localhost:8000", help="Backend base URL (default: http://localhost:8000)")
    parser.add_argument("--file-id", default="F0DEVTEST", help="Slack file ID")
    parser.add_argument("--name", default="sample.eml", help="File name for file-share events")
    parser.add_argument("--mimetype", default="message/rfc822", help="File mimetype for file-share events")
    parser.add_argument("--download-url", default=None, help="url_private_download for file-share events")
    parser.add_argument("--channel", default="C0DEVTEST", help="Channel ID")
    parser.add_argument("--ts", default="1700000000.000100", help="Message ts for file-share events")
    parser.add_argument("--user", default="U0DEVTEST", help="User ID")
    parser.add_argument("--file", default=None, metavar="PATH", help=".eml file for the preview request")
    parser.add_argument("--secret", default=None, help="Override SLACK_SIGNING_SECRET")
    parser.add_argument("--dry-run", action="store_true", help="Print the request without sending it.")

    args = parser.parse_args()

    secret = args.secret or os.getenv("SLACK_SIGNING_SECRET", "")
    if not secret and not args.dry_run:
        print(
            "ERROR: No signing secret found.\n"
            "Set SLACK_SIGNING_SECRET in your environment or .env file, or pass --secret.",
            file=sys.stderr,
        )
        return 1

    path, payload = _BUILDERS[args.kind](args)
    body = json.dumps(payload).encode()
    timestamp = str(int(time.time()))
    headers = {
        "Content-Type": "application/json",
        TIMESTAMP_HEADER: timestamp,
        SIGNATURE_HEADER: compute_signature(secret, timestamp, body) if secret else "",
    }
    endpoint = f"{args.url.rstrip('/')}{path}"

    print(f"Request  : {args.kind}")
    print(f"Endpoint : {endpoint}")

    if args.dry_run:
        display = dict(payload)
        if "eml_base64" in display:
            display["eml_base64"] = "<base64-encoded, %d chars>" % len(payload["eml_base64"])
        print("\n[DRY RUN] Headers:")
        print(json.dumps(headers, indent=2))
        print("\n[DRY RUN] Payload:")
        print(json.dumps(display, indent=2))
        return 0

    try:
        response = httpx.post(endpoint, content=body, headers=headers, timeout=60.0)
    except httpx.HTTPError as e:
        print(f"\n[FAIL] {e}", file=sys.stderr)
        return 1

    _print_response(response)
    return 0 if response.status_code == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
