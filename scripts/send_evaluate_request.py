#!/usr/bin/env python3
"""
Dev helper: send a sample request to a running DMN evaluator.

Builds a body in one of the shapes POST /evaluate accepts and prints the
response.

Usage
-----
# Basic: single bare email, targeting localhost:3000
python scripts/send_evaluate_request.py

# Wrap the email as {"email": {...}}
python scripts/send_evaluate_request.py --shape email

# Send three copies as a JSON array
python scripts/send_evaluate_request.py --shape array --count 3

# Route classification instead of an email
python scripts/send_evaluate_request.py --shape route --route billing

# Target a different service URL
python scripts/send_evaluate_request.py --url http://staging.example.com

Environment / .env
------------------
PORT   Used for the default --url (default: 3000).
"""

import argparse
import json
import os
import sys
import textwrap
from pathlib import Path

import httpx
from dotenv import load_dotenv


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def _make_email(from_email: str, subject: str, body_text: str, index: int = 0) -> dict:
    """Return one email in the canonical field layout."""
    return {
        "from": {"email": from_email},
        "subject": subject if index == 0 else f"{subject} ({index + 1})",
        "body_text": body_text,
        "to": ["support@example.com"],
        "cc": [],
        "bcc": [],
        "headers": {},
        "attachments": [],
        "message_id": f"sample-{index + 1}",
    }


def _build_bare(emails: list[dict], route: str) -> dict:
    return emails[0]


def _build_email(emails: list[dict], route: str) -> dict:
    return {"email": emails[0]}


def _build_emails(emails: list[dict], route: str) -> dict:
    return {"emails": emails}


def _build_array(emails: list[dict], route: str) -> list:
    return [{"email": e} for e in emails]


def _build_route(emails: list[dict], route: str) -> dict:
    return {"route": route}


_PAYLOAD_BUILDERS = {
    "bare": _build_bare,
    "email": _build_email,
    "emails": _build_emails,
    "array": _build_array,
    "route": _build_route,
}


# ---------------------------------------------------------------------------
# Pretty printer
# ---------------------------------------------------------------------------

def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if status == 200 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> int:
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")

    default_url = f"http://localhost:{os.getenv('PORT', '3000')}"

    parser = argparse.ArgumentParser(
        prog="send_evaluate_request.py",
        description=textwrap.dedent("""\
            Send a sample request to POST /evaluate on the DMN evaluator.
        """),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python scripts/send_evaluate_request.py
              python scripts/send_evaluate_request.py --shape emails --count 2
              python scripts/send_evaluate_request.py --shape route --route billing
        """),
    )
    parser.add_argument(
        "--url",
        default=default_url,
        help=f"Service base URL (default: {default_url})",
    )
    parser.add_argument(
        "--shape",
        default="bare",
        choices=list(_PAYLOAD_BUILDERS),
        help="Request body shape (default: bare)",
    )
    parser.add_argument(
        "--count",
        type=int,
        default=1,
        help="Number of emails for the emails/array shapes (default: 1)",
    )
    parser.add_argument(
        "--from",
        dest="from_email",
        default="customer@example.com",
        help="Sender email address (default: customer@example.com)",
    )
    parser.add_argument(
        "--subject",
        default="Question about my invoice",
        help='Email subject (default: "Question about my invoice")',
    )
    parser.add_argument(
        "--body",
        default="Hi, I was charged twice this month.",
        help="Email body text",
    )
    parser.add_argument(
        "--route",
        default="billing",
        help="Route label for --shape route (default: billing)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30,
        help="Request timeout in seconds (default: 30)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the payload JSON without sending it.",
    )

    args = parser.parse_args()

    if args.count < 1:
        print("ERROR: --count must be at least 1", file=sys.stderr)
        return 1

    emails = [
        _make_email(args.from_email, args.subject, args.body, index=i)
        for i in range(args.count)
    ]
    payload = _PAYLOAD_BUILDERS[args.shape](emails, args.route)

    endpoint = f"{args.url.rstrip('/')}/evaluate"

    print(f"Endpoint : {endpoint}")
    print(f"Shape    : {args.shape}")

    if args.dry_run:
        print("\n[DRY RUN] Payload:")
        print(json.dumps(payload, indent=2))
        return 0

    try:
        response = httpx.post(endpoint, json=payload, timeout=args.timeout)
    except httpx.ConnectError:
        print(
            f"\nERROR: Could not connect to {endpoint}\n"
            "Is the service running? Start it with:\n"
            "  cd backend && uvicorn app.main:app --port 3000",
            file=sys.stderr,
        )
        return 1
    except httpx.HTTPError as exc:
        print(f"\nERROR: {exc}", file=sys.stderr)
        return 1

    _print_response(response)
    return 0 if response.status_code == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
