#!/usr/bin/env python3
"""Reconcile orders with the payment gateway.

Polls Flow for orders stuck in PENDING and re-sends missing notification
e-mails for confirmed orders. Safe to run repeatedly (cron).

Exit non-zero when any order could not be checked.
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import timedelta
from typing import Optional, Sequence

from api.dependencies import Container, build_container
from core.config import ConfigurationError, load_settings
from core.logging_config import configure_logging, get_logger


logger = get_logger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--older-than-minutes",
        type=int,
        default=10,
        help="only touch orders created (PENDING) or confirmed (unnotified) more than this many minutes ago (default: 10)",
    )
    parser.add_argument("--limit", type=int, default=100, help="max orders per sweep (default: 100)")
    parser.add_argument("--skip-payments", action="store_true", help="do not poll pending payments")
    parser.add_argument("--skip-notifications", action="store_true", help="do not re-send notifications")
    return parser.parse_args(argv)


async def run(container: Container, args: argparse.Namespace) -> int:
    errors = 0
    if not args.skip_payments:
        summary = await container.confirmation_service().reconcile_pending(
            older_than=timedelta(minutes=args.older_than_minutes),
            limit=args.limit,
        )
        errors += summary["errors"]
        print(
            f"payments: checked={summary['checked']} settled={summary['settled']} "
            f"pending={summary['pending']} errors={summary['errors']}"
        )
    if not args.skip_notifications:
        summary = await container.notification_service().retry_pending(
            older_than=timedelta(minutes=args.older_than_minutes),
            limit=args.limit,
        )
        print(
            f"notifications: checked={summary['checked']} completed={summary['completed']} "
            f"incomplete={summary['incomplete']}"
        )
    return 1 if errors else 0


async def _main(args: argparse.Namespace) -> int:
    settings = load_settings()
    configure_logging(debug=settings.DEBUG)
    container = build_container(settings)
    try:
        return await run(container, args)
    finally:
        await container.aclose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        return asyncio.run(_main(args))
    except ConfigurationError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
