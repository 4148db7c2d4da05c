#!/usr/bin/env python3
"""Replay a recorded track against a geoflow collector.

Reads fixes from a JSON file (an array) or a JSON-lines file.  Each fix is
an object with ``latitude``/``longitude``/``accuracy`` and optionally
``altitude``, ``heading``, ``speed``; an object with an ``error`` key
(``1``, ``2`` or ``3``) replays a provider error instead.

Example::

    python scripts/replay_track.py track.jsonl --user field_unit-7 \
        --base-url http://localhost:8080/api/v1/tracking --interval 0.5
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from geoflow import (  # noqa: E402
    GeoflowConfig,
    GeoflowTracker,
    GeoflowValidationError,
    PushLocationProvider,
    StaticPermissionService,
)


def _load_fixes(path: Path) -> list[dict[str, Any]]:
    text = path.read_text(encoding="utf-8").strip()
    if not text:
        return []
    if text.startswith("["):
        data = json.loads(text)
        if not isinstance(data, list):
            raise SystemExit(f"{path}: expected a JSON array")
        return [item for item in data if isinstance(item, dict)]
    return [json.loads(line) for line in text.splitlines() if line.strip()]


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay a recorded track against a geoflow collector.")
    parser.add_argument("track", type=Path, help="JSON or JSON-lines file with recorded fixes")
    parser.add_argument("--user", required=True, help="identity to register for the replay")
    parser.add_argument("--base-url", help="collector API base URL (default: GEOFLOW_BASE_URL or built-in)")
    parser.add_argument("--storage", type=Path, help="JSON file for durable local storage")
    parser.add_argument("--interval", type=float, default=1.0, help="seconds between replayed fixes")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return parser.parse_args(argv)


async def _replay(args: argparse.Namespace) -> int:
    overrides: dict[str, Any] = {}
    if args.base_url:
        overrides["base_url"] = args.base_url
    if args.storage:
        overrides["storage_path"] = args.storage
    config = GeoflowConfig.from_env(**overrides)

    fixes = _load_fixes(args.track)
    provider = PushLocationProvider()

    async with GeoflowTracker(config, provider, permissions=StaticPermissionService()) as tracker:
        await tracker.check_permissions()
        try:
            await tracker.submit_identity(args.user)
        except GeoflowValidationError as exc:
            print(f"identity rejected: {exc}", file=sys.stderr)
            return 2

        tracker.start()
        for fix in fixes:
            if "error" in fix:
                provider.fail(int(fix["error"]))
            else:
                provider.emit(fix)
            await asyncio.sleep(args.interval)
        tracker.stop()
        outcomes = await tracker.drain()
        snapshot = tracker.snapshot()

    delivered = sum(1 for outcome in outcomes if outcome.delivered)
    print(
        json.dumps(
            {
                "identity": snapshot.identity,
                "mode": snapshot.identity_mode,
                "sessions": snapshot.session_count,
                "replayed": len(fixes),
                "delivered": delivered,
                "failed": len(outcomes) - delivered,
                "local_log": snapshot.local_log_size,
                "last_error": snapshot.last_error,
            },
            indent=2,
        )
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(_replay(args))


if __name__ == "__main__":
    raise SystemExit(main())
