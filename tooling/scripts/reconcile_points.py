"""Settle interrupted point flows once.

Lists survey completions that never received their award, optionally repairs
them, and settles pending redemptions older than the configured age.

Example:
    python tooling/scripts/reconcile_points.py --repair-completions --older-than 900
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import timedelta
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile survey awards and pending redemptions")
    parser.add_argument(
        "--repair-completions",
        action="store_true",
        help="Issue the missing award for every unawarded completion found.",
    )
    parser.add_argument(
        "--older-than",
        type=int,
        default=None,
        help="Only touch completions and pending redemptions older than this many seconds.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Cap the number of rows examined in this sweep.",
    )
    return parser.parse_args()


async def _run(repair: bool, older_than: int | None, limit: int | None) -> dict[str, int]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from panelpoints_api.core.settings import settings  # type: ignore import-position
    from panelpoints_api.db.session import async_session, engine  # type: ignore import-position
    from panelpoints_api.services.points import (  # type: ignore import-position
        PointsServiceError,
        RedemptionService,
        SurveyCompletionService,
    )

    batch_limit = limit or settings.reconciliation_batch_limit
    age = timedelta(seconds=older_than) if older_than is not None else None
    summary = {"unawarded": 0, "repaired": 0, "repair_failed": 0, "completed": 0, "failed": 0}
    try:
        async with async_session() as session:
            surveys = SurveyCompletionService(session)
            # A failed repair rolls back and expires loaded rows, so keep plain ids.
            unawarded = [
                (completion.id, completion.panelist_id)
                for completion in await surveys.find_unawarded_completions(limit=batch_limit, older_than=age)
            ]
            summary["unawarded"] = len(unawarded)
            for completion_id, panelist_id in unawarded:
                logger.info(
                    "Found completion without award",
                    completion_id=str(completion_id),
                    panelist_id=str(panelist_id),
                )
                if not repair:
                    continue
                try:
                    await surveys.repair_completion_award(completion_id)
                except PointsServiceError as exc:
                    summary["repair_failed"] += 1
                    logger.error("Completion repair failed", completion_id=str(completion_id), error=exc.code)
                else:
                    summary["repaired"] += 1

            outcome = await RedemptionService(session).reconcile_pending(
                older_than=age,
                limit=batch_limit,
            )
            summary["completed"] = len(outcome.completed)
            summary["failed"] = len(outcome.failed)
    finally:
        await engine.dispose()
    return summary


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args.repair_completions, args.older_than, args.limit))
    logger.success("Point reconciliation run completed", **summary)
    return 1 if summary["repair_failed"] else 0


if __name__ == "__main__":
    sys.exit(main())
