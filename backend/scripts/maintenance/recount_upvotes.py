import argparse
import asyncio
from typing import List, Tuple

from sqlalchemy import text

from campus_voice.core.logging import configure_logging, get_logger
from campus_voice.db.session import AsyncSessionLocal

logger = get_logger(__name__)


DIVERGENT_COUNTS_SQL = text(
    """
    SELECT t.id, t.upvote_count, COUNT(u.id) AS actual
    FROM tickets t
    LEFT JOIN upvotes u ON u.ticket_id = t.id
    GROUP BY t.id, t.upvote_count
    HAVING t.upvote_count <> COUNT(u.id)
    ORDER BY t.id
    """
)

RECOUNT_SQL = text(
    """
    UPDATE tickets t
    SET upvote_count = sub.actual
    FROM (
        SELECT t2.id, COUNT(u.id) AS actual
        FROM tickets t2
        LEFT JOIN upvotes u ON u.ticket_id = t2.id
        GROUP BY t2.id
    ) sub
    WHERE sub.id = t.id
      AND t.upvote_count <> sub.actual
    """
)


async def _find_divergent() -> List[Tuple[str, int, int]]:
    async with AsyncSessionLocal() as db:
        rows = (await db.execute(DIVERGENT_COUNTS_SQL)).all()
        return [(str(r.id), int(r.upvote_count), int(r.actual)) for r in rows]


async def _recount() -> int:
    async with AsyncSessionLocal() as db:
        result = await db.execute(RECOUNT_SQL)
        await db.commit()
        return int(result.rowcount or 0)


async def main() -> None:
    parser = argparse.ArgumentParser(description="Compare ticket upvote counters with the upvote records.")
    parser.add_argument("--apply", action="store_true", help="Overwrite divergent counters with the record count.")
    args = parser.parse_args()

    configure_logging()
    divergent = await _find_divergent()
    logger.info("upvote counter divergence | tickets=%s", len(divergent))
    for ticket_id, stored, actual in divergent:
        print(f"[diverged] ticket={ticket_id} upvote_count={stored} upvotes={actual}")

    if not args.apply:
        if divergent:
            print("[dry-run] re-run with --apply to correct the counters")
        return

    updated = await _recount()
    print(f"[recount] updated_tickets={updated}")


if __name__ == "__main__":
    asyncio.run(main())
