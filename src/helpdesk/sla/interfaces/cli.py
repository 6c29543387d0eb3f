"""Run one SLA breach scan against the configured database and exit.

Usage examples:

    helpdesk-sla-scan                          # every owner with active policies
    helpdesk-sla-scan --owner acme --owner globex
    helpdesk-sla-scan --database-url sqlite+aiosqlite:///./helpdesk.db

Prints the scan results as JSON on stdout; logs go to stderr. Exits with
status 1 if the scan failed outright for any owner.
"""

import argparse
import asyncio
import json
import sys
from typing import Dict, List, Optional

from helpdesk.config import get_settings
from helpdesk.infrastructure.database import (
    close_database,
    create_session_maker,
    init_database,
)
from helpdesk.shared.infrastructure.logging import get_logger, setup_logging
from helpdesk.sla.application import SLABreachScanner
from helpdesk.sla.domain import BreachCheckResult
from helpdesk.sla.infrastructure import (
    SQLAlchemySLAPolicyRepository,
    SQLAlchemyTicketRepository,
    run_breach_scan,
)

logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Flag tickets that breached their SLA policy")
    parser.add_argument(
        "--owner",
        action="append",
        dest="owners",
        default=[],
        help="Owner to scan (repeatable). Defaults to every owner with an active policy",
    )
    parser.add_argument("--database-url", default="", help="Override DATABASE_URL")
    return parser.parse_args(argv)


async def _scan(
    database_url: str,
    owners: List[str]
) -> Dict[str, Optional[BreachCheckResult]]:
    settings = get_settings()
    engine = init_database(
        database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )
    try:
        session_maker = create_session_maker(engine)
        policy_repository = SQLAlchemySLAPolicyRepository(session_maker)
        scanner = SLABreachScanner(policy_repository, SQLAlchemyTicketRepository(session_maker))

        if not owners:
            return await run_breach_scan(policy_repository, scanner)

        results: Dict[str, Optional[BreachCheckResult]] = {}
        for owner_id in owners:
            try:
                results[owner_id] = await scanner.check_breaches(owner_id)
            except Exception:
                logger.exception("SLA breach scan failed", extra={"owner_id": owner_id})
                results[owner_id] = None
        return results
    finally:
        await close_database(engine)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    setup_logging(level=settings.log_level, environment=settings.environment, stream=sys.stderr)

    results = asyncio.run(_scan(args.database_url or settings.database_url, args.owners))

    output = {
        owner_id: result.to_dict() if result is not None else {"error": "scan failed"}
        for owner_id, result in results.items()
    }
    print(json.dumps(output, indent=2))

    return 1 if any(result is None for result in results.values()) else 0


if __name__ == "__main__":
    sys.exit(main())
