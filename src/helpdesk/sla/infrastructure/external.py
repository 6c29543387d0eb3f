"""
SLA Background Scanning
========================

Background execution of breach scans:
- run_breach_scan: one pass over every owner with active policies
- APScheduler wrapper for recurring scans
"""

from typing import Awaitable, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from helpdesk.shared.infrastructure.logging import get_logger, log_latency
from helpdesk.sla.application import ISLAPolicyRepository, SLABreachScanner
from helpdesk.sla.domain import BreachCheckResult

logger = get_logger(__name__)


async def run_breach_scan(
    policy_repository: ISLAPolicyRepository,
    scanner: SLABreachScanner
) -> Dict[str, Optional[BreachCheckResult]]:
    """
    Scan every owner that has at least one active policy.

    Owners are independent: a scan that fails outright for one owner is
    logged and recorded as None, and the remaining owners are still scanned.

    Returns:
        Mapping of owner ID to its scan result (None if the scan failed)
    """
    owner_ids = await policy_repository.find_owner_ids_with_active_policies()
    results: Dict[str, Optional[BreachCheckResult]] = {}

    for owner_id in owner_ids:
        try:
            with log_latency(logger, "sla_breach_scan", owner_id=owner_id):
                results[owner_id] = await scanner.check_breaches(owner_id)
        except Exception:
            logger.exception("SLA breach scan failed", extra={"owner_id": owner_id})
            results[owner_id] = None

    return results


class SLABreachScheduler:
    """
    Runs the breach scan job on a fixed interval inside the event loop.

    One run at a time; missed runs collapse into a single catch-up run.
    """

    def __init__(self, interval_seconds: int = 300, misfire_grace_seconds: int = 60):
        self.interval_seconds = interval_seconds
        self.misfire_grace_seconds = misfire_grace_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[object]]) -> None:
        """Schedule ``job_func`` and start the scheduler. No-op if running."""
        if self._running:
            logger.warning("SLA breach scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()

        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id="sla_breach_scan",
            name="SLA Breach Scan",
            misfire_grace_time=self.misfire_grace_seconds,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self._scheduler.start()
        self._running = True

        logger.info(
            "SLA breach scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def stop(self) -> None:
        """Shut the scheduler down without waiting for a running scan."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("SLA breach scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Whether the scheduler has been started and not stopped."""
        return self._running
