# src/tradearena/matchmaking/matchmaker.py

"""
Background matchmaking service.

Every SCAN_INTERVAL_MS the matchmaker:
1. purges matched queue entries whose grace window has passed,
2. widens the rating range of players who have waited long enough,
3. pairs compatible players oldest-first and creates ranked battles,
4. tells both players about their match.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tradearena.config import Settings, get_settings
from tradearena.matchmaking.algorithm import pair_candidates
from tradearena.services import matchmaking_service, queue_service
from tradearena.services.notifier import Notifier
from tradearena.utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class ScanReport:
    """What a single scan did. Mostly useful for tests and debug logs."""

    skipped: bool = False
    failed: bool = False
    purged: int = 0
    searching: int = 0
    expanded: int = 0
    pairs_created: int = 0
    pairs_failed: int = 0


class Matchmaker:
    """Owns the periodic scan task and its dependencies."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Notifier,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._notifier = notifier
        self._settings = settings or get_settings()
        self._clock = clock
        self._scan_lock = asyncio.Lock()
        self._worker_task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    def start(self) -> None:
        """Start the background scan loop (no-op if already running)."""
        if self.is_running:
            logger.warning("Matchmaker already running")
            return
        self._stop_event.clear()
        self._worker_task = asyncio.create_task(self._poll_loop())
        logger.info(
            "Matchmaker started (scanning every %d ms)",
            self._settings.scan_interval_ms,
        )

    async def stop(self) -> None:
        """Signal the loop to stop and wait for it to finish."""
        self._stop_event.set()
        task, self._worker_task = self._worker_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Matchmaker stopped")

    async def _poll_loop(self) -> None:
        """Scan, then sleep for the interval or until stopped. Runs immediately on start."""
        interval = self._settings.scan_interval_ms / 1000
        while not self._stop_event.is_set():
            await self.scan_once()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass

    async def scan_once(self) -> ScanReport:
        """
        Run one full scan.

        Scans never overlap: a call made while another scan is running
        returns immediately with `skipped=True`. No exception escapes, so the
        loop survives any number of failed scans.
        """
        if self._scan_lock.locked():
            logger.debug("Previous scan still running, skipping this one")
            return ScanReport(skipped=True)

        async with self._scan_lock:
            report = ScanReport()
            try:
                await self._scan(report)
            except Exception as e:
                report.failed = True
                logger.error("Error in matchmaking scan: %s", e, exc_info=True)
            return report

    async def _scan(self, report: ScanReport) -> None:
        settings = self._settings
        now = self._clock()

        async with self._session_factory() as db:
            report.purged = await queue_service.purge_matched(
                db, now - timedelta(milliseconds=settings.match_grace_period_ms)
            )
            if report.purged:
                logger.debug("Purged %d matched queue entries", report.purged)

            entries = await queue_service.list_searching(db)
            report.searching = len(entries)
            if len(entries) < 2:
                return

            stored = [queue_service.to_candidate(entry) for entry in entries]
            for entry in entries:
                widened = entry.expand_range(
                    now, settings.expansion_interval_ms, settings.expansion_step
                )
                if widened:
                    report.expanded += 1
                    logger.debug(
                        "Expanded search range for %s to [%d, %d]",
                        entry.username,
                        entry.rating_min,
                        entry.rating_max,
                        extra={"user_id": entry.user_id},
                    )

            # Snapshot before committing: a rollback would expire the rows.
            pool = [queue_service.to_candidate(entry) for entry in entries]

            if report.expanded:
                try:
                    await db.commit()
                except SQLAlchemyError as e:
                    await db.rollback()
                    # Pair only on ranges that are actually stored
                    pool = stored
                    report.expanded = 0
                    logger.warning(
                        "Could not persist range expansions, pairing on stored "
                        "ranges and retrying next scan: %s",
                        e,
                    )

            for first, second in pair_candidates(pool):
                battle = await matchmaking_service.commit_pair(
                    db, first, second, settings=settings, now=now
                )
                if battle is None:
                    report.pairs_failed += 1
                    continue
                report.pairs_created += 1
                await matchmaking_service.announce_match(
                    self._notifier, battle.session_id, first, second
                )

        if report.pairs_created or report.pairs_failed:
            logger.info(
                "Matchmaking scan finished",
                extra={
                    "searching": report.searching,
                    "pairs_created": report.pairs_created,
                    "pairs_failed": report.pairs_failed,
                },
            )
