"""Scheduled radar refresh and retention cleanup"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional
import logging
import threading

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from radar_app.config import Settings, get_settings
from radar_app.logging_config import setup_logging
from radar_app.models.radar import Snapshot
from radar_app.services.pipeline import AcquisitionPipeline, AcquisitionResult, build_pipeline
from radar_app.services.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

UPDATE_JOB_ID = "radar_update"
CLEANUP_JOB_ID = "radar_cleanup"


class CycleInProgressError(RuntimeError):
    """A refresh was requested while another cycle was still running."""


@dataclass(frozen=True)
class CycleResult:
    snapshot: Snapshot
    acquisition: AcquisitionResult


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RadarScheduler:
    """
    Runs one acquisition cycle at startup and then every
    ``update_interval_minutes``, plus a periodic retention cleanup.

    Cycles never overlap: APScheduler allows one instance of the job, and a
    non-blocking lock makes a manual refresh skip (or report busy) while a
    scheduled cycle is still in flight.
    """

    def __init__(
        self,
        pipeline: AcquisitionPipeline,
        store: SnapshotStore,
        settings: Settings,
        scheduler: Optional[BaseScheduler] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.pipeline = pipeline
        self.store = store
        self.settings = settings
        self.scheduler = scheduler if scheduler is not None else BackgroundScheduler(timezone=timezone.utc)
        self._clock = clock or _utc_now
        self._cycle_lock = threading.Lock()

    @property
    def is_running_cycle(self) -> bool:
        return self._cycle_lock.locked()

    def _run_cycle(self) -> CycleResult:
        logger.info("Fetching latest radar data...")
        acquisition = self.pipeline.acquire()
        snapshot = Snapshot.create(
            acquisition.points,
            source_label=acquisition.source_label,
            timestamp=self._clock(),
        )
        self.store.store_snapshot(snapshot)
        result = CycleResult(snapshot=snapshot, acquisition=acquisition)
        logger.info(
            "Radar data updated: %d points from %s",
            snapshot.total_points, snapshot.source_label,
        )
        return result

    def refresh(self) -> CycleResult:
        """
        Run one cycle now and return it.

        Raises:
            CycleInProgressError: another cycle holds the lock
        """
        if not self._cycle_lock.acquire(blocking=False):
            raise CycleInProgressError("a radar update is already running")
        try:
            return self._run_cycle()
        finally:
            self._cycle_lock.release()

    def update_radar_data(self) -> Optional[Snapshot]:
        """Scheduled job body; returns None when skipped or failed."""
        if not self.store.ready:
            logger.warning("Database not initialized, skipping radar update")
            return None
        try:
            return self.refresh().snapshot
        except CycleInProgressError:
            logger.info("Previous radar update still running, skipping this cycle")
            return None
        except Exception:
            logger.exception("Error updating radar data")
            return None

    def cleanup_old_data(self) -> Optional[dict]:
        if not self.store.ready:
            return None
        try:
            return self.store.cleanup_old_data(self.settings.retention_hours)
        except Exception:
            logger.exception("Error cleaning up old radar data")
            return None

    def start(self, run_immediately: bool = True) -> None:
        """Register both jobs and start the underlying scheduler."""
        logger.info("Starting radar scheduler...")

        update_kwargs = {}
        if run_immediately:
            # First cycle fires as soon as the scheduler starts
            update_kwargs["next_run_time"] = self._clock()

        self.scheduler.add_job(
            self.update_radar_data,
            trigger=IntervalTrigger(minutes=self.settings.update_interval_minutes),
            id=UPDATE_JOB_ID,
            name="Radar Data Update",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **update_kwargs,
        )
        self.scheduler.add_job(
            self.cleanup_old_data,
            trigger=IntervalTrigger(minutes=self.settings.cleanup_interval_minutes),
            id=CLEANUP_JOB_ID,
            name="Radar Data Cleanup",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        logger.info("Scheduler jobs:")
        for job in self.scheduler.get_jobs():
            logger.info("  - %s: %s", job.name, job.trigger)

        self.scheduler.start()

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Radar scheduler stopped")


def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)
    logger.info("Starting standalone radar scheduler")

    store = SnapshotStore(settings.database_url_resolved)
    store.init_schema()
    scheduler = RadarScheduler(
        build_pipeline(settings),
        store,
        settings,
        scheduler=BlockingScheduler(timezone=timezone.utc),
    )
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler interrupted, shutting down...")
        scheduler.stop()
    finally:
        store.close()


if __name__ == "__main__":
    main()
