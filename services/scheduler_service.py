import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import config
from database import SessionLocal
from services.project_sync_service import ProjectSyncService
from utils.structured_logging import sync_logger

logger = logging.getLogger("projectsync.scheduler")


class SchedulerService:
    def __init__(self):
        self.scheduler = AsyncIOScheduler()

    def start(self):
        """
        Start the scheduler and add jobs.
        """
        if not self.scheduler.running:
            # Give unmapped projects a remote folder
            self.scheduler.add_job(
                self.reconcile_orphans_job,
                IntervalTrigger(minutes=config.RECONCILE_INTERVAL_MINUTES),
                id="reconcile_orphans",
                replace_existing=True,
                max_instances=1,
            )

            self.scheduler.start()
            logger.info("Scheduler started.")

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler stopped.")

    def reconcile_orphans_job(self):
        """
        Job wrapper to handle database session.
        """
        sync_logger.info(action="reconcile_job", status="started", message="Running orphan reconciliation job")
        db = SessionLocal()
        try:
            outcomes = ProjectSyncService(db).reconcile_orphans()
            errors = sum(1 for o in outcomes if o.status == "error")
            sync_logger.info(
                action="reconcile_job",
                status="success" if not errors else "partial",
                message=f"Reconciled {len(outcomes)} projects",
                processed=len(outcomes),
                errors=errors,
            )
        except Exception as e:
            sync_logger.error(action="reconcile_job", message="Error in reconciliation job", error=e)
        finally:
            db.close()


scheduler_service = SchedulerService()
