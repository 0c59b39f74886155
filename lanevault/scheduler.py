"""
APScheduler configuration for lanevault.

Manages:
- The periodic fleet backup run (cron expression from config)
- Daily retention policy enforcement
- Manual run triggers
"""

import logging
from datetime import datetime, timedelta, timezone
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.executors.pool import ThreadPoolExecutor

from lanevault.backup.executor import execute_backup_run, enforce_retention


logger = logging.getLogger(__name__)

BACKUP_JOB_ID = 'fleet_backup'
RETENTION_JOB_ID = 'retention_cleanup'

# Global scheduler instance and Flask app reference
scheduler = None
flask_app = None


def init_scheduler(app):
    """
    Initialize and configure APScheduler.

    Args:
        app: Flask app instance
    """
    global scheduler, flask_app

    if scheduler is not None:
        return scheduler

    # Store Flask app reference for use in background threads
    flask_app = app

    jobstores = {
        'default': SQLAlchemyJobStore(url=app.config['SQLALCHEMY_DATABASE_URI'])
    }

    # One worker: runs are sequential and must never overlap
    executors = {
        'default': ThreadPoolExecutor(max_workers=1)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one instance of a job at a time
        'misfire_grace_time': 3600
    }

    tz = app.config.get('SCHEDULER_TIMEZONE', 'UTC')

    scheduler = BackgroundScheduler(
        jobstores=jobstores,
        executors=executors,
        job_defaults=job_defaults,
        timezone=tz
    )

    scheduler.add_job(
        func=_run_backup_wrapper,
        trigger=CronTrigger.from_crontab(app.config['BACKUP_SCHEDULE_CRON'], timezone=tz),
        id=BACKUP_JOB_ID,
        name='Fleet Backup',
        replace_existing=True
    )

    scheduler.add_job(
        func=_enforce_retention_wrapper,
        trigger=CronTrigger.from_crontab(app.config['RETENTION_SCHEDULE_CRON'], timezone=tz),
        id=RETENTION_JOB_ID,
        name='Daily Retention Cleanup',
        replace_existing=True
    )

    return scheduler


def start_scheduler():
    """
    Start the APScheduler.

    Should be called after Flask app is initialized.
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    if not scheduler.running:
        scheduler.start()
        logger.info(f"APScheduler started (state={scheduler.state})")

        for job in scheduler.get_jobs():
            next_run = job.next_run_time.isoformat() if job.next_run_time else 'N/A'
            logger.info(f"  - {job.id}: {job.name} (next run: {next_run})")
    else:
        logger.info(f"Scheduler already running (state={scheduler.state})")


def stop_scheduler():
    """Stop the APScheduler."""
    if scheduler and scheduler.running:
        scheduler.shutdown()
        logger.info("APScheduler stopped")


def _run_backup_wrapper():
    """
    Run a fleet backup inside the stored app's context.

    Errors are logged here so a broken run never kills the scheduler thread.
    """
    with flask_app.app_context():
        try:
            logger.info("Scheduler executing fleet backup")
            run = execute_backup_run()
            logger.info(f"Fleet backup run {run.id} finished with status: {run.status}")
        except Exception as e:
            logger.exception(f"Scheduled fleet backup failed: {e}")


def _enforce_retention_wrapper():
    with flask_app.app_context():
        try:
            enforce_retention()
        except Exception as e:
            logger.exception(f"Scheduled retention cleanup failed: {e}")


def trigger_backup_now():
    """
    Queue an immediate fleet backup run.

    Raises:
        RuntimeError: If the scheduler is not initialized
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized")

    now = datetime.now(timezone.utc)
    scheduler.add_job(
        func=_run_backup_wrapper,
        trigger=DateTrigger(run_date=now + timedelta(seconds=1)),
        id=f"manual_{int(now.timestamp())}",
        name='Manual: Fleet Backup',
        replace_existing=False
    )

    logger.info("Manually triggered fleet backup")


def get_scheduled_jobs() -> list:
    """
    Get list of all scheduled jobs.

    Returns:
        List of dicts with job information
    """
    if scheduler is None:
        return []

    jobs = []

    for job in scheduler.get_jobs():
        jobs.append({
            'id': job.id,
            'name': job.name,
            'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
            'trigger': str(job.trigger)
        })

    return jobs


def is_scheduler_running() -> bool:
    return scheduler is not None and scheduler.running
