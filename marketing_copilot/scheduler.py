"""
Scheduler for recommendation housekeeping

Uses APScheduler to run the daily jobs that keep the recommendation log and
learning store current.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
import asyncio
from typing import List

from marketing_copilot.config import get_settings
from marketing_copilot.models.base import get_db
from marketing_copilot.models.recommendation_log import RecommendationLog
from marketing_copilot.services.learning_service import LearningService
from marketing_copilot.services.recommendation_tracker import RecommendationTracker
from marketing_copilot.utils.logger import log

settings = get_settings()
scheduler = AsyncIOScheduler(timezone=settings.scheduler_timezone)


def _account_ids(db, **filters) -> List[str]:
    query = db.query(RecommendationLog.account_id).distinct()
    for column, value in filters.items():
        query = query.filter(getattr(RecommendationLog, column) == value)
    return [account_id for (account_id,) in query.all()]


# Jobs

async def expire_recommendations():
    """Expire stale pending recommendations for every account (daily)"""
    db = next(get_db())
    try:
        tracker = RecommendationTracker(db)
        total = 0
        for account_id in _account_ids(db, status="pending"):
            try:
                total += tracker.expire_old_recommendations(account_id)
            except Exception as e:
                db.rollback()
                log.error(f"Expiry sweep failed for account {account_id}: {str(e)}")
        log.info(f"Expiry sweep completed: {total} recommendations expired")
    finally:
        db.close()


async def derive_learnings():
    """Derive pending learnings from successful outcomes (daily)"""
    db = next(get_db())
    try:
        service = LearningService(db)
        total = 0
        for account_id in _account_ids(db, status="implemented"):
            try:
                derived = service.derive_from_outcomes(account_id)
                total += len(derived)
            except Exception as e:
                db.rollback()
                log.error(f"Learning derivation failed for account {account_id}: {str(e)}")
        log.info(f"Learning derivation completed: {total} new learnings pending approval")
    finally:
        db.close()


JOBS = {
    'expire_recommendations': expire_recommendations,
    'derive_learnings': derive_learnings,
}


def setup_scheduler():
    """
    Configure the scheduler.

    - Expiry sweep:        Daily, one hour before derivation
    - Learning derivation: Daily at derive_learnings_hour:derive_learnings_minute
    """
    scheduler.add_job(
        expire_recommendations,
        trigger=CronTrigger(
            hour=(settings.derive_learnings_hour - 1) % 24,
            minute=settings.derive_learnings_minute,
            timezone=settings.scheduler_timezone,
        ),
        id='expire_recommendations',
        name='Recommendation Expiry Sweep',
        replace_existing=True,
        max_instances=1
    )
    scheduler.add_job(
        derive_learnings,
        trigger=CronTrigger(
            hour=settings.derive_learnings_hour,
            minute=settings.derive_learnings_minute,
            timezone=settings.scheduler_timezone,
        ),
        id='derive_learnings',
        name='Learning Derivation Daily',
        replace_existing=True,
        max_instances=1
    )

    log.info(f"Scheduler configured with {len(JOBS)} jobs (timezone: {settings.scheduler_timezone})")


def start_scheduler():
    """Start the scheduler"""
    setup_scheduler()
    scheduler.start()
    log.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler"""
    scheduler.shutdown()
    log.info("Scheduler stopped")


def run_job_now(job_name: str) -> dict:
    """
    Manually run a job outside its schedule

    Args:
        job_name: expire_recommendations or derive_learnings

    Returns:
        Dict with success flag and message or error
    """
    if job_name not in JOBS:
        return {
            'success': False,
            'error': f'Unknown job: {job_name}. Valid options: {", ".join(JOBS.keys())}'
        }

    try:
        log.info(f"Manually triggering {job_name}...")
        asyncio.run(JOBS[job_name]())
        return {
            'success': True,
            'message': f'{job_name} completed'
        }
    except Exception as e:
        log.error(f"Error running {job_name}: {str(e)}")
        return {
            'success': False,
            'error': str(e)
        }


def get_scheduled_jobs() -> list:
    """List scheduled jobs with their next run time"""
    jobs = []
    for job in scheduler.get_jobs():
        next_run = getattr(job, 'next_run_time', None)
        jobs.append({
            'id': job.id,
            'name': job.name,
            'next_run': next_run.isoformat() if next_run else None,
            'trigger': str(job.trigger)
        })
    return jobs


# CLI

if __name__ == "__main__":
    import sys

    if len(sys.argv) < 2:
        print("Usage: python -m marketing_copilot.scheduler <command> [job_name]")
        print("\nCommands:")
        print("  start          Start the scheduler")
        print("  run <job>      Run a job now")
        print("  list           List scheduled jobs")
        print("\nJobs:")
        print(f"  {', '.join(JOBS.keys())}")
        sys.exit(1)

    command = sys.argv[1]

    if command == "start":
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        start_scheduler()
        try:
            loop.run_forever()
        except (KeyboardInterrupt, SystemExit):
            stop_scheduler()

    elif command == "run":
        if len(sys.argv) < 3:
            print("Error: Please specify a job name")
            sys.exit(1)
        result = run_job_now(sys.argv[2])
        if result['success']:
            print(result['message'])
        else:
            print(f"Error: {result['error']}")
            sys.exit(1)

    elif command == "list":
        setup_scheduler()
        for job in get_scheduled_jobs():
            print(f"{job['id']:<28} {job['name']:<32} {job['trigger']}")

    else:
        print(f"Unknown command: {command}")
        sys.exit(1)
