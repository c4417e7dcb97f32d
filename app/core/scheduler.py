from datetime import datetime, timedelta, timezone
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.redis import RedisJobStore
from app.core.config import settings
from app.config.constants import (
    SETTLEMENT_JOB_ID,
    SETTLEMENT_RETRY_JOB_ID,
    SCHEDULER_MAX_RETRIES,
    SCHEDULER_RETRY_DELAY_BASE_MINUTES,
)
from app.db.session import AsyncSessionLocal
import logging
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


async def settlement_sweep_job(attempt: int = 0) -> dict:
    """
    Periodic job driving overdue date orders to a terminal state.
    Runs every SETTLEMENT_INTERVAL_MINUTES (hourly by default).

    Per-order failures are part of the returned summary and are simply picked
    up by the next run. Only a failure of the sweep as a whole (e.g. the
    database is unreachable) schedules a retry with exponential backoff.
    """
    from app.services.notification_service import NotificationDispatcher
    from app.services.settlement_service import SettlementService

    logger.info(f"Starting settlement sweep job (attempt {attempt + 1})...")
    try:
        async with AsyncSessionLocal() as session:
            service = SettlementService(session, notifier=NotificationDispatcher())
            result = await service.run_settlement_sweep()
    except Exception:
        logger.exception("Settlement sweep job failed")
        schedule_sweep_retry(attempt + 1)
        return {"processed": 0, "errors": ["sweep failed"]}

    if result.errors:
        logger.warning(f"Settlement sweep reported {len(result.errors)} order errors: {result.errors}")
    return result.to_dict()


def retry_delay(attempt: int) -> timedelta:
    """Exponential backoff: 1, 2, 4 minutes."""
    return timedelta(minutes=SCHEDULER_RETRY_DELAY_BASE_MINUTES * 2 ** (attempt - 1))


def schedule_sweep_retry(attempt: int) -> bool:
    if attempt > SCHEDULER_MAX_RETRIES:
        logger.error(f"Settlement sweep gave up after {SCHEDULER_MAX_RETRIES} retries; next regular run will pick up")
        return False
    run_date = datetime.now(timezone.utc) + retry_delay(attempt)
    try:
        scheduler.add_job(
            settlement_sweep_job,
            'date',
            run_date=run_date,
            args=[attempt],
            id=SETTLEMENT_RETRY_JOB_ID,
            replace_existing=True,
        )
        logger.info(f"Settlement sweep retry {attempt} scheduled for {run_date.isoformat()}")
        return True
    except Exception as e:
        logger.error(f"Failed to schedule settlement sweep retry: {e}")
        return False


# Configure Redis Job Store
redis_url_str = str(settings.REDIS_URL)
parsed_redis = urlparse(redis_url_str)

# RedisJobStore initiates Redis(db=..., **kwargs)
# We need to extract: host, port, password, db
redis_kwargs = {
    'host': parsed_redis.hostname or 'localhost',
    'port': parsed_redis.port or 6379,
    'password': parsed_redis.password,
}

# DB is typically path '/0' -> 0
db_val = 0
if parsed_redis.path and parsed_redis.path != '/':
    try:
        db_val = int(parsed_redis.path.lstrip('/'))
    except ValueError:
        pass

jobstores = {
    'default': RedisJobStore(
        jobs_key='dinedate:jobs',
        run_times_key='dinedate:run_times',
        db=db_val,
        **redis_kwargs
    )
}

scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    timezone="UTC",
    job_defaults={
        'coalesce': True,  # Collapse missed runs into one
        'max_instances': 1,
        'misfire_grace_time': 300,
    },
)


async def start_scheduler():
    """Start the scheduler."""
    if not scheduler.running:
        scheduler.add_job(
            settlement_sweep_job,
            'interval',
            minutes=settings.SETTLEMENT_INTERVAL_MINUTES,
            id=SETTLEMENT_JOB_ID,
            replace_existing=True
        )

        scheduler.start()
        logger.info("APScheduler started.")

async def shutdown_scheduler():
    """Shutdown the scheduler."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("APScheduler shut down.")
