"""
Celery worker and beat schedule.

Run with:
    celery -A app.worker worker --loglevel=info
    celery -A app.worker beat --loglevel=info
"""
import logging

from celery import Celery
from celery.schedules import crontab

from app.core.config import CELERY_BROKER_URL, CELERY_TIMEZONE, RENEWAL_SCHEDULE_HOUR
from app.core.subscription_renewal import renew_subscriptions
from app.db.session import SessionLocal

logger = logging.getLogger(__name__)

celery_app = Celery("harvest", broker=CELERY_BROKER_URL)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=CELERY_TIMEZONE,
    enable_utc=True,
    task_acks_late=True,
    task_time_limit=60 * 60, # 1 hour
)

celery_app.conf.beat_schedule = {
    # Daily renewal of due subscriptions
    "renew-subscriptions-daily": {
        "task": "app.worker.renew_subscriptions_task",
        "schedule": crontab(hour=RENEWAL_SCHEDULE_HOUR, minute=0),
        "options": {"expires": 60.0 * 60.0}, # Skip the run if it could not start within an hour
    },
}


@celery_app.task(name="app.worker.renew_subscriptions_task")
def renew_subscriptions_task():
    """Renew every due subscription and return the run's counters."""
    db = SessionLocal()
    try:
        report = renew_subscriptions(db)
    except Exception:
        logger.error("Subscription renewal run failed", exc_info=True)
        raise
    finally:
        db.close()
    return report.model_dump()
