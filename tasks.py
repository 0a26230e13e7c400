# tasks.py

from celery import Celery
import logging

from config import CELERY_BROKER_URL, CELERY_RESULT_BACKEND, LOG_FORMAT, LOG_LEVEL

celery = Celery('tasks', broker=CELERY_BROKER_URL, backend=CELERY_RESULT_BACKEND)
logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)

_scheduler = None


def _worker_scheduler():
    """One scheduler per worker process, sharing the job table with the API."""
    global _scheduler
    if _scheduler is None:
        from dependencies import build_scheduler
        _scheduler = build_scheduler(dispatcher=CeleryDispatcher())
    return _scheduler


@celery.task
def render_video_task(job_id: str):
    """
    Background task that renders one job and records the outcome in the job table.
    """
    logging.info(f"📝 Worker received job {job_id}")
    _worker_scheduler().run_job(job_id)


class CeleryDispatcher:
    """Sends render tasks to Celery workers instead of running them in-process."""

    def dispatch(self, job_id: str, run):
        return render_video_task.delay(job_id)
