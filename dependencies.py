"""
Wiring for the rendering core and the FastAPI dependency that exposes it.
"""

from fastapi import Request

from compositor import Compositor
from config import RENDER_BACKEND
from database import SessionLocal, init_db
from job_store import JobStore
from scheduler import JobScheduler, ThreadDispatcher
from services import Concatenator, FFmpegTranscoder, MediaFetcher, SegmentRenderer
from templates import default_template_store


def build_scheduler(dispatcher=None, session_factory=SessionLocal, template_store=None) -> JobScheduler:
    """Assemble a scheduler over the configured database and ffmpeg binary."""
    if session_factory is SessionLocal:
        init_db()
    if dispatcher is None:
        if RENDER_BACKEND == "celery":
            from tasks import CeleryDispatcher
            dispatcher = CeleryDispatcher()
        else:
            dispatcher = ThreadDispatcher()

    transcoder = FFmpegTranscoder()
    fetcher = MediaFetcher()
    return JobScheduler(
        store=JobStore(session_factory),
        segment_renderer=SegmentRenderer(transcoder, Compositor(), fetcher),
        concatenator=Concatenator(transcoder),
        template_store=template_store or default_template_store(),
        dispatcher=dispatcher,
        fetcher=fetcher,
    )


def get_scheduler(request: Request) -> JobScheduler:
    """Dependency for FastAPI to get the application's scheduler."""
    return request.app.state.scheduler
