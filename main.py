import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import CORS_ORIGINS, LOG_FORMAT, LOG_LEVEL
from dependencies import build_scheduler, get_scheduler
from routers import jobs, templates
from scheduler import JobScheduler
from schemas import HealthResponse

# --------------------------------------------------------------------------
# --- Configuration & Setup ---
# --------------------------------------------------------------------------

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # built lazily so importing this module has no side effects
    if app.state.scheduler is None:
        app.state.scheduler = build_scheduler()
        logging.info("🎬 ClipCraft renderer ready")
    yield
    dispatcher = getattr(app.state.scheduler, "dispatcher", None)
    if hasattr(dispatcher, "shutdown"):
        dispatcher.shutdown(wait=False)
        logging.info("🛑 Render dispatcher stopped")


def create_app(scheduler: JobScheduler = None) -> FastAPI:
    app = FastAPI(
        title="ClipCraft Video Renderer",
        description="Renders short MP4 videos from declarative segment lists, asynchronously.",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        # same status as an invalid configuration
        messages = [error.get("msg", "invalid value") for error in exc.errors()]
        return JSONResponse(status_code=400, content={"detail": "Invalid request: " + "; ".join(messages)})

    app.state.scheduler = scheduler
    app.include_router(jobs.router)
    app.include_router(templates.router)

    # ----------------------------------------------------------------------
    # --- Service Endpoints ---
    # ----------------------------------------------------------------------

    @app.get("/")
    def read_root():
        return {"status": "🚀 ClipCraft renderer is running!"}

    @app.get("/health", response_model=HealthResponse)
    def health(scheduler: JobScheduler = Depends(get_scheduler)):
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc),
            "active_jobs": scheduler.store.count_active(),
            "total_jobs": len(scheduler.list()),
        }

    return app


app = create_app()
