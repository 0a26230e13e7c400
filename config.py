"""
Configuration file for the ClipCraft video rendering backend.
Contains all global constants. Every value can be overridden by an
environment variable of the same name.
"""

import os

# --- Paths ---
PROJECT_ROOT = os.getenv("PROJECT_ROOT", os.getcwd())
OUTPUTS_DIR = os.getenv("OUTPUTS_DIR", os.path.join(PROJECT_ROOT, "outputs"))
TEMP_DIR = os.getenv("TEMP_DIR", os.path.join(PROJECT_ROOT, "temp"))
UPLOADS_DIR = os.getenv("UPLOADS_DIR", os.path.join(PROJECT_ROOT, "uploads"))

# --- Persistence & background workers ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clipcraft.db")
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")
RENDER_BACKEND = os.getenv("RENDER_BACKEND", "thread")  # thread | celery
MAX_CONCURRENT_JOBS = int(os.getenv("MAX_CONCURRENT_JOBS", "4"))

# --- Transcoder ---
FFMPEG_BINARY = os.getenv("FFMPEG_BINARY", "ffmpeg")
TRANSCODER_TIMEOUT = float(os.getenv("TRANSCODER_TIMEOUT", "300"))
DOWNLOAD_TIMEOUT = float(os.getenv("DOWNLOAD_TIMEOUT", "60"))
VIDEO_CODEC = os.getenv("VIDEO_CODEC", "libx264")
PIXEL_FORMAT = os.getenv("PIXEL_FORMAT", "yuv420p")
VIDEO_PRESET = os.getenv("VIDEO_PRESET", "veryfast")
VIDEO_CRF = int(os.getenv("VIDEO_CRF", "23"))
AUDIO_CODEC = os.getenv("AUDIO_CODEC", "aac")

# --- Render limits ---
MAX_DURATION = 90.0  # seconds, hard upper bound for a single job
ALLOWED_FPS = (24, 25, 30, 60)
DEFAULT_FPS = 30
DEFAULT_RESIZE = "1080x1080"
MAX_DIMENSION = int(os.getenv("MAX_DIMENSION", "4096"))
RENDER_PROGRESS_BUDGET = 80  # segments fill 0-80, concatenation the rest
TRANSITION_DURATION = float(os.getenv("TRANSITION_DURATION", "0.5"))

# --- Compositor ---
FONT_PATH = os.getenv("FONT_PATH", "")
TEXT_MARGIN = int(os.getenv("TEXT_MARGIN", "60"))
DEFAULT_BACKGROUND_COLOR = "#000000"
DEFAULT_FONT_COLOR = "#ffffff"
DEFAULT_FONT_SIZE = 60

# --- API ---
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
