"""
Job scheduling for the ClipCraft rendering backend.

`JobScheduler.submit` validates a request, records the job as queued and hands
the job id to a dispatcher; the dispatcher runs `JobScheduler.run_job` in the
background, which renders every segment in order, concatenates the clips and
records the outcome in the JobStore. The job record is the only channel
between the two sides.
"""

import os
import uuid
import shutil
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

import pydantic

from config import MAX_CONCURRENT_JOBS, OUTPUTS_DIR, RENDER_PROGRESS_BUDGET, TEMP_DIR
from exceptions import ClipCraftError, StorageError, ValidationError
from job_store import JobStore
from schemas import JobSnapshot, RenderConfig, TargetSpec
from services import MediaFetcher
from templates import TemplateStore, resolve_template


class ThreadDispatcher:
    """Runs render tasks on an in-process thread pool."""

    def __init__(self, max_workers: int = MAX_CONCURRENT_JOBS):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="render")

    def dispatch(self, job_id: str, run):
        return self._executor.submit(run, job_id)

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)


# Top-level fields read before validation, accepted in either spelling.
_TEMPLATE_FIELD_ALIASES = {"templateId": "template_id", "backgroundAudio": "background_audio"}


def _format_validation_error(error: pydantic.ValidationError) -> str:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        messages.append(f"{location}: {item['msg']}" if location else item["msg"])
    return "Invalid configuration: " + "; ".join(messages)


class JobScheduler:
    """Owns the job lifecycle: queued -> processing -> completed | error."""

    def __init__(
        self,
        store: JobStore,
        segment_renderer,
        concatenator,
        template_store: Optional[TemplateStore] = None,
        dispatcher=None,
        fetcher: Optional[MediaFetcher] = None,
        temp_root: str = TEMP_DIR,
        output_root: str = OUTPUTS_DIR,
        progress_budget: int = RENDER_PROGRESS_BUDGET,
    ):
        self.store = store
        self.segment_renderer = segment_renderer
        self.concatenator = concatenator
        self.template_store = template_store
        self.dispatcher = dispatcher or ThreadDispatcher()
        self.fetcher = fetcher or MediaFetcher()
        self.temp_root = temp_root
        self.output_root = output_root
        self.progress_budget = progress_budget

    # --- Request side ---

    def build_config(self, payload: Dict[str, Any]) -> RenderConfig:
        """Resolve an optional template and validate the request. Never touches the store."""
        if isinstance(payload, RenderConfig):
            return payload
        if not isinstance(payload, dict):
            raise ValidationError("Invalid configuration: expected a JSON object")
        payload = dict(payload)
        for camel, snake in _TEMPLATE_FIELD_ALIASES.items():
            if camel in payload and snake not in payload:
                payload[snake] = payload.pop(camel)

        template_id = payload.get("template_id")
        if template_id:
            if payload.get("segments"):
                raise ValidationError("Invalid configuration: give either segments or template_id, not both")
            if self.template_store is None:
                raise ValidationError("Templates are not available")
            template = self.template_store.get(template_id)
            payload["segments"] = resolve_template(template, payload.get("variables"))
            if not payload.get("resize"):
                payload["resize"] = f"{template.width}x{template.height}"
            if not payload.get("fps"):
                payload["fps"] = template.fps
            if not payload.get("background_audio") and template.background_audio:
                payload["background_audio"] = template.background_audio
        elif not payload.get("segments"):
            raise ValidationError("Invalid configuration: segments or template_id are required")

        try:
            return RenderConfig.model_validate(payload)
        except pydantic.ValidationError as e:
            raise ValidationError(_format_validation_error(e)) from e

    def submit(self, payload) -> str:
        """Validate, record the job as queued and schedule its render. Returns the job id."""
        config = self.build_config(payload)
        job_id = str(uuid.uuid4())
        self.store.create(job_id, config.model_dump(mode="json"))
        try:
            self.dispatcher.dispatch(job_id, self.run_job)
        except Exception as e:
            logging.error(f"Failed to dispatch job {job_id}: {e}")
            self.store.fail(job_id, e)
            raise
        logging.info(f"✨ Job {job_id} queued with {len(config.segments)} segment(s), {config.total_duration:g}s")
        return job_id

    def status(self, job_id: str) -> JobSnapshot:
        return self.store.get(job_id)

    def list(self) -> List[JobSnapshot]:
        return self.store.list()

    def remove(self, job_id: str):
        """Delete the record and, best effort, its output file. An in-flight render is not cancelled."""
        snapshot = self.store.delete(job_id)
        self._remove_file(snapshot.output_path or self.output_path(job_id))
        logging.info(f"🗑️ Job {job_id} deleted")

    def output_path(self, job_id: str) -> str:
        return os.path.join(self.output_root, f"video_{job_id}.mp4")

    # --- Render side ---

    def run_job(self, job_id: str):
        """Background render task. Never raises; every failure ends in the error state."""
        snapshot = self.store.start(job_id)
        if snapshot is None:
            logging.warning(f"Job {job_id} no longer exists, skipping render")
            return
        if snapshot.status != "processing":
            return

        logging.info(f"🎬 Job {job_id} started")
        job_dir = os.path.join(self.temp_root, job_id)
        output_path = self.output_path(job_id)
        try:
            config = RenderConfig.model_validate(snapshot.config)
            target = TargetSpec.from_config(config)
            self._make_dir(job_dir)

            clips = []
            total = len(config.segments)
            for index, segment in enumerate(config.segments):
                clips.append(self.segment_renderer.render(segment, target, job_dir, index))
                self.store.set_progress(job_id, round((index + 1) / total * self.progress_budget))
                logging.info(f"Job {job_id}: segment {index + 1}/{total} rendered")

            audio_path = None
            if config.background_audio:
                audio_path = self.fetcher.fetch(config.background_audio, job_dir, "audio")

            self._make_dir(self.output_root)
            self.concatenator.concatenate(
                clips, output_path, target, audio_path=audio_path, duration=config.total_duration
            )
            try:
                file_size = os.path.getsize(output_path)
            except OSError as e:
                raise StorageError(f"Could not stat output {output_path}: {e}") from e

            if self.store.complete(job_id, output_path, file_size) is None:
                logging.info(f"Job {job_id} was deleted while rendering, discarding output")
                self._remove_file(output_path)
                return
            logging.info(f"✅ Job {job_id} completed: {output_path} ({file_size} bytes)")

        except Exception as e:
            if isinstance(e, ClipCraftError):
                logging.error(f"❌ Job {job_id} failed: {e}")
            else:
                logging.exception(f"❌ Job {job_id} failed with an unexpected error")
            self._remove_file(output_path)
            self.store.fail(job_id, e)
        finally:
            self._cleanup(job_dir)

    def _make_dir(self, path: str):
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Could not create directory {path}: {e}") from e

    def _remove_file(self, path: str):
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            logging.warning(f"Could not delete {path}: {e}")

    def _cleanup(self, job_dir: str):
        try:
            if os.path.exists(job_dir):
                shutil.rmtree(job_dir)
        except OSError as e:
            logging.warning(f"Could not delete job directory {job_dir}: {e}")
