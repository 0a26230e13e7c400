# tests/conftest.py

import os
import sys

import pytest
from PIL import Image

# Add the parent directory to the Python path so we can import from it
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import models  # noqa: E402,F401  (registers the jobs table)
from compositor import Compositor  # noqa: E402
from database import Base, make_engine, make_session_factory  # noqa: E402
from exceptions import TranscoderError  # noqa: E402
from job_store import JobStore  # noqa: E402
from scheduler import JobScheduler  # noqa: E402
from services import Concatenator, MediaFetcher, SegmentRenderer  # noqa: E402
from templates import default_template_store  # noqa: E402


class FakeTranscoder:
    """Records every ffmpeg command and writes its output file instead of encoding."""

    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)

    @property
    def descriptions(self):
        return [description for description, _ in self.calls]

    def run(self, stream, description="ffmpeg"):
        args = stream.get_args()
        self.calls.append((description, args))
        if description in self.fail_on:
            raise TranscoderError(f"{description} failed: Invalid data found when processing input")
        # the command line is unique per job, which makes outputs distinguishable
        with open(args[-1], "w", encoding="utf-8") as f:
            f.write(" ".join(args))


class ManualDispatcher:
    """Collects dispatched job ids; tests run them explicitly."""

    def __init__(self):
        self.dispatched = []
        self.stopped = False

    def dispatch(self, job_id, run):
        self.dispatched.append(job_id)

    def shutdown(self, wait=True):
        self.stopped = True


@pytest.fixture
def store():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield JobStore(make_session_factory(engine))
    engine.dispose()


@pytest.fixture
def transcoder():
    return FakeTranscoder()


@pytest.fixture
def dispatcher():
    return ManualDispatcher()


@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / "a.jpg"
    Image.new("RGB", (320, 240), (200, 30, 30)).save(path)
    return str(path)


@pytest.fixture
def make_scheduler(tmp_path, store, dispatcher):
    def factory(transcoder, dispatcher=dispatcher, segment_renderer=None, template_store=None):
        fetcher = MediaFetcher(uploads_dir=str(tmp_path / "uploads"))
        return JobScheduler(
            store=store,
            segment_renderer=segment_renderer or SegmentRenderer(transcoder, Compositor(), fetcher),
            concatenator=Concatenator(transcoder),
            template_store=template_store or default_template_store(),
            dispatcher=dispatcher,
            fetcher=fetcher,
            temp_root=str(tmp_path / "temp"),
            output_root=str(tmp_path / "outputs"),
        )
    return factory


@pytest.fixture
def scheduler(make_scheduler, transcoder):
    return make_scheduler(transcoder)
