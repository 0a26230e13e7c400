# tests/test_services.py

import os
import subprocess

import pytest
import requests

import services
from compositor import Compositor
from conftest import FakeTranscoder
from exceptions import ConcatenationError, MediaError, SegmentRenderError, TranscoderError
from schemas import ImageSegment, TargetSpec, VideoSegment
from services import Concatenator, FFmpegTranscoder, MediaFetcher, SegmentRenderer

TARGET = TargetSpec(width=640, height=480, fps=30)


def _renderer(transcoder, tmp_path):
    return SegmentRenderer(transcoder, Compositor(), MediaFetcher(uploads_dir=str(tmp_path / "uploads")))


def _filter_graph(args):
    return args[args.index("-filter_complex") + 1]


def test_image_segment_is_looped_scaled_and_padded(tmp_path, transcoder, image_file):
    segment = ImageSegment(kind="image", media_ref=image_file, duration=3, text="Hello", transition="fadein")

    clip = _renderer(transcoder, tmp_path).render(segment, TARGET, str(tmp_path), 0)

    assert clip == str(tmp_path / "clip_000.mp4")
    assert os.path.exists(tmp_path / "frame_000.png")
    (description, args), = transcoder.calls
    assert description == "segment 0"
    assert args[args.index("-loop") + 1] == "1"
    graph = _filter_graph(args)
    assert "scale=640:480:force_original_aspect_ratio=decrease" in graph
    assert "pad=640:480" in graph
    assert "fade=" in graph and "type=in" in graph
    assert args[args.index("-pix_fmt") + 1] == "yuv420p"
    assert args[args.index("-r") + 1] == "30"
    assert "-an" in args


def test_image_segment_without_media_renders_a_card(tmp_path, transcoder):
    segment = ImageSegment(kind="image", duration=2, text="Just text", background_color="navy")
    _renderer(transcoder, tmp_path).render(segment, TARGET, str(tmp_path), 4)
    assert transcoder.descriptions == ["segment 4"]


def test_video_segment_is_trimmed_and_reencoded(tmp_path, transcoder):
    source = tmp_path / "source.mp4"
    source.write_bytes(b"video")
    segment = VideoSegment(kind="video", media_ref=str(source), trim_start=1.5, trim_end=4)

    _renderer(transcoder, tmp_path).render(segment, TARGET, str(tmp_path), 2)

    (_, args), = transcoder.calls
    assert args[args.index("-ss") + 1] == "1.5"
    assert args[args.index("-t") + 1] == "2.5"
    assert str(source) in args
    assert "pad=640:480" in _filter_graph(args)
    assert args[-1] == str(tmp_path / "clip_002.mp4")


def test_video_segment_text_is_overlaid(tmp_path, transcoder):
    source = tmp_path / "source.mp4"
    source.write_bytes(b"video")
    segment = VideoSegment(kind="video", media_ref=str(source), duration=2, text="Caption")

    _renderer(transcoder, tmp_path).render(segment, TARGET, str(tmp_path), 0)

    (_, args), = transcoder.calls
    assert os.path.exists(tmp_path / "overlay_000.png")
    assert "overlay" in _filter_graph(args)


def test_missing_media_is_a_segment_error(tmp_path, transcoder):
    segment = ImageSegment(kind="image", media_ref=str(tmp_path / "missing.jpg"), duration=3)
    with pytest.raises(SegmentRenderError) as excinfo:
        _renderer(transcoder, tmp_path).render(segment, TARGET, str(tmp_path), 3)
    assert excinfo.value.index == 3
    assert isinstance(excinfo.value.cause, MediaError)
    assert transcoder.calls == []


def test_transcoder_failure_is_a_segment_error(tmp_path, image_file):
    transcoder = FakeTranscoder(fail_on={"segment 0"})
    segment = ImageSegment(kind="image", media_ref=image_file, duration=3)
    with pytest.raises(SegmentRenderError, match="Segment 0 failed to render"):
        _renderer(transcoder, tmp_path).render(segment, TARGET, str(tmp_path), 0)


def test_uploads_refs_resolve_under_uploads_dir(tmp_path):
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    (uploads / "pic.png").write_bytes(b"png")
    fetcher = MediaFetcher(uploads_dir=str(uploads))
    assert fetcher.fetch("/uploads/pic.png", str(tmp_path), "media") == str(uploads / "pic.png")


def test_download_writes_into_job_dir(tmp_path, monkeypatch):
    class FakeResponse:
        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def raise_for_status(self):
            pass

        def iter_content(self, chunk_size):
            yield b"abc"
            yield b"def"

    monkeypatch.setattr(services.requests, "get", lambda url, stream, timeout: FakeResponse())
    path = MediaFetcher().fetch("https://example.com/img/photo.jpg?w=1080", str(tmp_path), "media_000")
    assert path == str(tmp_path / "media_000.jpg")
    assert open(path, "rb").read() == b"abcdef"


def test_download_failure_is_a_media_error(tmp_path, monkeypatch):
    def refuse(url, stream, timeout):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(services.requests, "get", refuse)
    with pytest.raises(MediaError, match="Could not download"):
        MediaFetcher().fetch("http://example.invalid/a.jpg", str(tmp_path), "media")


def test_concat_keeps_clip_order(tmp_path, transcoder):
    clips = [str(tmp_path / f"clip_{i:03d}.mp4") for i in range(3)]
    out = str(tmp_path / "out.mp4")

    Concatenator(transcoder).concatenate(clips, out, TARGET)

    (description, args), = transcoder.calls
    assert description == "concatenation"
    inputs = [args[i + 1] for i, arg in enumerate(args) if arg == "-i"]
    assert inputs == clips
    assert "concat=a=0:n=3:v=1" in _filter_graph(args)
    assert os.path.exists(out)


def test_concat_with_background_audio(tmp_path, transcoder):
    clips = [str(tmp_path / "clip_000.mp4")]
    audio = str(tmp_path / "song.mp3")

    Concatenator(transcoder).concatenate(clips, str(tmp_path / "out.mp4"), TARGET, audio_path=audio, duration=3)

    (_, args), = transcoder.calls
    assert args[args.index("-stream_loop") + 1] == "-1"
    assert args[args.index("-acodec") + 1] == "aac"
    assert args[args.index("-t") + 1] == "3"


def test_concat_failure_removes_partial_output(tmp_path):
    class PartialTranscoder(FakeTranscoder):
        def run(self, stream, description="ffmpeg"):
            super().run(stream, description)
            raise TranscoderError("concatenation failed: No space left on device")

    out = tmp_path / "out.mp4"
    with pytest.raises(ConcatenationError, match="No space left"):
        Concatenator(PartialTranscoder()).concatenate([str(tmp_path / "clip_000.mp4")], str(out), TARGET)
    assert not out.exists()


def test_concat_requires_clips(tmp_path, transcoder):
    with pytest.raises(ConcatenationError):
        Concatenator(transcoder).concatenate([], str(tmp_path / "out.mp4"), TARGET)


class _ShellStream:
    """Stands in for an ffmpeg-python output stream, running a shell command instead."""

    def __init__(self, script):
        self.script = script

    def compile(self, cmd, overwrite_output):
        return ["sh", "-c", self.script]

    def run_async(self, cmd, pipe_stdout, pipe_stderr, overwrite_output):
        return subprocess.Popen(["sh", "-c", self.script], stdout=subprocess.PIPE, stderr=subprocess.PIPE)


def test_transcoder_reports_last_stderr_line():
    stream = _ShellStream("echo 'frame=1' >&2; echo 'a.jpg: No such file or directory' >&2; exit 1")
    with pytest.raises(TranscoderError, match="segment 1 failed: a.jpg: No such file or directory"):
        FFmpegTranscoder().run(stream, "segment 1")


def test_transcoder_kills_after_timeout():
    with pytest.raises(TranscoderError, match="timed out"):
        FFmpegTranscoder(timeout=0.2).run(_ShellStream("sleep 5"), "segment 0")


def test_transcoder_success():
    FFmpegTranscoder().run(_ShellStream("exit 0"), "segment 0")
