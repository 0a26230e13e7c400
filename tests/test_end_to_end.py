# tests/test_end_to_end.py
# Renders real videos; needs ffmpeg and ffprobe on PATH.

import shutil

import ffmpeg
import pytest

from services import FFmpegTranscoder

pytestmark = pytest.mark.skipif(
    shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
    reason="ffmpeg is not installed",
)


def test_single_image_segment(make_scheduler, image_file):
    scheduler = make_scheduler(FFmpegTranscoder(timeout=120))
    job_id = scheduler.submit({
        "segments": [{"kind": "image", "media_ref": image_file, "duration": 3, "text": "Scenario A"}],
        "resize": "640x480",
        "fps": 30,
    })
    scheduler.run_job(job_id)

    job = scheduler.status(job_id)
    assert job.status == "completed", job.error
    probe = ffmpeg.probe(job.output_path)
    video = next(s for s in probe["streams"] if s["codec_type"] == "video")
    assert (video["width"], video["height"]) == (640, 480)
    assert video["pix_fmt"] == "yuv420p"
    assert float(probe["format"]["duration"]) == pytest.approx(3, abs=0.2)


def test_mixed_segments_concatenate(make_scheduler, image_file, tmp_path):
    source = tmp_path / "source.mp4"
    (
        ffmpeg
        .input("color=c=blue:s=320x240:d=4:r=25", f="lavfi")
        .output(str(source), vcodec="libx264", pix_fmt="yuv420p")
        .overwrite_output()
        .run(quiet=True)
    )
    scheduler = make_scheduler(FFmpegTranscoder(timeout=120))
    job_id = scheduler.submit({
        "segments": [
            {"kind": "image", "media_ref": image_file, "duration": 1, "transition": "fadein"},
            {"kind": "video", "media_ref": str(source), "trim_start": 1, "trim_end": 3, "text": "Clip"},
        ],
        "resize": "640x360",
        "fps": 24,
    })
    scheduler.run_job(job_id)

    job = scheduler.status(job_id)
    assert job.status == "completed", job.error
    probe = ffmpeg.probe(job.output_path)
    assert float(probe["format"]["duration"]) == pytest.approx(3, abs=0.3)
