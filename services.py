"""
Service classes for the ClipCraft rendering backend.
Contains the transcoder wrapper, media fetching, SegmentRenderer and Concatenator.
"""

import os
import logging
import subprocess
from typing import List, Optional
from urllib.parse import urlparse

import ffmpeg
import requests

from compositor import Compositor, FrameSpec, TextBlock
from config import (
    DOWNLOAD_TIMEOUT,
    FFMPEG_BINARY,
    PIXEL_FORMAT,
    TRANSCODER_TIMEOUT,
    TRANSITION_DURATION,
    UPLOADS_DIR,
    VIDEO_CODEC,
    VIDEO_CRF,
    VIDEO_PRESET,
    AUDIO_CODEC,
)
from exceptions import (
    ConcatenationError,
    MediaError,
    SegmentRenderError,
    StorageError,
    TranscoderError,
)
from schemas import ImageSegment, TargetSpec, VideoSegment


def encode_args(target: TargetSpec) -> dict:
    """Output options shared by every clip and the final video, so concat inputs match exactly."""
    return {
        "vcodec": VIDEO_CODEC,
        "pix_fmt": PIXEL_FORMAT,
        "r": target.fps,
        "preset": VIDEO_PRESET,
        "crf": VIDEO_CRF,
    }


class FFmpegTranscoder:
    """Runs ffmpeg-python output graphs as an external process with a hard timeout."""

    def __init__(self, cmd: str = FFMPEG_BINARY, timeout: float = TRANSCODER_TIMEOUT):
        self.cmd = cmd
        self.timeout = timeout

    def run(self, stream, description: str = "ffmpeg"):
        logging.debug(f"🎬 Running transcoder: {' '.join(stream.compile(cmd=self.cmd, overwrite_output=True))}")
        try:
            process = stream.run_async(cmd=self.cmd, pipe_stdout=True, pipe_stderr=True, overwrite_output=True)
        except OSError as e:
            raise TranscoderError(f"could not start {self.cmd}: {e}") from e

        try:
            _, stderr = process.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.communicate()
            logging.error(f"❌ {description} timed out after {self.timeout:g}s")
            raise TranscoderError(f"{description} timed out after {self.timeout:g}s")

        if process.returncode != 0:
            stderr = stderr.decode("utf-8", errors="replace").strip() if stderr else ""
            logging.error(f"❌ {description} failed. Stderr:\n{stderr}")
            # The last line is usually the meaningful one
            last_line = stderr.splitlines()[-1] if stderr else "Unknown FFmpeg error"
            raise TranscoderError(f"{description} failed: {last_line}")


class MediaFetcher:
    """Turns a media reference (URL, /uploads/ path or local path) into a local file."""

    def __init__(self, uploads_dir: str = UPLOADS_DIR, timeout: float = DOWNLOAD_TIMEOUT):
        self.uploads_dir = uploads_dir
        self.timeout = timeout

    def resolve_local(self, ref: str) -> str:
        if ref.startswith("/uploads/"):
            return os.path.join(self.uploads_dir, ref[len("/uploads/"):])
        return ref

    def fetch(self, ref: str, dest_dir: str, name: str) -> str:
        if ref.startswith(("http://", "https://")):
            return self._download(ref, dest_dir, name)
        path = self.resolve_local(ref)
        if not os.path.isfile(path):
            raise MediaError(f"Media not found: {ref}")
        return path

    def _download(self, url: str, dest_dir: str, name: str) -> str:
        suffix = os.path.splitext(urlparse(url).path)[1]
        dest = os.path.join(dest_dir, f"{name}{suffix}")
        logging.info(f"⬇️ Downloading {url}")
        try:
            with requests.get(url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                with open(dest, "wb") as f:
                    for chunk in response.iter_content(chunk_size=64 * 1024):
                        f.write(chunk)
        except requests.RequestException as e:
            raise MediaError(f"Could not download {url}: {e}") from e
        except OSError as e:
            raise StorageError(f"Could not write {dest}: {e}") from e
        return dest


class SegmentRenderer:
    """Renders one timeline segment into a clip with the job's exact resolution, pixel format and fps."""

    def __init__(self, transcoder, compositor: Optional[Compositor] = None, fetcher: Optional[MediaFetcher] = None):
        self.transcoder = transcoder
        self.compositor = compositor or Compositor()
        self.fetcher = fetcher or MediaFetcher()

    def render(self, segment, target: TargetSpec, out_dir: str, index: int) -> str:
        clip_path = os.path.join(out_dir, f"clip_{index:03d}.mp4")
        try:
            if isinstance(segment, ImageSegment):
                stream = self._image_stream(segment, target, out_dir, index, clip_path)
            else:
                stream = self._video_stream(segment, target, out_dir, index, clip_path)
            self.transcoder.run(stream, f"segment {index}")
        except (MediaError, TranscoderError, StorageError, OSError) as e:
            raise SegmentRenderError(index, e) from e

        if not os.path.isfile(clip_path):
            raise SegmentRenderError(index, "transcoder produced no output")
        return clip_path

    def _text_block(self, segment) -> Optional[TextBlock]:
        if not segment.text:
            return None
        return TextBlock(
            text=segment.text,
            position=segment.text_position,
            font_size=segment.font_size,
            color=segment.font_color,
        )

    def _fit(self, stream, target: TargetSpec):
        # letterbox into the target box, never stretch
        stream = stream.filter("scale", target.width, target.height, force_original_aspect_ratio="decrease")
        stream = stream.filter("pad", target.width, target.height, "(ow-iw)/2", "(oh-ih)/2", color="black")
        stream = stream.filter("setsar", 1)
        return stream.filter("fps", fps=target.fps)

    def _finish(self, stream, transition: str, duration: float):
        fade = min(TRANSITION_DURATION, duration / 2)
        if transition in ("fadein", "crossfadein"):
            stream = stream.filter("fade", type="in", start_time=0, duration=fade)
        elif transition == "fadeout":
            stream = stream.filter("fade", type="out", start_time=duration - fade, duration=fade)
        return stream.filter("format", PIXEL_FORMAT)

    def _image_stream(self, segment: ImageSegment, target: TargetSpec, out_dir: str, index: int, clip_path: str):
        background = None
        if segment.media_ref:
            background = self.fetcher.fetch(segment.media_ref, out_dir, f"media_{index:03d}")

        frame_path = self.compositor.render(
            FrameSpec(
                width=target.width,
                height=target.height,
                background=background,
                background_color=segment.background_color,
                text=self._text_block(segment),
            ),
            os.path.join(out_dir, f"frame_{index:03d}.png"),
        )

        duration = segment.effective_duration
        still = ffmpeg.input(frame_path, loop=1, t=duration, framerate=target.fps)
        video = self._finish(self._fit(still.video, target), segment.transition, duration)
        return ffmpeg.output(video, clip_path, t=duration, an=None, **encode_args(target))

    def _video_stream(self, segment: VideoSegment, target: TargetSpec, out_dir: str, index: int, clip_path: str):
        source = self.fetcher.fetch(segment.media_ref, out_dir, f"media_{index:03d}")
        duration = segment.effective_duration

        video = self._fit(ffmpeg.input(source, ss=segment.trim_start, t=duration).video, target)

        text = self._text_block(segment)
        if text is not None:
            overlay_path = self.compositor.render(
                FrameSpec(width=target.width, height=target.height, text=text, transparent=True),
                os.path.join(out_dir, f"overlay_{index:03d}.png"),
            )
            overlay = ffmpeg.input(overlay_path, loop=1, t=duration, framerate=target.fps)
            video = ffmpeg.overlay(video, overlay.video, x=0, y=0, shortest=1)

        video = self._finish(video, segment.transition, duration)
        return ffmpeg.output(video, clip_path, t=duration, an=None, **encode_args(target))


class Concatenator:
    """Joins rendered clips, in order, with a single concat filter invocation."""

    def __init__(self, transcoder):
        self.transcoder = transcoder

    def concatenate(
        self,
        clip_files: List[str],
        out_file: str,
        target: TargetSpec,
        audio_path: Optional[str] = None,
        duration: Optional[float] = None,
    ):
        if not clip_files:
            raise ConcatenationError("no clips to concatenate")

        inputs = [ffmpeg.input(path) for path in clip_files]
        joined = ffmpeg.concat(*[clip.video for clip in inputs], v=1, a=0).node

        streams = [joined[0]]
        output_args = encode_args(target)
        output_args["movflags"] = "+faststart"
        if audio_path:
            # loop the soundtrack and cut it at the end of the video
            streams.append(ffmpeg.input(audio_path, stream_loop=-1).audio)
            output_args["acodec"] = AUDIO_CODEC
            if duration:
                output_args["t"] = duration
            else:
                output_args["shortest"] = None

        stream = ffmpeg.output(*streams, out_file, **output_args)
        try:
            self.transcoder.run(stream, "concatenation")
        except (TranscoderError, OSError) as e:
            self._discard(out_file)
            raise ConcatenationError(e) from e

        if not os.path.isfile(out_file):
            raise ConcatenationError("transcoder produced no output")
        logging.info(f"Successfully concatenated {len(clip_files)} clips to {out_file}")

    def _discard(self, out_file: str):
        try:
            if os.path.exists(out_file):
                os.remove(out_file)
        except OSError as e:
            logging.warning(f"Could not delete partial output {out_file}: {e}")
