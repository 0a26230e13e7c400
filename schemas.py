"""
Pydantic models for data validation in the ClipCraft rendering backend.
"""

import re
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from PIL import ImageColor
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from config import (
    ALLOWED_FPS,
    DEFAULT_BACKGROUND_COLOR,
    DEFAULT_FONT_COLOR,
    DEFAULT_FONT_SIZE,
    DEFAULT_FPS,
    DEFAULT_RESIZE,
    MAX_DIMENSION,
    MAX_DURATION,
)

JobStatus = Literal["queued", "processing", "completed", "error"]
TextPosition = Literal["top", "center", "bottom"]
Transition = Literal["none", "fadein", "fadeout", "crossfadein"]

# Request fields may be spelled snake_case or camelCase; anything else is rejected.
REQUEST_MODEL_CONFIG = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

_RESOLUTION_RE = re.compile(r"^\s*(\d+)\s*[xX]\s*(\d+)\s*$")


def parse_resolution(value: str) -> Tuple[int, int]:
    """Parse a "WIDTHxHEIGHT" string into two positive, even integers."""
    match = _RESOLUTION_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid resolution '{value}', expected WIDTHxHEIGHT")
    width, height = int(match.group(1)), int(match.group(2))
    for side in (width, height):
        if side <= 0 or side > MAX_DIMENSION:
            raise ValueError(f"Resolution sides must be between 1 and {MAX_DIMENSION}, got '{value}'")
        # yuv420p needs even dimensions
        if side % 2:
            raise ValueError(f"Resolution sides must be even numbers, got '{value}'")
    return width, height


def _check_color(value: str) -> str:
    try:
        ImageColor.getrgb(value)
    except ValueError:
        raise ValueError(f"Unknown color: '{value}'")
    return value


class _SegmentBase(BaseModel):
    """Fields shared by every timeline segment: the optional text overlay and transition."""

    model_config = REQUEST_MODEL_CONFIG

    text: Optional[str] = None
    text_position: TextPosition = "center"
    font_size: int = Field(DEFAULT_FONT_SIZE, ge=8, le=400)
    font_color: str = DEFAULT_FONT_COLOR
    transition: Transition = "none"

    @field_validator("font_color")
    @classmethod
    def _font_color(cls, value: str) -> str:
        return _check_color(value)


class ImageSegment(_SegmentBase):
    """A still image (or a solid card when media_ref is omitted) held for `duration` seconds."""

    kind: Literal["image"]
    media_ref: Optional[str] = None
    duration: float = Field(gt=0)
    background_color: str = DEFAULT_BACKGROUND_COLOR

    @field_validator("background_color")
    @classmethod
    def _background_color(cls, value: str) -> str:
        return _check_color(value)

    @property
    def effective_duration(self) -> float:
        return self.duration


class VideoSegment(_SegmentBase):
    """A trimmed range of a source video."""

    kind: Literal["video"]
    media_ref: str = Field(min_length=1)
    trim_start: float = Field(0.0, ge=0)
    trim_end: Optional[float] = None
    duration: Optional[float] = Field(None, gt=0)

    @model_validator(mode="after")
    def _trim_bounds(self):
        if self.trim_end is not None:
            if self.trim_end <= self.trim_start:
                raise ValueError("trim_end must be greater than trim_start")
        elif self.duration is None:
            raise ValueError("video segments need either trim_end or duration")
        return self

    @property
    def effective_duration(self) -> float:
        if self.trim_end is not None:
            return self.trim_end - self.trim_start
        return self.duration


Segment = Annotated[Union[ImageSegment, VideoSegment], Field(discriminator="kind")]


class RenderConfig(BaseModel):
    """A complete, validated render request."""

    model_config = REQUEST_MODEL_CONFIG

    segments: List[Segment]
    template_id: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)
    background_audio: Optional[str] = None
    resize: str = DEFAULT_RESIZE
    fps: int = DEFAULT_FPS
    max_duration: float = Field(MAX_DURATION, gt=0, le=MAX_DURATION)

    @field_validator("segments")
    @classmethod
    def _at_least_one_segment(cls, value):
        if not value:
            raise ValueError("at least one segment is required")
        return value

    @field_validator("resize")
    @classmethod
    def _resize(cls, value: str) -> str:
        width, height = parse_resolution(value)
        return f"{width}x{height}"

    @field_validator("fps")
    @classmethod
    def _fps(cls, value: int) -> int:
        if value not in ALLOWED_FPS:
            allowed = ", ".join(str(fps) for fps in ALLOWED_FPS)
            raise ValueError(f"fps must be one of {allowed}, got {value}")
        return value

    @model_validator(mode="after")
    def _duration_cap(self):
        total = self.total_duration
        if total > self.max_duration + 1e-6:
            raise ValueError(
                f"total duration {total:g}s exceeds the limit of {self.max_duration:g}s"
            )
        return self

    @property
    def width(self) -> int:
        return parse_resolution(self.resize)[0]

    @property
    def height(self) -> int:
        return parse_resolution(self.resize)[1]

    @property
    def total_duration(self) -> float:
        return sum(segment.effective_duration for segment in self.segments)


class TargetSpec(BaseModel):
    """Output format every rendered clip shares."""

    model_config = ConfigDict(frozen=True)

    width: int
    height: int
    fps: int

    @classmethod
    def from_config(cls, config: RenderConfig) -> "TargetSpec":
        return cls(width=config.width, height=config.height, fps=config.fps)


class TemplateVariable(BaseModel):
    """One substitution variable declared by a template."""

    type: str = "text"
    default_value: Optional[Any] = None
    description: Optional[str] = None


class Template(BaseModel):
    """A stored, parameterized render configuration."""

    id: str
    name: str
    description: str = ""
    width: int = 1080
    height: int = 1080
    fps: int = DEFAULT_FPS
    background_audio: Optional[str] = None
    segments: List[Dict[str, Any]]
    variables: Dict[str, TemplateVariable] = Field(default_factory=dict)


class JobResponse(BaseModel):
    """Response when submitting a render job."""
    job_id: str
    status: JobStatus
    message: str


class JobSnapshot(BaseModel):
    """Read-only copy of a job record."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    status: JobStatus
    progress: int
    created_at: datetime
    completed_at: Optional[datetime] = None
    config: Dict[str, Any]
    output_path: Optional[str] = None
    file_size: Optional[int] = None
    download_url: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    active_jobs: int
    total_jobs: int
