"""
Error taxonomy for the ClipCraft rendering core.
"""


class ClipCraftError(Exception):
    """Base class for every error raised by the rendering core."""


class ValidationError(ClipCraftError):
    """Malformed render request or missing template variables. No job is created."""


class NotFound(ClipCraftError):
    """Unknown job or template identifier."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind.capitalize()} not found: {identifier}")


class StorageError(ClipCraftError):
    """Filesystem write/delete failure."""


class MediaError(ClipCraftError):
    """A media reference could not be resolved or downloaded."""


class TranscoderError(ClipCraftError):
    """The external transcoder exited non-zero, timed out or could not start."""


class SegmentRenderError(ClipCraftError):
    """A single timeline segment failed to produce a clip."""

    def __init__(self, index: int, cause):
        self.index = index
        self.cause = cause
        super().__init__(f"Segment {index} failed to render: {cause}")


class ConcatenationError(ClipCraftError):
    """Joining the rendered clips into the final video failed."""

    def __init__(self, cause):
        self.cause = cause
        super().__init__(f"Concatenation failed: {cause}")
