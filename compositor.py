"""
Still-frame compositor.

Renders a single frame: an optional background image scaled to cover the
canvas, plus an optional word-wrapped text block anchored at the top,
center or bottom. Pure Pillow, no external process.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from PIL import Image, ImageColor, ImageDraw, ImageFont, ImageOps

from config import DEFAULT_BACKGROUND_COLOR, FONT_PATH, TEXT_MARGIN
from exceptions import StorageError

# Bold sans faces first, Pillow's bundled font as last resort.
FONT_PATHS = [
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"),
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
    Path("/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf"),
    Path("/Library/Fonts/Arial Bold.ttf"),
]

# Vertical anchor of the text block as a fraction of the frame height.
ANCHORS = {"top": 0.15, "center": 0.5, "bottom": 0.85}
LINE_SPACING = 1.2


@dataclass
class TextBlock:
    text: str
    position: str = "center"
    font_size: int = 60
    color: str = "#ffffff"


@dataclass
class FrameSpec:
    width: int
    height: int
    background: Optional[str] = None  # local raster image path
    background_color: str = DEFAULT_BACKGROUND_COLOR
    text: Optional[TextBlock] = None
    transparent: bool = False  # RGBA canvas, used for overlays on video


class Compositor:
    """Renders FrameSpecs into image files."""

    def __init__(self, font_path: str = FONT_PATH, margin: int = TEXT_MARGIN):
        self.font_paths = ([Path(font_path)] if font_path else []) + FONT_PATHS
        self.margin = margin

    def load_font(self, size: int):
        for font_path in self.font_paths:
            if font_path.exists():
                try:
                    return ImageFont.truetype(str(font_path), size=size)
                except OSError:
                    continue
        return ImageFont.load_default(size=size)

    def load_background(self, ref: str, width: int, height: int) -> Optional[Image.Image]:
        """Scale an image to cover width x height, center-cropping the overflow.

        Returns None when the image cannot be read.
        """
        try:
            with Image.open(ref) as img:
                img = ImageOps.exif_transpose(img).convert("RGB")
                return ImageOps.fit(img, (width, height), method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            logging.warning(f"Could not load background image {ref}, using a solid color: {e}")
            return None

    def wrap_text(self, text: str, font, max_width: int) -> List[str]:
        """Greedy word wrap. Explicit newlines always start a new line."""
        draw = ImageDraw.Draw(Image.new("RGB", (1, 1)))
        lines = []
        for paragraph in text.split("\n"):
            words = paragraph.split()
            if not words:
                lines.append("")
                continue
            current = words[0]
            for word in words[1:]:
                candidate = f"{current} {word}"
                if draw.textlength(candidate, font=font) <= max_width:
                    current = candidate
                else:
                    lines.append(current)
                    current = word
            lines.append(current)
        return lines

    def block_top(self, position: str, block_height: int, frame_height: int) -> int:
        """Top y of a text block centered on the anchor, kept inside the margins when it fits."""
        anchor_y = frame_height * ANCHORS.get(position, ANCHORS["center"])
        top = int(round(anchor_y - block_height / 2))
        if block_height <= frame_height - 2 * self.margin:
            top = max(self.margin, min(top, frame_height - self.margin - block_height))
        else:
            top = max(0, (frame_height - block_height) // 2)
        return top

    def _draw_text(self, canvas: Image.Image, block: TextBlock):
        font = self.load_font(block.font_size)
        max_width = max(1, canvas.width - 2 * self.margin)
        lines = self.wrap_text(block.text, font, max_width)
        line_height = int(round(block.font_size * LINE_SPACING))
        y = self.block_top(block.position, line_height * len(lines), canvas.height)

        draw = ImageDraw.Draw(canvas)
        fill = ImageColor.getrgb(block.color)
        stroke = max(1, block.font_size // 25)
        for line in lines:
            line_width = draw.textlength(line, font=font)
            x = (canvas.width - line_width) / 2
            draw.text((x, y), line, font=font, fill=fill, stroke_width=stroke, stroke_fill=(0, 0, 0))
            y += line_height

    def render(self, spec: FrameSpec, out_path: str) -> str:
        size = (spec.width, spec.height)
        if spec.transparent:
            canvas = Image.new("RGBA", size, (0, 0, 0, 0))
        else:
            canvas = Image.new("RGB", size, ImageColor.getrgb(spec.background_color))
            if spec.background:
                background = self.load_background(spec.background, spec.width, spec.height)
                if background is not None:
                    canvas.paste(background, (0, 0))

        if spec.text and spec.text.text.strip():
            self._draw_text(canvas, spec.text)

        try:
            canvas.save(out_path)
        except OSError as e:
            raise StorageError(f"Could not write frame {out_path}: {e}") from e
        return out_path
