#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Image Processor Module
Turns downloaded artwork bytes into a finished wallpaper in the cache directory
"""

import io
import logging
import os
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFilter, ImageFont, ImageOps, UnidentifiedImageError

from config import CacheDirectory, FontCandidates, FontPath, ImageSettings
from configuration_store import ConfigurationStore
from http_client import OperationCancelled, check_cancelled
from models import (
    CORNER_BOTTOM_LEFT,
    CORNER_BOTTOM_RIGHT,
    CORNER_TOP_LEFT,
    CORNER_TOP_RIGHT,
    ArtworkResult,
)
from security import ensure_path_within, sanitize_id

logger = logging.getLogger(__name__)

try:
    RESAMPLE_LANCZOS = Image.Resampling.LANCZOS  # type: ignore[attr-defined]
except AttributeError:  # Pillow < 9
    RESAMPLE_LANCZOS = Image.LANCZOS

RESIZE_CROP = "crop"
RESIZE_PAD = "pad"


class ImageProcessingError(RuntimeError):
    """The downloaded bytes could not be decoded or written"""


def choose_resize_mode(width: int, height: int, target_size: Tuple[int, int],
                       tolerance: float = ImageSettings["crop_tolerance"]) -> str:
    """Crop when the aspect ratio is close to the target, pad otherwise"""
    target_ratio = target_size[0] / target_size[1]
    source_ratio = width / height
    if abs(source_ratio - target_ratio) <= tolerance:
        return RESIZE_CROP
    return RESIZE_PAD


def fit_font_size(measure: Callable[[float], float], start_size: float, floor: float,
                  step: float, max_width: float) -> float:
    """
    Shrink from start_size in fixed steps until measure(size) fits max_width.

    Returns the first size that fits; if none does before reaching the floor,
    returns the floor.
    """
    size = start_size
    while size > floor:
        if measure(size) <= max_width:
            return size
        size -= step
    return max(size, floor)


def wrap_text(text: str, max_width: float, text_width: Callable[[str], float]) -> str:
    """Greedy word wrap; a single word wider than max_width stays on its own line"""
    wrapped: List[str] = []
    for paragraph in text.split("\n"):
        words = paragraph.split()
        if not words:
            wrapped.append("")
            continue
        line = words[0]
        for word in words[1:]:
            candidate = f"{line} {word}"
            if text_width(candidate) <= max_width:
                line = candidate
            else:
                wrapped.append(line)
                line = word
        wrapped.append(line)
    return "\n".join(wrapped)


class ImageProcessor:
    def __init__(
        self,
        store: ConfigurationStore,
        cache_dir: str = str(CacheDirectory),
        settings: Optional[Dict] = None,
        font_loader: Optional[Callable[[int], ImageFont.ImageFont]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.cache_dir = os.path.abspath(os.path.expanduser(cache_dir))
        self.settings = dict(ImageSettings)
        self.settings.update(settings or {})
        self.target_size: Tuple[int, int] = tuple(self.settings["target_size"])
        self._font_loader = font_loader or self._load_font
        self._clock = clock
        os.makedirs(self.cache_dir, exist_ok=True)

    def _load_font(self, size: int) -> ImageFont.ImageFont:
        """Load a TrueType font with fallback to Pillow's bundled one"""
        candidates = [FontPath] if FontPath else []
        candidates.extend(FontCandidates)
        for font_path in candidates:
            if font_path and os.path.exists(font_path):
                try:
                    return ImageFont.truetype(font_path, size)
                except OSError:
                    continue
        return ImageFont.load_default(size=size)

    def process(self, image_bytes: bytes, metadata: ArtworkResult,
                cancel_event: Optional[threading.Event] = None) -> str:
        logger.info("Processing image...")
        config = self.store.current

        image = self.decode(image_bytes)
        try:
            image = self.resize(image)
            image = self.apply_style(image, config.background_blur, config.background_dimming)
            image = self.draw_typography(image, metadata, config.typography_position, config.typography_scale)
            path = self.build_path(metadata)
            self._write(image, path, cancel_event)
        finally:
            image.close()

        logger.info("Image saved to cache: %s", os.path.basename(path))
        return path

    def decode(self, image_bytes: bytes) -> Image.Image:
        try:
            with Image.open(io.BytesIO(image_bytes)) as source:
                source.load()
                oriented = ImageOps.exif_transpose(source)
                return oriented.convert("RGB")
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as error:
            raise ImageProcessingError(f"Could not decode image: {error}") from error

    def resize(self, image: Image.Image) -> Image.Image:
        mode = choose_resize_mode(image.width, image.height, self.target_size, self.settings["crop_tolerance"])
        logger.debug("Resizing %sx%s to %sx%s (%s)", image.width, image.height, *self.target_size, mode)
        if mode == RESIZE_CROP:
            return ImageOps.fit(image, self.target_size, method=RESAMPLE_LANCZOS)
        return ImageOps.pad(image, self.target_size, method=RESAMPLE_LANCZOS, color=self.settings["pad_color"])

    def apply_style(self, image: Image.Image, blur: float, dimming: float) -> Image.Image:
        if blur > 0:
            image = image.filter(ImageFilter.GaussianBlur(radius=blur))
        if dimming > 0:
            shade = Image.new("RGBA", image.size, (0, 0, 0, int(round(255 * dimming))))
            image = Image.alpha_composite(image.convert("RGBA"), shade).convert("RGB")
        return image

    def draw_typography(self, image: Image.Image, metadata: ArtworkResult,
                        position: str, scale: float) -> Image.Image:
        try:
            self._draw_caption(image, metadata, position, scale)
        except Exception as e:
            logger.warning("Failed to draw caption, keeping image without it: %s", e)
        return image

    def _draw_caption(self, image: Image.Image, metadata: ArtworkResult, position: str, scale: float) -> None:
        width, height = image.size
        padding_x = width * self.settings["padding_ratio"]
        padding_y = height * self.settings["padding_ratio"]
        max_text_width = width * self.settings["wrap_ratio"] - padding_x
        text = f"{metadata.title}\n{metadata.artist}\n{metadata.provider_name}"

        draw = ImageDraw.Draw(image)
        align = "left" if position in (CORNER_TOP_LEFT, CORNER_BOTTOM_LEFT) else "right"
        fonts: Dict[int, ImageFont.ImageFont] = {}

        def layout(size: float) -> Tuple[ImageFont.ImageFont, str, Tuple[int, int, int, int], int]:
            pixel_size = max(int(round(size)), 1)
            if pixel_size not in fonts:
                fonts[pixel_size] = self._font_loader(pixel_size)
            font = fonts[pixel_size]
            spacing = int(pixel_size * (self.settings["line_spacing"] - 1))
            wrapped = wrap_text(text, max_text_width, lambda line: draw.textlength(line, font=font))
            box = draw.multiline_textbbox((0, 0), wrapped, font=font, spacing=spacing, align=align)
            return font, wrapped, box, spacing

        def measure(size: float) -> float:
            _, _, box, _ = layout(size)
            return box[2] - box[0]

        start_size = width * self.settings["font_ratio"] * scale
        font_size = fit_font_size(
            measure,
            start_size=start_size,
            floor=self.settings["font_floor"] * scale,
            step=self.settings["font_step"] * scale,
            max_width=max_text_width,
        )
        font, wrapped, box, spacing = layout(font_size)
        box_width = box[2] - box[0]
        box_height = box[3] - box[1]
        x, y = self._calculate_position(width, height, box_width, box_height, padding_x, padding_y, position)
        # multiline_textbbox is relative to the draw origin, offset so the ink lands at (x, y)
        draw.multiline_text(
            (x - box[0], y - box[1]),
            wrapped,
            fill=self.settings["text_color"],
            font=font,
            spacing=spacing,
            align=align,
        )
        logger.debug("Caption drawn at %s with font size %.1f", position, font_size)

    def _calculate_position(self, img_width: int, img_height: int, box_width: int, box_height: int,
                            padding_x: float, padding_y: float, position: str) -> Tuple[int, int]:
        positions = {
            CORNER_TOP_LEFT: (padding_x, padding_y),
            CORNER_TOP_RIGHT: (img_width - box_width - padding_x, padding_y),
            CORNER_BOTTOM_LEFT: (padding_x, img_height - box_height - padding_y),
            CORNER_BOTTOM_RIGHT: (img_width - box_width - padding_x, img_height - box_height - padding_y),
        }
        x, y = positions.get(position, positions[CORNER_TOP_RIGHT])
        return int(round(x)), int(round(y))

    def build_path(self, metadata: ArtworkResult) -> str:
        safe_id = sanitize_id(metadata.id)
        filename = f"{self._clock():%Y%m%d_%H%M%S}_{safe_id}.jpg"
        return ensure_path_within(os.path.join(self.cache_dir, filename), self.cache_dir)

    def _write(self, image: Image.Image, path: str, cancel_event: Optional[threading.Event]) -> None:
        os.makedirs(self.cache_dir, exist_ok=True)
        tmp_path = f"{path}.part"
        try:
            image.save(tmp_path, "JPEG", quality=self.settings["jpeg_quality"])
            check_cancelled(cancel_event)
            os.replace(tmp_path, path)
        except OperationCancelled:
            logger.info("Processing cancelled; discarding %s", os.path.basename(path))
            raise
        except OSError as error:
            raise ImageProcessingError(f"Could not write {path}: {error}") from error
        finally:
            if os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError as e:
                    logger.warning("Failed to clean up temporary file %s: %s", tmp_path, e)
