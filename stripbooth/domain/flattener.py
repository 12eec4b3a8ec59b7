# stripbooth/domain/flattener.py
import logging
import math
import os
import threading
import time
from functools import lru_cache
from typing import Iterable, Optional

from PIL import Image, ImageDraw, ImageFont

from stripbooth.config.settings import settings
from stripbooth.domain.catalog import STICKER_ASSETS
from stripbooth.domain.errors import FlattenInProgress
from stripbooth.domain.sticker_layer import Sticker
from stripbooth.infrastructure.cv import image_process
from stripbooth.infrastructure.cv.filters import apply_filter

logger = logging.getLogger(__name__)

GLYPH_FILL = (255, 255, 255, 255)
GLYPH_PADDING = 4
LABEL_STROKE = (0, 0, 0, 255)

# bitmap colour fonts (CBDT/sbix) only open at one of their strike sizes
EMOJI_STRIKE_SIZES = (109, 160, 137, 128, 96, 64)
NOTDEF_CHAR = "\uffff"  # noncharacter, never mapped
ZERO_WIDTH = {"\u200d", "\ufe0e", "\ufe0f"}  # joiner and variation selectors

_LABELS = {asset.type: asset.label for asset in STICKER_ASSETS}

@lru_cache(maxsize=1)
def load_emoji_font() -> Optional[ImageFont.FreeTypeFont]:
    """First installed colour emoji font, opened at a size it supports."""
    paths = [settings.STICKER_FONT_PATH] + list(settings.STICKER_FONT_CANDIDATES)
    for path in paths:
        if not path or not os.path.isfile(path):
            continue
        for size in EMOJI_STRIKE_SIZES:
            try:
                font = ImageFont.truetype(path, size)
            except OSError:
                continue
            logger.info(f"Font emoji dimuat: '{path}' ({size}px).")
            return font
        logger.error(f"Font emoji '{path}' tidak bisa dibuka di ukuran manapun {EMOJI_STRIKE_SIZES}.")
    logger.error(
        "Tidak ada font emoji yang terpasang, stiker emoji digambar sebagai label teks. "
        "Pasang fonts-noto-color-emoji atau set STICKER_FONT_PATH."
    )
    return None

@lru_cache(maxsize=32)
def _text_font(size: int):
    return image_process.load_font(settings.CAPTION_FONT_PATH, size)

def _text_tile(text: str, font, stroke_width: int = 0) -> Image.Image:
    measure = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
    left, top, right, bottom = measure.textbbox((0, 0), text, font=font, stroke_width=stroke_width)
    w = max(1, right - left) + 2 * GLYPH_PADDING
    h = max(1, bottom - top) + 2 * GLYPH_PADDING
    tile = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    # embedded_color keeps colour emoji fonts in their own palette
    ImageDraw.Draw(tile).text(
        (GLYPH_PADDING - left, GLYPH_PADDING - top), text, font=font, fill=GLYPH_FILL,
        embedded_color=True, stroke_width=stroke_width, stroke_fill=LABEL_STROKE,
    )
    return tile

@lru_cache(maxsize=1024)
def _char_missing(font, char: str) -> bool:
    return _text_tile(char, font).tobytes() == _text_tile(NOTDEF_CHAR, font).tobytes()

def has_glyph(font, glyph: str) -> bool:
    """False when any visible codepoint of glyph would draw as the font's missing-glyph box."""
    chars = [c for c in glyph if c not in ZERO_WIDTH]
    return bool(chars) and not any(_char_missing(font, c) for c in chars)

def render_glyph(glyph: str, size: int) -> Image.Image:
    """Glyph on a transparent tile whose center is the glyph's visual center."""
    size = max(1, size)
    emoji_font = load_emoji_font()
    if emoji_font is not None and has_glyph(emoji_font, glyph):
        tile = _text_tile(glyph, emoji_font)
        factor = size / emoji_font.size
        return tile.resize(
            (max(1, round(tile.width * factor)), max(1, round(tile.height * factor))),
            Image.Resampling.LANCZOS,
        )

    font = _text_font(size)
    if has_glyph(font, glyph) or glyph not in _LABELS:
        return _text_tile(glyph, font)
    # no font can draw this emoji, show its name instead of a blank box
    label_size = max(12, size // 4)
    return _text_tile(_LABELS[glyph], _text_font(label_size), stroke_width=max(1, label_size // 8))

def paint_sticker(canvas: Image.Image, sticker: Sticker, base_size: int = settings.STICKER_BASE_SIZE) -> Image.Image:
    width, height = canvas.size
    center_x = sticker.x / 100.0 * width
    center_y = sticker.y / 100.0 * height
    size = int(round(base_size * sticker.scale))

    tile = render_glyph(sticker.glyph_type, size)
    if sticker.rotation % 360:
        # PIL rotates counter-clockwise
        tile = tile.rotate(-sticker.rotation, resample=Image.Resampling.BICUBIC, expand=True)

    x0 = int(math.floor(center_x - tile.width / 2 + 0.5))
    y0 = int(math.floor(center_y - tile.height / 2 + 0.5))
    if x0 >= width or y0 >= height or x0 + tile.width <= 0 or y0 + tile.height <= 0:
        return canvas

    # paste accepts negative offsets, alpha_composite does not
    layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    layer.paste(tile, (x0, y0))
    return Image.alpha_composite(canvas, layer)

class Flattener:
    """Bakes the active filter and every sticker into one final image."""

    def __init__(self, base_size: int = settings.STICKER_BASE_SIZE):
        self.base_size = base_size
        self._lock = threading.Lock()

    def flatten(self, base: Image.Image, filter_name: str, stickers: Iterable[Sticker]) -> Image.Image:
        if not self._lock.acquire(blocking=False):
            raise FlattenInProgress("flatten already running for this session")
        try:
            start = time.perf_counter()
            stickers = list(stickers)

            final = Image.new("RGBA", base.size, (0, 0, 0, 0))
            final = Image.alpha_composite(final, apply_filter(base, filter_name))

            # stickers are drawn with the filter reset
            for sticker in stickers:
                final = paint_sticker(final, sticker, self.base_size)

            logger.info(
                f"Flatten {base.size[0]}x{base.size[1]} filter={filter_name} "
                f"stickers={len(stickers)} selesai dalam {time.perf_counter() - start:.2f} detik."
            )
            return final
        finally:
            self._lock.release()

def render_preview(base: Image.Image, filter_name: str, max_side: Optional[int] = None) -> Image.Image:
    """Cheap filtered thumbnail for live preview; stickers are drawn client-side."""
    thumb = image_process.thumbnail(base, max_side or settings.PREVIEW_MAX_SIDE)
    return apply_filter(thumb, filter_name)
