# stripbooth/domain/collage_composer.py
import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence

import numpy as np
from PIL import Image, ImageDraw, ImageFilter

from stripbooth.config.settings import settings
from stripbooth.delivery.schemas.body import Slot, TemplateDescriptor
from stripbooth.domain import region_detector
from stripbooth.domain.errors import AssetLoadFailure, NoUsableRegions
from stripbooth.infrastructure.cv import image_process

# --- FALLBACK LAYOUT ---
GAP = 50
HEADER_H = 160
FOOTER_H = 220
CELL_ASPECT = 0.75  # height / width
STRIP_W = 700
GRID_W = 1100
SINGLE_SIZE = (900, 1000)
CELL_BORDER = 8
SHADOW_BLUR = 10
GRADIENT_TOP = (0x1A, 0x1C, 0x2C)
GRADIENT_BOTTOM = (0x0C, 0x0D, 0x15)
TITLE_TEXT = "SPOOKY CUTE MEMORIES"

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False

@dataclass
class CompositeResult:
    image: Image.Image
    mode: str  # "frame" or "fallback"
    slots: List[Slot] = field(default_factory=list)

def fallback_canvas_size(layout: str, photo_count: int) -> tuple:
    n = max(1, photo_count)
    if layout == "strip":
        ph = (STRIP_W - 2 * GAP) * CELL_ASPECT
        return STRIP_W, int(round(HEADER_H + FOOTER_H + n * ph + (n - 1) * GAP))
    if layout == "grid":
        ph = (GRID_W - 3 * GAP) / 2 * CELL_ASPECT
        rows = math.ceil(n / 2)
        return GRID_W, int(round(HEADER_H + FOOTER_H + rows * ph + (rows - 1) * GAP))
    return SINGLE_SIZE

def fallback_cells(layout: str, photo_count: int) -> List[tuple]:
    """Pixel rects (x, y, w, h) of each photo cell in the fallback layout."""
    cw, ch = fallback_canvas_size(layout, photo_count)
    cells = []
    if layout == "strip":
        w = cw - 2 * GAP
        h = w * CELL_ASPECT
        for idx in range(photo_count):
            cells.append((GAP, HEADER_H + idx * (h + GAP), w, h))
    elif layout == "grid":
        w = (cw - 3 * GAP) / 2
        h = w * CELL_ASPECT
        for idx in range(photo_count):
            col, row = idx % 2, idx // 2
            cells.append((GAP + col * (w + GAP), HEADER_H + row * (h + GAP), w, h))
    else:
        cells.append((GAP, HEADER_H, cw - 2 * GAP, ch - HEADER_H - FOOTER_H))
    return [tuple(int(round(v)) for v in cell) for cell in cells]

def _vertical_gradient(w: int, h: int) -> Image.Image:
    t = np.linspace(0.0, 1.0, h)[:, None]
    top, bottom = np.array(GRADIENT_TOP, float), np.array(GRADIENT_BOTTOM, float)
    column = np.rint(top + (bottom - top) * t).astype(np.uint8)
    return Image.fromarray(np.repeat(column[:, None, :], w, axis=1))

class CollageComposer:
    def __init__(self, detect=region_detector.detect_slots):
        self.detect = detect

    def compose(
        self,
        template: TemplateDescriptor,
        photos: Sequence[Image.Image],
        frame: Optional[Image.Image] = None,
        today: Optional[date] = None,
    ) -> CompositeResult:
        if not photos:
            raise AssetLoadFailure("tidak ada foto yang bisa dipakai")
        if len(photos) < template.photo_count:
            logger.warning(f"Template '{template.id}' butuh {template.photo_count} foto, hanya {len(photos)} tersedia.")
        photos = list(photos[: template.photo_count])

        if template.frame_url:
            try:
                return self.compose_frame(template, photos, frame)
            except (AssetLoadFailure, NoUsableRegions, OSError, ValueError) as e:
                logger.warning(f"Frame mode gagal untuk '{template.id}' ({type(e).__name__}: {e}), beralih ke layout bawaan.")
        return self.compose_fallback(template, photos, today=today)

    def resolve_slots(self, template: TemplateDescriptor, frame: Image.Image) -> List[Slot]:
        if template.slots:
            return list(template.slots)
        return self.detect(frame)

    def compose_frame(self, template: TemplateDescriptor, photos: Sequence[Image.Image], frame: Optional[Image.Image]) -> CompositeResult:
        if frame is None:
            raise AssetLoadFailure(f"frame '{template.frame_url}' tidak bisa dimuat")
        frame = frame.convert("RGBA")
        slots = self.resolve_slots(template, frame)
        if not slots:
            raise NoUsableRegions(f"frame '{template.frame_url}' tidak punya area transparan")

        # native frame resolution, no upscaling
        width, height = frame.size
        canvas = Image.new("RGBA", (width, height), settings.FRAME_BACKGROUND)

        usable = min(len(slots), len(photos))
        for slot, photo in zip(slots[:usable], photos[:usable]):
            rect = image_process.slot_to_rect(slot, width, height)
            mask = image_process.ellipse_mask(rect[2], rect[3])
            image_process.draw_cover(canvas, photo, rect, mask=mask)

        canvas = Image.alpha_composite(canvas, frame)
        logger.info(f"Frame mode: {usable} foto ditempatkan pada {len(slots)} slot ({width}x{height}).")
        return CompositeResult(image=canvas, mode="frame", slots=slots)

    def compose_fallback(self, template: TemplateDescriptor, photos: Sequence[Image.Image], today: Optional[date] = None) -> CompositeResult:
        layout = template.layout
        if layout == "single":
            photos = list(photos[:1])
        cw, ch = fallback_canvas_size(layout, len(photos))
        canvas = _vertical_gradient(cw, ch)
        draw = ImageDraw.Draw(canvas, "RGBA")

        if layout != "single":
            for y in range(30, ch, 60):
                draw.rectangle((15, y, 29, y + 24), fill=(255, 255, 255, 13))
                draw.rectangle((cw - 30, y, cw - 16, y + 24), fill=(255, 255, 255, 13))

        draw.text((cw / 2, 90), TITLE_TEXT, font=image_process.load_font(settings.CAPTION_FONT_PATH, 32),
                  fill="#ffffff", anchor="ms")

        cells = fallback_cells(layout, len(photos))
        shadow = Image.new("RGBA", (cw, ch), (0, 0, 0, 0))
        shadow_draw = ImageDraw.Draw(shadow)
        for x, y, w, h in cells:
            shadow_draw.rectangle((x - CELL_BORDER, y - CELL_BORDER, x + w + CELL_BORDER - 1, y + h + CELL_BORDER - 1),
                                  fill=(0, 0, 0, 128))
        shadow = shadow.filter(ImageFilter.GaussianBlur(SHADOW_BLUR))
        canvas = Image.alpha_composite(canvas.convert("RGBA"), shadow)
        draw = ImageDraw.Draw(canvas)

        for (x, y, w, h), photo in zip(cells, photos):
            draw.rectangle((x - CELL_BORDER, y - CELL_BORDER, x + w + CELL_BORDER - 1, y + h + CELL_BORDER - 1),
                           fill="#ffffff")
            image_process.draw_cover(canvas, photo, (x, y, w, h))

        caption_layer = Image.new("RGBA", (cw, ch), (0, 0, 0, 0))
        caption = ImageDraw.Draw(caption_layer)
        caption.text((cw / 2, ch - 120), template.theme_text,
                     font=image_process.load_font(settings.CAPTION_FONT_PATH, 50), fill="#ffffff", anchor="ms")
        day = today or date.today()
        meta = f"BOOTH SNAP • {day:%b} {day.day}, {day.year} • {template.name.upper()}"
        caption.text((cw / 2, ch - 65), meta,
                     font=image_process.load_font(settings.CAPTION_FONT_PATH, 20), fill=(255, 255, 255, 102), anchor="ms")
        canvas = Image.alpha_composite(canvas, caption_layer)

        logger.info(f"Layout bawaan '{layout}': {len(cells)} sel ({cw}x{ch}).")
        return CompositeResult(image=canvas, mode="fallback")
