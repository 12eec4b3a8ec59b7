# stripbooth/infrastructure/cv/image_process.py
import logging
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

logger = logging.getLogger(__name__)

# Ellipse masks are drawn oversized and reduced for a soft edge
MASK_SUPERSAMPLE = 4

Box = Tuple[float, float, float, float]
Rect = Tuple[int, int, int, int]

def cover_crop_box(source_w: int, source_h: int, target_w: float, target_h: float) -> Box:
    """Source region that fills (target_w, target_h) without distortion, centered."""
    source_ratio = source_w / source_h
    target_ratio = target_w / target_h

    if source_ratio > target_ratio:
        crop_w = source_h * target_ratio
        left = (source_w - crop_w) / 2
        return (left, 0.0, left + crop_w, float(source_h))
    else:
        crop_h = source_w / target_ratio
        top = (source_h - crop_h) / 2
        return (0.0, top, float(source_w), top + crop_h)

def cover_fit(image_pil: Image.Image, target_w: int, target_h: int) -> Image.Image:
    box = cover_crop_box(image_pil.width, image_pil.height, target_w, target_h)
    return image_pil.resize((target_w, target_h), Image.Resampling.LANCZOS, box=box)

def draw_cover(canvas: Image.Image, image_pil: Image.Image, rect: Rect, mask: Optional[Image.Image] = None) -> None:
    """Cover-fit image_pil into rect = (x, y, w, h) on canvas, optionally through an L mask."""
    x, y, w, h = rect
    if w <= 0 or h <= 0:
        return
    fitted = cover_fit(image_pil.convert("RGBA"), w, h)
    if mask is None:
        mask = fitted
    canvas.paste(fitted, (x, y), mask=mask)
    fitted.close()

def ellipse_mask(w: int, h: int) -> Image.Image:
    big = Image.new("L", (w * MASK_SUPERSAMPLE, h * MASK_SUPERSAMPLE), 0)
    ImageDraw.Draw(big).ellipse((0, 0, big.width - 1, big.height - 1), fill=255)
    return big.resize((w, h), Image.Resampling.LANCZOS)

def slot_to_rect(slot, canvas_w: int, canvas_h: int) -> Rect:
    left = int(round(slot.x * canvas_w))
    top = int(round(slot.y * canvas_h))
    right = int(round((slot.x + slot.width) * canvas_w))
    bottom = int(round((slot.y + slot.height) * canvas_h))
    return (left, top, max(1, right - left), max(1, bottom - top))

def thumbnail(image_pil: Image.Image, max_side: int) -> Image.Image:
    thumb = image_pil.copy()
    thumb.thumbnail((max_side, max_side), Image.Resampling.BILINEAR)
    return thumb

def encode_png(img: Image.Image) -> bytes:
    # PNG keeps alpha; intermediate composites must round-trip losslessly
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()

def decode_image(data: bytes) -> Image.Image:
    img = Image.open(BytesIO(data))
    img.load()
    return img.convert("RGBA")

def load_font(path: Optional[str], size: int):
    if path:
        try:
            return ImageFont.truetype(path, size)
        except OSError as e:
            logger.warning(f"Font '{path}' tidak bisa dimuat ({e}), memakai font bawaan.")
    return ImageFont.load_default(size=size)
