# stripbooth/domain/region_detector.py
import bisect
import logging
from typing import List, Tuple

import cv2
import numpy as np
from PIL import Image

from stripbooth.config.settings import settings
from stripbooth.delivery.schemas.body import Slot

logger = logging.getLogger(__name__)

Run = Tuple[int, int]  # [start, end) columns of open pixels in one row

def _alpha_at_detection_size(frame: Image.Image, max_side: int) -> np.ndarray:
    alpha = np.array(frame.convert("RGBA").getchannel("A"), dtype=np.uint8)
    h, w = alpha.shape
    scale = min(1.0, max_side / max(w, h))
    if scale < 1.0:
        dw = max(1, int(round(w * scale)))
        dh = max(1, int(round(h * scale)))
        alpha = cv2.resize(alpha, (dw, dh), interpolation=cv2.INTER_AREA)
    return alpha

def _row_runs(mask: np.ndarray) -> List[Tuple[List[int], List[int]]]:
    runs = []
    for row in mask:
        edges = np.diff(np.concatenate(([0], row.astype(np.int8), [0])))
        starts = np.flatnonzero(edges == 1).tolist()
        ends = np.flatnonzero(edges == -1).tolist()
        runs.append((starts, ends))
    return runs

def _overlapping(starts: List[int], ends: List[int], lo: int, hi: int) -> range:
    # runs in a row are sorted and disjoint; those touching [lo, hi) form one index range
    first = bisect.bisect_right(ends, lo)
    last = bisect.bisect_left(starts, hi)
    return range(first, last)

def _components(mask: np.ndarray):
    """Yield (min_x, min_y, max_x, max_y, pixel_count) per 4-connected open component.

    Uses an explicit stack of horizontal runs; a run connects to every run on the
    row above or below whose column interval overlaps it.
    """
    height = mask.shape[0]
    runs = _row_runs(mask)
    visited = [bytearray(len(starts)) for starts, _ in runs]

    for y0 in range(height):
        for i0 in range(len(runs[y0][0])):
            if visited[y0][i0]:
                continue
            visited[y0][i0] = 1
            stack = [(y0, i0)]
            min_x, min_y, max_x, max_y, count = None, y0, None, y0, 0
            while stack:
                y, i = stack.pop()
                start, end = runs[y][0][i], runs[y][1][i]
                count += end - start
                min_x = start if min_x is None else min(min_x, start)
                max_x = end - 1 if max_x is None else max(max_x, end - 1)
                min_y = min(min_y, y)
                max_y = max(max_y, y)
                for ny in (y - 1, y + 1):
                    if ny < 0 or ny >= height:
                        continue
                    starts, ends = runs[ny]
                    for j in _overlapping(starts, ends, start, end):
                        if not visited[ny][j]:
                            visited[ny][j] = 1
                            stack.append((ny, j))
            yield min_x, min_y, max_x, max_y, count

def detect_slots(
    frame: Image.Image,
    max_side: int = settings.DETECTION_MAX_SIDE,
    alpha_threshold: int = settings.ALPHA_THRESHOLD,
    min_area_fraction: float = settings.MIN_REGION_FRACTION,
) -> List[Slot]:
    """Find transparent windows in a frame, ordered top-to-bottom then left-to-right."""
    alpha = _alpha_at_detection_size(frame, max_side)
    h, w = alpha.shape
    total = float(w * h)
    mask = alpha < alpha_threshold

    slots: List[Slot] = []
    dropped = 0
    for min_x, min_y, max_x, max_y, _count in _components(mask):
        bw, bh = max_x - min_x + 1, max_y - min_y + 1
        area = bw * bh
        if area / total <= min_area_fraction:
            dropped += 1
            continue
        slots.append(Slot(x=min_x / w, y=min_y / h, width=bw / w, height=bh / h, area=area))

    slots.sort(key=lambda s: (s.y, s.x))
    logger.info(f"Deteksi slot: {len(slots)} region dipakai, {dropped} bintik diabaikan ({w}x{h}).")
    return slots
