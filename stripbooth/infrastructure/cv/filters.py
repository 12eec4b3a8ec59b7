# stripbooth/infrastructure/cv/filters.py
"""Pixel-level colour filters.

Each filter is a chain of CSS filter-effect primitives applied in order on
8-bit RGBA data, clamped to [0, 255] after every step. The maths follows the
Filter Effects colour matrices so that the baked result matches what the
editor preview shows.
"""
import math
from typing import Callable, Dict, List, Tuple

import numpy as np
from PIL import Image

from stripbooth.domain.errors import UnknownFilter

Step = Tuple[str, float]

FILTERS: Dict[str, List[Step]] = {
    "none": [],
    "noir": [("grayscale", 1.0), ("contrast", 1.1), ("brightness", 0.9)],
    "slime": [("hue_rotate", 95.0), ("saturate", 2.0), ("brightness", 1.1)],
    "blood": [("sepia", 1.0), ("hue_rotate", -55.0), ("saturate", 3.5)],
    "ghost": [("sepia", 1.0), ("hue_rotate", 200.0), ("opacity", 0.85), ("brightness", 1.2)],
}

def _grayscale_matrix(amount: float) -> np.ndarray:
    a = 1.0 - min(1.0, amount)
    return np.array([
        [0.2126 + 0.7874 * a, 0.7152 - 0.7152 * a, 0.0722 - 0.0722 * a],
        [0.2126 - 0.2126 * a, 0.7152 + 0.2848 * a, 0.0722 - 0.0722 * a],
        [0.2126 - 0.2126 * a, 0.7152 - 0.7152 * a, 0.0722 + 0.9278 * a],
    ])

def _sepia_matrix(amount: float) -> np.ndarray:
    a = 1.0 - min(1.0, amount)
    return np.array([
        [0.393 + 0.607 * a, 0.769 - 0.769 * a, 0.189 - 0.189 * a],
        [0.349 - 0.349 * a, 0.686 + 0.314 * a, 0.168 - 0.168 * a],
        [0.272 - 0.272 * a, 0.534 - 0.534 * a, 0.131 + 0.869 * a],
    ])

def _saturate_matrix(s: float) -> np.ndarray:
    return np.array([
        [0.213 + 0.787 * s, 0.715 - 0.715 * s, 0.072 - 0.072 * s],
        [0.213 - 0.213 * s, 0.715 + 0.285 * s, 0.072 - 0.072 * s],
        [0.213 - 0.213 * s, 0.715 - 0.715 * s, 0.072 + 0.928 * s],
    ])

def _hue_rotate_matrix(degrees: float) -> np.ndarray:
    rad = math.radians(degrees)
    c, s = math.cos(rad), math.sin(rad)
    return np.array([
        [0.213 + c * 0.787 - s * 0.213, 0.715 - c * 0.715 - s * 0.715, 0.072 - c * 0.072 + s * 0.928],
        [0.213 - c * 0.213 + s * 0.143, 0.715 + c * 0.285 + s * 0.140, 0.072 - c * 0.072 - s * 0.283],
        [0.213 - c * 0.213 - s * 0.787, 0.715 - c * 0.715 + s * 0.715, 0.072 + c * 0.928 + s * 0.072],
    ])

_MATRICES: Dict[str, Callable[[float], np.ndarray]] = {
    "grayscale": _grayscale_matrix,
    "sepia": _sepia_matrix,
    "saturate": _saturate_matrix,
    "hue_rotate": _hue_rotate_matrix,
}

def _apply_step(rgb: np.ndarray, alpha: np.ndarray, op: str, value: float) -> None:
    if op in _MATRICES:
        m = _MATRICES[op](value)
        r, g, b = rgb[..., 0].copy(), rgb[..., 1].copy(), rgb[..., 2].copy()
        # per channel so equal matrix rows give bit-identical channels
        for i in range(3):
            rgb[..., i] = m[i, 0] * r + m[i, 1] * g + m[i, 2] * b
    elif op == "brightness":
        rgb *= value
    elif op == "contrast":
        rgb[:] = (rgb - 127.5) * value + 127.5
    elif op == "opacity":
        alpha *= value
    else:
        raise ValueError(f"unknown filter primitive: {op}")
    np.clip(rgb, 0.0, 255.0, out=rgb)
    np.clip(alpha, 0.0, 255.0, out=alpha)

def apply_filter(img: Image.Image, name: str) -> Image.Image:
    """Return a new RGBA image with the named filter baked into its pixels."""
    if name not in FILTERS:
        raise UnknownFilter(f"unknown filter '{name}'")
    rgba = img.convert("RGBA")
    steps = FILTERS[name]
    if not steps:
        return rgba

    data = np.asarray(rgba, dtype=np.float64)
    rgb = data[..., :3].copy()
    alpha = data[..., 3].copy()
    for op, value in steps:
        _apply_step(rgb, alpha, op, value)

    out = np.empty(data.shape, dtype=np.uint8)
    out[..., :3] = np.rint(rgb)
    out[..., 3] = np.rint(alpha)
    return Image.fromarray(out)
