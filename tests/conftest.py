"""Shared fixtures: synthetic frames, photos and an in-memory asset loader."""

from concurrent.futures import ThreadPoolExecutor
from io import BytesIO

import pytest
from PIL import Image

FRAME_COLOR = (200, 100, 50, 255)


def _make_frame(size, holes, alpha=0, color=FRAME_COLOR):
    """Opaque frame with rectangular holes given as (x0, y0, x1, y1), inclusive."""
    frame = Image.new("RGBA", size, color)
    for x0, y0, x1, y1 in holes:
        frame.paste((0, 0, 0, alpha), (x0, y0, x1 + 1, y1 + 1))
    return frame


def _solid(color, size=(640, 480)):
    return Image.new("RGBA", size, color)


def _png(img):
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class FakeLoader:
    """Stands in for AssetLoader; unknown sources behave like failed downloads."""

    def __init__(self, blobs):
        self.blobs = dict(blobs)
        self.calls = []

    async def load_many(self, sources):
        self.calls.append(list(sources))
        return [self.blobs.get(src) for src in sources]


@pytest.fixture
def make_frame():
    return _make_frame


@pytest.fixture
def solid_photo():
    return _solid


@pytest.fixture
def png_bytes():
    return _png


@pytest.fixture
def fake_loader_cls():
    return FakeLoader


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=2)
    yield pool
    pool.shutdown(wait=True)
