"""Final bake of filter and stickers."""

import logging

import numpy as np
import pytest
from PIL import Image

from stripbooth.config.settings import settings
from stripbooth.domain.catalog import STICKER_ASSETS
from stripbooth.domain.errors import FlattenInProgress
from stripbooth.domain.flattener import Flattener, has_glyph, load_emoji_font, render_glyph, render_preview
from stripbooth.domain.sticker_layer import StickerLayer

BASE_COLOR = (20, 20, 30, 255)


@pytest.fixture
def base():
    return Image.new("RGBA", (800, 600), BASE_COLOR)


@pytest.fixture
def flattener():
    return Flattener(base_size=40)


def _ink_centroid(img, reference):
    diff = np.any(np.asarray(img) != np.asarray(reference), axis=2)
    ys, xs = np.nonzero(diff)
    assert len(xs) > 0, "sticker left no ink"
    return xs.mean(), ys.mean()


class TestFlatten:

    def test_output_matches_base_size(self, base, flattener):
        layer = StickerLayer()
        layer.add("X")
        assert flattener.flatten(base, "none", layer).size == base.size

    def test_no_stickers_no_filter_is_base(self, base, flattener):
        assert flattener.flatten(base, "none", []).tobytes() == base.tobytes()

    def test_repeat_flatten_is_pixel_identical(self, base, flattener):
        layer = StickerLayer()
        layer.add("X")
        s = layer.add("O")
        layer.move(s.id, 20, 70)
        layer.set_rotation(s.id, 33)
        first = flattener.flatten(base, "slime", layer)
        second = flattener.flatten(base, "slime", layer)
        assert first.tobytes() == second.tobytes()

    def test_add_then_remove_equals_empty(self, base, flattener):
        layer = StickerLayer()
        s = layer.add("X")
        layer.remove(s.id)
        assert flattener.flatten(base, "ghost", layer).tobytes() == flattener.flatten(base, "ghost", []).tobytes()

    def test_moving_sticker_moves_its_ink(self, base, flattener):
        layer = StickerLayer()
        s = layer.add("X")
        empty = flattener.flatten(base, "none", [])

        cx, cy = _ink_centroid(flattener.flatten(base, "none", layer), empty)
        assert cx == pytest.approx(400, abs=6)
        assert cy == pytest.approx(300, abs=6)

        layer.move(s.id, 10, 10)
        cx, cy = _ink_centroid(flattener.flatten(base, "none", layer), empty)
        assert cx == pytest.approx(80, abs=6)
        assert cy == pytest.approx(60, abs=6)
        assert len(layer) == 1

    def test_scale_grows_ink(self, base, flattener):
        layer = StickerLayer()
        s = layer.add("X")
        empty = flattener.flatten(base, "none", [])
        small = np.any(np.asarray(flattener.flatten(base, "none", layer)) != np.asarray(empty), axis=2).sum()
        layer.set_scale(s.id, 3)
        big = np.any(np.asarray(flattener.flatten(base, "none", layer)) != np.asarray(empty), axis=2).sum()
        assert big > small * 4

    def test_rotation_changes_output(self, base, flattener):
        layer = StickerLayer()
        s = layer.add("L")
        upright = flattener.flatten(base, "none", layer)
        layer.set_rotation(s.id, 90)
        assert flattener.flatten(base, "none", layer).tobytes() != upright.tobytes()

    def test_partly_off_canvas_sticker(self, base, flattener):
        layer = StickerLayer()
        s = layer.add("X")
        layer.move(s.id, -1, 101)
        flattener.flatten(base, "none", layer)

    def test_fully_off_canvas_sticker_leaves_no_ink(self, base, flattener):
        layer = StickerLayer()
        s = layer.add("X")
        layer.move(s.id, -500, 50)
        assert flattener.flatten(base, "none", layer).tobytes() == base.tobytes()

    def test_noir_on_gray_composite_stays_gray(self, flattener):
        gray = Image.new("RGBA", (64, 48), (120, 120, 120, 255))
        out = np.asarray(flattener.flatten(gray, "noir", []))
        assert (out[..., 0] == out[..., 1]).all() and (out[..., 1] == out[..., 2]).all()

    def test_filter_is_baked_not_applied_to_stickers(self, flattener):
        # a white glyph on a black base survives ghost's sepia untouched
        base = Image.new("RGBA", (200, 200), (0, 0, 0, 255))
        layer = StickerLayer()
        layer.add("X")
        out = flattener.flatten(base, "ghost", layer)
        colours = {px for px in out.getdata()}
        assert (255, 255, 255, 255) in colours
        assert out.getpixel((0, 0))[3] == 217

    def test_base_is_not_mutated(self, base, flattener):
        before = base.tobytes()
        layer = StickerLayer()
        layer.add("X")
        flattener.flatten(base, "blood", layer)
        assert base.tobytes() == before

    def test_concurrent_flatten_is_refused(self, base, flattener):
        flattener._lock.acquire()
        try:
            with pytest.raises(FlattenInProgress):
                flattener.flatten(base, "none", [])
        finally:
            flattener._lock.release()

    def test_largest_allowed_scale_flattens(self, base, flattener):
        layer = StickerLayer()
        s = layer.add("👻")
        layer.set_scale(s.id, settings.STICKER_MAX_SCALE)
        layer.move(s.id, 99, 1)
        assert flattener.flatten(base, "none", layer).size == base.size


class TestGlyphAndPreview:

    def test_render_glyph_has_ink(self):
        tile = render_glyph("X", 40)
        assert tile.mode == "RGBA"
        assert tile.getbbox() is not None

    def test_catalog_emoji_render_distinct_tiles(self):
        glyphs = [asset.type for asset in STICKER_ASSETS[:4]]
        tiles = {render_glyph(g, 90).tobytes() for g in glyphs}
        assert len(tiles) == len(glyphs)

    def test_without_emoji_font_stickers_show_their_label(self, monkeypatch, caplog):
        monkeypatch.setattr(settings, "STICKER_FONT_PATH", None)
        monkeypatch.setattr(settings, "STICKER_FONT_CANDIDATES", [])
        load_emoji_font.cache_clear()
        try:
            with caplog.at_level(logging.ERROR, logger="stripbooth.domain.flattener"):
                ghost = render_glyph("👻", 90)
                pumpkin = render_glyph("🎃", 90)
        finally:
            load_emoji_font.cache_clear()
        assert any(r.levelno == logging.ERROR for r in caplog.records)
        assert ghost.tobytes() != pumpkin.tobytes()
        # a name badge is wider than it is tall
        assert ghost.width > ghost.height

    def test_emoji_font_is_scaled_to_requested_size(self):
        font = load_emoji_font()
        if font is None or not has_glyph(font, "👻"):
            pytest.skip("no colour emoji font installed")
        small, big = render_glyph("👻", 45), render_glyph("👻", 90)
        assert big.height == pytest.approx(2 * small.height, abs=3)

    def test_preview_is_small_and_filtered(self):
        base = Image.new("RGBA", (1200, 900), (200, 40, 40, 255))
        preview = render_preview(base, "noir", max_side=300)
        assert max(preview.size) == 300
        r, g, b, _ = preview.getpixel((10, 10))
        assert r == g == b
