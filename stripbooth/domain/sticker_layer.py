# stripbooth/domain/sticker_layer.py
import math
from dataclasses import asdict, dataclass
from typing import Dict, Iterator, List, Optional

from stripbooth.config.settings import settings
from stripbooth.domain.errors import InvalidStickerValue, StickerNotFound

DEFAULT_POSITION = 50.0

def _finite(name: str, value) -> float:
    value = float(value)
    if not math.isfinite(value):
        raise InvalidStickerValue(f"{name} must be a finite number, got {value}")
    return value

def _valid_scale(value) -> float:
    value = _finite("scale", value)
    if not 0 < value <= settings.STICKER_MAX_SCALE:
        raise InvalidStickerValue(f"scale must be in (0, {settings.STICKER_MAX_SCALE}], got {value}")
    return value

@dataclass
class Sticker:
    id: int
    glyph_type: str
    x: float = DEFAULT_POSITION  # percent of composite width
    y: float = DEFAULT_POSITION  # percent of composite height
    scale: float = 1.0
    rotation: float = 0.0  # degrees, clockwise

    def to_dict(self) -> Dict:
        return asdict(self)

class StickerLayer:
    """Ordered sticker collection for one editing session.

    Insertion order is paint order. Mutations happen in place and are meant to
    be called at pointer-drag rates, so they do no copying.
    """

    def __init__(self):
        self._stickers: List[Sticker] = []
        self._by_id: Dict[int, Sticker] = {}
        self._next_id = 1
        self.selected_id: Optional[int] = None

    def __iter__(self) -> Iterator[Sticker]:
        return iter(self._stickers)

    def __len__(self) -> int:
        return len(self._stickers)

    def get(self, sticker_id: int) -> Sticker:
        try:
            return self._by_id[sticker_id]
        except KeyError:
            raise StickerNotFound(f"sticker {sticker_id} tidak ada") from None

    @property
    def selected(self) -> Optional[Sticker]:
        if self.selected_id is None:
            return None
        return self._by_id.get(self.selected_id)

    def add(self, glyph_type: str) -> Sticker:
        if not glyph_type:
            raise InvalidStickerValue("glyph_type must not be empty")
        sticker = Sticker(id=self._next_id, glyph_type=glyph_type)
        self._next_id += 1
        self._stickers.append(sticker)
        self._by_id[sticker.id] = sticker
        self.selected_id = sticker.id
        return sticker

    def select(self, sticker_id: int) -> Sticker:
        sticker = self.get(sticker_id)
        self.selected_id = sticker_id
        return sticker

    def clear_selection(self) -> None:
        self.selected_id = None

    def move(self, sticker_id: int, x: float, y: float) -> Sticker:
        # unclamped: stickers may hang partly off the canvas
        sticker = self.get(sticker_id)
        x, y = _finite("x", x), _finite("y", y)
        sticker.x = x
        sticker.y = y
        return sticker

    def set_scale(self, sticker_id: int, value: float) -> Sticker:
        sticker = self.get(sticker_id)
        sticker.scale = _valid_scale(value)
        return sticker

    def set_rotation(self, sticker_id: int, degrees: float) -> Sticker:
        sticker = self.get(sticker_id)
        sticker.rotation = _finite("rotation", degrees) % 360.0
        return sticker

    def remove(self, sticker_id: int) -> None:
        sticker = self.get(sticker_id)
        self._stickers.remove(sticker)
        del self._by_id[sticker_id]
        if self.selected_id == sticker_id:
            self.selected_id = None

    def to_list(self) -> List[Dict]:
        return [s.to_dict() for s in self._stickers]

    @classmethod
    def from_list(cls, items: List[Dict]) -> "StickerLayer":
        layer = cls()
        for item in items:
            sticker = Sticker(**item)
            if sticker.id in layer._by_id:
                raise InvalidStickerValue(f"duplicate sticker id {sticker.id}")
            sticker.x, sticker.y = _finite("x", sticker.x), _finite("y", sticker.y)
            sticker.scale = _valid_scale(sticker.scale)
            sticker.rotation = _finite("rotation", sticker.rotation) % 360.0
            layer._stickers.append(sticker)
            layer._by_id[sticker.id] = sticker
            layer._next_id = max(layer._next_id, sticker.id + 1)
        return layer
