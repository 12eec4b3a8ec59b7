from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import List, Literal, Optional

from stripbooth.config.settings import settings

LayoutKind = Literal["strip", "grid", "single"]
FilterName = Literal["none", "noir", "slime", "blood", "ghost"]
Decision = Literal["save", "cancel"]

class Slot(BaseModel):
    # Normalized to the frame's dimensions
    model_config = ConfigDict(frozen=True)

    x: float = Field(ge=0.0, le=1.0)
    y: float = Field(ge=0.0, le=1.0)
    width: float = Field(gt=0.0, le=1.0)
    height: float = Field(gt=0.0, le=1.0)
    area: float = Field(default=0.0, ge=0.0)  # bbox pixels at detection size, 0 for manual slots

    @model_validator(mode="after")
    def _inside_unit_square(self):
        # small tolerance for float rounding on hand-authored slots
        if self.x + self.width > 1.0 + 1e-6 or self.y + self.height > 1.0 + 1e-6:
            raise ValueError("slot must lie inside the unit square")
        return self

class TemplateDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    photo_count: int = Field(ge=1)
    layout: LayoutKind = "strip"
    theme_text: str = ""

    # Optional overlay frame; transparent holes are detected when no manual slots are given
    frame_url: Optional[str] = None
    slots: List[Slot] = Field(default_factory=list)

    # Theme hints, passed through to clients
    icon: str = ""
    color: str = ""
    accent: str = ""
    gradient: str = ""
    decorations: List[str] = Field(default_factory=list)

class StickerAsset(BaseModel):
    type: str
    label: str

class CreateSessionBody(BaseModel):
    template_id: Optional[str] = None
    template: Optional[TemplateDescriptor] = None

    # User photos in template order; URLs, local paths or base64 (data URLs supported)
    photos: List[str] = Field(min_length=1)

    @model_validator(mode="after")
    def _one_template_source(self):
        if (self.template_id is None) == (self.template is None):
            raise ValueError("exactly one of template_id or template is required")
        return self

class FilterBody(BaseModel):
    filter: FilterName

class AddStickerBody(BaseModel):
    glyph_type: str = Field(min_length=1)

class UpdateStickerBody(BaseModel):
    # Infinity/NaN pass the JSON parser, refuse them here
    x: Optional[float] = Field(default=None, allow_inf_nan=False)
    y: Optional[float] = Field(default=None, allow_inf_nan=False)
    scale: Optional[float] = Field(default=None, gt=0.0, le=settings.STICKER_MAX_SCALE, allow_inf_nan=False)
    rotation: Optional[float] = Field(default=None, allow_inf_nan=False)

class FinishBody(BaseModel):
    decision: Decision = "save"
