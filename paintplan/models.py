"""
models.py — Data model shared by the plan-generation pipeline.

Field names are snake_case in Python and camelCase on the wire
(``plan.to_json()`` / ``ProjectPlan.model_validate(payload)``), so plans
round-trip with the browser front-end unchanged.

Aggregates:
  Inventory       — paints, thinners, varnishes, washes (point-in-time snapshot)
  RegionItem      — user-marked regions of one miniature part
  IdentifiedColor — one colour observed on the reference photo (phase 1)
  ProjectStep     — one painting step, anchored to image regions
  ProjectPlan     — the terminal output of a generation call
"""

from __future__ import annotations

import base64
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

PaintType = Literal["Ink", "Acrylic", "Varnish", "Other"]
VarnishFinish = Literal["Brilhante", "Acetinado", "Fosco", "Vitral Brilhante"]
ThinnerComposition = Literal["Original", "Caseiro"]

NEUTRAL_HEX = "#808080"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# ── Inventory ─────────────────────────────────────────────────────────────────

class Paint(CamelModel):
    id: str = ""
    type: PaintType = "Acrylic"
    brand: str = ""
    name: str = ""
    hex: str = NEUTRAL_HEX


class Thinner(CamelModel):
    id: str = ""
    brand: str = ""
    name: str = ""
    composition: ThinnerComposition = "Original"


class Varnish(CamelModel):
    id: str = ""
    brand: str = ""
    name: str = ""
    finish: VarnishFinish = "Brilhante"


class Wash(CamelModel):
    id: str = ""
    brand: str = ""
    name: str = ""
    composition: str = ""
    hex: str = ""


class Inventory(CamelModel):
    """Point-in-time snapshot of everything the painter owns."""
    paints: List[Paint] = Field(default_factory=list)
    thinners: List[Thinner] = Field(default_factory=list)
    varnishes: List[Varnish] = Field(default_factory=list)
    washes: List[Wash] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.paints or self.thinners or self.varnishes or self.washes)

    def item_count(self) -> int:
        return len(self.paints) + len(self.thinners) + len(self.varnishes) + len(self.washes)


class ParsedInventory(Inventory):
    """Result of a bulk import: same shape as Inventory, entities carry no ids yet."""


# ── Regions ───────────────────────────────────────────────────────────────────

class RegionRect(CamelModel):
    """Rectangle relative to the unit square of the reference image."""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @field_validator("x", "y", "width", "height")
    @classmethod
    def _clamp_unit(cls, value: float) -> float:
        return min(1.0, max(0.0, float(value)))


ImageRegion = RegionRect


class RegionItem(CamelModel):
    part_name: str
    regions: List[RegionRect] = Field(default_factory=list)
    confirmed: bool = False

    @model_validator(mode="after")
    def _confirmed_tracks_regions(self) -> "RegionItem":
        self.confirmed = bool(self.regions)
        return self


class PartSuggestion(CamelModel):
    """Provisional part proposed by the model; never confirmed by the pipeline."""
    part_name: str
    description: str = ""
    regions: List[RegionRect] = Field(default_factory=list)

    def to_region_item(self) -> RegionItem:
        # Suggested rectangles are only hints for the editor; the user confirms.
        return RegionItem(part_name=self.part_name)


# ── Colours and mixes ─────────────────────────────────────────────────────────

class ProjectPaint(CamelModel):
    name: str
    brand: str = ""
    hex: str = NEUTRAL_HEX


class StepPaint(ProjectPaint):
    purpose: str = "base"


class MixComponent(CamelModel):
    paint: str
    brand: str = ""
    hex: str = NEUTRAL_HEX
    ratio: int = 1

    @field_validator("ratio")
    @classmethod
    def _positive_ratio(cls, value: int) -> int:
        return max(1, int(value))


class PaintMix(CamelModel):
    target_color: str
    target_hex: str = NEUTRAL_HEX
    components: List[MixComponent] = Field(default_factory=list)
    instructions: str = ""

    def ratio_label(self) -> str:
        return ":".join(str(c.ratio) for c in self.components)


class IdentifiedColor(CamelModel):
    color_name: str
    hex: str
    location: str = ""
    matched_paint: Optional[ProjectPaint] = None
    needs_mixing: bool = False
    mix_recipe: Optional[PaintMix] = None


# ── Steps and plan ────────────────────────────────────────────────────────────

class Dilution(CamelModel):
    ratio: str
    description: str
    thinner_note: Optional[str] = None


class ProjectStep(CamelModel):
    step_number: int
    part_name: str
    part_description: str = ""
    base_color: str = ""
    paints_to_use: List[StepPaint] = Field(default_factory=list)
    paint_mix: Optional[PaintMix] = None
    technique: str
    tool: str
    tool_details: str = ""
    dilution: Dilution
    image_regions: List[RegionRect] = Field(default_factory=list)
    tips: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ReferenceImage(CamelModel):
    data: str                 # base64, exactly as supplied by the caller
    type: str = "image/jpeg"  # MIME type

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)


class ProjectInfo(CamelModel):
    project_name: str
    source: str = ""


class ProjectPlan(CamelModel):
    project_name: str
    source: str = ""
    identified_colors: List[IdentifiedColor] = Field(default_factory=list)
    paints_to_use: List[ProjectPaint] = Field(default_factory=list)
    required_mixes: List[PaintMix] = Field(default_factory=list)
    steps: List[ProjectStep] = Field(default_factory=list)
    fixation_tips: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    reference_image: ReferenceImage
