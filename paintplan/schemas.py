"""
schemas.py — Structured-output schemas sent to Gemini, one per phase.

These are response *shapes* only. Field names are the camelCase wire keys
the normalizer reads, so whatever Gemini returns flows through the same
normalize_* functions as local-model output. Nothing here is trusted:
replies are still repaired and normalized.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


# ── Shared pieces ─────────────────────────────────────────────────────────────

class RegionSchema(BaseModel):
    x: float = Field(description="Left edge, 0–1 relative to image width")
    y: float = Field(description="Top edge, 0–1 relative to image height")
    width: float = Field(description="Width, 0–1 relative to image width")
    height: float = Field(description="Height, 0–1 relative to image height")


class PaintRefSchema(BaseModel):
    name: str = Field(description="Exact paint name as written in the inventory")
    brand: str = Field(description="Paint brand as written in the inventory")
    hex: str = Field(description="Hex code of the paint, e.g. '#1A2B3C'")


class MixComponentSchema(BaseModel):
    paint: str = Field(description="Inventory paint name used in the mix")
    brand: str
    hex: str
    ratio: int = Field(description="Positive integer parts of this paint")


class MixSchema(BaseModel):
    targetColor: str = Field(description="Name of the colour the mix produces")
    targetHex: str = Field(description="Hex code of the colour the mix produces")
    components: List[MixComponentSchema] = Field(description="Two or more inventory paints")
    instructions: str = Field(description="Short mixing instructions in Portuguese")


# ── Phase 1: colours ──────────────────────────────────────────────────────────

class ColorSchema(BaseModel):
    colorName: str = Field(description="Descriptive colour name in Portuguese, e.g. 'Vermelho sangue'")
    hex: str = Field(description="Observed hex code on the reference photo")
    location: str = Field(description="Part of the miniature where this colour appears")
    matchedPaint: Optional[PaintRefSchema] = Field(
        default=None, description="Inventory paint that matches closely, if any"
    )
    needsMixing: bool = Field(description="True when no inventory paint is close enough")
    mixRecipe: Optional[MixSchema] = Field(
        default=None, description="Required when needsMixing is true"
    )


class ColorsResponse(BaseModel):
    colors: List[ColorSchema] = Field(description="Every visually distinct colour on the miniature")


# ── Phase 2: parts ────────────────────────────────────────────────────────────

class PartSchema(BaseModel):
    partName: str = Field(description="Short part name in Portuguese, e.g. 'Capa', 'Olhos', 'Base'")
    description: str = Field(description="One sentence describing the part")
    regions: List[RegionSchema] = Field(description="Approximate rectangles where the part is visible")


class PartsResponse(BaseModel):
    parts: List[PartSchema] = Field(description="Between 5 and 15 paintable parts")


# ── Phase 3: steps ────────────────────────────────────────────────────────────

class StepPaintSchema(PaintRefSchema):
    purpose: Literal["base", "shadow", "highlight", "wash", "glaze"]


class DilutionSchema(BaseModel):
    ratio: str = Field(description="Paint:thinner ratio, e.g. '1:2'")
    description: str
    thinnerNote: Optional[str] = None


class StepSchema(BaseModel):
    stepNumber: int
    partName: str = Field(description="Exactly one of the requested part names, or 'Verniz' for the last step")
    partDescription: str
    baseColor: str
    paintsToUse: List[StepPaintSchema] = Field(description="At most one paint per purpose")
    paintMix: Optional[MixSchema] = None
    technique: Literal[
        "basecoat", "layering", "drybrushing", "washing", "glazing",
        "edge-highlight", "fine-detail", "varnishing",
    ]
    tool: Literal["Paintbrush", "Airbrush"]
    toolDetails: str = Field(description="Brush size or airbrush setting")
    dilution: DilutionSchema
    tips: List[str]
    warnings: List[str]


class StepsResponse(BaseModel):
    steps: List[StepSchema] = Field(description="One step per requested part, then one final varnish step")
    fixationTips: List[str]
    warnings: List[str]


# ── Bulk inventory ────────────────────────────────────────────────────────────

class BulkPaintSchema(BaseModel):
    brand: str
    name: str
    type: Literal["Ink", "Acrylic", "Varnish", "Other"]
    hex: str


class BulkThinnerSchema(BaseModel):
    brand: str
    composition: Literal["Original", "Caseiro"]


class BulkVarnishSchema(BaseModel):
    brand: str
    finish: Literal["Brilhante", "Acetinado", "Fosco", "Vitral Brilhante"]


class BulkWashSchema(BaseModel):
    brand: str
    composition: str


class BulkInventoryResponse(BaseModel):
    paints: List[BulkPaintSchema]
    thinners: List[BulkThinnerSchema]
    varnishes: List[BulkVarnishSchema]
    washes: List[BulkWashSchema]
