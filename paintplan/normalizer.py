"""
normalizer.py — Coerce decoded model replies into the strict plan model.

One normalizer per phase:
  normalize_colors(raw, inventory)                    → List[IdentifiedColor]
  normalize_parts(raw, colors)                        → List[PartSuggestion]
  normalize_steps(raw, parts, inventory, colors)      → StepsResult
and the final assembly:
  normalize_plan(...)                                 → ProjectPlan (never raises)

Phase normalizers raise NormalizationError when the reply has no usable
array for their phase; the orchestrator treats that as a failed phase.
Everything else (wrong types, legacy shapes, missing keys) is coerced.

Also here: the quality gate (detect_bad_model_response) and the
deterministic eight-step fallback tutorial used when a local model's
plan is unusable.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .color_matcher import (
    DEFAULT_BRAND,
    coerce_hex,
    color_keyword_hex,
    describe_color,
    find_paint_by_keywords,
    fold_text,
    hex_from_name,
    looks_like_hex,
    match_paint_to_color,
    nearest_paint,
    normalize_hex,
    suggest_mix,
    MATCH_THRESHOLD,
    MAX_DISTANCE,
)
from .errors import NormalizationError
from .models import (
    NEUTRAL_HEX,
    Dilution,
    IdentifiedColor,
    Inventory,
    MixComponent,
    Paint,
    PaintMix,
    PartSuggestion,
    ProjectPaint,
    ProjectPlan,
    ProjectStep,
    ReferenceImage,
    RegionItem,
    RegionRect,
    StepPaint,
)
from .techniques import (
    BASECOAT,
    DRYBRUSHING,
    EDGE_HIGHLIGHT,
    FINE_DETAIL,
    LAYERING,
    VARNISHING,
    WASHING,
    TechniqueAssigner,
    canonical_technique,
    canonical_tool,
    default_dilution,
    default_tool,
    is_varnish_part,
)

logger = logging.getLogger(__name__)

MIN_PARTS = 5
MAX_PARTS = 15

VARNISH_PART_NAME = "Verniz de proteção"
DEFAULT_TIP = "Aplique camadas finas e deixe secar completamente entre as demãos."
NO_THINNER_NOTE = "Dilua com água filtrada ou diluente acrílico."
LOW_QUALITY_WARNING = (
    "A resposta da IA parece incompleta ou de baixa qualidade. "
    "Revise os passos antes de pintar."
)
FALLBACK_WARNING = (
    "A IA local não gerou um plano utilizável; este é um tutorial genérico "
    "montado a partir do seu inventário."
)
EMPTY_INVENTORY_WARNING = (
    "Seu inventário não tem tintas cadastradas; as cores abaixo precisam ser "
    "adquiridas ou misturadas por conta própria."
)
DEFAULT_FIXATION_TIPS = [
    "Espere a pintura curar por pelo menos 24 horas antes de envernizar.",
    "Aplique o verniz em camadas finas, em ambiente seco e sem poeira.",
]

# Canonical purpose → accepted spellings
PURPOSES: Dict[str, Sequence[str]] = {
    "base": ("base", "basecoat", "principal", "main", "cor base"),
    "shadow": ("shadow", "sombra", "shade", "sombreamento", "escuro"),
    "highlight": ("highlight", "luz", "realce", "iluminacao", "claro", "edge"),
    "wash": ("wash", "lavado", "lavagem"),
    "glaze": ("glaze", "veladura", "filtro", "filter"),
}

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?;])\s+|\n+")
_RATIO_NUMBER = re.compile(r"\d+")
_TOKEN = re.compile(r"[a-z0-9]+")


# ── Small coercions ───────────────────────────────────────────────────────────

def _first(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, "", [], {}):
            return value
    return None


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)):
        return str(value)
    return default


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _dicts(value: Any) -> List[Dict[str, Any]]:
    return [v for v in _as_list(value) if isinstance(v, dict)]


def split_sentences(text: str) -> List[str]:
    return [s.strip(" -•\t") for s in _SENTENCE_SPLIT.split(text) if s.strip(" -•\t")]


def coerce_string_list(value: Any, default: Optional[List[str]] = None) -> List[str]:
    """String → sentences, list → its non-empty strings, anything else → default."""
    if isinstance(value, str):
        items = split_sentences(value)
    elif isinstance(value, list):
        items = [_text(v) for v in value if _text(v)]
    else:
        items = []
    if not items and default is not None:
        return list(default)
    return items


def coerce_ratio(value: Any) -> int:
    if isinstance(value, bool):
        return 1
    if isinstance(value, (int, float)):
        return max(1, int(round(value)))
    m = _RATIO_NUMBER.search(_text(value))
    return max(1, int(m.group(0))) if m else 1


def coerce_regions(value: Any) -> List[RegionRect]:
    regions = []
    for item in _as_list(value):
        if isinstance(item, RegionRect):
            regions.append(item)
            continue
        if not isinstance(item, dict):
            continue
        try:
            rect = RegionRect(
                x=float(item.get("x", 0) or 0),
                y=float(item.get("y", 0) or 0),
                width=float(item.get("width", item.get("w", 0)) or 0),
                height=float(item.get("height", item.get("h", 0)) or 0),
            )
        except (TypeError, ValueError):
            continue
        if rect.width > 0 and rect.height > 0:
            regions.append(rect)
    return regions


def canonical_purpose(value: Any) -> str:
    folded = fold_text(_text(value))
    if not folded:
        return "base"
    for purpose, spellings in PURPOSES.items():
        if any(s in folded for s in spellings):
            return purpose
    return "base"


# ── Paint-name resolution ─────────────────────────────────────────────────────

def _tokens(text: str) -> set:
    return {t for t in _TOKEN.findall(fold_text(text)) if len(t) > 2}


def find_inventory_paint(name: str, inventory: Inventory) -> Optional[Paint]:
    """
    Layered lookup of a free-text paint name in the inventory:
    exact → substring (either direction) → token overlap → colour keyword.
    """
    target = fold_text(name).strip()
    paints = inventory.paints
    if not target or not paints:
        return None

    for paint in paints:
        if fold_text(paint.name).strip() == target:
            return paint

    for paint in paints:
        candidate = fold_text(paint.name).strip()
        if candidate and (candidate in target or target in candidate):
            return paint

    wanted = _tokens(name)
    if wanted:
        best, best_overlap = None, 0
        for paint in paints:
            overlap = len(wanted & _tokens(paint.name))
            if overlap > best_overlap:
                best, best_overlap = paint, overlap
        if best is not None:
            return best

    keyword_hex = color_keyword_hex(name)
    if keyword_hex:
        for paint in paints:
            if color_keyword_hex(paint.name) == keyword_hex:
                return paint
        return match_paint_to_color(keyword_hex, inventory)
    return None


def resolve_paint_name(name: str, inventory: Inventory) -> ProjectPaint:
    """Inventory paint for name, or a placeholder carrying the free-text name."""
    paint = find_inventory_paint(name, inventory)
    if paint:
        return ProjectPaint(name=paint.name, brand=paint.brand, hex=coerce_hex(paint.hex))
    hx = normalize_hex(name.strip()) if looks_like_hex(name) else None
    return ProjectPaint(name=name.strip() or "Tinta não identificada", brand=DEFAULT_BRAND, hex=hx or NEUTRAL_HEX)


def _paint_from_entry(entry: Dict[str, Any], inventory: Inventory) -> Optional[ProjectPaint]:
    """Resolve a structured paint reference ({name, brand, hex}) from a model reply."""
    name = _text(_first(entry, "name", "paint", "paintName", "nome"))
    hx = coerce_hex(entry.get("hex"), default=None)

    if not name or looks_like_hex(name):
        hx = hx or (coerce_hex(name, default=None) if name else None)
        if not hx:
            return None
        found = nearest_paint(hx, inventory)
        if found:
            paint = found[0]
            return ProjectPaint(name=paint.name, brand=paint.brand, hex=coerce_hex(paint.hex))
        return ProjectPaint(name=describe_color(hx).capitalize(), brand=DEFAULT_BRAND, hex=hx)

    paint = find_inventory_paint(name, inventory)
    if paint:
        return ProjectPaint(name=paint.name, brand=paint.brand, hex=coerce_hex(paint.hex))
    return ProjectPaint(
        name=name,
        brand=_text(entry.get("brand")) or DEFAULT_BRAND,
        hex=hx or color_keyword_hex(name) or NEUTRAL_HEX,
    )


# ── Mixes ─────────────────────────────────────────────────────────────────────

def _inventory_names(inventory: Inventory) -> set:
    return {fold_text(p.name).strip() for p in inventory.paints}


def normalize_mix(raw: Any, inventory: Inventory, target_color: str = "", target_hex: str = "") -> Optional[PaintMix]:
    """
    Coerce a model mix into a PaintMix, or None.

    Components are resolved against the inventory and the ones the painter
    does not own are dropped. A mix survives only with a non-empty target
    colour and at least one remaining component. A bare string (legacy
    shape) becomes the instructions, with components taken from the
    inventory paints it mentions.
    """
    if isinstance(raw, PaintMix):
        raw = raw.to_json()

    components: List[MixComponent] = []
    if isinstance(raw, str):
        instructions = raw.strip()
        folded = fold_text(instructions)
        for paint in inventory.paints:
            if paint.name and fold_text(paint.name) in folded:
                components.append(MixComponent(paint=paint.name, brand=paint.brand, hex=coerce_hex(paint.hex)))
        target = target_color
        hx = coerce_hex(target_hex, default=None)
    elif isinstance(raw, dict):
        instructions = _text(_first(raw, "instructions", "instrucoes", "description"))
        target = _text(_first(raw, "targetColor", "target_color", "color", "colorName"))
        hx = coerce_hex(_first(raw, "targetHex", "target_hex", "hex"), default=None) or coerce_hex(target_hex, default=None)
        for entry in _as_list(raw.get("components")):
            if isinstance(entry, str):
                entry = {"paint": entry}
            if not isinstance(entry, dict):
                continue
            name = _text(_first(entry, "paint", "name", "paintName"))
            if not name:
                continue
            paint = find_inventory_paint(name, inventory)
            if paint is None:
                logger.info(f"Mix for {target!r}: dropped {name!r}, not in the inventory")
                continue
            components.append(MixComponent(
                paint=paint.name,
                brand=paint.brand,
                hex=coerce_hex(paint.hex),
                ratio=coerce_ratio(entry.get("ratio")),
            ))
    else:
        return None

    if not target or not components:
        return None
    hx = hx or hex_from_name(target)
    return PaintMix(
        target_color=target,
        target_hex=hx,
        components=components,
        instructions=instructions or f"Misture na proporção {':'.join(str(c.ratio) for c in components)}.",
    )


# ── Phase 1: colours ──────────────────────────────────────────────────────────

def build_identified_color(
    color_name: str,
    hex_str: str,
    location: str,
    inventory: Inventory,
    model_mix: Any = None,
) -> IdentifiedColor:
    """
    Match against the inventory first; otherwise use the model's mix when it
    survives normalization, otherwise compute one from the inventory.
    """
    hx = coerce_hex(hex_str)
    name = color_name or describe_color(hx)
    paint = match_paint_to_color(hx, inventory)
    if paint:
        return IdentifiedColor(
            color_name=name,
            hex=hx,
            location=location,
            matched_paint=ProjectPaint(name=paint.name, brand=paint.brand, hex=coerce_hex(paint.hex)),
            needs_mixing=False,
        )
    recipe = normalize_mix(model_mix, inventory, name, hx) or suggest_mix(hx, inventory, name)
    return IdentifiedColor(color_name=name, hex=hx, location=location, needs_mixing=True, mix_recipe=recipe)


def _color_entries(raw: Any) -> List[Dict[str, Any]]:
    if isinstance(raw, list):
        return _dicts(raw)
    if isinstance(raw, dict):
        for key in ("colors", "identifiedColors", "cores", "palette"):
            if isinstance(raw.get(key), list):
                return _dicts(raw[key])
    return []


def normalize_colors(raw: Any, inventory: Inventory) -> List[IdentifiedColor]:
    colors: List[IdentifiedColor] = []
    seen = set()
    for entry in _color_entries(raw):
        name = _text(_first(entry, "colorName", "color_name", "name", "color", "cor"))
        hx = coerce_hex(_first(entry, "hex", "hexCode", "targetHex"), default=None)
        if not hx:
            matched = entry.get("matchedPaint")
            paint = find_inventory_paint(_text(matched.get("name")), inventory) if isinstance(matched, dict) else None
            hx = coerce_hex(paint.hex) if paint else hex_from_name(name)
        if not name and hx == NEUTRAL_HEX:
            continue
        location = _text(_first(entry, "location", "part", "partName", "local"))
        key = (fold_text(name), hx, fold_text(location))
        if key in seen:
            continue
        seen.add(key)
        colors.append(build_identified_color(
            name, hx, location, inventory, _first(entry, "mixRecipe", "mix", "paintMix"),
        ))

    if not colors:
        raise NormalizationError("colors", "nenhuma cor identificada")
    logger.info(f"Normalized {len(colors)} colour(s)")
    return colors


# ── Phase 2: parts ────────────────────────────────────────────────────────────

def _part_entries(raw: Any) -> List[Any]:
    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict):
        for key in ("parts", "partes", "regions"):
            if isinstance(raw.get(key), list):
                return raw[key]
    return []


def _covered(color: IdentifiedColor, parts: List[PartSuggestion]) -> bool:
    location = fold_text(color.location)
    for part in parts:
        name = fold_text(part.part_name)
        text = f"{name} {fold_text(part.description)}"
        if location and (location in text or name in location):
            return True
        if fold_text(color.color_name) and fold_text(color.color_name) in text:
            return True
    return False


def normalize_parts(raw: Any, colors: Sequence[IdentifiedColor] = ()) -> List[PartSuggestion]:
    """
    Parts the model segmented, de-duplicated and capped at MAX_PARTS.

    When fewer parts than expected come back (under MIN_PARTS, bounded by
    the colour count), one synthetic part is added per colour no part
    covers yet. Varnish parts are dropped; the steps phase adds its own.
    """
    parts: List[PartSuggestion] = []
    seen = set()
    for entry in _part_entries(raw):
        if isinstance(entry, str):
            entry = {"partName": entry}
        if not isinstance(entry, dict):
            continue
        name = _text(_first(entry, "partName", "part_name", "name", "part", "nome"))
        if not name or is_varnish_part(name) or fold_text(name) in seen:
            continue
        seen.add(fold_text(name))
        parts.append(PartSuggestion(
            part_name=name,
            description=_text(_first(entry, "description", "partDescription", "descricao")),
            regions=coerce_regions(_first(entry, "regions", "imageRegions", "region")),
        ))

    if len(parts) < min(MIN_PARTS, len(colors)):
        added = 0
        for color in colors:
            if len(parts) >= MAX_PARTS:
                break
            if _covered(color, parts):
                continue
            name = color.location or color.color_name
            if not name or fold_text(name) in seen:
                continue
            seen.add(fold_text(name))
            parts.append(PartSuggestion(part_name=name, description=f"Área em {color.color_name}"))
            added += 1
        if added:
            logger.warning(f"Parts phase returned too few parts; backfilled {added} from colours")

    if not parts:
        raise NormalizationError("parts", "nenhuma parte identificada")
    return parts[:MAX_PARTS]


# ── Phase 3: steps ────────────────────────────────────────────────────────────

@dataclass
class StepContext:
    inventory: Inventory
    colors: Sequence[IdentifiedColor] = ()
    assigner: TechniqueAssigner = field(default_factory=TechniqueAssigner)

    def thinner_note(self) -> Optional[str]:
        if not self.inventory.thinners:
            return NO_THINNER_NOTE
        t = self.inventory.thinners[0]
        label = t.name or f"diluente {t.composition.lower()}"
        return f"Use {label} ({t.brand})" if t.brand else f"Use {label}"

    def color_for_part(self, part_name: str) -> Optional[IdentifiedColor]:
        folded = fold_text(part_name)
        for color in self.colors:
            location = fold_text(color.location)
            if location and (location in folded or folded in location):
                return color
        return None


def coerce_dilution(raw: Any, technique: str, thinner_note: Optional[str]) -> Dilution:
    ratio, description = default_dilution(technique)
    if isinstance(raw, str) and raw.strip():
        return Dilution(ratio=raw.strip(), description=raw.strip(), thinner_note=thinner_note)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return Dilution(ratio=str(raw), description=description, thinner_note=thinner_note)
    if isinstance(raw, dict):
        return Dilution(
            ratio=_text(_first(raw, "ratio", "proporcao")) or ratio,
            description=_text(_first(raw, "description", "descricao")) or description,
            thinner_note=_text(_first(raw, "thinnerNote", "thinner_note", "thinner")) or thinner_note,
        )
    return Dilution(ratio=ratio, description=description, thinner_note=thinner_note)


def _step_paints(raw: Dict[str, Any], ctx: StepContext) -> List[StepPaint]:
    """paintsToUse with at most one entry per purpose, legacy paintName included."""
    paints: List[StepPaint] = []
    used = set()

    def add(paint: Optional[ProjectPaint], purpose: Any) -> None:
        if paint is None:
            return
        canon = canonical_purpose(purpose)
        if canon in used:
            return
        used.add(canon)
        paints.append(StepPaint(name=paint.name, brand=paint.brand, hex=paint.hex, purpose=canon))

    for entry in _as_list(_first(raw, "paintsToUse", "paints")):
        if isinstance(entry, str):
            add(resolve_paint_name(entry, ctx.inventory) if entry.strip() else None, "base")
        elif isinstance(entry, dict):
            add(_paint_from_entry(entry, ctx.inventory), entry.get("purpose"))

    legacy = _text(_first(raw, "paintName", "paint"))
    if legacy:
        add(resolve_paint_name(legacy, ctx.inventory), "base")
    return paints


def _fallback_paint(part_name: str, base_color: str, mix: Optional[PaintMix], ctx: StepContext) -> ProjectPaint:
    if base_color:
        paint = find_inventory_paint(base_color, ctx.inventory)
        if paint:
            return ProjectPaint(name=paint.name, brand=paint.brand, hex=coerce_hex(paint.hex))
    if mix and mix.components:
        c = mix.components[0]
        return ProjectPaint(name=c.paint, brand=c.brand, hex=c.hex)
    color = ctx.color_for_part(part_name)
    if color and color.matched_paint:
        return color.matched_paint
    if color:
        found = nearest_paint(color.hex, ctx.inventory)
        if found:
            paint = found[0]
            return ProjectPaint(name=paint.name, brand=paint.brand, hex=coerce_hex(paint.hex))
    if base_color:
        return resolve_paint_name(base_color, ctx.inventory)
    if ctx.inventory.paints:
        paint = ctx.inventory.paints[0]
        return ProjectPaint(name=paint.name, brand=paint.brand, hex=coerce_hex(paint.hex))
    return ProjectPaint(name="Cor base", brand=DEFAULT_BRAND, hex=NEUTRAL_HEX)


def normalize_step(
    raw: Dict[str, Any],
    ctx: StepContext,
    part_name: str = "",
    regions: Optional[List[RegionRect]] = None,
) -> ProjectStep:
    """Coerce one raw step. step_number is provisional; callers renumber."""
    name = part_name or _text(_first(raw, "partName", "part_name", "part", "name")) or "Parte"
    description = _text(_first(raw, "partDescription", "description", "descricao"))
    color = ctx.color_for_part(name)
    base_color = _text(_first(raw, "baseColor", "base_color", "color")) or (color.color_name if color else "")

    technique = ctx.assigner.assign(name, raw.get("technique"))
    varnish = technique == VARNISHING

    paint_mix = normalize_mix(
        raw.get("paintMix"), ctx.inventory, base_color or name,
        color.hex if color else hex_from_name(base_color),
    )
    if paint_mix is None and color and color.needs_mixing and color.mix_recipe and not varnish:
        paint_mix = color.mix_recipe

    paints = [] if varnish else _step_paints(raw, ctx)
    if not paints and not varnish:
        fallback = _fallback_paint(name, base_color, paint_mix, ctx)
        paints = [StepPaint(name=fallback.name, brand=fallback.brand, hex=fallback.hex, purpose="base")]

    tool_default, details_default = default_tool(name)
    tool = canonical_tool(raw.get("tool"), name) if raw.get("tool") else tool_default
    tool_details = _text(_first(raw, "toolDetails", "tool_details", "brushSize")) or details_default

    step_regions = list(regions) if regions else coerce_regions(raw.get("imageRegions"))

    return ProjectStep(
        step_number=0,
        part_name=name,
        part_description=description,
        base_color=base_color,
        paints_to_use=paints,
        paint_mix=None if varnish else paint_mix,
        technique=technique,
        tool=tool,
        tool_details=tool_details,
        dilution=coerce_dilution(raw.get("dilution"), technique, ctx.thinner_note()),
        image_regions=step_regions,
        tips=coerce_string_list(raw.get("tips"), default=[DEFAULT_TIP]),
        warnings=coerce_string_list(raw.get("warnings")),
    )


def build_varnish_step(ctx: StepContext, raw: Optional[Dict[str, Any]] = None) -> ProjectStep:
    raw = dict(raw or {})
    varnishes = ctx.inventory.varnishes
    if varnishes and not raw.get("toolDetails"):
        v = varnishes[0]
        raw["toolDetails"] = f"{v.name or 'Verniz'} {v.finish} ({v.brand}); aerógrafo ou pincel chato macio"
    if not raw.get("tips"):
        raw["tips"] = [
            "Aplique duas demãos finas em vez de uma grossa.",
            "Use verniz fosco por cima do brilhante nas áreas que não devem refletir luz.",
        ]
    step = normalize_step(raw, ctx, part_name=VARNISH_PART_NAME)
    return step.model_copy(update={"technique": VARNISHING, "paints_to_use": [], "paint_mix": None})


def _step_entries(raw: Any) -> List[Dict[str, Any]]:
    if isinstance(raw, list):
        return _dicts(raw)
    if isinstance(raw, dict):
        for key in ("steps", "passos", "etapas"):
            if isinstance(raw.get(key), list):
                return _dicts(raw[key])
    return []


def _is_varnish_entry(entry: Dict[str, Any]) -> bool:
    name = _text(_first(entry, "partName", "part", "name", "description"))
    return is_varnish_part(name) or canonical_technique(entry.get("technique")) == VARNISHING


def _take_matching(entries: List[Dict[str, Any]], used: List[bool], part_name: str) -> Optional[Dict[str, Any]]:
    target = fold_text(part_name).strip()
    for exact in (True, False):
        for i, entry in enumerate(entries):
            if used[i]:
                continue
            name = fold_text(_text(_first(entry, "partName", "part_name", "part", "name"))).strip()
            if not name:
                continue
            if (name == target) if exact else (name in target or target in name):
                used[i] = True
                return entry
    return None


def renumber(steps: List[ProjectStep]) -> List[ProjectStep]:
    return [s.model_copy(update={"step_number": i}) for i, s in enumerate(steps, start=1)]


@dataclass
class StepsResult:
    steps: List[ProjectStep]
    fixation_tips: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    paints_to_use: List[ProjectPaint] = field(default_factory=list)


def normalize_steps(
    raw: Any,
    parts: Sequence[Any],
    inventory: Inventory,
    colors: Sequence[IdentifiedColor] = (),
) -> StepsResult:
    """
    One step per requested part, in part order, plus exactly one trailing
    varnish step. Parts the model skipped get a synthesized step; model
    steps naming no requested part are dropped. With no requested parts,
    every non-varnish model step is kept in order.

    parts: RegionItem or PartSuggestion instances (anything with part_name
    and regions).
    """
    entries = _step_entries(raw)
    if not entries:
        raise NormalizationError("steps", "nenhum passo retornado")

    ctx = StepContext(inventory=inventory, colors=colors)
    varnish_entries = [e for e in entries if _is_varnish_entry(e)]
    body = [e for e in entries if not _is_varnish_entry(e)]
    used = [False] * len(body)

    steps: List[ProjectStep] = []
    if parts:
        for part in parts:
            entry = _take_matching(body, used, part.part_name)
            if entry is None:
                entry = {}
                logger.warning(f"No step returned for part '{part.part_name}'; synthesizing one")
            steps.append(normalize_step(entry, ctx, part_name=part.part_name, regions=part.regions or None))
        dropped = used.count(False)
        if dropped:
            logger.warning(f"Dropped {dropped} step(s) that matched no requested part")
    else:
        steps = [normalize_step(e, ctx) for e in body]

    steps.append(build_varnish_step(ctx, varnish_entries[0] if varnish_entries else None))

    payload = raw if isinstance(raw, dict) else {}
    plan_paints: List[ProjectPaint] = []
    for entry in _as_list(payload.get("paintsToUse")):
        paint = _paint_from_entry(entry, inventory) if isinstance(entry, dict) else (
            resolve_paint_name(entry, inventory) if isinstance(entry, str) and entry.strip() else None
        )
        if paint:
            plan_paints.append(paint)

    return StepsResult(
        steps=renumber(steps),
        fixation_tips=coerce_string_list(payload.get("fixationTips")),
        warnings=coerce_string_list(payload.get("warnings")),
        paints_to_use=plan_paints,
    )


# ── Quality gate ──────────────────────────────────────────────────────────────

def _near_empty(value: Any) -> bool:
    return len(_text(value)) < 3


def detect_bad_model_response(raw_plan: Any, inventory: Inventory) -> bool:
    """
    True when a decoded steps reply looks like junk:
      (a) more than half of all paintsToUse entries have a missing or
          hex-shaped name, or
      (b) more than 60% of steps have both a near-empty description and a
          near-empty part name.
    Paint names that resolve to the inventory always count as good.
    """
    steps = _step_entries(raw_plan)
    if not steps:
        return False

    entries: List[Any] = []
    if isinstance(raw_plan, dict):
        entries.extend(_as_list(raw_plan.get("paintsToUse")))
    for step in steps:
        entries.extend(_as_list(step.get("paintsToUse")))
        if "paintName" in step:
            entries.append({"name": step.get("paintName")})

    if entries:
        known = _inventory_names(inventory)
        bad = 0
        for entry in entries:
            name = entry if isinstance(entry, str) else (
                _first(entry, "name", "paint") if isinstance(entry, dict) else None
            )
            name = _text(name)
            if fold_text(name).strip() in known:
                continue
            if not name or looks_like_hex(name):
                bad += 1
        if bad / len(entries) > 0.5:
            logger.warning(f"Quality gate: {bad}/{len(entries)} paint names missing or hex-shaped")
            return True

    empty = sum(
        1 for s in steps
        if _near_empty(_first(s, "partDescription", "description"))
        and _near_empty(_first(s, "partName", "part", "name"))
    )
    if empty / len(steps) > 0.6:
        logger.warning(f"Quality gate: {empty}/{len(steps)} steps are near-empty")
        return True
    return False


# ── Fallback tutorial ─────────────────────────────────────────────────────────

# (part name, description, technique, paint keywords in priority order, tip)
_FALLBACK_STEPS = [
    ("Primer", "Camada de preparação sobre toda a miniatura", BASECOAT,
     ("primer", "preto", "black", "cinza", "grey", "gray", "branco", "white"),
     "Aplique o primer em jatos curtos a 20–30 cm da peça."),
    ("Pele", "Áreas de pele visíveis: rosto, mãos e braços", LAYERING,
     ("pele", "flesh", "skin", "carne", "bege"),
     "Comece pelo tom médio e clareie aos poucos nas partes mais altas."),
    ("Cor principal", "Roupa, armadura ou a maior área de cor da miniatura", BASECOAT,
     ("azul", "blue", "vermelho", "red", "verde", "green"),
     "Duas demãos finas cobrem melhor que uma grossa."),
    ("Sombreamento com wash", "Recessos e dobras de toda a peça", WASHING,
     ("wash", "shade", "preto", "black", "marrom", "brown"),
     "Tire o excesso do pincel para o wash não manchar as áreas planas."),
    ("Camadas e luzes", "Volumes altos e arestas das áreas principais", EDGE_HIGHLIGHT,
     ("branco", "white", "osso", "bone", "claro", "light"),
     "Misture a cor base com um tom mais claro para cada nova camada."),
    ("Detalhes finos", "Olhos, joias, fivelas e pequenos detalhes", FINE_DETAIL,
     ("dourado", "gold", "prata", "silver", "metal"),
     "Apoie os pulsos para ter mais firmeza nos detalhes."),
    ("Base e terreno", "Peanha e elementos do terreno", DRYBRUSHING,
     ("marrom", "brown", "terra", "earth", "areia", "sand", "cinza"),
     "Pincel seco com tons claros destaca a textura do terreno."),
]


def _heuristic_paint(keywords: Sequence[str], inventory: Inventory) -> ProjectPaint:
    paint = find_paint_by_keywords(inventory, keywords)
    if paint is None:
        for keyword in keywords:
            hx = color_keyword_hex(keyword)
            if hx:
                found = nearest_paint(hx, inventory)
                if found and found[1] <= MATCH_THRESHOLD * MAX_DISTANCE * 2:
                    paint = found[0]
                    break
    if paint is None and inventory.paints:
        paint = inventory.paints[0]
    if paint is None:
        keyword = next(iter(keywords), "base")
        return ProjectPaint(name=keyword.capitalize(), brand=DEFAULT_BRAND, hex=hex_from_name(keyword))
    return ProjectPaint(name=paint.name, brand=paint.brand, hex=coerce_hex(paint.hex))


def build_fallback_steps(inventory: Inventory) -> List[ProjectStep]:
    """Generic eight-step tutorial built only from inventory keyword lookups."""
    ctx = StepContext(inventory=inventory)
    steps = []
    for name, description, technique, keywords, tip in _FALLBACK_STEPS:
        paint = _heuristic_paint(keywords, inventory)
        purpose = "wash" if technique == WASHING else "highlight" if technique == EDGE_HIGHLIGHT else "base"
        raw = {
            "partDescription": description,
            "baseColor": paint.name,
            "technique": technique,
            "paintsToUse": [{"name": paint.name, "brand": paint.brand, "hex": paint.hex, "purpose": purpose}],
            "tips": [tip],
        }
        steps.append(normalize_step(raw, ctx, part_name=name))
    steps.append(build_varnish_step(ctx))
    return renumber(steps)


def build_fallback_plan(
    project_name: str,
    source: str,
    inventory: Inventory,
    reference_image: ReferenceImage,
    colors: Sequence[IdentifiedColor] = (),
    warnings: Sequence[str] = (),
) -> ProjectPlan:
    steps = build_fallback_steps(inventory)
    return ProjectPlan(
        project_name=project_name,
        source=source,
        identified_colors=list(colors),
        paints_to_use=_collect_paints(steps),
        required_mixes=_collect_mixes(colors, steps),
        steps=steps,
        fixation_tips=list(DEFAULT_FIXATION_TIPS),
        warnings=[*warnings, FALLBACK_WARNING],
        reference_image=reference_image,
    )


# ── Plan assembly ─────────────────────────────────────────────────────────────

def _collect_paints(steps: Iterable[ProjectStep], extra: Iterable[ProjectPaint] = ()) -> List[ProjectPaint]:
    paints: List[ProjectPaint] = []
    seen = set()
    for paint in [*extra, *(p for s in steps for p in s.paints_to_use)]:
        key = (fold_text(paint.brand), fold_text(paint.name))
        if key in seen:
            continue
        seen.add(key)
        paints.append(ProjectPaint(name=paint.name, brand=paint.brand, hex=paint.hex))
    return paints


def _collect_mixes(colors: Iterable[IdentifiedColor], steps: Iterable[ProjectStep]) -> List[PaintMix]:
    mixes: List[PaintMix] = []
    seen = set()
    candidates = [c.mix_recipe for c in colors if c.needs_mixing and c.mix_recipe]
    candidates += [s.paint_mix for s in steps if s.paint_mix]
    for mix in candidates:
        key = (fold_text(mix.target_color), mix.target_hex)
        if key in seen:
            continue
        seen.add(key)
        mixes.append(mix)
    return mixes


def apply_user_regions(steps: List[ProjectStep], regions: Sequence[RegionItem]) -> List[ProjectStep]:
    """Overwrite imageRegions with the user's rectangles, matched by part name (case-insensitive)."""
    by_name = {fold_text(r.part_name).strip(): r for r in regions if r.confirmed}
    result = []
    for step in steps:
        item = by_name.get(fold_text(step.part_name).strip())
        if item is not None:
            step = step.model_copy(update={"image_regions": list(item.regions)})
        result.append(step)
    return result


def normalize_plan(
    project_name: str,
    source: str,
    colors: Sequence[IdentifiedColor],
    steps_result: StepsResult,
    inventory: Inventory,
    reference_image: ReferenceImage,
    low_quality: bool = False,
) -> ProjectPlan:
    """Assemble the final plan. Never raises; every field is populated."""
    warnings = list(steps_result.warnings)
    if inventory.is_empty() or not inventory.paints:
        warnings.append(EMPTY_INVENTORY_WARNING)
    if low_quality:
        warnings.append(LOW_QUALITY_WARNING)

    steps = renumber(list(steps_result.steps))
    if not steps or steps[-1].technique != VARNISHING:
        steps = renumber([*steps, build_varnish_step(StepContext(inventory=inventory, colors=colors))])

    return ProjectPlan(
        project_name=project_name or "Projeto sem nome",
        source=source or "",
        identified_colors=list(colors),
        paints_to_use=_collect_paints(steps, steps_result.paints_to_use),
        required_mixes=_collect_mixes(colors, steps),
        steps=steps,
        fixation_tips=steps_result.fixation_tips or list(DEFAULT_FIXATION_TIPS),
        warnings=list(dict.fromkeys(warnings)),
        reference_image=reference_image,
    )
