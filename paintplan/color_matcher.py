"""
color_matcher.py — Hex maths, inventory paint matching and keyword heuristics.

Provides:
  normalize_hex("#FFF")                    → "#FFFFFF"
  match_paint_to_color("#D0AC35", paints)  → closest Paint or None
  suggest_mix("#FF00FF", paints, "Magenta") → PaintMix built from inventory paints
  describe_color("#E8B48F")                → "tom de pele"
  categorize_inventory_line("Tinta Vermelha Vallejo Ink")
      → InventoryLine(category="paint", fields={..., "type": "Ink", "hex": "#FF0000"})

Distance is a luminance-weighted Euclidean distance in sRGB (weights
0.299 / 0.587 / 0.114). Weights sum to 1, so the maximum distance
(black ↔ white) is 255 and the closeness threshold is a fraction of it.

Nothing in this module raises on bad input: unknown colours degrade to a
neutral mid-grey and unknown inventory lines to an Acrylic paint guess.
"""

from __future__ import annotations

import colorsys
import logging
import os
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from .models import (
    NEUTRAL_HEX,
    Inventory,
    MixComponent,
    Paint,
    PaintMix,
    ParsedInventory,
    Thinner,
    Varnish,
    Wash,
)
from .palette_keywords import (
    CATEGORY_KEYWORDS,
    COLOR_KEYWORDS,
    INK_KEYWORDS,
    QUANTITY_PATTERN,
    VARNISH_FINISH_KEYWORDS,
)

logger = logging.getLogger(__name__)

RGB = Tuple[int, int, int]

LUMA_WEIGHTS = (0.299, 0.587, 0.114)
MAX_DISTANCE = 255.0
MATCH_THRESHOLD = float(os.getenv("PAINTPLAN_MATCH_THRESHOLD", "0.15"))

DEFAULT_BRAND = "Desconhecida"

# Ratios tried when blending two inventory paints towards a target colour
MIX_RATIOS: List[Tuple[int, int]] = [(1, 1), (2, 1), (1, 2), (3, 1), (1, 3), (4, 1), (1, 4)]

_HEX_STRICT = re.compile(r"#([0-9a-fA-F]{3,6})")
_HEX_SHAPED = re.compile(r"#[0-9a-fA-F]{3,8}|(?=[0-9a-fA-F]*\d)[0-9a-fA-F]{6}")


# ── Hex helpers ───────────────────────────────────────────────────────────────

def normalize_hex(value: str) -> Optional[str]:
    """
    Normalize a '#'-prefixed 3/4/5/6-digit hex code to upper-case '#RRGGBB'.

    3 digits expand per channel (#FFF → #FFFFFF), 4 digits are read as
    #RGBA shorthand with alpha dropped, 5 digits are right-padded with 0
    (#A68A6 → #A68A60). Anything else returns None.
    """
    if not isinstance(value, str):
        return None
    m = _HEX_STRICT.fullmatch(value.strip())
    if not m:
        return None
    digits = m.group(1)
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    elif len(digits) == 4:
        digits = "".join(c * 2 for c in digits[:3])
    elif len(digits) == 5:
        digits = digits + "0"
    return "#" + digits.upper()


def extract_hex(text: str) -> Optional[str]:
    """Find the first '#'-prefixed hex code in free text (model replies)."""
    if not isinstance(text, str):
        return None
    m = re.search(r"#[0-9a-fA-F]{3,6}(?![0-9a-fA-F])", text)
    return normalize_hex(m.group(0)) if m else None


def coerce_hex(value: object, default: Optional[str] = NEUTRAL_HEX) -> Optional[str]:
    """Lenient variant for model output: tolerates a missing '#' and whitespace."""
    if isinstance(value, str):
        raw = value.strip()
        if raw and not raw.startswith("#"):
            raw = "#" + raw
        hx = normalize_hex(raw)
        if hx:
            return hx
    return default


def looks_like_hex(value: object) -> bool:
    return isinstance(value, str) and bool(_HEX_SHAPED.fullmatch(value.strip()))


def hex_to_rgb(hex_str: str) -> RGB:
    h = (normalize_hex(hex_str) or NEUTRAL_HEX).lstrip("#")
    return int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16)


def rgb_to_hex(rgb: Iterable[float]) -> str:
    r, g, b = (max(0, min(255, int(round(c)))) for c in rgb)
    return f"#{r:02X}{g:02X}{b:02X}"


# ── Distance & matching ───────────────────────────────────────────────────────

def rgb_distance(rgb1: RGB, rgb2: RGB) -> float:
    wr, wg, wb = LUMA_WEIGHTS
    dr, dg, db = (a - b for a, b in zip(rgb1, rgb2))
    return (wr * dr * dr + wg * dg * dg + wb * db * db) ** 0.5


def color_distance(hex1: str, hex2: str) -> float:
    return rgb_distance(hex_to_rgb(hex1), hex_to_rgb(hex2))


def _paints_of(source: Union[Inventory, Iterable[Paint]]) -> List[Paint]:
    paints = source.paints if isinstance(source, Inventory) else list(source)
    return [p for p in paints if normalize_hex(p.hex)]


def nearest_paint(
    hex_str: str,
    inventory: Union[Inventory, Iterable[Paint]],
) -> Optional[Tuple[Paint, float]]:
    """Closest paint regardless of threshold, with its distance."""
    target = normalize_hex(hex_str)
    if not target:
        return None
    best: Optional[Tuple[Paint, float]] = None
    for paint in _paints_of(inventory):
        d = color_distance(target, paint.hex)
        if best is None or d < best[1]:
            best = (paint, d)
    return best


def match_paint_to_color(
    hex_str: str,
    inventory: Union[Inventory, Iterable[Paint]],
    threshold: Optional[float] = None,
) -> Optional[Paint]:
    """
    Return the inventory paint closest to hex_str, or None when even the
    closest one is further than threshold × MAX_DISTANCE (caller mixes instead).
    """
    limit = (MATCH_THRESHOLD if threshold is None else threshold) * MAX_DISTANCE
    found = nearest_paint(hex_str, inventory)
    if found and found[1] <= limit:
        return found[0]
    return None


def _blend(rgbs: List[RGB], ratios: List[int]) -> RGB:
    total = float(sum(ratios))
    return tuple(
        sum(c[i] * w for c, w in zip(rgbs, ratios)) / total for i in range(3)
    )  # type: ignore[return-value]


def suggest_mix(
    target_hex: str,
    inventory: Union[Inventory, Iterable[Paint]],
    target_name: str = "",
) -> Optional[PaintMix]:
    """
    Build a two-paint mix recipe that approaches target_hex.

    Starts from the nearest single paint and tries every other paint at the
    ratios in MIX_RATIOS, keeping whichever blend lands closest. Blending is
    a plain weighted average in sRGB, which is only an approximation of
    real pigment mixing. Returns None when the inventory has no usable paint.
    """
    target = normalize_hex(target_hex)
    paints = _paints_of(inventory)
    if not target or not paints:
        return None

    target_rgb = hex_to_rgb(target)
    base, base_d = min(
        ((p, rgb_distance(target_rgb, hex_to_rgb(p.hex))) for p in paints),
        key=lambda item: item[1],
    )
    best_parts: List[Tuple[Paint, int]] = [(base, 1)]
    best_d = base_d

    for other in paints:
        if other is base:
            continue
        for a, b in MIX_RATIOS:
            mixed = _blend([hex_to_rgb(base.hex), hex_to_rgb(other.hex)], [a, b])
            d = rgb_distance(target_rgb, mixed)
            if d < best_d:
                best_d = d
                best_parts = [(base, a), (other, b)]

    name = target_name or describe_color(target)
    components = [
        MixComponent(paint=p.name, brand=p.brand, hex=normalize_hex(p.hex) or NEUTRAL_HEX, ratio=r)
        for p, r in best_parts
    ]
    if len(components) == 1:
        instructions = (
            f"Nenhuma mistura do inventário chega mais perto de {name} do que {base.name} pura. "
            "Use-a como base e ajuste com veladuras."
        )
    else:
        (p1, r1), (p2, r2) = best_parts
        instructions = (
            f"Misture {r1} parte(s) de {p1.name} com {r2} parte(s) de {p2.name} "
            f"para aproximar {name}. Teste na paleta úmida antes de aplicar."
        )
    return PaintMix(
        target_color=name,
        target_hex=target,
        components=components,
        instructions=instructions,
    )


# ── Colour description ────────────────────────────────────────────────────────

def describe_color(hex_str: str) -> str:
    """
    Coarse, human-readable bucket for a hex value (Portuguese, used in prompts).

    Relative luminance and channel spread decide neutrals first; hue bands
    decide the rest, with dedicated buckets for skin tones and gold.
    """
    r, g, b = hex_to_rgb(hex_str)
    lum = (LUMA_WEIGHTS[0] * r + LUMA_WEIGHTS[1] * g + LUMA_WEIGHTS[2] * b) / 255.0
    spread = (max(r, g, b) - min(r, g, b)) / 255.0

    if spread < 0.12:
        if lum < 0.12:
            return "preto"
        if lum > 0.9:
            return "branco"
        if lum < 0.35:
            return "cinza escuro"
        if lum > 0.7:
            return "cinza claro"
        return "cinza"

    h, l, s = colorsys.rgb_to_hls(r / 255.0, g / 255.0, b / 255.0)
    hue = h * 360.0

    if 8 <= hue <= 40 and r > g > b and lum > 0.55 and spread < 0.5:
        return "tom de pele"
    if 40 <= hue <= 55 and r > 150 and g > 110 and b < g * 0.6:
        return "dourado"
    if 10 <= hue <= 45 and lum < 0.45:
        return "marrom"

    if hue < 12 or hue >= 345:
        base = "vermelho quente" if hue < 12 else "vermelho frio"
    elif hue < 40:
        base = "laranja"
    elif hue < 70:
        base = "amarelo"
    elif hue < 165:
        base = "verde"
    elif hue < 200:
        base = "turquesa"
    elif hue < 255:
        base = "azul"
    elif hue < 290:
        base = "roxo"
    else:
        base = "rosa"

    if l < 0.25:
        return f"{base} escuro"
    if l > 0.8:
        return f"{base} claro"
    return base


# ── Keyword lookups ───────────────────────────────────────────────────────────

def fold_text(text: str) -> str:
    """Lower-case and strip accents so 'Lilás' and 'lilas' compare equal."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    return "".join(c for c in decomposed if not unicodedata.combining(c)).lower()


def _longest_first(table: List[Tuple[str, str]]) -> List[Tuple[re.Pattern, str]]:
    ordered = sorted(table, key=lambda kv: len(kv[0]), reverse=True)
    return [
        (re.compile(rf"\b{re.escape(fold_text(kw))}s?\b"), value)
        for kw, value in ordered
    ]


_COLOR_PATTERNS = _longest_first(COLOR_KEYWORDS)
_CATEGORY_PATTERNS = _longest_first(CATEGORY_KEYWORDS)
_FINISH_PATTERNS = _longest_first(VARNISH_FINISH_KEYWORDS)


def lookup_keyword(text: str, patterns: List[Tuple[re.Pattern, str]]) -> Optional[str]:
    folded = fold_text(text)
    for pattern, value in patterns:
        if pattern.search(folded):
            return value
    return None


def color_keyword_hex(text: str) -> Optional[str]:
    """Approximate hex for the longest colour word found in text, if any."""
    return lookup_keyword(text, _COLOR_PATTERNS)


def hex_from_name(text: str) -> str:
    return color_keyword_hex(text) or NEUTRAL_HEX


def find_paint_by_keywords(
    inventory: Union[Inventory, Iterable[Paint]],
    keywords: Iterable[str],
) -> Optional[Paint]:
    """First paint whose name contains any keyword (keyword order is priority)."""
    paints = inventory.paints if isinstance(inventory, Inventory) else list(inventory)
    for kw in keywords:
        folded_kw = fold_text(kw)
        for paint in paints:
            if folded_kw in fold_text(paint.name):
                return paint
    return None


# ── Inventory line categorisation ─────────────────────────────────────────────

@dataclass
class InventoryLine:
    category: str                       # paint | thinner | varnish | wash
    fields: Dict[str, str] = field(default_factory=dict)


def clean_item_name(line: str) -> str:
    name = re.sub(QUANTITY_PATTERN, "", line, flags=re.IGNORECASE)
    name = re.sub(r"^-+\s*", "", name.strip())
    return re.sub(r"\s{2,}", " ", name).strip(" -")


def categorize_inventory_line(text: str, brand: str = "") -> InventoryLine:
    """
    Classify a free-text inventory line (e.g. a pasted shop listing).

    Varnish, thinner and wash are recognised by keyword; everything else is
    a paint, typed Ink when an ink keyword appears and Acrylic otherwise.
    Paint and wash hex comes from an explicit hex code in the line, else the
    colour-word table, else neutral grey.
    """
    line = text or ""
    folded = fold_text(line)
    name = clean_item_name(line)
    used_brand = brand or DEFAULT_BRAND
    category = lookup_keyword(line, _CATEGORY_PATTERNS) or "paint"

    if category == "varnish":
        finish = lookup_keyword(line, _FINISH_PATTERNS) or "Brilhante"
        return InventoryLine("varnish", {"brand": used_brand, "name": name, "finish": finish})

    if category == "thinner":
        composition = "Caseiro" if "caseiro" in folded else "Original"
        return InventoryLine("thinner", {"brand": used_brand, "name": name, "composition": composition})

    hex_value = extract_hex(line) or hex_from_name(line)

    if category == "wash":
        return InventoryLine(
            "wash",
            {"brand": used_brand, "name": name, "hex": hex_value, "composition": name},
        )

    is_ink = any(re.search(rf"\b{kw}\b", folded) for kw in INK_KEYWORDS)
    return InventoryLine(
        "paint",
        {"brand": used_brand, "name": name, "type": "Ink" if is_ink else "Acrylic", "hex": hex_value},
    )


ProgressCallback = Callable[[int, int, str], None]


def parse_inventory_text(
    text: str,
    brand: str = "",
    on_progress: Optional[ProgressCallback] = None,
) -> Optional[ParsedInventory]:
    """
    Categorize a multi-line list locally, without any model call.
    Returns None when no line could be categorized.
    """
    lines = [re.sub(r"^-+\s*", "", l.strip()) for l in (text or "").splitlines()]
    lines = [l for l in lines if len(l) > 2]
    logger.info(f"Categorizing {len(lines)} inventory line(s) locally")

    result = ParsedInventory()
    for i, line in enumerate(lines, start=1):
        if on_progress:
            on_progress(i, len(lines), f"Processando: {line[:40]}...")
        item = categorize_inventory_line(line, brand)
        if item.category == "paint":
            result.paints.append(Paint(**item.fields))
        elif item.category == "thinner":
            result.thinners.append(Thinner(**item.fields))
        elif item.category == "varnish":
            result.varnishes.append(Varnish(**item.fields))
        elif item.category == "wash":
            result.washes.append(Wash(**item.fields))

    if on_progress:
        on_progress(len(lines), len(lines), "Processamento concluído!")
    return None if result.is_empty() else result
