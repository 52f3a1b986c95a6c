"""
techniques.py — Technique, tool and dilution rules keyed by part name.

A part name is matched (accent-folded, case-insensitive substring,
longest keyword first) against PART_KEYWORDS to find its category; the
category decides which techniques are acceptable and which tool to use.

Hard rule: eyes and gems never get drybrushing. At that scale the
technique wipes out the detail, so it is swapped for fine-detail work.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .color_matcher import fold_text

# ── Canonical vocabulary ──────────────────────────────────────────────────────

BASECOAT = "basecoat"
LAYERING = "layering"
DRYBRUSHING = "drybrushing"
WASHING = "washing"
GLAZING = "glazing"
EDGE_HIGHLIGHT = "edge-highlight"
FINE_DETAIL = "fine-detail"
VARNISHING = "varnishing"

TECHNIQUES: Tuple[str, ...] = (
    BASECOAT, LAYERING, DRYBRUSHING, WASHING, GLAZING, EDGE_HIGHLIGHT, FINE_DETAIL,
)

# Cycled through when nothing else tells us which technique a step wants
DEFAULT_SEQUENCE: Tuple[str, ...] = (
    BASECOAT, LAYERING, WASHING, GLAZING, EDGE_HIGHLIGHT, DRYBRUSHING,
)

TOOL_BRUSH = "Paintbrush"
TOOL_AIRBRUSH = "Airbrush"

# Free-text technique names the models use → canonical name
TECHNIQUE_SYNONYMS: List[Tuple[str, str]] = [
    ("base coat", BASECOAT), ("basecoat", BASECOAT), ("camada base", BASECOAT),
    ("base", BASECOAT), ("primer", BASECOAT), ("prime", BASECOAT),
    ("layering", LAYERING), ("layer", LAYERING), ("camadas", LAYERING), ("camada", LAYERING),
    ("blending", LAYERING), ("wet blend", LAYERING), ("degrade", LAYERING),
    ("dry brush", DRYBRUSHING), ("drybrush", DRYBRUSHING), ("pincel seco", DRYBRUSHING),
    ("wash", WASHING), ("lavado", WASHING), ("lavagem", WASHING), ("shade", WASHING),
    ("sombreamento", WASHING), ("shadow", WASHING), ("sombra", WASHING),
    ("glaze", GLAZING), ("glazing", GLAZING), ("veladura", GLAZING), ("filter", GLAZING),
    ("edge highlight", EDGE_HIGHLIGHT), ("edge", EDGE_HIGHLIGHT), ("highlight", EDGE_HIGHLIGHT),
    ("realce", EDGE_HIGHLIGHT), ("luz", EDGE_HIGHLIGHT), ("perfilado", EDGE_HIGHLIGHT),
    ("detail", FINE_DETAIL), ("detalhe", FINE_DETAIL), ("fine", FINE_DETAIL),
    ("pontilh", FINE_DETAIL), ("freehand", FINE_DETAIL),
    ("varnish", VARNISHING), ("verniz", VARNISHING), ("envernizar", VARNISHING),
]


# ── Part categories ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PartRule:
    category: str
    allowed: Tuple[str, ...]
    tool: str
    tool_details: str


PART_RULES: Dict[str, PartRule] = {
    "eyes": PartRule("eyes", (FINE_DETAIL, LAYERING, GLAZING), TOOL_BRUSH,
                     "Pincel 000 ou 10/0 de ponta fina, pouca tinta na ponta"),
    "gems": PartRule("gems", (FINE_DETAIL, GLAZING, LAYERING), TOOL_BRUSH,
                     "Pincel 00 de ponta fina para o degradê e ponto de luz"),
    "skin": PartRule("skin", (LAYERING, GLAZING, WASHING, BASECOAT), TOOL_BRUSH,
                     "Pincel nº 1 com boa ponta"),
    "hair": PartRule("hair", (DRYBRUSHING, LAYERING, WASHING, BASECOAT), TOOL_BRUSH,
                     "Pincel nº 1; pincel velho para pincel seco"),
    "terrain": PartRule("terrain", (DRYBRUSHING, WASHING, BASECOAT), TOOL_BRUSH,
                        "Pincel chato velho ou de pincel seco"),
    "metal": PartRule("metal", (DRYBRUSHING, WASHING, EDGE_HIGHLIGHT, BASECOAT), TOOL_BRUSH,
                      "Pincel nº 1 para base, nº 0 para realces de aresta"),
    "cloth": PartRule("cloth", (LAYERING, GLAZING, WASHING, BASECOAT), TOOL_BRUSH,
                      "Pincel nº 2 para áreas amplas, nº 0 para dobras"),
    "varnish": PartRule("varnish", (VARNISHING,), TOOL_AIRBRUSH,
                        "Aerógrafo a 15–20 psi ou pincel chato macio"),
}

GENERIC_RULE = PartRule("generic", TECHNIQUES, TOOL_BRUSH, "Pincel nº 1")

# Parts too small for anything outside their allowed techniques
STRICT_CATEGORIES = ("eyes", "gems")

PART_KEYWORDS: List[Tuple[str, str]] = [
    ("olho", "eyes"), ("olhos", "eyes"), ("eye", "eyes"), ("pupila", "eyes"), ("iris", "eyes"),
    ("gema", "gems"), ("gem", "gems"), ("joia", "gems"), ("jewel", "gems"), ("cristal", "gems"),
    ("crystal", "gems"), ("pedra preciosa", "gems"), ("rubi", "gems"), ("ruby", "gems"),
    ("pele", "skin"), ("skin", "skin"), ("rosto", "skin"), ("face", "skin"), ("flesh", "skin"),
    ("mão", "skin"), ("mãos", "skin"), ("hand", "skin"), ("braço", "skin"), ("arm", "skin"),
    ("cabelo", "hair"), ("hair", "hair"), ("barba", "hair"), ("beard", "hair"),
    ("pelo", "hair"), ("pelagem", "hair"), ("fur", "hair"), ("juba", "hair"),
    ("base", "terrain"), ("terreno", "terrain"), ("terrain", "terrain"), ("ground", "terrain"),
    ("chão", "terrain"), ("rocha", "terrain"), ("rock", "terrain"), ("grama", "terrain"),
    ("grass", "terrain"), ("areia", "terrain"), ("sand", "terrain"), ("peanha", "terrain"),
    ("armadura", "metal"), ("armor", "metal"), ("armour", "metal"), ("metal", "metal"),
    ("espada", "metal"), ("sword", "metal"), ("lâmina", "metal"), ("blade", "metal"),
    ("elmo", "metal"), ("helmet", "metal"), ("capacete", "metal"), ("escudo", "metal"),
    ("shield", "metal"), ("machado", "metal"), ("axe", "metal"), ("cota de malha", "metal"),
    ("capa", "cloth"), ("cloak", "cloth"), ("cape", "cloth"), ("manto", "cloth"),
    ("robe", "cloth"), ("roupa", "cloth"), ("cloth", "cloth"), ("tecido", "cloth"),
    ("túnica", "cloth"), ("tunic", "cloth"), ("calça", "cloth"), ("pants", "cloth"),
    ("vestido", "cloth"), ("dress", "cloth"), ("saia", "cloth"),
    ("verniz", "varnish"), ("varnish", "varnish"), ("fixação", "varnish"), ("acabamento", "varnish"),
]

_ORDERED_PART_KEYWORDS = sorted(
    ((fold_text(k), v) for k, v in PART_KEYWORDS), key=lambda kv: len(kv[0]), reverse=True
)
_ORDERED_SYNONYMS = sorted(
    ((fold_text(k), v) for k, v in TECHNIQUE_SYNONYMS), key=lambda kv: len(kv[0]), reverse=True
)


def part_category(part_name: str) -> Optional[str]:
    folded = fold_text(part_name)
    for keyword, category in _ORDERED_PART_KEYWORDS:
        if keyword in folded:
            return category
    return None


def rule_for_part(part_name: str) -> PartRule:
    category = part_category(part_name)
    return PART_RULES.get(category, GENERIC_RULE) if category else GENERIC_RULE


def is_varnish_part(part_name: str) -> bool:
    return part_category(part_name) == "varnish"


def canonical_technique(text: object) -> Optional[str]:
    """Map a free-text technique to the canonical vocabulary, or None."""
    if not isinstance(text, str) or not text.strip():
        return None
    folded = fold_text(text).strip()
    if folded in TECHNIQUES or folded == VARNISHING:
        return folded
    for keyword, technique in _ORDERED_SYNONYMS:
        if keyword in folded:
            return technique
    return None


class TechniqueAssigner:
    """
    Resolve the technique for each step of one plan.

    Keeps the round-robin position for steps whose technique can't be
    inferred, so consecutive unknown steps still vary. The round-robin
    skips techniques the part's rule does not allow. On strict parts
    (eyes, gems) a model technique outside the allowed set is replaced by
    the rule's first technique; elsewhere a recognised model technique is
    kept as given.
    """

    def __init__(self) -> None:
        self._cursor = 0

    def _next_default(self, rule: PartRule) -> str:
        for _ in range(len(DEFAULT_SEQUENCE)):
            technique = DEFAULT_SEQUENCE[self._cursor % len(DEFAULT_SEQUENCE)]
            self._cursor += 1
            if technique in rule.allowed:
                return technique
        return rule.allowed[0]

    def assign(self, part_name: str, model_technique: object) -> str:
        rule = rule_for_part(part_name)
        if rule.category == "varnish":
            return VARNISHING

        has_text = isinstance(model_technique, str) and bool(model_technique.strip())
        technique = canonical_technique(model_technique)
        if technique == VARNISHING:
            technique = None

        if technique is None:
            if not has_text and rule is not GENERIC_RULE:
                technique = rule.allowed[0]
            else:
                technique = self._next_default(rule)

        if rule.category in STRICT_CATEGORIES and technique not in rule.allowed:
            technique = rule.allowed[0]
        return technique


# ── Dilution defaults ─────────────────────────────────────────────────────────

DILUTION_DEFAULTS: Dict[str, Tuple[str, str]] = {
    BASECOAT: ("1:1", "Tinta e diluente em partes iguais, consistência de leite"),
    LAYERING: ("1:2", "Camadas finas e translúcidas, várias demãos"),
    DRYBRUSHING: ("Sem diluição", "Tinta pura, retire quase tudo do pincel no papel toalha"),
    WASHING: ("1:3", "Bem diluída para escorrer nos recessos"),
    GLAZING: ("1:4", "Muito diluída, quase transparente"),
    EDGE_HIGHLIGHT: ("1:1", "Consistência cremosa para linhas finas nas arestas"),
    FINE_DETAIL: ("1:1", "Levemente diluída para fluir bem na ponta do pincel"),
    VARNISHING: ("Pronto para uso", "Agite bem; aplique em camadas finas"),
}


def default_dilution(technique: str) -> Tuple[str, str]:
    return DILUTION_DEFAULTS.get(technique, DILUTION_DEFAULTS[LAYERING])


def default_tool(part_name: str) -> Tuple[str, str]:
    rule = rule_for_part(part_name)
    return rule.tool, rule.tool_details


def canonical_tool(text: object, part_name: str) -> str:
    folded = fold_text(text) if isinstance(text, str) else ""
    if any(k in folded for k in ("aerogr", "airbrush")):
        return TOOL_AIRBRUSH
    if any(k in folded for k in ("pincel", "brush")):
        return TOOL_BRUSH
    return default_tool(part_name)[0]
