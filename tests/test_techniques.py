# tests/test_techniques.py
import pytest

from paintplan import techniques as t


# ── Part categories ───────────────────────────────────────────────────────────
@pytest.mark.parametrize(
    "part, category",
    [
        ("Olho esquerdo", "eyes"),
        ("Gema do amuleto", "gems"),
        ("Pele do rosto", "skin"),
        ("Cabelo", "hair"),
        ("Base e terreno", "terrain"),
        ("Armadura", "metal"),
        ("Capa", "cloth"),
        ("Verniz de proteção", "varnish"),
        ("Parte X", None),
    ],
)
def test_part_category(part, category):
    assert t.part_category(part) == category


def test_canonical_technique_synonyms():
    assert t.canonical_technique("Dry Brush") == t.DRYBRUSHING
    assert t.canonical_technique("pincel seco") == t.DRYBRUSHING
    assert t.canonical_technique("edge-highlight") == t.EDGE_HIGHLIGHT
    assert t.canonical_technique("Veladura") == t.GLAZING
    assert t.canonical_technique("zzz") is None
    assert t.canonical_technique(None) is None


# ── Assignment ────────────────────────────────────────────────────────────────
def test_eyes_and_gems_never_get_drybrushing():
    assigner = t.TechniqueAssigner()
    assert assigner.assign("Olhos", "drybrushing") == t.FINE_DETAIL
    assert assigner.assign("Gema do amuleto", "dry brush") == t.FINE_DETAIL
    assert assigner.assign("Eye lenses", "Drybrushing") == t.FINE_DETAIL


def test_missing_technique_uses_part_rule():
    assigner = t.TechniqueAssigner()
    assert assigner.assign("Cabelo", None) == t.DRYBRUSHING
    assert assigner.assign("Pele", "") == t.LAYERING
    assert assigner.assign("Olhos", None) == t.FINE_DETAIL


def test_unknown_technique_round_robins():
    assigner = t.TechniqueAssigner()
    first = assigner.assign("Parte A", "zzz")
    second = assigner.assign("Parte B", "qqq")
    assert (first, second) == t.DEFAULT_SEQUENCE[:2]


def test_varnish_part_is_always_varnishing():
    assigner = t.TechniqueAssigner()
    assert assigner.assign("Verniz final", "layering") == t.VARNISHING
    # varnishing is reserved for the varnish step
    assert assigner.assign("Capa", "verniz") != t.VARNISHING


def test_recognised_technique_is_kept():
    assert t.TechniqueAssigner().assign("Capa", "Glazing") == t.GLAZING
    assert t.TechniqueAssigner().assign("Armadura", "layering") == t.LAYERING


def test_strict_parts_remap_techniques_outside_their_rule():
    assigner = t.TechniqueAssigner()
    assert assigner.assign("Olhos", "wash") == t.FINE_DETAIL
    assert assigner.assign("Gema", "edge highlight") == t.FINE_DETAIL
    assert assigner.assign("Olhos", "glazing") == t.GLAZING


def test_round_robin_skips_techniques_the_part_does_not_allow():
    assigner = t.TechniqueAssigner()
    # basecoat is not an eye technique, layering is next in the sequence
    assert assigner.assign("Olhos", "zzz") == t.LAYERING
    assert assigner.assign("Terreno", "qqq") == t.WASHING


# ── Tools and dilution ────────────────────────────────────────────────────────
def test_canonical_tool():
    assert t.canonical_tool("aerógrafo", "Capa") == t.TOOL_AIRBRUSH
    assert t.canonical_tool("Pincel 0", "Capa") == t.TOOL_BRUSH
    assert t.canonical_tool("???", "Verniz") == t.TOOL_AIRBRUSH
    assert t.canonical_tool(None, "Capa") == t.TOOL_BRUSH


def test_default_dilution_covers_every_technique():
    for technique in (*t.TECHNIQUES, t.VARNISHING):
        ratio, description = t.default_dilution(technique)
        assert ratio and description
