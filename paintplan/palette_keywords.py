"""
palette_keywords.py — Static keyword tables used by the colour matcher.

Tables are ordered lists of (keyword, value) pairs. Lookups evaluate them
longest-keyword-first against accent-folded, lower-cased text, so
"azul marinho" wins over "azul" and "vermelho sangue" over "vermelho".
Portuguese entries are stored with their accents; folding happens at
lookup time (see color_matcher.fold_text).
"""

from __future__ import annotations

from typing import List, Tuple

# ── Colour words → approximate hex ────────────────────────────────────────────

COLOR_KEYWORDS: List[Tuple[str, str]] = [
    # Neutrals
    ("black", "#000000"), ("preto", "#000000"), ("preta", "#000000"), ("negro", "#000000"),
    ("white", "#FFFFFF"), ("branco", "#FFFFFF"), ("branca", "#FFFFFF"),
    ("off white", "#F2EFE6"), ("bone white", "#E3DAC9"), ("bone", "#E3DAC9"), ("osso", "#E3DAC9"),
    ("gray", "#808080"), ("grey", "#808080"), ("cinza", "#808080"),
    ("dark grey", "#4A4A4A"), ("dark gray", "#4A4A4A"), ("cinza escuro", "#4A4A4A"),
    ("light grey", "#BEBEBE"), ("light gray", "#BEBEBE"), ("cinza claro", "#BEBEBE"),
    ("grafite", "#41424C"), ("chumbo", "#5A5A5A"), ("charcoal", "#36454F"),
    ("creme", "#FFFDD0"), ("cream", "#FFFDD0"), ("ivory", "#FFFFF0"), ("marfim", "#FFFFF0"),
    # Reds and pinks
    ("red", "#FF0000"), ("vermelho", "#FF0000"), ("vermelha", "#FF0000"),
    ("dark red", "#8B0000"), ("vermelho escuro", "#8B0000"),
    ("blood red", "#8A0303"), ("vermelho sangue", "#8A0303"), ("sangue", "#8A0303"),
    ("crimson", "#DC143C"), ("carmesim", "#DC143C"), ("carmim", "#960018"),
    ("scarlet", "#FF2400"), ("escarlate", "#FF2400"),
    ("wine", "#722F37"), ("vinho", "#722F37"), ("bordeaux", "#5C0120"), ("bordo", "#5C0120"),
    ("pink", "#FFC0CB"), ("rosa", "#FFC0CB"), ("magenta", "#FF00FF"),
    ("salmon", "#FA8072"), ("salmão", "#FA8072"), ("coral", "#FF7F50"),
    ("peach", "#FFE5B4"), ("pêssego", "#FFE5B4"),
    # Oranges, yellows, browns
    ("orange", "#FF8C00"), ("laranja", "#FF8C00"),
    ("yellow", "#FFFF00"), ("amarelo", "#FFFF00"), ("amarela", "#FFFF00"),
    ("mustard", "#E1AD01"), ("mostarda", "#E1AD01"), ("ochre", "#CC7722"), ("ocre", "#CC7722"),
    ("amber", "#FFBF00"), ("âmbar", "#FFBF00"),
    ("brown", "#8B4513"), ("marrom", "#8B4513"), ("castanho", "#8B4513"),
    ("wood", "#8B4513"), ("madeira", "#8B4513"),
    ("leather", "#8C5A3C"), ("couro", "#8C5A3C"),
    ("dark brown", "#4B2E1E"), ("marrom escuro", "#4B2E1E"), ("chocolate", "#7B3F00"),
    ("tan", "#D2B48C"), ("khaki", "#C3B091"), ("caqui", "#C3B091"),
    ("beige", "#F5F5DC"), ("bege", "#F5F5DC"), ("sand", "#C2B280"), ("areia", "#C2B280"),
    ("buff", "#F0DC82"), ("sepia", "#704214"), ("sépia", "#704214"),
    ("rust", "#B7410E"), ("ferrugem", "#B7410E"), ("oxidado", "#B7410E"),
    # Flesh
    ("flesh", "#FFDBAC"), ("pele", "#FFDBAC"), ("skin", "#FFDBAC"), ("carne", "#FFDBAC"),
    ("flesh tone", "#E8B48F"), ("tom de pele", "#E8B48F"),
    # Greens
    ("green", "#00FF00"), ("verde", "#00FF00"),
    ("dark green", "#006400"), ("verde escuro", "#006400"),
    ("olive", "#808000"), ("oliva", "#808000"), ("verde oliva", "#708238"),
    ("moss", "#8A9A5B"), ("musgo", "#8A9A5B"), ("verde musgo", "#8A9A5B"),
    ("lime", "#32CD32"), ("lima", "#32CD32"),
    ("emerald", "#50C878"), ("esmeralda", "#50C878"),
    ("turquoise", "#40E0D0"), ("turquesa", "#40E0D0"),
    # Blues and purples
    ("blue", "#0000FF"), ("azul", "#0000FF"),
    ("dark blue", "#00008B"), ("azul escuro", "#00008B"),
    ("light blue", "#ADD8E6"), ("azul claro", "#ADD8E6"),
    ("navy", "#000080"), ("marinho", "#000080"), ("azul marinho", "#000080"),
    ("sky", "#87CEEB"), ("céu", "#87CEEB"),
    ("cyan", "#00FFFF"), ("ciano", "#00FFFF"),
    ("vibrante", "#0066FF"),
    ("indigo", "#4B0082"), ("índigo", "#4B0082"),
    ("purple", "#800080"), ("roxo", "#800080"), ("roxa", "#800080"),
    ("violet", "#8B00FF"), ("violeta", "#8B00FF"),
    ("lilac", "#C8A2C8"), ("lilás", "#C8A2C8"),
    # Metallics
    ("gold", "#FFD700"), ("golden", "#FFD700"), ("dourado", "#FFD700"), ("dourada", "#FFD700"),
    ("ouro", "#FFD700"),
    ("silver", "#C0C0C0"), ("prata", "#C0C0C0"), ("prateado", "#C0C0C0"), ("prateada", "#C0C0C0"),
    ("bronze", "#CD7F32"), ("copper", "#B87333"), ("cobre", "#B87333"),
    ("brass", "#B5A642"), ("latão", "#B5A642"),
    ("gunmetal", "#2A3439"), ("gun metal", "#2A3439"), ("steel", "#71797E"), ("aço", "#71797E"),
    ("metal", "#A8A9AD"), ("metálico", "#A8A9AD"),
    # Finishes that show up in paint names
    ("matt", "#808080"), ("fosco", "#808080"), ("gloss", "#FFFFFF"),
]

# ── Inventory line categories ─────────────────────────────────────────────────

CATEGORY_KEYWORDS: List[Tuple[str, str]] = [
    ("verniz", "varnish"),
    ("varnish", "varnish"),
    ("diluente", "thinner"),
    ("thinner", "thinner"),
    ("wash", "wash"),
    ("shade", "wash"),
    ("lavado", "wash"),
]

VARNISH_FINISH_KEYWORDS: List[Tuple[str, str]] = [
    ("fosco", "Fosco"),
    ("matte", "Fosco"),
    ("matt", "Fosco"),
    ("acetinado", "Acetinado"),
    ("satin", "Acetinado"),
    ("vitral", "Vitral Brilhante"),
    ("brilhante", "Brilhante"),
    ("gloss", "Brilhante"),
]

INK_KEYWORDS: List[str] = ["ink", "nanquim"]

# Quantity noise stripped from shop listings ("17ml", "2 und", "unid.")
QUANTITY_PATTERN = r"\d+\s?ml|\bund\b\.?|\bunid\b\.?"
