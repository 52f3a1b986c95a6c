"""
prompts.py — Prompt text for every model call, in Portuguese.

Each builder has a full variant (hosted model, large context) and a
compact one (local models: short instructions, inline JSON skeleton,
abbreviated inventory).
"""

from __future__ import annotations

import json
from typing import Iterable, List, Optional, Sequence

from .color_matcher import describe_color
from .models import IdentifiedColor, Inventory, ProjectInfo, RegionItem
from .techniques import TECHNIQUES, VARNISHING

JSON_ONLY = "Responda APENAS com o JSON, sem markdown ou explicações."


# ── Context blocks ────────────────────────────────────────────────────────────

def inventory_block(inventory: Inventory, compact: bool = False) -> str:
    if not inventory.paints:
        paints = "(nenhuma tinta cadastrada)"
    elif compact:
        paints = "\n".join(f"- {p.name} ({p.brand}) {p.hex}" for p in inventory.paints)
    else:
        paints = json.dumps(
            [{"name": p.name, "brand": p.brand, "hex": p.hex, "type": p.type} for p in inventory.paints],
            ensure_ascii=False, indent=2,
        )
    lines = [f"Tintas disponíveis (use APENAS estas):\n{paints}"]

    if inventory.washes:
        lines.append("Washes: " + ", ".join(f"{w.name or w.composition} ({w.brand})" for w in inventory.washes))
    if inventory.thinners:
        lines.append("Diluentes: " + ", ".join(f"{t.name or t.composition} ({t.brand})" for t in inventory.thinners))
    if inventory.varnishes:
        lines.append("Vernizes: " + ", ".join(f"{v.name or 'Verniz'} {v.finish} ({v.brand})" for v in inventory.varnishes))
    return "\n".join(lines)


def colors_block(colors: Sequence[IdentifiedColor]) -> str:
    lines = []
    for c in colors:
        if c.matched_paint:
            source = f"tinta: {c.matched_paint.name} ({c.matched_paint.brand})"
        elif c.mix_recipe:
            parts = " + ".join(f"{m.ratio}x {m.paint}" for m in c.mix_recipe.components)
            source = f"mistura: {parts}"
        else:
            source = "sem tinta equivalente"
        location = f" em {c.location}" if c.location else ""
        lines.append(f"- {c.color_name} {c.hex} ({describe_color(c.hex)}){location} → {source}")
    return "\n".join(lines)


def project_header(project: ProjectInfo) -> str:
    source = f"\nUniverso/Fonte: \"{project.source}\"" if project.source else ""
    return f"Projeto: \"{project.project_name}\"{source}"


def _part_list(names: Iterable[str]) -> str:
    return "\n".join(f"{i}. {n}" for i, n in enumerate(names, start=1))


# ── Phase 1: colours ──────────────────────────────────────────────────────────

def colors_prompt(
    project: ProjectInfo,
    inventory: Inventory,
    parts: Optional[Sequence[RegionItem]] = None,
    compact: bool = False,
) -> str:
    """
    With parts (user-confirmed regions) the model names the colour of each
    part; without, it enumerates every distinct colour on the photo.
    """
    if parts:
        task = (
            "Para CADA parte abaixo, identifique a cor real observada na foto "
            "(nome e hex) e use a parte como \"location\":\n" + _part_list(p.part_name for p in parts)
        )
    else:
        task = (
            "Liste TODAS as cores visualmente distintas da miniatura na foto "
            "(espera-se pelo menos 10 em figuras complexas), cada uma com a parte onde aparece."
        )

    rules = (
        "Para cada cor: se houver tinta do inventário parecida, preencha \"matchedPaint\" e "
        "\"needsMixing\": false; senão \"needsMixing\": true e uma \"mixRecipe\" usando SOMENTE "
        "tintas do inventário, com proporções inteiras."
    )

    if compact:
        skeleton = (
            '{"colors":[{"colorName":"...","hex":"#RRGGBB","location":"...",'
            '"matchedPaint":{"name":"...","brand":"...","hex":"#RRGGBB"},"needsMixing":false,'
            '"mixRecipe":null}]}'
        )
        return (
            f"{project_header(project)}\n\n{inventory_block(inventory, compact=True)}\n\n"
            f"{task}\n{rules}\n\nFormato: {skeleton}\n{JSON_ONLY}"
        )

    return (
        "Você é um pintor de miniaturas experiente analisando a foto de referência.\n\n"
        f"{project_header(project)}\n\n"
        f"{inventory_block(inventory)}\n\n"
        f"## TAREFA\n{task}\n\n"
        f"## REGRAS\n{rules}\n"
        "Use nomes de cor em português (ex.: 'Vermelho sangue', 'Pele sombreada'). "
        "O hex deve ser a cor observada na foto, não a da tinta.\n"
        f"{JSON_ONLY}"
    )


# ── Phase 2: parts ────────────────────────────────────────────────────────────

def parts_prompt(project: ProjectInfo, colors: Sequence[IdentifiedColor], compact: bool = False) -> str:
    task = (
        "Divida a miniatura em 5 a 15 partes pintáveis (ex.: Pele, Cabelo, Capa, Armadura, Olhos, Base). "
        "Para cada parte informe regiões aproximadas na foto como retângulos com x, y, width, height "
        "entre 0 e 1. Não inclua o verniz como parte."
    )
    if compact:
        skeleton = '{"parts":[{"partName":"...","description":"...","regions":[{"x":0.1,"y":0.2,"width":0.3,"height":0.2}]}]}'
        return f"{project_header(project)}\nCores:\n{colors_block(colors)}\n\n{task}\nFormato: {skeleton}\n{JSON_ONLY}"
    return (
        f"{project_header(project)}\n\n"
        f"## CORES JÁ IDENTIFICADAS\n{colors_block(colors)}\n\n"
        f"## TAREFA\n{task}\n"
        "Cada cor identificada deve pertencer a pelo menos uma parte.\n"
        f"{JSON_ONLY}"
    )


# ── Phase 3: steps ────────────────────────────────────────────────────────────

def steps_prompt(
    project: ProjectInfo,
    inventory: Inventory,
    colors: Sequence[IdentifiedColor],
    part_names: Sequence[str],
    compact: bool = False,
) -> str:
    techniques = ", ".join([*TECHNIQUES, VARNISHING])
    task = (
        f"Crie exatamente {len(part_names) + 1} passos: um para cada parte abaixo, na mesma ordem, "
        "e um último passo de verniz/fixação.\n" + _part_list(part_names)
    )
    rules = (
        f"\"technique\" deve ser uma de: {techniques}. \"tool\": Paintbrush ou Airbrush. "
        "\"paintsToUse\" com no máximo uma tinta por \"purpose\" (base, shadow, highlight, wash, glaze), "
        "sempre com o nome EXATO do inventário, nunca um código hex no lugar do nome. "
        "Nunca use drybrushing em olhos ou gemas."
    )
    if compact:
        skeleton = (
            '{"steps":[{"stepNumber":1,"partName":"...","partDescription":"...","baseColor":"...",'
            '"paintsToUse":[{"name":"...","brand":"...","hex":"#RRGGBB","purpose":"base"}],'
            '"paintMix":null,"technique":"basecoat","tool":"Paintbrush","toolDetails":"...",'
            '"dilution":{"ratio":"1:1","description":"..."},"tips":["..."],"warnings":[]}],'
            '"fixationTips":["..."],"warnings":[]}'
        )
        return (
            f"{project_header(project)}\n{inventory_block(inventory, compact=True)}\n"
            f"Cores:\n{colors_block(colors)}\n\n{task}\n{rules}\nFormato: {skeleton}\n{JSON_ONLY}"
        )
    return (
        "Você é um pintor de miniaturas experiente escrevendo um guia passo a passo em português.\n\n"
        f"{project_header(project)}\n\n"
        f"{inventory_block(inventory)}\n\n"
        f"## CORES IDENTIFICADAS (use como referência)\n{colors_block(colors)}\n\n"
        f"## TAREFA\n{task}\n\n"
        f"## REGRAS\n{rules}\n"
        "Use \"paintMix\" apenas quando a cor exigir mistura, com componentes do inventário. "
        "Dê a diluição como proporção tinta:diluente e dicas práticas em frases curtas.\n"
        f"{JSON_ONLY}"
    )


# ── Part discovery ────────────────────────────────────────────────────────────

def identify_parts_prompt(compact: bool = False) -> str:
    base = (
        "Identifique as partes pintáveis desta miniatura (5 a 15), com nome curto em português, "
        "uma frase de descrição e retângulos aproximados (x, y, width, height entre 0 e 1)."
    )
    if compact:
        return f"{base}\nFormato: {{\"parts\":[{{\"partName\":\"...\",\"description\":\"...\",\"regions\":[]}}]}}\n{JSON_ONLY}"
    return f"{base}\nAs regiões são apenas sugestões; o pintor vai confirmá-las.\n{JSON_ONLY}"


# ── Paint hex lookup ──────────────────────────────────────────────────────────

_HEX_HINTS: List[str] = [
    "BLACK/PRETO = #000000", "WHITE/BRANCO = #FFFFFF", "RED/VERMELHO = #FF0000",
    "BLUE/AZUL = #0000FF", "GREEN/VERDE = #00FF00", "YELLOW/AMARELO = #FFFF00",
    "ORANGE/LARANJA = #FF8C00", "BROWN/MARROM/WOOD/MADEIRA = #8B4513", "GRAY/GREY/CINZA = #808080",
    "GOLD/DOURADO/GOLDEN = #FFD700", "SILVER/PRATA = #C0C0C0", "FLESH/PELE/SKIN = #FFDBAC",
    "RUST/FERRUGEM = #B7410E", "SEPIA = #704214", "BUFF = #F0DC82", "INDIGO = #4B0082", "LIME = #32CD32",
]


def hex_prompt(brand: str, name: str, compact: bool = False) -> str:
    if compact:
        hints = "\n".join(f"- {h}" for h in _HEX_HINTS)
        return (
            "Analise o nome da tinta e retorne APENAS o código hex (#RRGGBB) da cor.\n"
            f"Nome: \"{name}\"\nMarca: \"{brand}\"\n\n"
            f"Traduza palavras de cor para hex:\n{hints}\n\n"
            "Retorne APENAS o hex, nada mais."
        )
    return (
        f"Provide the hex color code for the miniature paint with brand \"{brand}\" and name \"{name}\". "
        "Respond with only the hex code in \"#RRGGBB\" format."
    )


# ── Bulk inventory ────────────────────────────────────────────────────────────

def bulk_inventory_prompt(text: str, brand: str = "") -> str:
    brand_note = f"Se for tinta, sempre use marca \"{brand}\".\n" if brand else ""
    return f"{brand_note}Categorize esta lista de produtos de modelismo para inventário (linha por linha):\n{text}"
