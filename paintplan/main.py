"""
Miniature Paint Planner — command line

Usage:
  python -m paintplan.main plan --image ref.jpg --name "Paladino" --source "D&D"
  python -m paintplan.main plan --image ref.jpg --name "Paladino" --regions regions.json
  python -m paintplan.main parts --image ref.jpg --output regions.json
  python -m paintplan.main inventory list
  python -m paintplan.main inventory add --brand Vallejo --name "Gold" [--hex "#D4AF37"]
  python -m paintplan.main inventory import lista.txt --brand Citadel
  python -m paintplan.main settings --provider local --endpoint http://localhost:1234/v1
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import INVENTORY_PATH, SETTINGS_PATH, Settings, load_settings, save_settings
from .errors import PaintPlanError
from .imaging import load_reference_image
from .inventory import InventoryStore
from .llm_client import build_llm_client
from .models import Paint, PartSuggestion, ProjectInfo, ProjectPlan, RegionItem
from .orchestrator import PlanOrchestrator

console = Console()

OUTPUTS_ROOT = Path("outputs")


# ── CLI ───────────────────────────────────────────────────────────────────────

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Miniature Paint Planner — painting guides from a reference photo"
    )
    parser.add_argument("--inventory", default=str(INVENTORY_PATH), help="Inventory JSON file")
    parser.add_argument("--settings", default=str(SETTINGS_PATH), help="Settings JSON file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    plan = sub.add_parser("plan", help="Generate a painting plan")
    plan.add_argument("--image", required=True, help="Reference photo of the miniature")
    plan.add_argument("--name", required=True, help="Project name")
    plan.add_argument("--source", default="", help="Universe / game the miniature comes from")
    plan.add_argument(
        "--regions",
        default=None,
        help="Regions JSON (list of {partName, regions}); skips part discovery",
    )
    plan.add_argument("--output", default=None, help="Output directory (default: outputs/<timestamp>)")

    parts = sub.add_parser("parts", help="Suggest parts and regions for a reference photo")
    parts.add_argument("--image", required=True)
    parts.add_argument("--output", default="regions.json", help="Where to write the provisional regions")

    inv = sub.add_parser("inventory", help="Manage the paint inventory")
    inv_sub = inv.add_subparsers(dest="inventory_command", required=True)
    inv_sub.add_parser("list", help="Show the inventory")
    add = inv_sub.add_parser("add", help="Add a paint")
    add.add_argument("--brand", required=True)
    add.add_argument("--name", required=True)
    add.add_argument("--hex", default=None, help="Hex code; looked up with the model when omitted")
    add.add_argument("--type", default="Acrylic", choices=["Ink", "Acrylic", "Varnish", "Other"])
    imp = inv_sub.add_parser("import", help="Bulk-import a pasted product list")
    imp.add_argument("file", help="Text file, one product per line")
    imp.add_argument("--brand", default="", help="Brand to use for every paint in the list")

    st = sub.add_parser("settings", help="Show or change the model backend")
    st.add_argument("--provider", choices=["gemini", "local"], default=None)
    st.add_argument("--endpoint", default=None, help="Local OpenAI-compatible endpoint")

    return parser.parse_args(argv)


# ── Output helpers ────────────────────────────────────────────────────────────

def load_regions(path: Path) -> List[RegionItem]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("regions") or data.get("parts") or []
    return [RegionItem.model_validate(item) for item in data]


def provisional_region_entry(suggestion: PartSuggestion) -> dict:
    """Unconfirmed RegionItem for the regions file; the model's rectangles ride along as hints."""
    entry = suggestion.to_region_item().to_json()
    entry["description"] = suggestion.description
    entry["suggestedRegions"] = [r.to_json() for r in suggestion.regions]
    return entry


def save_plan_json(plan: ProjectPlan, output_dir: Path) -> Path:
    json_path = output_dir / "plan.json"
    json_path.write_text(json.dumps(plan.to_json(), indent=2, ensure_ascii=False), encoding="utf-8")
    return json_path


def display_plan(plan: ProjectPlan) -> None:
    """Pretty-print the plan to the terminal."""
    if plan.warnings:
        console.print(Panel("\n".join(f"⚠ {w}" for w in plan.warnings), title="Avisos", border_style="yellow"))

    colors = Table(title="Cores identificadas", show_lines=False)
    colors.add_column("Cor")
    colors.add_column("Hex")
    colors.add_column("Local")
    colors.add_column("Tinta / mistura")
    for c in plan.identified_colors:
        if c.matched_paint:
            source = f"{c.matched_paint.name} ({c.matched_paint.brand})"
        elif c.mix_recipe:
            source = " + ".join(f"{m.ratio}x {m.paint}" for m in c.mix_recipe.components)
        else:
            source = "[red]sem tinta[/red]"
        colors.add_row(c.color_name, f"[{c.hex}]██[/] {c.hex}", c.location, source)
    console.print(colors)

    for step in plan.steps:
        paints = ", ".join(f"{p.name} [dim]({p.purpose})[/dim]" for p in step.paints_to_use) or "—"
        body = (
            f"[bold]Técnica:[/bold] {step.technique}   [bold]Ferramenta:[/bold] {step.tool} — {step.tool_details}\n"
            f"[bold]Tintas:[/bold] {paints}\n"
            f"[bold]Diluição:[/bold] {step.dilution.ratio} — {step.dilution.description}"
        )
        if step.paint_mix:
            body += f"\n[bold]Mistura:[/bold] {step.paint_mix.ratio_label()} — {step.paint_mix.instructions}"
        if step.tips:
            body += "\n" + "\n".join(f"• {t}" for t in step.tips)
        console.print(Panel(body, title=f"[bold]{step.step_number}. {step.part_name}[/bold]", border_style="cyan"))


# ── Commands ──────────────────────────────────────────────────────────────────

def _orchestrator(args: argparse.Namespace) -> PlanOrchestrator:
    settings = load_settings(Path(args.settings))
    if settings.provider == "gemini" and not os.environ.get("GEMINI_API_KEY"):
        console.print("[bold red]Error:[/bold red] GEMINI_API_KEY not set.")
        console.print("Add it to .env or switch to a local server with: settings --provider local")
        sys.exit(1)
    try:
        client = build_llm_client(settings)
    except ValueError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)
    return PlanOrchestrator(client)


def cmd_plan(args: argparse.Namespace) -> int:
    store = InventoryStore(Path(args.inventory))
    image = load_reference_image(Path(args.image))
    project = ProjectInfo(project_name=args.name, source=args.source)
    orchestrator = _orchestrator(args)

    start = time.time()
    if args.regions:
        regions = load_regions(Path(args.regions))
        console.print(f"[dim]{len(regions)} parte(s) definidas pelo usuário[/dim]")
        plan = asyncio.run(orchestrator.generate_with_regions(project, image, store.snapshot(), regions))
    else:
        plan = asyncio.run(orchestrator.generate_plan(project, image, store.snapshot()))

    if plan is None:
        console.print("[bold red]Não foi possível gerar o plano.[/bold red] Tente novamente.")
        return 1

    output_dir = Path(args.output) if args.output else OUTPUTS_ROOT / datetime.now().strftime("%Y%m%d_%H%M%S")
    output_dir.mkdir(parents=True, exist_ok=True)
    json_path = save_plan_json(plan, output_dir)
    display_plan(plan)
    console.print(
        Panel(
            f"{len(plan.steps)} passo(s) em [bold]{time.time() - start:.0f}s[/bold]\n"
            f"Plano salvo em: [bold]{json_path}[/bold]",
            title=f"[bold green]{plan.project_name}[/bold green]",
            border_style="green",
        )
    )
    return 0


def cmd_parts(args: argparse.Namespace) -> int:
    image = load_reference_image(Path(args.image))
    suggestions = asyncio.run(_orchestrator(args).identify_parts_in_image(image))
    if not suggestions:
        console.print("[yellow]Nenhuma parte sugerida.[/yellow]")
        return 1
    out = Path(args.output)
    out.write_text(
        json.dumps([provisional_region_entry(s) for s in suggestions], indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    for s in suggestions:
        console.print(f"  • [bold]{s.part_name}[/bold] [dim]{s.description}[/dim] ({len(s.regions)} região(ões))")
    console.print(f"\nRegiões provisórias em [bold]{out}[/bold]; copie suggestedRegions para regions nas partes que confirmar e use com [bold]plan --regions[/bold].")
    return 0


def cmd_inventory(args: argparse.Namespace) -> int:
    store = InventoryStore(Path(args.inventory))

    if args.inventory_command == "list":
        inv = store.snapshot()
        table = Table(title=f"Tintas ({len(inv.paints)})")
        for col in ("Marca", "Nome", "Tipo", "Hex"):
            table.add_column(col)
        for p in inv.paints:
            table.add_row(p.brand, p.name, p.type, f"[{p.hex}]██[/] {p.hex}")
        console.print(table)
        for label, items in (("Diluentes", inv.thinners), ("Vernizes", inv.varnishes), ("Washes", inv.washes)):
            if items:
                console.print(f"[bold]{label}:[/bold] " + ", ".join(f"{i.name or '—'} ({i.brand})" for i in items))
        return 0

    if args.inventory_command == "add":
        hx = args.hex
        if not hx:
            hx = asyncio.run(_orchestrator(args).get_hex_for_paint(args.brand, args.name))
            console.print(f"[dim]Hex sugerido pela IA: {hx or 'nenhum'}[/dim]")
        try:
            paint = Paint(brand=args.brand, name=args.name, type=args.type, hex=hx or "#808080")
        except ValidationError as e:
            console.print(f"[bold red]Tinta inválida:[/bold red] {e}")
            return 1
        if store.add_paint(paint) is None:
            console.print("[yellow]Essa tinta já está no inventário.[/yellow]")
            return 1
        console.print(f"[green]✓ {paint.name} ({paint.brand}) adicionada[/green]")
        return 0

    text = Path(args.file).read_text(encoding="utf-8")

    def progress(current: int, total: int, label: str) -> None:
        console.print(f"  [dim]{current}/{total} {label}[/dim]")

    parsed = asyncio.run(_orchestrator(args).parse_bulk_inventory(text, args.brand, progress))
    if parsed is None:
        console.print("[yellow]Nenhum item reconhecido.[/yellow]")
        return 1
    added = store.import_parsed(parsed)
    console.print(f"[green]✓ {added} de {parsed.item_count()} item(ns) importado(s)[/green]")
    return 0


def cmd_settings(args: argparse.Namespace) -> int:
    path = Path(args.settings)
    settings = load_settings(path)
    if args.provider or args.endpoint:
        settings = Settings(
            provider=args.provider or settings.provider,
            local_endpoint=args.endpoint or settings.local_endpoint,
        )
        save_settings(settings, path)
    console.print(Panel(
        f"[bold]Provider:[/bold] {settings.provider}\n[bold]Local endpoint:[/bold] {settings.local_endpoint}",
        title="Configurações",
        border_style="blue",
    ))
    return 0


COMMANDS = {
    "plan": cmd_plan,
    "parts": cmd_parts,
    "inventory": cmd_inventory,
    "settings": cmd_settings,
}


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        format="%(asctime)s — %(levelname)s — %(name)s — %(message)s",
        level=logging.DEBUG if args.verbose else logging.WARNING,
    )
    try:
        code = COMMANDS[args.command](args)
    except PaintPlanError as e:
        console.print(f"[bold red]Erro:[/bold red] {e.user_message}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
