# tests/test_prompts.py
from paintplan import prompts
from paintplan.models import IdentifiedColor, Inventory, ProjectInfo, ProjectPaint, RegionItem

PROJECT = ProjectInfo(project_name="Paladino", source="D&D")


def test_inventory_block_lists_paints_and_extras(inventory):
    full = prompts.inventory_block(inventory)
    compact = prompts.inventory_block(inventory, compact=True)
    assert '"Gold"' in full
    assert "- Gold (Citadel) #D4AF37" in compact
    assert "Diluentes:" in compact
    assert "Vernizes:" in compact


def test_inventory_block_empty():
    assert "nenhuma tinta cadastrada" in prompts.inventory_block(Inventory())


def test_colors_prompt_with_regions_names_each_part(inventory):
    parts = [RegionItem(part_name="Capa"), RegionItem(part_name="Olhos")]
    text = prompts.colors_prompt(PROJECT, inventory, parts)
    assert "1. Capa" in text and "2. Olhos" in text
    assert "Paladino" in text and "D&D" in text


def test_steps_prompt_asks_for_one_step_per_part_plus_varnish(inventory):
    colors = [IdentifiedColor(
        color_name="Dourado", hex="#D4AF37", location="Armadura",
        matched_paint=ProjectPaint(name="Gold", brand="Citadel", hex="#D4AF37"),
    )]
    text = prompts.steps_prompt(PROJECT, inventory, colors, ["Armadura", "Capa"], compact=True)
    assert "exatamente 3 passos" in text
    assert "tinta: Gold (Citadel)" in text
    assert "drybrushing" in text


def test_hex_prompts():
    assert "#RRGGBB" in prompts.hex_prompt("Citadel", "Mephiston Red")
    local = prompts.hex_prompt("Citadel", "Mephiston Red", compact=True)
    assert "RED/VERMELHO = #FF0000" in local


def test_bulk_prompt_pins_brand():
    assert 'marca "Citadel"' in prompts.bulk_inventory_prompt("Azul", "Citadel")
    assert "marca" not in prompts.bulk_inventory_prompt("Azul")
