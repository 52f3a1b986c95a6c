# tests/test_orchestrator.py
import asyncio
import io
import json

import pytest
from PIL import Image

from paintplan import normalizer as nz
from paintplan.errors import MalformedResponseError, QuotaExceededError
from paintplan.llm_client import GEMINI_PROFILE, LOCAL_PROFILE, CompletionOptions, LLMClient
from paintplan.models import ProjectInfo, ReferenceImage, RegionItem, RegionRect
from paintplan.orchestrator import PlanOrchestrator
from paintplan.techniques import VARNISHING

PROJECT = ProjectInfo(project_name="Paladino", source="D&D")
IMAGE = ReferenceImage(data="aW1n", type="image/png")

CAPA_RECT = RegionRect(x=0.1, y=0.3, width=0.5, height=0.6)
OLHOS_RECT = RegionRect(x=0.45, y=0.1, width=0.1, height=0.03)

COLORS = json.dumps({"colors": [
    {"colorName": "Vermelho escuro", "hex": "#8B0000", "location": "Capa"},
    {"colorName": "Azul", "hex": "#0000FF", "location": "Olhos"},
]})
PARTS = json.dumps({"parts": [{"partName": "Capa"}, {"partName": "Olhos"}]})
STEPS = json.dumps({"steps": [
    {"stepNumber": 1, "partName": "Capa", "partDescription": "Manto longo",
     "paintsToUse": [{"name": "Dark Red", "purpose": "base"}],
     "imageRegions": [{"x": 0.9, "y": 0.9, "width": 0.1, "height": 0.1}]},
    {"stepNumber": 2, "partName": "Olhos", "partDescription": "Olhos azuis", "technique": "drybrushing",
     "paintsToUse": [{"name": "Blue", "purpose": "base"}]},
    {"stepNumber": 3, "partName": "Verniz", "technique": "varnishing"},
]})
JUNK_STEPS = json.dumps({"steps": [
    {"partName": "Capa", "paintsToUse": [{"name": "#FF0000"}, {"name": "#00FF00"}]},
    {"partName": "Olhos", "paintsToUse": [{"name": ""}]},
]})


# ── Dummies ───────────────────────────────────────────────────────────────────
class FakeClient(LLMClient):
    def __init__(self, replies, profile=GEMINI_PROFILE):
        self.replies = list(replies)
        self.profile = profile
        self.calls = []

    def _next(self):
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def complete_text(self, prompt, options):
        self.calls.append({"kind": "text", "prompt": prompt, "options": options})
        return self._next()

    async def complete_vision(self, prompt, image_bytes, mime_type, options):
        self.calls.append({
            "kind": "vision", "prompt": prompt, "options": options,
            "image": image_bytes, "mime": mime_type,
        })
        return self._next()


async def _no_sleep(delay):
    return None


def _orchestrator(client, **kwargs):
    return PlanOrchestrator(client, sleep=_no_sleep, verbose=False, **kwargs)


def _regions():
    return [
        RegionItem(part_name="Capa", regions=[CAPA_RECT]),
        RegionItem(part_name="Olhos", regions=[OLHOS_RECT]),
    ]


# ── Protocol A: user regions ──────────────────────────────────────────────────
def test_user_regions_override_model_regions(inventory):
    client = FakeClient([COLORS, STEPS])
    plan = asyncio.run(_orchestrator(client).generate_with_regions(PROJECT, IMAGE, inventory, _regions()))

    assert [s.part_name for s in plan.steps] == ["Capa", "Olhos", nz.VARNISH_PART_NAME]
    assert plan.steps[0].image_regions == [CAPA_RECT]
    assert plan.steps[1].image_regions == [OLHOS_RECT]
    assert plan.steps[1].technique == "fine-detail"
    assert plan.steps[-1].technique == VARNISHING
    assert plan.reference_image == IMAGE
    assert len(client.calls) == 2
    assert all(c["kind"] == "vision" for c in client.calls)
    assert "Capa" in client.calls[0]["prompt"]


def test_blank_regions_fall_back_to_full_discovery(inventory):
    client = FakeClient([COLORS, PARTS, STEPS])
    plan = asyncio.run(
        _orchestrator(client).generate_with_regions(PROJECT, IMAGE, inventory, [RegionItem(part_name="  ")])
    )
    assert plan is not None
    assert len(client.calls) == 3


def test_caller_inventory_is_not_mutated(inventory):
    before = inventory.model_dump()
    asyncio.run(_orchestrator(FakeClient([COLORS, STEPS])).generate_with_regions(PROJECT, IMAGE, inventory, _regions()))
    assert inventory.model_dump() == before


# ── Protocol B: full discovery ────────────────────────────────────────────────
def test_full_discovery_runs_three_phases(inventory):
    client = FakeClient([COLORS, PARTS, STEPS])
    plan = asyncio.run(_orchestrator(client).generate_plan(PROJECT, IMAGE, inventory))

    assert len(client.calls) == 3
    assert [s.step_number for s in plan.steps] == [1, 2, 3]
    assert plan.steps[-1].technique == VARNISHING
    assert plan.project_name == "Paladino"
    assert plan.source == "D&D"
    assert len(plan.identified_colors) == 2
    assert plan.identified_colors[0].matched_paint.name == "Dark Red"
    assert plan.steps[0].image_regions[0].x == pytest.approx(0.9)


def test_colors_failure_yields_none(inventory):
    client = FakeClient(['{"colors": []}'])
    assert asyncio.run(_orchestrator(client).generate_plan(PROJECT, IMAGE, inventory)) is None
    assert len(client.calls) == 1


def test_unreadable_colors_reply_yields_none(inventory):
    client = FakeClient(["desculpe, não consigo"])
    assert asyncio.run(_orchestrator(client).generate_plan(PROJECT, IMAGE, inventory)) is None
    assert len(client.calls) == 1


def test_unreadable_parts_reply_is_backfilled_from_colors(inventory):
    client = FakeClient([COLORS, "desculpe, não consigo", STEPS])
    plan = asyncio.run(_orchestrator(client).generate_plan(PROJECT, IMAGE, inventory))
    assert plan is not None
    assert [s.part_name for s in plan.steps][:2] == ["Capa", "Olhos"]
    assert plan.steps[-1].technique == VARNISHING
    assert len(client.calls) == 3


def test_unrecoverable_reply_raises_malformed_response():
    client = FakeClient([""])
    with pytest.raises(MalformedResponseError) as exc:
        asyncio.run(_orchestrator(client)._request_json("identifyParts", "p", CompletionOptions()))
    assert exc.value.context == "identifyParts"
    assert exc.value.raw == ""


def test_empty_parts_array_is_backfilled_from_colors(inventory):
    client = FakeClient([COLORS, '{"parts": []}', STEPS])
    plan = asyncio.run(_orchestrator(client).generate_plan(PROJECT, IMAGE, inventory))
    assert [s.part_name for s in plan.steps][:2] == ["Capa", "Olhos"]


def test_hosted_steps_failure_yields_none(inventory):
    client = FakeClient([COLORS, PARTS, '{"steps": []}'])
    assert asyncio.run(_orchestrator(client).generate_plan(PROJECT, IMAGE, inventory)) is None


def test_hosted_low_quality_reply_is_kept_with_warning(inventory):
    client = FakeClient([COLORS, JUNK_STEPS])
    plan = asyncio.run(_orchestrator(client).generate_with_regions(PROJECT, IMAGE, inventory, _regions()))
    assert nz.LOW_QUALITY_WARNING in plan.warnings
    assert [s.part_name for s in plan.steps][:2] == ["Capa", "Olhos"]


def test_rate_limit_outlasting_retries_propagates(inventory):
    client = FakeClient([Exception("429 RESOURCE_EXHAUSTED"), Exception("429 RESOURCE_EXHAUSTED")])
    with pytest.raises(QuotaExceededError):
        asyncio.run(_orchestrator(client, max_retries=1).generate_plan(PROJECT, IMAGE, inventory))
    assert len(client.calls) == 2


# ── Local backend ─────────────────────────────────────────────────────────────
def test_local_steps_failure_uses_fallback_tutorial(inventory, jpeg_b64):
    image = ReferenceImage(data=jpeg_b64, type="image/jpeg")
    client = FakeClient([COLORS, '{"steps": []}'], profile=LOCAL_PROFILE)
    plan = asyncio.run(_orchestrator(client).generate_with_regions(PROJECT, image, inventory, _regions()))

    assert len(plan.steps) == 8
    assert nz.FALLBACK_WARNING in plan.warnings
    assert plan.reference_image.data == jpeg_b64
    assert len(plan.identified_colors) == 2


def test_local_junk_reply_uses_fallback_tutorial(inventory, jpeg_b64):
    image = ReferenceImage(data=jpeg_b64, type="image/jpeg")
    client = FakeClient([COLORS, JUNK_STEPS], profile=LOCAL_PROFILE)
    plan = asyncio.run(_orchestrator(client).generate_with_regions(PROJECT, image, inventory, _regions()))
    assert nz.FALLBACK_WARNING in plan.warnings


def test_local_backend_sends_downsampled_jpeg(inventory, jpeg_b64):
    image = ReferenceImage(data=jpeg_b64, type="image/jpeg")
    client = FakeClient([COLORS, STEPS], profile=LOCAL_PROFILE)
    asyncio.run(_orchestrator(client).generate_with_regions(PROJECT, image, inventory, _regions()))

    sent = client.calls[0]
    assert sent["mime"] == "image/jpeg"
    assert max(Image.open(io.BytesIO(sent["image"])).size) <= LOCAL_PROFILE.max_image_dim
    assert sent["options"].max_output_tokens == LOCAL_PROFILE.colors_tokens


# ── Part discovery ────────────────────────────────────────────────────────────
def test_identify_parts_returns_unconfirmed_suggestions(jpeg_b64):
    image = ReferenceImage(data=jpeg_b64, type="image/jpeg")
    reply = json.dumps({"parts": [
        {"partName": "Capa", "description": "Manto", "regions": [{"x": 0.1, "y": 0.2, "width": 0.3, "height": 0.4}]},
        {"partName": "Espada"},
    ]})
    client = FakeClient([reply])
    parts = asyncio.run(_orchestrator(client).identify_parts_in_image(image))

    assert [p.part_name for p in parts] == ["Capa", "Espada"]
    assert parts[0].to_region_item().confirmed is False
    assert max(Image.open(io.BytesIO(client.calls[0]["image"])).size) <= GEMINI_PROFILE.parts_image_dim


def test_identify_parts_bad_reply_is_empty(jpeg_b64):
    image = ReferenceImage(data=jpeg_b64, type="image/jpeg")
    client = FakeClient(['{"parts": []}'])
    assert asyncio.run(_orchestrator(client).identify_parts_in_image(image)) == []


# ── Hex lookup ────────────────────────────────────────────────────────────────
def test_get_hex_for_paint_extracts_code():
    client = FakeClient(["A cor é #d4af37."])
    assert asyncio.run(_orchestrator(client).get_hex_for_paint("Citadel", "Retributor Armour")) == "#D4AF37"
    options = client.calls[0]["options"]
    assert options.json_mode is False
    assert options.temperature == 0
    assert client.calls[0]["kind"] == "text"


def test_get_hex_for_paint_without_code_is_none():
    client = FakeClient(["Não sei."], profile=LOCAL_PROFILE)
    assert asyncio.run(_orchestrator(client).get_hex_for_paint("X", "Y")) is None
    assert client.calls[0]["options"].max_output_tokens == 12


# ── Bulk inventory ────────────────────────────────────────────────────────────
def test_bulk_inventory_via_hosted_model():
    reply = json.dumps({
        "paints": [{"name": "Azul Royal", "brand": "Outra", "type": "acrylic"}],
        "varnishes": [{"brand": "Vallejo", "finish": "Fosco"}],
    })
    client = FakeClient([reply])
    progress = []
    parsed = asyncio.run(_orchestrator(client).parse_bulk_inventory(
        "Azul Royal\nVerniz Fosco\n", "Citadel", lambda *args: progress.append(args),
    ))

    assert parsed.paints[0].brand == "Citadel"
    assert parsed.paints[0].hex == "#0000FF"
    assert parsed.varnishes[0].finish == "Fosco"
    assert progress == [(0, 2, "Enviando para Gemini API..."), (2, 2, "Processamento concluído!")]


def test_bulk_inventory_unreadable_reply_is_none():
    client = FakeClient([""])
    progress = []
    parsed = asyncio.run(_orchestrator(client).parse_bulk_inventory(
        "Azul Royal\n", on_progress=lambda *args: progress.append(args),
    ))
    assert parsed is None
    assert progress[-1] == (1, 1, "Erro no processamento")


def test_bulk_inventory_on_local_backend_never_calls_the_model():
    client = FakeClient([], profile=LOCAL_PROFILE)
    parsed = asyncio.run(_orchestrator(client).parse_bulk_inventory("Tinta Azul\nVerniz Fosco", "Citadel"))
    assert client.calls == []
    assert parsed.paints[0].brand == "Citadel"
    assert len(parsed.varnishes) == 1
