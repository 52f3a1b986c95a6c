# tests/test_main.py
import json

import pytest
from PIL import Image

from paintplan import llm_client
from paintplan import main as cli
from paintplan.llm_client import LOCAL_PROFILE, LLMClient


# ── Dummies ───────────────────────────────────────────────────────────────────
class CannedClient(LLMClient):
    profile = LOCAL_PROFILE

    def __init__(self, replies):
        self.replies = list(replies)

    async def complete_text(self, prompt, options):
        return self.replies.pop(0)

    async def complete_vision(self, prompt, image_bytes, mime_type, options):
        return self.replies.pop(0)


def _run(argv):
    with pytest.raises(SystemExit) as exc:
        cli.main(argv)
    return exc.value.code


def _paths(tmp_path):
    return ["--inventory", str(tmp_path / "inv.json"), "--settings", str(tmp_path / "settings.json")]


# ── Tests ─────────────────────────────────────────────────────────────────────
def test_settings_command_saves_provider(tmp_path):
    code = _run(_paths(tmp_path) + ["settings", "--provider", "local", "--endpoint", "http://h:1/v1"])
    assert code == 0
    saved = json.loads((tmp_path / "settings.json").read_text(encoding="utf-8"))
    assert saved == {"provider": "local", "local_endpoint": "http://h:1/v1"}


def test_inventory_add_and_duplicate(tmp_path):
    argv = _paths(tmp_path) + ["inventory", "add", "--brand", "Citadel", "--name", "Gold", "--hex", "#D4AF37"]
    assert _run(argv) == 0
    assert _run(argv) == 1
    assert _run(_paths(tmp_path) + ["inventory", "list"]) == 0


def test_load_regions_accepts_list_and_wrapped(tmp_path):
    path = tmp_path / "regions.json"
    path.write_text(json.dumps([{"partName": "Capa", "regions": [{"x": 0, "y": 0, "width": 1, "height": 1}]}]))
    assert cli.load_regions(path)[0].confirmed is True
    path.write_text(json.dumps({"regions": [{"partName": "Olhos"}]}))
    assert cli.load_regions(path)[0].part_name == "Olhos"


def test_plan_command_writes_plan_json(tmp_path, monkeypatch):
    image_path = tmp_path / "ref.jpg"
    Image.new("RGB", (64, 64), (120, 20, 20)).save(image_path, format="JPEG")
    (tmp_path / "settings.json").write_text(json.dumps({"provider": "local", "local_endpoint": "http://h:1/v1"}))
    colors = json.dumps({"colors": [{"colorName": "Vermelho", "hex": "#781414", "location": "Capa"}]})
    steps = json.dumps({"steps": [{"partName": "Capa", "partDescription": "Manto"}]})
    monkeypatch.setattr(cli, "build_llm_client", lambda settings: CannedClient([colors, steps]))

    out = tmp_path / "out"
    regions = tmp_path / "regions.json"
    regions.write_text(json.dumps([{"partName": "Capa", "regions": [{"x": 0.1, "y": 0.1, "width": 0.5, "height": 0.5}]}]))
    code = _run(_paths(tmp_path) + [
        "plan", "--image", str(image_path), "--name", "Paladino",
        "--regions", str(regions), "--output", str(out),
    ])

    assert code == 0
    plan = json.loads((out / "plan.json").read_text(encoding="utf-8"))
    assert plan["projectName"] == "Paladino"
    assert plan["steps"][0]["imageRegions"][0]["width"] == 0.5
    assert plan["steps"][-1]["technique"] == "varnishing"


def test_gemini_without_key_exits(tmp_path, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    image_path = tmp_path / "ref.png"
    Image.new("RGB", (8, 8)).save(image_path, format="PNG")
    assert _run(_paths(tmp_path) + ["parts", "--image", str(image_path)]) == 1


def test_gemini_without_models_exits(tmp_path, monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.setattr(llm_client, "GEMINI_MODELS", [])
    image_path = tmp_path / "ref.png"
    Image.new("RGB", (8, 8)).save(image_path, format="PNG")
    assert _run(_paths(tmp_path) + ["parts", "--image", str(image_path)]) == 1


def test_parts_command_writes_unconfirmed_regions(tmp_path, monkeypatch):
    image_path = tmp_path / "ref.png"
    Image.new("RGB", (64, 64), (20, 20, 120)).save(image_path, format="PNG")
    (tmp_path / "settings.json").write_text(json.dumps({"provider": "local", "local_endpoint": "http://h:1/v1"}))
    reply = json.dumps({"parts": [
        {"partName": "Capa", "description": "Manto", "regions": [{"x": 0.1, "y": 0.2, "width": 0.3, "height": 0.4}]},
    ]})
    monkeypatch.setattr(cli, "build_llm_client", lambda settings: CannedClient([reply]))

    out = tmp_path / "regions.json"
    assert _run(_paths(tmp_path) + ["parts", "--image", str(image_path), "--output", str(out)]) == 0

    entry = json.loads(out.read_text(encoding="utf-8"))[0]
    assert entry["confirmed"] is False
    assert entry["regions"] == []
    assert entry["suggestedRegions"][0]["width"] == 0.3
    assert cli.load_regions(out)[0].confirmed is False
