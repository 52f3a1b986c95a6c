"""
inventory.py — JSON-file inventory store.

The plan pipeline only ever sees ``snapshot()``, a deep copy taken before
generation starts. Writes (add / update / remove / import) happen here and
are saved immediately.

Duplicate keys (case-insensitive):
  paints     brand + name
  thinners   brand + composition
  varnishes  brand + finish
  washes     brand + composition
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from pydantic import BaseModel, ValidationError

from .color_matcher import DEFAULT_BRAND, coerce_hex, hex_from_name
from .config import INVENTORY_PATH
from .models import Inventory, Paint, ParsedInventory, Thinner, Varnish, Wash

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=BaseModel)


def _key(*parts: str) -> Tuple[str, ...]:
    return tuple((p or "").strip().lower() for p in parts)


def paint_key(p: Paint) -> Tuple[str, ...]:
    return _key(p.brand, p.name)


def thinner_key(t: Thinner) -> Tuple[str, ...]:
    return _key(t.brand, t.composition)


def varnish_key(v: Varnish) -> Tuple[str, ...]:
    return _key(v.brand, v.finish)


def wash_key(w: Wash) -> Tuple[str, ...]:
    return _key(w.brand, w.composition)


class InventoryStore:
    def __init__(self, path: Path = INVENTORY_PATH):
        self.path = Path(path)
        self._inventory = self._load()

    # ── Persistence ───────────────────────────────────────────────────────────

    def _load(self) -> Inventory:
        if not self.path.exists():
            return Inventory()
        try:
            return Inventory.model_validate(json.loads(self.path.read_text(encoding="utf-8")))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Could not read inventory from {self.path}: {e}; starting empty")
            return Inventory()

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(self._inventory.to_json(), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )

    def snapshot(self) -> Inventory:
        return self._inventory.model_copy(deep=True)

    # ── Writes ────────────────────────────────────────────────────────────────

    def _add(self, items: List[E], item: E, key: Callable[[E], Tuple[str, ...]], save: bool) -> Optional[E]:
        if any(key(existing) == key(item) for existing in items):
            logger.info(f"Skipping duplicate {type(item).__name__}: {key(item)}")
            return None
        stored = item.model_copy(update={"id": getattr(item, "id", "") or uuid.uuid4().hex})
        items.append(stored)
        if save:
            self.save()
        return stored

    def add_paint(self, paint: Paint, save: bool = True) -> Optional[Paint]:
        return self._add(self._inventory.paints, paint, paint_key, save)

    def add_thinner(self, thinner: Thinner, save: bool = True) -> Optional[Thinner]:
        return self._add(self._inventory.thinners, thinner, thinner_key, save)

    def add_varnish(self, varnish: Varnish, save: bool = True) -> Optional[Varnish]:
        return self._add(self._inventory.varnishes, varnish, varnish_key, save)

    def add_wash(self, wash: Wash, save: bool = True) -> Optional[Wash]:
        return self._add(self._inventory.washes, wash, wash_key, save)

    def update_paint(self, paint_id: str, **changes: Any) -> Optional[Paint]:
        """Apply changes to one paint. Refused (None) when it would collide with another paint."""
        paints = self._inventory.paints
        for i, paint in enumerate(paints):
            if paint.id != paint_id:
                continue
            updated = Paint.model_validate({**paint.model_dump(), **changes, "id": paint.id})
            if any(paint_key(p) == paint_key(updated) for p in paints if p.id != paint_id):
                return None
            paints[i] = updated
            self.save()
            return updated
        return None

    def _remove(self, items: List[Any], item_id: str) -> bool:
        for i, item in enumerate(items):
            if item.id == item_id:
                del items[i]
                self.save()
                return True
        return False

    def remove_paint(self, paint_id: str) -> bool:
        return self._remove(self._inventory.paints, paint_id)

    def remove_thinner(self, thinner_id: str) -> bool:
        return self._remove(self._inventory.thinners, thinner_id)

    def remove_varnish(self, varnish_id: str) -> bool:
        return self._remove(self._inventory.varnishes, varnish_id)

    def remove_wash(self, wash_id: str) -> bool:
        return self._remove(self._inventory.washes, wash_id)

    def import_parsed(self, parsed: ParsedInventory) -> int:
        """Add everything from a bulk import, skipping duplicates. Returns the number added."""
        added = 0
        for p in parsed.paints:
            added += self.add_paint(p, save=False) is not None
        for t in parsed.thinners:
            added += self.add_thinner(t, save=False) is not None
        for v in parsed.varnishes:
            added += self.add_varnish(v, save=False) is not None
        for w in parsed.washes:
            added += self.add_wash(w, save=False) is not None
        if added:
            self.save()
        logger.info(f"Imported {added}/{parsed.item_count()} item(s)")
        return added


# ── Bulk-import payloads from the hosted model ────────────────────────────────

_PAINT_TYPES = {"ink": "Ink", "acrylic": "Acrylic", "varnish": "Varnish", "other": "Other"}


def _entries(payload: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    value = payload.get(key)
    return [v for v in value if isinstance(v, dict)] if isinstance(value, list) else []


def _build(model: Callable[..., E], fields: Dict[str, Any]) -> Optional[E]:
    try:
        return model(**fields)
    except ValidationError as e:
        logger.warning(f"Skipping invalid {getattr(model, '__name__', model)} entry: {e.errors()[0]['msg']}")
        return None


def parsed_inventory_from_payload(payload: Any, brand: str = "") -> Optional[ParsedInventory]:
    """ParsedInventory from a decoded bulk-import reply; None when nothing usable came back."""
    if not isinstance(payload, dict):
        return None
    result = ParsedInventory()

    for e in _entries(payload, "paints"):
        name = str(e.get("name") or "").strip()
        if not name:
            continue
        paint = _build(Paint, {
            "brand": brand or str(e.get("brand") or "").strip() or DEFAULT_BRAND,
            "name": name,
            "type": _PAINT_TYPES.get(str(e.get("type") or "").strip().lower(), "Acrylic"),
            "hex": coerce_hex(e.get("hex"), default=None) or hex_from_name(name),
        })
        if paint:
            result.paints.append(paint)

    for e in _entries(payload, "thinners"):
        composition = "Caseiro" if "caseiro" in str(e.get("composition", "")).lower() else "Original"
        thinner = _build(Thinner, {
            "brand": str(e.get("brand") or "").strip() or DEFAULT_BRAND,
            "name": str(e.get("name") or "").strip(),
            "composition": composition,
        })
        if thinner:
            result.thinners.append(thinner)

    for e in _entries(payload, "varnishes"):
        varnish = _build(Varnish, {
            "brand": str(e.get("brand") or "").strip() or DEFAULT_BRAND,
            "name": str(e.get("name") or "").strip(),
            "finish": e.get("finish") or "Brilhante",
        })
        if varnish:
            result.varnishes.append(varnish)

    for e in _entries(payload, "washes"):
        composition = str(e.get("composition") or e.get("name") or "").strip()
        wash = _build(Wash, {
            "brand": str(e.get("brand") or "").strip() or DEFAULT_BRAND,
            "name": str(e.get("name") or composition).strip(),
            "composition": composition,
            "hex": coerce_hex(e.get("hex"), default=None) or hex_from_name(composition),
        })
        if wash:
            result.washes.append(wash)

    return None if result.is_empty() else result
