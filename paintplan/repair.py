"""
repair.py — Lenient JSON recovery for free-text / truncated model replies.

Usage:
    from paintplan.repair import parse_lenient
    payload = parse_lenient(raw_text)   # dict | list | None, never raises

Order of operations:
  1. Strip a markdown code fence (```json ... ```).
  2. Parse directly (first JSON value found, trailing chatter ignored).
  3. Close a string left open by truncation.
  4. A key left dangling after ':' gets ``null``.
  5. Drop the trailing incomplete member: an unfinished object/array that
     is an element of an array is removed whole, a key with no value is
     removed, and a trailing comma is removed.
  6. Close every container still open, innermost first. Brackets are
     counted outside string literals only.
  7. Parse again.
  8. Last resort: salvage just a ``"colors"`` array and wrap it.
  9. Hand the text to json_repair as a final attempt.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional

import json_repair

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?\s*```\s*$")
_NUMBER = re.compile(r"-?\d+(\.\d+)?([eE][+-]?\d+)?")
_SCALAR_TAIL = re.compile(r"[A-Za-z0-9.+\-]+$")
_KEY_TAIL = re.compile(r'"(?:[^"\\]|\\.)*"\s*$')
_PARTIAL_UNICODE_ESCAPE = re.compile(r"\\u[0-9a-fA-F]{0,3}$")
_COLORS_ARRAY = re.compile(r'"colors"\s*:\s*\[')


# ── Scanner ───────────────────────────────────────────────────────────────────

@dataclass
class _Frame:
    kind: str    # "{" or "["
    start: int   # index of the opening bracket
    expect: str  # object: key | colon | value | after; array: value | after


@dataclass
class _ScanState:
    frames: List[_Frame] = field(default_factory=list)
    in_string: bool = False
    escape: bool = False
    string_is_key: bool = False


def _scan(text: str) -> _ScanState:
    """Walk the text once, tracking open containers outside string literals."""
    state = _ScanState()
    frames = state.frames
    for i, ch in enumerate(text):
        if state.in_string:
            if state.escape:
                state.escape = False
            elif ch == "\\":
                state.escape = True
            elif ch == '"':
                state.in_string = False
                if frames:
                    frames[-1].expect = "colon" if state.string_is_key else "after"
            continue

        if ch == '"':
            state.in_string = True
            state.string_is_key = bool(frames) and frames[-1].kind == "{" and frames[-1].expect == "key"
        elif ch in "{[":
            frames.append(_Frame(ch, i, "key" if ch == "{" else "value"))
        elif ch in "}]":
            if frames:
                frames.pop()
            if frames:
                frames[-1].expect = "after"
        elif ch == ":":
            if frames and frames[-1].kind == "{":
                frames[-1].expect = "value"
        elif ch == ",":
            if frames:
                frames[-1].expect = "key" if frames[-1].kind == "{" else "value"
        elif not ch.isspace() and frames:
            frames[-1].expect = "after"
    return state


# ── Repair steps ──────────────────────────────────────────────────────────────

def _strip_fences(text: str) -> str:
    body = text.strip()
    if body.startswith("```"):
        body = _FENCE_OPEN.sub("", body, count=1)
        body = _FENCE_CLOSE.sub("", body)
    elif "```" in body:
        m = re.search(r"```[a-zA-Z0-9_-]*\s*\n?(.*?)(?:```|$)", body, re.DOTALL)
        if m and m.group(1).strip()[:1] in ("{", "["):
            body = m.group(1)
    return body.strip()


def _decode_first(text: str) -> Any:
    """Decode the first JSON value starting at the first '{' or '['."""
    starts = [i for i in (text.find("{"), text.find("[")) if i >= 0]
    if not starts:
        raise ValueError("no JSON container in text")
    value, _ = json.JSONDecoder().raw_decode(text[min(starts):])
    return value


def _close_string(text: str) -> str:
    state = _scan(text)
    if not state.in_string:
        return text
    if state.escape:
        text = text[:-1]
    text = _PARTIAL_UNICODE_ESCAPE.sub("", text)
    return text + '"'


def _complete_scalar(text: str) -> str:
    """Finish a literal or number cut mid-token ('tru' → 'true', '1.' → '1')."""
    m = _SCALAR_TAIL.search(text)
    if not m:
        return text
    token = m.group(0)
    for literal in ("true", "false", "null"):
        if literal.startswith(token):
            return text[: m.start()] + literal
    if _NUMBER.fullmatch(token):
        return text
    trimmed = re.sub(r"[.eE+\-]+$", "", token)
    if _NUMBER.fullmatch(trimmed):
        return text[: m.start()] + trimmed
    return text[: m.start()] + "null"


def _fill_dangling_colon(text: str) -> str:
    frames = _scan(text).frames
    if frames and frames[-1].kind == "{" and frames[-1].expect == "value" and text.endswith(":"):
        return text + "null"
    return text


def _drop_incomplete_members(text: str) -> str:
    positions = _scan(text).frames
    for outer, inner in zip(positions, positions[1:]):
        if outer.kind == "[":
            text = text[: inner.start]
            break

    while True:
        before = text
        text = text.rstrip()
        if text.endswith(","):
            text = text[:-1].rstrip()
        frames = _scan(text).frames
        if frames and frames[-1].kind == "{" and frames[-1].expect == "colon":
            text = _KEY_TAIL.sub("", text)
        if text == before:
            return text


def _close_containers(text: str) -> str:
    closers = {"{": "}", "[": "]"}
    frames = _scan(text).frames
    return text + "".join(closers[f.kind] for f in reversed(frames))


def repair_truncated(text: str) -> str:
    """Apply steps 3–6 to a text that starts with '{' or '['."""
    text = _close_string(text).rstrip()
    text = _complete_scalar(text)
    text = _fill_dangling_colon(text)
    text = _drop_incomplete_members(text)
    return _close_containers(text)


def _salvage_colors(text: str) -> Optional[dict]:
    m = _COLORS_ARRAY.search(text)
    if not m:
        return None
    fragment = text[m.end() - 1:]
    try:
        colors, _ = json.JSONDecoder().raw_decode(repair_truncated(fragment))
    except ValueError:
        return None
    if isinstance(colors, list):
        logger.warning(f"Recovered only the colors array ({len(colors)} item(s))")
        return {"colors": colors}
    return None


# ── Public API ────────────────────────────────────────────────────────────────

def parse_lenient(text: Optional[str]) -> Any:
    """
    Best-effort JSON decode of a model reply. Returns the decoded value or
    None when nothing structurally plausible can be recovered.
    """
    if not isinstance(text, str) or not text.strip():
        return None

    try:
        return json.loads(text)
    except ValueError:
        pass

    body = _strip_fences(text)
    try:
        return json.loads(body)
    except ValueError:
        pass
    try:
        return _decode_first(body)
    except ValueError:
        pass

    starts = [i for i in (body.find("{"), body.find("[")) if i >= 0]
    if starts:
        candidate = body[min(starts):]
        repaired = repair_truncated(candidate)
        try:
            value = json.loads(repaired)
            logger.warning(f"Repaired truncated JSON ({len(candidate)} → {len(repaired)} chars)")
            return value
        except ValueError:
            logger.debug(f"Structural repair failed: {repaired[-120:]!r}")

    if '"colors"' in body:
        salvaged = _salvage_colors(body)
        if salvaged is not None:
            return salvaged

    try:
        value = json_repair.loads(body)
    except Exception as e:
        logger.debug(f"json_repair failed: {e}")
        return None
    if isinstance(value, (dict, list)) and value:
        logger.warning("Recovered JSON with json_repair fallback")
        return value
    return None
