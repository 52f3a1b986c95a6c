"""
orchestrator.py — Multi-phase plan generation.

Two entry protocols:

  generate_with_regions(project, image, inventory, regions)
      Protocol A: the painter already marked the parts. Phase 1 names each
      part's colour, phase 2 writes one step per part plus varnish, and the
      painter's rectangles overwrite whatever regions the model proposed.

  generate_plan(project, image, inventory)
      Protocol B: full discovery. Colours → parts (with backfill from
      uncovered colours) → steps.

Every phase is one model call: with_retry → parse_lenient → normalize_*.
An unrecoverable reply raises MalformedResponseError inside the phase.
A phase that yields nothing usable returns None and the whole generation
resolves to None. Two exceptions: the parts phase backfills from the
colours whatever the reply was, and on backends whose profile substitutes the
fallback tutorial (local models), where a failed or junk steps phase
still produces a usable plan.

Terminal errors (quota, unreachable backend, anything else) propagate as
PaintPlanError subclasses.

The orchestrator receives its LLMClient at construction and never reads
settings; the caller picks the backend.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Sequence, Tuple

from rich.console import Console

from .color_matcher import extract_hex, parse_inventory_text, ProgressCallback
from .errors import MalformedResponseError, NormalizationError
from .imaging import prepare_for_model
from .inventory import parsed_inventory_from_payload
from .llm_client import CompletionOptions, LLMClient
from .models import (
    IdentifiedColor,
    Inventory,
    ParsedInventory,
    PartSuggestion,
    ProjectInfo,
    ProjectPlan,
    ReferenceImage,
    RegionItem,
)
from .normalizer import (
    StepsResult,
    apply_user_regions,
    build_fallback_plan,
    detect_bad_model_response,
    normalize_colors,
    normalize_parts,
    normalize_plan,
    normalize_steps,
)
from .prompts import (
    bulk_inventory_prompt,
    colors_prompt,
    hex_prompt,
    identify_parts_prompt,
    parts_prompt,
    steps_prompt,
)
from .repair import parse_lenient
from .retry import INITIAL_DELAY, MAX_RETRIES, Sleep, with_retry
from .schemas import BulkInventoryResponse, ColorsResponse, PartsResponse, StepsResponse

logger = logging.getLogger(__name__)

console = Console()

ModelImage = Tuple[bytes, str]


class PlanOrchestrator:
    def __init__(
        self,
        client: LLMClient,
        max_retries: int = MAX_RETRIES,
        initial_delay: float = INITIAL_DELAY,
        sleep: Sleep = asyncio.sleep,
        verbose: bool = True,
    ):
        self.client = client
        self.profile = client.profile
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self._sleep = sleep
        self.verbose = verbose

    # ── Plumbing ──────────────────────────────────────────────────────────────

    def _say(self, message: str) -> None:
        if self.verbose:
            console.print(message)

    async def _call(
        self,
        context: str,
        prompt: str,
        options: CompletionOptions,
        image: Optional[ModelImage] = None,
    ) -> str:
        async def attempt() -> str:
            if image is None:
                return await self.client.complete_text(prompt, options)
            data, mime = image
            return await self.client.complete_vision(prompt, data, mime, options)

        return await with_retry(
            attempt, context,
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            sleep=self._sleep,
        )

    async def _request_json(
        self,
        context: str,
        prompt: str,
        options: CompletionOptions,
        image: Optional[ModelImage] = None,
    ) -> Any:
        """Decoded reply. Raises MalformedResponseError when nothing could be recovered."""
        raw = await self._call(context, prompt, options, image)
        payload = parse_lenient(raw)
        if payload is None:
            logger.warning(f"'{context}': no JSON could be recovered from {len(raw)} char(s) of reply")
            raise MalformedResponseError(context, raw)
        return payload

    def _model_image(self, image: ReferenceImage, max_dim: Optional[int]) -> ModelImage:
        return prepare_for_model(image, max_dim, self.profile.jpeg_quality)

    # ── Phases ────────────────────────────────────────────────────────────────

    async def _colors_phase(
        self,
        project: ProjectInfo,
        inventory: Inventory,
        image: ModelImage,
        parts: Optional[Sequence[RegionItem]] = None,
    ) -> Optional[List[IdentifiedColor]]:
        self._say("\n[bold cyan]→ Fase 1: identificando cores...[/bold cyan]")
        try:
            payload = await self._request_json(
                "identifyColors",
                colors_prompt(project, inventory, parts, compact=self.profile.compact_prompts),
                CompletionOptions(
                    temperature=0.3,
                    max_output_tokens=self.profile.colors_tokens,
                    response_schema=ColorsResponse,
                ),
                image,
            )
            colors = normalize_colors(payload, inventory)
        except MalformedResponseError:
            return None
        except NormalizationError as e:
            logger.warning(f"Colours phase failed: {e.reason}")
            return None
        self._say(f"  [dim]{len(colors)} cor(es) identificada(s)[/dim]")
        return colors

    async def _parts_phase(
        self,
        project: ProjectInfo,
        colors: List[IdentifiedColor],
        image: ModelImage,
    ) -> Optional[List[PartSuggestion]]:
        self._say("\n[bold cyan]→ Fase 2: separando a miniatura em partes...[/bold cyan]")
        try:
            payload = await self._request_json(
                "identifyParts",
                parts_prompt(project, colors, compact=self.profile.compact_prompts),
                CompletionOptions(
                    temperature=0.3,
                    max_output_tokens=self.profile.parts_tokens,
                    response_schema=PartsResponse,
                ),
                image,
            )
        except MalformedResponseError:
            # backfilled from colours below
            payload = None
        try:
            parts = normalize_parts(payload, colors)
        except NormalizationError as e:
            logger.warning(f"Parts phase failed: {e.reason}")
            return None
        self._say(f"  [dim]{len(parts)} parte(s)[/dim]")
        return parts

    async def _steps_phase(
        self,
        project: ProjectInfo,
        inventory: Inventory,
        colors: List[IdentifiedColor],
        parts: Sequence[Any],
        image: ModelImage,
    ) -> Tuple[Optional[StepsResult], bool]:
        """(steps, low_quality). steps is None when the phase failed."""
        self._say("\n[bold cyan]→ Gerando passos de pintura...[/bold cyan]")
        try:
            payload = await self._request_json(
                "generateSteps",
                steps_prompt(
                    project, inventory, colors,
                    [p.part_name for p in parts],
                    compact=self.profile.compact_prompts,
                ),
                CompletionOptions(
                    temperature=0.5,
                    max_output_tokens=self.profile.steps_tokens,
                    response_schema=StepsResponse,
                ),
                image,
            )
        except MalformedResponseError:
            return None, False
        low_quality = detect_bad_model_response(payload, inventory)
        try:
            result = normalize_steps(payload, parts, inventory, colors)
        except NormalizationError as e:
            logger.warning(f"Steps phase failed: {e.reason}")
            return None, low_quality
        self._say(f"  [dim]{len(result.steps)} passo(s)[/dim]")
        return result, low_quality

    def _finish(
        self,
        project: ProjectInfo,
        image: ReferenceImage,
        inventory: Inventory,
        colors: List[IdentifiedColor],
        steps: Optional[StepsResult],
        low_quality: bool,
        regions: Sequence[RegionItem] = (),
    ) -> Optional[ProjectPlan]:
        if steps is None or (low_quality and self.profile.substitute_fallback_plan):
            if not self.profile.substitute_fallback_plan:
                logger.warning("Steps phase produced nothing usable; generation failed")
                return None
            logger.warning("Using the fallback tutorial in place of the model's steps")
            self._say("  [yellow]⚠ Resposta da IA inutilizável; usando tutorial genérico[/yellow]")
            return build_fallback_plan(project.project_name, project.source, inventory, image, colors)

        if regions:
            steps.steps = apply_user_regions(steps.steps, regions)
        if low_quality:
            self._say("  [yellow]⚠ Resposta da IA com baixa qualidade; aviso adicionado ao plano[/yellow]")
        plan = normalize_plan(
            project.project_name, project.source, colors, steps, inventory, image,
            low_quality=low_quality,
        )
        self._say(f"[bold green]✓ Plano pronto: {len(plan.steps)} passos[/bold green]")
        return plan

    # ── Public operations ─────────────────────────────────────────────────────

    async def generate_with_regions(
        self,
        project: ProjectInfo,
        image: ReferenceImage,
        inventory: Inventory,
        regions: Sequence[RegionItem],
    ) -> Optional[ProjectPlan]:
        """Protocol A. Parts come from the painter's regions; no segmentation phase."""
        snapshot = inventory.model_copy(deep=True)
        parts = [r for r in regions if r.part_name.strip()]
        if not parts:
            logger.warning("No regions supplied; falling back to full discovery")
            return await self.generate_plan(project, image, snapshot)

        model_image = self._model_image(image, self.profile.max_image_dim)
        colors = await self._colors_phase(project, snapshot, model_image, parts)
        if colors is None:
            return None
        steps, low_quality = await self._steps_phase(project, snapshot, colors, parts, model_image)
        return self._finish(project, image, snapshot, colors, steps, low_quality, parts)

    async def generate_plan(
        self,
        project: ProjectInfo,
        image: ReferenceImage,
        inventory: Inventory,
    ) -> Optional[ProjectPlan]:
        """Protocol B. Colours, then parts, then steps."""
        snapshot = inventory.model_copy(deep=True)
        model_image = self._model_image(image, self.profile.max_image_dim)

        colors = await self._colors_phase(project, snapshot, model_image)
        if colors is None:
            return None
        parts = await self._parts_phase(project, colors, model_image)
        if parts is None:
            return None
        steps, low_quality = await self._steps_phase(project, snapshot, colors, parts, model_image)
        return self._finish(project, image, snapshot, colors, steps, low_quality)

    async def identify_parts_in_image(self, image: ReferenceImage) -> List[PartSuggestion]:
        """Provisional part suggestions for the region editor. Empty on a bad reply."""
        model_image = self._model_image(image, self.profile.parts_image_dim)
        try:
            payload = await self._request_json(
                "identifyPartsInImage",
                identify_parts_prompt(compact=self.profile.compact_prompts),
                CompletionOptions(
                    temperature=0.2,
                    max_output_tokens=self.profile.parts_tokens,
                    response_schema=PartsResponse,
                ),
                model_image,
            )
            return normalize_parts(payload)
        except MalformedResponseError:
            return []
        except NormalizationError as e:
            logger.warning(f"Part discovery failed: {e.reason}")
            return []

    async def get_hex_for_paint(self, brand: str, name: str) -> Optional[str]:
        """'#RRGGBB' for a commercial paint, or None when the reply holds no hex code."""
        reply = await self._call(
            "getHexForPaint",
            hex_prompt(brand, name, compact=self.profile.compact_prompts),
            CompletionOptions(temperature=0, max_output_tokens=self.profile.hex_tokens, json_mode=False),
        )
        hx = extract_hex(reply)
        if hx is None:
            logger.info(f"No hex code in reply for {brand} {name}: {reply.strip()[:40]!r}")
        return hx

    async def parse_bulk_inventory(
        self,
        text: str,
        brand: str = "",
        on_progress: Optional[ProgressCallback] = None,
    ) -> Optional[ParsedInventory]:
        if self.profile.parse_inventory_locally:
            return parse_inventory_text(text, brand, on_progress)

        total = len([l for l in (text or "").splitlines() if l.strip()])
        if on_progress:
            on_progress(0, total, "Enviando para Gemini API...")
        try:
            payload = await self._request_json(
                "parseBulkInventory",
                bulk_inventory_prompt(text, brand),
                CompletionOptions(
                    temperature=0.1,
                    max_output_tokens=self.profile.steps_tokens,
                    response_schema=BulkInventoryResponse,
                ),
            )
        except MalformedResponseError:
            payload = None
        parsed = parsed_inventory_from_payload(payload, brand)
        if on_progress:
            on_progress(total, total, "Processamento concluído!" if parsed else "Erro no processamento")
        return parsed
