"""
errors.py — Error taxonomy for the plan-generation pipeline.

Terminal errors (QuotaExceededError, BackendUnreachableError,
CommunicationError) reach the caller and carry a Portuguese message that
can be shown to the painter as-is. MalformedResponseError and
NormalizationError are phase-local: the orchestrator turns them into a
failed phase (None) and never lets them escape.
"""

from __future__ import annotations

from typing import Optional

import requests

QUOTA_MESSAGE = (
    "Você atingiu o limite de requisições da API. "
    "Por favor, aguarde um minuto e tente novamente."
)
UNREACHABLE_MESSAGE = (
    "Não foi possível conectar ao servidor de IA local. "
    "Verifique se o servidor está em execução e o endpoint está correto."
)
COMMUNICATION_MESSAGE = "Ocorreu uma falha na comunicação com a IA durante a operação '{context}'."


class PaintPlanError(Exception):
    """Base class. ``user_message`` is safe to show in the UI."""

    def __init__(self, user_message: str, context: str = ""):
        super().__init__(user_message)
        self.user_message = user_message
        self.context = context


class QuotaExceededError(PaintPlanError):
    def __init__(self, context: str = ""):
        super().__init__(QUOTA_MESSAGE, context)


class BackendUnreachableError(PaintPlanError):
    def __init__(self, context: str = ""):
        super().__init__(UNREACHABLE_MESSAGE, context)


class CommunicationError(PaintPlanError):
    def __init__(self, context: str = ""):
        super().__init__(COMMUNICATION_MESSAGE.format(context=context), context)


class MalformedResponseError(PaintPlanError):
    """Reply could not be decoded into anything structurally plausible."""

    def __init__(self, context: str = "", raw: Optional[str] = None):
        super().__init__(f"Resposta malformada da IA em '{context}'.", context)
        self.raw = raw


class NormalizationError(PaintPlanError):
    """Decoded reply lacks the array a phase requires."""

    def __init__(self, phase: str, reason: str):
        super().__init__(f"Fase '{phase}' sem resultado utilizável: {reason}", phase)
        self.phase = phase
        self.reason = reason


# ── Classification ────────────────────────────────────────────────────────────

def is_rate_limit_error(exc: BaseException) -> bool:
    text = f"{exc} {exc!r}"
    return "429" in text or "RESOURCE_EXHAUSTED" in text


def is_unreachable_error(exc: BaseException) -> bool:
    if isinstance(exc, (requests.ConnectionError, ConnectionRefusedError)):
        return True
    if getattr(exc, "status", None) == 0:
        return True
    return "HttpHostConnectException" in str(exc)


def classify_error(exc: BaseException, context: str) -> PaintPlanError:
    """Map any exception raised by a model call to the terminal error for it."""
    if isinstance(exc, PaintPlanError) and not isinstance(
        exc, (MalformedResponseError, NormalizationError)
    ):
        return exc
    if is_rate_limit_error(exc):
        return QuotaExceededError(context)
    if is_unreachable_error(exc):
        return BackendUnreachableError(context)
    return CommunicationError(context)
