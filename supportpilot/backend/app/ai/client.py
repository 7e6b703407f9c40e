# supportpilot/backend/app/ai/client.py
"""
Caller side of the analysis gateway.

AiGeneration is one request-response round trip with an idle -> loading ->
success | error state. A second run while one is loading is refused, failures
are classified and kept on the object, and nothing is retried.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, Optional

import httpx
from pydantic import ValidationError

from ..config import AI_GATEWAY_PATH
from ..schemas.ticket import AiAnalysisResult, Ticket

logger = logging.getLogger(__name__)


class GenerationState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class AiErrorKind(str, Enum):
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    UPSTREAM = "upstream"
    MALFORMED = "malformed"
    NETWORK = "network"


DEFAULT_MESSAGES = {
    AiErrorKind.AUTH: "AI provider authentication failed.",
    AiErrorKind.RATE_LIMIT: "AI quota or rate limit exceeded. Try again later.",
    AiErrorKind.UPSTREAM: "AI generation failed.",
    AiErrorKind.MALFORMED: "AI response was not in the expected format.",
    AiErrorKind.NETWORK: "Could not reach the AI service.",
}

INTERRUPTED_MESSAGE = "AI generation was interrupted. Try again."


def classify_status(status_code: int) -> AiErrorKind:
    if status_code in (401, 403):
        return AiErrorKind.AUTH
    if status_code == 429:
        return AiErrorKind.RATE_LIMIT
    return AiErrorKind.UPSTREAM


def _error_message(response: httpx.Response, kind: AiErrorKind) -> str:
    try:
        body = response.json()
    except ValueError:
        return DEFAULT_MESSAGES[kind]
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return DEFAULT_MESSAGES[kind]


class AiGeneration:
    def __init__(
        self,
        client_factory: Callable[[], httpx.AsyncClient],
        path: str = AI_GATEWAY_PATH,
    ):
        self.client_factory = client_factory
        self.path = path
        self.state = GenerationState.IDLE
        self.result: Optional[AiAnalysisResult] = None
        self.error: Optional[str] = None
        self.error_kind: Optional[AiErrorKind] = None

    @property
    def is_loading(self) -> bool:
        return self.state == GenerationState.LOADING

    async def run(self, ticket: Ticket) -> Optional[AiAnalysisResult]:
        """Request an analysis; None when refused or failed (see state / error)."""
        if self.is_loading:
            logger.info("Generation already in flight for ticket %s", ticket.id)
            return None

        self.state = GenerationState.LOADING
        self.result = None
        self.error = None
        self.error_kind = None

        try:
            return await self._request(ticket)
        except Exception:
            logger.exception("AI generation crashed for ticket %s", ticket.id)
            return self._fail(AiErrorKind.NETWORK, DEFAULT_MESSAGES[AiErrorKind.NETWORK])
        finally:
            # Cancelled mid-request; never stay stuck in loading
            if self.is_loading:
                self._fail(AiErrorKind.NETWORK, INTERRUPTED_MESSAGE)

    async def _request(self, ticket: Ticket) -> Optional[AiAnalysisResult]:
        try:
            async with self.client_factory() as client:
                response = await client.post(
                    self.path, json={"ticket": ticket.analysis_payload()}
                )
        except httpx.HTTPError as exc:
            logger.warning("AI gateway unreachable for ticket %s: %s", ticket.id, exc)
            return self._fail(AiErrorKind.NETWORK, DEFAULT_MESSAGES[AiErrorKind.NETWORK])

        if not response.is_success:
            kind = classify_status(response.status_code)
            return self._fail(kind, _error_message(response, kind))

        try:
            result = AiAnalysisResult.model_validate(response.json())
        except (ValueError, ValidationError):
            return self._fail(AiErrorKind.MALFORMED, DEFAULT_MESSAGES[AiErrorKind.MALFORMED])

        self.state = GenerationState.SUCCESS
        self.result = result
        return result

    def reset(self) -> None:
        if not self.is_loading:
            self.state = GenerationState.IDLE
            self.result = None
            self.error = None
            self.error_kind = None

    def _fail(self, kind: AiErrorKind, message: str) -> None:
        self.state = GenerationState.ERROR
        self.error = message
        self.error_kind = kind
        logger.info("AI generation failed kind=%s message=%s", kind.value, message)
        return None


class GenerationRegistry:
    """One AiGeneration per ticket id."""

    def __init__(self, client_factory: Callable[[], httpx.AsyncClient]):
        self.client_factory = client_factory
        self._generations: Dict[str, AiGeneration] = {}

    def for_ticket(self, ticket_id: str) -> AiGeneration:
        if ticket_id not in self._generations:
            self._generations[ticket_id] = AiGeneration(self.client_factory)
        return self._generations[ticket_id]

    def peek(self, ticket_id: str) -> Optional[AiGeneration]:
        return self._generations.get(ticket_id)

    def discard(self, ticket_id: str) -> None:
        self._generations.pop(ticket_id, None)
