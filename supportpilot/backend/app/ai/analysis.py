# supportpilot/backend/app/ai/analysis.py
"""
Ticket analysis through the OpenAI Responses API.

analyze_ticket() returns a validated AiAnalysisResult or raises GatewayError
carrying the HTTP status and JSON body the gateway route should answer with.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

import openai
from openai import AsyncOpenAI
from pydantic import ValidationError

from ..config import OPENAI_BASE_URL, OPENAI_MODEL, OPENAI_TIMEOUT
from ..schemas.ticket import AiAnalysisResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = " ".join(
    [
        "You are SupportPilot AI, an assistant that helps support teams draft responses and QA-ready summaries.",
        "Return output in JSON that matches the provided schema.",
        "Customer reply must be empathetic, concise, and ready to send to the customer.",
        "QA summary must be technical, structured, and include key details (summary, steps, expected vs actual, severity, tags).",
        "Follow-up questions must be short, actionable, and help unblock triage.",
        "Always respond in English.",
    ]
)

ANALYSIS_FORMAT = {
    "format": {
        "type": "json_schema",
        "name": "ticket_analysis",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "customerReply": {"type": "string"},
                "qaSummary": {"type": "string"},
                "followUpQuestions": {
                    "type": "array",
                    "items": {"type": "string"},
                },
            },
            "required": ["customerReply", "qaSummary", "followUpQuestions"],
            "additionalProperties": False,
        },
    }
}

# Cap for anything echoed back in logs or error details
MAX_DETAIL_CHARS = 2000


class GatewayError(Exception):
    def __init__(self, status_code: int, payload: dict):
        super().__init__(payload.get("error"))
        self.status_code = status_code
        self.payload = payload


def _safe_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return str(value)


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def build_user_prompt(ticket: dict) -> str:
    return "\n".join(
        [
            "Analyze the support ticket below and produce the required JSON output.",
            "Ticket JSON:",
            json.dumps(ticket),
        ]
    )


def extract_output_text(response: Any) -> Optional[str]:
    """
    Pull the model text out of a Responses API result.
    Prefers the `output_text` convenience field, otherwise joins the
    output_text parts of every output item.
    """
    text = _field(response, "output_text")
    if isinstance(text, str):
        return text if text.strip() else None

    output = _field(response, "output")
    if not isinstance(output, list):
        return None

    chunks = []
    for item in output:
        content = _field(item, "content")
        if not isinstance(content, list):
            continue
        for part in content:
            if _field(part, "type") == "output_text" and _field(part, "text"):
                chunks.append(_field(part, "text"))
    joined = "".join(chunks).strip()
    return joined or None


def parse_analysis(text: str, ticket_id: Optional[str] = None) -> AiAnalysisResult:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        logger.error(
            "Failed to parse AI response JSON ticket=%s output=%s",
            ticket_id,
            text[:MAX_DETAIL_CHARS],
        )
        raise GatewayError(500, {"error": "Failed to parse AI response."})

    try:
        return AiAnalysisResult.model_validate(parsed)
    except ValidationError:
        logger.error(
            "Invalid AI response shape ticket=%s parsed=%s",
            ticket_id,
            _safe_string(parsed)[:MAX_DETAIL_CHARS],
        )
        raise GatewayError(500, {"error": "Invalid AI response shape."})


def friendly_message(upstream_status: int) -> str:
    if upstream_status == 429:
        return "OpenAI quota/rate limit exceeded. Check OpenAI Platform billing/limits."
    if upstream_status in (401, 403):
        return "OpenAI authentication failed."
    return "OpenAI request failed."


def upstream_error(exc: openai.APIError, ticket_id: Optional[str] = None) -> GatewayError:
    """Map a provider error to the gateway's status and body."""
    upstream_status = getattr(exc, "status_code", None) or 500
    status = 502 if upstream_status >= 500 else upstream_status

    body = exc.body
    message = _field(body, "message") if isinstance(body, dict) else None
    message = message or exc.message
    details = _safe_string(body if body is not None else message)[:MAX_DETAIL_CHARS]

    logger.error(
        "OpenAI request failed status=%s upstream=%s type=%s code=%s ticket=%s details=%s",
        status,
        upstream_status,
        exc.type,
        exc.code,
        ticket_id,
        details,
    )
    return GatewayError(
        status,
        {
            "error": friendly_message(upstream_status),
            "details": details,
            "openai": {"message": message, "type": exc.type, "code": exc.code},
            "status": status,
            "upstreamStatus": upstream_status,
        },
    )


def _create_client(api_key: str) -> AsyncOpenAI:
    return AsyncOpenAI(
        api_key=api_key,
        base_url=OPENAI_BASE_URL or None,
        timeout=OPENAI_TIMEOUT,
    )


async def analyze_ticket(ticket: dict, api_key: str) -> AiAnalysisResult:
    ticket_id = ticket.get("id")
    client = _create_client(api_key)

    try:
        response = await client.responses.create(
            model=OPENAI_MODEL,
            instructions=SYSTEM_PROMPT,
            input=build_user_prompt(ticket),
            text=ANALYSIS_FORMAT,
        )
    except openai.APIError as exc:
        raise upstream_error(exc, ticket_id) from exc

    text = extract_output_text(response)
    if not text:
        logger.error(
            "OpenAI response missing output_text ticket=%s response=%s",
            ticket_id,
            _safe_string(_field(response, "id"))[:MAX_DETAIL_CHARS],
        )
        raise GatewayError(500, {"error": "Empty AI response."})

    return parse_analysis(text, ticket_id)
