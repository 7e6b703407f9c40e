# supportpilot/backend/app/api/v1/ai.py

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ...ai import analysis
from ...config import get_openai_api_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/ticket-analysis")
async def ticket_analysis(request: Request):
    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse({"error": "Invalid JSON payload."}, status_code=400)

    ticket = payload.get("ticket") if isinstance(payload, dict) else None
    if not isinstance(ticket, dict) or not ticket.get("title") or not ticket.get("description"):
        return JSONResponse(
            {"error": "Ticket title and description are required."},
            status_code=400,
        )

    api_key = get_openai_api_key()
    if not api_key:
        return JSONResponse(
            {"error": "OpenAI API key is not configured."},
            status_code=500,
        )

    try:
        result = await analysis.analyze_ticket(ticket, api_key)
    except analysis.GatewayError as exc:
        return JSONResponse(exc.payload, status_code=exc.status_code)
    except Exception:
        logger.exception("Unexpected error while generating AI output ticket=%s", ticket.get("id"))
        return JSONResponse({"error": "Unexpected server error."}, status_code=500)

    return result.model_dump(by_alias=True)
