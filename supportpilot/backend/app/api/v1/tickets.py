# supportpilot/backend/app/api/v1/tickets.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ...config import OPENAI_MODEL
from ...deps import get_store
from ...query.filters import TicketPage, derive_ticket_view
from ...query.url_state import decode_filters
from ...schemas.ticket import (
    AiOutputSave,
    BulkDeleteRequest,
    BulkStatusUpdate,
    RestoreVersionRequest,
    Ticket,
    TicketCreate,
    TicketStatusUpdate,
)
from ...store.repository import detect_environment
from ...store.tickets_store import TicketsStore

router = APIRouter(prefix="/tickets", tags=["tickets"])


def _found(ticket):
    if ticket is None:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return ticket


@router.get("/", response_model=TicketPage)
def list_tickets(request: Request, store: TicketsStore = Depends(get_store)):
    """Same query parameters as the ticket list page; invalid values fall back to defaults."""
    filters = decode_filters(request.query_params)
    return derive_ticket_view(store.tickets, filters)


@router.post(
    "/",
    response_model=Ticket,
    status_code=status.HTTP_201_CREATED,
)
def create_ticket(
    payload: TicketCreate,
    request: Request,
    store: TicketsStore = Depends(get_store),
):
    detected = detect_environment(request.headers.get("user-agent"))
    return store.create(payload, detected)


@router.get("/{ticket_id}", response_model=Ticket)
def get_ticket(ticket_id: str, store: TicketsStore = Depends(get_store)):
    return _found(store.get(ticket_id))


@router.patch("/{ticket_id}/status", response_model=Ticket)
def update_ticket_status(
    ticket_id: str,
    payload: TicketStatusUpdate,
    store: TicketsStore = Depends(get_store),
):
    return _found(store.update_status(ticket_id, payload.status))


@router.post("/{ticket_id}/ai-output", response_model=Ticket)
def save_ai_output(
    ticket_id: str,
    payload: AiOutputSave,
    store: TicketsStore = Depends(get_store),
):
    return _found(store.save_ai_output(ticket_id, payload, payload.model or OPENAI_MODEL))


@router.post("/{ticket_id}/restore", response_model=Ticket)
def restore_ai_output(
    ticket_id: str,
    payload: RestoreVersionRequest,
    store: TicketsStore = Depends(get_store),
):
    if store.get(ticket_id) is None:
        raise HTTPException(status_code=404, detail="Ticket not found")
    restored = store.restore_version(ticket_id, payload.index)
    if restored is None:
        raise HTTPException(status_code=404, detail="History version not found")
    return restored


@router.delete("/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_ticket(ticket_id: str, store: TicketsStore = Depends(get_store)):
    if not store.delete(ticket_id):
        raise HTTPException(status_code=404, detail="Ticket not found")


@router.post("/bulk/status", response_model=List[Ticket])
def bulk_update_status(
    payload: BulkStatusUpdate,
    store: TicketsStore = Depends(get_store),
):
    return store.bulk_update_status(payload.ids, payload.status)


@router.post("/bulk/delete")
def bulk_delete(
    payload: BulkDeleteRequest,
    store: TicketsStore = Depends(get_store),
):
    if not payload.confirm:
        raise HTTPException(
            status_code=400,
            detail="Bulk delete must be confirmed with confirm=true.",
        )
    return {"deleted": store.bulk_delete(payload.ids, confirmed=True)}
