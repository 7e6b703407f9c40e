# supportpilot/backend/app/store/tickets_store.py
"""
In-memory ticket state for one application.

Every mutation builds the next collection, saves it through the repository
and then swaps it in, so memory and storage never disagree after a call.
Unknown ids are reported with None / False, never with an exception.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from ..schemas.ticket import (
    AiAnalysisResult,
    AiOutput,
    Ticket,
    TicketCreate,
    TicketEnvironment,
    TicketStatus,
    now_utc,
)
from .repository import TicketRepository, generate_id, merge_environment
from .seed import create_seed_ticket_input
from .versions import normalize_versions, push_output, swap_in_history

logger = logging.getLogger(__name__)

# Fields nobody may patch after creation
_IMMUTABLE_FIELDS = {"id", "created_at"}


class TicketsStore:
    def __init__(self, repository: TicketRepository):
        self.repository = repository
        self._tickets: List[Ticket] = []
        self.is_hydrated = False

    # Selectors

    @property
    def tickets(self) -> List[Ticket]:
        """Most recently created first."""
        return list(self._tickets)

    def get(self, ticket_id: str) -> Optional[Ticket]:
        index = self._index_of(ticket_id)
        return self._tickets[index] if index is not None else None

    # Lifecycle

    def hydrate(self) -> None:
        if self.is_hydrated:
            return

        stored = self.repository.load()
        if not stored:
            seed = self._build(create_seed_ticket_input())
            self.repository.save([seed])
            self._tickets = [seed]
            logger.info("No stored tickets, seeded demo ticket %s", seed.id)
        else:
            normalized = [normalize_versions(t) for t in stored]
            if normalized != stored:
                self.repository.save(normalized)
            self._tickets = normalized
            logger.info("Hydrated %d tickets", len(normalized))

        self.is_hydrated = True

    def create(
        self,
        data: TicketCreate,
        detected_environment: Optional[TicketEnvironment] = None,
    ) -> Ticket:
        self.hydrate()
        ticket = self._build(data, detected_environment)
        self._commit([ticket] + self._tickets)
        return ticket

    def update(self, ticket_id: str, patch: dict) -> Optional[Ticket]:
        self.hydrate()
        index = self._index_of(ticket_id)
        if index is None:
            return None

        current = self._tickets[index]
        changes = {k: v for k, v in patch.items() if k not in _IMMUTABLE_FIELDS}
        changes["updated_at"] = max(now_utc(), current.created_at)
        updated = current.model_copy(update=changes)

        tickets = list(self._tickets)
        tickets[index] = updated
        self._commit(tickets)
        return updated

    def update_status(self, ticket_id: str, status: TicketStatus) -> Optional[Ticket]:
        return self.update(ticket_id, {"status": TicketStatus(status)})

    def save_ai_output(
        self, ticket_id: str, result: AiAnalysisResult, model: str
    ) -> Optional[Ticket]:
        self.hydrate()
        ticket = self.get(ticket_id)
        if ticket is None:
            return None

        output = AiOutput(
            customer_reply=result.customer_reply,
            qa_summary=result.qa_summary,
            follow_up_questions=list(result.follow_up_questions),
            generated_at=now_utc(),
            model=model,
        )
        current, history, counter = push_output(ticket, output)
        updated = self.update(
            ticket_id,
            {
                "ai_output": current,
                "ai_output_history": history,
                "ai_output_version_counter": counter,
                "status": TicketStatus.RESOLVED,
            },
        )
        logger.info("Saved AI output v%d for ticket %s", counter, ticket_id)
        return updated

    def restore_version(self, ticket_id: str, history_index: int) -> Optional[Ticket]:
        self.hydrate()
        ticket = self.get(ticket_id)
        if ticket is None:
            return None

        swapped = swap_in_history(ticket, history_index)
        if swapped is None:
            return None

        restored, history = swapped
        return self.update(
            ticket_id, {"ai_output": restored, "ai_output_history": history}
        )

    def delete(self, ticket_id: str) -> bool:
        self.hydrate()
        remaining = [t for t in self._tickets if t.id != ticket_id]
        if len(remaining) == len(self._tickets):
            return False
        self._commit(remaining)
        return True

    def bulk_update_status(
        self, ticket_ids: Iterable[str], status: TicketStatus
    ) -> List[Ticket]:
        updated = []
        for ticket_id in ticket_ids:
            ticket = self.update_status(ticket_id, status)
            if ticket is not None:
                updated.append(ticket)
        return updated

    def bulk_delete(self, ticket_ids: Iterable[str], confirmed: bool = False) -> int:
        """Delete the given tickets; does nothing until the caller confirmed."""
        if not confirmed:
            return 0
        return sum(1 for ticket_id in list(ticket_ids) if self.delete(ticket_id))

    def clear_all(self) -> None:
        self.repository.clear()
        self._tickets = []

    # Internals

    def _index_of(self, ticket_id: str) -> Optional[int]:
        for index, ticket in enumerate(self._tickets):
            if ticket.id == ticket_id:
                return index
        return None

    def _build(
        self,
        data: TicketCreate,
        detected_environment: Optional[TicketEnvironment] = None,
    ) -> Ticket:
        now = now_utc()
        environment = merge_environment(
            detected_environment or TicketEnvironment(), data.environment
        )
        return Ticket(
            id=generate_id(),
            title=data.title,
            category=data.category,
            priority=data.priority,
            status=TicketStatus.OPEN,
            channel=data.channel,
            description=data.description,
            steps_to_reproduce=data.steps_to_reproduce,
            expected_result=data.expected_result,
            actual_result=data.actual_result,
            environment=environment,
            created_at=now,
            updated_at=now,
        )

    def _commit(self, tickets: List[Ticket]) -> None:
        self.repository.save(tickets)
        self._tickets = tickets
