# supportpilot/backend/app/query/filters.py
"""
Ticket list derivation: filter -> sort -> paginate.

Everything here is a pure function of (tickets, filters).
"""
from __future__ import annotations

import math
from enum import Enum
from typing import Iterable, List

from pydantic import BaseModel, ConfigDict, Field

from ..schemas.ticket import (
    PRIORITY_RANK,
    CamelModel,
    Ticket,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)

ALL = "All"
ACTIVE = "Active"

STATUS_FILTERS = [ALL, ACTIVE] + [s.value for s in TicketStatus]
CATEGORY_FILTERS = [ALL] + [c.value for c in TicketCategory]
PRIORITY_FILTERS = [ALL] + [p.value for p in TicketPriority]

ACTIVE_STATUSES = {TicketStatus.OPEN, TicketStatus.IN_PROGRESS}

PAGE_SIZES = [10, 20, 50]
DEFAULT_PAGE_SIZE = PAGE_SIZES[0]


class AnsweredFilter(str, Enum):
    ALL = "all"
    ANSWERED = "answered"
    PENDING = "pending"


class SortOrder(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    PRIORITY = "priority"
    UPDATED = "updated"


SORT_LABELS = {
    SortOrder.NEWEST: "Newest first",
    SortOrder.OLDEST: "Oldest first",
    SortOrder.PRIORITY: "Priority",
    SortOrder.UPDATED: "Recently updated",
}


class TicketFilters(BaseModel):
    """Complete list state; the URL query string is its serialized form."""

    model_config = ConfigDict(frozen=True)

    status: str = ALL
    category: str = ALL
    priority: str = ALL
    answered: AnsweredFilter = AnsweredFilter.ALL
    q: str = ""
    sort: SortOrder = SortOrder.NEWEST
    page: int = Field(default=1, ge=1)
    page_size: int = DEFAULT_PAGE_SIZE


DEFAULT_FILTERS = TicketFilters()


def update_filters(filters: TicketFilters, **changes) -> TicketFilters:
    """Apply changes; anything besides the page itself sends you back to page 1."""
    narrowing = {k: v for k, v in changes.items() if k != "page"}
    if any(getattr(filters, k) != v for k, v in narrowing.items()):
        changes["page"] = 1
    return TicketFilters.model_validate({**filters.model_dump(), **changes})


class TicketPage(CamelModel):
    items: List[Ticket]
    total: int
    page: int
    page_size: int
    total_pages: int
    overall: int

    @property
    def start_index(self) -> int:
        """1-based position of the first item, 0 when empty."""
        return (self.page - 1) * self.page_size + 1 if self.items else 0

    @property
    def end_index(self) -> int:
        return self.start_index + len(self.items) - 1 if self.items else 0

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


def _matches_status(ticket: Ticket, status: str) -> bool:
    if status == ALL:
        return True
    if status == ACTIVE:
        return ticket.status in ACTIVE_STATUSES
    return ticket.status.value == status


def _matches_answered(ticket: Ticket, answered: AnsweredFilter) -> bool:
    if answered == AnsweredFilter.ANSWERED:
        return ticket.ai_output is not None
    if answered == AnsweredFilter.PENDING:
        return ticket.ai_output is None
    return True


def filter_tickets(tickets: Iterable[Ticket], filters: TicketFilters) -> List[Ticket]:
    needle = filters.q.strip().lower()
    result = []
    for ticket in tickets:
        if not _matches_status(ticket, filters.status):
            continue
        if filters.category != ALL and ticket.category.value != filters.category:
            continue
        if filters.priority != ALL and ticket.priority.value != filters.priority:
            continue
        if not _matches_answered(ticket, filters.answered):
            continue
        if needle and needle not in f"{ticket.title} {ticket.description}".lower():
            continue
        result.append(ticket)
    return result


def _created(ticket: Ticket) -> float:
    return ticket.created_at.timestamp()


_SORT_KEYS = {
    SortOrder.NEWEST: (_created, True),
    SortOrder.OLDEST: (_created, False),
    SortOrder.PRIORITY: (
        lambda t: (PRIORITY_RANK[t.priority], t.created_at.timestamp()),
        True,
    ),
    SortOrder.UPDATED: (lambda t: t.last_activity.timestamp(), True),
}


def sort_tickets(tickets: Iterable[Ticket], sort: SortOrder) -> List[Ticket]:
    key, reverse = _SORT_KEYS[sort]
    return sorted(tickets, key=key, reverse=reverse)


def paginate(tickets: List[Ticket], page: int, page_size: int, overall: int) -> TicketPage:
    total = len(tickets)
    total_pages = math.ceil(total / page_size) if total else 0
    page = max(1, min(page, total_pages or 1))
    start = (page - 1) * page_size
    return TicketPage(
        items=tickets[start:start + page_size],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
        overall=overall,
    )


def derive_ticket_view(tickets: List[Ticket], filters: TicketFilters) -> TicketPage:
    visible = sort_tickets(filter_tickets(tickets, filters), filters.sort)
    return paginate(visible, filters.page, filters.page_size, overall=len(tickets))
