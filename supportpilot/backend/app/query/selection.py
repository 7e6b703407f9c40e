# supportpilot/backend/app/query/selection.py

from __future__ import annotations

from typing import Iterable, List, Set


class TicketSelection:
    """
    Ids picked for one bulk action.
    A selection is built from a single submitted list page, so another page
    or another filter state always starts from an empty selection.
    """

    def __init__(self):
        self._ids: Set[str] = set()

    @property
    def ids(self) -> List[str]:
        return sorted(self._ids)

    def __contains__(self, ticket_id: str) -> bool:
        return ticket_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def toggle(self, ticket_id: str) -> None:
        if ticket_id in self._ids:
            self._ids.discard(ticket_id)
        else:
            self._ids.add(ticket_id)

    def is_page_selected(self, page_ids: Iterable[str]) -> bool:
        page_ids = list(page_ids)
        return bool(page_ids) and all(i in self._ids for i in page_ids)

    def toggle_page(self, page_ids: Iterable[str]) -> None:
        """Select exactly the visible ids, or clear them if they are all selected."""
        page_ids = list(page_ids)
        if self.is_page_selected(page_ids):
            self._ids.difference_update(page_ids)
        else:
            self._ids.update(page_ids)
