# supportpilot/backend/app/query/url_state.py
"""
TicketFilters <-> URL query parameters.

Defaults are never written, so a bare /app/tickets is the default list.
Unknown or malformed values decode to the default instead of failing.
"""
from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlencode

from .filters import (
    CATEGORY_FILTERS,
    DEFAULT_FILTERS,
    PAGE_SIZES,
    PRIORITY_FILTERS,
    STATUS_FILTERS,
    AnsweredFilter,
    SortOrder,
    TicketFilters,
)

# URL parameter name -> TicketFilters field
PARAM_FIELDS = {
    "status": "status",
    "category": "category",
    "priority": "priority",
    "answered": "answered",
    "q": "q",
    "sort": "sort",
    "page": "page",
    "pageSize": "page_size",
}

_STATUS_CANON = {s.lower(): s for s in STATUS_FILTERS}
_CATEGORY_CANON = {c.lower(): c for c in CATEGORY_FILTERS}
_PRIORITY_CANON = {p.lower(): p for p in PRIORITY_FILTERS}
_ANSWERED_CANON = {a.value: a for a in AnsweredFilter}
_SORT_CANON = {s.value: s for s in SortOrder}


def _canon(value: Optional[str], table: dict, default):
    if value is None:
        return default
    return table.get(value.strip().lower(), default)


def _positive_int(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        number = int(value.strip())
    except ValueError:
        return default
    return number if number >= 1 else default


def _page_size(value: Optional[str]) -> int:
    size = _positive_int(value, DEFAULT_FILTERS.page_size)
    return size if size in PAGE_SIZES else DEFAULT_FILTERS.page_size


def decode_filters(params: Mapping[str, str]) -> TicketFilters:
    d = DEFAULT_FILTERS
    q = params.get("q")
    return TicketFilters(
        status=_canon(params.get("status"), _STATUS_CANON, d.status),
        category=_canon(params.get("category"), _CATEGORY_CANON, d.category),
        priority=_canon(params.get("priority"), _PRIORITY_CANON, d.priority),
        answered=_canon(params.get("answered"), _ANSWERED_CANON, d.answered),
        q=q if q is not None else d.q,
        sort=_canon(params.get("sort"), _SORT_CANON, d.sort),
        page=_positive_int(params.get("page"), d.page),
        page_size=_page_size(params.get("pageSize")),
    )


def _param_value(value) -> str:
    return value.value if hasattr(value, "value") else str(value)


def encode_filters(filters: TicketFilters) -> Dict[str, str]:
    """Non-default parameters only, in a stable order."""
    params: Dict[str, str] = {}
    for param, field in PARAM_FIELDS.items():
        value = getattr(filters, field)
        if value != getattr(DEFAULT_FILTERS, field):
            params[param] = _param_value(value)
    return params


def to_query_string(filters: TicketFilters) -> str:
    params = encode_filters(filters)
    return "?" + urlencode(params) if params else ""


def active_filters(filters: TicketFilters) -> List[Tuple[str, str]]:
    """(param, value) for each parameter currently narrowing the list."""
    narrowing = ("status", "category", "priority", "answered", "q")
    encoded = encode_filters(filters)
    return [(name, encoded[name]) for name in narrowing if name in encoded]
