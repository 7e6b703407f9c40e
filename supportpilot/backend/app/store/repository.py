# supportpilot/backend/app/store/repository.py
"""
Persistence helper for the ticket collection.

The whole collection is kept as one JSON array under a fixed key in the
``local_storage`` table. Storage problems never propagate: reads degrade to an
empty list and writes become no-ops, so the in-memory store keeps working for
the rest of the session.
"""
from __future__ import annotations

import json
import logging
import re
import uuid
from typing import Callable, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import STORAGE_KEY
from ..db import SessionLocal
from ..models.storage_entry import StorageEntry
from ..schemas.ticket import Ticket, TicketEnvironment

logger = logging.getLogger(__name__)


class TicketRepository:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        key: str = STORAGE_KEY,
    ):
        self.session_factory = session_factory
        self.key = key

    def load(self) -> List[Ticket]:
        """Return every stored ticket; empty when absent, corrupt or unreachable."""
        try:
            with self.session_factory() as db:
                entry = db.get(StorageEntry, self.key)
                raw = entry.value if entry is not None else None
        except SQLAlchemyError as exc:
            logger.warning("Ticket storage unavailable, reading nothing: %s", exc)
            return []

        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Stored tickets under %r are not valid JSON", self.key)
            return []
        if not isinstance(parsed, list):
            return []

        tickets: List[Ticket] = []
        for item in parsed:
            try:
                tickets.append(Ticket.model_validate(item))
            except ValidationError as exc:
                logger.warning("Skipping unreadable stored ticket: %s", exc)
        return tickets

    def save(self, tickets: List[Ticket]) -> None:
        """Overwrite the whole stored collection."""
        payload = json.dumps([t.to_storage() for t in tickets])
        try:
            with self.session_factory() as db:
                entry = db.get(StorageEntry, self.key)
                if entry is None:
                    db.add(StorageEntry(key=self.key, value=payload))
                else:
                    entry.value = payload
                db.commit()
        except SQLAlchemyError as exc:
            logger.warning("Ticket storage unavailable, changes kept in memory only: %s", exc)

    def clear(self) -> None:
        try:
            with self.session_factory() as db:
                entry = db.get(StorageEntry, self.key)
                if entry is not None:
                    db.delete(entry)
                    db.commit()
        except SQLAlchemyError as exc:
            logger.warning("Ticket storage unavailable, nothing cleared: %s", exc)


def generate_id() -> str:
    return str(uuid.uuid4())


# Order matters: Edge and Chrome user agents also mention Safari
_OS_PATTERNS = [
    (re.compile(r"Windows", re.I), "Windows"),
    (re.compile(r"Android", re.I), "Android"),
    (re.compile(r"iPhone|iPad|iPod", re.I), "iOS"),
    (re.compile(r"Mac OS X", re.I), "macOS"),
    (re.compile(r"Linux", re.I), "Linux"),
]
_BROWSER_PATTERNS = [
    (re.compile(r"Edg/", re.I), "Edge"),
    (re.compile(r"Chrome/", re.I), "Chrome"),
    (re.compile(r"Firefox/", re.I), "Firefox"),
    (re.compile(r"Safari/", re.I), "Safari"),
]
_MOBILE_RE = re.compile(r"Mobi|Android|iPhone|iPad", re.I)


def _first_match(patterns, text: str) -> Optional[str]:
    for pattern, label in patterns:
        if pattern.search(text):
            return label
    return None


def detect_environment(user_agent: Optional[str]) -> TicketEnvironment:
    """Best-effort browser / OS / device guess from a User-Agent header."""
    if not user_agent:
        return TicketEnvironment()

    return TicketEnvironment(
        browser=_first_match(_BROWSER_PATTERNS, user_agent),
        os=_first_match(_OS_PATTERNS, user_agent),
        device_type="Mobile" if _MOBILE_RE.search(user_agent) else "Desktop",
        user_agent=user_agent,
    )


def merge_environment(
    detected: TicketEnvironment,
    provided: Optional[TicketEnvironment] = None,
) -> TicketEnvironment:
    """Explicit values win field by field; unset explicit fields keep the detected value."""
    if provided is None:
        return detected
    overrides = provided.model_dump(exclude_none=True)
    return detected.model_copy(update=overrides)
