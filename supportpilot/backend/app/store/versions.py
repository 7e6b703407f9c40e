# supportpilot/backend/app/store/versions.py
"""
AI output version history rules.

Versions are per ticket, start at 1 and are never reused. History keeps at
most HISTORY_LIMIT superseded outputs: the original (version 1) plus the
newest of the rest.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from ..schemas.ticket import AiOutput, Ticket

HISTORY_LIMIT = 5
ORIGINAL_VERSION = 1


def highest_version(ticket: Ticket) -> int:
    versions = [ticket.ai_output_version_counter or 0]
    if ticket.ai_output is not None and ticket.ai_output.version:
        versions.append(ticket.ai_output.version)
    versions.extend(entry.version or 0 for entry in ticket.ai_output_history)
    return max(versions)


def next_version(ticket: Ticket) -> int:
    return highest_version(ticket) + 1


def trim_history(
    history: List[AiOutput], limit: int = HISTORY_LIMIT
) -> List[AiOutput]:
    """
    De-duplicate by version (last write wins), order ascending and cap.
    The version-1 entry survives the cap.
    """
    by_version: Dict[int, AiOutput] = {}
    for entry in history:
        by_version[entry.version or 0] = entry
    ordered = [by_version[v] for v in sorted(by_version)]
    if len(ordered) <= limit:
        return ordered

    original = [e for e in ordered if e.version == ORIGINAL_VERSION]
    rest = [e for e in ordered if e.version != ORIGINAL_VERSION]
    room = limit - len(original)
    return original + (rest[-room:] if room > 0 else [])


def push_output(
    ticket: Ticket, output: AiOutput
) -> Tuple[AiOutput, List[AiOutput], int]:
    """
    Stamp `output` with the next version and compute the new history.
    Returns (current, history, counter).
    """
    version = next_version(ticket)
    current = output.model_copy(update={"version": version})
    history = list(ticket.ai_output_history)
    if ticket.ai_output is not None:
        history.append(ticket.ai_output)
    return current, trim_history(history), version


def swap_in_history(
    ticket: Ticket, index: int
) -> Optional[Tuple[AiOutput, List[AiOutput]]]:
    """Promote history[index] to current; None when index is out of range."""
    history = list(ticket.ai_output_history)
    if not history or index < 0 or index >= len(history):
        return None

    restored = history.pop(index)
    if ticket.ai_output is not None:
        history.append(ticket.ai_output)
    return restored, trim_history(history)


def normalize_versions(ticket: Ticket) -> Ticket:
    """
    Bring records written by older builds up to the versioned format:
    number unversioned history in generation order, give the current output
    the next number when it has none or its number is taken, raise the
    counter, enforce the cap.
    """
    history = list(ticket.ai_output_history)
    if any(entry.version is None for entry in history):
        history = sorted(history, key=lambda e: e.generated_at)
        history = [
            entry.model_copy(update={"version": number})
            for number, entry in enumerate(history, start=1)
        ]

    current = ticket.ai_output
    taken = {e.version for e in history}
    # Unversioned, or clashing with a renumbered history entry
    if current is not None and (current.version is None or current.version in taken):
        top = max((e.version or 0 for e in history), default=0)
        top = max(top, ticket.ai_output_version_counter or 0)
        current = current.model_copy(update={"version": top + 1})

    untrimmed = ticket.model_copy(
        update={"ai_output": current, "ai_output_history": history}
    )
    counter = highest_version(untrimmed)
    update = {"ai_output_history": trim_history(history)}
    if counter or ticket.ai_output_version_counter is not None:
        update["ai_output_version_counter"] = counter
    return untrimmed.model_copy(update=update)
