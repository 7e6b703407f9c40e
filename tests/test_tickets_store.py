# tests/test_tickets_store.py

import json
from datetime import timedelta

from sqlalchemy.orm import sessionmaker

from supportpilot.backend.app.db import make_engine
from supportpilot.backend.app.models import StorageEntry
from supportpilot.backend.app.schemas.ticket import (
    AiAnalysisResult,
    TicketCreate,
    TicketEnvironment,
    TicketStatus,
    now_utc,
)
from supportpilot.backend.app.store.repository import TicketRepository
from supportpilot.backend.app.store.tickets_store import TicketsStore

SEED_TITLE = "Mobile checkout button not responding"


def new_ticket(**overrides):
    data = {
        "title": "Login page times out",
        "category": "Login",
        "priority": "High",
        "channel": "Web",
        "description": "The login spinner never stops.",
    }
    data.update(overrides)
    return TicketCreate(**data)


def analysis(n=1):
    return AiAnalysisResult(
        customer_reply=f"Reply {n}",
        qa_summary=f"Summary {n}",
        follow_up_questions=[f"Question {n}?"],
    )


def test_hydrate_seeds_empty_storage(store, repository):
    store.hydrate()
    assert [t.title for t in store.tickets] == [SEED_TITLE]
    assert [t.title for t in repository.load()] == [SEED_TITLE]
    assert store.is_hydrated


def test_hydrate_is_idempotent(store, repository):
    store.hydrate()
    store.hydrate()
    assert len(store.tickets) == 1

    # A fresh store over the same storage loads instead of seeding again
    other = TicketsStore(repository)
    other.hydrate()
    assert [t.id for t in other.tickets] == [t.id for t in store.tickets]


def test_write_before_hydrate_keeps_stored_tickets(store, repository, make_ticket):
    existing = make_ticket(title="Stored earlier")
    repository.save([existing])

    created = store.create(new_ticket())

    assert [t.id for t in store.tickets] == [created.id, existing.id]
    assert [t.id for t in repository.load()] == [created.id, existing.id]


def test_create_puts_newest_first(store):
    first = store.create(new_ticket(title="First"))
    second = store.create(new_ticket(title="Second"))
    assert [t.id for t in store.tickets][:2] == [second.id, first.id]
    assert second.status == TicketStatus.OPEN
    assert second.updated_at == second.created_at
    assert second.ai_output is None
    assert second.ai_output_history == []


def test_create_merges_environment(store):
    detected = TicketEnvironment(browser="Chrome", os="Windows", device_type="Desktop")
    ticket = store.create(
        new_ticket(environment=TicketEnvironment(os="Windows 11")),
        detected,
    )
    assert ticket.environment.browser == "Chrome"
    assert ticket.environment.os == "Windows 11"
    assert ticket.environment.device_type == "Desktop"


def test_update_ignores_id_and_created_at(store):
    ticket = store.create(new_ticket())
    updated = store.update(
        ticket.id,
        {"id": "hijacked", "created_at": now_utc() - timedelta(days=30), "title": "Renamed"},
    )
    assert updated.id == ticket.id
    assert updated.created_at == ticket.created_at
    assert updated.title == "Renamed"
    assert updated.updated_at >= updated.created_at


def test_update_never_goes_before_creation(store, repository, make_ticket):
    future = now_utc() + timedelta(days=1)
    repository.save([make_ticket(created_at=future, updated_at=future)])
    store.hydrate()

    updated = store.update_status(store.tickets[0].id, TicketStatus.IN_PROGRESS)
    assert updated.updated_at >= updated.created_at


def test_unknown_ids_are_reported_not_raised(store):
    store.hydrate()
    before = store.tickets
    assert store.update("missing", {"title": "x"}) is None
    assert store.update_status("missing", TicketStatus.RESOLVED) is None
    assert store.save_ai_output("missing", analysis(), "gpt-5-nano") is None
    assert store.restore_version("missing", 0) is None
    assert store.delete("missing") is False
    assert store.tickets == before


def test_save_ai_output_versions_and_resolves(store):
    ticket = store.create(new_ticket())
    saved = store.save_ai_output(ticket.id, analysis(1), "gpt-5-nano")

    assert saved.status == TicketStatus.RESOLVED
    assert saved.ai_output.version == 1
    assert saved.ai_output.model == "gpt-5-nano"
    assert saved.ai_output_history == []
    assert saved.ai_output_version_counter == 1


def test_history_keeps_original_and_four_newest(store):
    ticket = store.create(new_ticket())
    for n in range(1, 8):
        store.save_ai_output(ticket.id, analysis(n), "gpt-5-nano")

    current = store.get(ticket.id)
    assert current.ai_output.version == 7
    assert current.ai_output.customer_reply == "Reply 7"
    assert [e.version for e in current.ai_output_history] == [1, 3, 4, 5, 6]
    assert current.ai_output_version_counter == 7


def test_restore_swaps_and_numbers_are_never_reused(store):
    ticket = store.create(new_ticket())
    for n in range(1, 4):
        store.save_ai_output(ticket.id, analysis(n), "gpt-5-nano")

    restored = store.restore_version(ticket.id, 0)
    assert restored.ai_output.version == 1
    assert [e.version for e in restored.ai_output_history] == [2, 3]
    assert restored.status == TicketStatus.RESOLVED

    after = store.save_ai_output(ticket.id, analysis(4), "gpt-5-nano")
    assert after.ai_output.version == 4
    assert [e.version for e in after.ai_output_history] == [1, 2, 3]


def test_restore_out_of_range_leaves_ticket(store):
    ticket = store.create(new_ticket())
    store.save_ai_output(ticket.id, analysis(), "gpt-5-nano")
    before = store.get(ticket.id)

    assert store.restore_version(ticket.id, 5) is None
    assert store.get(ticket.id) == before


def test_status_change_keeps_ai_output(store):
    ticket = store.create(new_ticket())
    store.save_ai_output(ticket.id, analysis(), "gpt-5-nano")
    reopened = store.update_status(ticket.id, TicketStatus.OPEN)
    assert reopened.status == TicketStatus.OPEN
    assert reopened.ai_output.version == 1


def test_delete_and_bulk_delete(store, repository):
    a = store.create(new_ticket(title="A"))
    b = store.create(new_ticket(title="B"))
    c = store.create(new_ticket(title="C"))

    assert store.delete(a.id) is True
    assert store.get(a.id) is None

    assert store.bulk_delete([b.id, c.id]) == 0
    assert store.get(b.id) is not None

    assert store.bulk_delete([b.id, c.id, "missing"], confirmed=True) == 2
    assert [t.title for t in repository.load()] == [SEED_TITLE]


def test_bulk_update_status_skips_unknown(store):
    a = store.create(new_ticket(title="A"))
    b = store.create(new_ticket(title="B"))
    updated = store.bulk_update_status([a.id, "missing", b.id], TicketStatus.IN_PROGRESS)
    assert [t.id for t in updated] == [a.id, b.id]
    assert store.get(a.id).status == TicketStatus.IN_PROGRESS


def test_clear_all_empties_storage(store, repository):
    store.create(new_ticket())
    store.clear_all()
    assert store.tickets == []
    assert repository.load() == []


def test_hydrate_upgrades_legacy_records(store, repository, session_factory, make_ticket):
    legacy = make_ticket().to_storage()
    legacy["aiOutput"] = {
        "customerReply": "Newest",
        "qaSummary": "QA",
        "followUpQuestions": [],
        "generatedAt": "2024-03-02T10:00:00.000Z",
        "model": "gpt-4o-mini",
    }
    legacy["aiOutputHistory"] = [
        {
            "customerReply": "Oldest",
            "qaSummary": "QA",
            "followUpQuestions": [],
            "generatedAt": "2024-03-01T10:00:00.000Z",
            "model": "gpt-4o-mini",
        }
    ]
    with session_factory() as db:
        db.add(StorageEntry(key=repository.key, value=json.dumps([legacy])))
        db.commit()

    store.hydrate()
    ticket = store.tickets[0]
    assert ticket.ai_output.version == 2
    assert ticket.ai_output_history[0].version == 1
    assert ticket.ai_output_version_counter == 2

    # The upgrade is written back
    stored = repository.load()[0]
    assert stored.ai_output.version == 2


def test_storage_failure_degrades_to_memory():
    # No tables: every read and write fails underneath
    engine = make_engine("sqlite://")
    broken = TicketRepository(sessionmaker(bind=engine, future=True))
    store = TicketsStore(broken)

    store.hydrate()
    assert [t.title for t in store.tickets] == [SEED_TITLE]

    ticket = store.create(new_ticket())
    assert store.get(ticket.id) is not None
    assert broken.load() == []
    engine.dispose()
