# tests/test_repository.py

import json

from supportpilot.backend.app.models import StorageEntry
from supportpilot.backend.app.schemas.ticket import EPOCH, TicketEnvironment
from supportpilot.backend.app.store.repository import (
    detect_environment,
    generate_id,
    merge_environment,
)

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)
EDGE_WINDOWS = CHROME_WINDOWS + " Edg/122.0.0.0"
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_2 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Mobile/15E148 Safari/604.1"
)
FIREFOX_ANDROID = "Mozilla/5.0 (Android 14; Mobile; rv:123.0) Gecko/123.0 Firefox/123.0"


def write_raw(session_factory, key, value):
    with session_factory() as db:
        db.add(StorageEntry(key=key, value=value))
        db.commit()


def test_save_then_load(repository, make_ticket):
    tickets = [make_ticket(), make_ticket(priority="Urgent")]
    repository.save(tickets)
    assert repository.load() == tickets

    repository.save(tickets[:1])
    assert repository.load() == tickets[:1]


def test_stored_json_uses_camel_case_keys(repository, session_factory, make_ticket):
    repository.save([make_ticket(steps_to_reproduce="Open the app")])
    with session_factory() as db:
        stored = json.loads(db.get(StorageEntry, repository.key).value)
    assert "createdAt" in stored[0]
    assert stored[0]["stepsToReproduce"] == "Open the app"
    assert "aiOutput" not in stored[0]


def test_missing_or_corrupt_storage_loads_empty(repository, session_factory):
    assert repository.load() == []
    write_raw(session_factory, repository.key, "{not json")
    assert repository.load() == []


def test_non_list_payload_loads_empty(repository, session_factory):
    write_raw(session_factory, repository.key, json.dumps({"tickets": []}))
    assert repository.load() == []


def test_unreadable_entries_are_skipped(repository, session_factory, make_ticket):
    good = make_ticket().to_storage()
    write_raw(session_factory, repository.key, json.dumps([good, {"title": "no id"}]))
    assert [t.id for t in repository.load()] == [good["id"]]


def test_bad_timestamps_load_as_epoch(repository, session_factory, make_ticket):
    record = make_ticket().to_storage()
    record["createdAt"] = "yesterday-ish"
    write_raw(session_factory, repository.key, json.dumps([record]))
    assert repository.load()[0].created_at == EPOCH


def test_clear_removes_collection(repository, make_ticket):
    repository.save([make_ticket()])
    repository.clear()
    assert repository.load() == []
    repository.clear()


def test_generate_id_is_unique():
    assert len({generate_id() for _ in range(50)}) == 50


def test_detect_environment_desktop_browsers():
    chrome = detect_environment(CHROME_WINDOWS)
    assert (chrome.browser, chrome.os, chrome.device_type) == ("Chrome", "Windows", "Desktop")
    assert chrome.user_agent == CHROME_WINDOWS
    assert detect_environment(EDGE_WINDOWS).browser == "Edge"


def test_detect_environment_mobile():
    iphone = detect_environment(SAFARI_IPHONE)
    assert (iphone.browser, iphone.os, iphone.device_type) == ("Safari", "iOS", "Mobile")
    android = detect_environment(FIREFOX_ANDROID)
    assert (android.browser, android.os, android.device_type) == ("Firefox", "Android", "Mobile")


def test_detect_environment_without_user_agent():
    assert detect_environment(None) == TicketEnvironment()
    assert detect_environment("") == TicketEnvironment()


def test_merge_environment_explicit_values_win():
    detected = detect_environment(CHROME_WINDOWS)
    merged = merge_environment(detected, TicketEnvironment(browser="Chrome 122 beta"))
    assert merged.browser == "Chrome 122 beta"
    assert merged.os == "Windows"
    assert merge_environment(detected, None) == detected
