import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "none")

import pytest

from secondbrain.errors import ValidationIssue
from secondbrain.models import ConfigEntry
from secondbrain.services.activity import ActivityLog
from secondbrain.services.inbox_log import serialize_inbox_entry


def test_inbox_append_defaults_to_processed(services):
    row = services.inbox.append("call Sarah about Acme", category="person", confidence=0.82)
    payload = serialize_inbox_entry(row)
    assert payload["status"] == "Processed"
    assert payload["category"] == "People"
    assert payload["confidence"] == pytest.approx(0.82)
    assert payload["destination_id"] is None


def test_inbox_append_validates(services):
    with pytest.raises(ValidationIssue):
        services.inbox.append("")
    with pytest.raises(ValidationIssue) as excinfo:
        services.inbox.append("something", confidence=1.5)
    assert excinfo.value.field == "confidence"
    with pytest.raises(ValidationIssue):
        services.inbox.append("something", status="Lost")
    assert services.inbox.list() == []


def test_inbox_list_newest_first_with_status_filter(services):
    first = services.inbox.append("first capture")
    second = services.inbox.append("unclear capture", status="Needs Review", confidence=0.3)
    assert [row.id for row in services.inbox.list()] == [second.id, first.id]
    assert [row.id for row in services.inbox.list(status="Needs Review")] == [second.id]
    assert len(services.inbox.list(limit=1)) == 1


def test_inbox_set_status(services):
    row = services.inbox.append("unclear capture", status="Needs Review")
    updated = services.inbox.set_status(row.id, "Ignored")
    assert updated.status == "Ignored"
    assert services.inbox.list(status="Ignored")[0].raw_input == "unclear capture"
    assert services.inbox.set_status("00000000-0000-0000-0000-000000000000", "Fixed") is None
    with pytest.raises(ValidationIssue):
        services.inbox.set_status(row.id, "Archived")


def test_config_store_round_trip(services):
    assert services.settings.get("digest_hour") is None
    assert services.settings.get("digest_hour", 7) == 7

    services.settings.set("digest_hour", 8)
    services.settings.set("areas", ["home", "work"])
    assert services.settings.get("digest_hour") == 8
    assert services.settings.get("areas") == ["home", "work"]

    services.settings.set("digest_hour", 9)
    assert services.settings.get("digest_hour") == 9

    with services.database.session() as db:
        row = db.query(ConfigEntry).filter(ConfigEntry.key == "digest_hour").one()
        assert row.value == {"data": 9}
        assert db.query(ConfigEntry).count() == 2


def test_config_store_delete(services):
    services.settings.set("token", {"expires": "soon"})
    assert services.settings.delete("token") is True
    assert services.settings.delete("token") is False
    assert services.settings.get("token") is None
    with pytest.raises(ValidationIssue):
        services.settings.get("")


def test_activity_recent_and_summary(services):
    entry = services.entries.create("Admin", "Renew passport")
    services.entries.update(entry.id, {"status": "Done"})
    services.entries.archive(entry.id)

    events = services.activity.recent(entry_id=entry.id)
    assert {event["action"] for event in events} == {"created", "status_changed", "archived"}
    assert events[0]["entry_id"] == str(entry.id)

    summary = services.activity.summary()
    assert summary["by_action"]["created"] == 1
    assert summary["by_action"]["archived"] == 1
    assert summary["total"] == 3
    assert services.activity.recent(entry_id="bogus") == []


def test_activity_log_ignores_unknown_actions(services):
    assert services.activity.log("teleported") is None
    assert services.activity.summary()["total"] == 0


def test_disabled_activity_log_writes_nothing(database):
    activity = ActivityLog(database, enabled=False)
    assert activity.log("created") is None
    assert activity.recent() == []
