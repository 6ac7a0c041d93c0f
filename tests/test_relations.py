import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "none")

import pytest

from secondbrain.errors import ValidationIssue


@pytest.fixture
def network(services):
    sarah = services.entries.create("People", "Sarah coffee chat", content={"company": "Acme"})
    roadmap = services.entries.create("Project", "Acme coffee roadmap")
    garden = services.entries.create("Idea", "Garden compost")
    return sarah, roadmap, garden


def test_suggest_related_finds_similar_unlinked_entries(services, network):
    sarah, roadmap, garden = network
    hits = services.relations.suggest_related(sarah.id)
    assert [hit.entry.id for hit in hits] == [roadmap.id]
    assert hits[0].relevance_score >= 0.75


def test_linking_removes_entry_from_suggestions(services, network):
    sarah, roadmap, _ = network
    relation = services.relations.add_relation(sarah.id, roadmap.id)
    assert relation.relation_type == "related_to"
    assert services.relations.suggest_related(sarah.id) == []
    # the link is honoured from the other side too
    assert services.relations.suggest_related(roadmap.id) == []


def test_suggest_related_threshold_and_limit(services, network):
    sarah, roadmap, _ = network
    assert services.relations.suggest_related(sarah.id, threshold=0.95) == []
    assert len(services.relations.suggest_related(sarah.id, threshold=0.0, limit=1)) == 1
    with pytest.raises(ValidationIssue):
        services.relations.suggest_related(sarah.id, threshold=1.5)
    with pytest.raises(ValidationIssue):
        services.relations.suggest_related(sarah.id, limit=0)


def test_suggest_related_excludes_archived_candidates(services, network):
    sarah, roadmap, _ = network
    services.entries.archive(roadmap.id)
    assert services.relations.suggest_related(sarah.id) == []


def test_suggest_related_without_source_vector(services, fake_provider, network):
    fake_provider.fail = True
    lonely = services.entries.create("Idea", "Acme coffee idea")
    assert services.relations.suggest_related(lonely.id) == []
    assert services.relations.suggest_related("00000000-0000-0000-0000-000000000000") == []
    assert services.relations.suggest_related("bogus") == []


def test_get_linked_covers_both_directions_once(services, network):
    sarah, roadmap, garden = network
    first = services.relations.add_relation(sarah.id, roadmap.id, "part_of")
    services.relations.add_relation(garden.id, sarah.id, "inspired_by")
    services.relations.add_relation(roadmap.id, sarah.id, "related_to")

    linked = services.relations.get_linked(sarah.id)
    assert [item.entry.id for item in linked] == [roadmap.id, garden.id]
    assert linked[0].relation.id == first.id
    assert linked[0].direction == "outgoing"
    assert linked[1].direction == "incoming"

    payload = linked[0].to_dict()
    assert payload["relation"]["relation_type"] == "part_of"
    assert payload["entry"]["id"] == str(roadmap.id)


def test_get_linked_skips_archived(services, network):
    sarah, roadmap, garden = network
    services.relations.add_relation(sarah.id, roadmap.id)
    services.relations.add_relation(sarah.id, garden.id)
    services.entries.archive(garden.id)
    assert [item.entry.id for item in services.relations.get_linked(sarah.id)] == [roadmap.id]
    assert services.relations.get_linked("bogus") == []


def test_add_relation_validation(services, network):
    sarah, roadmap, _ = network
    with pytest.raises(ValidationIssue) as excinfo:
        services.relations.add_relation(sarah.id, sarah.id)
    assert excinfo.value.error_type == "self_link"

    with pytest.raises(ValidationIssue) as excinfo:
        services.relations.add_relation(sarah.id, roadmap.id, "knows")
    assert excinfo.value.field == "relation_type"

    assert services.relations.add_relation(sarah.id, "00000000-0000-0000-0000-000000000000") is None
    assert services.relations.add_relation("bogus", roadmap.id) is None


def test_remove_relation(services, network):
    sarah, roadmap, _ = network
    relation = services.relations.add_relation(sarah.id, roadmap.id)
    assert services.relations.remove_relation(relation.id) is True
    assert services.relations.remove_relation(relation.id) is False
    assert services.relations.remove_relation("bogus") is False
    assert services.relations.get_linked(sarah.id) == []


def test_suggest_for_text(services, network):
    sarah, roadmap, _ = network
    hits = services.relations.suggest_for_text("coffee at acme", threshold=0.5)
    assert {hit.entry.id for hit in hits} == {sarah.id, roadmap.id}

    excluded = services.relations.suggest_for_text("coffee at acme", exclude_id=roadmap.id, threshold=0.5)
    assert [hit.entry.id for hit in excluded] == [sarah.id]


def test_suggest_for_text_provider_failure(services, fake_provider, network):
    fake_provider.fail = True
    assert services.relations.suggest_for_text("coffee at acme") == []
