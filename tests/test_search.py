import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "none")

import pytest

from secondbrain.errors import ValidationIssue
from secondbrain.services.search import UNEMBEDDED_SCORE, score_entries

from conftest import fake_vector


def _seed(services):
    coffee = services.entries.create("Idea", "Coffee tasting notes", content={"notes": "pour over"})
    garden = services.entries.create("Project", "Garden beds", content={"nextAction": "buy soil"})
    budget = services.entries.create("Admin", "Budget review")
    return coffee, garden, budget


def test_vector_search_ranks_by_similarity(services):
    coffee, garden, budget = _seed(services)
    hits = services.search.search("coffee")
    assert hits[0].entry.id == coffee.id
    assert hits[0].relevance_score > 0.9
    scores = [hit.relevance_score for hit in hits]
    assert scores == sorted(scores, reverse=True)
    assert {hit.entry.id for hit in hits} == {coffee.id, garden.id, budget.id}


@pytest.fixture
def java_vectors(fake_provider):
    """Query "java" means coffee here; the programming entry only shares the word."""
    fake_provider.vectors.update(
        {
            "java": [1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
            "Espresso beans": [0.9, 0.1, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0],
            "Java programming course": [0.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0],
        }
    )
    return fake_provider


def test_vector_ranking_prefers_meaning_over_shared_words(services, java_vectors):
    espresso = services.entries.create("Idea", "Espresso beans")
    course = services.entries.create("Reading", "Java programming course")

    hits = services.search.search("java")
    assert [hit.entry.id for hit in hits] == [espresso.id, course.id]
    assert hits[0].relevance_score > 0.9
    assert hits[1].relevance_score == pytest.approx(0.0)

    java_vectors.fail = True
    keyword_hits = services.search.search("java")
    assert [hit.entry.id for hit in keyword_hits] == [course.id]


def test_vector_search_respects_limit_and_category(services):
    coffee, garden, _ = _seed(services)
    assert len(services.search.search("coffee", limit=1)) == 1
    hits = services.search.search("coffee", category="project")
    assert [hit.entry.id for hit in hits] == [garden.id]


def test_entries_without_vectors_rank_last(services, fake_provider):
    fake_provider.fail = True
    orphan = services.entries.create("Idea", "Coffee without vector")
    fake_provider.fail = False
    coffee, _, _ = _seed(services)

    hits = services.search.search("coffee")
    assert hits[0].entry.id == coffee.id
    assert hits[-1].entry.id == orphan.id
    assert hits[-1].relevance_score == UNEMBEDDED_SCORE


def test_archived_entries_are_never_returned(services):
    coffee, _, _ = _seed(services)
    services.entries.archive(coffee.id)
    assert coffee.id not in {hit.entry.id for hit in services.search.search("coffee")}


def test_keyword_fallback_when_provider_down(services, fake_provider):
    coffee, garden, _ = _seed(services)
    services.entries.update(garden.id, {"content": {"notes": "coffee grounds for compost"}})
    fake_provider.fail = True

    hits = services.search.search("COFFEE")
    assert [hit.entry.id for hit in hits] == [garden.id, coffee.id]
    assert all(hit.relevance_score == 0.0 for hit in hits)


def test_keyword_fallback_matches_nothing(services, fake_provider):
    _seed(services)
    fake_provider.fail = True
    assert services.search.search("zeppelin") == []


def test_identical_scores_break_ties_by_id(services):
    first = services.entries.create("Idea", "Garden gnome")
    second = services.entries.create("Idea", "Garden gnome")
    hits = services.search.search("garden gnome", limit=2)
    assert hits[0].relevance_score == pytest.approx(hits[1].relevance_score)
    assert [hit.entry.id for hit in hits] == sorted([first.id, second.id], key=str)


def test_search_validates_input(services):
    with pytest.raises(ValidationIssue):
        services.search.search("   ")
    with pytest.raises(ValidationIssue):
        services.search.search("coffee", limit=0)
    with pytest.raises(ValidationIssue):
        services.search.search("coffee", category="Recipes")


def test_search_logs_activity(services, fake_provider):
    _seed(services)
    services.search.search("coffee")
    fake_provider.fail = True
    services.search.search("coffee")
    events = services.activity.recent(action="searched")
    assert {event["metadata"]["mode"] for event in events} == {"vector_local", "keyword"}


def test_hit_serialization_includes_score(services):
    coffee, _, _ = _seed(services)
    payload = services.search.search("coffee", limit=1)[0].to_dict()
    assert payload["id"] == str(coffee.id)
    assert payload["has_embedding"] is True
    assert "relevance_score" in payload


def test_score_entries_handles_mismatched_dimensions():
    class Row:
        def __init__(self, entry_id, embedding):
            self.id = entry_id
            self.embedding = embedding

    rows = [Row("b", [1.0, 0.0]), Row("a", fake_vector("coffee")), Row("c", None)]
    ranked = score_entries(fake_vector("coffee"), rows)
    assert [row.id for row, _ in ranked] == ["a", "b", "c"]
    assert ranked[0][1] == pytest.approx(1.0)
    assert ranked[1][1] == UNEMBEDDED_SCORE
    assert ranked[2][1] == UNEMBEDDED_SCORE


def test_keyword_fallback_matches_content_as_json_text(services, fake_provider):
    _, garden, _ = _seed(services)
    scored = services.entries.create("Reading", "Benchmarks", content={"score": 4242})
    fake_provider.fail = True

    assert [hit.entry.id for hit in services.search.search("nextAction")] == [garden.id]
    assert [hit.entry.id for hit in services.search.search("4242")] == [scored.id]
