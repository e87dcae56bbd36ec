from __future__ import annotations

import logging

import pytest

from notebookhub.conversations import ConversationLogStore
from notebookhub.database import Database
from notebookhub.notebooks import NotebookStore
from notebookhub.observability import MetricsRecorder
from notebookhub.search import SearchService, build_excerpt
from notebookhub.topics import TopicStore


@pytest.fixture()
def populated(database: Database) -> Database:
    notebooks = NotebookStore(database)
    finance = notebooks.create_notebook("Finance", description="Budget planning", category="Business")
    notebooks.create_notebook("Marketing", description="Brand work", category="Business")
    notebooks.create_document(finance.id, "Quarterly budget", content="Forecast for the BUDGET review in Q3")
    notebooks.create_document(finance.id, "Discounts", content="Offer 100% off_peak pricing")

    topics = TopicStore(database)
    topics.create_topic(title="Budget cycle", topic_key="budget-cycle", project_key="ops")
    topics.create_topic(title="Budget archive", topic_key="budget-archive", project_key="ops", status="archived")

    conversations = ConversationLogStore(database)
    conversations.log_conversation(ai_provider="claude", title="Budget chat", summary="numbers", project_key="ops")
    conversations.log_conversation(ai_provider="openai", title="Hiring", summary="budget for hires", project_key="hr")
    return database


def test_search_spans_every_result_kind(populated: Database) -> None:
    response = SearchService(populated).search("budget")
    kinds = [item["result_type"] for item in response.results]

    assert kinds.count("topic") == 1
    assert kinds.count("conversation") == 2
    assert kinds.count("notebook") == 1
    assert kinds.count("document") == 1
    assert kinds == sorted(kinds, key=["topic", "conversation", "notebook", "document"].index)
    assert response.to_dict()["total"] == 5
    assert response.query == "budget"


def test_search_is_case_insensitive(populated: Database) -> None:
    upper = SearchService(populated).search("BUDGET")
    lower = SearchService(populated).search("budget")
    assert {item["id"] for item in upper.results} == {item["id"] for item in lower.results}


def test_project_filter_applies_to_topics_and_conversations(populated: Database) -> None:
    response = SearchService(populated).search("budget", project_key="hr")
    kinds = {item["result_type"] for item in response.results}
    assert "topic" not in kinds
    conversations = [item for item in response.results if item["result_type"] == "conversation"]
    assert [item["title"] for item in conversations] == ["Hiring"]
    assert any(item["result_type"] == "notebook" for item in response.results)


def test_wildcards_are_matched_literally(populated: Database) -> None:
    percent = SearchService(populated).search("100%")
    assert [item["title"] for item in percent.results] == ["Discounts"]

    underscore = SearchService(populated).search("for_the")
    assert underscore.results == []


def test_limit_applies_per_kind(populated: Database) -> None:
    response = SearchService(populated).search("budget", limit=1)
    kinds = [item["result_type"] for item in response.results]
    assert kinds.count("conversation") == 1


def test_document_results_include_notebook_and_excerpt(populated: Database) -> None:
    response = SearchService(populated).search("review")
    document = next(item for item in response.results if item["result_type"] == "document")
    assert document["notebook_name"] == "Finance"
    assert "review" in document["description"].lower()
    assert "content" not in document


def test_blank_query_is_rejected(database: Database) -> None:
    with pytest.raises(ValueError):
        SearchService(database).search("   ")


def test_search_records_metrics(populated: Database, caplog) -> None:
    metrics = MetricsRecorder(enabled=True, logger=logging.getLogger("tests.search.metrics"))
    with caplog.at_level(logging.INFO, logger="tests.search.metrics"):
        SearchService(populated, metrics=metrics).search("budget", project_key="ops")
    messages = [record.getMessage() for record in caplog.records]
    assert any(message.startswith("notebookhub.search.duration") for message in messages)
    assert any("notebookhub.search.queries" in message and "project_key=ops" in message for message in messages)


def test_build_excerpt_trims_around_match() -> None:
    text = "a" * 200 + " needle " + "b" * 200
    excerpt = build_excerpt(text, "NEEDLE", radius=10)
    assert excerpt is not None
    assert "needle" in excerpt
    assert excerpt.startswith("…") and excerpt.endswith("…")
    assert build_excerpt(None, "x") is None
