"""Tests for the search assistant and its keyword fallback."""
import json
from types import SimpleNamespace

import httpx
import pytest
from openai import APIConnectionError

from faae_core.errors import ValidationError
from faae_core.models import TaskPriority, TaskStatus
from faae_core.search import (
    OpenAIRanker,
    RankerError,
    SearchAssistant,
    keyword_search,
    parse_ranked_ids,
    task_snapshot,
)


def make_task(task_id, title, description=None, project_id=None, status=TaskStatus.ABERTA):
    return SimpleNamespace(
        id=task_id, title=title, description=description, status=status, priority=TaskPriority.MEDIA,
        project_id=project_id, project=None, assigned_user=None, start_date=None, due_date=None,
    )


TASKS = [
    make_task(1, "Orçamento Vila Madalena"),
    make_task(2, "Planta baixa", "Ajustar cotas", project_id=10),
    make_task(3, "Memorial descritivo"),
]
PROJECT_NAMES = {10: "Reforma Pinheiros"}


class FixedRanker:
    def __init__(self, ids):
        self.ids = ids
        self.snapshots = []

    def rank(self, query, snapshot):
        self.snapshots.append(snapshot)
        return self.ids


class BrokenRanker:
    def rank(self, query, snapshot):
        raise RankerError("timeout")


class TestKeywordSearch:
    """Test the deterministic fallback."""

    def test_case_insensitive_match(self):
        assert [t.id for t in keyword_search("orçamento", TASKS)] == [1]

    def test_short_terms_are_ignored(self):
        """Terms under three characters match nothing."""
        assert keyword_search("de", TASKS) == []
        assert keyword_search("vi la", TASKS) == []

    def test_any_term_matches(self):
        assert [t.id for t in keyword_search("memorial planta", TASKS)] == [2, 3]

    def test_project_name_and_status_are_searched(self):
        assert [t.id for t in keyword_search("pinheiros", TASKS, PROJECT_NAMES)] == [2]
        assert len(keyword_search("aberta", TASKS)) == 3


class TestSearchAssistant:
    """Test ranking and fallback."""

    def test_ranker_order_is_kept(self):
        ranker = FixedRanker([3, 1, 99, 3])
        result = SearchAssistant(ranker).search("qualquer coisa", TASKS)

        assert result.source == "assistant"
        assert [t.id for t in result.tasks] == [3, 1]
        assert [s["id"] for s in ranker.snapshots[0]] == [1, 2, 3]

    def test_ranker_failure_falls_back(self):
        result = SearchAssistant(BrokenRanker()).search("orçamento", TASKS)
        assert result.source == "keyword"
        assert [t.id for t in result.tasks] == [1]

    def test_unconfigured_assistant_uses_keywords(self):
        result = SearchAssistant().search("memorial", TASKS)
        assert result.source == "keyword"
        assert [t.id for t in result.tasks] == [3]

    def test_blank_query(self):
        with pytest.raises(ValidationError):
            SearchAssistant().search("   ", TASKS)

    def test_snapshot_is_json_ready(self):
        snapshot = task_snapshot(TASKS[1], PROJECT_NAMES)
        assert snapshot["project"] == "Reforma Pinheiros"
        assert snapshot["status"] == "aberta"
        json.dumps(snapshot)


class TestParseRankedIds:
    """Test parsing of model answers."""

    @pytest.mark.parametrize("content,expected", [
        ("[3, 1]", [3, 1]),
        ('{"ids": [2]}', [2]),
        ('{"tasks": [{"id": 5}, {"id": "6"}]}', [5, 6]),
        ('{"results": []}', []),
    ])
    def test_accepted_shapes(self, content, expected):
        assert parse_ranked_ids(content) == expected

    @pytest.mark.parametrize("content", [None, "", "not json", '{"other": [1]}', '"text"', '["abc"]'])
    def test_rejected_shapes(self, content):
        with pytest.raises(RankerError):
            parse_ranked_ids(content)


class TestOpenAIRanker:
    """Test the OpenAI-backed ranker with a stubbed client."""

    def _client(self, content=None, error=None):
        def create(**kwargs):
            if error is not None:
                raise error
            message = SimpleNamespace(content=content)
            return SimpleNamespace(choices=[SimpleNamespace(message=message)])

        return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))

    def test_rank(self):
        ranker = OpenAIRanker("key", client=self._client('{"ids": [2, 1]}'))
        assert ranker.rank("planta", [task_snapshot(t) for t in TASKS]) == [2, 1]

    def test_api_error_becomes_ranker_error(self):
        error = APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
        ranker = OpenAIRanker("key", client=self._client(error=error))
        with pytest.raises(RankerError):
            ranker.rank("planta", [])

    def test_assistant_falls_back_on_api_error(self):
        error = APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
        assistant = SearchAssistant(OpenAIRanker("key", client=self._client(error=error)))
        result = assistant.search("orçamento", TASKS)
        assert result.source == "keyword"
        assert [t.id for t in result.tasks] == [1]
