"""
Natural-language task search.

A language model ranks the task snapshot when one is configured. Any failure
on that path (no credentials, timeout, API error, unusable output) falls back
to a deterministic keyword match, so search keeps working offline.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, Sequence

from openai import OpenAI, OpenAIError

from .config import get_settings
from .errors import ValidationError

logger = logging.getLogger("faae-core.search")

MIN_TERM_LENGTH = 3

SYSTEM_PROMPT = (
    "Você é um assistente de IA especializado em gestão de projetos arquitetônicos da empresa FAAE Projetos. "
    "Sua tarefa é analisar uma consulta do usuário e encontrar as tarefas mais relevantes de uma lista fornecida. "
    "Considere título, descrição, status, prioridade, projeto relacionado, responsável e datas. "
    'Responda APENAS com um objeto JSON no formato {"ids": [<id>, ...]} com os ids das tarefas relevantes, '
    "da mais relevante para a menos relevante. Se nenhuma tarefa corresponder, retorne a lista vazia."
)


class RankerError(Exception):
    """The ranking backend could not produce a usable answer."""


class TaskRanker(Protocol):
    def rank(self, query: str, snapshot: list[dict]) -> list[int]:
        """Return task ids from the snapshot, most relevant first."""
        ...


def _project_name(task: Any, project_names: Optional[Mapping[int, str]]) -> str:
    if project_names is not None:
        return project_names.get(task.project_id, "") if task.project_id is not None else ""
    project = getattr(task, "project", None)
    return project.name if project is not None else ""


def _enum_value(value: Any) -> str:
    return getattr(value, "value", value) or ""


def task_snapshot(task: Any, project_names: Optional[Mapping[int, str]] = None) -> dict:
    """JSON-friendly view of a task handed to the ranker."""
    assignee = getattr(task, "assigned_user", None)
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "status": _enum_value(task.status),
        "priority": _enum_value(task.priority),
        "project": _project_name(task, project_names) or None,
        "assignee": assignee.full_name if assignee is not None else None,
        "start_date": task.start_date.isoformat() if task.start_date else None,
        "due_date": task.due_date.isoformat() if task.due_date else None,
    }


def keyword_search(
    query: str,
    tasks: Sequence[Any],
    project_names: Optional[Mapping[int, str]] = None,
) -> list[Any]:
    """
    Keep tasks whose text contains at least one query term.

    Terms are the lowercase words of the query with three or more characters.
    The text searched is title, description, status, priority and project
    name. Input order is preserved.
    """
    terms = [term for term in query.lower().split() if len(term) >= MIN_TERM_LENGTH]
    if not terms:
        return []

    matches = []
    for task in tasks:
        haystack = " ".join([
            task.title or "",
            task.description or "",
            _enum_value(task.status),
            _enum_value(task.priority),
            _project_name(task, project_names),
        ]).lower()
        if any(term in haystack for term in terms):
            matches.append(task)
    return matches


def parse_ranked_ids(content: Optional[str]) -> list[int]:
    """
    Extract ranked task ids from a model answer.

    Accepts a JSON list, or an object holding the list under ``ids``,
    ``tasks`` or ``results``. List items may be ids or task objects with an
    ``id`` key.

    Raises:
        RankerError: The answer is not in one of those shapes
    """
    if not content:
        raise RankerError("Empty response from ranker")
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as e:
        raise RankerError(f"Ranker returned invalid JSON: {e}")

    if isinstance(parsed, dict):
        for key in ("ids", "tasks", "results"):
            if isinstance(parsed.get(key), list):
                parsed = parsed[key]
                break
        else:
            raise RankerError(f"Unexpected ranker response keys: {sorted(parsed)}")
    if not isinstance(parsed, list):
        raise RankerError(f"Unexpected ranker response type: {type(parsed).__name__}")

    ids = []
    for item in parsed:
        raw = item.get("id") if isinstance(item, dict) else item
        try:
            ids.append(int(raw))
        except (TypeError, ValueError):
            raise RankerError(f"Ranker returned a non-numeric id: {raw!r}")
    return ids


class OpenAIRanker:
    """Ranks tasks with an OpenAI chat completion in JSON mode."""

    def __init__(self, api_key: str, model: str = "gpt-4o", timeout: float = 15.0, client: Optional[OpenAI] = None):
        self.model = model
        self.timeout = timeout
        # Retries disabled so a slow backend falls back within the timeout
        self._client = client or OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    def rank(self, query: str, snapshot: list[dict]) -> list[int]:
        prompt = (
            f"Lista de Tarefas (JSON):\n{json.dumps(snapshot, ensure_ascii=False, indent=2)}\n\n"
            f'Consulta do Usuário:\n"{query}"'
        )
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
                max_tokens=4000,
                timeout=self.timeout,
            )
        except OpenAIError as e:
            raise RankerError(f"OpenAI request failed: {e}")

        if not response.choices:
            raise RankerError("OpenAI returned no choices")
        return parse_ranked_ids(response.choices[0].message.content)


@dataclass
class SearchResult:
    tasks: list[Any]
    source: str  # "assistant" or "keyword"


class SearchAssistant:
    """Search front-end choosing between the ranker and the keyword fallback."""

    def __init__(self, ranker: Optional[TaskRanker] = None):
        self.ranker = ranker

    def search(
        self,
        query: str,
        tasks: Sequence[Any],
        project_names: Optional[Mapping[int, str]] = None,
    ) -> SearchResult:
        """
        Rank tasks against a free-text query.

        Raises:
            ValidationError: Blank query
        """
        if not query or not query.strip():
            raise ValidationError("Search query must not be empty", field="query")
        query = query.strip()

        if self.ranker is None:
            logger.warning("Search assistant not configured, using keyword search")
        else:
            try:
                ranked_ids = self.ranker.rank(query, [task_snapshot(t, project_names) for t in tasks])
            except Exception as e:
                logger.warning(f"Ranker failed, using keyword search: {e}", exc_info=not isinstance(e, RankerError))
            else:
                by_id = {task.id: task for task in tasks}
                ranked = [by_id[task_id] for task_id in dict.fromkeys(ranked_ids) if task_id in by_id]
                logger.info(f"Assistant search '{query}': {len(ranked)} of {len(tasks)} tasks")
                return SearchResult(tasks=ranked, source="assistant")

        matches = keyword_search(query, tasks, project_names)
        logger.info(f"Keyword search '{query}': {len(matches)} of {len(tasks)} tasks")
        return SearchResult(tasks=matches, source="keyword")


def get_search_assistant() -> SearchAssistant:
    """Assistant configured from settings; keyword-only without an API key."""
    settings = get_settings()
    if not settings.openai_api_key:
        return SearchAssistant()
    return SearchAssistant(OpenAIRanker(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        timeout=settings.search_timeout_seconds,
    ))
