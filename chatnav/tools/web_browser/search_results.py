"""
Search result normalization and rendering.

The search provider returns loosely structured JSON. format_search_results() maps it
defensively onto SearchResultSet: every section is optional, and organic results are
truncated to the configured limit BEFORE ids are assigned, so ids always match what
the user sees (1..N, no gaps).
"""

from __future__ import annotations

from typing import Any

import pydantic

MAX_RELATED_QUESTIONS = 3


class OrganicResult(pydantic.BaseModel):
    """A non-sponsored search hit. `id` is what the user types in `!open <id>`."""
    id: int
    title: str
    link: str
    snippet: str = ""
    position: int | None = None


class KnowledgePanel(pydantic.BaseModel):
    title: str = ""
    type: str = ""
    description: str = ""
    attributes: dict[str, str] = pydantic.Field(default_factory=dict)


class AnswerBox(pydantic.BaseModel):
    title: str = ""
    answer: str = ""
    snippet: str = ""


class RelatedQuestion(pydantic.BaseModel):
    question: str
    answer: str = ""


class SearchResultSet(pydantic.BaseModel):
    """
    Normalized search results for one query.

    Attributes:
        query: The query that produced these results
        organic: Web results with ids 1..N in provider order
        knowledge: Knowledge panel, if the provider returned one
        answer_box: Direct answer, if the provider returned one
        related_questions: Up to three "people also ask" questions
    """
    query: str = ""
    organic: list[OrganicResult] = pydantic.Field(default_factory=list)
    knowledge: KnowledgePanel | None = None
    answer_box: AnswerBox | None = None
    related_questions: list[RelatedQuestion] = pydantic.Field(default_factory=list)

    def get(self, result_id: int) -> OrganicResult | None:
        for result in self.organic:
            if result.id == result_id:
                return result
        return None


def _str(value: Any) -> str:
    return "" if value is None else str(value)


def _as_list(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def format_search_results(data: dict[str, Any], limit: int = 5, query: str = "") -> SearchResultSet:
    """
    Normalize raw provider output into a SearchResultSet.

    Args:
        data: Raw JSON from the search backend
        limit: Maximum number of organic results to keep
        query: The query, recorded on the result set

    Returns:
        SearchResultSet; missing or malformed sections are omitted, never an error.
    """
    organic = [
        OrganicResult(
            id=idx,
            title=_str(result.get("title")) or "Untitled",
            link=_str(result.get("link")),
            snippet=_str(result.get("snippet")),
            position=result.get("position") if isinstance(result.get("position"), int) else None,
        )
        for idx, result in enumerate(_as_list(data.get("organic"))[:limit], start=1)
    ]

    knowledge = None
    if isinstance(graph := data.get("knowledgeGraph"), dict):
        attributes = graph.get("attributes") if isinstance(graph.get("attributes"), dict) else {}
        knowledge = KnowledgePanel(
            title=_str(graph.get("title")),
            type=_str(graph.get("type")),
            description=_str(graph.get("description")),
            attributes={str(k): _str(v) for k, v in attributes.items()},
        )

    answer_box = None
    if isinstance(box := data.get("answerBox"), dict):
        answer_box = AnswerBox(
            title=_str(box.get("title")),
            answer=_str(box.get("answer")),
            snippet=_str(box.get("snippet")),
        )

    related_questions = [
        RelatedQuestion(question=_str(item.get("question")), answer=_str(item.get("answer")))
        for item in _as_list(data.get("peopleAlsoAsk"))[:MAX_RELATED_QUESTIONS]
    ]

    return SearchResultSet(
        query=query,
        organic=organic,
        knowledge=knowledge,
        answer_box=answer_box,
        related_questions=related_questions,
    )


def render_search_results(results: SearchResultSet, prefix: str = "!") -> str:
    """Formats a result set as a chat message with `!open N` hints."""
    message = "*📊 Search Results*\n\n"

    if results.answer_box:
        message += f"*Quick Answer:*\n{results.answer_box.answer or results.answer_box.snippet}\n\n"

    if results.knowledge:
        message += f"*{results.knowledge.title}* ({results.knowledge.type})\n"
        message += f"{results.knowledge.description}\n\n"
        if results.knowledge.attributes:
            for key, value in results.knowledge.attributes.items():
                message += f"- {key}: {value}\n"
            message += "\n"

    message += "*Web Results:*\n"
    if results.organic:
        for result in results.organic:
            message += f"*{result.id}.* {result.title}\n"
            message += f"{result.snippet}\n"
            message += f"Type *{prefix}open {result.id}* to read more\n\n"
    else:
        message += "No results found.\n\n"

    if results.related_questions:
        message += "*People also ask:*\n"
        for item in results.related_questions:
            message += f"- {item.question}\n"

    message += "\n*Commands:*\n"
    message += f"- *{prefix}search [query]* - Search for something new\n"
    message += f"- *{prefix}open [number]* - Open a search result\n"
    message += f"- *{prefix}back* - Return to search results\n"
    return message
