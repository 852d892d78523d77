from conftest import SERPER_RESPONSE

from chatnav.tools.web_browser.search_results import (
    SearchResultSet,
    format_search_results,
    render_search_results,
)


def test_format_truncates_before_assigning_ids():
    results = format_search_results(SERPER_RESPONSE, limit=5, query="climate change")
    assert results.query == "climate change"
    assert [r.id for r in results.organic] == [1, 2, 3, 4, 5]
    assert [r.title for r in results.organic] == [f"Result {i}" for i in range(1, 6)]
    assert results.get(3).link == "https://site3.example/article"
    assert results.get(6) is None


def test_format_keeps_optional_sections():
    results = format_search_results(SERPER_RESPONSE)
    assert results.knowledge.title == "Climate change"
    assert results.knowledge.attributes == {"Cause": "Greenhouse gases"}
    assert results.answer_box.answer == "Global warming and its effects."
    assert [q.question for q in results.related_questions] == ["Question 1?", "Question 2?", "Question 3?"]


def test_format_omits_missing_sections():
    results = format_search_results({"organic": [{"title": "Only", "link": "https://only.example"}]})
    assert len(results.organic) == 1
    assert results.knowledge is None
    assert results.answer_box is None
    assert results.related_questions == []


def test_format_tolerates_malformed_input():
    results = format_search_results(
        {"organic": ["junk", {"link": "https://a.example"}, None], "knowledgeGraph": "nope", "peopleAlsoAsk": {}}
    )
    assert [(r.id, r.title) for r in results.organic] == [(1, "Untitled")]
    assert results.knowledge is None
    assert results.related_questions == []


def test_format_empty_response():
    results = format_search_results({})
    assert results == SearchResultSet()


def test_render_search_results():
    message = render_search_results(format_search_results(SERPER_RESPONSE, limit=5), prefix="!")
    assert message.startswith("*📊 Search Results*")
    assert "*Quick Answer:*\nGlobal warming and its effects." in message
    assert "*Climate change* (Topic)" in message
    assert "*1.* Result 1\nSnippet for result 1\nType *!open 1* to read more" in message
    assert "*5.* Result 5" in message
    assert "*6.*" not in message
    assert "*People also ask:*\n- Question 1?" in message
    assert "- *!search [query]* - Search for something new" in message


def test_render_without_results():
    message = render_search_results(SearchResultSet(query="nothing"), prefix="/")
    assert "No results found." in message
    assert "*/open [number]*" in message
