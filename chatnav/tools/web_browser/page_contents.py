"""
Page Contents Processing for the Web Browser Tool

This module turns a fetched webpage into the bounded, navigable view shown to chat
users: a title, a short excerpt, a truncated body, the full text for pagination, and
a numbered list of links the user can follow with `!link N`.

Key Transformations:
--------------------
1. HTML → Clean Text:
   - Readability's article HTML is converted to plaintext with html2text
   - Anchors are rewritten as `text [absolute-url]` so link targets survive
   - Images are dropped, scripts and styles never reach the text

2. Link Extraction:
   - Every <a href> in the full document is resolved against the page URL
   - Non-navigable schemes, fragment-only anchors and file downloads are dropped
   - Links are deduplicated by absolute URL, first occurrence wins
   - Empty link text falls back to title/aria-label/alt, then the hostname

3. Wikipedia Citations:
   - Inline citation markers point at the external source cited in the
     reference list instead of the internal `#cite_note` fragment
   - External links of the reference list are appended as well

Classes:
--------
- Link: One navigable link (text + absolute URL)
- FetchResult: Raw result of fetching a URL (HTML, readability output, plaintext)
- WebpageContent: Final processed representation of a page for one user

Functions:
----------
- build_webpage_content(): Main entry point for FetchResult → WebpageContent conversion
- extract_links(): Link extraction from a parsed document
- html_to_text(): Converts HTML to clean plaintext
- render_webpage_content(): Formats a WebpageContent as a chat message
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterator
from urllib.parse import urljoin, urlparse

import html2text
import lxml
import lxml.etree
import lxml.html
import pydantic

logger = logging.getLogger(__name__)


HTML_SUP_RE = re.compile(r"<sup( [^>]*)?>([\w\-]+)</sup>")
HTML_SUB_RE = re.compile(r"<sub( [^>]*)?>([\w\-]+)</sub>")
HTML_TAGS_SEQ_RE = re.compile(r"(?<=\w)((<[^>]*>)+)(?=\w)")
EMPTY_LINE_RE = re.compile(r"^\s+$", flags=re.MULTILINE)
EXTRA_NEWLINE_RE = re.compile(r"\n(\s*\n)+")

# Links pointing at downloads rather than documents
FILE_EXTENSION_RE = re.compile(
    r"\.(jpg|jpeg|png|gif|bmp|svg|webp|pdf|doc|docx|xls|xlsx|ppt|pptx"
    r"|zip|rar|tar|gz|mp3|mp4|avi|mov|wav|flac|ogg)$",
    re.IGNORECASE,
)
NON_NAVIGABLE_PREFIXES = ("javascript:", "mailto:", "tel:", "sms:", "data:", "blob:")
MIN_LINK_TEXT_LENGTH = 2
WIKIPEDIA_DOMAIN = "wikipedia.org"
ELLIPSIS = "..."

_HTML_PARSER = lxml.html.HTMLParser(encoding="utf-8")


class Link(pydantic.BaseModel):
    """A navigable link on a page. `url` is always absolute."""
    text: str
    url: str


class FetchResult(pydantic.BaseModel):
    """
    Result of fetching a web page and running readability over it.

    Attributes:
        url: The URL that was fetched
        title: Page title (if available)
        html: Raw HTML of the whole page
        content_html: Readability article HTML, or None if readability failed
        plaintext: Text body of the article (or of the whole page when degraded)
        error_message: Why extraction degraded, if it did
    """
    url: str
    title: str | None = None
    html: str = ""
    content_html: str | None = None
    plaintext: str | None = None
    error_message: str | None = None

    def document(self) -> lxml.html.HtmlElement:
        """Parses the raw page HTML into an lxml tree."""
        return parse_document(self.html)


class WebpageContent(pydantic.BaseModel):
    """
    Processed representation of a web page, as stored for one user.

    Attributes:
        url: The page URL
        title: Page title
        site_name: og:site_name or the bare hostname
        excerpt: First line of the extracted text
        text: Text truncated to the configured summary length
        full_text: Complete extracted text, consumed chunk by chunk by `more`
        links: Deduplicated navigable links, 1-based in commands
        degraded: True when only minimal fields could be extracted
    """
    url: str
    title: str
    site_name: str = ""
    excerpt: str = ""
    text: str = ""
    full_text: str = ""
    links: list[Link] = pydantic.Field(default_factory=list)
    degraded: bool = False


def get_domain(url: str) -> str:
    """Extracts the domain from a URL."""
    if "http" not in url:
        # If `get_domain` is called on a domain, add a scheme so that the
        # original domain is returned instead of the empty string.
        url = "http://" + url
    return urlparse(url).netloc


def merge_whitespace(text: str) -> str:
    """Replace newlines with spaces and merge consecutive whitespace into a single space."""
    text = text.replace("\n", " ")
    text = re.sub(r"\s+", " ", text)
    return text


def truncate_text(text: str, num_chars: int) -> str:
    """Keeps the first `num_chars` characters, marking the cut with an ellipsis."""
    if len(text) > num_chars:
        return text[:num_chars] + ELLIPSIS
    return text


def parse_document(html: str) -> lxml.html.HtmlElement:
    """Parses an HTML string into a full document tree (empty input gives an empty <html>)."""
    if not html or not html.strip():
        return lxml.html.Element("html")
    return lxml.html.document_fromstring(html.encode("utf-8", errors="replace"), parser=_HTML_PARSER)


def _get_text(node: lxml.html.HtmlElement) -> str:
    """Extracts all text from an HTML element and merges it into a whitespace-normalized string."""
    return merge_whitespace(" ".join(node.itertext())).strip()


def _has_class(name: str) -> str:
    """XPath predicate matching elements carrying the CSS class `name`."""
    return f"[contains(concat(' ', normalize-space(@class), ' '), ' {name} ')]"


def replace_node_with_text(node: lxml.html.HtmlElement, text: str) -> None:
    """Replaces an lxml node with a text string while preserving surrounding text."""
    previous = node.getprevious()
    parent = node.getparent()
    tail = node.tail or ""
    if previous is None:
        parent.text = (parent.text or "") + text + tail
    else:
        previous.tail = (previous.tail or "") + text + tail
    parent.remove(node)


def document_title(document: lxml.html.HtmlElement) -> str:
    title_element = document.find(".//title")
    if title_element is None:
        return ""
    return merge_whitespace(title_element.text_content()).strip()


def html_plaintext(html: str) -> str:
    """Visible text of an HTML string, one non-empty line per text block."""
    root = parse_document(html)
    for node in root.xpath("//script|//style|//noscript"):
        node.drop_tree()
    body = root.find(".//body")
    text = (body if body is not None else root).text_content()
    lines = (re.sub(r"[ \t\r\f\v]+", " ", line).strip() for line in text.split("\n"))
    return "\n".join(line for line in lines if line)


def _is_non_navigable(href: str) -> bool:
    if not href or href.startswith("#"):
        return True
    return href.lower().startswith(NON_NAVIGABLE_PREFIXES)


def _resolve_url(href: str, base_url: str) -> str | None:
    """Absolute URL for `href`, or None when it has no host or points at a file download."""
    try:
        url = urljoin(base_url, href)  # works with both absolute and relative links
        parsed = urlparse(url)
    except ValueError:
        return None
    if not parsed.netloc:
        return None
    if FILE_EXTENSION_RE.search(parsed.path):
        return None
    return url


def _visible_text(a: lxml.html.HtmlElement, url: str) -> str:
    text = _get_text(a)
    return text if len(text) >= MIN_LINK_TEXT_LENGTH else ""


def _hostname(a: lxml.html.HtmlElement, url: str) -> str:
    return urlparse(url).hostname or ""


# Tried in order, first non-empty result names the link.
_LINK_TEXT_EXTRACTORS: tuple[Callable[[lxml.html.HtmlElement, str], str], ...] = (
    _visible_text,
    lambda a, url: a.get("title") or "",
    lambda a, url: a.get("aria-label") or "",
    lambda a, url: a.get("alt") or "",
    _hostname,
)


def _link_text(a: lxml.html.HtmlElement, url: str) -> str:
    for extract in _LINK_TEXT_EXTRACTORS:
        text = merge_whitespace(extract(a, url)).strip()
        if text:
            return text
    return "Link"


def _cited_source(
    document: lxml.html.HtmlElement, a: lxml.html.HtmlElement, index: int
) -> tuple[str, str] | None:
    """(href, text) of the source a Wikipedia citation marker points at, if `a` is one."""
    if not a.xpath("ancestor::*" + _has_class("reference")):
        return None
    href = (a.get("href") or "").strip()
    if not href.startswith("#"):
        return None
    note = document.get_element_by_id(href[1:], None)
    if note is None:
        return None
    external = note.xpath(".//a" + _has_class("external"))
    if not external or not external[0].get("href"):
        return None
    return external[0].get("href"), _get_text(external[0]) or f"Citation {index}"


def _iter_reference_links(document: lxml.html.HtmlElement) -> Iterator[tuple[str, str]]:
    """Yields (href, text) for the external links of a Wikipedia reference list."""
    references = document.xpath("//*" + _has_class("references") + "//a" + _has_class("external"))
    for index, anchor in enumerate(references):
        if anchor.get("href"):
            yield anchor.get("href"), _get_text(anchor) or f"Reference {index + 1}"


def extract_links(document: lxml.html.HtmlElement, base_url: str) -> list[Link]:
    """
    Extracts the navigable links of a document, in document order.

    Args:
        document: Parsed page (see `parse_document`)
        base_url: URL of the page, used to resolve relative links

    Returns:
        Links with absolute URLs, no duplicates, no javascript:/mailto:/tel:/sms:/data:/blob:
        links, no fragment-only anchors and no links to images, archives, media or office files.

    Example:
        >>> doc = parse_document('<a href="/a">A page</a><a href="/a">again</a><a href="#top">top</a>')
        >>> extract_links(doc, "https://example.com/")
        [Link(text='A page', url='https://example.com/a')]
    """
    links: list[Link] = []
    seen: set[str] = set()

    def add(url: str, text: str) -> None:
        if url not in seen:
            seen.add(url)
            links.append(Link(text=text, url=url))

    def add_href(href: str, text: str) -> None:
        href = href.strip()
        if _is_non_navigable(href):
            return
        url = _resolve_url(href, base_url)
        if url is not None:
            add(url, merge_whitespace(text).strip())

    on_wikipedia = get_domain(base_url).endswith(WIKIPEDIA_DOMAIN)
    citations = 0
    for a in document.iter("a"):
        if on_wikipedia:
            cited = _cited_source(document, a, citations + 1)
            if cited is not None:
                # Citation markers stand for their source, at the marker's position
                citations += 1
                add_href(*cited)
                continue
        href = (a.get("href") or "").strip()
        if _is_non_navigable(href):
            continue
        url = _resolve_url(href, base_url)
        if url is None:
            logger.debug("SKIPPING LINK WITH URL %s", href)
            continue
        add(url, _link_text(a, url))

    if on_wikipedia:
        for href, text in _iter_reference_links(document):
            add_href(href, text)

    logger.debug("Extracted %d unique navigable links from %s", len(links), base_url)
    return links


def extract_site_name(url: str, document: lxml.html.HtmlElement | None = None) -> str:
    """og:site_name if the page declares one, else the hostname without `www.`."""
    if document is not None:
        for meta in document.xpath('//meta[@property="og:site_name"]'):
            content = (meta.get("content") or "").strip()
            if content:
                return content
    try:
        hostname = urlparse(url).hostname or ""
    except ValueError:
        return ""
    return hostname.removeprefix("www.")


def _escape_md(text: str) -> str:
    return text


def _escape_md_section(text: str, snob: bool = False) -> str:
    return text


def html_to_text(html: str) -> str:
    """Converts an HTML string to clean plaintext."""
    html = re.sub(HTML_SUP_RE, r"^{\2}", html)
    html = re.sub(HTML_SUB_RE, r"_{\2}", html)
    # add spaces between tags such as table cells
    html = re.sub(HTML_TAGS_SEQ_RE, r" \1", html)
    # we don't need to escape markdown, so monkey-patch the logic
    orig_escape_md = html2text.utils.escape_md
    orig_escape_md_section = html2text.utils.escape_md_section
    html2text.utils.escape_md = _escape_md
    html2text.utils.escape_md_section = _escape_md_section
    try:
        h = html2text.HTML2Text()
        h.ignore_links = True
        h.ignore_images = True
        h.body_width = 0  # no wrapping
        h.ignore_tables = True
        h.unicode_snob = True
        h.ignore_emphasis = True
        result = h.handle(html).strip()
    finally:
        html2text.utils.escape_md = orig_escape_md
        html2text.utils.escape_md_section = orig_escape_md_section
    return result


def _mark_links(root: lxml.html.HtmlElement, base_url: str) -> None:
    """Rewrites anchors as `text [absolute-url]` so link targets survive text conversion."""
    for a in root.findall(".//a"):
        if a.getparent() is None:
            continue
        text = _get_text(a)
        href = (a.get("href") or "").strip()
        url = None if _is_non_navigable(href) else _resolve_url(href, base_url)
        replace_node_with_text(a, f"{text} [{url}]" if text and url else text)


def _remove_images(root: lxml.html.HtmlElement) -> None:
    for img in root.findall(".//img"):
        if img.getparent() is not None:
            replace_node_with_text(img, "")


def _degraded_content(fetch: FetchResult, summary_length: int) -> WebpageContent:
    """Minimal view built from whatever the fetcher still exposes."""
    raw_text = (fetch.plaintext or "").strip() or "Could not process content from this webpage."
    return WebpageContent(
        url=fetch.url,
        title=fetch.title or "Content Processing Failed",
        site_name=extract_site_name(fetch.url),
        text=truncate_text(raw_text, summary_length),
        full_text=raw_text,
        degraded=True,
    )


def build_webpage_content(
    fetch: FetchResult,
    summary_length: int = 1000,
    max_links: int = 15,
) -> WebpageContent:
    """
    Convert a FetchResult into the WebpageContent stored for a user.

    Processing Pipeline:
    1. Parse the full page (for links and site name) and the readability article
    2. Rewrite article anchors as `text [url]`, drop images
    3. Convert the article to plaintext (full_text) and truncate it (text)
    4. Take the first line of the raw article text as the excerpt
    5. Extract navigable links from the full page, keep the first `max_links`

    Extraction problems never fail the navigation: when readability produced nothing
    or the article cannot be processed, a degraded view with the raw title and text
    is returned instead.

    Args:
        fetch: Output of the page fetcher
        summary_length: Characters of text shown in the initial page view
        max_links: Maximum number of links stored for `!link N`

    Returns:
        WebpageContent for the page
    """
    if fetch.content_html is None:
        logger.info("Using minimal page fields for %s: %s", fetch.url, fetch.error_message)
        return _degraded_content(fetch, summary_length)

    try:
        document = fetch.document()
        article = parse_document(fetch.content_html)
        _mark_links(article, fetch.url)
        _remove_images(article)
        full_text = html_to_text(lxml.etree.tostring(article, encoding="UTF-8").decode())
        full_text = re.sub(EMPTY_LINE_RE, "", full_text)
        # ^^^ Remove lines that are only whitespace
        full_text = re.sub(EXTRA_NEWLINE_RE, "\n\n", full_text)
        # ^^^ Collapse multiple newlines to at most two (one blank line)

        excerpt = (fetch.plaintext or "").strip().split("\n")[0].strip()
        return WebpageContent(
            url=fetch.url,
            title=fetch.title or document_title(document) or "Untitled",
            site_name=extract_site_name(fetch.url, document),
            excerpt=excerpt,
            text=truncate_text(full_text, summary_length),
            full_text=full_text,
            links=extract_links(document, fetch.url)[:max_links],
        )
    except (lxml.etree.LxmlError, ValueError) as e:
        logger.warning("Error processing article from %s", fetch.url, exc_info=e)
        return _degraded_content(fetch, summary_length)


def _shorten_link_text(text: str, max_chars: int = 40) -> str:
    if len(text) > max_chars:
        return text[: max_chars - 3] + ELLIPSIS
    return text


def render_webpage_content(content: WebpageContent, prefix: str = "!", display_links: int = 10) -> str:
    """Formats a page view as a chat message with numbered links and command hints."""
    parts = [f"*📄 {content.title}*\n"]
    if content.site_name:
        parts.append(f"Source: {content.site_name}\n")
    parts.append(f"URL: {content.url}\n\n")
    if content.excerpt:
        parts.append(f"*Summary:* {content.excerpt}\n\n")
    parts.append(content.text)

    if content.links:
        parts.append("\n\n*📌 Navigatable Links:*\n")
        parts.append(
            f"({len(content.links)} links available - use {prefix}link [number] to navigate)\n"
        )
        for idx, link in enumerate(content.links[:display_links], start=1):
            parts.append(f"*{idx}.* {_shorten_link_text(link.text)}\n")
    else:
        parts.append("\n\n*No navigatable links available on this page*\n")

    parts.append("\n*Commands:*\n")
    parts.append(f"- *{prefix}back* - Return to search results\n")
    parts.append(f"- *{prefix}link [number]* - Follow a link on this page\n")
    parts.append(f"- *{prefix}more* - Show more content\n")
    parts.append(f"- *{prefix}search [query]* - Search for something new\n")
    return "".join(parts)
