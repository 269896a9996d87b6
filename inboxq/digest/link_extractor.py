"""
Content-link extraction for link-collection newsletters.

Pulls http(s) anchors out of an HTML body, drops navigation, footer, social
and preference links, attaches the surrounding paragraph as a description,
and ranks what is left by how article-like it looks.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag

from inboxq.config import LINK_COLLECTION_MAX_LINKS, LINK_DESCRIPTION_MAX_CHARS

SKIP_URL_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"unsubscribe",
        r"opt[_-]?out",
        r"manage[_-]?preferences",
        r"email[_-]?preferences",
        r"privacy[_-]?policy",
        r"terms[_-]?of[_-]?service",
        r"view[_-]?in[_-]?browser",
        r"view[_-]?online",
        r"update[_-]?profile",
        r"forward[_-]?to[_-]?friend",
        r"facebook\.com",
        r"twitter\.com",
        r"x\.com/share",
        r"linkedin\.com/share",
        r"instagram\.com",
        r"youtube\.com/(channel|user)",
        r"t\.co/",
    )
]

SKIP_TEXTS = (
    "unsubscribe",
    "manage preferences",
    "view in browser",
    "privacy policy",
    "terms of service",
    "contact us",
    "follow us",
    "share",
    "tweet",
    "forward",
    "©",
    "copyright",
)

TRACKING_URL_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"click\.",
        r"track\.",
        r"links\.",
        r"redirect\.",
        r"r\..*\.com",
        r"email\..*\.com/.*click",
        r"list-manage\.com",
        r"mailchimp\.com",
    )
]

ARTICLE_WORDS = re.compile(r"\b(how|why|what|guide|intro|learn|build|create|new|announce)", re.I)
GENERIC_TITLE = re.compile(r"^(read|click|here|more|link|view)$", re.IGNORECASE)

CONTEXT_BLOCK_TAGS = ("p", "li", "td", "div", "article", "section")


@dataclass(frozen=True)
class ExtractedLink:
    title: str
    url: str
    description: str | None = None


def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _should_skip_url(url: str) -> bool:
    return any(p.search(url) for p in SKIP_URL_PATTERNS)


def _should_skip_text(text: str) -> bool:
    lower = text.lower()
    return any(skip in lower for skip in SKIP_TEXTS)


def is_tracking_url(url: str) -> bool:
    return any(p.search(url) for p in TRACKING_URL_PATTERNS)


def _context_for(anchor: Tag, title: str) -> str | None:
    """Longest enclosing block text, minus the link text itself."""
    best = ""
    for parent in anchor.parents:
        if not isinstance(parent, Tag) or parent.name not in CONTEXT_BLOCK_TAGS:
            continue
        content = _clean(parent.get_text(separator=" "))
        if len(content) <= len(title) + 10:
            continue
        context = _clean(content.replace(title, "", 1))
        if len(context) > 10 and len(context) > len(best):
            best = context
        # The nearest qualifying block is the most specific one
        break

    if not best:
        return None
    if len(best) > LINK_DESCRIPTION_MAX_CHARS:
        best = best[:LINK_DESCRIPTION_MAX_CHARS].strip() + "..."
    return best


def extract_links_with_context(html: str) -> list[ExtractedLink]:
    """All content links in document order, de-duplicated by URL."""
    if not html:
        return []

    soup = BeautifulSoup(html, "html.parser")
    seen: set[str] = set()
    links: list[ExtractedLink] = []

    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href.startswith(("http://", "https://")):
            continue
        if _should_skip_url(href) or href in seen:
            continue

        title = _clean(anchor.get_text(separator=" "))
        if len(title) < 3 or _should_skip_text(title):
            continue
        if title.startswith(("http://", "https://")):
            continue

        seen.add(href)
        links.append(ExtractedLink(title=title, url=href, description=_context_for(anchor, title)))

    return links


def score_link(link: ExtractedLink) -> int:
    score = 0
    if len(link.title) > 20:
        score += 2
    if len(link.title) > 50:
        score += 1
    if ARTICLE_WORDS.search(link.title):
        score += 2
    if link.description and len(link.description) > 20:
        score += 2
    if len(link.title) < 10:
        score -= 2
    if GENERIC_TITLE.match(link.title):
        score -= 3
    if is_tracking_url(link.url):
        score -= 1
    return score


def extract_story_links(html: str, max_links: int = LINK_COLLECTION_MAX_LINKS) -> list[ExtractedLink]:
    """Top-ranked story links. Ties keep document order."""
    links = extract_links_with_context(html)
    ranked = sorted(links, key=score_link, reverse=True)
    return ranked[:max_links]
