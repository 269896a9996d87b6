"""HTML-to-text conversion for email bodies.

Newsletters and receipts are often HTML-only with no text/plain part.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup


def html_to_text(html: str) -> str:
    """Convert an HTML email body to plain text.

    Script, style and head elements are dropped; whitespace collapses to
    single spaces so the result can be sliced and pattern-matched.
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "head"]):
        tag.decompose()

    text = soup.get_text(separator=" ")
    return re.sub(r"\s+", " ", text).strip()
