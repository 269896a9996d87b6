"""
Writing-style analysis of the user's own sent mail.

Each sent message gets a formality score in [0, 1]: the share of formal
markers among all formal and casual markers found in it. The greeting
(first line) and sign-off (last few lines) each count once when they lean
formal or casual; the rest of the body contributes word-level markers.
A message with no markers scores 0.5.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

NEUTRAL_FORMALITY = 0.5
SIGNOFF_WINDOW_LINES = 5

_GREETING = re.compile(
    r"^\s*(good morning|good afternoon|good evening|dear|hello|hey|hi)\b", re.IGNORECASE
)
FORMAL_GREETINGS = frozenset({"dear", "good morning", "good afternoon", "good evening"})
CASUAL_GREETINGS = frozenset({"hey", "hi"})

_SIGNOFF = re.compile(
    r"^\s*(best regards|kind regards|warm regards|many thanks|thank you!?|thanks!?|"
    r"sincerely|regards|best|cheers|yours|take care|talk soon|ttyl|(?:xo)+|love)[,.!]?\s*$",
    re.IGNORECASE | re.MULTILINE,
)
FORMAL_SIGNOFFS = frozenset(
    {
        "best regards",
        "kind regards",
        "warm regards",
        "many thanks",
        "thank you",
        "sincerely",
        "regards",
        "yours",
    }
)
CASUAL_SIGNOFFS = frozenset({"cheers", "thanks!", "thank you!", "talk soon", "ttyl", "love"})

FORMAL_MARKERS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\bplease\b",
        r"\bthank you\b",
        r"\bI would appreciate\b",
        r"\bI hope this (?:email |message )?finds you well\b",
        r"\bplease let me know\b",
    )
]
CASUAL_MARKERS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\byeah\b",
        r"\bnope\b",
        r"\bawesome\b",
        r"\bcool\b",
        r"\b(?:lol|haha|hehe)\b",
        r"!{2,}",
    )
]


@dataclass(frozen=True)
class MessageStyle:
    greeting: str | None
    signoff: str | None
    formality: float
    word_count: int


def _greeting(lines: list[str]) -> str | None:
    first = next((line for line in lines if line.strip()), "")
    match = _GREETING.match(first)
    return match.group(1).lower() if match else None


def _signoff(lines: list[str]) -> str | None:
    tail = "\n".join(line for line in lines if line.strip())
    tail = "\n".join(tail.splitlines()[-SIGNOFF_WINDOW_LINES:])
    matches = _SIGNOFF.findall(tail)
    return matches[-1].lower() if matches else None


def analyze_message(body: str) -> MessageStyle:
    """Greeting, sign-off and formality of one sent message body."""
    lines = body.splitlines()
    greeting = _greeting(lines)
    signoff = _signoff(lines)

    formal = sum(len(pattern.findall(body)) for pattern in FORMAL_MARKERS)
    casual = sum(len(pattern.findall(body)) for pattern in CASUAL_MARKERS)
    if greeting in FORMAL_GREETINGS:
        formal += 1
    elif greeting in CASUAL_GREETINGS:
        casual += 1
    if signoff in FORMAL_SIGNOFFS:
        formal += 1
    elif signoff in CASUAL_SIGNOFFS or (signoff or "").startswith("xo"):
        casual += 1

    total = formal + casual
    return MessageStyle(
        greeting=greeting,
        signoff=signoff,
        formality=formal / total if total else NEUTRAL_FORMALITY,
        word_count=len(body.split()),
    )


def average_formality(styles: list[MessageStyle]) -> float:
    if not styles:
        return NEUTRAL_FORMALITY
    return sum(style.formality for style in styles) / len(styles)
