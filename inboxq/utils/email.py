"""
Address normalization.

Senders arrive either bare ("alice@example.com") or with a display name
("Alice <Alice@Example.com>"). Profiles, rules and self-mail detection all
compare the lowercased bare address.
"""

from __future__ import annotations

import re

_ANGLE_ADDRESS = re.compile(r"<\s*([^<>\s]+)\s*>")


def extract_email_address(email_address: str | None) -> str:
    """
    Lowercased bare address; input without angle brackets is returned trimmed.

    >>> extract_email_address("John Doe <John@Company.com>")
    'john@company.com'
    """
    if not email_address:
        return ""
    match = _ANGLE_ADDRESS.search(email_address)
    address = match.group(1) if match else email_address
    return address.strip().lower()


def extract_domain_only(email_address: str | None) -> str:
    """Domain of an address, or "" when there is no '@'."""
    _, at, domain = extract_email_address(email_address).rpartition("@")
    return domain if at else ""


def _without_plus_tag(address: str) -> str:
    local, at, domain = address.partition("@")
    return local.split("+", 1)[0] + at + domain


def is_same_address(left: str | None, right: str | None) -> bool:
    """True when both name the same mailbox, ignoring case and +tags."""
    left_address = extract_email_address(left)
    right_address = extract_email_address(right)
    if not left_address or not right_address:
        return False
    return _without_plus_tag(left_address) == _without_plus_tag(right_address)
