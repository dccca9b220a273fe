"""Message normalizer: strips transport metadata and gates eligibility.

The host hands us the raw turn text, which carries message-id annotations,
timestamp prefixes and system-injected blocks alongside what the user
actually typed.  Cleaning is an ordered list of pure ``str -> str`` rules;
eligibility checks run on the cleaned text.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, List, Tuple, Union

from preflight import config as cfg
from preflight.models import NormalizedMessage, Skip

logger = logging.getLogger(__name__)

Rule = Callable[[str], str]

# ── Patterns ─────────────────────────────────────────────────────────

_MESSAGE_ID = re.compile(r"\n?\[message_id:\s*[^\]]+\]")
_TIMESTAMP_PREFIX = re.compile(
    r"^\[(?:Mon|Tue|Wed|Thu|Fri|Sat|Sun)\s+\d{4}-\d{2}-\d{2}\s+\d{1,2}:\d{2}\s+[A-Z]+\]\s*",
    re.MULTILINE,
)
_SYSTEM_LINE = re.compile(r"^System:\s*\[.*?\].*$", re.MULTILINE)
_SYSTEM_BRACKET_BLOCK = re.compile(r"System:\s*\[[^\]]*\]\s*\{[\s\S]*?\n\}")
_SYSTEM_BRACE_BLOCK = re.compile(r"System:\s*\{[\s\S]*?\n\}")

ACKNOWLEDGEMENT_PATTERNS = (
    re.compile(
        r"(ok|okay|sure|thanks|thank you|yes|no|yep|nope|got it|sounds good)\.?",
        re.IGNORECASE,
    ),
    re.compile(r"(hi|hello|hey|morning|evening)\.?", re.IGNORECASE),
)


# ── Rules ────────────────────────────────────────────────────────────

def strip_message_ids(text: str) -> str:
    return _MESSAGE_ID.sub("", text)


def strip_timestamp_prefixes(text: str) -> str:
    return _TIMESTAMP_PREFIX.sub("", text)


def strip_system_lines(text: str) -> str:
    return _SYSTEM_LINE.sub("", text)


def strip_system_bracket_blocks(text: str) -> str:
    return _SYSTEM_BRACKET_BLOCK.sub("", text)


def strip_system_brace_blocks(text: str) -> str:
    return _SYSTEM_BRACE_BLOCK.sub("", text)


def trim(text: str) -> str:
    return text.strip()


CLEANING_RULES: List[Tuple[str, Rule]] = [
    ("message_ids", strip_message_ids),
    ("timestamp_prefixes", strip_timestamp_prefixes),
    ("system_lines", strip_system_lines),
    ("system_bracket_blocks", strip_system_bracket_blocks),
    ("system_brace_blocks", strip_system_brace_blocks),
    ("trim", trim),
]


def clean(text: str) -> str:
    """Apply every cleaning rule in order until the text stops changing.

    Rules only ever remove characters, so each productive pass shortens the
    text and the loop terminates.  Running to a fixed point makes ``clean``
    idempotent even when one removal exposes another match.
    """
    while True:
        cleaned = text
        for _name, rule in CLEANING_RULES:
            cleaned = rule(cleaned)
        if cleaned == text:
            return cleaned
        text = cleaned


def is_acknowledgement(text: str) -> bool:
    return any(p.fullmatch(text) for p in ACKNOWLEDGEMENT_PATTERNS)


def normalize(raw_text: str | None) -> Union[NormalizedMessage, Skip]:
    """Return the cleaned user message, or a ``Skip`` explaining why not."""
    if not raw_text:
        return Skip("empty")
    if len(raw_text) < cfg.MIN_PROMPT_LENGTH:
        logger.debug("preflight skip: prompt too short (%d chars)", len(raw_text))
        return Skip("too_short")

    text = clean(raw_text)

    if len(text) < cfg.MIN_CLEANED_LENGTH:
        logger.debug("preflight skip: cleaned prompt too short")
        return Skip("cleaned_too_short")
    if text.startswith("/"):
        logger.debug("preflight skip: slash command")
        return Skip("slash_command")
    if is_acknowledgement(text):
        logger.debug("preflight skip: acknowledgement")
        return Skip("acknowledgement")

    return NormalizedMessage(text=text)
