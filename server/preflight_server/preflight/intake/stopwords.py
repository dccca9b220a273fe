"""Deterministic keyword fallback used when the local LLM is unavailable."""

from __future__ import annotations

import string
from typing import List

STOP_WORDS = frozenset(
    {
        # question words
        "what", "when", "where", "which", "who", "whom", "whose", "why", "how",
        # articles / determiners
        "a", "an", "the", "this", "that", "these", "those", "some", "any",
        "all", "each", "every", "no",
        # pronouns
        "i", "me", "my", "mine", "myself", "you", "your", "yours", "yourself",
        "he", "him", "his", "she", "her", "hers", "it", "its", "we", "us",
        "our", "ours", "they", "them", "their", "theirs",
        # auxiliary / modal verbs
        "am", "is", "are", "was", "were", "be", "been", "being", "do", "does",
        "did", "done", "have", "has", "had", "having", "will", "would",
        "shall", "should", "can", "could", "may", "might", "must",
        # prepositions
        "about", "above", "after", "against", "at", "before", "below",
        "between", "by", "during", "for", "from", "in", "into", "of", "off",
        "on", "onto", "out", "over", "through", "to", "under", "until", "up",
        "upon", "with", "within", "without",
        # conjunctions
        "and", "but", "or", "nor", "so", "yet", "if", "because", "as",
        "than", "then", "while", "though", "although",
        # filler
        "please", "just", "also", "tell", "know", "there", "here", "not",
        # meta words about the recall machinery itself
        "memory", "memories", "hint", "hints", "recall", "remember", "remind",
    }
)


def stopword_terms(text: str) -> List[str]:
    """Return the content words of *text* in their original order."""
    terms: List[str] = []
    for token in text.lower().split():
        token = token.strip(string.punctuation)
        if len(token) > 1 and token not in STOP_WORDS:
            terms.append(token)
    return terms
