"""
Crude "are these two facts about the same thing" heuristic.

Two texts are considered similar when they share at least two significant
tokens, or when one contains the other. There is no embedding model behind
this on purpose; the matching behaviour is what the memory commands rely on.
"""

import re
from typing import Final, FrozenSet, Set

MIN_SHARED_TOKENS: Final[int] = 2
MIN_TOKEN_LENGTH: Final[int] = 3

STOP_WORDS: Final[FrozenSet[str]] = frozenset({
    "the", "and", "for", "are", "but", "not", "you", "your", "yours", "all",
    "any", "can", "had", "has", "have", "her", "hers", "him", "his", "its",
    "our", "ours", "out", "she", "they", "them", "their", "theirs", "was",
    "were", "who", "whom", "what", "when", "where", "why", "how", "which",
    "this", "that", "these", "those", "with", "from", "into", "onto", "about",
    "than", "then", "there", "here", "also", "just", "very", "really", "been",
    "being", "does", "did", "doing", "will", "would", "should", "could",
    "shall", "may", "might", "must", "some", "such", "only", "own", "same",
    "too", "more", "most", "other", "each", "few", "both", "nor", "off",
    "over", "under", "again", "once", "because", "while", "until", "user",
    "users", "is", "am", "be", "to", "of", "in", "on", "at", "by", "it",
    "an", "a", "or", "as", "if", "so", "do", "me", "my", "we", "us",
})

_TOKEN_RE: Final = re.compile(r"[a-z0-9']+")


def significant_tokens(text: str) -> Set[str]:
    """Lower-cased word tokens minus stop words, short words and possessives."""
    tokens = set()
    for raw in _TOKEN_RE.findall(text.lower()):
        token = raw.strip("'")
        if token.endswith("'s"):
            token = token[:-2]
        if len(token) < MIN_TOKEN_LENGTH or token in STOP_WORDS:
            continue
        tokens.add(token)
    return tokens


def token_overlap(a: str, b: str) -> int:
    """Number of significant tokens shared by `a` and `b`."""
    return len(significant_tokens(a) & significant_tokens(b))


def is_similar(a: str, b: str) -> bool:
    """
    True when `a` and `b` share MIN_SHARED_TOKENS significant tokens or one
    contains the other (case-insensitive). Blank strings never match.
    """
    left = a.strip().lower()
    right = b.strip().lower()
    if not left or not right:
        return False
    if left in right or right in left:
        return True
    return token_overlap(left, right) >= MIN_SHARED_TOKENS
