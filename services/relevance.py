"""
Keyword relevance scoring for retrieval.

Tokens are lowercased letter/digit runs (Unicode-aware) of at least two
characters that are not stop words. A chunk scores the sum over distinct
query tokens of its whole-word hit count, capped per token, plus a small
bonus for short chunks when at least one token matched.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List

STOP_WORDS = frozenset({
    # English
    "the", "a", "an", "and", "or", "to", "of", "in", "on", "for", "with",
    "is", "are", "was", "were", "be", "as", "at", "by", "from", "that",
    "this", "it", "you", "your", "we", "our", "they", "their",
    # Arabic
    "في", "من", "على", "الى", "إلى", "عن", "و", "او", "أو", "ده", "دي", "هذا", "هذه",
})

# Anything that is not a letter or digit (underscore counts as punctuation).
_NON_ALNUM = re.compile(r"[^\w\s]|_")

MIN_TOKEN_LENGTH = 2


@dataclass(frozen=True)
class ScoringParams:
    token_cap: int = 5
    short_chunk_threshold: int = 900
    short_chunk_bonus: int = 1


DEFAULT_SCORING = ScoringParams()


def tokenize(text: str) -> List[str]:
    cleaned = _NON_ALNUM.sub(" ", (text or "").lower())
    return [
        tok for tok in cleaned.split()
        if len(tok) >= MIN_TOKEN_LENGTH and tok not in STOP_WORDS
    ]


def _word_pattern(token: str) -> "re.Pattern[str]":
    return re.compile(rf"\b{re.escape(token)}\b")


def score_chunk(query_tokens: Iterable[str], chunk_text: str, params: ScoringParams = DEFAULT_SCORING) -> int:
    """
    Non-negative relevance of chunk_text for the query tokens; 0 when nothing
    matches. A token repeated in the query contributes once per occurrence.
    """
    haystack = (chunk_text or "").lower()
    score = 0
    for token in query_tokens:
        hits = len(_word_pattern(token).findall(haystack))
        if hits:
            score += min(params.token_cap, hits)
    if score and len(chunk_text or "") < params.short_chunk_threshold:
        score += params.short_chunk_bonus
    return score
