"""
Topic Matcher

Pairs platform topics (course topics table) with the topics named in a
material analysis. Deterministic fallback chain, first hit wins:

  1. exact title (case-insensitive)
  2. stable topic code
  3. substring containment, either direction
  4. keyword overlap (+ half-weighted description overlap) above a floor

A platform topic with no match is normal: the material simply does not cover it.
"""

import re
from typing import List, Optional, Sequence, Set, Tuple

from database.models import Topic
from generation.schemas import AnalysisTopic


# ─── Constants ────────────────────────────────────────────────────────────────

MATCH_THRESHOLD = 0.3
DESCRIPTION_WEIGHT = 0.5
MIN_TOKEN_LEN = 3


# ─── Tokenization + overlap ───────────────────────────────────────────────────

def _normalize(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def tokenize(text: Optional[str]) -> Set[str]:
    """Lowercase, split on non-alphanumerics, keep tokens longer than two characters."""
    cleaned = re.sub(r"[^a-z0-9\s]", " ", _normalize(text))
    return {tok for tok in cleaned.split() if len(tok) >= MIN_TOKEN_LEN}


def keyword_overlap(a: Optional[str], b: Optional[str]) -> float:
    """|A ∩ B| / max(|A|, |B|) over token sets; 0 when either side has no tokens."""
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / max(len(tokens_a), len(tokens_b))


def combined_score(topic: Topic, candidate: AnalysisTopic) -> float:
    score = keyword_overlap(topic.title, candidate.title)
    if _normalize(topic.description) and _normalize(candidate.description):
        score += DESCRIPTION_WEIGHT * keyword_overlap(topic.description, candidate.description)
    return score


# ─── Matching ─────────────────────────────────────────────────────────────────

def match_topic(
    topic: Topic,
    analysis_topics: Sequence[AnalysisTopic],
    threshold: float = MATCH_THRESHOLD,
) -> Optional[AnalysisTopic]:
    """Return the best analysis topic for one platform topic, or None."""
    title = _normalize(topic.title)
    code = _normalize(topic.topic_code)

    for candidate in analysis_topics:
        if _normalize(candidate.title) == title:
            return candidate

    if code:
        for candidate in analysis_topics:
            if candidate.topic_code and _normalize(candidate.topic_code) == code:
                return candidate

    if title:
        for candidate in analysis_topics:
            cand_title = _normalize(candidate.title)
            if cand_title and (cand_title in title or title in cand_title):
                return candidate

    best: Optional[AnalysisTopic] = None
    best_score = 0.0
    for candidate in analysis_topics:
        score = combined_score(topic, candidate)
        # strict ">" keeps the earliest candidate on ties
        if score > threshold and score > best_score:
            best, best_score = candidate, score
    return best


def match_topics(
    topics: Sequence[Topic],
    analysis_topics: Sequence[AnalysisTopic],
    threshold: float = MATCH_THRESHOLD,
) -> List[Tuple[Topic, Optional[AnalysisTopic]]]:
    """Match every platform topic, preserving input order."""
    return [(t, match_topic(t, analysis_topics, threshold)) for t in topics]
