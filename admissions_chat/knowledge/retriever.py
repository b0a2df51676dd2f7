"""Keyword scoring over the static knowledge base."""

from __future__ import annotations

from typing import Iterable, List, Sequence

from admissions_chat.domain.schemas import KnowledgeEntry
from admissions_chat.knowledge.corpus import KNOWLEDGE_BASE

TITLE_MATCH_SCORE = 10
KEYWORD_OVERLAP_SCORE = 5
TEXT_MATCH_SCORE = 3
WORD_KEYWORD_SCORE = 8
WORD_TITLE_SCORE = 6
MIN_WORD_LENGTH = 4
DEFAULT_MAX_RESULTS = 3


def score_entry(entry: KnowledgeEntry, query: str) -> int:
    """Relevance of ``entry`` for an already lowercased ``query``."""

    title = entry.title.lower()
    keywords = [keyword.lower() for keyword in entry.keywords]
    score = 0

    if query in title:
        score += TITLE_MATCH_SCORE
    for keyword in keywords:
        if keyword in query or query in keyword:
            score += KEYWORD_OVERLAP_SCORE
    if query in entry.text.lower():
        score += TEXT_MATCH_SCORE

    for word in query.split():
        if len(word) < MIN_WORD_LENGTH:
            continue
        if word in keywords:
            score += WORD_KEYWORD_SCORE
        if word in title:
            score += WORD_TITLE_SCORE
    return score


def search_knowledge_base(
    query: str,
    corpus: Sequence[KnowledgeEntry] = KNOWLEDGE_BASE,
    max_results: int = DEFAULT_MAX_RESULTS,
) -> List[KnowledgeEntry]:
    """Return up to ``max_results`` entries relevant to ``query``, best first.

    Entries scoring zero are dropped. ``sorted`` is stable, so equal scores
    keep corpus order.
    """

    if max_results <= 0:
        return []
    lowered = (query or "").lower()
    scored = [(score_entry(entry, lowered), entry) for entry in corpus]
    ranked = sorted((pair for pair in scored if pair[0] > 0), key=lambda pair: pair[0], reverse=True)
    return [entry for _, entry in ranked[:max_results]]


def get_entries_by_ids(
    ids: Iterable[str], corpus: Sequence[KnowledgeEntry] = KNOWLEDGE_BASE
) -> List[KnowledgeEntry]:
    """Resolve stored source ids back to entries, skipping unknown ids."""

    by_id = {entry.id: entry for entry in corpus}
    return [by_id[entry_id] for entry_id in ids if entry_id in by_id]
