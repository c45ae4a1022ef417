"""Query similarity used to decide when working memory is stale."""

import re
from typing import FrozenSet, Protocol

# Word separators: whitespace plus the two most common punctuation marks.
_WORD_SPLIT = re.compile(r"[\s.,]+")


class QuerySimilarity(Protocol):
    """Scores how alike two retrieval queries are, in [0, 1]."""

    def similarity(self, a: str, b: str) -> float:
        ...


def query_words(text: str) -> FrozenSet[str]:
    """Split a query into its set of words."""
    return frozenset(w for w in _WORD_SPLIT.split(text) if w)


class WordOverlapSimilarity:
    """Jaccard overlap of the two queries' word sets.

    Comparison is case-sensitive. An empty query on either side scores 0.
    """

    def similarity(self, a: str, b: str) -> float:
        if not a or not b:
            return 0.0

        words_a = query_words(a)
        words_b = query_words(b)
        union = words_a | words_b
        if not union:
            return 0.0
        return len(words_a & words_b) / len(union)
