"""
Relevance scoring for keyword and hybrid search.
"""

import math
import re
from collections import Counter
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

WORD_PATTERN = re.compile(r"[a-z0-9]+")

STOP_WORDS = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "but", "by", "can", "do", "does",
    "for", "from", "has", "have", "how", "i", "if", "in", "into", "is", "it",
    "its", "me", "my", "no", "not", "of", "on", "or", "our", "so", "such",
    "that", "the", "their", "then", "there", "these", "they", "this", "to",
    "was", "we", "what", "when", "where", "which", "who", "why", "will",
    "with", "you", "your",
})

# Hybrid score weights
SIMILARITY_WEIGHT = 0.7
KEYWORD_WEIGHT = 0.3

TITLE_WEIGHT = 2


def tokenize(text: Optional[str]) -> List[str]:
    return WORD_PATTERN.findall((text or "").lower())


def query_terms(query: str) -> List[str]:
    """Lower-cased query tokens minus stop words, first occurrence order."""
    seen = []
    for token in tokenize(query):
        if token not in STOP_WORDS and token not in seen:
            seen.append(token)
    return seen


def hybrid_score(similarity: float, keyword_rank: float) -> float:
    return SIMILARITY_WEIGHT * similarity + KEYWORD_WEIGHT * min(keyword_rank, 1.0)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Raises:
        ValueError: the vectors have different dimensions
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Embedding dimension mismatch: {va.shape} vs {vb.shape}")

    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.dot(va, vb) / denom)


class KeywordRanker:
    """
    BM25-style scorer over a candidate set.

    Title tokens count twice toward term frequency. A query term matches any
    document token it prefixes, so "index" matches "indexing".
    """

    def __init__(self, k1: float = 1.2, b: float = 0.75) -> None:
        self.k1 = k1
        self.b = b
        self.doc_lengths: List[int] = []
        self.avg_doc_length = 0.0
        self.doc_count = 0
        self.token_counts: List[Counter] = []

    def fit(self, documents: Sequence[Tuple[str, str]]) -> "KeywordRanker":
        """Index (title, content) pairs."""
        self.doc_count = len(documents)
        self.doc_lengths = []
        self.token_counts = []

        for title, content in documents:
            tokens = tokenize(title) * TITLE_WEIGHT + tokenize(content)
            self.doc_lengths.append(len(tokens))
            self.token_counts.append(Counter(tokens))

        self.avg_doc_length = (
            sum(self.doc_lengths) / len(self.doc_lengths)
            if self.doc_lengths else 0.0
        )
        return self

    def _term_frequency(self, term: str, doc_index: int) -> int:
        return sum(
            count for token, count in self.token_counts[doc_index].items()
            if token.startswith(term)
        )

    def scores(self, terms: Sequence[str]) -> List[float]:
        """Score every fitted document against the query terms."""
        if not self.doc_count or not terms:
            return [0.0] * self.doc_count

        frequencies: Dict[str, List[int]] = {
            term: [self._term_frequency(term, i) for i in range(self.doc_count)]
            for term in terms
        }

        results = []
        for i in range(self.doc_count):
            doc_length = self.doc_lengths[i]
            score = 0.0
            for term in terms:
                tf = frequencies[term][i]
                if not tf:
                    continue
                df = sum(1 for f in frequencies[term] if f)
                idf = math.log((self.doc_count + 1) / df)

                numerator = tf * (self.k1 + 1)
                length_normalization = (
                    1 - self.b + self.b * (doc_length / self.avg_doc_length)
                )
                score += idf * (numerator / (tf + self.k1 * length_normalization))
            results.append(max(0.0, score))

        return results
