"""
Keyword extraction for fallback search.

Reduces a free-text German/English query to its discriminative tokens.
"""

import re
from typing import List, Optional

# Anything that is not a letter or digit separates tokens (Unicode-aware)
_SEPARATOR_RE = re.compile(r"[\W_]+", re.UNICODE)

MIN_KEYWORD_LENGTH = 3

STOP_WORDS = frozenset({
    # German
    "der", "die", "das", "den", "dem", "des", "ein", "eine", "einer", "einem", "einen",
    "und", "oder", "aber", "wenn", "weil", "dass", "als", "auch", "noch", "schon",
    "ist", "sind", "war", "waren", "wird", "werden", "hat", "haben", "hatte", "hatten",
    "kann", "können", "konnte", "konnten", "muss", "müssen", "soll", "sollen",
    "was", "wer", "wie", "wo", "wann", "warum", "welche", "welcher", "welches",
    "ich", "du", "er", "sie", "es", "wir", "ihr", "mein", "dein", "sein",
    "nicht", "kein", "keine", "keiner", "nur", "sehr", "mehr", "viel", "alle", "alles",
    "für", "mit", "bei", "von", "zu", "nach", "aus", "über", "unter", "zwischen",
    "durch", "gegen", "ohne", "um", "an", "auf", "in", "vor", "hinter", "neben",
    # English
    "the", "a", "an", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could", "should",
    "what", "which", "who", "whom", "this", "that", "these", "those",
    "i", "you", "he", "she", "it", "we", "they", "my", "your", "his", "her", "its",
    "and", "or", "but", "if", "because", "as", "while", "of", "at", "by", "for",
    "with", "about", "against", "between", "into", "through", "during", "before",
    "after", "above", "below", "to", "from", "up", "down", "in", "out", "on", "off",
    "can", "all", "any", "both", "each", "few", "more", "most", "other", "some",
    "such", "no", "nor", "not", "only", "own", "same", "so", "than", "too", "very",
})


def tokenize(text: Optional[str]) -> List[str]:
    """Split text into lower-cased letter/digit runs."""
    if not text:
        return []
    return [t for t in _SEPARATOR_RE.split(text.lower()) if t]


def is_stop_word(token: str) -> bool:
    return token.lower() in STOP_WORDS


def extract_keywords(query: Optional[str]) -> List[str]:
    """
    Extract discriminative keywords from a query.

    Tokens shorter than three characters and stop words are dropped.
    Duplicates are removed keeping first-occurrence order; callers that
    compare results should treat them as sets.

    Args:
        query: Free-text query in any mix of German and English

    Returns:
        Unique lower-cased keywords, possibly empty
    """
    keywords = [
        token for token in tokenize(query)
        if len(token) >= MIN_KEYWORD_LENGTH and token not in STOP_WORDS
    ]
    return list(dict.fromkeys(keywords))
