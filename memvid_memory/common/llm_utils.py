"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
import re
from typing import Any, Iterable, List, Optional

_FIRST_ARRAY_RE = re.compile(r"\[.*?\]", re.DOTALL)
_TERM_SPLIT_RE = re.compile(r"[,\n]")
_LIST_MARKER_RE = re.compile(r"^(?:[-*•]+|\d+[.)])\s*")
_TERM_STRIP_CHARS = " \t\r[]\"'`"


def strip_code_fences(raw: str) -> str:
    """Remove Markdown code-fence lines (```json ... ```) around a response."""
    text = raw.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = [l for l in lines if not l.strip().startswith("```")]
        text = "\n".join(lines)
    return text.strip()


def parse_llm_json_array(raw: Optional[str]) -> Optional[list]:
    """Parse a JSON array from an LLM response, handling code fences and preamble text.

    Tries in order:
    1. Strip markdown code fences, then json.loads
    2. Extract the first bracketed substring, then json.loads
    3. Return None
    """
    if not raw:
        return None

    text = strip_code_fences(raw)

    try:
        value = json.loads(text)
        if isinstance(value, list):
            return value
    except json.JSONDecodeError:
        pass

    match = _FIRST_ARRAY_RE.search(text)
    if match:
        try:
            value = json.loads(match.group(0))
            if isinstance(value, list):
                return value
        except json.JSONDecodeError:
            pass

    return None


def _split_terms(text: str) -> List[str]:
    terms = []
    for piece in _TERM_SPLIT_RE.split(text):
        piece = _LIST_MARKER_RE.sub("", piece.strip())
        terms.append(piece.strip(_TERM_STRIP_CHARS))
    return terms


def _normalize_terms(items: Iterable[Any]) -> List[str]:
    terms = []
    for item in items:
        if item is None:
            continue
        term = item if isinstance(item, str) else str(item)
        term = term.strip().lower()
        if term:
            terms.append(term)
    return list(dict.fromkeys(terms))


def parse_search_terms(raw: Optional[str]) -> List[str]:
    """Parse search terms proposed by a model.

    Layered fallback: strict JSON array, first bracketed JSON array, then a
    comma/newline split with brackets and quotes stripped. Terms are
    lower-cased, de-duplicated and never empty. Pure function, never raises.

    >>> parse_search_terms('```json\\n["a", "b"]\\n```')
    ['a', 'b']
    >>> parse_search_terms("a, b, c")
    ['a', 'b', 'c']
    """
    if not raw or not raw.strip():
        return []

    items = parse_llm_json_array(raw)
    if items is None:
        items = _split_terms(strip_code_fences(raw))

    return _normalize_terms(items)
