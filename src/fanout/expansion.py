"""Host list construction: pattern expansion, regex matching and dedup.

Expansion supports two forms that may be combined in one expression:

* ranges, ``web-[1:12]`` -> ``web-1`` ... ``web-12``
* lists, ``web-{prod,dev}`` -> ``web-prod``, ``web-dev``

All ranges are expanded before any list, so ``web-[1:2]-{a,b}`` yields
``web-1-a, web-1-b, web-2-a, web-2-b``.
"""

from __future__ import annotations

import re
from typing import Callable, Iterable, Sequence

from .exceptions import ExpressionError, PatternError
from .models import ExpandedHost, IndexedHost

# (text, index of the opening bracket) -> (replacement values, index of the closing bracket)
SpanExpander = Callable[[str, int], tuple[list[str], int]]


def _range_span(text: str, start: int) -> tuple[list[str], int]:
    end = text.find("]", start)
    if end == -1:
        raise ExpressionError(
            f"Error parsing host expression {text!r}. Wrong range expansion '[a:b]'"
        )
    colon = text.find(":", start, end)
    if colon == -1:
        raise ExpressionError(
            f"Error parsing host expression {text!r}. Missing colon in range expansion '[a:b]'"
        )
    try:
        low = int(text[start + 1 : colon])
        high = int(text[colon + 1 : end])
    except ValueError:
        raise ExpressionError(
            f"Error parsing host expression {text!r}. Range bounds must be integers"
        ) from None
    if low > high:
        raise ExpressionError(
            f"Error parsing host expression {text!r}. Range start {low} is greater than end {high}"
        )
    return [str(value) for value in range(low, high + 1)], end


def _list_span(text: str, start: int) -> tuple[list[str], int]:
    end = text.find("}", start)
    if end == -1:
        raise ExpressionError(
            f"Error parsing host expression {text!r}. Wrong list expansion '{{one,two}}'"
        )
    return text[start + 1 : end].split(","), end


def _rewrite(candidates: list[str], opener: str, expand_span: SpanExpander) -> list[str]:
    """Expand the first ``opener`` span of every candidate until none is left.

    Expanded copies replace their source in place, so the left-to-right
    order of alternatives is kept.
    """
    work = list(candidates)
    i = 0
    while i < len(work):
        text = work[i]
        start = text.find(opener)
        if start == -1:
            i += 1
            continue
        values, end = expand_span(text, start)
        prefix, suffix = text[:start], text[end + 1 :]
        work[i : i + 1] = [f"{prefix}{value}{suffix}" for value in values]
    return work


def expand(expression: str) -> list[ExpandedHost]:
    """Expand one host expression into an ordered list of host names."""
    names = _rewrite([expression], "[", _range_span)
    names = _rewrite(names, "{", _list_span)
    return [ExpandedHost(name) for name in names]


def expand_all(expressions: Iterable[str]) -> list[ExpandedHost]:
    """Expand several expressions, concatenating results in the given order."""
    hosts: list[ExpandedHost] = []
    for expression in expressions:
        hosts.extend(expand(expression))
    return hosts


def match(pattern: str, corpus: Sequence[str]) -> list[ExpandedHost]:
    """Return every corpus entry that contains a match for ``pattern``."""
    try:
        regex = re.compile(pattern)
    except re.error as e:
        raise PatternError(f"Error parsing regex {pattern!r}. {e}") from None
    return [ExpandedHost(name) for name in corpus if regex.search(name)]


def match_all(patterns: Iterable[str], corpus: Sequence[str]) -> list[ExpandedHost]:
    """Match several patterns, concatenating results in the given order."""
    hosts: list[ExpandedHost] = []
    for pattern in patterns:
        hosts.extend(match(pattern, corpus))
    return hosts


def dedup(hosts: Iterable[ExpandedHost]) -> list[IndexedHost]:
    """Drop repeated names, keeping the first occurrence, and index the rest."""
    seen: set[str] = set()
    unique: list[IndexedHost] = []
    for host in hosts:
        if host.name in seen:
            continue
        seen.add(host.name)
        unique.append(IndexedHost(host=host, index=len(unique)))
    return unique
