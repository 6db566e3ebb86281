"""Deterministic quality score for a markup fragment.

    score = len(plain text)
          + structural bonuses (heading > paragraph > list/quote > emphasis)
          + one bonus per non-Latin script family present
          + sentence bonus once enough sentence terminators are seen
          - penalty per noise term found
    clamped to >= 0

No I/O, no mutation: identical input always yields the identical score.
"""

from __future__ import annotations

import html
import re

from clipextract.items import ScoreWeights

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_TAG_RE = re.compile(r"<[^<>]+>")

_HEADING_RE = re.compile(r"<h[1-6][\s>/]", re.IGNORECASE)
_PARAGRAPH_RE = re.compile(r"<p[\s>/]", re.IGNORECASE)
_LIST_RE = re.compile(r"<(?:ul|ol|li|dl)[\s>/]", re.IGNORECASE)
_QUOTE_RE = re.compile(r"<(?:blockquote|q)[\s>/]", re.IGNORECASE)
_EMPHASIS_RE = re.compile(r"<(?:em|strong|b|i|mark)[\s>/]", re.IGNORECASE)

# Runs count once: "..." or "！？" is one terminator.
_SENTENCE_END_RE = re.compile(r"[\u3002\uff01\uff1f.!?]+")

SCRIPT_PATTERNS: dict[str, re.Pattern[str]] = {
    # Han, Hiragana/Katakana, Hangul, CJK compatibility
    "cjk": re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af\uf900-\ufaff]"),
    "cyrillic": re.compile(r"[\u0400-\u04ff]"),
    "hebrew": re.compile(r"[\u0590-\u05ff]"),
    "arabic": re.compile(r"[\u0600-\u06ff\u0750-\u077f]"),
}

DEFAULT_WEIGHTS = ScoreWeights()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def plain_text(fragment: str) -> str:
    """Strip tags, decode entities and collapse whitespace."""
    if not fragment:
        return ""
    return " ".join(html.unescape(_TAG_RE.sub(" ", fragment)).split())


def detect_scripts(text: str) -> set[str]:
    """Return the non-Latin script families present in *text*."""
    return {name for name, pattern in SCRIPT_PATTERNS.items() if pattern.search(text)}


def has_non_latin(text: str) -> bool:
    return any(pattern.search(text) for pattern in SCRIPT_PATTERNS.values())


def count_sentences(text: str) -> int:
    return len(_SENTENCE_END_RE.findall(text))


# ---------------------------------------------------------------------------
# Scorer
# ---------------------------------------------------------------------------

def score(fragment: str, weights: ScoreWeights = DEFAULT_WEIGHTS) -> float:
    """Return the quality score of *fragment* (markup or plain text)."""
    if not fragment:
        return 0.0
    text = plain_text(fragment)
    total = float(len(text))

    if _HEADING_RE.search(fragment):
        total += weights.heading
    if _PARAGRAPH_RE.search(fragment):
        total += weights.paragraph
    if _LIST_RE.search(fragment):
        total += weights.lists
    if _QUOTE_RE.search(fragment):
        total += weights.quote
    if _EMPHASIS_RE.search(fragment):
        total += weights.emphasis

    for family in detect_scripts(text):
        total += getattr(weights, family)

    if count_sentences(text) >= weights.min_sentences:
        total += weights.sentence

    lowered = fragment.lower()
    for term in weights.noise_terms:
        if term in lowered:
            total -= weights.noise_penalty

    return max(0.0, total)


class ContentScorer:
    """Stateless scorer bound to one weight table. Safe to instantiate once and reuse."""

    def __init__(self, weights: ScoreWeights | None = None) -> None:
        self.weights = weights or DEFAULT_WEIGHTS

    def score(self, fragment: str) -> float:
        return score(fragment, self.weights)

    __call__ = score
