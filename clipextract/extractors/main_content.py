"""Main content selection: strategy chain, fallbacks and post-processing.

Stage 1: Orchestrator     (strategies in priority order, best candidate wins)
Stage 2: body fallback    (winner too short while the body is substantial)
Stage 3: raw fallback     (nothing usable after cleanup: original body)
Stage 4: clean_content    (code-language ids, empty paragraphs, whitespace)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import NamedTuple

from clipextract.dom.tree import ELEMENT, Document, build_document
from clipextract.items import ExtractOptions, ScoreWeights

from .annotations import CODE_LANG_PREFIX, MATH_ID_PREFIX, mark_code_languages
from .cleanup import normalize_whitespace
from .scoring import ContentScorer, plain_text
from .strategies import ExtractionCandidate, ExtractionStrategy, Pacer, default_strategies

logger = logging.getLogger(__name__)

BODY_FALLBACK = "body_fallback"
RAW_FALLBACK = "raw_fallback"
RAW_CLEANED = "raw"

_ATTRIBUTES_TO_CLEAN: tuple[str, ...] = ("class", "id", "style")


class ExtractionResult(NamedTuple):
    html: str
    method: str
    score: float


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class Orchestrator:
    """Chain of strategies consulted in descending priority.

    The first strategy that accepts the markup and yields at least one
    candidate decides; its best candidate (score, then priority) wins.  A
    strategy that raises is logged and skipped.  When nothing yields, the
    cleaned markup itself is returned as a zero-score candidate.

    Args:
        strategies: Strategies to consult.  Defaults to a fresh
                    :func:`default_strategies` list built from *weights*.
        weights:    Weight table for the default strategies and the
                    fallback scorer.
    """

    def __init__(
        self,
        strategies: Iterable[ExtractionStrategy] | None = None,
        weights: ScoreWeights | None = None,
    ) -> None:
        if strategies is None:
            strategies = default_strategies(weights)
        self.strategies: list[ExtractionStrategy] = sorted(
            strategies, key=lambda s: s.priority, reverse=True,
        )
        self.scorer = ContentScorer(weights)

    def select(
        self,
        markup: str,
        document: Document | None = None,
        pacer: Pacer | None = None,
    ) -> ExtractionCandidate:
        if document is None:
            document = build_document(markup)
        for strategy in self.strategies:
            name = getattr(strategy, "name", type(strategy).__name__)
            try:
                if not strategy.can_handle(markup):
                    continue
                candidates = strategy.extract(markup, document, pacer)
            except Exception as exc:
                logger.warning("Strategy %s failed: %s", name, exc)
                continue
            if not candidates:
                logger.debug("Strategy %s yielded nothing, falling through", name)
                continue
            best = max(candidates, key=lambda c: c.rank)
            logger.debug(
                "Strategy %s won with score %.1f (%d candidates)", best.source, best.score, len(candidates),
            )
            return best
        logger.debug("No strategy yielded a candidate; using cleaned markup")
        return ExtractionCandidate.create(markup, RAW_CLEANED, 0.0)

    __call__ = select


# ---------------------------------------------------------------------------
# Fallbacks
# ---------------------------------------------------------------------------

def _body_markup(document: Document) -> str:
    body = document.body
    if body is not None:
        return document.inner_html(body)
    return document.serialize()


def apply_fallbacks(
    candidate: ExtractionCandidate,
    document: Document,
    original_markup: str,
    options: ExtractOptions,
    scorer: ContentScorer | None = None,
) -> ExtractionCandidate:
    """Swap a weak winner for the cleaned body, or the original body as last resort."""
    scorer = scorer or ContentScorer()
    text_length = len(plain_text(candidate.fragment))
    body = _body_markup(document)
    body_text = plain_text(body)

    if text_length < options.min_content_length and len(body_text) > options.body_fallback_threshold:
        logger.debug(
            "Candidate too short (%d chars), using body (%d chars)", text_length, len(body_text),
        )
        return ExtractionCandidate.create(body, BODY_FALLBACK, scorer.score(body))

    if text_length:
        return candidate

    if body_text:
        return ExtractionCandidate.create(body, BODY_FALLBACK, scorer.score(body))

    raw_body = _body_markup(build_document(original_markup)) if original_markup else ""
    logger.debug("Cleaned body empty; falling back to original body")
    return ExtractionCandidate.create(raw_body, RAW_FALLBACK, 0.0)


# ---------------------------------------------------------------------------
# Post-processing
# ---------------------------------------------------------------------------

def _is_empty_paragraph(doc: Document, index: int) -> bool:
    if doc.tag_name(index) != "P":
        return False
    return all(
        doc.nodes[c].kind != ELEMENT and not doc.nodes[c].data.strip()
        for c in doc.nodes[index].children
    )


def _keeps_id(value: str) -> bool:
    return value.startswith((MATH_ID_PREFIX, CODE_LANG_PREFIX))


def clean_content(fragment: str, clean_attributes: bool = False) -> str:
    """Normalize a selected fragment into the final article content.

    Marks code languages, removes empty paragraphs, optionally strips
    ``class``/``style`` and non-annotation ``id`` attributes, then collapses
    whitespace outside ``<pre>``.
    """
    if not fragment:
        return ""
    doc = build_document(fragment)
    mark_code_languages(doc)

    for index in doc.find_all(lambda i: _is_empty_paragraph(doc, i)):
        doc.remove(index)

    if clean_attributes:
        for index in doc.find_by_tag("*"):
            for name in _ATTRIBUTES_TO_CLEAN:
                value = doc.get_attribute(index, name)
                if value is None or (name == "id" and _keeps_id(value)):
                    continue
                doc.remove_attribute(index, name)

    return normalize_whitespace(doc.serialize())


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_main_content(
    markup: str,
    original_markup: str = "",
    options: ExtractOptions | None = None,
    orchestrator: Orchestrator | None = None,
    pacer: Pacer | None = None,
    document: Document | None = None,
) -> ExtractionResult:
    """Select, fall back and post-process the main content of cleaned *markup*.

    Returns an ExtractionResult namedtuple:
        html       - final content fragment
        method     - winning candidate source, ``body_fallback``,
                     ``raw_fallback`` or ``raw``
        score      - score of the selected candidate (>= 0)
    """
    options = options or ExtractOptions()
    orchestrator = orchestrator or Orchestrator()
    if document is None:
        document = build_document(markup)

    candidate = orchestrator.select(markup, document, pacer)
    candidate = apply_fallbacks(candidate, document, original_markup, options, orchestrator.scorer)

    try:
        content = clean_content(candidate.fragment, options.clean_attributes)
    except Exception as exc:
        logger.warning("Content post-processing failed: %s", exc)
        content = candidate.fragment

    return ExtractionResult(
        html=content,
        method=candidate.source,
        score=candidate.score,
    )
