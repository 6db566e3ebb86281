"""Pluggable content-extraction strategies.

Each strategy proposes scored :class:`ExtractionCandidate` fragments from a
cleaned document using a different heuristic:

  semantic            — article/main containers and well-known body
                        class/id patterns (incl. localized ones)
  internationalized   — non-Latin or keyword-bearing pages: aggregates text
                        blocks and proposes their parent containers
  comprehensive       — always applicable: text-dense subtrees, aggregate of
                        all paragraph/div text, runs of >= 3 paragraphs

Strategies follow the ``runtime_checkable`` :class:`ExtractionStrategy`
protocol, so custom ones need no base class.  They are never registered
globally: build a list (see :func:`default_strategies`) and hand it to an
:class:`~clipextract.extractors.main_content.Orchestrator`.
"""

from __future__ import annotations

import html
import logging
import re
from collections.abc import Callable, Iterator
from typing import NamedTuple, Protocol, runtime_checkable

from clipextract import settings
from clipextract.dom.tree import ELEMENT, ROOT, TEXT, Document, build_document
from clipextract.items import ScoreWeights

from .scoring import ContentScorer, has_non_latin

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Candidates and pacing
# ---------------------------------------------------------------------------

class ExtractionCandidate(NamedTuple):
    fragment: str
    source: str
    score: float
    priority: int = 0

    @classmethod
    def create(
        cls,
        fragment: str,
        source: str,
        score: float,
        priority: int = 0,
    ) -> ExtractionCandidate:
        """Build a candidate with its score clamped to >= 0."""
        return cls(fragment, source, max(0.0, float(score)), priority)

    @property
    def rank(self) -> tuple[float, int]:
        """Sort key: score first, declared strategy priority breaks ties."""
        return (self.score, self.priority)


class Pacer:
    """Call *callback* once every *interval* ticks (cooperative yield point)."""

    def __init__(
        self,
        callback: Callable[[], None] | None = None,
        interval: int = settings.YIELD_INTERVAL,
    ) -> None:
        self.callback = callback
        self.interval = max(1, interval)
        self.ticks = 0

    def tick(self) -> None:
        self.ticks += 1
        if self.callback is not None and self.ticks % self.interval == 0:
            self.callback()


@runtime_checkable
class ExtractionStrategy(Protocol):
    """Proposes candidate fragments from cleaned markup."""

    name: str
    priority: int  # Higher = consulted first by the orchestrator

    def can_handle(self, markup: str) -> bool:
        """Return True if this strategy should run on *markup*."""
        ...

    def extract(
        self,
        markup: str,
        document: Document | None = None,
        pacer: Pacer | None = None,
    ) -> list[ExtractionCandidate]:
        """Return candidates in proposal order (may be empty)."""
        ...


# ---------------------------------------------------------------------------
# Noise handling shared by all strategies
# ---------------------------------------------------------------------------

_NOISE_TAGS: frozenset[str] = frozenset(
    {
        "NAV", "FOOTER", "ASIDE", "FORM", "BUTTON", "INPUT", "SELECT", "TEXTAREA",
        "SCRIPT", "STYLE", "NOSCRIPT", "IFRAME",
    },
)

# Class/id substrings that indicate non-content elements
_NOISE_SUBSTRINGS: tuple[str, ...] = (
    "sidebar",
    "comment",
    "advertisement",
    "banner",
    "promo",
    "related",
    "share",
    "social",
    "newsletter",
    "cookie",
    "popup",
    "modal",
    "widget",
    "navigation",
    "menu",
    "breadcrumb",
    "footer",
)

_NOISE_TOKENS: frozenset[str] = frozenset({"nav", "ads", "ad"})

_TOKEN_SPLIT_RE = re.compile(r"[\s_\-]+")


def is_noisy(doc: Document, index: int) -> bool:
    """True when the element at *index* looks like boilerplate."""
    if doc.tag_name(index) in _NOISE_TAGS:
        return True
    combined = " ".join(
        (
            doc.get_attribute(index, "class") or "",
            doc.get_attribute(index, "id") or "",
            doc.get_attribute(index, "role") or "",
        ),
    ).lower()
    if not combined.strip():
        return False
    if any(noise in combined for noise in _NOISE_SUBSTRINGS):
        return True
    return bool(_NOISE_TOKENS.intersection(_TOKEN_SPLIT_RE.split(combined)))


def strip_noise_elements(doc: Document, start: int) -> None:
    """Detach every noisy descendant of *start* (in place)."""
    for index in doc.find_all(lambda i: is_noisy(doc, i), start):
        doc.remove(index)


def iter_clean_elements(doc: Document, start: int = ROOT) -> Iterator[int]:
    """Pre-order walk of elements below *start*, skipping noisy subtrees."""
    nodes = doc.nodes
    stack = list(reversed(nodes[start].children))
    while stack:
        current = stack.pop()
        if nodes[current].kind != ELEMENT or is_noisy(doc, current):
            continue
        yield current
        stack.extend(reversed(nodes[current].children))


def clean_inner_html(doc: Document, index: int) -> str:
    """Inner markup of *index* with noise removed from a private copy."""
    copy = doc.clone(index, deep=True)
    top = copy.document_element
    if top is None:
        return ""
    strip_noise_elements(copy, top)
    return copy.inner_html(top)


_HEADINGS: frozenset[str] = frozenset({"H1", "H2", "H3", "H4", "H5", "H6"})


def aggregate_blocks(blocks: list[tuple[str, str]]) -> str:
    """Render ``(tag, text)`` pairs as one fragment; headings keep their tag."""
    parts = []
    for tag, text in blocks:
        name = tag.lower() if tag in _HEADINGS else "p"
        parts.append(f"<{name}>{html.escape(text, quote=False)}</{name}>")
    return "".join(parts)


# ---------------------------------------------------------------------------
# Shared base
# ---------------------------------------------------------------------------

class _BaseStrategy:
    name = "base"
    priority = 0

    def __init__(
        self,
        scorer: ContentScorer | None = None,
        priority: int | None = None,
        max_containers: int = settings.MAX_CANDIDATE_CONTAINERS,
    ) -> None:
        self.scorer = scorer or ContentScorer()
        if priority is not None:
            self.priority = priority
        self.max_containers = max_containers

    def _document(self, markup: str, document: Document | None) -> Document:
        return document if document is not None else build_document(markup)

    def _candidate(self, fragment: str, source: str | None = None) -> ExtractionCandidate:
        return ExtractionCandidate.create(
            fragment,
            source or self.name,
            self.scorer.score(fragment),
            self.priority,
        )

    def _collect_blocks(
        self,
        doc: Document,
        tags: frozenset[str],
        min_length: Callable[[str], int],
        pacer: Pacer,
    ) -> list[tuple[int, str]]:
        """Elements in *tags* whose own text is long enough, in document order."""
        blocks: list[tuple[int, str]] = []
        for index in iter_clean_elements(doc):
            if doc.tag_name(index) not in tags:
                continue
            text = doc.own_text(index)
            if text and len(text) >= min_length(text):
                blocks.append((index, text))
                pacer.tick()
        return blocks


# ---------------------------------------------------------------------------
# Semantic-container strategy
# ---------------------------------------------------------------------------

# (kind, key, value) tried in order; "class"/"id" match substrings.
_SEMANTIC_SELECTORS: tuple[tuple[str, str, str], ...] = (
    ("tag", "ARTICLE", ""),
    ("tag", "MAIN", ""),
    ("attr", "role", "main"),
    ("attr", "itemprop", "articlebody"),
    ("class", "article-body", ""),
    ("class", "article-content", ""),
    ("class", "articlebody", ""),
    ("class", "post-content", ""),
    ("class", "entry-content", ""),
    ("class", "post-body", ""),
    ("class", "story-body", ""),
    ("class", "markdown-body", ""),
    ("class", "main-content", ""),
    ("class", "content", ""),
    ("id", "content", ""),
    ("id", "article", ""),
    ("id", "main", ""),
    # Localized body patterns (pinyin / Romance / Germanic / Cyrillic)
    ("class", "zhengwen", ""),
    ("class", "neirong", ""),
    ("class", "wenzhang", ""),
    ("class", "正文", ""),
    ("class", "contenido", ""),
    ("class", "contenu", ""),
    ("class", "conteudo", ""),
    ("class", "inhalt", ""),
    ("class", "artikel", ""),
    ("class", "статья", ""),
)

_SEMANTIC_HINT_RE = re.compile(
    r"<(?:article|main)\b|role\s*=\s*[\"']?main|itemprop\s*=\s*[\"']?articlebody"
    r"|(?:class|id)\s*=\s*[\"']?[^\"'<>]{0,512}(?:content|article|main|zhengwen|neirong|wenzhang"
    r"|正文|contenido|contenu|conteudo|inhalt|artikel|статья)",
    re.IGNORECASE,
)


class SemanticContainerStrategy(_BaseStrategy):
    """Score the containers that markup conventions mark as the article body."""

    name = "semantic"
    priority = 300

    def can_handle(self, markup: str) -> bool:
        return bool(markup) and _SEMANTIC_HINT_RE.search(markup) is not None

    def _selector_rank(self, doc: Document, index: int) -> int | None:
        tag = doc.tag_name(index)
        class_value = (doc.get_attribute(index, "class") or "").lower()
        id_value = (doc.get_attribute(index, "id") or "").lower()
        for rank, (kind, key, value) in enumerate(_SEMANTIC_SELECTORS):
            if kind == "tag" and tag == key:
                return rank
            if kind == "attr" and (doc.get_attribute(index, key) or "").lower() == value:
                return rank
            if kind == "class" and key in class_value:
                return rank
            if kind == "id" and key in id_value:
                return rank
        return None

    def extract(
        self,
        markup: str,
        document: Document | None = None,
        pacer: Pacer | None = None,
    ) -> list[ExtractionCandidate]:
        doc = self._document(markup, document)
        pacer = pacer or Pacer()
        matches: list[tuple[int, int, int]] = []
        for order, index in enumerate(iter_clean_elements(doc)):
            rank = self._selector_rank(doc, index)
            if rank is not None:
                matches.append((rank, order, index))
        matches.sort()

        candidates: list[ExtractionCandidate] = []
        for _rank, _order, index in matches[: self.max_containers]:
            pacer.tick()
            if len(doc.text_content(index)) < settings.MIN_CONTAINER_TEXT:
                continue
            fragment = clean_inner_html(doc, index)
            if fragment:
                candidates.append(self._candidate(fragment))
        logger.debug("semantic strategy: %d matches, %d candidates", len(matches), len(candidates))
        return candidates


# ---------------------------------------------------------------------------
# Internationalized strategy
# ---------------------------------------------------------------------------

_I18N_BLOCK_TAGS: frozenset[str] = frozenset(
    {"P", "H1", "H2", "H3", "H4", "H5", "H6", "DIV", "LI", "BLOCKQUOTE", "TD", "SECTION", "ARTICLE", "SPAN"},
)

_CONTENT_KEYWORD_RE = re.compile(
    r"(?:class|id)\s*=\s*[\"']?[^\"'<>]{0,512}(?:content|article|post|story|entry|text|body)",
    re.IGNORECASE,
)

_PAGE_LEVEL_TAGS: frozenset[str] = frozenset({"HTML", "BODY", "#document"})


def _min_block_length(text: str) -> int:
    if has_non_latin(text):
        return settings.MIN_BLOCK_TEXT_NON_LATIN
    return settings.MIN_BLOCK_TEXT_LATIN


class InternationalizedStrategy(_BaseStrategy):
    """Aggregate text blocks for pages that Latin-centric container rules miss."""

    name = "internationalized"
    priority = 200

    def can_handle(self, markup: str) -> bool:
        if not markup:
            return False
        return has_non_latin(markup) or _CONTENT_KEYWORD_RE.search(markup) is not None

    def extract(
        self,
        markup: str,
        document: Document | None = None,
        pacer: Pacer | None = None,
    ) -> list[ExtractionCandidate]:
        doc = self._document(markup, document)
        pacer = pacer or Pacer()
        blocks = self._collect_blocks(doc, _I18N_BLOCK_TAGS, _min_block_length, pacer)
        if not blocks:
            return []

        candidates = [
            self._candidate(
                aggregate_blocks([(doc.tag_name(i), text) for i, text in blocks]),
            ),
        ]

        seen: set[int] = set()
        containers: list[int] = []
        for index, _text in blocks:
            parent = doc.parent(index)
            if parent in seen or doc.tag_name(parent) in _PAGE_LEVEL_TAGS:
                continue
            seen.add(parent)
            containers.append(parent)

        for parent in containers[: self.max_containers]:
            pacer.tick()
            fragment = clean_inner_html(doc, parent)
            if fragment:
                candidates.append(self._candidate(fragment))
        logger.debug(
            "internationalized strategy: %d blocks, %d containers", len(blocks), len(containers),
        )
        return candidates


# ---------------------------------------------------------------------------
# Comprehensive strategy
# ---------------------------------------------------------------------------

_DENSE_CONTAINER_TAGS: frozenset[str] = frozenset(
    {"DIV", "SECTION", "ARTICLE", "MAIN", "TD", "BODY", "BLOCKQUOTE"},
)
_AGGREGATE_TAGS: frozenset[str] = frozenset({"P", "DIV"})

_DENSE_TOP_N = 3
_DENSE_MIN_TEXT = 100
_MIN_PARAGRAPH_RUN = 3


class ComprehensiveStrategy(_BaseStrategy):
    """Fallback that always produces something when the page has any text."""

    name = "comprehensive"
    priority = 100

    def can_handle(self, markup: str) -> bool:
        return True

    def _dense_blocks(self, doc: Document, pacer: Pacer) -> list[int]:
        """Rank containers by text mass discounted for links and tag clutter."""
        order = list(iter_clean_elements(doc))
        nodes = doc.nodes
        text_len: dict[int, int] = {}
        link_len: dict[int, int] = {}
        tag_count: dict[int, int] = {}
        for index in reversed(order):
            own = sum(
                len(nodes[c].data.strip()) for c in nodes[index].children if nodes[c].kind == TEXT
            )
            t, links, tags = own, 0, 1
            for child in nodes[index].children:
                if child in text_len:
                    t += text_len[child]
                    links += link_len[child]
                    tags += tag_count[child]
            if nodes[index].name == "A":
                links = t
            text_len[index], link_len[index], tag_count[index] = t, links, tags

        ranked: list[tuple[float, int]] = []
        for index in order:
            if nodes[index].name not in _DENSE_CONTAINER_TAGS:
                continue
            t = text_len[index]
            if t < _DENSE_MIN_TEXT:
                continue
            pacer.tick()
            link_density = link_len[index] / t
            density = (t - link_len[index]) / tag_count[index]
            ranked.append((t * (1.0 - link_density) * min(1.0, density / 20.0), index))
        ranked.sort(key=lambda item: item[0], reverse=True)
        return [index for _, index in ranked[:_DENSE_TOP_N]]

    def _paragraph_runs(self, doc: Document, pacer: Pacer) -> list[int]:
        """Containers holding >= 3 consecutive <p> children."""
        found: list[int] = []
        for index in iter_clean_elements(doc):
            run = best = 0
            for child in doc.element_children(index):
                run = run + 1 if doc.tag_name(child) == "P" else 0
                best = max(best, run)
            if best >= _MIN_PARAGRAPH_RUN:
                found.append(index)
                pacer.tick()
                if len(found) >= self.max_containers:
                    break
        return found

    def extract(
        self,
        markup: str,
        document: Document | None = None,
        pacer: Pacer | None = None,
    ) -> list[ExtractionCandidate]:
        doc = self._document(markup, document)
        pacer = pacer or Pacer()
        candidates: list[ExtractionCandidate] = []

        for index in self._dense_blocks(doc, pacer):
            fragment = clean_inner_html(doc, index)
            if fragment:
                candidates.append(self._candidate(fragment, f"{self.name}.dense"))

        blocks = self._collect_blocks(
            doc, _AGGREGATE_TAGS, lambda _t: settings.MIN_BLOCK_TEXT_LATIN, pacer,
        )
        if blocks:
            fragment = aggregate_blocks([(doc.tag_name(i), text) for i, text in blocks])
            candidates.append(self._candidate(fragment, f"{self.name}.aggregate"))

        for index in self._paragraph_runs(doc, pacer):
            fragment = clean_inner_html(doc, index)
            if fragment:
                candidates.append(self._candidate(fragment, f"{self.name}.structure"))

        logger.debug("comprehensive strategy: %d candidates", len(candidates))
        return candidates


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def default_strategies(weights: ScoreWeights | None = None) -> list[ExtractionStrategy]:
    """Fresh list of the built-in strategies sharing one scorer."""
    scorer = ContentScorer(weights)
    return [
        SemanticContainerStrategy(scorer),
        InternationalizedStrategy(scorer),
        ComprehensiveStrategy(scorer),
    ]
