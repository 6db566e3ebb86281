"""clipextract.query - single-document extraction API.

Turns a page's raw markup into an :class:`~clipextract.items.Article`
without any I/O.  The call is total: malformed, empty or non-string input
degrades to a lower-quality Article and never raises.

Basic usage::

    from clipextract import extract

    article = extract(html, "https://example.com/post", "Untitled")
    print(article.title)
    print(article.byline)
    print(article.content)

With options and custom strategies::

    from clipextract import ExtractOptions, ScoreWeights, default_strategies

    strategies = default_strategies(ScoreWeights(paragraph=800))
    article = extract(
        html,
        base_uri="https://example.com/post",
        options=ExtractOptions(max_content_size=1_000_000, clean_attributes=True),
        strategies=strategies,
    )
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from clipextract import settings
from clipextract.dom.tree import ROOT, Document, build_document
from clipextract.extractors.annotations import annotate_markup
from clipextract.extractors.cleanup import CleanupPipeline, CleanupResult, append_marker, cut_to_size, strip_scripts
from clipextract.extractors.filename import generate_valid_filename
from clipextract.extractors.main_content import ExtractionResult, Orchestrator, extract_main_content
from clipextract.extractors.metadata import empty_metadata, extract_metadata
from clipextract.extractors.strategies import ExtractionStrategy, Pacer
from clipextract.items import Article, ExtractOptions, MathInfo, ScoreWeights

logger = logging.getLogger(__name__)

EMPTY_METHOD = "empty"


def _excerpt(text: str, limit: int = settings.EXCERPT_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[:limit].rstrip()


def _empty_article(base_uri: str, fallback_title: str, options: ExtractOptions) -> Article:
    meta = empty_metadata(base_uri, fallback_title)
    return Article(
        base_uri=base_uri,
        host=meta["host"],
        hostname=meta["hostname"],
        origin=meta["origin"],
        pathname=meta["pathname"],
        title=meta["title"],
        site_name=meta["host"],
        filename=generate_valid_filename(meta["title"], options.disallowed_filename_chars),
        extraction_method=EMPTY_METHOD,
    )


def _run(
    markup: str,
    base_uri: str,
    fallback_title: str,
    options: ExtractOptions,
    orchestrator: Orchestrator,
    pacer: Pacer,
) -> Article:
    # Size guard first so every later stage works on bounded input; the
    # marker is added by the cleanup pipeline once noise is gone
    markup, truncated = cut_to_size(markup, options.max_content_size)

    # Math annotations (need the scripts cleanup would remove)
    math: dict[str, MathInfo] = {}
    try:
        markup, math = annotate_markup(markup)
    except Exception as exc:
        logger.warning("math annotation failed for %s: %s", base_uri, exc)

    # Metadata view: scripts gone, <head> kept
    try:
        page = build_document(strip_scripts(markup))
    except Exception as exc:
        logger.warning("metadata tree build failed for %s: %s", base_uri, exc)
        page = Document()

    # Cleanup pipeline
    try:
        pipeline = CleanupPipeline(max_content_size=options.max_content_size)
        cleaned = pipeline.run(markup, truncated=truncated)
    except Exception as exc:
        logger.warning("cleanup failed for %s: %s", base_uri, exc)
        fallback_html = append_marker(markup, options.max_content_size) if truncated else markup
        cleaned = CleanupResult(html=fallback_html, truncated=truncated)
    truncated = cleaned.truncated

    # Main content (strategies → fallbacks → post-processing)
    try:
        result = extract_main_content(
            cleaned.html,
            original_markup=markup,
            options=options,
            orchestrator=orchestrator,
            pacer=pacer,
            document=build_document(cleaned.html),
        )
    except Exception as exc:
        logger.warning("content extraction failed for %s: %s", base_uri, exc)
        result = ExtractionResult(html=cleaned.html, method="raw", score=0.0)

    # Plain text
    try:
        fragment = build_document(result.html)
        text = fragment.text_content(ROOT)
    except Exception as exc:
        logger.warning("text extraction failed for %s: %s", base_uri, exc)
        fragment, text = None, ""

    # Metadata
    try:
        meta = extract_metadata(
            page,
            markup=markup,
            base_uri=base_uri,
            fragment=fragment,
            fallback_title=fallback_title,
            text=text,
            detect=options.detect_language,
        )
    except Exception as exc:
        logger.warning("metadata extraction failed for %s: %s", base_uri, exc)
        meta = empty_metadata(base_uri, fallback_title)

    # Only keep math entries whose node survived selection
    if math:
        math = {key: info for key, info in math.items() if f'id="{key}"' in result.html}

    title = meta["title"] or (fallback_title or "").strip()
    return Article(
        base_uri=base_uri,
        host=meta["host"],
        hostname=meta["hostname"],
        origin=meta["origin"],
        pathname=meta["pathname"],
        title=title,
        page_title=meta["page_title"],
        byline=meta["byline"],
        lang=meta["lang"],
        dir=meta["dir"],
        site_name=meta["site_name"],
        published_time=meta["published_time"],
        keywords=meta["keywords"],
        meta=meta["meta"],
        filename=generate_valid_filename(title, options.disallowed_filename_chars),
        content=result.html,
        text_content=text,
        length=len(text),
        excerpt=_excerpt(text),
        math=math,
        extraction_method=result.method,
        score=result.score,
        truncated=truncated,
    )


def extract(
    markup: str,
    base_uri: str = "",
    fallback_title: str = "",
    options: ExtractOptions | None = None,
    *,
    strategies: Iterable[ExtractionStrategy] | None = None,
    weights: ScoreWeights | None = None,
    orchestrator: Orchestrator | None = None,
    on_yield: Callable[[], None] | None = None,
) -> Article:
    """Extract the main article from *markup* and return an :class:`Article`.

    Args:
        markup:         Raw page markup.  Non-string values count as empty.
        base_uri:       Page URL; used for site name and URL parts.
        fallback_title: Title to use when the page offers none.
        options:        Per-call :class:`ExtractOptions` (size guard,
                        filename characters, post-processing switches).
        strategies:     Strategy list to consult instead of the defaults.
        weights:        Score weights for the default strategies.
        orchestrator:   Pre-built orchestrator; overrides *strategies* and
                        *weights*.
        on_yield:       Called periodically while strategies iterate large
                        candidate sets (cooperative pacing).

    Returns:
        :class:`~clipextract.items.Article`.  Empty input yields an Article
        with empty content whose title is *fallback_title*.
    """
    markup = markup if isinstance(markup, str) else ""
    base_uri = base_uri if isinstance(base_uri, str) else ""
    fallback_title = fallback_title if isinstance(fallback_title, str) else ""
    options = options or ExtractOptions()

    if not markup.strip():
        return _empty_article(base_uri, fallback_title, options)

    if orchestrator is None:
        orchestrator = Orchestrator(strategies, weights)
    pacer = Pacer(on_yield, options.yield_interval)

    try:
        return _run(markup, base_uri, fallback_title, options, orchestrator, pacer)
    except Exception as exc:
        logger.warning("extraction failed for %s, returning empty article: %s", base_uri, exc)
        return _empty_article(base_uri, fallback_title, options)
