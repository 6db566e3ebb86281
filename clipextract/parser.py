"""clipextract.parser — High-level ClipExtractor class.

Bundles extraction options, score weights and an explicit strategy list into
one reusable object.  Several extractors with different configurations can
coexist in a process; none of them touches global state.

Usage::

    from clipextract import ClipExtractor, ExtractOptions

    extractor = ClipExtractor(options=ExtractOptions(clean_attributes=True))
    article = extractor.extract(html, "https://example.com/post")

    # Markdown with front-matter and an image map
    result = extractor.to_markdown(html, "https://example.com/post")
    print(result.markdown)
    print(result.images)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from clipextract.extractors.main_content import Orchestrator
from clipextract.extractors.markdown import MarkdownResult, article_to_markdown
from clipextract.items import ExtractOptions, ScoreWeights
from clipextract.query import extract as _extract

if TYPE_CHECKING:
    from clipextract.extractors.strategies import ExtractionStrategy
    from clipextract.items import Article


class ClipExtractor:
    """Reusable extractor with fixed options and strategies.

    All parameters are optional — ``ClipExtractor()`` behaves exactly like
    calling :func:`clipextract.extract` directly.

    Args:
        options:    Default :class:`ExtractOptions` for every call.
        strategies: Strategy list injected into the orchestrator.  Defaults
                    to :func:`~clipextract.extractors.strategies.default_strategies`
                    built from *weights*.
        weights:    Score weights for the default strategies.
        on_yield:   Cooperative pacing callback forwarded to each call.
    """

    def __init__(
        self,
        options: ExtractOptions | None = None,
        strategies: Iterable[ExtractionStrategy] | None = None,
        weights: ScoreWeights | None = None,
        on_yield: Callable[[], None] | None = None,
    ) -> None:
        self._options = options or ExtractOptions()
        self._orchestrator = Orchestrator(strategies, weights)
        self._on_yield = on_yield

    @property
    def options(self) -> ExtractOptions:
        return self._options

    @property
    def strategies(self) -> list[ExtractionStrategy]:
        return list(self._orchestrator.strategies)

    # ------------------------------------------------------------------
    # Public methods
    # ------------------------------------------------------------------

    def extract(
        self,
        markup: str,
        base_uri: str = "",
        fallback_title: str = "",
        **kwargs: Any,
    ) -> Article:
        """Extract *markup* with this extractor's configuration.

        Keyword arguments are forwarded to :func:`clipextract.query.extract`;
        ``options``, ``orchestrator`` and ``on_yield`` are pre-populated from
        the constructor unless overridden here.
        """
        kwargs.setdefault("options", self._options)
        kwargs.setdefault("orchestrator", self._orchestrator)
        kwargs.setdefault("on_yield", self._on_yield)
        return _extract(markup, base_uri, fallback_title, **kwargs)

    def to_markdown(
        self,
        markup: str,
        base_uri: str = "",
        fallback_title: str = "",
        **kwargs: Any,
    ) -> MarkdownResult:
        """Extract *markup* and render it through the markdown adapter.

        Extra keyword arguments go to
        :func:`~clipextract.extractors.markdown.article_to_markdown`.
        """
        article = self.extract(markup, base_uri, fallback_title)
        kwargs.setdefault("image_prefix", self._options.image_prefix)
        kwargs.setdefault("disallowed_chars", self._options.disallowed_filename_chars)
        return article_to_markdown(article, **kwargs)
