"""clipextract - pull the readable article out of a saved web page.

Quick usage::

    from clipextract import extract

    article = extract(html, "https://example.com/post", "Untitled")
    print(article.title)
    print(article.content)

Markdown for note-taking apps::

    from clipextract import extract, html_to_markdown

    article = extract(html, "https://example.com/post")
    print(html_to_markdown(article.content, article.math))

Custom strategy lists (no global registry; pass them in)::

    from clipextract import ClipExtractor, ScoreWeights, default_strategies

    class TableOfFigures:
        name = "figures"
        priority = 400
        def can_handle(self, markup): return "<figure" in markup
        def extract(self, markup, document=None, pacer=None): return []

    extractor = ClipExtractor(strategies=[TableOfFigures(), *default_strategies()])
"""

from clipextract.extractors.filename import generate_valid_filename
from clipextract.extractors.main_content import Orchestrator
from clipextract.extractors.markdown import html_to_markdown
from clipextract.extractors.strategies import ExtractionCandidate, default_strategies
from clipextract.items import Article, ExtractOptions, MathInfo, ScoreWeights
from clipextract.parser import ClipExtractor
from clipextract.query import extract

__version__ = "0.1.0"
__all__ = [
    "Article",
    "ClipExtractor",
    "ExtractOptions",
    "ExtractionCandidate",
    "MathInfo",
    "Orchestrator",
    "ScoreWeights",
    "default_strategies",
    "extract",
    "generate_valid_filename",
    "html_to_markdown",
]
