"""Extraction sub-package: cleanup, scoring, strategies, metadata and adapters."""

from .annotations import annotate_math, mark_code_languages
from .cleanup import CleanupPipeline
from .filename import generate_valid_filename, image_filename
from .main_content import Orchestrator, clean_content, extract_main_content
from .markdown import article_to_markdown, html_to_markdown
from .metadata import extract_metadata
from .scoring import ContentScorer, score
from .strategies import (
    ComprehensiveStrategy,
    ExtractionCandidate,
    ExtractionStrategy,
    InternationalizedStrategy,
    Pacer,
    SemanticContainerStrategy,
    default_strategies,
)

__all__ = [
    "CleanupPipeline",
    "ComprehensiveStrategy",
    "ContentScorer",
    "ExtractionCandidate",
    "ExtractionStrategy",
    "InternationalizedStrategy",
    "Orchestrator",
    "Pacer",
    "SemanticContainerStrategy",
    "annotate_math",
    "article_to_markdown",
    "clean_content",
    "default_strategies",
    "extract_main_content",
    "extract_metadata",
    "generate_valid_filename",
    "html_to_markdown",
    "image_filename",
    "mark_code_languages",
    "score",
]
