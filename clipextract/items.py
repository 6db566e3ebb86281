"""Pydantic models: the extracted Article, per-call options and scorer weights."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from clipextract import settings

# ---------------------------------------------------------------------------
# Article
# ---------------------------------------------------------------------------

class MathInfo(BaseModel):
    """TeX source recovered from a MathJax / KaTeX node."""

    model_config = {"frozen": True}

    tex: str
    inline: bool = True


class Article(BaseModel):
    """Canonical output of one extraction call.  Immutable once built."""

    model_config = {"frozen": True}

    # Identity
    base_uri: str = ""
    host: str = ""
    hostname: str = ""
    origin: str = ""
    pathname: str = ""

    # Metadata
    title: str = ""
    page_title: str = ""
    byline: str | None = None
    lang: str = settings.DEFAULT_LANGUAGE
    dir: str = "ltr"
    site_name: str = ""
    published_time: str = ""
    keywords: list[str] = Field(default_factory=list)
    meta: dict[str, str] = Field(default_factory=dict)
    filename: str = settings.DEFAULT_FILENAME

    # Content
    content: str = ""
    text_content: str = ""
    length: int = 0
    excerpt: str = ""
    math: dict[str, MathInfo] = Field(default_factory=dict)

    # Provenance
    extraction_method: str = "empty"
    score: float = 0.0
    truncated: bool = False

    @field_validator("title", "page_title", "site_name", "published_time", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v or ""

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, v: Any) -> Any:
        if isinstance(v, int | float) and v < 0:
            return 0.0
        return v


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------

class ExtractOptions(BaseModel):
    """Per-call extraction options."""

    model_config = {"frozen": True}

    max_content_size: int = Field(default=settings.MAX_CONTENT_SIZE, gt=0)
    disallowed_filename_chars: str = settings.DISALLOWED_FILENAME_CHARS
    clean_attributes: bool = False
    detect_language: bool = False
    min_content_length: int = Field(default=settings.MIN_CONTENT_LENGTH, ge=0)
    body_fallback_threshold: int = Field(default=settings.BODY_FALLBACK_THRESHOLD, ge=0)
    yield_interval: int = Field(default=settings.YIELD_INTERVAL, gt=0)
    image_prefix: str = ""

    @field_validator("disallowed_filename_chars", "image_prefix", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


# ---------------------------------------------------------------------------
# Scorer weights
# ---------------------------------------------------------------------------

class ScoreWeights(BaseModel):
    """Versioned weight table for :func:`clipextract.extractors.scoring.score`.

    The defaults are empirically tuned and kept for parity with existing
    expectations; bump ``version`` whenever a value changes.
    """

    model_config = {"frozen": True}

    version: str = "1"

    # Structural bonuses (awarded once per tag family present)
    heading: float = 600
    paragraph: float = 500
    lists: float = 200
    quote: float = 200
    emphasis: float = 100

    # Script-family bonuses
    cjk: float = 300
    cyrillic: float = 200
    arabic: float = 200
    hebrew: float = 200

    # Sentence bonus
    sentence: float = 200
    min_sentences: int = Field(default=3, ge=1)

    # Penalty per noise term found
    noise_penalty: float = 400
    noise_terms: tuple[str, ...] = (
        "advertisement",
        "navigation",
        "cookie policy",
        "footer",
        "copyright",
        "sponsored",
        "subscribe",
        "all rights reserved",
        "sidebar",
        "related posts",
    )
