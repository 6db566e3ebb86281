"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

FIXTURES_DIR = Path(__file__).parent / "fixtures"

ARTICLE_URL = "https://example.com/blog/tokenizers?ref=rss"


def _read_fixture(name: str) -> str:
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


@pytest.fixture
def article_html() -> str:
    return _read_fixture("article.html")


@pytest.fixture
def math_html() -> str:
    return _read_fixture("math.html")


@pytest.fixture
def jsapp_html() -> str:
    return _read_fixture("jsapp.html")


@pytest.fixture
def multilingual_html() -> str:
    return _read_fixture("multilingual.html")


@pytest.fixture
def nav_article_html() -> str:
    return (
        "<html><body><nav>Home About</nav><article><h1>Title</h1>"
        "<p>First paragraph with enough text to be meaningful content for scoring purposes.</p>"
        "</article><footer>Copyright 2024</footer></body></html>"
    )


@pytest.fixture
def chinese_html() -> str:
    return "<div>短一点的中文内容，包含多个句子。这是第二句。这是第三句。</div>"
