"""Convert article content to Markdown, preserving math, code languages and images.

This is a reference downstream adapter: extraction never depends on it.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import NamedTuple
from urllib.parse import urljoin

from markdownify import MarkdownConverter

from clipextract import settings
from clipextract.dom.tree import build_document
from clipextract.items import Article, MathInfo

from .annotations import CODE_LANG_PREFIX
from .filename import image_filename

logger = logging.getLogger(__name__)

_EXCESSIVE_BLANK_LINES_RE = re.compile(r"\n{3,}")
_TRAILING_WHITESPACE_RE = re.compile(r"[ \t]+$", re.MULTILINE)


class MarkdownResult(NamedTuple):
    markdown: str
    images: dict[str, str]  # absolute src -> local filename


# ---------------------------------------------------------------------------
# Converter
# ---------------------------------------------------------------------------

class ClipMarkdownConverter(MarkdownConverter):
    """markdownify converter that renders annotated math as TeX.

    Elements whose ``id`` is a key of *math* become ``$tex$`` (inline) or a
    ``$$`` block (display).  KaTeX's visual ``.katex-html`` twin is dropped.
    """

    def __init__(self, math: dict[str, MathInfo] | None = None, **options) -> None:
        self.math = math or {}
        super().__init__(**options)

    def _render_math(self, el) -> str | None:
        info = self.math.get(el.get("id") or "")
        if info is None:
            return None
        if info.inline:
            return f"${info.tex}$"
        return f"\n\n$$\n{info.tex}\n$$\n\n"

    def convert_i(self, el, text, *args, **kwargs):
        rendered = self._render_math(el)
        if rendered is not None:
            return rendered
        return super().convert_i(el, text, *args, **kwargs)

    def convert_p(self, el, text, *args, **kwargs):
        rendered = self._render_math(el)
        if rendered is not None:
            return rendered
        return super().convert_p(el, text, *args, **kwargs)

    def convert_span(self, el, text, *args, **kwargs):
        rendered = self._render_math(el)
        if rendered is not None:
            return rendered
        if "katex-html" in (el.get("class") or []):
            return ""
        return text


def _detect_lang(el: object) -> str:
    """Fence language from a ``code-lang-*`` id or ``language-*`` class."""
    try:
        candidates = [el]
        find = getattr(el, "find", None)
        code = find("code") if find else None
        if code is not None:
            candidates.append(code)
        for node in candidates:
            getter = getattr(node, "get", None)
            if getter is None:
                continue
            el_id = getter("id") or ""
            if el_id.startswith(CODE_LANG_PREFIX):
                return el_id[len(CODE_LANG_PREFIX):]
            for cls in getter("class") or []:
                if isinstance(cls, str) and cls.startswith("language-"):
                    return cls[len("language-"):]
    except Exception as exc:
        logger.debug("Language detection failed for element: %s", exc)
    return ""


def html_to_markdown(content: str, math: dict[str, MathInfo] | None = None) -> str:
    """Convert *content* to clean Markdown.

    Uses markdownify with ATX heading style.  Post-processes to:
    - Remove excessive blank lines (>2 consecutive)
    - Strip trailing whitespace from lines
    """
    if not content or not content.strip():
        return ""

    try:
        converter = ClipMarkdownConverter(
            math=math,
            heading_style="ATX",
            bullets="-",
            code_language_callback=_detect_lang,
            strip=["script", "style", "nav", "footer"],
        )
        md = converter.convert(content)
    except Exception as exc:
        # Graceful fallback: strip tags and return plain text
        logger.warning("Markdown conversion failed, returning plain text: %s", exc)
        from bs4 import BeautifulSoup

        soup = BeautifulSoup(content, "html.parser")
        md = soup.get_text(separator="\n")

    md = _TRAILING_WHITESPACE_RE.sub("", md)
    md = _EXCESSIVE_BLANK_LINES_RE.sub("\n\n", md)
    return md.strip()


# ---------------------------------------------------------------------------
# Article rendering
# ---------------------------------------------------------------------------

def collect_images(
    content: str,
    base_uri: str = "",
    image_prefix: str = "",
    disallowed_chars: str = settings.DISALLOWED_FILENAME_CHARS,
    localize: bool = False,
) -> tuple[str, dict[str, str]]:
    """Map every ``<img src>`` in *content* to a local filename.

    With *localize*, the ``src`` attributes are rewritten to those filenames
    and the modified markup is returned; otherwise *content* is returned as is.
    """
    doc = build_document(content)
    images: dict[str, str] = {}
    taken: set[str] = set()
    for index in doc.find_by_tag("IMG"):
        src = (doc.get_attribute(index, "src") or "").strip()
        if not src:
            continue
        absolute = urljoin(base_uri, src) if base_uri and not src.startswith("data:") else src
        if absolute not in images:
            name = image_filename(absolute, image_prefix, disallowed_chars)
            stem, dot, ext = name.rpartition(".")
            counter = 1
            while name in taken:
                name = f"{stem}-{counter}{dot}{ext}" if dot else f"{ext}-{counter}"
                counter += 1
            taken.add(name)
            images[absolute] = name
        if localize:
            doc.set_attribute(index, "src", images[absolute])
    return (doc.serialize() if localize else content), images


def format_front_matter(article: Article, created: datetime | None = None) -> str:
    """Render the default front-matter header for *article*."""
    created = created or datetime.now(timezone.utc)
    lines = [
        "---",
        f"created: {created.strftime('%Y-%m-%dT%H:%M:%S')} (UTC {created.strftime('%z') or '+0000'})",
        f"tags: [{', '.join(article.keywords)}]",
        f"source: {article.base_uri}",
        f"author: {article.byline or ''}",
        "---",
        "",
        f"# {article.page_title or article.title}",
        "",
    ]
    if article.excerpt:
        lines.extend(["> ## Excerpt", f"> {article.excerpt}", ""])
    lines.extend(["---", ""])
    return "\n".join(lines)


def article_to_markdown(
    article: Article,
    image_prefix: str = "",
    localize_images: bool = False,
    created: datetime | None = None,
    disallowed_chars: str = settings.DISALLOWED_FILENAME_CHARS,
) -> MarkdownResult:
    """Render a complete Markdown document for *article* plus its image map."""
    content, images = collect_images(
        article.content, article.base_uri, image_prefix, disallowed_chars, localize_images,
    )
    body = html_to_markdown(content, article.math)
    return MarkdownResult(
        markdown=format_front_matter(article, created) + "\n" + body + "\n",
        images=images,
    )
