"""Deterministic metadata extraction from a parsed document.

Each field is an ordered pattern list; the first non-empty match wins and a
defined default is substituted otherwise:

    title      <h1> → title-like classes → <title> → caller fallback
    byline     byline/author classes (fragment, then page) → meta author → JSON-LD
    language   <html lang> → og:locale / content-language → langdetect (opt-in) → "en"
    site name  og:site_name → JSON-LD publisher → URL host
    published  time[datetime] → article:published_time → JSON-LD → meta pubdate

JSON-LD is read from the raw markup because cleanup removes scripts.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any
from urllib.parse import urlparse

import dateparser

from clipextract import settings
from clipextract.dom.tree import ELEMENT, Document
from clipextract.language import detect_language, normalize_language, text_direction

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_ISO_CLEANUP_RE = re.compile(r"\s+")

# Bylines longer than this are paragraphs that happen to carry an author class
_MAX_BYLINE_LENGTH = 100


def _parse_date(raw: str | None) -> str | None:
    """Parse a date string to ISO 8601.

    Returns None on failure or when the year falls outside 1990-2099
    (catches epoch defaults like 1970-01-01 and far-future typos).
    """
    if not raw:
        return None
    raw = _ISO_CLEANUP_RE.sub(" ", raw.strip())
    try:
        parsed = dateparser.parse(
            raw,
            settings={
                "RETURN_AS_TIMEZONE_AWARE": True,
                "PREFER_DAY_OF_MONTH": "first",
                "PREFER_LOCALE_DATE_ORDER": False,
            },
        )
        if parsed:
            if not (1990 <= parsed.year <= 2099):
                return None
            return parsed.isoformat()
    except Exception as exc:
        logger.debug("Date parse failed for %r: %s", raw, exc)
    return None


def _first(*values: Any) -> Any:
    """Return the first non-empty, non-None value."""
    for v in values:
        if v:
            return v
    return None


# ---------------------------------------------------------------------------
# Meta tags
# ---------------------------------------------------------------------------

def extract_meta_map(doc: Document) -> dict[str, str]:
    """``name``/``property``/``http-equiv`` → ``content`` for every <meta>; first wins."""
    meta: dict[str, str] = {}
    for index in doc.find_by_tag("META"):
        key = _first(
            doc.get_attribute(index, "name"),
            doc.get_attribute(index, "property"),
            doc.get_attribute(index, "http-equiv"),
            doc.get_attribute(index, "itemprop"),
        )
        content = doc.get_attribute(index, "content")
        if not key or content is None:
            continue
        meta.setdefault(key.strip().lower(), content.strip())
    return meta


def extract_keywords(doc: Document, jsonld: dict | None = None) -> list[str]:
    """``meta[name=keywords]`` + ``article:tag`` metas (+ JSON-LD keywords), de-duplicated."""
    raw: list[str] = []
    for index in doc.find_by_tag("META"):
        name = (doc.get_attribute(index, "name") or doc.get_attribute(index, "property") or "").lower()
        content = doc.get_attribute(index, "content") or ""
        if name == "keywords":
            raw.extend(content.split(","))
        elif name == "article:tag":
            raw.append(content)
    raw.extend(_tags_from_jsonld(jsonld or {}))

    seen: set[str] = set()
    keywords: list[str] = []
    for kw in raw:
        kw = kw.strip()
        if kw and kw.lower() not in seen:
            seen.add(kw.lower())
            keywords.append(kw)
    return keywords


# ---------------------------------------------------------------------------
# JSON-LD
# ---------------------------------------------------------------------------

_ARTICLE_TYPES: frozenset[str] = frozenset(
    {
        "article",
        "blogging",
        "blogposting",
        "newsarticle",
        "techarticle",
        "scholarlyarticle",
        "liveblogposting",
        "reportage",
    },
)

_JSONLD_OPEN_RE = re.compile(
    r"<script\b[^<>]*type\s*=\s*[\"']?application/ld\+json[\"']?[^<>]*>",
    re.IGNORECASE,
)
_SCRIPT_CLOSE_RE = re.compile(r"</script\s*>", re.IGNORECASE)


def _jsonld_blocks(markup: str) -> list[str]:
    blocks: list[str] = []
    pos = 0
    while True:
        opener = _JSONLD_OPEN_RE.search(markup, pos)
        if not opener:
            break
        close = _SCRIPT_CLOSE_RE.search(markup, opener.end())
        if not close:
            break
        blocks.append(markup[opener.end():close.start()])
        pos = close.end()
    return blocks


def extract_jsonld(markup: str) -> dict:
    """Extract the most relevant JSON-LD node (an article type beats a web page)."""
    result: dict = {}
    if not markup or "ld+json" not in markup:
        return result

    for block in _jsonld_blocks(markup):
        try:
            raw = json.loads(block.strip())
        except (json.JSONDecodeError, TypeError):
            continue

        nodes: list = []
        if isinstance(raw, list):
            nodes = raw
        elif isinstance(raw, dict):
            nodes = raw.get("@graph", [raw])

        for node in nodes:
            if not isinstance(node, dict):
                continue
            dtype = str(node.get("@type", "")).lower()
            if dtype not in _ARTICLE_TYPES and dtype not in {"webpage", "website"}:
                continue
            if dtype in _ARTICLE_TYPES or not result:
                result = node

    return result


def _author_from_jsonld(node: dict) -> str | None:
    author = node.get("author")
    if isinstance(author, dict):
        return author.get("name")
    if isinstance(author, list) and author:
        first = author[0]
        if isinstance(first, dict):
            return first.get("name")
        return str(first)
    if isinstance(author, str):
        return author
    return None


def _tags_from_jsonld(node: dict) -> list[str]:
    kw = node.get("keywords", [])
    if isinstance(kw, str):
        return [t.strip() for t in kw.split(",") if t.strip()]
    if isinstance(kw, list):
        return [str(k).strip() for k in kw if k]
    return []


# ---------------------------------------------------------------------------
# Individual fields
# ---------------------------------------------------------------------------

_TITLE_CLASSES: tuple[str, ...] = (
    "post-title",
    "entry-title",
    "article-title",
    "content-title",
    "page-title",
)

_BYLINE_CLASSES: tuple[str, ...] = (
    "byline",
    "author",
    "post-author",
    "entry-author",
    "article-author",
    "meta-author",
    "writer",
)


def _first_with_class(doc: Document, class_name: str, start: int) -> int | None:
    for index in doc.iter_descendants(start):
        if doc.nodes[index].kind == ELEMENT and class_name in doc.class_list(index):
            if doc.text_content(index):
                return index
    return None


def extract_title(doc: Document, fallback_title: str = "") -> str:
    for h1 in doc.find_by_tag("H1"):
        text = doc.text_content(h1)
        if text:
            return text
    for class_name in _TITLE_CLASSES:
        index = _first_with_class(doc, class_name, 0)
        if index is not None:
            return doc.text_content(index)
    return _first(doc.title, (fallback_title or "").strip()) or ""


def _byline_in(doc: Document) -> str | None:
    for class_name in _BYLINE_CLASSES:
        index = _first_with_class(doc, class_name, 0)
        if index is not None:
            text = doc.text_content(index)
            if len(text) <= _MAX_BYLINE_LENGTH:
                return text
    for index in doc.find_all(
        lambda i: (doc.get_attribute(i, "rel") or "").lower() == "author"
        or (doc.get_attribute(i, "itemprop") or "").lower() == "author",
    ):
        text = doc.text_content(index)
        if text and len(text) <= _MAX_BYLINE_LENGTH:
            return text
    return None


def extract_byline(
    doc: Document,
    fragment: Document | None = None,
    meta: dict[str, str] | None = None,
    jsonld: dict | None = None,
) -> str | None:
    meta = meta or {}
    return _first(
        _byline_in(fragment) if fragment is not None else None,
        _byline_in(doc),
        meta.get("author"),
        meta.get("article:author"),
        _author_from_jsonld(jsonld or {}),
    )


def extract_language(
    doc: Document,
    meta: dict[str, str] | None = None,
    jsonld: dict | None = None,
    text: str = "",
    detect: bool = False,
) -> str:
    meta = meta or {}
    jsonld = jsonld or {}
    declared = _first(
        normalize_language(doc.language),
        normalize_language(meta.get("og:locale")),
        normalize_language(meta.get("content-language")),
        normalize_language(str(jsonld.get("inLanguage") or "")),
    )
    if declared:
        return declared
    if detect:
        detected = detect_language(text)
        if detected:
            return detected
    return settings.DEFAULT_LANGUAGE


def extract_direction(doc: Document, lang: str) -> str:
    declared = ""
    for tag in ("HTML", "BODY"):
        index = doc.find_first(tag)
        if index is not None and doc.get_attribute(index, "dir"):
            declared = doc.get_attribute(index, "dir") or ""
            break
    return text_direction(lang, declared)


def extract_site_name(
    meta: dict[str, str] | None = None,
    jsonld: dict | None = None,
    base_uri: str = "",
) -> str:
    meta = meta or {}
    publisher = (jsonld or {}).get("publisher")
    publisher_name = publisher.get("name") if isinstance(publisher, dict) else None
    host = ""
    if base_uri:
        try:
            host = urlparse(base_uri).netloc
        except ValueError:
            host = ""
    return _first(meta.get("og:site_name"), publisher_name, host) or ""


def extract_published_time(
    doc: Document,
    meta: dict[str, str] | None = None,
    jsonld: dict | None = None,
) -> str:
    """Publish date as ISO 8601 when parseable, otherwise the raw string."""
    meta = meta or {}
    time_value = None
    for index in doc.find_by_tag("TIME"):
        time_value = (doc.get_attribute(index, "datetime") or "").strip()
        if time_value:
            break
    raw = _first(
        time_value,
        meta.get("article:published_time"),
        (jsonld or {}).get("datePublished"),
        meta.get("pubdate"),
    )
    if not raw:
        return ""
    raw = str(raw).strip()
    return _parse_date(raw) or raw


def url_parts(base_uri: str) -> dict[str, str]:
    """``host``, ``hostname``, ``origin`` and ``pathname`` of *base_uri*."""
    parts = {"host": "", "hostname": "", "origin": "", "pathname": ""}
    if not base_uri:
        return parts
    try:
        parsed = urlparse(base_uri)
    except ValueError:
        return parts
    parts["host"] = parsed.netloc
    parts["hostname"] = parsed.hostname or ""
    if parsed.scheme and parsed.netloc:
        parts["origin"] = f"{parsed.scheme}://{parsed.netloc}"
    parts["pathname"] = parsed.path or ("/" if parsed.netloc else "")
    return parts


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_metadata(
    doc: Document,
    markup: str = "",
    base_uri: str = "",
    fragment: Document | None = None,
    fallback_title: str = "",
    text: str = "",
    detect: bool = False,
) -> dict:
    """Extract all available metadata from *doc*.

    Args:
        doc:            Parsed page (scripts removed, <head> kept).
        markup:         Raw markup, scanned for JSON-LD.
        base_uri:       Page URL for site name and URL parts.
        fragment:       Parsed winning content; searched first for a byline.
        fallback_title: Used when the page offers no title.
        text:           Content text for statistical language detection.
        detect:         Enable statistical language detection.

    Returns a dict with keys:
        title, page_title, byline, lang, dir, site_name, published_time,
        keywords, meta, jsonld, host, hostname, origin, pathname
    """
    jsonld = extract_jsonld(markup)
    meta = extract_meta_map(doc)
    lang = extract_language(doc, meta, jsonld, text, detect)

    byline = extract_byline(doc, fragment, meta, jsonld)
    result = {
        "title": extract_title(doc, fallback_title),
        "page_title": doc.title,
        "byline": byline.strip() if byline else None,
        "lang": lang,
        "dir": extract_direction(doc, lang),
        "site_name": extract_site_name(meta, jsonld, base_uri),
        "published_time": extract_published_time(doc, meta, jsonld),
        "keywords": extract_keywords(doc, jsonld),
        "meta": meta,
        "jsonld": jsonld,
    }
    result.update(url_parts(base_uri))
    logger.debug("metadata: title=%r lang=%s site=%r", result["title"], lang, result["site_name"])
    return result


def empty_metadata(base_uri: str = "", fallback_title: str = "") -> dict:
    result = {
        "title": (fallback_title or "").strip(),
        "page_title": "",
        "byline": None,
        "lang": settings.DEFAULT_LANGUAGE,
        "dir": "ltr",
        "site_name": "",
        "published_time": "",
        "keywords": [],
        "meta": {},
        "jsonld": {},
    }
    result.update(url_parts(base_uri))
    return result

