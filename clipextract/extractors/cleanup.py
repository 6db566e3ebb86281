"""String-level noise cleanup applied before a tree is built for extraction.

Phases (each a pure ``str -> str`` function, safe to reorder or disable):

    1. strip_non_content     — comments, script/style/noscript/template/svg
                               blocks, head, link/meta/base tags
    2. strip_ads             — ad iframes, ad containers, tracking pixels
    3. strip_inline_styles   — style="" and on*="" attributes, <style> blocks
    4. normalize_whitespace  — collapse whitespace outside <pre>/<textarea>

Paired blocks are removed by locating the opening tag and then the *first*
matching close after it, so a removal can never span past the nearest
closing tag.  Opening-tag patterns stop at the next ``<``, and a close tag
found missing once is never searched for again, so unterminated markup
still cleans in linear time.

The size guard runs before any phase: input over ``max_content_size`` bytes
is cut to 80 % of the limit, and a visible marker is appended once the
phases are done.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from typing import NamedTuple

from clipextract import settings
from clipextract.dom.tokenizer import parse_attributes

logger = logging.getLogger(__name__)

Phase = Callable[[str], str]

# ---------------------------------------------------------------------------
# Patterns (compiled once at import time)
# ---------------------------------------------------------------------------

_COMMENT_OPEN = "<!--"
_COMMENT_CLOSE = "-->"

# Blocks whose whole body is dropped.  True = an unclosed opener eats the
# rest of the document (as browsers do for raw-text elements).
_BLOCK_TAGS: dict[str, bool] = {
    "script": True,
    "style": True,
    "noscript": False,
    "template": False,
    "svg": False,
    "head": False,
}

_VOID_NOISE_RE = re.compile(r"<(?:link|meta|base)\b[^<>]*>", re.IGNORECASE)

_AD_CONTAINER_TAGS: tuple[str, ...] = (
    "div", "section", "aside", "ins", "iframe", "span", "figure", "ul", "li", "p", "a", "table",
)
_AD_OPEN_RE = re.compile(
    r"<(" + "|".join(_AD_CONTAINER_TAGS) + r")\b([^<>]*)>",
    re.IGNORECASE,
)
_IMG_RE = re.compile(r"<img\b([^<>]*)>", re.IGNORECASE)

# Whole class/id tokens (split on whitespace, "-" and "_") that mark ads.
_AD_TOKENS: frozenset[str] = frozenset(
    {
        "ad", "ads", "adv", "advert", "adverts", "advertisement", "advertisements",
        "advertising", "adsbygoogle", "adslot", "adunit", "adbox", "adsense",
        "adcontainer", "adwrapper", "dfp", "sponsor", "sponsored",
        "promoted", "taboola", "outbrain",
    },
)
# Tokens that veto removal even when an ad token is present.
_AD_ALLOW_TOKENS: frozenset[str] = frozenset(
    {"article", "content", "main", "post", "entry", "story", "body"},
)
_AD_HOSTS: tuple[str, ...] = (
    "doubleclick.net",
    "googlesyndication.com",
    "googleadservices.com",
    "adservice.google",
    "amazon-adsystem.com",
    "taboola.com",
    "outbrain.com",
    "criteo.",
    "adnxs.com",
    "pubmatic.com",
    "rubiconproject.com",
    "moatads.com",
    "scorecardresearch.com",
    "facebook.com/tr",
)

_TOKEN_SPLIT_RE = re.compile(r"[\s_\-]+")

_OPEN_TAG_RE = re.compile(r"<([a-zA-Z][^\s/<>]*)([^<>]*)>")
_INLINE_ATTR_NAME_RE = re.compile(r"style|on[a-z]+")
# One whole attribute (name plus optional value), so matches never start
# inside a quoted value.
_ATTR_SPAN_RE = re.compile(r"""\s*([^\s"'=/>]+)(?:\s*=\s*(?:"[^"]*"|'[^']*'|[^\s"'>]*))?""")
# Cheap pre-check before a tag's attributes are scanned.
_INLINE_ATTR_HINT_RE = re.compile(r"\s(?:style|on[a-z]+)\s*=", re.IGNORECASE)

_PRESERVE_OPEN_RE = re.compile(r"<(pre|textarea)\b[^<>]*>", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_BETWEEN_TAGS_RE = re.compile(r">\s+<")

# Phases only ever remove markup, so repeated runs settle quickly.
_MAX_PASSES = 8

_close_patterns: dict[str, re.Pattern[str]] = {}
_pair_patterns: dict[str, re.Pattern[str]] = {}


def _close_pattern(name: str) -> re.Pattern[str]:
    name = name.lower()
    pattern = _close_patterns.get(name)
    if pattern is None:
        pattern = re.compile(rf"</{name}\s*>", re.IGNORECASE)
        _close_patterns[name] = pattern
    return pattern


def _pair_pattern(name: str) -> re.Pattern[str]:
    name = name.lower()
    pattern = _pair_patterns.get(name)
    if pattern is None:
        pattern = re.compile(rf"<(/?){name}\b[^<>]*>", re.IGNORECASE)
        _pair_patterns[name] = pattern
    return pattern


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _balanced_ends(markup: str, name: str) -> dict[int, int]:
    """Map the end offset of every *name* opener to the end of its close tag.

    One pass with a stack; openers that never balance are absent.
    """
    ends: dict[int, int] = {}
    open_ends: list[int] = []
    for m in _pair_pattern(name).finditer(markup):
        if m.group(1):
            if open_ends:
                ends[open_ends.pop()] = m.end()
        elif not m.group(0).endswith("/>"):
            open_ends.append(m.end())
    return ends


def _remove_comments_once(markup: str) -> str:
    out: list[str] = []
    pos = 0
    while True:
        start = markup.find(_COMMENT_OPEN, pos)
        if start == -1:
            break
        out.append(markup[pos:start])
        end = markup.find(_COMMENT_CLOSE, start + len(_COMMENT_OPEN))
        if end == -1:
            pos = len(markup)
            break
        pos = end + len(_COMMENT_CLOSE)
    out.append(markup[pos:])
    return "".join(out)


def _remove_comments(markup: str) -> str:
    # Removing "<!-- x -->" from "<!<!-- x -->-- y -->" leaves a new comment.
    while _COMMENT_OPEN in markup:
        stripped = _remove_comments_once(markup)
        if stripped == markup:
            break
        markup = stripped
    return markup


def _remove_blocks(markup: str, tags: dict[str, bool]) -> str:
    opener = re.compile(r"<(" + "|".join(tags) + r")\b[^<>]*>", re.IGNORECASE)
    out: list[str] = []
    pos = 0
    unclosed: set[str] = set()
    while True:
        m = opener.search(markup, pos)
        if not m:
            break
        out.append(markup[pos:m.start()])
        if m.group(0).endswith("/>"):
            pos = m.end()
            continue
        name = m.group(1).lower()
        # Openers are met left to right: once a close tag is missing after
        # one of them it is missing after every later one too.
        close = None if name in unclosed else _close_pattern(name).search(markup, m.end())
        if close:
            pos = close.end()
            continue
        unclosed.add(name)
        if tags[name]:
            pos = len(markup)
            break
        pos = m.end()
    out.append(markup[pos:])
    return "".join(out)


def _is_ad_attrs(raw_attrs: str) -> bool:
    attrs = parse_attributes(raw_attrs)
    tokens: set[str] = set()
    for key, value in attrs:
        if not value:
            continue
        if key in ("class", "id"):
            tokens.update(t for t in _TOKEN_SPLIT_RE.split(value.lower()) if t)
        elif key in ("src", "data-src", "href"):
            lowered = value.lower()
            if any(host in lowered for host in _AD_HOSTS):
                return True
    if tokens & _AD_ALLOW_TOKENS:
        return False
    return bool(tokens & _AD_TOKENS)


def _is_tracking_pixel(raw_attrs: str) -> bool:
    attrs = dict(parse_attributes(raw_attrs))
    src = (attrs.get("src") or "").lower()
    if any(host in src for host in _AD_HOSTS):
        return True
    return attrs.get("width") in ("0", "1") and attrs.get("height") in ("0", "1")


def _drop_inline_attributes(m: re.Match[str]) -> str:
    raw = m.group(2)
    if not _INLINE_ATTR_HINT_RE.search(raw):
        return m.group(0)
    pieces: list[str] = []
    pos = 0
    for attr in _ATTR_SPAN_RE.finditer(raw):
        if _INLINE_ATTR_NAME_RE.fullmatch(attr.group(1).lower()):
            pieces.append(raw[pos:attr.start()])
            pos = attr.end()
    if not pieces:
        # The hint matched inside another attribute's value.
        return m.group(0)
    pieces.append(raw[pos:])
    return "<" + m.group(1) + "".join(pieces) + ">"


def _collapse(segment: str) -> str:
    return _BETWEEN_TAGS_RE.sub("><", _WHITESPACE_RE.sub(" ", segment))


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------

def strip_non_content(markup: str) -> str:
    """Phase 1: drop comments, raw-text blocks, the head and link/meta tags."""
    markup = _remove_comments(markup)
    markup = _remove_blocks(markup, _BLOCK_TAGS)
    return _VOID_NOISE_RE.sub("", markup)


def strip_scripts(markup: str) -> str:
    """Lighter variant of phase 1 that keeps head, title and meta tags."""
    markup = _remove_comments(markup)
    return _remove_blocks(markup, {"script": True, "style": True, "noscript": False, "template": False})


def strip_ads(markup: str) -> str:
    """Phase 2: remove ad containers/iframes (class, id or src) and tracking pixels."""
    out: list[str] = []
    pos = 0
    balanced: dict[str, dict[int, int]] = {}
    while True:
        m = _AD_OPEN_RE.search(markup, pos)
        if not m:
            break
        if not _is_ad_attrs(m.group(2)):
            out.append(markup[pos:m.end()])
            pos = m.end()
            continue
        out.append(markup[pos:m.start()])
        if m.group(0).endswith("/>"):
            pos = m.end()
            continue
        name = m.group(1).lower()
        if name not in balanced:
            balanced[name] = _balanced_ends(markup, name)
        pos = balanced[name].get(m.end(), m.end())
    out.append(markup[pos:])
    markup = "".join(out)
    return _IMG_RE.sub(lambda m: "" if _is_tracking_pixel(m.group(1)) else m.group(0), markup)


def strip_inline_styles(markup: str) -> str:
    """Phase 3: drop ``style``/``on*`` attributes and ``<style>`` blocks.

    ``class`` and ``id`` survive: scoring and selectors still need them.
    Attributes are matched whole, so ``style=`` inside another attribute's
    quoted value is left alone.
    """
    markup = _remove_blocks(markup, {"style": True})
    return _OPEN_TAG_RE.sub(_drop_inline_attributes, markup)


def normalize_whitespace(markup: str) -> str:
    """Phase 4: collapse whitespace runs and drop whitespace between tags.

    Content of ``<pre>`` and ``<textarea>`` is left untouched.
    """
    out: list[str] = []
    pos = 0
    left = ""
    while True:
        m = _PRESERVE_OPEN_RE.search(markup, pos)
        if not m:
            break
        close = _close_pattern(m.group(1)).search(markup, m.end())
        block_end = close.end() if close else len(markup)
        out.append(_collapse(left + markup[pos:m.start()] + "<")[len(left):-1])
        out.append(markup[m.start():block_end])
        left = ">"
        pos = block_end
        if not close:
            break
    if pos < len(markup):
        out.append(_collapse(left + markup[pos:])[len(left):])
    return "".join(out).strip()


DEFAULT_PHASES: tuple[tuple[str, Phase], ...] = (
    ("strip_non_content", strip_non_content),
    ("strip_ads", strip_ads),
    ("strip_inline_styles", strip_inline_styles),
    ("normalize_whitespace", normalize_whitespace),
)


# ---------------------------------------------------------------------------
# Size guard
# ---------------------------------------------------------------------------

def cut_to_size(markup: str, max_size: int = settings.MAX_CONTENT_SIZE) -> tuple[str, bool]:
    """Cut *markup* so that it plus the truncation marker fits *max_size* bytes.

    Returns ``(markup, truncated)``.  Oversized input keeps its first
    ``TRUNCATE_RATIO`` share, cut on a character boundary.  The marker is
    not added here; see :func:`append_marker`.
    """
    encoded = markup.encode("utf-8")
    if len(encoded) <= max_size:
        return markup, False
    marker_size = len(settings.TRUNCATION_MARKER.encode("utf-8"))
    keep = min(int(max_size * settings.TRUNCATE_RATIO), max_size - marker_size)
    if keep <= 0:
        return "", True
    logger.debug("truncated %d bytes of markup to %d", len(encoded), keep)
    return encoded[:keep].decode("utf-8", errors="ignore"), True


def append_marker(markup: str, max_size: int = settings.MAX_CONTENT_SIZE) -> str:
    """Append :data:`settings.TRUNCATION_MARKER`, shortened if *max_size* is tiny."""
    marker = settings.TRUNCATION_MARKER
    room = max(max_size - len(markup.encode("utf-8")), 0)
    # The marker is ASCII, so characters and bytes coincide.
    return markup + marker[:room]


def truncate(markup: str, max_size: int = settings.MAX_CONTENT_SIZE) -> tuple[str, bool]:
    """Cut *markup* to fit *max_size* UTF-8 bytes, marker included.

    Returns ``(markup, truncated)``.
    """
    head, truncated = cut_to_size(markup, max_size)
    if not truncated:
        return markup, False
    return append_marker(head, max_size), True


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class CleanupResult(NamedTuple):
    html: str
    truncated: bool


class CleanupPipeline:
    """Run the size guard and then each enabled phase in order.

    The phases repeat until the markup stops changing, because one removal can
    splice its neighbours into something a phase removes (two halves of a
    comment, for example).  A truncated input gets the marker only after the
    phases, so an unclosed ``<script>`` in the kept head cannot swallow it.

    Args:
        phases:           ``(name, function)`` pairs; defaults to
                          :data:`DEFAULT_PHASES`.
        max_content_size: Byte limit for the size guard.
        disabled:         Phase names to skip.
    """

    def __init__(
        self,
        phases: Iterable[tuple[str, Phase]] | None = None,
        max_content_size: int = settings.MAX_CONTENT_SIZE,
        disabled: Iterable[str] = (),
    ) -> None:
        skip = set(disabled)
        self.phases: list[tuple[str, Phase]] = [
            (name, fn) for name, fn in (phases or DEFAULT_PHASES) if name not in skip
        ]
        self.max_content_size = max_content_size

    def _run_phases(self, markup: str) -> str:
        for name, phase in self.phases:
            try:
                markup = phase(markup)
            except Exception as exc:
                logger.warning("cleanup phase %s failed, keeping its input: %s", name, exc)
        return markup

    def run(self, markup: str, *, truncated: bool = False) -> CleanupResult:
        """Clean *markup*.

        ``truncated=True`` says the caller already cut the input; the marker
        is still appended.
        """
        markup, cut = cut_to_size(markup or "", self.max_content_size)
        truncated = truncated or cut
        for _ in range(_MAX_PASSES):
            cleaned = self._run_phases(markup)
            if cleaned == markup:
                break
            markup = cleaned
        else:
            logger.debug("cleanup still changing after %d passes", _MAX_PASSES)
        if truncated:
            markup = append_marker(markup, self.max_content_size)
        return CleanupResult(html=markup, truncated=truncated)

    def __call__(self, markup: str) -> str:
        return self.run(markup).html
