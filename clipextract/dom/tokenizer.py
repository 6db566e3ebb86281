"""clipextract.dom.tokenizer — Lexer turning raw markup into token events.

The scanner moves left to right through text, comment, closing-tag and
opening-tag states.  Inside an opening tag the attribute states (name, value,
quoted value) are encoded in one possessive pattern, so each attempt runs in
C and never backtracks.  Lookahead is bounded: a tag that does not close
within ``MAX_TAG_LENGTH`` characters is demoted to literal text instead of
swallowing the rest of the document.  The next ``>`` and ``-->`` are found
once and reused, so a page full of unterminated tags still scans in linear
time.  Nothing here raises; anything that cannot be read as markup comes out
as a :class:`Text` token.

Usage::

    from clipextract.dom.tokenizer import tokenize

    for token in tokenize('<p class="lead">Hello</p>'):
        print(token)
    # TagOpen(name='P', attrs=' class="lead"', self_closing=False)
    # Text(data='Hello')
    # TagClose(name='P')
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from typing import NamedTuple

# Longest tag (name + attributes) the scanner will look through before it
# gives up and treats the opening "<" as text.
MAX_TAG_LENGTH = 8192

_WHITESPACE = " \t\n\r\f"

_NAME_RE = re.compile(r"[^ \t\n\r\f/>]*")

# Tag body up to its closing ">".  Quotes open only right after "=" (spaces
# allowed between), so a stray apostrophe in a bare value is plain text.  An
# unclosed quote after "=" fails the match.  Possessive quantifiers keep each
# attempt linear.
_TAG_BODY_RE = re.compile(
    r"""(?:[^>="']++|=[ \t\n\r\f]*+(?:"[^"]*+"|'[^']*+'|(?!["']))|["'])*+>""",
)


class TagOpen(NamedTuple):
    name: str  # upper-case
    attrs: str  # raw attribute text, not entity-decoded
    self_closing: bool = False


class TagClose(NamedTuple):
    name: str


class Text(NamedTuple):
    data: str


class Comment(NamedTuple):
    data: str


Token = TagOpen | TagClose | Text | Comment


# ---------------------------------------------------------------------------
# Tag scanning
# ---------------------------------------------------------------------------

class _NextIndex:
    """``str.find`` for one needle with the last answer cached.

    Queries must come with non-decreasing start positions, which holds for a
    left-to-right scan, so every character is searched at most once.
    """

    __slots__ = ("_markup", "_needle", "_found")

    def __init__(self, markup: str, needle: str) -> None:
        self._markup = markup
        self._needle = needle
        self._found = -2  # not searched yet

    def at_or_after(self, pos: int) -> int:
        if self._found != -1 and self._found < pos:
            self._found = self._markup.find(self._needle, pos)
        return self._found


def _scan_markup(
    markup: str, lt: int, next_gt: _NextIndex, next_comment_end: _NextIndex,
) -> tuple[Token | None, int]:
    """Try to read one markup construct starting at the ``<`` at *lt*.

    Returns ``(token, next_position)``.  ``token`` is None when the construct
    produces no event (doctype, processing instruction).  ``next_position``
    is -1 when the ``<`` does not begin markup and must be kept as text.
    """
    n = len(markup)
    limit = min(n, lt + MAX_TAG_LENGTH)
    nxt = markup[lt + 1] if lt + 1 < n else ""

    # Comment / declaration / processing instruction
    if nxt == "!" and markup.startswith("<!--", lt):
        end = next_comment_end.at_or_after(lt + 4)
        if end == -1:
            return None, -1
        return Comment(markup[lt + 4:end]), end + 3

    # No ">" inside the lookahead window: nothing below can succeed.
    gt = next_gt.at_or_after(lt + 1)
    if gt == -1 or gt >= limit:
        return None, -1

    if nxt in ("!", "?"):
        return None, gt + 1

    # Closing tag
    if nxt == "/":
        if lt + 2 >= n or not markup[lt + 2].isalpha():
            return None, -1
        name_end = _NAME_RE.match(markup, lt + 2, gt).end()
        return TagClose(markup[lt + 2:name_end].upper()), gt + 1

    # Opening tag
    if not nxt.isalpha():
        return None, -1
    name_end = _NAME_RE.match(markup, lt + 1, gt).end()
    body_match = _TAG_BODY_RE.match(markup, name_end, limit)
    if body_match is None:
        return None, -1
    end = body_match.end() - 1
    body = markup[name_end:end]
    stripped = body.rstrip(_WHITESPACE)
    self_closing = stripped.endswith("/")
    if self_closing:
        body = stripped[:-1]
    return TagOpen(markup[lt + 1:name_end].upper(), body, self_closing), end + 1


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def tokenize(markup: str) -> Iterator[Token]:
    """Yield token events for *markup* in document order.

    Text between tags is emitted verbatim (no entity decoding).  A ``<`` that
    does not start a well-formed tag within the lookahead bound is folded into
    the surrounding text run.
    """
    if not markup:
        return
    n = len(markup)
    next_gt = _NextIndex(markup, ">")
    next_comment_end = _NextIndex(markup, "-->")
    pos = 0
    text_start = 0
    while pos < n:
        lt = markup.find("<", pos)
        if lt == -1:
            break
        token, nxt = _scan_markup(markup, lt, next_gt, next_comment_end)
        if nxt == -1:
            pos = lt + 1
            continue
        if lt > text_start:
            yield Text(markup[text_start:lt])
        if token is not None:
            yield token
        pos = text_start = nxt
    if text_start < n:
        yield Text(markup[text_start:])


def parse_attributes(raw: str) -> list[tuple[str, str | None]]:
    """Split a raw attribute string into ordered ``(name, value)`` pairs.

    Names are lower-cased; values are kept exactly as written (quotes removed,
    entities untouched).  Valueless attributes get ``None``.  Duplicates are
    preserved in source order.
    """
    attrs: list[tuple[str, str | None]] = []
    n = len(raw)
    i = 0
    while i < n:
        while i < n and (raw[i] in _WHITESPACE or raw[i] == "/"):
            i += 1
        if i >= n:
            break
        start = i
        while i < n and raw[i] not in _WHITESPACE and raw[i] not in "=/":
            i += 1
        if i == start:
            # Lone "=" with no name; skip it.
            i += 1
            continue
        name = raw[start:i].lower()
        j = i
        while j < n and raw[j] in _WHITESPACE:
            j += 1
        if j < n and raw[j] == "=":
            j += 1
            while j < n and raw[j] in _WHITESPACE:
                j += 1
            if j < n and raw[j] in "\"'":
                quote = raw[j]
                close = raw.find(quote, j + 1)
                if close == -1:
                    close = n
                value = raw[j + 1:close]
                i = close + 1
            else:
                start = j
                while j < n and raw[j] not in _WHITESPACE:
                    j += 1
                value = raw[start:j]
                i = j
            attrs.append((name, value))
        else:
            attrs.append((name, None))
    return attrs
