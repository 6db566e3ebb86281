"""In-tree annotations that later stages and the markdown adapter rely on.

Math: MathJax 2 ``<script id="MathJax-Element-N">``, MathJax 3 nodes with a
``markdownload-latex`` attribute and KaTeX ``.katex-mathml`` spans are
rewritten so their TeX survives script removal, each tagged with a
deterministic ``math-N`` id recorded in the returned map.

Code: highlighted blocks get a ``code-lang-<lang>`` id so the fence language
can be recovered after classes are stripped.
"""

from __future__ import annotations

import html
import logging
import re

from clipextract.dom.tree import ELEMENT, TEXT, Document, build_document
from clipextract.items import MathInfo

logger = logging.getLogger(__name__)

MATH_MARKERS: tuple[str, ...] = ("MathJax-Element-", "markdownload-latex", "katex-mathml")

MATH_ID_PREFIX = "math-"
CODE_LANG_PREFIX = "code-lang-"

_LANGUAGE_CLASS_RE = re.compile(r"(?:^|\s)language-([a-z0-9]+)(?:\s|$)", re.IGNORECASE)
_HIGHLIGHT_CLASS_RE = re.compile(r"highlight-(?:text|source)-([a-z0-9]+)", re.IGNORECASE)
_MATHJAX_SCRIPT_RE = re.compile(
    r"""<script\b[^<>]*\bid\s*=\s*["']?MathJax-Element-[^<>]*>""", re.IGNORECASE,
)
_SCRIPT_CLOSE_RE = re.compile(r"</script\s*>", re.IGNORECASE)

_HEADINGS = frozenset({"H1", "H2", "H3", "H4", "H5", "H6"})


def has_math_markers(markup: str) -> bool:
    """Cheap pre-check so the common case skips a full tree build."""
    return any(marker in markup for marker in MATH_MARKERS)


def escape_math_scripts(markup: str) -> str:
    """Entity-escape the bodies of MathJax 2 ``<script>`` elements.

    The tokenizer has no raw-text mode, so TeX such as ``x<y`` would
    otherwise open a bogus ``<Y`` element that swallows the page after it.
    :func:`annotate_math` decodes the bodies again.
    """
    out: list[str] = []
    pos = 0
    while True:
        m = _MATHJAX_SCRIPT_RE.search(markup, pos)
        if not m:
            break
        close = _SCRIPT_CLOSE_RE.search(markup, m.end())
        if not close:
            break
        out.append(markup[pos:m.end()])
        out.append(html.escape(markup[m.end():close.start()], quote=False))
        out.append(close.group(0))
        pos = close.end()
    out.append(markup[pos:])
    return "".join(out)


def _raw_text(doc: Document, index: int) -> str:
    # Joined without entity decoding; callers decode where the source is escaped.
    return "".join(
        doc.nodes[i].data for i in doc.iter_descendants(index) if doc.nodes[i].kind == TEXT
    )


def _replace_with_tex(doc: Document, index: int, tex: str, inline: bool, math_id: str) -> None:
    tag = "i" if inline else "p"
    new = doc.create_element(tag, [("id", math_id)])
    doc.set_content(new, html.escape(tex, quote=False))
    doc.replace(index, new)


def annotate_math(doc: Document) -> dict[str, MathInfo]:
    """Rewrite math nodes in *doc* and return ``{id: MathInfo}`` in document order.

    MathJax 2 script bodies are entity-decoded, so build *doc* from
    :func:`escape_math_scripts` output when the TeX may contain ``<``.
    """
    math: dict[str, MathInfo] = {}

    def next_id() -> str:
        return f"{MATH_ID_PREFIX}{len(math) + 1}"

    targets = doc.find_all(
        lambda i: (
            (doc.tag_name(i) == "SCRIPT"
             and (doc.get_attribute(i, "id") or "").startswith("MathJax-Element-"))
            or doc.has_attribute(i, "markdownload-latex")
            or "katex-mathml" in doc.class_list(i)
        ),
    )

    for index in targets:
        if doc.tag_name(index) == "SCRIPT":
            script_type = doc.get_attribute(index, "type")
            inline = "mode=display" not in script_type if script_type else False
            tex = html.unescape(_raw_text(doc, index)).strip()
            math_id = next_id()
            _replace_with_tex(doc, index, tex, inline, math_id)
        elif doc.has_attribute(index, "markdownload-latex"):
            tex = html.unescape(doc.get_attribute(index, "markdownload-latex") or "").strip()
            inline = (doc.get_attribute(index, "display") or "").lower() != "true"
            math_id = next_id()
            _replace_with_tex(doc, index, tex, inline, math_id)
        else:
            annotation = doc.find_first("ANNOTATION", index)
            if annotation is None:
                continue
            tex = html.unescape(_raw_text(doc, annotation)).strip()
            inline = True
            math_id = next_id()
            doc.set_attribute(index, "id", math_id)
        math[math_id] = MathInfo(tex=tex, inline=inline)

    if math:
        logger.debug("annotated %d math nodes", len(math))
    return math


def annotate_markup(markup: str) -> tuple[str, dict[str, MathInfo]]:
    """Rewrite math in *markup* before cleanup drops its scripts.

    Returns the markup unchanged with an empty map when the page carries no
    math.
    """
    if not has_math_markers(markup):
        return markup, {}
    doc = build_document(escape_math_scripts(markup))
    math = annotate_math(doc)
    if not math:
        return markup, {}
    return doc.serialize(), math


def mark_code_languages(doc: Document) -> int:
    """Tag highlighted code with ``code-lang-*`` ids; returns the number marked.

    Heading class attributes are dropped as well so they never leak styling
    hooks into the final content.
    """
    marked = 0
    for index in list(doc.iter_descendants()):
        if doc.nodes[index].kind != ELEMENT:
            continue
        tag = doc.tag_name(index)
        if tag in _HEADINGS:
            doc.remove_attribute(index, "class")
            continue

        class_value = doc.get_attribute(index, "class") or ""
        if not class_value:
            continue

        highlight = _HIGHLIGHT_CLASS_RE.search(class_value)
        if highlight:
            kids = doc.element_children(index)
            if kids and doc.tag_name(kids[0]) == "PRE":
                doc.set_attribute(kids[0], "id", CODE_LANG_PREFIX + highlight.group(1).lower())
                marked += 1
            continue

        language = _LANGUAGE_CLASS_RE.search(class_value)
        if language:
            doc.set_attribute(index, "id", CODE_LANG_PREFIX + language.group(1).lower())
            marked += 1
            continue

        if "codehilite" in class_value.split():
            for pre in doc.element_children(index):
                if doc.tag_name(pre) != "PRE" or "language" in (doc.get_attribute(pre, "class") or ""):
                    continue
                kids = doc.element_children(pre)
                if not kids or doc.tag_name(kids[0]) != "CODE":
                    doc.set_attribute(pre, "id", CODE_LANG_PREFIX + "text")
                    marked += 1
    return marked
