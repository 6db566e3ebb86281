"""clipextract.dom.tree — Arena-backed document tree, builder and query facade.

Every node lives in one flat list owned by its :class:`Document`; parent and
child links are plain integer indices into that list.  Nothing holds a
reference to another node object, so there are no ownership cycles, and
copying a subtree means copying records into a fresh arena.

Usage::

    from clipextract.dom.tree import build_document

    doc = build_document("<div id='main'><p>Hello <b>world</b></p></div>")
    main = doc.find_by_id("main")
    print(doc.inner_html(main))      # <p>Hello <b>world</b></p>
    print(doc.text_content(main))    # Hello world
"""

from __future__ import annotations

import html
from bisect import bisect_right
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field

from .tokenizer import Comment, TagClose, TagOpen, Text, Token, parse_attributes, tokenize

DOCUMENT = 9
ELEMENT = 1
TEXT = 3

ROOT = 0
NO_PARENT = -1

VOID_ELEMENTS: frozenset[str] = frozenset(
    {
        "AREA", "BASE", "BR", "COL", "EMBED", "HR", "IMG", "INPUT", "KEYGEN",
        "LINK", "META", "PARAM", "SOURCE", "TRACK", "WBR",
    },
)

# Block-level tags: text on either side of them is separated by a space
# when a subtree is flattened to plain text.
BLOCK_ELEMENTS: frozenset[str] = frozenset(
    {
        "ADDRESS", "ARTICLE", "ASIDE", "BLOCKQUOTE", "BODY", "BR", "DD", "DETAILS",
        "DIV", "DL", "DT", "FIELDSET", "FIGCAPTION", "FIGURE", "FOOTER", "FORM",
        "H1", "H2", "H3", "H4", "H5", "H6", "HEADER", "HR", "HTML", "LI", "MAIN",
        "NAV", "OL", "P", "PRE", "SECTION", "TABLE", "TBODY", "TD", "TFOOT",
        "TH", "THEAD", "TITLE", "TR", "UL",
    },
)

# Opening one of these implicitly closes an open element of the listed
# names, as long as no scope boundary sits in between.
_IMPLIED_END: dict[str, frozenset[str]] = {
    "P": frozenset({"P"}),
    "LI": frozenset({"LI"}),
    "DT": frozenset({"DT", "DD"}),
    "DD": frozenset({"DT", "DD"}),
    "TR": frozenset({"TR", "TD", "TH"}),
    "TD": frozenset({"TD", "TH"}),
    "TH": frozenset({"TD", "TH"}),
    "OPTION": frozenset({"OPTION"}),
}
_SCOPE_BOUNDARIES: frozenset[str] = frozenset(
    {
        "ARTICLE", "BLOCKQUOTE", "BODY", "DIV", "DL", "HTML", "MAIN", "OL",
        "SECTION", "SELECT", "TABLE", "TBODY", "TD", "TFOOT", "TH", "THEAD", "UL",
    },
)


@dataclass(slots=True)
class Node:
    """One arena record.  ``kind`` is ELEMENT, TEXT or DOCUMENT."""

    kind: int
    name: str = ""
    attrs: list[tuple[str, str | None]] = field(default_factory=list)
    data: str = ""
    parent: int = NO_PARENT
    children: list[int] = field(default_factory=list)


class Document:
    """A tree of :class:`Node` records rooted at index :data:`ROOT`.

    Node handles are ``int`` indices.  Detached nodes stay in the arena with
    ``parent == NO_PARENT`` but are unreachable from the root.
    """

    def __init__(self) -> None:
        self.nodes: list[Node] = [Node(DOCUMENT, "#document")]

    def __len__(self) -> int:
        return len(self.nodes)

    # ------------------------------------------------------------------
    # Construction and mutation
    # ------------------------------------------------------------------

    def create_element(
        self,
        name: str,
        attrs: Iterable[tuple[str, str | None]] = (),
    ) -> int:
        self.nodes.append(
            Node(ELEMENT, name.upper(), [(k.lower(), v) for k, v in attrs]),
        )
        return len(self.nodes) - 1

    def create_text(self, data: str) -> int:
        self.nodes.append(Node(TEXT, "#text", data=data))
        return len(self.nodes) - 1

    def append_child(self, parent: int, child: int) -> None:
        """Attach *child* as the last child of *parent*, detaching it first."""
        if self._is_ancestor_or_self(child, parent):
            raise ValueError(f"node {child} is an ancestor of {parent}")
        self.remove(child)
        self.nodes[parent].children.append(child)
        self.nodes[child].parent = parent

    def replace(self, old: int, new: int) -> None:
        """Put *new* in *old*'s slot and detach *old*."""
        parent = self.nodes[old].parent
        if parent == NO_PARENT:
            return
        if self._is_ancestor_or_self(new, parent):
            raise ValueError(f"node {new} is an ancestor of {parent}")
        self.remove(new)
        siblings = self.nodes[parent].children
        siblings[siblings.index(old)] = new
        self.nodes[new].parent = parent
        self.nodes[old].parent = NO_PARENT

    def remove(self, index: int) -> None:
        """Detach *index* (and its subtree) from its parent."""
        node = self.nodes[index]
        if node.parent == NO_PARENT:
            return
        self.nodes[node.parent].children.remove(index)
        node.parent = NO_PARENT

    def set_content(self, index: int, markup: str) -> None:
        """Replace the children of *index* with the tree parsed from *markup*."""
        for child in list(self.nodes[index].children):
            self.nodes[child].parent = NO_PARENT
        self.nodes[index].children = []
        TreeBuilder(self, index).feed(tokenize(markup))

    def clone(self, index: int, deep: bool = True) -> Document:
        """Copy *index* into a fresh document.

        The copy is the new document's :attr:`document_element`.  Copies never
        share node records with this document, so mutating one side is
        invisible to the other.
        """
        copy = Document()
        stack: list[tuple[int, int]] = [(index, ROOT)]
        while stack:
            src, dest_parent = stack.pop()
            node = self.nodes[src]
            copy.nodes.append(
                Node(node.kind, node.name, list(node.attrs), node.data, dest_parent),
            )
            new_index = len(copy.nodes) - 1
            copy.nodes[dest_parent].children.append(new_index)
            if deep:
                stack.extend((child, new_index) for child in reversed(node.children))
        return copy

    # ------------------------------------------------------------------
    # Attributes
    # ------------------------------------------------------------------

    def get_attribute(self, index: int, name: str) -> str | None:
        """Return the first value stored for *name*, or None.  Valueless → ``""``."""
        name = name.lower()
        for key, value in self.nodes[index].attrs:
            if key == name:
                return "" if value is None else value
        return None

    def has_attribute(self, index: int, name: str) -> bool:
        name = name.lower()
        return any(key == name for key, _ in self.nodes[index].attrs)

    def set_attribute(self, index: int, name: str, value: str) -> None:
        name = name.lower()
        attrs = self.nodes[index].attrs
        for pos, (key, _) in enumerate(attrs):
            if key == name:
                attrs[pos] = (name, value)
                return
        attrs.append((name, value))

    def remove_attribute(self, index: int, name: str) -> None:
        name = name.lower()
        node = self.nodes[index]
        node.attrs = [(k, v) for k, v in node.attrs if k != name]

    def class_list(self, index: int) -> list[str]:
        return (self.get_attribute(index, "class") or "").split()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def tag_name(self, index: int) -> str:
        return self.nodes[index].name

    def is_element(self, index: int) -> bool:
        return self.nodes[index].kind == ELEMENT

    def parent(self, index: int) -> int:
        return self.nodes[index].parent

    def children(self, index: int) -> list[int]:
        return list(self.nodes[index].children)

    def element_children(self, index: int) -> list[int]:
        return [c for c in self.nodes[index].children if self.nodes[c].kind == ELEMENT]

    def iter_descendants(self, index: int = ROOT) -> Iterator[int]:
        """Pre-order walk below *index* (excluding it), without recursion."""
        stack = list(reversed(self.nodes[index].children))
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(self.nodes[current].children))

    def find_all(self, predicate: Callable[[int], bool], start: int = ROOT) -> list[int]:
        return [
            i for i in self.iter_descendants(start)
            if self.nodes[i].kind == ELEMENT and predicate(i)
        ]

    def find_by_tag(self, name: str, start: int = ROOT) -> list[int]:
        """All elements named *name* below *start*, in pre-order.  ``"*"`` matches any."""
        name = name.upper()
        if name == "*":
            return self.find_all(lambda _i: True, start)
        return self.find_all(lambda i: self.nodes[i].name == name, start)

    def find_first(self, name: str, start: int = ROOT) -> int | None:
        name = name.upper()
        for i in self.iter_descendants(start):
            node = self.nodes[i]
            if node.kind == ELEMENT and node.name == name:
                return i
        return None

    def find_by_id(self, element_id: str, start: int = ROOT) -> int | None:
        """First element below *start* whose ``id`` equals *element_id*."""
        for i in self.iter_descendants(start):
            if self.nodes[i].kind == ELEMENT and self.get_attribute(i, "id") == element_id:
                return i
        return None

    @property
    def document_element(self) -> int | None:
        for child in self.nodes[ROOT].children:
            if self.nodes[child].kind == ELEMENT:
                return child
        return None

    @property
    def head(self) -> int | None:
        return self.find_first("HEAD")

    @property
    def body(self) -> int | None:
        return self.find_first("BODY")

    # ------------------------------------------------------------------
    # Document-level metadata
    # ------------------------------------------------------------------

    @property
    def language(self) -> str:
        """``lang`` declared on the ``<html>`` element, or ``""``."""
        root = self.find_first("HTML")
        if root is None:
            return ""
        return (self.get_attribute(root, "lang") or self.get_attribute(root, "xml:lang") or "").strip()

    @property
    def title(self) -> str:
        title = self.find_first("TITLE")
        return self.text_content(title) if title is not None else ""

    # ------------------------------------------------------------------
    # Text and serialisation
    # ------------------------------------------------------------------

    def own_text(self, index: int) -> str:
        """Entity-decoded text of the direct text children of *index*."""
        parts = [
            self.nodes[c].data for c in self.nodes[index].children
            if self.nodes[c].kind == TEXT
        ]
        return " ".join(html.unescape(" ".join(parts)).split())

    def text_content(self, index: int) -> str:
        """Entity-decoded, whitespace-collapsed text of the subtree at *index*."""
        node = self.nodes[index]
        if node.kind == TEXT:
            return " ".join(html.unescape(node.data).split())
        parts: list[str] = []
        for i in self.iter_descendants(index):
            child = self.nodes[i]
            if child.kind == TEXT:
                parts.append(child.data)
            elif child.name in BLOCK_ELEMENTS:
                parts.append(" ")
        return " ".join(html.unescape("".join(parts)).split())

    def _start_tag(self, node: Node) -> str:
        parts = [node.name.lower()]
        for key, value in node.attrs:
            if value is None:
                parts.append(key)
            else:
                parts.append(f'{key}="{value.replace(chr(34), "&quot;")}"')
        return "<" + " ".join(parts) + ">"

    def serialize(self, index: int = ROOT) -> str:
        """Reconstruct markup for the subtree at *index* (outer markup)."""
        out: list[str] = []
        stack: list[tuple[int, bool]] = [(index, False)]
        while stack:
            current, closing = stack.pop()
            node = self.nodes[current]
            if closing:
                out.append(f"</{node.name.lower()}>")
                continue
            if node.kind == TEXT:
                out.append(node.data)
                continue
            if node.kind == ELEMENT:
                out.append(self._start_tag(node))
                if node.name in VOID_ELEMENTS and not node.children:
                    continue
                stack.append((current, True))
            stack.extend((child, False) for child in reversed(node.children))
        return "".join(out)

    def inner_html(self, index: int) -> str:
        return "".join(self.serialize(child) for child in self.nodes[index].children)

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def _is_ancestor_or_self(self, candidate: int, index: int) -> bool:
        current = index
        while current != NO_PARENT:
            if current == candidate:
                return True
            current = self.nodes[current].parent
        return False

    def is_consistent(self) -> bool:
        """True when every reachable node appears once with a matching parent link."""
        seen: set[int] = {ROOT}
        stack = [ROOT]
        while stack:
            current = stack.pop()
            for child in self.nodes[current].children:
                if child in seen or self.nodes[child].parent != current:
                    return False
                seen.add(child)
                stack.append(child)
        return True


# ---------------------------------------------------------------------------
# Tree builder
# ---------------------------------------------------------------------------

class TreeBuilder:
    """Consume tokens and attach nodes below *parent* in *document*.

    Open elements are tracked on an explicit stack, so input nesting depth
    never reaches the interpreter's recursion limit.  A node is attached to
    its parent when it is opened; closing a tag only pops the stack, which
    makes unclosed and mis-nested tags harmless.  Stack depths are indexed by
    tag name and by scope boundary, so stray and implied closes never rescan
    the stack.
    """

    def __init__(self, document: Document | None = None, parent: int = ROOT) -> None:
        self.document = document if document is not None else Document()
        self._base = parent
        self._stack: list[int] = [parent]
        self._open_at: dict[str, list[int]] = {}
        self._boundaries: list[int] = []

    def _top(self) -> int:
        return self._stack[-1]

    def _push(self, index: int) -> None:
        name = self.document.nodes[index].name
        depth = len(self._stack)
        self._stack.append(index)
        self._open_at.setdefault(name, []).append(depth)
        if name in _SCOPE_BOUNDARIES:
            self._boundaries.append(depth)

    def _pop_to(self, depth: int) -> None:
        nodes = self.document.nodes
        while len(self._stack) > depth:
            name = nodes[self._stack.pop()].name
            self._open_at[name].pop()
            if self._boundaries and self._boundaries[-1] == len(self._stack):
                self._boundaries.pop()

    def _close_implied(self, name: str) -> None:
        closes = _IMPLIED_END.get(name)
        if not closes:
            return
        nodes = self.document.nodes
        floor = 0
        for depth in reversed(self._boundaries):
            if nodes[self._stack[depth]].name not in closes:
                floor = depth
                break
        # Outermost match above the boundary wins so a new <tr> closes the
        # open cell and its row.
        cut = 0
        for open_name in closes:
            depths = self._open_at.get(open_name)
            if not depths:
                continue
            i = bisect_right(depths, floor)
            if i < len(depths) and (not cut or depths[i] < cut):
                cut = depths[i]
        if cut:
            self._pop_to(cut)

    def open_tag(self, token: TagOpen) -> None:
        self._close_implied(token.name)
        index = self.document.create_element(token.name, parse_attributes(token.attrs))
        parent = self._top()
        self.document.nodes[parent].children.append(index)
        self.document.nodes[index].parent = parent
        if not token.self_closing and token.name not in VOID_ELEMENTS:
            self._push(index)

    def close_tag(self, token: TagClose) -> None:
        # Never pop the base node we were asked to build into.
        depths = self._open_at.get(token.name)
        if depths:
            self._pop_to(depths[-1])

    def text(self, token: Text) -> None:
        if not token.data.strip():
            return
        index = self.document.create_text(token.data)
        parent = self._top()
        self.document.nodes[parent].children.append(index)
        self.document.nodes[index].parent = parent

    def feed(self, tokens: Iterable[Token]) -> Document:
        for token in tokens:
            if isinstance(token, TagOpen):
                self.open_tag(token)
            elif isinstance(token, TagClose):
                self.close_tag(token)
            elif isinstance(token, Text):
                self.text(token)
            elif isinstance(token, Comment):
                continue
        # Anything still open is already attached; just drop the stack.
        self._pop_to(1)
        return self.document


def build_document(markup: str) -> Document:
    """Tokenize *markup* and build a fresh :class:`Document` from it."""
    return TreeBuilder().feed(tokenize(markup or ""))
