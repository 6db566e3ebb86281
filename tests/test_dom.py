"""Tests for clipextract.dom — tokenizer, tree builder and tree facade."""

from __future__ import annotations

import time

import pytest
from bs4 import BeautifulSoup

from clipextract.dom.tokenizer import (
    MAX_TAG_LENGTH,
    Comment,
    TagClose,
    TagOpen,
    Text,
    parse_attributes,
    tokenize,
)
from clipextract.dom.tree import (
    ELEMENT,
    NO_PARENT,
    ROOT,
    TEXT,
    Document,
    build_document,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _structure(markup: str) -> list[tuple[str, tuple]]:
    """Tag names and attribute sets in document order, as seen by bs4."""
    soup = BeautifulSoup(markup, "html.parser")
    out = []
    for tag in soup.find_all(True):
        attrs = tuple(
            sorted((k, " ".join(v) if isinstance(v, list) else v) for k, v in tag.attrs.items()),
        )
        out.append((tag.name, attrs))
    return out


def _text(markup: str) -> str:
    return " ".join(BeautifulSoup(markup, "html.parser").get_text(" ").split())


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

class TestTokenizer:
    def test_basic_sequence(self):
        tokens = list(tokenize('<p class="lead">Hello</p>'))
        assert tokens == [
            TagOpen("P", ' class="lead"', False),
            Text("Hello"),
            TagClose("P"),
        ]

    def test_self_closing_detected(self):
        tokens = list(tokenize('<img src="a.png"/>'))
        assert tokens == [TagOpen("IMG", ' src="a.png"', True)]

    def test_comment_token(self):
        tokens = list(tokenize("a<!-- note -->b"))
        assert tokens == [Text("a"), Comment(" note "), Text("b")]

    def test_doctype_and_processing_instruction_skipped(self):
        tokens = list(tokenize("<!DOCTYPE html><?xml version='1.0'?><p>x</p>"))
        assert tokens[0] == TagOpen("P", "", False)

    def test_less_than_in_text_is_kept(self):
        tokens = list(tokenize("<p>1 < 2 and 3 <= 4</p>"))
        assert Text("1 < 2 and 3 <= 4") in tokens

    def test_unterminated_tag_becomes_text(self):
        tokens = list(tokenize("before <div class='x'"))
        assert tokens == [Text("before <div class='x'")]

    def test_unterminated_comment_becomes_text(self):
        tokens = list(tokenize("a <!-- never closed"))
        assert tokens == [Text("a <!-- never closed")]

    def test_quoted_gt_inside_attribute(self):
        tokens = list(tokenize('<a title="a > b" href="/x">link</a>'))
        assert tokens[0] == TagOpen("A", ' title="a > b" href="/x"', False)

    def test_apostrophe_in_bare_value_does_not_derail(self):
        tokens = list(tokenize("<a title=it's>x</a>"))
        assert tokens[0].name == "A"
        assert Text("x") in tokens

    def test_lookahead_is_bounded(self):
        long_attr = "x" * (MAX_TAG_LENGTH + 10)
        markup = f'<div title="{long_attr}">'
        tokens = list(tokenize(markup))
        assert all(not isinstance(t, TagOpen) for t in tokens)

    def test_entities_not_decoded(self):
        tokens = list(tokenize("<p>&amp; &lt;</p>"))
        assert Text("&amp; &lt;") in tokens

    def test_empty_input(self):
        assert list(tokenize("")) == []

    def test_lazy(self):
        stream = tokenize("<p>a</p>" * 1000)
        assert next(stream) == TagOpen("P", "", False)

    def test_unclosed_quote_fails_only_its_own_tag(self):
        tokens = list(tokenize('<a title="oops <b>bold</b>'))
        assert tokens == [
            Text('<a title="oops '),
            TagOpen("B", "", False),
            Text("bold"),
            TagClose("B"),
        ]

    @pytest.mark.parametrize(
        "markup",
        [
            "<html><body>" + "<div " * 20000 + "</body></html>",
            "<div" * 30000,
            "</span" * 30000,
            "<!--" * 30000,
            '<a x="' * 20000 + ">",
        ],
    )
    def test_unterminated_tags_scan_in_linear_time(self, markup):
        started = time.perf_counter()
        tokens = list(tokenize(markup))
        assert time.perf_counter() - started < 2.0
        assert tokens

    def test_markup_without_any_gt_is_one_text_run(self):
        markup = "<div class=x " * 5000
        assert list(tokenize(markup)) == [Text(markup)]


class TestParseAttributes:
    def test_quote_styles(self):
        attrs = parse_attributes(""" id="main" class='a b' data-x=bare""")
        assert attrs == [("id", "main"), ("class", "a b"), ("data-x", "bare")]

    def test_valueless_and_case(self):
        attrs = parse_attributes(" HIDDEN Data-Role=nav")
        assert attrs == [("hidden", None), ("data-role", "nav")]

    def test_duplicates_preserved_in_order(self):
        attrs = parse_attributes(' a="1" a="2"')
        assert attrs == [("a", "1"), ("a", "2")]

    def test_values_not_entity_decoded(self):
        assert parse_attributes(' title="a &amp; b"') == [("title", "a &amp; b")]


# ---------------------------------------------------------------------------
# Tree builder
# ---------------------------------------------------------------------------

class TestTreeBuilder:
    def test_round_trip_matches_bs4_structure(self):
        fragment = (
            '<div id="a" class="x y"><h2>Head</h2><p>Hello <b>bold</b> &amp; <i>it</i></p>'
            '<ul><li>One</li><li>Two</li></ul><img src="a.png" alt="A">'
            '<a href="/p?q=1&amp;r=2" title="say &quot;hi&quot;">link</a></div>'
        )
        out = build_document(fragment).serialize()
        assert _structure(out) == _structure(fragment)
        assert _text(out) == _text(fragment)

    def test_tag_names_upper_case(self):
        doc = build_document("<DiV><sPaN>x</sPaN></DiV>")
        assert [doc.tag_name(i) for i in doc.find_by_tag("*")] == ["DIV", "SPAN"]

    def test_whitespace_only_text_skipped(self):
        doc = build_document("<div>\n   <p>x</p>\n</div>")
        div = doc.find_first("DIV")
        assert [doc.nodes[c].kind for c in doc.children(div)] == [ELEMENT]

    def test_void_elements_take_no_children(self):
        doc = build_document("<p>a<br>b<img src=x>c</p>")
        p = doc.find_first("P")
        assert [doc.tag_name(c) for c in doc.children(p)] == ["#text", "BR", "#text", "IMG", "#text"]

    def test_mis_nested_close_auto_closes_inner(self):
        doc = build_document("<b><i>x</b>y</i>")
        assert doc.is_consistent()
        assert doc.text_content(ROOT) == "xy"
        b = doc.find_first("B")
        assert doc.find_first("I", b) is not None

    def test_stray_close_tag_ignored(self):
        doc = build_document("<div>a</span>b</div>")
        div = doc.find_first("DIV")
        assert doc.text_content(div) == "ab"

    def test_unclosed_elements_attached_at_end(self):
        doc = build_document("<div><p>one<p>two")
        div = doc.find_first("DIV")
        assert [doc.tag_name(c) for c in doc.element_children(div)] == ["P", "P"]

    def test_list_items_implicitly_closed(self):
        doc = build_document("<ul><li>a<li>b</ul>")
        ul = doc.find_first("UL")
        assert len(doc.element_children(ul)) == 2

    def test_table_rows_implicitly_closed(self):
        doc = build_document("<table><tr><td>a<td>b<tr><td>c</table>")
        table = doc.find_first("TABLE")
        rows = doc.element_children(table)
        assert [doc.tag_name(r) for r in rows] == ["TR", "TR"]
        assert [len(doc.element_children(r)) for r in rows] == [2, 1]

    def test_implied_end_skips_inline_elements(self):
        doc = build_document("<ul><li>a<span>b<li>c</ul>")
        ul = doc.find_first("UL")
        assert [doc.tag_name(c) for c in doc.element_children(ul)] == ["LI", "LI"]

    def test_implied_end_stops_at_scope_boundary(self):
        doc = build_document("<li>outer<div><li>inner</div>")
        outer = doc.find_first("LI")
        div = doc.find_first("DIV", outer)
        assert div is not None
        assert doc.find_first("LI", div) is not None

    @pytest.mark.parametrize(
        "markup",
        [
            "<div>" * 20000 + "</span>" * 20000,
            "<li><div>" + "<span>" * 20000 + "<li>" * 20000,
            "<table><tr>" + "<b>" * 20000 + "<td>" * 20000,
        ],
    )
    def test_stray_and_implied_closes_do_not_rescan_stack(self, markup):
        started = time.perf_counter()
        doc = build_document(markup)
        assert time.perf_counter() - started < 5.0
        assert doc.is_consistent()

    def test_deep_nesting_does_not_recurse(self):
        depth = 20000
        doc = build_document("<div>" * depth + "deep" + "</div>" * depth)
        assert len(doc.find_by_tag("DIV")) == depth
        assert doc.serialize().count("<div>") == depth
        assert doc.text_content(ROOT) == "deep"

    @pytest.mark.parametrize(
        "markup",
        [
            "",
            "plain text",
            "<div><span></div></span>",
            "</p></p><p>",
            "<table><tr><td>a<td>b<tr><td>c</table>",
            "<a href='x'>unterminated",
            "<<>><p>>x<</p>",
            "<script>if (a < b) { x = '</div>'; }</script><p>after</p>",
        ],
    )
    def test_no_orphans_for_any_input(self, markup):
        doc = build_document(markup)
        assert doc.is_consistent()
        for index in doc.iter_descendants(ROOT):
            parent = doc.parent(index)
            assert parent != NO_PARENT
            assert doc.children(parent).count(index) == 1


# ---------------------------------------------------------------------------
# Facade: queries
# ---------------------------------------------------------------------------

class TestQueries:
    def test_find_by_tag_pre_order(self):
        doc = build_document("<div id='1'><div id='2'></div></div><div id='3'></div>")
        ids = [doc.get_attribute(i, "id") for i in doc.find_by_tag("div")]
        assert ids == ["1", "2", "3"]

    def test_find_by_id_first_match_wins(self):
        doc = build_document("<p id='dup'>first</p><p id='dup'>second</p>")
        assert doc.text_content(doc.find_by_id("dup")) == "first"
        assert doc.find_by_id("missing") is None

    def test_attribute_helpers(self):
        doc = build_document('<p class="a  b" hidden data-x="1">x</p>')
        p = doc.find_first("P")
        assert doc.class_list(p) == ["a", "b"]
        assert doc.get_attribute(p, "hidden") == ""
        assert doc.has_attribute(p, "HIDDEN")
        doc.set_attribute(p, "data-x", "2")
        doc.remove_attribute(p, "class")
        assert doc.serialize(p) == '<p hidden data-x="2">x</p>'

    def test_text_content_decodes_and_separates_blocks(self):
        doc = build_document("<div><p>Fish &amp; chips</p><p>Peas</p></div>")
        assert doc.text_content(ROOT) == "Fish & chips Peas"

    def test_document_language_and_title(self):
        doc = build_document('<html lang="de-AT"><head><title> Hallo </title></head></html>')
        assert doc.language == "de-AT"
        assert doc.title == "Hallo"

    def test_head_and_body(self):
        doc = build_document("<html><head></head><body><p>x</p></body></html>")
        assert doc.tag_name(doc.head) == "HEAD"
        assert doc.inner_html(doc.body) == "<p>x</p>"

    def test_serialize_escapes_double_quotes_in_values(self):
        doc = Document()
        el = doc.create_element("a", [("title", 'say "hi"')])
        doc.append_child(ROOT, el)
        assert doc.serialize() == '<a title="say &quot;hi&quot;"></a>'


# ---------------------------------------------------------------------------
# Facade: mutation
# ---------------------------------------------------------------------------

class TestMutation:
    def test_set_content_replaces_children(self):
        doc = build_document("<div id='box'><p>old</p></div>")
        box = doc.find_by_id("box")
        doc.set_content(box, "<span>new</span> text")
        assert doc.inner_html(box) == "<span>new</span> text"
        assert doc.is_consistent()

    def test_set_content_never_escapes_target(self):
        doc = build_document("<div id='box'></div><p>sibling</p>")
        box = doc.find_by_id("box")
        doc.set_content(box, "</div></div><b>inside</b>")
        assert doc.find_first("B", box) is not None

    def test_clone_is_isolated(self):
        doc = build_document("<div id='src'><p class='x'>text</p></div>")
        original = doc.serialize()
        copy = doc.clone(doc.find_by_id("src"))
        top = copy.document_element
        p = copy.find_first("P", top)
        copy.set_attribute(p, "class", "changed")
        copy.remove(p)
        assert doc.serialize() == original
        assert copy.serialize() == '<div id="src"></div>'

    def test_shallow_clone(self):
        doc = build_document("<div id='src'><p>text</p></div>")
        copy = doc.clone(doc.find_by_id("src"), deep=False)
        assert copy.serialize() == '<div id="src"></div>'

    def test_replace(self):
        doc = build_document("<div><span>old</span></div>")
        new = doc.create_element("em")
        text = doc.create_text("new")
        doc.append_child(new, text)
        doc.replace(doc.find_first("SPAN"), new)
        assert doc.serialize() == "<div><em>new</em></div>"
        assert doc.is_consistent()

    def test_append_child_rejects_cycles(self):
        doc = build_document("<div><p><b>x</b></p></div>")
        div = doc.find_first("DIV")
        b = doc.find_first("B")
        with pytest.raises(ValueError):
            doc.append_child(b, div)
        with pytest.raises(ValueError):
            doc.append_child(div, div)
        assert doc.is_consistent()

    def test_remove_detaches_subtree(self):
        doc = build_document("<div><p>gone</p><p>kept</p></div>")
        doc.remove(doc.find_first("P"))
        assert doc.text_content(ROOT) == "kept"
        assert doc.nodes[1].kind == ELEMENT
        assert all(doc.nodes[i].kind in (ELEMENT, TEXT) for i in doc.iter_descendants())
