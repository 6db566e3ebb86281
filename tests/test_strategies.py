"""Tests for the strategy chain, fallbacks and post-processing."""

from __future__ import annotations

import logging

import pytest

from clipextract.dom.tree import build_document
from clipextract.extractors.cleanup import CleanupPipeline
from clipextract.extractors.main_content import (
    BODY_FALLBACK,
    RAW_CLEANED,
    RAW_FALLBACK,
    Orchestrator,
    apply_fallbacks,
    clean_content,
    extract_main_content,
)
from clipextract.extractors.strategies import (
    ComprehensiveStrategy,
    ExtractionCandidate,
    ExtractionStrategy,
    InternationalizedStrategy,
    Pacer,
    SemanticContainerStrategy,
    aggregate_blocks,
    default_strategies,
    is_noisy,
)
from clipextract.items import ExtractOptions, ScoreWeights

LONG_SENTENCE = "This sentence is long enough to count as a real paragraph of text. "


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class _Fixed:
    """Strategy stub that always returns the same candidates."""

    def __init__(self, name, priority, candidates, handles=True):
        self.name = name
        self.priority = priority
        self._candidates = candidates
        self._handles = handles
        self.calls = 0

    def can_handle(self, markup):
        return self._handles

    def extract(self, markup, document=None, pacer=None):
        self.calls += 1
        return list(self._candidates)


class _Exploding:
    name = "exploding"
    priority = 1000

    def can_handle(self, markup):
        return True

    def extract(self, markup, document=None, pacer=None):
        raise RuntimeError("boom")


def _cleaned(markup: str) -> str:
    return CleanupPipeline()(markup)


# ---------------------------------------------------------------------------
# Candidates and pacing
# ---------------------------------------------------------------------------

class TestCandidate:
    def test_create_clamps_score(self):
        assert ExtractionCandidate.create("<p>x</p>", "s", -12).score == 0.0

    def test_rank_breaks_ties_by_priority(self):
        low = ExtractionCandidate.create("a", "low", 10, priority=1)
        high = ExtractionCandidate.create("b", "high", 10, priority=5)
        assert max([low, high], key=lambda c: c.rank) is high

    def test_score_beats_priority(self):
        strong = ExtractionCandidate.create("a", "strong", 11, priority=1)
        favoured = ExtractionCandidate.create("b", "favoured", 10, priority=99)
        assert max([strong, favoured], key=lambda c: c.rank) is strong


class TestPacer:
    def test_called_every_interval(self):
        calls = []
        pacer = Pacer(lambda: calls.append(1), interval=3)
        for _ in range(7):
            pacer.tick()
        assert len(calls) == 2
        assert pacer.ticks == 7

    def test_without_callback(self):
        pacer = Pacer()
        pacer.tick()
        assert pacer.ticks == 1

    def test_interval_floor(self):
        calls = []
        pacer = Pacer(lambda: calls.append(1), interval=0)
        pacer.tick()
        assert calls == [1]


# ---------------------------------------------------------------------------
# Individual strategies
# ---------------------------------------------------------------------------

class TestStrategies:
    def test_builtins_satisfy_protocol(self):
        for strategy in default_strategies():
            assert isinstance(strategy, ExtractionStrategy)

    def test_default_priorities(self):
        assert [s.name for s in default_strategies()] == [
            "semantic", "internationalized", "comprehensive",
        ]
        assert [s.priority for s in default_strategies()] == [300, 200, 100]

    def test_custom_stub_satisfies_protocol(self):
        assert isinstance(_Fixed("x", 1, []), ExtractionStrategy)

    def test_semantic_can_handle(self):
        strategy = SemanticContainerStrategy()
        assert strategy.can_handle("<article><p>x</p></article>")
        assert strategy.can_handle('<div class="post-content">x</div>')
        assert strategy.can_handle('<div class="zhengwen">x</div>')
        assert not strategy.can_handle("<div><p>plain</p></div>")
        assert not strategy.can_handle("")

    def test_semantic_skips_noise_inside_container(self):
        markup = (
            "<article><p>" + LONG_SENTENCE + "</p>"
            '<div class="share-buttons">Share this</div><nav>Next</nav></article>'
        )
        candidates = SemanticContainerStrategy().extract(markup)
        assert len(candidates) == 1
        assert "Share this" not in candidates[0].fragment
        assert "Next" not in candidates[0].fragment
        assert candidates[0].source == "semantic"
        assert candidates[0].priority == 300

    def test_semantic_ignores_tiny_containers(self):
        assert SemanticContainerStrategy().extract("<main>short</main>") == []

    def test_internationalized_can_handle(self):
        strategy = InternationalizedStrategy()
        assert strategy.can_handle("<div>日本語のテキスト</div>")
        assert strategy.can_handle('<div id="story">text</div>')
        assert not strategy.can_handle("<div>plain latin</div>")

    def test_internationalized_aggregates_blocks(self):
        markup = "<div><p>第一段中文内容比较长。</p><p>第二段中文内容比较长。</p><p>x</p></div>"
        candidates = InternationalizedStrategy().extract(markup)
        assert candidates[0].fragment == "<p>第一段中文内容比较长。</p><p>第二段中文内容比较长。</p>"
        # Parent container proposed as well
        assert any("<p>x</p>" in c.fragment for c in candidates[1:])

    def test_comprehensive_always_handles(self):
        assert ComprehensiveStrategy().can_handle("")

    def test_comprehensive_sources(self):
        markup = "<div>" + "".join(f"<p>{LONG_SENTENCE}{i}</p>" for i in range(4)) + "</div>"
        sources = {c.source for c in ComprehensiveStrategy().extract(markup)}
        assert {"comprehensive.dense", "comprehensive.aggregate", "comprehensive.structure"} <= sources

    def test_comprehensive_penalizes_link_lists(self):
        links = "".join(f'<a href="/{i}">Link number {i} to elsewhere</a>' for i in range(10))
        markup = f"<div id='links'>{links}</div><div id='text'><p>{LONG_SENTENCE * 3}</p></div>"
        strategy = ComprehensiveStrategy()
        doc = build_document(markup)
        dense = strategy._dense_blocks(doc, Pacer())
        assert doc.get_attribute(dense[0], "id") == "text"

    def test_aggregate_blocks_escapes_text(self):
        assert aggregate_blocks([("H2", "A & B"), ("DIV", "<x>")]) == "<h2>A &amp; B</h2><p>&lt;x&gt;</p>"

    def test_is_noisy(self):
        doc = build_document(
            '<div class="sidebar-left">a</div><div class="nav">b</div>'
            '<div class="canvas">c</div><footer>d</footer>',
        )
        flags = [is_noisy(doc, i) for i in doc.find_by_tag("*")]
        assert flags == [True, True, False, True]


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class TestOrchestrator:
    def test_article_with_nav_and_footer(self, nav_article_html):
        result = extract_main_content(_cleaned(nav_article_html), nav_article_html)
        assert result.method == "semantic"
        assert "Title" in result.html
        assert "First paragraph" in result.html
        assert "Home About" not in result.html
        assert "Copyright" not in result.html

    def test_chinese_div(self, chinese_html):
        result = extract_main_content(_cleaned(chinese_html), chinese_html)
        assert result.method == "internationalized"
        assert "短一点的中文内容" in result.html

    def test_result_carries_only_read_fields(self, nav_article_html):
        result = extract_main_content(_cleaned(nav_article_html), nav_article_html)
        assert result._fields == ("html", "method", "score")

    def test_strategies_sorted_by_priority(self):
        low = _Fixed("low", 1, [])
        high = _Fixed("high", 9, [])
        orchestrator = Orchestrator([low, high])
        assert [s.name for s in orchestrator.strategies] == ["high", "low"]

    def test_first_yielding_strategy_decides(self):
        first = _Fixed("first", 9, [ExtractionCandidate.create("<p>a</p>", "first", 1, 9)])
        second = _Fixed("second", 1, [ExtractionCandidate.create("<p>b</p>", "second", 999, 1)])
        winner = Orchestrator([second, first]).select("<p>a</p>")
        assert winner.source == "first"
        assert second.calls == 0

    def test_best_candidate_of_winning_strategy(self):
        candidates = [
            ExtractionCandidate.create("<p>a</p>", "s.a", 5, 3),
            ExtractionCandidate.create("<p>b</p>", "s.b", 50, 3),
        ]
        assert Orchestrator([_Fixed("s", 3, candidates)]).select("x").source == "s.b"

    def test_empty_strategy_falls_through(self):
        empty = _Fixed("empty", 9, [])
        skipped = _Fixed("skipped", 8, [ExtractionCandidate.create("no", "skipped", 1)], handles=False)
        fallback = _Fixed("fallback", 1, [ExtractionCandidate.create("<p>f</p>", "fallback", 1)])
        assert Orchestrator([empty, skipped, fallback]).select("x").source == "fallback"
        assert skipped.calls == 0

    def test_raising_strategy_is_skipped(self, caplog):
        good = _Fixed("good", 1, [ExtractionCandidate.create("<p>g</p>", "good", 1)])
        with caplog.at_level(logging.WARNING):
            winner = Orchestrator([_Exploding(), good]).select("x")
        assert winner.source == "good"
        assert "exploding" in caplog.text

    def test_nothing_yields_returns_cleaned_markup(self):
        winner = Orchestrator([_Fixed("empty", 1, [])]).select("<p>cleaned</p>")
        assert winner == ExtractionCandidate("<p>cleaned</p>", RAW_CLEANED, 0.0, 0)

    def test_injected_strategy_with_defaults(self):
        custom = _Fixed("figures", 400, [ExtractionCandidate.create("<figure>f</figure>", "figures", 1)])
        orchestrator = Orchestrator([custom, *default_strategies()])
        assert orchestrator.strategies[0] is custom
        assert orchestrator("<article>anything</article>").source == "figures"

    def test_weights_change_the_outcome_deterministically(self):
        markup = "<div>" + "".join(f"<p>{LONG_SENTENCE}</p>" for _ in range(3)) + "</div>"
        plain = Orchestrator().select(markup)
        boosted = Orchestrator(weights=ScoreWeights(version="x", paragraph=5000)).select(markup)
        assert boosted.score > plain.score
        assert Orchestrator().select(markup) == plain

    def test_pacing_through_comprehensive_strategy(self):
        calls = []
        markup = "<div>" + "".join(f"<p>{LONG_SENTENCE}{i}</p>" for i in range(20)) + "</div>"
        Orchestrator().select(markup, pacer=Pacer(lambda: calls.append(1)))
        assert len(calls) >= 2


# ---------------------------------------------------------------------------
# Fallbacks
# ---------------------------------------------------------------------------

class TestFallbacks:
    def test_body_fallback_when_winner_is_short(self):
        markup = (
            '<html><body><div class="content">Short intro text here ok.</div>'
            "<div>" + LONG_SENTENCE * 10 + "</div></body></html>"
        )
        result = extract_main_content(_cleaned(markup), markup)
        assert result.method == BODY_FALLBACK
        assert "Short intro" in result.html
        assert LONG_SENTENCE.strip() in result.html

    def test_short_winner_kept_on_short_page(self, chinese_html):
        doc = build_document(chinese_html)
        candidate = ExtractionCandidate.create("<p>tiny</p>", "x", 1)
        assert apply_fallbacks(candidate, doc, chinese_html, ExtractOptions()) is candidate

    def test_empty_winner_uses_body(self):
        doc = build_document("<body><p>something</p></body>")
        candidate = ExtractionCandidate.create("", "x", 0)
        result = apply_fallbacks(candidate, doc, "", ExtractOptions())
        assert result.source == BODY_FALLBACK
        assert result.fragment == "<p>something</p>"

    def test_raw_fallback_uses_original_body(self, jsapp_html):
        cleaned = _cleaned(jsapp_html)
        result = extract_main_content(cleaned, jsapp_html)
        assert result.method == RAW_FALLBACK
        assert 'id="root"' in result.html
        assert result.score == 0.0

    def test_raw_fallback_without_original(self):
        doc = build_document("<div></div>")
        candidate = ExtractionCandidate.create("", "x", 0)
        result = apply_fallbacks(candidate, doc, "", ExtractOptions())
        assert result == ExtractionCandidate("", RAW_FALLBACK, 0.0, 0)

    def test_thresholds_come_from_options(self):
        markup = "<body><div class='content'>Short intro text here ok.</div><div>" + "x " * 40 + "</div></body>"
        options = ExtractOptions(body_fallback_threshold=10)
        result = extract_main_content(_cleaned(markup), markup, options=options)
        assert result.method == BODY_FALLBACK


# ---------------------------------------------------------------------------
# Post-processing
# ---------------------------------------------------------------------------

class TestCleanContent:
    def test_removes_empty_paragraphs(self):
        assert clean_content("<p>a</p><p> </p><p></p>") == "<p>a</p>"

    def test_keeps_paragraph_with_image(self):
        assert clean_content('<p><img src="a.png"></p>') == '<p><img src="a.png"></p>'

    def test_clean_attributes_keeps_annotation_ids(self):
        fragment = (
            '<div class="x" id="wrap" style="a"><i id="math-1">$x$</i>'
            '<pre class="language-go"><code>x := 1</code></pre></div>'
        )
        out = clean_content(fragment, clean_attributes=True)
        assert 'class=' not in out
        assert 'id="wrap"' not in out
        assert 'id="math-1"' in out
        assert 'id="code-lang-go"' in out

    def test_attributes_kept_by_default(self):
        assert clean_content('<p class="lead">x</p>') == '<p class="lead">x</p>'

    def test_pre_whitespace_survives(self):
        out = clean_content("<div>\n  <pre>a\n    b</pre>\n</div>")
        assert "<pre>a\n    b</pre>" in out

    def test_empty(self):
        assert clean_content("") == ""

    @pytest.mark.parametrize("fragment", ["<p>x", "</div><p>x</p>", "<p><b>x</p></b>"])
    def test_malformed_fragments(self, fragment):
        assert "x" in clean_content(fragment)
