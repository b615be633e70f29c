"""Tests for the update strategy chain and the template, DOM and text handlers."""

import pytest

from cms_scout.core.errors import ContentNotFoundError, UnknownOperationTypeError, UnknownStrategyError, UpdateError
from cms_scout.updater.dom import DomHandler
from cms_scout.updater.models import UpdateOperation
from cms_scout.updater.strategies import StrategyChain, apply_operation, default_chain
from cms_scout.updater.template import TemplateHandler, selector_type
from cms_scout.updater.text import TextHandler, replace_line, replace_text

# ============================================================================
# CHAIN
# ============================================================================


def test_default_chain_order():
    assert default_chain().names() == ["template", "dom", "text"]


@pytest.mark.parametrize(
    "content, context, expected",
    [
        ("<p>{{ $title }}</p>", {}, "template"),
        ("<p>plain</p>", {"file_path": "/views/home.blade.php"}, "template"),
        ("<p>plain</p>", {"file_path": "/views/home.html"}, "dom"),
        ("mail me at team@example.com", {}, "text"),
        ("no markup", {"force_dom": True}, "dom"),
    ],
)
def test_chain_selects_first_accepting_strategy(content, context, expected):
    assert default_chain().select(content, context).name == expected


def test_register_orders_by_priority_and_replaces_by_name():
    chain = default_chain()
    chain.register("custom", TextHandler(), priority=80)
    assert chain.names() == ["template", "custom", "dom", "text"]

    chain.register("custom", TextHandler(), priority=5)
    assert chain.names() == ["template", "dom", "text", "custom"]


def test_register_with_predicate():
    chain = default_chain()
    chain.register("markdown", TextHandler(), priority=95, predicate=lambda c, ctx: str(ctx.get("file_path", "")).endswith(".md"))
    assert chain.select("# Title", {"file_path": "README.md"}).name == "markdown"
    assert chain.select("# Title", {"file_path": "notes.txt"}).name == "text"


def test_forced_strategy():
    chain = default_chain()
    assert chain.select("<p>{{ $x }}</p>", {"strategy": "text"}).name == "text"
    with pytest.raises(UnknownStrategyError):
        chain.select("<p>x</p>", {"strategy": "yaml"})


def test_empty_chain_has_no_strategy():
    with pytest.raises(UnknownStrategyError):
        StrategyChain().select("anything", {})


def test_operation_from_dict_aliases():
    operation = UpdateOperation.from_dict({"type": "content", "old_content": "a", "new_content": "b"})
    assert (operation.old, operation.new) == ("a", "b")
    assert UpdateOperation.from_dict({"type": "line", "line_number": 3, "content": "x"}).line == 3

    with pytest.raises(UnknownOperationTypeError):
        UpdateOperation.from_dict({"type": "move"})


def test_apply_operation_dispatches_by_type():
    handler = TextHandler()
    assert apply_operation(handler, "a\nb", UpdateOperation(type="line", line=2, new="c"), {}) == "a\nc"
    assert apply_operation(handler, "abc", UpdateOperation(type="content", old="b", new="x"), {}) == "axc"


# ============================================================================
# TEXT
# ============================================================================


def test_replace_text_limit_and_case():
    assert replace_text("a a a", "a", "b", {"limit": 2}) == "b b a"
    assert replace_text("Hello HELLO", "hello", "hi", {"case_sensitive": False}) == "hi hi"
    assert replace_text("Hello HELLO", "hello", "hi", {}) == "Hello HELLO"


def test_replace_text_regex_backreferences():
    context = {"regex": True}
    assert replace_text("2024-01-05", r"(\d+)-(\d+)-(\d+)", r"\3/\2/\1", context) == "05/01/2024"
    assert replace_text("A\nb", r"^b", "B", {"regex": True, "regex_flags": "m"}) == "A\nB"


def test_replace_text_errors():
    with pytest.raises(UpdateError):
        replace_text("abc", "(", "x", {"regex": True})
    with pytest.raises(ContentNotFoundError):
        replace_text("abc", "", "x", {})


def test_replace_line():
    assert replace_line("one\ntwo\n", 2, "TWO") == "one\nTWO\n"
    assert replace_line("one", 1, "ONE") == "ONE"
    for line in (0, 3):
        with pytest.raises(ContentNotFoundError):
            replace_line("one\ntwo", line, "x")


def test_text_handler_validation_and_attributes():
    handler = TextHandler()
    result = handler.validate("a\x01b", {})
    assert result.valid
    assert result.warnings == ["Content contains non-printable characters"]
    assert handler.validate("   ", {}).warnings == ["Content is empty or contains only whitespace"]
    assert handler.validate("   ", {"allow_empty": True}).warnings == []

    with pytest.raises(ContentNotFoundError):
        handler.update_attribute("<p>x</p>", "p", "class", "y", {})


# ============================================================================
# DOM
# ============================================================================


def test_dom_content_replacement_skips_tags_and_comments():
    html = '<!-- Old --><p class="Old">Old</p>'
    assert DomHandler().update_content(html, "Old", "New", {}) == '<!-- Old --><p class="Old">New</p>'


def test_dom_content_replacement_limit():
    html = "<p>x</p><p>x</p><p>x</p>"
    assert DomHandler().update_content(html, "x", "y", {"limit": 2}) == "<p>y</p><p>y</p><p>x</p>"


@pytest.mark.parametrize(
    "mode, new, expected",
    [
        ("text", "<b>bold</b>", '<div id="t">&lt;b&gt;bold&lt;/b&gt;</div>'),
        ("html", "<b>bold</b>", '<div id="t"><b>bold</b></div>'),
        ("replace", "<section>bold</section>", "<section>bold</section>"),
    ],
)
def test_dom_selector_modes(mode, new, expected):
    html = '<div id="t"><span>old</span></div>'
    assert DomHandler().update_by_selector(html, "#t", new, {"mode": mode}) == expected


def test_dom_selector_handles_nested_same_name_elements():
    html = '<div class="a"><div>inner</div></div><p>after</p>'
    handler = DomHandler()
    assert handler.update_by_selector(html, "div.a", "X", {}) == '<div class="a">X</div><p>after</p>'
    # Both divs match; only the outermost is edited
    assert handler.update_by_selector(html, "div", "Y", {}) == '<div class="a">Y</div><p>after</p>'


def test_dom_xpath_selector():
    html = "<p>one</p>\n<p>two</p>"
    assert DomHandler().update_by_selector(html, "/html/body/p[2]", "2", {}) == "<p>one</p>\n<p>2</p>"


def test_dom_raw_text_element():
    html = '<script id="s">if (a < b) { go(); }</script>'
    assert DomHandler().update_by_selector(html, "#s", "stop();", {"mode": "html"}) == '<script id="s">stop();</script>'


def test_dom_selector_errors():
    handler = DomHandler()
    with pytest.raises(ContentNotFoundError):
        handler.update_by_selector("<p>x</p>", "h1", "y", {})
    with pytest.raises(ContentNotFoundError):
        handler.update_by_selector('<img src="a.png">', "img", "y", {"mode": "text"})
    with pytest.raises(UpdateError):
        handler.update_by_selector("<p>x</p>", "p[", "y", {})
    with pytest.raises(UpdateError):
        handler.update_by_selector("<p>x</p>", "p", "y", {"mode": "append"})


def test_dom_attribute_on_void_element():
    html = '<img src="a.png" alt="">'
    assert DomHandler().update_attribute(html, "img", "alt", 'Say "hi"', {}) == '<img src="a.png" alt="Say &quot;hi&quot;">'


def test_dom_validation():
    handler = DomHandler()
    assert handler.validate("<div><p>ok</p></div>", {}).valid
    result = handler.validate("<div>\n<span>open</div>", {})
    assert not result.valid
    assert result.errors == ["Line 2: Unclosed tag <span>"]


# ============================================================================
# TEMPLATE
# ============================================================================


@pytest.mark.parametrize(
    "selector, kind",
    [
        ("@include", "directive"),
        ("{{ $title }}", "variable"),
        ("{!! $html !!}", "variable"),
        ("section:content", "section"),
        ("x-alert", "component"),
        ("div.card", "unknown"),
    ],
)
def test_selector_type(selector, kind):
    assert selector_type(selector) == kind


def test_template_content_update_protects_blade():
    handler = TemplateHandler()
    content = "{{-- name --}}\n<p>{{ $name }} name @lang('name')</p>"
    assert handler.update_content(content, "name", "title", {}) == "{{-- name --}}\n<p>{{ $name }} title @lang('name')</p>"


def test_template_content_update_targets_blade_when_asked():
    handler = TemplateHandler()
    assert handler.update_content("<p>{{ $name }}</p>", "{{ $name }}", "{{ $title }}", {}) == "<p>{{ $title }}</p>"


def test_template_selectors():
    handler = TemplateHandler()
    assert handler.update_by_selector("@include('a')\n@include('b')", "@include", "@include('c')", {}) == (
        "@include('c')\n@include('c')"
    )
    assert handler.update_by_selector("<h1>{{ $title }}</h1>", "{{ $title }}", "{{ $heading }}", {}) == (
        "<h1>{{ $heading }}</h1>"
    )
    assert handler.update_by_selector("@section('title')Old@endsection", "section:title", "New", {}) == (
        "@section('title')New@endsection"
    )
    assert handler.update_by_selector('<x-alert type="error">Oops</x-alert>!', "x-alert", "<x-notice />", {}) == (
        "<x-notice />!"
    )
    assert handler.update_by_selector('<x-icon name="star" />', "x-icon", "*", {}) == "*"
    assert handler.update_by_selector('<div class="card">Old</div>', "div.card", "New", {}) == '<div class="card">New</div>'


def test_template_component_attributes():
    handler = TemplateHandler()
    html = '<x-alert type="error">Oops</x-alert>'
    assert handler.update_attribute(html, "x-alert", "type", "success", {}) == '<x-alert type="success">Oops</x-alert>'
    assert handler.update_attribute(html, "x-alert", "dismissible", "true", {}) == (
        '<x-alert type="error" dismissible="true">Oops</x-alert>'
    )
    assert handler.update_attribute(html, "x-alert", "type", "", {}) == "<x-alert>Oops</x-alert>"
    with pytest.raises(ContentNotFoundError):
        handler.update_attribute(html, "x-missing", "type", "x", {})


@pytest.mark.parametrize(
    "content, error",
    [
        ("@if($a) yes", "Unbalanced directive: 1 @if vs 0 @endif"),
        ("{{ $a }", "Unbalanced Blade expression: {{ and }} counts differ"),
        ("{{-- open comment", "Unbalanced Blade comment: {{-- and --}} counts differ"),
        ("{!! $_GET['q'] !!}", "Potential XSS vulnerability: unescaped superglobal variable"),
    ],
)
def test_template_validation_errors(content, error):
    result = TemplateHandler().validate(content, {})
    assert not result.valid
    assert error in result.errors


def test_template_validation_warnings():
    result = TemplateHandler().validate("@foreach($items as $i){{ $i }} and {{ $loop }}@endforeach", {})
    assert result.valid
    assert result.warnings == ["Multiple Blade expressions on same line may cause issues"]


@pytest.mark.parametrize(
    "old, new, context, expected",
    [
        ("1", "2", {}, "<p>{{ $a }} and {{ $b }}: 2 BLADE</p>"),
        ("a", "x", {}, "<p>{{ $a }} xnd {{ $b }}: 1 BLADE</p>"),
        ("blade", "view", {"case_sensitive": False}, "<p>{{ $a }} and {{ $b }}: 1 view</p>"),
        (r"\d", "#", {"regex": True}, "<p>{{ $a }} and {{ $b }}: # BLADE</p>"),
    ],
)
def test_template_content_update_never_edits_inside_constructs(old, new, context, expected):
    content = "<p>{{ $a }} and {{ $b }}: 1 BLADE</p>"
    assert TemplateHandler().update_content(content, old, new, context) == expected


def test_template_content_update_leaves_tags_alone():
    handler = TemplateHandler()
    html = '<p class="Old" title="Old">Old</p>'
    assert handler.update_content(html, "Old", "New", {}) == '<p class="Old" title="Old">New</p>'
    assert handler.update_content('<a href="{{ $url }}">url</a>', "url", "link", {}) == '<a href="{{ $url }}">link</a>'


def test_template_content_update_with_markup_in_old():
    html = "<p>{{ $x }}</p><p>Old</p>"
    assert TemplateHandler().update_content(html, "<p>Old</p>", "<p>New</p>", {}) == "<p>{{ $x }}</p><p>New</p>"


def test_template_content_update_limit_spans_text_runs():
    content = "{{ $a }} 1 {{ $b }} 1 1"
    assert TemplateHandler().update_content(content, "1", "2", {"limit": 2}) == "{{ $a }} 2 {{ $b }} 2 1"
