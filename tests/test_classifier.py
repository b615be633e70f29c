"""Tests for editable element selection, content typing and link classification."""

import pytest

from cms_scout.scanner.classifier import ElementClassifier, classify_link, detect_content_type
from cms_scout.scanner.models import ContentType
from cms_scout.scanner.parser import HtmlParser


def _first(html: str, name: str):
    return HtmlParser().parse(html).soup.find(name)


def _selected(html: str, filters=None):
    doc = HtmlParser().parse(html)
    return ElementClassifier().extract_editable_elements(doc, filters)


def test_single_paragraph_is_one_plain_text_element(scanner):
    result = scanner.scan_html('<p class="x">Hello world</p>')
    assert len(result.elements) == 1
    element = result.elements[0]
    assert element.tag_name == "p"
    assert element.content_type == ContentType.PLAIN_TEXT
    assert element.text_content == "Hello world"
    assert element.selector_group == "text_elements"


@pytest.mark.parametrize(
    "html, name, expected",
    [
        ('<img src="a.png">', "img", ContentType.IMAGE),
        ('<a href="/about">About us</a>', "a", ContentType.LINK),
        ('<div x-data="{ open: false }">Menu items</div>', "div", ContentType.ALPINE_COMPONENT),
        ('<div data-livewire-component="cart">Cart</div>', "div", ContentType.LIVEWIRE_COMPONENT),
        ('<div v-model="name">Name</div>', "div", ContentType.VUE_COMPONENT),
        ('<div class="livewire-wrapper">Widget</div>', "div", ContentType.LIVEWIRE_COMPONENT),
        ("<div>   </div>", "div", ContentType.CONTAINER),
        ("<p>{{ __('home.title') }}</p>", "p", ContentType.TRANSLATION),
        ("<p>Hi {{ $user->name }}</p>", "p", ContentType.DYNAMIC_CONTENT),
        ("<p><strong>Bold</strong> claim</p>", "p", ContentType.RICH_TEXT),
        ("<p>Just words</p>", "p", ContentType.PLAIN_TEXT),
        ("<h2>Heading</h2>", "h2", ContentType.TEXT),
    ],
)
def test_detect_content_type(html, name, expected):
    assert detect_content_type(_first(html, name)) == expected


def test_tag_rule_wins_over_framework_attributes():
    assert detect_content_type(_first('<a href="#" x-data="{}">Go</a>', "a")) == ContentType.LINK


def test_excluded_marker_and_ancestors():
    html = (
        "<div data-cms-exclude><p>Hidden text</p></div>"
        "<p>Shown text</p>"
        "<noscript><p>No script</p></noscript>"
        "<script>var greeting = 'hello';</script>"
    )
    selected = _selected(html)
    assert [c.node.get_text() for c in selected] == ["Shown text"]


def test_min_content_length_skips_short_text_but_not_images():
    selected = _selected('<p>ab</p><img src="logo.png">')
    assert [c.node.name for c in selected] == ["img"]


def test_element_matched_by_several_groups_is_kept_once():
    selected = _selected("<div data-cms-editable>Custom text</div>")
    assert len(selected) == 1
    assert selected[0].selector_group == "text_elements"


def test_include_only_limits_groups():
    selected = _selected('<p>Paragraph</p><img src="a.png">', {"include_only": ["image_elements"]})
    assert [c.selector_group for c in selected] == ["image_elements"]


def test_selection_is_in_document_order():
    selected = _selected('<img src="a.png"><p>Second</p><a href="/x">Third</a>')
    assert [c.node.name for c in selected] == ["img", "p", "a"]


@pytest.mark.parametrize(
    "href, link_type",
    [
        ("mailto:team@example.com", "email"),
        ("tel:+15550100", "phone"),
        ("sms:+15550100", "sms"),
        ("https://example.com/docs", "external"),
        ("/pricing", "internal_absolute"),
        ("#top", "anchor"),
        ("#", "placeholder"),
        ("contact", "internal_relative"),
    ],
)
def test_classify_link(href, link_type):
    link = classify_link(_first(f'<a href="{href}">Link</a>', "a"))
    assert link["type"] == link_type


def test_classify_external_link_metadata():
    link = classify_link(_first('<a href="https://example.com/x" target="_blank" rel="noopener">Docs</a>', "a"))
    assert link["is_external"]
    assert link["is_secure"]
    assert link["metadata"] == {"domain": "example.com", "target": "_blank", "rel": "noopener"}
    assert link["text"] == "Docs"
