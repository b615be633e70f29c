"""Tests for the pattern detectors and PHP array-literal parsing."""

import pytest

from cms_scout.scanner.detectors import (
    analyze_asset_references,
    detect_blade_components,
    detect_javascript_components,
    detect_livewire_components,
    determine_asset_type,
    extract_namespace,
    find_translation_keys,
    is_external_url,
)
from cms_scout.scanner.params import parse_array_literal


def test_translation_call_with_parameters():
    content = "<div>\n<p>\n__('messages.welcome', ['name' => 'Ann'])\n</p>\n</div>"
    refs = find_translation_keys(content)
    assert len(refs) == 1
    ref = refs[0]
    assert ref.key == "messages.welcome"
    assert ref.line_number == 3
    assert ref.namespace == "messages"
    assert ref.parameters == {"name": "Ann"}
    assert ref.pattern_type == "function_underscore"


@pytest.mark.parametrize(
    "content",
    [
        "__('messages.welcome', $vars)",
        "{{ __('messages.welcome', ['user' => ['name' => 'Ann']]) }}",
        "@lang('messages.welcome', compact('name'))",
        "trans_choice('messages.welcome', $n, $replace)",
    ],
)
def test_translation_key_kept_when_arguments_are_not_a_flat_array(content):
    refs = find_translation_keys(content)
    assert [r.key for r in refs] == ["messages.welcome"]
    assert refs[0].raw == content


def test_flat_parameters_still_parsed_before_extra_arguments():
    ref = find_translation_keys("__('messages.welcome', ['name' => 'Ann'], 'fr')")[0]
    assert ref.parameters == {"name": "Ann"}


def test_blade_echo_reported_once():
    refs = find_translation_keys("<h1>{{ __('home.title') }}</h1>")
    assert [(r.key, r.pattern_type) for r in refs] == [("home.title", "blade_echo")]


def test_translation_patterns_in_source_order():
    content = (
        "@lang('auth.failed')\n"
        "{{ trans('nav.home') }}\n"
        "{{ trans_choice('cart.items', $count) }}\n"
        "<script>window._translations['js.greeting']</script>"
    )
    refs = find_translation_keys(content)
    assert [r.key for r in refs] == ["auth.failed", "nav.home", "cart.items", "js.greeting"]
    assert [r.pattern_type for r in refs] == ["blade_lang", "function_trans", "function_trans_choice", "json_translation"]
    assert refs[2].parameters == {"count": "$count"}


def test_translation_locale_availability():
    refs = find_translation_keys("__('a.b')", locales=["en", "fr"], lookup=lambda key, locale: locale == "en")
    assert refs[0].locales_available == {"en": True, "fr": False}


def test_translation_context_is_bounded():
    content = "x" * 100 + " __('k') " + "y" * 100
    ref = find_translation_keys(content, context_length=10)[0]
    assert ref.context == "x" * 9 + " __('k') yy"


def test_method_calls_are_not_translation_calls():
    assert find_translation_keys("$translator->trans('nope') Lang::trans('nope')") == []


def test_extract_namespace():
    assert extract_namespace("messages.welcome") == "messages"
    assert extract_namespace("Welcome") is None


def test_blade_components():
    content = (
        '<x-alert type="error">Oops</x-alert>\n'
        "@include('partials.nav', ['active' => 'home'])\n"
        "@component('components.card', ['title' => 'Hi'])Body@endcomponent\n"
        '<x-icon name="star" />'
    )
    refs = detect_blade_components(content)
    assert [(r.type, r.name) for r in refs] == [
        ("class_based", "alert"),
        ("include", "partials.nav"),
        ("anonymous", "components.card"),
        ("class_based", "icon"),
    ]
    alert, include, card, icon = refs
    assert alert.attributes == {"type": "error"}
    assert alert.slot_content == "Oops"
    assert include.data["parameters"] == {"active": "home"}
    assert include.line_number == 2
    assert card.attributes == {"title": "Hi"}
    assert card.slot_content == "Body"
    assert icon.slot_content is None


def test_livewire_components():
    content = (
        '<livewire:counter :start="5" />\n'
        "@livewire('search-box', ['query' => 'shoes'])\n"
        '<button wire:click.prevent="save">Save</button>'
    )
    refs = detect_livewire_components(content)
    assert [(r.type, r.name) for r in refs] == [
        ("tag", "counter"),
        ("directive", "search-box"),
        ("wire_method", "save"),
    ]
    assert refs[1].data["parameters"] == {"query": "shoes"}
    assert refs[2].data == {"event": "click", "method": "save", "modifiers": ["prevent"]}


def test_javascript_components():
    content = '<div x-data="{ open: false }" x-show="open"></div>\n<todo-item :item="todo"></todo-item>'
    refs = detect_javascript_components(content)
    assert [(r.type, r.name) for r in refs] == [
        ("alpine", "x-data"),
        ("alpine", "x-show"),
        ("vue_component", "todo-item"),
    ]
    assert refs[0].data["value"] == "{ open: false }"
    assert refs[2].attributes == {":item": "todo"}


def test_custom_element_without_vue_bindings_is_ignored():
    assert detect_javascript_components('<my-widget class="x"></my-widget>') == []


def test_detectors_tolerate_plain_text():
    for detector in (detect_blade_components, detect_livewire_components, detect_javascript_components):
        assert detector("nothing to see here") == []


def test_asset_references():
    content = (
        '<link rel="stylesheet" href="/css/app.css?v=2">\n'
        '<img src="/images/logo.png" alt="Logo">\n'
        '<script src="https://cdn.example.com/app.js"></script>\n'
        "{{ asset('fonts/inter.woff2') }}"
    )
    assets = analyze_asset_references(content)
    assert [(a.type, a.asset_type, a.is_external) for a in assets] == [
        ("css_link", "stylesheet", False),
        ("image_src", "image", False),
        ("js_script", "javascript", True),
        ("asset_helper", "font", False),
    ]


@pytest.mark.parametrize(
    "url, expected",
    [
        ("css/app.css?v=2", "stylesheet"),
        ("https://cdn.example.com/video.MP4#t=10", "video"),
        ("/downloads/guide.pdf", "document"),
        ("/no-extension", "unknown"),
    ],
)
def test_determine_asset_type(url, expected):
    assert determine_asset_type(url) == expected


def test_is_external_url():
    assert is_external_url("https://example.com/a.png")
    assert is_external_url("//cdn.example.com/a.js")
    assert not is_external_url("/images/a.png")


def test_parse_array_literal_scalars():
    parsed = parse_array_literal("['a' => 1, 'b' => true, 'c' => null, 'd' => 2.5, 'e' => $user->name,]")
    assert parsed == {"a": 1, "b": True, "c": None, "d": 2.5, "e": "$user->name"}


def test_parse_array_literal_syntax_variants():
    assert parse_array_literal("array('x' => 'y')") == {"x": "y"}
    assert parse_array_literal("['opts' => ['a' => 'b']]") == {"opts": {"a": "b"}}
    assert parse_array_literal('["msg" => "it\'s \\"quoted\\""]') == {"msg": "it's \"quoted\""}
    assert parse_array_literal("[0 => 'zero']") == {0: "zero"}
    assert parse_array_literal("[]") == {}


@pytest.mark.parametrize("blob", [None, "", "not an array", "['broken' => ]", "['a' => 'b' 'c']"])
def test_parse_array_literal_gives_up_on_malformed(blob):
    assert parse_array_literal(blob) == {}
