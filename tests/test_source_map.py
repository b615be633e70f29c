"""Tests for mapping rendered elements back to template sources."""

import pytest

from cms_scout.scanner.models import SourceMapping
from cms_scout.scanner.parser import HtmlParser
from cms_scout.scanner.source_map import (
    SourceMapper,
    extract_source_markers,
    remove_source_markers,
    view_name_from_path,
)


def _element(html: str, element_id: str):
    return HtmlParser().parse(html).soup.find(id=element_id)


def test_data_attribute_mapping():
    html = '<p id="t" data-source-file="resources/views/home.blade.php" data-source-line="12">Hello there</p>'
    mapping = SourceMapper().map_to_source(_element(html, "t"))
    assert mapping.method == "data_attribute"
    assert mapping.confidence == 90
    assert mapping.file == "resources/views/home.blade.php"
    assert mapping.line == 12
    assert mapping.component == "home"


def test_ancestor_attribute_mapping():
    html = '<section data-source-file="resources/views/components/card.blade.php"><p id="t">Card text</p></section>'
    mapping = SourceMapper().map_to_source(_element(html, "t"))
    assert mapping.method == "component_analysis"
    assert mapping.confidence == 70
    assert mapping.component == "components.card"
    assert mapping.context["resolver"] == "ancestor_attribute"


def test_source_comment_mapping():
    html = (
        "<!--[CMS:source:resources/views/partials/nav.blade.php]-->"
        '<nav><p id="t">Nav text</p></nav>'
        "<!--[CMS:source:end]-->"
    )
    mapping = SourceMapper().map_to_source(_element(html, "t"))
    assert mapping.confidence == 70
    assert mapping.file == "resources/views/partials/nav.blade.php"
    assert mapping.context["resolver"] == "source_comment"


def test_closed_source_region_does_not_claim_later_elements():
    html = (
        "<!--[CMS:source:a.blade.php]--><p>A</p><!--[CMS:source:end]-->"
        '<p id="t">Outside</p>'
    )
    mapping = SourceMapper().map_to_source(_element(html, "t"))
    assert mapping == SourceMapping()
    assert not mapping.found


def test_nested_source_regions_pick_the_innermost():
    html = (
        "<!--[CMS:source:layout.blade.php]-->"
        "<!--[CMS:source:inner.blade.php]--><p>Inner</p><!--[CMS:source:end]-->"
        '<p id="t">Layout text</p>'
        "<!--[CMS:source:end]-->"
    )
    mapping = SourceMapper().map_to_source(_element(html, "t"))
    assert mapping.file == "layout.blade.php"


def test_heuristic_view_search(tmp_path):
    views = tmp_path / "views"
    views.mkdir()
    (views / "home.blade.php").write_text('@extends("layout")\n<div id="hero">{{ $title }}</div>\n', encoding="utf-8")

    mapping = SourceMapper([str(views)]).map_to_source(_element('<div id="hero">Welcome</div>', "hero"))
    assert mapping.method == "heuristic"
    assert mapping.confidence == 30
    assert mapping.file == str(views / "home.blade.php")
    assert mapping.line == 2
    assert mapping.context["matched_on"] == "id"


def test_confidence_ordering(tmp_path):
    views = tmp_path / "views"
    views.mkdir()
    (views / "page.html").write_text('<p class="lead">x</p>', encoding="utf-8")

    html = (
        '<p id="a" data-source-file="x.blade.php">One text</p>'
        '<div data-source-file="y.blade.php"><p id="b">Two text</p></div>'
        '<p id="c" class="lead">Three text</p>'
        '<p id="d">Four text</p>'
    )
    doc = HtmlParser().parse(html)
    mapper = SourceMapper([str(views)])
    confidences = [mapper.map_to_source(doc.soup.find(id=i)).confidence for i in "abcd"]
    assert confidences == [90, 70, 30, 0]


def test_custom_resolver_runs_after_builtins():
    mapper = SourceMapper()
    mapper.register_resolver("heuristic", lambda element: SourceMapping(file="guess.blade.php"), name="guess")
    mapping = mapper.map_to_source(_element('<p id="t">Text here</p>', "t"))
    assert mapping.file == "guess.blade.php"
    assert mapping.confidence == 30
    assert mapping.context["resolver"] == "guess"


def test_failing_resolver_is_skipped():
    def broken(element):
        raise RuntimeError("boom")

    mapper = SourceMapper()
    mapper.register_resolver("component_analysis", broken)
    assert mapper.map_to_source(_element('<p id="t">Text here</p>', "t")) == SourceMapping()


def test_register_resolver_rejects_unknown_level():
    with pytest.raises(ValueError):
        SourceMapper().register_resolver("data_attribute", lambda element: None)


@pytest.mark.parametrize(
    "path, view",
    [
        ("resources/views/components/alert.blade.php", "components.alert"),
        ("resources\\views\\home.blade.php", "home"),
        ("emails/welcome.html", "emails.welcome"),
        (None, None),
    ],
)
def test_view_name_from_path(path, view):
    assert view_name_from_path(path) == view


def test_extract_and_remove_source_markers():
    html = (
        "<!--[CMS:source:resources/views/layout.blade.php]-->\n"
        "<!--[CMS:source:resources/views/nav.blade.php]--><nav></nav><!--[CMS:source:end]-->\n"
        "<!--[CMS:source:end]-->"
    )
    regions = extract_source_markers(html)
    assert [(r["view"], r["depth"], r["line"]) for r in regions] == [("layout", 0, 1), ("nav", 1, 2)]
    assert all(r["end_offset"] is not None for r in regions)
    assert remove_source_markers(html) == "\n<nav></nav>\n"
