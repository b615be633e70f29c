"""
Element classification: which DOM nodes are editable, and as what.

Selector groups are CSS selectors (BeautifulSoup's select(), backed by
soupsieve). A node matched by several groups is kept once, under the first
group in SELECTOR_GROUPS order.
"""

import logging
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlsplit

from bs4 import Tag

from cms_scout.scanner.models import CandidateElement, ContentType
from cms_scout.scanner.parser import ParsedDocument
from cms_scout.scanner.patterns import INTERPOLATION, TRANSLATION_CALL

SELECTOR_GROUPS: Dict[str, str] = {
    "text_elements": "p, span, div, h1, h2, h3, h4, h5, h6",
    "image_elements": "img",
    "link_elements": "a[href]",
    "list_elements": "ul, ol, li",
    "table_elements": "table, td, th",
    "media_elements": "video, audio",
    "custom_elements": "[data-cms-editable]",
    "component_elements": "[data-livewire-component], [x-data], [v-model]",
}

DEFAULT_EXCLUDED_ELEMENTS = ["script", "style", "meta", "link"]
EXCLUDED_ANCESTORS = {"script", "style", "noscript", "template"}
NON_TEXT_ELEMENTS = {"img", "video", "audio"}

TAG_CONTENT_TYPES = {
    "img": ContentType.IMAGE,
    "a": ContentType.LINK,
    "video": ContentType.VIDEO,
    "audio": ContentType.AUDIO,
    "iframe": ContentType.EMBED,
}

TEXT_BLOCK_TAGS = {"p", "div", "span", "article", "section"}
INLINE_FORMATTING_TAGS = ["strong", "em", "b", "i", "u", "br"]


def _attr(element: Tag, name: str) -> str:
    value = element.get(name)
    if value is None:
        return ""
    if isinstance(value, list):
        return " ".join(value)
    return value


def detect_content_type(element: Tag) -> ContentType:
    """
    Classify an element.

    Strict fallthrough, first rule that applies wins:
    1. tag name (img, a, video, audio, iframe)
    2. framework attributes (Livewire, Alpine, Vue)
    3. class name hints
    4. content shape (empty, translation call, interpolation, formatting)
    """
    tag = element.name.lower()
    if tag in TAG_CONTENT_TYPES:
        return TAG_CONTENT_TYPES[tag]

    if element.has_attr("data-livewire-component"):
        return ContentType.LIVEWIRE_COMPONENT
    if element.has_attr("x-data") or element.has_attr("x-show"):
        return ContentType.ALPINE_COMPONENT
    if element.has_attr("v-model") or element.has_attr("v-if"):
        return ContentType.VUE_COMPONENT

    class_name = _attr(element, "class")
    if "livewire" in class_name or "wire:" in class_name:
        return ContentType.LIVEWIRE_COMPONENT

    if not element.get_text().strip():
        return ContentType.CONTAINER

    outer_html = str(element)
    if TRANSLATION_CALL.search(outer_html):
        return ContentType.TRANSLATION
    if INTERPOLATION.search(outer_html):
        return ContentType.DYNAMIC_CONTENT

    if tag in TEXT_BLOCK_TAGS:
        if element.find(INLINE_FORMATTING_TAGS) is not None:
            return ContentType.RICH_TEXT
        return ContentType.PLAIN_TEXT

    return ContentType.TEXT


def classify_link(element: Tag) -> Dict:
    """Describe where an <a> points (email, phone, external, anchor, ...)."""
    href = _attr(element, "href").strip()
    classification = {
        "href": href,
        "text": element.get_text().strip(),
        "type": "unknown",
        "is_external": False,
        "is_secure": False,
        "uses_route_helper": "route(" in href or "url(" in href,
        "metadata": {},
    }

    if href.startswith("mailto:"):
        classification["type"] = "email"
        classification["metadata"]["email"] = href[7:]
    elif href.startswith("tel:"):
        classification["type"] = "phone"
        classification["metadata"]["phone"] = href[4:]
    elif href.startswith("sms:"):
        classification["type"] = "sms"
        classification["metadata"]["phone"] = href[4:]
    elif href.startswith(("http://", "https://")):
        classification["type"] = "external"
        classification["is_external"] = True
        classification["is_secure"] = href.startswith("https://")
        classification["metadata"]["domain"] = urlsplit(href).hostname
    elif href.startswith("/"):
        classification["type"] = "internal_absolute"
    elif href == "" or href == "#":
        classification["type"] = "placeholder"
    elif href.startswith("#"):
        classification["type"] = "anchor"
        classification["metadata"]["anchor"] = href[1:]
    else:
        classification["type"] = "internal_relative"

    for name in ("target", "rel"):
        value = _attr(element, name)
        if value:
            classification["metadata"][name] = value

    return classification


class ElementClassifier:
    """Select editable elements from a parsed document."""

    def __init__(self, config: Optional[dict] = None, logger: Optional[logging.Logger] = None):
        config = config or {}
        self.excluded_elements = list(config.get("excluded_elements") or DEFAULT_EXCLUDED_ELEMENTS)
        self.min_content_length = config.get("min_content_length", 3)
        self.logger = logger or logging.getLogger(__name__)

    def selector_groups(self, include_only: Optional[Iterable[str]] = None, exclude: Optional[Iterable[str]] = None) -> Dict[str, str]:
        groups = dict(SELECTOR_GROUPS)
        if include_only:
            wanted = set(include_only)
            groups = {name: sel for name, sel in groups.items() if name in wanted}
        if exclude:
            unwanted = set(exclude)
            groups = {name: sel for name, sel in groups.items() if name not in unwanted}
        return groups

    def extract_editable_elements(self, doc: ParsedDocument, filters: Optional[dict] = None) -> List[CandidateElement]:
        """
        Find editable elements.

        Args:
            doc: Parsed document
            filters: Optional include_only / exclude (group names),
                excluded_elements (extra tags) and min_content_length

        Returns:
            CandidateElement list in document order, each node once
        """
        filters = filters or {}
        excluded = {t.lower() for t in self.excluded_elements}
        excluded.update(t.lower() for t in filters.get("excluded_elements") or [])
        min_length = filters.get("min_content_length", self.min_content_length)

        groups = self.selector_groups(filters.get("include_only"), filters.get("exclude"))

        order = {id(node): index for index, node in enumerate(doc.soup.find_all(True))}
        selected: Dict[int, CandidateElement] = {}

        for group_name, selector in groups.items():
            for node in doc.soup.select(selector):
                if id(node) in selected:
                    continue
                if not self.is_editable(node, excluded, min_length):
                    continue
                selected[id(node)] = CandidateElement(node=node, selector_group=group_name)

        self.logger.debug(f"Selected {len(selected)} editable element(s) from {len(groups)} selector group(s)")
        return sorted(selected.values(), key=lambda c: order.get(id(c.node), 0))

    def is_editable(self, element: Tag, excluded: set, min_length: int) -> bool:
        """Apply the exclusion rules in order: tag, exclude marker or excluded ancestor, text length."""
        tag = element.name.lower()
        if tag in excluded:
            return False

        if element.has_attr("data-cms-exclude"):
            return False
        for parent in element.parents:
            if not isinstance(parent, Tag) or parent.name == "[document]":
                continue
            if parent.has_attr("data-cms-exclude") or parent.name.lower() in EXCLUDED_ANCESTORS:
                return False

        if tag in NON_TEXT_ELEMENTS:
            return True
        return len(element.get_text().strip()) >= min_length
