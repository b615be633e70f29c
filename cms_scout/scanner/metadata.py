"""Element metadata helpers: stable ids, paths, selectors, editing rules."""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bs4 import BeautifulSoup, Tag

from cms_scout.scanner.classifier import classify_link
from cms_scout.scanner.models import CandidateElement, ContentType, ElementMetadata, SourceMapping
from cms_scout.scanner.parser import ParsedDocument


def _md5(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def _class_string(element: Tag) -> str:
    value = element.get("class") or ""
    return " ".join(value) if isinstance(value, list) else value


def element_xpath(element: Tag) -> str:
    """Absolute path like /html/body/div[2]/p; indexes only where same-name siblings exist."""
    parts = []
    node = element
    while isinstance(node, Tag) and not isinstance(node, BeautifulSoup):
        name = node.name
        parent = node.parent
        if parent is not None:
            siblings = parent.find_all(node.name, recursive=False)
            if len(siblings) > 1:
                index = next(i for i, sibling in enumerate(siblings, start=1) if sibling is node)
                name = f"{name}[{index}]"
        parts.append(name)
        node = parent
    return "/" + "/".join(reversed(parts))


def generate_element_id(element: Tag) -> str:
    """
    Stable id for an element.

    cms_<id attribute> when the element has one, otherwise derived from tag,
    class, the first 50 characters of text and the xpath, so re-scans of
    unchanged content produce the same ids.
    """
    existing_id = element.get("id")
    if existing_id:
        return f"cms_{existing_id}"

    seed = element.name + _class_string(element) + element.get_text().strip()[:50] + element_xpath(element)
    return "cms_" + _md5(seed)[:12]


def css_selector(element: Tag) -> str:
    """tag#id.class1.class2"""
    selector = element.name.lower()
    element_id = element.get("id")
    if element_id:
        selector += f"#{element_id}"
    for class_name in _class_string(element).split():
        selector += f".{class_name}"
    return selector


def estimate_dimensions(text: str) -> Dict[str, Any]:
    length = len(text)
    return {
        "estimated_width": min(800, max(100, length * 8)),
        "estimated_height": max(20, (length / 80) * 20),
        "content_length": length,
    }


def edit_permissions(content_type: ContentType) -> Dict[str, Any]:
    """Permission hints for the editor (enforcement happens elsewhere)."""
    required = ["cms.edit"]
    if content_type == ContentType.IMAGE:
        required.append("cms.edit.images")
    elif content_type == ContentType.LINK:
        required.append("cms.edit.links")
    elif content_type in (
        ContentType.LIVEWIRE_COMPONENT,
        ContentType.ALPINE_COMPONENT,
        ContentType.VUE_COMPONENT,
    ):
        required.append("cms.edit.components")

    restrictions = []
    if content_type == ContentType.DYNAMIC_CONTENT:
        restrictions.append("source_only")
    elif content_type == ContentType.TRANSLATION:
        restrictions.append("translation_store")

    return {"can_edit": True, "required_permissions": required, "restrictions": restrictions}


def validation_rules(content_type: ContentType) -> Dict[str, Any]:
    rules: Dict[str, Any] = {"required": False, "max_length": None, "allowed_html": False}
    if content_type == ContentType.PLAIN_TEXT:
        rules["max_length"] = 1000
    elif content_type == ContentType.RICH_TEXT:
        rules["allowed_html"] = True
        rules["max_length"] = 5000
    elif content_type == ContentType.IMAGE:
        rules["file_types"] = ["jpg", "png", "gif", "svg"]
        rules["max_size"] = "2MB"
    return rules


def parent_info(element: Tag) -> Dict[str, Any]:
    parent = element.parent
    if not isinstance(parent, Tag) or isinstance(parent, BeautifulSoup):
        return {}
    return {
        "tag_name": parent.name,
        "id": parent.get("id") or None,
        "class": _class_string(parent) or None,
    }


def element_cache_key(element: Tag) -> str:
    data = {
        "tag": element.name,
        "content": _md5(element.get_text()),
        "attributes": _md5(json.dumps(dict(element.attrs), sort_keys=True, default=str)),
    }
    return "cms_element_" + _md5(json.dumps(data, sort_keys=True))


def build_element_metadata(
    candidate: CandidateElement,
    doc: ParsedDocument,
    content_type: ContentType,
    source_mapping: Optional[SourceMapping] = None,
) -> ElementMetadata:
    """Assemble ElementMetadata for one classified element."""
    element = candidate.node
    text = element.get_text().strip()

    position = {
        "line": doc.line_of(element),
        "column": getattr(element, "sourcepos", None),
        "offset": doc.offset_of(element),
        "estimated_dimensions": estimate_dimensions(text),
    }

    return ElementMetadata(
        id=generate_element_id(element),
        tag_name=element.name,
        content_type=content_type,
        text_content=text,
        inner_html=element.decode_contents(),
        attributes={name: value if isinstance(value, str) else " ".join(value) for name, value in element.attrs.items()},
        xpath=element_xpath(element),
        css_selector=css_selector(element),
        position=position,
        source_mapping=source_mapping or SourceMapping(),
        edit_permissions=edit_permissions(content_type),
        validation_rules=validation_rules(content_type),
        created_at=datetime.now(timezone.utc).isoformat(),
        parent_info=parent_info(element),
        children_count=len(element.find_all(True, recursive=False)),
        cache_key=element_cache_key(element),
        selector_group=candidate.selector_group,
        link=classify_link(element) if element.name == "a" else None,
    )
