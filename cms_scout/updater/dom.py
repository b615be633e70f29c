"""
DOM-aware update handler.

Elements are located with BeautifulSoup (CSS selectors, or simple absolute
XPath like /html/body/div[2]/p) and then edited by splicing the original
text at the element's character offsets. Markup outside the edited span is
never re-serialised.
"""

import html as html_lib
import logging
import re
from typing import Any, Dict, List, Optional

from bs4 import Tag

from cms_scout.core.errors import ContentNotFoundError, EmptyContentError, UpdateError
from cms_scout.scanner.parser import (
    COMMENT_RE,
    RAW_TEXT_ELEMENTS,
    TAG_RE,
    VOID_ELEMENTS,
    HtmlParser,
    ParsedDocument,
    check_tag_balance,
)
from cms_scout.updater.models import ValidationResult
from cms_scout.updater.text import replace_between, replace_line, replace_text

START_TAG_RE = re.compile(r"""<(?P<name>[a-zA-Z][a-zA-Z0-9:._-]*)(?P<attrs>(?:"[^"]*"|'[^']*'|[^'">])*?)(?P<end>/?>)""")
ANY_TAG_RE = re.compile(r"<[a-zA-Z][^>]*>")
# Comments, declarations and tags: never touched by plain content replacement
MARKUP = re.compile(rf"{COMMENT_RE.pattern}|<![^>]*>|{TAG_RE.pattern}", re.DOTALL)
XPATH_STEP_RE = re.compile(r"^(?P<name>[a-zA-Z][a-zA-Z0-9:_-]*)(?:\[(?P<index>\d+)\])?$")

UPDATE_MODES = ("text", "html", "replace")


def _attribute_re(name: str):
    return re.compile(
        rf"""(?P<space>\s+){re.escape(name)}(?:\s*=\s*(?:"[^"]*"|'[^']*'|[^\s"'=<>`]+))?(?=[\s/>]|$)""",
        re.IGNORECASE,
    )


def find_by_xpath(doc: ParsedDocument, xpath: str) -> List[Tag]:
    """Resolve a simple absolute XPath (/tag[index]/...). Unsupported syntax matches nothing."""
    node = doc.soup
    for step in xpath.strip("/").split("/"):
        match = XPATH_STEP_RE.match(step)
        if not match:
            return []
        children = node.find_all(match.group("name").lower(), recursive=False)
        index = int(match.group("index") or 1)
        if index < 1 or index > len(children):
            return []
        node = children[index - 1]
    return [node] if isinstance(node, Tag) and node is not doc.soup else []


class ElementSpan:
    """Offsets of one element in the source text."""

    def __init__(self, name: str, start: int, start_tag_end: int, inner_end: Optional[int], end: int, attrs_end: int):
        self.name = name
        self.start = start
        self.start_tag_end = start_tag_end
        self.inner_end = inner_end  # None for void/self-closing elements
        self.end = end
        self.attrs_end = attrs_end

    def contains(self, other: "ElementSpan") -> bool:
        return self.start <= other.start and other.end <= self.end


class DomHandler:
    """Selector-driven edits of HTML markup."""

    name = "dom"

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.parser = HtmlParser(self.logger)

    def can_handle(self, content: str, context: Dict[str, Any]) -> bool:
        return bool(context.get("force_dom")) or ANY_TAG_RE.search(content) is not None

    # ------------------------------------------------------------------
    # Locating
    # ------------------------------------------------------------------

    def _parse(self, content: str) -> ParsedDocument:
        try:
            return self.parser.parse(content)
        except EmptyContentError as e:
            raise ContentNotFoundError("Cannot select elements in empty content") from e

    def find_elements(self, content: str, selector: str) -> List[Tag]:
        doc = self._parse(content)
        return self._select(doc, selector)

    def _select(self, doc: ParsedDocument, selector: str) -> List[Tag]:
        if not selector or not selector.strip():
            raise ContentNotFoundError("Selector is empty")
        if selector.startswith("/"):
            return find_by_xpath(doc, selector)
        try:
            return doc.root.select(selector)
        except Exception as e:
            raise UpdateError(f"Invalid selector '{selector}': {e}") from e

    def element_spans(self, content: str, selector: str) -> List[ElementSpan]:
        """Spans of every element matching selector, outermost only, in source order."""
        doc = self._parse(content)
        elements = self._select(doc, selector)
        if not elements:
            raise ContentNotFoundError(f"No element matches selector '{selector}'")

        spans: List[ElementSpan] = []
        for element in elements:
            offset = doc.offset_of(element)
            if offset is None:
                self.logger.debug(f"No source offset for <{element.name}>, skipping")
                continue
            spans.append(self._span_at(content, offset))

        spans.sort(key=lambda span: span.start)
        outermost: List[ElementSpan] = []
        for span in spans:
            if outermost and outermost[-1].contains(span):
                continue
            outermost.append(span)

        if not outermost:
            raise ContentNotFoundError(f"Matched elements for '{selector}' could not be located in the source")
        return outermost

    def _span_at(self, content: str, offset: int) -> ElementSpan:
        start_tag = START_TAG_RE.match(content, offset)
        if not start_tag:
            raise ContentNotFoundError(f"No start tag at offset {offset}")

        name = start_tag.group("name").lower()
        attrs_end = start_tag.start("attrs") + len(start_tag.group("attrs").rstrip())
        if name in VOID_ELEMENTS or start_tag.group("end") == "/>":
            return ElementSpan(name, offset, start_tag.end(), None, start_tag.end(), attrs_end)

        if name in RAW_TEXT_ELEMENTS:
            close = re.compile(rf"</{re.escape(name)}\s*>", re.IGNORECASE).search(content, start_tag.end())
            if not close:
                raise ContentNotFoundError(f"Missing </{name}> for element at offset {offset}")
            return ElementSpan(name, offset, start_tag.end(), close.start(), close.end(), attrs_end)

        masked = COMMENT_RE.sub(lambda m: " " * len(m.group(0)), content)
        depth = 1
        for match in TAG_RE.finditer(masked, start_tag.end()):
            closing, tag_name, rest = match.group(1), match.group(2).lower(), match.group(3)
            if tag_name != name:
                continue
            if closing:
                depth -= 1
                if depth == 0:
                    return ElementSpan(name, offset, start_tag.end(), match.start(), match.end(), attrs_end)
            elif not rest.rstrip().endswith("/"):
                depth += 1

        raise ContentNotFoundError(f"Missing </{name}> for element at offset {offset}")

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update_by_selector(self, content: str, selector: str, new: str, context: Dict[str, Any]) -> str:
        """
        Replace matched elements' content.

        context["mode"]:
            text: new is escaped and replaces the inner content (default)
            html: new replaces the inner content as markup
            replace: new replaces the whole element
        """
        mode = context.get("mode", "text")
        if mode not in UPDATE_MODES:
            raise UpdateError(f"Unknown DOM update mode '{mode}', expected one of: {', '.join(UPDATE_MODES)}")

        spans = self.element_spans(content, selector)
        result = content
        for span in reversed(spans):
            if mode == "replace":
                result = result[:span.start] + new + result[span.end:]
                continue
            if span.inner_end is None:
                raise ContentNotFoundError(f"<{span.name}> has no content to update; use mode 'replace'")
            inner = html_lib.escape(new, quote=False) if mode == "text" else new
            result = result[:span.start_tag_end] + inner + result[span.inner_end:]

        self.logger.debug(f"Updated {len(spans)} element(s) matching '{selector}' (mode={mode})")
        return result

    def update_attribute(self, content: str, selector: str, attribute: str, value: str, context: Dict[str, Any]) -> str:
        """Set, replace or (with an empty value) remove an attribute on every match."""
        if not attribute or not re.match(r"^[^\s\"'>/=]+$", attribute):
            raise UpdateError(f"Invalid attribute name '{attribute}'")

        attribute_re = _attribute_re(attribute)
        result = content
        for span in reversed(self.element_spans(content, selector)):
            start_tag = result[span.start:span.start_tag_end]
            attrs_region = start_tag[:span.attrs_end - span.start]
            tail = start_tag[span.attrs_end - span.start:]
            existing = attribute_re.search(attrs_region)

            if value is None or value == "":
                if existing:
                    attrs_region = attrs_region[:existing.start()] + attrs_region[existing.end():]
            else:
                rendered = f'{attribute}="{html_lib.escape(value, quote=True)}"'
                if existing:
                    attrs_region = (
                        attrs_region[:existing.start()] + existing.group("space") + rendered + attrs_region[existing.end():]
                    )
                else:
                    attrs_region = f"{attrs_region} {rendered}"

            result = result[:span.start] + attrs_region + tail + result[span.start_tag_end:]
        return result

    def update_content(self, content: str, old: str, new: str, context: Dict[str, Any]) -> str:
        """
        Replace text between tags only, leaving tag names and attributes alone.

        When old itself contains markup it cannot sit inside one text run, so the
        whole content is searched instead.
        """
        if not old:
            raise ContentNotFoundError("Nothing to replace: old value is empty")

        updated, replaced = replace_between(content, MARKUP, old, new, context)
        if replaced == 0 and "<" in old:
            return replace_text(content, old, new, context)
        return updated

    def update_by_line(self, content: str, line: int, new: str, context: Dict[str, Any]) -> str:
        return replace_line(content, line, new)

    def validate(self, content: str, context: Dict[str, Any]) -> ValidationResult:
        errors = []
        warnings = []
        if not content.strip():
            if not context.get("allow_empty", False):
                warnings.append("Content is empty or contains only whitespace")
            return ValidationResult.from_lists(errors, warnings)

        for problem in check_tag_balance(content):
            errors.append(f"Line {problem.line}: {problem.message}" if problem.line else problem.message)
        return ValidationResult.from_lists(errors, warnings)
