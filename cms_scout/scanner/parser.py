"""
HTML parsing for content scanning, built on BeautifulSoup.

- HtmlParser.parse(): tolerant parse of documents and fragments
- HtmlParser.serialize(): back to text (the exact source while unmodified)
- check_tag_balance(): unclosed/stray tag detection (shared with the DOM updater)

Fragments are wrapped in a minimal document shell so every parse yields the
same html/head/body skeleton. The shell contains no newlines, so line numbers
reported by the parser are line numbers in the caller's text.
"""

import bisect
import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from bs4 import BeautifulSoup, Tag
from bs4.builder import ParserRejectedMarkup

from cms_scout.core.errors import EmptyContentError, ParseError

SHELL_PREFIX = '<!DOCTYPE html><html><head><meta charset="UTF-8"></head><body>'
SHELL_SUFFIX = "</body></html>"

PRIMARY_BUILDER = "html.parser"
FALLBACK_BUILDER = "lxml"

DOCUMENT_MARKERS = re.compile(r"<!doctype|<html|<body", re.IGNORECASE)

VOID_ELEMENTS = {
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
}

# End tags the HTML grammar lets authors omit
OPTIONAL_END_TAGS = {
    "li", "p", "td", "th", "tr", "thead", "tbody", "tfoot", "option",
    "optgroup", "dt", "dd", "colgroup", "caption", "rp", "rt",
}

RAW_TEXT_ELEMENTS = {"script", "style", "textarea", "title"}

TAG_RE = re.compile(r"<(/?)([a-zA-Z][a-zA-Z0-9:._-]*)((?:\"[^\"]*\"|'[^']*'|[^'\">])*)>")
COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)


def is_fragment(html: str) -> bool:
    """A text is a full document iff it has a doctype, <html> or <body>."""
    return DOCUMENT_MARKERS.search(html) is None


def _line_of(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


def check_tag_balance(html: str) -> List[ParseError]:
    """
    Find unclosed and stray closing tags.

    Comments and raw-text element bodies are skipped; void elements,
    self-closing tags and omissible end tags never count as unclosed.

    Returns:
        ParseError list in source order (empty when balanced)
    """
    errors: List[ParseError] = []
    stack: List[tuple] = []
    masked = COMMENT_RE.sub(lambda m: " " * len(m.group(0)), html)

    pos = 0
    while True:
        match = TAG_RE.search(masked, pos)
        if not match:
            break
        pos = match.end()
        closing, name, rest = match.group(1), match.group(2).lower(), match.group(3)
        line = _line_of(html, match.start())

        if not closing:
            if name in VOID_ELEMENTS or rest.rstrip().endswith("/"):
                continue
            stack.append((name, line))
            if name in RAW_TEXT_ELEMENTS:
                end = re.compile(rf"</{name}\s*>", re.IGNORECASE).search(masked, pos)
                if end:
                    pos = end.start()
            continue

        if name in VOID_ELEMENTS:
            continue
        open_names = [entry[0] for entry in stack]
        if name not in open_names:
            errors.append(ParseError(f"Unexpected closing tag </{name}>", line=line))
            continue

        while stack:
            open_name, open_line = stack.pop()
            if open_name == name:
                break
            if open_name not in OPTIONAL_END_TAGS:
                errors.append(ParseError(f"Unclosed tag <{open_name}>", line=open_line))

    for open_name, open_line in stack:
        if open_name not in OPTIONAL_END_TAGS:
            errors.append(ParseError(f"Unclosed tag <{open_name}>", line=open_line))

    errors.sort(key=lambda e: e.line or 0)
    return errors


@dataclass
class ParsedDocument:
    """A parsed page or fragment plus everything needed to map back to the source text."""

    soup: BeautifulSoup
    source: str
    fragment: bool
    builder: str = PRIMARY_BUILDER
    errors: List[ParseError] = field(default_factory=list)

    def __post_init__(self):
        parsed_text = SHELL_PREFIX + self.source + SHELL_SUFFIX if self.fragment else self.source
        self._prefix_length = len(SHELL_PREFIX) if self.fragment else 0
        self._line_starts = [0] + [m.end() for m in re.finditer("\n", parsed_text)]
        self._fingerprint = self.fingerprint()

    def render(self) -> str:
        """The current tree as text, without the fragment shell."""
        if self.fragment and self.soup.body is not None:
            return self.soup.body.decode_contents()
        return self.soup.decode()

    def fingerprint(self) -> str:
        return hashlib.md5(self.render().encode("utf-8")).hexdigest()

    @property
    def modified(self) -> bool:
        """True once the tree renders differently from how it rendered at parse time."""
        return self.fingerprint() != self._fingerprint

    @property
    def root(self) -> Tag:
        """The element whose children are the caller's content."""
        if self.fragment and self.soup.body is not None:
            return self.soup.body
        return self.soup

    def offset_of(self, tag: Tag) -> Optional[int]:
        """Character offset of the tag's "<" in the caller's text, or None when unknown."""
        line = getattr(tag, "sourceline", None)
        column = getattr(tag, "sourcepos", None)
        if line is None or column is None or line < 1 or line > len(self._line_starts):
            return None

        offset = self._line_starts[line - 1] + column - self._prefix_length
        if offset < 0 or offset >= len(self.source) or self.source[offset] != "<":
            return None
        return offset

    def line_of(self, tag: Tag) -> Optional[int]:
        return getattr(tag, "sourceline", None)

    def line_at(self, offset: int) -> int:
        """1-based line number of a character offset in the caller's text."""
        return bisect.bisect_right(self._line_starts, offset + self._prefix_length)


class HtmlParser:
    """Tolerant HTML parser adapter."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def parse(self, html) -> ParsedDocument:
        """
        Parse a document or fragment.

        Malformed markup never raises: structural problems are collected in
        ParsedDocument.errors.

        Raises:
            EmptyContentError: html is not a string or is blank
        """
        if not isinstance(html, str) or not html.strip():
            raise EmptyContentError("HTML content must be a non-empty string")

        fragment = is_fragment(html)
        markup = SHELL_PREFIX + html + SHELL_SUFFIX if fragment else html
        errors: List[ParseError] = []

        builder = PRIMARY_BUILDER
        try:
            soup = BeautifulSoup(markup, PRIMARY_BUILDER, multi_valued_attributes=None)
        except ParserRejectedMarkup as e:
            self.logger.warning(f"{PRIMARY_BUILDER} rejected markup, retrying with {FALLBACK_BUILDER}: {e}")
            errors.append(ParseError(f"{PRIMARY_BUILDER} rejected markup: {e}"))
            builder = FALLBACK_BUILDER
            soup = BeautifulSoup(markup, FALLBACK_BUILDER, multi_valued_attributes=None)

        errors.extend(check_tag_balance(html))
        if errors:
            self.logger.debug(f"Collected {len(errors)} parse issue(s)")

        return ParsedDocument(soup=soup, source=html, fragment=fragment, builder=builder, errors=errors)

    def serialize(self, doc: ParsedDocument) -> str:
        """
        Render the document back to text, without the fragment shell.

        An unmodified tree returns the exact source text; the serializer would
        otherwise normalize quoting, entities and whitespace.
        """
        if not doc.modified:
            return doc.source
        return doc.render()
