"""
Map rendered elements back to template source files.

Resolution order, first hit wins (confidence in brackets):
- data_attribute (90): data-source-file / data-source-line on the element
- component_analysis (70): an ancestor carrying data-source-file, or the
  nearest enclosing <!--[CMS:source:path]--> ... <!--[CMS:source:end]--> region
- heuristic (30): the element's id or class string found in a view file
- none (0)

The 70 and 30 levels are best-effort and pluggable: extra resolvers can be
registered per level and run after the built-in ones.
"""

import logging
import re
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from bs4 import Comment, Tag

from cms_scout.scanner.models import (
    CONFIDENCE_COMPONENT_ANALYSIS,
    CONFIDENCE_DATA_ATTRIBUTE,
    CONFIDENCE_HEURISTIC,
    SourceMapping,
)
from cms_scout.scanner.patterns import SOURCE_MARKER_COMMENT, SOURCE_MARKER_END, SOURCE_MARKER_START

# Resolver: element -> mapping (method/confidence are set by the level) or None
SourceResolver = Callable[[Tag], Optional[SourceMapping]]

LEVELS = {
    "component_analysis": CONFIDENCE_COMPONENT_ANALYSIS,
    "heuristic": CONFIDENCE_HEURISTIC,
}

VIEW_FILE_PATTERNS = ["*.blade.php", "*.html"]


def view_name_from_path(path: Optional[str]) -> Optional[str]:
    """resources/views/components/alert.blade.php -> components.alert"""
    if not path:
        return None
    normalized = path.replace("\\", "/")
    if "/views/" in normalized:
        normalized = normalized.split("/views/", 1)[1]
    for suffix in (".blade.php", ".php", ".html"):
        if normalized.endswith(suffix):
            normalized = normalized[: -len(suffix)]
            break
    return normalized.strip("/").replace("/", ".") or None


def _parse_line(value) -> Optional[int]:
    try:
        line = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return line if line > 0 else None


def extract_source_markers(html: str) -> List[Dict]:
    """
    List the CMS:source comment regions in a rendered page.

    Returns:
        One dict per region: path, view, start_offset, end_offset (None when
        unterminated), line, depth
    """
    regions: List[Dict] = []
    stack: List[Dict] = []
    for match in re.finditer(r"<!--(\[CMS:source:.+?\])-->", html):
        text = match.group(1)
        if text == SOURCE_MARKER_END:
            if stack:
                stack.pop()["end_offset"] = match.end()
            continue
        start = SOURCE_MARKER_START.match(text)
        if not start:
            continue
        region = {
            "path": start.group("path"),
            "view": view_name_from_path(start.group("path")),
            "start_offset": match.start(),
            "end_offset": None,
            "line": html.count("\n", 0, match.start()) + 1,
            "depth": len(stack),
        }
        regions.append(region)
        stack.append(region)
    return regions


def remove_source_markers(html: str) -> str:
    """Strip every CMS:source comment from the text."""
    return SOURCE_MARKER_COMMENT.sub("", html)


class SourceMapper:
    """Best-effort DOM-to-source mapping."""

    def __init__(self, view_paths: Optional[List[str]] = None, logger: Optional[logging.Logger] = None):
        self.view_paths = [Path(p) for p in (view_paths or [])]
        self.logger = logger or logging.getLogger(__name__)
        self._resolvers: Dict[str, List[Tuple[str, SourceResolver]]] = {
            "component_analysis": [
                ("ancestor_attribute", self._from_ancestor_attribute),
                ("source_comment", self._from_source_comment),
            ],
            "heuristic": [("view_search", self._from_view_search)],
        }
        self._view_cache: Dict[str, Tuple[float, str]] = {}

    def register_resolver(self, level: str, resolver: SourceResolver, name: Optional[str] = None):
        """Add a resolver to the component_analysis or heuristic level."""
        if level not in LEVELS:
            raise ValueError(f"Unknown source mapping level '{level}', expected one of {sorted(LEVELS)}")
        self._resolvers[level].append((name or getattr(resolver, "__name__", "custom"), resolver))

    def map_to_source(self, element: Tag) -> SourceMapping:
        """Map an element to its most likely source location. Never raises."""
        try:
            explicit = self._from_data_attributes(element)
            if explicit is not None:
                return explicit

            for level, confidence in LEVELS.items():
                for name, resolver in self._resolvers[level]:
                    try:
                        found = resolver(element)
                    except Exception as e:
                        self.logger.debug(f"Source resolver '{name}' failed: {e}")
                        continue
                    if found is not None and found.file:
                        return SourceMapping(
                            file=found.file,
                            line=found.line,
                            component=found.component or view_name_from_path(found.file),
                            method=level,
                            confidence=confidence,
                            context=dict(found.context, resolver=name),
                        )
        except Exception as e:
            self.logger.debug(f"Source mapping failed for <{getattr(element, 'name', '?')}>: {e}")

        return SourceMapping()

    def _from_data_attributes(self, element: Tag) -> Optional[SourceMapping]:
        source_file = element.get("data-source-file")
        if not source_file:
            return None
        return SourceMapping(
            file=source_file,
            line=_parse_line(element.get("data-source-line")),
            component=element.get("data-source-component") or view_name_from_path(source_file),
            method="data_attribute",
            confidence=CONFIDENCE_DATA_ATTRIBUTE,
            context={"attribute": "data-source-file"},
        )

    def _from_ancestor_attribute(self, element: Tag) -> Optional[SourceMapping]:
        for depth, parent in enumerate(element.parents, start=1):
            if not isinstance(parent, Tag) or not parent.has_attr("data-source-file"):
                continue
            return SourceMapping(
                file=parent["data-source-file"],
                line=_parse_line(parent.get("data-source-line")),
                component=parent.get("data-source-component"),
                context={"ancestor_tag": parent.name, "ancestor_depth": depth},
            )
        return None

    def _from_source_comment(self, element: Tag) -> Optional[SourceMapping]:
        # Walk backwards; every end marker seen must be paired with a start
        # before the enclosing region's start counts.
        depth = 0
        for node in element.previous_elements:
            if not isinstance(node, Comment):
                continue
            text = node.strip()
            if text == SOURCE_MARKER_END:
                depth += 1
                continue
            start = SOURCE_MARKER_START.match(text)
            if not start:
                continue
            if depth == 0:
                return SourceMapping(file=start.group("path"), context={"marker": text})
            depth -= 1
        return None

    def _from_view_search(self, element: Tag) -> Optional[SourceMapping]:
        if not self.view_paths:
            return None

        needles = []
        element_id = element.get("id")
        if element_id:
            needles.append(("id", [f'id="{element_id}"', f"id='{element_id}'"]))
        class_name = element.get("class")
        if isinstance(class_name, list):
            class_name = " ".join(class_name)
        if class_name and class_name.strip():
            needles.append(("class", [f'class="{class_name}"', f"class='{class_name}'"]))
        if not needles:
            return None

        for matched_on, candidates in needles:
            for path, text in self._view_files():
                for needle in candidates:
                    index = text.find(needle)
                    if index == -1:
                        continue
                    return SourceMapping(
                        file=path,
                        line=text.count("\n", 0, index) + 1,
                        context={"matched_on": matched_on, "needle": needle},
                    )
        return None

    def _view_files(self):
        """Yield (path, text) for every view file, re-reading only changed files."""
        for root in self.view_paths:
            if not root.is_dir():
                continue
            paths = set()
            for pattern in VIEW_FILE_PATTERNS:
                paths.update(root.rglob(pattern))
            for path in sorted(paths):
                key = str(path)
                mtime = path.stat().st_mtime
                cached = self._view_cache.get(key)
                if cached is None or cached[0] != mtime:
                    text = path.read_text(encoding="utf-8", errors="replace")
                    self._view_cache[key] = (mtime, text)
                    cached = self._view_cache[key]
                yield key, cached[1]
