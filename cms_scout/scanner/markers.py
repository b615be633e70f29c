"""
Editable-marker injection.

Markers are spliced into each element's start tag in the original text by
character offset, so every byte outside the inserted attributes is left as
the author wrote it. Elements already carrying the id marker are skipped,
which makes injection idempotent.
"""

import html as html_lib
import logging
import re
from typing import Dict, List, Optional, Tuple

from cms_scout.scanner.models import ElementMetadata, ScanResult

START_TAG_RE = re.compile(r"""<(?P<name>[a-zA-Z][a-zA-Z0-9:._-]*)(?P<attrs>(?:"[^"]*"|'[^']*'|[^'">])*?)(?P<end>/?>)""")
BODY_CLOSE_RE = re.compile(r"</body\s*>", re.IGNORECASE)

DEFAULT_PREFIX = "data-cms"


class MarkerInjector:
    """Adds data-cms-* attributes (and optionally the editor script) to scanned HTML."""

    def __init__(self, config: Optional[dict] = None, logger: Optional[logging.Logger] = None):
        config = config or {}
        self.prefix = config.get("marker_prefix") or DEFAULT_PREFIX
        self.script_url = config.get("script_url")
        self.logger = logger or logging.getLogger(__name__)

    @property
    def id_attribute(self) -> str:
        return f"{self.prefix}-id"

    def marker_attributes(self, element: ElementMetadata) -> Dict[str, str]:
        """Attributes injected for one element, in output order."""
        markers = {
            f"{self.prefix}-id": element.id,
            f"{self.prefix}-type": element.content_type.value,
            f"{self.prefix}-permissions": ",".join(element.edit_permissions.get("required_permissions", [])),
        }
        mapping = element.source_mapping
        if mapping.found:
            source = mapping.file if mapping.line is None else f"{mapping.file}:{mapping.line}"
            markers[f"{self.prefix}-source"] = source
        return markers

    def inject(self, html: str, scan_result: ScanResult, options: Optional[dict] = None) -> str:
        """
        Add editing markers to every scanned element.

        A failing element is logged and skipped; if injection as a whole
        fails the original html is returned unchanged.

        Args:
            html: The exact text that was scanned
            scan_result: Result of scanning html
            options: include_scripts (bool), script_url (str)

        Returns:
            html with markers injected
        """
        options = options or {}
        try:
            insertions: List[Tuple[int, str]] = []
            for element in scan_result.elements:
                try:
                    insertion = self._insertion_for(html, element)
                except Exception as e:
                    self.logger.warning(f"Marker injection failed for element {element.id}: {e}")
                    continue
                if insertion is not None:
                    insertions.append(insertion)

            result = html
            for position, text in sorted(insertions, key=lambda item: item[0], reverse=True):
                result = result[:position] + text + result[position:]

            if options.get("include_scripts"):
                result = self.add_init_script(result, options.get("script_url") or self.script_url)

            self.logger.info(f"Injected markers into {len(insertions)} of {len(scan_result.elements)} element(s)")
            return result
        except Exception as e:
            self.logger.error(f"Marker injection failed, returning original HTML: {e}")
            return html

    def _insertion_for(self, html: str, element: ElementMetadata) -> Optional[Tuple[int, str]]:
        if self.id_attribute in element.attributes:
            return None

        offset = element.position.get("offset")
        if offset is None:
            raise ValueError("element has no source offset")

        match = START_TAG_RE.match(html, offset)
        if not match or match.group("name").lower() != element.tag_name.lower():
            raise ValueError(f"no <{element.tag_name}> start tag at offset {offset}")
        if re.search(rf"(?:^|\s){re.escape(self.id_attribute)}\s*=", match.group("attrs")):
            return None

        # After the last attribute, so whitespace before ">" or "/>" stays put
        position = match.start("attrs") + len(match.group("attrs").rstrip())
        text = "".join(
            f' {name}="{html_lib.escape(value, quote=True)}"' for name, value in self.marker_attributes(element).items()
        )
        return position, text

    def add_init_script(self, html: str, script_url: Optional[str]) -> str:
        """Insert one <script data-cms-init> tag before </body> (or at the end)."""
        marker = f"{self.prefix}-init"
        if marker in html:
            return html
        if not script_url:
            self.logger.warning("include_scripts requested but no script_url configured")
            return html

        tag = f'<script {marker} src="{html_lib.escape(script_url, quote=True)}"></script>'
        closes = list(BODY_CLOSE_RE.finditer(html))
        if closes:
            position = closes[-1].start()
            return html[:position] + tag + html[position:]
        return html + tag
