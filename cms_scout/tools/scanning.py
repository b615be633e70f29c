"""
Content scanning tools.

Provides tools for finding editable content in rendered pages:
- scan_html_content: Scan an HTML page or fragment for editable elements
- scan_page_url: Fetch a page and scan it
- inject_cms_markers: Add data-cms-* editing markers to HTML
- find_translation_keys_in: List translation call sites in template or page text
"""

import json
import logging
from typing import List, Optional

from cms_scout.core.config import get_scanner
from cms_scout.core.errors import CmsScoutError
from cms_scout.scanner.models import ScanResult

# Import MCP instance from server
from server import mcp

logger = logging.getLogger(__name__)

MAX_LISTED_ELEMENTS = 50


def format_scan_result(result: ScanResult, title: str) -> str:
    """Human-readable summary of a scan."""
    metadata = result.metadata
    output = [f"🔍 {title}", ""]

    if metadata.get("page_url"):
        output.append(f"   URL: {metadata['page_url']}")
    if metadata.get("page_title"):
        output.append(f"   Title: {metadata['page_title']}")
    output.append(f"   Elements: {len(result.elements)}")
    output.append(f"   Translation keys: {len(result.translation_keys)}")
    output.append(f"   Components: {sum(len(refs) for refs in result.components.values())}")
    output.append(f"   Assets: {len(result.assets)}")
    output.append(f"   Processing time: {metadata.get('processing_time', 0):.3f}s")
    output.append("")

    if result.elements:
        output.append("📄 Editable elements:")
        for element in result.elements[:MAX_LISTED_ELEMENTS]:
            text = element.text_content.strip().replace("\n", " ")
            if len(text) > 60:
                text = text[:57] + "..."
            output.append(f"   • {element.id} <{element.tag_name}> [{element.content_type.value}] {text}")
            mapping = element.source_mapping
            if mapping.found:
                location = mapping.file if mapping.line is None else f"{mapping.file}:{mapping.line}"
                output.append(f"     Source: {location} ({mapping.method}, confidence {mapping.confidence})")
        if len(result.elements) > MAX_LISTED_ELEMENTS:
            output.append(f"   ... and {len(result.elements) - MAX_LISTED_ELEMENTS} more")
        output.append("")

    for framework, refs in result.components.items():
        if not refs:
            continue
        output.append(f"🧩 {framework.title()} components:")
        for ref in refs:
            output.append(f"   • {ref.name} ({ref.type}) line {ref.line_number}")
        output.append("")

    if result.translation_keys:
        output.append("🌐 Translation keys:")
        for ref in result.translation_keys:
            output.append(f"   • {ref.key} ({ref.pattern_type}) line {ref.line_number}")
        output.append("")

    if result.warnings:
        output.append("⚠️  Warnings:")
        for warning in result.warnings:
            output.append(f"   • {warning}")
        output.append("")

    output.append(f"💡 Cache key: {metadata.get('cache_key')}")
    return "\n".join(output)


@mcp.tool()
def scan_html_content(
    html: str,
    include_only: Optional[List[str]] = None,
    locales: Optional[List[str]] = None,
    force_refresh: bool = False,
    as_json: bool = False,
) -> str:
    """
    Scan HTML for editable content.

    Finds text, images, links, media, framework components, translation
    calls and asset references, and maps each element back to its source
    template where possible.

    Args:
        html: Full page or fragment
        include_only: Optional selector groups to scan (e.g. ["text_elements", "image_elements"])
        locales: Locales to check translation keys against (default: scanner.locales)
        force_refresh: Ignore any cached result
        as_json: Return the raw result as JSON instead of a summary

    Returns:
        Scan summary, or JSON when as_json is set
    """
    options = {"force_refresh": force_refresh}
    if include_only:
        options["include_only"] = include_only
    if locales:
        options["locales"] = locales

    logger.info(f"Scanning HTML content (force_refresh: {force_refresh})")
    try:
        result = get_scanner().scan_html(html, options)
    except CmsScoutError as e:
        return f"❌ ERROR: {e.kind}: {e}"

    if as_json:
        return json.dumps(result.to_dict(), indent=2, default=str)
    return format_scan_result(result, "HTML scan")


@mcp.tool()
def scan_page_url(url: str, force_refresh: bool = False, as_json: bool = False) -> str:
    """
    Fetch a rendered page and scan it for editable content.

    Relative URLs are resolved against scanner.base_url.

    Args:
        url: Page URL (absolute, or relative to the configured base_url)
        force_refresh: Ignore any cached result
        as_json: Return the raw result as JSON instead of a summary

    Returns:
        Scan summary, or JSON when as_json is set
    """
    logger.info(f"Scanning page: {url}")
    try:
        result = get_scanner().scan_page(url, {"force_refresh": force_refresh})
    except CmsScoutError as e:
        return f"❌ ERROR: {e.kind}: {e}"

    if as_json:
        return json.dumps(result.to_dict(), indent=2, default=str)
    return format_scan_result(result, "Page scan")


@mcp.tool()
def inject_cms_markers(html: str, include_scripts: bool = False, script_url: Optional[str] = None) -> str:
    """
    Add data-cms-id / data-cms-type / data-cms-permissions (and data-cms-source)
    attributes to every editable element.

    Running it again on its own output changes nothing.

    Args:
        html: Page or fragment
        include_scripts: Also insert the editor <script data-cms-init> tag
        script_url: Editor script URL (default: scanner.script_url)

    Returns:
        The HTML with markers injected (unchanged when scanning fails)
    """
    options = {"include_scripts": include_scripts}
    if script_url:
        options["script_url"] = script_url
    return get_scanner().inject_editable_markers(html, options)


@mcp.tool()
def find_translation_keys_in(content: str, locales: Optional[List[str]] = None) -> str:
    """
    List translation calls (__(), trans(), trans_choice(), @lang, {{ __() }}) in text.

    Args:
        content: Template source or rendered page text
        locales: Locales to check each key against (default: scanner.locales)

    Returns:
        One line per call site with key, line number, parameters and locale coverage
    """
    refs = get_scanner().find_translation_keys(content, locales)
    if not refs:
        return "ℹ️ No translation keys found"

    output = [f"🌐 Found {len(refs)} translation key(s):", ""]
    for ref in refs:
        output.append(f"• {ref.key} ({ref.pattern_type}) line {ref.line_number}")
        if ref.parameters:
            output.append(f"  Parameters: {json.dumps(ref.parameters)}")
        if ref.locales_available:
            coverage = ", ".join(f"{locale} {'✅' if ok else '❌'}" for locale, ok in ref.locales_available.items())
            output.append(f"  Locales: {coverage}")
    return "\n".join(output)
