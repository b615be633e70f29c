"""
ContentScanner: the scanning entry point.

Wires the parser, classifier, detectors, source mapper, scan cache and marker
injector together:
- scan_html() / scan_page(): full scans, cached by content and options hash
- inject_editable_markers(): scan then add data-cms-* markers
- diff(): compare a scan with a previously cached one
- get_scan_statistics(): counters since construction

Detection-layer failures are logged and reported in ScanResult.warnings; the
scan always returns a best-effort result.
"""

import dataclasses
import hashlib
import html as html_lib
import re
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urljoin, urlsplit

from bs4 import Tag

from cms_scout.core.context import ScanContext
from cms_scout.core.errors import ContentTooLargeError, FetchError, InvalidUrlError
from cms_scout.scanner import detectors
from cms_scout.scanner.classifier import ElementClassifier, classify_link, detect_content_type
from cms_scout.scanner.differential import CACHE_PREFIX, compute_diff, generate_cache_key
from cms_scout.scanner.markers import MarkerInjector
from cms_scout.scanner.metadata import build_element_metadata
from cms_scout.scanner.models import (
    CandidateElement,
    ContentType,
    ScanDiff,
    ScanResult,
    SourceMapping,
)
from cms_scout.scanner.parser import HtmlParser, ParsedDocument
from cms_scout.scanner.patterns import CONTENT_SAFETY_PATTERNS, compile_pattern
from cms_scout.scanner.source_map import SourceMapper

FILTER_OPTIONS = ("include_only", "exclude", "excluded_elements", "min_content_length")

TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
META_DESCRIPTION_RE = re.compile(
    r"""<meta[^>]+name=["']description["'][^>]+content=["']([^"']*)["'][^>]*>""", re.IGNORECASE
)


def extract_page_title(html: str) -> Optional[str]:
    match = TITLE_RE.search(html)
    return html_lib.unescape(match.group(1).strip()) if match else None


def extract_meta_description(html: str) -> Optional[str]:
    match = META_DESCRIPTION_RE.search(html)
    return html_lib.unescape(match.group(1).strip()) if match else None


class ContentScanner:
    """Find editable content, components, translation keys and assets in HTML."""

    def __init__(
        self,
        context: ScanContext,
        translation_lookup=None,
        parser: Optional[HtmlParser] = None,
        classifier: Optional[ElementClassifier] = None,
        source_mapper: Optional[SourceMapper] = None,
        injector: Optional[MarkerInjector] = None,
    ):
        """
        Args:
            context: Shared collaborators and configuration
            translation_lookup: Object with has(key, locale) or a
                (key, locale) -> bool callable, used to fill
                TranslationKeyRef.locales_available
        """
        self.context = context
        self.config = context.section("scanner")
        self.logger = context.logger
        self.parser = parser or HtmlParser(self.logger)
        self.classifier = classifier or ElementClassifier(self.config, self.logger)
        self.source_mapper = source_mapper or SourceMapper(self.config.get("view_paths"), self.logger)
        self.injector = injector or MarkerInjector(self.config, self.logger)
        self.translation_lookup = translation_lookup

        self._stats_lock = threading.Lock()
        self._stats = self._initial_statistics()

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    @staticmethod
    def _initial_statistics() -> Dict[str, Any]:
        return {
            "scans_performed": 0,
            "page_scans": 0,
            "cache_hits": 0,
            "cache_misses": 0,
            "elements_found": 0,
            "translation_keys_found": 0,
            "components_found": 0,
            "assets_found": 0,
            "warnings": 0,
            "total_processing_time": 0.0,
        }

    def _bump(self, **increments):
        with self._stats_lock:
            for name, amount in increments.items():
                self._stats[name] += amount

    def get_scan_statistics(self) -> Dict[str, Any]:
        """Counters since construction, plus derived ratios."""
        with self._stats_lock:
            stats = dict(self._stats)
        lookups = stats["cache_hits"] + stats["cache_misses"]
        stats["cache_hit_ratio"] = round(stats["cache_hits"] / lookups, 4) if lookups else 0.0
        scans = stats["scans_performed"]
        stats["average_processing_time"] = round(stats["total_processing_time"] / scans, 6) if scans else 0.0
        return stats

    def reset_statistics(self):
        with self._stats_lock:
            self._stats = self._initial_statistics()

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    @property
    def cache_enabled(self) -> bool:
        return bool(self.config.get("cache_enabled", True))

    def _cache_get(self, key: str) -> Optional[ScanResult]:
        try:
            cached = self.context.cache.get(key)
        except Exception as e:
            self.logger.warning(f"Scan cache read failed for {key}: {e}")
            return None
        return cached if isinstance(cached, ScanResult) else None

    def _cache_put(self, key: str, result: ScanResult):
        try:
            self.context.cache.put(key, result, self.config.get("cache_ttl", 3600))
        except Exception as e:
            self.logger.warning(f"Scan cache write failed for {key}: {e}")

    def cache_results(self, result: ScanResult, key: Optional[str] = None) -> str:
        """Store a result under key (default: derived from its content hash) and return the key."""
        if key is None:
            key = f"{CACHE_PREFIX}_result_{result.metadata.get('content_hash', 'unknown')}"
        self._cache_put(key, result)
        return key

    def get_cached_result(self, key: str) -> Optional[ScanResult]:
        return self._cache_get(key)

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def scan_html(self, html: str, options: Optional[Dict[str, Any]] = None) -> ScanResult:
        """
        Scan HTML for editable content.

        Args:
            html: Page or fragment
            options: Filters (include_only, exclude, excluded_elements,
                min_content_length), locales, force_refresh, map_sources,
                detect_components

        Returns:
            ScanResult (cached by content + options hash)

        Raises:
            EmptyContentError: html is empty or not a string
        """
        options = dict(options or {})
        cache_key = generate_cache_key("html_scan", html if isinstance(html, str) else "", options)

        if self.cache_enabled and not options.get("force_refresh"):
            cached = self._cache_get(cache_key)
            if cached is not None:
                self._bump(cache_hits=1)
                self.logger.debug(f"Scan cache hit: {cache_key}")
                return cached
        self._bump(cache_misses=1)

        started = time.perf_counter()
        doc = self.parser.parse(html)
        warnings: List[str] = [f"Parse issue (line {e.line}): {e.message}" for e in doc.errors]

        elements = []
        filters = {name: options[name] for name in FILTER_OPTIONS if name in options}
        candidates = self._run_detector(
            "editable_elements", lambda: self.extract_editable_elements(doc, filters), warnings
        )
        for candidate in candidates:
            try:
                elements.append(self._element_metadata(candidate, doc, options))
            except Exception as e:
                message = f"Skipped <{candidate.node.name}> element: {e}"
                self.logger.warning(message)
                warnings.append(message)

        locales = options.get("locales") or self.config.get("locales") or []
        translation_keys = self._run_detector(
            "translation_keys", lambda: self.find_translation_keys(html, locales), warnings
        )

        components: Dict[str, tuple] = {}
        if options.get("detect_components", self.config.get("enable_component_detection", True)):
            components = {
                "blade": tuple(self._run_detector("blade", lambda: detectors.detect_blade_components(html), warnings)),
                "livewire": tuple(
                    self._run_detector("livewire", lambda: detectors.detect_livewire_components(html), warnings)
                ),
                "javascript": tuple(
                    self._run_detector("javascript", lambda: detectors.detect_javascript_components(html), warnings)
                ),
            }
        assets = self._run_detector("assets", lambda: detectors.analyze_asset_references(html), warnings)

        processing_time = time.perf_counter() - started
        component_count = sum(len(refs) for refs in components.values())
        metadata = {
            "content_hash": hashlib.md5(html.encode("utf-8")).hexdigest(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "cache_key": cache_key,
            "counts": {
                "elements": len(elements),
                "translation_keys": len(translation_keys),
                "components": component_count,
                "assets": len(assets),
                "parse_errors": len(doc.errors),
            },
            "scan_options": {k: v for k, v in options.items() if k != "force_refresh"},
            "processing_time": round(processing_time, 6),
            "fragment": doc.fragment,
            "parser": doc.builder,
        }

        result = ScanResult(
            elements=tuple(elements),
            translation_keys=tuple(translation_keys),
            components=components,
            assets=tuple(assets),
            metadata=metadata,
            warnings=tuple(warnings),
        )

        self._bump(
            scans_performed=1,
            elements_found=len(elements),
            translation_keys_found=len(translation_keys),
            components_found=component_count,
            assets_found=len(assets),
            warnings=len(warnings),
            total_processing_time=processing_time,
        )
        self.logger.info(
            f"Scanned HTML: {len(elements)} elements, {len(translation_keys)} translation keys, "
            f"{component_count} components, {len(assets)} assets in {processing_time:.3f}s"
        )

        if self.cache_enabled:
            self._cache_put(cache_key, result)
        return result

    def _element_metadata(self, candidate: CandidateElement, doc: ParsedDocument, options: Dict[str, Any]):
        content_type = self.detect_content_type(candidate.node)
        mapping = SourceMapping()
        if options.get("map_sources", self.config.get("enable_source_mapping", True)):
            mapping = self.map_to_source(candidate.node)
        return build_element_metadata(candidate, doc, content_type, mapping)

    def _run_detector(self, name: str, detector: Callable[[], list], warnings: List[str]) -> list:
        try:
            return list(detector())
        except Exception as e:
            message = f"Detector '{name}' failed: {e}"
            self.logger.warning(message)
            warnings.append(message)
            return []

    def normalize_url(self, url: str) -> str:
        """
        Make a URL absolute.

        Relative URLs resolve against scanner.base_url; protocol-relative ones
        get https.

        Raises:
            InvalidUrlError: not resolvable to an absolute http(s) URL
        """
        if not isinstance(url, str) or not url.strip():
            raise InvalidUrlError("URL must be a non-empty string")

        url = url.strip()
        if url.startswith("//"):
            url = "https:" + url
        elif not urlsplit(url).scheme:
            base_url = self.config.get("base_url")
            if not base_url:
                raise InvalidUrlError(f"Relative URL {url!r} needs scanner.base_url to resolve")
            url = urljoin(base_url.rstrip("/") + "/", url.lstrip("/"))

        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise InvalidUrlError(f"Invalid URL: {url}")
        return url

    def fetch_page_content(self, url: str) -> str:
        """
        Fetch a page body through the HTTP collaborator.

        Raises:
            FetchTimeoutError: the request exceeded scanner.timeout
            FetchError: transport failure or non-2xx status
            ContentTooLargeError: body larger than scanner.max_content_length
        """
        timeout = self.config.get("timeout", 30)
        max_length = self.config.get("max_content_length", 10 * 1024 * 1024)
        headers = {
            "User-Agent": self.config.get("user_agent", "CMS Scout Content Scanner"),
            "Accept": "text/html,application/xhtml+xml",
        }

        response = self.context.get_fetcher().get(url, headers=headers, timeout=timeout)
        if not response.ok:
            raise FetchError(f"HTTP {response.status} when fetching {url}")

        declared = response.headers.get("Content-Length") or response.headers.get("content-length")
        if declared and str(declared).isdigit() and int(declared) > max_length:
            raise ContentTooLargeError(f"Content too large: {declared} bytes (limit {max_length})")

        size = len(response.body.encode("utf-8"))
        if size > max_length:
            raise ContentTooLargeError(f"Content too large: {size} bytes (limit {max_length})")
        return response.body

    def scan_page(self, url: str, options: Optional[Dict[str, Any]] = None) -> ScanResult:
        """
        Fetch and scan a page.

        Returns:
            ScanResult whose metadata also carries page_url, page_title,
            meta_description and content_length
        """
        options = dict(options or {})
        normalized = self.normalize_url(url)
        cache_key = generate_cache_key("page_scan", normalized, options)

        if self.cache_enabled and not options.get("force_refresh"):
            cached = self._cache_get(cache_key)
            if cached is not None:
                self._bump(cache_hits=1)
                return cached

        self.logger.info(f"Fetching page for scan: {normalized}")
        body = self.fetch_page_content(normalized)
        result = self.scan_html(body, options)
        result = dataclasses.replace(
            result,
            metadata={
                **result.metadata,
                "page_url": normalized,
                "page_title": extract_page_title(body),
                "meta_description": extract_meta_description(body),
                "content_length": len(body),
            },
        )
        self._bump(page_scans=1)

        if self.cache_enabled:
            self._cache_put(cache_key, result)
        return result

    def inject_editable_markers(self, html: str, options: Optional[Dict[str, Any]] = None) -> str:
        """Scan html and add editing markers; returns the original html if anything fails."""
        try:
            result = self.scan_html(html, options)
            return self.injector.inject(html, result, options)
        except Exception as e:
            self.logger.warning(f"Marker injection skipped: {e}")
            return html

    def diff(self, current: ScanResult, previous_cache_key: str) -> ScanDiff:
        """Compare current with the result cached under previous_cache_key (full_scan when absent)."""
        previous = self._cache_get(previous_cache_key)
        result = compute_diff(current, previous)
        self.logger.debug(f"Differential scan against {previous_cache_key}: {result.type} {result.summary}")
        return result

    # ------------------------------------------------------------------
    # Component passes (also usable on their own)
    # ------------------------------------------------------------------

    def extract_editable_elements(self, doc: ParsedDocument, filters: Optional[dict] = None) -> List[CandidateElement]:
        return self.classifier.extract_editable_elements(doc, filters)

    def detect_content_type(self, element: Tag) -> ContentType:
        return detect_content_type(element)

    def classify_link(self, element: Tag) -> Dict[str, Any]:
        return classify_link(element)

    def map_to_source(self, element: Tag) -> SourceMapping:
        return self.source_mapper.map_to_source(element)

    def find_translation_keys(self, content: str, locales: Optional[List[str]] = None):
        lookup = self.translation_lookup
        if lookup is not None and not callable(lookup):
            lookup = lookup.has
        return detectors.find_translation_keys(
            content,
            locales=locales if locales is not None else self.config.get("locales"),
            context_length=self.config.get("context_length", 50),
            lookup=lookup,
        )

    def validate_content_safety(self, content: str) -> Dict[str, Any]:
        """Check editable content for scripts, inline handlers, iframes and forms."""
        report = {"is_safe": True, "issues": [], "permissions_required": [], "recommendations": []}
        for issue_type, pattern_info in CONTENT_SAFETY_PATTERNS.items():
            if compile_pattern(pattern_info).search(content or ""):
                report["is_safe"] = False
                report["issues"].append(
                    {
                        "type": issue_type,
                        "severity": pattern_info["severity"],
                        "message": f"Potentially dangerous {issue_type} detected: {pattern_info['description']}",
                    }
                )
                report["recommendations"].append(pattern_info["recommendation"])
        if not report["is_safe"]:
            report["permissions_required"].append("cms.edit.unsafe_content")
        return report
