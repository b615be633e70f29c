"""
Pattern detectors over raw page or template text.

Every detector is a pure function of its input: no shared state, safe to
run side by side over the same content, results simply concatenated.

- detect_blade_components(): <x-*>, @component, @include
- detect_livewire_components(): <livewire:*>, @livewire, wire:* bindings
- detect_javascript_components(): Alpine x-*, Vue v-*, Vue component tags
- find_translation_keys(): __(), trans(), trans_choice(), @lang, {{ __() }}, window._translations
- analyze_asset_references(): asset(), Storage::url(), <img>, <link>, <script>
"""

import posixpath
import re
from typing import Callable, Dict, Iterable, List, Optional
from urllib.parse import urlsplit

from cms_scout.scanner.models import AssetRef, ComponentRef, TranslationKeyRef
from cms_scout.scanner.params import parse_array_literal
from cms_scout.scanner.patterns import (
    ASSET_PATTERNS,
    ASSET_TYPE_MAP,
    ATTRIBUTE_PATTERN,
    BLADE_PATTERNS,
    EXTERNAL_URL,
    JAVASCRIPT_PATTERNS,
    LIVEWIRE_PATTERNS,
    TRANSLATION_PATTERNS,
    VUE_BINDING_MARKER,
    compile_pattern,
)

# (key, locale) -> bool
TranslationLookup = Callable[[str, str], bool]


def line_number_at(content: str, offset: int) -> int:
    """1-based line of a character offset."""
    return content.count("\n", 0, offset) + 1


def parse_attributes(attribute_string: Optional[str]) -> Dict[str, str]:
    """Parse name="value" pairs (including :prop, @event and v-* names)."""
    if not attribute_string:
        return {}
    return {m.group("name"): m.group("value") for m in ATTRIBUTE_PATTERN.finditer(attribute_string)}


def _modifiers(text: Optional[str]) -> List[str]:
    return [m for m in (text or "").split(".") if m]


def extract_wire_methods(content: str) -> List[Dict[str, object]]:
    """wire:event="method" bindings inside a chunk of markup."""
    regex = compile_pattern(LIVEWIRE_PATTERNS["wire_method"])
    return [
        {"event": m.group("event"), "method": m.group("method"), "modifiers": _modifiers(m.group("modifiers"))}
        for m in regex.finditer(content)
    ]


def detect_blade_components(content: str) -> List[ComponentRef]:
    """
    Find Blade components.

    Returns:
        class_based (<x-name>), anonymous (@component) and include (@include)
        refs, in source order
    """
    components: List[ComponentRef] = []

    for match in compile_pattern(BLADE_PATTERNS["class_based"]).finditer(content):
        components.append(
            ComponentRef(
                type="class_based",
                name=match.group("name"),
                framework="blade",
                offset=match.start(),
                line_number=line_number_at(content, match.start()),
                raw=match.group(0),
                attributes=parse_attributes(match.group("attrs")),
                slot_content=match.group("slot"),
            )
        )

    for match in compile_pattern(BLADE_PATTERNS["anonymous"]).finditer(content):
        components.append(
            ComponentRef(
                type="anonymous",
                name=match.group("name"),
                framework="blade",
                offset=match.start(),
                line_number=line_number_at(content, match.start()),
                raw=match.group(0),
                attributes=parse_array_literal(match.group("params")),
                slot_content=match.group("slot"),
            )
        )

    for match in compile_pattern(BLADE_PATTERNS["include"]).finditer(content):
        components.append(
            ComponentRef(
                type="include",
                name=match.group("name"),
                framework="blade",
                offset=match.start(),
                line_number=line_number_at(content, match.start()),
                raw=match.group(0),
                data={"parameters": parse_array_literal(match.group("params")), "raw_data": match.group("params")},
            )
        )

    components.sort(key=lambda c: c.offset)
    return components


def detect_livewire_components(content: str) -> List[ComponentRef]:
    """Find Livewire tags, @livewire directives and every wire:* binding."""
    components: List[ComponentRef] = []

    for match in compile_pattern(LIVEWIRE_PATTERNS["tag"]).finditer(content):
        components.append(
            ComponentRef(
                type="tag",
                name=match.group("name"),
                framework="livewire",
                offset=match.start(),
                line_number=line_number_at(content, match.start()),
                raw=match.group(0),
                attributes=parse_attributes(match.group("attrs")),
                slot_content=match.group("slot"),
                data={"wire_methods": extract_wire_methods(match.group(0))},
            )
        )

    for match in compile_pattern(LIVEWIRE_PATTERNS["directive"]).finditer(content):
        components.append(
            ComponentRef(
                type="directive",
                name=match.group("name"),
                framework="livewire",
                offset=match.start(),
                line_number=line_number_at(content, match.start()),
                raw=match.group(0),
                data={"parameters": parse_array_literal(match.group("params"))},
            )
        )

    for match in compile_pattern(LIVEWIRE_PATTERNS["wire_method"]).finditer(content):
        components.append(
            ComponentRef(
                type="wire_method",
                name=match.group("method"),
                framework="livewire",
                offset=match.start(),
                line_number=line_number_at(content, match.start()),
                raw=match.group(0),
                data={
                    "event": match.group("event"),
                    "method": match.group("method"),
                    "modifiers": _modifiers(match.group("modifiers")),
                },
            )
        )

    components.sort(key=lambda c: c.offset)
    return components


def detect_javascript_components(content: str) -> List[ComponentRef]:
    """
    Find Alpine.js / Vue.js usage.

    Each x-* / v-* attribute occurrence is its own ref, so one element can
    produce several. Hyphenated custom tags count as vue_component only when
    they carry Vue bindings; x-* and livewire:* tags are left to their own
    detectors.
    """
    components: List[ComponentRef] = []

    for ref_type, framework_name in (("alpine", "Alpine.js"), ("vue", "Vue.js")):
        for match in compile_pattern(JAVASCRIPT_PATTERNS[ref_type]).finditer(content):
            components.append(
                ComponentRef(
                    type=ref_type,
                    name=match.group("attribute"),
                    framework="javascript",
                    offset=match.start(),
                    line_number=line_number_at(content, match.start()),
                    raw=match.group(0),
                    data={
                        "library": framework_name,
                        "attribute": match.group("attribute"),
                        "argument": (match.group("argument") or "").lstrip(":") or None,
                        "modifiers": _modifiers(match.group("modifiers")),
                        "value": match.group("value"),
                    },
                )
            )

    for match in compile_pattern(JAVASCRIPT_PATTERNS["vue_component"]).finditer(content):
        name = match.group("name")
        attrs = match.group("attrs") or ""
        if name.startswith("x-") or not VUE_BINDING_MARKER.search(attrs):
            continue
        components.append(
            ComponentRef(
                type="vue_component",
                name=name,
                framework="javascript",
                offset=match.start(),
                line_number=line_number_at(content, match.start()),
                raw=match.group(0),
                attributes=parse_attributes(attrs),
                slot_content=match.group("slot"),
                data={"library": "Vue.js"},
            )
        )

    components.sort(key=lambda c: c.offset)
    return components


def extract_context(content: str, offset: int, context_length: int = 50) -> str:
    """Up to context_length characters either side of offset."""
    start = max(0, offset - context_length)
    return content[start : offset + context_length]


def extract_namespace(key: str) -> Optional[str]:
    """Text before the first dot, or None for un-namespaced keys."""
    if "." in key:
        return key.split(".", 1)[0]
    return None


def find_translation_keys(
    content: str,
    locales: Optional[Iterable[str]] = None,
    context_length: int = 50,
    lookup: Optional[TranslationLookup] = None,
) -> List[TranslationKeyRef]:
    """
    Find translation call sites.

    A call matched by more than one pattern (e.g. the __() inside
    {{ __('k') }}) is reported once, by the first pattern in
    TRANSLATION_PATTERNS order.

    Args:
        content: Template or page text
        locales: Locales to check availability for
        context_length: Characters of context either side of the call
        lookup: Optional (key, locale) -> bool, usually TranslationStore.has

    Returns:
        TranslationKeyRef list in source order
    """
    locales = list(locales or [])
    refs: List[TranslationKeyRef] = []
    seen_keys = set()

    for pattern_type, pattern_info in TRANSLATION_PATTERNS.items():
        for match in compile_pattern(pattern_info).finditer(content):
            key_offset = match.start("key")
            if key_offset in seen_keys:
                continue
            seen_keys.add(key_offset)

            key = match.group("key")
            parameters = parse_array_literal(match.groupdict().get("params"))
            if pattern_type == "function_trans_choice":
                parameters = dict(parameters)
                parameters.setdefault("count", match.group("count").strip())

            locales_available = {}
            if lookup is not None:
                locales_available = {locale: bool(lookup(key, locale)) for locale in locales}

            refs.append(
                TranslationKeyRef(
                    key=key,
                    pattern_type=pattern_type,
                    line_number=line_number_at(content, match.start()),
                    offset=match.start(),
                    context=extract_context(content, match.start(), context_length),
                    raw=match.group(0),
                    namespace=extract_namespace(key),
                    parameters=parameters,
                    locales_available=locales_available,
                )
            )

    refs.sort(key=lambda r: r.offset)
    return refs


def determine_asset_type(url: str, natural_type: str = "unknown") -> str:
    """Asset type from the URL's extension (query and fragment ignored)."""
    path = urlsplit(url).path if "://" in url or url.startswith("//") else re.split(r"[?#]", url, maxsplit=1)[0]
    extension = posixpath.splitext(path)[1].lstrip(".").lower()
    return ASSET_TYPE_MAP.get(extension, natural_type)


def is_external_url(url: str) -> bool:
    """True iff the URL starts with a scheme or is protocol-relative."""
    return EXTERNAL_URL.match(url) is not None


def analyze_asset_references(content: str) -> List[AssetRef]:
    """Find asset references, typed by extension."""
    assets: List[AssetRef] = []

    for ref_type, pattern_info in ASSET_PATTERNS.items():
        for match in compile_pattern(pattern_info).finditer(content):
            url = match.group("url")
            assets.append(
                AssetRef(
                    type=ref_type,
                    url=url,
                    asset_type=determine_asset_type(url, pattern_info["natural_type"]),
                    is_external=is_external_url(url),
                    offset=match.start(),
                    line_number=line_number_at(content, match.start()),
                    raw=match.group(0),
                )
            )

    assets.sort(key=lambda a: a.offset)
    return assets
