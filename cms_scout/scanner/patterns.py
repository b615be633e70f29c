"""
Detection patterns for template and framework syntax in rendered pages.

Pattern-based detection for:
- Blade components and directives
- Livewire tags, directives and wire:* bindings
- Alpine.js and Vue.js attributes and custom-element tags
- Translation call sites
- Asset references
- Unsafe markup in editable content

Each pattern includes:
- pattern: Regular expression (named groups carry the captured values)
- flags: re flags to compile with
- description: What the pattern finds
"""

import re

# Attribute list inside a tag, tolerant of ">" inside quoted values
_ATTRS = r"""(?P<attrs>(?:"[^"]*"|'[^']*'|[^'">])*?)"""

# Quoted string literal, either quote style
_QUOTED_KEY = r"""(?P<q>['"])(?P<key>(?:(?!(?P=q)).)+)(?P=q)"""

# Optional trailing arguments. A leading flat [ ... ] array is captured as params;
# anything else (variables, nested arrays, calls one level deep) is matched but not parsed.
_PARAMS = r"""(?:\s*,\s*(?:(?P<params>\[[^\]]*\])\s*(?=[,)]))?[^()]*(?:\([^()]*\)[^()]*)*)?"""


# ============================================================================
# BLADE
# ============================================================================

BLADE_PATTERNS = {
    "class_based": {
        "pattern": rf"<x-(?P<name>[a-zA-Z0-9\-.:]+){_ATTRS}(?:/>|>(?P<slot>.*?)</x-(?P=name)\s*>)",
        "flags": re.DOTALL,
        "description": "Blade component tag <x-name ...> (self-closing or paired with slot)",
    },
    "anonymous": {
        "pattern": r"""@component\(\s*(?P<q>['"])(?P<name>[^'"]+)(?P=q)\s*(?:,\s*(?P<params>\[[^\]]*\]))?\s*\)(?P<slot>.*?)@endcomponent""",
        "flags": re.DOTALL,
        "description": "@component('name') ... @endcomponent block",
    },
    "include": {
        "pattern": r"""@include\(\s*(?P<q>['"])(?P<name>[^'"]+)(?P=q)\s*(?:,\s*(?P<params>\[[^\]]*\]))?\s*\)""",
        "flags": 0,
        "description": "@include('partial', [data]) directive",
    },
}


# ============================================================================
# LIVEWIRE
# ============================================================================

LIVEWIRE_PATTERNS = {
    "tag": {
        "pattern": rf"<livewire:(?P<name>[a-zA-Z0-9\-.]+){_ATTRS}(?:/>|>(?P<slot>.*?)</livewire:(?P=name)\s*>)",
        "flags": re.DOTALL,
        "description": "Livewire component tag <livewire:name ...>",
    },
    "directive": {
        "pattern": r"""@livewire\(\s*(?P<q>['"])(?P<name>[^'"]+)(?P=q)\s*(?:,\s*(?P<params>\[[^\]]*\]))?\s*\)""",
        "flags": 0,
        "description": "@livewire('name', [params]) directive",
    },
    "wire_method": {
        "pattern": r"""(?<![\w-])wire:(?P<event>[a-zA-Z]+)(?P<modifiers>(?:\.[a-zA-Z0-9-]+)*)=(?P<q>['"])(?P<method>[^'"]*)(?P=q)""",
        "flags": 0,
        "description": "wire:event[.modifier]=\"method\" binding",
    },
}


# ============================================================================
# JAVASCRIPT FRAMEWORKS
# ============================================================================

ALPINE_ATTRIBUTES = [
    "x-data", "x-show", "x-if", "x-for", "x-on", "x-bind", "x-model",
    "x-text", "x-html", "x-init", "x-cloak", "x-transition",
]

VUE_ATTRIBUTES = [
    "v-model", "v-if", "v-else", "v-for", "v-show", "v-bind", "v-on",
    "v-text", "v-html", "v-once", "v-pre", "v-cloak",
]


def _directive_attribute_pattern(names) -> str:
    alternatives = "|".join(re.escape(name) for name in sorted(names, key=len, reverse=True))
    return (
        rf"(?<![\w<:@.-])(?P<attribute>{alternatives})(?![\w-])"
        r"(?P<argument>:[\w-]+)?(?P<modifiers>(?:\.[\w-]+)*)"
        r"""(?:=(?P<q>['"])(?P<value>.*?)(?P=q))?"""
    )


JAVASCRIPT_PATTERNS = {
    "alpine": {
        "pattern": _directive_attribute_pattern(ALPINE_ATTRIBUTES),
        "flags": re.DOTALL,
        "description": "Alpine.js x-* attribute (with optional :arg and .modifiers)",
    },
    "vue": {
        "pattern": _directive_attribute_pattern(VUE_ATTRIBUTES),
        "flags": re.DOTALL,
        "description": "Vue.js v-* attribute (with optional :arg and .modifiers)",
    },
    "vue_component": {
        "pattern": rf"<(?P<name>[a-z][a-z0-9]*(?:-[a-z0-9]+)+){_ATTRS}(?:/>|>(?P<slot>.*?)</(?P=name)\s*>)",
        "flags": re.DOTALL,
        "description": "Hyphenated custom element; only counted when it carries :prop, @event or v- attributes",
    },
}

# Attribute string markers that make a custom element a Vue component
VUE_BINDING_MARKER = re.compile(r"(?:^|\s)(?::[\w-]|@[\w-]|v-[\w-])")

# Component attribute parsing (:prop, @event, v-*, plain)
ATTRIBUTE_PATTERN = re.compile(r"""(?P<name>[:@]?[a-zA-Z0-9_\-:.]+)\s*=\s*(?P<q>['"])(?P<value>.*?)(?P=q)""", re.DOTALL)


# ============================================================================
# TRANSLATIONS
# ============================================================================

# Ordered: blade_echo runs first so {{ __('k') }} is reported once
TRANSLATION_PATTERNS = {
    "blade_echo": {
        "pattern": rf"\{{\{{\s*__\(\s*{_QUOTED_KEY}{_PARAMS}\s*\)\s*\}}\}}",
        "flags": 0,
        "description": "{{ __('key') }} echo in a Blade template",
    },
    "function_underscore": {
        "pattern": rf"(?<![\w$>:])__\(\s*{_QUOTED_KEY}{_PARAMS}\s*\)",
        "flags": 0,
        "description": "__('key'[, [params]]) helper call",
    },
    "function_trans_choice": {
        "pattern": rf"(?<![\w$>:])trans_choice\(\s*{_QUOTED_KEY}\s*,\s*(?P<count>[^,()\[\]]+?){_PARAMS}\s*\)",
        "flags": 0,
        "description": "trans_choice('key', count[, [params]]) helper call",
    },
    "function_trans": {
        "pattern": rf"(?<![\w$>:@])trans\(\s*{_QUOTED_KEY}{_PARAMS}\s*\)",
        "flags": 0,
        "description": "trans('key'[, [params]]) helper call",
    },
    "blade_lang": {
        "pattern": rf"@lang\(\s*{_QUOTED_KEY}{_PARAMS}\s*\)",
        "flags": 0,
        "description": "@lang('key'[, [params]]) directive",
    },
    "json_translation": {
        "pattern": rf"window\._translations\[\s*{_QUOTED_KEY}\s*\]",
        "flags": 0,
        "description": "window._translations['key'] lookup in inline scripts",
    },
}

# Any translation call syntax at all (content-type detection)
TRANSLATION_CALL = re.compile(r"""(?<![\w$>:])(?:__|trans|trans_choice)\(\s*['"]|@lang\(""")

# Blade echo / raw echo interpolation
INTERPOLATION = re.compile(r"\{\{.*?\}\}|\{!!.*?!!\}", re.DOTALL)


# ============================================================================
# ASSETS
# ============================================================================

ASSET_PATTERNS = {
    "asset_helper": {
        "pattern": r"""(?<![\w$>:])asset\(\s*(?P<q>['"])(?P<url>[^'"]+)(?P=q)\s*\)""",
        "flags": 0,
        "natural_type": "unknown",
        "description": "asset('path') helper call",
    },
    "storage_url": {
        "pattern": r"""Storage::url\(\s*(?P<q>['"])(?P<url>[^'"]+)(?P=q)\s*\)""",
        "flags": 0,
        "natural_type": "unknown",
        "description": "Storage::url('path') facade call",
    },
    "image_src": {
        "pattern": r"""<img\b[^>]*?\ssrc\s*=\s*(?P<q>['"])(?P<url>[^'"]+)(?P=q)[^>]*>""",
        "flags": re.IGNORECASE,
        "natural_type": "image",
        "description": "<img src> attribute",
    },
    "css_link": {
        "pattern": r"""<link\b[^>]*?\shref\s*=\s*(?P<q>['"])(?P<url>[^'"]+?\.css(?:[?#][^'"]*)?)(?P=q)[^>]*>""",
        "flags": re.IGNORECASE,
        "natural_type": "stylesheet",
        "description": "<link href=*.css> stylesheet",
    },
    "js_script": {
        "pattern": r"""<script\b[^>]*?\ssrc\s*=\s*(?P<q>['"])(?P<url>[^'"]+)(?P=q)[^>]*>""",
        "flags": re.IGNORECASE,
        "natural_type": "javascript",
        "description": "<script src> tag",
    },
}

ASSET_TYPE_MAP = {
    "css": "stylesheet",
    "js": "javascript",
    "jpg": "image",
    "jpeg": "image",
    "png": "image",
    "gif": "image",
    "svg": "image",
    "webp": "image",
    "mp4": "video",
    "webm": "video",
    "mp3": "audio",
    "wav": "audio",
    "pdf": "document",
    "doc": "document",
    "docx": "document",
    "woff": "font",
    "woff2": "font",
    "ttf": "font",
    "eot": "font",
}

EXTERNAL_URL = re.compile(r"^(?:[a-zA-Z][a-zA-Z0-9+.-]*:|//)")


# ============================================================================
# SOURCE MARKERS
# ============================================================================

SOURCE_MARKER_START = re.compile(r"^\[CMS:source:(?P<path>(?!end\]).+?)\]$")
SOURCE_MARKER_END = "[CMS:source:end]"
SOURCE_MARKER_COMMENT = re.compile(r"<!--\[CMS:source:(?P<path>.+?)\]-->")


def compile_pattern(pattern_info: dict):
    """Compile a pattern entry (re caches compiled patterns)."""
    return re.compile(pattern_info["pattern"], pattern_info.get("flags", 0))


# ============================================================================
# CONTENT SAFETY
# ============================================================================

CONTENT_SAFETY_PATTERNS = {
    "script_tags": {
        "pattern": r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>",
        "flags": re.IGNORECASE | re.MULTILINE,
        "severity": "high",
        "description": "Inline <script> block",
        "recommendation": "Move behaviour into a bundled script; edit text only",
    },
    "javascript_events": {
        "pattern": r"\bon\w+\s*=",
        "flags": re.IGNORECASE,
        "severity": "high",
        "description": "Inline event handler attribute (onclick=, onload=, ...)",
        "recommendation": "Bind events from JavaScript instead of inline attributes",
    },
    "javascript_urls": {
        "pattern": r"javascript\s*:",
        "flags": re.IGNORECASE,
        "severity": "high",
        "description": "javascript: URL",
        "recommendation": "Use a real URL or a button with a bound handler",
    },
    "iframe_embeds": {
        "pattern": r"<iframe\b",
        "flags": re.IGNORECASE,
        "severity": "high",
        "description": "Embedded <iframe>",
        "recommendation": "Embed third-party content through a reviewed component",
    },
    "form_elements": {
        "pattern": r"<form\b",
        "flags": re.IGNORECASE,
        "severity": "high",
        "description": "<form> element inside editable content",
        "recommendation": "Forms belong in templates, not editable regions",
    },
}
