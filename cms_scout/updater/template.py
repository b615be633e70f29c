"""
Template-aware (Blade) update handler.

Plain replacements only edit the text between echo tags, comments,
directives and HTML tags, which are copied through untouched. Selectors
address template constructs directly:

    @name            every @name(...) directive
    {{ $expr }}      a literal echo (also {!! !!})
    section:name     the body of @section('name') ... @endsection
    x-name           a <x-name> component (paired or self-closing)

Anything else is an HTML selector and goes to the DOM handler.
"""

import logging
import re
from typing import Any, Dict, Optional

from cms_scout.core.errors import ContentNotFoundError, UpdateError
from cms_scout.updater.dom import MARKUP, DomHandler
from cms_scout.updater.models import ValidationResult
from cms_scout.updater.text import replace_between, replace_line, replace_text

BLADE_SYNTAX = [
    re.compile(r"\{\{.*?\}\}", re.DOTALL),
    re.compile(r"\{!!.*?!!\}", re.DOTALL),
    re.compile(r"\{\{--.*?--\}\}", re.DOTALL),
    re.compile(r"(?<![\w.@])@[a-zA-Z]+"),
]

# Protected while replacing plain text; comments first so their inner {{ }} stay whole
BLADE_CONSTRUCT = re.compile(
    r"\{\{--.*?--\}\}|\{!!.*?!!\}|\{\{.*?\}\}|(?<![\w.@])@[a-zA-Z_]+(?:\([^)]*\))?",
    re.DOTALL,
)

# Blade constructs first so a tag inside an echo stays part of the echo
TEMPLATE_MARKUP = re.compile(rf"{BLADE_CONSTRUCT.pattern}|{MARKUP.pattern}", re.DOTALL)

BLADE_COMMENT = re.compile(r"\{\{--.*?--\}\}", re.DOTALL)

BALANCED_DELIMITERS = [
    ("{{", "}}"),
    ("{!!", "!!}"),
]

DIRECTIVE_PAIRS = {
    "if": "endif",
    "foreach": "endforeach",
    "for": "endfor",
    "while": "endwhile",
    "switch": "endswitch",
    "section": "endsection",
    "push": "endpush",
}

UNESCAPED_SUPERGLOBAL = re.compile(r"\{!!\s*\$_[A-Z]+")
MULTIPLE_ECHOES = re.compile(r"\{\{\s*\$[^}\n]*\}\}.*?\{\{\s*\$[^}\n]*\}\}")


def selector_type(selector: str) -> str:
    """directive, variable, section, component or unknown."""
    if selector.startswith("@"):
        return "directive"
    if selector.startswith("{{") or selector.startswith("{!!"):
        return "variable"
    if selector.startswith("section:"):
        return "section"
    if selector.startswith("x-"):
        return "component"
    return "unknown"


def _component_patterns(name: str):
    escaped = re.escape(name)
    paired = re.compile(rf"<{escaped}(?=[\s/>])(?:\"[^\"]*\"|'[^']*'|[^'\">])*?(?<!/)>.*?</{escaped}\s*>", re.DOTALL)
    self_closing = re.compile(rf"<{escaped}(?=[\s/>])(?:\"[^\"]*\"|'[^']*'|[^'\">])*?/>")
    return paired, self_closing


class TemplateHandler:
    """Blade-aware edits; delegates HTML selectors to the DOM handler."""

    name = "template"

    def __init__(self, dom: Optional[DomHandler] = None, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.dom = dom or DomHandler(self.logger)

    def can_handle(self, content: str, context: Dict[str, Any]) -> bool:
        if str(context.get("file_path", "")).endswith(".blade.php"):
            return True
        return any(pattern.search(content) for pattern in BLADE_SYNTAX)

    def update_content(self, content: str, old: str, new: str, context: Dict[str, Any]) -> str:
        """
        Replace text outside template constructs, tags and comments.

        When old contains a template construct it is replaced wherever it
        appears. When old contains markup, only template constructs are
        skipped.
        """
        if not old:
            raise ContentNotFoundError("Nothing to replace: old value is empty")
        # An explicit template construct in old is what the caller wants replaced
        if not context.get("regex") and BLADE_CONSTRUCT.search(old):
            return replace_text(content, old, new, context)

        protected = BLADE_CONSTRUCT if "<" in old else TEMPLATE_MARKUP
        updated, _ = replace_between(content, protected, old, new, context)
        return updated

    def update_by_line(self, content: str, line: int, new: str, context: Dict[str, Any]) -> str:
        return replace_line(content, line, new)

    def update_by_selector(self, content: str, selector: str, new: str, context: Dict[str, Any]) -> str:
        kind = selector_type(selector)

        if kind == "directive":
            name = selector[1:]
            if not re.match(r"^[a-zA-Z_]+$", name):
                raise UpdateError(f"Invalid directive selector '{selector}'")
            pattern = re.compile(rf"(?<![\w.@])@{re.escape(name)}\b(?:\([^)]*\))?")
            return pattern.sub(lambda _: new, content)

        if kind == "variable":
            return content.replace(selector, new)

        if kind == "section":
            name = selector[len("section:"):]
            pattern = re.compile(
                rf"""@section\s*\(\s*(?P<q>['"]){re.escape(name)}(?P=q)\s*\)(?P<body>.*?)@endsection""",
                re.DOTALL,
            )
            return pattern.sub(lambda _: f"@section('{name}'){new}@endsection", content)

        if kind == "component":
            paired, self_closing = _component_patterns(selector)
            if paired.search(content):
                return paired.sub(lambda _: new, content)
            return self_closing.sub(lambda _: new, content)

        return self.dom.update_by_selector(content, selector, new, context)

    def update_attribute(self, content: str, selector: str, attribute: str, value: str, context: Dict[str, Any]) -> str:
        if selector_type(selector) != "component":
            return self.dom.update_attribute(content, selector, attribute, value, context)

        start_tag = re.compile(rf"<{re.escape(selector)}(?=[\s/>])(?P<attrs>(?:\"[^\"]*\"|'[^']*'|[^'\">])*?)(?P<end>/?>)")
        existing = re.compile(rf"""\s+{re.escape(attribute)}=(?P<q>["'])[^"']*(?P=q)""")

        def rewrite(match):
            attrs = match.group("attrs")
            if value is None or value == "":
                attrs = existing.sub("", attrs, count=1)
            elif existing.search(attrs):
                attrs = existing.sub(lambda _: f' {attribute}="{value}"', attrs, count=1)
            else:
                stripped = attrs.rstrip()
                attrs = f'{stripped} {attribute}="{value}"{attrs[len(stripped):]}'
            return f"<{selector}{attrs}{match.group('end')}"

        updated = start_tag.sub(rewrite, content)
        if updated == content and not start_tag.search(content):
            raise ContentNotFoundError(f"No <{selector}> component found")
        return updated

    def validate(self, content: str, context: Dict[str, Any]) -> ValidationResult:
        errors = []
        warnings = []

        without_comments = BLADE_COMMENT.sub("", content)
        if content.count("{{--") != content.count("--}}"):
            errors.append("Unbalanced Blade comment: {{-- and --}} counts differ")
        for open_tag, close_tag in BALANCED_DELIMITERS:
            if without_comments.count(open_tag) != without_comments.count(close_tag):
                errors.append(f"Unbalanced Blade expression: {open_tag} and {close_tag} counts differ")

        for start, end in DIRECTIVE_PAIRS.items():
            starts = len(re.findall(rf"(?<![\w@])@{start}\b", without_comments))
            ends = len(re.findall(rf"(?<![\w@])@{end}\b", without_comments))
            if starts != ends:
                errors.append(f"Unbalanced directive: {starts} @{start} vs {ends} @{end}")

        if UNESCAPED_SUPERGLOBAL.search(content):
            errors.append("Potential XSS vulnerability: unescaped superglobal variable")
        if MULTIPLE_ECHOES.search(content):
            warnings.append("Multiple Blade expressions on same line may cause issues")

        return ValidationResult.from_lists(errors, warnings)
