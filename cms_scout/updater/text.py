"""
Plain-text update handler.

Exact or regex replacement over the raw text. Handles anything, so it sits
last in the strategy chain as the universal fallback.
"""

import re
from typing import Any, Dict, Pattern, Tuple

from cms_scout.core.errors import ContentNotFoundError, UpdateError
from cms_scout.updater.models import ValidationResult

CONTROL_CHARACTERS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

REGEX_FLAG_LETTERS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


def _count(context: Dict[str, Any]) -> int:
    """re.sub style count: 0 means unlimited."""
    limit = context.get("limit")
    return limit if isinstance(limit, int) and limit > 0 else 0


def compile_pattern(old: str, context: Dict[str, Any]) -> Pattern:
    """old as a pattern: escaped unless context["regex"], honouring case_sensitive and regex_flags."""
    flags = 0 if context.get("case_sensitive", True) else re.IGNORECASE
    if context.get("regex"):
        for letter in context.get("regex_flags", ""):
            flags |= REGEX_FLAG_LETTERS.get(letter, 0)
    try:
        return re.compile(old if context.get("regex") else re.escape(old), flags)
    except re.error as e:
        raise UpdateError(f"Invalid regular expression: {e}") from e


def replace_between(content: str, protected: Pattern, old: str, new: str, context: Dict[str, Any]) -> Tuple[str, int]:
    """
    Replace old only in the stretches of content that protected does not match.

    Returns:
        (updated content, number of replacements)
    """
    if not old:
        raise ContentNotFoundError("Nothing to replace: old value is empty")

    pattern = compile_pattern(old, context)
    replacement = new if context.get("regex") else (lambda _: new)
    remaining = _count(context) or None
    replaced = 0

    def substitute(text: str) -> str:
        nonlocal remaining, replaced
        if not text or remaining == 0:
            return text
        try:
            text, count = pattern.subn(replacement, text, count=remaining or 0)
        except re.error as e:
            raise UpdateError(f"Regex replacement failed: {e}") from e
        replaced += count
        if remaining is not None:
            remaining -= count
        return text

    output = []
    position = 0
    for match in protected.finditer(content):
        output.append(substitute(content[position:match.start()]))
        output.append(match.group(0))
        position = match.end()
    output.append(substitute(content[position:]))
    return "".join(output), replaced


def replace_text(content: str, old: str, new: str, context: Dict[str, Any]) -> str:
    """
    Replace old with new.

    Context flags:
        regex: treat old as a Python regular expression (new may use \\1 backrefs)
        regex_flags: any of "imsx"
        case_sensitive: default True
        limit: maximum number of replacements (default all)
    """
    if not old:
        raise ContentNotFoundError("Nothing to replace: old value is empty")

    case_sensitive = context.get("case_sensitive", True)
    count = _count(context)

    if context.get("regex"):
        pattern = compile_pattern(old, context)
        try:
            return pattern.sub(new, content, count=count)
        except re.error as e:
            raise UpdateError(f"Regex replacement failed: {e}") from e

    if case_sensitive:
        return content.replace(old, new, count or -1)
    return re.sub(re.escape(old), lambda _: new, content, count=count, flags=re.IGNORECASE)


def replace_line(content: str, line: int, new: str) -> str:
    """Replace one 1-based line, keeping that line's original line ending."""
    lines = content.splitlines(keepends=True)
    if not isinstance(line, int) or line < 1 or line > len(lines):
        raise ContentNotFoundError(f"Line number {line} is out of range (file has {len(lines)} lines)")

    original = lines[line - 1]
    body = original.rstrip("\r\n")
    lines[line - 1] = new + original[len(body):]
    return "".join(lines)


class TextHandler:
    """String and regex replacement with no knowledge of markup."""

    name = "text"

    def can_handle(self, content: str, context: Dict[str, Any]) -> bool:
        return True

    def update_content(self, content: str, old: str, new: str, context: Dict[str, Any]) -> str:
        return replace_text(content, old, new, context)

    def update_by_line(self, content: str, line: int, new: str, context: Dict[str, Any]) -> str:
        return replace_line(content, line, new)

    def update_by_selector(self, content: str, selector: str, new: str, context: Dict[str, Any]) -> str:
        # No structure to select from: the selector is the literal text
        return replace_text(content, selector, new, context)

    def update_attribute(self, content: str, selector: str, attribute: str, value: str, context: Dict[str, Any]) -> str:
        raise ContentNotFoundError("Attribute updates need markup; the plain-text handler cannot apply them")

    def validate(self, content: str, context: Dict[str, Any]) -> ValidationResult:
        errors = []
        warnings = []

        try:
            content.encode("utf-8")
        except UnicodeEncodeError:
            errors.append("Content is not valid UTF-8")

        if not content.strip() and not context.get("allow_empty", False):
            warnings.append("Content is empty or contains only whitespace")
        if CONTROL_CHARACTERS.search(content):
            warnings.append("Content contains non-printable characters")

        return ValidationResult.from_lists(errors, warnings)
