"""Translation key and value validation."""

import re
from typing import Any, Dict, Iterable, List, Optional

from cms_scout.core.errors import InvalidKeyError, UnsafeContentError

KEY_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+$")

UNSAFE_TAGS = ["script", "iframe", "object", "embed", "form", "input", "textarea"]

UNSAFE_TAG_PATTERN = re.compile(rf"<\s*(?:{'|'.join(UNSAFE_TAGS)})\b", re.IGNORECASE)
EVENT_HANDLER_PATTERN = re.compile(r"\bon[a-z]+\s*=", re.IGNORECASE)
JAVASCRIPT_URL_PATTERN = re.compile(r"javascript\s*:", re.IGNORECASE)

DEFAULT_MAX_LENGTH = 1000

RECOMMENDATIONS = {
    "invalid_key": "Use only alphanumeric characters, dots, underscores, and hyphens in keys",
    "too_long": "Shorten the value or raise translations.validation.max_length",
    "unsafe_html": "Remove or escape potentially dangerous HTML tags and attributes",
    "invalid_locale": "Use only supported locale codes",
}


def is_valid_key(key: Any) -> bool:
    return isinstance(key, str) and KEY_PATTERN.match(key) is not None


def validate_key(key: Any) -> None:
    if not is_valid_key(key):
        raise InvalidKeyError(f"Invalid translation key: {key!r}")


def unsafe_content(value: str) -> List[str]:
    """Names of the unsafe constructs found in value."""
    found = []
    if UNSAFE_TAG_PATTERN.search(value):
        found.append("disallowed tag")
    if EVENT_HANDLER_PATTERN.search(value):
        found.append("inline event handler")
    if JAVASCRIPT_URL_PATTERN.search(value):
        found.append("javascript: URL")
    return found


def validate_value(value: Any, max_length: int = DEFAULT_MAX_LENGTH, allow_html: bool = False) -> None:
    """
    Raises:
        UnsafeContentError: not a string, longer than max_length, or (unless
            allow_html) containing disallowed tags, on*= handlers or javascript: URLs
    """
    if not isinstance(value, str):
        raise UnsafeContentError(f"Translation value must be a string, got {type(value).__name__}")
    if len(value) > max_length:
        raise UnsafeContentError(f"Translation value is {len(value)} characters, maximum is {max_length}")
    if not allow_html:
        found = unsafe_content(value)
        if found:
            raise UnsafeContentError(f"Translation value contains unsafe content: {', '.join(found)}")


def validation_report(
    key: Any,
    value: Any,
    locale: str,
    supported_locales: Optional[Iterable[str]] = None,
    max_length: int = DEFAULT_MAX_LENGTH,
    allow_html: bool = False,
) -> Dict[str, Any]:
    """Non-raising validation: {is_valid, issues, recommendations}."""
    issues = []

    if not is_valid_key(key):
        issues.append({"type": "invalid_key", "message": "Key contains invalid characters"})

    text = value if isinstance(value, str) else str(value)
    if len(text) > max_length:
        issues.append({"type": "too_long", "message": f"Value exceeds {max_length} characters"})
    if not allow_html:
        for name in unsafe_content(text):
            issues.append({"type": "unsafe_html", "message": f"Value contains a {name}"})

    if supported_locales is not None and locale not in supported_locales:
        issues.append({"type": "invalid_locale", "message": f"Unsupported locale: {locale}"})

    recommendations = []
    for issue in issues:
        recommendation = RECOMMENDATIONS[issue["type"]]
        if recommendation not in recommendations:
            recommendations.append(recommendation)

    return {"is_valid": not issues, "issues": issues, "recommendations": recommendations}
