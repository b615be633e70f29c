"""
Translation tools.

- get_translation: Look up a key (with locale fallback)
- set_translation: Write a key to a locale file
- missing_translations: Keys the default locale has but another locale lacks
"""

import json
import logging
from typing import Optional

from cms_scout.core.config import get_translation_store
from cms_scout.core.errors import CmsScoutError

# Import MCP instance from server
from server import mcp

logger = logging.getLogger(__name__)


@mcp.tool()
def get_translation(key: str, locale: Optional[str] = None, replace: Optional[str] = None) -> str:
    """
    Translate a key.

    Falls back to the default locale, then to the key itself.

    Args:
        key: Dot-nested key (e.g. "messages.welcome")
        locale: Locale (default: the store's current locale)
        replace: Optional JSON object of :placeholder values (e.g. '{"name": "Ann"}')

    Returns:
        The translated string
    """
    values = None
    if replace:
        try:
            values = json.loads(replace)
        except ValueError as e:
            return f"❌ ERROR: replace must be a JSON object: {e}"
        if not isinstance(values, dict):
            return "❌ ERROR: replace must be a JSON object"

    try:
        return get_translation_store().get(key, locale, values)
    except CmsScoutError as e:
        return f"❌ ERROR: {e.kind}: {e}"


@mcp.tool()
def set_translation(key: str, value: str, locale: Optional[str] = None) -> str:
    """
    Set a translation, backing up the locale file first.

    Keys must match ^[a-zA-Z0-9._-]+$. Values are limited in length and may
    not contain scripts, inline event handlers or javascript: URLs.

    Args:
        key: Dot-nested key
        value: Translation text
        locale: Locale (default: the store's current locale)

    Returns:
        Confirmation, or the validation error
    """
    store = get_translation_store()
    locale = locale or store.get_locale()
    logger.info(f"Setting translation {key} ({locale})")
    try:
        store.set(key, value, locale)
    except CmsScoutError as e:
        return f"❌ ERROR: {e.kind}: {e}"
    return f"✅ {key} set for {locale} in {store.file_for(locale)}"


@mcp.tool()
def missing_translations(locale: str, comparison_locale: Optional[str] = None) -> str:
    """
    List keys present in comparison_locale (default locale) but missing from locale.

    Args:
        locale: Locale to check
        comparison_locale: Reference locale (default: translations.default_locale)

    Returns:
        Missing keys, one per line
    """
    store = get_translation_store()
    try:
        missing = store.missing(locale, comparison_locale)
    except CmsScoutError as e:
        return f"❌ ERROR: {e.kind}: {e}"

    reference = comparison_locale or store.default_locale
    if not missing:
        return f"✅ {locale} has every key in {reference}"

    output = [f"⚠️  {len(missing)} key(s) in {reference} missing from {locale}:", ""]
    output.extend(f"• {key}" for key in missing)
    return "\n".join(output)
