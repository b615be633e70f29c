"""
Locale-keyed translation store.

Translations live in one file per locale under translations_path
(<locale>.json, <locale>.yaml or <locale>.yml). Keys are dot-nested
("messages.welcome" is {"messages": {"welcome": ...}}); a literal flat key
present in the file wins over the nested lookup.

Reads go through the context cache. Every write backs up first (when
enabled), persists atomically in the file's own format and invalidates the
locale's cache entry.
"""

import copy
import difflib
import json
import re
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

from cms_scout.core.context import ScanContext
from cms_scout.core.errors import (
    BackupNotFoundError,
    CmsScoutError,
    TranslationError,
    UnsupportedFormatError,
)
from cms_scout.translations.validation import (
    DEFAULT_MAX_LENGTH,
    is_valid_key,
    validate_key,
    validate_value,
    validation_report,
)
from cms_scout.core.storage import atomic_write

FILE_EXTENSIONS = ["json", "yaml", "yml"]
EXPORT_FORMATS = ["json", "yaml"]
DEFAULT_JSON_INDENT = 4

JSON_INDENT_RE = re.compile(r"^\{\s*?\n(?P<indent>[ \t]+)\S")


def _format_of(path: Path) -> str:
    return "yaml" if path.suffix in (".yaml", ".yml") else "json"


def flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """{"a": {"b": "x"}} -> {"a.b": "x"}"""
    flat = {}
    for key, value in data.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(flatten(value, full_key))
        else:
            flat[full_key] = value
    return flat


def get_nested(data: Dict[str, Any], key: str) -> Any:
    if key in data:
        return data[key]
    node: Any = data
    for segment in key.split("."):
        if not isinstance(node, dict) or segment not in node:
            return None
        node = node[segment]
    return node


def set_nested(data: Dict[str, Any], key: str, value: Any) -> None:
    if key in data:
        data[key] = value
        return
    segments = key.split(".")
    node = data
    for segment in segments[:-1]:
        if not isinstance(node.get(segment), dict):
            node[segment] = {}
        node = node[segment]
    node[segments[-1]] = value


def forget_nested(data: Dict[str, Any], key: str) -> bool:
    if key in data:
        del data[key]
        return True
    segments = key.split(".")
    node: Any = data
    for segment in segments[:-1]:
        if not isinstance(node, dict) or not isinstance(node.get(segment), dict):
            return False
        node = node[segment]
    if segments[-1] not in node:
        return False
    del node[segments[-1]]
    return True


def deep_merge(base: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class TranslationStore:
    """get/set/has/forget of dot-nested keys per locale."""

    def __init__(self, context: Optional[ScanContext] = None, config: Optional[dict] = None):
        self.context = context or ScanContext()
        self.logger = self.context.logger
        self.storage = self.context.storage
        self.cache = self.context.cache
        self.config = config if config is not None else self.context.section("translations")

        self.translations_path = Path(self.config.get("translations_path", "resources/lang"))
        self.default_locale = self.config.get("default_locale", "en")
        self.supported_locales = list(self.config.get("supported_locales") or [self.default_locale])
        self.format = self.config.get("format", "json")
        self.current_locale = self.default_locale

        cache_config = self.config.get("cache") or {}
        self.cache_enabled = cache_config.get("enabled", True)
        self.cache_ttl = cache_config.get("ttl", 3600)
        self.cache_prefix = cache_config.get("prefix", "translations")

        backup_config = self.config.get("backup") or {}
        self.backup_enabled = backup_config.get("enabled", True)
        self.backup_path = Path(backup_config.get("path", "storage/cms/translation-backups"))

        validation_config = self.config.get("validation") or {}
        self.allow_html = validation_config.get("allow_html", False)
        self.max_length = validation_config.get("max_length", DEFAULT_MAX_LENGTH)

    # ------------------------------------------------------------------
    # Locale
    # ------------------------------------------------------------------

    def get_locale(self) -> str:
        return self.current_locale

    def set_locale(self, locale: str) -> None:
        if locale not in self.supported_locales:
            raise TranslationError(f"Unsupported locale: {locale}")
        self.current_locale = locale

    def available_locales(self) -> List[str]:
        return list(self.supported_locales)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def file_for(self, locale: str) -> Path:
        """Existing file for locale, else the path a new one would get."""
        for extension in FILE_EXTENSIONS:
            candidate = self.translations_path / f"{locale}.{extension}"
            if self.storage.exists(candidate):
                return candidate
        extension = "yaml" if self.format in ("yaml", "yml") else "json"
        return self.translations_path / f"{locale}.{extension}"

    def _cache_key(self, locale: str) -> str:
        return f"{self.cache_prefix}.{locale}"

    def load(self, locale: str) -> Dict[str, Any]:
        """Translations for locale (shared cached dict: copy before mutating)."""
        if self.cache_enabled:
            cached = self.cache.get(self._cache_key(locale))
            if cached is not None:
                return cached

        data = self._read_file(self.file_for(locale))
        if self.cache_enabled:
            self.cache.put(self._cache_key(locale), data, self.cache_ttl)
        return data

    def _read_file(self, path: Path) -> Dict[str, Any]:
        if not self.storage.exists(path):
            return {}

        text = self.storage.read(path).decode("utf-8")
        if not text.strip():
            return {}
        try:
            data = yaml.safe_load(text) if _format_of(path) == "yaml" else json.loads(text)
        except (ValueError, yaml.YAMLError) as e:
            raise TranslationError(f"Could not parse translation file {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise TranslationError(f"Translation file {path} must contain a mapping")
        return data

    def _serialize(self, path: Path, data: Dict[str, Any]) -> str:
        if _format_of(path) == "yaml":
            return yaml.safe_dump(data, allow_unicode=True, sort_keys=False, default_flow_style=False)

        indent: Any = DEFAULT_JSON_INDENT
        trailing_newline = True
        if self.storage.exists(path):
            existing = self.storage.read(path).decode("utf-8")
            match = JSON_INDENT_RE.match(existing)
            if match:
                indent = match.group("indent")
            trailing_newline = existing.endswith("\n")
        text = json.dumps(data, indent=indent, ensure_ascii=False)
        return text + "\n" if trailing_newline else text

    def save(self, locale: str, data: Dict[str, Any]) -> Path:
        path = self.file_for(locale)
        self.translations_path.mkdir(parents=True, exist_ok=True)
        atomic_write(self.storage, str(path), self._serialize(path, data).encode("utf-8"))
        self.invalidate(locale)
        return path

    def invalidate(self, locale: str) -> None:
        self.cache.forget(self._cache_key(locale))

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def _load_for_lookup(self, locale: str) -> Dict[str, Any]:
        """load() for read-only lookups: an unreadable locale file counts as empty."""
        try:
            return self.load(locale)
        except (TranslationError, UnicodeDecodeError, OSError) as e:
            self.logger.warning(f"Ignoring unreadable translations for {locale}: {e}")
            return {}

    def get(self, key: str, locale: Optional[str] = None, replace: Optional[Dict[str, Any]] = None) -> str:
        """
        Translate key.

        Falls back to the default locale, then to the key itself; never
        raises for a missing or malformed key, or for an unreadable locale
        file. :name placeholders are filled from replace.
        """
        locale = locale or self.current_locale
        if not is_valid_key(key):
            self.logger.warning(f"Invalid translation key requested: {key!r}")
            return str(key)

        value = get_nested(self._load_for_lookup(locale), key)
        if not isinstance(value, str) and locale != self.default_locale:
            value = get_nested(self._load_for_lookup(self.default_locale), key)
        if not isinstance(value, str):
            self.logger.warning(f"Translation key not found: {key} ({locale})")
            return key

        # Longest names first so :name does not clobber :name_full
        for name in sorted(replace or {}, key=len, reverse=True):
            value = value.replace(f":{name}", str(replace[name]))
        return value

    def has(self, key: str, locale: Optional[str] = None) -> bool:
        return get_nested(self._load_for_lookup(locale or self.current_locale), key) is not None

    def all(self, locale: Optional[str] = None) -> Dict[str, Any]:
        return copy.deepcopy(self.load(locale or self.current_locale))

    def set(self, key: str, value: str, locale: Optional[str] = None) -> bool:
        """
        Raises:
            InvalidKeyError: key does not match ^[a-zA-Z0-9._-]+$
            UnsafeContentError: value too long or unsafe
        """
        locale = locale or self.current_locale
        validate_key(key)
        validate_value(value, self.max_length, self.allow_html)

        if self.backup_enabled:
            self.backup([locale])

        data = copy.deepcopy(self.load(locale))
        previous = get_nested(data, key)
        set_nested(data, key, value)
        self.save(locale, data)

        self.logger.info(f"Translation set: {key} ({locale})" + (" [new]" if previous is None else ""))
        return True

    def forget(self, key: str, locale: Optional[str] = None) -> bool:
        locale = locale or self.current_locale
        validate_key(key)

        data = copy.deepcopy(self.load(locale))
        if get_nested(data, key) is None:
            return True

        if self.backup_enabled:
            self.backup([locale])
        forget_nested(data, key)
        self.save(locale, data)

        self.logger.info(f"Translation removed: {key} ({locale})")
        return True

    def validate(self, key: str, value: str, locale: Optional[str] = None) -> Dict[str, Any]:
        return validation_report(
            key,
            value,
            locale or self.current_locale,
            supported_locales=self.supported_locales,
            max_length=self.max_length,
            allow_html=self.allow_html,
        )

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export(self, locale: Optional[str] = None, fmt: str = "json") -> str:
        data = self.load(locale or self.current_locale)
        if fmt == "json":
            return json.dumps(data, indent=DEFAULT_JSON_INDENT, ensure_ascii=False)
        if fmt in ("yaml", "yml"):
            return yaml.safe_dump(data, allow_unicode=True, sort_keys=False, default_flow_style=False)
        raise UnsupportedFormatError(f"Unsupported export format: {fmt} (expected one of: {', '.join(EXPORT_FORMATS)})")

    def import_translations(self, locale: str, content: str, fmt: str = "json", merge: bool = True) -> int:
        """
        Load translations from a json or yaml string.

        Every key and value is validated before anything is written.

        Returns:
            Number of keys imported
        """
        if fmt not in ("json", "yaml", "yml"):
            raise UnsupportedFormatError(f"Unsupported import format: {fmt} (expected one of: {', '.join(EXPORT_FORMATS)})")
        try:
            incoming = json.loads(content) if fmt == "json" else yaml.safe_load(content)
        except (ValueError, yaml.YAMLError) as e:
            raise TranslationError(f"Could not parse {fmt} import: {e}") from e

        if not isinstance(incoming, dict):
            raise TranslationError("Imported translations must be a mapping")

        flat = flatten(incoming)
        for key, value in flat.items():
            validate_key(key)
            validate_value(value, self.max_length, self.allow_html)

        if self.backup_enabled:
            self.backup([locale])
        data = deep_merge(self.load(locale), incoming) if merge else incoming
        self.save(locale, data)

        self.logger.info(f"Imported {len(flat)} translation(s) into {locale} ({'merge' if merge else 'replace'})")
        return len(flat)

    # ------------------------------------------------------------------
    # Multi-locale operations
    # ------------------------------------------------------------------

    def missing(self, locale: Optional[str] = None, comparison_locale: Optional[str] = None) -> List[str]:
        """Keys present in comparison_locale (default locale) but absent from locale."""
        locale = locale or self.current_locale
        comparison_locale = comparison_locale or self.default_locale
        target = flatten(self.load(locale))
        return sorted(key for key in flatten(self.load(comparison_locale)) if key not in target)

    def sync(self, key: str, values: Dict[str, str]) -> List[str]:
        """Set key in several locales at once; unsupported locales are skipped."""
        updated = []
        for locale, value in values.items():
            if locale not in self.supported_locales:
                self.logger.warning(f"Skipping unsupported locale in sync: {locale}")
                continue
            self.set(key, value, locale)
            updated.append(locale)
        return updated

    def bulk(self, operations: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Run set/forget/sync operations; each result records success or the error."""
        results = []
        for operation in operations:
            op_type = operation.get("type")
            try:
                if op_type == "set":
                    result: Any = self.set(operation["key"], operation.get("value", ""), operation.get("locale"))
                elif op_type == "forget":
                    result = self.forget(operation["key"], operation.get("locale"))
                elif op_type == "sync":
                    result = self.sync(operation["key"], operation.get("locales") or {})
                else:
                    raise TranslationError(f"Unsupported bulk operation: {op_type}")
                results.append({"operation": operation, "success": True, "result": result})
            except (CmsScoutError, KeyError) as e:
                self.logger.warning(f"Bulk translation operation failed: {e}")
                results.append({"operation": operation, "success": False, "error": str(e)})
        return results

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    def backup(self, locales: Optional[List[str]] = None) -> str:
        """Snapshot the given locales (default all supported) into one JSON file."""
        backup_id = f"backup_{datetime.now().strftime('%Y-%m-%d_%H-%M-%S')}_{uuid.uuid4().hex[:8]}"
        payload = {
            "id": backup_id,
            "created_at": datetime.now().isoformat(),
            "locales": {locale: self.load(locale) for locale in (locales or self.supported_locales)},
        }
        self.storage.write(self.backup_path / f"{backup_id}.json", json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8"))
        self.logger.debug(f"Translation backup created: {backup_id}")
        return backup_id

    def restore(self, backup_id: str, locales: Optional[List[str]] = None) -> bool:
        path = self.backup_path / f"{backup_id}.json"
        if not self.storage.exists(path):
            raise BackupNotFoundError(f"Translation backup not found: {backup_id}")

        payload = json.loads(self.storage.read(path).decode("utf-8"))
        for locale, data in payload.get("locales", {}).items():
            if locales is None or locale in locales:
                self.save(locale, data)

        self.logger.info(f"Translations restored from {backup_id}")
        return True

    def list_backups(self) -> List[Dict[str, Any]]:
        backups = []
        if not self.backup_path.is_dir():
            return backups
        for path in self.backup_path.glob("backup_*.json"):
            try:
                payload = json.loads(self.storage.read(path).decode("utf-8"))
            except ValueError as e:
                self.logger.warning(f"Unreadable translation backup {path.name}: {e}")
                continue
            backups.append({
                "id": payload.get("id", path.stem),
                "created_at": payload.get("created_at"),
                "locales": sorted(payload.get("locales", {})),
                "size": path.stat().st_size,
            })
        return sorted(backups, key=lambda b: b["created_at"] or "", reverse=True)

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def search(
        self,
        query: str,
        locales: Optional[List[str]] = None,
        search_type: str = "both",
        case_sensitive: bool = False,
        regex: bool = False,
    ) -> List[Dict[str, Any]]:
        """Find translations whose key and/or value matches query."""
        if regex:
            pattern = re.compile(query, 0 if case_sensitive else re.IGNORECASE)

            def matches(text: str) -> bool:
                return pattern.search(text) is not None
        else:
            needle = query if case_sensitive else query.lower()

            def matches(text: str) -> bool:
                return needle in (text if case_sensitive else text.lower())

        results = []
        for locale in locales or [self.current_locale]:
            for key, value in flatten(self.load(locale)).items():
                value = str(value)
                key_match = search_type in ("key", "both") and matches(key)
                value_match = search_type in ("value", "both") and matches(value)
                if not (key_match or value_match):
                    continue
                match_type = "both" if key_match and value_match else ("key" if key_match else "value")
                results.append({"locale": locale, "key": key, "value": value, "match_type": match_type})
        return results

    def generate_key(self, text: str, namespace: str = "") -> str:
        """Key from English text, e.g. "Welcome back!" -> "welcome_back", made unique."""
        key = re.sub(r"[^a-z0-9\s]", "", text.lower())
        key = re.sub(r"\s+", "_", key.strip())[:50] or "text"
        if namespace:
            key = f"{namespace}.{key}"

        candidate = key
        counter = 1
        while self.has(candidate):
            candidate = f"{key}_{counter}"
            counter += 1
        return candidate

    def find_similar(self, text: str, locale: Optional[str] = None, threshold: float = 0.8) -> List[Dict[str, Any]]:
        """Existing translations whose value is similar to text (difflib ratio)."""
        similar = []
        for key, value in flatten(self.load(locale or self.current_locale)).items():
            if not isinstance(value, str):
                continue
            ratio = difflib.SequenceMatcher(None, text.lower(), value.lower()).ratio()
            if ratio >= threshold:
                similar.append({"key": key, "value": value, "similarity": round(ratio, 3)})
        return sorted(similar, key=lambda item: item["similarity"], reverse=True)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def get_statistics(self, locale: Optional[str] = None) -> Dict[str, Any]:
        locale = locale or self.current_locale
        values = [str(v) for v in flatten(self.load(locale)).values()]
        total_characters = sum(len(v) for v in values)
        path = self.file_for(locale)
        exists = self.storage.exists(path)
        return {
            "locale": locale,
            "file": str(path),
            "total_keys": len(values),
            "total_characters": total_characters,
            "average_length": round(total_characters / max(len(values), 1)),
            "empty_translations": sum(1 for v in values if not v.strip()),
            "missing_keys": len(self.missing(locale)),
            "file_size": path.stat().st_size if exists else 0,
            "last_modified": datetime.fromtimestamp(path.stat().st_mtime).isoformat() if exists else None,
        }

    def warm_up(self, locales: Optional[List[str]] = None) -> int:
        """Load locales into the cache. Returns how many were loaded."""
        loaded = 0
        for locale in locales or self.supported_locales:
            self.load(locale)
            loaded += 1
        return loaded

    def clear_cache(self, locales: Optional[List[str]] = None) -> None:
        for locale in locales or self.supported_locales:
            self.invalidate(locale)
