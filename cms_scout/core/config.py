"""Configuration and state management for CMS Scout."""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Optional

from cms_scout.core.context import ScanContext

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: dict = {
    "scanner": {
        "cache_enabled": True,
        "cache_ttl": 3600,
        "timeout": 30,
        "user_agent": "CMS Scout Content Scanner",
        "follow_redirects": True,
        "max_content_length": 10 * 1024 * 1024,  # 10MB
        "excluded_elements": ["script", "style", "meta", "link"],
        "min_content_length": 3,
        "context_length": 50,
        "locales": ["en"],
        "base_url": None,
        "view_paths": [],
        "enable_source_mapping": True,
        "enable_component_detection": True,
        "marker_prefix": "data-cms",
        "script_url": None,
    },
    "updater": {
        "auto_backup": True,
        "rollback_on_failure": True,
        "allowed_directories": [],
        "backup_directory": "storage/cms/file-backups",
        "lock_directory": "storage/cms/file-locks",
        "lock_stale_seconds": 300,
        "max_backup_age_days": 30,
        "encoding": "utf-8",
    },
    "translations": {
        "translations_path": "resources/lang",
        "default_locale": "en",
        "supported_locales": ["en"],
        "format": "json",
        "cache": {"enabled": True, "ttl": 3600, "prefix": "translations"},
        "backup": {"enabled": True, "path": "storage/cms/translation-backups"},
        "validation": {"allow_html": False, "max_length": 1000},
    },
    "logging": {"level": "INFO"},
}

# Module-level state
_config: dict = {}
_context: Optional[ScanContext] = None
_scanner = None
_file_updater = None
_translation_store = None


def merge_config(base: dict, overrides: dict) -> dict:
    """Deep-merge overrides into a copy of base (dicts merge, everything else replaces)."""
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config() -> dict:
    """
    Load configuration from config.json, merged over the defaults.

    Lookup order:
    - $CMS_SCOUT_CONFIG
    - ~/.config/cms-scout/config.json
    - ./config.json

    With no config file the defaults are used as-is.
    """
    candidates = []
    env_path = os.environ.get("CMS_SCOUT_CONFIG")
    if env_path:
        candidates.append(Path(env_path))
    candidates.append(Path.home() / ".config" / "cms-scout" / "config.json")
    candidates.append(Path("config.json"))

    for config_path in candidates:
        if config_path.exists():
            with open(config_path, "r") as f:
                user_config = json.load(f)
            logger.info(f"Loaded configuration from: {config_path}")
            return merge_config(DEFAULT_CONFIG, user_config)

    logger.info("No config.json found, using default configuration")
    return copy.deepcopy(DEFAULT_CONFIG)


def get_config() -> dict:
    """Get config, loading if needed."""
    global _config
    if not _config:
        _config = load_config()
    return _config


def get_context() -> ScanContext:
    """Get the shared context, building it from config if needed."""
    global _context
    if _context is None:
        _context = ScanContext(config=get_config())
    return _context


def get_scanner():
    """Get the shared ContentScanner."""
    global _scanner
    if _scanner is None:
        from cms_scout.scanner.scanner import ContentScanner

        _scanner = ContentScanner(get_context(), translation_lookup=get_translation_store())
    return _scanner


def get_file_updater():
    """Get the shared FileUpdater."""
    global _file_updater
    if _file_updater is None:
        from cms_scout.updater.file_updater import FileUpdater

        _file_updater = FileUpdater(get_context())
    return _file_updater


def get_translation_store():
    """Get the shared TranslationStore."""
    global _translation_store
    if _translation_store is None:
        from cms_scout.translations.store import TranslationStore

        _translation_store = TranslationStore(get_context())
    return _translation_store


def reset_state(config: Optional[dict] = None):
    """Drop all shared instances; optionally install an explicit config."""
    global _config, _context, _scanner, _file_updater, _translation_store
    _config = merge_config(DEFAULT_CONFIG, config) if config is not None else {}
    _context = None
    _scanner = None
    _file_updater = None
    _translation_store = None
