"""Shared test fixtures for CMS Scout tests."""

import json
import logging

import pytest

from cms_scout.core.cache import MemoryCache
from cms_scout.core.config import DEFAULT_CONFIG, merge_config
from cms_scout.core.context import ScanContext
from cms_scout.scanner.scanner import ContentScanner
from cms_scout.translations.store import TranslationStore
from cms_scout.updater.file_updater import FileUpdater


def make_config(tmp_path, overrides=None) -> dict:
    """Default config with every writable directory inside tmp_path."""
    config = merge_config(
        DEFAULT_CONFIG,
        {
            "updater": {
                "allowed_directories": [str(tmp_path / "views")],
                "backup_directory": str(tmp_path / "backups"),
                "lock_directory": str(tmp_path / "locks"),
            },
            "translations": {
                "translations_path": str(tmp_path / "lang"),
                "supported_locales": ["en", "fr", "de"],
                "backup": {"enabled": True, "path": str(tmp_path / "translation-backups")},
            },
        },
    )
    return merge_config(config, overrides or {})


@pytest.fixture
def make_context(tmp_path):
    """Build a context with an isolated cache, optional storage and config overrides."""

    def _make(storage=None, overrides=None) -> ScanContext:
        context = ScanContext(
            config=make_config(tmp_path, overrides),
            logger=logging.getLogger("cms_scout.tests"),
            cache=MemoryCache(),
        )
        if storage is not None:
            context.storage = storage
        return context

    return _make


@pytest.fixture
def context(make_context) -> ScanContext:
    return make_context()


@pytest.fixture
def views_dir(tmp_path):
    path = tmp_path / "views"
    path.mkdir()
    return path


@pytest.fixture
def updater(context, views_dir) -> FileUpdater:
    return FileUpdater(context)


@pytest.fixture
def write_view(views_dir):
    """Write a template under the allowed views directory and return its path."""

    def _write(name: str, content: str):
        path = views_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def lang_dir(tmp_path):
    path = tmp_path / "lang"
    path.mkdir()
    return path


@pytest.fixture
def store(context, lang_dir) -> TranslationStore:
    """Store over en.json (and an empty fr.json)."""
    (lang_dir / "en.json").write_text(
        json.dumps({"messages": {"welcome": "Welcome, :name!", "hello": "hello"}, "a": {"b": "x"}}, indent=4) + "\n",
        encoding="utf-8",
    )
    (lang_dir / "fr.json").write_text("{}\n", encoding="utf-8")
    return TranslationStore(context)


@pytest.fixture
def scanner(context) -> ContentScanner:
    return ContentScanner(context)
