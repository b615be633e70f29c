"""Tests for transactional template updates: locking, backups, validation, rollback and restore."""

import os
import time

import pytest

from cms_scout.core.errors import (
    AtomicWriteVerificationError,
    BackupCorruptedError,
    BackupNotFoundError,
    ContentNotFoundError,
    FileAccessError,
    LockContentionError,
    PathNotAllowedError,
    UnknownOperationTypeError,
    UnknownStrategyError,
    ValidationError,
)
from cms_scout.core.storage import LocalStorage
from cms_scout.updater.file_updater import FileUpdater
from cms_scout.updater.models import ValidationResult

PAGE = "<h1>Welcome</h1>\n<p>Old text</p>\n"


class CorruptingStorage(LocalStorage):
    """Reads of template temp files come back altered, as if the disk returned garbage."""

    def read(self, path):
        data = super().read(path)
        if ".html.tmp." in str(path):
            return data + b"corrupt"
        return data


class IndexCorruptingStorage(LocalStorage):
    """Only reads of the backup index temp file are altered."""

    def read(self, path):
        data = super().read(path)
        if "index.json.tmp." in str(path):
            return data + b"corrupt"
        return data


class ReentrantHandler:
    """Strategy that tries to update the same file again from inside an update."""

    def __init__(self, updater, file_path):
        self.updater = updater
        self.file_path = file_path

    def can_handle(self, content, context):
        return True

    def update_content(self, content, old, new, context):
        self.updater.update_content(self.file_path, old, new, {"strategy": "text"})
        return content.replace(old, new)

    def validate(self, content, context):
        return ValidationResult()


def test_update_content_backs_up_and_commits(updater, write_view):
    path = write_view("home.html", PAGE)

    result = updater.update_content(path, "Old text", "New text")

    assert path.read_text(encoding="utf-8") == "<h1>Welcome</h1>\n<p>New text</p>\n"
    assert result.strategies == ["dom"]
    assert result.states == ["locked", "backed_up", "mutating", "validating", "committed", "unlocked"]
    assert updater.backups.read_verified(result.backup_id) == PAGE.encode("utf-8")
    assert not updater.is_locked(path)
    assert sorted(p.name for p in path.parent.iterdir()) == ["home.html"]


def test_dom_content_update_leaves_markup_alone(updater, write_view):
    path = write_view("card.html", '<p class="Old" title="Old">Old</p>\n<!-- Old -->\n')
    updater.update_content(path, "Old", "New")
    assert path.read_text(encoding="utf-8") == '<p class="Old" title="Old">New</p>\n<!-- Old -->\n'


def test_template_update_leaves_blade_constructs_alone(updater, write_view):
    path = write_view("page.blade.php", "<h1>{{ $title }}</h1>\n<p>title here</p>\n")
    result = updater.update_content(path, "title", "heading")
    assert path.read_text(encoding="utf-8") == "<h1>{{ $title }}</h1>\n<p>heading here</p>\n"
    assert result.strategies == ["template"]


def test_update_with_limit_and_case_insensitive(updater, write_view):
    path = write_view("notes.txt", "Item item ITEM")
    updater.update_content(path, "item", "entry", {"case_sensitive": False, "limit": 2})
    assert path.read_text(encoding="utf-8") == "entry entry ITEM"


def test_update_by_line_keeps_line_endings(updater, write_view):
    path = write_view("lines.txt", "")
    path.write_bytes(b"first\r\nsecond\r\nthird")
    updater.update_by_line_number(path, 2, "SECOND")
    assert path.read_bytes() == b"first\r\nSECOND\r\nthird"

    with pytest.raises(ContentNotFoundError):
        updater.update_by_line_number(path, 9, "nope")


def test_update_by_selector_escapes_text(updater, write_view):
    path = write_view("menu.html", '<div><h1 class="title">Old</h1></div>\n')
    updater.update_by_selector(path, "h1.title", "Fish & Chips")
    assert path.read_text(encoding="utf-8") == '<div><h1 class="title">Fish &amp; Chips</h1></div>\n'


def test_update_attribute_set_and_remove(updater, write_view):
    path = write_view("nav.html", '<a href="/old" class="nav">Link</a>\n')
    updater.update_attribute(path, "a.nav", "href", "/new")
    assert path.read_text(encoding="utf-8") == '<a href="/new" class="nav">Link</a>\n'

    updater.update_attribute(path, "a.nav", "class", "")
    assert path.read_text(encoding="utf-8") == '<a href="/new">Link</a>\n'


def test_batch_update_is_one_transaction(updater, write_view):
    path = write_view("home.html", PAGE)
    result = updater.batch_update(
        path,
        [
            {"type": "content", "old": "Welcome", "new": "Hello"},
            {"type": "line", "line_number": 2, "content": "<p>Replaced</p>"},
        ],
    )
    assert path.read_text(encoding="utf-8") == "<h1>Hello</h1>\n<p>Replaced</p>\n"
    assert result.operations == 2
    assert result.strategies == ["dom", "dom"]
    assert len(updater.history(path)) == 1


def test_batch_update_rejects_unknown_operation_before_locking(updater, write_view):
    path = write_view("home.html", PAGE)
    with pytest.raises(UnknownOperationTypeError):
        updater.batch_update(path, [{"type": "content", "old": "a", "new": "b"}, {"type": "delete"}])
    assert updater.history(path) == []
    assert path.read_text(encoding="utf-8") == PAGE


def test_batch_update_needs_operations(updater, write_view):
    path = write_view("home.html", PAGE)
    with pytest.raises(ContentNotFoundError):
        updater.batch_update(path, [])


def test_unknown_strategy(updater, write_view):
    path = write_view("home.html", PAGE)
    with pytest.raises(UnknownStrategyError):
        updater.update_content(path, "Old", "New", {"strategy": "yaml"})
    assert path.read_text(encoding="utf-8") == PAGE
    assert not updater.is_locked(path)


def test_forced_strategy(updater, write_view):
    path = write_view("home.html", '<p class="Old">Old</p>')
    result = updater.update_content(path, "Old", "New", {"strategy": "text"})
    assert path.read_text(encoding="utf-8") == '<p class="New">New</p>'
    assert result.strategies == ["text"]


def test_path_outside_allowed_directories(updater, tmp_path):
    outside = tmp_path / "outside.html"
    outside.write_text(PAGE, encoding="utf-8")
    with pytest.raises(PathNotAllowedError):
        updater.update_content(outside, "Old", "New")

    with pytest.raises(PathNotAllowedError):
        updater.update_content(tmp_path / "views" / ".." / "outside.html", "Old", "New")
    assert outside.read_text(encoding="utf-8") == PAGE


def test_missing_file(updater, views_dir):
    with pytest.raises(FileAccessError):
        updater.update_content(views_dir / "missing.html", "a", "b")


def test_nothing_to_replace(updater, write_view):
    path = write_view("home.html", PAGE)
    with pytest.raises(ContentNotFoundError):
        updater.update_content(path, "Not there", "x")
    assert path.read_text(encoding="utf-8") == PAGE


def test_validation_failure_rolls_back(updater, write_view):
    path = write_view("box.html", "<div>Body</div>")
    with pytest.raises(ValidationError) as excinfo:
        updater.update_content(path, "</div>", "")
    assert excinfo.value.errors == ["Line 1: Unclosed tag <div>"]
    assert path.read_text(encoding="utf-8") == "<div>Body</div>"
    assert not updater.is_locked(path)


def test_lock_contention_from_nested_update(updater, write_view):
    path = write_view("home.html", PAGE)
    updater.register_strategy("reentrant", ReentrantHandler(updater, path), priority=100)

    with pytest.raises(LockContentionError):
        updater.update_content(path, "Old", "New")

    assert path.read_text(encoding="utf-8") == PAGE
    assert not updater.is_locked(path)


def test_explicit_lock_blocks_updates(updater, write_view):
    path = write_view("home.html", PAGE)
    updater.lock(path)
    assert updater.is_locked(path)
    with pytest.raises(LockContentionError):
        updater.update_content(path, "Old", "New")

    updater.unlock(path)
    assert not updater.is_locked(path)
    updater.update_content(path, "Old", "New")


def test_lock_file_from_another_process(updater, write_view):
    path = write_view("home.html", PAGE)
    lock_path = updater.locks.lock_path(updater.check_allowed(path))
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock_path.write_text("{}", encoding="utf-8")

    with pytest.raises(LockContentionError):
        updater.update_content(path, "Old", "New")
    assert lock_path.exists()


def test_stale_lock_is_reclaimed(updater, write_view):
    path = write_view("home.html", PAGE)
    lock_path = updater.locks.lock_path(updater.check_allowed(path))
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock_path.write_text("{}", encoding="utf-8")
    stale = time.time() - 3600
    os.utime(lock_path, (stale, stale))

    updater.update_content(path, "Old", "New")
    assert "New text" in path.read_text(encoding="utf-8")
    assert not lock_path.exists()


def test_atomic_write_verification_failure_leaves_file_untouched(make_context, views_dir, write_view):
    updater = FileUpdater(make_context(storage=CorruptingStorage()))
    path = write_view("home.html", PAGE)

    with pytest.raises(AtomicWriteVerificationError):
        updater.update_content(path, "Old", "New")

    assert path.read_text(encoding="utf-8") == PAGE
    assert sorted(p.name for p in views_dir.iterdir()) == ["home.html"]
    assert not updater.is_locked(path)


def test_update_without_auto_backup(make_context, write_view):
    updater = FileUpdater(make_context(overrides={"updater": {"auto_backup": False}}))
    path = write_view("home.html", PAGE)
    result = updater.update_content(path, "Old", "New")
    assert result.backup_id is None
    assert "backed_up" not in result.states
    assert updater.history(path) == []


def test_restore_backup(updater, write_view):
    path = write_view("home.html", PAGE)
    result = updater.update_content(path, "Old", "New")

    record = updater.restore(path, result.backup_id)
    assert record.id == result.backup_id
    assert path.read_text(encoding="utf-8") == PAGE
    assert len(updater.history(path)) == 2


def test_restore_recreates_deleted_file(updater, write_view):
    path = write_view("home.html", PAGE)
    record = updater.create_backup(path)
    path.unlink()

    updater.restore(path, record.id)
    assert path.read_text(encoding="utf-8") == PAGE


def test_restore_refuses_corrupted_backup(updater, write_view):
    path = write_view("home.html", PAGE)
    result = updater.update_content(path, "Old", "New")
    current = path.read_bytes()

    record = updater.backups.get(result.backup_id)
    with open(record.backup_path, "wb") as f:
        f.write(b"tampered")

    with pytest.raises(BackupCorruptedError):
        updater.restore(path, result.backup_id)
    assert path.read_bytes() == current


def test_restore_unknown_or_foreign_backup(updater, write_view):
    home = write_view("home.html", PAGE)
    about = write_view("about.html", PAGE)
    record = updater.create_backup(about)

    with pytest.raises(BackupNotFoundError):
        updater.restore(home, "backup_does_not_exist")
    with pytest.raises(BackupNotFoundError):
        updater.restore(home, record.id)


def test_diff_against_backup(updater, write_view):
    path = write_view("home.html", PAGE)
    result = updater.update_content(path, "Old text", "New text")

    diff = updater.diff(path, result.backup_id)
    assert diff.has_changes
    assert diff.modified == [{"line": 2, "old": "<p>Old text</p>", "new": "<p>New text</p>"}]
    assert diff.summary == {"added": 0, "removed": 0, "modified": 1, "unchanged": 1}
    assert "-<p>Old text</p>" in diff.unified
    assert "+<p>New text</p>" in diff.unified


def test_history_is_newest_first(updater, write_view):
    path = write_view("home.html", PAGE)
    first = updater.create_backup(path)
    second = updater.create_backup(path)
    assert [r.id for r in updater.history(path)] == [second.id, first.id]


def test_cleanup_backups(updater, write_view):
    path = write_view("home.html", PAGE)
    record = updater.create_backup(path)

    assert updater.cleanup_backups() == 0
    assert updater.cleanup_backups(max_age_days=0) == 1
    assert updater.history(path) == []
    assert not os.path.exists(record.backup_path)


def test_unreadable_backup_index_is_set_aside(updater, write_view):
    path = write_view("home.html", PAGE)
    updater.create_backup(path)
    index_path = updater.backups.index_path
    index_path.write_text("{not json", encoding="utf-8")

    record = updater.create_backup(path)
    assert [r.id for r in updater.history(path)] == [record.id]

    aside = list(index_path.parent.glob("index.json.corrupt.*"))
    assert len(aside) == 1
    assert aside[0].read_text(encoding="utf-8") == "{not json"


def test_backup_index_is_written_atomically(make_context, write_view):
    path = write_view("home.html", PAGE)
    first = FileUpdater(make_context())
    first.create_backup(path)
    index_path = first.backups.index_path
    before = index_path.read_bytes()

    with pytest.raises(AtomicWriteVerificationError):
        FileUpdater(make_context(storage=IndexCorruptingStorage())).create_backup(path)

    assert index_path.read_bytes() == before
    assert list(index_path.parent.glob("index.json.tmp.*")) == []


def test_blade_update_keeps_echoes_intact_on_disk(updater, write_view):
    path = write_view("score.blade.php", "<p>{{ $a }} and {{ $b }}: 1</p>\n")
    result = updater.update_content(path, "1", "2")

    assert result.strategies == ["template"]
    assert path.read_text(encoding="utf-8") == "<p>{{ $a }} and {{ $b }}: 2</p>\n"


def test_update_region(updater, write_view):
    path = write_view("home.blade.php", "@cmseditable('hero')<h1>Old</h1>@endcmseditable\n<p>{{ $body }}</p>\n")
    updater.update_region(path, "hero", "<h1>New</h1>")
    assert path.read_text(encoding="utf-8") == "@cmseditable('hero')<h1>New</h1>@endcmseditable\n<p>{{ $body }}</p>\n"

    with pytest.raises(ContentNotFoundError):
        updater.update_region(path, "footer", "x")


def test_update_file(updater, write_view):
    path = write_view("home.html", PAGE)
    with pytest.raises(ContentNotFoundError):
        updater.update_file(path, PAGE)

    result = updater.update_file(path, "<p>Fresh</p>\n")
    assert path.read_text(encoding="utf-8") == "<p>Fresh</p>\n"
    assert result.strategies == ["full"]
