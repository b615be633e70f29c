"""
Template file update tools.

Provides tools for safe, backed-up edits of template files:
- update_template_content: Replace text (literal or regex)
- update_template_line: Replace one line
- update_template_selector: Replace an element, directive, section or component
- update_template_attribute: Set or remove an attribute
- create_template_backup / restore_template_backup: Manual backups
- diff_template_backup: Compare a file with one of its backups
- template_history: List a file's backups

Every update locks the file, backs it up, validates the result and writes it
atomically; on failure the file is rolled back and the error reported.
"""

import logging
from typing import Optional

from cms_scout.core.config import get_file_updater
from cms_scout.core.errors import CmsScoutError
from cms_scout.updater.models import UpdateResult

# Import MCP instance from server
from server import mcp

logger = logging.getLogger(__name__)

MAX_DIFF_LINES = 200


def format_update_result(result: UpdateResult, action: str) -> str:
    output = [f"✅ {action}: {result.file}"]
    if result.strategies:
        output.append(f"   Strategy: {', '.join(result.strategies)}")
    if result.backup_id:
        output.append(f"   Backup: {result.backup_id}")
    for warning in result.warnings:
        output.append(f"   ⚠️  {warning}")
    if result.backup_id:
        output.append("")
        output.append(f"💡 Undo with restore_template_backup(file_path, \"{result.backup_id}\")")
    return "\n".join(output)


def _error(e: CmsScoutError) -> str:
    message = f"❌ ERROR: {e.kind}: {e}"
    errors = getattr(e, "errors", None)
    if errors:
        message += "\n" + "\n".join(f"   • {error}" for error in errors)
    return message


@mcp.tool()
def update_template_content(
    file_path: str,
    old: str,
    new: str,
    regex: bool = False,
    case_sensitive: bool = True,
    limit: Optional[int] = None,
    strategy: Optional[str] = None,
) -> str:
    """
    Replace text in a template file.

    Blade echoes, comments and directives are left alone unless old itself
    contains one.

    Args:
        file_path: Template to edit
        old: Text to find (a Python regular expression when regex is set)
        new: Replacement text
        regex: Treat old as a regular expression
        case_sensitive: Match case (default: True)
        limit: Maximum number of replacements (default: all)
        strategy: Force a strategy: template, dom or text

    Returns:
        Success summary with backup id, or the error
    """
    context = {"regex": regex, "case_sensitive": case_sensitive}
    if limit:
        context["limit"] = limit
    if strategy:
        context["strategy"] = strategy

    logger.info(f"Updating content in {file_path}")
    try:
        result = get_file_updater().update_content(file_path, old, new, context)
    except CmsScoutError as e:
        return _error(e)
    return format_update_result(result, "Content updated")


@mcp.tool()
def update_template_line(file_path: str, line_number: int, new: str) -> str:
    """
    Replace one line (1-based) of a template file, keeping its line ending.

    Args:
        file_path: Template to edit
        line_number: Line to replace
        new: New line content (without line ending)

    Returns:
        Success summary with backup id, or the error
    """
    logger.info(f"Updating line {line_number} in {file_path}")
    try:
        result = get_file_updater().update_by_line_number(file_path, line_number, new)
    except CmsScoutError as e:
        return _error(e)
    return format_update_result(result, f"Line {line_number} updated")


@mcp.tool()
def update_template_selector(file_path: str, selector: str, new: str, mode: str = "text") -> str:
    """
    Replace content addressed by a selector.

    Selectors:
        CSS selector or absolute XPath (/html/body/div[2]/p) - HTML elements
        @name - every @name(...) directive
        {{ $expr }} - a literal echo
        section:name - body of @section('name') ... @endsection
        x-name - a <x-name> component

    Args:
        file_path: Template to edit
        selector: What to replace
        new: Replacement
        mode: For HTML elements - text (escaped inner content), html (inner markup)
              or replace (whole element)

    Returns:
        Success summary with backup id, or the error
    """
    logger.info(f"Updating selector {selector!r} in {file_path}")
    try:
        result = get_file_updater().update_by_selector(file_path, selector, new, {"mode": mode})
    except CmsScoutError as e:
        return _error(e)
    return format_update_result(result, "Selector updated")


@mcp.tool()
def update_template_attribute(file_path: str, selector: str, attribute: str, value: str = "") -> str:
    """
    Set an attribute on the elements (or x- components) matching selector.

    An empty value removes the attribute.

    Args:
        file_path: Template to edit
        selector: CSS selector, absolute XPath or x-component name
        attribute: Attribute name
        value: New value ("" to remove)

    Returns:
        Success summary with backup id, or the error
    """
    logger.info(f"Updating attribute {attribute} on {selector!r} in {file_path}")
    try:
        result = get_file_updater().update_attribute(file_path, selector, attribute, value)
    except CmsScoutError as e:
        return _error(e)
    return format_update_result(result, "Attribute updated" if value else "Attribute removed")


@mcp.tool()
def create_template_backup(file_path: str) -> str:
    """
    Back up a template file.

    Args:
        file_path: File to back up

    Returns:
        Backup id and checksum
    """
    try:
        record = get_file_updater().create_backup(file_path)
    except CmsScoutError as e:
        return _error(e)
    return (
        f"✅ Backup created: {record.id}\n"
        f"   File: {record.original_file}\n"
        f"   Size: {record.size} bytes\n"
        f"   SHA-256: {record.checksum}"
    )


@mcp.tool()
def restore_template_backup(file_path: str, backup_id: str) -> str:
    """
    Restore a template file from a backup.

    The backup's checksum is verified first; a corrupted backup is never
    written.

    Args:
        file_path: File the backup was taken from
        backup_id: Id from create_template_backup or template_history

    Returns:
        Confirmation, or the error
    """
    logger.info(f"Restoring {file_path} from {backup_id}")
    try:
        record = get_file_updater().restore(file_path, backup_id)
    except CmsScoutError as e:
        return _error(e)
    return f"✅ Restored {record.original_file} from {record.id} (taken {record.created_at})"


@mcp.tool()
def diff_template_backup(file_path: str, backup_id: str) -> str:
    """
    Compare a backup (old) with the current file (new).

    Args:
        file_path: Live file
        backup_id: Backup to compare against

    Returns:
        Change counts plus a unified diff
    """
    try:
        diff = get_file_updater().diff(file_path, backup_id)
    except CmsScoutError as e:
        return _error(e)

    if not diff.has_changes:
        return f"✅ {file_path} is identical to {backup_id}"

    summary = diff.summary
    output = [
        f"📊 Changes since {backup_id}:",
        f"   Added: {summary['added']}  Removed: {summary['removed']}  "
        f"Modified: {summary['modified']}  Unchanged: {summary['unchanged']}",
        "",
    ]
    lines = diff.unified.splitlines()
    output.extend(lines[:MAX_DIFF_LINES])
    if len(lines) > MAX_DIFF_LINES:
        output.append(f"... {len(lines) - MAX_DIFF_LINES} more diff line(s)")
    return "\n".join(output)


@mcp.tool()
def template_history(file_path: str, limit: int = 20) -> str:
    """
    List a template file's backups, newest first.

    Args:
        file_path: File to list backups for
        limit: Maximum number of backups to show (default: 20)

    Returns:
        Backup ids with timestamps and sizes
    """
    try:
        records = get_file_updater().history(file_path)
    except CmsScoutError as e:
        return _error(e)

    if not records:
        return f"ℹ️ No backups found for {file_path}"

    output = [f"🗂️  {len(records)} backup(s) for {file_path}:", ""]
    for record in records[:limit]:
        output.append(f"• {record.id}")
        output.append(f"  Created: {record.created_at}  Size: {record.size} bytes")
    if len(records) > limit:
        output.append(f"... and {len(records) - limit} more")
    return "\n".join(output)
