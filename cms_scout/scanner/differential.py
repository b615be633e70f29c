"""
Scan cache keys and differential comparison of scan results.

Elements are matched across scans by their stable id. An element counts as
modified when any of COMPARE_FIELDS differs; attributes are compared in their
serialized (ordered) form.
"""

import hashlib
import json
from typing import Any, Dict, Optional

from cms_scout.scanner.models import ElementMetadata, ScanDiff, ScanResult

CACHE_PREFIX = "cms_scanner"

COMPARE_FIELDS = ["text_content", "inner_html", "attributes", "content_type"]

# Options that change how a scan runs but not what it returns
NON_RESULT_OPTIONS = {"force_refresh"}


def _md5(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def hash_options(options: Optional[Dict[str, Any]]) -> str:
    relevant = {k: v for k, v in (options or {}).items() if k not in NON_RESULT_OPTIONS}
    return _md5(json.dumps(relevant, sort_keys=True, default=str))


def generate_cache_key(scan_type: str, content: str, options: Optional[Dict[str, Any]] = None) -> str:
    """cms_scanner_{scan_type}_{md5(content)}_{md5(options)}"""
    return f"{CACHE_PREFIX}_{scan_type}_{_md5(content)}_{hash_options(options)}"


def _field_value(element: ElementMetadata, field_name: str):
    value = getattr(element, field_name)
    if field_name == "attributes":
        return json.dumps(value)
    if field_name == "content_type":
        return value.value
    return value


def element_changes(current: ElementMetadata, previous: ElementMetadata) -> Dict[str, Dict[str, Any]]:
    """Field-level changes as {field: {"from": old, "to": new}}."""
    changes = {}
    for field_name in COMPARE_FIELDS:
        old = _field_value(previous, field_name)
        new = _field_value(current, field_name)
        if old != new:
            if field_name == "attributes":
                old, new = previous.attributes, current.attributes
            changes[field_name] = {"from": old, "to": new}
    return changes


def compute_diff(current: ScanResult, previous: Optional[ScanResult]) -> ScanDiff:
    """
    Compare two scans.

    With no previous scan everything is "added" and the diff type is
    full_scan; this never raises.
    """
    if previous is None:
        return ScanDiff(type="full_scan", added=list(current.elements))

    previous_by_id = {e.id: e for e in previous.elements}
    current_ids = set()
    diff = ScanDiff(type="differential")

    for element in current.elements:
        current_ids.add(element.id)
        old = previous_by_id.get(element.id)
        if old is None:
            diff.added.append(element)
            continue
        changes = element_changes(element, old)
        if changes:
            diff.modified.append({"id": element.id, "element": element, "changes": changes})
        else:
            diff.unchanged.append(element.id)

    diff.removed = [e for e in previous.elements if e.id not in current_ids]
    return diff
