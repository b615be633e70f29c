"""Data models for template file updates."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from cms_scout.core.errors import UnknownOperationTypeError

OPERATION_TYPES = ("content", "line", "selector", "attribute")


@dataclass
class UpdateOperation:
    """One mutation of a file's content."""

    type: str  # content, line, selector, attribute
    old: Optional[str] = None
    new: Optional[str] = None
    line: Optional[int] = None
    selector: Optional[str] = None
    attribute: Optional[str] = None
    value: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.type not in OPERATION_TYPES:
            raise UnknownOperationTypeError(
                f"Unknown update type '{self.type}', expected one of: {', '.join(OPERATION_TYPES)}"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UpdateOperation":
        """
        Build an operation from a plain dict.

        Accepts the field names above plus the aliases old_content /
        new_content, line_number and content (for new).
        """
        return cls(
            type=data.get("type", ""),
            old=data.get("old", data.get("old_content")),
            new=data.get("new", data.get("new_content", data.get("content"))),
            line=data.get("line", data.get("line_number")),
            selector=data.get("selector"),
            attribute=data.get("attribute"),
            value=data.get("value"),
            context=dict(data.get("context") or {}),
        )

    def describe(self) -> str:
        if self.type == "content":
            return f"content replace ({len(self.old or '')} -> {len(self.new or '')} chars)"
        if self.type == "line":
            return f"line {self.line}"
        if self.type == "selector":
            return f"selector {self.selector!r}"
        return f"attribute {self.attribute!r} on {self.selector!r}"


@dataclass
class ValidationResult:
    """Outcome of validating updated content."""

    valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def from_lists(cls, errors: List[str], warnings: Optional[List[str]] = None) -> "ValidationResult":
        return cls(valid=not errors, errors=list(errors), warnings=list(warnings or []))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FileDiff:
    """Line-by-line comparison of a backup (old) against the live file (new)."""

    file: str
    backup_id: str
    added: List[Dict[str, Any]] = field(default_factory=list)
    removed: List[Dict[str, Any]] = field(default_factory=list)
    modified: List[Dict[str, Any]] = field(default_factory=list)
    unchanged: List[Dict[str, Any]] = field(default_factory=list)
    unified: str = ""

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.modified)

    @property
    def summary(self) -> Dict[str, int]:
        return {
            "added": len(self.added),
            "removed": len(self.removed),
            "modified": len(self.modified),
            "unchanged": len(self.unchanged),
        }


@dataclass(frozen=True)
class BackupRecord:
    """Index entry for one immutable backup copy."""

    id: str
    original_file: str
    backup_path: str
    created_at: str
    size: int
    checksum: str  # sha256 of the backed-up bytes

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, backup_id: str, data: Dict[str, Any]) -> "BackupRecord":
        return cls(
            id=backup_id,
            original_file=data["original_file"],
            backup_path=data["backup_path"],
            created_at=data["created_at"],
            size=int(data.get("size", 0)),
            checksum=data["checksum"],
        )


@dataclass
class UpdateResult:
    """What a committed update did."""

    file: str
    backup_id: Optional[str] = None
    strategies: List[str] = field(default_factory=list)
    operations: int = 0
    warnings: List[str] = field(default_factory=list)
    states: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
