"""Data models for content scanning."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from bs4 import Tag


class ContentType(str, Enum):
    """What kind of editable content an element carries."""

    IMAGE = "image"
    LINK = "link"
    VIDEO = "video"
    AUDIO = "audio"
    EMBED = "embed"
    LIVEWIRE_COMPONENT = "livewire_component"
    ALPINE_COMPONENT = "alpine_component"
    VUE_COMPONENT = "vue_component"
    CONTAINER = "container"
    TRANSLATION = "translation"
    DYNAMIC_CONTENT = "dynamic_content"
    RICH_TEXT = "rich_text"
    PLAIN_TEXT = "plain_text"
    TEXT = "text"


# Source mapping confidence levels, highest wins
CONFIDENCE_DATA_ATTRIBUTE = 90
CONFIDENCE_COMPONENT_ANALYSIS = 70
CONFIDENCE_HEURISTIC = 30
CONFIDENCE_NONE = 0


@dataclass(frozen=True)
class SourceMapping:
    """Where an element most likely came from in the template sources."""

    file: Optional[str] = None
    line: Optional[int] = None
    component: Optional[str] = None
    method: str = "none"  # data_attribute, component_analysis, heuristic, none
    confidence: int = CONFIDENCE_NONE
    context: Dict[str, Any] = field(default_factory=dict)

    @property
    def found(self) -> bool:
        return self.file is not None and self.confidence > CONFIDENCE_NONE


@dataclass
class CandidateElement:
    """A DOM node selected by the classifier (structural match)."""

    node: Tag
    selector_group: str
    kind: str = "dom-element"


@dataclass(frozen=True)
class ComponentRef:
    """A framework component or directive found by pattern matching."""

    type: str  # class_based, anonymous, include, tag, directive, wire_method, alpine, vue, vue_component
    name: str
    framework: str  # blade, livewire, javascript
    offset: int
    line_number: int
    raw: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    slot_content: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    kind: str = "pattern"


@dataclass(frozen=True)
class TranslationKeyRef:
    """A translation call site found by pattern matching."""

    key: str
    pattern_type: str
    line_number: int
    offset: int
    context: str
    raw: str
    namespace: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    locales_available: Dict[str, bool] = field(default_factory=dict)
    kind: str = "pattern"


@dataclass(frozen=True)
class AssetRef:
    """An asset reference found by pattern matching."""

    type: str  # asset_helper, storage_url, image_src, css_link, js_script
    url: str
    asset_type: str
    is_external: bool
    offset: int
    line_number: int
    raw: str
    kind: str = "pattern"


@dataclass(frozen=True)
class ElementMetadata:
    """Everything the editor needs to know about one editable element."""

    id: str
    tag_name: str
    content_type: ContentType
    text_content: str
    inner_html: str
    attributes: Dict[str, str]
    xpath: str
    css_selector: str
    position: Dict[str, Any]
    source_mapping: SourceMapping
    edit_permissions: Dict[str, Any]
    validation_rules: Dict[str, Any]
    created_at: str
    parent_info: Dict[str, Any] = field(default_factory=dict)
    children_count: int = 0
    cache_key: str = ""
    selector_group: str = ""
    link: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["content_type"] = self.content_type.value
        return data


@dataclass(frozen=True)
class ScanResult:
    """Immutable outcome of one scan."""

    elements: Tuple[ElementMetadata, ...] = ()
    translation_keys: Tuple[TranslationKeyRef, ...] = ()
    components: Dict[str, Tuple[ComponentRef, ...]] = field(default_factory=dict)
    assets: Tuple[AssetRef, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)
    warnings: Tuple[str, ...] = ()

    def element_by_id(self, element_id: str) -> Optional[ElementMetadata]:
        for element in self.elements:
            if element.id == element_id:
                return element
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "elements": [e.to_dict() for e in self.elements],
            "translation_keys": [asdict(k) for k in self.translation_keys],
            "components": {
                framework: [asdict(c) for c in refs] for framework, refs in self.components.items()
            },
            "assets": [asdict(a) for a in self.assets],
            "metadata": dict(self.metadata),
            "warnings": list(self.warnings),
        }


@dataclass
class ScanDiff:
    """Element-level difference between two scans, matched by element id."""

    type: str  # differential or full_scan
    added: List[ElementMetadata] = field(default_factory=list)
    modified: List[Dict[str, Any]] = field(default_factory=list)
    removed: List[ElementMetadata] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.modified or self.removed)

    @property
    def summary(self) -> Dict[str, int]:
        return {
            "added": len(self.added),
            "modified": len(self.modified),
            "removed": len(self.removed),
            "unchanged": len(self.unchanged),
        }
