"""
Update strategy chain.

Entries are ordered by descending priority; the first entry whose predicate
accepts the content handles the operation. context["strategy"] forces an
entry by name.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from cms_scout.core.errors import UnknownStrategyError
from cms_scout.updater.dom import DomHandler
from cms_scout.updater.models import UpdateOperation
from cms_scout.updater.template import TemplateHandler
from cms_scout.updater.text import TextHandler

Predicate = Callable[[str, Dict[str, Any]], bool]


@dataclass
class StrategyEntry:
    name: str
    priority: int
    predicate: Predicate
    handler: Any  # update_content/update_by_line/update_by_selector/update_attribute/validate


class StrategyChain:
    """Ordered (name, priority, predicate, handler) entries."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._entries: List[StrategyEntry] = []

    def register(self, name: str, handler, priority: int = 50, predicate: Optional[Predicate] = None) -> None:
        """Add (or replace) a named entry. predicate defaults to handler.can_handle."""
        predicate = predicate or handler.can_handle
        self._entries = [entry for entry in self._entries if entry.name != name]
        self._entries.append(StrategyEntry(name, priority, predicate, handler))
        # Stable sort keeps registration order between equal priorities
        self._entries.sort(key=lambda entry: entry.priority, reverse=True)
        self.logger.debug(f"Registered update strategy '{name}' (priority {priority})")

    @property
    def entries(self) -> List[StrategyEntry]:
        return list(self._entries)

    def names(self) -> List[str]:
        return [entry.name for entry in self._entries]

    def select(self, content: str, context: Dict[str, Any]) -> StrategyEntry:
        forced = context.get("strategy")
        if forced:
            for entry in self._entries:
                if entry.name == forced:
                    return entry
            raise UnknownStrategyError(
                f"Unknown update strategy '{forced}', available: {', '.join(self.names())}"
            )

        for entry in self._entries:
            if entry.predicate(content, context):
                return entry
        raise UnknownStrategyError("No update strategy accepts this content")


def default_chain(logger: Optional[logging.Logger] = None) -> StrategyChain:
    """template (90), dom (70), text (10)."""
    dom = DomHandler(logger)
    chain = StrategyChain(logger)
    chain.register("template", TemplateHandler(dom, logger), priority=90)
    chain.register("dom", dom, priority=70)
    chain.register("text", TextHandler(), priority=10)
    return chain


def apply_operation(handler, content: str, operation: UpdateOperation, context: Dict[str, Any]) -> str:
    """Run one operation through a handler and return the new content."""
    if operation.type == "content":
        return handler.update_content(content, operation.old or "", operation.new or "", context)
    if operation.type == "line":
        return handler.update_by_line(content, operation.line, operation.new or "", context)
    if operation.type == "selector":
        return handler.update_by_selector(content, operation.selector or "", operation.new or "", context)
    return handler.update_attribute(content, operation.selector or "", operation.attribute or "", operation.value, context)
