"""
CMS Scout - find editable content in rendered pages and write it back safely.

Packages:
- core: configuration, shared context, collaborators, error taxonomy
- scanner: HTML parsing, element classification, pattern detection, source mapping
- updater: transactional, backed-up template updates
- translations: locale-keyed translation store
- tools: MCP tool functions registered by server.py
"""

__version__ = "0.4.0"
