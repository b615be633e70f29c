#!/usr/bin/env python3
"""
CMS Scout MCP Server

A Model Context Protocol server for finding editable content in rendered
pages and writing changes back to templates and translation files safely.
"""

import json
import logging
import sys

from fastmcp import FastMCP

# Core utilities
from cms_scout.core.config import get_config, get_file_updater, get_scanner, get_translation_store

# Configure logging
logging.basicConfig(level=getattr(logging, str(get_config()["logging"].get("level", "INFO")).upper(), logging.INFO))
logger = logging.getLogger(__name__)

# Initialize FastMCP server
mcp = FastMCP("CMS Scout")

# When running as __main__, tool modules import from 'server'
# so 'server' must point at __main__ to share the mcp instance
if __name__ == "__main__":
    sys.modules["server"] = sys.modules["__main__"]

# Import tool modules to register @mcp.tool() decorated functions
# IMPORTANT: Must import AFTER mcp instance is created (above)
import cms_scout.tools.scanning  # noqa: E402, F401
import cms_scout.tools.files  # noqa: E402, F401
import cms_scout.tools.translations  # noqa: E402, F401


@mcp.tool()
def scout_status() -> str:
    """
    Show CMS Scout's configuration and scan statistics.

    Returns:
        JSON with scanner statistics, updater directories and translation locales
    """
    config = get_config()
    updater = get_file_updater()
    store = get_translation_store()

    status = {
        "scanner": get_scanner().get_scan_statistics(),
        "updater": {
            "backup_directory": str(updater.backups.backup_directory),
            "lock_directory": str(updater.locks.lock_directory),
            "allowed_directories": [str(d) for d in updater.allowed_directories],
            "strategies": updater.chain.names(),
        },
        "translations": {
            "path": str(store.translations_path),
            "default_locale": store.default_locale,
            "current_locale": store.get_locale(),
            "supported_locales": store.available_locales(),
        },
        "logging": config.get("logging", {}),
    }
    return json.dumps(status, indent=2, default=str)


@mcp.tool()
def cleanup_template_backups(max_age_days: int = 0) -> str:
    """
    Delete template backups older than max_age_days.

    Args:
        max_age_days: Age limit in days (0 = use updater.max_backup_age_days)

    Returns:
        How many backups were removed
    """
    removed = get_file_updater().cleanup_backups(max_age_days or None)
    return f"🧹 Removed {removed} backup(s)"


def main():
    """Main entry point for the MCP server."""
    logger.info("🚀 Starting CMS Scout MCP Server...")
    mcp.run()


if __name__ == "__main__":
    main()
