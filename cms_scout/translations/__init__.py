"""Locale-keyed translation files."""
