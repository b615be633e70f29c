"""Rendered-page scanning: parsing, classification, detection, source mapping and markers."""
