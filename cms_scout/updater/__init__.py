"""Transactional template file updates with backup and rollback."""
