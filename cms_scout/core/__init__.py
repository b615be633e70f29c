"""Core utilities: configuration, shared context, collaborators and errors."""
