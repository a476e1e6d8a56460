"""Provider ports."""
