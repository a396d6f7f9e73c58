"""Domain modules for the Discord Claude relay."""
