"""Core modules for Reelhub: errors and logging."""
