"""Core infrastructure: settings, logging, errors, container and lifecycle."""
