"""Core infrastructure: configuration, logging, database, progress."""
