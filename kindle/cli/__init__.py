"""Command-line interface for kindle."""
