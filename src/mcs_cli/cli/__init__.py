"""Command-line interface for mcs."""
