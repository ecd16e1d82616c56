"""Command line interface for running the hook by hand."""
