"""Command line interface for greenlens."""
