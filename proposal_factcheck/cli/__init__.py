"""Command-line interface for proposal evaluation."""
