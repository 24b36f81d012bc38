"""Command-line interface for sockonsole."""
