"""Subcommands registered on the ``sockonsole`` command group."""
