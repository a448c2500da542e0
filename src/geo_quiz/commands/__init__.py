"""Subcommand implementations for the ``geo-quiz`` CLI."""
