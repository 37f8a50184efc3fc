"""Subcommands of the tpsmeter CLI."""
