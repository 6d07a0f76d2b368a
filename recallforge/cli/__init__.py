"""RecallForge command line interface."""

from recallforge.cli.main import app, cli_main

__all__ = ["app", "cli_main"]
