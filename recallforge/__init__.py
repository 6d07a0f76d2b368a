"""RecallForge - Forgetting-curve spaced repetition scheduler.

This package schedules reviews for language-learning content with an
SM-2 based engine, exposed through a FastAPI service and a typer CLI.
"""

__version__ = "1.0.0"
__all__ = ["__version__"]
