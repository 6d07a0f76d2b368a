"""RecallForge REST API.

Exposes the review scheduling service over HTTP.
"""

from recallforge.api.main import create_app, run_server

__all__ = ["create_app", "run_server"]
