"""
ASGI application entrypoint.

Run with: uvicorn contribution_review.api_server.app:app --host 0.0.0.0 --port 8000
"""

from contribution_review.api_server.server import app

__all__ = ["app"]
