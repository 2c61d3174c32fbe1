"""
FastAPI/ASGI application entrypoint.

Build and configure the ASGI app from environment settings.
Run with: uvicorn backend_bossraid.api_server.app:app --host 0.0.0.0 --port 8000
"""

from backend_bossraid.api_server.server import create_app

app = create_app()

__all__ = ["app"]
