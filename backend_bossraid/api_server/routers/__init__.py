"""API routers mounted under /api."""
