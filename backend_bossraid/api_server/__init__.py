"""HTTP API: FastAPI app factory, routers and the write guard."""
