"""
Core utilities: shared exceptions and cross-cutting concerns.

Provides the domain exception hierarchy used by the raid engine, the stores
and the API server.
"""
