"""
HTTP API for the delivery orders backbone.

This package provides a single FastAPI application that exposes:
- The live order updates stream (Server-Sent Events)
- Order commands and queries
- Catalog and delivery fee endpoints
"""

from api.main import app

__all__ = ["app"]
