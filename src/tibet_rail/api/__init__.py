"""
TIBET RAIL - API Module

FastAPI server over the token store, verifier and consent manager.
"""

from .server import app, create_app

__all__ = ["app", "create_app"]
