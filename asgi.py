"""
asgi.py -- ASGI entry point for Priorly.

Run with:  uvicorn asgi:app --reload
           python main.py serve

The FastAPI app lives in api/main.py; this module only re-exports it so the
server command does not depend on the package layout.
"""

from api.main import app

__all__ = ["app"]
