"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from deepsearch.api import app

    uvicorn deepsearch.api:app --reload
"""

from deepsearch.api.app import app, create_app

__all__ = ["app", "create_app"]
