"""REST API surface for the reference code services.

Keep this module import-light: importing the FastAPI app loads `.env` and
configures logging, which library and CLI callers do not need.
"""

from __future__ import annotations


def __getattr__(name: str):
    if name == "app":
        from .fastapi_app import app

        return app
    raise AttributeError(name)
