"""ASGI entrypoint for the to-do API (``uvicorn todoapp.main:app``)."""

from .core.app_factory import create_application

app = create_application()

__all__ = ("app",)
