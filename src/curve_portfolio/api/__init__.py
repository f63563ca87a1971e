"""HTTP API package exports."""

from .app import create_app
from .state import ApiState

__all__ = ["ApiState", "create_app"]
