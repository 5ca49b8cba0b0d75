"""The users blueprint."""

from flask import Blueprint

bp = Blueprint("users", __name__, url_prefix="/users")

from . import routes  # noqa: E402, F401
from .services import UserService  # noqa: E402

__all__ = ["UserService", "routes"]
