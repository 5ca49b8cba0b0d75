"""The families blueprint."""

from flask import Blueprint

bp = Blueprint("families", __name__, url_prefix="/families")

from . import routes  # noqa: E402, F401
from .services import FamilyService  # noqa: E402

__all__ = ["FamilyService", "routes"]
