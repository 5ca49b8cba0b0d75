"""Events blueprint: events and their sections."""

from flask import Blueprint

bp = Blueprint("events", __name__)

from . import routes  # noqa: E402, F401
from .services import EventService, SectionService  # noqa: E402

__all__ = ["EventService", "SectionService", "routes"]
