"""Registrations blueprint."""

from flask import Blueprint

bp = Blueprint("registrations", __name__)

from . import routes  # noqa: E402, F401
from .models import Registrant, RegistrationRecord  # noqa: E402
from .services import RegistrationService  # noqa: E402

__all__ = ["Registrant", "RegistrationRecord", "RegistrationService", "routes"]
