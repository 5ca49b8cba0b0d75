"""Routes for the registrations blueprint."""

from __future__ import annotations

from typing import Any

from flask import jsonify, request

from eventreg.db import get_db

from . import bp
from .services import RegistrationService


@bp.route("/sections/<string:section_id>/registrations", methods=["POST"])
def register(section_id: str) -> Any:
    """Register for a section."""
    db = get_db()
    registration = RegistrationService.register(
        db, section_id, request.get_json(silent=True)
    )
    RegistrationService.send_confirmation(db, registration)
    return jsonify({"success": True, "data": registration}), 201


@bp.route("/sections/<string:section_id>/registrations", methods=["GET"])
def list_registrations(section_id: str) -> Any:
    """List a section's registrations."""
    registrations = RegistrationService.list_registrations(get_db(), section_id)
    return jsonify(
        {"success": True, "count": len(registrations), "data": registrations}
    )


@bp.route("/users/<string:user_id>/registrations", methods=["GET"])
def list_user_registrations(user_id: str) -> Any:
    """List the registrations a user made."""
    registrations = RegistrationService.list_for_user(get_db(), user_id)
    return jsonify(
        {"success": True, "count": len(registrations), "data": registrations}
    )


@bp.route("/registrations/<string:registration_id>", methods=["GET"])
def get_registration(registration_id: str) -> Any:
    """Fetch a registration."""
    return jsonify(
        {
            "success": True,
            "data": RegistrationService.get_registration(get_db(), registration_id),
        }
    )


@bp.route("/registrations/<string:registration_id>", methods=["PUT", "PATCH"])
def update_registration(registration_id: str) -> Any:
    """Change a registration's status or details."""
    registration = RegistrationService.update_registration(
        get_db(), registration_id, request.get_json(silent=True)
    )
    return jsonify({"success": True, "data": registration})


@bp.route("/registrations/<string:registration_id>", methods=["DELETE"])
def delete_registration(registration_id: str) -> Any:
    """Delete a registration."""
    RegistrationService.delete_registration(get_db(), registration_id)
    return jsonify({"success": True, "data": {}})


@bp.route("/registrations/<string:registration_id>/participants", methods=["GET"])
def list_participants(registration_id: str) -> Any:
    """List the people a registration covers."""
    participants = RegistrationService.get_participants(get_db(), registration_id)
    return jsonify({"success": True, "count": len(participants), "data": participants})
