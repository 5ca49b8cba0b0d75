"""Routes for the users blueprint."""

from __future__ import annotations

from typing import Any

from flask import jsonify, request

from eventreg.db import get_db

from . import bp
from .services import UserService


@bp.route("/", methods=["GET"])
def list_users() -> Any:
    """List all users."""
    users = UserService.list_users(get_db())
    return jsonify({"success": True, "count": len(users), "data": users})


@bp.route("/", methods=["POST"])
def create_user() -> Any:
    """Create a new user."""
    user = UserService.create_user(get_db(), request.get_json(silent=True))
    return jsonify({"success": True, "data": user}), 201


@bp.route("/<string:user_id>", methods=["GET"])
def get_user(user_id: str) -> Any:
    """Fetch a single user."""
    return jsonify({"success": True, "data": UserService.get_user(get_db(), user_id)})


@bp.route("/<string:user_id>", methods=["PUT", "PATCH"])
def update_user(user_id: str) -> Any:
    """Update a user's profile."""
    user = UserService.update_user(get_db(), user_id, request.get_json(silent=True))
    return jsonify({"success": True, "data": user})


@bp.route("/<string:user_id>", methods=["DELETE"])
def delete_user(user_id: str) -> Any:
    """Delete a user."""
    UserService.delete_user(get_db(), user_id)
    return jsonify({"success": True, "data": {}})
