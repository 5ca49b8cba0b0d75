"""Routes for the families blueprint."""

from __future__ import annotations

from typing import Any

from flask import jsonify, request

from eventreg.db import get_db

from . import bp
from .services import FamilyService


@bp.route("/", methods=["GET"])
def list_families() -> Any:
    """List all families."""
    families = FamilyService.list_families(get_db())
    return jsonify({"success": True, "count": len(families), "data": families})


@bp.route("/", methods=["POST"])
def create_family() -> Any:
    """Create a family."""
    family = FamilyService.create_family(get_db(), request.get_json(silent=True))
    return jsonify({"success": True, "data": family}), 201


@bp.route("/<string:family_id>", methods=["GET"])
def get_family(family_id: str) -> Any:
    """Fetch a family with its members."""
    return jsonify(
        {"success": True, "data": FamilyService.get_family(get_db(), family_id)}
    )


@bp.route("/<string:family_id>", methods=["PUT", "PATCH"])
def update_family(family_id: str) -> Any:
    """Update a family."""
    family = FamilyService.update_family(
        get_db(), family_id, request.get_json(silent=True)
    )
    return jsonify(
        {"success": True, "data": family, "message": "Family updated successfully"}
    )


@bp.route("/<string:family_id>", methods=["DELETE"])
def delete_family(family_id: str) -> Any:
    """Delete a family."""
    FamilyService.delete_family(get_db(), family_id)
    return jsonify({"success": True, "data": {}})


@bp.route("/<string:family_id>/members", methods=["GET"])
def list_members(family_id: str) -> Any:
    """List a family's members."""
    members = FamilyService.list_members(get_db(), family_id)
    return jsonify({"success": True, "count": len(members), "data": members})


@bp.route("/<string:family_id>/members", methods=["POST"])
def add_member(family_id: str) -> Any:
    """Add a member to a family."""
    member = FamilyService.add_member(
        get_db(), family_id, request.get_json(silent=True)
    )
    return (
        jsonify(
            {
                "success": True,
                "data": member,
                "message": "Family member added successfully",
            }
        ),
        201,
    )


@bp.route("/<string:family_id>/members/<string:member_id>", methods=["PUT", "PATCH"])
def update_member(family_id: str, member_id: str) -> Any:
    """Update a family member."""
    member = FamilyService.update_member(
        get_db(), family_id, member_id, request.get_json(silent=True)
    )
    return jsonify({"success": True, "data": member})


@bp.route("/<string:family_id>/members/<string:member_id>", methods=["DELETE"])
def delete_member(family_id: str, member_id: str) -> Any:
    """Remove a family member."""
    FamilyService.delete_member(get_db(), family_id, member_id)
    return jsonify({"success": True, "data": {}})
