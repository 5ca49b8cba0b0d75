"""Routes for events and event sections."""

from __future__ import annotations

from typing import Any

from flask import jsonify, request

from eventreg.db import get_db

from . import bp
from .services import EventService, SectionService


@bp.route("/events/", methods=["GET"])
def list_events() -> Any:
    """List events, optionally only published ones."""
    published = request.args.get("published")
    flag = None if published is None else published.lower() in ["true", "1", "t"]
    events = EventService.list_events(get_db(), published=flag)
    return jsonify({"success": True, "count": len(events), "data": events})


@bp.route("/events/", methods=["POST"])
def create_event() -> Any:
    """Create a new event."""
    event = EventService.create_event(get_db(), request.get_json(silent=True))
    return jsonify({"success": True, "data": event}), 201


@bp.route("/events/<string:event_id>", methods=["GET"])
def get_event(event_id: str) -> Any:
    """Fetch an event by id or slug."""
    return jsonify({"success": True, "data": EventService.get_event(get_db(), event_id)})


@bp.route("/events/<string:event_id>", methods=["PUT", "PATCH"])
def update_event(event_id: str) -> Any:
    """Update an event."""
    event = EventService.update_event(get_db(), event_id, request.get_json(silent=True))
    return jsonify({"success": True, "data": event})


@bp.route("/events/<string:event_id>", methods=["DELETE"])
def delete_event(event_id: str) -> Any:
    """Delete an event and its sections."""
    EventService.delete_event(get_db(), event_id)
    return jsonify({"success": True, "data": {}})


@bp.route("/events/<string:event_id>/sections", methods=["GET"])
def list_sections(event_id: str) -> Any:
    """List an event's sections."""
    sections = SectionService.list_sections(get_db(), event_id)
    return jsonify({"success": True, "count": len(sections), "data": sections})


@bp.route("/events/<string:event_id>/sections", methods=["POST"])
def create_section(event_id: str) -> Any:
    """Add a section to an event."""
    section = SectionService.create_section(
        get_db(), event_id, request.get_json(silent=True)
    )
    return jsonify({"success": True, "data": section}), 201


@bp.route("/sections/<string:section_id>", methods=["GET"])
def get_section(section_id: str) -> Any:
    """Fetch a section."""
    return jsonify(
        {"success": True, "data": SectionService.get_section(get_db(), section_id)}
    )


@bp.route("/sections/<string:section_id>", methods=["PUT", "PATCH"])
def update_section(section_id: str) -> Any:
    """Update a section."""
    section = SectionService.update_section(
        get_db(), section_id, request.get_json(silent=True)
    )
    return jsonify({"success": True, "data": section})


@bp.route("/sections/<string:section_id>", methods=["DELETE"])
def delete_section(section_id: str) -> Any:
    """Delete a section."""
    SectionService.delete_section(get_db(), section_id)
    return jsonify({"success": True, "data": {}})
