"""Routes for the payments blueprint."""

from __future__ import annotations

from typing import Any

from flask import jsonify, request

from eventreg.db import get_db

from . import bp
from .services import PaymentService


@bp.route("/", methods=["GET"])
def list_payments() -> Any:
    """List payments, optionally filtered by ``?registrationId=``."""
    payments = PaymentService.list_payments(
        get_db(), request.args.get("registrationId")
    )
    return jsonify({"success": True, "count": len(payments), "data": payments})


@bp.route("/", methods=["POST"])
def create_payment() -> Any:
    """Record a payment."""
    payment = PaymentService.create_payment(get_db(), request.get_json(silent=True))
    return jsonify({"success": True, "data": payment}), 201


@bp.route("/<string:payment_id>", methods=["GET"])
def get_payment(payment_id: str) -> Any:
    """Fetch a payment."""
    return jsonify(
        {"success": True, "data": PaymentService.get_payment(get_db(), payment_id)}
    )


@bp.route("/<string:payment_id>", methods=["PUT", "PATCH"])
def update_payment(payment_id: str) -> Any:
    """Update a payment."""
    payment = PaymentService.update_payment(
        get_db(), payment_id, request.get_json(silent=True)
    )
    return jsonify({"success": True, "data": payment})


@bp.route("/<string:payment_id>", methods=["DELETE"])
def delete_payment(payment_id: str) -> Any:
    """Delete a payment."""
    PaymentService.delete_payment(get_db(), payment_id)
    return jsonify({"success": True, "data": {}})
