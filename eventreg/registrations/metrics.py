"""Read-only values derived from a registration's stored collections.

These are computed on every read and never written back, so they cannot go
stale.
"""

from __future__ import annotations

from typing import Any


def team_size(registration: dict[str, Any]) -> int:
    """Return the number of team members, or 0 unless this is a team registration."""
    if registration.get("registrationType") != "team":
        return 0
    return len(registration.get("teamMembers") or [])


def family_size(registration: dict[str, Any]) -> int:
    """Return the number of family members, whatever the registration type."""
    return len(registration.get("familyMembers") or [])


def seat_count(registration: dict[str, Any]) -> int:
    """Return how many seats of a section's capacity this registration takes."""
    return max(1, family_size(registration) + team_size(registration))


def payment_status_for(total_amount: float, amount_paid: float) -> str:
    """Derive unpaid/partial/paid from what is owed and what has been paid."""
    if amount_paid <= 0:
        return "unpaid"
    if amount_paid < total_amount:
        return "partial"
    return "paid"


def outstanding_balance(registration: dict[str, Any]) -> float:
    """Return what is still owed on a registration."""
    owed = float(registration.get("totalAmount") or 0)
    paid = float(registration.get("amountPaid") or 0)
    return round(max(0.0, owed - paid), 2)


def with_derived(registration: dict[str, Any]) -> dict[str, Any]:
    """Attach the derived read-only fields to a registration for output."""
    registration["teamSize"] = team_size(registration)
    registration["familySize"] = family_size(registration)
    registration["balance"] = outstanding_balance(registration)
    return registration
