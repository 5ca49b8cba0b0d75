"""Utility functions for the application."""

import smtplib

from flask import current_app, render_template
from flask_mail import Message

from .core.constants import UNKNOWN_NAME
from .extensions import mail

SMTP_AUTH_ERROR_CODE = 534


class EmailError(Exception):
    """Base class for email errors."""

    pass


def send_email(to, subject, template, **kwargs):
    """Send an email to a recipient.

    Raises:
        EmailError: If sending the email fails.
    """
    msg = Message(
        subject,
        recipients=[to],
        html=render_template(template, **kwargs),
        sender=current_app.config["MAIL_DEFAULT_SENDER"],
    )
    try:
        mail.send(msg)
    except smtplib.SMTPAuthenticationError as e:
        if e.smtp_code == SMTP_AUTH_ERROR_CODE:
            raise EmailError(
                "Authentication failed. The mail provider requires an App Password. "
                "Please verify your MAIL_USERNAME and MAIL_PASSWORD settings."
            ) from e
        raise EmailError(f"SMTP Authentication failed: {e}") from e
    except Exception as e:
        raise EmailError(f"Failed to send email: {e}") from e


def display_name(record):
    """Return a readable name for a user, family member or external registrant."""
    if not record:
        return UNKNOWN_NAME
    if record.get("name"):
        return record["name"]
    full = " ".join(p for p in (record.get("firstName"), record.get("lastName")) if p)
    return full or UNKNOWN_NAME


def public_user(user):
    """Strip secrets from a user document before it leaves the service layer."""
    if user is None:
        return None
    return {k: v for k, v in user.items() if k != "password"}
